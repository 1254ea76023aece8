from time import time
from domain.ports import Clock

# epoch em segundos inteiros (mesma resolução do campo "time" das amostras)
class SystemClock(Clock):
    def now_seconds(self) -> int:
        return int(time())
