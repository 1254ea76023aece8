from __future__ import annotations

import threading
from collections import deque
from typing import Deque, List, Optional

from domain.models import IoReading, Sample, StoreStats
from infra.rwlock import ReadWriteLock


class RetentionStore:
    """
    Buffer de amostras com janela de tempo, compartilhado entre
    um escritor (ingest) e N leitores (sessões websocket).

    - Numeração sequencial atribuída aqui, no append (começa em 0)
    - Evicção só pela ponta mais antiga, relativa ao timestamp do
      último append (não ao relógio no momento da checagem)
    - Nenhum estado por leitor: cada sessão guarda o próprio cursor

    Dois mecanismos de sincronização separados:
      * ReadWriteLock protege o deque (escrita exclusiva / leitura compartilhada)
      * Condition sinaliza "tem dado novo"; o predicado (último seq publicado)
        é lido sob o lock da própria Condition, então checar-e-esperar é
        atômico em relação ao append e nenhum wakeup se perde.
    """

    def __init__(self, window_sec: int):
        if int(window_sec) <= 0:
            raise ValueError(f"window_sec deve ser > 0 (recebido {window_sec})")
        self.window_sec = int(window_sec)

        self._rw = ReadWriteLock()
        self._samples: Deque[Sample] = deque()
        self._next_seq = 0
        self._total_evicted = 0

        self._cond = threading.Condition(threading.Lock())
        self._published_seq = -1

    def __len__(self) -> int:
        with self._rw.read():
            return len(self._samples)

    # ------------------------------------------------------------------ writer
    def append(self, reading: IoReading, timestamp: int) -> Sample:
        with self._rw.write():
            sample = Sample.from_reading(reading, self._next_seq, timestamp)
            self._next_seq += 1
            self._samples.append(sample)

            threshold = sample.timestamp - self.window_sec
            while self._samples and self._samples[0].timestamp < threshold:
                self._samples.popleft()
                self._total_evicted += 1

        # publica só depois que a amostra já está visível no deque
        with self._cond:
            if sample.sequence > self._published_seq:
                self._published_seq = sample.sequence
            self._cond.notify_all()

        return sample

    # ----------------------------------------------------------------- readers
    def snapshot(self) -> List[Sample]:
        with self._rw.read():
            return list(self._samples)

    def entries_after(self, cursor: Optional[int]) -> List[Sample]:
        if cursor is None:
            return self.snapshot()

        out: List[Sample] = []
        with self._rw.read():
            # anda a partir do mais novo: leitor em dia paga só pelo delta
            for s in reversed(self._samples):
                if s.sequence <= cursor:
                    break
                out.append(s)
        out.reverse()
        return out

    def wait_for_update(self, after: Optional[int] = None, timeout: Optional[float] = None) -> bool:
        """
        Bloqueia até existir amostra com sequence > after.

        after=None: espera o próximo append a partir de agora.
        timeout=None: espera indefinidamente. Retorna False se o timeout
        expirar sem dado novo.
        """
        with self._cond:
            if after is None:
                after = self._published_seq
            return self._cond.wait_for(lambda: self._published_seq > after, timeout)

    @property
    def last_sequence(self) -> Optional[int]:
        with self._cond:
            return self._published_seq if self._published_seq >= 0 else None

    def stats(self) -> StoreStats:
        with self._rw.read():
            return StoreStats(
                window_sec=self.window_sec,
                retained=len(self._samples),
                last_sequence=self._samples[-1].sequence if self._samples else None,
                oldest_sequence=self._samples[0].sequence if self._samples else None,
                total_appended=self._next_seq,
                total_evicted=self._total_evicted,
            )
