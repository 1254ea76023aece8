from __future__ import annotations

import logging
import subprocess
from typing import Iterator, List, Optional, Sequence

from domain.errors import UpstreamError
from domain.ports import LineSource

logger = logging.getLogger(__name__)

# batch, só processos com I/O, KiB/s, sem cabeçalhos
IOTOP_ARGS: Sequence[str] = ("-bokqqq",)


class IotopProcess(LineSource):
    """
    Executa o iotop como subprocesso e expõe o stdout como stream de linhas.
    """

    def __init__(self, path: str = "iotop", args: Sequence[str] = IOTOP_ARGS):
        self.path = path
        self.args: List[str] = list(args)
        self._proc: Optional[subprocess.Popen] = None

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc is not None else None

    def start(self) -> None:
        if self._proc is not None:
            return
        cmd = [self.path, *self.args]
        try:
            self._proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise UpstreamError(f"Failed to execute process {cmd!r}: {e}") from e
        logger.info("spawned %s (pid=%s)", " ".join(cmd), self._proc.pid)

    def lines(self) -> Iterator[str]:
        if self._proc is None:
            self.start()
        proc = self._proc
        assert proc is not None and proc.stdout is not None

        for line in proc.stdout:
            yield line

        # stdout fechado: o iotop saiu (ou fechou o pipe); quem decide se é fatal é o ingest
        logger.warning("%s stdout closed (returncode=%s)", self.path, proc.poll())

    def close(self, timeout: float = 3.0) -> None:
        proc, self._proc = self._proc, None
        if proc is None:
            return
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
