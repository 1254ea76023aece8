from __future__ import annotations

import logging
import threading
from typing import Literal

from domain.errors import SampleParseError, UpstreamError
from domain.ports import Clock, LineParser, LineSource

from .retention import RetentionStore

logger = logging.getLogger(__name__)

ParseErrorPolicy = Literal["fatal", "skip"]


class IngestLoop:
    """
    Único escritor do RetentionStore.

    Lê linha a linha do upstream, parseia, carimba com o relógio e faz append.
    Fim do upstream é sempre fatal (UpstreamError): sem dado novo os assinantes
    não têm outra forma de perceber que a coleta parou.
    Linha inválida: fatal por padrão; com policy="skip" só loga e conta.
    """

    def __init__(
        self,
        source: LineSource,
        parser: LineParser,
        store: RetentionStore,
        clock: Clock,
        *,
        on_parse_error: ParseErrorPolicy = "fatal",
    ):
        if on_parse_error not in ("fatal", "skip"):
            raise ValueError(f"on_parse_error inválido: {on_parse_error!r}")

        self.source = source
        self.parser = parser
        self.store = store
        self.clock = clock
        self.on_parse_error = on_parse_error

        self._stop = threading.Event()

        self.total_lines = 0
        self.total_ingested = 0
        self.total_skipped = 0

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self) -> None:
        for line in self.source.lines():
            if self._stop.is_set():
                return
            if not line.strip():
                continue
            self.total_lines += 1

            try:
                reading = self.parser.parse(line)
            except SampleParseError as e:
                if self.on_parse_error == "fatal":
                    raise
                self.total_skipped += 1
                logger.warning("skipping unparseable line: %r", e.line)
                continue

            self.store.append(reading, self.clock.now_seconds())
            self.total_ingested += 1

        if self._stop.is_set():
            return
        raise UpstreamError(f"upstream ended after {self.total_lines} lines")
