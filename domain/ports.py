from __future__ import annotations

from typing import Iterator, Protocol

from .models import IoReading


class Clock(Protocol):
    def now_seconds(self) -> int: ...


class LineSource(Protocol):
    """Fonte de linhas de texto (stdout do iotop, arquivo, lista em teste)."""
    def lines(self) -> Iterator[str]: ...


class LineParser(Protocol):
    def parse(self, line: str) -> IoReading: ...


class MessageChannel(Protocol):
    """Transporte de uma sessão: qualquer falha no envio encerra a sessão."""
    async def send_text(self, data: str) -> None: ...
