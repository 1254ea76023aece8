from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

import anyio
import anyio.to_thread

from domain.models import Sample
from domain.ports import Clock, MessageChannel

from .retention import RetentionStore

logger = logging.getLogger(__name__)


class SubscriberSession:
    """
    Uma sessão por conexão.

    1) attach: handshake (server_time) + snapshot completo do buffer
    2) live: espera append > cursor, envia só sequence > cursor, em ordem
    3) qualquer falha de envio sobe como exceção e encerra SÓ esta sessão

    O cursor (last_delivered_sequence) é exclusivo: nunca duplica, nunca
    reordena. Pode haver buraco se a evicção passar na frente da sessão.
    """

    def __init__(
        self,
        store: RetentionStore,
        channel: MessageChannel,
        clock: Clock,
        *,
        encode_sample: Callable[[Sample], str],
        encode_welcome: Callable[[int], str],
        poll_sec: float = 1.0,
        limiter: Optional[anyio.CapacityLimiter] = None,
        peer: str = "",
    ):
        self.store = store
        self.channel = channel
        self.clock = clock
        self.encode_sample = encode_sample
        self.encode_welcome = encode_welcome
        self.poll_sec = poll_sec
        self.limiter = limiter
        self.peer = peer

        self.last_delivered_sequence: Optional[int] = None
        self.total_sent = 0

    async def run(self) -> None:
        await self.attach()
        while True:
            await self.step()

    async def attach(self) -> None:
        await self.channel.send_text(self.encode_welcome(self.clock.now_seconds()))
        await self._deliver(self.store.snapshot())

    async def step(self) -> bool:
        """Uma volta do loop live. Retorna False se o poll expirou sem dado novo."""
        woke = await anyio.to_thread.run_sync(
            self.store.wait_for_update,
            self._wait_cursor(),
            self.poll_sec,
            limiter=self.limiter,
        )
        if not woke:
            return False
        await self._deliver(self.store.entries_after(self.last_delivered_sequence))
        return True

    def _wait_cursor(self) -> int:
        # nada entregue ainda: qualquer amostra serve
        return -1 if self.last_delivered_sequence is None else self.last_delivered_sequence

    async def _deliver(self, samples: Iterable[Sample]) -> None:
        for s in samples:
            await self.channel.send_text(self.encode_sample(s))
            self.last_delivered_sequence = s.sequence
            self.total_sent += 1
