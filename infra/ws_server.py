"""
Broadcast dispatcher (FastAPI).

  - WS <path>: handshake + backlog + live, uma SubscriberSession por conexão
  - GET /status: contadores do buffer + número de assinantes

Cada conexão roda duas tasks: o envio (sessão) e um dreno do receive,
que é quem percebe o disconnect do cliente e cancela o envio.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional, Sequence

import anyio
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from app.retention import RetentionStore
from app.session import SubscriberSession
from domain.ports import Clock

from .codec import encode_sample, encode_welcome

logger = logging.getLogger(__name__)

# clientes antigos pedem este subprotocolo e abortam se não vier de volta
DEFAULT_SUBPROTOCOLS: Sequence[str] = ("rust-websocket",)


class DispatcherState:
    def __init__(self, max_waiting_sessions: int):
        self.max_waiting_sessions = max_waiting_sessions
        self.active = 0
        self.total_connections = 0
        self._limiter: Optional[anyio.CapacityLimiter] = None

    @property
    def limiter(self) -> anyio.CapacityLimiter:
        # criado sob demanda: precisa de event loop rodando
        if self._limiter is None:
            self._limiter = anyio.CapacityLimiter(self.max_waiting_sessions)
        return self._limiter


def _peer_of(websocket: WebSocket) -> str:
    c = websocket.client
    return f"{c.host}:{c.port}" if c is not None else "?"


def _pick_subprotocol(websocket: WebSocket, offered: Sequence[str]) -> Optional[str]:
    requested = websocket.scope.get("subprotocols") or []
    for p in requested:
        if p in offered:
            return p
    return None


async def _drain(websocket: WebSocket) -> None:
    # o protocolo é só servidor -> cliente; mensagens do cliente são descartadas
    while True:
        msg = await websocket.receive()
        if msg["type"] == "websocket.disconnect":
            return


def create_app(
    store: RetentionStore,
    clock: Clock,
    *,
    path: str = "/",
    subprotocols: Sequence[str] = DEFAULT_SUBPROTOCOLS,
    max_waiting_sessions: int = 256,
    session_poll_sec: float = 1.0,
) -> FastAPI:
    app = FastAPI(title="iotop-stream")
    state = DispatcherState(max_waiting_sessions)
    app.state.store = store
    app.state.dispatcher = state

    offered = list(subprotocols)

    @app.websocket(path)
    async def stream(websocket: WebSocket):
        await websocket.accept(subprotocol=_pick_subprotocol(websocket, offered))

        peer = _peer_of(websocket)
        logger.info("Connection from %s", peer)

        session = SubscriberSession(
            store,
            websocket,
            clock,
            encode_sample=encode_sample,
            encode_welcome=encode_welcome,
            poll_sec=session_poll_sec,
            limiter=state.limiter,
            peer=peer,
        )

        errors: list = []

        async def _send(tg) -> None:
            try:
                await session.run()
            except Exception as e:
                # falha de envio: encerra só esta sessão
                errors.append(e)
            finally:
                tg.cancel_scope.cancel()

        async def _watch(tg) -> None:
            try:
                await _drain(websocket)
            except Exception as e:
                errors.append(e)
            finally:
                tg.cancel_scope.cancel()

        state.active += 1
        state.total_connections += 1
        try:
            # cancelar o envio espera o wait em thread voltar (<= poll)
            async with anyio.create_task_group() as tg:
                tg.start_soon(_send, tg)
                tg.start_soon(_watch, tg)
        finally:
            state.active -= 1

        err = errors[0] if errors else None
        if err is None or isinstance(err, WebSocketDisconnect):
            logger.info("client %s disconnected (sent=%d)", peer, session.total_sent)
        else:
            logger.info("websocket error from %s: %r (sent=%d)", peer, err, session.total_sent)

        if (
            websocket.application_state == WebSocketState.CONNECTED
            and websocket.client_state == WebSocketState.CONNECTED
        ):
            try:
                await websocket.close(code=1011)
            except (RuntimeError, OSError) as e:
                logger.debug("close failed for %s: %r", peer, e)

    @app.get("/status")
    async def status():
        out = asdict(store.stats())
        out["subscribers"] = state.active
        out["total_connections"] = state.total_connections
        return out

    return app
