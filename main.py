from __future__ import annotations

import logging
import sys
import threading
from typing import List, Optional, Sequence

import uvicorn

from app.ingest import IngestLoop
from app.retention import RetentionStore
from config import AppConfig, parse_args
from domain.errors import ConfigError, UpstreamError
from infra.clock import SystemClock
from infra.iotop_parser import IotopLineParser
from infra.iotop_process import IotopProcess
from infra.ws_server import create_app

logger = logging.getLogger("iotop_stream")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


def serve(cfg: AppConfig) -> int:
    clock = SystemClock()
    store = RetentionStore(cfg.window_sec)

    upstream = IotopProcess(cfg.iotop_path)
    try:
        upstream.start()
    except UpstreamError as e:
        logger.error("%s", e)
        return 1

    app = create_app(
        store,
        clock,
        path=cfg.server.path,
        subprotocols=cfg.server.subprotocols,
        max_waiting_sessions=cfg.server.max_waiting_sessions,
        session_poll_sec=cfg.server.session_poll_sec,
    )
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=cfg.host,
            port=cfg.port,
            log_config=None,  # usa o logging configurado aqui
            log_level=cfg.log_level.lower(),
        )
    )

    ingest = IngestLoop(
        upstream,
        IotopLineParser(),
        store,
        clock,
        on_parse_error=cfg.on_parse_error,  # type: ignore[arg-type]
    )

    fatal: List[BaseException] = []

    def _run_ingest() -> None:
        try:
            ingest.run()
        except Exception as e:
            # qualquer falha do escritor derruba o servidor inteiro
            fatal.append(e)
            server.should_exit = True

    t = threading.Thread(target=_run_ingest, name="iotop ingest", daemon=True)
    t.start()

    try:
        server.run()
    finally:
        ingest.stop()
        upstream.close()

    if fatal:
        logger.error("ingest failed: %s", fatal[0], exc_info=fatal[0])
        return 1
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        cfg = parse_args(argv)
    except ConfigError as e:
        print(f"iotop-stream: {e}", file=sys.stderr)
        return 2

    setup_logging(cfg.log_level)
    logger.info(
        "listen=%s iotop=%s window_sec=%d on_parse_error=%s",
        cfg.listen, cfg.iotop_path, cfg.window_sec, cfg.on_parse_error,
    )
    return serve(cfg)


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
