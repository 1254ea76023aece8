from __future__ import annotations

import argparse
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Tuple

import yaml

from domain.errors import ConfigError

DEFAULT_LISTEN = "0.0.0.0:9093"
DEFAULT_IOTOP_PATH = "iotop"
DEFAULT_WINDOW_SEC = 900

PARSE_ERROR_POLICIES = ("fatal", "skip")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ServerConfig:
    path: str = "/"
    # ecoado de volta quando o cliente pede (clientes antigos exigem)
    subprotocols: Tuple[str, ...] = ("rust-websocket",)

    # sessões esperando dado novo em thread ao mesmo tempo
    max_waiting_sessions: int = 256
    session_poll_sec: float = 1.0


@dataclass(frozen=True)
class AppConfig:
    host: str = "0.0.0.0"
    port: int = 9093

    iotop_path: str = DEFAULT_IOTOP_PATH
    window_sec: int = DEFAULT_WINDOW_SEC

    on_parse_error: str = "fatal"
    log_level: str = "INFO"

    server: ServerConfig = field(default_factory=ServerConfig)

    @property
    def listen(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"


def _opt(d: Mapping[str, Any], path: str, default: Any) -> Any:
    cur: Any = d
    for part in path.split("."):
        if not isinstance(cur, Mapping) or part not in cur:
            return default
        cur = cur[part]
    return cur


def parse_listen(value: str) -> Tuple[str, int]:
    """
    "HOST:PORT" -> (host, port). IPv6 entre colchetes: "[::1]:9093".
    """
    text = str(value).strip()
    host, sep, port_s = text.rpartition(":")
    if not sep or not host:
        raise ConfigError(f"Config inválida: listen deve ser HOST:PORT (recebido {value!r})")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_s)
    except ValueError as e:
        raise ConfigError(f"Config inválida: porta não-inteira em {value!r}") from e
    if port < 1 or port > 65535:
        raise ConfigError(f"Port out of range: {port}")
    return host, port


def _validate(cfg: AppConfig) -> AppConfig:
    if cfg.window_sec <= 0:
        raise ConfigError(f"Config inválida: window_sec deve ser > 0 (recebido {cfg.window_sec})")
    if cfg.on_parse_error not in PARSE_ERROR_POLICIES:
        raise ConfigError(
            f"Config inválida: on_parse_error deve ser um de {PARSE_ERROR_POLICIES} "
            f"(recebido {cfg.on_parse_error!r})"
        )
    if cfg.log_level not in LOG_LEVELS:
        raise ConfigError(f"Config inválida: log_level desconhecido {cfg.log_level!r}")
    if not cfg.server.path.startswith("/"):
        raise ConfigError(f"Config inválida: server.path deve começar com '/' ({cfg.server.path!r})")
    if cfg.server.max_waiting_sessions < 1:
        raise ConfigError("Config inválida: server.max_waiting_sessions deve ser >= 1")
    if cfg.server.session_poll_sec <= 0:
        raise ConfigError("Config inválida: server.session_poll_sec deve ser > 0")
    return cfg


def _to_int(x: Any, path: str) -> int:
    try:
        return int(x)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Config inválida: '{path}' deve ser inteiro (recebido {x!r})") from e


def _to_float(x: Any, path: str) -> float:
    try:
        return float(x)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Config inválida: '{path}' deve ser número (recebido {x!r})") from e


def config_from_mapping(data: Mapping[str, Any]) -> AppConfig:
    if not isinstance(data, Mapping):
        raise ConfigError("Config inválida: o YAML deve ser um mapa (dict).")

    defaults = AppConfig()
    host, port = parse_listen(_opt(data, "listen", DEFAULT_LISTEN))

    subprotocols_raw = _opt(data, "server.subprotocols", list(defaults.server.subprotocols))
    if isinstance(subprotocols_raw, str) or not isinstance(subprotocols_raw, list):
        raise ConfigError("Config inválida: 'server.subprotocols' deve ser uma lista.")

    server = ServerConfig(
        path=str(_opt(data, "server.path", defaults.server.path)),
        subprotocols=tuple(str(p) for p in subprotocols_raw),
        max_waiting_sessions=_to_int(
            _opt(data, "server.max_waiting_sessions", defaults.server.max_waiting_sessions),
            "server.max_waiting_sessions",
        ),
        session_poll_sec=_to_float(
            _opt(data, "server.session_poll_sec", defaults.server.session_poll_sec),
            "server.session_poll_sec",
        ),
    )

    return _validate(
        AppConfig(
            host=host,
            port=port,
            iotop_path=str(_opt(data, "iotop_path", DEFAULT_IOTOP_PATH)),
            window_sec=_to_int(_opt(data, "window_sec", DEFAULT_WINDOW_SEC), "window_sec"),
            on_parse_error=str(_opt(data, "on_parse_error", defaults.on_parse_error)).lower(),
            log_level=str(_opt(data, "log_level", defaults.log_level)).upper(),
            server=server,
        )
    )


def load_config(path: Optional[str] = None) -> AppConfig:
    if path is None:
        return _validate(AppConfig())

    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Não foi possível ler config {path!r}: {e}") from e
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config inválida: YAML malformado em {path!r}: {e}") from e
    return config_from_mapping(data)


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="iotop-stream",
        description="Stream iotop samples to websocket subscribers.",
    )
    ap.add_argument("-c", "--config", metavar="FILE", help="YAML config file")
    ap.add_argument("-l", "--listen", metavar="HOST:PORT", help=f"listening address and port (default {DEFAULT_LISTEN})")
    ap.add_argument("-p", "--path", dest="iotop_path", metavar="path-to-iotop", help=f"iotop path (default {DEFAULT_IOTOP_PATH})")
    ap.add_argument("-i", "--interval", dest="window_sec", metavar="sec", help=f"time interval in seconds (default {DEFAULT_WINDOW_SEC})")
    ap.add_argument("--on-parse-error", choices=PARSE_ERROR_POLICIES, help="what to do with an unparseable iotop line")
    ap.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS)
    return ap


def parse_args(argv: Optional[Sequence[str]] = None) -> AppConfig:
    """
    Precedência: CLI > YAML > defaults.
    """
    ns = build_arg_parser().parse_args(argv)
    cfg = load_config(ns.config)

    changes: dict = {}
    if ns.listen is not None:
        changes["host"], changes["port"] = parse_listen(ns.listen)
    if ns.iotop_path is not None:
        changes["iotop_path"] = ns.iotop_path
    if ns.window_sec is not None:
        changes["window_sec"] = _to_int(str(ns.window_sec).strip(), "--interval")
    if ns.on_parse_error is not None:
        changes["on_parse_error"] = ns.on_parse_error
    if ns.log_level is not None:
        changes["log_level"] = ns.log_level

    return _validate(replace(cfg, **changes)) if changes else cfg
