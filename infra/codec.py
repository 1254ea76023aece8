from __future__ import annotations

import json
from typing import Any, Dict

from domain.models import Sample


def sample_to_wire(s: Sample) -> Dict[str, Any]:
    # nomes de campo do protocolo (clientes existentes dependem deles)
    return {
        "seq": s.sequence,
        "time": s.timestamp,
        "tid": s.thread_id,
        "prio": s.priority,
        "user": s.user,
        "disk_read_kb": s.disk_read_rate,
        "disk_write_kb": s.disk_write_rate,
        "swapin_percent": s.swap_in_percent,
        "io_percent": s.io_percent,
        "command": s.command,
    }


def encode_sample(s: Sample) -> str:
    return json.dumps(sample_to_wire(s), separators=(",", ":"))


def encode_welcome(server_time: int) -> str:
    return json.dumps({"server_time": int(server_time)}, separators=(",", ":"))
