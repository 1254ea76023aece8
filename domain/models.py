from __future__ import annotations
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class IoReading:
    """Uma linha do iotop já parseada (ainda sem seq/time)."""
    thread_id: int
    priority: str
    user: str
    disk_read_rate: float   # KiB/s
    disk_write_rate: float  # KiB/s
    swap_in_percent: float
    io_percent: float
    command: str


@dataclass(frozen=True)
class Sample:
    # seq é a única chave de ordenação/dedupe; timestamp só serve para a janela
    sequence: int
    timestamp: int

    thread_id: int
    priority: str
    user: str
    disk_read_rate: float
    disk_write_rate: float
    swap_in_percent: float
    io_percent: float
    command: str

    @classmethod
    def from_reading(cls, reading: IoReading, sequence: int, timestamp: int) -> "Sample":
        return cls(
            sequence=int(sequence),
            timestamp=int(timestamp),
            thread_id=reading.thread_id,
            priority=reading.priority,
            user=reading.user,
            disk_read_rate=reading.disk_read_rate,
            disk_write_rate=reading.disk_write_rate,
            swap_in_percent=reading.swap_in_percent,
            io_percent=reading.io_percent,
            command=reading.command,
        )

@dataclass(frozen=True)
class StoreStats:
    window_sec: int
    retained: int
    last_sequence: Optional[int]
    oldest_sequence: Optional[int]
    total_appended: int
    total_evicted: int
