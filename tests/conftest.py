from __future__ import annotations

import pytest

from domain.models import IoReading


class FixedClock:
    def __init__(self, now: int = 0):
        self.now = now

    def now_seconds(self) -> int:
        return self.now


def reading(tid: int = 1, **kw) -> IoReading:
    fields = dict(
        thread_id=tid,
        priority="be/4",
        user="root",
        disk_read_rate=0.0,
        disk_write_rate=12.5,
        swap_in_percent=0.0,
        io_percent=1.5,
        command=f"proc-{tid}",
    )
    fields.update(kw)
    return IoReading(**fields)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def make_reading():
    return reading


@pytest.fixture
def clock():
    return FixedClock(1_700_000_000)
