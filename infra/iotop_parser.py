from __future__ import annotations

import re

from domain.errors import SampleParseError
from domain.models import IoReading
from domain.ports import LineParser

# saída de `iotop -bokqqq`, ex.:
#   " 1234 be/4 root        0.00 K/s   12.34 K/s  0.00 %  1.23 % [jbd2/sda1-8]"
_LINE_RE = re.compile(
    r"^\s*(?P<tid>[0-9]+)\s+(?P<prio>.*?)\s+(?P<user>.*?)"
    r"\s+(?P<read>[0-9.]+) (?P<read_unit>[BKMG])/s"
    r"\s+(?P<write>[0-9.]+) (?P<write_unit>[BKMG])/s"
    r"\s+(?P<swapin>[0-9.]+) %"
    r"\s+(?P<io>[0-9.]+) % (?P<command>.*)$"
)

# tudo normalizado para KiB/s (o -k do iotop já entrega K/s)
_TO_KIB = {
    "B": 1.0 / 1024.0,
    "K": 1.0,
    "M": 1024.0,
    "G": 1024.0 * 1024.0,
}


class IotopLineParser(LineParser):
    def parse(self, line: str) -> IoReading:
        text = line.rstrip("\r\n")
        m = _LINE_RE.match(text)
        if m is None:
            raise SampleParseError(text)

        try:
            return IoReading(
                thread_id=int(m.group("tid")),
                priority=m.group("prio"),
                user=m.group("user"),
                disk_read_rate=float(m.group("read")) * _TO_KIB[m.group("read_unit")],
                disk_write_rate=float(m.group("write")) * _TO_KIB[m.group("write_unit")],
                swap_in_percent=float(m.group("swapin")),
                io_percent=float(m.group("io")),
                command=m.group("command"),
            )
        except ValueError as e:
            # "[0-9.]+" aceita coisas como "1.2.3"
            raise SampleParseError(text) from e
