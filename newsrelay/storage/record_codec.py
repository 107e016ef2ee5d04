"""Line-oriented record codec for the on-disk state files.

File shape (version 1)::

    # newsrelay-records v1
    t3_abc123,1718000000.5
    t3_def456,1718000042.25

Each line is one record; fields are joined by the codec's delimiter (``,``
for seen items, ``|||`` for headlines). Inside a field, backslash escapes
the delimiter characters, backslash itself, CR and LF, so free text such as
headlines can never split a record. Lines starting with ``#`` are comments;
a field that itself starts with ``#`` is written with a leading backslash.
Files written before the header existed load unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

HEADER_PREFIX = "# newsrelay-records v"
CURRENT_VERSION = 1


@dataclass(frozen=True)
class RecordCodec:
    delimiter: str
    version: int = CURRENT_VERSION

    @property
    def header(self) -> str:
        return f"{HEADER_PREFIX}{self.version}"

    def escape(self, value: str) -> str:
        out: List[str] = []
        for ch in value:
            if ch == "\\":
                out.append("\\\\")
            elif ch == "\n":
                out.append("\\n")
            elif ch == "\r":
                out.append("\\r")
            elif ch in self.delimiter:
                out.append("\\" + ch)
            else:
                out.append(ch)
        return "".join(out)

    def encode(self, fields: Sequence[str]) -> str:
        encoded = [self.escape(str(f)) for f in fields]
        if encoded and encoded[0].startswith("#"):
            encoded[0] = "\\" + encoded[0]
        return self.delimiter.join(encoded)

    def decode(self, line: str) -> Optional[List[str]]:
        """Split one line into fields; ``None`` for blank and comment lines."""
        line = line.rstrip("\r")
        if not line.strip() or line.startswith("#"):
            return None
        fields: List[str] = []
        current: List[str] = []
        i = 0
        n = len(line)
        while i < n:
            ch = line[i]
            if ch == "\\" and i + 1 < n:
                nxt = line[i + 1]
                current.append({"n": "\n", "r": "\r"}.get(nxt, nxt))
                i += 2
                continue
            if line.startswith(self.delimiter, i):
                fields.append("".join(current))
                current = []
                i += len(self.delimiter)
                continue
            current.append(ch)
            i += 1
        fields.append("".join(current))
        return fields

    def dumps(self, records: Iterable[Sequence[str]]) -> str:
        lines = [self.header]
        lines.extend(self.encode(r) for r in records)
        return "\n".join(lines) + "\n"

    def loads(self, text: str) -> List[List[str]]:
        out: List[List[str]] = []
        for line in text.split("\n"):
            fields = self.decode(line)
            if fields is not None:
                out.append(fields)
        return out


SEEN_ITEM_CODEC = RecordCodec(",")
HEADLINE_CODEC = RecordCodec("|||")


def parse_timestamp_field(value: str) -> Optional[float]:
    try:
        ts = float(value.strip())
    except (AttributeError, ValueError):
        return None
    if ts != ts:  # NaN
        return None
    return ts
