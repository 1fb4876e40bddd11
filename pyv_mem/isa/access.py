from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List

from ..errors import FaultKind, simulator_exception


class AccessKind(str, Enum):
    """Kind of a memory access issued by the machine."""
    READ = "R"
    WRITE = "W"
    FETCH = "I"  # instruction fetch, a read through the instruction cache

    @property
    def is_write(self) -> bool:
        return self is AccessKind.WRITE

    def __str__(self) -> str:
        return self.value


ACCESS_WIDTHS = (1, 2, 4, 8)
FETCH_WIDTH = 4


@dataclass(frozen=True)
class MemAccess:
    """One step of an access trace."""
    kind: AccessKind
    address: int
    width: int = 4
    value: int = 0
    line: int = 0  # source line in the trace file, 0 if built in code

    def to_json(self):
        return {"kind": str(self.kind), "address": self.address,
                "width": self.width, "value": self.value}


def _parse_int(token: str, lineno: int, what: str) -> int:
    try:
        return int(token, 0)
    except ValueError:
        raise simulator_exception(
            FaultKind.INPUT, f"Malformed trace line {lineno}",
            f"{what} {token!r} is not an integer literal") from None


def parse_trace(lines: Iterable[str]) -> List[MemAccess]:
    """Parses an access trace.

    Line format (numbers accept any Python integer literal, `#` starts a
    comment):

        R <address> [width]
        W <address> <value> [width]
        I <address>
    """
    trace = []
    for lineno, raw in enumerate(lines, start=1):
        text = raw.split("#", 1)[0].strip()
        if not text:
            continue
        tokens = text.split()
        try:
            kind = AccessKind(tokens[0].upper())
        except ValueError:
            raise simulator_exception(
                FaultKind.INPUT, f"Malformed trace line {lineno}",
                f"unknown access kind {tokens[0]!r}") from None

        expected = {AccessKind.READ: (2, 3), AccessKind.WRITE: (3, 4), AccessKind.FETCH: (2, 2)}[kind]
        if not expected[0] <= len(tokens) <= expected[1]:
            raise simulator_exception(
                FaultKind.INPUT, f"Malformed trace line {lineno}",
                f"'{kind}' takes {expected[0] - 1} to {expected[1] - 1} operands, got {len(tokens) - 1}")

        address = _parse_int(tokens[1], lineno, "address")
        value = 0
        width = FETCH_WIDTH
        if kind is AccessKind.WRITE:
            value = _parse_int(tokens[2], lineno, "value")
            if len(tokens) == 4:
                width = _parse_int(tokens[3], lineno, "width")
        elif kind is AccessKind.READ and len(tokens) == 3:
            width = _parse_int(tokens[2], lineno, "width")

        if address < 0:
            raise simulator_exception(
                FaultKind.INPUT, f"Malformed trace line {lineno}", "address must not be negative")
        trace.append(MemAccess(kind=kind, address=address, width=width, value=value, line=lineno))
    return trace


def load_trace(path: str) -> List[MemAccess]:
    trace_path = Path(path)
    if not trace_path.exists():
        raise simulator_exception(FaultKind.INPUT, f"Trace file {path} not found")
    with open(trace_path, "r") as f:
        return parse_trace(f)
