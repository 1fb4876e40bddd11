from pathlib import Path

import pytest
from pyv_mem.errors import FaultKind, SimulatorException
from pyv_mem.isa.access import AccessKind, MemAccess, load_trace, parse_trace


def test_parse_trace_basic():
    """Tests parsing of every access kind, comments and blank lines."""
    lines = [
        "# warm up",
        "I 0x100",
        "",
        "R 0x40        # default width",
        "r 64 2",
        "W 0x40 0xBEEF 2",
        "W 0x44 7",
    ]
    trace = parse_trace(lines)

    assert [a.kind for a in trace] == [
        AccessKind.FETCH, AccessKind.READ, AccessKind.READ, AccessKind.WRITE, AccessKind.WRITE,
    ]
    assert trace[0] == MemAccess(kind=AccessKind.FETCH, address=0x100, width=4, line=2)
    assert trace[1].width == 4 and trace[1].line == 4
    assert trace[2].address == 64 and trace[2].width == 2
    assert trace[3].value == 0xBEEF and trace[3].width == 2
    assert trace[4].width == 4


def test_parse_empty_trace():
    assert parse_trace(["", "   ", "# only a comment"]) == []


@pytest.mark.parametrize("line", [
    "X 0x10",
    "R",
    "R 0x10 4 9",
    "W 0x10",
    "I 0x10 4",
    "R zz",
    "W 0x10 nope",
    "R -4",
])
def test_malformed_lines(line: str):
    with pytest.raises(SimulatorException) as excinfo:
        parse_trace(["R 0x0", line])
    fault = excinfo.value
    assert fault.kind is FaultKind.INPUT
    assert fault.reason == "Malformed trace line 2"


def test_access_to_json():
    access = MemAccess(kind=AccessKind.WRITE, address=8, width=1, value=3)
    assert access.to_json() == {"kind": "W", "address": 8, "width": 1, "value": 3}
    assert access.kind.is_write
    assert not AccessKind.FETCH.is_write


def test_load_trace(tmp_path: Path):
    trace_file = tmp_path / "trace.txt"
    trace_file.write_text("R 0x10\nW 0x10 1 1\n")
    trace = load_trace(str(trace_file))
    assert len(trace) == 2
    assert trace[1].line == 2


def test_load_trace_missing_file(tmp_path: Path):
    with pytest.raises(SimulatorException) as excinfo:
        load_trace(str(tmp_path / "missing.txt"))
    assert excinfo.value.kind is FaultKind.INPUT
