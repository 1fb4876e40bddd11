from __future__ import annotations
import inspect
from enum import Enum
from pathlib import Path


class FaultKind(str, Enum):
    """Closed set of simulator fault kinds.

    INPUT and SANITY are top-level kinds. RUNTIME is the base of the faults
    caused by the guest program's behavior during execution.
    """

    INPUT = "Input"
    RUNTIME = "Runtime"
    UNSUPPORTED_INSTRUCTION = "UnsupportedInstruction"
    UNSUPPORTED_ALU_OPERATION = "UnsupportedAluOperation"
    OVERFLOW = "Overflow"
    UNALIGNED_JUMP = "UnalignedJump"
    UNKNOWN_MEMORY_CONTROL = "UnknownMemoryControl"
    OUT_OF_MEMORY_ACCESS = "OutOfMemoryAccess"
    SYSCALL_UNKNOWN = "SyscallUnknown"
    SANITY = "Sanity"

    @property
    def parent(self) -> FaultKind | None:
        return _PARENTS.get(self)

    @property
    def is_runtime(self) -> bool:
        return self is FaultKind.RUNTIME or self.parent is FaultKind.RUNTIME

    def __str__(self) -> str:
        return self.value


_PARENTS = {
    FaultKind.UNSUPPORTED_INSTRUCTION: FaultKind.RUNTIME,
    FaultKind.UNSUPPORTED_ALU_OPERATION: FaultKind.RUNTIME,
    FaultKind.OVERFLOW: FaultKind.RUNTIME,
    FaultKind.UNALIGNED_JUMP: FaultKind.RUNTIME,
    FaultKind.UNKNOWN_MEMORY_CONTROL: FaultKind.RUNTIME,
    FaultKind.OUT_OF_MEMORY_ACCESS: FaultKind.RUNTIME,
    FaultKind.SYSCALL_UNKNOWN: FaultKind.RUNTIME,
}

SANITY_REASON = "Internal error"
SANITY_TEMPLATE = (
    "An internal error occurred in the simulator. We are sorry for the inconvenience. "
    "To help get the simulator fixed, please report this incident together with "
    "the trace you were running, the simulator configuration, a description of "
    "the steps you have taken and a copy of the following message:\n\n"
)


class SimulatorException(Exception):
    """A fault detected by the simulated machine.

    One exception type carries every fault kind; handlers match on `kind`
    (or `kind.is_runtime`) instead of on subclasses. Instances are read-only.
    """

    def __init__(self, kind: FaultKind, reason: str, extended: str = "",
                 file: str = "", line: int = 0):
        self._kind = FaultKind(kind)
        self._reason = reason
        self._extended = extended
        self._file = file
        self._line = line
        super().__init__(self.message(include_location=True))

    @property
    def kind(self) -> FaultKind:
        return self._kind

    @property
    def reason(self) -> str:
        return self._reason

    @property
    def extended(self) -> str:
        return self._extended

    @property
    def file(self) -> str:
        return self._file

    @property
    def line(self) -> int:
        return self._line

    def message(self, include_location: bool = True) -> str:
        """Renders `<kind>: <reason> [<extended>]`, optionally with `(<file>:<line>)`."""
        text = f"{self._kind}: {self._reason}"
        if self._extended:
            text += f" [{self._extended}]"
        if include_location:
            text += f" ({self._file}:{self._line})"
        return text

    def __str__(self) -> str:
        return self.message(include_location=True)

    def __repr__(self) -> str:
        return (f"SimulatorException(kind={self._kind.name}, reason={self._reason!r}, "
                f"extended={self._extended!r}, file={self._file!r}, line={self._line})")


def _caller_location(depth: int) -> tuple[str, int]:
    frame = inspect.currentframe()
    try:
        for _ in range(depth):
            if frame is None:
                return "<unknown>", 0
            frame = frame.f_back
        if frame is None:
            return "<unknown>", 0
        return Path(frame.f_code.co_filename).name, frame.f_lineno
    finally:
        del frame


def simulator_exception(kind: FaultKind, reason: str, extended: str = "") -> SimulatorException:
    """Builds a fault stamped with the file and line of the caller."""
    file, line = _caller_location(2)
    return SimulatorException(kind, reason, extended, file, line)


def sanity_exception(detail: str, _depth: int = 2) -> SimulatorException:
    """Builds a SANITY fault with the stock bug-report template."""
    file, line = _caller_location(_depth)
    return SimulatorException(FaultKind.SANITY, SANITY_REASON, SANITY_TEMPLATE + detail, file, line)


def sanity_assert(condition: bool, detail: str):
    if not condition:
        raise sanity_exception(f"Sanity check failed: {detail}", _depth=3)
