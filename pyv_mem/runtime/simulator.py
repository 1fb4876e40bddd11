from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from ..config import SimConfig
from ..errors import SimulatorException
from ..isa.access import MemAccess
from ..utils.logging import get_logger
from ..utils.reporting import report_fault
from .cache import AccessResult
from .memory_system import MemorySystem

logger = get_logger("pyv-mem.sim")


@dataclass
class StepRecord:
    step: int
    access: MemAccess
    value: int
    results: List[AccessResult] = field(default_factory=list)

    @property
    def hit(self) -> bool:
        return bool(self.results) and all(r.hit for r in self.results)

    def to_json(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            **self.access.to_json(),
            "value": self.value,
            "hit": self.hit,
            "blocks": [r.to_json() for r in self.results],
        }


class Simulator:
    """Replays an access trace on one MemorySystem, one step at a time."""

    def __init__(self, config: SimConfig, system: MemorySystem | None = None):
        self.config = config
        self.system = system if system is not None else MemorySystem(config)
        self.records: List[StepRecord] = []
        self.fault: SimulatorException | None = None
        self._stop_requested = False

    def stop(self):
        """Asks the run loop to halt before the next step."""
        self._stop_requested = True

    def step(self, access: MemAccess) -> StepRecord:
        value, results = self.system.execute(access)
        record = StepRecord(step=len(self.records), access=access, value=value, results=results)
        self.records.append(record)
        return record

    def run(self, trace: List[MemAccess]) -> Tuple[List[StepRecord], Dict[str, Any]]:
        """
        Runs the trace until it ends, a stop is requested, or a fault occurs.
        A fault is reported, kept in `self.fault`, and halts the run without
        the final flush, so the caches show the state at the faulting step.
        """
        self._stop_requested = False
        for access in trace:
            if self._stop_requested:
                logger.info(f"Simulation stopped after {len(self.records)} steps")
                break
            try:
                self.step(access)
            except SimulatorException as e:
                self.fault = e
                report_fault(e, step=len(self.records), source_line=access.line)
                break
        else:
            self.system.flush()

        return self.records, self.stats()

    def stats(self) -> Dict[str, Any]:
        stats = self.system.stats()
        stats["steps"] = len(self.records)
        stats["fault"] = None if self.fault is None else {
            "kind": str(self.fault.kind),
            "reason": self.fault.reason,
            "extended": self.fault.extended,
            "file": self.fault.file,
            "line": self.fault.line,
        }
        return stats


def run(trace: List[MemAccess], config: SimConfig) -> Tuple[List[StepRecord], Dict[str, Any]]:
    """
    Runs the simulation for a given access trace and configuration.

    This is the main entry point for the runtime simulation.
    """
    logger.info(f"Running {len(trace)} accesses")
    sim = Simulator(config)
    return sim.run(trace)
