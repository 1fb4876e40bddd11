from __future__ import annotations
import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List

from ..config import CACHE_SECTIONS, SimConfig
from ..errors import FaultKind, SimulatorException
from .logging import get_logger
from . import viz

if TYPE_CHECKING:
    from ..runtime.memory_system import MemorySystem
    from ..runtime.simulator import StepRecord

logger = get_logger("pyv-mem")

EXIT_OK = 0
EXIT_INPUT = 2
EXIT_RUNTIME = 3
EXIT_SANITY = 4


def exit_status(fault: SimulatorException | None) -> int:
    """Maps a fault to the process exit status of the command line tool."""
    if fault is None:
        return EXIT_OK
    if fault.kind is FaultKind.INPUT:
        return EXIT_INPUT
    if fault.kind.is_runtime:
        return EXIT_RUNTIME
    return EXIT_SANITY


def report_fault(fault: SimulatorException, step: int | None = None,
                 source_line: int | None = None) -> int:
    """The single reporting channel for simulator faults. Returns the exit status."""
    where = []
    if step is not None:
        where.append(f"step {step}")
    if source_line:
        where.append(f"trace line {source_line}")
    prefix = f"[{', '.join(where)}] " if where else ""
    logger.error(f"{prefix}{fault.message(include_location=True)}")
    return exit_status(fault)


def generate_report_json(records: List[StepRecord], config: SimConfig, stats: Dict[str, Any],
                         system: MemorySystem | None = None) -> Dict[str, Any]:
    """Generates a JSON-compatible dictionary from a finished run."""
    timeline = [r.to_json() for r in records]
    report_data = {
        "steps": len(records),
        "timeline": timeline,
        "config": {
            "trace": config.trace,
            "memory_size_bytes": config.memory_size_bytes,
            **{section: getattr(config, section).to_dict() for section in CACHE_SECTIONS},
        },
        "caches": {},
    }
    if system is not None:
        for section, cache in zip(CACHE_SECTIONS, (system.l1_icache, system.l1_dcache, system.l2_cache)):
            report_data["caches"][section] = [
                [way.to_json() for way in row] for row in cache.snapshot()
            ]
    report_data.update(stats)
    return report_data


def generate_report(records: List[StepRecord], config: SimConfig, stats: Dict[str, Any],
                    system: MemorySystem | None = None):
    """Generates all report artifacts."""
    report_data = generate_report_json(records, config, stats, system)
    output_dir = Path(config.report_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    with open(output_dir / "report.json", "w") as f:
        json.dump(report_data, f, indent=4)

    viz.export_hit_timeline(report_data['timeline'], str(output_dir / "report.html"))

    if system is not None:
        for cache in (system.l1_icache, system.l1_dcache, system.l2_cache):
            if cache.enabled:
                print(viz.export_cache_ascii(cache.config.name, cache.snapshot()))

    print(f"\nReports generated in {output_dir.absolute()}")
    for section in CACHE_SECTIONS:
        cache_stats = report_data.get(section)
        if not cache_stats or not cache_stats.get("enabled"):
            continue
        print(f"\n{cache_stats['name']}:")
        print(f"  hits/misses : {cache_stats['hits']}/{cache_stats['misses']}")
        print(f"  hit rate    : {cache_stats['hit_rate']:.2%}")
        print(f"  mem r/w     : {cache_stats['mem_reads']}/{cache_stats['mem_writes']}")
        print(f"  stall cycles: {cache_stats['stall_cycles']}")
    if report_data.get("fault"):
        print(f"\nRun halted by fault: {report_data['fault']['kind']}: {report_data['fault']['reason']}")
    print(f"\nTotal Steps: {report_data['steps']}")
