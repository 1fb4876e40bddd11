from __future__ import annotations
from typing import Any, Dict, List

from ..config import SimConfig
from ..errors import FaultKind, simulator_exception
from ..isa.access import ACCESS_WIDTHS, FETCH_WIDTH, AccessKind, MemAccess
from .cache import AccessResult, Cache
from .memory import MainMemory


class MemorySystem:
    """
    The memory subsystem of one simulated machine.
    L1 instruction and data caches front an optional unified L2, which
    fronts main memory. All accesses complete synchronously.
    """
    def __init__(self, config: SimConfig):
        self.config = config
        self.main_memory = MainMemory(config.memory_size_bytes)

        self.l2_cache = Cache(config.l2cache, self.main_memory)
        lower = self.l2_cache if self.l2_cache.enabled else self.main_memory

        self.l1_icache = Cache(config.icache, lower)
        self.l1_dcache = Cache(config.dcache, lower)

    @property
    def caches(self) -> List[Cache]:
        return [self.l1_icache, self.l1_dcache, self.l2_cache]

    @staticmethod
    def _check_width(width: int):
        if width not in ACCESS_WIDTHS:
            raise simulator_exception(
                FaultKind.UNKNOWN_MEMORY_CONTROL, f"Unsupported access width: {width}",
                f"Supported widths are {', '.join(map(str, ACCESS_WIDTHS))} bytes")

    def fetch(self, address: int) -> int:
        """Reads one instruction word through the instruction cache."""
        data = self.l1_icache.read(address, FETCH_WIDTH)
        return int.from_bytes(data, "little")

    def load(self, address: int, width: int = 4) -> int:
        self._check_width(width)
        data = self.l1_dcache.read(address, width)
        return int.from_bytes(data, "little")

    def store(self, address: int, width: int, value: int):
        self._check_width(width)
        mask = (1 << (8 * width)) - 1
        self.l1_dcache.write(address, width, (value & mask).to_bytes(width, "little"))

    def execute(self, access: MemAccess) -> tuple[int, List[AccessResult]]:
        """Runs one trace step. Returns the value read (or written) and the L1 outcomes."""
        if access.kind is AccessKind.FETCH:
            value = self.fetch(access.address)
            return value, list(self.l1_icache.last_results)
        if access.kind is AccessKind.READ:
            value = self.load(access.address, access.width)
            return value, list(self.l1_dcache.last_results)
        if access.kind is AccessKind.WRITE:
            self.store(access.address, access.width, access.value)
            return access.value, list(self.l1_dcache.last_results)
        raise simulator_exception(
            FaultKind.UNKNOWN_MEMORY_CONTROL, f"Unknown memory access kind: {access.kind!r}")

    def flush(self):
        """Writes all dirty data down to main memory and invalidates every cache."""
        self.l1_icache.flush()
        self.l1_dcache.flush()
        self.l2_cache.flush()

    def reset(self):
        for cache in self.caches:
            cache.reset()
        self.main_memory.reset()

    def debug_read_mem(self, address: int, num_bytes: int) -> bytes:
        """Reads main memory directly, bypassing (and not syncing) the caches."""
        return bytes(self.main_memory.mem[address:address + num_bytes])

    def stats(self) -> Dict[str, Any]:
        stats = {
            "icache": self.l1_icache.get_stats(),
            "dcache": self.l1_dcache.get_stats(),
            "l2cache": self.l2_cache.get_stats(),
        }
        stats["main_memory"] = {"reads": self.main_memory.reads,
                                "writes": self.main_memory.writes}
        return stats
