from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

from ..config import CacheConfig
from ..errors import FaultKind, sanity_assert, sanity_exception, simulator_exception
from ..isa.access import AccessKind
from ..utils.logging import get_logger
from .cache_policy import ReplacementPolicy, create_policy
from .memory import check_address_range

logger = get_logger("pyv-mem.cache")


@dataclass
class Way:
    """A single way of a cache row."""
    data: bytearray
    tag: int = 0
    valid: bool = False
    dirty: bool = False


@dataclass(frozen=True)
class WaySnapshot:
    """Display state of one way."""
    row: int
    way: int
    tag: int
    valid: bool
    dirty: bool
    data: bytes = b""

    def to_json(self) -> Dict[str, Any]:
        return {"row": self.row, "way": self.way, "tag": self.tag,
                "valid": self.valid, "dirty": self.dirty, "data": self.data.hex()}


class CacheStore:
    """Rows of ways. Every lookup is bounds-checked against the geometry."""

    def __init__(self, set_count: int, associativity: int, block_size: int):
        self.set_count = set_count
        self.associativity = associativity
        self.block_size = block_size
        self.rows = [
            [Way(bytearray(block_size)) for _ in range(associativity)]
            for _ in range(set_count)
        ]

    def way(self, row: int, way: int) -> Way:
        if not 0 <= row < self.set_count or not 0 <= way < self.associativity:
            raise sanity_exception(
                f"Out of range: cache way ({row}, {way}) outside of "
                f"{self.set_count} rows x {self.associativity} ways.")
        return self.rows[row][way]

    def find(self, row: int, tag: int) -> int | None:
        """Returns the valid way of `row` holding `tag`."""
        self.way(row, 0)
        for index, way in enumerate(self.rows[row]):
            if way.valid and way.tag == tag:
                return index
        return None

    def free_way(self, row: int) -> int | None:
        self.way(row, 0)
        for index, way in enumerate(self.rows[row]):
            if not way.valid:
                return index
        return None

    def snapshot(self, row: int, way: int) -> WaySnapshot:
        w = self.way(row, way)
        return WaySnapshot(row=row, way=way, tag=w.tag, valid=w.valid, dirty=w.dirty, data=bytes(w.data))


@dataclass(frozen=True)
class AccessResult:
    """Outcome of one access to a single cache block."""
    kind: AccessKind
    address: int
    hit: bool
    tag: int = 0
    row: int = -1
    way: int = -1  # -1 when no way was used (disabled cache, no-allocate write miss)
    offset: int = 0
    data: bytes = b""
    evicted_tag: int | None = None
    write_back: bool = False

    def to_json(self) -> Dict[str, Any]:
        return {"kind": str(self.kind), "address": self.address, "hit": self.hit,
                "tag": self.tag, "row": self.row, "way": self.way,
                "evicted_tag": self.evicted_tag, "write_back": self.write_back}


@dataclass
class CacheStats:
    hit_read: int = 0
    miss_read: int = 0
    hit_write: int = 0
    miss_write: int = 0
    mem_reads: int = 0
    mem_writes: int = 0
    evictions: int = 0
    write_backs: int = 0

    @property
    def hits(self) -> int:
        return self.hit_read + self.hit_write

    @property
    def misses(self) -> int:
        return self.miss_read + self.miss_write

    @property
    def accesses(self) -> int:
        return self.hits + self.misses


UpdateListener = Callable[[WaySnapshot], None]


class Cache:
    """
    A configurable set-associative cache in front of a backing memory.
    The backing memory may be a MainMemory or another Cache; both offer
    read(address, size), write(address, size, data) and size. The backing
    size must be a whole number of blocks so every fill stays inside it.
    """

    def __init__(self, config: CacheConfig, memory):
        self.config = config
        self.memory = memory
        if config.enabled and memory.size % config.block_size:
            raise simulator_exception(
                FaultKind.INPUT, f"Invalid cache configuration ({config.name})",
                f"memory size {memory.size} is not a multiple of the "
                f"{config.block_size}-byte block size")
        self.listeners: List[UpdateListener] = []
        self.last_results: List[AccessResult] = []
        self.reset()

    def reset(self):
        """Drops all contents without writing back and clears the statistics."""
        self.stats = CacheStats()
        self.policy: ReplacementPolicy = create_policy(self.config)
        if self.config.enabled:
            self.store = CacheStore(self.config.set_count, self.config.associativity,
                                    self.config.block_size)
        else:
            self.store = None
        self.last_results = []

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def size(self) -> int:
        """Size of the memory behind this cache."""
        return self.memory.size

    def add_update_listener(self, listener: UpdateListener):
        self.listeners.append(listener)

    def _notify(self, row: int, way: int):
        if self.listeners:
            snap = self.store.snapshot(row, way)
            for listener in self.listeners:
                listener(snap)

    def _decompose_address(self, address: int) -> Tuple[int, int, int]:
        """Decomposes an address into tag, row, and offset."""
        block = address // self.config.block_size
        offset = address % self.config.block_size
        row = block % self.config.set_count
        tag = block // self.config.set_count
        return tag, row, offset

    def reconstruct_address(self, tag: int, row: int) -> int:
        """Reconstructs the block start address from tag and row."""
        return (tag * self.config.set_count + row) * self.config.block_size

    def probe(self, address: int) -> Tuple[bool, int | None, int, int, int]:
        """
        Looks the address up without changing any state.
        Returns (hit, way, tag, row, offset).
        """
        tag, row, offset = self._decompose_address(address)
        way = self.store.find(row, tag)
        return way is not None, way, tag, row, offset

    # --- Backing-memory interface ---

    def read(self, address: int, size: int) -> bytes:
        check_address_range(address, size)
        self.last_results = []
        if not self.enabled:
            return self.memory.read(address, size)
        chunks = []
        for chunk_address, chunk_size in self._split(address, size):
            result = self.access(chunk_address, AccessKind.READ, size=chunk_size)
            self.last_results.append(result)
            chunks.append(result.data)
        return b"".join(chunks)

    def write(self, address: int, size: int, data: bytes):
        if len(data) != size:
            raise simulator_exception(
                FaultKind.INPUT, "Write data does not match access size",
                f"expected {size} bytes, got {len(data)}")
        check_address_range(address, size)
        self.last_results = []
        if not self.enabled:
            self.memory.write(address, size, data)
            return
        start = 0
        for chunk_address, chunk_size in self._split(address, size):
            result = self.access(chunk_address, AccessKind.WRITE,
                                 data=data[start:start + chunk_size])
            self.last_results.append(result)
            start += chunk_size

    def _split(self, address: int, size: int):
        """Yields (address, size) pieces that each stay inside one block."""
        block_size = self.config.block_size
        end = address + size
        while address < end:
            chunk = min(end, (address // block_size + 1) * block_size) - address
            yield address, chunk
            address += chunk

    # --- Single block access ---

    def access(self, address: int, kind: AccessKind, data: bytes | None = None,
               size: int = 1) -> AccessResult:
        """Resolves one access that lies within a single block."""
        if not isinstance(kind, AccessKind):
            raise simulator_exception(
                FaultKind.UNKNOWN_MEMORY_CONTROL, f"Unknown memory access kind: {kind!r}")
        is_write = kind.is_write
        if is_write:
            if data is None:
                raise simulator_exception(FaultKind.INPUT, "Write access without data")
            size = len(data)
        check_address_range(address, size)

        if not self.enabled:
            if is_write:
                self.memory.write(address, size, data)
                return AccessResult(kind=kind, address=address, hit=False)
            return AccessResult(kind=kind, address=address, hit=False,
                                data=self.memory.read(address, size))

        tag, row, offset = self._decompose_address(address)
        if offset + size > self.config.block_size:
            raise sanity_exception(
                f"Access of {size} bytes at offset {offset} crosses a "
                f"{self.config.block_size}-byte block.")

        way = self.store.find(row, tag)
        if way is not None:
            if is_write:
                self.stats.hit_write += 1
            else:
                self.stats.hit_read += 1
            self.policy.update_stats(way, row, True)
            read_data = self._resolve(kind, address, row, way, offset, size, data)
            return AccessResult(kind=kind, address=address, hit=True, tag=tag, row=row,
                                way=way, offset=offset, data=read_data)

        if is_write and not self.config.is_write_back and not self.config.write_allocate:
            self._memory_write(address, size, data)
            self.stats.miss_write += 1
            return AccessResult(kind=kind, address=address, hit=False, tag=tag, row=row,
                                offset=offset)

        way, evicted_tag, write_back = self._allocate(tag, row)
        if is_write:
            self.stats.miss_write += 1
        else:
            self.stats.miss_read += 1
        # The fill reset the way; this touch is the access itself.
        self.policy.update_stats(way, row, True)
        read_data = self._resolve(kind, address, row, way, offset, size, data)
        return AccessResult(kind=kind, address=address, hit=False, tag=tag, row=row,
                            way=way, offset=offset, data=read_data,
                            evicted_tag=evicted_tag, write_back=write_back)

    def _allocate(self, tag: int, row: int) -> Tuple[int, int | None, bool]:
        """Finds a way for a new block in `row`, evicting if needed, and fills it.

        The victim is chosen and the new block loaded before anything in the
        row changes, so a fault here leaves the cache as it was.
        """
        way = self.store.free_way(row)
        victim = None
        if way is None:
            way = self.policy.select_way_to_evict(row)
            victim = self.store.way(row, way)
            sanity_assert(victim.valid, f"victim way {way} in full row {row} is not valid")

        block_address = self.reconstruct_address(tag, row)
        block = self.memory.read(block_address, self.config.block_size)
        sanity_assert(len(block) == self.config.block_size,
                      f"backing memory returned {len(block)} bytes for a "
                      f"{self.config.block_size}-byte block")
        self.stats.mem_reads += 1

        evicted_tag = None
        write_back = False
        if victim is not None:
            evicted_tag = victim.tag
            write_back = victim.dirty
            self._kick(row, way)
            self.stats.evictions += 1
            logger.debug(f"{self.config.name}: evicted tag 0x{evicted_tag:X} from row {row} way {way}"
                         f"{' (write-back)' if write_back else ''}")

        line = self.store.way(row, way)
        line.tag = tag
        line.valid = True
        line.dirty = False
        line.data[:] = block
        self.policy.update_stats(way, row, False)
        self._notify(row, way)
        return way, evicted_tag, write_back

    def _kick(self, row: int, way: int):
        """Writes the way back if dirty and invalidates it."""
        line = self.store.way(row, way)
        if line.valid and line.dirty:
            self._memory_write(self.reconstruct_address(line.tag, row),
                               self.config.block_size, bytes(line.data))
            self.stats.write_backs += 1
        line.valid = False
        line.dirty = False

    def _resolve(self, kind: AccessKind, address: int, row: int, way: int,
                 offset: int, size: int, data: bytes | None) -> bytes:
        line = self.store.way(row, way)
        if not kind.is_write:
            return bytes(line.data[offset:offset + size])

        line.data[offset:offset + size] = data
        if self.config.is_write_back:
            line.dirty = True
        else:
            self._memory_write(address, size, data)
        self._notify(row, way)
        return b""

    def _memory_write(self, address: int, size: int, data: bytes):
        self.memory.write(address, size, data)
        self.stats.mem_writes += 1

    # --- Maintenance ---

    def sync(self):
        """Writes every dirty way back to memory, keeping it valid and clean."""
        if not self.enabled:
            return
        for row in range(self.config.set_count):
            for way in range(self.config.associativity):
                line = self.store.way(row, way)
                if line.valid and line.dirty:
                    self._memory_write(self.reconstruct_address(line.tag, row),
                                       self.config.block_size, bytes(line.data))
                    self.stats.write_backs += 1
                    line.dirty = False
                    self._notify(row, way)

    def flush(self):
        """Writes back dirty ways and invalidates the whole cache."""
        if not self.enabled:
            return
        for row in range(self.config.set_count):
            for way in range(self.config.associativity):
                if not self.store.way(row, way).valid:
                    continue
                self._kick(row, way)
                self.policy.update_stats(way, row, False)
                self._notify(row, way)

    # --- Inspection ---

    def snapshot(self) -> List[List[WaySnapshot]]:
        """Tag/valid/dirty state of every way, indexed [row][way]."""
        if not self.enabled:
            return []
        return [
            [self.store.snapshot(row, way) for way in range(self.config.associativity)]
            for row in range(self.config.set_count)
        ]

    def is_dirty(self) -> bool:
        if not self.enabled:
            return False
        return any(w.valid and w.dirty for r in self.store.rows for w in r)

    @property
    def hit_rate(self) -> float:
        if self.stats.accesses == 0:
            return 0.0
        return self.stats.hits / self.stats.accesses

    @property
    def stall_cycles(self) -> int:
        """Cycles spent waiting on the backing memory."""
        return (self.stats.mem_reads + self.stats.mem_writes) * self.config.miss_latency_cycles

    @property
    def speed_improvement(self) -> float:
        """Percent of the uncached access time that the cache achieves."""
        accesses = self.stats.accesses
        if accesses == 0:
            return 100.0
        cached = accesses * self.config.hit_latency_cycles + self.stall_cycles
        uncached = accesses * self.config.miss_latency_cycles
        if cached == 0:
            return 100.0
        return 100.0 * uncached / cached

    def get_stats(self) -> Dict[str, Any]:
        """Returns a dictionary of cache statistics."""
        s = self.stats
        return {
            "name": self.config.name,
            "enabled": self.enabled,
            "hit_read": s.hit_read,
            "miss_read": s.miss_read,
            "hit_write": s.hit_write,
            "miss_write": s.miss_write,
            "hits": s.hits,
            "misses": s.misses,
            "accesses": s.accesses,
            "mem_reads": s.mem_reads,
            "mem_writes": s.mem_writes,
            "evictions": s.evictions,
            "write_backs": s.write_backs,
            "hit_rate": self.hit_rate,
            "stall_cycles": self.stall_cycles,
            "speed_improvement": self.speed_improvement,
        }
