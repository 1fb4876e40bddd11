from __future__ import annotations
from ..errors import FaultKind, simulator_exception

ADDRESS_BITS = 32
ADDRESS_LIMIT = 1 << ADDRESS_BITS


def check_address_range(address: int, size: int, limit: int = ADDRESS_LIMIT):
    """Raises OUT_OF_MEMORY_ACCESS unless [address, address + size) fits below `limit`."""
    if size < 0 or address < 0 or address + size > limit:
        raise simulator_exception(
            FaultKind.OUT_OF_MEMORY_ACCESS,
            f"Access outside of memory: 0x{address:08X} (+{size} bytes)",
            f"Valid addresses are 0x00000000-0x{limit - 1:08X}")


class MainMemory:
    """Flat byte-addressable backing memory.

    Byte-ordering: Little-endian
    """

    def __init__(self, size: int = 64 * 1024):
        if size <= 0 or size > ADDRESS_LIMIT:
            raise simulator_exception(
                FaultKind.INPUT, f"Invalid memory size: {size}",
                f"Memory size must be in 1..{ADDRESS_LIMIT}")
        self.mem = bytearray(size)
        self.reads = 0
        self.writes = 0

    @property
    def size(self) -> int:
        return len(self.mem)

    def read(self, address: int, size: int) -> bytes:
        check_address_range(address, size, self.size)
        self.reads += 1
        return bytes(self.mem[address:address + size])

    def write(self, address: int, size: int, data: bytes):
        if len(data) != size:
            raise simulator_exception(
                FaultKind.INPUT, "Write data does not match access size",
                f"expected {size} bytes, got {len(data)}")
        check_address_range(address, size, self.size)
        self.writes += 1
        self.mem[address:address + size] = data

    def load(self, address: int, data: bytes):
        """Preloads memory contents without counting the access."""
        check_address_range(address, len(data), self.size)
        self.mem[address:address + len(data)] = data

    def reset(self):
        self.mem[:] = bytes(len(self.mem))
        self.reads = 0
        self.writes = 0
