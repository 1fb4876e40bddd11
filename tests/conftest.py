import pytest
from pyv_mem.config import CacheConfig
from pyv_mem.runtime.cache import Cache
from pyv_mem.runtime.memory import MainMemory


@pytest.fixture
def memory():
    """64KiB of zeroed backing memory."""
    return MainMemory(64 * 1024)


@pytest.fixture
def make_cache(memory):
    """Builds a cache over the `memory` fixture; keyword arguments go to CacheConfig."""
    def _make(**kwargs):
        kwargs.setdefault("name", "TestCache")
        return Cache(CacheConfig(**kwargs), memory)
    return _make
