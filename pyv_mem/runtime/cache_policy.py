from __future__ import annotations
from abc import ABC, abstractmethod

import numpy as np

from ..config import CacheConfig, ReplacementPolicyKind
from ..errors import sanity_exception

# Fixed seed so that Random eviction sequences repeat run to run.
RANDOM_POLICY_SEED = 1


class ReplacementPolicy(ABC):
    """Per-row bookkeeping and victim selection for one cache.

    `update_stats` is told about every way that was hit (`is_valid=True`) or
    filled/invalidated (`is_valid=False`). `select_way_to_evict` is asked
    only when the row has no free way.
    """
    kind: ReplacementPolicyKind | None = None
    enabled = True

    def __init__(self, associativity: int, set_count: int):
        self.associativity = associativity
        self.set_count = set_count

    def _check_row(self, row: int):
        if not 0 <= row < self.set_count:
            raise sanity_exception(
                f"Out of range: {type(self).__name__} row {row} is outside [0, {self.set_count}).")

    def _check_way(self, way: int):
        if not 0 <= way < self.associativity:
            raise sanity_exception(
                f"Out of range: {type(self).__name__} way {way} is outside [0, {self.associativity}).")

    @abstractmethod
    def update_stats(self, way: int, row: int, is_valid: bool):
        ...

    @abstractmethod
    def select_way_to_evict(self, row: int) -> int:
        ...


class NoPolicy(ReplacementPolicy):
    """Stands in for the policy of a disabled cache, which never evicts."""
    enabled = False

    def __init__(self):
        super().__init__(associativity=0, set_count=0)

    def update_stats(self, way: int, row: int, is_valid: bool):
        raise sanity_exception("Replacement policy used by a disabled cache.")

    def select_way_to_evict(self, row: int) -> int:
        raise sanity_exception("Replacement policy used by a disabled cache.")


class LRUPolicy(ReplacementPolicy):
    """Least recently used.

    `order[row]` lists ways from least recent (position 0) to most recent,
    `position[row]` is its inverse. Both start as the identity.
    """
    kind = ReplacementPolicyKind.LRU

    def __init__(self, associativity: int, set_count: int):
        super().__init__(associativity, set_count)
        identity = np.arange(associativity, dtype=np.int64)
        self.order = np.tile(identity, (set_count, 1))
        self.position = np.tile(identity, (set_count, 1))

    def update_stats(self, way: int, row: int, is_valid: bool):
        self._check_row(row)
        self._check_way(way)
        order = self.order[row]
        position = self.position[row]
        pos = int(position[way])
        if order[pos] != way:
            raise sanity_exception("Out of range: LRU lost the way from priority queue.")

        if is_valid:
            # Move to the most recent end; entries behind it shift forward.
            order[pos:-1] = order[pos + 1:].copy()
            order[-1] = way
            position[order[pos:]] = np.arange(pos, self.associativity)
        else:
            # Move to the least recent end; entries before it shift back.
            order[1:pos + 1] = order[:pos].copy()
            order[0] = way
            position[order[:pos + 1]] = np.arange(0, pos + 1)

    def select_way_to_evict(self, row: int) -> int:
        self._check_row(row)
        return int(self.order[row][0])

    def row_order(self, row: int) -> list[int]:
        """Ways of `row` from least to most recently used."""
        self._check_row(row)
        return [int(w) for w in self.order[row]]


class LFUPolicy(ReplacementPolicy):
    """Least frequently used. A zero counter marks an unused or just-filled way."""
    kind = ReplacementPolicyKind.LFU

    def __init__(self, associativity: int, set_count: int):
        super().__init__(associativity, set_count)
        self.counters = np.zeros((set_count, associativity), dtype=np.uint64)

    def update_stats(self, way: int, row: int, is_valid: bool):
        self._check_row(row)
        self._check_way(way)
        if is_valid:
            self.counters[row, way] += 1
        else:
            self.counters[row, way] = 0

    def select_way_to_evict(self, row: int) -> int:
        self._check_row(row)
        # argmin returns the first minimum, so a zero counter wins and ties
        # go to the lowest way index.
        return int(np.argmin(self.counters[row]))

    def usage(self, row: int) -> list[int]:
        self._check_row(row)
        return [int(c) for c in self.counters[row]]


class RandomPolicy(ReplacementPolicy):
    """Pseudo-random victim selection with a generator private to this policy."""
    kind = ReplacementPolicyKind.RAND

    def __init__(self, associativity: int, set_count: int, seed: int = RANDOM_POLICY_SEED):
        super().__init__(associativity, set_count)
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def update_stats(self, way: int, row: int, is_valid: bool):
        self._check_row(row)
        self._check_way(way)

    def select_way_to_evict(self, row: int) -> int:
        self._check_row(row)
        return int(self._rng.integers(0, 2**31)) % self.associativity


_POLICIES = {
    ReplacementPolicyKind.RAND: RandomPolicy,
    ReplacementPolicyKind.LRU: LRUPolicy,
    ReplacementPolicyKind.LFU: LFUPolicy,
}


def create_policy(config: CacheConfig) -> ReplacementPolicy:
    """Builds the replacement policy for a cache, or NoPolicy when it is disabled."""
    if not config.enabled:
        return NoPolicy()
    policy_cls = _POLICIES.get(config.replacement_policy)
    if policy_cls is None:
        raise sanity_exception(
            f"Unknown replacement policy {config.replacement_policy!r} passed configuration checks.")
    return policy_cls(config.associativity, config.set_count)
