import random

import pytest
from pyv_mem.config import CacheConfig, ReplacementPolicyKind
from pyv_mem.errors import FaultKind, SimulatorException
from pyv_mem.runtime.cache_policy import (
    LFUPolicy,
    LRUPolicy,
    NoPolicy,
    RandomPolicy,
    ReplacementPolicy,
    create_policy,
)


def fill_row(policy, row: int, associativity: int):
    """Informs the policy that every way of `row` was filled, in index order."""
    for way in range(associativity):
        policy.update_stats(way, row, False)


# --- Factory ---

@pytest.mark.parametrize("kind, policy_cls", [
    (ReplacementPolicyKind.LRU, LRUPolicy),
    (ReplacementPolicyKind.LFU, LFUPolicy),
    (ReplacementPolicyKind.RAND, RandomPolicy),
])
def test_create_policy_dispatches_on_kind(kind, policy_cls):
    policy = create_policy(CacheConfig(set_count=4, associativity=2, replacement_policy=kind))
    assert isinstance(policy, policy_cls)
    assert policy.enabled
    assert policy.associativity == 2
    assert policy.set_count == 4


def test_create_policy_for_disabled_cache():
    policy = create_policy(CacheConfig(enabled=False))
    assert isinstance(policy, NoPolicy)
    assert not policy.enabled
    with pytest.raises(SimulatorException) as excinfo:
        policy.select_way_to_evict(0)
    assert excinfo.value.kind is FaultKind.SANITY
    with pytest.raises(SimulatorException):
        policy.update_stats(0, 0, True)


def test_replacement_policy_is_abstract():
    with pytest.raises(TypeError):
        ReplacementPolicy(2, 1)


def test_create_policy_with_bypassed_validation():
    """A kind that slipped past CacheConfig is an internal error."""
    config = CacheConfig(associativity=2)
    object.__setattr__(config, "replacement_policy", "FIFO")
    with pytest.raises(SimulatorException) as excinfo:
        create_policy(config)
    assert excinfo.value.kind is FaultKind.SANITY


# --- LRU ---

@pytest.mark.parametrize("associativity", [2, 3, 4, 8])
@pytest.mark.parametrize("set_count", [1, 4])
def test_lru_never_evicts_the_last_hit(associativity: int, set_count: int):
    for k in range(associativity):
        for row in range(set_count):
            policy = LRUPolicy(associativity, set_count)
            fill_row(policy, row, associativity)
            policy.update_stats(k, row, True)
            assert policy.select_way_to_evict(row) != k


@pytest.mark.parametrize("associativity", [2, 4])
def test_lru_repeated_hits_are_idempotent(associativity: int):
    policy = LRUPolicy(associativity, 2)
    fill_row(policy, 1, associativity)
    k = associativity - 1
    policy.update_stats(k, 1, True)
    victim = policy.select_way_to_evict(1)
    for _ in range(10):
        policy.update_stats(k, 1, True)
        assert policy.select_way_to_evict(1) == victim
        assert victim != k


def test_lru_earliest_fill_is_evicted_first():
    """A, S = 2, 1: the cache fills way 0 then way 1, each fill being reset + touch."""
    policy = LRUPolicy(2, 1)
    for way in (0, 1):
        policy.update_stats(way, 0, False)
        policy.update_stats(way, 0, True)
    assert policy.select_way_to_evict(0) == 0


def test_lru_fill_moves_way_to_least_recent_end():
    policy = LRUPolicy(3, 1)
    assert policy.row_order(0) == [0, 1, 2]
    policy.update_stats(2, 0, False)
    assert policy.row_order(0) == [2, 0, 1]
    policy.update_stats(2, 0, True)
    assert policy.row_order(0) == [0, 1, 2]
    policy.update_stats(0, 0, True)
    assert policy.row_order(0) == [1, 2, 0]
    assert policy.select_way_to_evict(0) == 1


def test_lru_order_stays_a_permutation():
    associativity, set_count = 5, 3
    policy = LRUPolicy(associativity, set_count)
    rng = random.Random(7)
    for _ in range(500):
        policy.update_stats(rng.randrange(associativity), rng.randrange(set_count), rng.random() < 0.7)
    for row in range(set_count):
        order = policy.row_order(row)
        assert sorted(order) == list(range(associativity))
        for pos, way in enumerate(order):
            assert policy.position[row][way] == pos


def test_lru_rows_are_independent():
    policy = LRUPolicy(4, 2)
    policy.update_stats(0, 0, True)
    assert policy.row_order(0) == [1, 2, 3, 0]
    assert policy.row_order(1) == [0, 1, 2, 3]


# --- LFU ---

def test_lfu_cold_row_evicts_lowest_way():
    policy = LFUPolicy(4, 2)
    assert policy.select_way_to_evict(1) == 0
    policy.update_stats(3, 1, False)
    policy.update_stats(2, 1, False)
    assert policy.select_way_to_evict(1) == 0


@pytest.mark.parametrize("i, j", [(0, 1), (1, 0)])
def test_lfu_evicts_less_frequent_way(i: int, j: int):
    policy = LFUPolicy(2, 1)
    for _ in range(5):
        policy.update_stats(i, 0, True)
    for _ in range(2):
        policy.update_stats(j, 0, True)
    assert policy.select_way_to_evict(0) == j


def test_lfu_ties_go_to_lowest_index():
    policy = LFUPolicy(4, 1)
    for way, hits in enumerate([3, 2, 5, 2]):
        for _ in range(hits):
            policy.update_stats(way, 0, True)
    assert policy.select_way_to_evict(0) == 1


def test_lfu_fill_and_hits_scenario():
    """A, S = 3, 1: fill 0, hit 0 twice, fill 1, fill 2."""
    policy = LFUPolicy(3, 1)
    policy.update_stats(0, 0, False)
    policy.update_stats(0, 0, True)
    policy.update_stats(0, 0, True)
    policy.update_stats(1, 0, False)
    policy.update_stats(2, 0, False)
    assert policy.usage(0) == [2, 0, 0]
    assert policy.select_way_to_evict(0) == 1


def test_lfu_zero_counter_outranks_used_ways():
    policy = LFUPolicy(3, 1)
    for way in range(3):
        policy.update_stats(way, 0, True)
    policy.update_stats(2, 0, False)
    assert policy.select_way_to_evict(0) == 2


# --- Random ---

def test_random_is_reproducible():
    first = RandomPolicy(4, 2)
    second = RandomPolicy(4, 2)
    sequence_1 = []
    sequence_2 = []
    for step in range(64):
        first.update_stats(step % 4, step % 2, True)
        second.update_stats(step % 4, step % 2, True)
        sequence_1.append(first.select_way_to_evict(step % 2))
        sequence_2.append(second.select_way_to_evict(step % 2))
    assert sequence_1 == sequence_2
    assert all(0 <= way < 4 for way in sequence_1)
    assert len(set(sequence_1)) > 1


def test_random_policies_do_not_share_a_generator():
    reference_policy = RandomPolicy(8, 1)
    reference = [reference_policy.select_way_to_evict(0) for _ in range(20)]

    a = RandomPolicy(8, 1)
    b = RandomPolicy(8, 1)
    interleaved = []
    for _ in range(20):
        b.select_way_to_evict(0)
        interleaved.append(a.select_way_to_evict(0))
    assert interleaved == reference


# --- Bounds ---

@pytest.mark.parametrize("policy_cls", [LRUPolicy, LFUPolicy, RandomPolicy])
@pytest.mark.parametrize("way, row", [(4, 0), (-1, 0), (0, 2), (0, -1), (7, 9)])
def test_update_stats_out_of_bounds(policy_cls, way: int, row: int):
    policy = policy_cls(4, 2)
    with pytest.raises(SimulatorException) as excinfo:
        policy.update_stats(way, row, True)
    assert excinfo.value.kind is FaultKind.SANITY


@pytest.mark.parametrize("policy_cls", [LRUPolicy, LFUPolicy, RandomPolicy])
@pytest.mark.parametrize("row", [2, -1, 100])
def test_select_way_to_evict_out_of_bounds(policy_cls, row: int):
    policy = policy_cls(4, 2)
    with pytest.raises(SimulatorException) as excinfo:
        policy.select_way_to_evict(row)
    assert excinfo.value.kind is FaultKind.SANITY


def test_out_of_bounds_does_not_touch_other_rows():
    lru = LRUPolicy(4, 2)
    lfu = LFUPolicy(4, 2)
    for policy in (lru, lfu):
        with pytest.raises(SimulatorException):
            policy.update_stats(4, 0, True)
        with pytest.raises(SimulatorException):
            policy.update_stats(0, 2, True)
    assert lru.row_order(0) == [0, 1, 2, 3]
    assert lru.row_order(1) == [0, 1, 2, 3]
    assert lfu.usage(0) == [0, 0, 0, 0]
    assert lfu.usage(1) == [0, 0, 0, 0]
