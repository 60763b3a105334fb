"""
Tests for the exhaustive allocation search
"""
from itertools import product

import numpy as np
import pytest

from allocation import UNDECIDED, Allocation, Incumbent, solve_allocation
from bids import BidFunction, BidSet, random_bid_set
from errors import ComputationError, ConfigurationError, UndefinedBundleError


def make_bids(n_items, *tables):
    return BidSet([BidFunction.from_mapping(t, n_items) for t in tables], n_items)


def brute_force(bid_set):
    """All allocations in enumeration order with their welfare"""
    n, m = bid_set.n_agents, bid_set.n_items
    allocations = [Allocation(n, m, a) for a in product(range(n + 1), repeat=m)]
    return [(a.welfare(bid_set), a) for a in allocations]


def test_single_agent_single_item():
    bid_set = make_bids(1, {0b0: 0, 0b1: 5})
    solution = solve_allocation(bid_set, 1, 1)
    assert solution.allocation.assignment == [1]
    assert solution.welfare == 5
    assert np.array_equal(solution.payments, np.zeros(2))


def test_two_agents_one_item():
    bid_set = make_bids(1, {0: 0, 1: 3}, {0: 0, 1: 7})
    solution = solve_allocation(bid_set, 2, 1)
    assert solution.allocation.assignment == [2]
    assert solution.allocation.as_dict() == {0: [], 1: [], 2: [0]}
    assert solution.welfare == 7


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_matches_brute_force(seed):
    """Optimum and tie-break agree with a plain enumeration of all allocations"""
    bid_set = random_bid_set(2, 3, seed=seed)
    solution = solve_allocation(bid_set)

    candidates = brute_force(bid_set)
    best_welfare = max(w for w, _ in candidates)
    first_best = next(a for w, a in candidates if w == best_welfare)

    assert np.isclose(solution.welfare, best_welfare)
    assert solution.allocation == first_best


@pytest.mark.parametrize("n_agents,n_items", [(1, 3), (2, 2), (3, 3), (4, 2)])
def test_every_item_assigned_exactly_once(n_agents, n_items):
    bid_set = random_bid_set(n_agents, n_items, seed=n_agents * 10 + n_items)
    allocation = solve_allocation(bid_set).allocation

    assert allocation.is_complete()
    assert all(0 <= a <= n_agents for a in allocation.assignment)
    bundles = allocation.bundles()
    union = 0
    for i, b in enumerate(bundles):
        for other in bundles[i + 1:]:
            assert b & other == 0
        union |= b
    assert union == (1 << n_items) - 1


def test_welfare_is_nonnegative_and_consistent():
    for seed in range(5):
        bid_set = random_bid_set(3, 2, seed=seed)
        solution = solve_allocation(bid_set)
        assert solution.welfare >= 0.0
        assert solution.welfare == solution.allocation.welfare(bid_set)


def test_idempotent():
    bid_set = random_bid_set(3, 3, seed=11)
    first = solve_allocation(bid_set)
    second = solve_allocation(bid_set)
    assert first.welfare == second.welfare
    assert first.allocation == second.allocation


@pytest.mark.parametrize("seed", [0, 5, 9])
def test_parallel_matches_sequential(seed):
    bid_set = random_bid_set(3, 3, seed=seed)
    sequential = solve_allocation(bid_set, track_runner_up=True)
    threaded = solve_allocation(bid_set, parallel=True, max_workers=4, track_runner_up=True)

    assert threaded.welfare == sequential.welfare
    assert threaded.allocation == sequential.allocation
    assert threaded.runner_up_welfare == sequential.runner_up_welfare
    assert threaded.runner_up == sequential.runner_up


def test_parallel_with_processes():
    bid_set = random_bid_set(2, 3, seed=4)
    sequential = solve_allocation(bid_set)
    pooled = solve_allocation(bid_set, parallel=True, use_processes=True, max_workers=2)
    assert pooled.welfare == sequential.welfare
    assert pooled.allocation == sequential.allocation


def test_parallel_tie_break_is_deterministic():
    """Equal bids: the first agent in enumeration order keeps the item"""
    bid_set = make_bids(1, {0: 0, 1: 5}, {0: 0, 1: 5})
    for parallel in (False, True):
        solution = solve_allocation(bid_set, parallel=parallel, track_runner_up=True)
        assert solution.allocation.assignment == [1]
        assert solution.runner_up.assignment == [2]
        assert solution.runner_up_welfare == 5


def test_runner_up_tracking():
    bid_set = make_bids(1, {0: 0, 1: 3}, {0: 0, 1: 7})
    solution = solve_allocation(bid_set, track_runner_up=True)
    assert solution.allocation.assignment == [2]
    assert solution.runner_up.assignment == [1]
    assert solution.runner_up_welfare == 3

    untracked = solve_allocation(bid_set)
    assert untracked.runner_up is None
    assert untracked.runner_up_welfare is None


def test_runner_up_is_second_best_overall():
    bid_set = random_bid_set(2, 2, seed=8)
    solution = solve_allocation(bid_set, track_runner_up=True)
    ranked = sorted(brute_force(bid_set), key=lambda c: (-c[0], c[1].ordinal()))
    assert solution.allocation == ranked[0][1]
    assert solution.runner_up == ranked[1][1]


def test_zero_agents():
    bid_set = random_bid_set(0, 3, seed=0)
    solution = solve_allocation(bid_set, 0, 3)
    assert solution.allocation.assignment == [0, 0, 0]
    assert solution.welfare == 0
    assert len(solution.payments) == 1


def test_zero_items():
    bid_set = random_bid_set(3, 0, seed=0)
    for parallel in (False, True):
        solution = solve_allocation(bid_set, 3, 0, parallel=parallel)
        assert solution.allocation.assignment == []
        assert solution.welfare == 0


def test_configuration_errors():
    bid_set = random_bid_set(2, 2, seed=0)
    with pytest.raises(ConfigurationError):
        solve_allocation(bid_set, -1, 2)
    with pytest.raises(ConfigurationError):
        solve_allocation(bid_set, 2, -1)
    with pytest.raises(ConfigurationError):
        solve_allocation(bid_set, 3, 2)
    with pytest.raises(ConfigurationError):
        solve_allocation(bid_set, 2, 1)


def test_undefined_bundle_aborts_search():
    """Missing bundle utilities are never replaced by a default"""
    bid_set = make_bids(2, {0b00: 0, 0b01: 1, 0b10: 1})
    with pytest.raises(UndefinedBundleError) as excinfo:
        solve_allocation(bid_set)
    assert excinfo.value.bundle == 0b11
    assert excinfo.value.agent == 1

    with pytest.raises(UndefinedBundleError):
        solve_allocation(bid_set, parallel=True)


def test_scoped_assignment_is_released_on_error():
    allocation = Allocation(2, 2)
    with pytest.raises(RuntimeError):
        with allocation.assigned(0, 1):
            assert allocation.assignment == [1, UNDECIDED]
            raise RuntimeError("boom")
    assert allocation.assignment == [UNDECIDED, UNDECIDED]


def test_double_assignment_rejected():
    allocation = Allocation(2, 2)
    allocation.assign(0, 1)
    with pytest.raises(ComputationError):
        allocation.assign(0, 2)
    allocation.unassign(0)
    allocation.assign(0, 2)
    assert allocation.assignment == [2, UNDECIDED]
    assert not allocation.is_complete()


def test_allocation_helpers():
    bid_set = random_bid_set(2, 3, seed=3)
    allocation = Allocation(2, 3, [1, 0, 2])
    assert allocation.bundles() == [0b010, 0b001, 0b100]
    assert allocation.items_of(2) == [2]
    assert allocation.ordinal() == 1 * 9 + 0 * 3 + 2
    assert list(allocation.item_assignments()) == [1, 0, 2]
    assert allocation.value_of(bid_set, 0) == 0.0
    assert np.isclose(
        allocation.welfare(bid_set),
        allocation.value_of(bid_set, 1) + allocation.value_of(bid_set, 2))
    assert np.isclose(allocation.welfare_except(bid_set, 1), allocation.value_of(bid_set, 2))

    clone = allocation.copy()
    clone.unassign(0)
    assert allocation.assignment == [1, 0, 2]

    with pytest.raises(ConfigurationError):
        Allocation(2, 2, [0, 3])
    with pytest.raises(ComputationError):
        Allocation(2, 2).ordinal()


def test_incumbent_offer_prefers_earlier_allocation_on_ties():
    from allocation import _Candidate

    incumbent = Incumbent(track_runner_up=True)
    late = _Candidate(5.0, Allocation(2, 1, [2]))
    early = _Candidate(5.0, Allocation(2, 1, [1]))
    worse = _Candidate(1.0, Allocation(2, 1, [0]))
    for candidate in (worse, late, early):
        incumbent.offer(candidate)
    assert incumbent.best is early
    assert incumbent.runner_up is late
