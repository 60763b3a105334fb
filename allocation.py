"""
Exhaustive winner determination for combinatorial auctions.

Every item is handed to one of the agents ``0..n`` (``0`` = nobody) in item
order, agents ascending, so the search visits all ``(n+1)**m`` allocations in
a fixed depth-first order. The best allocation is the one with the highest
welfare; among allocations with equal welfare the one visited first wins.
"""
import threading
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from bids import BidSet, check_count
from errors import ComputationError, ConfigurationError

__all__ = ["Allocation", "Incumbent", "Solution", "solve_allocation", "UNDECIDED"]

UNDECIDED = -1


class Allocation:
    """Assignment of items ``0..m-1`` to agents ``0..n`` (``0`` = unallocated).

    Items not decided yet hold :data:`UNDECIDED`. Allocations returned by the
    solver are always complete.
    """

    def __init__(self, n_agents: int, n_items: int, assignment: Optional[Sequence[int]] = None):
        self.n_agents = check_count("n_agents", n_agents)
        self.n_items = check_count("n_items", n_items)
        if assignment is None:
            self.assignment = [UNDECIDED] * self.n_items
        else:
            assignment = [int(a) for a in assignment]
            if len(assignment) != self.n_items:
                raise ConfigurationError(
                    f"expected {self.n_items} assignments, got {len(assignment)}")
            for item, agent in enumerate(assignment):
                if agent != UNDECIDED and not 0 <= agent <= self.n_agents:
                    raise ConfigurationError(f"item {item} assigned to unknown agent {agent}")
            self.assignment = assignment

    def assign(self, item: int, agent: int):
        if self.assignment[item] != UNDECIDED:
            raise ComputationError(
                f"item {item} is already assigned to agent {self.assignment[item]}")
        self.assignment[item] = agent

    def unassign(self, item: int):
        self.assignment[item] = UNDECIDED

    @contextmanager
    def assigned(self, item: int, agent: int):
        """Give ``item`` to ``agent`` for the duration of the block"""
        self.assign(item, agent)
        try:
            yield self
        finally:
            self.unassign(item)

    def is_complete(self) -> bool:
        return UNDECIDED not in self.assignment

    def bundles(self) -> List[int]:
        """Bundle bitmask of every agent ``0..n``"""
        bundles = [0] * (self.n_agents + 1)
        for item, agent in enumerate(self.assignment):
            if agent != UNDECIDED:
                bundles[agent] |= 1 << item
        return bundles

    def bundle_of(self, agent: int) -> int:
        return self.bundles()[agent]

    def items_of(self, agent: int) -> List[int]:
        return [item for item, a in enumerate(self.assignment) if a == agent]

    def value_of(self, bid_set: BidSet, agent: int) -> float:
        """Utility ``agent`` gets from its bundle; agent 0 gets nothing"""
        if agent == 0:
            return 0.0
        return bid_set.value(agent, self.bundle_of(agent))

    def welfare(self, bid_set: BidSet) -> float:
        bundles = self.bundles()
        return sum(bid_set.value(agent, bundles[agent])
                   for agent in range(1, self.n_agents + 1))

    def welfare_except(self, bid_set: BidSet, excluded_agent: int) -> float:
        """Welfare of every agent other than ``excluded_agent``"""
        bundles = self.bundles()
        return sum(bid_set.value(agent, bundles[agent])
                   for agent in range(1, self.n_agents + 1)
                   if agent != excluded_agent)

    def ordinal(self) -> int:
        """Position of this allocation in the solver's enumeration order"""
        if not self.is_complete():
            raise ComputationError("only complete allocations have an ordinal")
        base = self.n_agents + 1
        position = 0
        for agent in self.assignment:
            position = position * base + agent
        return position

    def item_assignments(self) -> np.ndarray:
        return np.array(self.assignment, dtype=int)

    def as_dict(self) -> Dict[int, List[int]]:
        """``{agent: [items]}`` for every agent ``0..n``"""
        return {agent: self.items_of(agent) for agent in range(self.n_agents + 1)}

    def copy(self) -> "Allocation":
        clone = Allocation.__new__(Allocation)
        clone.n_agents = self.n_agents
        clone.n_items = self.n_items
        clone.assignment = list(self.assignment)
        return clone

    def __eq__(self, other):
        if not isinstance(other, Allocation):
            return NotImplemented
        return self.n_agents == other.n_agents and self.assignment == other.assignment

    def __repr__(self):
        return f"Allocation({self.as_dict()})"


@dataclass
class Solution:
    """Outcome of one solve: allocation, welfare and per-agent payments.

    ``payments`` is indexed by agent ``0..n``; entry 0 is always 0.
    """
    allocation: Allocation
    welfare: float
    payments: np.ndarray = field(default=None)
    pricing: Optional[str] = None
    runner_up: Optional[Allocation] = None
    runner_up_welfare: Optional[float] = None

    def __post_init__(self):
        if self.payments is None:
            self.payments = np.zeros(self.allocation.n_agents + 1)

    @property
    def n_agents(self) -> int:
        return self.allocation.n_agents

    @property
    def n_items(self) -> int:
        return self.allocation.n_items


###############################################################################
# Incumbent tracking
###############################################################################

@dataclass
class _Candidate:
    welfare: float
    allocation: Allocation

    def key(self) -> Tuple[float, int]:
        # higher welfare first, then earlier in enumeration order
        return self.welfare, -self.allocation.ordinal()


class Incumbent:
    """Best allocation found so far, plus the runner-up when asked for.

    :meth:`consider` is for leaves arriving in enumeration order from a single
    search. :meth:`offer` merges results from concurrent branch searches; it
    holds a lock so each compare-and-replace is one step, and it ranks ties by
    enumeration order so the merged result does not depend on which branch
    finishes first.
    """

    def __init__(self, track_runner_up: bool = False):
        self.track_runner_up = track_runner_up
        self.best: Optional[_Candidate] = None
        self.runner_up: Optional[_Candidate] = None
        self._lock = threading.Lock()

    def consider(self, welfare: float, allocation: Allocation):
        if self.best is None or welfare > self.best.welfare:
            if self.track_runner_up:
                self.runner_up = self.best
            self.best = _Candidate(welfare, allocation.copy())
        elif self.track_runner_up and (self.runner_up is None or welfare > self.runner_up.welfare):
            self.runner_up = _Candidate(welfare, allocation.copy())

    def offer(self, candidate: _Candidate):
        with self._lock:
            key = candidate.key()
            if self.best is None or key > self.best.key():
                if self.track_runner_up:
                    self.runner_up = self.best
                self.best = candidate
            elif self.track_runner_up and (self.runner_up is None or key > self.runner_up.key()):
                self.runner_up = candidate

    def candidates(self) -> List[_Candidate]:
        return [c for c in (self.best, self.runner_up) if c is not None]


###############################################################################
# Search
###############################################################################

def _search(bid_set: BidSet, allocation: Allocation, item: int, incumbent: Incumbent):
    if item == allocation.n_items:
        incumbent.consider(allocation.welfare(bid_set), allocation)
        return
    for agent in range(allocation.n_agents + 1):
        with allocation.assigned(item, agent):
            _search(bid_set, allocation, item + 1, incumbent)


def _search_branch(bid_set: BidSet, agent: int, track_runner_up: bool) -> List[_Candidate]:
    """Search every allocation that gives item 0 to ``agent``"""
    allocation = Allocation(bid_set.n_agents, bid_set.n_items)
    incumbent = Incumbent(track_runner_up)
    with allocation.assigned(0, agent):
        _search(bid_set, allocation, 1, incumbent)
    return incumbent.candidates()


def solve_allocation(
    bid_set: BidSet,
    n_agents: Optional[int] = None,
    n_items: Optional[int] = None,
    *,
    parallel: bool = False,
    max_workers: Optional[int] = None,
    use_processes: bool = False,
    track_runner_up: bool = False,
) -> Solution:
    """
    Find the welfare-maximizing allocation by exhaustive search.

    Args:
        bid_set: Bid functions of agents 1..n
        n_agents: Number of agents; must match ``bid_set`` when given
        n_items: Number of items; must match ``bid_set`` when given
        parallel: Search each choice for item 0 as its own task
        max_workers: Pool size for the parallel search
        use_processes: Use a process pool instead of a thread pool
        track_runner_up: Also keep the second best allocation

    Returns:
        Solution with zero payments (see ``vcg.vcg_payments``)
    """
    n_agents = bid_set.n_agents if n_agents is None else check_count("n_agents", n_agents)
    n_items = bid_set.n_items if n_items is None else check_count("n_items", n_items)
    if n_agents != bid_set.n_agents or n_items != bid_set.n_items:
        raise ConfigurationError(
            f"bid set has {bid_set.n_agents} agents and {bid_set.n_items} items, "
            f"asked to solve for {n_agents} agents and {n_items} items")

    incumbent = Incumbent(track_runner_up)
    if parallel and n_items > 0:
        pool_cls = ProcessPoolExecutor if use_processes else ThreadPoolExecutor
        with pool_cls(max_workers=max_workers) as pool:
            futures = [pool.submit(_search_branch, bid_set, agent, track_runner_up)
                       for agent in range(n_agents + 1)]
            for future in as_completed(futures):
                for candidate in future.result():
                    incumbent.offer(candidate)
    else:
        _search(bid_set, Allocation(n_agents, n_items), 0, incumbent)

    best, runner_up = incumbent.best, incumbent.runner_up
    return Solution(
        allocation=best.allocation,
        welfare=best.welfare,
        runner_up=runner_up.allocation if runner_up else None,
        runner_up_welfare=runner_up.welfare if runner_up else None,
    )
