"""
Vickrey-Clarke-Groves payments for the exhaustive combinatorial auction.

Agent ``i`` pays the externality it imposes on everybody else::

    p_i = W(best allocation without i) - (W(chosen allocation) - v_i(S_i))

Two ways of getting the "without i" term are offered:

* ``PricingStrategy.RESOLVE`` re-runs the search with agent ``i`` removed.
  This is exact VCG and the default.
* ``PricingStrategy.RUNNER_UP`` uses the welfare of the second best allocation
  of the one full search for every agent. It needs a single search but is only
  an approximation: the globally second best allocation is generally not the
  best allocation without a particular agent, and payments can even come out
  negative.
"""
from enum import Enum
from typing import Optional

import numpy as np

from allocation import Solution, solve_allocation
from bids import BidSet
from errors import ConfigurationError

__all__ = ["PricingStrategy", "charged_payments", "solve_vcg", "vcg_payments"]


class PricingStrategy(Enum):
    RESOLVE = "resolve"
    RUNNER_UP = "runner_up"

    @property
    def is_exact(self) -> bool:
        return self is PricingStrategy.RESOLVE

    @classmethod
    def parse(cls, value) -> "PricingStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower().replace("-", "_"))
        except ValueError:
            names = ", ".join(s.value for s in cls)
            raise ConfigurationError(
                f"unknown pricing strategy {value!r} (choose from {names})") from None


def _resolve_payments(solution: Solution, bid_set: BidSet, **search) -> np.ndarray:
    payments = np.zeros(bid_set.n_agents + 1)
    for agent in range(1, bid_set.n_agents + 1):
        reduced = bid_set.excluding_agent(agent)
        without_agent = solve_allocation(reduced, **search).welfare
        payments[agent] = without_agent - solution.allocation.welfare_except(bid_set, agent)
    return payments


def _runner_up_payments(solution: Solution, bid_set: BidSet) -> np.ndarray:
    if solution.runner_up is None and _has_alternatives(solution):
        raise ConfigurationError(
            "runner-up pricing needs a solution searched with track_runner_up=True")
    # no runner-up at all means a single feasible allocation
    without_agent = solution.runner_up_welfare if solution.runner_up is not None else 0.0
    payments = np.zeros(bid_set.n_agents + 1)
    for agent in range(1, bid_set.n_agents + 1):
        payments[agent] = without_agent - solution.allocation.welfare_except(bid_set, agent)
    return payments


def _has_alternatives(solution: Solution) -> bool:
    return (solution.n_agents + 1) ** solution.n_items > 1


def vcg_payments(
    solution: Solution,
    bid_set: BidSet,
    strategy=PricingStrategy.RESOLVE,
    **search,
) -> np.ndarray:
    """
    Payment of every agent ``0..n`` for an already solved allocation.

    Args:
        solution: Output of ``solve_allocation`` on ``bid_set``
        bid_set: The bids the solution was computed from
        strategy: ``PricingStrategy`` or its string value
        **search: Options passed on to ``solve_allocation`` for re-solves

    Returns:
        Array of length n+1; entry 0 (nobody) is always 0
    """
    strategy = PricingStrategy.parse(strategy)
    if solution.n_agents != bid_set.n_agents or solution.n_items != bid_set.n_items:
        raise ConfigurationError("solution and bid set describe different auctions")
    if strategy is PricingStrategy.RESOLVE:
        search.pop("track_runner_up", None)
        return _resolve_payments(solution, bid_set, **search)
    return _runner_up_payments(solution, bid_set)


def solve_vcg(
    bid_set: BidSet,
    strategy=PricingStrategy.RESOLVE,
    *,
    parallel: bool = False,
    max_workers: Optional[int] = None,
    use_processes: bool = False,
) -> Solution:
    """Solve the allocation problem and price it in one go"""
    strategy = PricingStrategy.parse(strategy)
    search = dict(parallel=parallel, max_workers=max_workers, use_processes=use_processes)
    solution = solve_allocation(
        bid_set, track_runner_up=strategy is PricingStrategy.RUNNER_UP, **search)
    solution.payments = vcg_payments(solution, bid_set, strategy, **search)
    solution.pricing = strategy.value
    return solution


def charged_payments(solution: Solution) -> np.ndarray:
    """Payments actually levied: agents that win no items are not charged"""
    bundles = np.array(solution.allocation.bundles())
    charges = np.where(bundles != 0, solution.payments, 0.0)
    charges[0] = 0.0
    return charges
