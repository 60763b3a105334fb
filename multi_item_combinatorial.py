import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from scipy.optimize import LinearConstraint, Bounds, milp

from allocation import Solution, solve_allocation
from bids import BidSet, bundle_items, check_count, random_bid_set
from errors import ComputationError, ConfigurationError, UndefinedBundleError
from vcg import PricingStrategy, charged_payments, vcg_payments


@dataclass(frozen=True)
class SolverConfig:
    """Settings for one exhaustive VCG auction"""
    n_agents: int
    n_items: int
    pricing: PricingStrategy = PricingStrategy.RESOLVE
    parallel: bool = False
    max_workers: Optional[int] = None
    use_processes: bool = False
    seed: Optional[int] = None  # seed for generated bids

    def __post_init__(self):
        object.__setattr__(self, "n_agents", check_count("n_agents", self.n_agents))
        object.__setattr__(self, "n_items", check_count("n_items", self.n_items))
        object.__setattr__(self, "pricing", PricingStrategy.parse(self.pricing))
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be positive, got {self.max_workers}")

    @property
    def search_options(self) -> dict:
        return dict(parallel=self.parallel, max_workers=self.max_workers,
                    use_processes=self.use_processes)


@dataclass
class CombinatorialAuctionOutcome:
    """Outcome of a combinatorial VCG auction"""
    item_assignments: np.ndarray  # [n_items] - agent who won each item (0 if unallocated)
    bundles: List[int]  # [n_agents + 1] - bundle bitmask per agent, index 0 = unallocated items
    payments: np.ndarray  # [n_agents + 1] - VCG payment per agent (reference, incl. losers)
    charges: np.ndarray  # [n_agents + 1] - payment actually levied (0 for agents without items)
    utilities: np.ndarray  # [n_agents + 1] - bundle value minus charge
    welfare: float  # Total value of the allocation
    revenue: float  # Total charges collected
    pricing: PricingStrategy = PricingStrategy.RESOLVE
    solution: Optional[Solution] = field(default=None, repr=False)


class CombinatorialAuction:
    """
    Combinatorial sealed-bid auction where every agent bids on every bundle.
    Winner determination is an exhaustive search over all item->agent
    assignments, payments follow VCG.
    """
    def __init__(self, n_agents: int, n_items: int, pricing=PricingStrategy.RESOLVE,
                 parallel: bool = False, max_workers: Optional[int] = None,
                 use_processes: bool = False, seed: Optional[int] = None):
        self.config = SolverConfig(
            n_agents=n_agents,
            n_items=n_items,
            pricing=pricing,
            parallel=parallel,
            max_workers=max_workers,
            use_processes=use_processes,
            seed=seed,
        )
        self.n_agents = self.config.n_agents
        self.n_items = self.config.n_items

    @classmethod
    def from_config(cls, config: SolverConfig) -> "CombinatorialAuction":
        auction = cls.__new__(cls)
        auction.config = config
        auction.n_agents = config.n_agents
        auction.n_items = config.n_items
        return auction

    def generate_bids(self, rng: Optional[np.random.Generator] = None) -> BidSet:
        """Random bids for every agent, seeded from the config unless ``rng`` is given"""
        return random_bid_set(self.n_agents, self.n_items, rng=rng, seed=self.config.seed)

    def _check_bids(self, bid_set: BidSet):
        if bid_set.n_agents != self.n_agents or bid_set.n_items != self.n_items:
            raise ConfigurationError(
                f"auction is for {self.n_agents} agents and {self.n_items} items, "
                f"bids cover {bid_set.n_agents} agents and {bid_set.n_items} items")

    def solve_winner_determination(self, bid_set: BidSet) -> Solution:
        """Exhaustive search for the welfare-maximizing allocation (unpriced)"""
        self._check_bids(bid_set)
        return solve_allocation(
            bid_set,
            track_runner_up=self.config.pricing is PricingStrategy.RUNNER_UP,
            **self.config.search_options,
        )

    def solve_winner_determination_ilp(self, bid_set: BidSet) -> Tuple[float, np.ndarray]:
        """
        Solve the same winner determination as an integer program.

        Every agent picks exactly one bundle (possibly the empty one) and every
        item goes into at most one picked bundle. Used to cross-check the
        exhaustive search.

        Returns:
            welfare: Optimal total value
            item_assignments: [n_items] array with the agent for each item (0 if unassigned)
        """
        self._check_bids(bid_set)
        n_bundles = 1 << self.n_items
        item_assignments = np.zeros(self.n_items, dtype=int)
        if self.n_agents == 0:
            return 0.0, item_assignments

        # Decision variables: x[(agent - 1) * n_bundles + bundle]
        values = np.zeros(self.n_agents * n_bundles)
        for agent, bid in bid_set.items():
            undefined = bid.undefined_bundles()
            if undefined:
                raise UndefinedBundleError(undefined[0], agent)
            values[(agent - 1) * n_bundles:agent * n_bundles] = bid.values
        c = -values  # Negative because we minimize

        # Constraints:
        # 1. Each item is in at most one chosen bundle
        # 2. Each agent chooses exactly one bundle (XOR)
        n_vars = len(values)
        A = np.zeros((self.n_items + self.n_agents, n_vars))
        lb = np.zeros(self.n_items + self.n_agents)
        ub = np.ones(self.n_items + self.n_agents)
        bundles = np.arange(n_bundles)
        for item_idx in range(self.n_items):
            contains_item = ((bundles >> item_idx) & 1).astype(float)
            A[item_idx] = np.tile(contains_item, self.n_agents)
        for agent_idx in range(self.n_agents):
            A[self.n_items + agent_idx, agent_idx * n_bundles:(agent_idx + 1) * n_bundles] = 1
            lb[self.n_items + agent_idx] = 1

        result = milp(
            c=c,
            constraints=LinearConstraint(A, lb=lb, ub=ub),
            bounds=Bounds(0, 1),
            integrality=np.ones(n_vars, dtype=int),
            options={'disp': False},
        )
        if not result.success or result.x is None:
            raise ComputationError(f"ILP winner determination failed: {result.message}")

        welfare = 0.0
        for var_idx in np.flatnonzero(result.x > 0.5):
            agent_idx, bundle = divmod(int(var_idx), n_bundles)
            welfare += values[var_idx]
            for item_idx in bundle_items(bundle):
                item_assignments[item_idx] = agent_idx + 1
        return welfare, item_assignments

    def run_auction(self, bid_set: BidSet) -> CombinatorialAuctionOutcome:
        """
        Run the auction: exhaustive winner determination followed by VCG pricing.

        Args:
            bid_set: Bid functions of agents 1..n_agents

        Returns:
            CombinatorialAuctionOutcome
        """
        solution = self.solve_winner_determination(bid_set)
        solution.payments = vcg_payments(
            solution, bid_set, self.config.pricing, **self.config.search_options)
        solution.pricing = self.config.pricing.value

        allocation = solution.allocation
        charges = charged_payments(solution)
        values = np.array([allocation.value_of(bid_set, agent)
                           for agent in range(self.n_agents + 1)])

        return CombinatorialAuctionOutcome(
            item_assignments=allocation.item_assignments(),
            bundles=allocation.bundles(),
            payments=solution.payments.copy(),
            charges=charges,
            utilities=values - charges,
            welfare=solution.welfare,
            revenue=float(charges.sum()),
            pricing=self.config.pricing,
            solution=solution,
        )
