"""
Bundle and bid model for the exhaustive combinatorial auction.

A *bundle* is an ``m``-bit integer: item ``j`` is in the bundle iff bit ``j``
is set, so the empty bundle is ``0`` and the grand bundle is ``2**m - 1``.
A :class:`BidFunction` holds one agent's utility for every one of the
``2**m`` bundles and a :class:`BidSet` collects the bid functions of agents
``1..n`` (agent ``0`` means "unallocated" and never bids).
"""
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from errors import ConfigurationError, UndefinedBundleError

__all__ = [
    "BidFunction",
    "BidSet",
    "bundle_from_items",
    "bundle_items",
    "bundle_size",
    "check_count",
    "example_bid_set",
    "format_bid",
    "format_bundle",
    "random_bid",
    "random_bid_set",
]


###############################################################################
# Bundle helpers
###############################################################################

def bundle_from_items(items: Iterable[int]) -> int:
    """Bitmask of the given item indices, e.g. ``[0, 2] -> 0b101``"""
    mask = 0
    for j in items:
        if j < 0:
            raise ConfigurationError(f"item index must be non-negative, got {j}")
        mask |= 1 << j
    return mask


def bundle_items(bundle: int) -> List[int]:
    """Item indices contained in ``bundle``, ascending"""
    items = []
    j = 0
    while bundle:
        if bundle & 1:
            items.append(j)
        bundle >>= 1
        j += 1
    return items


def bundle_size(bundle: int) -> int:
    return bin(bundle).count("1")


def format_bundle(bundle: int, n_items: int) -> str:
    """Zero-padded binary form with item 0 as the right-most digit"""
    return format(bundle, "b").zfill(n_items)


def check_count(name: str, value) -> int:
    """Validate an agent/item count, returning it as a plain ``int``"""
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ConfigurationError(f"{name} must be non-negative, got {value}")
    return int(value)


###############################################################################
# Bid functions
###############################################################################

@dataclass(frozen=True, eq=False)
class BidFunction:
    """One agent's utility for every bundle of ``n_items`` items.

    ``values[b]`` is the utility of bundle ``b``. ``NaN`` marks a bundle with
    no recorded utility; looking it up raises :class:`UndefinedBundleError`
    rather than falling back to some default.
    """

    values: np.ndarray

    def __post_init__(self):
        values = np.array(self.values, dtype=np.float64).reshape(-1)
        size = len(values)
        if size == 0 or size & (size - 1):
            raise ConfigurationError(
                f"a bid function needs 2**m entries, got {size}")
        if np.any(values[~np.isnan(values)] < 0):
            raise ConfigurationError("bundle utilities must be non-negative")
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @property
    def n_items(self) -> int:
        return len(self.values).bit_length() - 1

    def value(self, bundle: int) -> float:
        if bundle < 0 or bundle >= len(self.values):
            raise UndefinedBundleError(bundle)
        v = self.values[bundle]
        if np.isnan(v):
            raise UndefinedBundleError(bundle)
        return float(v)

    __getitem__ = value

    def is_total(self) -> bool:
        return not np.any(np.isnan(self.values))

    def undefined_bundles(self) -> List[int]:
        return [int(b) for b in np.flatnonzero(np.isnan(self.values))]

    def as_dict(self) -> Dict[int, float]:
        return {b: float(v) for b, v in enumerate(self.values) if not np.isnan(v)}

    # --------------------------------------------------------------------
    @staticmethod
    def from_mapping(mapping: Mapping[int, float], n_items: int) -> "BidFunction":
        """Bid function from ``{bundle: utility}``; absent bundles stay undefined"""
        n_items = check_count("n_items", n_items)
        values = np.full(1 << n_items, np.nan)
        for bundle, utility in mapping.items():
            if bundle < 0 or bundle >= len(values):
                raise ConfigurationError(
                    f"bundle {bundle:#b} does not fit in {n_items} items")
            values[bundle] = utility
        return BidFunction(values)

    @staticmethod
    def from_xor_bids(atoms: Mapping[int, float], n_items: int) -> "BidFunction":
        """Complete a sparse table of XOR bids with free disposal.

        The agent can win at most one recorded bundle, so every bundle is worth
        the best recorded bundle it contains:
        ``v(S) = max{v(T) : T ⊆ S, T recorded}`` and ``v(∅) = 0`` unless given.
        """
        n_items = check_count("n_items", n_items)
        size = 1 << n_items
        values = np.zeros(size)
        for bundle, utility in atoms.items():
            if bundle < 0 or bundle >= size:
                raise ConfigurationError(
                    f"bundle {bundle:#b} does not fit in {n_items} items")
            if utility < 0:
                raise ConfigurationError("bundle utilities must be non-negative")
            values[bundle] = max(values[bundle], utility)

        # superset max, one item at a time; sources never have bit j set
        index = np.arange(size)
        for j in range(n_items):
            with_j = index[(index >> j) & 1 == 1]
            values[with_j] = np.maximum(values[with_j], values[with_j ^ (1 << j)])
        return BidFunction(values)


###############################################################################
# Bid sets
###############################################################################

class BidSet:
    """Bid functions of agents ``1..n`` over a common set of ``n_items``.

    Agent ``0`` is the "nobody" sentinel and has no bid function.
    """

    def __init__(self, bids: Sequence[BidFunction], n_items: Optional[int] = None):
        bids = list(bids)
        if n_items is None:
            if not bids:
                raise ConfigurationError("n_items is required for an empty bid set")
            n_items = bids[0].n_items
        n_items = check_count("n_items", n_items)
        for agent, bid in enumerate(bids, start=1):
            if bid.n_items != n_items:
                raise ConfigurationError(
                    f"agent {agent} bids on {bid.n_items} items, expected {n_items}")
        self._bids = bids
        self.n_items = n_items

    @property
    def n_agents(self) -> int:
        return len(self._bids)

    def __len__(self):
        return len(self._bids)

    def _check_agent(self, agent: int):
        if agent < 1 or agent > len(self._bids):
            raise IndexError(
                f"no bid function for agent {agent} (valid agents: 1..{len(self._bids)})")

    def __getitem__(self, agent: int) -> BidFunction:
        self._check_agent(agent)
        return self._bids[agent - 1]

    def items(self) -> Iterator[Tuple[int, BidFunction]]:
        return enumerate(self._bids, start=1)

    def value(self, agent: int, bundle: int) -> float:
        try:
            return self[agent].value(bundle)
        except UndefinedBundleError as exc:
            raise UndefinedBundleError(bundle, agent) from exc

    def excluding_agent(self, agent: int) -> "BidSet":
        """Bid set without ``agent``; later agents shift down by one"""
        self._check_agent(agent)
        kept = self._bids[:agent - 1] + self._bids[agent:]
        return BidSet(kept, self.n_items)

    def __repr__(self):
        return f"BidSet(n_agents={self.n_agents}, n_items={self.n_items})"


###############################################################################
# Generators
###############################################################################

def random_bid(n_items: int, rng: np.random.Generator) -> BidFunction:
    """Utility ``|S| * U[0, 1)`` with an independent draw for every bundle.

    The expected utility grows with bundle size but a superset can still be
    worth less than one of its subsets. The empty bundle is always 0.
    """
    n_items = check_count("n_items", n_items)
    bundles = range(1 << n_items)
    sizes = np.array([bundle_size(b) for b in bundles], dtype=np.float64)
    draws = rng.random(len(sizes))
    return BidFunction(sizes * draws)


def random_bid_set(
    n_agents: int,
    n_items: int,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
) -> BidSet:
    """Random bid functions for agents ``1..n_agents``.

    Args:
        n_agents: Number of bidding agents
        n_items: Number of items
        rng: Random source; built from ``seed`` when omitted
        seed: Seed for a fresh ``numpy.random.default_rng``
    """
    n_agents = check_count("n_agents", n_agents)
    n_items = check_count("n_items", n_items)
    if rng is None:
        rng = np.random.default_rng(seed)
    return BidSet([random_bid(n_items, rng) for _ in range(n_agents)], n_items)


def format_bid(bid: BidFunction) -> List[str]:
    """``"  <bundle> => <utility>"`` lines, one per bundle"""
    lines = []
    for bundle, v in enumerate(bid.values):
        shown = "undefined" if np.isnan(v) else f"{v:f}"
        lines.append(f"  {format_bundle(bundle, bid.n_items)} => {shown}")
    return lines


# agent -> {bundle: value}; items a, b, c, d are bits 0..3
_EXAMPLE_ATOMS = {
    1: {0b0001: 1, 0b0010: 2, 0b0100: 2, 0b1000: 4, 0b1111: 4},
    2: {0b0001: 1, 0b0010: 1, 0b0100: 1, 0b1000: 1, 0b0011: 5},
    3: {0b0001: 1, 0b0010: 2, 0b0100: 4, 0b1000: 1, 0b0110: 7},
    4: {0b0001: 1, 0b0010: 1, 0b0100: 1, 0b1000: 3},
}


def example_bid_set() -> BidSet:
    """Four agents bidding on four items with XOR bids.

    Agent 2 wants ``{a, b}``, agent 3 wants ``{b, c}`` and agents 1 and 4 mostly
    care about ``d``.
    """
    return BidSet(
        [BidFunction.from_xor_bids(_EXAMPLE_ATOMS[a], 4) for a in sorted(_EXAMPLE_ATOMS)],
        4,
    )
