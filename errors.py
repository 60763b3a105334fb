"""
Exceptions raised by the combinatorial auction solver
"""
from typing import Optional


class AuctionError(Exception):
    """Base class for every error raised by the solver"""


class ConfigurationError(AuctionError, ValueError):
    """Invalid agent/item counts, mismatched bid sets or bad options"""


class ComputationError(AuctionError, RuntimeError):
    """Lookup or arithmetic failure while evaluating allocations"""


class UndefinedBundleError(ComputationError, KeyError):
    """A bid function was asked for a bundle it has no utility for"""

    def __init__(self, bundle: int, agent: Optional[int] = None):
        self.bundle = bundle
        self.agent = agent
        who = f"agent {agent}" if agent is not None else "bid function"
        super().__init__(f"{who} has no utility for bundle {bundle:#b}")

    def __str__(self):
        # KeyError would otherwise repr() the message
        return self.args[0]
