"""
Run an exhaustive combinatorial VCG auction on random (or example) bids
"""
import argparse
import sys
import time

import numpy as np

from bids import BidSet, example_bid_set, format_bid, format_bundle
from errors import AuctionError
from multi_item_combinatorial import CombinatorialAuction, CombinatorialAuctionOutcome
from vcg import PricingStrategy


def positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {text!r}")
    if value <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Welfare-maximizing allocation and VCG payments by exhaustive search")
    parser.add_argument("n", type=positive_int, nargs="?", help="number of agents")
    parser.add_argument("m", type=positive_int, nargs="?", help="number of items")
    parser.add_argument("--seed", type=int, default=None,
                        help="seed for the bid generator (default: wall-clock time)")
    parser.add_argument("--pricing", choices=[s.value for s in PricingStrategy],
                        default=PricingStrategy.RESOLVE.value,
                        help="'resolve' is exact VCG, 'runner_up' is a one-search approximation")
    parser.add_argument("--parallel", action="store_true",
                        help="search each choice for the first item concurrently")
    parser.add_argument("--processes", action="store_true",
                        help="use a process pool for --parallel")
    parser.add_argument("--workers", type=positive_int, default=None,
                        help="pool size for --parallel")
    parser.add_argument("--example", action="store_true",
                        help="use the built-in 4-agent, 4-item XOR example instead of random bids")
    parser.add_argument("--quiet", action="store_true", help="do not print the bid tables")
    parser.add_argument("--plot", metavar="PATH", default=None,
                        help="save a figure of the outcome to PATH")
    return parser


def print_bids(bid_set: BidSet):
    for agent, bid in bid_set.items():
        print(f"Bids for Agent {agent}")
        for line in format_bid(bid):
            print(line)


def print_outcome(outcome: CombinatorialAuctionOutcome, n_items: int):
    print("=" * 60)
    label = "exact VCG" if outcome.pricing.is_exact else "approximate VCG (runner-up welfare)"
    print(f"Pricing: {outcome.pricing.value} ({label})")
    print("=" * 60)
    print(f"Unallocated items: {outcome.solution.allocation.items_of(0)}")
    for agent in range(1, len(outcome.bundles)):
        bundle = outcome.bundles[agent]
        print(f"Agent {agent}: bundle={format_bundle(bundle, n_items)}, "
              f"value={outcome.utilities[agent] + outcome.charges[agent]:.4f}, "
              f"payment={outcome.payments[agent]:.4f}, "
              f"charged={outcome.charges[agent]:.4f}")
    print(f"\nTotal welfare: {outcome.welfare:.4f}")
    print(f"Revenue: {outcome.revenue:.4f}")


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.example:
        n_agents, n_items = 4, 4
    elif args.n is None or args.m is None:
        parser.error("pass n and m (or --example)")
    else:
        n_agents, n_items = args.n, args.m

    seed = args.seed if args.seed is not None else time.time_ns()
    print(f"Using n = {n_agents} agents and m = {n_items} items (seed {seed})")

    try:
        auction = CombinatorialAuction(
            n_agents, n_items,
            pricing=args.pricing,
            parallel=args.parallel,
            max_workers=args.workers,
            use_processes=args.processes,
            seed=seed,
        )

        start = time.perf_counter()
        if args.example:
            print("Using the built-in XOR example bids.")
            bid_set = example_bid_set()
        else:
            print("Generating agent's utilities for all combinations of allocations to them.")
            bid_set = auction.generate_bids(np.random.default_rng(seed))
        elapsed = time.perf_counter() - start
        print(f"Randomizing input data took {elapsed:.6f}s")
        if not args.quiet:
            print_bids(bid_set)

        start = time.perf_counter()
        outcome = auction.run_auction(bid_set)
        elapsed = time.perf_counter() - start
    except AuctionError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    print_outcome(outcome, n_items)
    print(f"Finding solution took {elapsed:.6f}s")

    if args.plot:
        from visualize import plot_outcome
        plot_outcome(outcome, save_path=args.plot)

    return 0


if __name__ == "__main__":
    sys.exit(main())
