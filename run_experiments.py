"""
Experiment runner for exhaustive VCG auction sweeps
Varies number of agents, number of items and the bid seed
"""

import os
import time
import numpy as np
from itertools import product
import json
from datetime import datetime
from bids import random_bid_set
from multi_item_combinatorial import CombinatorialAuction
from vcg import PricingStrategy
from visualize import plot_sweep_results

def create_exp_id(n_agents, n_items, seed):
    """Create experiment identifier from parameters"""
    return f"n{n_agents}_m{n_items}_seed{seed}"

def run_single_experiment(n_agents, n_items, seed, parallel=True, check_ilp=True):
    """
    Generate one bid set and auction it with both pricing strategies.

    Returns:
        Dict of timings, welfare, revenue and consistency checks
    """
    start = time.perf_counter()
    bid_set = random_bid_set(n_agents, n_items, seed=seed)
    generate_time = time.perf_counter() - start

    exact = CombinatorialAuction(n_agents, n_items, pricing=PricingStrategy.RESOLVE)
    start = time.perf_counter()
    outcome = exact.run_auction(bid_set)
    solve_time = time.perf_counter() - start

    approx = CombinatorialAuction(n_agents, n_items, pricing=PricingStrategy.RUNNER_UP)
    approx_outcome = approx.run_auction(bid_set)
    gaps = np.abs(approx_outcome.payments[1:] - outcome.payments[1:])

    results = {
        'generate_time': float(generate_time),
        'solve_time': float(solve_time),
        'welfare': float(outcome.welfare),
        'revenue': float(outcome.revenue),
        'payments': [float(p) for p in outcome.payments[1:]],
        'runner_up_payments': [float(p) for p in approx_outcome.payments[1:]],
        'pricing_gap': float(gaps.mean()) if len(gaps) else 0.0,
        'item_assignments': [int(a) for a in outcome.item_assignments],
    }

    if parallel:
        concurrent = CombinatorialAuction(n_agents, n_items, parallel=True)
        start = time.perf_counter()
        parallel_outcome = concurrent.run_auction(bid_set)
        results['parallel_time'] = float(time.perf_counter() - start)
        results['parallel_agrees'] = bool(
            np.isclose(parallel_outcome.welfare, outcome.welfare)
            and np.allclose(parallel_outcome.payments, outcome.payments))

    if check_ilp:
        ilp_welfare, _ = exact.solve_winner_determination_ilp(bid_set)
        results['ilp_welfare'] = float(ilp_welfare)
        results['ilp_agrees'] = bool(np.isclose(ilp_welfare, outcome.welfare))

    return results

def run_experiment_sweep(
    agent_counts=[1, 2, 3],
    item_counts=[1, 2, 3, 4],
    seeds=[0, 1, 2],
    parallel=True,
    check_ilp=True,
    results_dir='experiment_results'
):
    """
    Run parameter sweep experiments

    Args:
        agent_counts: List of agent counts to test
        item_counts: List of item counts to test
        seeds: Bid generator seeds, one bid set per seed
        parallel: Also time the concurrent search and compare it to the sequential one
        check_ilp: Cross-check the optimal welfare with the ILP formulation
        results_dir: Directory to save results
    """
    # Create results directory
    os.makedirs(results_dir, exist_ok=True)
    os.makedirs(f'{results_dir}/graphs', exist_ok=True)
    os.makedirs(f'{results_dir}/logs', exist_ok=True)

    all_results = []
    failed = []

    param_combinations = list(product(agent_counts, item_counts, seeds))
    total_experiments = len(param_combinations)

    print("=" * 80)
    print("Starting Experiment Sweep")
    print("=" * 80)
    print(f"Total experiments: {total_experiments}")
    print("Parameters:")
    print(f"  Agents: {list(agent_counts)}")
    print(f"  Items: {list(item_counts)}")
    print(f"  Seeds: {list(seeds)}")
    print(f"  Parallel check: {parallel}, ILP check: {check_ilp}")
    print("=" * 80)

    for exp_idx, (n_agents, n_items, seed) in enumerate(param_combinations, 1):
        exp_id = create_exp_id(n_agents, n_items, seed)

        print(f"\n{'='*80}")
        print(f"Experiment {exp_idx}/{total_experiments}: {exp_id}")
        print(f"{'='*80}")
        print(f"  Allocations searched per solve: {(n_agents + 1) ** n_items}")

        try:
            metrics = run_single_experiment(n_agents, n_items, seed,
                                            parallel=parallel, check_ilp=check_ilp)
            result = {
                'exp_id': exp_id,
                'parameters': {
                    'n_agents': int(n_agents),
                    'n_items': int(n_items),
                    'seed': int(seed),
                },
                'results': metrics,
            }

            # Save detailed log
            log_path = f'{results_dir}/logs/{exp_id}.json'
            with open(log_path, 'w') as f:
                json.dump(result, f, indent=2)

            all_results.append(result)

            print(f"\n✓ Experiment {exp_idx} completed")
            print(f"  Welfare: {metrics['welfare']:.3f}")
            print(f"  Revenue: {metrics['revenue']:.3f}")
            print(f"  Runner-up pricing gap: {metrics['pricing_gap']:.3f}")
            print(f"  Solve time: {metrics['solve_time']:.4f}s")
            if 'ilp_agrees' in metrics and not metrics['ilp_agrees']:
                print(f"  ✗ ILP welfare {metrics['ilp_welfare']:.6f} differs from exhaustive search")

        except Exception as e:
            print(f"\n✗ Experiment {exp_idx} failed: {e}")
            import traceback
            traceback.print_exc()
            failed.append({'exp_id': exp_id, 'error': str(e)})
            continue

    sweep_path = f'{results_dir}/graphs/sweep.png'
    plot_sweep_results(all_results, save_path=sweep_path)

    # Save summary
    summary = {
        'timestamp': datetime.now().isoformat(),
        'total_experiments': total_experiments,
        'completed': len(all_results),
        'failed': failed,
        'all_results': [
            {
                'exp_id': r['exp_id'],
                'parameters': r['parameters'],
                'results': {k: v for k, v in r['results'].items()
                            if not isinstance(v, list)}
            }
            for r in all_results
        ]
    }

    summary_path = f'{results_dir}/experiment_summary.json'
    with open(summary_path, 'w') as f:
        json.dump(summary, f, indent=2)

    print("\n" + "=" * 80)
    print("EXPERIMENT SWEEP COMPLETE")
    print("=" * 80)
    print(f"Completed: {len(all_results)}/{total_experiments}")
    print(f"\nResults saved to: {results_dir}/")
    print(f"  Summary: {summary_path}")
    print(f"  Graphs: {results_dir}/graphs/")
    print(f"  Logs: {results_dir}/logs/")

    return all_results, summary


if __name__ == "__main__":

    results, summary = run_experiment_sweep(
        agent_counts=[1, 2, 3, 4],
        item_counts=[1, 2, 3, 4, 5],
        seeds=[0, 1, 2],
        parallel=True,
        check_ilp=True
    )
