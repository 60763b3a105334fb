import os
import numpy as np
import matplotlib.pyplot as plt

from bids import format_bundle


def plot_outcome(outcome, save_path='graphs/vcg_outcome.png'):
    """Plot one auction outcome: per-agent value/payment bars and the item assignment"""
    n_agents = len(outcome.bundles) - 1
    n_items = len(outcome.item_assignments)
    agents = np.arange(1, n_agents + 1)
    values = outcome.utilities[1:] + outcome.charges[1:]

    fig, axes = plt.subplots(1, 2, figsize=(12, 5))

    # ----- value vs payment per agent -----
    ax = axes[0]
    width = 0.27
    ax.bar(agents - width, values, width, label='bundle value', color='green', alpha=0.7)
    ax.bar(agents, outcome.payments[1:], width, label='VCG payment', color='blue', alpha=0.7)
    ax.bar(agents + width, outcome.charges[1:], width, label='charged', color='red', alpha=0.7)
    for agent in agents:
        ax.annotate(format_bundle(outcome.bundles[agent], n_items),
                    (agent, max(values[agent - 1], 0)), ha='center', va='bottom', fontsize=8)
    ax.set_xticks(agents)
    ax.set_xlabel('agent')
    ax.set_ylabel('utility')
    ax.set_title(f'Values and Payments ({outcome.pricing.value})')
    ax.legend()
    ax.grid(alpha=0.3, axis='y')

    # ----- item assignment grid, row 0 = unallocated -----
    ax = axes[1]
    grid = np.zeros((n_agents + 1, max(n_items, 1)))
    for item, agent in enumerate(outcome.item_assignments):
        grid[agent, item] = 1.0
    ax.imshow(grid, cmap='Greens', aspect='auto', vmin=0, vmax=1)
    ax.set_yticks(range(n_agents + 1))
    ax.set_yticklabels(['nobody'] + [f'agent {a}' for a in agents])
    ax.set_xticks(range(n_items))
    ax.set_xlabel('item')
    ax.set_title(f'Allocation (welfare={outcome.welfare:.3f})')

    plt.suptitle(f'Exhaustive VCG Auction - {n_agents} agents, {n_items} items', fontsize=14)
    plt.tight_layout()
    os.makedirs(os.path.dirname(save_path) or ".", exist_ok=True)
    plt.savefig(save_path, dpi=150)
    plt.close(fig)
    print(f"\n✓ Graph saved to: {save_path}")


def plot_sweep_results(results, save_path='experiment_results/graphs/sweep.png'):
    """Plot solve times, welfare, revenue and the runner-up pricing gap of a sweep"""
    if not results:
        print("No results to plot")
        return

    n_agents_values = sorted({r['parameters']['n_agents'] for r in results})
    fig, axes = plt.subplots(2, 2, figsize=(12, 10))

    def series(n_agents, key):
        rows = [r for r in results if r['parameters']['n_agents'] == n_agents]
        items = sorted({r['parameters']['n_items'] for r in rows})
        means = [np.mean([r['results'][key] for r in rows if r['parameters']['n_items'] == m])
                 for m in items]
        return items, means

    # ----- solve time vs number of leaves -----
    ax = axes[0, 0]
    leaves = [(r['parameters']['n_agents'] + 1) ** r['parameters']['n_items'] for r in results]
    ax.scatter(leaves, [r['results']['solve_time'] for r in results],
               alpha=0.7, label='sequential')
    if all('parallel_time' in r['results'] for r in results):
        ax.scatter(leaves, [r['results']['parallel_time'] for r in results],
                   alpha=0.7, marker='x', label='parallel')
    ax.set_xscale('log')
    ax.set_yscale('log')
    ax.set_xlabel('allocations searched (n+1)^m')
    ax.set_ylabel('seconds')
    ax.set_title('Search + Pricing Time')
    ax.legend()
    ax.grid(alpha=0.3)

    # ----- welfare -----
    ax = axes[0, 1]
    for n_agents in n_agents_values:
        items, welfare = series(n_agents, 'welfare')
        ax.plot(items, welfare, marker='o', label=f'n={n_agents}')
    ax.set_xlabel('items')
    ax.set_ylabel('mean optimal welfare')
    ax.set_title('Optimal Welfare')
    ax.legend()
    ax.grid(alpha=0.3)

    # ----- revenue -----
    ax = axes[1, 0]
    for n_agents in n_agents_values:
        items, revenue = series(n_agents, 'revenue')
        ax.plot(items, revenue, marker='o', label=f'n={n_agents}')
    ax.set_xlabel('items')
    ax.set_ylabel('mean VCG revenue')
    ax.set_title('Auctioneer Revenue (exact VCG)')
    ax.legend()
    ax.grid(alpha=0.3)

    # ----- runner-up approximation error -----
    ax = axes[1, 1]
    for n_agents in n_agents_values:
        items, gap = series(n_agents, 'pricing_gap')
        ax.plot(items, gap, marker='o', label=f'n={n_agents}')
    ax.axhline(y=0.0, color='r', linestyle='--', label='exact')
    ax.set_xlabel('items')
    ax.set_ylabel('mean |runner-up payment - VCG payment|')
    ax.set_title('Runner-up Pricing Error')
    ax.legend()
    ax.grid(alpha=0.3)

    plt.suptitle('Exhaustive VCG Auction - Scaling Sweep', fontsize=14, y=1.00)
    plt.tight_layout()
    os.makedirs(os.path.dirname(save_path) or ".", exist_ok=True)
    plt.savefig(save_path, dpi=150)
    plt.close(fig)
    print(f"\n✓ Graph saved to: {save_path}")
