"""
Tests for the sweep runner
"""
import json

import matplotlib
matplotlib.use("Agg")

from run_experiments import create_exp_id, run_experiment_sweep, run_single_experiment


def test_create_exp_id():
    assert create_exp_id(3, 4, 7) == "n3_m4_seed7"


def test_single_experiment_checks_agree():
    metrics = run_single_experiment(2, 2, seed=0)
    assert metrics['ilp_agrees']
    assert metrics['parallel_agrees']
    assert metrics['welfare'] >= 0
    assert len(metrics['payments']) == 2
    assert len(metrics['item_assignments']) == 2
    assert metrics['pricing_gap'] >= 0


def test_sweep_writes_logs_and_summary(tmp_path):
    results, summary = run_experiment_sweep(
        agent_counts=[1, 2],
        item_counts=[0, 2],
        seeds=[0],
        results_dir=str(tmp_path),
    )

    assert len(results) == 4
    assert summary['completed'] == 4
    assert summary['failed'] == []
    for result in results:
        assert result['results']['ilp_agrees']
        assert result['results']['parallel_agrees']
        assert (tmp_path / 'logs' / f"{result['exp_id']}.json").exists()

    with open(tmp_path / 'experiment_summary.json') as f:
        saved = json.load(f)
    assert saved['total_experiments'] == 4
    assert 'payments' not in saved['all_results'][0]['results']
    assert (tmp_path / 'graphs' / 'sweep.png').exists()


def test_sweep_records_failures(tmp_path, monkeypatch):
    import run_experiments

    def broken(*args, **kwargs):
        raise RuntimeError("solver exploded")

    monkeypatch.setattr(run_experiments, "run_single_experiment", broken)
    results, summary = run_experiment_sweep(
        agent_counts=[1], item_counts=[1], seeds=[0, 1], results_dir=str(tmp_path))
    assert results == []
    assert summary['completed'] == 0
    assert [f['exp_id'] for f in summary['failed']] == ["n1_m1_seed0", "n1_m1_seed1"]
    assert summary['failed'][0]['error'] == "solver exploded"
