from __future__ import annotations

import math

import numpy as np
import pytest

from config import GrowthModel, InvalidConfigurationError, SimulationConfig
from constants import INITIAL_SHARE_PRICE
from sampling import NormalSampler
from schedules import generate_investment_schedule, generate_salary_schedule
from simulation import GrowthSimulator, drift_parameters, simulate_growth


class ExplodingSampler:
    def sample(self, mean, std_dev):
        raise AssertionError("zero-volatility runs must not draw random numbers")


class ScriptedSampler:
    """Returns mean + std_dev * z for a scripted z sequence and records every requested mean."""

    def __init__(self, z_values):
        self.z_values = list(z_values)
        self.means = []

    def sample(self, mean, std_dev):
        self.means.append(mean)
        z = self.z_values.pop(0) if self.z_values else 0.0
        return mean + std_dev * z


def test_zero_volatility_is_deterministic_and_exact():
    factor = (1 + 7.0 / 100) ** (1 / 12)

    first = simulate_growth(500.0, 7.0, 0.0, 3, 1000.0, sampler=ExplodingSampler())
    second = simulate_growth(500.0, 7.0, 0.0, 3, 1000.0, sampler=ExplodingSampler())

    assert first == second
    for snapshot in first:
        assert snapshot.monthly_return + 1 == pytest.approx(factor, rel=1e-15)


def test_one_year_deterministic_scenario():
    trajectory = simulate_growth(500.0, 7.0, 0.0, 1, 0.0)
    g = 1.07 ** (1 / 12)
    # each contribution buys at the price after its own month's growth
    expected_final = 500.0 * sum(g**k for k in range(12))

    assert len(trajectory) == 12
    assert [s.month for s in trajectory] == list(range(1, 13))
    assert trajectory[-1].total_invested == pytest.approx(6000.0)
    assert trajectory[-1].balance == pytest.approx(expected_final, rel=1e-12)
    assert trajectory[-1].balance / trajectory[-1].total_invested - 1 > 0


def test_starting_balance_carries_through_flat_market():
    trajectory = simulate_growth(0.0, 0.0, 0.0, 5, 10000.0)
    assert len(trajectory) == 60
    for snapshot in trajectory:
        assert snapshot.balance == pytest.approx(10000.0)
        assert snapshot.total_invested == 10000.0
        assert snapshot.share_price == pytest.approx(INITIAL_SHARE_PRICE)


def test_balance_equals_shares_times_price():
    salary = generate_salary_schedule(3000.0, 10, {3: 0.2, 6: 0.18})
    schedule = generate_investment_schedule(salary, 15.0)
    trajectory = simulate_growth(schedule, 8.0, 25.0, 10, 5000.0, sampler=NormalSampler(seed=7))

    for snapshot in trajectory:
        assert snapshot.balance == pytest.approx(snapshot.total_shares * snapshot.share_price, rel=1e-12)
        assert snapshot.shares_bought == pytest.approx(snapshot.invested / snapshot.share_price)


def test_total_invested_is_monotone_and_sums_contributions():
    schedule = generate_investment_schedule(generate_salary_schedule(2500.0, 6, {2: 0.3}), 12.0)
    trajectory = simulate_growth(schedule, 6.0, 18.0, 6, 2000.0, sampler=NormalSampler(seed=99))

    invested = [s.total_invested for s in trajectory]
    assert all(b >= a for a, b in zip(invested, invested[1:]))
    assert invested[-1] == pytest.approx(2000.0 + sum(schedule))


def test_dca_buys_more_shares_when_price_is_low():
    down_then_up = ScriptedSampler([-3.0] * 12 + [3.0] * 12)
    trajectory = simulate_growth(100.0, 5.0, 20.0, 2, 0.0, sampler=down_then_up)
    low_month = min(trajectory, key=lambda s: s.share_price)
    high_month = max(trajectory, key=lambda s: s.share_price)
    assert low_month.shares_bought > high_month.shares_bought


def test_same_seed_reproduces_stochastic_path():
    a = simulate_growth(300.0, 7.0, 15.0, 5, 0.0, sampler=NormalSampler(seed=2024))
    b = simulate_growth(300.0, 7.0, 15.0, 5, 0.0, sampler=NormalSampler(seed=2024))
    c = simulate_growth(300.0, 7.0, 15.0, 5, 0.0, sampler=NormalSampler(seed=2025))
    assert a == b
    assert a != c


@pytest.mark.parametrize(
    "kwargs",
    [
        {"total_years": 0},
        {"total_years": -2},
        {"annual_vol_pct": -1.0},
        {"annual_return_pct": -100.0},
        {"starting_balance": -5.0},
        {"contributions": -10.0},
        {"contributions": [100.0] * 11},
        {"contributions": [100.0] * 11 + [-1.0]},
    ],
)
def test_invalid_inputs_are_rejected_up_front(kwargs):
    params = {
        "contributions": 100.0,
        "annual_return_pct": 7.0,
        "annual_vol_pct": 10.0,
        "total_years": 1,
        "starting_balance": 0.0,
    }
    params.update(kwargs)
    with pytest.raises(InvalidConfigurationError):
        simulate_growth(sampler=ExplodingSampler(), **params)


def test_drift_policies():
    ito_drift, ito_std = drift_parameters(7.0, 20.0, GrowthModel.ITO)
    median_drift, median_std = drift_parameters(7.0, 20.0, GrowthModel.MEDIAN)

    assert ito_std == median_std == pytest.approx(0.2 / math.sqrt(12))
    assert median_drift == pytest.approx(math.log(1.07) / 12)
    assert ito_drift == pytest.approx((math.log(1.07) - 0.5 * 0.2**2) / 12)


def _terminal_values(growth_model, paths=2000):
    return np.array(
        [
            simulate_growth(
                0.0, 7.0, 20.0, 1, 100.0,
                sampler=NormalSampler(seed=seed),
                growth_model=growth_model,
            )[-1].balance
            for seed in range(paths)
        ]
    )


def test_ito_policy_targets_the_mean():
    values = _terminal_values(GrowthModel.ITO)
    assert abs(values.mean() - 107.0) < 2.0
    assert abs(np.median(values) - 107.0 * math.exp(-0.02)) < 2.0


def test_median_policy_targets_the_median():
    values = _terminal_values(GrowthModel.MEDIAN)
    assert abs(np.median(values) - 107.0) < 2.0


def test_mean_reversion_raises_drift_after_a_bad_year():
    sampler = ScriptedSampler([-2.0] * 12)
    trajectory = simulate_growth(
        0.0, 7.0, 20.0, 3, 1000.0,
        sampler=sampler,
        growth_model=GrowthModel.MEAN_REVERSION,
        mean_reversion_strength=-0.35,
    )
    base_drift, _ = drift_parameters(7.0, 20.0, GrowthModel.MEAN_REVERSION)

    assert sampler.means[:12] == [base_drift] * 12

    realized = trajectory[11].balance / 1000.0 - 1
    expected_drift = base_drift + 0.35 * (0.07 - realized) / 12
    assert realized < 0.07
    assert sampler.means[12:24] == pytest.approx([expected_drift] * 12)
    assert sampler.means[12] > base_drift


def test_mean_reversion_is_inactive_for_other_policies():
    sampler = ScriptedSampler([-2.0] * 12)
    simulate_growth(0.0, 7.0, 20.0, 3, 1000.0, sampler=sampler, growth_model=GrowthModel.ITO)
    base_drift, _ = drift_parameters(7.0, 20.0, GrowthModel.ITO)
    assert sampler.means == [base_drift] * 36


def test_extreme_volatility_is_not_clamped():
    trajectory = simulate_growth(100.0, 10.0, 5000.0, 2, 100.0, sampler=NormalSampler(seed=3))
    assert len(trajectory) == 24
    assert all(s.balance >= 0 or math.isnan(s.balance) for s in trajectory)


def test_simulator_uses_configured_seed_and_benchmark_is_zero_vol():
    config = SimulationConfig(
        monthly_amount=200, annual_return_pct=6, annual_vol_pct=15,
        total_years=2, starting_balance=1000, seed=11,
    )
    simulator = GrowthSimulator(config)
    assert simulator.main_seed == 11
    assert simulator.run_single_path() == GrowthSimulator(config).run_single_path()
    assert simulator.run_benchmark() == simulate_growth(200.0, 6.0, 0.0, 2, 1000.0)


def test_monte_carlo_batch_shapes():
    config = SimulationConfig(
        monthly_amount=100, annual_return_pct=7, annual_vol_pct=15,
        total_years=2, seed=5, num_simulations=30,
    )
    summary_df, pct_df, samples = GrowthSimulator(config).run_monte_carlo_simulations()

    assert len(summary_df) == 30
    assert list(summary_df.columns) == ["Final Balance", "Total Invested", "Annualized Return %"]
    assert (summary_df["Total Invested"] == 2400.0).all()
    assert pct_df.shape == (25, 7)
    assert (pct_df[0.05] <= pct_df[0.95]).all()
    assert len(samples) == 5
    assert all(len(path) == 25 for path in samples)
