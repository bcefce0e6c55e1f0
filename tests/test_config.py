from __future__ import annotations

import json
from pathlib import Path

import pytest

from config import (
    ConfigurationError,
    GrowthModel,
    InvalidConfigurationError,
    SimulationConfig,
    load_config_from_json,
    parse_simulation_config,
)
from constants import DEFAULT_MILESTONES

BASE = {"annual_return_pct": 7, "annual_vol_pct": 15, "total_years": 2}


def test_scenario_alias_and_defaults():
    config = parse_simulation_config({**BASE, "scenario": "Retirement"})
    assert config.Nickname == "Retirement"
    assert config.growth_model is GrowthModel.ITO
    assert config.starting_age == 25
    assert config.include_benchmark is True
    assert config.total_months == 24
    assert not config.salary_mode

    assert SimulationConfig(Nickname="ByName", **BASE).Nickname == "ByName"


@pytest.mark.parametrize(
    "overrides",
    [
        {"total_years": 0},
        {"annual_vol_pct": -1},
        {"annual_return_pct": -100},
        {"starting_balance": -1},
        {"monthly_amount": -50},
        {"growth_model": "lognormal"},
        {"seed": -3},
        {"num_simulations": 0},
        {"mean_reversion_strength": 0.5},
        {"contribution_schedule": [100.0] * 23 + [-1.0]},
        {"salary_growth": {"investment_rate_pct": 120}},
        {"salary_growth": {"milestones": {"2": -1.0}}},
    ],
)
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(InvalidConfigurationError) as excinfo:
        parse_simulation_config({**BASE, **overrides})
    assert isinstance(excinfo.value, ValueError)


def test_missing_required_field_is_reported():
    with pytest.raises(InvalidConfigurationError, match="annual_return_pct"):
        parse_simulation_config({"annual_vol_pct": 10, "total_years": 1})


def test_schedule_length_must_match_horizon():
    with pytest.raises(InvalidConfigurationError, match="expected 24"):
        parse_simulation_config({**BASE, "contribution_schedule": [100.0] * 12})

    config = parse_simulation_config({**BASE, "contribution_schedule": [100.0] * 24})
    assert len(config.contribution_schedule) == 24


def test_schedule_and_salary_growth_are_mutually_exclusive():
    with pytest.raises(InvalidConfigurationError, match="mutually exclusive"):
        parse_simulation_config(
            {
                **BASE,
                "contribution_schedule": [100.0] * 24,
                "salary_growth": {"net_monthly_salary": 3000},
            }
        )


def test_salary_growth_defaults_and_string_milestone_keys():
    config = parse_simulation_config(
        {**BASE, "salary_growth": {"milestones": {"3": 0.2, "6": 0.18}}}
    )
    assert config.salary_mode
    assert config.salary_growth.milestones == {3: 0.2, 6: 0.18}
    assert config.salary_growth.net_monthly_salary == 3000.0

    default_plan = parse_simulation_config({**BASE, "salary_growth": {}})
    assert default_plan.salary_growth.milestones == DEFAULT_MILESTONES
    assert default_plan.salary_growth.investment_rate_pct == 10.0


def test_configs_compare_by_value():
    assert parse_simulation_config(BASE) == parse_simulation_config(dict(BASE))
    assert parse_simulation_config(BASE) != parse_simulation_config({**BASE, "seed": 1})


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_config_from_json(str(tmp_path / "nope.json"))


def test_load_malformed_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Error parsing JSON"):
        load_config_from_json(str(path))


def test_load_round_trip(tmp_path):
    path = tmp_path / "plan.json"
    path.write_text(json.dumps({**BASE, "scenario": "FromFile"}), encoding="utf-8")
    config = parse_simulation_config(load_config_from_json(str(path)))
    assert config.Nickname == "FromFile"


def test_bundled_config_is_valid():
    bundled = Path(__file__).resolve().parent.parent / "config.json"
    config = parse_simulation_config(load_config_from_json(str(bundled)))
    assert config.salary_mode
    assert config.salary_growth.milestones == DEFAULT_MILESTONES
    assert config.total_years == 20
