from typing import Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from config import SimulationConfig
from constants import MONTHS_PER_YEAR

ContributionSource = Union[float, List[float]]


class SalaryRow(BaseModel):
    """One year of the salary/contribution table."""

    year: int
    label: str
    age: int
    monthly_salary: float
    monthly_contribution: float
    annual_contribution: float
    milestone: Optional[str] = None


def generate_salary_schedule(
    starting_net_monthly: float,
    total_years: int,
    milestones: Mapping[int, float],
) -> List[float]:
    """
    Monthly net income for every month of the horizon.

    Salary is flat within a year. A milestone at year index k raises the running
    salary by its fraction once, before year k's twelve entries are written.
    """
    schedule: List[float] = []
    current_salary = starting_net_monthly

    for year in range(total_years):
        raise_fraction = milestones.get(year)
        if raise_fraction:
            current_salary *= 1 + raise_fraction
        schedule.extend([current_salary] * MONTHS_PER_YEAR)

    return schedule


def generate_investment_schedule(
    salary_schedule: Sequence[float], investment_rate_pct: float
) -> List[float]:
    rate = investment_rate_pct / 100
    return [salary * rate for salary in salary_schedule]


def build_contribution_source(config: SimulationConfig) -> ContributionSource:
    """Fixed amount, explicit schedule or salary-derived schedule, depending on the config."""
    if config.salary_growth is not None:
        salary_schedule = generate_salary_schedule(
            config.salary_growth.net_monthly_salary,
            config.total_years,
            config.salary_growth.milestones,
        )
        return generate_investment_schedule(
            salary_schedule, config.salary_growth.investment_rate_pct
        )
    if config.contribution_schedule is not None:
        return list(config.contribution_schedule)
    return config.monthly_amount


def contribution_for_month(source: ContributionSource, month_index: int) -> float:
    """Contribution of the 0-based month, whichever mode the source is in."""
    if isinstance(source, (int, float)):
        return float(source)
    return source[month_index]


def average_monthly_contribution(source: ContributionSource, total_months: int) -> float:
    if isinstance(source, (int, float)):
        return float(source)
    if total_months <= 0:
        return 0.0
    return sum(source[:total_months]) / total_months


def milestone_label(raise_fraction: Optional[float]) -> Optional[str]:
    if not raise_fraction:
        return None
    return f"{'+' if raise_fraction > 0 else ''}{raise_fraction * 100:.0f}% raise"


def salary_schedule_rows(
    salary_schedule: Sequence[float],
    investment_schedule: Sequence[float],
    starting_age: int,
    milestones: Mapping[int, float],
) -> List[SalaryRow]:
    rows: List[SalaryRow] = []
    years = len(salary_schedule) // MONTHS_PER_YEAR

    for year in range(years):
        month_index = year * MONTHS_PER_YEAR
        monthly_contribution = investment_schedule[month_index]
        rows.append(
            SalaryRow(
                year=year + 1,
                label=f"Year {year + 1}",
                age=starting_age + year,
                monthly_salary=salary_schedule[month_index],
                monthly_contribution=monthly_contribution,
                annual_contribution=monthly_contribution * MONTHS_PER_YEAR,
                milestone=milestone_label(milestones.get(year)),
            )
        )

    return rows


def salary_rows_for_config(config: SimulationConfig) -> List[SalaryRow]:
    """Salary table of a salary-mode config; empty otherwise."""
    if not config.salary_mode:
        return []
    salary_schedule = generate_salary_schedule(
        config.salary_growth.net_monthly_salary,
        config.total_years,
        config.salary_growth.milestones,
    )
    investment_schedule = generate_investment_schedule(
        salary_schedule, config.salary_growth.investment_rate_pct
    )
    milestones: Dict[int, float] = dict(config.salary_growth.milestones)
    return salary_schedule_rows(
        salary_schedule, investment_schedule, config.starting_age, milestones
    )
