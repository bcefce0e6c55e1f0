from collections import deque
from typing import Deque, List, Optional

from loguru import logger
from pydantic import BaseModel

from analytics import (
    Granularity,
    RunSummary,
    SummaryRow,
    aggregate_summary_rows,
    summarize_trajectory,
    total_return_pct,
    trailing_12m_pct,
)
from config import SimulationConfig
from constants import HISTORY_CAPACITY, INITIAL_SHARE_PRICE, MONTHS_PER_YEAR
from schedules import SalaryRow, average_monthly_contribution, salary_rows_for_config
from simulation import GrowthSimulator, MonthlySnapshot


class HistoryEntry(BaseModel):
    """Balance series of an earlier run of the same configuration, kept for visual comparison."""

    run_number: int
    balances: List[float]


class ChartSeries(BaseModel):
    """
    Everything a chart renderer needs. Every series starts with the month-0 point,
    so all of them are total_months + 1 long.
    """

    months: List[int]
    ages: List[float]
    balance: List[float]
    total_invested: List[float]
    benchmark: Optional[List[float]] = None
    share_price_index: List[float]
    total_return_pct: List[float]
    trailing_12m_pct: List[Optional[float]]


class RunResult(BaseModel):
    config: SimulationConfig
    seed: int
    trajectory: List[MonthlySnapshot]
    benchmark: Optional[List[MonthlySnapshot]] = None
    chart: ChartSeries
    yearly_rows: List[SummaryRow]
    monthly_rows: List[SummaryRow]
    salary_rows: List[SalaryRow]
    average_monthly_contribution: float
    summary: RunSummary
    history: List[HistoryEntry]


def build_chart_series(
    trajectory: List[MonthlySnapshot],
    starting_balance: float,
    starting_age: int,
    benchmark: Optional[List[MonthlySnapshot]] = None,
) -> ChartSeries:
    months = list(range(len(trajectory) + 1))
    return ChartSeries(
        months=months,
        ages=[starting_age + m / MONTHS_PER_YEAR for m in months],
        balance=[starting_balance] + [s.balance for s in trajectory],
        total_invested=[starting_balance] + [s.total_invested for s in trajectory],
        benchmark=(
            [starting_balance] + [s.balance for s in benchmark]
            if benchmark is not None
            else None
        ),
        share_price_index=[INITIAL_SHARE_PRICE] + [s.share_price for s in trajectory],
        total_return_pct=[0.0] + total_return_pct(trajectory),
        trailing_12m_pct=[None] + trailing_12m_pct(trajectory),
    )


class RunOrchestrator:
    """
    Runs schedule building, simulation and analytics for one configuration at a time.

    The only state kept between runs is a bounded ring of earlier balance series.
    Re-running an unchanged configuration pushes the previous series into the ring;
    any change to the configuration empties it.
    """

    def __init__(self, history_capacity: int = HISTORY_CAPACITY):
        if history_capacity < 1:
            raise ValueError("history_capacity must be >= 1")
        self._history: Deque[HistoryEntry] = deque(maxlen=history_capacity)
        self._last_result: Optional[RunResult] = None
        self._run_count = 0

    @property
    def history(self) -> List[HistoryEntry]:
        return list(self._history)

    @property
    def last_result(self) -> Optional[RunResult]:
        return self._last_result

    def clear_history(self) -> None:
        self._history.clear()

    def _update_history(self, config: SimulationConfig) -> None:
        previous = self._last_result
        if previous is None:
            return
        if previous.config == config:
            self._history.append(
                HistoryEntry(run_number=self._run_count, balances=previous.chart.balance)
            )
            logger.debug(
                f"Re-simulating '{config.Nickname}': {len(self._history)} earlier path(s) kept."
            )
        elif self._history:
            logger.info("Configuration changed; discarding simulation history.")
            self._history.clear()

    def run(
        self, config: SimulationConfig, main_seed_override: Optional[int] = None
    ) -> RunResult:
        self._update_history(config)

        simulator = GrowthSimulator(config, main_seed_override=main_seed_override)
        trajectory = simulator.run_single_path()
        benchmark = simulator.run_benchmark() if config.include_benchmark else None

        result = RunResult(
            config=config,
            seed=simulator.main_seed,
            trajectory=trajectory,
            benchmark=benchmark,
            chart=build_chart_series(
                trajectory, config.starting_balance, config.starting_age, benchmark
            ),
            yearly_rows=aggregate_summary_rows(
                trajectory, config.starting_balance, "yearly", config.starting_age
            ),
            monthly_rows=aggregate_summary_rows(
                trajectory, config.starting_balance, "monthly"
            ),
            salary_rows=salary_rows_for_config(config),
            average_monthly_contribution=average_monthly_contribution(
                simulator.contributions, config.total_months
            ),
            summary=summarize_trajectory(
                trajectory, config.starting_balance, config.total_years
            ),
            history=self.history,
        )

        self._run_count += 1
        self._last_result = result
        return result

    def summary_rows(self, granularity: Granularity = "yearly") -> List[SummaryRow]:
        """Rows of the last run at the requested granularity, without re-simulating."""
        if self._last_result is None:
            return []
        return (
            self._last_result.yearly_rows
            if granularity == "yearly"
            else self._last_result.monthly_rows
        )
