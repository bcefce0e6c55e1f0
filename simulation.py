import numpy as np
import pandas as pd
import multiprocessing
from typing import Dict, List, Optional, Sequence, Tuple, Union
from loguru import logger
from pydantic import BaseModel, ConfigDict

from analytics import annualized_return_pct
from config import GrowthModel, InvalidConfigurationError, SimulationConfig
from constants import (
    INITIAL_SHARE_PRICE,
    MEAN_REVERSION_STRENGTH,
    MONTHS_PER_YEAR,
    NUM_SAMPLE_PATHS,
    TRAJECTORY_PERCENTILES,
)
from sampling import NormalSampler
from schedules import (
    ContributionSource,
    build_contribution_source,
    contribution_for_month,
)
from utils import _generate_seed_from_timestamp


class MonthlySnapshot(BaseModel):
    """State of the portfolio at the end of one simulated month (1-based)."""

    model_config = ConfigDict(frozen=True)

    month: int
    monthly_return: float
    invested: float
    total_invested: float
    balance: float
    share_price: float
    shares_bought: float
    total_shares: float


def validate_simulation_inputs(
    contributions: ContributionSource,
    annual_return_pct: float,
    annual_vol_pct: float,
    total_years: int,
    starting_balance: float,
) -> None:
    """Rejects malformed inputs before any month is simulated."""
    if isinstance(total_years, bool) or not isinstance(total_years, (int, np.integer)):
        raise InvalidConfigurationError(
            f"total_years must be an integer, got {total_years!r}."
        )
    if total_years < 1:
        raise InvalidConfigurationError(f"total_years must be >= 1, got {total_years}.")
    if not annual_vol_pct >= 0:
        raise InvalidConfigurationError(
            f"annual_vol_pct must be >= 0, got {annual_vol_pct}."
        )
    if not annual_return_pct > -100:
        raise InvalidConfigurationError(
            f"annual_return_pct must be greater than -100, got {annual_return_pct}."
        )
    if not starting_balance >= 0:
        raise InvalidConfigurationError(
            f"starting_balance must be >= 0, got {starting_balance}."
        )

    if isinstance(contributions, (int, float)):
        if not contributions >= 0:
            raise InvalidConfigurationError(
                f"Monthly contribution must be >= 0, got {contributions}."
            )
        return

    expected_months = total_years * MONTHS_PER_YEAR
    if len(contributions) != expected_months:
        raise InvalidConfigurationError(
            f"Contribution schedule has {len(contributions)} entries, expected {expected_months}."
        )
    if any(not amount >= 0 for amount in contributions):
        raise InvalidConfigurationError(
            "Contribution schedule amounts must be non-negative."
        )


def drift_parameters(
    annual_return_pct: float,
    annual_vol_pct: float,
    growth_model: GrowthModel = GrowthModel.ITO,
) -> Tuple[float, float]:
    """
    Monthly log-drift and monthly standard deviation of the log-return.

    ITO subtracts 0.5 * sigma^2 so the expected compounded value matches the requested
    return; MEDIAN and MEAN_REVERSION leave it out so the median outcome does.
    """
    annual_vol = annual_vol_pct / 100
    monthly_std_dev = annual_vol / np.sqrt(MONTHS_PER_YEAR)
    annual_drift = np.log(1 + annual_return_pct / 100)
    if GrowthModel(growth_model) == GrowthModel.ITO:
        annual_drift -= 0.5 * annual_vol * annual_vol
    return float(annual_drift / MONTHS_PER_YEAR), float(monthly_std_dev)


def _prior_year_return(
    trajectory: Sequence[MonthlySnapshot], starting_balance: float, month: int
) -> Optional[float]:
    """
    Realized market return of the 12 months before ``month``, net of that year's contributions.

    Returns None when the year had nothing invested to measure against.
    """
    end_balance = trajectory[month - 2].balance
    start_idx = month - MONTHS_PER_YEAR - 2
    start_balance = trajectory[start_idx].balance if start_idx >= 0 else starting_balance
    year_contributions = sum(
        s.invested for s in trajectory[month - MONTHS_PER_YEAR - 1 : month - 1]
    )
    base = start_balance + year_contributions
    if base <= 0:
        return None
    return (end_balance - start_balance - year_contributions) / base


def simulate_growth(
    contributions: ContributionSource,
    annual_return_pct: float,
    annual_vol_pct: float,
    total_years: int,
    starting_balance: float = 0.0,
    sampler: Optional[NormalSampler] = None,
    growth_model: GrowthModel = GrowthModel.ITO,
    mean_reversion_strength: float = MEAN_REVERSION_STRENGTH,
) -> List[MonthlySnapshot]:
    """
    Simulates one month-by-month trajectory with share-based dollar-cost averaging.

    Each month the share price grows by the month's factor, the month's contribution
    buys shares at the new price, and the balance is total shares times price.

    Args:
        contributions: Fixed monthly amount, or one amount per month (total_years * 12).
        annual_return_pct: Expected annual return in percent.
        annual_vol_pct: Annual volatility in percent. 0 gives exact deterministic
            compounding and draws nothing from the sampler.
        total_years: Horizon in whole years.
        starting_balance: Invested at month 0 at the initial share price.
        sampler: Source of normal draws. A fresh unseeded sampler is used if omitted.
        growth_model: Drift policy, see ``config.GrowthModel``.
        mean_reversion_strength: Used by GrowthModel.MEAN_REVERSION only.

    Returns:
        total_years * 12 snapshots, month 1 first.

    Raises:
        InvalidConfigurationError: If any input is malformed.
    """
    validate_simulation_inputs(
        contributions, annual_return_pct, annual_vol_pct, total_years, starting_balance
    )
    growth_model = GrowthModel(growth_model)

    deterministic = annual_vol_pct == 0
    if not deterministic and sampler is None:
        sampler = NormalSampler()

    base_drift, monthly_std_dev = drift_parameters(
        annual_return_pct, annual_vol_pct, growth_model
    )
    deterministic_factor = (1 + annual_return_pct / 100) ** (1 / MONTHS_PER_YEAR)
    expected_annual_return = float(np.expm1(base_drift * MONTHS_PER_YEAR))
    mean_reverting = growth_model == GrowthModel.MEAN_REVERSION and not deterministic

    total_months = total_years * MONTHS_PER_YEAR
    # numpy scalars: under/overflow yields 0/inf/nan instead of raising
    share_price = np.float64(INITIAL_SHARE_PRICE)
    total_shares = np.float64(starting_balance) / share_price
    total_invested = float(starting_balance)
    monthly_drift = base_drift

    trajectory: List[MonthlySnapshot] = []
    for m_idx in range(1, total_months + 1):
        amount = contribution_for_month(contributions, m_idx - 1)

        if mean_reverting and m_idx > MONTHS_PER_YEAR and m_idx % MONTHS_PER_YEAR == 1:
            realized = _prior_year_return(trajectory, starting_balance, m_idx)
            deviation = 0.0 if realized is None else expected_annual_return - realized
            monthly_drift = (
                base_drift - mean_reversion_strength * deviation / MONTHS_PER_YEAR
            )
            logger.debug(
                f"Month {m_idx}: prior-year return {realized}, deviation {deviation:.4f}, drift {monthly_drift:.6f}"
            )

        if deterministic:
            growth_factor = np.float64(deterministic_factor)
        else:
            growth_factor = np.exp(sampler.sample(monthly_drift, monthly_std_dev))

        share_price = share_price * growth_factor
        shares_bought = np.divide(amount, share_price)
        total_shares = total_shares + shares_bought
        total_invested += amount

        trajectory.append(
            MonthlySnapshot(
                month=m_idx,
                monthly_return=float(growth_factor - 1),
                invested=amount,
                total_invested=total_invested,
                balance=float(total_shares * share_price),
                share_price=float(share_price),
                shares_bought=float(shares_bought),
                total_shares=float(total_shares),
            )
        )

    return trajectory


class GrowthSimulator:
    """
    Runs the growth model for one configuration.

    Every stochastic path is seeded from the main seed, so a run can be replayed
    from the seed that is logged at construction.
    """

    def __init__(
        self, params_model: SimulationConfig, main_seed_override: Optional[int] = None
    ):
        self.params_model = params_model.model_copy(deep=True)

        if main_seed_override is not None:
            self.main_seed = main_seed_override
        elif self.params_model.seed is not None:
            self.main_seed = self.params_model.seed
        else:
            self.main_seed = _generate_seed_from_timestamp()

        self.contributions = build_contribution_source(self.params_model)
        logger.info(
            f"Simulator initialized for scenario '{self.params_model.Nickname}' with main seed: {self.main_seed}"
        )

    def _simulate(
        self, annual_vol_pct: float, sampler: Optional[NormalSampler]
    ) -> List[MonthlySnapshot]:
        p = self.params_model
        return simulate_growth(
            self.contributions,
            p.annual_return_pct,
            annual_vol_pct,
            p.total_years,
            p.starting_balance,
            sampler=sampler,
            growth_model=p.growth_model,
            mean_reversion_strength=p.mean_reversion_strength,
        )

    def run_single_path(self, path_seed: Optional[int] = None) -> List[MonthlySnapshot]:
        seed = self.main_seed if path_seed is None else path_seed
        return self._simulate(self.params_model.annual_vol_pct, NormalSampler(seed))

    def run_benchmark(self) -> List[MonthlySnapshot]:
        """Same contributions, return, horizon and starting balance with volatility forced to 0."""
        return self._simulate(0.0, None)

    def _run_path_summary(self, path_seed: int) -> Dict[str, Union[float, List[float]]]:
        p = self.params_model
        trajectory = self.run_single_path(path_seed)
        last = trajectory[-1]
        return {
            "Final Balance": last.balance,
            "Total Invested": last.total_invested,
            "Annualized Return %": annualized_return_pct(
                last.balance, last.total_invested, p.total_years
            ),
            "Trajectory": [p.starting_balance] + [s.balance for s in trajectory],
        }

    def run_monte_carlo_simulations(
        self, num_simulations: Optional[int] = None
    ) -> Tuple[pd.DataFrame, Optional[pd.DataFrame], Optional[List[List[float]]]]:
        """
        Runs independent paths, either sequentially or in parallel.

        Returns the per-path summary, the monthly balance percentiles (rows are months
        0..N, columns are percentiles) and a few sample paths.
        """
        if num_simulations is None:
            num_simulations = self.params_model.num_simulations
        path_seeds = [self.main_seed + i for i in range(num_simulations)]
        num_procs_to_use = (
            self.params_model.num_processes
            if self.params_model.num_processes is not None
            else 1
        )

        all_results_list: List[Dict[str, Union[float, List[float]]]]

        if num_procs_to_use <= 1:
            logger.debug(f"Running {num_simulations} paths sequentially.")
            all_results_list = [self._run_path_summary(seed) for seed in path_seeds]
        else:
            logger.debug(
                f"Running {num_simulations} paths in parallel using {num_procs_to_use} processes."
            )
            try:
                with multiprocessing.Pool(processes=num_procs_to_use) as pool:
                    all_results_list = pool.map(self._run_path_summary, path_seeds)
            except Exception as e:
                logger.error(
                    f"Multiprocessing pool error: {e}. Falling back to sequential execution.",
                    exc_info=True,
                )
                all_results_list = [self._run_path_summary(seed) for seed in path_seeds]

        summary_df = pd.DataFrame(
            [
                {
                    "Final Balance": r["Final Balance"],
                    "Total Invested": r["Total Invested"],
                    "Annualized Return %": r["Annualized Return %"],
                }
                for r in all_results_list
            ]
        )

        trajectories_raw = [r["Trajectory"] for r in all_results_list]
        if not trajectories_raw:
            return summary_df, None, None

        trajectory_df = pd.DataFrame(trajectories_raw).transpose()  # rows are months
        trajectory_percentiles_df = trajectory_df.quantile(
            TRAJECTORY_PERCENTILES, axis=1
        ).transpose()

        actual_num_to_sample = min(NUM_SAMPLE_PATHS, trajectory_df.shape[1])
        sample_trajectories_list = trajectory_df.sample(
            n=actual_num_to_sample, axis=1, random_state=self.main_seed % (2**32)
        ).values.T.tolist()

        return summary_df, trajectory_percentiles_df, sample_trajectories_list
