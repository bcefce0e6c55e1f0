from __future__ import annotations

from typing import TYPE_CHECKING, List, Literal, Optional, Sequence

import numpy as np
import pandas as pd
from pydantic import BaseModel

from constants import MONTHS_PER_YEAR

if TYPE_CHECKING:
    from simulation import MonthlySnapshot

Granularity = Literal["yearly", "monthly"]


class SummaryRow(BaseModel):
    """One reporting period (year or month) of a trajectory."""

    period: int
    label: str
    contribution: float
    period_return: float
    period_return_pct: float
    total_invested: float
    value: float
    total_return: float
    total_return_pct: float


class RunSummary(BaseModel):
    total_invested: float
    final_balance: float
    total_gain: float
    total_gain_pct: float
    annualized_return_pct: float


def _safe_pct(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    """numerator / denominator * 100, and 0 wherever the denominator is <= 0. NaN passes through."""
    usable = ~(denominator <= 0)
    return np.where(usable, numerator / np.where(usable, denominator, 1.0) * 100, 0.0)


def trajectory_to_frame(trajectory: Sequence[MonthlySnapshot]) -> pd.DataFrame:
    columns = list(type(trajectory[0]).model_fields) if trajectory else ["month"]
    return pd.DataFrame([s.model_dump() for s in trajectory], columns=columns)


def total_return_pct(trajectory: Sequence[MonthlySnapshot]) -> List[float]:
    balance = np.array([s.balance for s in trajectory], dtype=float)
    invested = np.array([s.total_invested for s in trajectory], dtype=float)
    return _safe_pct(balance - invested, invested).tolist()


def trailing_12m_pct(trajectory: Sequence[MonthlySnapshot]) -> List[Optional[float]]:
    """
    Market return over the trailing 12 months, excluding that year's contributions.

    None for the first 12 snapshots, which have no full year behind them.
    """
    balance = np.array([s.balance for s in trajectory], dtype=float)
    invested = np.array([s.total_invested for s in trajectory], dtype=float)
    if len(trajectory) <= MONTHS_PER_YEAR:
        return [None] * len(trajectory)

    prev_balance = balance[:-MONTHS_PER_YEAR]
    new_money = invested[MONTHS_PER_YEAR:] - invested[:-MONTHS_PER_YEAR]
    gains = balance[MONTHS_PER_YEAR:] - prev_balance - new_money
    trailing = _safe_pct(gains, prev_balance).tolist()
    return [None] * MONTHS_PER_YEAR + trailing


def aggregate_summary_rows(
    trajectory: Sequence[MonthlySnapshot],
    starting_balance: float,
    granularity: Granularity = "yearly",
    starting_age: Optional[int] = None,
) -> List[SummaryRow]:
    """
    Groups monthly snapshots into yearly or monthly rows.

    The first period's contribution includes the starting balance and its opening
    balance is 0; later periods open at the previous period's closing value.
    """
    if granularity not in ("yearly", "monthly"):
        raise ValueError(f"Unknown granularity '{granularity}'.")
    if not trajectory:
        return []

    df = trajectory_to_frame(trajectory)
    months_per_period = MONTHS_PER_YEAR if granularity == "yearly" else 1
    df["period"] = (df["month"] - 1) // months_per_period + 1

    grouped = df.groupby("period", sort=True).agg(
        contribution=("invested", "sum"),
        total_invested=("total_invested", "last"),
        value=("balance", "last"),
    )
    grouped.loc[grouped.index[0], "contribution"] += starting_balance
    opening = grouped["value"].shift(1, fill_value=0.0)

    grouped["period_return"] = grouped["value"] - opening - grouped["contribution"]
    grouped["period_return_pct"] = _safe_pct(
        grouped["period_return"].to_numpy(), (opening + grouped["contribution"]).to_numpy()
    )
    grouped["total_return"] = grouped["value"] - grouped["total_invested"]
    grouped["total_return_pct"] = _safe_pct(
        grouped["total_return"].to_numpy(), grouped["total_invested"].to_numpy()
    )

    rows: List[SummaryRow] = []
    for period, row in grouped.iterrows():
        if granularity == "monthly":
            label = f"Month {period}"
        elif starting_age is not None:
            label = f"Age {starting_age + period}"
        else:
            label = f"Year {period}"
        rows.append(
            SummaryRow(
                period=int(period),
                label=label,
                contribution=row["contribution"],
                period_return=row["period_return"],
                period_return_pct=row["period_return_pct"],
                total_invested=row["total_invested"],
                value=row["value"],
                total_return=row["total_return"],
                total_return_pct=row["total_return_pct"],
            )
        )
    return rows


def annualized_return_pct(final_balance: float, total_invested: float, years: float) -> float:
    """CAGR of final balance over everything invested, in percent."""
    if total_invested <= 0 or years <= 0:
        return 0.0
    return ((final_balance / total_invested) ** (1 / years) - 1) * 100


def summarize_trajectory(
    trajectory: Sequence[MonthlySnapshot], starting_balance: float, total_years: int
) -> RunSummary:
    if trajectory:
        total_invested = trajectory[-1].total_invested
        final_balance = trajectory[-1].balance
    else:
        total_invested = final_balance = starting_balance

    total_gain = final_balance - total_invested
    return RunSummary(
        total_invested=total_invested,
        final_balance=final_balance,
        total_gain=total_gain,
        total_gain_pct=total_gain / total_invested * 100 if total_invested > 0 else 0.0,
        annualized_return_pct=annualized_return_pct(
            final_balance, total_invested, total_years
        ),
    )
