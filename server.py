import asyncio
import json
import math
import os
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, Field

from analytics import SummaryRow
from config import InvalidConfigurationError, SimulationConfig, parse_simulation_config
from constants import FINAL_BALANCE_PERCENTILES
from orchestrator import RunOrchestrator, RunResult
from simulation import GrowthSimulator


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class ChartData(BaseModel):
    months: List[int]
    ages: List[float]
    balance: List[Optional[float]]
    total_invested: List[Optional[float]]
    benchmark: Optional[List[Optional[float]]] = None
    share_price_index: List[Optional[float]]
    total_return_pct: List[Optional[float]]
    trailing_12m_pct: List[Optional[float]]
    history: List[List[Optional[float]]]


class SummaryRowData(BaseModel):
    period: int
    label: str
    contribution: Optional[float]
    period_return: Optional[float]
    period_return_pct: Optional[float]
    total_invested: Optional[float]
    value: Optional[float]
    total_return: Optional[float]
    total_return_pct: Optional[float]


class SalaryRowData(BaseModel):
    year: int
    label: str
    age: int
    monthly_salary: Optional[float]
    monthly_contribution: Optional[float]
    annual_contribution: Optional[float]
    milestone: Optional[str] = None


class SummaryData(BaseModel):
    average_monthly_contribution: Optional[float]
    total_invested: Optional[float]
    final_balance: Optional[float]
    total_gain: Optional[float]
    total_gain_pct: Optional[float]
    annualized_return_pct: Optional[float]


class SimulationResponse(BaseModel):
    scenario: str
    seed: int
    summary: SummaryData
    chart: ChartData
    granularity: Literal["yearly", "monthly"]
    rows: List[SummaryRowData]
    salary_rows: List[SalaryRowData]


class MonteCarloResponse(BaseModel):
    scenario: str
    seed: int
    num_simulations: int
    months: List[int]
    percentiles: Dict[str, List[Optional[float]]]
    sample_paths: List[List[Optional[float]]]
    final_balance_percentiles: Dict[str, Optional[float]]
    median_annualized_return_pct: Optional[float]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class SimulationRequest(BaseModel):
    config: Dict[str, Any] = Field(
        ...,
        description="Simulation configuration (same schema as config.json).",
    )
    granularity: Literal["yearly", "monthly"] = Field(
        "yearly", description="Aggregation of the returned summary rows."
    )


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def _configure_logging() -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        level="INFO",
        colorize=True,
    )
    logger.add(
        "server.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
        level="INFO",
        rotation="10 MB",
    )


# ---------------------------------------------------------------------------
# App lifecycle
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(_app: FastAPI):
    _configure_logging()
    logger.info("DCA Growth Projection API starting up")
    yield
    logger.info("DCA Growth Projection API shutting down")


app = FastAPI(
    title="DCA Growth Projection API",
    description="Backend API for projecting recurring investment plans and returning data for frontend visualisation.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

orchestrator = RunOrchestrator()
_orchestrator_lock = asyncio.Lock()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _safe_float(value: Optional[float]) -> Optional[float]:
    """Convert NaN / Inf to None so JSON serialisation stays valid."""
    if value is None or math.isnan(value) or math.isinf(value):
        return None
    return round(value, 2)


def _safe_series(values: List[Optional[float]]) -> List[Optional[float]]:
    return [_safe_float(v) for v in values]


def _safe_row(row: BaseModel) -> Dict[str, Any]:
    return {
        key: _safe_float(value) if isinstance(value, float) else value
        for key, value in row.model_dump().items()
    }


def _parse_config(raw: Dict[str, Any]) -> SimulationConfig:
    try:
        return parse_simulation_config(raw)
    except InvalidConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _build_simulation_response(
    result: RunResult, granularity: str, rows: List[SummaryRow]
) -> Dict[str, Any]:
    chart = result.chart
    summary = result.summary
    return {
        "scenario": result.config.Nickname,
        "seed": result.seed,
        "summary": {
            "average_monthly_contribution": _safe_float(
                result.average_monthly_contribution
            ),
            "total_invested": _safe_float(summary.total_invested),
            "final_balance": _safe_float(summary.final_balance),
            "total_gain": _safe_float(summary.total_gain),
            "total_gain_pct": _safe_float(summary.total_gain_pct),
            "annualized_return_pct": _safe_float(summary.annualized_return_pct),
        },
        "chart": {
            "months": chart.months,
            "ages": chart.ages,
            "balance": _safe_series(chart.balance),
            "total_invested": _safe_series(chart.total_invested),
            "benchmark": (
                _safe_series(chart.benchmark) if chart.benchmark is not None else None
            ),
            "share_price_index": _safe_series(chart.share_price_index),
            "total_return_pct": _safe_series(chart.total_return_pct),
            "trailing_12m_pct": _safe_series(chart.trailing_12m_pct),
            "history": [_safe_series(entry.balances) for entry in result.history],
        },
        "granularity": granularity,
        "rows": [_safe_row(row) for row in rows],
        "salary_rows": [_safe_row(row) for row in result.salary_rows],
    }


def _run_monte_carlo(config: SimulationConfig) -> Dict[str, Any]:
    """Heavy, synchronous work -- called via ``asyncio.to_thread``."""
    simulator = GrowthSimulator(config)
    logger.info(
        f"Running {config.num_simulations} paths for '{config.Nickname}'"
    )
    summary_df, traj_pct_df, sample_trajectories = (
        simulator.run_monte_carlo_simulations()
    )
    if summary_df.empty or traj_pct_df is None:
        raise ValueError(f"Simulation for '{config.Nickname}' yielded no results.")

    pct_raw = summary_df["Final Balance"].quantile(FINAL_BALANCE_PERCENTILES)
    return {
        "scenario": config.Nickname,
        "seed": simulator.main_seed,
        "num_simulations": len(summary_df),
        "months": list(range(len(traj_pct_df))),
        "percentiles": {
            f"p{round(col * 100)}": _safe_series([float(v) for v in traj_pct_df[col]])
            for col in traj_pct_df.columns
        },
        "sample_paths": [_safe_series(path) for path in sample_trajectories or []],
        "final_balance_percentiles": {
            f"p{round(k * 100)}": _safe_float(float(v)) for k, v in pct_raw.items()
        },
        "median_annualized_return_pct": _safe_float(
            float(summary_df["Annualized Return %"].median())
        ),
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/api/health")
async def health_check():
    return {"status": "ok"}


@app.get("/api/config/default")
async def get_default_config():
    """Return the bundled ``config.json`` as a ready-to-use template."""
    config_path = os.path.join(os.path.dirname(__file__), "config.json")
    if not os.path.exists(config_path):
        raise HTTPException(status_code=404, detail="Default config.json not found.")
    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


@app.post("/api/validate")
async def validate_config(body: SimulationRequest):
    """Validate a configuration without running any simulation."""
    config = _parse_config(body.config)
    return {"valid": True, "scenario": config.Nickname}


@app.post("/api/simulate", response_model=SimulationResponse)
async def simulate(body: SimulationRequest):
    """Run one stochastic path (plus benchmark) and return chart and table data."""
    config = _parse_config(body.config)
    logger.info(f"Received simulation request for scenario '{config.Nickname}'")

    try:
        async with _orchestrator_lock:
            result = await asyncio.to_thread(orchestrator.run, config)
            rows = orchestrator.summary_rows(body.granularity)
    except InvalidConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"Simulation failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Simulation error: {e}")

    logger.info(f"Simulation complete for '{config.Nickname}'")
    return _build_simulation_response(result, body.granularity, rows)


@app.post("/api/history/clear")
async def clear_history():
    async with _orchestrator_lock:
        orchestrator.clear_history()
    return {"cleared": True}


@app.post("/api/monte-carlo", response_model=MonteCarloResponse)
async def monte_carlo(body: SimulationRequest):
    """Run a batch of independent paths and return percentile bands."""
    config = _parse_config(body.config)
    logger.info(f"Received Monte Carlo request for scenario '{config.Nickname}'")

    try:
        result = await asyncio.to_thread(_run_monte_carlo, config)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Monte Carlo run failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Simulation error: {e}")

    logger.info(f"Monte Carlo run complete for '{config.Nickname}'")
    return result


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    _configure_logging()
    uvicorn.run("server:app", host="0.0.0.0", port=8080, reload=True)
