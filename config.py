import os
import json
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from loguru import logger

from constants import (
    DEFAULT_INVESTMENT_RATE_PCT,
    DEFAULT_MILESTONES,
    DEFAULT_NET_SALARY,
    DEFAULT_STARTING_AGE,
    HIGH_VOLATILITY_WARNING_PCT,
    MEAN_REVERSION_STRENGTH,
    MONTHS_PER_YEAR,
)


class ConfigurationError(Exception):
    """Raised when the configuration file cannot be loaded or parsed."""


class InvalidConfigurationError(ConfigurationError, ValueError):
    """Raised when simulation inputs are rejected before any simulation work starts."""


class GrowthModel(str, Enum):
    """
    Drift policy of a run. Exactly one applies per run, the benchmark included.

    ITO:            ln(1 + r) - 0.5 * sigma^2, the mean outcome matches the requested return.
    MEDIAN:         ln(1 + r), the median outcome matches the requested return.
    MEAN_REVERSION: MEDIAN drift plus a yearly correction opposite to the prior year's deviation.
    """

    ITO = "ito"
    MEDIAN = "median"
    MEAN_REVERSION = "mean_reversion"


class SalaryGrowthConfig(BaseModel):
    """Salary-derived contributions: a share of a net income that steps up at milestone years."""

    net_monthly_salary: float = Field(
        DEFAULT_NET_SALARY, ge=0, description="Starting net monthly income."
    )
    investment_rate_pct: float = Field(
        DEFAULT_INVESTMENT_RATE_PCT,
        ge=0.0,
        le=100.0,
        description="Percentage of each month's net income that is invested.",
    )
    milestones: Dict[int, float] = Field(
        default_factory=lambda: dict(DEFAULT_MILESTONES),
        description="Year index (0-based) -> raise fraction applied at the first month of that year.",
    )

    @field_validator("milestones")
    @classmethod
    def check_milestones(cls, v: Dict[int, float]) -> Dict[int, float]:
        for year_index, raise_fraction in v.items():
            if year_index < 0:
                raise ValueError(f"Milestone year index must be >= 0, got {year_index}.")
            if raise_fraction <= -1.0:
                raise ValueError(
                    f"Milestone raise for year {year_index} must be greater than -100%, got {raise_fraction * 100:.1f}%."
                )
        return v


class SimulationConfig(BaseModel):
    """Inputs of one projection run. Immutable for the duration of the run."""

    Nickname: str = Field(
        "DefaultScenario",
        alias="scenario",
        description="A nickname for this simulation scenario.",
    )
    monthly_amount: float = Field(
        0.0, ge=0, description="Fixed monthly contribution (fixed mode)."
    )
    contribution_schedule: Optional[List[float]] = Field(
        None,
        description="Explicit per-month contributions, exactly total_years * 12 entries.",
    )
    salary_growth: Optional[SalaryGrowthConfig] = Field(
        None, description="If set, contributions are derived from a salary schedule."
    )
    annual_return_pct: float = Field(
        ..., gt=-100.0, description="Expected annual return in percent."
    )
    annual_vol_pct: float = Field(
        ..., ge=0.0, description="Annual volatility in percent."
    )
    total_years: int = Field(..., gt=0)
    starting_balance: float = Field(0.0, ge=0)
    starting_age: int = Field(DEFAULT_STARTING_AGE, ge=0)

    growth_model: GrowthModel = Field(GrowthModel.ITO)
    mean_reversion_strength: float = Field(MEAN_REVERSION_STRENGTH, le=0.0)
    include_benchmark: bool = Field(True)

    seed: Optional[int] = Field(None, ge=0)
    num_simulations: int = Field(1, gt=0)
    num_processes: Optional[int] = Field(1, ge=1)

    model_config = {"validate_by_name": True, "validate_assignment": True}

    @field_validator("contribution_schedule")
    @classmethod
    def check_schedule_amounts(
        cls, v: Optional[List[float]]
    ) -> Optional[List[float]]:
        if v is not None and any(amount < 0 for amount in v):
            raise ValueError("Contribution schedule amounts must be non-negative.")
        return v

    @field_validator("annual_vol_pct")
    @classmethod
    def check_volatility(cls, v: float, info: ValidationInfo) -> float:
        if v > HIGH_VOLATILITY_WARNING_PCT:
            scen_name = info.data.get("Nickname", "N/A")
            logger.warning(
                f"Annual volatility ({v:.1f}%) is very high for scenario '{scen_name}'; balances may overflow."
            )
        return v

    @model_validator(mode="after")
    def check_contribution_source(self) -> "SimulationConfig":
        if self.contribution_schedule is not None and self.salary_growth is not None:
            raise ValueError(
                "contribution_schedule and salary_growth are mutually exclusive."
            )
        if self.contribution_schedule is not None:
            expected = self.total_months
            if len(self.contribution_schedule) != expected:
                raise ValueError(
                    f"contribution_schedule has {len(self.contribution_schedule)} entries, "
                    f"expected {expected} (total_years * {MONTHS_PER_YEAR})."
                )
        return self

    @property
    def total_months(self) -> int:
        return self.total_years * MONTHS_PER_YEAR

    @property
    def salary_mode(self) -> bool:
        return self.salary_growth is not None


def load_config_from_json(file_path: str) -> Dict[str, Any]:
    """Loads and returns the configuration dictionary from a JSON file."""
    if not os.path.exists(file_path):
        raise ConfigurationError(f"Configuration file not found at: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Error parsing JSON file '{file_path}': {e}"
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Unexpected error reading config file '{file_path}': {e}"
        ) from e


def parse_simulation_config(data: Dict[str, Any]) -> SimulationConfig:
    """Validates raw configuration data, reporting every problem as InvalidConfigurationError."""
    try:
        return SimulationConfig.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidConfigurationError(f"Invalid configuration: {problems}") from e
