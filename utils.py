import datetime as _dt
import hashlib
import pandas as pd
from loguru import logger
from config import SimulationConfig
from constants import FINAL_BALANCE_PERCENTILES


def _generate_seed_from_timestamp() -> int:
    ts = _dt.datetime.now(_dt.timezone.utc).isoformat()
    return int.from_bytes(hashlib.sha256(ts.encode()).digest()[:8], "big") % (2**32 - 1)


def log_input_parameters(config: SimulationConfig) -> None:
    """Logs the input parameters for the simulation."""
    logger.info(f"--- Input Parameters For Scenario: {config.Nickname} ---")
    config_as_dict_for_logging = config.model_dump(by_alias=False)
    for key, value in config_as_dict_for_logging.items():
        if key == "Nickname":
            continue
        if key == "salary_growth":
            logger.info(f"{key.replace('_', ' ').title()}:")
            if config.salary_growth is not None:
                sg = config.salary_growth
                logger.info(
                    f"  - Net Salary: {sg.net_monthly_salary:,.2f}/mo, invested {sg.investment_rate_pct:.1f}%"
                )
                for year_index, raise_fraction in sorted(sg.milestones.items()):
                    logger.info(
                        f"  - Milestone year {year_index}: {raise_fraction * 100:+.0f}%"
                    )
            else:
                logger.info("  - None")
        elif key == "contribution_schedule":
            if value is not None:
                logger.info(
                    f"Contribution Schedule: {len(value)} months, total {sum(value):,.2f}"
                )
        elif key.endswith("_pct"):
            logger.info(f"{key.replace('_', ' ').title()}: {value:.2f}%")
        elif isinstance(value, (float, int)) and any(
            curr_kw in key for curr_kw in ["balance", "amount"]
        ):
            logger.info(f"{key.replace('_', ' ').title()}: {value:,.2f}")
        else:
            logger.info(f"{key.replace('_', ' ').title()}: {value}")
    logger.info("--- End of Input Parameters ---")


def log_run_results(config: SimulationConfig, result) -> None:
    """Logs the headline figures and yearly table of an orchestrator run result."""
    s = result.summary
    logger.info(f"--- Simulation Results for Scenario: '{config.Nickname}' ---")
    logger.info(f"Total Invested: {s.total_invested:,.2f}")
    if config.salary_mode:
        logger.info(
            f"Average Monthly Contribution: {result.average_monthly_contribution:,.2f}"
        )
    logger.info(f"Simulated Value: {s.final_balance:,.2f}")
    logger.info(f"Total Gains: {s.total_gain:,.2f} ({s.total_gain_pct:+.1f}%)")
    logger.info(f"Annualized Return: {s.annualized_return_pct:+.2f}% p.a.")
    if result.benchmark is not None:
        logger.info(f"Zero-Volatility Benchmark Value: {result.benchmark[-1].balance:,.2f}")

    logger.info("Yearly Summary:")
    for row in result.yearly_rows:
        logger.info(
            f"  {row.label}: in {row.contribution:,.0f}, return {row.period_return:,.0f} "
            f"({row.period_return_pct:+.1f}%), invested {row.total_invested:,.0f}, "
            f"value {row.value:,.0f} ({row.total_return_pct:+.1f}%)"
        )

    if result.salary_rows:
        logger.info("Salary Schedule:")
        for row in result.salary_rows:
            logger.info(
                f"  {row.label} (age {row.age}): salary {row.monthly_salary:,.2f}, "
                f"invests {row.monthly_contribution:,.2f}/mo ({row.annual_contribution:,.2f}/yr)"
                f"{', ' + row.milestone if row.milestone else ''}"
            )


def log_monte_carlo_results(config: SimulationConfig, summary_df: pd.DataFrame) -> None:
    """Logs the distribution of outcomes over a batch of independent paths."""
    logger.info(
        f"--- Monte Carlo Results for Scenario: '{config.Nickname}' ({len(summary_df)} paths) ---"
    )
    logger.info(f"Median Final Balance: {summary_df['Final Balance'].median():,.2f}")
    logger.info(
        f"Median Annualized Return: {summary_df['Annualized Return %'].median():+.2f}% p.a."
    )
    loss_prob = (summary_df["Final Balance"] < summary_df["Total Invested"]).mean() * 100.0
    logger.info(f"Probability of Ending Below Total Invested: {loss_prob:.2f}%")

    percentiles_final_balance = summary_df["Final Balance"].quantile(
        FINAL_BALANCE_PERCENTILES
    )
    logger.info("Final Balance Percentiles:")
    for p_val, value in percentiles_final_balance.items():
        logger.info(f"  {p_val * 100:.0f}th: {value:,.2f}")
