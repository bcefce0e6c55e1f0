import sys
import datetime as _dt
import multiprocessing
from loguru import logger

from config import (
    ConfigurationError,
    InvalidConfigurationError,
    load_config_from_json,
    parse_simulation_config,
)
from orchestrator import RunOrchestrator
from simulation import GrowthSimulator
from utils import log_input_parameters, log_monte_carlo_results, log_run_results


def main():
    """
    Main execution entry point.

    Loads configuration, runs one stochastic path with its zero-volatility benchmark,
    logs the results and, if more than one simulation is configured, a Monte Carlo batch.
    """
    current_timestamp_str = _dt.datetime.now().strftime("%Y%m%d_%H%M%S")
    log_filename = f"dca_proj_log_{current_timestamp_str}.log"

    # Configure loguru
    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level="INFO",
        colorize=True,
    )
    logger.add(
        log_filename,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
        level="INFO",
        rotation="10 MB",
    )

    logger.info(f"Logging initialized. Log file: {log_filename}")

    # --- LOAD CONFIGURATION FROM JSON ---
    if len(sys.argv) > 1:
        json_filename = sys.argv[1]
    else:
        json_filename = "config.json"
        logger.info(
            f"No config file specified via argument. Defaulting to '{json_filename}'"
        )

    logger.info(f"Loading configuration from: {json_filename}")
    try:
        config_dict = load_config_from_json(json_filename)
        config = parse_simulation_config(config_dict)
        logger.info(
            f"Configuration for scenario '{config.Nickname}' loaded and validated successfully."
        )
    except InvalidConfigurationError as e:
        logger.error(f"Configuration validation error: {e}")
        return
    except ConfigurationError as e:
        logger.error(f"Configuration file error: {e}")
        return

    log_input_parameters(config)

    orchestrator = RunOrchestrator()
    result = orchestrator.run(config)
    log_run_results(config, result)

    if config.num_simulations > 1:
        logger.info(
            f"--- Running Monte Carlo batch for '{config.Nickname}' ({config.num_simulations} paths) ---"
        )
        simulator = GrowthSimulator(config)
        summary_df, _, _ = simulator.run_monte_carlo_simulations()
        if summary_df.empty:
            logger.error(f"Monte Carlo batch for '{config.Nickname}' yielded no results.")
        else:
            log_monte_carlo_results(config, summary_df)

    logger.info(
        f"--- Main execution finished for scenario '{config.Nickname}'. Log: {log_filename} ---"
    )


if __name__ == "__main__":
    multiprocessing.freeze_support()
    main()
