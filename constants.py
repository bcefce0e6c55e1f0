
# constants.py

MONTHS_PER_YEAR: int = 12

# Share accounting starts every path from the same arbitrary price
INITIAL_SHARE_PRICE: float = 100.0

# Negative by convention: a below-expectation year raises the following drift
MEAN_REVERSION_STRENGTH: float = -0.35

HISTORY_CAPACITY: int = 10
HIGH_VOLATILITY_WARNING_PCT: float = 50.0

DEFAULT_STARTING_AGE: int = 25
DEFAULT_NET_SALARY: float = 3000.0
DEFAULT_INVESTMENT_RATE_PCT: float = 10.0
DEFAULT_MILESTONES = {3: 0.20, 6: 0.18, 10: 0.22, 15: 0.25}

TRAJECTORY_PERCENTILES = [0.05, 0.10, 0.25, 0.50, 0.75, 0.90, 0.95]
FINAL_BALANCE_PERCENTILES = [0.01, 0.05, 0.10, 0.25, 0.50, 0.75, 0.90, 0.95, 0.99]
NUM_SAMPLE_PATHS: int = 5
