"""
Configuration for the Gold Portfolio Simulator
Contains price constants, chart window layout, demo seed data and simulator parameters.
"""

import os
from dataclasses import dataclass, asdict, fields
from typing import Optional

# ============================================================================
# MARKET CONSTANTS
# ============================================================================

# Troy ounce to grams (fixed conversion used for every per-gram price)
OZ_TO_GRAM = 28.3495

# Spot price per troy ounce at session start
INITIAL_GOLD_PRICE = 3884.00

# Commission charged on physical bullion quotes (percent)
PHYSICAL_COMMISSION_PCT = 1.5


# ============================================================================
# CHART WINDOWS
# ============================================================================

# horizon -> capacity, seed offset from spot, seed volatility, label prefix
CHART_WINDOWS = {
    "5M": {"capacity": 60, "offset": 0.0, "volatility": 0.5, "prefix": "T"},
    "1H": {"capacity": 72, "offset": -5.0, "volatility": 1.5, "prefix": "H"},
    "4H": {"capacity": 84, "offset": -20.0, "volatility": 4.0, "prefix": "D"},
}

# The only window fed by the ticker
LIVE_HORIZON = "5M"


# ============================================================================
# DEMO SEED DATA
# ============================================================================

# Transactions shown in a fresh session's history (newest first)
DEMO_TRANSACTIONS = [
    {"id": "1", "kind": "Buy", "wallet": "Physical", "amount_grams": 10,
     "amount_usd": 2300.00, "timestamp": "2023-10-27", "status": "Completed"},
    {"id": "2", "kind": "Deposit", "wallet": "Trading", "amount_grams": None,
     "amount_usd": 5000.00, "timestamp": "2023-10-26", "status": "Completed"},
    {"id": "3", "kind": "Sell", "wallet": "Physical", "amount_grams": 5,
     "amount_usd": 1145.00, "timestamp": "2023-10-25", "status": "Completed"},
]


# ============================================================================
# SIMULATOR PARAMETERS
# ============================================================================

@dataclass
class SimulatorConfig:
    # Price walk
    initial_price: float = INITIAL_GOLD_PRICE
    tick_interval_sec: float = 2.0
    volatility: float = 0.5
    drift_reset_probability: float = 0.10
    drift_range: float = 0.05
    random_seed: Optional[int] = None  # None = nondeterministic

    # Opening balances
    trading_balance_usd: float = 25000.00
    physical_balance_grams: float = 50.1234
    physical_balance_usd: float = 11528.38
    seed_demo_history: bool = True

    # Physical bullion quotes
    physical_commission_pct: float = PHYSICAL_COMMISSION_PCT

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SimulatorConfig":
        # Ignore keys from older config payloads
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_env(cls) -> "SimulatorConfig":
        """Load config from environment variables"""
        seed = os.getenv("GOLD_RANDOM_SEED")
        return cls(
            initial_price=float(os.getenv("GOLD_INITIAL_PRICE", INITIAL_GOLD_PRICE)),
            tick_interval_sec=float(os.getenv("GOLD_TICK_INTERVAL_SEC", "2.0")),
            random_seed=int(seed) if seed else None,
            trading_balance_usd=float(os.getenv("GOLD_TRADING_BALANCE_USD", "25000.0")),
        )


DEFAULT_CONFIG = SimulatorConfig()
