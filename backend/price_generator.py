"""
Price Generator - Synthetic gold spot price.

Produces an upward-biased random walk with a persistent drift term:
- Each tick: change = (U - 0.48) * volatility + drift
- Drift is resampled with 10% probability per tick
- Prices are rounded to cents

The random source is injected so tests can replay exact sequences.
"""

import logging
import math
import random
from dataclasses import dataclass, replace, asdict
from enum import Enum
from typing import Optional

from errors import GenerationFault

logger = logging.getLogger(__name__)


class PriceDirection(Enum):
    """Direction of the last tick"""
    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


@dataclass
class PriceState:
    """Spot price state, mutated once per tick."""
    current: float
    drift: float
    direction: PriceDirection = PriceDirection.NEUTRAL
    change_percent: float = 0.0
    change: float = 0.0

    def to_dict(self) -> dict:
        return {
            **asdict(self),
            "direction": self.direction.value,
        }


class PriceGenerator:
    """
    Spot price random walk with drift.

    Args:
        initial_price: Starting price per troy ounce
        rng: Seedable random source exposing random() and uniform(a, b)
        volatility: Scale of the uniform jump
        drift_reset_probability: Chance per tick of picking a new drift
        drift_range: Drift is drawn from [-drift_range, drift_range]
        upward_bias: Centre of the jump; below 0.5 skews prices upward
    """

    def __init__(
        self,
        initial_price: float,
        rng: Optional[random.Random] = None,
        volatility: float = 0.5,
        drift_reset_probability: float = 0.10,
        drift_range: float = 0.05,
        upward_bias: float = 0.48,
    ):
        if not math.isfinite(initial_price) or initial_price <= 0:
            raise GenerationFault(f"Initial price must be positive and finite, got {initial_price}")

        self.rng = rng or random.Random()
        self.volatility = volatility
        self.drift_reset_probability = drift_reset_probability
        self.drift_range = drift_range
        self.upward_bias = upward_bias
        self.fault_count = 0

        self._state = PriceState(
            current=initial_price,
            drift=self.rng.uniform(-drift_range, drift_range),
        )

    @property
    def state(self) -> PriceState:
        return replace(self._state)

    @property
    def current_price(self) -> float:
        return self._state.current

    @property
    def drift(self) -> float:
        return self._state.drift

    def tick(self) -> PriceState:
        """Advance one step and return the new state."""
        if self.rng.random() < self.drift_reset_probability:
            drift = self.rng.uniform(-self.drift_range, self.drift_range)
            # A bad drift would poison every later tick
            self._state.drift = drift if math.isfinite(drift) else 0.0
            logger.debug(f"Drift reset to {self._state.drift:+.4f}")

        change = (self.rng.random() - self.upward_bias) * self.volatility + self._state.drift
        return self.apply_change(change)

    def apply_change(self, change: float) -> PriceState:
        """
        Apply a price change and derive direction / change percent.

        A non-finite or non-positive result is a generation fault: it is logged
        and the last good price is kept.
        """
        previous = self._state.current

        try:
            new_price = round(previous + change, 2)
            if not math.isfinite(new_price) or new_price <= 0:
                raise GenerationFault(
                    f"Generated invalid price {new_price} from {previous} (change={change})"
                )
        except GenerationFault as e:
            self.fault_count += 1
            logger.error(f"{e} - keeping last good price {previous:.2f}")
            self._state.direction = PriceDirection.NEUTRAL
            self._state.change_percent = 0.0
            self._state.change = 0.0
            return self.state

        if previous > 0:
            self._state.change_percent = (change / previous) * 100
            if change > 0:
                self._state.direction = PriceDirection.UP
            elif change < 0:
                self._state.direction = PriceDirection.DOWN
            else:
                self._state.direction = PriceDirection.NEUTRAL

        self._state.change = change
        self._state.current = new_price
        return self.state
