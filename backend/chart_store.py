"""
Chart Window Store - Rolling price history per chart horizon.

Three fixed-capacity windows:
- 5M: 60 points, fed live by the price ticker
- 1H: 72 points, seeded baseline
- 4H: 84 points, seeded baseline

Windows are deques with maxlen, so appending at capacity evicts the
oldest point in O(1).
"""

import logging
import random
from collections import deque
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional

from config import CHART_WINDOWS, LIVE_HORIZON
from errors import InvalidHorizon

logger = logging.getLogger(__name__)


class Horizon(Enum):
    """Chart timeframe"""
    FIVE_MIN = "5M"
    ONE_HOUR = "1H"
    FOUR_HOUR = "4H"

    @property
    def capacity(self) -> int:
        return CHART_WINDOWS[self.value]["capacity"]

    @property
    def label_prefix(self) -> str:
        return CHART_WINDOWS[self.value]["prefix"]

    @classmethod
    def from_string(cls, value) -> "Horizon":
        if isinstance(value, Horizon):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidHorizon(str(value))


@dataclass(frozen=True)
class PricePoint:
    """One chart point. Immutable once created."""
    label: str
    price: float

    def to_dict(self) -> dict:
        return asdict(self)


class ChartWindow:
    """Fixed-capacity, chronological sequence of price points."""

    def __init__(self, horizon: Horizon, capacity: Optional[int] = None):
        self.horizon = horizon
        self.capacity = capacity or horizon.capacity
        self._points: deque[PricePoint] = deque(maxlen=self.capacity)

    def __len__(self) -> int:
        return len(self._points)

    @property
    def is_full(self) -> bool:
        return len(self._points) == self.capacity

    def replace(self, points: list[PricePoint]) -> None:
        self._points = deque(points, maxlen=self.capacity)

    def append(self, point: PricePoint) -> None:
        self._points.append(point)

    def points(self) -> list[PricePoint]:
        return list(self._points)


class ChartWindowStore:
    """
    Holds one window per horizon.

    Only the 5M window is fed by the ticker, but append_live accepts any
    horizon so the longer windows can be fed too.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self.windows: dict[Horizon, ChartWindow] = {h: ChartWindow(h) for h in Horizon}
        self._live_counter = 1

    # -------------------------------------------------------------------------
    # SEEDING
    # -------------------------------------------------------------------------

    def seed(
        self,
        horizon,
        base_price: float,
        volatility: float,
        count: Optional[int] = None,
        prefix: Optional[str] = None,
    ) -> list[PricePoint]:
        """
        Fill a window with a synthetic random walk around base_price.

        The walk starts below base_price by a random fraction of half the
        window and drifts up with the same 0.48 bias as the live generator.
        """
        horizon = Horizon.from_string(horizon)
        window = self.windows[horizon]
        count = window.capacity if count is None else count
        prefix = prefix or horizon.label_prefix

        price = base_price - (count / 2) * (volatility * self.rng.random())
        points = []
        for i in range(count):
            price += (self.rng.random() - 0.48) * volatility
            points.append(PricePoint(label=f"{prefix}-{count - i}", price=round(price, 2)))

        window.replace(points)
        logger.debug(f"Seeded {horizon.value} window with {len(window)} points around {base_price:.2f}")
        return window.points()

    def seed_all(self, base_price: float) -> None:
        """Seed every horizon with its configured baseline."""
        for horizon in Horizon:
            layout = CHART_WINDOWS[horizon.value]
            self.seed(horizon, base_price + layout["offset"], layout["volatility"])

    # -------------------------------------------------------------------------
    # LIVE UPDATES
    # -------------------------------------------------------------------------

    def append_live(self, point: PricePoint, horizon=LIVE_HORIZON) -> None:
        """Append a point, evicting the oldest when the window is full."""
        self.windows[Horizon.from_string(horizon)].append(point)

    def append_live_price(self, price: float, horizon=LIVE_HORIZON) -> PricePoint:
        """Label a new live price (T+1, T+2, ...) and append it."""
        point = PricePoint(label=f"T+{self._live_counter}", price=price)
        self._live_counter += 1
        self.append_live(point, horizon)
        return point

    # -------------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------------

    def select(self, horizon) -> list[PricePoint]:
        """Chronological copy of a window, safe to hand to renderers."""
        return self.windows[Horizon.from_string(horizon)].points()

    def get_series(self, horizon) -> list[dict]:
        return [p.to_dict() for p in self.select(horizon)]
