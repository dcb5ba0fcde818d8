"""
Position Ledger - Open leveraged gold positions.

Positions are opened at the current per-gram price and held until closed
by the settlement engine. Opening does not touch any wallet: margin is not
pre-deducted, P/L is realized only on close.
"""

import itertools
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from errors import InvalidSide, InvalidSize, PositionNotFound, require_positive

logger = logging.getLogger(__name__)


class PositionSide(Enum):
    """Buy = long, Sell = short"""
    BUY = "Buy"
    SELL = "Sell"

    @classmethod
    def from_value(cls, value) -> "PositionSide":
        if isinstance(value, PositionSide):
            return value
        for side in cls:
            if str(value).strip().lower() == side.value.lower():
                return side
        raise InvalidSide(value)


@dataclass(frozen=True)
class Position:
    """An open position"""
    id: str
    side: PositionSide
    size_grams: float
    entry_price_per_gram: float
    opened_at: str  # ISO-8601 UTC

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "side": self.side.value,
            "size_grams": round(self.size_grams, 4),
            "entry_price_per_gram": round(self.entry_price_per_gram, 2),
            "opened_at": self.opened_at,
        }


def unrealized_pnl(position: Position, current_price_per_gram: float) -> float:
    """P/L of a position if it were closed at current_price_per_gram."""
    if position.side == PositionSide.BUY:
        return (current_price_per_gram - position.entry_price_per_gram) * position.size_grams
    return (position.entry_price_per_gram - current_price_per_gram) * position.size_grams


class PositionLedger:
    """Owns the open positions of one session, in open order."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._positions: dict[str, Position] = {}
        self._counter = itertools.count(1)

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, position_id: str) -> bool:
        return position_id in self._positions

    def _next_id(self) -> str:
        # Timestamp alone collides when two positions open in the same millisecond
        return f"pos_{int(time.time() * 1000)}_{next(self._counter)}"

    def open(self, side, size_grams: float, entry_price_per_gram: float) -> Position:
        """
        Open a position.

        Raises:
            InvalidSide: side is not Buy/Sell
            InvalidSize: size_grams is not a positive finite number
            InvalidAmount: entry price is not a positive finite number
        """
        side = PositionSide.from_value(side)
        size_grams = require_positive(size_grams, "Position size (grams)", error_cls=InvalidSize)
        entry_price_per_gram = require_positive(entry_price_per_gram, "Entry price per gram")

        position = Position(
            id=self._next_id(),
            side=side,
            size_grams=size_grams,
            entry_price_per_gram=entry_price_per_gram,
            opened_at=self._clock().isoformat(),
        )
        self._positions[position.id] = position

        logger.info(
            f"Opened {side.value} {size_grams:g}g @ ${entry_price_per_gram:.2f}/g ({position.id})"
        )
        return position

    def get(self, position_id: str) -> Position:
        position = self._positions.get(position_id)
        if position is None:
            raise PositionNotFound(position_id)
        return position

    def remove(self, position_id: str) -> Position:
        """Remove and return a position. A second removal raises PositionNotFound."""
        position = self._positions.pop(position_id, None)
        if position is None:
            raise PositionNotFound(position_id)
        return position

    def list_open(self) -> list[Position]:
        return list(self._positions.values())

    def unrealized_pnl(self, position: Position, current_price_per_gram: float) -> float:
        return unrealized_pnl(position, current_price_per_gram)
