"""
Price conversions and physical bullion quotes.
"""

from dataclasses import dataclass

from config import OZ_TO_GRAM, PHYSICAL_COMMISSION_PCT
from errors import require_positive
from position_ledger import PositionSide


def price_per_gram(price_per_oz: float) -> float:
    return price_per_oz / OZ_TO_GRAM


def price_per_kg(price_per_oz: float) -> float:
    return price_per_gram(price_per_oz) * 1000


@dataclass(frozen=True)
class PhysicalQuote:
    """Cost breakdown for buying or selling physical gold"""
    side: PositionSide
    grams: float
    price_per_gram: float
    subtotal: float
    commission: float
    total: float

    def to_dict(self) -> dict:
        return {
            "side": self.side.value,
            "grams": round(self.grams, 4),
            "price_per_gram": round(self.price_per_gram, 2),
            "subtotal": round(self.subtotal, 2),
            "commission": round(self.commission, 2),
            "total": round(self.total, 2),
        }


def quote_physical(
    side,
    grams: float,
    price_per_gram: float,
    commission_pct: float = PHYSICAL_COMMISSION_PCT,
) -> PhysicalQuote:
    """
    Quote a physical bullion trade.

    Commission is charged on the gross value: added when buying,
    deducted from the proceeds when selling.
    """
    side = PositionSide.from_value(side)
    grams = require_positive(grams, "Gram amount")

    subtotal = grams * price_per_gram
    commission = subtotal * (commission_pct / 100)
    total = subtotal + commission if side == PositionSide.BUY else subtotal - commission

    return PhysicalQuote(
        side=side,
        grams=grams,
        price_per_gram=price_per_gram,
        subtotal=subtotal,
        commission=commission,
        total=total,
    )
