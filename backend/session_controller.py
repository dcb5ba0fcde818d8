"""
Session Controller - Owns one user's portfolio session.

This is the only entry point into the simulator core:
1. Holds the session-scoped state (price, charts, positions, wallets)
2. Starts the price ticker on activate, stops it on deactivate
3. Exposes the portfolio operations to the presentation layer
4. Notifies listeners of ticks and settlements

All operations are synchronous and run on the server's event loop, so a
tick or a settlement is never observed half-applied.
"""

import logging
import random
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from chart_store import ChartWindowStore, Horizon, PricePoint
from config import DEMO_TRANSACTIONS, SimulatorConfig
from errors import SessionInactive
from position_ledger import Position, PositionLedger, unrealized_pnl
from price_generator import PriceGenerator, PriceState
from pricing import PhysicalQuote, price_per_gram, price_per_kg, quote_physical
from settlement import Settlement, SettlementEngine
from ticker import PriceTicker, ScheduledTask
from wallet_store import Transaction, Wallet, WalletStore

logger = logging.getLogger(__name__)

TimerFactory = Callable[[Callable[[], None], float], ScheduledTask]


@dataclass
class PortfolioSession:
    """Session-scoped simulator state."""
    id: str
    price: PriceGenerator
    charts: ChartWindowStore
    ledger: PositionLedger
    wallets: WalletStore
    settlement: SettlementEngine
    created_at: int
    active: bool = False
    activated_at: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "active": self.active,
            "activated_at": self.activated_at,
        }


def build_session(
    config: SimulatorConfig,
    rng: random.Random,
    clock: Callable[[], datetime],
    session_id: Optional[str] = None,
) -> PortfolioSession:
    """Create a freshly seeded portfolio session."""
    generator = PriceGenerator(
        initial_price=config.initial_price,
        rng=rng,
        volatility=config.volatility,
        drift_reset_probability=config.drift_reset_probability,
        drift_range=config.drift_range,
    )

    charts = ChartWindowStore(rng=rng)
    charts.seed_all(config.initial_price)

    history = (
        [Transaction.from_dict(dict(t)) for t in DEMO_TRANSACTIONS]
        if config.seed_demo_history else []
    )
    wallets = WalletStore(
        trading_balance_usd=config.trading_balance_usd,
        physical_balance_grams=config.physical_balance_grams,
        physical_balance_usd=config.physical_balance_usd,
        transactions=history,
        clock=clock,
    )
    ledger = PositionLedger(clock=clock)

    return PortfolioSession(
        id=session_id or uuid.uuid4().hex[:12],
        price=generator,
        charts=charts,
        ledger=ledger,
        wallets=wallets,
        settlement=SettlementEngine(ledger, wallets),
        created_at=int(time.time()),
    )


class SessionController:
    """
    Manages ONE portfolio session and its price timer.

    Args:
        config: Simulator parameters (DEFAULT values if omitted)
        rng: Random source for prices and chart seeds (seeded from config if omitted)
        clock: Wall clock for position/transaction timestamps
        timer_factory: Builds the repeating timer, (callback, interval_sec) -> ScheduledTask
    """

    def __init__(
        self,
        config: Optional[SimulatorConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        timer_factory: Optional[TimerFactory] = None,
    ):
        self.config = config or SimulatorConfig()
        self.rng = rng or random.Random(self.config.random_seed)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._timer_factory = timer_factory or (lambda cb, interval: PriceTicker(cb, interval))
        self._timer: Optional[ScheduledTask] = None

        self.session = build_session(self.config, self.rng, self.clock)

        self._on_tick: Optional[Callable[[PriceState, PricePoint], None]] = None
        self._on_settlement: Optional[Callable[[Settlement], None]] = None
        self._on_status: Optional[Callable[[dict], None]] = None

    def set_callbacks(
        self,
        on_tick: Optional[Callable[[PriceState, PricePoint], None]] = None,
        on_settlement: Optional[Callable[[Settlement], None]] = None,
        on_status: Optional[Callable[[dict], None]] = None,
    ) -> None:
        """Set listeners for ticks, settlements and activation changes."""
        self._on_tick = on_tick
        self._on_settlement = on_settlement
        self._on_status = on_status

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.session.active

    @property
    def timer(self) -> Optional[ScheduledTask]:
        return self._timer

    def activate(self, session_id: Optional[str] = None) -> bool:
        """
        Activate the session (login) and start a fresh price timer.

        Returns:
            True if the session was activated, False if it already was
        """
        if self.session.active:
            return False

        # Start the timer first so a failure leaves the session inactive
        timer = self._timer_factory(self.tick, self.config.tick_interval_sec)
        timer.start()
        self._timer = timer

        if session_id:
            self.session.id = session_id
        self.session.active = True
        self.session.activated_at = int(time.time())

        logger.info(f"Session activated: {self.session.id}")
        self._notify_status()
        return True

    def deactivate(self, reason: str = "logout") -> bool:
        """
        Deactivate the session and stop the price timer immediately.

        Returns:
            True if the session was deactivated, False if it was not active
        """
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.stop()

        if not self.session.active:
            return False

        self.session.active = False
        logger.info(f"Session deactivated: {self.session.id} ({reason})")
        self._notify_status()
        return True

    def _require_active(self, operation: str) -> PortfolioSession:
        if not self.session.active:
            logger.warning(f"Rejected '{operation}': session {self.session.id} is not active")
            raise SessionInactive(operation)
        return self.session

    def _notify_status(self) -> None:
        if self._on_status:
            try:
                self._on_status(self.get_status())
            except Exception as e:
                logger.error(f"Error in status callback: {e}")

    # -------------------------------------------------------------------------
    # TICKING
    # -------------------------------------------------------------------------

    def tick(self) -> Optional[PriceState]:
        """
        Advance the spot price one step and append it to the live chart.

        Called by the timer. Returns None once the session is inactive.
        """
        if not self.session.active:
            return None

        state = self.session.price.tick()
        point = self.session.charts.append_live_price(state.current)
        logger.debug(f"Tick {point.label}: {state.current:.2f} ({state.direction.value})")

        if self._on_tick:
            try:
                self._on_tick(state, point)
            except Exception as e:
                logger.error(f"Error in tick callback: {e}")

        return state

    # -------------------------------------------------------------------------
    # PRICES AND CHARTS
    # -------------------------------------------------------------------------

    def get_current_price(self) -> float:
        """Spot price per troy ounce."""
        return self._require_active("read price").price.current_price

    def get_price_per_gram(self) -> float:
        return price_per_gram(self.get_current_price())

    def get_price_quote(self) -> dict:
        state = self._require_active("read price").price.state
        return {
            "price": round(state.current, 2),
            "price_per_gram": round(price_per_gram(state.current), 2),
            "price_per_kg": round(price_per_kg(state.current), 2),
            "direction": state.direction.value,
            "change_percent": state.change_percent,
        }

    def get_chart_series(self, horizon) -> list[PricePoint]:
        return self._require_active("read chart").charts.select(Horizon.from_string(horizon))

    # -------------------------------------------------------------------------
    # POSITIONS
    # -------------------------------------------------------------------------

    def open_position(self, side, size_grams: float) -> Position:
        """Open a position at the current per-gram price."""
        session = self._require_active("open position")
        return session.ledger.open(side, size_grams, price_per_gram(session.price.current_price))

    def close_position(self, position_id: str) -> Transaction:
        """Close a position at the current per-gram price."""
        return self.settle_position(position_id).transaction

    def settle_position(self, position_id: str) -> Settlement:
        session = self._require_active("close position")
        settlement = session.settlement.settle(position_id, price_per_gram(session.price.current_price))

        if self._on_settlement:
            try:
                self._on_settlement(settlement)
            except Exception as e:
                logger.error(f"Error in settlement callback: {e}")

        return settlement

    def list_open_positions(self) -> list[Position]:
        return self._require_active("list positions").ledger.list_open()

    def list_position_views(self) -> list[dict]:
        """Open positions with unrealized P/L at the current price (never cached)."""
        session = self._require_active("list positions")
        current = price_per_gram(session.price.current_price)
        return [
            {
                **p.to_dict(),
                "current_price_per_gram": round(current, 2),
                "unrealized_pnl": round(unrealized_pnl(p, current), 2),
            }
            for p in session.ledger.list_open()
        ]

    # -------------------------------------------------------------------------
    # WALLETS AND HISTORY
    # -------------------------------------------------------------------------

    def get_wallets(self) -> list[Wallet]:
        return self._require_active("read wallets").wallets.list_wallets()

    def list_transactions(self, wallet=None, limit: Optional[int] = None) -> list[Transaction]:
        return self._require_active("read transactions").wallets.list_transactions(wallet, limit)

    def deposit(self, amount_usd: float) -> Transaction:
        return self._require_active("deposit").wallets.deposit(amount_usd)

    def withdraw(self, amount_usd: float) -> Transaction:
        return self._require_active("withdraw").wallets.withdraw(amount_usd)

    def quote_physical(self, side, grams: float) -> PhysicalQuote:
        session = self._require_active("quote physical gold")
        return quote_physical(
            side,
            grams,
            price_per_gram(session.price.current_price),
            commission_pct=self.config.physical_commission_pct,
        )

    # -------------------------------------------------------------------------
    # STATUS
    # -------------------------------------------------------------------------

    def get_status(self) -> dict:
        return {
            "session": self.session.to_dict(),
            "is_active": self.session.active,
            "timer_running": bool(self._timer and self._timer.is_running),
            "tick_interval_sec": self.config.tick_interval_sec,
            "open_positions": len(self.session.ledger),
            "price": round(self.session.price.current_price, 2),
        }
