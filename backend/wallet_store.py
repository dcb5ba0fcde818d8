"""
Wallet/Transaction Store - Balances and transaction history.

Exactly one wallet per kind (Physical bullion, Trading margin). History is
append-only and kept newest-first, the order the dashboard shows it in.

Balances change only through:
- apply_trading_pnl (settlement engine)
- deposit / withdraw (fund transfers)
"""

import itertools
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from errors import InsufficientBalance, InvalidAmount, NotFound, require_positive

logger = logging.getLogger(__name__)

# Display format for transaction timestamps, e.g. "10/19/26, 3:04 PM"
TIMESTAMP_FORMAT = "%m/%d/%y, %I:%M %p"


class WalletKind(Enum):
    PHYSICAL = "Physical"
    TRADING = "Trading"

    @classmethod
    def from_value(cls, value) -> "WalletKind":
        if isinstance(value, WalletKind):
            return value
        for kind in cls:
            if str(value).strip().lower() == kind.value.lower():
                return kind
        raise NotFound(f"Unknown wallet: {value!r}")


class TransactionKind(Enum):
    BUY = "Buy"
    SELL = "Sell"
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"


class TransactionStatus(Enum):
    COMPLETED = "Completed"
    PENDING = "Pending"


@dataclass
class Wallet:
    kind: WalletKind
    balance_grams: float
    balance_usd: float

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "balance_grams": round(self.balance_grams, 4),
            "balance_usd": round(self.balance_usd, 2),
        }


@dataclass(frozen=True)
class Transaction:
    """A history entry. amount_usd is always a non-negative magnitude."""
    id: str
    kind: TransactionKind
    wallet: WalletKind
    amount_usd: float
    timestamp: str
    status: TransactionStatus = TransactionStatus.COMPLETED
    amount_grams: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "wallet": self.wallet.value,
            "amount_grams": round(self.amount_grams, 4) if self.amount_grams is not None else None,
            "amount_usd": round(self.amount_usd, 2),
            "timestamp": self.timestamp,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        return cls(
            id=str(data["id"]),
            kind=TransactionKind(data["kind"]),
            wallet=WalletKind(data["wallet"]),
            amount_usd=float(data["amount_usd"]),
            timestamp=data["timestamp"],
            status=TransactionStatus(data.get("status", "Completed")),
            amount_grams=data.get("amount_grams"),
        )


class WalletStore:
    """Balances of one session plus its transaction history."""

    def __init__(
        self,
        trading_balance_usd: float = 0.0,
        physical_balance_grams: float = 0.0,
        physical_balance_usd: float = 0.0,
        transactions: Optional[list[Transaction]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._wallets: dict[WalletKind, Wallet] = {
            WalletKind.PHYSICAL: Wallet(WalletKind.PHYSICAL, physical_balance_grams, physical_balance_usd),
            WalletKind.TRADING: Wallet(WalletKind.TRADING, 0.0, trading_balance_usd),
        }
        self._transactions: list[Transaction] = list(transactions or [])
        self._counter = itertools.count(1)

    # -------------------------------------------------------------------------
    # WALLETS
    # -------------------------------------------------------------------------

    def get(self, kind) -> Wallet:
        return self._wallets[WalletKind.from_value(kind)]

    @property
    def trading(self) -> Wallet:
        return self._wallets[WalletKind.TRADING]

    def list_wallets(self) -> list[Wallet]:
        return [self._wallets[WalletKind.PHYSICAL], self._wallets[WalletKind.TRADING]]

    def apply_trading_pnl(self, amount: float) -> float:
        """
        Add realized P/L to the Trading wallet and return the new balance.

        There is no floor: a losing close may take the balance below zero.
        """
        if not math.isfinite(amount):
            raise InvalidAmount(f"Realized P/L must be finite, got {amount}", value=amount)
        self.trading.balance_usd += amount
        return self.trading.balance_usd

    # -------------------------------------------------------------------------
    # FUND TRANSFERS
    # -------------------------------------------------------------------------

    def deposit(self, amount_usd: float) -> Transaction:
        """Deposit funds into the Trading wallet."""
        amount_usd = require_positive(amount_usd, "Deposit amount")

        self.trading.balance_usd += amount_usd
        tx = self.record(self.new_transaction(TransactionKind.DEPOSIT, amount_usd))

        logger.info(f"Deposit ${amount_usd:,.2f} | Trading balance: ${self.trading.balance_usd:,.2f}")
        return tx

    def withdraw(self, amount_usd: float) -> Transaction:
        """Withdraw funds from the Trading wallet. Cannot exceed the balance."""
        amount_usd = require_positive(amount_usd, "Withdrawal amount")

        available = self.trading.balance_usd
        if amount_usd > available:
            logger.warning(f"Withdrawal rejected: ${amount_usd:,.2f} > ${available:,.2f}")
            raise InsufficientBalance(requested=amount_usd, available=available)

        self.trading.balance_usd -= amount_usd
        tx = self.record(self.new_transaction(TransactionKind.WITHDRAWAL, amount_usd))

        logger.info(f"Withdrawal ${amount_usd:,.2f} | Trading balance: ${self.trading.balance_usd:,.2f}")
        return tx

    # -------------------------------------------------------------------------
    # HISTORY
    # -------------------------------------------------------------------------

    def new_transaction(
        self,
        kind: TransactionKind,
        amount_usd: float,
        wallet: WalletKind = WalletKind.TRADING,
        amount_grams: Optional[float] = None,
    ) -> Transaction:
        return Transaction(
            id=f"tx_{int(time.time() * 1000)}_{next(self._counter)}",
            kind=kind,
            wallet=wallet,
            amount_usd=abs(amount_usd),
            timestamp=self._clock().strftime(TIMESTAMP_FORMAT),
            status=TransactionStatus.COMPLETED,
            amount_grams=amount_grams,
        )

    def record(self, transaction: Transaction) -> Transaction:
        """Prepend a transaction (history is newest-first)."""
        self._transactions.insert(0, transaction)
        return transaction

    def list_transactions(self, wallet=None, limit: Optional[int] = None) -> list[Transaction]:
        if limit is not None and limit < 0:
            raise InvalidAmount(f"Transaction limit must be zero or more, got {limit}", value=limit)
        txs = self._transactions
        if wallet is not None:
            kind = WalletKind.from_value(wallet)
            txs = [t for t in txs if t.wallet == kind]
        return list(txs[:limit] if limit is not None else txs)
