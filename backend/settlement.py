"""
Settlement Engine - Realizes P/L when a position is closed.

Close sequence (one synchronous call, no awaits):
1. Look up the position (PositionNotFound if already closed)
2. Compute realized P/L with the unrealized P/L formula
3. Remove the position from the ledger
4. Apply P/L to the Trading wallet (no floor at zero)
5. Prepend a Deposit (profit) or Withdrawal (loss) transaction

Everything that can fail is checked before step 3, so a rejected close
leaves the ledger and the wallet untouched.
"""

import logging
import math
from dataclasses import dataclass

from errors import InvalidAmount, require_positive
from position_ledger import Position, PositionLedger, unrealized_pnl
from wallet_store import Transaction, TransactionKind, WalletKind, WalletStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settlement:
    """Outcome of closing a position"""
    position: Position
    transaction: Transaction
    profit_loss: float
    exit_price_per_gram: float
    trading_balance_usd: float

    def to_dict(self) -> dict:
        return {
            "position": self.position.to_dict(),
            "transaction": self.transaction.to_dict(),
            "profit_loss": round(self.profit_loss, 2),
            "exit_price_per_gram": round(self.exit_price_per_gram, 2),
            "trading_balance_usd": round(self.trading_balance_usd, 2),
        }


class SettlementEngine:
    def __init__(self, ledger: PositionLedger, wallets: WalletStore):
        self.ledger = ledger
        self.wallets = wallets

    def settle(self, position_id: str, current_price_per_gram: float) -> Settlement:
        """Close a position at current_price_per_gram and return the full outcome."""
        # Validate
        position = self.ledger.get(position_id)
        exit_price = require_positive(current_price_per_gram, "Exit price per gram")
        profit_loss = unrealized_pnl(position, exit_price)
        if not math.isfinite(profit_loss):
            raise InvalidAmount(f"Realized P/L is not finite for {position_id}", value=profit_loss)

        kind = TransactionKind.DEPOSIT if profit_loss >= 0 else TransactionKind.WITHDRAWAL
        transaction = self.wallets.new_transaction(kind, abs(profit_loss), wallet=WalletKind.TRADING)

        # Mutate
        self.ledger.remove(position_id)
        balance = self.wallets.apply_trading_pnl(profit_loss)
        self.wallets.record(transaction)

        settlement = Settlement(
            position=position,
            transaction=transaction,
            profit_loss=profit_loss,
            exit_price_per_gram=exit_price,
            trading_balance_usd=balance,
        )

        logger.info(
            f"Closed {position.side.value} {position.size_grams:g}g "
            f"${position.entry_price_per_gram:.2f} -> ${exit_price:.2f}/g | "
            f"P/L: ${profit_loss:+.2f} | Trading balance: ${balance:,.2f}"
        )

        return settlement

    def close_position(self, position_id: str, current_price_per_gram: float) -> Transaction:
        """Close a position and return the transaction it produced."""
        return self.settle(position_id, current_price_per_gram).transaction
