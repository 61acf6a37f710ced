"""
Transfer rail interface and an in-memory implementation.

The ledger never moves money itself. Registration and deposits pull from
the caller's account; withdrawals push to the provider owner's account.
"""

import logging
import threading
from typing import Dict, Protocol

from subsettle.core.exceptions import TransferError

logger = logging.getLogger(__name__)


class TransferRail(Protocol):
    def pull(self, account: str, amount: int) -> None:
        """Move amount from account into the ledger. Raise TransferError if refused."""
        ...

    def push(self, account: str, amount: int) -> None:
        """Move amount out of the ledger to account."""
        ...


class InMemoryTransferRail:
    """
    Wallet-backed rail for tests, scenarios and local runs.

    total_pulled and total_pushed are cumulative and let callers check
    conservation against the ledger's balances.
    """

    def __init__(self, wallets: Dict[str, int] = None):
        self._lock = threading.Lock()
        self.wallets: Dict[str, int] = dict(wallets or {})
        self.total_pulled = 0
        self.total_pushed = 0

    def fund(self, account: str, amount: int) -> None:
        with self._lock:
            self.wallets[account] = self.wallets.get(account, 0) + amount

    def balance_of(self, account: str) -> int:
        with self._lock:
            return self.wallets.get(account, 0)

    def pull(self, account: str, amount: int) -> None:
        with self._lock:
            available = self.wallets.get(account, 0)
            if available < amount:
                raise TransferError(
                    "insufficient wallet balance",
                    {"account": account, "requested": amount, "available": available},
                )
            self.wallets[account] = available - amount
            self.total_pulled += amount
        logger.debug(f"pulled {amount} from {account}")

    def push(self, account: str, amount: int) -> None:
        with self._lock:
            self.wallets[account] = self.wallets.get(account, 0) + amount
            self.total_pushed += amount
        logger.debug(f"pushed {amount} to {account}")
