"""
subsettle/__init__.py

subsettle: prepaid subscription settlement ledger.

Providers sell a service for a periodic fee; subscribers prepay into a
balance. A periodic sweep charges every subscriber a whole number of
epochs, credits the providers, and deactivates anyone who cannot pay.
Money is never created or destroyed and nobody is charged twice for the
same epoch.
"""

__version__ = "0.1.0"

from subsettle.core.config import LedgerConfig
from subsettle.core.exceptions import SubsettleError
from subsettle.core.models import (
    Plan,
    ProviderState,
    SettlementOutcome,
    SettlementStatus,
    SubscriberState,
    SweepReport,
)
from subsettle.core.time import ManualClock, SystemClock
from subsettle.core.transfers import InMemoryTransferRail, TransferRail
from subsettle.ledger.journal import SettlementJournal, verify_journal
from subsettle.service import BillingService

__all__ = [
    # Facade
    "BillingService",
    "LedgerConfig",
    # Models
    "Plan",
    "ProviderState",
    "SubscriberState",
    "SettlementOutcome",
    "SettlementStatus",
    "SweepReport",
    # Collaborators
    "TransferRail",
    "InMemoryTransferRail",
    "SystemClock",
    "ManualClock",
    # Journal
    "SettlementJournal",
    "verify_journal",
    # Errors
    "SubsettleError",
]
