"""
subsettle/service.py

BillingService: the public surface of the ledger.

Wires the registries, settlement engine and sweep scanner together behind
one re-entrant lock, so every command and query runs to completion before
the next one starts. Successful mutations are appended to the settlement
journal when one is attached, stamped with the ledger clock time; rejected
commands and no-op settlements are not journaled.

A journal write happens after the mutation has committed. If it fails the
command still succeeds, the failure is logged and the journal is marked
broken; no further entries are written, so the file never holds a chain
with a silent hole in it.
"""

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence

from subsettle.core.config import LedgerConfig
from subsettle.core.crypto import JournalSigner
from subsettle.core.exceptions import JournalError
from subsettle.core.models import (
    DueScan,
    Plan,
    ProviderState,
    SettlementOutcome,
    SettlementStatus,
    SubscriberState,
    SweepReport,
)
from subsettle.core.time import SystemClock
from subsettle.core.transfers import InMemoryTransferRail, TransferRail
from subsettle.ledger.entry import RecordType
from subsettle.ledger.journal import SettlementJournal
from subsettle.registry.providers import ProviderRegistry
from subsettle.registry.subscribers import SubscriberRegistry
from subsettle.settlement.engine import SettlementEngine
from subsettle.settlement.sweep import SweepScanner

logger = logging.getLogger(__name__)

_JOURNALED_STATUSES = (SettlementStatus.SETTLED, SettlementStatus.UNDERFUNDED)


class BillingService:

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        rail: Optional[TransferRail] = None,
        clock=None,
        journal: Optional[SettlementJournal] = None,
    ):
        self.config = config or LedgerConfig()
        self.rail = rail if rail is not None else InMemoryTransferRail()
        self.clock = clock or SystemClock()
        self.journal = journal
        self.journal_broken = False

        self._lock = threading.RLock()
        self.providers = ProviderRegistry(self.config, self.rail)
        self.subscribers = SubscriberRegistry(self.providers, self.rail, self.clock)
        self.engine = SettlementEngine(self.config, self.providers, self.subscribers, self.clock)
        self.scanner = SweepScanner(self.engine)

        self._deposited = 0
        self._withdrawn = 0

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig,
        rail: Optional[TransferRail] = None,
        clock=None,
    ) -> "BillingService":
        """Build a service, opening the journal named in config if there is one."""
        journal = None
        if config.journal_path is not None:
            if config.journal_key_path is not None:
                signer = JournalSigner.load_or_create(config.journal_key_path)
            else:
                signer = JournalSigner.generate()
            journal = SettlementJournal(signer, config.journal_path)
            logger.info(f"journaling to {config.journal_path} as {signer.public_key_hex[:16]}...")
        return cls(config=config, rail=rail, clock=clock, journal=journal)

    # ── Provider commands ─────────────────────────────────────

    def register_provider(self, registration_key: str, fee: int, caller: str) -> int:
        with self._lock:
            provider_id = self.providers.register(registration_key, fee, caller)
            self._record(RecordType.PROVIDER_REGISTERED, {
                "provider_id": provider_id,
                "owner": caller,
                "fee": fee,
            })
            return provider_id

    def remove_provider(self, provider_id: int, caller: str) -> int:
        with self._lock:
            flushed = self.providers.remove(provider_id, caller)
            self._withdrawn += flushed
            self._record(RecordType.PROVIDER_REMOVED, {
                "provider_id": provider_id,
                "flushed": flushed,
            })
            return flushed

    def set_providers_active(
        self, ids: Sequence[int], flags: Sequence[bool], caller: str
    ) -> List[int]:
        with self._lock:
            written = self.providers.set_active(ids, flags, caller)
            self._record(RecordType.PROVIDERS_TOGGLED, {
                "provider_ids": list(written),
                "flags": [bool(f) for i, f in zip(ids, flags) if i in written],
            })
            return written

    def update_provider_fee(self, provider_id: int, new_fee: int, caller: str) -> int:
        with self._lock:
            old_fee = self.providers.update_fee(provider_id, new_fee, caller)
            self._record(RecordType.FEE_UPDATED, {
                "provider_id": provider_id,
                "old_fee": old_fee,
                "new_fee": new_fee,
            })
            return old_fee

    def withdraw_provider_earnings(self, provider_id: int, caller: str) -> int:
        with self._lock:
            amount = self.providers.withdraw_earnings(provider_id, caller)
            self._withdrawn += amount
            if amount:
                self._record(RecordType.EARNINGS_WITHDRAWN, {
                    "provider_id": provider_id,
                    "amount": amount,
                })
            return amount

    # ── Subscriber commands ───────────────────────────────────

    def register_subscriber(
        self,
        deposit_amount: int,
        plan: Plan,
        provider_ids: Iterable[int],
        caller: str,
    ) -> int:
        with self._lock:
            provider_ids = list(provider_ids)
            subscriber_id = self.subscribers.register(deposit_amount, plan, provider_ids, caller)
            subscriber = self.subscribers.get(subscriber_id)
            self._deposited += deposit_amount
            self._record(RecordType.SUBSCRIBER_REGISTERED, {
                "subscriber_id": subscriber_id,
                "owner": caller,
                "plan": subscriber.plan.value,
                "deposit": deposit_amount,
                "balance": subscriber.balance,
                "provider_ids": sorted(provider_ids),
            })
            return subscriber_id

    def deposit_for_subscription(self, subscriber_id: int, amount: int, caller: str) -> int:
        with self._lock:
            balance = self.subscribers.deposit(subscriber_id, amount, caller)
            self._deposited += amount
            self._record(RecordType.DEPOSIT, {
                "subscriber_id": subscriber_id,
                "amount": amount,
                "funded_by": caller,
                "balance": balance,
            })
            return balance

    def pause_subscription(self, subscriber_id: int, caller: str) -> bool:
        with self._lock:
            was_active = self.subscribers.pause(subscriber_id, caller)
            if was_active:
                self._record(RecordType.SUBSCRIPTION_PAUSED, {"subscriber_id": subscriber_id})
            return was_active

    # ── Settlement ────────────────────────────────────────────

    def is_due(self) -> bool:
        with self._lock:
            return self.scanner.is_due()

    def due_subscribers(self) -> DueScan:
        with self._lock:
            return self.scanner.scan()

    def run_settlement(self, due_ids: Iterable[int]) -> SweepReport:
        """Settle each id in turn. Stale, repeated or unknown ids are no-ops."""
        with self._lock:
            report = self.scanner.dispatch(due_ids)
            self._record_outcomes(report.outcomes)
            return report

    def sweep(self) -> SweepReport:
        with self._lock:
            report = self.scanner.sweep()
            self._record_outcomes(report.outcomes)
            return report

    # ── Queries ───────────────────────────────────────────────

    def provider_state(self, provider_id: int) -> ProviderState:
        with self._lock:
            return self.providers.get(provider_id).snapshot()

    def provider_earnings(self, provider_id: int) -> int:
        with self._lock:
            return self.providers.get(provider_id).balance

    def subscriber_state(self, subscriber_id: int) -> SubscriberState:
        with self._lock:
            return self.subscribers.get(subscriber_id).snapshot()

    def subscriber_live_balance(self, subscriber_id: int) -> int:
        """
        Balance net of what a settlement right now would charge.

        0 when the subscriber could not cover it. Inactive subscribers owe
        nothing, so their stored balance is returned as is.
        """
        with self._lock:
            subscriber = self.subscribers.get(subscriber_id)
            owed = self.engine.amount_owed(subscriber, self.clock.now())
            return max(subscriber.balance - owed, 0)

    def providers_snapshot(self) -> List[ProviderState]:
        with self._lock:
            return [p.snapshot() for p in self.providers]

    def subscribers_snapshot(self) -> List[SubscriberState]:
        with self._lock:
            return [s.snapshot() for s in self.subscribers]

    def totals(self) -> Dict[str, int]:
        """
        Conservation figures.

        held + withdrawn == deposited for every reachable state, where
        deposited counts every amount pulled from subscribers' funders and
        withdrawn every payout to a provider owner.
        """
        with self._lock:
            subscriber_total = self.subscribers.total_balance()
            provider_total = self.providers.total_balance()
            return {
                "subscriber_balances": subscriber_total,
                "provider_balances": provider_total,
                "withdrawn": self._withdrawn,
                "deposited": self._deposited,
                "held": subscriber_total + provider_total,
            }

    # ── Journal ───────────────────────────────────────────────

    def _record_outcomes(self, outcomes: List[SettlementOutcome]) -> None:
        for outcome in outcomes:
            if outcome.status in _JOURNALED_STATUSES:
                self._record(RecordType.SETTLEMENT, outcome.to_dict())

    def _record(self, record_type: str, payload: Dict[str, Any]) -> None:
        if self.journal is None:
            return
        if self.journal_broken:
            logger.warning(f"journal broken, {record_type} not recorded")
            return
        try:
            self.journal.append(record_type, dict(payload, at=self.clock.now()))
        except JournalError as exc:
            self.journal_broken = True
            logger.error(f"{record_type} applied but not journaled: {exc}")
