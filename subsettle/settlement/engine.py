"""
Settlement engine: the per-subscriber charge-or-deactivate state machine.
"""

import logging
from typing import Dict

from subsettle.core.config import LedgerConfig
from subsettle.core.models import SettlementOutcome, SettlementStatus, Subscriber
from subsettle.core.time import unsettled_epochs
from subsettle.registry.providers import ProviderRegistry
from subsettle.registry.subscribers import SubscriberRegistry

logger = logging.getLogger(__name__)


class SettlementEngine:
    """
    Charges a subscriber for every whole epoch since its last settlement.

    States:
        Active, nothing owed   → NOT_DUE, no mutation
        Active, epochs owed    → SETTLED or UNDERFUNDED
        Inactive               → INACTIVE, no mutation (terminal)

    The engine trusts nothing from the caller but the id. Active flag and
    elapsed epochs are re-read on every call, so stale or repeated ids from
    a sweep degrade to no-ops.

    Fees are read at settlement time. A fee change between settlements
    applies to the next settlement only.

    Removed or inactive providers contribute a zero fee. That share is not
    charged to the subscriber; it is the only case where a subscriber's
    obligations shrink without a matching credit.
    """

    def __init__(
        self,
        config: LedgerConfig,
        providers: ProviderRegistry,
        subscribers: SubscriberRegistry,
        clock,
    ):
        self.config = config
        self.providers = providers
        self.subscribers = subscribers
        self.clock = clock

    def settle(self, subscriber_id: int) -> SettlementOutcome:
        """Settle one subscriber. Never raises for unknown, inactive or underfunded ids."""
        subscriber = self.subscribers.lookup(subscriber_id)
        if subscriber is None:
            logger.debug(f"settle skipped unknown subscriber {subscriber_id}")
            return SettlementOutcome(subscriber_id, SettlementStatus.UNKNOWN)
        if not subscriber.active:
            logger.debug(f"settle skipped inactive subscriber {subscriber_id}")
            return SettlementOutcome(subscriber_id, SettlementStatus.INACTIVE)

        now = self.clock.now()
        epochs = self.epochs_owed(subscriber, now)
        if epochs == 0:
            return SettlementOutcome(subscriber_id, SettlementStatus.NOT_DUE)

        owed = self._fees_owed(subscriber, epochs)
        total_owed = sum(owed.values())

        if subscriber.balance < total_owed:
            subscriber.active = False
            logger.warning(
                f"subscriber {subscriber_id} underfunded: owes {total_owed} "
                f"for {epochs} epoch(s), holds {subscriber.balance}; deactivated"
            )
            return SettlementOutcome(subscriber_id, SettlementStatus.UNDERFUNDED, epochs=epochs)

        subscriber.balance -= total_owed
        for provider_id, amount in owed.items():
            self.providers.accrue(self.providers.get(provider_id), amount)
        # Reset rather than advance by whole epochs: the partial epoch is forgiven.
        subscriber.last_settlement_time = now

        logger.info(
            f"settled subscriber {subscriber_id}: {epochs} epoch(s), charged {total_owed}"
        )
        return SettlementOutcome(
            subscriber_id,
            SettlementStatus.SETTLED,
            epochs=epochs,
            charged=total_owed,
            credits=owed,
        )

    def epochs_owed(self, subscriber: Subscriber, now: int) -> int:
        return unsettled_epochs(
            now,
            subscriber.last_settlement_time,
            self.config.epoch_length_seconds,
        )

    def amount_owed(self, subscriber: Subscriber, now: int) -> int:
        """What settle() would charge at `now`, without charging it."""
        if not subscriber.active:
            return 0
        epochs = self.epochs_owed(subscriber, now)
        if epochs == 0:
            return 0
        return sum(self._fees_owed(subscriber, epochs).values())

    def _fees_owed(self, subscriber: Subscriber, epochs: int) -> Dict[int, int]:
        owed: Dict[int, int] = {}
        for provider_id in sorted(subscriber.provider_ids):
            provider = self.providers.lookup(provider_id)
            if provider is None or not provider.active:
                continue
            owed[provider_id] = provider.fee * epochs
        return owed
