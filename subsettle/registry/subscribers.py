"""
Subscriber registry.

Owns subscriber entities: registration against a fixed provider set,
incremental deposits and pause.

Registration pre-charges the first epoch: each chosen provider is credited
one fee immediately and the subscriber keeps the rest of the deposit.
The deposit must cover at least two epochs, so the first sweep always has
something to settle.
"""

import logging
from typing import Iterable, Iterator, List, Optional

from subsettle.core.exceptions import (
    DuplicateProviderId,
    EmptyProviderSet,
    InsufficientDeposit,
    InvalidAmount,
    InvalidProviderId,
    NotOwner,
    ProviderInactive,
    UnknownSubscriber,
    ValidationError,
)
from subsettle.core.models import Plan, Provider, Subscriber
from subsettle.core.transfers import TransferRail
from subsettle.registry.providers import ProviderRegistry
from subsettle.registry.store import AppendOnlyStore

logger = logging.getLogger(__name__)


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount("amount must be a positive integer", {"amount": amount})


class SubscriberRegistry:

    def __init__(self, providers: ProviderRegistry, rail: TransferRail, clock):
        self.providers = providers
        self.rail = rail
        self.clock = clock
        self._store: AppendOnlyStore[Subscriber] = AppendOnlyStore()

    def register(
        self,
        deposit_amount: int,
        plan: Plan,
        provider_ids: Iterable[int],
        caller: str,
    ) -> int:
        """
        Register a subscriber owned by caller. Returns its id.

        All checks and the external pull happen before any state is written.
        A rejected registration leaves no subscriber record and no provider
        balance change.
        """
        provider_ids = list(provider_ids)
        if not provider_ids:
            raise EmptyProviderSet("at least one provider is required")
        if len(set(provider_ids)) != len(provider_ids):
            raise DuplicateProviderId("provider ids must be unique", {"provider_ids": provider_ids})
        _check_amount(deposit_amount)
        try:
            plan = Plan(plan)
        except ValueError:
            raise ValidationError("unknown plan", {"plan": plan}) from None

        chosen: List[Provider] = []
        for provider_id in provider_ids:
            if not self.providers.was_issued(provider_id):
                raise InvalidProviderId("provider id was never issued", {"provider_id": provider_id})
            provider = self.providers.lookup(provider_id)
            if provider is None or not provider.active:
                raise ProviderInactive("provider is not accepting subscribers", {"provider_id": provider_id})
            chosen.append(provider)

        first_epoch_fees = sum(p.fee for p in chosen)
        if deposit_amount < 2 * first_epoch_fees:
            raise InsufficientDeposit(
                "deposit must cover two epochs of fees",
                {"deposit": deposit_amount, "required": 2 * first_epoch_fees},
            )

        self.rail.pull(caller, deposit_amount)

        now = self.clock.now()
        subscriber = self._store.append(
            lambda new_id: Subscriber(
                id=new_id,
                owner=caller,
                plan=plan,
                balance=deposit_amount - first_epoch_fees,
                last_settlement_time=now,
                provider_ids=frozenset(provider_ids),
            )
        )
        for provider in chosen:
            self.providers.attach(provider, subscriber.id)
            self.providers.accrue(provider, provider.fee)

        logger.info(
            f"registered subscriber {subscriber.id} for {caller}: "
            f"deposit {deposit_amount}, first epoch {first_epoch_fees}, "
            f"providers {sorted(provider_ids)}"
        )
        return subscriber.id

    def deposit(self, subscriber_id: int, amount: int, caller: str) -> int:
        """
        Top up a subscriber's balance from caller's account. Returns the new balance.

        Anyone may fund any subscriber. A paused or deactivated subscriber
        stays inactive.
        """
        _check_amount(amount)
        subscriber = self.get(subscriber_id)
        self.rail.pull(caller, amount)
        subscriber.balance += amount
        logger.info(f"deposit {amount} to subscriber {subscriber_id} by {caller}")
        return subscriber.balance

    def pause(self, subscriber_id: int, caller: str) -> bool:
        """
        Deactivate a subscriber and drop it from every provider's subscriber set.

        Idempotent: back-references are removed even when the subscriber was
        already deactivated by settlement, and repeat calls change nothing.
        Returns True if the subscriber was active before the call.
        """
        subscriber = self.get(subscriber_id)
        if subscriber.owner != caller:
            raise NotOwner(
                "caller does not own subscriber",
                {"subscriber_id": subscriber_id, "caller": caller},
            )
        was_active = subscriber.active
        subscriber.active = False
        for provider_id in subscriber.provider_ids:
            self.providers.detach(provider_id, subscriber_id)
        if was_active:
            logger.info(f"paused subscriber {subscriber_id}")
        else:
            logger.debug(f"pause on inactive subscriber {subscriber_id}")
        return was_active

    # ── Queries ───────────────────────────────────────────────

    def lookup(self, subscriber_id: int) -> Optional[Subscriber]:
        return self._store.get(subscriber_id)

    def get(self, subscriber_id: int) -> Subscriber:
        subscriber = self._store.get(subscriber_id)
        if subscriber is None:
            raise UnknownSubscriber("no such subscriber", {"subscriber_id": subscriber_id})
        return subscriber

    def __iter__(self) -> Iterator[Subscriber]:
        return iter(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def total_balance(self) -> int:
        return sum(s.balance for s in self._store)
