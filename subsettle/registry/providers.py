"""
Provider registry.

Owns provider entities: admission, activation toggling, fee updates,
removal and earnings withdrawal. Registration keys are consumed forever,
even when the provider that used them is removed.
"""

import logging
from typing import Iterator, List, Optional, Sequence, Set

from subsettle.core.config import LedgerConfig
from subsettle.core.exceptions import (
    ArityMismatch,
    CapacityExceeded,
    DuplicateRegistrationKey,
    InvalidFee,
    InvalidProviderId,
    NotOwner,
    UnknownProvider,
)
from subsettle.core.models import Provider
from subsettle.core.transfers import TransferRail
from subsettle.registry.store import TombstoneStore

logger = logging.getLogger(__name__)


def _check_fee(fee: int) -> None:
    if isinstance(fee, bool) or not isinstance(fee, int) or fee <= 0:
        raise InvalidFee("fee must be a positive integer", {"fee": fee})


class ProviderRegistry:

    def __init__(self, config: LedgerConfig, rail: TransferRail):
        self.config = config
        self.rail = rail
        self._store: TombstoneStore[Provider] = TombstoneStore()
        self._used_keys: Set[str] = set()

    # ── Commands ──────────────────────────────────────────────

    def register(self, registration_key: str, fee: int, caller: str) -> int:
        """Admit a new provider owned by caller. Returns its id."""
        _check_fee(fee)
        if self._store.highest_id >= self.config.max_providers:
            raise CapacityExceeded(
                "provider capacity reached",
                {"max_providers": self.config.max_providers},
            )
        if registration_key in self._used_keys:
            raise DuplicateRegistrationKey(
                "registration key already consumed",
                {"registration_key": registration_key},
            )

        self._used_keys.add(registration_key)
        provider = self._store.add(
            lambda new_id: Provider(
                id=new_id,
                owner=caller,
                registration_key=registration_key,
                fee=fee,
            )
        )
        logger.info(f"registered provider {provider.id} for {caller} at fee {fee}")
        return provider.id

    def remove(self, provider_id: int, caller: str) -> int:
        """Flush earnings to the owner and tombstone the provider. Returns the flushed amount."""
        provider = self._owned(provider_id, caller)
        flushed = self._withdraw(provider)
        self._store.remove(provider_id)
        logger.info(
            f"removed provider {provider_id}, flushed {flushed}, "
            f"{len(provider.subscriber_ids)} subscriber references left dangling"
        )
        return flushed

    def set_active(self, ids: Sequence[int], flags: Sequence[bool], caller: str) -> List[int]:
        """
        Toggle activation for a batch of providers. System owner only.

        Every id is validated before any flag is written. Ids of removed
        providers are skipped. Returns the ids whose flag was written.
        """
        if caller != self.config.system_owner:
            raise NotOwner("only the system owner may toggle providers", {"caller": caller})
        if len(ids) != len(flags):
            raise ArityMismatch(
                "ids and flags differ in length",
                {"ids": len(ids), "flags": len(flags)},
            )
        for provider_id in ids:
            if not self._store.was_issued(provider_id):
                raise InvalidProviderId(
                    "provider id was never issued",
                    {"provider_id": provider_id, "highest_id": self._store.highest_id},
                )

        written: List[int] = []
        for provider_id, flag in zip(ids, flags):
            if self._store.is_tombstoned(provider_id):
                logger.warning(f"set_active skipped removed provider {provider_id}")
                continue
            provider = self._store.get(provider_id)
            provider.active = bool(flag)
            written.append(provider_id)
        logger.info(f"set active flags for providers {written}")
        return written

    def update_fee(self, provider_id: int, new_fee: int, caller: str) -> int:
        """Change the periodic fee. Applies from the next settlement on. Returns the old fee."""
        _check_fee(new_fee)
        provider = self._owned(provider_id, caller)
        old_fee, provider.fee = provider.fee, new_fee
        logger.info(f"provider {provider_id} fee {old_fee} -> {new_fee}")
        return old_fee

    def withdraw_earnings(self, provider_id: int, caller: str) -> int:
        provider = self._owned(provider_id, caller)
        amount = self._withdraw(provider)
        logger.info(f"provider {provider_id} withdrew {amount}")
        return amount

    # ── Used by the subscriber registry and settlement engine ─

    def lookup(self, provider_id: int) -> Optional[Provider]:
        return self._store.get(provider_id)

    def was_issued(self, provider_id: int) -> bool:
        return self._store.was_issued(provider_id)

    def accrue(self, provider: Provider, amount: int) -> None:
        provider.balance += amount

    def attach(self, provider: Provider, subscriber_id: int) -> None:
        provider.subscriber_ids.add(subscriber_id)

    def detach(self, provider_id: int, subscriber_id: int) -> None:
        provider = self._store.get(provider_id)
        if provider is not None:
            provider.subscriber_ids.discard(subscriber_id)

    # ── Queries ───────────────────────────────────────────────

    def get(self, provider_id: int) -> Provider:
        provider = self._store.get(provider_id)
        if provider is None:
            raise UnknownProvider("no such provider", {"provider_id": provider_id})
        return provider

    def __iter__(self) -> Iterator[Provider]:
        return iter(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def total_balance(self) -> int:
        return sum(p.balance for p in self._store)

    # ── Internal ──────────────────────────────────────────────

    def _owned(self, provider_id: int, caller: str) -> Provider:
        provider = self.get(provider_id)
        if provider.owner != caller:
            raise NotOwner(
                "caller does not own provider",
                {"provider_id": provider_id, "caller": caller},
            )
        return provider

    def _withdraw(self, provider: Provider) -> int:
        """
        Zero the balance, then push it to the owner.

        The balance is written before the external push so a re-entrant or
        concurrent call sees nothing left to pay. If the push fails the
        amount is added back on top of anything credited meanwhile and the
        error propagates.
        """
        amount = provider.balance
        if amount == 0:
            return 0
        provider.balance = 0
        try:
            self.rail.push(provider.owner, amount)
        except Exception:
            provider.balance += amount
            raise
        return amount

