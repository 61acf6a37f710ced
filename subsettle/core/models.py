"""
subsettle/core/models.py

Entity and result model for the settlement ledger.

Entities (Provider, Subscriber) are mutable and owned by the registries.
Everything handed back to callers is a frozen snapshot (ProviderState,
SubscriberState) or a result record (SettlementOutcome, DueScan,
SweepReport).

Amounts are int minor units. Times are int Unix seconds.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Set


class Plan(str, Enum):
    """Subscriber plan tag. Informational only, never affects fees."""
    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"


class SettlementStatus(str, Enum):
    """What a single settlement call did."""
    SETTLED = "settled"
    NOT_DUE = "not_due"
    INACTIVE = "inactive"
    UNKNOWN = "unknown"
    UNDERFUNDED = "underfunded"


@dataclass
class Provider:
    id: int
    owner: str
    registration_key: str
    fee: int
    active: bool = True
    balance: int = 0
    subscriber_ids: Set[int] = field(default_factory=set)

    def snapshot(self) -> "ProviderState":
        return ProviderState(
            id=self.id,
            owner=self.owner,
            active=self.active,
            fee=self.fee,
            balance=self.balance,
            subscriber_count=len(self.subscriber_ids),
            subscriber_ids=frozenset(self.subscriber_ids),
        )


@dataclass
class Subscriber:
    id: int
    owner: str
    plan: Plan
    balance: int
    last_settlement_time: int
    provider_ids: FrozenSet[int]
    active: bool = True

    def snapshot(self) -> "SubscriberState":
        return SubscriberState(
            id=self.id,
            owner=self.owner,
            active=self.active,
            plan=self.plan,
            balance=self.balance,
            last_settlement_time=self.last_settlement_time,
            provider_ids=self.provider_ids,
        )


@dataclass(frozen=True)
class ProviderState:
    id: int
    owner: str
    active: bool
    fee: int
    balance: int
    subscriber_count: int
    subscriber_ids: FrozenSet[int]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner": self.owner,
            "active": self.active,
            "fee": self.fee,
            "balance": self.balance,
            "subscriber_count": self.subscriber_count,
            "subscriber_ids": sorted(self.subscriber_ids),
        }


@dataclass(frozen=True)
class SubscriberState:
    id: int
    owner: str
    active: bool
    plan: Plan
    balance: int
    last_settlement_time: int
    provider_ids: FrozenSet[int]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner": self.owner,
            "active": self.active,
            "plan": self.plan.value,
            "balance": self.balance,
            "last_settlement_time": self.last_settlement_time,
            "provider_ids": sorted(self.provider_ids),
        }


@dataclass(frozen=True)
class SettlementOutcome:
    """Result of one settlement call. `credits` maps provider id to amount."""
    subscriber_id: int
    status: SettlementStatus
    epochs: int = 0
    charged: int = 0
    credits: Dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "subscriber_id": self.subscriber_id,
            "status": self.status.value,
            "epochs": self.epochs,
            "charged": self.charged,
            # JSON object keys must be strings
            "credits": {str(k): v for k, v in sorted(self.credits.items())},
        }


@dataclass(frozen=True)
class DueScan:
    any_due: bool
    due_ids: List[int]


@dataclass
class SweepReport:
    """Aggregate of one dispatch pass."""
    outcomes: List[SettlementOutcome] = field(default_factory=list)

    @property
    def total_charged(self) -> int:
        return sum(o.charged for o in self.outcomes)

    @property
    def settled_ids(self) -> List[int]:
        return [o.subscriber_id for o in self.outcomes if o.status == SettlementStatus.SETTLED]

    @property
    def deactivated_ids(self) -> List[int]:
        return [o.subscriber_id for o in self.outcomes if o.status == SettlementStatus.UNDERFUNDED]

    def counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for outcome in self.outcomes:
            counts[outcome.status.value] = counts.get(outcome.status.value, 0) + 1
        return counts
