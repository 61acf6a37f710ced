"""
Sweep scanner.

scan()    : read-only: which subscribers are due right now, in id order.
dispatch(): settle each id in a (possibly stale, possibly duplicated) list.
sweep()   : scan, then dispatch.

A scan is a snapshot. Anything may happen between scan and dispatch (a
subscriber pauses itself, a deposit lands); the engine re-checks every id.
"""

import logging
from typing import Iterable, List, Optional

from subsettle.core.models import DueScan, SweepReport
from subsettle.settlement.engine import SettlementEngine

logger = logging.getLogger(__name__)


class SweepScanner:

    def __init__(self, engine: SettlementEngine):
        self.engine = engine

    def scan(self, now: Optional[int] = None) -> DueScan:
        if now is None:
            now = self.engine.clock.now()
        due_ids: List[int] = [
            subscriber.id
            for subscriber in self.engine.subscribers
            if subscriber.active and self.engine.epochs_owed(subscriber, now) >= 1
        ]
        return DueScan(any_due=bool(due_ids), due_ids=due_ids)

    def is_due(self, now: Optional[int] = None) -> bool:
        return self.scan(now).any_due

    def dispatch(self, subscriber_ids: Iterable[int]) -> SweepReport:
        report = SweepReport()
        for subscriber_id in subscriber_ids:
            report.outcomes.append(self.engine.settle(subscriber_id))
        if report.outcomes:
            logger.info(
                f"dispatched {len(report.outcomes)} settlement(s): {report.counts()}, "
                f"charged {report.total_charged}"
            )
        return report

    def sweep(self) -> SweepReport:
        due = self.scan()
        if not due.any_due:
            logger.debug("sweep found nothing due")
            return SweepReport()
        return self.dispatch(due.due_ids)
