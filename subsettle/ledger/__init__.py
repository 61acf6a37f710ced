"""
Settlement journal - signed, hash-chained, append-only JSONL log.
"""

from subsettle.ledger.entry import GENESIS_HASH, JournalEntry, RecordType
from subsettle.ledger.journal import (
    JournalSummary,
    JournalViolation,
    SettlementJournal,
    load_entries,
    verify_journal,
)

__all__ = [
    "GENESIS_HASH",
    "JournalEntry",
    "RecordType",
    "JournalSummary",
    "JournalViolation",
    "SettlementJournal",
    "load_entries",
    "verify_journal",
]
