"""
subsettle/ledger/journal.py

Settlement journal: append-only, hash-chained, signed JSONL audit trail.

append() MUST, in this order:
  1. Acquire lock
  2. JournalEntry.create(..., prev=last entry)
  3. Sign
  4. Write the line to disk
  5. Advance sequence and head, only after the write succeeded

verify_journal() reads a file back and reports every schema, chain,
sequence and signature violation it finds.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from subsettle.core.crypto import JournalSigner
from subsettle.core.exceptions import JournalError
from subsettle.ledger.entry import GENESIS_HASH, JournalEntry

logger = logging.getLogger(__name__)


class SettlementJournal:
    """
    Thread-safe via an internal lock (single process).
    State survives restarts by reading the last line of an existing file.
    """

    def __init__(self, signer: JournalSigner, path: Path) -> None:
        self.signer = signer
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._sequence = 0
        self._last: Optional[JournalEntry] = None

        self._restore_state()

    @property
    def next_sequence(self) -> int:
        return self._sequence

    @property
    def head_hash(self) -> str:
        """causal_hash the next entry will carry."""
        return JournalEntry.causal_hash_after(self._last)

    def append(self, record_type: str, payload: Dict[str, Any]) -> JournalEntry:
        """Sign and persist one entry. Raises JournalError if the write fails."""
        with self._lock:
            entry = JournalEntry.create(
                record_type=       record_type,
                signer_public_key= self.signer.public_key_hex,
                sequence=          self._sequence,
                payload=           payload,
                prev=              self._last,
            ).sign(self.signer)

            try:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry.to_dict()) + "\n")
            except OSError as exc:
                raise JournalError(
                    f"journal write failed: {exc}", {"path": str(self.path)}
                ) from exc

            self._sequence += 1
            self._last = entry
            return entry

    def _restore_state(self) -> None:
        if not self.path.exists():
            return

        last_line = None
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    last_line = line.strip()
        if last_line is None:
            return

        try:
            entry = JournalEntry.from_dict(json.loads(last_line))
        except (ValueError, KeyError) as exc:
            raise JournalError(
                f"cannot restore journal state: last line unreadable ({exc})",
                {"path": str(self.path)},
            ) from exc
        schema = entry.validate_schema()
        if not schema:
            raise JournalError(
                "cannot restore journal state: last entry violates schema",
                {"path": str(self.path), "errors": schema.errors},
            )
        self._sequence = entry.sequence + 1
        self._last = entry
        logger.info(f"journal {self.path} restored at sequence {self._sequence}")


# ── Verification ──────────────────────────────────────────────

@dataclass
class JournalViolation:
    at_sequence:    int
    entry_id:       str
    violation_type: str   # "schema" | "chain_break" | "invalid_signature" | "sequence_gap"
    detail:         str


@dataclass
class JournalSummary:
    total_entries:      int
    violations:         List[JournalViolation] = field(default_factory=list)
    valid_signatures:   int = 0
    record_type_counts: Dict[str, int] = field(default_factory=dict)
    first_timestamp:    Optional[str] = None
    last_timestamp:     Optional[str] = None
    head_hash:          str = GENESIS_HASH

    @property
    def valid(self) -> bool:
        return not self.violations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_entries":      self.total_entries,
            "valid":              self.valid,
            "valid_signatures":   self.valid_signatures,
            "record_type_counts": self.record_type_counts,
            "first_timestamp":    self.first_timestamp,
            "last_timestamp":     self.last_timestamp,
            "head_hash":          self.head_hash,
            "violations": [
                {
                    "at_sequence":    v.at_sequence,
                    "entry_id":       v.entry_id,
                    "violation_type": v.violation_type,
                    "detail":         v.detail,
                }
                for v in self.violations
            ],
        }


def load_entries(path: Path) -> List[JournalEntry]:
    """
    Parse every line of a journal file, in file order.

    Raises FileNotFoundError if missing and JournalError on a line that is
    not JSON or lacks a required field.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Journal not found: {path}")
    entries: List[JournalEntry] = []
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(JournalEntry.from_dict(json.loads(line)))
            except json.JSONDecodeError as exc:
                raise JournalError(f"invalid JSON at line {line_no}: {exc}") from exc
            except KeyError as exc:
                raise JournalError(f"missing field {exc} at line {line_no}") from exc
    return entries


def verify_journal(path: Path) -> JournalSummary:
    entries = load_entries(path)
    summary = JournalSummary(total_entries=len(entries))

    prev: Optional[JournalEntry] = None
    for index, entry in enumerate(entries):
        summary.record_type_counts[entry.record_type] = (
            summary.record_type_counts.get(entry.record_type, 0) + 1
        )

        schema = entry.validate_schema()
        if not schema:
            summary.violations.append(JournalViolation(
                index, entry.entry_id, "schema", "; ".join(schema.errors),
            ))
            prev = entry
            continue

        if entry.sequence != index:
            summary.violations.append(JournalViolation(
                index, entry.entry_id, "sequence_gap",
                f"expected sequence {index}, got {entry.sequence}",
            ))
        if not entry.verify_chain(prev):
            summary.violations.append(JournalViolation(
                index, entry.entry_id, "chain_break",
                f"causal_hash ...{entry.causal_hash[-12:]} does not match "
                f"...{JournalEntry.causal_hash_after(prev)[-12:]}",
            ))
        if entry.verify_signature():
            summary.valid_signatures += 1
        else:
            summary.violations.append(JournalViolation(
                index, entry.entry_id, "invalid_signature", "signature does not verify",
            ))
        prev = entry

    if entries:
        summary.first_timestamp = entries[0].timestamp
        summary.last_timestamp = entries[-1].timestamp
        summary.head_hash = JournalEntry.causal_hash_after(entries[-1])
    return summary
