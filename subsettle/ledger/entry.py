"""
subsettle/ledger/entry.py

Journal entry model.

CONTRACT 1: Signing
    bytes_signed = canonicalize(entry.to_signing_dict())
    algorithm    = Ed25519, base64url without padding

CONTRACT 2: Chain
    causal_hash  = SHA-256(canonicalize(prev.to_signing_dict()))
    first entry  = GENESIS_HASH ("0" * 64)
    The payload is inside the hashed dict, so editing any earlier payload
    breaks every later link.

CONTRACT 3: Vocabulary
    record_type must be a RecordType constant. Enforced by create(),
    reported by validate_schema() for entries read back from disk.
"""

import re
import secrets
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from subsettle.core.canonical import canonical_hash, canonicalize
from subsettle.core.crypto import JournalSigner
from subsettle.core.time import journal_timestamp


JOURNAL_VERSION = "1.0"
GENESIS_HASH    = "0" * 64

_NONCE_HEX_LENGTH      = 32
_PUBLIC_KEY_HEX_LENGTH = 64
_TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


class RecordType:
    PROVIDER_REGISTERED   = "provider_registered"
    PROVIDER_REMOVED      = "provider_removed"
    PROVIDERS_TOGGLED     = "providers_toggled"
    FEE_UPDATED           = "fee_updated"
    SUBSCRIBER_REGISTERED = "subscriber_registered"
    DEPOSIT               = "deposit"
    SUBSCRIPTION_PAUSED   = "subscription_paused"
    SETTLEMENT            = "settlement"
    EARNINGS_WITHDRAWN    = "earnings_withdrawn"


_VALID_RECORD_TYPES: Set[str] = {
    value for name, value in vars(RecordType).items() if name.isupper()
}


@dataclass
class SchemaValidationResult:
    """Returned, not raised, so callers can report every problem at once."""
    valid:  bool
    errors: List[str]

    def __bool__(self) -> bool:
        return self.valid


def _is_hex(value: Any, length: int) -> bool:
    if not isinstance(value, str) or len(value) != length:
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True


@dataclass
class JournalEntry:

    journal_version:   str
    entry_id:          str
    record_type:       str
    sequence:          int
    nonce:             str
    timestamp:         str
    causal_hash:       str
    signer_public_key: str
    payload:           Dict[str, Any]
    signature:         Optional[str] = None

    @classmethod
    def create(
        cls,
        record_type:       str,
        signer_public_key: str,
        sequence:          int,
        payload:           Dict[str, Any],
        prev:              Optional["JournalEntry"] = None,
    ) -> "JournalEntry":
        """Build an unsigned entry linked to prev. Call .sign() next."""
        if record_type not in _VALID_RECORD_TYPES:
            raise ValueError(
                f"Invalid record_type '{record_type}'. "
                f"Valid: {sorted(_VALID_RECORD_TYPES)}"
            )
        if not isinstance(payload, dict):
            raise TypeError(f"payload must be dict, got {type(payload).__name__}")
        if not isinstance(sequence, int) or sequence < 0:
            raise ValueError(f"sequence must be non-negative int, got {sequence!r}")
        if not _is_hex(signer_public_key, _PUBLIC_KEY_HEX_LENGTH):
            raise ValueError("signer_public_key must be a 64-char hex string")

        return cls(
            journal_version=   JOURNAL_VERSION,
            entry_id=          f"sse-{uuid.uuid4()}",
            record_type=       record_type,
            sequence=          sequence,
            nonce=             secrets.token_hex(_NONCE_HEX_LENGTH // 2),
            timestamp=         journal_timestamp(),
            causal_hash=       cls.causal_hash_after(prev),
            signer_public_key= signer_public_key,
            payload=           payload,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JournalEntry":
        """
        Rebuild an entry from a JSONL line. Trusts the data; call
        validate_schema() before relying on it. Raises KeyError when a
        required field is missing.
        """
        return cls(
            journal_version=   data["journal_version"],
            entry_id=          data["entry_id"],
            record_type=       data["record_type"],
            sequence=          data["sequence"],
            nonce=             data["nonce"],
            timestamp=         data["timestamp"],
            causal_hash=       data["causal_hash"],
            signer_public_key= data["signer_public_key"],
            payload=           data.get("payload", {}),
            signature=         data.get("signature"),
        )

    def validate_schema(self) -> SchemaValidationResult:
        errors: List[str] = []

        if self.journal_version != JOURNAL_VERSION:
            errors.append(
                f"journal_version: expected '{JOURNAL_VERSION}', got '{self.journal_version}'"
            )
        if self.record_type not in _VALID_RECORD_TYPES:
            errors.append(f"record_type '{self.record_type}' is not a known record type")
        if not isinstance(self.entry_id, str) or not self.entry_id.startswith("sse-"):
            errors.append(f"entry_id must start with 'sse-', got {self.entry_id!r}")
        if isinstance(self.sequence, bool) or not isinstance(self.sequence, int) or self.sequence < 0:
            errors.append(f"sequence must be non-negative int, got {self.sequence!r}")
        if not _is_hex(self.nonce, _NONCE_HEX_LENGTH):
            errors.append(f"nonce must be {_NONCE_HEX_LENGTH} hex chars")
        if not isinstance(self.timestamp, str) or not _TIMESTAMP_RE.match(self.timestamp):
            errors.append(f"timestamp {self.timestamp!r} is not YYYY-MM-DDTHH:MM:SS.mmmZ")
        if not _is_hex(self.causal_hash, 64):
            errors.append("causal_hash must be 64 hex chars")
        if not _is_hex(self.signer_public_key, _PUBLIC_KEY_HEX_LENGTH):
            errors.append(f"signer_public_key must be {_PUBLIC_KEY_HEX_LENGTH} hex chars")
        if not isinstance(self.payload, dict):
            errors.append(f"payload must be dict, got {type(self.payload).__name__}")

        return SchemaValidationResult(valid=not errors, errors=errors)

    # ── Canonical forms ───────────────────────────────────────

    def to_signing_dict(self) -> Dict[str, Any]:
        """Everything except the signature. Signed, and hashed into the next entry."""
        return {
            "causal_hash":       self.causal_hash,
            "entry_id":          self.entry_id,
            "journal_version":   self.journal_version,
            "nonce":             self.nonce,
            "payload":           self.payload,
            "record_type":       self.record_type,
            "sequence":          self.sequence,
            "signer_public_key": self.signer_public_key,
            "timestamp":         self.timestamp,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Persisted form, one JSONL line."""
        d = self.to_signing_dict()
        d["signature"] = self.signature
        return d

    def canonical_bytes(self) -> bytes:
        return canonicalize(self.to_signing_dict())

    @staticmethod
    def causal_hash_after(prev: Optional["JournalEntry"]) -> str:
        if prev is None:
            return GENESIS_HASH
        return canonical_hash(prev.to_signing_dict())

    # ── Signing / verification ────────────────────────────────

    def sign(self, signer: JournalSigner) -> "JournalEntry":
        self.signature = signer.sign(self.canonical_bytes())
        return self

    def verify_signature(self) -> bool:
        if not self.signature:
            return False
        return JournalSigner.verify_detached(
            self.canonical_bytes(), self.signature, self.signer_public_key
        )

    def verify_chain(self, prev: Optional["JournalEntry"]) -> bool:
        return self.causal_hash == self.causal_hash_after(prev)
