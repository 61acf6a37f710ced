"""
Subsettle: Canonical JSON Encoding: RFC 8785 (JCS)

Every byte string the journal signs or hashes is produced here.

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import hashlib

import jcs


def canonicalize(obj: dict) -> bytes:
    """
    Encode a dict to RFC 8785 canonical JSON bytes.

    Output is deterministic regardless of key insertion order.
    Values must be JSON primitives; amounts are ints, never floats.
    """
    return jcs.canonicalize(obj)


def canonical_hash(obj: dict) -> str:
    """Lowercase hex SHA-256 of the canonical form (64 characters)."""
    return hashlib.sha256(canonicalize(obj)).hexdigest()
