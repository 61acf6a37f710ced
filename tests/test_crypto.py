"""
tests/test_crypto.py
"""

import pytest

from subsettle.core.canonical import canonical_hash, canonicalize
from subsettle.core.crypto import JournalSigner


class TestJournalSigner:

    def test_sign_and_verify(self):
        signer = JournalSigner.generate()
        sig = signer.sign(b"payload")
        assert "=" not in sig
        assert JournalSigner.verify_detached(b"payload", sig, signer.public_key_hex)
        assert not JournalSigner.verify_detached(b"payloaD", sig, signer.public_key_hex)

    @pytest.mark.parametrize("sig,key", [
        ("", "00" * 32),
        ("!!!", "00" * 32),
        ("abcd", "zz" * 32),
        ("abcd", "00"),
    ])
    def test_garbage_never_raises(self, sig, key):
        assert JournalSigner.verify_detached(b"x", sig, key) is False

    def test_load_or_create_persists_key(self, tmp_path):
        path = tmp_path / "keys" / "journal.key"
        first = JournalSigner.load_or_create(path)
        second = JournalSigner.load_or_create(path)
        assert first.public_key_hex == second.public_key_hex

    def test_from_file_rejects_garbage(self, tmp_path):
        path = tmp_path / "bad.key"
        path.write_bytes(b"not a key")
        with pytest.raises(ValueError):
            JournalSigner.from_file(path)


class TestCanonical:

    def test_key_order_does_not_matter(self):
        assert canonicalize({"b": 1, "a": 2}) == canonicalize({"a": 2, "b": 1}) == b'{"a":2,"b":1}'

    def test_hash_is_hex_sha256(self):
        digest = canonical_hash({"a": 1})
        assert len(digest) == 64
        int(digest, 16)
