"""
tests/test_journal.py

Settlement journal: signing, chaining, restart and tamper detection.
"""

import json

import pytest

from subsettle.core.crypto import JournalSigner
from subsettle.core.exceptions import JournalError
from subsettle.ledger.entry import GENESIS_HASH, JournalEntry, RecordType
from subsettle.ledger.journal import SettlementJournal, load_entries, verify_journal

from conftest import EPOCH, START, assert_conserved


def _lines(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def _write_lines(path, lines):
    path.write_text("".join(json.dumps(d) + "\n" for d in lines), encoding="utf-8")


class TestEntry:

    def test_signature_verifies(self, signer):
        entry = JournalEntry.create(RecordType.DEPOSIT, signer.public_key_hex, 0, {"amount": 5}).sign(signer)
        assert entry.verify_signature()
        assert entry.validate_schema()

    def test_payload_change_breaks_signature(self, signer):
        entry = JournalEntry.create(RecordType.DEPOSIT, signer.public_key_hex, 0, {"amount": 5}).sign(signer)
        entry.payload["amount"] = 6
        assert not entry.verify_signature()

    def test_wrong_key_cannot_verify(self, signer):
        other = JournalSigner.generate()
        entry = JournalEntry.create(RecordType.DEPOSIT, signer.public_key_hex, 0, {}).sign(other)
        assert not entry.verify_signature()

    def test_unsigned_entry_fails(self, signer):
        entry = JournalEntry.create(RecordType.DEPOSIT, signer.public_key_hex, 0, {})
        assert not entry.verify_signature()

    def test_first_entry_links_to_genesis(self, signer):
        entry = JournalEntry.create(RecordType.DEPOSIT, signer.public_key_hex, 0, {})
        assert entry.causal_hash == GENESIS_HASH
        assert entry.verify_chain(None)

    def test_chain_hash_excludes_signature(self, signer):
        first = JournalEntry.create(RecordType.DEPOSIT, signer.public_key_hex, 0, {})
        unsigned_hash = JournalEntry.causal_hash_after(first)
        first.sign(signer)
        assert JournalEntry.causal_hash_after(first) == unsigned_hash

    def test_unknown_record_type_rejected(self, signer):
        with pytest.raises(ValueError):
            JournalEntry.create("refund", signer.public_key_hex, 0, {})

    def test_non_dict_payload_rejected(self, signer):
        with pytest.raises(TypeError):
            JournalEntry.create(RecordType.DEPOSIT, signer.public_key_hex, 0, [1, 2])

    def test_negative_sequence_rejected(self, signer):
        with pytest.raises(ValueError):
            JournalEntry.create(RecordType.DEPOSIT, signer.public_key_hex, -1, {})

    @pytest.mark.parametrize("field,value", [
        ("nonce", "abc"),
        ("timestamp", "2024-01-01T00:00:00Z"),
        ("signer_public_key", "00" * 16),
        ("record_type", "refund"),
        ("journal_version", "0.9"),
    ])
    def test_schema_violations_detected(self, signer, field, value):
        entry = JournalEntry.create(RecordType.DEPOSIT, signer.public_key_hex, 0, {})
        setattr(entry, field, value)
        result = entry.validate_schema()
        assert not result
        assert result.errors

    def test_round_trip_preserves_hash(self, signer):
        entry = JournalEntry.create(RecordType.SETTLEMENT, signer.public_key_hex, 3, {"credits": {"1": 10}})
        entry.sign(signer)
        loaded = JournalEntry.from_dict(json.loads(json.dumps(entry.to_dict())))
        assert JournalEntry.causal_hash_after(loaded) == JournalEntry.causal_hash_after(entry)
        assert loaded.verify_signature()


class TestJournalFile:

    def test_appends_chain(self, journal):
        for i in range(5):
            journal.append(RecordType.DEPOSIT, {"i": i})
        summary = verify_journal(journal.path)
        assert summary.valid
        assert summary.total_entries == 5
        assert summary.valid_signatures == 5
        assert summary.record_type_counts == {RecordType.DEPOSIT: 5}
        assert summary.head_hash == journal.head_hash

    def test_restart_continues_chain(self, signer, tmp_path):
        path = tmp_path / "j.jsonl"
        first = SettlementJournal(signer, path)
        first.append(RecordType.DEPOSIT, {"i": 0})
        first.append(RecordType.DEPOSIT, {"i": 1})

        second = SettlementJournal(signer, path)
        assert second.next_sequence == 2
        assert second.head_hash == first.head_hash
        second.append(RecordType.DEPOSIT, {"i": 2})
        assert verify_journal(path).valid

    def test_restart_on_corrupt_tail_raises(self, signer, tmp_path):
        path = tmp_path / "j.jsonl"
        SettlementJournal(signer, path).append(RecordType.DEPOSIT, {})
        with open(path, "a", encoding="utf-8") as f:
            f.write("{not json\n")
        with pytest.raises(JournalError):
            SettlementJournal(signer, path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.jsonl"
        path.write_text("", encoding="utf-8")
        summary = verify_journal(path)
        assert summary.valid
        assert summary.total_entries == 0
        assert summary.head_hash == GENESIS_HASH

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            verify_journal(tmp_path / "nope.jsonl")

    def test_malformed_line(self, tmp_path):
        path = tmp_path / "bad.jsonl"
        path.write_text("{oops\n", encoding="utf-8")
        with pytest.raises(JournalError):
            load_entries(path)

    def test_missing_field(self, journal):
        journal.append(RecordType.DEPOSIT, {})
        lines = _lines(journal.path)
        del lines[0]["nonce"]
        _write_lines(journal.path, lines)
        with pytest.raises(JournalError):
            load_entries(journal.path)


class TestTamperDetection:

    def _journal_with(self, journal, n=4):
        for i in range(n):
            journal.append(RecordType.DEPOSIT, {"amount": 10 * (i + 1)})
        return _lines(journal.path)

    def test_edited_payload(self, journal):
        lines = self._journal_with(journal)
        lines[1]["payload"]["amount"] = 1_000_000
        _write_lines(journal.path, lines)
        summary = verify_journal(journal.path)
        types = {(v.at_sequence, v.violation_type) for v in summary.violations}
        assert (1, "invalid_signature") in types
        assert (2, "chain_break") in types

    def test_deleted_entry(self, journal):
        lines = self._journal_with(journal)
        del lines[1]
        _write_lines(journal.path, lines)
        summary = verify_journal(journal.path)
        types = {v.violation_type for v in summary.violations}
        assert "sequence_gap" in types
        assert "chain_break" in types

    def test_reordered_entries(self, journal):
        lines = self._journal_with(journal)
        lines[1], lines[2] = lines[2], lines[1]
        _write_lines(journal.path, lines)
        assert not verify_journal(journal.path).valid

    def test_schema_violation_reported(self, journal):
        lines = self._journal_with(journal)
        lines[0]["record_type"] = "refund"
        _write_lines(journal.path, lines)
        summary = verify_journal(journal.path)
        assert summary.violations[0].violation_type == "schema"

    def test_forged_signature_with_other_key(self, journal):
        lines = self._journal_with(journal, n=1)
        other = JournalSigner.generate()
        entry = JournalEntry.from_dict(lines[0])
        entry.sign(other)
        _write_lines(journal.path, [entry.to_dict()])
        summary = verify_journal(journal.path)
        assert [v.violation_type for v in summary.violations] == ["invalid_signature"]


class TestServiceJournaling:

    def test_every_mutation_is_journaled(self, journaled_service, journal, clock):
        service = journaled_service
        service.register_provider("k1", 100, "bob")
        sid = service.register_subscriber(250, "basic", [1], "alice")
        service.deposit_for_subscription(sid, 50, "alice")
        clock.advance(EPOCH)
        service.sweep()
        service.withdraw_provider_earnings(1, "bob")
        service.update_provider_fee(1, 80, "bob")
        service.set_providers_active([1], [False], "root")
        service.pause_subscription(sid, "alice")
        service.remove_provider(1, "bob")

        summary = verify_journal(journal.path)
        assert summary.valid
        assert [e.record_type for e in load_entries(journal.path)] == [
            RecordType.PROVIDER_REGISTERED,
            RecordType.SUBSCRIBER_REGISTERED,
            RecordType.DEPOSIT,
            RecordType.SETTLEMENT,
            RecordType.EARNINGS_WITHDRAWN,
            RecordType.FEE_UPDATED,
            RecordType.PROVIDERS_TOGGLED,
            RecordType.SUBSCRIPTION_PAUSED,
            RecordType.PROVIDER_REMOVED,
        ]

    def test_settlement_payload(self, journaled_service, journal, clock):
        service = journaled_service
        service.register_provider("k1", 100, "bob")
        service.register_subscriber(250, "basic", [1], "alice")
        clock.advance(EPOCH)
        service.sweep()
        settlement = load_entries(journal.path)[-1]
        assert settlement.payload == {
            "subscriber_id": 1,
            "status": "settled",
            "epochs": 1,
            "charged": 100,
            "credits": {"1": 100},
            "at": START + EPOCH,
        }

    def test_rejected_commands_and_noops_not_journaled(self, journaled_service, journal):
        service = journaled_service
        service.register_provider("k1", 100, "bob")
        with pytest.raises(Exception):
            service.register_provider("k1", 100, "bob")
        service.run_settlement([1, 2, 3])
        service.withdraw_provider_earnings(1, "bob")
        assert len(load_entries(journal.path)) == 1

    def test_from_config_opens_journal(self, tmp_path, rail, clock):
        from subsettle.core.config import LedgerConfig
        from subsettle.service import BillingService

        config = LedgerConfig(
            epoch_length_seconds=EPOCH,
            journal_path=tmp_path / "svc" / "journal.jsonl",
            journal_key_path=tmp_path / "svc" / "journal.key",
        )
        service = BillingService.from_config(config, rail=rail, clock=clock)
        service.register_provider("k1", 100, "bob")
        assert (tmp_path / "svc" / "journal.key").exists()

        reopened = BillingService.from_config(config, rail=rail, clock=clock)
        assert reopened.journal.signer.public_key_hex == service.journal.signer.public_key_hex
        assert reopened.journal.next_sequence == 1

    def test_entries_carry_ledger_time(self, journaled_service, journal, clock):
        service = journaled_service
        service.register_provider("k1", 100, "bob")
        clock.advance(250)
        service.update_provider_fee(1, 80, "bob")
        assert [e.payload["at"] for e in load_entries(journal.path)] == [START, START + 250]


class TestJournalWriteFailure:

    def test_command_succeeds_and_journal_marked_broken(self, journaled_service, journal):
        service = journaled_service
        journal.path.mkdir()

        assert service.register_provider("k1", 100, "bob") == 1
        assert len(service.providers) == 1
        assert service.journal_broken
        assert service.register_provider("k2", 100, "carl") == 2

    def test_sweep_settles_everyone_despite_broken_journal(self, journaled_service, journal, clock):
        service = journaled_service
        service.register_provider("k1", 100, "bob")
        service.register_subscriber(1_000, "basic", [1], "alice")
        service.register_subscriber(1_000, "basic", [1], "carol")
        journal.path.unlink()
        journal.path.mkdir()

        clock.advance(EPOCH)
        report = service.sweep()

        assert report.settled_ids == [1, 2]
        assert service.provider_earnings(1) == 400
        assert service.journal_broken
        assert_conserved(service)

    def test_no_entries_after_break(self, journaled_service, journal, tmp_path):
        service = journaled_service
        service.register_provider("k1", 100, "bob")
        original = journal.path
        journal.path = tmp_path / "missing" / "journal.jsonl"
        service.register_provider("k2", 100, "carl")
        assert service.journal_broken

        journal.path = original
        service.update_provider_fee(1, 80, "bob")
        assert len(load_entries(original)) == 1
        assert verify_journal(original).valid
