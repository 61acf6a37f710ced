"""
Shared fixtures.

Epochs are 100 seconds long so scenarios read in small numbers.
"""

import pytest

from subsettle.core.config import LedgerConfig
from subsettle.core.crypto import JournalSigner
from subsettle.core.time import ManualClock
from subsettle.core.transfers import InMemoryTransferRail
from subsettle.ledger.journal import SettlementJournal
from subsettle.service import BillingService

EPOCH = 100
START = 1_000


@pytest.fixture
def config():
    return LedgerConfig(epoch_length_seconds=EPOCH, max_providers=5, system_owner="root")


@pytest.fixture
def clock():
    return ManualClock(start=START)


@pytest.fixture
def rail():
    return InMemoryTransferRail({"alice": 10_000, "carol": 10_000, "dave": 10_000})


@pytest.fixture
def service(config, rail, clock):
    return BillingService(config=config, rail=rail, clock=clock)


@pytest.fixture
def signer():
    return JournalSigner.generate()


@pytest.fixture
def journal(signer, tmp_path):
    return SettlementJournal(signer, tmp_path / "journal.jsonl")


@pytest.fixture
def journaled_service(config, rail, clock, journal):
    return BillingService(config=config, rail=rail, clock=clock, journal=journal)


def assert_conserved(service):
    totals = service.totals()
    assert totals["held"] + totals["withdrawn"] == totals["deposited"], totals
