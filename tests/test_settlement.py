"""
tests/test_settlement.py

Settlement engine behaviour: charging, fairness, underfunding, idempotence.
"""

import pytest

from subsettle.core.models import SettlementStatus
from subsettle.core.time import unsettled_epochs

from conftest import EPOCH, START, assert_conserved


class TestUnsettledEpochs:

    @pytest.mark.parametrize("now,expected", [
        (1_000, 0),
        (1_099, 0),
        (1_100, 1),
        (1_199, 1),
        (1_350, 3),
        (900, 0),
    ])
    def test_whole_epochs_only(self, now, expected):
        assert unsettled_epochs(now, 1_000, 100) == expected


class TestReferenceScenario:

    def test_fee_100_deposit_250(self, service, clock):
        pid = service.register_provider("k1", 100, "bob")
        sid = service.register_subscriber(250, "basic", [pid], "alice")
        assert service.subscriber_state(sid).balance == 150
        assert service.provider_earnings(pid) == 100

        clock.advance(EPOCH)
        outcome = service.engine.settle(sid)
        assert outcome.status is SettlementStatus.SETTLED
        assert outcome.charged == 100
        assert outcome.credits == {pid: 100}
        assert service.subscriber_state(sid).balance == 50
        assert service.provider_earnings(pid) == 200

        clock.advance(EPOCH)
        outcome = service.engine.settle(sid)
        assert outcome.status is SettlementStatus.UNDERFUNDED
        state = service.subscriber_state(sid)
        assert state.active is False
        assert state.balance == 50
        assert service.provider_earnings(pid) == 200
        assert_conserved(service)


class TestSettle:

    def test_not_due_is_noop(self, service, clock):
        service.register_provider("k1", 100, "bob")
        sid = service.register_subscriber(250, "basic", [1], "alice")
        clock.advance(EPOCH - 1)
        assert service.engine.settle(sid).status is SettlementStatus.NOT_DUE
        assert service.subscriber_state(sid).balance == 150
        assert service.subscriber_state(sid).last_settlement_time == START

    def test_unknown_id_is_noop(self, service):
        outcome = service.engine.settle(42)
        assert outcome.status is SettlementStatus.UNKNOWN
        assert outcome.charged == 0

    def test_multiple_epochs_charged_at_once(self, service, clock):
        service.register_provider("k1", 100, "bob")
        sid = service.register_subscriber(1000, "basic", [1], "alice")
        clock.advance(3 * EPOCH + 40)
        outcome = service.engine.settle(sid)
        assert outcome.epochs == 3
        assert outcome.charged == 300
        assert service.subscriber_state(sid).balance == 600

    def test_partial_epoch_is_forgiven(self, service, clock):
        service.register_provider("k1", 100, "bob")
        sid = service.register_subscriber(1000, "basic", [1], "alice")
        clock.advance(EPOCH + 60)
        service.engine.settle(sid)
        assert service.subscriber_state(sid).last_settlement_time == clock.now()
        clock.advance(60)
        assert service.engine.settle(sid).status is SettlementStatus.NOT_DUE

    def test_no_double_settlement(self, service, clock):
        service.register_provider("k1", 100, "bob")
        sid = service.register_subscriber(1000, "basic", [1], "alice")
        clock.advance(EPOCH)
        first = service.engine.settle(sid)
        after_first = (service.subscriber_state(sid), service.provider_state(1))
        second = service.engine.settle(sid)
        assert first.status is SettlementStatus.SETTLED
        assert second.status is SettlementStatus.NOT_DUE
        assert (service.subscriber_state(sid), service.provider_state(1)) == after_first

    def test_underfunded_is_not_partially_debited(self, service, clock):
        service.register_provider("k1", 100, "bob")
        service.register_provider("k2", 100, "carol")
        sid = service.register_subscriber(500, "basic", [1, 2], "alice")
        clock.advance(2 * EPOCH)
        outcome = service.engine.settle(sid)
        assert outcome.status is SettlementStatus.UNDERFUNDED
        assert outcome.epochs == 2
        assert service.subscriber_state(sid).balance == 300
        assert service.subscriber_state(sid).last_settlement_time == START
        assert service.provider_earnings(1) == 100
        assert service.provider_earnings(2) == 100

    def test_inactive_is_terminal(self, service, clock):
        service.register_provider("k1", 100, "bob")
        sid = service.register_subscriber(200, "basic", [1], "alice")
        clock.advance(2 * EPOCH)
        service.engine.settle(sid)
        service.deposit_for_subscription(sid, 5000, "alice")
        clock.advance(EPOCH)
        assert service.engine.settle(sid).status is SettlementStatus.INACTIVE
        assert service.subscriber_state(sid).balance == 5100

    def test_exact_balance_settles_to_zero(self, service, clock):
        service.register_provider("k1", 100, "bob")
        sid = service.register_subscriber(200, "basic", [1], "alice")
        clock.advance(EPOCH)
        assert service.engine.settle(sid).status is SettlementStatus.SETTLED
        assert service.subscriber_state(sid).balance == 0
        assert service.subscriber_state(sid).active is True


class TestFeeFairness:

    def test_fee_change_applies_to_next_settlement_only(self, service, clock):
        service.register_provider("k1", 100, "bob")
        sid = service.register_subscriber(2000, "basic", [1], "alice")
        clock.advance(EPOCH)
        service.engine.settle(sid)
        assert service.subscriber_state(sid).balance == 1800

        service.update_provider_fee(1, 40, "bob")
        clock.advance(EPOCH)
        assert service.engine.settle(sid).charged == 40
        assert service.subscriber_state(sid).balance == 1760

    def test_fee_change_does_not_touch_earned_balance(self, service):
        service.register_provider("k1", 100, "bob")
        service.register_subscriber(2000, "basic", [1], "alice")
        service.update_provider_fee(1, 999, "bob")
        assert service.provider_earnings(1) == 100


class TestInactiveProviders:

    def test_inactive_provider_share_is_not_charged(self, service, clock):
        service.register_provider("k1", 100, "bob")
        service.register_provider("k2", 50, "carol")
        sid = service.register_subscriber(1000, "basic", [1, 2], "alice")
        service.set_providers_active([2], [False], "root")
        clock.advance(EPOCH)
        outcome = service.engine.settle(sid)
        assert outcome.charged == 100
        assert outcome.credits == {1: 100}
        assert service.provider_earnings(2) == 50
        assert service.subscriber_state(sid).balance == 1000 - 150 - 100
        assert_conserved(service)

    def test_reactivated_provider_accrues_again(self, service, clock):
        service.register_provider("k1", 100, "bob")
        service.register_provider("k2", 50, "carol")
        sid = service.register_subscriber(1000, "basic", [1, 2], "alice")
        service.set_providers_active([2], [False], "root")
        clock.advance(EPOCH)
        service.engine.settle(sid)
        service.set_providers_active([2], [True], "root")
        clock.advance(EPOCH)
        assert service.engine.settle(sid).charged == 150
        assert service.provider_earnings(2) == 100

    def test_all_providers_inactive_charges_nothing(self, service, clock):
        service.register_provider("k1", 100, "bob")
        sid = service.register_subscriber(250, "basic", [1], "alice")
        service.set_providers_active([1], [False], "root")
        clock.advance(EPOCH)
        outcome = service.engine.settle(sid)
        assert outcome.status is SettlementStatus.SETTLED
        assert outcome.charged == 0
        assert service.subscriber_state(sid).last_settlement_time == clock.now()


class TestLiveBalance:

    def test_live_balance_deducts_what_is_owed(self, service, clock):
        service.register_provider("k1", 100, "bob")
        sid = service.register_subscriber(1000, "basic", [1], "alice")
        assert service.subscriber_live_balance(sid) == 900
        clock.advance(2 * EPOCH)
        assert service.subscriber_live_balance(sid) == 700
        assert service.subscriber_state(sid).balance == 900

    def test_live_balance_is_zero_when_underfunded(self, service, clock):
        service.register_provider("k1", 100, "bob")
        sid = service.register_subscriber(250, "basic", [1], "alice")
        clock.advance(2 * EPOCH)
        assert service.subscriber_live_balance(sid) == 0

    def test_live_balance_of_inactive_is_stored_balance(self, service, clock):
        service.register_provider("k1", 100, "bob")
        sid = service.register_subscriber(250, "basic", [1], "alice")
        service.pause_subscription(sid, "alice")
        clock.advance(2 * EPOCH)
        assert service.subscriber_live_balance(sid) == 150
