import itertools

import pytest

from ohmsecon.domain import EconError, PaymentStatus
from ohmsecon.payment import (
    DEFAULT_FEE_E8S,
    Ledger,
    LedgerRejected,
    PaymentService,
    PaymentTransactionStatus,
    TransferError,
    account_identifier_from_hex,
    get_icp_usd_rate,
    usd_to_icp_e8s,
)
from ohmsecon.state import EconState
from ohmsecon.subscription import SubscriptionService, tier_configs


class FailingLedger:
    def transfer(self, args):
        raise TransferError("insufficient funds")


class RejectingLedger:
    def transfer(self, args):
        raise LedgerRejected(4, "boom")


def make_service(ledger=None):
    state = EconState()
    clock = itertools.count(1_000).__next__
    subs = SubscriptionService(state, clock)
    ledger = ledger if ledger is not None else Ledger()
    return PaymentService(state, clock, subs, ledger), subs, ledger, state


def test_rate_and_conversion():
    assert get_icp_usd_rate() == 10.0
    assert usd_to_icp_e8s(10) == 100_000_000
    assert usd_to_icp_e8s(0) == 0
    assert usd_to_icp_e8s(299) > usd_to_icp_e8s(99)


def test_account_identifier_is_text_bytes():
    assert account_identifier_from_hex("abcd") == b"abcd"


def test_create_payment_request_for_pro():
    service, _, _, _ = make_service()
    request = service.create_payment_request("alice", "pro")
    assert request.amount_usd == tier_configs()["pro"].monthly_fee_usd
    assert request.amount_icp_e8s == usd_to_icp_e8s(request.amount_usd)
    assert request.payment_memo.startswith("OHMS-PRO-")
    assert request.user_principal == "alice"


@pytest.mark.parametrize("tier", ["free", "basic"])
def test_free_tiers_need_no_payment(tier):
    service, _, _, _ = make_service()
    with pytest.raises(EconError, match="Free tier doesn't require payment"):
        service.create_payment_request("alice", tier)


def test_unknown_tier_rejected():
    service, _, _, _ = make_service()
    with pytest.raises(EconError, match="Invalid subscription tier"):
        service.create_payment_request("alice", "platinum")


def test_successful_payment_activates_subscription():
    service, subs, ledger, _ = make_service()
    subs.create_subscription("alice", "pro", False)
    assert subs.get_user_subscription("alice").payment_status is PaymentStatus.PENDING

    request = service.create_payment_request("alice", "pro")
    tx = service.process_icp_payment(request, "alice")

    assert tx.status is PaymentTransactionStatus.COMPLETED
    assert tx.icp_block_index == len(ledger.transfers) - 1
    assert tx.completed_at is not None and tx.completed_at > tx.created_at
    assert ledger.transfers[0].amount == request.amount_icp_e8s
    assert ledger.transfers[0].fee == DEFAULT_FEE_E8S
    assert subs.get_user_subscription("alice").payment_status is PaymentStatus.ACTIVE
    assert service.get_payment_transaction(tx.id) == tx


def test_transfer_error_records_failure():
    service, _, _, _ = make_service(FailingLedger())
    request = service.create_payment_request("bob", "enterprise")
    with pytest.raises(EconError, match="Payment failed"):
        service.process_icp_payment(request, "bob")
    [tx] = service.list_user_transactions("bob", 10)
    assert tx.status is PaymentTransactionStatus.FAILED
    assert "Transfer failed" in tx.error_message
    assert service.verify_payment(tx.id).verified is False


def test_ledger_rejection_records_failure():
    service, _, _, _ = make_service(RejectingLedger())
    request = service.create_payment_request("bob", "pro")
    with pytest.raises(EconError, match="Ledger call failed: boom"):
        service.process_icp_payment(request, "bob")
    [tx] = service.list_all_transactions(10)
    assert tx.error_message == "Ledger call failed: 4 - boom"
    assert tx.icp_block_index is None


def test_verify_payment():
    service, _, _, _ = make_service()
    tx = service.process_icp_payment(service.create_payment_request("alice", "pro"), "alice")
    verification = service.verify_payment(tx.id)
    assert verification.verified is True
    assert verification.block_index == tx.icp_block_index
    with pytest.raises(EconError, match="Transaction not found"):
        service.verify_payment("tx_missing")


def test_missing_transaction_is_none():
    service, _, _, _ = make_service()
    assert service.get_payment_transaction("nope") is None
    assert service.list_all_transactions(5) == []


def test_list_user_transactions_newest_first_with_limit():
    service, _, _, _ = make_service()
    ids = [
        service.process_icp_payment(service.create_payment_request("alice", "pro"), "alice").id
        for _ in range(3)
    ]
    service.process_icp_payment(service.create_payment_request("carol", "pro"), "carol")

    listed = service.list_user_transactions("alice", 2)
    assert [tx.id for tx in listed] == list(reversed(ids))[:2]
    assert all(tx.user_principal == "alice" for tx in listed)
    assert len(service.list_all_transactions(10)) == 4
    assert len(service.list_all_transactions(1)) == 1


def test_payment_stats():
    service, _, _, state = make_service()
    ok = service.process_icp_payment(service.create_payment_request("alice", "pro"), "alice")
    service.ledger = FailingLedger()
    with pytest.raises(EconError):
        service.process_icp_payment(service.create_payment_request("bob", "pro"), "bob")

    stats = service.get_payment_stats()
    assert stats.total_transactions == 2
    assert stats.completed_transactions == 1
    assert stats.failed_transactions == 1
    assert stats.pending_transactions == 0
    assert stats.total_revenue_usd == ok.amount_usd
    assert stats.total_revenue_icp_e8s == ok.amount_icp_e8s
    assert len(state.payment_transactions) == 2