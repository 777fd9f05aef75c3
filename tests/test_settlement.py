import pytest

from ohmsecon.balance import BalanceService
from ohmsecon.domain import (
    EconError,
    EscrowStatus,
    FeePolicy,
    FeesBreakdown,
    Receipt,
    SettlementStatus,
)
from ohmsecon.escrow import EscrowService
from ohmsecon.settlement import SettlementService, calculate_fees
from ohmsecon.state import EconState


class FakeClock:
    def __init__(self, now=5_000):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def env():
    state = EconState()
    clock = FakeClock()
    balances = BalanceService(state, clock)
    escrows = EscrowService(state, clock, balances)
    settlements = SettlementService(state, clock, escrows)
    balances.deposit("alice", 10_000)
    return state, clock, balances, escrows, settlements


def make_receipt(escrow_id, receipt_id="r-1", cost=500, status=SettlementStatus.COMPLETED):
    fees = calculate_fees(cost, FeePolicy())
    return Receipt(
        receipt_id=receipt_id,
        job_id="job-1",
        escrow_id=escrow_id,
        agent_id="agent",
        actual_cost=cost,
        fees_breakdown=fees,
        settlement_status=status,
        created_at=1,
    )


def test_calculate_fees_default_policy():
    fees = calculate_fees(1000, FeePolicy())
    assert fees == FeesBreakdown(base_amount=1000, protocol_fee=30, agent_fee=70, total_amount=1100)


def test_calculate_fees_total_is_sum():
    policy = FeePolicy(protocol_fee_percentage=2.5, agent_fee_percentage=11.0)
    fees = calculate_fees(777, policy)
    assert fees.total_amount == fees.base_amount + fees.protocol_fee + fees.agent_fee
    assert fees.base_amount == 777


def test_settle_payment_records_everything(env):
    state, clock, balances, escrows, settlements = env
    escrow_id = escrows.create_escrow("job-1", 800, "alice")
    receipt = make_receipt(escrow_id)
    settlement_id = settlements.settle_payment(receipt)

    assert settlement_id.startswith("settlement_")
    assert state.receipt_to_settlement["r-1"] == settlement_id
    entry = state.settlements[settlement_id]
    assert entry.amount == 500
    assert entry.status is SettlementStatus.COMPLETED
    assert entry.processed_at == clock.now
    assert settlements.get_receipt("r-1") == receipt

    assert balances.get_balance("agent").total_earnings == 500
    assert escrows.get_escrow(escrow_id).status is EscrowStatus.RELEASED
    assert state.metrics.total_settlements == 1
    assert state.metrics.total_volume == 500
    assert state.metrics.protocol_fees_collected == receipt.fees_breakdown.protocol_fee
    assert state.metrics.last_activity == clock.now


def test_idempotency_key_depends_on_receipt(env):
    state, clock, _, escrows, settlements = env
    first_escrow = escrows.create_escrow("job-a", 500, "alice")
    first = settlements.settle_payment(make_receipt(first_escrow, "r-a"))
    clock.now += 1
    second_escrow = escrows.create_escrow("job-b", 500, "alice")
    second = settlements.settle_payment(make_receipt(second_escrow, "r-b"))
    key_a = state.settlements[first].idempotency_key
    key_b = state.settlements[second].idempotency_key
    assert key_a != key_b
    assert len(key_a) == 24


def test_settle_twice_fails(env):
    state, _, _, escrows, settlements = env
    escrow_id = escrows.create_escrow("job-1", 800, "alice")
    settlements.settle_payment(make_receipt(escrow_id))
    with pytest.raises(EconError, match="Escrow is not active"):
        settlements.settle_payment(make_receipt(escrow_id))
    assert state.metrics.total_settlements == 1


def test_settle_missing_escrow(env):
    *_, settlements = env
    with pytest.raises(EconError, match="Escrow not found: ghost"):
        settlements.settle_payment(make_receipt("ghost"))


def test_settle_insufficient_escrow(env):
    state, _, _, escrows, settlements = env
    escrow_id = escrows.create_escrow("job-1", 100, "alice")
    with pytest.raises(EconError, match="Insufficient escrow amount for settlement"):
        settlements.settle_payment(make_receipt(escrow_id, cost=101))
    assert escrows.get_escrow(escrow_id).status is EscrowStatus.ACTIVE
    assert state.receipts == {}


def test_get_receipt_missing(env):
    *_, settlements = env
    with pytest.raises(EconError, match="Receipt not found: nope"):
        settlements.get_receipt("nope")


def test_list_receipts_respects_limit(env):
    _, clock, _, escrows, settlements = env
    for n in range(3):
        clock.now += 1
        escrow_id = escrows.create_escrow(f"job-{n}", 500, "alice")
        settlements.settle_payment(make_receipt(escrow_id, f"r-{n}"))
    assert len(settlements.list_receipts("anyone", 2)) == 2
    ids = {r.receipt_id for r in settlements.list_receipts("anyone", 10)}
    assert ids == {"r-0", "r-1", "r-2"}
    assert settlements.list_receipts("anyone", 0) == []


def test_verify_integrity_completed(env):
    _, _, _, escrows, settlements = env
    escrow_id = escrows.create_escrow("job-1", 800, "alice")
    settlements.settle_payment(make_receipt(escrow_id))
    assert settlements.verify_settlement_integrity("r-1") is True


def test_verify_integrity_status_mismatch(env):
    _, _, _, escrows, settlements = env
    escrow_id = escrows.create_escrow("job-1", 800, "alice")
    settlements.settle_payment(make_receipt(escrow_id, status=SettlementStatus.PENDING))
    assert settlements.verify_settlement_integrity("r-1") is False


def test_verify_integrity_amount_mismatch(env):
    state, _, _, escrows, settlements = env
    escrow_id = escrows.create_escrow("job-1", 800, "alice")
    settlement_id = settlements.settle_payment(make_receipt(escrow_id))
    state.settlements[settlement_id].amount += 1
    assert settlements.verify_settlement_integrity("r-1") is False


def test_verify_integrity_errors(env):
    state, _, _, escrows, settlements = env
    with pytest.raises(EconError, match="Receipt not found"):
        settlements.verify_settlement_integrity("missing")
    escrow_id = escrows.create_escrow("job-1", 800, "alice")
    settlement_id = settlements.settle_payment(make_receipt(escrow_id))
    del state.settlements[settlement_id]
    with pytest.raises(EconError, match="Settlement record not found"):
        settlements.verify_settlement_integrity("r-1")