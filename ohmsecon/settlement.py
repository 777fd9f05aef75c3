"""Settlement of job receipts against escrowed funds."""

from __future__ import annotations

import base64
import copy
import hashlib
from itertools import islice

from .domain import (
    EconError,
    EscrowStatus,
    FeePolicy,
    FeesBreakdown,
    Receipt,
    SettlementEntry,
    SettlementStatus,
)
from .escrow import EscrowService
from .state import Clock, EconState


def calculate_fees(base_amount: int, fee_policy: FeePolicy) -> FeesBreakdown:
    """Protocol and agent fees on top of ``base_amount`` under ``fee_policy``."""
    protocol_fee = int(base_amount * (fee_policy.protocol_fee_percentage / 100.0))
    agent_fee = int(base_amount * (fee_policy.agent_fee_percentage / 100.0))
    return FeesBreakdown(
        base_amount=base_amount,
        protocol_fee=protocol_fee,
        agent_fee=agent_fee,
        total_amount=base_amount + protocol_fee + agent_fee,
    )


def _settlement_id(receipt_id: str, now: int) -> str:
    digest = hashlib.sha256(receipt_id.encode() + now.to_bytes(8, "big")).digest()
    return "settlement_" + base64.b64encode(digest[:8]).decode("ascii")


def _idempotency_key(receipt: Receipt) -> str:
    digest = hashlib.sha256(
        receipt.receipt_id.encode()
        + receipt.job_id.encode()
        + receipt.escrow_id.encode()
        + receipt.actual_cost.to_bytes(8, "big")
    ).digest()
    return base64.b64encode(digest[:16]).decode("ascii")


class SettlementService:
    def __init__(self, state: EconState, clock: Clock, escrows: EscrowService) -> None:
        self.state = state
        self.clock = clock
        self.escrows = escrows

    def settle_payment(self, receipt: Receipt) -> str:
        """Release escrowed funds to the receipt's agent and record it; return the settlement id."""
        now = self.clock()
        settlement_id = _settlement_id(receipt.receipt_id, now)

        if receipt.receipt_id in self.state.settlements:
            raise EconError("Receipt already settled")

        escrow = self.escrows.get_escrow(receipt.escrow_id)
        if escrow.status is not EscrowStatus.ACTIVE:
            raise EconError("Escrow is not active")
        if escrow.amount < receipt.actual_cost:
            raise EconError("Insufficient escrow amount for settlement")

        self.escrows.release_escrow(receipt.escrow_id, receipt.agent_id, receipt.actual_cost)

        entry = SettlementEntry(
            receipt_id=receipt.receipt_id,
            processed_at=now,
            amount=receipt.actual_cost,
            status=SettlementStatus.COMPLETED,
            idempotency_key=_idempotency_key(receipt),
        )

        state = self.state
        state.receipts[receipt.receipt_id] = copy.deepcopy(receipt)
        state.receipt_to_settlement[receipt.receipt_id] = settlement_id
        state.settlements[settlement_id] = entry

        state.metrics.total_settlements += 1
        state.metrics.total_volume += receipt.actual_cost
        state.metrics.protocol_fees_collected += receipt.fees_breakdown.protocol_fee
        state.metrics.last_activity = now
        return settlement_id

    def get_receipt(self, receipt_id: str) -> Receipt:
        receipt = self.state.receipts.get(receipt_id)
        if receipt is None:
            raise EconError(f"Receipt not found: {receipt_id}")
        return copy.deepcopy(receipt)

    def list_receipts(self, principal_id: str, limit: int) -> list[Receipt]:
        """Up to ``limit`` stored receipts; ownership by ``principal_id`` is not tracked."""
        return [copy.deepcopy(r) for r in islice(self.state.receipts.values(), limit)]

    def verify_settlement_integrity(self, receipt_id: str) -> bool:
        """Whether a receipt and its settlement agree on amount and final status."""
        receipt = self.state.receipts.get(receipt_id)
        settlement_id = self.state.receipt_to_settlement.get(receipt_id)
        if receipt is None or settlement_id is None:
            raise EconError("Receipt not found")
        settlement = self.state.settlements.get(settlement_id)
        if settlement is None:
            raise EconError("Settlement record not found")

        amounts_match = receipt.actual_cost == settlement.amount
        status_consistent = receipt.settlement_status is settlement.status and (
            receipt.settlement_status in (SettlementStatus.COMPLETED, SettlementStatus.FAILED)
        )
        return amounts_match and status_consistent