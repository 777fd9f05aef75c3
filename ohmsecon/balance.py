"""Account balances, fee policy and service health."""

from __future__ import annotations

import copy
import dataclasses

from .domain import Balance, EconError, EconHealth, EscrowStatus, FeePolicy, SettlementStatus
from .state import Clock, EconState


class BalanceService:
    def __init__(self, state: EconState, clock: Clock) -> None:
        self.state = state
        self.clock = clock

    def get_balance(self, principal_id: str) -> Balance:
        """A copy of the stored balance, or an empty one for an unknown principal."""
        balance = self.state.balances.get(principal_id)
        if balance is not None:
            return dataclasses.replace(balance)
        return Balance(principal_id=principal_id, last_updated=self.clock())

    def deposit(self, principal_id: str, amount: int) -> None:
        now = self.clock()
        balance = self.state.balances.setdefault(
            principal_id, Balance(principal_id=principal_id, last_updated=now)
        )
        balance.available_balance += amount
        balance.last_updated = now

    def withdraw(self, principal_id: str, amount: int) -> None:
        now = self.clock()
        balance = self.state.balances.get(principal_id)
        if balance is None:
            raise EconError("Balance not found")
        if balance.available_balance < amount:
            raise EconError("Insufficient balance")
        balance.available_balance -= amount
        balance.last_updated = now

    def get_fee_policy(self) -> FeePolicy:
        return copy.deepcopy(self.state.fee_policy)

    def update_fee_policy(self, new_policy: FeePolicy) -> None:
        policy = copy.deepcopy(new_policy)
        policy.last_updated = self.clock()
        self.state.fee_policy = policy

    def get_health(self) -> EconHealth:
        state = self.state
        total_receipts = len(state.receipts)
        average = state.metrics.total_volume / total_receipts if total_receipts else 0.0
        return EconHealth(
            total_escrows=len(state.escrows),
            active_escrows=sum(
                1 for e in state.escrows.values() if e.status is EscrowStatus.ACTIVE
            ),
            total_receipts=total_receipts,
            pending_settlements=sum(
                1
                for r in state.receipts.values()
                if r.settlement_status is SettlementStatus.PENDING
            ),
            total_volume=state.metrics.total_volume,
            protocol_fees_collected=state.metrics.protocol_fees_collected,
            average_job_cost=average,
        )