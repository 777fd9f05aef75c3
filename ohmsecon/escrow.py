"""Escrow accounts that hold funds for a job until it is settled or refunded."""

from __future__ import annotations

import base64
import dataclasses
import hashlib

from .balance import BalanceService
from .domain import Balance, EconError, EscrowAccount, EscrowStatus
from .state import Clock, EconState

ESCROW_TTL_NS = 24 * 60 * 60 * 1_000_000_000


def _escrow_id(job_id: str, now: int) -> str:
    digest = hashlib.sha256(job_id.encode() + now.to_bytes(8, "big")).digest()
    return "escrow_" + base64.b64encode(digest[:8]).decode("ascii")


class EscrowService:
    def __init__(self, state: EconState, clock: Clock, balances: BalanceService) -> None:
        self.state = state
        self.clock = clock
        self.balances = balances

    def create_escrow(self, job_id: str, amount: int, principal_id: str) -> str:
        """Move ``amount`` from the principal's available to escrowed funds; return the escrow id."""
        now = self.clock()
        escrow_id = _escrow_id(job_id, now)

        if self.balances.get_balance(principal_id).available_balance < amount:
            raise EconError("Insufficient balance")

        escrow = EscrowAccount(
            escrow_id=escrow_id,
            job_id=job_id,
            principal_id=principal_id,
            amount=amount,
            status=EscrowStatus.ACTIVE,
            created_at=now,
            expires_at=now + ESCROW_TTL_NS,
        )

        holder = self.state.balances.get(principal_id)
        if holder is not None:
            holder.available_balance -= amount
            holder.escrowed_balance += amount
            holder.last_updated = now

        self.state.escrows[escrow_id] = escrow
        return escrow_id

    def get_escrow(self, escrow_id: str) -> EscrowAccount:
        escrow = self.state.escrows.get(escrow_id)
        if escrow is None:
            raise EconError(f"Escrow not found: {escrow_id}")
        return dataclasses.replace(escrow)

    def _active_escrow(self, escrow_id: str) -> EscrowAccount:
        escrow = self.state.escrows.get(escrow_id)
        if escrow is None:
            raise EconError("Escrow not found")
        if escrow.status is not EscrowStatus.ACTIVE:
            raise EconError("Escrow is not active")
        return escrow

    def release_escrow(self, escrow_id: str, recipient: str, amount: int) -> None:
        """Pay ``amount`` out of an active escrow to ``recipient`` and mark it released."""
        now = self.clock()
        escrow = self._active_escrow(escrow_id)
        if escrow.amount < amount:
            raise EconError("Insufficient escrow amount")

        recipient_balance = self.state.balances.setdefault(
            recipient, Balance(principal_id=recipient, last_updated=now)
        )
        recipient_balance.available_balance += amount
        recipient_balance.total_earnings += amount
        recipient_balance.last_updated = now

        holder = self.state.balances.get(escrow.principal_id)
        if holder is not None:
            holder.escrowed_balance -= amount
            holder.last_updated = now

        escrow.status = EscrowStatus.RELEASED

    def _return_funds(self, escrow: EscrowAccount, now: int) -> None:
        holder = self.state.balances.get(escrow.principal_id)
        if holder is not None:
            holder.available_balance += escrow.amount
            holder.escrowed_balance -= escrow.amount
            holder.last_updated = now

    def refund_escrow(self, escrow_id: str) -> None:
        """Return an active escrow's funds to its holder and mark it refunded."""
        now = self.clock()
        escrow = self._active_escrow(escrow_id)
        self._return_funds(escrow, now)
        escrow.status = EscrowStatus.REFUNDED

    def cleanup_expired_escrows(self) -> int:
        """Return funds of active escrows past their expiry; return how many were expired."""
        now = self.clock()
        expired = [
            escrow
            for escrow in self.state.escrows.values()
            if escrow.status is EscrowStatus.ACTIVE and escrow.expires_at < now
        ]
        for escrow in expired:
            self._return_funds(escrow, now)
            escrow.status = EscrowStatus.EXPIRED
        return len(expired)