"""Caller checks and input validation applied before service calls."""

from __future__ import annotations

from .domain import EconError, JobSpec, Receipt
from .state import EconState

ANONYMOUS = "2vxsx-fae"
MAX_AMOUNT = 1_000_000_000_000


def require_authenticated(caller: str | None) -> str:
    """Return the caller, or raise if it is anonymous."""
    if not caller or caller == ANONYMOUS:
        raise EconError("Authentication required")
    return caller


def require_admin(state: EconState, caller: str | None) -> str:
    """Return the caller, or raise unless it is an authenticated admin."""
    caller = require_authenticated(caller)
    if not state.is_admin(caller):
        raise EconError("Admin required")
    return caller


def validate_amount(amount: int) -> int:
    if amount <= 0:
        raise EconError("Amount must be greater than zero")
    if amount > MAX_AMOUNT:
        raise EconError("Amount too large")
    return amount


def validate_job_spec(job_spec: JobSpec) -> JobSpec:
    if not job_spec.job_id:
        raise EconError("Job ID cannot be empty")
    if not job_spec.model_id:
        raise EconError("Model ID cannot be empty")
    if job_spec.estimated_tokens == 0:
        raise EconError("Estimated tokens must be greater than zero")
    return job_spec


def validate_receipt(receipt: Receipt) -> Receipt:
    if not receipt.receipt_id:
        raise EconError("Receipt ID cannot be empty")
    if not receipt.job_id:
        raise EconError("Job ID cannot be empty")
    if not receipt.escrow_id:
        raise EconError("Escrow ID cannot be empty")
    if receipt.actual_cost == 0:
        raise EconError("Actual cost must be greater than zero")
    fees = receipt.fees_breakdown
    if fees.total_amount != fees.base_amount + fees.protocol_fee + fees.agent_fee:
        raise EconError("Fees breakdown does not match total amount")
    return receipt