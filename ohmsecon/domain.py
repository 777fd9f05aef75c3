"""Domain types for the economics service: jobs, escrows, receipts, fees and subscriptions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class EconError(Exception):
    """Raised when an economics operation is refused."""


class JobPriority(Enum):
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    CRITICAL = "Critical"


class EscrowStatus(Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    RELEASED = "Released"
    REFUNDED = "Refunded"
    EXPIRED = "Expired"


class SettlementStatus(Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"
    DISPUTED = "Disputed"


class SubscriptionTier(Enum):
    FREE = "Free"
    PRO = "Pro"
    ENTERPRISE = "Enterprise"


class PaymentStatus(Enum):
    ACTIVE = "Active"
    PENDING = "Pending"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


class InferenceRate(Enum):
    STANDARD = "Standard"
    PRIORITY = "Priority"
    PREMIUM = "Premium"


@dataclass
class JobSpec:
    job_id: str
    model_id: str
    estimated_tokens: int
    estimated_compute_cycles: int
    priority: JobPriority


@dataclass
class CostQuote:
    job_id: str
    estimated_cost: int
    base_cost: int
    priority_multiplier: float
    protocol_fee: int
    quote_expires_at: int
    quote_id: str


@dataclass
class EscrowAccount:
    escrow_id: str
    job_id: str
    principal_id: str
    amount: int
    status: EscrowStatus
    created_at: int
    expires_at: int


@dataclass
class FeesBreakdown:
    base_amount: int
    protocol_fee: int
    agent_fee: int
    total_amount: int


@dataclass
class Receipt:
    receipt_id: str
    job_id: str
    escrow_id: str
    agent_id: str
    actual_cost: int
    fees_breakdown: FeesBreakdown
    settlement_status: SettlementStatus
    created_at: int
    settled_at: int | None = None


def _default_multipliers() -> dict[str, float]:
    return {
        JobPriority.LOW.value: 0.8,
        JobPriority.NORMAL.value: 1.0,
        JobPriority.HIGH.value: 1.5,
        JobPriority.CRITICAL.value: 2.0,
    }


@dataclass
class FeePolicy:
    protocol_fee_percentage: float = 3.0
    agent_fee_percentage: float = 7.0
    minimum_fee: int = 1000
    priority_multipliers: dict[str, float] = field(default_factory=_default_multipliers)
    last_updated: int = 0


@dataclass
class Balance:
    principal_id: str
    available_balance: int = 0
    escrowed_balance: int = 0
    total_earnings: int = 0
    last_updated: int = 0


@dataclass
class EconHealth:
    total_escrows: int
    active_escrows: int
    total_receipts: int
    pending_settlements: int
    total_volume: int
    protocol_fees_collected: int
    average_job_cost: float


@dataclass
class SettlementEntry:
    receipt_id: str
    processed_at: int
    amount: int
    status: SettlementStatus
    idempotency_key: str


@dataclass
class UsageMetrics:
    agents_created_this_month: int = 0
    tokens_used_this_month: int = 0
    inferences_this_month: int = 0
    last_reset_date: int = 0


@dataclass
class TierConfig:
    name: str
    monthly_fee_usd: int
    max_agents: int
    monthly_agent_creations: int
    token_limit: int
    inference_rate: InferenceRate
    features: list[str] = field(default_factory=list)


@dataclass
class Subscription:
    principal_id: str
    tier: TierConfig
    started_at: int
    expires_at: int
    auto_renew: bool
    current_usage: UsageMetrics
    payment_status: PaymentStatus
    created_at: int
    updated_at: int


@dataclass
class QuotaRemaining:
    agents_remaining: int
    tokens_remaining: int
    inferences_remaining: int


@dataclass
class QuotaValidation:
    allowed: bool
    reason: str | None = None
    remaining_quota: QuotaRemaining | None = None