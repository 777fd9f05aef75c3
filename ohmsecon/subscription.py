"""Subscription tiers, per-user subscriptions and monthly usage quotas."""

from __future__ import annotations

import copy
from collections import Counter
from dataclasses import dataclass, field

from .domain import (
    EconError,
    InferenceRate,
    PaymentStatus,
    QuotaRemaining,
    QuotaValidation,
    Subscription,
    TierConfig,
    UsageMetrics,
)
from .state import Clock, EconState

MONTH_NS = 30 * 24 * 60 * 60 * 1_000_000_000
FREE_TIERS = frozenset({"free", "basic"})


def tier_configs() -> dict[str, TierConfig]:
    """The predefined subscription tiers, keyed by tier name."""
    return {
        "free": TierConfig(
            name="Free",
            monthly_fee_usd=0,
            max_agents=1,
            monthly_agent_creations=3,
            token_limit=10_000,
            inference_rate=InferenceRate.STANDARD,
            features=[
                "1 concurrent agent",
                "3 agent creations per month",
                "10K tokens per month",
                "Standard inference priority",
                "Community support",
            ],
        ),
        "basic": TierConfig(
            name="Basic",
            monthly_fee_usd=0,
            max_agents=5,
            monthly_agent_creations=10,
            token_limit=100_000,
            inference_rate=InferenceRate.STANDARD,
            features=[
                "5 concurrent agents",
                "10 agent creations per month",
                "100K tokens per month",
                "Standard inference priority",
                "FREE for 1 month",
            ],
        ),
        "pro": TierConfig(
            name="Pro",
            monthly_fee_usd=99,
            max_agents=25,
            monthly_agent_creations=50,
            token_limit=500_000,
            inference_rate=InferenceRate.PRIORITY,
            features=[
                "25 concurrent agents",
                "50 agent creations per month",
                "500K tokens per month",
                "Priority inference",
                "Advanced analytics",
            ],
        ),
        "enterprise": TierConfig(
            name="Enterprise",
            monthly_fee_usd=299,
            max_agents=100,
            monthly_agent_creations=200,
            token_limit=2_000_000,
            inference_rate=InferenceRate.PREMIUM,
            features=[
                "100 concurrent agents",
                "200 agent creations per month",
                "2M tokens per month",
                "Premium inference priority",
                "Advanced analytics",
                "Priority support",
                "Custom integrations",
            ],
        ),
    }


@dataclass
class SubscriptionStats:
    total_subscriptions: int = 0
    active_subscriptions: int = 0
    expired_subscriptions: int = 0
    pending_payments: int = 0
    tier_distribution: dict[str, int] = field(default_factory=dict)
    total_monthly_revenue_usd: int = 0


def _saturating_sub(a: int, b: int) -> int:
    return max(0, a - b)


def _agents_remaining(sub: Subscription) -> int:
    return _saturating_sub(
        sub.tier.monthly_agent_creations, sub.current_usage.agents_created_this_month
    )


def _tokens_remaining(sub: Subscription) -> int:
    return _saturating_sub(sub.tier.token_limit, sub.current_usage.tokens_used_this_month)


def _remaining(sub: Subscription, agents: int | None = None, tokens: int | None = None) -> QuotaRemaining:
    return QuotaRemaining(
        agents_remaining=_agents_remaining(sub) if agents is None else agents,
        tokens_remaining=_tokens_remaining(sub) if tokens is None else tokens,
        inferences_remaining=0,
    )


class SubscriptionService:
    def __init__(self, state: EconState, clock: Clock) -> None:
        self.state = state
        self.clock = clock

    def create_subscription(
        self, principal_id: str, tier_name: str, auto_renew: bool
    ) -> Subscription:
        """Start a 30-day subscription on ``tier_name``; free tiers are active and auto-renew."""
        tier = tier_configs().get(tier_name)
        if tier is None:
            raise EconError("Invalid subscription tier")
        if principal_id in self.state.subscriptions:
            raise EconError("User already has an active subscription")

        is_free = tier_name in FREE_TIERS
        now = self.clock()
        subscription = Subscription(
            principal_id=principal_id,
            tier=tier,
            started_at=now,
            expires_at=now + MONTH_NS,
            auto_renew=True if is_free else auto_renew,
            current_usage=UsageMetrics(last_reset_date=now),
            payment_status=PaymentStatus.ACTIVE if is_free else PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.state.subscriptions[principal_id] = copy.deepcopy(subscription)
        return subscription

    def get_user_subscription(self, principal_id: str) -> Subscription | None:
        subscription = self.state.subscriptions.get(principal_id)
        return copy.deepcopy(subscription) if subscription is not None else None

    def get_or_create_free_subscription(self, principal_id: str) -> Subscription:
        existing = self.get_user_subscription(principal_id)
        if existing is not None:
            return existing
        return self.create_subscription(principal_id, "free", True)

    def get_or_create_free_basic_subscription(self, principal_id: str) -> Subscription:
        existing = self.get_user_subscription(principal_id)
        if existing is not None:
            return existing
        return self.create_subscription(principal_id, "basic", True)

    def update_payment_status(self, principal_id: str, status: PaymentStatus) -> None:
        subscription = self.state.subscriptions.get(principal_id)
        if subscription is not None:
            subscription.payment_status = status
            subscription.updated_at = self.clock()

    def _reset_monthly_usage_if_needed(self, subscription: Subscription) -> None:
        now = self.clock()
        if now - subscription.current_usage.last_reset_date > MONTH_NS:
            subscription.current_usage = UsageMetrics(last_reset_date=now)

    def validate_quota(self, principal_id: str) -> QuotaValidation:
        """Count one agent creation against the monthly quota if it allows one."""
        subscription = self.get_or_create_free_basic_subscription(principal_id)
        self._reset_monthly_usage_if_needed(subscription)

        usage = subscription.current_usage
        if usage.agents_created_this_month >= subscription.tier.monthly_agent_creations:
            return QuotaValidation(
                allowed=False,
                reason="Monthly quota reached - upgrade for more",
                remaining_quota=_remaining(subscription, agents=0),
            )

        usage.agents_created_this_month += 1
        subscription.updated_at = self.clock()
        self.state.subscriptions[principal_id] = copy.deepcopy(subscription)
        return QuotaValidation(allowed=True, remaining_quota=_remaining(subscription))

    def validate_agent_creation_quota(self, principal_id: str) -> QuotaValidation:
        return self.validate_quota(principal_id)

    def validate_token_usage_quota(
        self, principal_id: str, tokens_requested: int
    ) -> QuotaValidation:
        """Count ``tokens_requested`` against the monthly token limit if they fit."""
        subscription = self.get_or_create_free_basic_subscription(principal_id)
        self._reset_monthly_usage_if_needed(subscription)

        remaining_tokens = _tokens_remaining(subscription)
        if tokens_requested > remaining_tokens:
            return QuotaValidation(
                allowed=False,
                reason="Insufficient token quota",
                remaining_quota=_remaining(subscription, tokens=remaining_tokens),
            )

        subscription.current_usage.tokens_used_this_month += tokens_requested
        subscription.updated_at = self.clock()
        self.state.subscriptions[principal_id] = copy.deepcopy(subscription)
        return QuotaValidation(allowed=True, remaining_quota=_remaining(subscription))

    def get_user_usage(self, principal_id: str) -> UsageMetrics | None:
        subscription = self.get_user_subscription(principal_id)
        return subscription.current_usage if subscription is not None else None

    def list_all_subscriptions(self) -> list[Subscription]:
        return [copy.deepcopy(s) for s in self.state.subscriptions.values()]

    def cancel_subscription(self, principal_id: str) -> None:
        subscription = self.state.subscriptions.get(principal_id)
        if subscription is not None:
            subscription.auto_renew = False
            subscription.updated_at = self.clock()

    def renew_subscription(self, principal_id: str) -> None:
        """Extend by 30 days from now, mark active and reset usage."""
        subscription = self.state.subscriptions.get(principal_id)
        if subscription is not None:
            now = self.clock()
            subscription.expires_at = now + MONTH_NS
            subscription.payment_status = PaymentStatus.ACTIVE
            subscription.updated_at = now
            subscription.current_usage = UsageMetrics(last_reset_date=now)

    def get_subscription_stats(self) -> SubscriptionStats:
        subscriptions = self.list_all_subscriptions()
        now = self.clock()
        stats = SubscriptionStats(total_subscriptions=len(subscriptions))
        distribution: Counter[str] = Counter()

        for sub in subscriptions:
            if sub.payment_status is PaymentStatus.ACTIVE:
                stats.active_subscriptions += 1
                stats.total_monthly_revenue_usd += sub.tier.monthly_fee_usd
            elif sub.payment_status is PaymentStatus.PENDING:
                stats.pending_payments += 1
            if now > sub.expires_at:
                stats.expired_subscriptions += 1
            distribution[sub.tier.name] += 1

        stats.tier_distribution = dict(distribution)
        return stats