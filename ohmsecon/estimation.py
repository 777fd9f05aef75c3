"""Cost estimation for inference jobs."""

from __future__ import annotations

import base64
import hashlib
import logging
from typing import Iterable

from .domain import CostQuote, EconError, FeePolicy, JobPriority, JobSpec
from .state import Clock, EconState

log = logging.getLogger(__name__)

BASE_COST_PER_TOKEN = 100
COMPUTE_CYCLE_COST = 10
QUOTE_TTL_NS = 15 * 60 * 1_000_000_000


def estimate_variance(actual_cost: int, estimated_cost: int) -> float:
    """Relative difference between actual and estimated cost, in percent."""
    if estimated_cost == 0:
        return 0.0
    return abs((actual_cost - estimated_cost) / estimated_cost) * 100.0


def _priority_multiplier(priority: JobPriority, policy: FeePolicy) -> float:
    return policy.priority_multipliers.get(priority.value, 1.0)


def _quote_id(job_id: str, now: int) -> str:
    digest = hashlib.sha256(job_id.encode() + now.to_bytes(8, "big")).digest()
    return "quote_" + base64.b64encode(digest[:8]).decode("ascii")


class EstimationService:
    def __init__(self, state: EconState, clock: Clock) -> None:
        self.state = state
        self.clock = clock

    def estimate_cost(self, job_spec: JobSpec) -> CostQuote:
        now = self.clock()
        policy = self.state.fee_policy

        base_cost = (
            job_spec.estimated_tokens * BASE_COST_PER_TOKEN
            + job_spec.estimated_compute_cycles * COMPUTE_CYCLE_COST
        )
        multiplier = _priority_multiplier(job_spec.priority, policy)
        adjusted_cost = int(base_cost * multiplier)
        protocol_fee = int(adjusted_cost * (policy.protocol_fee_percentage / 100.0))
        final_cost = max(adjusted_cost + protocol_fee, policy.minimum_fee)

        quote = CostQuote(
            job_id=job_spec.job_id,
            estimated_cost=final_cost,
            base_cost=base_cost,
            priority_multiplier=multiplier,
            protocol_fee=protocol_fee,
            quote_expires_at=now + QUOTE_TTL_NS,
            quote_id=_quote_id(job_spec.job_id, now),
        )
        self.state.metrics.total_estimates += 1
        self.state.metrics.last_activity = now
        return quote

    def validate_quote(self, quote: CostQuote) -> CostQuote:
        if quote.quote_expires_at < self.clock():
            raise EconError("Quote has expired")
        if quote.estimated_cost < quote.base_cost:
            raise EconError("Invalid quote: estimated cost less than base cost")
        return quote

    def update_estimation_model(
        self, actual_costs: Iterable[tuple[JobSpec, int]]
    ) -> float | None:
        """Log and return the average variance of token-based estimates, or None when empty."""
        variances = [
            estimate_variance(actual, job.estimated_tokens * BASE_COST_PER_TOKEN)
            for job, actual in actual_costs
        ]
        if not variances:
            return None
        average = sum(variances) / len(variances)
        log.info("Estimation model update: average variance = %.2f%%", average)
        return average