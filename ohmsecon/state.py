"""Shared mutable service state, the clock it is stamped with, and named counters."""

from __future__ import annotations

import copy
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable

from .domain import (
    Balance,
    EscrowAccount,
    FeePolicy,
    Receipt,
    SettlementEntry,
    Subscription,
)

Clock = Callable[[], int]


def system_clock() -> int:
    """Current wall-clock time in nanoseconds."""
    return time.time_ns()


@dataclass
class EconMetrics:
    total_volume: int = 0
    protocol_fees_collected: int = 0
    total_estimates: int = 0
    total_settlements: int = 0
    last_activity: int = 0


@dataclass
class EconState:
    """Everything the service keeps between calls."""

    escrows: dict[str, EscrowAccount] = field(default_factory=dict)
    receipts: dict[str, Receipt] = field(default_factory=dict)
    balances: dict[str, Balance] = field(default_factory=dict)
    settlements: dict[str, SettlementEntry] = field(default_factory=dict)
    receipt_to_settlement: dict[str, str] = field(default_factory=dict)
    fee_policy: FeePolicy = field(default_factory=FeePolicy)
    metrics: EconMetrics = field(default_factory=EconMetrics)
    admins: list[str] = field(default_factory=list)
    state_version: int = 0
    subscriptions: dict[str, Subscription] = field(default_factory=dict)
    payment_transactions: dict | None = None

    def is_admin(self, principal_text: str) -> bool:
        return principal_text in self.admins

    def add_admin(self, principal_text: str, now: int) -> None:
        if principal_text not in self.admins:
            self.admins.append(principal_text)
            self.metrics.last_activity = now

    def list_admins(self) -> list[str]:
        return list(self.admins)

    def remove_admin(self, principal_text: str, now: int) -> None:
        self.admins = [p for p in self.admins if p != principal_text]
        self.metrics.last_activity = now

    def snapshot(self) -> EconState:
        """An independent deep copy of the state."""
        return copy.deepcopy(self)


class Counters:
    """Named monotonically increasing counters."""

    def __init__(self) -> None:
        self._counts: Counter[str] = Counter()

    def increment(self, name: str) -> int:
        self._counts[name] += 1
        return self._counts[name]

    def get(self, name: str) -> int:
        return self._counts[name]