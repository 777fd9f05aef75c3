"""Public entry points of the economics service, with caller checks and upgrade hooks."""

from __future__ import annotations

from .balance import BalanceService
from .domain import (
    Balance,
    CostQuote,
    EconHealth,
    EscrowAccount,
    FeePolicy,
    JobSpec,
    PaymentStatus,
    QuotaValidation,
    Receipt,
    Subscription,
    TierConfig,
    UsageMetrics,
)
from .escrow import EscrowService
from .estimation import EstimationService
from .guards import (
    ANONYMOUS,
    require_admin,
    require_authenticated,
    validate_amount,
    validate_job_spec,
    validate_receipt,
)
from .payment import (
    Ledger,
    PaymentRequest,
    PaymentService,
    PaymentStats,
    PaymentTransaction,
    PaymentVerification,
    get_icp_usd_rate,
    usd_to_icp_e8s,
)
from .settlement import SettlementService
from .state import Clock, Counters, EconState, system_clock
from .subscription import SubscriptionService, SubscriptionStats, tier_configs

DEFAULT_RECEIPT_LIMIT = 20
MAX_RECEIPT_LIMIT = 100
DEFAULT_USER_TX_LIMIT = 10
MAX_USER_TX_LIMIT = 50
DEFAULT_ALL_TX_LIMIT = 50
MAX_ALL_TX_LIMIT = 200


def _limit(requested: int | None, default: int, maximum: int) -> int:
    return min(default if requested is None else requested, maximum)


class EconCanister:
    """The economics service as a whole: state, services and the calls it answers.

    Every call that acts on behalf of someone takes the caller's principal text
    explicitly; ``None`` or the anonymous principal counts as unauthenticated.
    """

    def __init__(self, clock: Clock | None = None, ledger: Ledger | None = None) -> None:
        self.clock = clock or system_clock
        self.ledger = ledger or Ledger()
        self.counters = Counters()
        self._bind(EconState())

    def _bind(self, state: EconState) -> None:
        self.state = state
        self.balances = BalanceService(state, self.clock)
        self.estimation = EstimationService(state, self.clock)
        self.escrows = EscrowService(state, self.clock, self.balances)
        self.settlements = SettlementService(state, self.clock, self.escrows)
        self.subscriptions = SubscriptionService(state, self.clock)
        self.payments = PaymentService(state, self.clock, self.subscriptions, self.ledger)

    # Lifecycle

    def init(self, installer: str | None) -> None:
        """Set the default fee policy if unset and make the installer an admin."""
        state = self.state
        if state.fee_policy.last_updated == 0:
            state.fee_policy = FeePolicy()
        if installer and installer != ANONYMOUS and installer not in state.admins:
            state.admins.append(installer)
        state.state_version = 1

    def pre_upgrade(self) -> EconState:
        """An independent copy of the whole state, to be handed to ``post_upgrade``."""
        return self.state.snapshot()

    def post_upgrade(self, saved: EconState | None) -> None:
        """Restore saved state, migrating it if needed; with nothing saved keep the current state."""
        if saved is None:
            return
        restored = saved.snapshot()
        if restored.state_version == 0:
            restored.state_version = 1
        self._bind(restored)

    # Estimation, escrow and settlement

    def estimate(self, job_spec: JobSpec) -> CostQuote:
        validate_job_spec(job_spec)
        quote = self.estimation.estimate_cost(job_spec)
        self.counters.increment("estimates_requested_total")
        return quote

    def escrow(self, caller: str | None, job_id: str, amount: int) -> str:
        caller = require_authenticated(caller)
        validate_amount(amount)
        escrow_id = self.escrows.create_escrow(job_id, amount, caller)
        self.counters.increment("escrows_created_total")
        return escrow_id

    def settle(self, caller: str | None, receipt: Receipt) -> str:
        require_authenticated(caller)
        validate_receipt(receipt)
        settlement_id = self.settlements.settle_payment(receipt)
        self.counters.increment("settlements_processed_total")
        return settlement_id

    def get_escrow(self, caller: str | None, escrow_id: str) -> EscrowAccount:
        require_authenticated(caller)
        return self.escrows.get_escrow(escrow_id)

    def refund_escrow(self, caller: str | None, escrow_id: str) -> None:
        require_authenticated(caller)
        self.escrows.refund_escrow(escrow_id)

    def get_receipt(self, caller: str | None, receipt_id: str) -> Receipt:
        require_authenticated(caller)
        return self.settlements.get_receipt(receipt_id)

    def list_receipts(
        self, caller: str | None, principal_id: str | None = None, limit: int | None = None
    ) -> list[Receipt]:
        caller = require_authenticated(caller)
        return self.settlements.list_receipts(
            principal_id or caller, _limit(limit, DEFAULT_RECEIPT_LIMIT, MAX_RECEIPT_LIMIT)
        )

    # Balances and policy

    def get_balance(self, caller: str | None, principal_id: str | None = None) -> Balance:
        caller = require_authenticated(caller)
        return self.balances.get_balance(principal_id or caller)

    def deposit(self, caller: str | None, amount: int) -> None:
        caller = require_authenticated(caller)
        validate_amount(amount)
        self.balances.deposit(caller, amount)

    def withdraw(self, caller: str | None, amount: int) -> None:
        caller = require_authenticated(caller)
        validate_amount(amount)
        self.balances.withdraw(caller, amount)

    def policy(self) -> FeePolicy:
        return self.balances.get_fee_policy()

    def update_policy(self, caller: str | None, new_policy: FeePolicy) -> None:
        require_admin(self.state, caller)
        self.balances.update_fee_policy(new_policy)

    def health(self) -> EconHealth:
        return self.balances.get_health()

    # Admins

    def is_admin(self, caller: str | None) -> bool:
        return caller is not None and self.state.is_admin(caller)

    def list_admins(self) -> list[str]:
        return self.state.list_admins()

    def add_admin(self, caller: str | None, principal_text: str) -> None:
        require_admin(self.state, caller)
        self.state.add_admin(principal_text, self.clock())

    def remove_admin(self, caller: str | None, principal_text: str) -> None:
        require_admin(self.state, caller)
        self.state.remove_admin(principal_text, self.clock())

    # Subscriptions

    def create_subscription(
        self, caller: str | None, tier_name: str, auto_renew: bool
    ) -> Subscription:
        caller = require_authenticated(caller)
        return self.subscriptions.create_subscription(caller, tier_name, auto_renew)

    def get_user_subscription(
        self, caller: str | None, principal: str | None = None
    ) -> Subscription | None:
        pid = principal or caller
        return self.subscriptions.get_user_subscription(pid) if pid else None

    def get_or_create_free_subscription(
        self, caller: str | None, user_principal: str
    ) -> Subscription:
        require_authenticated(caller)
        return self.subscriptions.get_or_create_free_subscription(user_principal)

    def get_or_create_free_basic_subscription(self, caller: str | None) -> Subscription:
        caller = require_authenticated(caller)
        return self.subscriptions.get_or_create_free_basic_subscription(caller)

    def update_payment_status(self, caller: str | None, status: PaymentStatus) -> None:
        caller = require_authenticated(caller)
        self.subscriptions.update_payment_status(caller, status)

    def validate_agent_creation_quota(
        self, caller: str | None, user_principal: str
    ) -> QuotaValidation:
        require_authenticated(caller)
        return self.subscriptions.validate_agent_creation_quota(user_principal)

    def validate_quota(self, caller: str | None) -> QuotaValidation:
        caller = require_authenticated(caller)
        return self.subscriptions.validate_quota(caller)

    def validate_token_usage_quota(
        self, caller: str | None, user_principal: str, tokens_requested: int
    ) -> QuotaValidation:
        require_authenticated(caller)
        return self.subscriptions.validate_token_usage_quota(user_principal, tokens_requested)

    def get_user_usage(
        self, caller: str | None, principal: str | None = None
    ) -> UsageMetrics | None:
        pid = principal or caller
        return self.subscriptions.get_user_usage(pid) if pid else None

    def cancel_subscription(self, caller: str | None) -> None:
        caller = require_authenticated(caller)
        self.subscriptions.cancel_subscription(caller)

    def renew_subscription(self, caller: str | None) -> None:
        caller = require_authenticated(caller)
        self.subscriptions.renew_subscription(caller)

    # Subscription overviews; the admin check on these is advisory and never refuses.

    def get_subscription_tiers(self, caller: str | None) -> list[tuple[str, TierConfig]]:
        return list(tier_configs().items())

    def list_all_subscriptions(self, caller: str | None) -> list[Subscription]:
        return self.subscriptions.list_all_subscriptions()

    def get_subscription_stats(self, caller: str | None) -> SubscriptionStats:
        return self.subscriptions.get_subscription_stats()

    # Payments

    def create_payment_request(
        self, caller: str | None, subscription_tier: str
    ) -> PaymentRequest:
        caller = require_authenticated(caller)
        return self.payments.create_payment_request(caller, subscription_tier)

    def process_subscription_payment(
        self, caller: str | None, payment_request: PaymentRequest
    ) -> PaymentTransaction:
        caller = require_authenticated(caller)
        return self.payments.process_icp_payment(payment_request, caller)

    def verify_payment(self, caller: str | None, transaction_id: str) -> PaymentVerification:
        require_authenticated(caller)
        return self.payments.verify_payment(transaction_id)

    def get_payment_transaction(
        self, caller: str | None, transaction_id: str
    ) -> PaymentTransaction | None:
        require_authenticated(caller)
        return self.payments.get_payment_transaction(transaction_id)

    def list_user_payment_transactions(
        self, caller: str | None, limit: int | None = None
    ) -> list[PaymentTransaction]:
        caller = require_authenticated(caller)
        return self.payments.list_user_transactions(
            caller, _limit(limit, DEFAULT_USER_TX_LIMIT, MAX_USER_TX_LIMIT)
        )

    def get_icp_usd_rate(self) -> float:
        return get_icp_usd_rate()

    def convert_usd_to_icp_e8s(self, amount_usd: int) -> int:
        return usd_to_icp_e8s(amount_usd)

    def get_payment_stats(self, caller: str | None) -> PaymentStats:
        require_admin(self.state, caller)
        return self.payments.get_payment_stats()

    def list_all_payment_transactions(
        self, caller: str | None, limit: int | None = None
    ) -> list[PaymentTransaction]:
        require_admin(self.state, caller)
        return self.payments.list_all_transactions(
            _limit(limit, DEFAULT_ALL_TX_LIMIT, MAX_ALL_TX_LIMIT)
        )