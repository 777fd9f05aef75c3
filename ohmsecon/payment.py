"""Subscription payments in ICP: requests, ledger transfers, verification and statistics."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum

from .domain import EconError, PaymentStatus
from .state import Clock, EconState
from .subscription import SubscriptionService, tier_configs

ICP_LEDGER_CANISTER_ID = "rrkah-fqaaa-aaaaa-aaaaq-cai"
TREASURY_ACCOUNT_HEX = "2c4449a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8a8"
DEFAULT_FEE_E8S = 10_000
E8S_PER_ICP = 100_000_000


def account_identifier_from_hex(hex_text: str) -> bytes:
    """The account identifier for ``hex_text``, taken as the bytes of the text itself."""
    return hex_text.encode()


def get_icp_usd_rate() -> float:
    """The fixed ICP/USD exchange rate."""
    return 10.0


def usd_to_icp_e8s(amount_usd: int) -> int:
    """Convert whole US dollars to ICP e8s at the current rate."""
    return int(amount_usd / get_icp_usd_rate() * E8S_PER_ICP)


@dataclass
class TransferArgs:
    to: bytes
    amount: int
    fee: int = DEFAULT_FEE_E8S
    memo: int = 0
    from_subaccount: bytes | None = None
    created_at_time: int | None = None


class TransferError(Exception):
    """The ledger accepted the call but refused the transfer."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class LedgerRejected(Exception):
    """The call to the ledger itself was rejected."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"{code} - {message}")
        self.code = code
        self.message = message


class Ledger:
    """An in-memory ledger that records transfers and numbers them as blocks."""

    def __init__(self, canister_id: str = ICP_LEDGER_CANISTER_ID) -> None:
        self.canister_id = canister_id
        self.transfers: list[TransferArgs] = []

    def transfer(self, args: TransferArgs) -> int:
        """Record the transfer and return its block index."""
        self.transfers.append(copy.deepcopy(args))
        return len(self.transfers) - 1


@dataclass
class PaymentRequest:
    subscription_tier: str
    amount_usd: int
    amount_icp_e8s: int
    user_principal: str
    payment_memo: str


class PaymentTransactionStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"
    REFUNDED = "Refunded"


@dataclass
class PaymentTransaction:
    id: str
    user_principal: str
    subscription_tier: str
    amount_usd: int
    amount_icp_e8s: int
    status: PaymentTransactionStatus
    memo: str
    created_at: int
    icp_block_index: int | None = None
    completed_at: int | None = None
    error_message: str | None = None


@dataclass
class PaymentVerification:
    verified: bool
    transaction_id: str
    block_index: int | None = None
    error_message: str | None = None


@dataclass
class PaymentStats:
    total_transactions: int = 0
    completed_transactions: int = 0
    failed_transactions: int = 0
    pending_transactions: int = 0
    total_revenue_usd: int = 0
    total_revenue_icp_e8s: int = 0


class PaymentService:
    def __init__(
        self,
        state: EconState,
        clock: Clock,
        subscriptions: SubscriptionService,
        ledger: Ledger,
    ) -> None:
        self.state = state
        self.clock = clock
        self.subscriptions = subscriptions
        self.ledger = ledger

    def _transactions(self) -> dict[str, PaymentTransaction]:
        if self.state.payment_transactions is None:
            self.state.payment_transactions = {}
        return self.state.payment_transactions

    def _store(self, transaction: PaymentTransaction) -> None:
        self._transactions()[transaction.id] = copy.deepcopy(transaction)

    def create_payment_request(self, user_principal: str, subscription_tier: str) -> PaymentRequest:
        """A request to pay one month of a paid tier."""
        tier = tier_configs().get(subscription_tier)
        if tier is None:
            raise EconError("Invalid subscription tier")
        if tier.monthly_fee_usd == 0:
            raise EconError("Free tier doesn't require payment")
        return PaymentRequest(
            subscription_tier=subscription_tier,
            amount_usd=tier.monthly_fee_usd,
            amount_icp_e8s=usd_to_icp_e8s(tier.monthly_fee_usd),
            user_principal=user_principal,
            payment_memo=f"OHMS-{subscription_tier.upper()}-{self.clock()}",
        )

    def process_icp_payment(
        self, payment_request: PaymentRequest, from_principal: str
    ) -> PaymentTransaction:
        """Transfer the requested amount to the treasury and record the outcome."""
        now = self.clock()
        transaction = PaymentTransaction(
            id=f"tx_{now}",
            user_principal=payment_request.user_principal,
            subscription_tier=payment_request.subscription_tier,
            amount_usd=payment_request.amount_usd,
            amount_icp_e8s=payment_request.amount_icp_e8s,
            status=PaymentTransactionStatus.PROCESSING,
            memo=payment_request.payment_memo,
            created_at=now,
        )
        self._store(transaction)

        args = TransferArgs(
            to=account_identifier_from_hex(TREASURY_ACCOUNT_HEX),
            amount=payment_request.amount_icp_e8s,
        )

        try:
            block_index = self.ledger.transfer(args)
        except TransferError as err:
            transaction.status = PaymentTransactionStatus.FAILED
            transaction.error_message = f"Transfer failed: {err.message}"
            transaction.completed_at = self.clock()
            self._store(transaction)
            raise EconError(f"Payment failed: {err.message}") from err
        except LedgerRejected as err:
            transaction.status = PaymentTransactionStatus.FAILED
            transaction.error_message = f"Ledger call failed: {err.code} - {err.message}"
            transaction.completed_at = self.clock()
            self._store(transaction)
            raise EconError(f"Ledger call failed: {err.message}") from err

        transaction.status = PaymentTransactionStatus.COMPLETED
        transaction.icp_block_index = block_index
        transaction.completed_at = self.clock()
        try:
            self.subscriptions.update_payment_status(
                payment_request.user_principal, PaymentStatus.ACTIVE
            )
        except EconError as err:
            transaction.error_message = f"Failed to update subscription: {err}"
        self._store(transaction)
        return copy.deepcopy(transaction)

    def verify_payment(self, transaction_id: str) -> PaymentVerification:
        transaction = self.get_payment_transaction(transaction_id)
        if transaction is None:
            raise EconError("Transaction not found")
        return PaymentVerification(
            verified=transaction.status is PaymentTransactionStatus.COMPLETED
            and transaction.icp_block_index is not None,
            transaction_id=transaction_id,
            block_index=transaction.icp_block_index,
            error_message=transaction.error_message,
        )

    def get_payment_transaction(self, transaction_id: str) -> PaymentTransaction | None:
        transactions = self.state.payment_transactions or {}
        transaction = transactions.get(transaction_id)
        return copy.deepcopy(transaction) if transaction is not None else None

    def _newest_first(self, transactions, limit: int) -> list[PaymentTransaction]:
        ordered = sorted(transactions, key=lambda tx: tx.created_at, reverse=True)
        return [copy.deepcopy(tx) for tx in ordered[:limit]]

    def list_user_transactions(self, user_principal: str, limit: int) -> list[PaymentTransaction]:
        """Up to ``limit`` of the user's transactions, newest first."""
        transactions = (self.state.payment_transactions or {}).values()
        return self._newest_first(
            (tx for tx in transactions if tx.user_principal == user_principal), limit
        )

    def list_all_transactions(self, limit: int) -> list[PaymentTransaction]:
        """Up to ``limit`` transactions of all users, newest first."""
        return self._newest_first((self.state.payment_transactions or {}).values(), limit)

    def get_payment_stats(self) -> PaymentStats:
        transactions = list((self.state.payment_transactions or {}).values())
        stats = PaymentStats(total_transactions=len(transactions))
        for tx in transactions:
            if tx.status is PaymentTransactionStatus.COMPLETED:
                stats.completed_transactions += 1
                stats.total_revenue_usd += tx.amount_usd
                stats.total_revenue_icp_e8s += tx.amount_icp_e8s
            elif tx.status is PaymentTransactionStatus.FAILED:
                stats.failed_transactions += 1
            elif tx.status in (
                PaymentTransactionStatus.PENDING,
                PaymentTransactionStatus.PROCESSING,
            ):
                stats.pending_transactions += 1
        return stats