# ohmsecon

An in-memory economics ledger for metered compute jobs. It estimates job
costs, holds funds in escrow, settles receipts to agents, tracks balances
and admins, and manages subscription tiers, usage quotas and subscription
payments. It has no dependencies outside the standard library.

## Install

    pip install .

For running the tests:

    pip install ".[test]"
    pytest

## Usage

The whole service is exposed through `ohmsecon.api.EconCanister`. Calls
that act on behalf of someone take the caller's principal text as their
`caller` argument. `None` or the anonymous principal `"2vxsx-fae"` is
refused with `EconError("Authentication required")` where a call needs
authentication; admin-only calls (`update_policy`, `add_admin`,
`remove_admin`, `get_payment_stats`, `list_all_payment_transactions`)
raise `EconError("Admin required")` for anyone not granted admin rights.

```python
from ohmsecon.api import EconCanister
from ohmsecon.domain import JobPriority, JobSpec

clock = iter(range(1_000, 10**9))
econ = EconCanister(clock=lambda: next(clock))
econ.init("admin-principal")          # the installer becomes an admin

econ.deposit("alice", 50_000)
quote = econ.estimate(JobSpec("job-1", "model-a", 100, 0, JobPriority.NORMAL))
escrow_id = econ.escrow("alice", "job-1", 20_000)
balance = econ.get_balance("alice")   # available 30_000, escrowed 20_000
```

Time comes from a clock callable returning nanoseconds; by default
`ohmsecon.state.system_clock`. Payments go through a
`ohmsecon.payment.Ledger`, which may be passed to `EconCanister`.

All refusals raise `ohmsecon.domain.EconError`.

## Modules

- `ohmsecon.domain` – data types (`JobSpec`, `CostQuote`, `EscrowAccount`,
  `Receipt`, `FeesBreakdown`, `FeePolicy`, `Balance`, `Subscription`,
  `TierConfig`, `QuotaValidation`, ...), their enums, and `EconError`.
- `ohmsecon.state` – `EconState`, the single store shared by all services,
  with admin helpers and `snapshot()`; `EconMetrics`; `Counters` for named
  counters; `system_clock`.
- `ohmsecon.guards` – `require_authenticated`, `require_admin`,
  `validate_amount`, `validate_job_spec`, `validate_receipt`.
- `ohmsecon.balance.BalanceService` – balances, deposits, withdrawals, fee
  policy and health figures.
- `ohmsecon.estimation` – `EstimationService` and `estimate_variance`.
- `ohmsecon.escrow.EscrowService` – create, release, refund and expire
  escrows.
- `ohmsecon.settlement` – `SettlementService` and `calculate_fees`.
- `ohmsecon.subscription` – `SubscriptionService`, `SubscriptionStats`
  and `tier_configs`.
- `ohmsecon.payment` – `PaymentService`, `Ledger`, `TransferArgs`, the
  `TransferError` and `LedgerRejected` exceptions, payment records, and
  `get_icp_usd_rate` / `usd_to_icp_e8s`.

## Behaviour worth knowing

- Base cost is tokens × 100 + compute cycles × 10. It is multiplied by the
  fee policy's priority multiplier (by default Low 0.8, Normal 1.0,
  High 1.5, Critical 2.0), a protocol fee (by default 3 %) is added, and
  the result is never below the minimum fee (by default 1000). Quotes
  expire after 15 minutes.
- Escrows last 24 hours; `EscrowService.cleanup_expired_escrows` returns
  the funds of active escrows past expiry and marks them expired.
- A receipt can be settled once; settling releases the receipt's actual
  cost from the escrow to the agent and marks the escrow released.
  `list_receipts` returns stored receipts up to the limit (default 20,
  at most 100) whatever principal is asked for.
- Subscription tiers are `free`, `basic`, `pro` and `enterprise`. The
  first two cost nothing, are always active and auto-renew. Quota checks
  create a `basic` subscription for an unknown user, and usage resets
  after 30 days.
- The admin overviews `get_subscription_tiers`, `list_all_subscriptions`
  and `get_subscription_stats` never refuse a caller.
- ICP is priced at a fixed 10 USD; `usd_to_icp_e8s(99)` is `990_000_000`.
- Amounts for deposits, withdrawals and escrows must be between 1 and
  1,000,000,000,000.
- `pre_upgrade` returns an independent snapshot of the state and
  `post_upgrade` restores one (doing nothing when given `None`).

## What it does not do

- Everything lives in memory. Nothing is written to disk; keeping state
  across runs means holding on to the `EconState` from `pre_upgrade`.
- `Ledger` is an in-memory stand-in that records transfers and numbers
  them as blocks; nothing is sent to a real ledger or network.
- There is no command-line tool and no server; the package is used as a
  library.