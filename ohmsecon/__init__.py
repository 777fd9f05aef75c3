"""In-memory economics ledger for compute jobs: estimates, escrow, settlement, subscriptions and payments."""

__version__ = "0.1.0"

__all__ = [
    "api",
    "balance",
    "domain",
    "escrow",
    "estimation",
    "guards",
    "payment",
    "settlement",
    "state",
    "subscription",
]