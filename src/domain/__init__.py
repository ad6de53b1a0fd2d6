"""Domain models and FIFO accounting for the capital gains engine.

This package contains the canonical transaction types (Pydantic), the FIFO
lot ledger and the processor that drives the ledger over a transaction
stream. Price data lives in ``services`` and is attached to transactions
before they reach this package.
"""

__all__ = [
    "base_types",
    "fifo",
    "ledger",
    "processor",
]
