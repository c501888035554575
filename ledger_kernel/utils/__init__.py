"""Kernel utilities."""

from ledger_kernel.utils.idempotency import (
    generate_payment_id,
    transaction_payment_id,
)

__all__ = [
    "generate_payment_id",
    "transaction_payment_id",
]
