"""
Payment id generation.

A payment id is recorded at most once per invoice, so the id decides
what counts as a replay.  Only two sources are stable enough to
deduplicate on: an id supplied by the caller, and the id of a reconciled
transaction.  External references (bank references, receipt numbers)
are not: customers reuse the same invoice number as the reference for
every instalment, so reference-based deduplication is left to callers.
"""

from uuid import uuid4

_TRANSACTION_PREFIX = "txn"


def transaction_payment_id(transaction_id: str) -> str:
    """Payment id used when a reconciled transaction is recorded on an invoice."""
    return f"{_TRANSACTION_PREFIX}:{transaction_id}"


def generate_payment_id(
    payment_id: str | None = None,
    transaction_id: str | None = None,
) -> str:
    """
    Resolve the id for a new payment.

    Order: explicit ``payment_id``, else ``txn:<transaction_id>``, else a
    random id (strictly additive).

    Example:
        >>> generate_payment_id(transaction_id="QK7A1B2C3D")
        "txn:QK7A1B2C3D"
    """
    if payment_id:
        return payment_id
    if transaction_id:
        return transaction_payment_id(transaction_id)
    return str(uuid4())
