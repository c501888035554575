"""
Reconciliation Module.

External payment transactions, candidate ranking against outstanding
invoices, match confirmation and disputes.
"""

from ledger_modules.reconciliation.matcher import (
    RankedCandidate,
    ReconciliationMatcher,
    summarize_transactions,
)
from ledger_modules.reconciliation.models import (
    ReconciliationStatus,
    Transaction,
    TransactionSummary,
)

__all__ = [
    "RankedCandidate",
    "ReconciliationMatcher",
    "ReconciliationStatus",
    "Transaction",
    "TransactionSummary",
    "summarize_transactions",
]
