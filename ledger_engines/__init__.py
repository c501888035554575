"""
Ledger Engines -- pure calculation layer.

Every engine is a pure function of its inputs: no I/O, no clock, no
stored state.  Invocations are traced with ``@traced_engine``.

    invoice_ledger  -- totals from line items, discounts and tax
    matching        -- amount-proximity ranking of reconciliation candidates
    aging           -- days-past-due buckets for outstanding balances
"""

from ledger_engines.aging import AgeBucket, AgedItem, AgingCalculator, AgingInput, AgingReport
from ledger_engines.invoice_ledger import InvoiceItem, InvoiceLedger, Totals, compute_totals
from ledger_engines.matching import (
    MatchCandidate,
    MatchingEngine,
    MatchQuality,
    RankedMatch,
    classify,
)

__all__ = [
    "AgeBucket",
    "AgedItem",
    "AgingCalculator",
    "AgingInput",
    "AgingReport",
    "InvoiceItem",
    "InvoiceLedger",
    "MatchCandidate",
    "MatchingEngine",
    "MatchQuality",
    "RankedMatch",
    "Totals",
    "classify",
    "compute_totals",
]
