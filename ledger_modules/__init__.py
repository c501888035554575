"""
Ledger Modules -- invoicing and reconciliation domain logic.

    invoicing       -- invoices, payments, two-axis workflow
    reconciliation  -- external transactions matched to invoices
"""
