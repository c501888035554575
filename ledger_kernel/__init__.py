"""
Ledger Kernel

Integer-cents invoice ledger primitives with:
- Deterministic money arithmetic (round-half-up, no floats)
- Typed, machine-readable errors
- Structured JSON logging
- Injectable clock for deterministic replay
"""

__version__ = "0.1.0"
