"""
Money -- Fixed-point integer-cents arithmetic.

Responsibility:
    The one primitive every monetary path goes through.  Amounts are plain
    ``int`` counts of the smallest currency unit (cents); percentages are
    ``Decimal``.  Conversion to and from major units and percentage
    application live here so that rounding happens in exactly one place.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every engine and module.  No outward dependencies except
    ledger_kernel.exceptions.

Invariants enforced:
    - Monetary values are never binary floats.
    - Cents are never negative.
    - Percentage application rounds half-up on the exact rational value,
      once per computed quantity.

Failure modes:
    - InvalidAmountError for negative cents or percent, floats, booleans,
      strings that do not parse as decimals, and percentages with more
      than four decimal places.

Usage:
    from ledger_kernel.domain.money import apply_percent, to_decimal

    tax = apply_percent(1800, Decimal("16"))   # 288
    to_decimal(2088)                           # "20.88"
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext

from ledger_kernel.exceptions import InvalidAmountError

Cents = int

PercentLike = Decimal | int | str

CENTS_PER_UNIT = 100

_HUNDRED = Decimal(100)
_ONE = Decimal(1)
_CENT = Decimal("0.01")

# Wide enough that cents * percent never rounds before the final quantize.
_EXACT_PRECISION = 60

# Storage precision of percentage columns: Numeric(9, 4).
PERCENT_PLACES = 4
_PERCENT_LIMIT = Decimal(10) ** (9 - PERCENT_PLACES)


def validate_cents(value: object, field: str = "amount") -> Cents:
    """
    Validate an integer-cents amount.

    Preconditions:
        - value is an ``int`` (``bool`` excluded) and non-negative.

    Raises:
        InvalidAmountError: otherwise.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(value, f"{field} must be integer cents")
    if value < 0:
        raise InvalidAmountError(value, f"{field} cannot be negative")
    return value


def to_percent(value: object, field: str = "percent") -> Decimal:
    """
    Coerce a percentage to ``Decimal``.

    Floats are refused: ``16.1`` has no exact binary representation and
    would leak drift into every downstream rounding.  Percentages carry at
    most PERCENT_PLACES decimal places so a stored invoice reloads with the
    same totals.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(value, f"{field} must be Decimal, int or str, not {type(value).__name__}")
    try:
        percent = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(value, f"{field} is not a number") from e
    if not percent.is_finite():
        raise InvalidAmountError(value, f"{field} must be finite")
    if percent < 0:
        raise InvalidAmountError(value, f"{field} cannot be negative")
    if percent.normalize().as_tuple().exponent < -PERCENT_PLACES:
        raise InvalidAmountError(value, f"{field} allows at most {PERCENT_PLACES} decimal places")
    if percent >= _PERCENT_LIMIT:
        raise InvalidAmountError(value, f"{field} must be below {_PERCENT_LIMIT}")
    return percent


def from_decimal(major: Decimal | int | str) -> Cents:
    """
    Convert a major-unit amount ("20.88") to integer cents (2088).

    Sub-cent input is rounded half-up to the nearest cent.
    """
    if isinstance(major, bool) or isinstance(major, float):
        raise InvalidAmountError(major, "amount must be Decimal, int or str")
    try:
        value = major if isinstance(major, Decimal) else Decimal(str(major).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(major, "amount is not a number") from e
    if not value.is_finite():
        raise InvalidAmountError(major, "amount must be finite")
    if value < 0:
        raise InvalidAmountError(major, "amount cannot be negative")
    with localcontext() as ctx:
        ctx.prec = _EXACT_PRECISION
        return int((value * CENTS_PER_UNIT).quantize(_ONE, rounding=ROUND_HALF_UP))


def to_decimal(cents: Cents) -> str:
    """Format integer cents as a major-unit string with 2 fractional digits."""
    validate_cents(cents)
    with localcontext() as ctx:
        ctx.prec = _EXACT_PRECISION
        return str((Decimal(cents) / CENTS_PER_UNIT).quantize(_CENT))


def apply_percent(cents: Cents, percent: PercentLike) -> Cents:
    """
    Return ``round_half_up(cents * percent / 100)``.

    The product is computed exactly in Decimal with a precision wide enough
    that no intermediate rounding occurs, so every caller gets the same
    integer for the same inputs.
    """
    validate_cents(cents)
    pct = to_percent(percent)
    with localcontext() as ctx:
        ctx.prec = _EXACT_PRECISION
        exact = Decimal(cents) * pct / _HUNDRED
        return int(exact.quantize(_ONE, rounding=ROUND_HALF_UP))


def sum_cents(*amounts: Cents) -> Cents:
    """Exact sum of integer-cents amounts."""
    total = 0
    for amount in amounts:
        total += validate_cents(amount)
    return total
