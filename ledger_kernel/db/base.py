"""
Module: ledger_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the string primary key convention, the type annotation map
    for consistent column types, and the TrackedBase mixin for audit
    timestamps.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  MUST NOT import from domain/ or outer layers.

Invariants enforced:
    - Integer cents: type_annotation_map maps Python ``int`` to BigInteger,
      so money columns hold exact cents.  NEVER use Float for amounts.
    - Percentages map Decimal to Numeric(9, 4); to_percent refuses any
      value this column would round.
    - Timestamps are timezone-aware.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is a caller-supplied string (invoice numbers, M-Pesa
          transaction ids) up to 64 characters.
        - int maps to BigInteger -- cents never overflow.
        - Decimal maps to Numeric(9, 4) -- discount and tax rates.
        - datetime maps to DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        int: BigInteger,
        Decimal: Numeric(9, 4),
        datetime: DateTime(timezone=True),
        date: Date,
        str: String(255),
    }

    id: Mapped[str] = mapped_column(String(64), primary_key=True)


class TrackedBase(Base):
    """
    Abstract base with audit timestamps.

    Guarantees:
        - created_at is set to server NOW() on INSERT and never changes.
        - updated_at auto-updates on every UPDATE.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
