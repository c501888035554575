"""
Ledger ORM Models and SQLAlchemy store (``ledger_services.orm``).

Responsibility
--------------
SQLAlchemy persistence for invoices (with items and payments) and
external transactions, and ``SqlAlchemyLedgerStore``, the LedgerStore
implementation built on them.  Maps frozen domain dataclasses to tables.

Architecture position
---------------------
**Services layer** -- persistence.  Imports from ``ledger_kernel.db`` and
the module ``models.py`` files.  MUST NOT be imported by ``ledger_kernel``.

Invariants enforced
-------------------
* Money columns are BigInteger cents.  Totals are not stored: they are
  recomputed from item rows on load.
* Payment rows are append-only; ``(invoice_id, payment_id)`` is unique.
* ``save_reconciliation`` writes invoice and transaction in one
  ``session_scope``: both commit or both roll back.

Failure modes
-------------
* Any SQLAlchemyError is raised as ``PersistenceError``.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, sessionmaker

from ledger_engines.invoice_ledger import InvoiceItem
from ledger_kernel.db.base import Base, TrackedBase
from ledger_kernel.db.engine import get_session_factory, session_scope
from ledger_kernel.exceptions import PersistenceError
from ledger_kernel.logging_config import get_logger
from ledger_modules.invoicing.models import (
    OPEN_PAYMENT_STATUSES,
    DeliveryInfo,
    Invoice,
    Payment,
)
from ledger_modules.reconciliation.models import Transaction

logger = get_logger("services.orm")


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo; stored values are always UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _timestamps(dto) -> dict:
    stamps = {}
    if dto.created_at is not None:
        stamps["created_at"] = dto.created_at
    if dto.updated_at is not None:
        stamps["updated_at"] = dto.updated_at
    return stamps


# ---------------------------------------------------------------------------
# 1. InvoiceModel
# ---------------------------------------------------------------------------


class InvoiceModel(TrackedBase):
    """
    ORM model for invoices.

    Maps to the ``Invoice`` frozen dataclass.  Delivery details are
    one-to-one and stored as nullable columns on the invoice row.

    Guarantees:
        - payment_status and fulfillment_status stored as enum values.
        - No total or balance columns.
    """

    __tablename__ = "ledger_invoices"

    __table_args__ = (
        Index("idx_ledger_invoices_payment_status", "payment_status"),
        Index("idx_ledger_invoices_due_date", "due_date"),
    )

    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tax_rate_percent: Mapped[Decimal] = mapped_column(nullable=False)
    payment_status: Mapped[str] = mapped_column(String(32), default="draft")
    fulfillment_status: Mapped[str] = mapped_column(String(32), default="pending")
    issue_date: Mapped[date | None] = mapped_column(nullable=True)
    due_date: Mapped[date | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    delivery_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    delivery_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    delivery_scheduled_date: Mapped[date | None] = mapped_column(nullable=True)
    delivery_completed_date: Mapped[date | None] = mapped_column(nullable=True)
    recipient_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    delivery_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["InvoiceItemModel"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItemModel.line_number",
        lazy="selectin",
    )
    payments: Mapped[list["PaymentModel"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="PaymentModel.sequence",
        lazy="selectin",
    )

    def _delivery_info(self) -> DeliveryInfo | None:
        if self.delivery_type is None:
            return None
        return DeliveryInfo(
            type=self.delivery_type,
            status=self.delivery_status,
            scheduled_date=self.delivery_scheduled_date,
            completed_date=self.delivery_completed_date,
            recipient_name=self.recipient_name,
            recipient_phone=self.recipient_phone,
            address=self.delivery_address,
            notes=self.delivery_notes,
        )

    def to_dto(self) -> Invoice:
        """Convert ORM model to frozen dataclass."""
        return Invoice(
            id=self.id,
            client_name=self.client_name,
            items=tuple(item.to_dto() for item in self.items),
            tax_rate_percent=self.tax_rate_percent,
            payment_status=self.payment_status,
            fulfillment_status=self.fulfillment_status,
            payments=tuple(payment.to_dto() for payment in self.payments),
            delivery_info=self._delivery_info(),
            issue_date=self.issue_date,
            due_date=self.due_date,
            client_email=self.client_email,
            client_phone=self.client_phone,
            notes=self.notes,
            created_at=_aware(self.created_at),
            updated_at=_aware(self.updated_at),
        )

    @classmethod
    def from_dto(cls, dto: Invoice) -> InvoiceModel:
        """Create ORM model from frozen dataclass."""
        info = dto.delivery_info
        model = cls(
            id=dto.id,
            client_name=dto.client_name,
            client_email=dto.client_email,
            client_phone=dto.client_phone,
            tax_rate_percent=dto.tax_rate_percent,
            payment_status=dto.payment_status.value,
            fulfillment_status=dto.fulfillment_status.value,
            issue_date=dto.issue_date,
            due_date=dto.due_date,
            notes=dto.notes,
            delivery_type=info.type.value if info else None,
            delivery_status=info.status.value if info else None,
            delivery_scheduled_date=info.scheduled_date if info else None,
            delivery_completed_date=info.completed_date if info else None,
            recipient_name=info.recipient_name if info else None,
            recipient_phone=info.recipient_phone if info else None,
            delivery_address=info.address if info else None,
            delivery_notes=info.notes if info else None,
            **_timestamps(dto),
        )
        model.items = [
            InvoiceItemModel.from_dto(item, dto.id, n)
            for n, item in enumerate(dto.items)
        ]
        model.payments = [
            PaymentModel.from_dto(payment, dto.id, n)
            for n, payment in enumerate(dto.payments)
        ]
        return model

    def __repr__(self) -> str:
        return (
            f"<InvoiceModel {self.id} payment={self.payment_status} "
            f"fulfillment={self.fulfillment_status}>"
        )


# ---------------------------------------------------------------------------
# 2. InvoiceItemModel
# ---------------------------------------------------------------------------


class InvoiceItemModel(Base):
    """ORM model for invoice line items, ordered by ``line_number``."""

    __tablename__ = "ledger_invoice_items"

    __table_args__ = (
        UniqueConstraint("invoice_id", "line_number", name="uq_ledger_invoice_items_line"),
        Index("idx_ledger_invoice_items_invoice_id", "invoice_id"),
    )

    invoice_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("ledger_invoices.id"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    item_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(nullable=False)
    discount_percent: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    invoice: Mapped["InvoiceModel"] = relationship(back_populates="items")

    def to_dto(self) -> InvoiceItem:
        return InvoiceItem(
            description=self.description,
            quantity=self.quantity,
            unit_price_cents=self.unit_price_cents,
            discount_percent=self.discount_percent,
            id=self.item_id,
        )

    @classmethod
    def from_dto(cls, dto: InvoiceItem, invoice_id: str, line_number: int) -> InvoiceItemModel:
        return cls(
            id=f"{invoice_id}#i{line_number}",
            invoice_id=invoice_id,
            line_number=line_number,
            item_id=dto.id,
            description=dto.description,
            quantity=dto.quantity,
            unit_price_cents=dto.unit_price_cents,
            discount_percent=dto.discount_percent,
        )


# ---------------------------------------------------------------------------
# 3. PaymentModel
# ---------------------------------------------------------------------------


class PaymentModel(Base):
    """
    ORM model for payments.

    Guarantees:
        - ``sequence`` preserves append order.
        - payment_id is unique per invoice (uq_ledger_payments_payment_id).
    """

    __tablename__ = "ledger_payments"

    __table_args__ = (
        UniqueConstraint("invoice_id", "payment_id", name="uq_ledger_payments_payment_id"),
        Index("idx_ledger_payments_invoice_id", "invoice_id"),
        Index("idx_ledger_payments_transaction_id", "transaction_id"),
    )

    invoice_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("ledger_invoices.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    payment_id: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[int] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(32), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(nullable=False)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    invoice: Mapped["InvoiceModel"] = relationship(back_populates="payments")

    def to_dto(self) -> Payment:
        return Payment(
            id=self.payment_id,
            amount=self.amount,
            method=self.method,
            processed_at=_aware(self.processed_at),
            reference=self.reference,
            notes=self.notes,
            transaction_id=self.transaction_id,
        )

    @classmethod
    def from_dto(cls, dto: Payment, invoice_id: str, sequence: int) -> PaymentModel:
        return cls(
            id=f"{invoice_id}#p{sequence}",
            invoice_id=invoice_id,
            sequence=sequence,
            payment_id=dto.id,
            amount=dto.amount,
            method=dto.method.value,
            processed_at=dto.processed_at,
            reference=dto.reference,
            notes=dto.notes,
            transaction_id=dto.transaction_id,
        )


# ---------------------------------------------------------------------------
# 4. TransactionModel
# ---------------------------------------------------------------------------


class TransactionModel(TrackedBase):
    """
    ORM model for external payment transactions.

    ``invoice_id`` is a lookup key, not a foreign key: a transaction may
    name an invoice this ledger has never seen.
    """

    __tablename__ = "ledger_transactions"

    __table_args__ = (
        Index("idx_ledger_transactions_status", "reconciliation_status"),
        Index("idx_ledger_transactions_invoice_id", "invoice_id"),
    )

    amount: Mapped[int] = mapped_column(nullable=False)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(nullable=False)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reconciliation_status: Mapped[str] = mapped_column(String(32), default="pending")
    invoice_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> Transaction:
        return Transaction(
            id=self.id,
            amount=self.amount,
            payment_method=self.payment_method,
            processed_at=_aware(self.processed_at),
            reference=self.reference,
            reconciliation_status=self.reconciliation_status,
            invoice_id=self.invoice_id,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto: Transaction) -> TransactionModel:
        return cls(
            id=dto.id,
            amount=dto.amount,
            payment_method=dto.payment_method.value,
            processed_at=dto.processed_at,
            reference=dto.reference,
            reconciliation_status=dto.reconciliation_status.value,
            invoice_id=dto.invoice_id,
            notes=dto.notes,
        )

    def __repr__(self) -> str:
        return f"<TransactionModel {self.id} {self.reconciliation_status}>"


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SqlAlchemyLedgerStore:
    """
    LedgerStore backed by SQLAlchemy.

    Each call runs in its own ``session_scope``.  Saves merge the full
    invoice graph; item and payment rows are keyed by position.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._factory = session_factory or get_session_factory()

    def _failed(self, entity: str, entity_id: str, error: SQLAlchemyError) -> PersistenceError:
        logger.error("store_operation_failed", extra={
            "entity": entity,
            "entity_id": entity_id,
            "error": str(error),
        })
        return PersistenceError(entity, entity_id, str(error))

    def load_invoice(self, invoice_id: str) -> Invoice | None:
        try:
            with session_scope(self._factory) as session:
                model = session.get(InvoiceModel, invoice_id)
                return model.to_dto() if model is not None else None
        except SQLAlchemyError as e:
            raise self._failed("invoice", invoice_id, e) from e

    def save_invoice(self, invoice: Invoice) -> None:
        try:
            with session_scope(self._factory) as session:
                session.merge(InvoiceModel.from_dto(invoice))
        except SQLAlchemyError as e:
            raise self._failed("invoice", invoice.id, e) from e

    def load_transaction(self, transaction_id: str) -> Transaction | None:
        try:
            with session_scope(self._factory) as session:
                model = session.get(TransactionModel, transaction_id)
                return model.to_dto() if model is not None else None
        except SQLAlchemyError as e:
            raise self._failed("transaction", transaction_id, e) from e

    def save_transaction(self, transaction: Transaction) -> None:
        try:
            with session_scope(self._factory) as session:
                session.merge(TransactionModel.from_dto(transaction))
        except SQLAlchemyError as e:
            raise self._failed("transaction", transaction.id, e) from e

    def save_reconciliation(self, invoice: Invoice, transaction: Transaction) -> None:
        try:
            with session_scope(self._factory) as session:
                session.merge(InvoiceModel.from_dto(invoice))
                session.merge(TransactionModel.from_dto(transaction))
        except SQLAlchemyError as e:
            raise self._failed("reconciliation", transaction.id, e) from e

    def list_invoices(self) -> list[Invoice]:
        try:
            with session_scope(self._factory) as session:
                models = session.scalars(select(InvoiceModel).order_by(InvoiceModel.id))
                return [m.to_dto() for m in models]
        except SQLAlchemyError as e:
            raise self._failed("invoice", "*", e) from e

    def list_transactions(self) -> list[Transaction]:
        try:
            with session_scope(self._factory) as session:
                models = session.scalars(select(TransactionModel).order_by(TransactionModel.id))
                return [m.to_dto() for m in models]
        except SQLAlchemyError as e:
            raise self._failed("transaction", "*", e) from e

    def unmatched_invoices(self) -> list[Invoice]:
        statuses = sorted(s.value for s in OPEN_PAYMENT_STATUSES)
        try:
            with session_scope(self._factory) as session:
                models = session.scalars(
                    select(InvoiceModel)
                    .where(InvoiceModel.payment_status.in_(statuses))
                    .order_by(InvoiceModel.id)
                )
                invoices = [m.to_dto() for m in models]
        except SQLAlchemyError as e:
            raise self._failed("invoice", "*", e) from e
        return [i for i in invoices if i.remaining_balance > 0]
