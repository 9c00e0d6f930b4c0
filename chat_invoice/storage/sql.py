"""SQLAlchemy persistence adapter.

Invoices are stored as a JSON document plus the columns needed for lookups
and for the conditional stage update. Stage transitions are guarded by
``UPDATE ... WHERE id = :id AND payment_stage = :expected``; a zero row
count means another request moved the invoice first.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Numeric,
    String,
    Text,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from chat_invoice.interpretation.schema import CatalogProduct
from chat_invoice.lifecycle.models import Invoice
from chat_invoice.lifecycle.stages import PaymentStage
from chat_invoice.matching.models import CustomerDraft, CustomerRecord, LearningSource, ProductDraft
from chat_invoice.matching.similarity import normalize_name, similarity
from chat_invoice.shared.errors import InvoiceNotFoundError, StageTransitionError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


class InvoiceRow(Base):
    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(64), nullable=False)
    payment_stage: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    payment_status: Mapped[str] = mapped_column(String(32), nullable=False)
    customer_token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    final_payment_token: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    document: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class CustomerRow(Base):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default=LearningSource.MANUAL.value)
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class ProductRow(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    sku: Mapped[str | None] = mapped_column(String(64), nullable=True)
    category: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default=LearningSource.MANUAL.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


def _to_invoice(row: InvoiceRow) -> Invoice:
    return Invoice.model_validate(row.document)


def _to_customer(row: CustomerRow) -> CustomerRecord:
    return CustomerRecord(
        id=row.id,
        name=row.name,
        email=row.email,
        phone=row.phone,
        address=row.address,
        source=LearningSource(row.source),
        confidence_score=row.confidence_score,
    )


def _to_product(row: ProductRow) -> CatalogProduct:
    return CatalogProduct(
        id=row.id,
        name=row.name,
        sku=row.sku,
        category=row.category,
        unit_price=Decimal(row.unit_price),
        description=row.description,
        tags=tuple(row.tags or ()),
        active=row.active,
    )


def _invoice_columns(invoice: Invoice) -> dict[str, Any]:
    return {
        "invoice_number": invoice.invoice_number,
        "payment_stage": invoice.payment_stage.value,
        "payment_status": invoice.payment_status.value,
        "customer_token": invoice.customer_token,
        "final_payment_token": invoice.final_payment_token,
        "document": invoice.model_dump(mode="json"),
        "updated_at": invoice.updated_at,
    }


class SqlRepository:
    """Repository backed by any SQLAlchemy-supported database.

    Args:
        database_url: SQLAlchemy URL, e.g. ``postgresql+psycopg://...`` or ``sqlite://``
        name_match_threshold: Similarity above which a stored customer name matches
        min_name_length: Names shorter than this are never fuzzy-matched
        create_schema: Create missing tables on startup
    """

    def __init__(
        self,
        database_url: str,
        name_match_threshold: float = 0.8,
        min_name_length: int = 3,
        create_schema: bool = True,
    ) -> None:
        engine_kwargs: dict[str, Any] = {}
        if database_url.startswith("sqlite") and (
            database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url
        ):
            # A single shared connection, otherwise every session sees an empty database
            engine_kwargs = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}

        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.name_match_threshold = name_match_threshold
        self.min_name_length = min_name_length
        if create_schema:
            Base.metadata.create_all(self.engine)

    # --- invoices -----------------------------------------------------------

    def save_invoice(self, invoice: Invoice) -> Invoice:
        with self.Session() as session:
            session.add(
                InvoiceRow(id=invoice.id, created_at=invoice.created_at, **_invoice_columns(invoice))
            )
            session.commit()
        return invoice

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        with self.Session() as session:
            row = session.get(InvoiceRow, invoice_id)
            return _to_invoice(row) if row else None

    def update_invoice(self, invoice_id: str, patch: dict[str, Any]) -> Invoice:
        with self.Session() as session:
            row = session.get(InvoiceRow, invoice_id)
            if row is None:
                raise InvoiceNotFoundError(invoice_id)
            updated = _to_invoice(row).model_copy(update={**patch, "updated_at": _utcnow()})
            for column, value in _invoice_columns(updated).items():
                setattr(row, column, value)
            session.commit()
            return updated

    def transition_invoice(
        self,
        invoice_id: str,
        expected_stage: PaymentStage,
        apply: Callable[[Invoice], Invoice],
    ) -> Invoice:
        with self.Session() as session:
            row = session.get(InvoiceRow, invoice_id)
            if row is None:
                raise InvoiceNotFoundError(invoice_id)
            invoice = _to_invoice(row)
            if invoice.payment_stage != expected_stage:
                raise StageTransitionError(
                    invoice_id,
                    current_stage=invoice.payment_stage.value,
                    expected_stage=expected_stage.value,
                )

            updated = apply(invoice)
            result = session.execute(
                update(InvoiceRow)
                .where(InvoiceRow.id == invoice_id, InvoiceRow.payment_stage == expected_stage.value)
                .values(**_invoice_columns(updated))
            )
            if result.rowcount == 0:
                session.rollback()
                current = session.scalar(
                    select(InvoiceRow.payment_stage).where(InvoiceRow.id == invoice_id)
                )
                logger.warning(
                    f"Lost stage transition race on invoice {invoice_id}: now in '{current}'"
                )
                raise StageTransitionError(
                    invoice_id,
                    current_stage=current or "unknown",
                    expected_stage=expected_stage.value,
                    reason="invoice was updated concurrently",
                )
            session.commit()
            return updated

    def find_invoice_by_token(self, token: str) -> Invoice | None:
        with self.Session() as session:
            row = session.scalar(
                select(InvoiceRow).where(
                    (InvoiceRow.customer_token == token) | (InvoiceRow.final_payment_token == token)
                )
            )
            return _to_invoice(row) if row else None

    # --- customers ----------------------------------------------------------

    def get_customer(self, email: str) -> CustomerRecord | None:
        with self.Session() as session:
            row = session.scalar(
                select(CustomerRow).where(func.lower(CustomerRow.email) == email.strip().lower())
            )
            return _to_customer(row) if row else None

    def find_fuzzy_name_match(self, name: str) -> CustomerRecord | None:
        if not name or len(name.strip()) < self.min_name_length:
            return None
        target = normalize_name(name)
        best: CustomerRow | None = None
        best_score = self.name_match_threshold
        with self.Session() as session:
            for row in session.scalars(select(CustomerRow)):
                score = similarity(target, normalize_name(row.name))
                if score > best_score:
                    best, best_score = row, score
            return _to_customer(best) if best else None

    def get_all_customers(self, limit: int, offset: int) -> list[CustomerRecord]:
        with self.Session() as session:
            rows = session.scalars(
                select(CustomerRow).order_by(CustomerRow.created_at).limit(limit).offset(offset)
            )
            return [_to_customer(row) for row in rows]

    def save_customer(self, data: CustomerDraft) -> CustomerRecord:
        row = CustomerRow(
            id=uuid.uuid4().hex,
            name=data.name,
            email=data.email,
            phone=data.phone,
            address=data.address,
            source=data.source.value,
            confidence_score=data.confidence_score,
        )
        with self.Session() as session:
            session.add(row)
            session.commit()
            return _to_customer(row)

    # --- products -----------------------------------------------------------

    def get_all_products(
        self,
        limit: int,
        offset: int,
        category: str | None = None,
        active_only: bool = True,
    ) -> list[CatalogProduct]:
        query = select(ProductRow)
        if active_only:
            query = query.where(ProductRow.active.is_(True))
        if category is not None:
            query = query.where(ProductRow.category == category)
        query = query.order_by(ProductRow.created_at).limit(limit).offset(offset)
        with self.Session() as session:
            return [_to_product(row) for row in session.scalars(query)]

    def create_product(self, data: ProductDraft) -> CatalogProduct:
        row = ProductRow(
            id=uuid.uuid4().hex,
            name=data.name,
            sku=data.sku,
            category=data.category,
            unit_price=data.unit_price,
            description=data.description,
            tags=[],
            active=True,
            source=data.source.value,
        )
        with self.Session() as session:
            session.add(row)
            session.commit()
            return _to_product(row)

    def add_product(self, product: CatalogProduct) -> CatalogProduct:
        """Insert an existing catalog product (used for seeding)."""
        with self.Session() as session:
            session.add(
                ProductRow(
                    id=product.id,
                    name=product.name,
                    sku=product.sku,
                    category=product.category,
                    unit_price=product.unit_price,
                    description=product.description,
                    tags=list(product.tags),
                    active=product.active,
                )
            )
            session.commit()
        return product
