from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# SQLite only autoincrements INTEGER primary keys.
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')


class Base(DeclarativeBase):
    pass


class PurchaseOrderStatus(str, Enum):
    DRAFT = 'draft'
    ORDERED = 'ordered'
    PARTIALLY_RECEIVED = 'partially_received'
    RECEIVED = 'received'
    CANCELLED = 'cancelled'


class PaymentStatus(str, Enum):
    PENDING = 'pending'
    PARTIAL = 'partial'
    PAID = 'paid'


class LineReceiptStatus(str, Enum):
    ORDERED = 'ordered'
    PARTIALLY_RECEIVED = 'partially_received'
    RECEIVED = 'received'


class ReceiptEventKind(str, Enum):
    RECEIPT = 'receipt'
    PAYMENT = 'payment'
    CLEAR_DUE = 'clear_due'


class Store(Base):
    __tablename__ = 'stores'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Supplier(Base):
    __tablename__ = 'suppliers'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Product(Base):
    __tablename__ = 'products'
    __table_args__ = (
        UniqueConstraint('sku', name='products_sku_key'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    sku: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    unit: Mapped[str] = mapped_column(Text, nullable=False, default='piece', server_default='piece')
    purchase_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    selling_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False, default=Decimal('0'), server_default='0')
    low_stock_threshold: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'), server_default='0')
    variant_attributes: Mapped[dict | None] = mapped_column(JSON)
    created_from_line_id: Mapped[int | None] = mapped_column(BigInteger)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PurchaseOrder(Base):
    __tablename__ = 'purchase_orders'
    __table_args__ = (
        UniqueConstraint('invoice_number', name='purchase_orders_invoice_number_key'),
        CheckConstraint('grand_total >= 0', name='purchase_orders_grand_total_nonnegative'),
        CheckConstraint('amount_paid >= 0', name='purchase_orders_amount_paid_nonnegative'),
        CheckConstraint('amount_due >= 0', name='purchase_orders_amount_due_nonnegative'),
        CheckConstraint('amount_paid <= grand_total', name='purchase_orders_not_overpaid'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(64), nullable=False)
    supplier_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('suppliers.id'), nullable=False)
    store_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('stores.id'), nullable=False)
    status: Mapped[PurchaseOrderStatus] = mapped_column(
        SQLEnum(PurchaseOrderStatus, name='purchase_order_status'),
        nullable=False,
        default=PurchaseOrderStatus.ORDERED,
        server_default='ORDERED',
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name='payment_status'),
        nullable=False,
        default=PaymentStatus.PENDING,
        server_default='PENDING',
    )
    grand_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    amount_due: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    ordered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancel_reason: Mapped[str | None] = mapped_column(Text)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default='1')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {'version_id_col': version_id}


class PurchaseOrderLine(Base):
    __tablename__ = 'purchase_order_lines'
    __table_args__ = (
        CheckConstraint('quantity_ordered >= 0', name='purchase_order_lines_ordered_nonnegative'),
        CheckConstraint('quantity_received >= 0', name='purchase_order_lines_received_nonnegative'),
        CheckConstraint('quantity_received <= quantity_ordered', name='purchase_order_lines_not_over_received'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False)
    # NULL until the first receipt materialises the product.
    product_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('products.id'))
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    product_description: Mapped[str | None] = mapped_column(Text)
    unit: Mapped[str | None] = mapped_column(Text)
    quantity_ordered: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    quantity_received: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False, default=Decimal('0'), server_default='0')
    purchase_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    selling_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    tax_rate: Mapped[Decimal | None] = mapped_column(Numeric(7, 4))
    low_stock_threshold: Mapped[Decimal | None] = mapped_column(Numeric(14, 3))
    variant_descriptor: Mapped[dict | None] = mapped_column(JSON)
    status: Mapped[LineReceiptStatus] = mapped_column(
        SQLEnum(LineReceiptStatus, name='purchase_order_line_status'),
        nullable=False,
        default=LineReceiptStatus.ORDERED,
        server_default='ORDERED',
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ReceiptEvent(Base):
    __tablename__ = 'receipt_events'
    __table_args__ = (
        UniqueConstraint('purchase_order_id', 'client_request_token', name='receipt_events_order_token_uniq'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('purchase_orders.id'), nullable=False)
    client_request_token: Mapped[str] = mapped_column(String(128), nullable=False)
    request_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[ReceiptEventKind] = mapped_column(
        SQLEnum(ReceiptEventKind, name='receipt_event_kind'),
        nullable=False,
        default=ReceiptEventKind.RECEIPT,
        server_default='RECEIPT',
    )
    actor: Mapped[str | None] = mapped_column(Text)
    result_payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict, server_default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class StockBatch(Base):
    __tablename__ = 'stock_batches'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='stock_batches_quantity_positive'),
        CheckConstraint('unit_cost >= 0', name='stock_batches_unit_cost_nonnegative'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('products.id'), nullable=False)
    store_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('stores.id'), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    purchase_order_line_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('purchase_order_lines.id'))
    receipt_event_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('receipt_events.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PaymentRecord(Base):
    __tablename__ = 'payment_records'
    __table_args__ = (
        CheckConstraint('amount > 0', name='payment_records_amount_positive'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('purchase_orders.id'), nullable=False)
    receipt_event_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('receipt_events.id'))
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    method: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_logs'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    actor: Mapped[str | None] = mapped_column(Text)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    purchase_order_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('purchase_orders.id', ondelete='SET NULL'))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict, server_default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
