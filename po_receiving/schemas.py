from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


# Numbers are validated by the receiving services, not here, so that every
# business rejection carries a per-line reason.


class ReceiveItemInput(BaseModel):
    line_item_id: int
    quantity_received_delta: Decimal
    purchase_price: Decimal | None = None
    selling_price: Decimal | None = None
    tax_rate: Decimal | None = None
    low_stock_threshold: Decimal | None = None
    variant_descriptor: dict | None = None


class PaymentInput(BaseModel):
    amount: Decimal
    method: str = 'cash'
    notes: str | None = None


class ReceiveItemsRequest(BaseModel):
    order_id: int
    client_request_token: str = Field(..., min_length=1, max_length=128)
    items: list[ReceiveItemInput] = Field(default_factory=list)
    payment: PaymentInput | None = None
    received_by: str | None = None


class ReceiveItemsBody(BaseModel):
    """HTTP body for /purchase-orders/{order_id}/receive; the order id comes from the path."""

    client_request_token: str = Field(..., min_length=1, max_length=128)
    items: list[ReceiveItemInput] = Field(default_factory=list)
    payment: PaymentInput | None = None
    received_by: str | None = None


class PaymentBody(BaseModel):
    client_request_token: str = Field(..., min_length=1, max_length=128)
    amount: Decimal
    method: str = 'cash'
    notes: str | None = None
    received_by: str | None = None


class ClearDueBody(BaseModel):
    client_request_token: str = Field(..., min_length=1, max_length=128)
    method: str = 'cash'
    notes: str | None = None
    received_by: str | None = None


class CancelBody(BaseModel):
    reason: str | None = None
    cancelled_by: str | None = None


class OrderSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_number: str
    status: str
    payment_status: str
    amount_paid: Decimal
    amount_due: Decimal
    grand_total: Decimal


class NewProductCreated(BaseModel):
    product_id: int
    name: str
    sku: str
    initial_stock: Decimal


class UpdatedLineItem(BaseModel):
    line_item_id: int
    quantity_received: Decimal
    quantity_ordered: Decimal


class ReceiptResult(BaseModel):
    order: OrderSnapshot
    new_products_created: list[NewProductCreated] = Field(default_factory=list)
    updated_line_items: list[UpdatedLineItem] = Field(default_factory=list)
    payment_applied: Decimal = Decimal('0')


class LineDetail(BaseModel):
    line_item_id: int
    product_id: int | None
    product_name: str
    is_new_product: bool
    status: str
    unit: str | None
    quantity_ordered: Decimal
    quantity_received: Decimal
    quantity_pending: Decimal
    purchase_price: Decimal
    selling_price: Decimal | None


class PaymentDetail(BaseModel):
    payment_id: int
    amount: Decimal
    method: str
    notes: str | None


class PurchaseOrderDetail(BaseModel):
    order: OrderSnapshot
    supplier_id: int
    store_id: int
    open_for_receiving: bool
    lines: list[LineDetail]
    payments: list[PaymentDetail] = Field(default_factory=list)


class StockSummaryResponse(BaseModel):
    product_id: int
    store_id: int
    batch_count: int
    batch_quantity_total: Decimal
    weighted_average_cost: Decimal | None
    low_stock_threshold: Decimal
    stock_level: str


class ErrorViolation(BaseModel):
    line_item_id: int | None
    reason: str


class ErrorResponse(BaseModel):
    kind: str
    message: str
    violations: list[ErrorViolation] = Field(default_factory=list)
