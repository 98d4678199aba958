from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from po_receiving.models import Product, StockBatch
from po_receiving.services.receiving_errors import InvalidQuantityError


logger = logging.getLogger('stock')

ZERO = Decimal('0')
COST_PLACES = Decimal('0.0001')


class StockLevel(str, Enum):
    IN_STOCK = 'in_stock'
    LOW_STOCK = 'low_stock'
    OUT_OF_STOCK = 'out_of_stock'


@dataclass(frozen=True)
class StockSummary:
    product_id: int
    store_id: int
    batch_count: int
    batch_quantity_total: Decimal
    weighted_average_cost: Decimal | None
    low_stock_threshold: Decimal
    stock_level: StockLevel


def append_stock_batch(
    db: Session,
    *,
    product_id: int,
    store_id: int,
    quantity: Decimal,
    unit_cost: Decimal,
    purchase_order_line_id: int | None = None,
    receipt_event_id: int | None = None,
) -> StockBatch:
    """Write one immutable batch. Stock for (product, store) grows by exactly ``quantity``.

    This ledger only adds; consumption and adjustments are recorded elsewhere.
    """
    qty = Decimal(quantity)
    if qty <= ZERO:
        raise InvalidQuantityError(f'Stock batch quantity must be positive, got {qty}')
    cost = Decimal(unit_cost)
    if cost < ZERO:
        raise InvalidQuantityError(f'Stock batch unit cost cannot be negative, got {cost}')

    batch = StockBatch(
        product_id=product_id,
        store_id=store_id,
        quantity=qty,
        unit_cost=cost,
        purchase_order_line_id=purchase_order_line_id,
        receipt_event_id=receipt_event_id,
    )
    db.add(batch)
    db.flush()
    logger.info(
        'Stock batch appended',
        extra={
            'stock_batch_id': batch.id,
            'product_id': product_id,
            'store_id': store_id,
            'quantity': str(qty),
            'unit_cost': str(cost),
            'purchase_order_line_id': purchase_order_line_id,
        },
    )
    return batch


def list_batches(db: Session, *, product_id: int, store_id: int) -> list[StockBatch]:
    query = select(StockBatch).where(StockBatch.product_id == product_id, StockBatch.store_id == store_id)
    return db.execute(query.order_by(StockBatch.created_at.asc(), StockBatch.id.asc())).scalars().all()


def weighted_average_cost(batches: list[StockBatch]) -> Decimal | None:
    quantity = sum((Decimal(b.quantity) for b in batches), ZERO)
    if quantity <= ZERO:
        return None
    value = sum((Decimal(b.quantity) * Decimal(b.unit_cost) for b in batches), ZERO)
    return (value / quantity).quantize(COST_PLACES, rounding=ROUND_HALF_UP)


def classify_stock_level(quantity: Decimal, low_stock_threshold: Decimal) -> StockLevel:
    if quantity <= ZERO:
        return StockLevel.OUT_OF_STOCK
    if quantity <= low_stock_threshold:
        return StockLevel.LOW_STOCK
    return StockLevel.IN_STOCK


def get_stock_summary(
    db: Session,
    *,
    product_id: int,
    store_id: int,
) -> StockSummary:
    """Read-side view of the batches for (product, store). Consumption is recorded elsewhere."""
    product = db.get(Product, product_id)
    if product is None:
        raise ValueError('Product not found')

    batches = list_batches(db, product_id=product_id, store_id=store_id)
    total = sum((Decimal(b.quantity) for b in batches), ZERO)
    threshold = Decimal(product.low_stock_threshold or ZERO)
    return StockSummary(
        product_id=product_id,
        store_id=store_id,
        batch_count=len(batches),
        batch_quantity_total=total,
        weighted_average_cost=weighted_average_cost(batches),
        low_stock_threshold=threshold,
        stock_level=classify_stock_level(total, threshold),
    )
