from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from po_receiving.config import settings
from po_receiving.models import Product, PurchaseOrderLine
from po_receiving.services.receiving_errors import DuplicateSkuError, MissingPriceError


logger = logging.getLogger('receiving')

ZERO = Decimal('0')


@dataclass(frozen=True)
class ExistingProduct:
    product_id: int


@dataclass(frozen=True)
class PendingProduct:
    line_item_id: int
    name: str
    description: str | None
    unit: str
    purchase_price: Decimal
    selling_price: Decimal | None
    tax_rate: Decimal
    low_stock_threshold: Decimal
    variant_descriptor: dict | None


LineItemTarget = ExistingProduct | PendingProduct


def line_target(line: PurchaseOrderLine) -> LineItemTarget:
    if line.product_id is not None:
        return ExistingProduct(product_id=line.product_id)
    return PendingProduct(
        line_item_id=line.id,
        name=line.product_name,
        description=line.product_description,
        unit=(line.unit or settings.default_unit),
        purchase_price=Decimal(line.purchase_price or ZERO),
        selling_price=Decimal(line.selling_price) if line.selling_price is not None else None,
        tax_rate=Decimal(line.tax_rate or ZERO),
        low_stock_threshold=(
            Decimal(line.low_stock_threshold)
            if line.low_stock_threshold is not None
            else settings.default_low_stock_threshold
        ),
        variant_descriptor=line.variant_descriptor,
    )


def generated_sku(*, purchase_order_id: int, line_item_id: int) -> str:
    # Unique per (order, line); a line is materialised at most once.
    return f'{settings.sku_prefix}{purchase_order_id}-L{line_item_id}'


class ProductResolver:
    """Resolves line items to products within a single receipt transaction."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self._resolved: dict[int, int] = {}
        self.created: list[Product] = []

    def resolve(self, line: PurchaseOrderLine) -> int:
        if line.id in self._resolved:
            return self._resolved[line.id]

        target = line_target(line)
        if isinstance(target, ExistingProduct):
            self._resolved[line.id] = target.product_id
            return target.product_id

        product = self._materialize(line, target)
        line.product_id = product.id
        self._resolved[line.id] = product.id
        self.created.append(product)
        return product.id

    def _materialize(self, line: PurchaseOrderLine, pending: PendingProduct) -> Product:
        if pending.purchase_price <= ZERO:
            raise MissingPriceError(f'New product "{pending.name}" needs a positive purchase price')
        if pending.selling_price is None or pending.selling_price <= ZERO:
            raise MissingPriceError(f'New product "{pending.name}" needs a positive selling price')

        sku = generated_sku(purchase_order_id=line.purchase_order_id, line_item_id=line.id)
        taken = self.db.execute(select(Product.id).where(Product.sku == sku)).scalar_one_or_none()
        if taken is not None:
            raise DuplicateSkuError(f'SKU {sku} is already assigned to product {taken}')

        product = Product(
            name=pending.name,
            sku=sku,
            description=pending.description,
            unit=pending.unit,
            purchase_price=pending.purchase_price,
            selling_price=pending.selling_price,
            tax_rate=pending.tax_rate,
            low_stock_threshold=pending.low_stock_threshold,
            variant_attributes=pending.variant_descriptor,
            created_from_line_id=line.id,
        )
        self.db.add(product)
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise DuplicateSkuError(f'SKU {sku} collided with a concurrently created product') from exc

        logger.info(
            'Product materialised from purchase order line',
            extra={
                'product_id': product.id,
                'sku': sku,
                'purchase_order_id': line.purchase_order_id,
                'purchase_order_line_id': line.id,
            },
        )
        return product
