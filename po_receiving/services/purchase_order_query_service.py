from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from po_receiving.models import PurchaseOrder, PurchaseOrderLine
from po_receiving.schemas import LineDetail, PaymentDetail, PurchaseOrderDetail
from po_receiving.services.payment_ledger_service import list_payments, money
from po_receiving.services.purchase_order_status_service import is_receivable, recompute_for_order_lines
from po_receiving.services.receipt_processor_service import order_snapshot
from po_receiving.services.receiving_errors import OrderNotFoundError


def get_purchase_order_detail(db: Session, *, order_id: int) -> PurchaseOrderDetail:
    order = db.get(PurchaseOrder, order_id)
    if order is None:
        raise OrderNotFoundError(f'Purchase order {order_id} not found')

    lines = db.execute(
        select(PurchaseOrderLine)
        .where(PurchaseOrderLine.purchase_order_id == order_id)
        .order_by(PurchaseOrderLine.id.asc())
    ).scalars().all()
    progress = recompute_for_order_lines(lines)

    details: list[LineDetail] = []
    for line in lines:
        line_progress = progress.for_line(line.id)
        details.append(
            LineDetail(
                line_item_id=line.id,
                product_id=line.product_id,
                product_name=line.product_name,
                is_new_product=line.product_id is None,
                status=line_progress.status.value,
                unit=line.unit,
                quantity_ordered=line_progress.quantity_ordered,
                quantity_received=line_progress.quantity_received,
                quantity_pending=line_progress.quantity_pending,
                purchase_price=Decimal(line.purchase_price),
                selling_price=Decimal(line.selling_price) if line.selling_price is not None else None,
            )
        )

    return PurchaseOrderDetail(
        order=order_snapshot(order),
        supplier_id=order.supplier_id,
        store_id=order.store_id,
        open_for_receiving=is_receivable(order.status),
        lines=details,
        payments=[
            PaymentDetail(payment_id=p.id, amount=money(p.amount), method=p.method, notes=p.notes)
            for p in list_payments(db, purchase_order_id=order_id)
        ],
    )
