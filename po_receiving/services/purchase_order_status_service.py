from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from po_receiving.models import LineReceiptStatus, PaymentStatus, PurchaseOrderStatus


ZERO = Decimal('0')

RECEIVABLE_STATUSES = frozenset({PurchaseOrderStatus.ORDERED, PurchaseOrderStatus.PARTIALLY_RECEIVED})


@dataclass(frozen=True)
class LineProgressInput:
    line_item_id: int
    quantity_ordered: Decimal
    quantity_received: Decimal


@dataclass(frozen=True)
class LineProgress:
    line_item_id: int
    status: LineReceiptStatus
    quantity_ordered: Decimal
    quantity_received: Decimal
    quantity_pending: Decimal


@dataclass(frozen=True)
class OrderProgress:
    order_status: PurchaseOrderStatus
    lines: list[LineProgress]

    def for_line(self, line_item_id: int) -> LineProgress:
        for line in self.lines:
            if line.line_item_id == line_item_id:
                return line
        raise KeyError(line_item_id)


def line_status(quantity_ordered: Decimal, quantity_received: Decimal) -> LineReceiptStatus:
    if quantity_received >= quantity_ordered:
        return LineReceiptStatus.RECEIVED
    if quantity_received <= ZERO:
        return LineReceiptStatus.ORDERED
    return LineReceiptStatus.PARTIALLY_RECEIVED


def recompute(lines: Iterable[LineProgressInput]) -> OrderProgress:
    """Derive order and per-line receiving status from cumulative received quantities.

    Never yields CANCELLED; cancellation is an explicit external transition.
    """
    progress: list[LineProgress] = []
    for line in lines:
        ordered = Decimal(line.quantity_ordered)
        received = Decimal(line.quantity_received)
        progress.append(
            LineProgress(
                line_item_id=line.line_item_id,
                status=line_status(ordered, received),
                quantity_ordered=ordered,
                quantity_received=received,
                quantity_pending=max(ordered - received, ZERO),
            )
        )

    # A zero-quantity line counts as fully received; an order with no lines has nothing left to receive.
    if all(line.status == LineReceiptStatus.RECEIVED for line in progress):
        order_status = PurchaseOrderStatus.RECEIVED
    elif any(line.status != LineReceiptStatus.ORDERED for line in progress):
        order_status = PurchaseOrderStatus.PARTIALLY_RECEIVED
    else:
        order_status = PurchaseOrderStatus.ORDERED
    return OrderProgress(order_status=order_status, lines=progress)


def recompute_for_order_lines(lines) -> OrderProgress:
    return recompute(
        LineProgressInput(
            line_item_id=line.id,
            quantity_ordered=line.quantity_ordered,
            quantity_received=line.quantity_received,
        )
        for line in lines
    )


def derive_payment_status(amount_paid: Decimal, grand_total: Decimal) -> PaymentStatus:
    amount_due = max(grand_total - amount_paid, ZERO)
    if amount_due == ZERO:
        return PaymentStatus.PAID
    if ZERO < amount_paid < grand_total:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def is_receivable(status: PurchaseOrderStatus) -> bool:
    return status in RECEIVABLE_STATUSES
