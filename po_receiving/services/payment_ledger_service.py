from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from po_receiving.models import PaymentRecord, PaymentStatus, PurchaseOrder
from po_receiving.services.purchase_order_status_service import derive_payment_status
from po_receiving.services.receiving_errors import OverpaymentError, ValidationError


logger = logging.getLogger('payments')

TWOPLACES = Decimal('0.01')
ZERO = Decimal('0')


def money(value) -> Decimal:
    return Decimal(str(value if value is not None else '0')).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PaymentCheck:
    amount: Decimal
    new_amount_paid: Decimal
    new_amount_due: Decimal
    new_payment_status: PaymentStatus


def check_payment(
    *,
    amount_paid: Decimal,
    grand_total: Decimal,
    amount,
    payable_limit: Decimal | None = None,
) -> PaymentCheck:
    """Validate a payment against the order totals without touching the database.

    ``payable_limit`` optionally caps cumulative payment below ``grand_total``
    (used when payment is gated by the value of goods received).
    """
    amt = money(amount)
    if amt < ZERO:
        raise ValidationError('Payment amount cannot be negative')

    total = money(grand_total)
    new_amount_paid = money(amount_paid) + amt
    if new_amount_paid > total:
        raise OverpaymentError(
            f'Payment of {amt} would bring amount paid to {new_amount_paid}, above grand total {total}'
        )
    if payable_limit is not None and amt > ZERO and new_amount_paid > money(payable_limit):
        raise OverpaymentError(
            f'Payment of {amt} would bring amount paid to {new_amount_paid}, '
            f'above the value of goods received ({money(payable_limit)})'
        )

    new_amount_due = max(total - new_amount_paid, ZERO)
    return PaymentCheck(
        amount=amt,
        new_amount_paid=new_amount_paid,
        new_amount_due=new_amount_due,
        new_payment_status=derive_payment_status(new_amount_paid, total),
    )


def apply_payment(
    db: Session,
    *,
    order: PurchaseOrder,
    amount,
    method: str,
    notes: str | None = None,
    receipt_event_id: int | None = None,
    payable_limit: Decimal | None = None,
) -> PaymentRecord | None:
    """Record a payment against a locked order and refresh its payment figures.

    A zero amount is a valid no-op: no PaymentRecord is written.
    """
    check = check_payment(
        amount_paid=order.amount_paid,
        grand_total=order.grand_total,
        amount=amount,
        payable_limit=payable_limit,
    )
    if check.amount == ZERO:
        return None

    clean_method = (method or '').strip().lower()
    if not clean_method:
        raise ValidationError('Payment method is required')

    record = PaymentRecord(
        purchase_order_id=order.id,
        receipt_event_id=receipt_event_id,
        amount=check.amount,
        method=clean_method,
        notes=(notes or '').strip() or None,
    )
    db.add(record)

    order.amount_paid = check.new_amount_paid
    order.amount_due = check.new_amount_due
    order.payment_status = check.new_payment_status
    db.flush()

    logger.info(
        'Payment applied',
        extra={
            'purchase_order_id': order.id,
            'payment_id': record.id,
            'amount': str(check.amount),
            'amount_paid': str(check.new_amount_paid),
            'amount_due': str(check.new_amount_due),
            'payment_status': check.new_payment_status.value,
        },
    )
    return record


def list_payments(db: Session, *, purchase_order_id: int) -> list[PaymentRecord]:
    return db.execute(
        select(PaymentRecord)
        .where(PaymentRecord.purchase_order_id == purchase_order_id)
        .order_by(PaymentRecord.created_at.asc(), PaymentRecord.id.asc())
    ).scalars().all()
