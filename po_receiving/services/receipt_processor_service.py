"""Purchase order receiving.

One call = one transaction against one purchase order:

1) lock the order row (SELECT ... FOR UPDATE, plus the optimistic version column)
2) replay the stored result if the client token was already consumed
3) validate every line and the payment before writing anything
4) materialise pending products, append stock batches, apply payment
5) recompute order/line status, store the result under the token, commit

The processor owns commit/rollback because conflicts are retried on a clean
transaction. Call it with a session that has no unrelated pending changes.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from po_receiving.config import settings
from po_receiving.models import (
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderStatus,
    ReceiptEvent,
    ReceiptEventKind,
)
from po_receiving.schemas import (
    NewProductCreated,
    OrderSnapshot,
    PaymentInput,
    ReceiptResult,
    ReceiveItemInput,
    ReceiveItemsRequest,
    UpdatedLineItem,
)
from po_receiving.services.audit_service import log_audit
from po_receiving.services.payment_ledger_service import apply_payment, check_payment, money
from po_receiving.services.product_resolver_service import PendingProduct, ProductResolver, line_target
from po_receiving.services.purchase_order_status_service import recompute_for_order_lines
from po_receiving.services.receiving_errors import (
    ConcurrentModificationError,
    IdempotencyConflictError,
    InvalidQuantityError,
    MissingPriceError,
    OrderNotFoundError,
    OrderNotOpenError,
    OverReceiptError,
    PersistenceError,
    ReceivingError,
    TerminalStateError,
    ValidationError,
    ViolationCollector,
)
from po_receiving.services.stock_batch_ledger_service import append_stock_batch


logger = logging.getLogger('receiving')

ZERO = Decimal('0')
TWOPLACES = Decimal('0.01')

T = TypeVar('T')


class _ConflictDetected(Exception):
    pass


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def order_snapshot(order: PurchaseOrder) -> OrderSnapshot:
    return OrderSnapshot(
        id=order.id,
        invoice_number=order.invoice_number,
        status=order.status.value,
        payment_status=order.payment_status.value,
        amount_paid=money(order.amount_paid),
        amount_due=money(order.amount_due),
        grand_total=money(order.grand_total),
    )


def _canonical(value):
    # 10, 10.0 and 1E+1 hash the same
    if isinstance(value, Decimal):
        return format(value.normalize(), 'f')
    if isinstance(value, dict):
        return {key: _canonical(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_canonical(item) for item in value]
    return value


def request_fingerprint(request: ReceiveItemsRequest, kind: ReceiptEventKind) -> str:
    payload = request.model_dump(exclude={'client_request_token', 'received_by'})
    if payload.get('payment') is not None:
        payload['payment']['method'] = (payload['payment']['method'] or '').strip().lower()
    payload['kind'] = kind.value
    canonical = json.dumps(_canonical(payload), sort_keys=True, separators=(',', ':'), default=str)
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


def _run_in_transaction(db: Session, work: Callable[[], T], *, purchase_order_id: int) -> T:
    conflicts = 0
    transient_failures = 0
    while True:
        try:
            result = work()
            db.commit()
            return result
        except ReceivingError:
            db.rollback()
            raise
        except (StaleDataError, _ConflictDetected) as exc:
            db.rollback()
            conflicts += 1
            if conflicts > settings.receipt_conflict_retries:
                logger.warning(
                    'Giving up after repeated concurrent modifications',
                    extra={'purchase_order_id': purchase_order_id, 'attempts': conflicts},
                )
                raise ConcurrentModificationError(
                    f'Purchase order {purchase_order_id} was modified concurrently; resubmit the request'
                ) from exc
            logger.info(
                'Concurrent modification detected, retrying',
                extra={'purchase_order_id': purchase_order_id, 'attempt': conflicts},
            )
        except OperationalError as exc:
            db.rollback()
            transient_failures += 1
            if transient_failures > settings.receipt_transient_retries:
                logger.exception('Persistence failed after transient retry', extra={'purchase_order_id': purchase_order_id})
                raise PersistenceError('Database temporarily unavailable', retryable=True) from exc
            logger.info(
                'Transient database error, retrying',
                extra={'purchase_order_id': purchase_order_id, 'attempt': transient_failures},
            )
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception('Persistence failed', extra={'purchase_order_id': purchase_order_id})
            raise PersistenceError('Failed to persist purchase order changes') from exc


def _lock_order(db: Session, order_id: int) -> PurchaseOrder:
    order = db.execute(
        select(PurchaseOrder)
        .where(PurchaseOrder.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if order is None:
        raise OrderNotFoundError(f'Purchase order {order_id} not found')
    return order


def _order_lines(db: Session, order_id: int) -> list[PurchaseOrderLine]:
    return db.execute(
        select(PurchaseOrderLine)
        .where(PurchaseOrderLine.purchase_order_id == order_id)
        .order_by(PurchaseOrderLine.id.asc())
        .execution_options(populate_existing=True)
    ).scalars().all()


def _consumed_token(db: Session, *, order_id: int, token: str) -> ReceiptEvent | None:
    return db.execute(
        select(ReceiptEvent).where(
            ReceiptEvent.purchase_order_id == order_id,
            ReceiptEvent.client_request_token == token,
        )
    ).scalar_one_or_none()


def _replay(event: ReceiptEvent, fingerprint: str) -> ReceiptResult:
    if event.request_fingerprint != fingerprint:
        raise IdempotencyConflictError(
            f'Request token {event.client_request_token!r} was already used for a different request'
        )
    logger.info(
        'Replaying stored receipt result',
        extra={'purchase_order_id': event.purchase_order_id, 'receipt_event_id': event.id},
    )
    return ReceiptResult.model_validate(event.result_payload)


def _effective_selling_price(item: ReceiveItemInput, line: PurchaseOrderLine) -> Decimal | None:
    if item.selling_price is not None:
        return item.selling_price
    if line.selling_price is not None:
        return Decimal(line.selling_price)
    if line.product_id is None:
        return None
    return (Decimal(item.purchase_price) * (1 + settings.default_selling_markup)).quantize(
        TWOPLACES, rounding=ROUND_HALF_UP
    )


def _validate_items(
    order: PurchaseOrder,
    lines_by_id: dict[int, PurchaseOrderLine],
    items: list[ReceiveItemInput],
) -> None:
    problems = ViolationCollector()
    seen: set[int] = set()
    for item in items:
        line_id = item.line_item_id
        if line_id in seen:
            problems.add(line_id, 'Line item appears more than once in the request')
            continue
        seen.add(line_id)

        line = lines_by_id.get(line_id)
        if line is None:
            problems.add(line_id, f'Line item does not belong to purchase order {order.id}')
            continue

        delta = Decimal(item.quantity_received_delta)
        if delta < ZERO:
            problems.add(line_id, 'Received quantity cannot be negative', InvalidQuantityError)
            continue
        if item.purchase_price is None or Decimal(item.purchase_price) <= ZERO:
            problems.add(line_id, 'Purchase price must be greater than zero', MissingPriceError)
        if isinstance(line_target(line), PendingProduct):
            if item.selling_price is None or Decimal(item.selling_price) <= ZERO:
                problems.add(line_id, 'New products need a selling price greater than zero', MissingPriceError)
        elif item.selling_price is not None and Decimal(item.selling_price) <= ZERO:
            problems.add(line_id, 'Selling price must be greater than zero', MissingPriceError)
        if item.tax_rate is not None and Decimal(item.tax_rate) < ZERO:
            problems.add(line_id, 'Tax rate cannot be negative')
        if item.low_stock_threshold is not None and Decimal(item.low_stock_threshold) < ZERO:
            problems.add(line_id, 'Low stock threshold cannot be negative')

        new_total = Decimal(line.quantity_received) + delta
        if new_total > Decimal(line.quantity_ordered):
            problems.add(
                line_id,
                f'Receiving {delta} would bring the total to {new_total}, above the {line.quantity_ordered} ordered',
                OverReceiptError,
            )

    problems.raise_if_any(f'Receipt for purchase order {order.id} rejected')


def _received_value_after(lines: list[PurchaseOrderLine], items: list[ReceiveItemInput]) -> Decimal:
    by_line = {item.line_item_id: item for item in items}
    value = ZERO
    for line in lines:
        item = by_line.get(line.id)
        received = Decimal(line.quantity_received)
        price = Decimal(line.purchase_price)
        if item is not None and item.quantity_received_delta > ZERO:
            received += Decimal(item.quantity_received_delta)
            price = Decimal(item.purchase_price)
        value += received * price
    return money(value)


def _apply_line_snapshot(line: PurchaseOrderLine, item: ReceiveItemInput) -> None:
    line.purchase_price = Decimal(item.purchase_price)
    line.selling_price = _effective_selling_price(item, line)
    if item.tax_rate is not None:
        line.tax_rate = item.tax_rate
    if item.low_stock_threshold is not None:
        line.low_stock_threshold = item.low_stock_threshold
    if item.variant_descriptor is not None:
        line.variant_descriptor = item.variant_descriptor


def _apply_once(
    db: Session,
    request: ReceiveItemsRequest,
    *,
    kind: ReceiptEventKind,
    settle_due: bool = False,
) -> ReceiptResult:
    fingerprint = request_fingerprint(request, kind)
    order = _lock_order(db, request.order_id)

    consumed = _consumed_token(db, order_id=order.id, token=request.client_request_token)
    if consumed is not None:
        return _replay(consumed, fingerprint)

    if order.status == PurchaseOrderStatus.CANCELLED:
        raise TerminalStateError(f'Purchase order {order.id} is cancelled')
    if order.status == PurchaseOrderStatus.DRAFT:
        raise OrderNotOpenError(f'Purchase order {order.id} has not been ordered yet')

    lines = _order_lines(db, order.id)
    lines_by_id = {line.id: line for line in lines}
    _validate_items(order, lines_by_id, request.items)

    payment = request.payment
    payment_amount = money(payment.amount) if payment is not None else ZERO
    if settle_due:
        payment_amount = money(order.amount_due)
        if payment_amount <= ZERO:
            raise ValidationError(f'Purchase order {order.id} has nothing due')
    payable_limit = _received_value_after(lines, request.items) if settings.payment_cap_to_received_value else None
    check_payment(
        amount_paid=order.amount_paid,
        grand_total=order.grand_total,
        amount=payment_amount,
        payable_limit=payable_limit,
    )
    if payment_amount > ZERO and not (payment.method or '').strip():
        raise ValidationError('Payment method is required')

    receiving = [item for item in request.items if item.quantity_received_delta > ZERO]
    if not receiving and payment_amount == ZERO:
        raise ValidationError('Nothing to receive and no payment given')

    event = ReceiptEvent(
        purchase_order_id=order.id,
        client_request_token=request.client_request_token,
        request_fingerprint=fingerprint,
        kind=kind,
        actor=request.received_by,
    )
    db.add(event)
    try:
        db.flush()
    except IntegrityError as exc:
        raise _ConflictDetected('Request token consumed concurrently') from exc

    resolver = ProductResolver(db)
    initial_stock: dict[int, Decimal] = {}
    updated: list[PurchaseOrderLine] = []
    for item in receiving:
        line = lines_by_id[item.line_item_id]
        delta = Decimal(item.quantity_received_delta)
        _apply_line_snapshot(line, item)
        was_pending = line.product_id is None
        product_id = resolver.resolve(line)
        if was_pending:
            initial_stock[product_id] = delta
        append_stock_batch(
            db,
            product_id=product_id,
            store_id=order.store_id,
            quantity=delta,
            unit_cost=Decimal(item.purchase_price),
            purchase_order_line_id=line.id,
            receipt_event_id=event.id,
        )
        line.quantity_received = Decimal(line.quantity_received) + delta
        line.updated_at = _now()
        updated.append(line)

    if payment_amount > ZERO:
        apply_payment(
            db,
            order=order,
            amount=payment_amount,
            method=payment.method,
            notes=payment.notes,
            receipt_event_id=event.id,
            payable_limit=payable_limit,
        )

    progress = recompute_for_order_lines(lines)
    for line in lines:
        line.status = progress.for_line(line.id).status
    order.status = progress.order_status
    if order.status == PurchaseOrderStatus.RECEIVED and order.received_at is None:
        order.received_at = _now()
    order.updated_at = _now()

    result = ReceiptResult(
        order=order_snapshot(order),
        new_products_created=[
            NewProductCreated(
                product_id=product.id,
                name=product.name,
                sku=product.sku,
                initial_stock=initial_stock.get(product.id, ZERO),
            )
            for product in resolver.created
        ],
        updated_line_items=[
            UpdatedLineItem(
                line_item_id=line.id,
                quantity_received=Decimal(line.quantity_received),
                quantity_ordered=Decimal(line.quantity_ordered),
            )
            for line in updated
        ],
        payment_applied=payment_amount,
    )
    event.result_payload = result.model_dump(mode='json')
    log_audit(
        db,
        actor=request.received_by,
        action=f'purchase_order.{kind.value}',
        purchase_order_id=order.id,
        metadata={
            'receipt_event_id': event.id,
            'lines_received': len(updated),
            'products_created': len(resolver.created),
            'payment_applied': str(payment_amount),
            'status': order.status.value,
        },
    )
    db.flush()
    return result


def _apply(db: Session, request: ReceiveItemsRequest, *, kind: ReceiptEventKind, settle_due: bool = False) -> ReceiptResult:
    try:
        result = _run_in_transaction(
            db,
            lambda: _apply_once(db, request, kind=kind, settle_due=settle_due),
            purchase_order_id=request.order_id,
        )
    except ValidationError as exc:
        logger.info(
            'Receipt rejected',
            extra={
                'purchase_order_id': request.order_id,
                'kind': exc.kind,
                'violations': [v.as_dict() for v in exc.violations],
            },
        )
        raise
    logger.info(
        'Receipt committed',
        extra={
            'purchase_order_id': request.order_id,
            'event_kind': kind.value,
            'status': result.order.status,
            'payment_status': result.order.payment_status,
        },
    )
    return result


def apply_receipt(db: Session, request: ReceiveItemsRequest) -> ReceiptResult:
    return _apply(db, request, kind=ReceiptEventKind.RECEIPT)


def record_order_payment(
    db: Session,
    *,
    order_id: int,
    amount: Decimal,
    method: str,
    client_request_token: str,
    notes: str | None = None,
    actor: str | None = None,
) -> ReceiptResult:
    request = ReceiveItemsRequest(
        order_id=order_id,
        client_request_token=client_request_token,
        items=[],
        payment=PaymentInput(amount=amount, method=method, notes=notes),
        received_by=actor,
    )
    if request.payment.amount <= ZERO:
        raise ValidationError('Payment amount must be greater than zero')
    return _apply(db, request, kind=ReceiptEventKind.PAYMENT)


def clear_order_due(
    db: Session,
    *,
    order_id: int,
    method: str,
    client_request_token: str,
    notes: str | None = None,
    actor: str | None = None,
) -> ReceiptResult:
    """Pay whatever is still due, as computed under the order lock."""
    request = ReceiveItemsRequest(
        order_id=order_id,
        client_request_token=client_request_token,
        items=[],
        payment=PaymentInput(amount=ZERO, method=method, notes=notes),
        received_by=actor,
    )
    return _apply(db, request, kind=ReceiptEventKind.CLEAR_DUE, settle_due=True)


def cancel_purchase_order(
    db: Session,
    *,
    order_id: int,
    reason: str | None = None,
    actor: str | None = None,
) -> OrderSnapshot:
    def _cancel() -> OrderSnapshot:
        order = _lock_order(db, order_id)
        if order.status == PurchaseOrderStatus.CANCELLED:
            return order_snapshot(order)
        if order.status == PurchaseOrderStatus.RECEIVED:
            raise TerminalStateError(f'Purchase order {order_id} is fully received and cannot be cancelled')

        order.status = PurchaseOrderStatus.CANCELLED
        order.cancelled_at = _now()
        order.cancel_reason = (reason or '').strip() or None
        order.updated_at = _now()
        log_audit(
            db,
            actor=actor,
            action='purchase_order.cancel',
            purchase_order_id=order.id,
            metadata={'reason': order.cancel_reason},
        )
        db.flush()
        return order_snapshot(order)

    snapshot = _run_in_transaction(db, _cancel, purchase_order_id=order_id)
    logger.info('Purchase order cancelled', extra={'purchase_order_id': order_id, 'actor': actor})
    return snapshot
