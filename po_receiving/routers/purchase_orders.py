from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from po_receiving.db import get_db
from po_receiving.schemas import (
    CancelBody,
    ClearDueBody,
    OrderSnapshot,
    PaymentBody,
    PurchaseOrderDetail,
    ReceiptResult,
    ReceiveItemsBody,
    ReceiveItemsRequest,
    StockSummaryResponse,
)
from po_receiving.services.purchase_order_query_service import get_purchase_order_detail
from po_receiving.services.receipt_processor_service import (
    apply_receipt,
    cancel_purchase_order,
    clear_order_due,
    record_order_payment,
)
from po_receiving.services.stock_batch_ledger_service import get_stock_summary

router = APIRouter(tags=['purchase-orders'])


@router.post('/purchase-orders/{order_id}/receive', response_model=ReceiptResult)
def receive_items(order_id: int, body: ReceiveItemsBody, db: Session = Depends(get_db)) -> ReceiptResult:
    request = ReceiveItemsRequest(order_id=order_id, **body.model_dump())
    return apply_receipt(db, request)


@router.post('/purchase-orders/{order_id}/payments', response_model=ReceiptResult)
def make_payment(order_id: int, body: PaymentBody, db: Session = Depends(get_db)) -> ReceiptResult:
    return record_order_payment(
        db,
        order_id=order_id,
        amount=body.amount,
        method=body.method,
        notes=body.notes,
        client_request_token=body.client_request_token,
        actor=body.received_by,
    )


@router.post('/purchase-orders/{order_id}/clear-due', response_model=ReceiptResult)
def clear_due(order_id: int, body: ClearDueBody, db: Session = Depends(get_db)) -> ReceiptResult:
    return clear_order_due(
        db,
        order_id=order_id,
        method=body.method,
        notes=body.notes,
        client_request_token=body.client_request_token,
        actor=body.received_by,
    )


@router.post('/purchase-orders/{order_id}/cancel', response_model=OrderSnapshot)
def cancel_order(order_id: int, body: CancelBody, db: Session = Depends(get_db)) -> OrderSnapshot:
    return cancel_purchase_order(db, order_id=order_id, reason=body.reason, actor=body.cancelled_by)


@router.get('/purchase-orders/{order_id}', response_model=PurchaseOrderDetail)
def purchase_order_detail(order_id: int, db: Session = Depends(get_db)) -> PurchaseOrderDetail:
    return get_purchase_order_detail(db, order_id=order_id)


@router.get('/stock/{product_id}', response_model=StockSummaryResponse)
def stock_summary(
    product_id: int,
    store_id: int = Query(...),
    db: Session = Depends(get_db),
) -> StockSummaryResponse:
    try:
        summary = get_stock_summary(db, product_id=product_id, store_id=store_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return StockSummaryResponse(
        product_id=summary.product_id,
        store_id=summary.store_id,
        batch_count=summary.batch_count,
        batch_quantity_total=summary.batch_quantity_total,
        weighted_average_cost=summary.weighted_average_cost,
        low_stock_threshold=summary.low_stock_threshold,
        stock_level=summary.stock_level.value,
    )
