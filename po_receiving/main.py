from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from po_receiving.config import settings
from po_receiving.routers import purchase_orders
from po_receiving.schemas import ErrorResponse, ErrorViolation
from po_receiving.services.receiving_errors import (
    ConcurrentModificationError,
    OrderNotFoundError,
    PersistenceError,
    ReceivingError,
    TerminalStateError,
    ValidationError,
)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s %(message)s',
    )


def error_status_code(exc: ReceivingError) -> int:
    if isinstance(exc, TerminalStateError):
        return 409
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, OrderNotFoundError):
        return 404
    if isinstance(exc, ConcurrentModificationError):
        return 409
    if isinstance(exc, PersistenceError):
        return 503 if exc.retryable else 500
    return 500


def _line_item_id_for(loc, body) -> int | None:
    # loc looks like ('body', 'items', 0, 'purchase_price')
    parts = list(loc)
    if 'items' not in parts or not isinstance(body, dict):
        return None
    position = parts.index('items') + 1
    if position >= len(parts) or not isinstance(parts[position], int):
        return None
    items = body.get('items')
    if not isinstance(items, list) or parts[position] >= len(items) or not isinstance(items[parts[position]], dict):
        return None
    line_item_id = items[parts[position]].get('line_item_id')
    return line_item_id if isinstance(line_item_id, int) and not isinstance(line_item_id, bool) else None


def _describe(error: dict) -> str:
    field = '.'.join(str(part) for part in error.get('loc', ()) if part != 'body')
    message = error.get('msg', 'invalid value')
    return f'{field}: {message}' if field else message


configure_logging()

app = FastAPI(title='Purchase Order Receiving')
app.include_router(purchase_orders.router)


@app.exception_handler(ReceivingError)
async def receiving_error_handler(request: Request, exc: ReceivingError) -> JSONResponse:
    body = ErrorResponse(
        kind=exc.kind,
        message=exc.message,
        violations=[
            ErrorViolation(line_item_id=v.line_item_id, reason=v.reason)
            for v in getattr(exc, 'violations', [])
        ],
    )
    headers = {}
    if isinstance(exc, ConcurrentModificationError) or (isinstance(exc, PersistenceError) and exc.retryable):
        headers['Retry-After'] = '1'
    return JSONResponse(status_code=error_status_code(exc), content=body.model_dump(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    violations = [
        ErrorViolation(line_item_id=_line_item_id_for(error.get('loc', ()), exc.body), reason=_describe(error))
        for error in exc.errors()
    ]
    body = ErrorResponse(kind=ValidationError.kind, message='Request rejected', violations=violations)
    return JSONResponse(status_code=422, content=body.model_dump())


@app.get('/healthz')
def healthz() -> dict:
    return {'status': 'ok'}
