from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LineViolation:
    line_item_id: int | None
    reason: str

    def as_dict(self) -> dict:
        return {'line_item_id': self.line_item_id, 'reason': self.reason}


class ReceivingError(Exception):
    kind = 'receiving_error'

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ReceivingError, ValueError):
    """Client-caused rejection. Nothing was written."""

    kind = 'validation_error'

    def __init__(self, message: str, violations: list[LineViolation] | None = None) -> None:
        super().__init__(message)
        self.violations = list(violations or [])


class OverReceiptError(ValidationError):
    kind = 'over_receipt'


class InvalidQuantityError(ValidationError):
    kind = 'invalid_quantity'


class MissingPriceError(ValidationError):
    kind = 'missing_price'


class DuplicateSkuError(ValidationError):
    kind = 'duplicate_sku'


class OverpaymentError(ValidationError):
    kind = 'overpayment'


class OrderNotOpenError(ValidationError):
    kind = 'order_not_open'


class TerminalStateError(ValidationError):
    kind = 'terminal_state'


class IdempotencyConflictError(ValidationError):
    kind = 'idempotency_conflict'


class OrderNotFoundError(ReceivingError):
    kind = 'not_found'


class ConcurrentModificationError(ReceivingError):
    kind = 'concurrent_modification'


class PersistenceError(ReceivingError):
    kind = 'persistence_error'

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


@dataclass
class ViolationCollector:
    """Gathers per-line problems so a whole request is rejected in one pass."""

    violations: list[LineViolation] = field(default_factory=list)
    kinds: list[type[ValidationError]] = field(default_factory=list)

    def add(self, line_item_id: int | None, reason: str, kind: type[ValidationError] = ValidationError) -> None:
        self.violations.append(LineViolation(line_item_id=line_item_id, reason=reason))
        self.kinds.append(kind)

    def __bool__(self) -> bool:
        return bool(self.violations)

    def raise_if_any(self, message: str = 'Receipt rejected') -> None:
        if not self.violations:
            return
        distinct = set(self.kinds)
        # A single specific failure keeps its own type; mixed failures surface as the base kind.
        error_cls = distinct.pop() if len(distinct) == 1 else ValidationError
        raise error_cls(message, self.violations)
