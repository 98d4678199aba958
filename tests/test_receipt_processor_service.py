from __future__ import annotations

import os
import tempfile
import unittest
from decimal import Decimal
from unittest.mock import patch

from receiving_fixtures import count_rows, make_file_session_factory, make_session_factory, seed_order, seed_product
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from po_receiving.config import settings
from po_receiving.models import (
    LineReceiptStatus,
    PaymentRecord,
    Product,
    PurchaseOrderLine,
    PurchaseOrderStatus,
    ReceiptEvent,
    ReceiptEventKind,
    StockBatch,
)
from po_receiving.schemas import ReceiveItemsRequest
from po_receiving.services import receipt_processor_service
from po_receiving.services.audit_service import list_audit_entries
from po_receiving.services.purchase_order_query_service import get_purchase_order_detail
from po_receiving.services.receipt_processor_service import (
    apply_receipt,
    cancel_purchase_order,
    clear_order_due,
    record_order_payment,
    request_fingerprint,
)
from po_receiving.services.receiving_errors import (
    ConcurrentModificationError,
    IdempotencyConflictError,
    InvalidQuantityError,
    MissingPriceError,
    OrderNotFoundError,
    OrderNotOpenError,
    OverpaymentError,
    OverReceiptError,
    PersistenceError,
    TerminalStateError,
    ValidationError,
)


def _request(order_id: int, token: str, items: list[dict] | None = None, payment: dict | None = None) -> ReceiveItemsRequest:
    return ReceiveItemsRequest(
        order_id=order_id,
        client_request_token=token,
        items=items or [],
        payment=payment,
        received_by='clerk',
    )


class ReceiptProcessorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()

    def tearDown(self) -> None:
        self.db.close()

    def _new_product_order(self, **kwargs):
        return seed_order(
            self.db,
            lines=[{'quantity_ordered': '100', 'purchase_price': '10', 'product_name': 'Chickpea Flour'}],
            grand_total=Decimal('1000'),
            **kwargs,
        )


class ReceiveScenarioTests(ReceiptProcessorTestCase):
    def test_full_receipt_materialises_new_product(self) -> None:
        order, lines = self._new_product_order()

        result = apply_receipt(
            self.db,
            _request(order.id, 'tok-1', [{'line_item_id': lines[0].id, 'quantity_received_delta': '100', 'purchase_price': '10', 'selling_price': '15'}]),
        )

        self.assertEqual(result.order.status, 'received')
        self.assertEqual(result.order.payment_status, 'pending')
        self.assertEqual(len(result.new_products_created), 1)
        created = result.new_products_created[0]
        self.assertEqual(created.name, 'Chickpea Flour')
        self.assertEqual(created.initial_stock, Decimal('100'))
        self.assertEqual(result.updated_line_items[0].quantity_received, Decimal('100'))

        batches = self.db.execute(select(StockBatch)).scalars().all()
        self.assertEqual(len(batches), 1)
        self.assertEqual(batches[0].quantity, Decimal('100'))
        self.assertEqual(batches[0].product_id, created.product_id)
        self.assertEqual(batches[0].store_id, order.store_id)

        self.db.refresh(lines[0])
        self.assertEqual(lines[0].product_id, created.product_id)
        self.assertEqual(lines[0].status, LineReceiptStatus.RECEIVED)
        product = self.db.get(Product, created.product_id)
        self.assertEqual(product.selling_price, Decimal('15'))
        self.assertIsNotNone(order.received_at)

    def test_payments_after_receipt(self) -> None:
        order, lines = self._new_product_order()
        apply_receipt(
            self.db,
            _request(order.id, 'tok-1', [{'line_item_id': lines[0].id, 'quantity_received_delta': '100', 'purchase_price': '10', 'selling_price': '15'}]),
        )

        second = apply_receipt(self.db, _request(order.id, 'tok-2', payment={'amount': '400', 'method': 'cash'}))
        self.assertEqual(second.order.amount_paid, Decimal('400.00'))
        self.assertEqual(second.order.amount_due, Decimal('600.00'))
        self.assertEqual(second.order.payment_status, 'partial')
        self.assertEqual(second.payment_applied, Decimal('400.00'))

        third = apply_receipt(self.db, _request(order.id, 'tok-3', payment={'amount': '600', 'method': 'bank'}))
        self.assertEqual(third.order.amount_paid, Decimal('1000.00'))
        self.assertEqual(third.order.amount_due, Decimal('0.00'))
        self.assertEqual(third.order.payment_status, 'paid')
        self.assertEqual(third.order.status, 'received')
        self.assertEqual(count_rows(self.db, PaymentRecord), 2)

    def test_over_receipt_on_fully_received_line(self) -> None:
        order, lines = seed_order(
            self.db,
            lines=[{'quantity_ordered': '100', 'quantity_received': '100', 'product_id': seed_product(self.db).id}],
            status=PurchaseOrderStatus.RECEIVED,
        )

        with self.assertRaises(OverReceiptError) as ctx:
            apply_receipt(
                self.db,
                _request(order.id, 'tok-1', [{'line_item_id': lines[0].id, 'quantity_received_delta': '50', 'purchase_price': '10'}]),
            )

        self.assertEqual([v.line_item_id for v in ctx.exception.violations], [lines[0].id])
        self.assertEqual(count_rows(self.db, StockBatch), 0)
        self.assertEqual(count_rows(self.db, ReceiptEvent), 0)
        self.db.refresh(lines[0])
        self.assertEqual(lines[0].quantity_received, Decimal('100'))

    def test_second_receipt_that_would_overflow_is_rejected(self) -> None:
        product = seed_product(self.db)
        order, lines = seed_order(self.db, lines=[{'quantity_ordered': '100', 'product_id': product.id}])
        line_id = lines[0].id

        first = apply_receipt(
            self.db,
            _request(order.id, 'op-a', [{'line_item_id': line_id, 'quantity_received_delta': '60', 'purchase_price': '10'}]),
        )
        self.assertEqual(first.order.status, 'partially_received')

        with self.assertRaises(OverReceiptError):
            apply_receipt(
                self.db,
                _request(order.id, 'op-b', [{'line_item_id': line_id, 'quantity_received_delta': '50', 'purchase_price': '10'}]),
            )

        self.db.refresh(lines[0])
        self.assertEqual(lines[0].quantity_received, Decimal('60'))
        self.assertEqual(count_rows(self.db, StockBatch), 1)

    def test_duplicate_token_replays_original_result(self) -> None:
        order, lines = self._new_product_order()
        request = _request(
            order.id,
            'tok-1',
            [{'line_item_id': lines[0].id, 'quantity_received_delta': '100', 'purchase_price': '10', 'selling_price': '15'}],
        )

        first = apply_receipt(self.db, request)
        second = apply_receipt(self.db, request)

        self.assertEqual(first, second)
        self.assertEqual(count_rows(self.db, StockBatch), 1)
        self.assertEqual(count_rows(self.db, Product), 1)
        self.assertEqual(count_rows(self.db, ReceiptEvent), 1)

    def test_token_reused_with_different_payload(self) -> None:
        order, lines = self._new_product_order()
        apply_receipt(
            self.db,
            _request(order.id, 'tok-1', [{'line_item_id': lines[0].id, 'quantity_received_delta': '10', 'purchase_price': '10', 'selling_price': '15'}]),
        )

        with self.assertRaises(IdempotencyConflictError):
            apply_receipt(
                self.db,
                _request(order.id, 'tok-1', [{'line_item_id': lines[0].id, 'quantity_received_delta': '20', 'purchase_price': '10', 'selling_price': '15'}]),
            )
        self.assertEqual(count_rows(self.db, StockBatch), 1)

    def test_resubmission_with_equivalent_numbers_replays(self) -> None:
        product = seed_product(self.db)
        order, lines = seed_order(self.db, lines=[{'quantity_ordered': '100', 'product_id': product.id}])

        first = apply_receipt(
            self.db,
            _request(
                order.id,
                'tok-1',
                [{'line_item_id': lines[0].id, 'quantity_received_delta': '10', 'purchase_price': '10'}],
                payment={'amount': '25', 'method': 'cash'},
            ),
        )
        second = apply_receipt(
            self.db,
            _request(
                order.id,
                'tok-1',
                [{'line_item_id': lines[0].id, 'quantity_received_delta': '10.0', 'purchase_price': '10.00'}],
                payment={'amount': '25.0', 'method': ' Cash '},
            ),
        )

        self.assertEqual(first, second)
        self.assertEqual(count_rows(self.db, StockBatch), 1)
        self.assertEqual(count_rows(self.db, PaymentRecord), 1)

    def test_fingerprint_ignores_token_and_actor(self) -> None:
        a = _request(1, 'tok-a', payment={'amount': '5', 'method': 'cash'})
        b = ReceiveItemsRequest(order_id=1, client_request_token='tok-b', payment={'amount': '5', 'method': 'cash'}, received_by='other')

        self.assertEqual(
            request_fingerprint(a, ReceiptEventKind.PAYMENT),
            request_fingerprint(b, ReceiptEventKind.PAYMENT),
        )
        self.assertNotEqual(
            request_fingerprint(a, ReceiptEventKind.PAYMENT),
            request_fingerprint(a, ReceiptEventKind.RECEIPT),
        )


class ReceiptValidationTests(ReceiptProcessorTestCase):
    def test_one_bad_line_rejects_whole_request(self) -> None:
        product = seed_product(self.db)
        order, lines = seed_order(
            self.db,
            lines=[
                {'quantity_ordered': '10', 'product_id': product.id},
                {'quantity_ordered': '5', 'product_id': product.id},
            ],
        )

        with self.assertRaises(OverReceiptError) as ctx:
            apply_receipt(
                self.db,
                _request(
                    order.id,
                    'tok-1',
                    [
                        {'line_item_id': lines[0].id, 'quantity_received_delta': '10', 'purchase_price': '10'},
                        {'line_item_id': lines[1].id, 'quantity_received_delta': '6', 'purchase_price': '10'},
                    ],
                    payment={'amount': '50', 'method': 'cash'},
                ),
            )

        self.assertEqual([v.line_item_id for v in ctx.exception.violations], [lines[1].id])
        self.assertEqual(count_rows(self.db, StockBatch), 0)
        self.assertEqual(count_rows(self.db, PaymentRecord), 0)
        for line in lines:
            self.db.refresh(line)
            self.assertEqual(line.quantity_received, Decimal('0'))
        self.db.refresh(order)
        self.assertEqual(order.amount_paid, Decimal('0'))
        self.assertEqual(order.status, PurchaseOrderStatus.ORDERED)

    def test_mixed_problems_are_reported_together(self) -> None:
        order, lines = seed_order(
            self.db,
            lines=[{'quantity_ordered': '10'}, {'quantity_ordered': '5'}],
        )

        with self.assertRaises(ValidationError) as ctx:
            apply_receipt(
                self.db,
                _request(
                    order.id,
                    'tok-1',
                    [
                        {'line_item_id': lines[0].id, 'quantity_received_delta': '-1', 'purchase_price': '10', 'selling_price': '12'},
                        {'line_item_id': lines[1].id, 'quantity_received_delta': '1', 'purchase_price': '10'},
                    ],
                ),
            )

        self.assertEqual(ctx.exception.kind, 'validation_error')
        self.assertEqual({v.line_item_id for v in ctx.exception.violations}, {lines[0].id, lines[1].id})

    def test_negative_delta(self) -> None:
        product = seed_product(self.db)
        order, lines = seed_order(self.db, lines=[{'quantity_ordered': '10', 'product_id': product.id}])

        with self.assertRaises(InvalidQuantityError):
            apply_receipt(
                self.db,
                _request(order.id, 'tok-1', [{'line_item_id': lines[0].id, 'quantity_received_delta': '-3', 'purchase_price': '10'}]),
            )

    def test_new_product_needs_selling_price(self) -> None:
        order, lines = self._new_product_order()

        with self.assertRaises(MissingPriceError):
            apply_receipt(
                self.db,
                _request(order.id, 'tok-1', [{'line_item_id': lines[0].id, 'quantity_received_delta': '10', 'purchase_price': '10'}]),
            )
        self.assertEqual(count_rows(self.db, Product), 0)

    def test_purchase_price_must_be_positive(self) -> None:
        product = seed_product(self.db)
        order, lines = seed_order(self.db, lines=[{'quantity_ordered': '10', 'product_id': product.id}])

        with self.assertRaises(MissingPriceError):
            apply_receipt(
                self.db,
                _request(order.id, 'tok-1', [{'line_item_id': lines[0].id, 'quantity_received_delta': '1', 'purchase_price': '0'}]),
            )

    def test_line_from_another_order(self) -> None:
        product = seed_product(self.db)
        order, _ = seed_order(self.db, lines=[{'quantity_ordered': '10', 'product_id': product.id}])
        _, other_lines = seed_order(self.db, lines=[{'quantity_ordered': '10', 'product_id': product.id}], invoice_number='INV-2')

        with self.assertRaises(ValidationError) as ctx:
            apply_receipt(
                self.db,
                _request(order.id, 'tok-1', [{'line_item_id': other_lines[0].id, 'quantity_received_delta': '1', 'purchase_price': '10'}]),
            )
        self.assertEqual(ctx.exception.violations[0].line_item_id, other_lines[0].id)

    def test_duplicate_line_in_request(self) -> None:
        product = seed_product(self.db)
        order, lines = seed_order(self.db, lines=[{'quantity_ordered': '10', 'product_id': product.id}])
        item = {'line_item_id': lines[0].id, 'quantity_received_delta': '2', 'purchase_price': '10'}

        with self.assertRaises(ValidationError):
            apply_receipt(self.db, _request(order.id, 'tok-1', [item, item]))
        self.assertEqual(count_rows(self.db, StockBatch), 0)

    def test_empty_request_rejected(self) -> None:
        order, _ = self._new_product_order()

        with self.assertRaises(ValidationError):
            apply_receipt(self.db, _request(order.id, 'tok-1'))
        self.assertEqual(count_rows(self.db, ReceiptEvent), 0)

    def test_overpayment_rolls_back_goods(self) -> None:
        product = seed_product(self.db)
        order, lines = seed_order(self.db, lines=[{'quantity_ordered': '10', 'product_id': product.id}], grand_total=Decimal('100'))

        with self.assertRaises(OverpaymentError):
            apply_receipt(
                self.db,
                _request(
                    order.id,
                    'tok-1',
                    [{'line_item_id': lines[0].id, 'quantity_received_delta': '10', 'purchase_price': '10'}],
                    payment={'amount': '100.01', 'method': 'cash'},
                ),
            )
        self.assertEqual(count_rows(self.db, StockBatch), 0)

    def test_unknown_order(self) -> None:
        with self.assertRaises(OrderNotFoundError):
            apply_receipt(self.db, _request(12345, 'tok-1', payment={'amount': '1', 'method': 'cash'}))

    def test_draft_order_not_open(self) -> None:
        order, lines = self._new_product_order(status=PurchaseOrderStatus.DRAFT)

        with self.assertRaises(OrderNotOpenError):
            apply_receipt(
                self.db,
                _request(order.id, 'tok-1', [{'line_item_id': lines[0].id, 'quantity_received_delta': '1', 'purchase_price': '10', 'selling_price': '15'}]),
            )

    def test_existing_product_gets_default_markup(self) -> None:
        product = seed_product(self.db)
        order, lines = seed_order(self.db, lines=[{'quantity_ordered': '10', 'product_id': product.id}])

        with patch.object(settings, 'default_selling_markup', Decimal('0.30')):
            apply_receipt(
                self.db,
                _request(order.id, 'tok-1', [{'line_item_id': lines[0].id, 'quantity_received_delta': '4', 'purchase_price': '10'}]),
            )

        self.db.refresh(lines[0])
        self.assertEqual(lines[0].selling_price, Decimal('13.00'))
        self.assertEqual(lines[0].quantity_received, Decimal('4'))


class ConcurrencyTests(ReceiptProcessorTestCase):
    def test_stale_write_is_retried(self) -> None:
        product = seed_product(self.db)
        order, lines = seed_order(self.db, lines=[{'quantity_ordered': '10', 'product_id': product.id}])
        original = receipt_processor_service._apply_once
        calls = []

        def flaky(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise StaleDataError('purchase_orders row changed')
            return original(*args, **kwargs)

        with patch.object(receipt_processor_service, '_apply_once', side_effect=flaky):
            result = apply_receipt(
                self.db,
                _request(order.id, 'tok-1', [{'line_item_id': lines[0].id, 'quantity_received_delta': '10', 'purchase_price': '10'}]),
            )

        self.assertEqual(len(calls), 2)
        self.assertEqual(result.order.status, 'received')
        self.assertEqual(count_rows(self.db, StockBatch), 1)

    def test_persistent_conflict_surfaces(self) -> None:
        order, _ = self._new_product_order()

        with patch.object(receipt_processor_service, '_apply_once', side_effect=StaleDataError('changed')) as apply_mock:
            with self.assertRaises(ConcurrentModificationError):
                apply_receipt(self.db, _request(order.id, 'tok-1', payment={'amount': '1', 'method': 'cash'}))

        self.assertEqual(apply_mock.call_count, settings.receipt_conflict_retries + 1)

    def test_transient_failure_becomes_retryable_error(self) -> None:
        order, _ = self._new_product_order()
        error = OperationalError('UPDATE purchase_orders', {}, Exception('server closed the connection'))

        with patch.object(receipt_processor_service, '_apply_once', side_effect=error) as apply_mock:
            with self.assertRaises(PersistenceError) as ctx:
                apply_receipt(self.db, _request(order.id, 'tok-1', payment={'amount': '1', 'method': 'cash'}))

        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(apply_mock.call_count, settings.receipt_transient_retries + 1)


class RacingSessionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.engine, self.factory = make_file_session_factory(os.path.join(self.tmp.name, 'receiving.db'))
        with self.factory() as db:
            product = seed_product(db)
            order, lines = seed_order(db, lines=[{'quantity_ordered': '100', 'product_id': product.id}])
        self.order_id = order.id
        self.line_id = lines[0].id

    def tearDown(self) -> None:
        self.engine.dispose()
        self.tmp.cleanup()

    def _receive(self, token: str, delta: str) -> ReceiveItemsRequest:
        return _request(self.order_id, token, [{'line_item_id': self.line_id, 'quantity_received_delta': delta, 'purchase_price': '10'}])

    def _commit_between_validation_and_write(self, competing: ReceiveItemsRequest, outcome: dict):
        validate = receipt_processor_service._validate_items

        def validate_then_compete(*args, **kwargs):
            validate(*args, **kwargs)
            if 'started' not in outcome:
                outcome['started'] = True
                with self.factory() as other:
                    outcome['result'] = apply_receipt(other, competing)

        return patch.object(receipt_processor_service, '_validate_items', side_effect=validate_then_compete)

    def test_losing_writer_is_rechecked_and_rejected(self) -> None:
        outcome: dict = {}

        with self._commit_between_validation_and_write(self._receive('op-b', '50'), outcome):
            with self.factory() as db:
                with self.assertRaises(OverReceiptError):
                    apply_receipt(db, self._receive('op-a', '60'))

        self.assertEqual(outcome['result'].updated_line_items[0].quantity_received, Decimal('50'))
        with self.factory() as db:
            self.assertEqual(db.get(PurchaseOrderLine, self.line_id).quantity_received, Decimal('50'))
            self.assertEqual(count_rows(db, StockBatch), 1)
            self.assertEqual(count_rows(db, ReceiptEvent), 1)

    def test_token_consumed_by_other_session_replays(self) -> None:
        outcome: dict = {}

        with self._commit_between_validation_and_write(self._receive('tok-1', '50'), outcome):
            with self.factory() as db:
                result = apply_receipt(db, self._receive('tok-1', '50'))

        self.assertEqual(result, outcome['result'])
        with self.factory() as db:
            self.assertEqual(db.get(PurchaseOrderLine, self.line_id).quantity_received, Decimal('50'))
            self.assertEqual(count_rows(db, StockBatch), 1)
            self.assertEqual(count_rows(db, ReceiptEvent), 1)


class PaymentOperationTests(ReceiptProcessorTestCase):
    def test_record_payment_then_clear_due(self) -> None:
        order, _ = self._new_product_order()

        partial = record_order_payment(self.db, order_id=order.id, amount=Decimal('250'), method='cash', client_request_token='pay-1')
        self.assertEqual(partial.order.payment_status, 'partial')

        cleared = clear_order_due(self.db, order_id=order.id, method='bank', client_request_token='clear-1', actor='owner')
        self.assertEqual(cleared.payment_applied, Decimal('750.00'))
        self.assertEqual(cleared.order.amount_due, Decimal('0.00'))
        self.assertEqual(cleared.order.payment_status, 'paid')

        with self.assertRaises(ValidationError):
            clear_order_due(self.db, order_id=order.id, method='bank', client_request_token='clear-2')

        replay = clear_order_due(self.db, order_id=order.id, method='bank', client_request_token='clear-1', actor='owner')
        self.assertEqual(replay, cleared)
        self.assertEqual(count_rows(self.db, PaymentRecord), 2)

    def test_payment_must_be_positive(self) -> None:
        order, _ = self._new_product_order()

        with self.assertRaises(ValidationError):
            record_order_payment(self.db, order_id=order.id, amount=Decimal('0'), method='cash', client_request_token='pay-1')

    def test_payment_capped_by_received_value(self) -> None:
        product = seed_product(self.db)
        order, lines = seed_order(self.db, lines=[{'quantity_ordered': '100', 'product_id': product.id}])

        with patch.object(settings, 'payment_cap_to_received_value', True):
            with self.assertRaises(OverpaymentError):
                record_order_payment(self.db, order_id=order.id, amount=Decimal('10'), method='cash', client_request_token='pay-1')

            result = apply_receipt(
                self.db,
                _request(
                    order.id,
                    'tok-1',
                    [{'line_item_id': lines[0].id, 'quantity_received_delta': '20', 'purchase_price': '10'}],
                    payment={'amount': '200', 'method': 'cash'},
                ),
            )
        self.assertEqual(result.order.amount_paid, Decimal('200.00'))


class CancellationTests(ReceiptProcessorTestCase):
    def test_cancel_then_reject_receipts(self) -> None:
        order, lines = self._new_product_order()

        snapshot = cancel_purchase_order(self.db, order_id=order.id, reason='Supplier out of stock', actor='owner')
        self.assertEqual(snapshot.status, 'cancelled')
        self.assertEqual(cancel_purchase_order(self.db, order_id=order.id).status, 'cancelled')

        with self.assertRaises(TerminalStateError):
            apply_receipt(
                self.db,
                _request(order.id, 'tok-1', [{'line_item_id': lines[0].id, 'quantity_received_delta': '1', 'purchase_price': '10', 'selling_price': '15'}]),
            )

        entries = list_audit_entries(self.db, purchase_order_id=order.id)
        self.assertEqual([e.action for e in entries], ['purchase_order.cancel'])
        self.assertEqual(entries[0].meta, {'reason': 'Supplier out of stock'})
        self.assertEqual(entries[0].actor, 'owner')

    def test_received_order_cannot_be_cancelled(self) -> None:
        order, _ = seed_order(self.db, lines=[{'quantity_ordered': '1', 'quantity_received': '1'}], status=PurchaseOrderStatus.RECEIVED)

        with self.assertRaises(TerminalStateError):
            cancel_purchase_order(self.db, order_id=order.id)


class PurchaseOrderDetailTests(ReceiptProcessorTestCase):
    def test_detail_reports_pending_quantities(self) -> None:
        product = seed_product(self.db)
        order, lines = seed_order(
            self.db,
            lines=[
                {'quantity_ordered': '10', 'product_id': product.id},
                {'quantity_ordered': '4', 'product_name': 'Chickpea Flour'},
            ],
        )
        apply_receipt(
            self.db,
            _request(order.id, 'tok-1', [{'line_item_id': lines[0].id, 'quantity_received_delta': '3', 'purchase_price': '10'}]),
        )

        detail = get_purchase_order_detail(self.db, order_id=order.id)

        self.assertEqual(detail.order.status, 'partially_received')
        self.assertTrue(detail.open_for_receiving)
        first, second = detail.lines
        self.assertEqual(first.quantity_pending, Decimal('7'))
        self.assertEqual(first.status, 'partially_received')
        self.assertFalse(first.is_new_product)
        self.assertTrue(second.is_new_product)
        self.assertEqual(second.status, 'ordered')

    def test_detail_unknown_order(self) -> None:
        with self.assertRaises(OrderNotFoundError):
            get_purchase_order_detail(self.db, order_id=404)


if __name__ == '__main__':
    unittest.main()
