from decimal import Decimal

from sqlalchemy import select

from po_receiving.db import SessionLocal, engine
from po_receiving.models import (
    Base,
    Product,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderStatus,
    Store,
    Supplier,
)


def seed() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        store = db.execute(select(Store).where(Store.name == 'Downtown')).scalar_one_or_none()
        if not store:
            store = Store(name='Downtown', active=True)
            db.add(store)
            db.flush()

        supplier = db.execute(select(Supplier).where(Supplier.name == 'Demo Wholesale')).scalar_one_or_none()
        if not supplier:
            supplier = Supplier(name='Demo Wholesale', email='orders@demo-wholesale.example', active=True)
            db.add(supplier)
            db.flush()

        product = db.execute(select(Product).where(Product.sku == 'DEMO-RICE-5KG')).scalar_one_or_none()
        if not product:
            product = Product(
                name='Basmati Rice 5kg',
                sku='DEMO-RICE-5KG',
                unit='bag',
                purchase_price=Decimal('8.5000'),
                selling_price=Decimal('11.99'),
                low_stock_threshold=Decimal('10'),
            )
            db.add(product)
            db.flush()

        order = db.execute(select(PurchaseOrder).where(PurchaseOrder.invoice_number == 'DEMO-0001')).scalar_one_or_none()
        if not order:
            # 100 x 8.50 + 20 x 4.00
            order = PurchaseOrder(
                invoice_number='DEMO-0001',
                supplier_id=supplier.id,
                store_id=store.id,
                status=PurchaseOrderStatus.ORDERED,
                grand_total=Decimal('930.00'),
                amount_paid=Decimal('0'),
                amount_due=Decimal('930.00'),
            )
            db.add(order)
            db.flush()
            db.add(
                PurchaseOrderLine(
                    purchase_order_id=order.id,
                    product_id=product.id,
                    product_name=product.name,
                    unit=product.unit,
                    quantity_ordered=Decimal('100'),
                    purchase_price=Decimal('8.50'),
                )
            )
            db.add(
                PurchaseOrderLine(
                    purchase_order_id=order.id,
                    product_id=None,
                    product_name='Chickpea Flour 1kg',
                    product_description='New line from supplier catalogue',
                    unit='bag',
                    quantity_ordered=Decimal('20'),
                    purchase_price=Decimal('4.00'),
                )
            )

        db.commit()


if __name__ == '__main__':
    seed()
