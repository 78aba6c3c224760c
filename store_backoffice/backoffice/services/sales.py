import logging
import secrets
from collections import defaultdict
from decimal import Decimal

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from backoffice import errors
from backoffice.models import PaymentMethod, Sale, SaleItem
from backoffice.services import billing
from backoffice.services.catalog import CatalogStore

logger = logging.getLogger(__name__)


def _next_invoice_number() -> str:
    ts = timezone.localtime()
    return f"INV-{ts.strftime('%Y%m%d%H%M%S')}-{secrets.token_hex(2).upper()}"


def _payment_status(total: Decimal, paid: Decimal) -> str:
    if paid <= 0 and total > 0:
        return Sale.PaymentStatus.PENDING
    if paid >= total:
        return Sale.PaymentStatus.PAID
    return Sale.PaymentStatus.PARTIAL


def record_sale(*, customer_id, items, discount=Decimal("0.00"), tax=Decimal("0.00"),
                payment_method="", amount_paid=Decimal("0.00"), notes="",
                acting_user=None, catalog=None) -> Sale:
    """
    Point-of-sale invoice. Stock for every line is decremented in the same
    transaction; any failure leaves both the sale and the stock untouched.

    ``items`` is a list of dicts with ``product_id``, ``quantity`` and
    optionally ``unit_price`` (defaults to the product's sale price) and
    ``discount``.
    """
    catalog = catalog or CatalogStore()
    items = list(items or [])
    if not items:
        raise errors.ValidationError("At least one item is required", field="items")
    if payment_method and payment_method not in PaymentMethod.values:
        raise errors.ValidationError(f"Invalid payment method: {payment_method!r}", field="payment_method")
    discount, tax, amount_paid = billing.money(discount), billing.money(tax), billing.money(amount_paid)
    if discount < 0 or tax < 0 or amount_paid < 0:
        raise errors.ValidationError("Discount, tax and amount paid must be zero or more", field="amount_paid")

    user = acting_user if getattr(acting_user, "is_authenticated", False) else None

    with transaction.atomic():
        customer = catalog.get_customer(customer_id)

        lines = []
        requested = defaultdict(int)
        for idx, it in enumerate(items):
            qty = it.get("quantity")
            if not isinstance(qty, int) or qty < 1:
                raise errors.ValidationError(f"Item {idx + 1}: quantity must be at least 1", field="quantity")
            product = catalog.get_product(it.get("product_id"), for_update=True)
            if not product.is_sellable:
                raise errors.ValidationError(
                    f"{product.name} is not for sale", field="product_id", object_id=product.pk
                )
            price = it.get("unit_price")
            if price is None:
                price = product.sale_price
            if price is None:
                raise errors.ValidationError(
                    f"{product.name} has no sale price", field="unit_price", object_id=product.pk
                )
            price = billing.money(price)
            line_discount = billing.money(it.get("discount") or 0)
            if price < 0 or line_discount < 0:
                raise errors.ValidationError(f"Item {idx + 1}: amounts must be zero or more", field="unit_price")
            requested[product.pk] += qty
            lines.append(SaleItem(
                product=product,
                quantity=qty,
                unit_price=price,
                discount=line_discount,
                total=billing.money(qty * price - line_discount),
            ))

        subtotal = billing.subtotal(line.total for line in lines)
        total = billing.money(subtotal - discount + tax)
        try:
            with transaction.atomic():
                sale = Sale.objects.create(
                    invoice_number=_next_invoice_number(),
                    customer=customer,
                    subtotal=subtotal,
                    discount=discount,
                    tax=tax,
                    total=total,
                    payment_status=_payment_status(total, amount_paid),
                    payment_method=payment_method or "",
                    amount_paid=amount_paid,
                    amount_due=billing.money(total - amount_paid),
                    notes=notes or "",
                    created_by=user,
                    updated_by=user,
                )
                for line in lines:
                    line.sale = sale
                SaleItem.objects.bulk_create(lines)
        except IntegrityError as exc:
            raise errors.ConflictError(f"Conflict while recording sale: {exc}")
        except DatabaseError as exc:
            logger.error("Database error while recording sale: %s", exc)
            raise errors.PersistenceError(f"Database error while recording sale: {exc}")

        for pid, qty in requested.items():
            catalog.decrement_stock(pid, qty)

    logger.info("Sale %s recorded: total %s, status %s", sale.invoice_number, sale.total, sale.payment_status)
    return sale
