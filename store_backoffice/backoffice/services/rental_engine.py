"""
Rental lifecycle: creation, partial/full returns with settlement, edits and
deletion.

Every public operation is one ``transaction.atomic()`` unit. Inputs are
validated before the first write, so a rejected call leaves nothing behind.
Status moves only ``active/overdue -> partial_return -> returned`` here;
``overdue`` and ``cancelled`` are set from outside.
"""
import logging
import secrets
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from backoffice import errors
from backoffice.models import PaymentMethod, Rental
from backoffice.services import billing
from backoffice.services.catalog import CatalogStore
from backoffice.services.rental_repository import RentalRepository

logger = logging.getLogger(__name__)


@dataclass
class RentalItemInput:
    product_id: int
    quantity: int
    rate_type: str
    rate_amount: Optional[Decimal] = None  # None -> product's rate for rate_type


@dataclass
class ItemReturn:
    item_id: int
    quantity: int


def _next_rental_number() -> str:
    ts = timezone.localtime()
    return f"RNT-{ts.strftime('%Y%m%d%H%M%S')}-{secrets.token_hex(2).upper()}"


def _acting(user):
    return user if getattr(user, "is_authenticated", False) else None


def _amount(value, field: str, *, default=None) -> Optional[Decimal]:
    if value is None or value == "":
        return default
    try:
        amt = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise errors.ValidationError(f"{field} must be a number", field=field)
    if not amt.is_finite() or amt < 0:
        raise errors.ValidationError(f"{field} must be zero or more", field=field)
    return billing.money(amt)


class RentalLifecycleEngine:
    def __init__(self, repository: RentalRepository, catalog: CatalogStore, *,
                 late_fee_per_day=Decimal("100.00")):
        self.repository = repository
        self.catalog = catalog
        self.late_fee_per_day = Decimal(late_fee_per_day)

    # ------------------------------------------------------------------
    # create / edit
    # ------------------------------------------------------------------
    def create(self, *, customer_id, start_date: date, expected_return_date: date,
               items: Iterable, security_deposit=None, notes: str = "", acting_user=None) -> Rental:
        with transaction.atomic():
            customer, lines, deposit = self._prepare(
                customer_id, start_date, expected_return_date, items, security_deposit
            )
            sub = billing.subtotal(line["total"] for line in lines)
            user = _acting(acting_user)
            rental = self.repository.create_rental(
                {
                    "rental_number": _next_rental_number(),
                    "customer": customer,
                    "created_by": user,
                    "updated_by": user,
                    "start_date": start_date,
                    "expected_return_date": expected_return_date,
                    "status": Rental.Status.ACTIVE,
                    "subtotal": sub,
                    "security_deposit": deposit,
                    "total_charges": sub,
                    "amount_due": sub,
                    "notes": notes or "",
                },
                lines,
            )
        logger.info("Rental %s created for customer %s: %d item(s), charges %s",
                    rental.rental_number, customer.pk, len(lines), sub)
        return rental

    def edit(self, rental_id, *, customer_id, start_date: date, expected_return_date: date,
             items: Iterable, security_deposit=None, notes: str = "", acting_user=None) -> Rental:
        with transaction.atomic():
            rental = self.repository.get_rental(rental_id, for_update=True)
            if rental.status == Rental.Status.RETURNED or any(
                it.quantity_returned > 0 for it in rental.items.all()
            ):
                raise errors.ValidationError(
                    "Rental has recorded returns and can no longer be edited",
                    field="items", object_id=rental.pk,
                )

            customer, lines, deposit = self._prepare(
                customer_id, start_date, expected_return_date, items, security_deposit
            )
            sub = billing.subtotal(line["total"] for line in lines)

            rental.total_charges = sub
            rental.security_deposit = deposit
            self.repository.replace_items(rental.pk, lines)
            rental = self.repository.update_rental(
                rental.pk,
                customer=customer,
                start_date=start_date,
                expected_return_date=expected_return_date,
                subtotal=sub,
                security_deposit=deposit,
                total_charges=sub,
                amount_due=rental.settlement_amount(),
                notes=notes or "",
                updated_by=_acting(acting_user),
            )
        logger.info("Rental %s edited: %d item(s), charges %s", rental.rental_number, len(lines), sub)
        return rental

    def _prepare(self, customer_id, start_date, expected_return_date, items, security_deposit):
        """Validate a create/edit payload and build the item rows to persist."""
        items = [self._coerce_item(raw) for raw in (items or [])]
        if not items:
            raise errors.ValidationError("At least one item is required", field="items")
        if not start_date:
            raise errors.ValidationError("Start date is required", field="start_date")
        if not expected_return_date:
            raise errors.ValidationError("Expected return date is required", field="expected_return_date")
        if expected_return_date < start_date:
            raise errors.ValidationError(
                "Expected return date cannot be before the start date", field="expected_return_date"
            )
        for idx, it in enumerate(items):
            if not it.product_id:
                raise errors.ValidationError(f"Item {idx + 1}: product is required", field="product_id")
            if not isinstance(it.quantity, int) or it.quantity < 1:
                raise errors.ValidationError(f"Item {idx + 1}: quantity must be at least 1", field="quantity")
            if it.rate_type not in billing.RATE_TYPES:
                raise errors.ValidationError(
                    f"Item {idx + 1}: invalid rate type {it.rate_type!r}", field="rate_type"
                )
            it.rate_amount = _amount(it.rate_amount, "rate_amount")
        deposit = _amount(security_deposit, "security_deposit")

        customer = self.catalog.get_customer(customer_id)

        requested = defaultdict(int)
        products = {}
        for it in items:
            product = products.get(it.product_id) or self.catalog.get_product(it.product_id)
            products[it.product_id] = product
            if not product.is_rentable:
                raise errors.ValidationError(
                    f"{product.name} is not available for rent", field="product_id", object_id=product.pk
                )
            requested[product.pk] += it.quantity

        for pid, qty in requested.items():
            product = products[pid]
            # advisory check only; rentals never reserve stock
            if qty > product.current_stock:
                raise errors.ValidationError(
                    f"Only {product.current_stock} {product.unit} of {product.name} in stock, {qty} requested",
                    field="quantity", object_id=pid,
                )

        days = billing.elapsed_days(start_date, expected_return_date)
        lines = []
        for it in items:
            product = products[it.product_id]
            rate = it.rate_amount
            if rate is None:
                rate = product.rate_for(it.rate_type)
                if rate is None:
                    raise errors.ValidationError(
                        f"{product.name} has no {it.rate_type} rate", field="rate_amount", object_id=product.pk
                    )
                rate = billing.money(rate)
            periods = billing.period_count(start_date, expected_return_date, it.rate_type)
            lines.append({
                "product": product,
                "quantity": it.quantity,
                "daily_rate": product.rent_price_per_day,
                "weekly_rate": product.rent_price_per_week,
                "monthly_rate": product.rent_price_per_month,
                "rate_type": it.rate_type,
                "rate_amount": rate,
                "total_days": days,
                "total": billing.line_total(rate, periods, it.quantity),
            })

        if deposit is None:
            deposit = billing.money(sum(
                ((products[it.product_id].security_deposit or Decimal("0")) * it.quantity for it in items),
                Decimal("0"),
            ))
        return customer, lines, deposit

    @staticmethod
    def _coerce_item(raw) -> RentalItemInput:
        if isinstance(raw, RentalItemInput):
            return RentalItemInput(raw.product_id, raw.quantity, raw.rate_type, raw.rate_amount)
        if isinstance(raw, Mapping):
            return RentalItemInput(
                product_id=raw.get("product_id"),
                quantity=raw.get("quantity"),
                rate_type=raw.get("rate_type"),
                rate_amount=raw.get("rate_amount"),
            )
        raise errors.ValidationError("Malformed rental item", field="items")

    # ------------------------------------------------------------------
    # returns & settlement
    # ------------------------------------------------------------------
    def process_return(self, rental_id, *, return_date: date, item_returns: Iterable = (),
                       late_fee=None, damage_charges=None, deposit_returned: bool = False,
                       payment_method: str = "", payment_amount=None, notes: str = "",
                       next_return_date: Optional[date] = None, acting_user=None) -> Rental:
        with transaction.atomic():
            rental = self.repository.get_rental(rental_id, for_update=True)

            if rental.status == Rental.Status.RETURNED:
                raise errors.ValidationError("Rental is already returned", field="status", object_id=rental.pk)
            if rental.status == Rental.Status.CANCELLED:
                raise errors.ValidationError("Rental is cancelled", field="status", object_id=rental.pk)
            if not return_date:
                raise errors.ValidationError("Return date is required", field="return_date")
            if return_date < rental.start_date:
                raise errors.ValidationError(
                    "Return date cannot be before the start date", field="return_date"
                )
            if payment_method and payment_method not in PaymentMethod.values:
                raise errors.ValidationError(
                    f"Invalid payment method: {payment_method!r}", field="payment_method"
                )
            late_fee = _amount(late_fee, "late_fee")
            damage_charges = _amount(damage_charges, "damage_charges", default=Decimal("0.00"))
            payment_amount = _amount(payment_amount, "payment_amount")

            items: List = list(rental.items.all())
            by_id = {it.pk: it for it in items}
            deltas = defaultdict(int)
            for raw in item_returns or ():
                ret = self._coerce_return(raw)
                item = by_id.get(ret.item_id)
                if item is None:
                    raise errors.ValidationError(
                        f"Item {ret.item_id} does not belong to rental {rental.rental_number}",
                        field="items", object_id=ret.item_id,
                    )
                if not isinstance(ret.quantity, int) or ret.quantity < 0:
                    raise errors.ValidationError(
                        "Returned quantity cannot be negative", field="quantity", object_id=item.pk
                    )
                deltas[item.pk] += ret.quantity

            for pk, delta in deltas.items():
                item = by_id[pk]
                if item.quantity_returned + delta > item.quantity:
                    raise errors.ValidationError(
                        f"Cannot return {delta} of {item.product.name}: only {item.remaining_quantity} outstanding",
                        field="quantity", object_id=pk,
                    )

            returned_after = {it.pk: it.quantity_returned + deltas.get(it.pk, 0) for it in items}
            all_returned = all(returned_after[it.pk] >= it.quantity for it in items)
            some_returned = any(qty > 0 for qty in returned_after.values())
            if all_returned:
                status = Rental.Status.RETURNED
            elif some_returned:
                status = Rental.Status.PARTIAL_RETURN
            else:
                status = rental.status

            if status == Rental.Status.PARTIAL_RETURN and not next_return_date:
                raise errors.ValidationError(
                    "Next return date is required for a partial return", field="next_return_date"
                )
            if status != Rental.Status.RETURNED and next_return_date and next_return_date < return_date:
                raise errors.ValidationError(
                    "Next return date cannot be before the return date", field="next_return_date"
                )

            # nothing is written above this line
            touched = []
            for it in items:
                delta = deltas.get(it.pk, 0)
                if delta > 0:
                    it.quantity_returned += delta
                    it.return_date = return_date
                    touched.append(it)
            if touched:
                self.repository.save_item_returns(touched)

            # billed on elapsed time for the full quantity originally rented
            actual_charges = billing.subtotal(
                billing.line_total(
                    it.rate_amount,
                    billing.period_count(rental.start_date, return_date, it.rate_type),
                    it.quantity,
                )
                for it in items
            )
            if late_fee is None:
                late_fee = billing.suggested_late_fee(
                    rental.start_date, rental.expected_return_date, return_date, self.late_fee_per_day
                )

            rental.total_charges = actual_charges
            rental.late_fee = late_fee
            rental.damage_charges = damage_charges
            rental.deposit_returned = bool(deposit_returned)

            patch = {
                "status": status,
                "total_charges": actual_charges,
                "late_fee": late_fee,
                "damage_charges": damage_charges,
                "deposit_returned": rental.deposit_returned,
                "amount_due": rental.settlement_amount(),
                "return_payment_method": payment_method or "",
                "return_payment_amount": payment_amount,
                "return_notes": notes or "",
                "updated_by": _acting(acting_user),
            }
            if status == Rental.Status.RETURNED:
                patch["actual_return_date"] = return_date
                patch["next_return_date"] = None
            elif next_return_date:
                patch["next_return_date"] = next_return_date

            rental = self.repository.update_rental(rental.pk, **patch)

        logger.info("Rental %s return processed on %s: status=%s charges=%s due=%s",
                    rental.rental_number, return_date, rental.status,
                    rental.total_charges, rental.amount_due)
        return rental

    @staticmethod
    def _coerce_return(raw) -> ItemReturn:
        if isinstance(raw, ItemReturn):
            return raw
        if isinstance(raw, Mapping):
            return ItemReturn(item_id=raw.get("item_id"), quantity=raw.get("quantity"))
        raise errors.ValidationError("Malformed item return", field="items")

    def late_fee_suggestion(self, rental_id, return_date: date) -> Decimal:
        rental = self.repository.get_rental(rental_id)
        if not return_date:
            raise errors.ValidationError("Return date is required", field="return_date")
        if return_date < rental.start_date:
            raise errors.ValidationError(
                "Return date cannot be before the start date", field="return_date"
            )
        return billing.suggested_late_fee(
            rental.start_date, rental.expected_return_date, return_date, self.late_fee_per_day
        )

    # ------------------------------------------------------------------
    # delete
    # ------------------------------------------------------------------
    def delete(self, rental_id) -> None:
        with transaction.atomic():
            self.repository.delete_rental(rental_id)
        logger.info("Rental %s deleted", rental_id)


def build_rental_engine() -> RentalLifecycleEngine:
    return RentalLifecycleEngine(
        RentalRepository(),
        CatalogStore(),
        late_fee_per_day=getattr(settings, "RENTAL_LATE_FEE_PER_DAY", Decimal("100.00")),
    )
