import functools
import json
import logging

from django.contrib.auth.decorators import login_required
from django.http import HttpResponse, JsonResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from backoffice import errors
from .forms import (
    ItemReturnForm,
    LateFeeQueryForm,
    RentalFilterForm,
    RentalForm,
    RentalItemForm,
    RentalReturnForm,
    SaleForm,
    SaleItemForm,
    clean_payload,
    clean_rows,
)
from .models import Product, Rental, RentalItem, Sale
from .services.catalog import CatalogStore
from .services.rental_engine import ItemReturn, RentalItemInput, build_rental_engine
from .services.sales import record_sale
from .utils.receipt_render import render_rental_receipt

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# JSON plumbing
# ------------------------------------------------------------------

def _ok(data=None, message=None, status=200):
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return JsonResponse(body, status=status)


def _error(exc: errors.BackofficeError):
    if exc.status >= 500:
        logger.error("%s: %s", exc.kind, exc.message)
    else:
        logger.warning("%s: %s", exc.kind, exc.message)
    return JsonResponse({"success": False, "error": exc.as_dict()}, status=exc.status)


def _json_body(request) -> dict:
    try:
        return json.loads(request.body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise errors.ValidationError("Request body is not valid JSON")


def api_view(view):
    """Map service errors onto ``{"success": false, "error": {...}}`` responses."""
    @functools.wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except errors.BackofficeError as exc:
            return _error(exc)
    return wrapper


def _money(v):
    return None if v is None else f"{v:.2f}"


def _date(v):
    return v.isoformat() if v else None


def _product_json(p: Product) -> dict:
    return {
        "id": p.pk,
        "name": p.name,
        "sku": p.sku,
        "category": p.category,
        "unit": p.unit,
        "type": p.type,
        "current_stock": p.current_stock,
        "rent_price_per_day": _money(p.rent_price_per_day),
        "rent_price_per_week": _money(p.rent_price_per_week),
        "rent_price_per_month": _money(p.rent_price_per_month),
        "security_deposit": _money(p.security_deposit),
    }


def _rental_item_json(it: RentalItem) -> dict:
    return {
        "id": it.pk,
        "product_id": it.product_id,
        "product_name": it.product.name,
        "quantity": it.quantity,
        "quantity_returned": it.quantity_returned,
        "rate_type": it.rate_type,
        "rate_amount": _money(it.rate_amount),
        "total_days": it.total_days,
        "total": _money(it.total),
        "return_date": _date(it.return_date),
    }


def _rental_json(r: Rental) -> dict:
    return {
        "id": r.pk,
        "rental_number": r.rental_number,
        "customer": {"id": r.customer_id, "name": r.customer.name, "phone": r.customer.phone},
        "created_by": r.created_by.get_username() if r.created_by else None,
        "start_date": _date(r.start_date),
        "expected_return_date": _date(r.expected_return_date),
        "actual_return_date": _date(r.actual_return_date),
        "next_return_date": _date(r.next_return_date),
        "status": r.status,
        "subtotal": _money(r.subtotal),
        "security_deposit": _money(r.security_deposit),
        "total_charges": _money(r.total_charges),
        "late_fee": _money(r.late_fee),
        "damage_charges": _money(r.damage_charges),
        "amount_paid": _money(r.amount_paid),
        "amount_due": _money(r.amount_due),
        "deposit_returned": r.deposit_returned,
        "return_payment_method": r.return_payment_method or None,
        "return_payment_amount": _money(r.return_payment_amount),
        "return_notes": r.return_notes,
        "notes": r.notes,
        "items": [_rental_item_json(it) for it in r.items.all()],
        "created_at": r.created_at.isoformat() if r.created_at else None,
        "updated_at": r.updated_at.isoformat() if r.updated_at else None,
    }


def _sale_json(s: Sale) -> dict:
    return {
        "id": s.pk,
        "invoice_number": s.invoice_number,
        "customer_id": s.customer_id,
        "subtotal": _money(s.subtotal),
        "discount": _money(s.discount),
        "tax": _money(s.tax),
        "total": _money(s.total),
        "payment_status": s.payment_status,
        "payment_method": s.payment_method or None,
        "amount_paid": _money(s.amount_paid),
        "amount_due": _money(s.amount_due),
        "items": [
            {
                "product_id": it.product_id,
                "quantity": it.quantity,
                "unit_price": _money(it.unit_price),
                "discount": _money(it.discount),
                "total": _money(it.total),
            }
            for it in s.items.all()
        ],
    }


def _rental_payload(request):
    body = _json_body(request)
    data = clean_payload(RentalForm, body)
    rows = clean_rows(RentalItemForm, body.get("items"))
    return {
        "customer_id": data["customer_id"],
        "start_date": data["start_date"],
        "expected_return_date": data["expected_return_date"],
        "items": [RentalItemInput(**row) for row in rows],
        "security_deposit": data["security_deposit"],
        "notes": data["notes"],
        "acting_user": request.user,
    }


# ------------------------------------------------------------------
# Rentals
# ------------------------------------------------------------------

@login_required
@require_http_methods(["GET", "POST"])
@api_view
def rentals_collection(request):
    engine = build_rental_engine()
    if request.method == "POST":
        rental = engine.create(**_rental_payload(request))
        return _ok(_rental_json(rental), "Rental created successfully", status=201)

    filters = clean_payload(RentalFilterForm, request.GET.dict())
    result = engine.repository.list_rentals(
        status=filters["status"] or None,
        search=filters["search"] or None,
        page=filters["page"] or 1,
        limit=filters["limit"] or 10,
    )
    result["data"] = [_rental_json(r) for r in result["data"]]
    return _ok(result)


@login_required
@require_http_methods(["GET", "PUT", "DELETE"])
@api_view
def rental_detail(request, pk):
    engine = build_rental_engine()
    if request.method == "PUT":
        rental = engine.edit(pk, **_rental_payload(request))
        return _ok(_rental_json(rental), "Rental updated successfully")
    if request.method == "DELETE":
        engine.delete(pk)
        return _ok(None, "Rental deleted successfully")
    return _ok(_rental_json(engine.repository.get_rental(pk)))


@login_required
@require_POST
@api_view
def rental_return(request, pk):
    body = _json_body(request)
    data = clean_payload(RentalReturnForm, body)
    rows = clean_rows(ItemReturnForm, body.get("items"))
    rental = build_rental_engine().process_return(
        pk,
        return_date=data["return_date"],
        item_returns=[ItemReturn(**row) for row in rows],
        late_fee=data["late_fee"],
        damage_charges=data["damage_charges"],
        deposit_returned=data["deposit_returned"],
        payment_method=data["payment_method"],
        payment_amount=data["payment_amount"],
        notes=data["notes"],
        next_return_date=data["next_return_date"],
        acting_user=request.user,
    )
    message = ("Rental returned" if rental.status == Rental.Status.RETURNED
               else "Partial return recorded")
    return _ok(_rental_json(rental), message)


@login_required
@require_GET
@api_view
def rental_late_fee(request, pk):
    data = clean_payload(LateFeeQueryForm, request.GET.dict())
    fee = build_rental_engine().late_fee_suggestion(pk, data["return_date"])
    return _ok({"return_date": _date(data["return_date"]), "suggested_late_fee": _money(fee)})


@login_required
@require_GET
@api_view
def rental_receipt(request, pk):
    rental = build_rental_engine().repository.get_rental(pk)
    png = render_rental_receipt(rental, items=rental.items.all())
    resp = HttpResponse(png, content_type="image/png")
    resp["Content-Disposition"] = f'inline; filename="{rental.rental_number}.png"'
    return resp


# ------------------------------------------------------------------
# Catalog & sales
# ------------------------------------------------------------------

@login_required
@require_GET
def rentable_products(request):
    q = (request.GET.get("q") or "").strip()
    products = CatalogStore().list_rentable_products(search=q or None)
    return _ok([_product_json(p) for p in products])


@login_required
@require_POST
@api_view
def sales_collection(request):
    body = _json_body(request)
    data = clean_payload(SaleForm, body)
    rows = clean_rows(SaleItemForm, body.get("items"))
    sale = record_sale(
        customer_id=data["customer_id"],
        items=rows,
        discount=data["discount"] or 0,
        tax=data["tax"] or 0,
        payment_method=data["payment_method"],
        amount_paid=data["amount_paid"] or 0,
        notes=data["notes"],
        acting_user=request.user,
    )
    return _ok(_sale_json(sale), "Sale recorded successfully", status=201)
