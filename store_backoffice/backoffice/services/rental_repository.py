import logging
import math
from contextlib import contextmanager

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from backoffice import errors
from backoffice.models import Rental, RentalItem

logger = logging.getLogger(__name__)


@contextmanager
def _db_errors(action: str):
    """Translate database failures into the service error kinds."""
    try:
        with transaction.atomic():
            yield
    except IntegrityError as exc:
        logger.warning("Integrity error while %s: %s", action, exc)
        raise errors.ConflictError(f"Conflict while {action}: {exc}")
    except DatabaseError as exc:
        logger.error("Database error while %s: %s", action, exc)
        raise errors.PersistenceError(f"Database error while {action}: {exc}")


class RentalRepository:
    """Rental and RentalItem persistence on top of the Django ORM."""

    def create_rental(self, fields: dict, items: list) -> Rental:
        with _db_errors("creating rental"):
            rental = Rental.objects.create(**fields)
            RentalItem.objects.bulk_create([RentalItem(rental=rental, **it) for it in items])
        return self.get_rental(rental.pk)

    def get_rental(self, rental_id, *, for_update=False) -> Rental:
        qs = Rental.objects.select_related("customer", "created_by")
        if for_update:
            qs = qs.select_for_update(of=("self",))
        try:
            return qs.prefetch_related("items__product").get(pk=rental_id)
        except (Rental.DoesNotExist, ValueError, TypeError):
            raise errors.NotFoundError(
                f"Rental not found: {rental_id}", field="rental_id", object_id=rental_id
            )

    def list_rentals(self, *, status=None, search=None, page=1, limit=10) -> dict:
        qs = Rental.objects.select_related("customer", "created_by")
        if status:
            if status not in Rental.Status.values:
                raise errors.ValidationError(f"Invalid status: {status!r}", field="status")
            qs = qs.filter(status=status)
        if search:
            qs = qs.filter(
                Q(rental_number__icontains=search) |
                Q(customer__name__icontains=search) |
                Q(customer__phone__icontains=search) |
                Q(items__product__name__icontains=search)
            ).distinct()

        page = max(int(page or 1), 1)
        limit = max(int(limit or 10), 1)
        total = qs.count()
        offset = (page - 1) * limit
        rows = list(
            qs.order_by("-created_at", "-id")
              .prefetch_related("items__product")[offset:offset + limit]
        )
        return {
            "data": rows,
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        }

    def update_rental(self, rental_id, **patch) -> Rental:
        # queryset.update() skips auto_now
        patch.setdefault("updated_at", timezone.now())
        with _db_errors("updating rental"):
            updated = Rental.objects.filter(pk=rental_id).update(**patch)
        if not updated:
            raise errors.NotFoundError(
                f"Rental not found: {rental_id}", field="rental_id", object_id=rental_id
            )
        return self.get_rental(rental_id)

    def replace_items(self, rental_id, items: list) -> None:
        with _db_errors("replacing rental items"):
            RentalItem.objects.filter(rental_id=rental_id).delete()
            RentalItem.objects.bulk_create([RentalItem(rental_id=rental_id, **it) for it in items])

    def save_item_returns(self, items) -> None:
        with _db_errors("recording returned quantities"):
            RentalItem.objects.bulk_update(list(items), ["quantity_returned", "return_date"])

    def delete_rental(self, rental_id) -> None:
        with _db_errors("deleting rental"):
            # items go with the rental (on_delete=CASCADE)
            deleted, _ = Rental.objects.filter(pk=rental_id).delete()
        if not deleted:
            raise errors.NotFoundError(
                f"Rental not found: {rental_id}", field="rental_id", object_id=rental_id
            )
