import logging

from django.db.models import F, Q

from backoffice import errors
from backoffice.models import Customer, Product

logger = logging.getLogger(__name__)


class CatalogStore:
    """Products and customers as seen by the rental and sales services."""

    def get_product(self, product_id, *, for_update=False) -> Product:
        qs = Product.objects.all()
        if for_update:
            qs = qs.select_for_update()
        try:
            return qs.get(pk=product_id)
        except (Product.DoesNotExist, ValueError, TypeError):
            raise errors.NotFoundError(
                f"Product not found: {product_id}", field="product_id", object_id=product_id
            )

    def get_customer(self, customer_id) -> Customer:
        try:
            return Customer.objects.get(pk=customer_id)
        except (Customer.DoesNotExist, ValueError, TypeError):
            raise errors.NotFoundError(
                f"Customer not found: {customer_id}", field="customer_id", object_id=customer_id
            )

    def list_rentable_products(self, search=None):
        qs = Product.objects.filter(
            is_active=True, type__in=[Product.Type.RENT, Product.Type.BOTH]
        )
        if search:
            qs = qs.filter(
                Q(name__icontains=search) |
                Q(sku__icontains=search) |
                Q(category__icontains=search)
            )
        return list(qs.order_by("name", "id"))

    def decrement_stock(self, product_id, qty: int) -> None:
        # row is locked by the caller's transaction; the filter guards against going negative
        updated = (Product.objects
                   .filter(pk=product_id, current_stock__gte=qty)
                   .update(current_stock=F("current_stock") - qty))
        if not updated:
            product = self.get_product(product_id)
            raise errors.ValidationError(
                f"Insufficient stock for {product.name} (have {product.current_stock}, need {qty})",
                field="quantity", object_id=product_id,
            )
        logger.debug("Stock -%s for product %s", qty, product_id)

    def increment_stock(self, product_id, qty: int) -> None:
        updated = Product.objects.filter(pk=product_id).update(current_stock=F("current_stock") + qty)
        if not updated:
            raise errors.NotFoundError(
                f"Product not found: {product_id}", field="product_id", object_id=product_id
            )
        logger.debug("Stock +%s for product %s", qty, product_id)
