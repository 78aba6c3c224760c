# backoffice/models.py
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from backoffice.services.billing import money

# --------------------------------
# Common field presets
# --------------------------------
DECIMAL_12_2 = {"max_digits": 12, "decimal_places": 2}


# --------------------------------
# Core mixins
# --------------------------------
class TimeStampedBy(models.Model):
    created_at = models.DateTimeField(default=timezone.now, db_index=True, editable=True)
    updated_at = models.DateTimeField(auto_now=True, db_index=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="%(class)s_created"
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True,
        on_delete=models.SET_NULL, related_name="%(class)s_updated"
    )

    class Meta:
        abstract = True


class PaymentMethod(models.TextChoices):
    CASH          = "cash",          "Cash"
    CARD          = "card",          "Card"
    UPI           = "upi",           "UPI"
    BANK_TRANSFER = "bank_transfer", "Bank Transfer"
    CHEQUE        = "cheque",        "Cheque"


# --------------------------------
# Master data
# --------------------------------
class Customer(TimeStampedBy):
    name    = models.CharField(max_length=255, db_index=True)
    email   = models.EmailField(blank=True, default="", db_index=True)
    phone   = models.CharField(max_length=20, db_index=True)
    address = models.TextField(blank=True, default="")
    city    = models.CharField(max_length=100, blank=True, default="", db_index=True)
    state   = models.CharField(max_length=100, blank=True, default="")
    pincode = models.CharField(max_length=10, blank=True, default="")
    notes   = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["name", "id"]

    def __str__(self):
        return self.name


class Product(TimeStampedBy):
    class Type(models.TextChoices):
        SALE = "sale", "Sale Only"
        RENT = "rent", "Rent Only"
        BOTH = "both", "Both Sale & Rent"

    class Unit(models.TextChoices):
        PIECE  = "piece",  "Piece"
        KG     = "kg",     "Kg"
        GRAM   = "gram",   "Gram"
        LITER  = "liter",  "Liter"
        METER  = "meter",  "Meter"
        BAG    = "bag",    "Bag"
        BOX    = "box",    "Box"
        BUNDLE = "bundle", "Bundle"
        TON    = "ton",    "Ton"

    name        = models.CharField(max_length=255, db_index=True)
    description = models.TextField(blank=True, default="")
    sku         = models.CharField(max_length=100, unique=True, null=True, blank=True)
    category    = models.CharField(max_length=100, blank=True, default="", db_index=True)
    unit        = models.CharField(max_length=50, choices=Unit.choices, default=Unit.PIECE)
    type        = models.CharField(max_length=10, choices=Type.choices, default=Type.BOTH, db_index=True)

    current_stock   = models.PositiveIntegerField(default=0, db_index=True)
    min_stock_level = models.PositiveIntegerField(default=0)

    sale_price            = models.DecimalField(**DECIMAL_12_2, null=True, blank=True)
    rent_price_per_day    = models.DecimalField(**DECIMAL_12_2, null=True, blank=True)
    rent_price_per_week   = models.DecimalField(**DECIMAL_12_2, null=True, blank=True)
    rent_price_per_month  = models.DecimalField(**DECIMAL_12_2, null=True, blank=True)
    security_deposit      = models.DecimalField(**DECIMAL_12_2, null=True, blank=True)

    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["type", "is_active"], name="bo_product_type_active_idx")]

    def __str__(self):
        return f"{self.name}"

    @property
    def is_rentable(self) -> bool:
        return self.is_active and self.type in (self.Type.RENT, self.Type.BOTH)

    @property
    def is_sellable(self) -> bool:
        return self.is_active and self.type in (self.Type.SALE, self.Type.BOTH)

    def rate_for(self, rate_type: str):
        """Rate card lookup; None when the product has no rate for that period."""
        return {
            "daily": self.rent_price_per_day,
            "weekly": self.rent_price_per_week,
            "monthly": self.rent_price_per_month,
        }.get(rate_type)


# ----------------------------
# RENTALS
# ----------------------------

class Rental(TimeStampedBy):
    class Status(models.TextChoices):
        ACTIVE         = "active",         "Active"
        PARTIAL_RETURN = "partial_return", "Partially Returned"
        RETURNED       = "returned",       "Returned"
        OVERDUE        = "overdue",        "Overdue"
        CANCELLED      = "cancelled",      "Cancelled"

    rental_number = models.CharField(max_length=50, unique=True)
    customer      = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name="rentals")

    start_date           = models.DateField(db_index=True)
    expected_return_date = models.DateField(db_index=True)
    actual_return_date   = models.DateField(null=True, blank=True)
    next_return_date     = models.DateField(null=True, blank=True)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE, db_index=True)

    # money
    subtotal         = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))
    security_deposit = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))
    total_charges    = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))
    late_fee         = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))
    damage_charges   = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))
    amount_paid      = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))
    amount_due       = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))
    deposit_returned = models.BooleanField(default=False)

    # settlement captured at return time
    return_payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices, blank=True, default="")
    return_payment_amount = models.DecimalField(**DECIMAL_12_2, null=True, blank=True)
    return_notes          = models.TextField(blank=True, default="")

    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["customer", "status"], name="bo_rental_customer_status_idx"),
            models.Index(fields=["status", "expected_return_date"], name="bo_rental_status_due_idx"),
        ]

    def __str__(self):
        return self.rental_number or f"Rental #{self.pk or '-'}"

    @property
    def deposit_offset(self) -> Decimal:
        return self.security_deposit if self.deposit_returned else Decimal("0.00")

    def settlement_amount(self) -> Decimal:
        """
        Amount still owed by the customer; negative means a refund is due.
        """
        return money(
            (self.total_charges or Decimal("0"))
            + (self.late_fee or Decimal("0"))
            + (self.damage_charges or Decimal("0"))
            - self.deposit_offset
            - (self.amount_paid or Decimal("0"))
        )


class RentalItem(models.Model):
    class RateType(models.TextChoices):
        DAILY   = "daily",   "Daily"
        WEEKLY  = "weekly",  "Weekly"
        MONTHLY = "monthly", "Monthly"

    rental  = models.ForeignKey(Rental, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="rental_items")

    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])

    # rate card at the time of renting
    daily_rate   = models.DecimalField(**DECIMAL_12_2, null=True, blank=True)
    weekly_rate  = models.DecimalField(**DECIMAL_12_2, null=True, blank=True)
    monthly_rate = models.DecimalField(**DECIMAL_12_2, null=True, blank=True)

    # rate actually billed
    rate_type   = models.CharField(max_length=20, choices=RateType.choices)
    rate_amount = models.DecimalField(**DECIMAL_12_2)

    total_days = models.PositiveIntegerField(default=0)
    total      = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))

    quantity_returned = models.PositiveIntegerField(default=0)
    return_date       = models.DateField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.quantity or 0} x {getattr(self.product, 'name', '-')} ({self.rate_type})"

    @property
    def remaining_quantity(self) -> int:
        return (self.quantity or 0) - (self.quantity_returned or 0)


# ----------------------------
# SALES (point of sale)
# ----------------------------

class Sale(TimeStampedBy):
    class PaymentStatus(models.TextChoices):
        PAID    = "paid",    "Paid"
        PARTIAL = "partial", "Partial"
        PENDING = "pending", "Pending"

    invoice_number = models.CharField(max_length=50, unique=True)
    customer       = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name="sales")

    subtotal = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))
    discount = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))
    tax      = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))
    total    = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))

    payment_status = models.CharField(
        max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.PENDING, db_index=True
    )
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices, blank=True, default="")
    amount_paid    = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))
    amount_due     = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))

    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return self.invoice_number


class SaleItem(models.Model):
    sale    = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="sale_items")

    quantity   = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(**DECIMAL_12_2)
    discount   = models.DecimalField(**DECIMAL_12_2, default=Decimal("0.00"))
    total      = models.DecimalField(**DECIMAL_12_2)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.quantity or 0} x {getattr(self.product, 'name', '-')}"
