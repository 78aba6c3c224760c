# backoffice/admin.py
from django.contrib import admin

from .models import Customer, Product, Rental, RentalItem, Sale, SaleItem


class StampedAdmin(admin.ModelAdmin):
    readonly_fields = ("created_at", "updated_at", "created_by", "updated_by")

    def save_model(self, request, obj, form, change):
        if not change and not obj.created_by_id:
            obj.created_by = request.user
        obj.updated_by = request.user
        super().save_model(request, obj, form, change)


@admin.register(Customer)
class CustomerAdmin(StampedAdmin):
    list_display = ("name", "phone", "email", "city", "created_at")
    search_fields = ("name", "phone", "email", "city")
    list_filter = ("city",)
    ordering = ("name",)


@admin.register(Product)
class ProductAdmin(StampedAdmin):
    list_display = (
        "name",
        "sku",
        "category",
        "type",
        "current_stock",
        "sale_price",
        "rent_price_per_day",
        "is_active",
    )
    list_filter = ("type", "is_active", "category")
    search_fields = ("name", "sku", "category")
    ordering = ("name",)

    fieldsets = (
        ("Product", {
            "fields": ("name", "description", "sku", "category", "unit", "type", "is_active"),
        }),
        ("Stock", {
            "fields": ("current_stock", "min_stock_level"),
        }),
        ("Pricing", {
            "fields": (
                "sale_price",
                "rent_price_per_day",
                "rent_price_per_week",
                "rent_price_per_month",
                "security_deposit",
            ),
        }),
        ("Audit", {
            "fields": ("created_at", "updated_at", "created_by", "updated_by"),
            "classes": ("collapse",),
        }),
    )


class RentalItemInline(admin.TabularInline):
    model = RentalItem
    extra = 0
    autocomplete_fields = ("product",)
    fields = ("product", "quantity", "rate_type", "rate_amount", "total_days", "total",
              "quantity_returned", "return_date")
    readonly_fields = ("total_days", "total", "quantity_returned", "return_date")


@admin.register(Rental)
class RentalAdmin(StampedAdmin):
    list_display = (
        "rental_number",
        "customer",
        "start_date",
        "expected_return_date",
        "status",
        "subtotal",
        "amount_due",
    )
    list_select_related = ("customer",)
    list_filter = ("status", ("start_date", admin.DateFieldListFilter))
    search_fields = ("rental_number", "customer__name", "customer__phone")
    autocomplete_fields = ("customer",)
    date_hierarchy = "start_date"
    inlines = [RentalItemInline]
    # money fields are owned by the rental engine
    readonly_fields = StampedAdmin.readonly_fields + (
        "subtotal",
        "total_charges",
        "late_fee",
        "damage_charges",
        "amount_due",
    )


class SaleItemInline(admin.TabularInline):
    model = SaleItem
    extra = 0
    autocomplete_fields = ("product",)
    readonly_fields = ("total",)


@admin.register(Sale)
class SaleAdmin(StampedAdmin):
    list_display = ("invoice_number", "customer", "total", "payment_status", "amount_due", "created_at")
    list_select_related = ("customer",)
    list_filter = ("payment_status", "payment_method")
    search_fields = ("invoice_number", "customer__name")
    autocomplete_fields = ("customer",)
    inlines = [SaleItemInline]
