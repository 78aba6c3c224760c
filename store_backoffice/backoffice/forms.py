from decimal import Decimal

from django import forms

from backoffice import errors
from .models import PaymentMethod, Rental, RentalItem

MONEY = {"max_digits": 12, "decimal_places": 2, "min_value": Decimal("0")}


# ===============================
# Rentals
# ===============================

class RentalForm(forms.Form):
    customer_id          = forms.IntegerField()
    start_date           = forms.DateField()
    expected_return_date = forms.DateField()
    security_deposit     = forms.DecimalField(required=False, **MONEY)
    notes                = forms.CharField(required=False, strip=True)

    def clean(self):
        cleaned = super().clean()
        start = cleaned.get("start_date")
        expected = cleaned.get("expected_return_date")
        if start and expected and expected < start:
            self.add_error("expected_return_date", "Expected return date cannot be before the start date.")
        return cleaned


class RentalItemForm(forms.Form):
    product_id  = forms.IntegerField()
    quantity    = forms.IntegerField(min_value=1)
    rate_type   = forms.ChoiceField(choices=RentalItem.RateType.choices)
    rate_amount = forms.DecimalField(required=False, **MONEY)


class RentalReturnForm(forms.Form):
    return_date      = forms.DateField()
    late_fee         = forms.DecimalField(required=False, **MONEY)
    damage_charges   = forms.DecimalField(required=False, **MONEY)
    deposit_returned = forms.BooleanField(required=False)
    payment_method   = forms.ChoiceField(choices=PaymentMethod.choices, required=False)
    payment_amount   = forms.DecimalField(required=False, **MONEY)
    notes            = forms.CharField(required=False, strip=True)
    next_return_date = forms.DateField(required=False)


class ItemReturnForm(forms.Form):
    item_id  = forms.IntegerField()
    quantity = forms.IntegerField(min_value=0)


class RentalFilterForm(forms.Form):
    status = forms.ChoiceField(choices=Rental.Status.choices, required=False)
    search = forms.CharField(required=False, strip=True)
    page   = forms.IntegerField(required=False, min_value=1)
    limit  = forms.IntegerField(required=False, min_value=1, max_value=100)


class LateFeeQueryForm(forms.Form):
    return_date = forms.DateField()


# ===============================
# Sales
# ===============================

class SaleForm(forms.Form):
    customer_id    = forms.IntegerField()
    discount       = forms.DecimalField(required=False, **MONEY)
    tax            = forms.DecimalField(required=False, **MONEY)
    payment_method = forms.ChoiceField(choices=PaymentMethod.choices, required=False)
    amount_paid    = forms.DecimalField(required=False, **MONEY)
    notes          = forms.CharField(required=False, strip=True)


class SaleItemForm(forms.Form):
    product_id = forms.IntegerField()
    quantity   = forms.IntegerField(min_value=1)
    unit_price = forms.DecimalField(required=False, **MONEY)
    discount   = forms.DecimalField(required=False, **MONEY)


# ===============================
# Helpers
# ===============================

def _raise_first_error(form, prefix=""):
    field, messages = next(iter(form.errors.items()))
    name = None if field == "__all__" else field
    label = f"{prefix}{name}: " if name else prefix
    raise errors.ValidationError(f"{label}{messages[0]}", field=name)


def clean_payload(form_class, data) -> dict:
    """Bind ``data`` to ``form_class`` and return cleaned data or raise ValidationError."""
    if not isinstance(data, dict):
        raise errors.ValidationError("Request body must be a JSON object")
    form = form_class(data)
    if not form.is_valid():
        _raise_first_error(form)
    return form.cleaned_data


def clean_rows(form_class, rows, field="items") -> list:
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise errors.ValidationError(f"{field} must be a list", field=field)
    cleaned = []
    for idx, row in enumerate(rows):
        if not isinstance(row, dict):
            raise errors.ValidationError(f"{field}[{idx}] must be an object", field=field)
        form = form_class(row)
        if not form.is_valid():
            _raise_first_error(form, prefix=f"{field}[{idx}] ")
        cleaned.append(form.cleaned_data)
    return cleaned
