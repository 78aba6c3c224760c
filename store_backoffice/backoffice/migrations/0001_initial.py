# Initial schema for customers, products, rentals and sales

from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


PAYMENT_METHODS = [
    ('cash', 'Cash'),
    ('card', 'Card'),
    ('upi', 'UPI'),
    ('bank_transfer', 'Bank Transfer'),
    ('cheque', 'Cheque'),
]


def stamped():
    return [
        ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
        ('updated_at', models.DateTimeField(auto_now=True, db_index=True)),
        ('created_by', models.ForeignKey(
            blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
            related_name='%(class)s_created', to=settings.AUTH_USER_MODEL)),
        ('updated_by', models.ForeignKey(
            blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
            related_name='%(class)s_updated', to=settings.AUTH_USER_MODEL)),
    ]


def money(**kwargs):
    return models.DecimalField(decimal_places=2, max_digits=12, **kwargs)


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Customer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *stamped(),
                ('name', models.CharField(db_index=True, max_length=255)),
                ('email', models.EmailField(blank=True, db_index=True, default='', max_length=254)),
                ('phone', models.CharField(db_index=True, max_length=20)),
                ('address', models.TextField(blank=True, default='')),
                ('city', models.CharField(blank=True, db_index=True, default='', max_length=100)),
                ('state', models.CharField(blank=True, default='', max_length=100)),
                ('pincode', models.CharField(blank=True, default='', max_length=10)),
                ('notes', models.TextField(blank=True, default='')),
            ],
            options={
                'ordering': ['name', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *stamped(),
                ('name', models.CharField(db_index=True, max_length=255)),
                ('description', models.TextField(blank=True, default='')),
                ('sku', models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ('category', models.CharField(blank=True, db_index=True, default='', max_length=100)),
                ('unit', models.CharField(
                    choices=[('piece', 'Piece'), ('kg', 'Kg'), ('gram', 'Gram'), ('liter', 'Liter'),
                             ('meter', 'Meter'), ('bag', 'Bag'), ('box', 'Box'), ('bundle', 'Bundle'),
                             ('ton', 'Ton')],
                    default='piece', max_length=50)),
                ('type', models.CharField(
                    choices=[('sale', 'Sale Only'), ('rent', 'Rent Only'), ('both', 'Both Sale & Rent')],
                    db_index=True, default='both', max_length=10)),
                ('current_stock', models.PositiveIntegerField(db_index=True, default=0)),
                ('min_stock_level', models.PositiveIntegerField(default=0)),
                ('sale_price', money(blank=True, null=True)),
                ('rent_price_per_day', money(blank=True, null=True)),
                ('rent_price_per_week', money(blank=True, null=True)),
                ('rent_price_per_month', money(blank=True, null=True)),
                ('security_deposit', money(blank=True, null=True)),
                ('is_active', models.BooleanField(db_index=True, default=True)),
            ],
            options={
                'ordering': ['-created_at', '-id'],
                'indexes': [models.Index(fields=['type', 'is_active'], name='bo_product_type_active_idx')],
            },
        ),
        migrations.CreateModel(
            name='Rental',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *stamped(),
                ('rental_number', models.CharField(max_length=50, unique=True)),
                ('customer', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='rentals', to='backoffice.customer')),
                ('start_date', models.DateField(db_index=True)),
                ('expected_return_date', models.DateField(db_index=True)),
                ('actual_return_date', models.DateField(blank=True, null=True)),
                ('next_return_date', models.DateField(blank=True, null=True)),
                ('status', models.CharField(
                    choices=[('active', 'Active'), ('partial_return', 'Partially Returned'),
                             ('returned', 'Returned'), ('overdue', 'Overdue'), ('cancelled', 'Cancelled')],
                    db_index=True, default='active', max_length=20)),
                ('subtotal', money(default=Decimal('0.00'))),
                ('security_deposit', money(default=Decimal('0.00'))),
                ('total_charges', money(default=Decimal('0.00'))),
                ('late_fee', money(default=Decimal('0.00'))),
                ('damage_charges', money(default=Decimal('0.00'))),
                ('amount_paid', money(default=Decimal('0.00'))),
                ('amount_due', money(default=Decimal('0.00'))),
                ('deposit_returned', models.BooleanField(default=False)),
                ('return_payment_method', models.CharField(
                    blank=True, choices=PAYMENT_METHODS, default='', max_length=20)),
                ('return_payment_amount', money(blank=True, null=True)),
                ('return_notes', models.TextField(blank=True, default='')),
                ('notes', models.TextField(blank=True, default='')),
            ],
            options={
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['customer', 'status'], name='bo_rental_customer_status_idx'),
                    models.Index(fields=['status', 'expected_return_date'], name='bo_rental_status_due_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RentalItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rental', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name='items', to='backoffice.rental')),
                ('product', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='rental_items', to='backoffice.product')),
                ('quantity', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('daily_rate', money(blank=True, null=True)),
                ('weekly_rate', money(blank=True, null=True)),
                ('monthly_rate', money(blank=True, null=True)),
                ('rate_type', models.CharField(
                    choices=[('daily', 'Daily'), ('weekly', 'Weekly'), ('monthly', 'Monthly')], max_length=20)),
                ('rate_amount', money()),
                ('total_days', models.PositiveIntegerField(default=0)),
                ('total', money(default=Decimal('0.00'))),
                ('quantity_returned', models.PositiveIntegerField(default=0)),
                ('return_date', models.DateField(blank=True, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                'ordering': ['id'],
            },
        ),
        migrations.CreateModel(
            name='Sale',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *stamped(),
                ('invoice_number', models.CharField(max_length=50, unique=True)),
                ('customer', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='sales', to='backoffice.customer')),
                ('subtotal', money(default=Decimal('0.00'))),
                ('discount', money(default=Decimal('0.00'))),
                ('tax', money(default=Decimal('0.00'))),
                ('total', money(default=Decimal('0.00'))),
                ('payment_status', models.CharField(
                    choices=[('paid', 'Paid'), ('partial', 'Partial'), ('pending', 'Pending')],
                    db_index=True, default='pending', max_length=10)),
                ('payment_method', models.CharField(blank=True, choices=PAYMENT_METHODS, default='', max_length=20)),
                ('amount_paid', money(default=Decimal('0.00'))),
                ('amount_due', money(default=Decimal('0.00'))),
                ('notes', models.TextField(blank=True, default='')),
            ],
            options={
                'ordering': ['-created_at', '-id'],
            },
        ),
        migrations.CreateModel(
            name='SaleItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sale', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name='items', to='backoffice.sale')),
                ('product', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='sale_items', to='backoffice.product')),
                ('quantity', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('unit_price', money()),
                ('discount', money(default=Decimal('0.00'))),
                ('total', money()),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                'ordering': ['id'],
            },
        ),
    ]
