import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import core.validators


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('accounts', '0001_initial'),
        ('orders', '0001_initial'),
        ('products', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Discount',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier for this record', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('status', models.CharField(choices=[('active', 'Active'), ('deleted', 'Deleted')], db_index=True, default='active', help_text='Entity status. DELETED rows are never loaded by live queries.', max_length=20)),
                ('name', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('discount_type', models.CharField(choices=[('PERCENTAGE', 'Percentage'), ('FIXED_AMOUNT', 'Fixed Amount')], max_length=20)),
                ('discount_value', models.DecimalField(decimal_places=2, max_digits=12)),
                ('start_date', models.DateTimeField()),
                ('end_date', models.DateTimeField()),
                ('is_active', models.BooleanField(db_index=True, default=True, help_text='Campaign switch, independent of the date window')),
                ('minimum_order_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, validators=[core.validators.validate_non_negative_amount])),
                ('maximum_discount_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, validators=[core.validators.validate_non_negative_amount])),
                ('usage_limit', models.PositiveIntegerField(blank=True, null=True)),
                ('usage_count', models.PositiveIntegerField(default=0)),
                ('usage_limit_per_customer', models.PositiveIntegerField(blank=True, null=True)),
                ('discount_code', models.CharField(blank=True, help_text='Promo code the dealer enters at checkout', max_length=64, null=True, unique=True)),
                ('auto_apply', models.BooleanField(default=True)),
                ('priority', models.PositiveSmallIntegerField(default=0, help_text='0-100, higher wins ties')),
                ('stackable', models.BooleanField(default=False)),
                ('applicable_categories', models.ManyToManyField(blank=True, related_name='discounts', to='products.category')),
                ('applicable_dealers', models.ManyToManyField(blank=True, related_name='discounts', to='accounts.dealer')),
                ('applicable_variants', models.ManyToManyField(blank=True, related_name='discounts', to='products.productvariant')),
            ],
            options={
                'verbose_name': 'Discount',
                'verbose_name_plural': 'Discounts',
                'ordering': ('-priority', 'id'),
            },
        ),
        migrations.CreateModel(
            name='DiscountEvent',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier for this record', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('event_type', models.CharField(choices=[('CREATED', 'Created'), ('UPDATED', 'Updated'), ('APPLIED', 'Applied'), ('EXPIRED', 'Expired'), ('SOON_EXPIRING', 'Soon expiring')], db_index=True, max_length=20)),
                ('payload', models.JSONField(default=dict)),
                ('dispatched_at', models.DateTimeField(blank=True, db_index=True, null=True)),
                ('discount', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='events', to='discounts.discount')),
            ],
            options={
                'verbose_name': 'Discount Event',
                'verbose_name_plural': 'Discount Events',
                'ordering': ('-created_at',),
            },
        ),
        migrations.CreateModel(
            name='AppliedDiscount',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier for this record', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('is_active', models.BooleanField(db_index=True, default=True, help_text='Soft delete flag. Set to False to deactivate.')),
                ('discount_amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('order_total', models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ('metadata', models.JSONField(blank=True, null=True)),
                ('dealer', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='applied_discounts', to='accounts.dealer')),
                ('discount', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='applications', to='discounts.discount')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='applied_discounts', to='orders.order')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='applied_discounts', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Applied Discount',
                'verbose_name_plural': 'Applied Discounts',
                'ordering': ('-created_at',),
                'unique_together': {('order', 'discount')},
            },
        ),
    ]
