from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError

from discounts import DiscountType

MAX_PERCENTAGE = Decimal('100')
MIN_PRIORITY = 0
MAX_PRIORITY = 100


def _to_decimal(value):
    if value is None or value == '':
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def validate_discount_data(data):
    """
    Validate a discount definition before it is saved.

    `data` is a dict keyed by Discount field names; scope relations, when
    present, are lists of ids or instances. Every failing field is reported
    at once as a field-level ValidationError.
    """
    errors = {}

    discount_type = data.get('discount_type')
    discount_value = _to_decimal(data.get('discount_value'))

    if discount_value is None:
        errors['discount_value'] = 'Discount value is required.'
    elif discount_value <= 0:
        errors['discount_value'] = 'Discount value must be greater than zero.'
    elif discount_type == DiscountType.PERCENTAGE and discount_value > MAX_PERCENTAGE:
        errors['discount_value'] = 'Percentage discount cannot exceed 100.'

    start_date = data.get('start_date')
    end_date = data.get('end_date')
    if start_date is None:
        errors['start_date'] = 'Start date is required.'
    if end_date is None:
        errors['end_date'] = 'End date is required.'
    elif start_date is not None and start_date >= end_date:
        errors['end_date'] = 'End date must be after start date.'

    if data.get('applicable_variants') and data.get('applicable_categories'):
        errors['applicable_categories'] = (
            'A discount can target variants or categories, not both.'
        )

    for field in ('minimum_order_amount', 'maximum_discount_amount'):
        amount = _to_decimal(data.get(field))
        if amount is not None and amount < 0:
            errors[field] = 'Amount cannot be negative.'

    usage_limit = data.get('usage_limit')
    if usage_limit is not None and usage_limit < 1:
        errors['usage_limit'] = 'Usage limit must be at least 1.'

    per_customer = data.get('usage_limit_per_customer')
    if per_customer is not None:
        if per_customer < 1:
            errors['usage_limit_per_customer'] = 'Per-dealer usage limit must be at least 1.'
        elif usage_limit is not None and per_customer > usage_limit:
            errors['usage_limit_per_customer'] = (
                'Per-dealer usage limit cannot exceed the total usage limit.'
            )

    priority = data.get('priority')
    if priority is not None and not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        errors['priority'] = f'Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}.'

    if data.get('auto_apply') is False and not data.get('discount_code'):
        errors['discount_code'] = 'A discount that is not auto-applied needs a discount code.'

    if errors:
        raise ValidationError(errors)
