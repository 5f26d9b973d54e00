from decimal import Decimal

from django.core.exceptions import ValidationError
from phonenumber_field.phonenumber import to_python
from phonenumbers.phonenumberutil import is_possible_number


def validate_possible_number(phone, country=None):
    """
    Validate a dealer contact number using the phonenumbers library.
    Raises a ValidationError with a specific code for each failure.
    """
    if not phone:
        raise ValidationError(
            "Phone number is required.",
            code="required",
        )

    try:
        phone_number = to_python(phone, country)
    except Exception:
        raise ValidationError(
            "Invalid phone number format. Use international format with country code (e.g., +90 212 555 0000).",
            code="invalid_format",
        )

    if not phone_number:
        raise ValidationError(
            "Could not parse phone number. Include the country code (e.g., +90 for Turkey, +1 for US).",
            code="parse_error",
        )

    if not is_possible_number(phone_number):
        raise ValidationError(
            f"Phone number {phone} has incorrect length for its country code.",
            code="invalid_length",
        )

    if not phone_number.is_valid():
        raise ValidationError(
            f"Phone number {phone} is not a valid number for its region.",
            code="invalid",
        )

    return phone_number


def validate_non_negative_amount(value):
    """Monetary amounts stored on catalog records may be zero but never negative."""
    if value is not None and Decimal(value) < 0:
        raise ValidationError(
            "Amount cannot be negative.",
            code="negative_amount",
        )


def validate_positive_amount(value):
    if value is None or Decimal(value) <= 0:
        raise ValidationError(
            "Amount must be greater than zero.",
            code="non_positive_amount",
        )
