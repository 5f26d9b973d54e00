class DiscountType:
    PERCENTAGE = 'PERCENTAGE'
    FIXED_AMOUNT = 'FIXED_AMOUNT'

    CHOICES = (
        (PERCENTAGE, 'Percentage'),
        (FIXED_AMOUNT, 'Fixed Amount'),
    )


class DiscountScope:
    GENERAL = 'GENERAL'
    CATEGORY = 'CATEGORY'
    VARIANT = 'VARIANT'

    CHOICES = (
        (GENERAL, 'General'),
        (CATEGORY, 'Category'),
        (VARIANT, 'Variant')
    )


class ValidityStatus:
    EXPIRED = 'EXPIRED'
    NOT_YET_STARTED = 'NOT_YET_STARTED'
    INACTIVE = 'INACTIVE'
    USAGE_EXHAUSTED = 'USAGE_EXHAUSTED'
    ACTIVE = 'ACTIVE'

    CHOICES = (
        (EXPIRED, 'Expired'),
        (NOT_YET_STARTED, 'Not yet started'),
        (INACTIVE, 'Inactive'),
        (USAGE_EXHAUSTED, 'Usage exhausted'),
        (ACTIVE, 'Active'),
    )


class DiscountEventType:
    CREATED = 'CREATED'
    UPDATED = 'UPDATED'
    APPLIED = 'APPLIED'
    EXPIRED = 'EXPIRED'
    SOON_EXPIRING = 'SOON_EXPIRING'

    CHOICES = (
        (CREATED, 'Created'),
        (UPDATED, 'Updated'),
        (APPLIED, 'Applied'),
        (EXPIRED, 'Expired'),
        (SOON_EXPIRING, 'Soon expiring'),
    )
