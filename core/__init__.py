class EntityStatus:
    ACTIVE = "active"
    DELETED = "deleted"

    CHOICES = (
        (ACTIVE, "Active"),
        (DELETED, "Deleted")
    )


class Currency:
    TRY = '₺'
    USD = '$'
    EUR = '€'

    CHOICES = (
        (TRY, 'TRY'),
        (USD, 'USD'),
        (EUR, 'EUR')
    )
