class CatalogUnavailable(Exception):
    """The discount catalog could not be read in time."""


class UsageExhaustedAtCommit(Exception):
    """
    One or more discounts hit their usage limit between pricing and commit.
    The caller drops them and prices the order again.
    """

    def __init__(self, discount_ids):
        self.discount_ids = list(discount_ids)
        super().__init__(
            f"Usage limit reached at commit for discounts: {', '.join(str(i) for i in self.discount_ids)}"
        )
