from accounts.models import Dealer


def get_request_dealer(user, dealer_id=None):
    """
    Dealer a request prices for. Administrators may name any dealer; dealer
    users always get their own, whatever they send.

    Raises Dealer.DoesNotExist for an unknown dealer_id.
    """
    if user.is_staff and dealer_id:
        return Dealer.objects.get(id=dealer_id, is_active=True)
    return user.dealer
