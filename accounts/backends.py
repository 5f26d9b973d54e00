from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend

User = get_user_model()


class EmailBackend(ModelBackend):
    """Authenticate dealer staff and administrators by email."""

    def authenticate(
            self, request,
            username=None,
            email=None,
            password=None,
            **kwargs
    ):
        # Django admin and simplejwt send the USERNAME_FIELD value as 'username' or 'email'
        email = (email or username or '').lower().strip()

        if not email or not password:
            return None

        try:
            user = User.objects.select_related('dealer').get(email=email)
        except User.DoesNotExist:
            return None

        if user.check_password(password) and self.user_can_authenticate(user):
            return user
        return None

    def get_user(self, user_id):
        try:
            return User.objects.select_related('dealer').get(pk=user_id)
        except User.DoesNotExist:
            return None
