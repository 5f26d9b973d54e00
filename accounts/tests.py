import uuid

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from accounts.backends import EmailBackend, User
from accounts.models import Dealer
from accounts.utils import get_request_dealer
from orders.factories import DealerFactory, UserFactory


class TokenAPITest(APITestCase):
    """Test cases for JWT login."""

    def setUp(self):
        self.dealer = DealerFactory()
        self.user = User.objects.create_user(
            email='Buyer@Example.com',
            first_name='Ayse',
            last_name='Yilmaz',
            password='s3cret-pass',
            dealer=self.dealer,
        )

    def test_obtain_token(self):
        """Test that a dealer user logs in with email and password."""
        response = self.client.post(reverse('token-obtain'), {
            'email': 'BUYER@example.com',
            'password': 's3cret-pass'
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    def test_obtain_token_wrong_password(self):
        response = self.client.post(reverse('token-obtain'), {
            'email': 'buyer@example.com',
            'password': 'wrong'
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_token_grants_api_access(self):
        token = self.client.post(reverse('token-obtain'), {
            'email': 'buyer@example.com',
            'password': 's3cret-pass'
        }, format='json').data['access']

        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        response = self.client.get(reverse('order-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)


class EmailBackendTest(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(
            email='admin@example.com', first_name='Admin', last_name='User', password='pass-1234'
        )
        self.backend = EmailBackend()

    def test_authenticate_with_username_argument(self):
        """Test that the admin login form, which sends 'username', works."""
        user = self.backend.authenticate(None, username=' ADMIN@example.com ', password='pass-1234')
        self.assertEqual(user, self.user)

    def test_authenticate_inactive_user(self):
        self.user.is_active = False
        self.user.save()

        self.assertIsNone(self.backend.authenticate(None, email='admin@example.com', password='pass-1234'))

    def test_authenticate_unknown_email(self):
        self.assertIsNone(self.backend.authenticate(None, email='nobody@example.com', password='x'))

    def test_get_user(self):
        self.assertEqual(self.backend.get_user(self.user.id), self.user)
        self.assertIsNone(self.backend.get_user(uuid.uuid4()))


class UserManagerTest(TestCase):

    def test_create_user_normalizes_names(self):
        user = User.objects.create_user(
            email='Someone@Example.COM', first_name='  Mehmet  Ali ', last_name=' Kaya', password='pass-1234'
        )

        self.assertEqual(user.email, 'someone@example.com')
        self.assertEqual(user.first_name, 'Mehmet Ali')
        self.assertEqual(user.last_name, 'Kaya')
        self.assertFalse(user.is_staff)

    def test_create_user_requires_password(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(email='a@example.com', first_name='A', last_name='B')

    def test_create_superuser(self):
        user = User.objects.create_superuser(
            email='root@example.com', first_name='Root', last_name='User', password='pass-1234'
        )

        self.assertTrue(user.is_staff)
        self.assertTrue(user.is_superuser)


class RequestDealerTest(TestCase):

    def setUp(self):
        self.dealer = DealerFactory()
        self.other = DealerFactory()

    def test_dealer_user_gets_own_dealer(self):
        """Test that dealer users cannot act for another dealer."""
        user = UserFactory(dealer=self.dealer)

        self.assertEqual(get_request_dealer(user, self.other.id), self.dealer)

    def test_admin_picks_dealer(self):
        admin = UserFactory(is_staff=True, dealer=None)

        self.assertEqual(get_request_dealer(admin, self.other.id), self.other)
        self.assertIsNone(get_request_dealer(admin))

    def test_admin_unknown_or_inactive_dealer(self):
        admin = UserFactory(is_staff=True, dealer=None)
        self.other.is_active = False
        self.other.save()

        with self.assertRaises(Dealer.DoesNotExist):
            get_request_dealer(admin, uuid.uuid4())
        with self.assertRaises(Dealer.DoesNotExist):
            get_request_dealer(admin, self.other.id)
