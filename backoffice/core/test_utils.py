"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backoffice.inventory.models import Item
from backoffice.parties.models import Customer
from backoffice.orders.models import Order
from backoffice.orders import services as order_services
from decimal import Decimal
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_staff=False, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser
        )

    @staticmethod
    def create_staff_user(**kwargs):
        """Create a staff user (allowed to run bulk stock updates)"""
        kwargs.setdefault('is_staff', True)
        return TestDataFactory.create_user(**kwargs)

    @staticmethod
    def create_customer(name=None, phone=None, email=None, is_active=True):
        """Create a test customer"""
        if not name:
            name = f'Customer_{TestDataFactory.random_string(6)}'
        if not phone:
            phone = f'9{random.randint(100000000, 999999999)}'
        if not email:
            email = f'{name.lower()}@test.com'
        return Customer.objects.create(
            name=name,
            phone=phone,
            email=email,
            is_active=is_active
        )

    @staticmethod
    def create_item(name=None, quantity=10, price=None, unit='pieces', category='', is_active=True, min_stock_level=10):
        """Create a test item with the given stock on hand"""
        if not name:
            name = f'Item_{TestDataFactory.random_string(6)}'
        if price is None:
            price = Decimal('10.00')
        return Item.objects.create(
            name=name,
            price=Decimal(str(price)),
            unit=unit,
            category=category,
            quantity=quantity,
            min_stock_level=min_stock_level,
            is_active=is_active
        )

    @staticmethod
    def create_order(customer=None, lines=None, user=None, external_order_id=None):
        """Place a test order through the placement service so stock is reserved"""
        if not customer:
            customer = TestDataFactory.create_customer()
        if lines is None:
            item = TestDataFactory.create_item(quantity=10)
            lines = [(item.id, 1)]
        return order_services.place_order(
            customer=customer,
            lines=lines,
            user=user,
            external_order_id=external_order_id
        )

    @staticmethod
    def set_order_status(order, status):
        """Move an order to a fulfilment status without touching stock"""
        Order.objects.filter(pk=order.pk).update(status=status)
        order.refresh_from_db()
        return order


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
