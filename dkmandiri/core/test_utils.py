"""
Test utilities and factories for creating test data
"""
import random
import string
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from dkmandiri.core.formatting import line_total
from dkmandiri.core.utils import generate_reference_number
from dkmandiri.catalog.models import Category, Product
from dkmandiri.parties.models import Address
from dkmandiri.orders.models import Cart, CartItem, Order, OrderItem, Transaction

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role='USER', phone=None, name=''):
        """Create a test customer"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            phone=phone,
            name=name,
        )

    @staticmethod
    def create_admin(username=None, email=None, password='testpass123'):
        """Create a dashboard administrator"""
        if not username:
            username = f'admin_{TestDataFactory.random_string(6)}'
        return TestDataFactory.create_user(username=username, email=email, password=password, role='ADMIN')

    @staticmethod
    def create_category(name=None, slug=None, description=''):
        """Create a test category"""
        if not name:
            name = f'Category {TestDataFactory.random_string(6)}'
        if not slug:
            slug = f'category-{TestDataFactory.random_string(8).lower()}'
        return Category.objects.create(name=name, slug=slug, description=description)

    @staticmethod
    def create_product(name=None, category=None, price=Decimal('50000'), cost_price=Decimal('30000'),
                       weight_in_stock=Decimal('10000'), min_order_weight=Decimal('500'),
                       is_available=True, slug=None, description=''):
        """Create a test product, prices per kg and weights in grams"""
        if not name:
            name = f'Product {TestDataFactory.random_string(6)}'
        if not slug:
            slug = f'product-{TestDataFactory.random_string(8).lower()}'
        return Product.objects.create(
            name=name,
            slug=slug,
            description=description,
            category=category,
            price=Decimal(price),
            cost_price=Decimal(cost_price),
            weight_in_stock=Decimal(weight_in_stock),
            min_order_weight=Decimal(min_order_weight),
            is_available=is_available,
        )

    @staticmethod
    def create_address(user, is_primary=True, city='Cilacap', **kwargs):
        """Create a test delivery address"""
        data = {
            'recipient_name': user.name or user.username,
            'phone': '081234567890',
            'full_address': 'Jl. Raya Nusawungu No. 1',
            'district': 'Nusawungu',
            'province': 'Jawa Tengah',
            'postal_code': '53283',
        }
        data.update(kwargs)
        return Address.objects.create(user=user, city=city, is_primary=is_primary, **data)

    @staticmethod
    def create_cart_item(user, product, weight=Decimal('1000')):
        """Put a product in the user's online cart"""
        cart, _ = Cart.objects.get_or_create(user=user)
        return CartItem.objects.create(cart=cart, product=product, weight=Decimal(weight))

    @staticmethod
    def create_order(user=None, items=None, status='PENDING', order_type='ONLINE',
                     payment_method='manual', payment_status='PENDING',
                     shipping_method='pickup', shipping_cost=Decimal('0'), created_at=None,
                     customer_phone='081234567890', with_transaction=True):
        """
        Create an order with items and, by default, its transaction.

        items is a list of (product, weight_in_grams) tuples. Stock is not touched.
        """
        order = Order.objects.create(
            order_number=generate_reference_number('ORD' if order_type == 'ONLINE' else 'POS', Order, 'order_number'),
            user=user,
            order_type=order_type,
            status=status,
            shipping_method=shipping_method,
            shipping_cost=Decimal(shipping_cost),
            shipping_address='Jl. Raya Nusawungu No. 1, Cilacap',
            customer_name=(user.username if user else 'Walk-in Customer'),
            customer_phone=customer_phone,
            created_at=created_at or timezone.now(),
        )

        subtotal = Decimal('0')
        for product, weight in items or []:
            total = line_total(weight, product.price)
            OrderItem.objects.create(
                order=order,
                product=product,
                product_name=product.name,
                weight=Decimal(weight),
                price=product.price,
                cost_price=product.cost_price,
                total_price=total,
            )
            subtotal += total

        order.total_amount = subtotal + order.shipping_cost
        order.save(update_fields=['total_amount'])

        if with_transaction:
            Transaction.objects.create(
                order=order,
                amount=order.total_amount,
                payment_method=payment_method,
                status=payment_status,
                transaction_date=order.created_at,
            )
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
