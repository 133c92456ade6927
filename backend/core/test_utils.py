"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backend.catalog.models import Category, Subcategory, SubSubCategory, Product, ProductVariant
from backend.catalog.utils import slugify
from backend.inventory.services import ensure_inventory, apply_inventory_movement
from backend.parties.models import Customer, Supplier
from backend.parties.services import create_credit
from backend.pos.services import create_cart, add_cart_item, create_order
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
    def random_phone():
        return f'+2526{random.randint(10000000, 99999999)}'

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_staff=False, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser
        )
        return user

    @staticmethod
    def create_subsubcategory(name=None):
        """Create a three-level category path and return the leaf"""
        suffix = TestDataFactory.random_string(6).lower()
        category = Category.objects.create(name=f'Category {suffix}', slug=f'category-{suffix}')
        subcategory = Subcategory.objects.create(category=category, name=f'Sub {suffix}', slug=f'sub-{suffix}')
        name = name or f'Leaf {suffix}'
        return SubSubCategory.objects.create(subcategory=subcategory, name=name, slug=slugify(name))

    @staticmethod
    def create_product(name=None, subsubcategory=None, tags=None, brand=None, is_active=True):
        """Create a test product"""
        if not name:
            name = f'Product {TestDataFactory.random_string(6)}'
        if not subsubcategory:
            subsubcategory = TestDataFactory.create_subsubcategory()
        return Product.objects.create(
            subsubcategory=subsubcategory,
            name=name,
            slug=f'{slugify(name)}-{TestDataFactory.random_string(4).lower()}',
            tags=tags or [],
            brand=brand,
            is_active=is_active
        )

    @staticmethod
    def create_variant(product=None, name=None, variant_type='unit', sell_price=None, pack_size_g=None):
        """Create a test variant with its (empty) inventory row"""
        if not product:
            product = TestDataFactory.create_product()
        if sell_price is None:
            sell_price = Decimal('10.00')
        variant = ProductVariant.objects.create(
            product=product,
            name=name or ('Loose' if variant_type == 'weight' else 'Single'),
            variant_type=variant_type,
            pack_size_g=pack_size_g if variant_type == 'weight' else None,
            sell_price=sell_price
        )
        ensure_inventory(variant)
        return variant

    @staticmethod
    def create_weight_variant(product=None, sell_price=None):
        """Weight variant priced per kg"""
        return TestDataFactory.create_variant(
            product=product,
            variant_type='weight',
            sell_price=sell_price if sell_price is not None else Decimal('8.00')
        )

    @staticmethod
    def stock_variant(variant, qty_g=0, qty_units=0, cost_total=None, supplier_name=None, user=None):
        """Restock a variant through the movement ledger"""
        movement, inventory = apply_inventory_movement(
            variant,
            'restock',
            qty_g=qty_g,
            qty_units=qty_units,
            cost_total=cost_total,
            supplier_name=supplier_name,
            user=user
        )
        return inventory

    @staticmethod
    def create_customer(name=None, phone=None, address=''):
        """Create a test customer"""
        if not name:
            name = f'Customer {TestDataFactory.random_string(6)}'
        if not phone:
            phone = TestDataFactory.random_phone()
        return Customer.objects.create(name=name, phone=phone, address=address)

    @staticmethod
    def create_supplier(name=None, phone=None):
        """Create a test supplier"""
        if not name:
            name = f'Supplier {TestDataFactory.random_string(6)}'
        return Supplier.objects.create(name=name, phone=phone or TestDataFactory.random_phone())

    @staticmethod
    def create_credit(amount, customer=None, customer_name=None, customer_phone=None, note='', user=None):
        """Create a test credit row"""
        return create_credit(
            Decimal(amount),
            customer=customer,
            customer_name=customer_name,
            customer_phone=customer_phone,
            note=note,
            user=user
        )

    @staticmethod
    def create_cart(user, items=None, payment_method='cash', customer_name='', customer_phone=''):
        """Create a cart; items is a list of (variant, qty_g, qty_units)"""
        cart = create_cart(
            user=user,
            customer_name=customer_name,
            customer_phone=customer_phone,
            payment_method=payment_method
        )
        for variant, qty_g, qty_units in items or []:
            add_cart_item(cart, variant, qty_g=qty_g, qty_units=qty_units)
        return cart

    @staticmethod
    def create_order(user, items, customer=None, channel='whatsapp', payment_method='cod', delivery_fee=Decimal('0.00')):
        """Create a pending order; items is a list of (variant, qty_g, qty_units)"""
        return create_order(
            [{'variant': v, 'qty_g': g, 'qty_units': u} for v, g, u in items],
            channel=channel,
            customer=customer,
            payment_method=payment_method,
            delivery_fee=delivery_fee,
            user=user
        )


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
