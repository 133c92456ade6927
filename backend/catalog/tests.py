"""
Test suite for Catalog module
Tests: Category tree, slugs, products (tags, search), variants (weight/unit rules), images
"""
from decimal import Decimal
from django.test import TestCase
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.models import AuditLog
from backend.catalog.models import Category, Subcategory, Product, ProductVariant, ProductVariantImage
from backend.catalog.utils import slugify, parse_tags
from backend.inventory.models import Inventory


class CatalogUtilsTests(TestCase):
    """Test slug and tag helpers"""

    def test_slugify(self):
        """Test slugify lowercases, drops quotes and collapses separators"""
        self.assertEqual(slugify("Kid's  Rice (5kg)"), 'kids-rice-5kg')
        self.assertEqual(slugify('  --Sugar--  '), 'sugar')
        self.assertEqual(slugify(''), '')

    def test_parse_tags(self):
        """Test tags are trimmed and de-duplicated case-insensitively"""
        self.assertEqual(parse_tags('rice, Basmati , rice, ,RICE'), ['rice', 'Basmati'])
        self.assertEqual(parse_tags(['a', 'A', ' b ']), ['a', 'b'])
        self.assertEqual(parse_tags(None), [])


class CategoryAPITests(TestCase):
    """Test category, subcategory and sub-subcategory endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_category_generates_slug(self):
        """Test slug is generated from the name"""
        response = self.client.post('/api/v1/categories/', {'name': 'Rice & Grains'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'rice-grains')

    def test_duplicate_slug_gets_suffix(self):
        """Test colliding slugs get -2, -3 suffixes"""
        self.client.post('/api/v1/categories/', {'name': 'Oil'}, format='json')
        second = self.client.post('/api/v1/categories/', {'name': 'Oil'}, format='json')
        third = self.client.post('/api/v1/categories/', {'name': 'OIL'}, format='json')
        self.assertEqual(second.data['slug'], 'oil-2')
        self.assertEqual(third.data['slug'], 'oil-3')

    def test_subcategory_slug_scoped_to_category(self):
        """Test the same subcategory slug is allowed under different categories"""
        first = Category.objects.create(name='Food', slug='food')
        second = Category.objects.create(name='Drinks', slug='drinks')
        a = self.client.post('/api/v1/subcategories/', {'category': first.id, 'name': 'Local'}, format='json')
        b = self.client.post('/api/v1/subcategories/', {'category': second.id, 'name': 'Local'}, format='json')
        c = self.client.post('/api/v1/subcategories/', {'category': first.id, 'name': 'Local'}, format='json')
        self.assertEqual(a.status_code, status.HTTP_201_CREATED)
        self.assertEqual(b.data['slug'], 'local')
        self.assertEqual(c.data['slug'], 'local-2')

    def test_category_tree(self):
        """Test nested category tree"""
        leaf = TestDataFactory.create_subsubcategory(name='Basmati')
        response = self.client.get('/api/v1/categories/tree/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        sub = response.data[0]['subcategories'][0]
        self.assertEqual(sub['subsubcategories'][0]['id'], leaf.id)

    def test_delete_category_cascades(self):
        """Test deleting a category removes its subtree"""
        leaf = TestDataFactory.create_subsubcategory()
        category = leaf.subcategory.category
        response = self.client.delete(f'/api/v1/categories/{category.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Subcategory.objects.filter(category_id=category.id).exists())


class ProductAPITests(TestCase):
    """Test product endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.leaf = TestDataFactory.create_subsubcategory()

    def test_create_product_with_tags(self):
        """Test product creation normalises tags and writes an audit log"""
        data = {
            'subsubcategory': self.leaf.id,
            'name': 'Basmati Rice',
            'brand': '  Tilda ',
            'tags': 'rice, long grain, Rice',
        }
        response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'basmati-rice')
        self.assertEqual(response.data['tags'], ['rice', 'long grain'])
        self.assertEqual(response.data['brand'], 'Tilda')
        self.assertTrue(AuditLog.objects.filter(model_name='Product', action='create').exists())

    def test_blank_brand_stored_as_null(self):
        """Test empty brand becomes null"""
        data = {'subsubcategory': self.leaf.id, 'name': 'Sugar', 'brand': ''}
        response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(Product.objects.get(pk=response.data['id']).brand)

    def test_search_matches_all_words(self):
        """Test search requires every word to match name, brand, description or tags"""
        TestDataFactory.create_product(name='Basmati Rice', brand='Tilda', subsubcategory=self.leaf)
        TestDataFactory.create_product(name='Jasmine Rice', tags=['fragrant'], subsubcategory=self.leaf)
        response = self.client.get('/api/v1/products/?search=rice tilda')
        self.assertEqual(len(response.data), 1)
        response = self.client.get('/api/v1/products/?search=fragrant')
        self.assertEqual(response.data[0]['name'], 'Jasmine Rice')
        response = self.client.get('/api/v1/products/?search=rice')
        self.assertEqual(len(response.data), 2)

    def test_filter_by_category(self):
        """Test filtering products by top-level category"""
        TestDataFactory.create_product(subsubcategory=self.leaf)
        TestDataFactory.create_product()
        category_id = self.leaf.subcategory.category_id
        response = self.client.get(f'/api/v1/products/?category={category_id}')
        self.assertEqual(len(response.data), 1)

    def test_filter_inactive(self):
        """Test is_active filter"""
        TestDataFactory.create_product(subsubcategory=self.leaf)
        TestDataFactory.create_product(subsubcategory=self.leaf, is_active=False)
        response = self.client.get('/api/v1/products/?is_active=false')
        self.assertEqual(len(response.data), 1)

    def test_delete_product_with_history_is_blocked(self):
        """Test a product whose variants have stock history cannot be deleted"""
        variant = TestDataFactory.create_variant()
        TestDataFactory.stock_variant(variant, qty_units=5, cost_total=Decimal('20.00'))
        response = self.client.delete(f'/api/v1/products/{variant.product_id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Product.objects.filter(pk=variant.product_id).exists())

    def test_delete_product_without_history(self):
        """Test deleting a product with no history"""
        variant = TestDataFactory.create_variant()
        response = self.client.delete(f'/api/v1/products/{variant.product_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(ProductVariant.objects.filter(pk=variant.pk).exists())


class VariantAPITests(TestCase):
    """Test variant endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(name='Rice')

    def test_create_weight_variant_creates_inventory(self):
        """Test creating a variant also creates its inventory row with default reorder level"""
        data = {'product': self.product.id, 'name': 'Loose', 'variant_type': 'weight', 'sell_price': '2.50'}
        response = self.client.post('/api/v1/variants/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        inventory = Inventory.objects.get(variant_id=response.data['id'])
        self.assertEqual(inventory.reorder_level_g, 5000)
        self.assertEqual(inventory.qty_g, 0)

    def test_unit_variant_drops_pack_size(self):
        """Test pack size is cleared on unit variants"""
        data = {'product': self.product.id, 'name': 'Bag', 'variant_type': 'unit', 'sell_price': '5.00', 'pack_size_g': 1000}
        response = self.client.post('/api/v1/variants/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data['pack_size_g'])

    def test_weight_variant_zero_pack_size_rejected(self):
        """Test pack size must be positive on weight variants"""
        data = {'product': self.product.id, 'name': 'Loose', 'variant_type': 'weight', 'sell_price': '5.00', 'pack_size_g': 0}
        response = self.client.post('/api/v1/variants/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_negative_price_rejected(self):
        """Test negative sell price is rejected"""
        data = {'product': self.product.id, 'name': 'Single', 'sell_price': '-1.00'}
        response = self.client.post('/api/v1/variants/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duplicate_sku_rejected_and_blank_sku_allowed(self):
        """Test SKU uniqueness; blank SKUs are stored as null"""
        first = self.client.post('/api/v1/variants/', {'product': self.product.id, 'name': 'A', 'sku': 'RICE-1'}, format='json')
        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        dup = self.client.post('/api/v1/variants/', {'product': self.product.id, 'name': 'B', 'sku': 'RICE-1'}, format='json')
        self.assertEqual(dup.status_code, status.HTTP_400_BAD_REQUEST)
        blank1 = self.client.post('/api/v1/variants/', {'product': self.product.id, 'name': 'C', 'sku': ''}, format='json')
        blank2 = self.client.post('/api/v1/variants/', {'product': self.product.id, 'name': 'D', 'sku': ''}, format='json')
        self.assertEqual(blank1.status_code, status.HTTP_201_CREATED)
        self.assertEqual(blank2.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(blank2.data['sku'])

    def test_price_change_is_audited(self):
        """Test sell price updates write an audit log"""
        variant = TestDataFactory.create_variant(product=self.product)
        response = self.client.patch(f'/api/v1/variants/{variant.id}/', {'sell_price': '12.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        log = AuditLog.objects.get(model_name='ProductVariant', action='update')
        self.assertEqual(log.changes['sell_price']['new'], '12.00')

    def test_variant_search_excludes_inactive(self):
        """Test POS search only returns active variants of active products"""
        TestDataFactory.create_variant(product=self.product, name='Bag 1kg')
        hidden = TestDataFactory.create_variant(product=self.product, name='Bag 5kg')
        hidden.is_active = False
        hidden.save()
        inactive_product = TestDataFactory.create_product(name='Rice Old', is_active=False)
        TestDataFactory.create_variant(product=inactive_product)
        response = self.client.get('/api/v1/variants/search/?q=rice')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([v['name'] for v in response.data], ['Bag 1kg'])

    def test_variant_shows_stock(self):
        """Test variant payload includes stock quantities"""
        variant = TestDataFactory.create_weight_variant(product=self.product)
        TestDataFactory.stock_variant(variant, qty_g=2500, cost_total=Decimal('5.00'))
        response = self.client.get(f'/api/v1/variants/{variant.id}/')
        self.assertEqual(response.data['qty_g'], 2500)
        self.assertTrue(response.data['is_low_stock'])


class VariantImageTests(TestCase):
    """Test variant image endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.variant = TestDataFactory.create_variant()

    def test_first_image_is_primary(self):
        """Test the first image becomes primary and a new primary unsets the old one"""
        url = f'/api/v1/variants/{self.variant.id}/images/'
        first = self.client.post(url, {'url': 'https://cdn.example.com/a.jpg'}, format='json')
        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertTrue(first.data['is_primary'])
        second = self.client.post(url, {'url': 'https://cdn.example.com/b.jpg', 'is_primary': True}, format='json')
        self.assertTrue(second.data['is_primary'])
        self.assertFalse(ProductVariantImage.objects.get(pk=first.data['id']).is_primary)
        response = self.client.get(f'/api/v1/variants/{self.variant.id}/')
        self.assertEqual(response.data['primary_image'], 'https://cdn.example.com/b.jpg')
