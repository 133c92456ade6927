"""
Test suite for Core module
Tests: JWT auth, users, store settings, audit logs, global search, shared helpers and report cache
"""
import importlib
from decimal import Decimal
from unittest import mock
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.models import AuditLog, Setting
from backend.core.utils import money, generate_number, get_store_settings, save_store_settings
from backend.core.cache_utils import cached_report, get_reports_generation, invalidate_reports_cache
from backend.core.cache_signals import suspend_cache_signals


class AuthTests(TestCase):
    """Test JWT login and the current-user endpoint"""

    def setUp(self):
        self.user = TestDataFactory.create_user(username='cashier', password='testpass123')

    def test_login_returns_tokens(self):
        """Test login with valid credentials returns access and refresh tokens"""
        client = APIClient()
        response = client.post('/api/v1/auth/login/', {'username': 'cashier', 'password': 'testpass123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    def test_login_wrong_password(self):
        """Test login with a wrong password is rejected"""
        client = APIClient()
        response = client.post('/api/v1/auth/login/', {'username': 'cashier', 'password': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_token(self):
        """Test refreshing an access token"""
        client = APIClient()
        login = client.post('/api/v1/auth/login/', {'username': 'cashier', 'password': 'testpass123'}, format='json')
        response = client.post('/api/v1/auth/refresh/', {'refresh': login.data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_me_requires_authentication(self):
        """Test endpoints reject anonymous requests"""
        response = APIClient().get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me(self):
        """Test current user endpoint"""
        client = AuthenticatedAPIClient().authenticate_user(self.user)
        response = client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], 'cashier')
        self.assertFalse(response.data['is_admin'])


class UserAPITests(TestCase):
    """Test user management (admin only)"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(is_staff=True)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_non_admin_cannot_list_users(self):
        """Test staff permission on the users endpoint"""
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        response = client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_user(self):
        """Test creating a user"""
        data = {
            'username': 'newcashier',
            'password': 'Str0ng-pass-123',
            'password_confirm': 'Str0ng-pass-123',
        }
        response = self.client.post('/api/v1/users/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['username'], 'newcashier')

    def test_create_user_password_mismatch(self):
        """Test mismatched password confirmation fails"""
        data = {
            'username': 'newcashier',
            'password': 'Str0ng-pass-123',
            'password_confirm': 'Other-pass-123',
        }
        response = self.client.post('/api/v1/users/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_delete_self(self):
        """Test admins cannot delete their own account"""
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class StoreSettingsTests(TestCase):
    """Test store settings endpoint"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.admin = TestDataFactory.create_user(is_staff=True)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_get_defaults(self):
        """Test settings fall back to defaults when no rows exist"""
        response = self.client.get('/api/v1/settings/store/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['store_name'], 'Mato Online')
        self.assertEqual(response.data['default_reorder_level_g'], 5000)
        self.assertTrue(response.data['enable_low_stock_alerts'])

    def test_non_admin_cannot_update(self):
        """Test only staff can change store settings"""
        response = self.client.patch('/api/v1/settings/store/', {'store_name': 'Other'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_patch(self):
        """Test partial update stores values and writes an audit log"""
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.patch(
            '/api/v1/settings/store/',
            {'store_name': 'Mato Hodan', 'currency_code': 'sos', 'whatsapp_number': '+252 61 555 1234'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['store_name'], 'Mato Hodan')
        self.assertEqual(response.data['currency_code'], 'SOS')
        self.assertEqual(response.data['whatsapp_number'], '+252615551234')
        self.assertTrue(Setting.objects.filter(key='store_name').exists())
        self.assertEqual(get_store_settings()['store_name'], 'Mato Hodan')
        self.assertTrue(AuditLog.objects.filter(action='settings_update').exists())

    def test_admin_invalid_value(self):
        """Test invalid settings are rejected"""
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.patch('/api/v1/settings/store/', {'default_reorder_level_g': -5}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_invalid_json_row_falls_back_to_default(self):
        """Test a corrupt settings row does not break reads"""
        Setting.objects.create(key='city', value='not json')
        self.assertEqual(get_store_settings()['city'], '')


class AuditLogTests(TestCase):
    """Test audit log visibility"""

    def test_non_staff_sees_only_own_logs(self):
        """Test audit log list is scoped to the requesting user for non-staff"""
        user = TestDataFactory.create_user()
        other = TestDataFactory.create_user()
        AuditLog.objects.create(user=user, action='create', model_name='Product', object_id='1')
        AuditLog.objects.create(user=other, action='create', model_name='Product', object_id='2')
        client = AuthenticatedAPIClient().authenticate_user(user)
        response = client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['object_id'], '1')


class GlobalSearchTests(TestCase):
    """Test global search"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_empty_query(self):
        """Test empty query returns empty groups"""
        response = self.client.get('/api/v1/search/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['variants'], [])

    def test_search_variants_and_customers(self):
        """Test search finds variants by product name and customers by phone"""
        product = TestDataFactory.create_product(name='Basmati Rice')
        TestDataFactory.create_weight_variant(product=product)
        TestDataFactory.create_customer(name='Hodan', phone='+252615550000')
        response = self.client.get('/api/v1/search/?q=basmati')
        self.assertEqual(len(response.data['variants']), 1)
        response = self.client.get('/api/v1/search/?q=615550000')
        self.assertEqual(len(response.data['customers']), 1)


class UtilsTests(TestCase):
    """Test shared helpers"""

    def test_money_rounds_half_up(self):
        """Test money rounding"""
        self.assertEqual(money('2.345'), Decimal('2.35'))
        self.assertEqual(money(None), Decimal('0.00'))
        with self.assertRaises(ValueError):
            money('abc')

    def test_generate_number_format(self):
        """Test document number format"""
        number = generate_number('ORD')
        prefix, day, suffix = number.split('-')
        self.assertEqual(prefix, 'ORD')
        self.assertEqual(len(day), 8)
        self.assertEqual(len(suffix), 8)


class ReportCacheTests(TestCase):
    """Test generation-based report cache invalidation"""

    def setUp(self):
        cache.clear()
        self.calls = []

        @cached_report(cache_ttl=60, key_prefix='test_report')
        def build(day):
            self.calls.append(day)
            return {'day': day}

        self.build = build

    def test_cached_until_invalidated(self):
        """Test results are served from cache until the generation changes"""
        self.build('2024-01-01')
        self.build('2024-01-01')
        self.assertEqual(len(self.calls), 1)
        invalidate_reports_cache()
        self.build('2024-01-01')
        self.assertEqual(len(self.calls), 2)

    def test_model_save_invalidates(self):
        """Test saving a report source model bumps the generation after commit"""
        before = get_reports_generation()
        with self.captureOnCommitCallbacks(execute=True):
            TestDataFactory.create_supplier()
            self.assertEqual(get_reports_generation(), before)
        self.assertGreater(get_reports_generation(), before)

    def test_store_setting_save_invalidates(self):
        """Test changing a store setting bumps the generation"""
        before = get_reports_generation()
        with self.captureOnCommitCallbacks(execute=True):
            save_store_settings({'enable_low_stock_alerts': False})
        self.assertGreater(get_reports_generation(), before)

    def test_suspended_signals_invalidate_once(self):
        """Test bulk writes inside suspend_cache_signals invalidate on exit"""
        before = get_reports_generation()
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with suspend_cache_signals():
                TestDataFactory.create_supplier()
                TestDataFactory.create_supplier()
        self.assertEqual(len(callbacks), 1)
        self.assertEqual(get_reports_generation(), before + 1)


class SettingsModuleTests(TestCase):
    """Test the settings module reads the project .env file"""

    def test_env_file_loaded(self):
        """Test the .env file at the project root is loaded with python-dotenv"""
        import backend.config.settings as settings_module
        with mock.patch('dotenv.load_dotenv') as load_dotenv:
            importlib.reload(settings_module)
        load_dotenv.assert_called_once_with(settings_module.BASE_DIR / '.env')
        importlib.reload(settings_module)
