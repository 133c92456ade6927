"""
Test suite for Expenses module
Tests: category validation, period listing with totals, CRUD with audit logs
"""
from datetime import date, timedelta
from decimal import Decimal
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.models import AuditLog
from backend.expenses.models import Expense
from backend.expenses.services import default_period, expense_totals


class ExpenseServiceTests(TestCase):
    """Test expense helpers"""

    def test_default_period_is_month_to_date(self):
        """Test the default period starts on the first of the month"""
        self.assertEqual(default_period(date(2024, 3, 17)), (date(2024, 3, 1), date(2024, 3, 17)))

    def test_totals_by_category(self):
        """Test totals are summed per category"""
        user = TestDataFactory.create_user()
        today = timezone.localdate()
        Expense.objects.create(incurred_at=today, category='Fuel', amount=Decimal('10.00'), created_by=user)
        Expense.objects.create(incurred_at=today, category='Fuel', amount=Decimal('5.50'), created_by=user)
        Expense.objects.create(incurred_at=today, category='Rent', amount=Decimal('100.00'), created_by=user)
        total, by_category = expense_totals(Expense.objects.all())
        self.assertEqual(total, Decimal('115.50'))
        self.assertEqual(by_category, [
            {'category': 'Fuel', 'total': '15.50'},
            {'category': 'Rent', 'total': '100.00'},
        ])


@override_settings(EXPENSE_CATEGORIES=['Rent', 'Fuel', 'Wages'])
class ExpenseAPITests(TestCase):
    """Test expense endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.today = timezone.localdate()

    def test_create_expense(self):
        """Test recording an expense stamps the user and store currency"""
        data = {'incurred_at': self.today.isoformat(), 'category': 'Fuel', 'amount': '12.50', 'note': 'generator'}
        response = self.client.post('/api/v1/expenses/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['created_by'], self.user.id)
        self.assertEqual(response.data['currency'], 'USD')
        self.assertTrue(AuditLog.objects.filter(model_name='Expense', action='create').exists())

    def test_unknown_category_rejected(self):
        """Test categories must come from the configured list"""
        data = {'incurred_at': self.today.isoformat(), 'category': 'Snacks', 'amount': '3.00'}
        response = self.client.post('/api/v1/expenses/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('category', response.data)

    def test_amount_must_be_positive(self):
        """Test zero and negative amounts are rejected"""
        for amount in ('0', '-5.00'):
            data = {'incurred_at': self.today.isoformat(), 'category': 'Rent', 'amount': amount}
            response = self.client.post('/api/v1/expenses/', data, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_defaults_to_month_to_date(self):
        """Test listing without dates covers the current month"""
        Expense.objects.create(incurred_at=self.today, category='Rent', amount=Decimal('100.00'), created_by=self.user)
        Expense.objects.create(incurred_at=self.today, category='Fuel', amount=Decimal('20.00'), created_by=self.user)
        last_month = self.today.replace(day=1) - timedelta(days=1)
        Expense.objects.create(incurred_at=last_month, category='Fuel', amount=Decimal('999.00'), created_by=self.user)

        response = self.client.get('/api/v1/expenses/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        self.assertEqual(response.data['total'], '120.00')
        self.assertEqual(response.data['period']['from'], self.today.replace(day=1).isoformat())
        self.assertEqual(response.data['categories'], ['Rent', 'Fuel', 'Wages'])

    def test_list_with_range_and_category(self):
        """Test an explicit range and category filter"""
        Expense.objects.create(incurred_at=date(2024, 1, 10), category='Rent', amount=Decimal('100.00'), created_by=self.user)
        Expense.objects.create(incurred_at=date(2024, 1, 11), category='Fuel', amount=Decimal('20.00'), created_by=self.user)
        response = self.client.get('/api/v1/expenses/?date_from=2024-01-01&date_to=2024-01-31&category=Fuel')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['totals_by_category'], [{'category': 'Fuel', 'total': '20.00'}])

    def test_bad_dates(self):
        """Test malformed or inverted ranges return 400"""
        response = self.client.get('/api/v1/expenses/?date_from=01/02/2024')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/v1/expenses/?date_from=2024-02-01&date_to=2024-01-01')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_and_delete(self):
        """Test editing and deleting an expense writes audit logs"""
        expense = Expense.objects.create(incurred_at=self.today, category='Rent', amount=Decimal('100.00'), created_by=self.user)
        response = self.client.patch(f'/api/v1/expenses/{expense.id}/', {'amount': '120.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['amount'], '120.00')
        log = AuditLog.objects.get(model_name='Expense', action='update')
        self.assertEqual(log.changes['amount'], {'old': '100.00', 'new': '120.00'})

        response = self.client.delete(f'/api/v1/expenses/{expense.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Expense.objects.exists())

    def test_categories_endpoint(self):
        """Test the configured categories are listed"""
        response = self.client.get('/api/v1/expenses/categories/')
        self.assertEqual(response.data, ['Rent', 'Fuel', 'Wages'])
