"""
Test suite for Reports module
Tests: daily sales profit, dashboard KPIs and cache invalidation, most sold item, expense and supplier summaries
"""
from decimal import Decimal
from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.expenses.models import Expense
from backend.pos.services import checkout_cart, confirm_order, cancel_order
from backend.reports.services import daily_sales, most_sold_item, inventory_value


class ReportsServiceTests(TestCase):
    """Test report builders"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.today = timezone.localdate()
        self.rice = TestDataFactory.create_weight_variant(sell_price=Decimal('8.00'))
        self.soap = TestDataFactory.create_variant(sell_price=Decimal('10.00'))
        TestDataFactory.stock_variant(self.rice, qty_g=2000, cost_total=Decimal('10.00'))
        TestDataFactory.stock_variant(self.soap, qty_units=10, cost_total=Decimal('30.00'))

    def _sell(self, items, customer_name=''):
        cart = TestDataFactory.create_cart(self.user, items=items, customer_name=customer_name)
        order, _ = checkout_cart(cart, user=self.user)
        return order

    def test_daily_sales_profit(self):
        """Test revenue, cost and profit come from orders and their sale movements"""
        self._sell([(self.rice, 500, 0), (self.soap, 0, 2)])
        report = daily_sales(self.today)
        self.assertEqual(report['summary']['revenue'], '24.00')
        self.assertEqual(report['summary']['cost'], '8.50')
        self.assertEqual(report['summary']['profit'], '15.50')
        self.assertEqual(report['summary']['orders_count'], 1)
        self.assertEqual(report['summary']['items_count'], 2)
        rice_line = next(i for i in report['orders'][0]['items'] if i['variant_id'] == self.rice.id)
        self.assertEqual(rice_line['cost'], '2.50')
        self.assertEqual(rice_line['quantity'], '0.500 kg')

    def test_daily_sales_repeated_variant_costed_once(self):
        """Test a variant on two lines of one order is not costed twice"""
        order = TestDataFactory.create_order(self.user, [(self.soap, 0, 1), (self.soap, 0, 2)])
        confirm_order(order)
        report = daily_sales(self.today)
        self.assertEqual(report['summary']['revenue'], '30.00')
        self.assertEqual(report['summary']['cost'], '9.00')
        self.assertEqual(report['summary']['profit'], '21.00')
        row = report['orders'][0]
        self.assertEqual(row['cost'], '9.00')
        self.assertEqual(sorted(item['cost'] for item in row['items']), ['3.00', '6.00'])

    def test_daily_sales_excludes_pending_and_cancelled(self):
        """Test only confirmed, out-for-delivery and delivered orders count"""
        TestDataFactory.create_order(self.user, [(self.soap, 0, 1)])
        cancelled = TestDataFactory.create_order(self.user, [(self.soap, 0, 1)])
        confirm_order(cancelled)
        cancel_order(cancelled)
        report = daily_sales(self.today)
        self.assertEqual(report['summary']['orders_count'], 0)
        self.assertEqual(report['summary']['revenue'], '0.00')

    def test_daily_sales_search(self):
        """Test searching by customer or item name"""
        self._sell([(self.soap, 0, 1)], customer_name='Hodan')
        self._sell([(self.rice, 250, 0)])
        self.assertEqual(daily_sales(self.today, search='hodan')['summary']['orders_count'], 1)
        self.assertEqual(daily_sales(self.today, search=self.rice.product.name.lower())['summary']['orders_count'], 1)

    def test_most_sold_item_by_revenue(self):
        """Test the most sold item is ranked by revenue"""
        self._sell([(self.rice, 1500, 0)])
        self._sell([(self.soap, 0, 1)])
        self.assertEqual(most_sold_item(self.today)['variant_id'], self.rice.id)
        self._sell([(self.soap, 0, 1)])
        item = most_sold_item(self.today)
        self.assertEqual(item['variant_id'], self.soap.id)
        self.assertEqual(item['qty_units'], 2)
        self.assertEqual(item['orders_count'], 2)

    def test_most_sold_item_empty_day(self):
        """Test no sales means no most sold item"""
        self.assertIsNone(most_sold_item(self.today))

    def test_inventory_value(self):
        """Test stock is valued at average cost"""
        self.assertEqual(inventory_value(), Decimal('40.00'))


class ReportsAPITests(TestCase):
    """Test report endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.today = timezone.localdate()
        self.soap = TestDataFactory.create_variant(sell_price=Decimal('10.00'))
        TestDataFactory.stock_variant(self.soap, qty_units=20, cost_total=Decimal('60.00'), supplier_name='Bakaaro Traders')

    def _sell(self, units):
        cart = TestDataFactory.create_cart(self.user, items=[(self.soap, 0, units)])
        order, _ = checkout_cart(cart, user=self.user)
        return order

    def test_daily_sales_endpoint(self):
        """Test daily sales report for today"""
        self._sell(2)
        response = self.client.get('/api/v1/reports/daily-sales/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['date'], self.today.isoformat())
        self.assertEqual(response.data['summary']['profit'], '14.00')

    def test_bad_date(self):
        """Test malformed dates return 400"""
        response = self.client.get('/api/v1/reports/daily-sales/?date=yesterday')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/v1/reports/dashboard/?date=2024-13-01')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_dashboard_keys(self):
        """Test the dashboard payload"""
        self._sell(3)
        TestDataFactory.create_order(self.user, [(self.soap, 0, 1)])
        TestDataFactory.create_credit('12.00', customer_name='Abdi Ali')
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        for key in ('sales', 'orders_by_status', 'pending_orders', 'unpaid_orders', 'expenses_total',
                    'net', 'credits', 'low_stock', 'most_sold', 'inventory_value', 'generated_at'):
            self.assertIn(key, response.data)
        self.assertEqual(response.data['sales']['revenue'], '30.00')
        self.assertEqual(response.data['orders_by_status']['confirmed'], 1)
        self.assertEqual(response.data['pending_orders'], 1)
        self.assertEqual(response.data['credits']['outstanding_total'], '12.00')
        self.assertEqual(response.data['credits']['open_customers'], 1)
        self.assertEqual(response.data['inventory_value'], '51.00')
        self.assertEqual(response.data['most_sold']['variant_id'], self.soap.id)

    def test_dashboard_refreshes_after_sale_and_expense(self):
        """Test a new sale or expense invalidates the cached dashboard"""
        self._sell(1)
        first = self.client.get('/api/v1/reports/dashboard/').data
        self.assertEqual(first['sales']['revenue'], '10.00')
        self.assertEqual(self.client.get('/api/v1/reports/dashboard/').data['generated_at'], first['generated_at'])

        with self.captureOnCommitCallbacks(execute=True):
            self._sell(2)
        second = self.client.get('/api/v1/reports/dashboard/').data
        self.assertEqual(second['sales']['revenue'], '30.00')
        self.assertEqual(second['sales']['orders_count'], 2)

        with self.captureOnCommitCallbacks(execute=True):
            Expense.objects.create(incurred_at=self.today, category='Fuel', amount=Decimal('5.00'), created_by=self.user)
        third = self.client.get('/api/v1/reports/dashboard/').data
        self.assertEqual(third['expenses_total'], '5.00')
        self.assertEqual(third['net'], '16.00')

    def test_low_stock_on_dashboard(self):
        """Test variants at or below their reorder level appear on the dashboard"""
        self._sell(12)
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.data['low_stock']['count'], 1)
        self.assertEqual(response.data['low_stock']['items'][0]['variant_id'], self.soap.id)

    def test_expense_summary_endpoint(self):
        """Test expense totals by category for a range"""
        Expense.objects.create(incurred_at=self.today, category='Fuel', amount=Decimal('5.00'), created_by=self.user)
        Expense.objects.create(incurred_at=self.today, category='Rent', amount=Decimal('50.00'), created_by=self.user)
        day = self.today.isoformat()
        response = self.client.get(f'/api/v1/reports/expenses/?date_from={day}&date_to={day}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], '55.00')
        self.assertEqual(len(response.data['by_category']), 2)

    def test_supplier_summary_endpoint(self):
        """Test supplier restock summary"""
        response = self.client.get('/api/v1/reports/suppliers/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['name'], 'Bakaaro Traders')
        self.assertEqual(response.data[0]['total_cost'], '60.00')
        self.assertEqual(response.data[0]['restocks_count'], 1)

    def test_requires_authentication(self):
        """Test reports need an authenticated user"""
        self.client.logout()
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
