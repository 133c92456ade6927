"""
Test suite for Parties module
Tests: customers (phone upsert, history), suppliers (links, summary), credits (grouping, oldest-first payments)
"""
from decimal import Decimal
from django.test import TestCase
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.models import AuditLog
from backend.parties.models import Customer, Credit, SupplierProduct
from backend.parties.services import (
    CreditError, normalize_phone, find_or_create_customer, credit_group_key,
    build_credit_groups, pay_credit_group, supplier_summary
)


class CustomerServiceTests(TestCase):
    """Test customer helpers"""

    def test_normalize_phone(self):
        """Test phone normalisation keeps digits and a leading plus"""
        self.assertEqual(normalize_phone(' +252 61-555 1234 '), '+252615551234')
        self.assertEqual(normalize_phone('061 555 1234'), '0615551234')
        self.assertEqual(normalize_phone(None), '')

    def test_find_or_create_fills_blank_name_only(self):
        """Test an existing customer keeps their name but gets a missing one filled"""
        customer, created = find_or_create_customer('+252 61 555 0001')
        self.assertTrue(created)
        self.assertIsNone(customer.name)
        customer, created = find_or_create_customer('+252615550001', name='Hodan')
        self.assertFalse(created)
        self.assertEqual(customer.name, 'Hodan')
        customer, _ = find_or_create_customer('+252615550001', name='Other')
        self.assertEqual(customer.name, 'Hodan')
        self.assertEqual(Customer.objects.count(), 1)


class CustomerAPITests(TestCase):
    """Test customer endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_customer(self):
        """Test creating a customer normalises the phone"""
        response = self.client.post('/api/v1/customers/', {'name': 'Hodan', 'phone': '+252 61 555 1234'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['phone'], '+252615551234')

    def test_create_existing_phone_updates(self):
        """Test posting an existing phone updates that customer"""
        customer = TestDataFactory.create_customer(name='Hodan', phone='+252615551234')
        response = self.client.post('/api/v1/customers/', {'phone': '+252 61 555 1234', 'address': 'Hodan district'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], customer.id)
        self.assertEqual(Customer.objects.count(), 1)

    def test_short_phone_rejected(self):
        """Test phones need at least 6 digits"""
        response = self.client.post('/api/v1/customers/', {'name': 'Ali', 'phone': '12345'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_change_to_taken_phone_rejected(self):
        """Test phone uniqueness is checked after normalisation"""
        TestDataFactory.create_customer(phone='+252615551234')
        other = TestDataFactory.create_customer(phone='+252615559999')
        response = self.client.patch(f'/api/v1/customers/{other.id}/', {'phone': '+252 61 555 1234'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_search(self):
        """Test customer search by name or phone"""
        TestDataFactory.create_customer(name='Hodan', phone='+252615551234')
        TestDataFactory.create_customer(name='Ayaan', phone='+252615559999')
        response = self.client.get('/api/v1/customers/?search=hod')
        self.assertEqual(len(response.data), 1)
        response = self.client.get('/api/v1/customers/?search=9999')
        self.assertEqual(response.data[0]['name'], 'Ayaan')

    def test_delete_customer_with_orders_blocked(self):
        """Test customers with orders cannot be deleted"""
        customer = TestDataFactory.create_customer()
        variant = TestDataFactory.create_variant()
        TestDataFactory.create_order(self.user, [(variant, 0, 1)], customer=customer)
        response = self.client.delete(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customer_history(self):
        """Test history lists orders, credits and outstanding balance"""
        customer = TestDataFactory.create_customer()
        variant = TestDataFactory.create_variant(sell_price=Decimal('4.00'))
        TestDataFactory.create_order(self.user, [(variant, 0, 3)], customer=customer)
        TestDataFactory.create_credit('7.50', customer=customer)
        response = self.client.get(f'/api/v1/customers/{customer.id}/history/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['orders_count'], 1)
        self.assertEqual(response.data['total_spent'], '12.00')
        self.assertEqual(response.data['outstanding_balance'], '7.50')
        self.assertEqual(len(response.data['credits']), 1)


class SupplierAPITests(TestCase):
    """Test supplier endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.supplier = TestDataFactory.create_supplier(name='Bakaaro Traders')

    def test_duplicate_name_case_insensitive(self):
        """Test supplier names are unique ignoring case"""
        response = self.client.post('/api/v1/suppliers/', {'name': 'bakaaro traders'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_link_and_unlink_variant(self):
        """Test linking a variant, moving the primary flag and unlinking"""
        variant = TestDataFactory.create_variant()
        other = TestDataFactory.create_supplier()
        url = f'/api/v1/suppliers/{self.supplier.id}/products/'
        response = self.client.post(url, {'variant': variant.id, 'is_primary': True, 'default_buy_price': '3.20'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.client.post(f'/api/v1/suppliers/{other.id}/products/', {'variant': variant.id, 'is_primary': True}, format='json')
        self.assertFalse(SupplierProduct.objects.get(supplier=self.supplier, variant=variant).is_primary)

        response = self.client.delete(f'/api/v1/suppliers/{self.supplier.id}/products/{variant.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        response = self.client.get(url)
        self.assertEqual(response.data, [])
        response = self.client.get(url + '?include_inactive=true')
        self.assertEqual(len(response.data), 1)

    def test_unlink_missing_link(self):
        """Test unlinking a variant that was never linked"""
        variant = TestDataFactory.create_variant()
        response = self.client.delete(f'/api/v1/suppliers/{self.supplier.id}/products/{variant.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_supplier_summary(self):
        """Test summary totals restocks per supplier, newest first, idle suppliers last"""
        TestDataFactory.create_supplier(name='Idle Supplier')
        variant = TestDataFactory.create_variant()
        TestDataFactory.stock_variant(variant, qty_units=10, cost_total=Decimal('30.00'), supplier_name='Bakaaro Traders')
        TestDataFactory.stock_variant(variant, qty_units=5, cost_total=Decimal('20.00'), supplier_name='bakaaro traders')
        rows = supplier_summary()
        self.assertEqual(rows[0]['supplier_id'], self.supplier.id)
        self.assertEqual(rows[0]['restocks_count'], 2)
        self.assertEqual(rows[0]['total_cost'], Decimal('50.00'))
        self.assertEqual(rows[-1]['name'], 'Idle Supplier')
        self.assertIsNone(rows[-1]['last_restock_at'])

        response = self.client.get('/api/v1/suppliers/summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['total_cost'], '50.00')

    def test_supplier_history(self):
        """Test supplier history lists their movements"""
        variant = TestDataFactory.create_variant()
        TestDataFactory.stock_variant(variant, qty_units=10, supplier_name='Bakaaro Traders')
        response = self.client.get(f'/api/v1/suppliers/{self.supplier.id}/history/')
        self.assertEqual(len(response.data['movements']), 1)


class CreditServiceTests(TestCase):
    """Test credit grouping and payment allocation"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.customer = TestDataFactory.create_customer(name='Hodan')

    def test_group_keys(self):
        """Test group key prefers customer id, then phone, then name"""
        by_customer = TestDataFactory.create_credit('5.00', customer=self.customer)
        by_phone = TestDataFactory.create_credit('5.00', customer_name='Walk In', customer_phone='+252 61 000 0000')
        by_name = TestDataFactory.create_credit('5.00', customer_name='  Abdi Ali ')
        self.assertEqual(credit_group_key(by_customer), str(self.customer.id))
        self.assertEqual(credit_group_key(by_phone), 'phone:+252610000000')
        self.assertEqual(credit_group_key(by_name), 'name:abdi ali')

    def test_credit_needs_customer_or_name(self):
        """Test a credit without a customer needs a name of 3+ characters"""
        with self.assertRaises(CreditError):
            TestDataFactory.create_credit('5.00', customer_name='Al')
        with self.assertRaises(CreditError):
            TestDataFactory.create_credit('0', customer=self.customer)

    def test_build_groups_sorted_by_balance(self):
        """Test groups are totalled and sorted by balance"""
        TestDataFactory.create_credit('5.00', customer=self.customer)
        TestDataFactory.create_credit('10.00', customer=self.customer)
        TestDataFactory.create_credit('30.00', customer_name='Abdi Ali')
        groups = build_credit_groups(Credit.objects.select_related('customer'))
        self.assertEqual(groups[0]['key'], 'name:abdi ali')
        self.assertEqual(groups[1]['balance'], Decimal('15.00'))
        self.assertEqual(groups[1]['open_count'], 2)

    def test_pay_oldest_first(self):
        """Test payments settle the oldest credit first"""
        first = TestDataFactory.create_credit('10.00', customer=self.customer)
        second = TestDataFactory.create_credit('20.00', customer=self.customer)
        applied, touched = pay_credit_group(str(self.customer.id), Decimal('15.00'), note='cash')
        self.assertEqual(applied, Decimal('15.00'))
        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.status, 'paid')
        self.assertIsNotNone(first.paid_at)
        self.assertEqual(second.amount_paid, Decimal('5.00'))
        self.assertEqual(second.status, 'open')
        self.assertIn('Payment: $15.00 • cash', second.note)
        self.assertNotIn('Payment', first.note)

    def test_overpayment_capped_at_balance(self):
        """Test the applied amount never exceeds the outstanding balance"""
        TestDataFactory.create_credit('10.00', customer=self.customer)
        applied, touched = pay_credit_group(str(self.customer.id), Decimal('100.00'))
        self.assertEqual(applied, Decimal('10.00'))
        self.assertEqual(touched[0].status, 'paid')

    def test_pay_group_without_balance(self):
        """Test paying a group with nothing outstanding fails"""
        with self.assertRaises(CreditError):
            pay_credit_group('phone:+252000000', Decimal('5.00'))
        with self.assertRaises(CreditError):
            pay_credit_group(str(self.customer.id), Decimal('0'))


class CreditAPITests(TestCase):
    """Test credit endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_customer(name='Hodan')

    def test_create_credit(self):
        """Test creating a credit for a named walk-in customer"""
        data = {'customer_name': 'Abdi Ali', 'amount': '12.50', 'note': 'rice'}
        response = self.client.post('/api/v1/credits/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['balance'], '12.50')
        self.assertEqual(response.data['group_key'], 'name:abdi ali')
        self.assertTrue(AuditLog.objects.filter(action='credit_create').exists())

    def test_create_credit_without_customer(self):
        """Test a credit without a customer or name is rejected"""
        response = self.client.post('/api/v1/credits/', {'amount': '12.50'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_groups_tabs(self):
        """Test outstanding and paid tabs"""
        TestDataFactory.create_credit('10.00', customer=self.customer)
        paid = TestDataFactory.create_credit('5.00', customer_name='Abdi Ali')
        pay_credit_group(credit_group_key(paid), Decimal('5.00'))

        response = self.client.get('/api/v1/credits/groups/')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['total_outstanding'], '10.00')
        response = self.client.get('/api/v1/credits/groups/?tab=paid')
        self.assertEqual(response.data['results'][0]['key'], 'name:abdi ali')
        response = self.client.get('/api/v1/credits/groups/?tab=all&search=hodan')
        self.assertEqual(response.data['count'], 1)

    def test_groups_mixed_customer_in_both_tabs(self):
        """Test a customer with a paid and an open credit shows under both tabs"""
        TestDataFactory.create_credit('10.00', customer=self.customer, note='rice bag')
        TestDataFactory.create_credit('20.00', customer=self.customer, note='sugar')
        pay_credit_group(str(self.customer.id), Decimal('10.00'))

        response = self.client.get('/api/v1/credits/groups/?tab=paid')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['total'], '10.00')
        response = self.client.get('/api/v1/credits/groups/')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['total'], '20.00')
        self.assertEqual(response.data['total_outstanding'], '20.00')

    def test_groups_search_keeps_whole_group(self):
        """Test a note match returns the customer's full balance"""
        TestDataFactory.create_credit('10.00', customer=self.customer, note='rice bag')
        TestDataFactory.create_credit('20.00', customer=self.customer, note='sugar')

        response = self.client.get('/api/v1/credits/groups/?search=sugar')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['total_outstanding'], '30.00')
        self.assertEqual(len(response.data['results'][0]['rows']), 2)
        response = self.client.get('/api/v1/credits/groups/?search=flour')
        self.assertEqual(response.data['count'], 0)

    def test_pay_group(self):
        """Test paying a group through the API"""
        TestDataFactory.create_credit('10.00', customer=self.customer)
        TestDataFactory.create_credit('10.00', customer=self.customer)
        data = {'group_key': str(self.customer.id), 'amount': '25.00', 'note': 'EVC'}
        response = self.client.post('/api/v1/credits/pay/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['applied'], '20.00')
        self.assertEqual(response.data['requested'], '25.00')
        self.assertEqual(len(response.data['credits']), 2)
        self.assertFalse(Credit.objects.filter(status='open').exists())

    def test_pay_unknown_group(self):
        """Test paying an unknown group returns 400"""
        response = self.client.post('/api/v1/credits/pay/', {'group_key': 'name:nobody', 'amount': '5.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
