"""
Test suite for POS module
Tests: carts, fast checkout, online orders, confirm/cancel stock effects, payments, order list
"""
from decimal import Decimal
from django.test import TestCase
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.models import AuditLog
from backend.inventory.models import Inventory, InventoryMovement
from backend.parties.models import Credit, Customer
from backend.pos.models import Order
from backend.pos.services import (
    OrderError, line_total, order_total, confirm_order, cancel_order, record_payment, change_status, checkout_cart
)


class OrderServiceTests(TestCase):
    """Test pricing and order lifecycle services"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.rice = TestDataFactory.create_weight_variant(sell_price=Decimal('8.00'))
        self.soap = TestDataFactory.create_variant(sell_price=Decimal('10.00'))
        TestDataFactory.stock_variant(self.rice, qty_g=2000, cost_total=Decimal('10.00'))
        TestDataFactory.stock_variant(self.soap, qty_units=10, cost_total=Decimal('30.00'))

    def test_line_total(self):
        """Test weight lines are priced per kg and unit lines per unit"""
        self.assertEqual(line_total('weight', Decimal('8.00'), qty_g=500), Decimal('4.00'))
        self.assertEqual(line_total('weight', Decimal('3.33'), qty_g=250), Decimal('0.83'))
        self.assertEqual(line_total('unit', Decimal('2.50'), qty_units=3), Decimal('7.50'))

    def test_order_total_never_negative(self):
        """Test the discount cannot push the total below zero"""
        self.assertEqual(order_total(Decimal('10.00'), Decimal('2.00'), Decimal('3.00')), Decimal('9.00'))
        self.assertEqual(order_total(Decimal('5.00'), Decimal('0'), Decimal('9.00')), Decimal('0.00'))

    def test_wrong_quantity_dimension(self):
        """Test weight variants need grams and unit variants need units"""
        with self.assertRaises(OrderError):
            TestDataFactory.create_order(self.user, [(self.rice, 0, 2)])
        with self.assertRaises(OrderError):
            TestDataFactory.create_order(self.user, [(self.soap, 500, 0)])

    def test_pending_order_does_not_touch_stock(self):
        """Test creating an order leaves stock alone"""
        order = TestDataFactory.create_order(self.user, [(self.rice, 500, 0), (self.soap, 0, 2)], delivery_fee=Decimal('1.00'))
        self.assertEqual(order.status, 'pending')
        self.assertEqual(order.subtotal, Decimal('24.00'))
        self.assertEqual(order.total, Decimal('25.00'))
        self.assertEqual(Inventory.objects.get(variant=self.rice).qty_g, 2000)
        self.assertFalse(InventoryMovement.objects.filter(type='sale').exists())

    def test_confirm_deducts_stock_at_average_cost(self):
        """Test confirming writes costed sale movements"""
        order = TestDataFactory.create_order(self.user, [(self.rice, 500, 0), (self.soap, 0, 2)])
        confirm_order(order, user=self.user)
        order.refresh_from_db()
        self.assertEqual(order.status, 'confirmed')
        self.assertIsNotNone(order.confirmed_at)
        self.assertEqual(Inventory.objects.get(variant=self.rice).qty_g, 1500)
        self.assertEqual(Inventory.objects.get(variant=self.soap).qty_units, 8)
        rice_sale = InventoryMovement.objects.get(order=order, variant=self.rice)
        self.assertEqual(rice_sale.qty_g, -500)
        self.assertEqual(rice_sale.cost_total, Decimal('2.50'))
        soap_sale = InventoryMovement.objects.get(order=order, variant=self.soap)
        self.assertEqual(soap_sale.cost_total, Decimal('6.00'))

    def test_confirm_twice_rejected(self):
        """Test only pending orders can be confirmed"""
        order = TestDataFactory.create_order(self.user, [(self.soap, 0, 1)])
        confirm_order(order)
        with self.assertRaises(OrderError):
            confirm_order(order)

    def test_confirm_insufficient_stock_is_all_or_nothing(self):
        """Test a failing line leaves every line's stock untouched"""
        from backend.inventory.services import InventoryError
        order = TestDataFactory.create_order(self.user, [(self.rice, 500, 0), (self.soap, 0, 50)])
        with self.assertRaises(InventoryError):
            confirm_order(order)
        order.refresh_from_db()
        self.assertEqual(order.status, 'pending')
        self.assertEqual(Inventory.objects.get(variant=self.rice).qty_g, 2000)
        self.assertFalse(InventoryMovement.objects.filter(order=order).exists())

    def test_cancel_confirmed_returns_stock(self):
        """Test cancelling a confirmed order writes return movements at the sale cost"""
        order = TestDataFactory.create_order(self.user, [(self.soap, 0, 3)])
        confirm_order(order)
        cancel_order(order, reason='customer changed mind')
        order.refresh_from_db()
        self.assertEqual(order.status, 'cancelled')
        self.assertIn('Cancelled: customer changed mind', order.note)
        inventory = Inventory.objects.get(variant=self.soap)
        self.assertEqual(inventory.qty_units, 10)
        self.assertEqual(inventory.avg_cost_per_unit, Decimal('3.000000'))
        returned = InventoryMovement.objects.get(order=order, type='return')
        self.assertEqual(returned.qty_units, 3)
        self.assertEqual(returned.cost_total, Decimal('9.00'))

    def test_cancel_weight_order_restores_exact_average(self):
        """Test cancelling a near-total weight sale puts the average back unchanged"""
        flour = TestDataFactory.create_weight_variant(sell_price=Decimal('6.00'))
        TestDataFactory.stock_variant(flour, qty_g=1000, cost_total=Decimal('4.57'))
        order = TestDataFactory.create_order(self.user, [(flour, 999, 0)])
        confirm_order(order)
        sale = InventoryMovement.objects.get(order=order, type='sale')
        self.assertEqual(sale.unit_cost, Decimal('0.004570'))
        self.assertEqual(sale.cost_total, Decimal('4.57'))

        cancel_order(order)
        inventory = Inventory.objects.get(variant=flour)
        self.assertEqual(inventory.qty_g, 1000)
        self.assertEqual(inventory.avg_cost_per_g, Decimal('0.004570'))
        returned = InventoryMovement.objects.get(order=order, type='return')
        self.assertEqual(returned.unit_cost, Decimal('0.004570'))

    def test_cancel_pending_has_no_movements(self):
        """Test cancelling a pending order writes no stock movements"""
        order = TestDataFactory.create_order(self.user, [(self.soap, 0, 3)])
        cancel_order(order)
        self.assertFalse(InventoryMovement.objects.filter(order=order).exists())
        with self.assertRaises(OrderError):
            cancel_order(order)

    def test_status_transitions(self):
        """Test delivery transitions and blocked transitions"""
        order = TestDataFactory.create_order(self.user, [(self.soap, 0, 1)])
        with self.assertRaises(OrderError):
            change_status(order, 'delivered')
        order = change_status(order, 'confirmed')
        order = change_status(order, 'out_for_delivery')
        order = change_status(order, 'delivered')
        self.assertEqual(order.status, 'delivered')
        with self.assertRaises(OrderError):
            change_status(order, 'cancelled')

    def test_payments_update_status(self):
        """Test partial then full payment, and overpayment rejected"""
        order = TestDataFactory.create_order(self.user, [(self.soap, 0, 2)])
        _, order = record_payment(order, Decimal('5.00'))
        self.assertEqual(order.payment_status, 'partial')
        with self.assertRaises(OrderError):
            record_payment(order, Decimal('20.00'))
        _, order = record_payment(order, Decimal('15.00'), method='transfer')
        self.assertEqual(order.payment_status, 'paid')
        self.assertEqual(order.amount_paid, Decimal('20.00'))
        self.assertEqual(order.balance_due, Decimal('0.00'))


class CartAPITests(TestCase):
    """Test cart endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.rice = TestDataFactory.create_weight_variant(sell_price=Decimal('8.00'))
        self.soap = TestDataFactory.create_variant(sell_price=Decimal('2.50'))

    def _new_cart(self, **data):
        response = self.client.post('/api/v1/carts/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        return response.data

    def test_create_cart(self):
        """Test starting a cart"""
        cart = self._new_cart(customer_name='Walk In', payment_method='cash')
        self.assertEqual(cart['status'], 'active')
        self.assertTrue(cart['cart_number'].startswith('CART-'))

    def test_add_items_merges_lines(self):
        """Test adding the same variant twice merges into one line"""
        cart = self._new_cart()
        url = f"/api/v1/carts/{cart['id']}/items/"
        self.client.post(url, {'variant': self.soap.id, 'qty_units': 2}, format='json')
        response = self.client.post(url, {'variant': self.soap.id, 'qty_units': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(response.data['items'][0]['qty_units'], 3)
        self.assertEqual(response.data['subtotal'], '7.50')
        self.assertTrue(AuditLog.objects.filter(action='cart_add').exists())

    def test_add_weight_item_in_kg(self):
        """Test weight lines can be entered in kg"""
        cart = self._new_cart()
        response = self.client.post(f"/api/v1/carts/{cart['id']}/items/", {'variant': self.rice.id, 'qty_kg': '1.25'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['items'][0]['qty_g'], 1250)
        self.assertEqual(response.data['items'][0]['line_total'], '10.00')

    def test_add_wrong_dimension(self):
        """Test units on a weight variant are rejected"""
        cart = self._new_cart()
        response = self.client.post(f"/api/v1/carts/{cart['id']}/items/", {'variant': self.rice.id, 'qty_units': 2}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_and_remove_item(self):
        """Test changing a line's quantity and removing it"""
        cart = TestDataFactory.create_cart(self.user, items=[(self.soap, 0, 2)])
        item = cart.items.get()
        url = f'/api/v1/carts/{cart.id}/items/{item.id}/'
        response = self.client.patch(url, {'qty_units': 5}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['items'][0]['qty_units'], 5)
        response = self.client.patch(url, {'qty_units': 0}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['items'], [])

    def test_hold_and_resume(self):
        """Test holding and resuming a cart"""
        cart = TestDataFactory.create_cart(self.user, items=[(self.soap, 0, 1)])
        response = self.client.post(f'/api/v1/carts/{cart.id}/hold/')
        self.assertEqual(response.data['status'], 'held')
        response = self.client.post(f"/api/v1/carts/{cart.id}/items/", {'variant': self.soap.id, 'qty_units': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/v1/carts/')
        self.assertEqual(len(response.data), 1)
        response = self.client.post(f'/api/v1/carts/{cart.id}/unhold/')
        self.assertEqual(response.data['status'], 'active')

    def test_hold_empty_cart(self):
        """Test empty carts cannot be held"""
        cart = TestDataFactory.create_cart(self.user)
        response = self.client.post(f'/api/v1/carts/{cart.id}/hold/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_cart(self):
        """Test deleting a cart marks it cancelled"""
        cart = TestDataFactory.create_cart(self.user)
        response = self.client.delete(f'/api/v1/carts/{cart.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        cart.refresh_from_db()
        self.assertEqual(cart.status, 'cancelled')


class CheckoutTests(TestCase):
    """Test fast POS checkout"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.rice = TestDataFactory.create_weight_variant(sell_price=Decimal('8.00'))
        self.soap = TestDataFactory.create_variant(sell_price=Decimal('2.50'))
        TestDataFactory.stock_variant(self.rice, qty_g=5000, cost_total=Decimal('25.00'))
        TestDataFactory.stock_variant(self.soap, qty_units=4, cost_total=Decimal('4.00'))

    def test_cash_checkout(self):
        """Test a cash sale is confirmed, paid and deducts stock"""
        cart = TestDataFactory.create_cart(self.user, items=[(self.rice, 1500, 0), (self.soap, 0, 2)], customer_name='Walk In')
        response = self.client.post(f'/api/v1/carts/{cart.id}/checkout/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        order = response.data['order']
        self.assertEqual(order['status'], 'confirmed')
        self.assertEqual(order['payment_status'], 'paid')
        self.assertEqual(order['channel'], 'pos')
        self.assertEqual(order['total'], '17.00')
        self.assertIn('Source: Fast POS', order['note'])
        self.assertIn('Receipt: POS-', order['note'])
        self.assertEqual(len(order['payments']), 1)
        self.assertIsNone(response.data['credit_id'])
        self.assertEqual(Inventory.objects.get(variant=self.rice).qty_g, 3500)
        self.assertEqual(Inventory.objects.get(variant=self.soap).qty_units, 2)
        cart.refresh_from_db()
        self.assertEqual(cart.status, 'completed')

    def test_credit_checkout(self):
        """Test a credit sale raises a credit for the customer"""
        cart = TestDataFactory.create_cart(
            self.user, items=[(self.soap, 0, 2)], payment_method='credit',
            customer_name='Hodan', customer_phone='+252 61 555 1234'
        )
        response = self.client.post(f'/api/v1/carts/{cart.id}/checkout/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['order']['payment_status'], 'unpaid')
        credit = Credit.objects.get(pk=response.data['credit_id'])
        self.assertEqual(credit.amount, Decimal('5.00'))
        self.assertEqual(credit.customer.phone, '+252615551234')
        self.assertEqual(credit.order_id, response.data['order']['id'])
        self.assertIn('Items:', credit.note)

    def test_credit_checkout_needs_customer(self):
        """Test credit sales without a customer are rejected"""
        cart = TestDataFactory.create_cart(self.user, items=[(self.soap, 0, 1)], payment_method='credit')
        response = self.client.post(f'/api/v1/carts/{cart.id}/checkout/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_checkout_insufficient_stock(self):
        """Test a short line rolls back the whole checkout"""
        cart = TestDataFactory.create_cart(self.user, items=[(self.rice, 1000, 0), (self.soap, 0, 9)])
        response = self.client.post(f'/api/v1/carts/{cart.id}/checkout/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(Inventory.objects.get(variant=self.rice).qty_g, 5000)
        cart.refresh_from_db()
        self.assertEqual(cart.status, 'active')

    def test_checkout_empty_cart(self):
        """Test checking out an empty cart"""
        cart = TestDataFactory.create_cart(self.user)
        response = self.client.post(f'/api/v1/carts/{cart.id}/checkout/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_credit_sale_closes_credit(self):
        """Test cancelling a credit sale restores stock and closes its credit"""
        cart = TestDataFactory.create_cart(self.user, items=[(self.soap, 0, 2)], payment_method='credit', customer_name='Hodan Ali')
        order, credit = checkout_cart(cart, user=self.user)
        response = self.client.post(f'/api/v1/orders/{order.id}/cancel/', {'reason': 'returned'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        credit.refresh_from_db()
        self.assertEqual(credit.status, 'paid')
        self.assertEqual(Inventory.objects.get(variant=self.soap).qty_units, 4)


class OrderAPITests(TestCase):
    """Test order endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.soap = TestDataFactory.create_variant(sell_price=Decimal('2.50'))
        TestDataFactory.stock_variant(self.soap, qty_units=20, cost_total=Decimal('20.00'))

    def test_online_order_creates_customer(self):
        """Test an online order finds or creates the customer by phone"""
        data = {
            'customer_phone': '+252 61 777 0000',
            'customer_name': 'Ayaan',
            'channel': 'whatsapp',
            'address': 'Wadajir',
            'delivery_fee': '1.00',
            'items': [{'variant': self.soap.id, 'qty_units': 4}],
        }
        response = self.client.post('/api/v1/orders/online/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending')
        self.assertEqual(response.data['total'], '11.00')
        customer = Customer.objects.get(phone='+252617770000')
        self.assertEqual(customer.name, 'Ayaan')
        self.assertEqual(Inventory.objects.get(variant=self.soap).qty_units, 20)

        response = self.client.post('/api/v1/orders/online/', data, format='json')
        self.assertEqual(Customer.objects.count(), 1)
        self.assertEqual(response.data['customer'], customer.id)

    def test_online_order_bad_phone(self):
        """Test online orders need a valid phone"""
        data = {'customer_phone': '123', 'items': [{'variant': self.soap.id, 'qty_units': 1}]}
        response = self.client.post('/api/v1/orders/online/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_confirm_and_cancel_endpoints(self):
        """Test confirm deducts and cancel restores stock"""
        order = TestDataFactory.create_order(self.user, [(self.soap, 0, 5)])
        response = self.client.post(f'/api/v1/orders/{order.id}/confirm/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Inventory.objects.get(variant=self.soap).qty_units, 15)
        response = self.client.post(f'/api/v1/orders/{order.id}/confirm/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(f'/api/v1/orders/{order.id}/cancel/', {}, format='json')
        self.assertEqual(response.data['status'], 'cancelled')
        self.assertEqual(Inventory.objects.get(variant=self.soap).qty_units, 20)
        self.assertTrue(AuditLog.objects.filter(action='order_cancel').exists())

    def test_patch_status_goes_through_services(self):
        """Test PATCH status=confirmed deducts stock"""
        order = TestDataFactory.create_order(self.user, [(self.soap, 0, 2)])
        response = self.client.patch(f'/api/v1/orders/{order.id}/', {'status': 'confirmed', 'note': 'call first'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'confirmed')
        self.assertEqual(response.data['note'], 'call first')
        self.assertEqual(Inventory.objects.get(variant=self.soap).qty_units, 18)
        self.assertTrue(AuditLog.objects.filter(action='order_update').exists())

    def test_patch_payment_status(self):
        """Test marking paid settles the balance; other changes are rejected"""
        order = TestDataFactory.create_order(self.user, [(self.soap, 0, 2)])
        response = self.client.patch(f'/api/v1/orders/{order.id}/', {'payment_status': 'partial'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.patch(f'/api/v1/orders/{order.id}/', {'payment_status': 'paid'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['payment_status'], 'paid')
        self.assertEqual(response.data['amount_paid'], '5.00')
        self.assertEqual(len(response.data['payments']), 1)

    def test_payments_endpoint(self):
        """Test recording and listing payments"""
        order = TestDataFactory.create_order(self.user, [(self.soap, 0, 4)])
        url = f'/api/v1/orders/{order.id}/payments/'
        response = self.client.post(url, {'amount': '4.00', 'method': 'cash'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['order']['payment_status'], 'partial')
        response = self.client.post(url, {'amount': '7.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get(url)
        self.assertEqual(len(response.data), 1)

    def test_order_list_filters_and_totals(self):
        """Test status filter, search and totals"""
        customer = TestDataFactory.create_customer(name='Ayaan')
        first = TestDataFactory.create_order(self.user, [(self.soap, 0, 2)], customer=customer)
        second = TestDataFactory.create_order(self.user, [(self.soap, 0, 4)])
        confirm_order(second)
        cancelled = TestDataFactory.create_order(self.user, [(self.soap, 0, 1)])
        cancel_order(cancelled)

        response = self.client.get('/api/v1/orders/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(response.data['total_amount'], '17.50')
        self.assertEqual(response.data['unpaid_count'], 3)

        response = self.client.get('/api/v1/orders/?status=confirmed')
        self.assertEqual(response.data['results'][0]['id'], second.id)
        response = self.client.get('/api/v1/orders/?search=ayaan')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], first.id)
        response = self.client.get('/api/v1/orders/?limit=2')
        self.assertEqual(len(response.data['results']), 2)
        self.assertEqual(response.data['total_pages'], 2)
