"""
Test suite for Inventory module
Tests: movement accounting, weighted-average cost, stock counts, low stock and the movement ledger API
"""
from decimal import Decimal
from django.test import TestCase, override_settings
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.models import AuditLog
from backend.inventory.models import Inventory, InventoryMovement
from backend.inventory.services import (
    InventoryError, apply_inventory_movement, set_stock_level, weighted_average, kg_to_grams, signed_delta
)


class InventoryServiceTests(TestCase):
    """Test apply_inventory_movement and helpers"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.unit_variant = TestDataFactory.create_variant()
        self.weight_variant = TestDataFactory.create_weight_variant()

    def test_kg_to_grams(self):
        """Test kilogram conversion rounds to whole grams"""
        self.assertEqual(kg_to_grams('2.5'), 2500)
        self.assertEqual(kg_to_grams(Decimal('0.0004')), 0)
        self.assertEqual(kg_to_grams(Decimal('0.0005')), 1)

    def test_signed_delta(self):
        """Test movement types map to signed deltas"""
        self.assertEqual(signed_delta('restock', -5), 5)
        self.assertEqual(signed_delta('manual_out', 5), -5)
        self.assertEqual(signed_delta('sale', 5), -5)
        self.assertEqual(signed_delta('adjustment', -3), -3)

    def test_weighted_average(self):
        """Test weighted average ignores negative on-hand"""
        self.assertEqual(weighted_average(10, Decimal('2'), 10, Decimal('40')), Decimal('3.000000'))
        self.assertEqual(weighted_average(-5, Decimal('2'), 10, Decimal('30')), Decimal('3.000000'))

    def test_restock_updates_average_cost(self):
        """Test restocks move the weighted-average cost"""
        apply_inventory_movement(self.unit_variant, 'restock', qty_units=10, cost_total=Decimal('20.00'), user=self.user)
        movement, inventory = apply_inventory_movement(self.unit_variant, 'restock', qty_units=10, cost_total=Decimal('40.00'))
        self.assertEqual(inventory.qty_units, 20)
        self.assertEqual(inventory.avg_cost_per_unit, Decimal('3.000000'))
        self.assertEqual(movement.qty_units, 10)
        self.assertEqual(movement.cost_total, Decimal('40.00'))

    def test_outbound_records_cost_at_average(self):
        """Test outbound movements are costed at the current average"""
        apply_inventory_movement(self.unit_variant, 'restock', qty_units=10, cost_total=Decimal('25.00'))
        movement, inventory = apply_inventory_movement(self.unit_variant, 'manual_out', qty_units=4)
        self.assertEqual(inventory.qty_units, 6)
        self.assertEqual(movement.qty_units, -4)
        self.assertEqual(movement.cost_total, Decimal('10.00'))
        self.assertEqual(inventory.avg_cost_per_unit, Decimal('2.500000'))

    def test_weight_restock(self):
        """Test weight variants track grams and cost per gram"""
        movement, inventory = apply_inventory_movement(self.weight_variant, 'restock', qty_g=2500, cost_total=Decimal('5.00'))
        self.assertEqual(inventory.qty_g, 2500)
        self.assertEqual(inventory.qty_units, 0)
        self.assertEqual(inventory.avg_cost_per_g, Decimal('0.002000'))

    def test_insufficient_stock(self):
        """Test outbound beyond on-hand raises and changes nothing"""
        apply_inventory_movement(self.unit_variant, 'restock', qty_units=2)
        with self.assertRaises(InventoryError):
            apply_inventory_movement(self.unit_variant, 'manual_out', qty_units=3)
        self.assertEqual(Inventory.objects.get(variant=self.unit_variant).qty_units, 2)
        self.assertEqual(InventoryMovement.objects.filter(variant=self.unit_variant).count(), 1)

    @override_settings(ALLOW_NEGATIVE_STOCK=True)
    def test_negative_stock_allowed_by_setting(self):
        """Test ALLOW_NEGATIVE_STOCK lets stock go below zero"""
        movement, inventory = apply_inventory_movement(self.unit_variant, 'manual_out', qty_units=3)
        self.assertEqual(inventory.qty_units, -3)

    def test_wrong_dimension_rejected(self):
        """Test grams on a unit variant and units on a weight variant are rejected"""
        with self.assertRaises(InventoryError):
            apply_inventory_movement(self.unit_variant, 'restock', qty_g=100)
        with self.assertRaises(InventoryError):
            apply_inventory_movement(self.weight_variant, 'restock', qty_units=1)

    def test_zero_quantity_rejected(self):
        """Test zero movements are rejected"""
        with self.assertRaises(InventoryError):
            apply_inventory_movement(self.unit_variant, 'restock', qty_units=0)

    def test_set_stock_level_writes_adjustment(self):
        """Test a stock count writes an adjustment for the difference"""
        apply_inventory_movement(self.unit_variant, 'restock', qty_units=10, cost_total=Decimal('30.00'))
        movement = set_stock_level(self.unit_variant, qty_units=7, user=self.user)
        self.assertEqual(movement.type, 'adjustment')
        self.assertEqual(movement.qty_units, -3)
        self.assertEqual(movement.cost_total, Decimal('9.00'))
        self.assertEqual(Inventory.objects.get(variant=self.unit_variant).qty_units, 7)
        self.assertIsNone(set_stock_level(self.unit_variant, qty_units=7))

    def test_quantity_equals_ledger_sum(self):
        """Test on-hand always equals the sum of movement deltas"""
        apply_inventory_movement(self.weight_variant, 'restock', qty_g=5000, cost_total=Decimal('10.00'))
        apply_inventory_movement(self.weight_variant, 'manual_out', qty_g=1200)
        apply_inventory_movement(self.weight_variant, 'return', qty_g=200)
        set_stock_level(self.weight_variant, qty_g=3500)
        total = sum(InventoryMovement.objects.filter(variant=self.weight_variant).values_list('qty_g', flat=True))
        self.assertEqual(Inventory.objects.get(variant=self.weight_variant).qty_g, total)


class InventoryAPITests(TestCase):
    """Test inventory endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.variant = TestDataFactory.create_variant(name='Can')
        self.weight_variant = TestDataFactory.create_weight_variant()

    def test_list_low_stock_first(self):
        """Test inventory list orders low-stock rows first"""
        TestDataFactory.stock_variant(self.variant, qty_units=100)
        response = self.client.get('/api/v1/inventory/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)
        self.assertTrue(response.data[0]['is_low_stock'])
        self.assertEqual(response.data[0]['variant'], self.weight_variant.id)

    def test_low_stock_endpoint(self):
        """Test low stock endpoint returns only rows at or below reorder level"""
        TestDataFactory.stock_variant(self.variant, qty_units=100)
        response = self.client.get('/api/v1/inventory/low-stock/')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['variant'], self.weight_variant.id)

    def test_zero_reorder_level_never_low(self):
        """Test a zero reorder level disables the low-stock flag"""
        Inventory.objects.filter(variant=self.weight_variant).update(reorder_level_g=0)
        Inventory.objects.filter(variant=self.variant).update(reorder_level_units=0)
        response = self.client.get('/api/v1/inventory/low-stock/')
        self.assertEqual(response.data['count'], 0)

    def test_upsert_counted_stock(self):
        """Test PUT applies counted stock in kg and reorder levels"""
        data = {'qty_kg': '3.25', 'reorder_level_kg': '1'}
        response = self.client.put(f'/api/v1/inventory/{self.weight_variant.id}/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['qty_g'], 3250)
        self.assertEqual(response.data['reorder_level_g'], 1000)
        self.assertTrue(InventoryMovement.objects.filter(variant=self.weight_variant, type='adjustment', qty_g=3250).exists())
        self.assertTrue(AuditLog.objects.filter(action='stock_update').exists())

    def test_create_restock_movement(self):
        """Test recording a restock through the API"""
        data = {
            'variant': self.variant.id,
            'type': 'restock',
            'qty_units': 12,
            'cost_total': '24.00',
            'supplier_name': 'Bakaaro Traders',
        }
        response = self.client.post('/api/v1/inventory-movements/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['inventory']['qty_units'], 12)
        self.assertEqual(response.data['movement']['supplier_name'], 'Bakaaro Traders')
        self.assertTrue(AuditLog.objects.filter(action='stock_movement').exists())

    def test_sale_type_not_allowed_manually(self):
        """Test sale movements cannot be created by hand"""
        data = {'variant': self.variant.id, 'type': 'sale', 'qty_units': 1}
        response = self.client.post('/api/v1/inventory-movements/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_manual_out_insufficient_stock(self):
        """Test manual out beyond stock returns 400"""
        data = {'variant': self.variant.id, 'type': 'manual_out', 'qty_units': 1}
        response = self.client.post('/api/v1/inventory-movements/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('error', response.data)

    def test_manual_out_ignores_cost(self):
        """Test cost is dropped on outbound movements"""
        TestDataFactory.stock_variant(self.variant, qty_units=10, cost_total=Decimal('10.00'))
        data = {'variant': self.variant.id, 'type': 'manual_out', 'qty_units': 2, 'cost_total': '99.00'}
        response = self.client.post('/api/v1/inventory-movements/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['movement']['cost_total'], '2.00')

    def test_weight_restock_in_kg(self):
        """Test weight movements accept kilograms"""
        data = {'variant': self.weight_variant.id, 'type': 'restock', 'qty_kg': '1.5', 'cost_total': '3.00'}
        response = self.client.post('/api/v1/inventory-movements/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['movement']['qty_g'], 1500)

    def test_movement_list_filters_and_paginates(self):
        """Test ledger filtering by type and pagination"""
        TestDataFactory.stock_variant(self.variant, qty_units=10, supplier_name='Hodan Wholesale')
        TestDataFactory.stock_variant(self.variant, qty_units=5)
        self.client.post('/api/v1/inventory-movements/', {'variant': self.variant.id, 'type': 'manual_out', 'qty_units': 1}, format='json')
        response = self.client.get('/api/v1/inventory-movements/?type=restock&limit=1')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        self.assertEqual(len(response.data['results']), 1)
        self.assertEqual(response.data['total_pages'], 2)
        response = self.client.get('/api/v1/inventory-movements/?supplier=hodan')
        self.assertEqual(response.data['count'], 1)
