from decimal import Decimal
from rest_framework import serializers
from .models import Inventory, InventoryMovement
from .services import kg_to_grams, MOVEMENT_TYPES
from backend.catalog.models import ProductVariant


class InventorySerializer(serializers.ModelSerializer):
    variant_name = serializers.CharField(source='variant.name', read_only=True)
    product_name = serializers.CharField(source='variant.product.name', read_only=True)
    variant_type = serializers.CharField(source='variant.variant_type', read_only=True)
    sku = serializers.CharField(source='variant.sku', read_only=True)
    is_low_stock = serializers.BooleanField(read_only=True)
    quantity_display = serializers.CharField(read_only=True)
    stock_value = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = Inventory
        fields = ['id', 'variant', 'variant_name', 'product_name', 'variant_type', 'sku',
                  'qty_g', 'qty_units', 'reorder_level_g', 'reorder_level_units',
                  'avg_cost_per_g', 'avg_cost_per_unit', 'is_low_stock', 'quantity_display',
                  'stock_value', 'updated_at']
        read_only_fields = fields


class InventoryUpsertSerializer(serializers.Serializer):
    """Counted stock and reorder levels for one variant"""
    qty_g = serializers.IntegerField(required=False, min_value=0)
    qty_kg = serializers.DecimalField(max_digits=12, decimal_places=3, required=False, min_value=Decimal('0'))
    qty_units = serializers.IntegerField(required=False, min_value=0)
    reorder_level_g = serializers.IntegerField(required=False, min_value=0)
    reorder_level_kg = serializers.DecimalField(max_digits=12, decimal_places=3, required=False, min_value=Decimal('0'))
    reorder_level_units = serializers.IntegerField(required=False, min_value=0)
    note = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if 'qty_kg' in attrs:
            attrs['qty_g'] = kg_to_grams(attrs.pop('qty_kg'))
        if 'reorder_level_kg' in attrs:
            attrs['reorder_level_g'] = kg_to_grams(attrs.pop('reorder_level_kg'))
        return attrs


class InventoryMovementSerializer(serializers.ModelSerializer):
    variant_name = serializers.CharField(source='variant.name', read_only=True)
    product_name = serializers.CharField(source='variant.product.name', read_only=True)
    variant_type = serializers.CharField(source='variant.variant_type', read_only=True)
    order_number = serializers.CharField(source='order.order_number', read_only=True, default=None)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = InventoryMovement
        fields = ['id', 'variant', 'variant_name', 'product_name', 'variant_type', 'type',
                  'qty_g', 'qty_units', 'cost_total', 'unit_cost', 'supplier_name', 'note', 'order',
                  'order_number', 'created_by_username', 'created_at']
        read_only_fields = fields


class MovementCreateSerializer(serializers.Serializer):
    """
    Manual movement input. Quantities for restock/return/manual_out may be
    given unsigned; adjustment quantities are signed. Weight quantities can be
    sent as qty_kg instead of qty_g.
    """
    MANUAL_TYPES = [t for t in MOVEMENT_TYPES if t != 'sale']

    variant = serializers.PrimaryKeyRelatedField(queryset=ProductVariant.objects.select_related('product'))
    type = serializers.ChoiceField(choices=MANUAL_TYPES)
    qty_g = serializers.IntegerField(required=False, default=0)
    qty_kg = serializers.DecimalField(max_digits=12, decimal_places=3, required=False)
    qty_units = serializers.IntegerField(required=False, default=0)
    cost_total = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True, min_value=Decimal('0'))
    supplier_name = serializers.CharField(max_length=200, required=False, allow_blank=True, allow_null=True)
    note = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs.get('qty_kg') is not None:
            attrs['qty_g'] = kg_to_grams(attrs.pop('qty_kg'))
        else:
            attrs.pop('qty_kg', None)

        variant = attrs['variant']
        qty = attrs['qty_g'] if variant.variant_type == 'weight' else attrs['qty_units']
        if not qty:
            field = 'qty_g' if variant.variant_type == 'weight' else 'qty_units'
            raise serializers.ValidationError({field: 'Quantity must not be zero.'})

        # Cost only applies to movements that add stock
        adds_stock = attrs['type'] in ('restock', 'return') or (attrs['type'] == 'adjustment' and qty > 0)
        if not adds_stock:
            attrs['cost_total'] = None
        return attrs
