from django.db import models
from decimal import Decimal
from backend.catalog.models import ProductVariant


class Inventory(models.Model):
    """Current stock for a variant (grams for weight variants, units otherwise)"""
    variant = models.OneToOneField(ProductVariant, on_delete=models.CASCADE, related_name='inventory')
    qty_g = models.BigIntegerField(default=0)
    qty_units = models.IntegerField(default=0)
    reorder_level_g = models.BigIntegerField(default=0)
    reorder_level_units = models.IntegerField(default=0)
    avg_cost_per_g = models.DecimalField(max_digits=16, decimal_places=6, default=Decimal('0'))
    avg_cost_per_unit = models.DecimalField(max_digits=16, decimal_places=6, default=Decimal('0'))
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.variant}: {self.quantity_display}"

    @property
    def is_weight(self):
        return self.variant.variant_type == 'weight'

    @property
    def quantity(self):
        """On-hand quantity in the variant's own dimension"""
        return self.qty_g if self.is_weight else self.qty_units

    @property
    def reorder_level(self):
        return self.reorder_level_g if self.is_weight else self.reorder_level_units

    @property
    def avg_cost(self):
        return self.avg_cost_per_g if self.is_weight else self.avg_cost_per_unit

    @property
    def quantity_display(self):
        if self.is_weight:
            return f"{Decimal(self.qty_g) / 1000:.3f} kg"
        return f"{self.qty_units} units"

    @property
    def is_low_stock(self):
        """Low when on-hand is at or below a positive reorder level"""
        level = self.reorder_level
        return level > 0 and self.quantity <= level

    @property
    def stock_value(self):
        return (Decimal(max(self.quantity, 0)) * self.avg_cost).quantize(Decimal('0.01'))

    class Meta:
        db_table = 'inventory'
        verbose_name_plural = 'inventory'


class InventoryMovement(models.Model):
    """Append-only ledger of signed stock changes"""
    TYPE_CHOICES = [
        ('restock', 'Restock'),
        ('manual_out', 'Manual Out'),
        ('return', 'Return'),
        ('adjustment', 'Adjustment'),
        ('sale', 'Sale'),
    ]

    variant = models.ForeignKey(ProductVariant, on_delete=models.PROTECT, related_name='movements')
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, db_index=True)
    qty_g = models.BigIntegerField(default=0)
    qty_units = models.IntegerField(default=0)
    cost_total = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    unit_cost = models.DecimalField(max_digits=16, decimal_places=6, null=True, blank=True)
    supplier_name = models.CharField(max_length=200, blank=True, null=True, db_index=True)
    note = models.TextField(blank=True)
    order = models.ForeignKey('pos.Order', on_delete=models.PROTECT, null=True, blank=True, related_name='movements')
    created_by = models.ForeignKey('core.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='inventory_movements')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    def __str__(self):
        return f"{self.get_type_display()} {self.variant_id} ({self.qty_g} g / {self.qty_units} u)"

    @property
    def is_inbound(self):
        return self.qty_g > 0 or self.qty_units > 0

    class Meta:
        db_table = 'inventory_movements'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['variant', '-created_at'], name='idx_movement_variant_created'),
            models.Index(fields=['order'], name='idx_movement_order'),
        ]
