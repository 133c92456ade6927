from django.contrib import admin
from .models import Inventory, InventoryMovement


@admin.register(Inventory)
class InventoryAdmin(admin.ModelAdmin):
    list_display = ['variant', 'qty_g', 'qty_units', 'reorder_level_g', 'reorder_level_units', 'avg_cost_per_g', 'avg_cost_per_unit', 'updated_at']
    list_filter = ['variant__variant_type']
    search_fields = ['variant__name', 'variant__sku', 'variant__product__name']
    readonly_fields = ['qty_g', 'qty_units', 'avg_cost_per_g', 'avg_cost_per_unit', 'updated_at']


@admin.register(InventoryMovement)
class InventoryMovementAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'type', 'variant', 'qty_g', 'qty_units', 'cost_total', 'supplier_name', 'order']
    list_filter = ['type', 'created_at']
    search_fields = ['variant__name', 'variant__product__name', 'supplier_name', 'note']
    ordering = ['-created_at']
    readonly_fields = ['variant', 'type', 'qty_g', 'qty_units', 'cost_total', 'supplier_name', 'note', 'order', 'created_by', 'created_at']

    def has_delete_permission(self, request, obj=None):
        return False
