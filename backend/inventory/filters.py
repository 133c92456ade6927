import django_filters
from .models import InventoryMovement


class MovementFilter(django_filters.FilterSet):
    """Filter for the inventory movement ledger"""

    type = django_filters.MultipleChoiceFilter(choices=InventoryMovement.TYPE_CHOICES)
    variant = django_filters.NumberFilter(field_name='variant_id', lookup_expr='exact')
    product = django_filters.NumberFilter(field_name='variant__product_id', lookup_expr='exact')
    order = django_filters.NumberFilter(field_name='order_id', lookup_expr='exact')
    supplier = django_filters.CharFilter(field_name='supplier_name', lookup_expr='icontains')
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = InventoryMovement
        fields = ['type', 'variant', 'product', 'order', 'supplier', 'date_from', 'date_to']
