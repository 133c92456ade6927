import django_filters
from django.db.models import Q
from .models import Order


class OrderFilter(django_filters.FilterSet):
    """Filter for orders list"""

    status = django_filters.MultipleChoiceFilter(choices=Order.STATUS_CHOICES)
    channel = django_filters.ChoiceFilter(choices=Order.CHANNEL_CHOICES)
    payment_status = django_filters.ChoiceFilter(choices=Order.PAYMENT_STATUS_CHOICES)
    payment_method = django_filters.ChoiceFilter(choices=Order.PAYMENT_METHOD_CHOICES)
    customer = django_filters.NumberFilter(field_name='customer_id', lookup_expr='exact')
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')
    search = django_filters.CharFilter(method='filter_search', label='Search')

    class Meta:
        model = Order
        fields = ['status', 'channel', 'payment_status', 'payment_method', 'customer', 'date_from', 'date_to', 'search']

    def filter_search(self, queryset, name, value):
        """Search phone, note, address, order number and customer name"""
        value = (value or '').strip()
        if not value:
            return queryset
        query = (
            Q(customer_phone__icontains=value) |
            Q(note__icontains=value) |
            Q(address__icontains=value) |
            Q(order_number__icontains=value) |
            Q(customer__name__icontains=value)
        )
        if value.isdigit():
            query |= Q(pk=int(value))
        return queryset.filter(query)
