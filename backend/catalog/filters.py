import django_filters
from django.db.models import Q
from .models import Product, ProductVariant


def _truthy(value):
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


class ProductFilter(django_filters.FilterSet):
    """Filter for Product model using django-filter"""

    search = django_filters.CharFilter(method='filter_search', label='Search')
    is_active = django_filters.CharFilter(method='filter_active', label='Active')
    category = django_filters.NumberFilter(field_name='subsubcategory__subcategory__category_id', lookup_expr='exact')
    subcategory = django_filters.NumberFilter(field_name='subsubcategory__subcategory_id', lookup_expr='exact')
    subsubcategory = django_filters.NumberFilter(field_name='subsubcategory_id', lookup_expr='exact')
    brand = django_filters.CharFilter(field_name='brand', lookup_expr='iexact')

    class Meta:
        model = Product
        fields = ['search', 'is_active', 'category', 'subcategory', 'subsubcategory', 'brand']

    def filter_search(self, queryset, name, value):
        """
        Match products where every word of the query appears in the name,
        brand, description or tags (in any order).
        """
        words = [w for w in (value or '').split() if w]
        if not words:
            return queryset
        for word in words:
            queryset = queryset.filter(
                Q(name__icontains=word) |
                Q(brand__icontains=word) |
                Q(description__icontains=word) |
                Q(tags__icontains=word)
            )
        return queryset.distinct()

    def filter_active(self, queryset, name, value):
        if value in (None, ''):
            return queryset
        return queryset.filter(is_active=_truthy(value))


class VariantFilter(django_filters.FilterSet):
    """Variant lookup used by the POS and the variants list"""

    q = django_filters.CharFilter(method='filter_q', label='Search')
    product = django_filters.NumberFilter(field_name='product_id', lookup_expr='exact')
    variant_type = django_filters.ChoiceFilter(choices=ProductVariant.VARIANT_TYPE_CHOICES)
    is_active = django_filters.CharFilter(method='filter_active', label='Active')

    class Meta:
        model = ProductVariant
        fields = ['q', 'product', 'variant_type', 'is_active']

    def filter_q(self, queryset, name, value):
        words = [w for w in (value or '').split() if w]
        for word in words:
            queryset = queryset.filter(
                Q(name__icontains=word) |
                Q(sku__icontains=word) |
                Q(product__name__icontains=word) |
                Q(product__brand__icontains=word)
            )
        return queryset

    def filter_active(self, queryset, name, value):
        if value in (None, ''):
            return queryset
        return queryset.filter(is_active=_truthy(value))
