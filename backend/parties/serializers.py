from decimal import Decimal
from rest_framework import serializers
from .models import Customer, Supplier, SupplierProduct, Credit
from .services import normalize_phone, phone_digit_count, MIN_PHONE_DIGITS, credit_balance, credit_group_key


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = ['id', 'name', 'phone', 'address', 'notes', 'created_at', 'updated_at']

    def validate_phone(self, value):
        value = normalize_phone(value)
        if phone_digit_count(value) < MIN_PHONE_DIGITS:
            raise serializers.ValidationError(f'Phone number must have at least {MIN_PHONE_DIGITS} digits.')
        queryset = Customer.objects.filter(phone=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A customer with this phone number already exists.')
        return value

    def validate_name(self, value):
        value = (value or '').strip()
        return value or None


class SupplierSerializer(serializers.ModelSerializer):
    linked_variants_count = serializers.SerializerMethodField()

    class Meta:
        model = Supplier
        fields = ['id', 'name', 'phone', 'notes', 'linked_variants_count', 'created_at', 'updated_at']

    def get_linked_variants_count(self, obj):
        return obj.supplier_products.filter(active=True).count()

    def validate_name(self, value):
        value = value.strip()
        queryset = Supplier.objects.filter(name__iexact=value)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A supplier with this name already exists.')
        return value


class SupplierProductSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    variant_name = serializers.CharField(source='variant.name', read_only=True)
    product_name = serializers.CharField(source='variant.product.name', read_only=True)

    class Meta:
        model = SupplierProduct
        fields = ['id', 'supplier', 'supplier_name', 'variant', 'variant_name', 'product_name',
                  'is_primary', 'supplier_sku', 'default_buy_price', 'active', 'created_at', 'updated_at']
        read_only_fields = ['supplier', 'active']


class SupplierLinkSerializer(serializers.Serializer):
    variant = serializers.IntegerField()
    is_primary = serializers.BooleanField(required=False, default=False)
    supplier_sku = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    default_buy_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True, min_value=Decimal('0'))


class CreditSerializer(serializers.ModelSerializer):
    balance = serializers.SerializerMethodField()
    group_key = serializers.SerializerMethodField()
    order_number = serializers.CharField(source='order.order_number', read_only=True, default=None)

    class Meta:
        model = Credit
        fields = ['id', 'customer', 'customer_name', 'customer_phone', 'amount', 'amount_paid',
                  'balance', 'status', 'note', 'order', 'order_number', 'group_key', 'paid_at',
                  'created_at', 'updated_at']
        read_only_fields = fields

    def get_balance(self, obj):
        return str(credit_balance(obj))

    def get_group_key(self, obj):
        return credit_group_key(obj)


class CreditCreateSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all(), required=False, allow_null=True)
    customer_name = serializers.CharField(max_length=200, required=False, allow_blank=True, allow_null=True)
    customer_phone = serializers.CharField(max_length=30, required=False, allow_blank=True, allow_null=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    note = serializers.CharField(required=False, allow_blank=True, default='')


class CreditPaymentSerializer(serializers.Serializer):
    group_key = serializers.CharField(max_length=250)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    note = serializers.CharField(required=False, allow_blank=True, default='')


def serialize_credit_group(group):
    return {
        'key': group['key'],
        'customer_id': group['customer_id'],
        'customer_name': group['customer_name'],
        'customer_phone': group['customer_phone'],
        'total_amount': str(group['total_amount']),
        'total_paid': str(group['total_paid']),
        'balance': str(group['balance']),
        'open_count': group['open_count'],
        'last_activity': group['last_activity'],
        'rows': CreditSerializer(group['rows'], many=True).data,
    }
