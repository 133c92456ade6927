from decimal import Decimal
from rest_framework import serializers
from .models import Cart, CartItem, Order, OrderItem, Payment
from .services import line_total
from backend.catalog.models import ProductVariant
from backend.parties.models import Customer


class CartItemSerializer(serializers.ModelSerializer):
    variant_name = serializers.CharField(source='variant.name', read_only=True)
    product_name = serializers.CharField(source='variant.product.name', read_only=True)
    variant_type = serializers.CharField(source='variant.variant_type', read_only=True)
    line_total = serializers.SerializerMethodField()

    class Meta:
        model = CartItem
        fields = ['id', 'variant', 'variant_name', 'product_name', 'variant_type',
                  'qty_g', 'qty_units', 'unit_price', 'line_total']
        read_only_fields = ['unit_price']

    def get_line_total(self, obj):
        return str(line_total(obj.variant.variant_type, obj.unit_price, obj.qty_g, obj.qty_units))


class CartSerializer(serializers.ModelSerializer):
    items = CartItemSerializer(many=True, read_only=True)
    subtotal = serializers.SerializerMethodField()
    customer_display = serializers.SerializerMethodField()

    class Meta:
        model = Cart
        fields = ['id', 'cart_number', 'customer', 'customer_name', 'customer_phone', 'customer_display',
                  'payment_method', 'status', 'note', 'items', 'subtotal', 'created_by', 'created_at', 'updated_at']
        read_only_fields = ['cart_number', 'status', 'created_by', 'created_at', 'updated_at']

    def get_subtotal(self, obj):
        total = sum(
            (line_total(i.variant.variant_type, i.unit_price, i.qty_g, i.qty_units) for i in obj.items.all()),
            Decimal('0.00'),
        )
        return str(total)

    def get_customer_display(self, obj):
        if obj.customer_id:
            return obj.customer.name or obj.customer.phone
        return obj.customer_name or obj.customer_phone or None


class CartItemInputSerializer(serializers.Serializer):
    variant = serializers.PrimaryKeyRelatedField(queryset=ProductVariant.objects.select_related('product'))
    qty_g = serializers.IntegerField(required=False, default=0, min_value=0)
    qty_kg = serializers.DecimalField(max_digits=12, decimal_places=3, required=False, min_value=Decimal('0'))
    qty_units = serializers.IntegerField(required=False, default=0, min_value=0)

    def validate(self, attrs):
        from backend.inventory.services import kg_to_grams
        if attrs.get('qty_kg') is not None:
            attrs['qty_g'] = kg_to_grams(attrs.pop('qty_kg'))
        else:
            attrs.pop('qty_kg', None)
        return attrs


class CartItemUpdateSerializer(serializers.Serializer):
    qty_g = serializers.IntegerField(required=False, min_value=0)
    qty_units = serializers.IntegerField(required=False, min_value=0)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=Decimal('0'))


class CheckoutSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(choices=Cart.PAYMENT_METHOD_CHOICES, required=False)
    note = serializers.CharField(required=False, allow_blank=True, default='')


class OrderItemSerializer(serializers.ModelSerializer):
    variant_name = serializers.CharField(source='variant.name', read_only=True)
    product_name = serializers.CharField(source='variant.product.name', read_only=True)
    variant_type = serializers.CharField(source='variant.variant_type', read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'variant', 'variant_name', 'product_name', 'variant_type',
                  'qty_g', 'qty_units', 'unit_price', 'line_total']


class PaymentSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = Payment
        fields = ['id', 'order', 'order_number', 'customer', 'amount', 'method', 'note', 'created_by_username', 'created_at']
        read_only_fields = ['order', 'customer']


class OrderListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True, default=None)
    balance_due = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'customer', 'customer_name', 'customer_phone', 'channel', 'status',
                  'payment_method', 'payment_status', 'currency', 'total', 'amount_paid', 'balance_due',
                  'address', 'note', 'created_at']


class OrderSerializer(OrderListSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)

    class Meta(OrderListSerializer.Meta):
        fields = OrderListSerializer.Meta.fields + [
            'subtotal', 'delivery_fee', 'discount', 'items', 'payments',
            'confirmed_at', 'cancelled_at', 'updated_at'
        ]


class OrderUpdateSerializer(serializers.Serializer):
    """Editable order fields; status and payment status go through the order services"""
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES, required=False)
    payment_method = serializers.ChoiceField(choices=Order.PAYMENT_METHOD_CHOICES, required=False)
    payment_status = serializers.ChoiceField(choices=Order.PAYMENT_STATUS_CHOICES, required=False)
    address = serializers.CharField(required=False, allow_blank=True)
    note = serializers.CharField(required=False, allow_blank=True)


class OrderLineInputSerializer(serializers.Serializer):
    variant = serializers.PrimaryKeyRelatedField(queryset=ProductVariant.objects.select_related('product'))
    qty_g = serializers.IntegerField(required=False, default=0, min_value=0)
    qty_kg = serializers.DecimalField(max_digits=12, decimal_places=3, required=False, min_value=Decimal('0'))
    qty_units = serializers.IntegerField(required=False, default=0, min_value=0)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True, min_value=Decimal('0'))

    def validate(self, attrs):
        from backend.inventory.services import kg_to_grams
        if attrs.get('qty_kg') is not None:
            attrs['qty_g'] = kg_to_grams(attrs.pop('qty_kg'))
        else:
            attrs.pop('qty_kg', None)
        return attrs


class OnlineOrderSerializer(serializers.Serializer):
    customer_phone = serializers.CharField(max_length=30)
    customer_name = serializers.CharField(max_length=200, required=False, allow_blank=True, allow_null=True)
    channel = serializers.ChoiceField(choices=[('whatsapp', 'WhatsApp'), ('website', 'Website')], default='whatsapp')
    payment_method = serializers.ChoiceField(choices=Order.PAYMENT_METHOD_CHOICES, default='cod')
    address = serializers.CharField(required=False, allow_blank=True, default='')
    note = serializers.CharField(required=False, allow_blank=True, default='')
    delivery_fee = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal('0.00'), min_value=Decimal('0'))
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal('0.00'), min_value=Decimal('0'))
    items = OrderLineInputSerializer(many=True)


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES, default='cash')
    note = serializers.CharField(required=False, allow_blank=True, default='')


class CartCreateSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all(), required=False, allow_null=True)
    customer_name = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    customer_phone = serializers.CharField(max_length=30, required=False, allow_blank=True, default='')
    payment_method = serializers.ChoiceField(choices=Cart.PAYMENT_METHOD_CHOICES, default='cash')
    note = serializers.CharField(required=False, allow_blank=True, default='')
