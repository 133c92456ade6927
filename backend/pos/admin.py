from django.contrib import admin
from .models import Cart, CartItem, Order, OrderItem, Payment


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    raw_id_fields = ['variant']


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ['cart_number', 'customer_name', 'customer_phone', 'payment_method', 'status', 'created_by', 'updated_at']
    list_filter = ['status', 'payment_method']
    search_fields = ['cart_number', 'customer_name', 'customer_phone']
    ordering = ['-updated_at']
    inlines = [CartItemInline]


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    raw_id_fields = ['variant']
    readonly_fields = ['line_total']


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    readonly_fields = ['created_by', 'created_at']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'channel', 'status', 'payment_status', 'customer_phone', 'total', 'amount_paid', 'created_at']
    list_filter = ['status', 'channel', 'payment_status', 'payment_method', 'created_at']
    search_fields = ['order_number', 'customer_phone', 'customer__name', 'note', 'address']
    ordering = ['-created_at']
    readonly_fields = ['order_number', 'subtotal', 'total', 'amount_paid', 'confirmed_at', 'cancelled_at', 'created_at', 'updated_at']
    inlines = [OrderItemInline, PaymentInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['order', 'amount', 'method', 'created_by', 'created_at']
    list_filter = ['method', 'created_at']
    search_fields = ['order__order_number', 'note']
    ordering = ['-created_at']
