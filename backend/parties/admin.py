from django.contrib import admin
from .models import Customer, Supplier, SupplierProduct, Credit


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['name', 'phone', 'created_at']
    search_fields = ['name', 'phone']
    ordering = ['name']


class SupplierProductInline(admin.TabularInline):
    model = SupplierProduct
    extra = 0
    raw_id_fields = ['variant']


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ['name', 'phone', 'created_at']
    search_fields = ['name', 'phone']
    ordering = ['name']
    inlines = [SupplierProductInline]


@admin.register(Credit)
class CreditAdmin(admin.ModelAdmin):
    list_display = ['customer_name', 'customer_phone', 'amount', 'amount_paid', 'status', 'created_at', 'paid_at']
    list_filter = ['status', 'created_at']
    search_fields = ['customer_name', 'customer_phone', 'customer__name', 'note']
    ordering = ['-created_at']
    readonly_fields = ['created_at', 'updated_at', 'paid_at']
