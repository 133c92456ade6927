from django.db import models
from decimal import Decimal
from backend.core.models import User


class Customer(models.Model):
    """Customers, identified by phone number"""
    name = models.CharField(max_length=200, blank=True, null=True)
    phone = models.CharField(max_length=30, unique=True)
    address = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name or self.phone

    class Meta:
        db_table = 'customers'
        ordering = ['name', 'phone']


class Supplier(models.Model):
    """Suppliers"""
    name = models.CharField(max_length=200, unique=True)
    phone = models.CharField(max_length=30, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'suppliers'
        ordering = ['name']


class SupplierProduct(models.Model):
    """Which suppliers provide which variants (unlinking deactivates the row)"""
    supplier = models.ForeignKey(Supplier, on_delete=models.CASCADE, related_name='supplier_products')
    variant = models.ForeignKey('catalog.ProductVariant', on_delete=models.CASCADE, related_name='supplier_links')
    is_primary = models.BooleanField(default=False)
    supplier_sku = models.CharField(max_length=100, blank=True, null=True)
    default_buy_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.supplier.name} -> {self.variant}"

    class Meta:
        db_table = 'supplier_products'
        unique_together = [['supplier', 'variant']]


class Credit(models.Model):
    """Money a customer owes the store; paid down over time"""
    STATUS_CHOICES = [
        ('open', 'Open'),
        ('paid', 'Paid'),
    ]

    customer = models.ForeignKey(Customer, on_delete=models.SET_NULL, null=True, blank=True, related_name='credits')
    customer_name = models.CharField(max_length=200, blank=True, null=True)
    customer_phone = models.CharField(max_length=30, blank=True, null=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='open', db_index=True)
    note = models.TextField(blank=True)
    order = models.ForeignKey('pos.Order', on_delete=models.SET_NULL, null=True, blank=True, related_name='credits')
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='credits')
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        who = self.customer_name or self.customer_phone or f"Credit {self.pk}"
        return f"{who} - {self.amount}"

    @property
    def balance(self):
        return max(self.amount - self.amount_paid, Decimal('0.00'))

    class Meta:
        db_table = 'credits'
        ordering = ['-created_at']
