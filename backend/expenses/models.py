from django.db import models
from backend.core.models import User


class Expense(models.Model):
    """Money spent by the store; category is one of settings.EXPENSE_CATEGORIES"""
    incurred_at = models.DateField(db_index=True)
    category = models.CharField(max_length=100, db_index=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=10, default='USD')
    note = models.TextField(blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='expenses')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.category} {self.amount} ({self.incurred_at})"

    class Meta:
        db_table = 'expenses'
        ordering = ['-incurred_at', '-id']
