from django.contrib import admin
from .models import Expense


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = ['incurred_at', 'category', 'amount', 'currency', 'created_by', 'created_at']
    list_filter = ['category', 'incurred_at']
    search_fields = ['note', 'category']
    ordering = ['-incurred_at']
