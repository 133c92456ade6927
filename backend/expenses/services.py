from datetime import date
from decimal import Decimal

from django.db.models import Sum
from django.utils import timezone

from .models import Expense


def default_period(today=None):
    """First day of the current month through today"""
    today = today or timezone.localdate()
    return today.replace(day=1), today


def expense_totals(queryset):
    """Total and per-category totals for a queryset of expenses"""
    total = queryset.aggregate(total=Sum('amount'))['total'] or Decimal('0.00')
    by_category = [
        {'category': row['category'], 'total': str(row['total'] or Decimal('0.00'))}
        for row in queryset.order_by().values('category').annotate(total=Sum('amount')).order_by('category')
    ]
    return total, by_category


def expenses_between(date_from: date, date_to: date, category=None):
    queryset = Expense.objects.filter(incurred_at__gte=date_from, incurred_at__lte=date_to)
    if category:
        queryset = queryset.filter(category=category)
    return queryset
