from decimal import Decimal
from django.conf import settings
from rest_framework import serializers
from .models import Expense


class ExpenseSerializer(serializers.ModelSerializer):
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = Expense
        fields = ['id', 'incurred_at', 'category', 'amount', 'currency', 'note',
                  'created_by', 'created_by_username', 'created_at', 'updated_at']
        read_only_fields = ['created_by', 'created_at', 'updated_at']
        extra_kwargs = {'currency': {'required': False}}

    def validate_category(self, value):
        value = (value or '').strip()
        if value not in settings.EXPENSE_CATEGORIES:
            raise serializers.ValidationError(
                f"Unknown category. Choose one of: {', '.join(settings.EXPENSE_CATEGORIES)}"
            )
        return value

    def validate_amount(self, value):
        if value is None or value <= Decimal('0'):
            raise serializers.ValidationError('Amount must be greater than 0')
        return value
