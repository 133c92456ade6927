import logging
from datetime import datetime

from django.conf import settings
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import Expense
from .serializers import ExpenseSerializer
from .services import default_period, expense_totals, expenses_between
from backend.core.utils import create_audit_log, get_store_settings

logger = logging.getLogger('backend.expenses')


def parse_period(request):
    """Read date_from/date_to (YYYY-MM-DD), defaulting to month-to-date"""
    default_from, default_to = default_period()
    date_from = request.query_params.get('date_from')
    date_to = request.query_params.get('date_to')
    date_from = datetime.strptime(date_from, '%Y-%m-%d').date() if date_from else default_from
    date_to = datetime.strptime(date_to, '%Y-%m-%d').date() if date_to else default_to
    return date_from, date_to


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def expense_list_create(request):
    """List expenses for a period with totals, or record a new expense"""
    if request.method == 'GET':
        try:
            date_from, date_to = parse_period(request)
        except ValueError:
            return Response({'error': 'Dates must be in YYYY-MM-DD format'}, status=status.HTTP_400_BAD_REQUEST)
        if date_from > date_to:
            return Response({'error': 'date_from must be on or before date_to'}, status=status.HTTP_400_BAD_REQUEST)

        expenses = expenses_between(date_from, date_to, request.query_params.get('category'))
        expenses = expenses.select_related('created_by')
        total, by_category = expense_totals(expenses)
        serializer = ExpenseSerializer(expenses, many=True)
        return Response({
            'period': {'from': date_from.isoformat(), 'to': date_to.isoformat()},
            'results': serializer.data,
            'count': len(serializer.data),
            'total': str(total),
            'totals_by_category': by_category,
            'categories': settings.EXPENSE_CATEGORIES,
        })

    serializer = ExpenseSerializer(data=request.data)
    if serializer.is_valid():
        expense = serializer.save(
            created_by=request.user,
            currency=serializer.validated_data.get('currency') or get_store_settings()['currency_code'],
        )
        create_audit_log(
            request=request,
            action='create',
            model_name='Expense',
            object_id=str(expense.id),
            object_name=expense.category,
            object_reference=expense.incurred_at.isoformat(),
            changes={'amount': str(expense.amount), 'note': expense.note}
        )
        logger.info(f"Expense {expense.id} recorded: {expense.category} {expense.amount}")
        return Response(ExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def expense_detail(request, pk):
    """Retrieve, update or delete an expense"""
    expense = get_object_or_404(Expense, pk=pk)

    if request.method == 'GET':
        return Response(ExpenseSerializer(expense).data)
    elif request.method in ['PUT', 'PATCH']:
        old_data = {'category': expense.category, 'amount': str(expense.amount), 'incurred_at': expense.incurred_at.isoformat()}
        serializer = ExpenseSerializer(expense, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            expense = serializer.save()
            new_data = {'category': expense.category, 'amount': str(expense.amount), 'incurred_at': expense.incurred_at.isoformat()}
            changes = {k: {'old': old_data[k], 'new': new_data[k]} for k in old_data if old_data[k] != new_data[k]}
            if changes:
                create_audit_log(
                    request=request,
                    action='update',
                    model_name='Expense',
                    object_id=str(expense.id),
                    object_name=expense.category,
                    object_reference=expense.incurred_at.isoformat(),
                    changes=changes
                )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:
        create_audit_log(
            request=request,
            action='delete',
            model_name='Expense',
            object_id=str(expense.id),
            object_name=expense.category,
            object_reference=expense.incurred_at.isoformat(),
            changes={'amount': str(expense.amount)}
        )
        expense.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def expense_categories(request):
    """Configured expense categories"""
    return Response(settings.EXPENSE_CATEGORIES)
