import logging
from datetime import datetime

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.utils import timezone

from .services import daily_sales, dashboard, expense_summary
from backend.expenses.views import parse_period
from backend.parties.views import supplier_summary_view

logger = logging.getLogger('backend.reports')


def parse_day(request):
    value = request.query_params.get('date')
    if not value:
        return timezone.localdate()
    return datetime.strptime(value, '%Y-%m-%d').date()


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def daily_sales_report(request):
    """Orders sold on a day with revenue, cost and profit"""
    try:
        day = parse_day(request)
    except ValueError:
        return Response({'error': 'date must be in YYYY-MM-DD format'}, status=status.HTTP_400_BAD_REQUEST)
    return Response(daily_sales(day, request.query_params.get('search', '')))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard_kpis(request):
    """Dashboard KPIs for a day (default today)"""
    try:
        day = parse_day(request)
    except ValueError:
        return Response({'error': 'date must be in YYYY-MM-DD format'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        return Response(dashboard(day))
    except Exception as e:
        logger.error(f"Error building dashboard for {day}: {str(e)}", exc_info=True)
        return Response({'error': 'Failed to build dashboard'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def expense_summary_report(request):
    """Expense totals by category over a date range (default month to date)"""
    try:
        date_from, date_to = parse_period(request)
    except ValueError:
        return Response({'error': 'Dates must be in YYYY-MM-DD format'}, status=status.HTTP_400_BAD_REQUEST)
    return Response(expense_summary(date_from, date_to))


supplier_summary_report = supplier_summary_view
