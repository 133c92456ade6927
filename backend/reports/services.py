"""
Report builders for daily sales and the dashboard.

Builders return plain dicts (decimals as strings) so results can be cached.
"""
import logging
from decimal import Decimal

from django.db.models import Count, Q, Sum
from django.utils import timezone

from backend.core.cache_utils import cached_report, DASHBOARD_KPI_CACHE_TTL
from backend.core.utils import get_store_settings, money
from backend.expenses.models import Expense
from backend.expenses.services import expense_totals, expenses_between
from backend.inventory.models import Inventory, InventoryMovement
from backend.inventory.services import inventory_queryset
from backend.parties.models import Credit
from backend.parties.services import build_credit_groups, BALANCE_EPSILON
from backend.pos.models import Order, OrderItem
from backend.pos.services import SALE_STATUSES, quantity_label

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
LOW_STOCK_PREVIEW = 10


def sale_orders_on(day):
    """Orders that count as sales, created on the given local date"""
    return Order.objects.filter(status__in=SALE_STATUSES, created_at__date=day)


def sale_costs(order_ids):
    """{(order_id, variant_id): cost} from the sale movements of the given orders"""
    rows = InventoryMovement.objects.filter(type='sale', order_id__in=order_ids).values(
        'order_id', 'variant_id'
    ).annotate(cost=Sum('cost_total'))
    return {(row['order_id'], row['variant_id']): row['cost'] or ZERO for row in rows}


def _matches(order, search):
    haystack = [order.order_number, order.customer_phone or '', order.note or '']
    if order.customer_id:
        haystack.append(order.customer.name or '')
    haystack.extend(item.variant.display_name for item in order.items.all())
    return any(search in value.lower() for value in haystack)


def daily_sales(day, search=''):
    """
    Orders sold on a day with revenue, cost and profit per order and per line.
    Revenue is the order total; cost is the recorded cost of its sale movements.
    When a variant appears on several lines its cost is split by quantity.
    """
    orders = list(
        sale_orders_on(day).select_related('customer').prefetch_related(
            'items__variant__product'
        ).order_by('-created_at', '-id')
    )
    search = (search or '').strip().lower()
    if search:
        orders = [order for order in orders if _matches(order, search)]

    costs = sale_costs([order.id for order in orders])
    revenue_total = cost_total = ZERO
    items_count = 0
    rows = []
    for order in orders:
        order_items = list(order.items.all())
        variant_qty = {}
        for item in order_items:
            variant_qty[item.variant_id] = variant_qty.get(item.variant_id, 0) + item.qty_g + item.qty_units
        # A variant's sale movements are costed once per order, then shared by quantity
        order_cost = sum((costs.get((order.id, variant_id), ZERO) for variant_id in variant_qty), ZERO)
        items = []
        for item in order_items:
            variant_cost = costs.get((order.id, item.variant_id), ZERO)
            qty = item.qty_g + item.qty_units
            total_qty = variant_qty[item.variant_id]
            cost = money(variant_cost * qty / total_qty) if total_qty else ZERO
            items.append({
                'variant_id': item.variant_id,
                'name': item.variant.display_name,
                'variant_type': item.variant.variant_type,
                'qty_g': item.qty_g,
                'qty_units': item.qty_units,
                'quantity': quantity_label(item.variant, item.qty_g, item.qty_units),
                'unit_price': str(item.unit_price),
                'revenue': str(item.line_total),
                'cost': str(cost),
                'profit': str(money(item.line_total - cost)),
            })
        items_count += len(items)
        revenue_total += order.total
        cost_total += order_cost
        rows.append({
            'id': order.id,
            'order_number': order.order_number,
            'created_at': order.created_at.isoformat(),
            'channel': order.channel,
            'status': order.status,
            'customer_name': order.customer.name if order.customer_id else None,
            'customer_phone': order.customer_phone,
            'payment_method': order.payment_method,
            'payment_status': order.payment_status,
            'revenue': str(order.total),
            'cost': str(money(order_cost)),
            'profit': str(money(order.total - order_cost)),
            'items': items,
        })

    return {
        'date': day.isoformat(),
        'summary': {
            'revenue': str(money(revenue_total)),
            'cost': str(money(cost_total)),
            'profit': str(money(revenue_total - cost_total)),
            'orders_count': len(rows),
            'items_count': items_count,
        },
        'orders': rows,
    }


def most_sold_item(day):
    """Variant with the highest revenue on the day; quantity breaks ties"""
    row = OrderItem.objects.filter(
        order__status__in=SALE_STATUSES, order__created_at__date=day
    ).values(
        'variant_id', 'variant__name', 'variant__product__name', 'variant__variant_type'
    ).annotate(
        revenue=Sum('line_total'),
        total_g=Sum('qty_g'),
        total_units=Sum('qty_units'),
        orders=Count('order', distinct=True),
    ).order_by('-revenue', '-total_g', '-total_units', 'variant_id').first()
    if row is None:
        return None
    return {
        'variant_id': row['variant_id'],
        'name': f"{row['variant__product__name']} - {row['variant__name']}",
        'variant_type': row['variant__variant_type'],
        'qty_g': row['total_g'] or 0,
        'qty_units': row['total_units'] or 0,
        'revenue': str(row['revenue'] or ZERO),
        'orders_count': row['orders'],
    }


def credit_overview():
    groups = build_credit_groups(Credit.objects.select_related('customer').all())
    outstanding = [g for g in groups if g['balance'] > BALANCE_EPSILON]
    return {
        'outstanding_total': str(money(sum((g['balance'] for g in outstanding), ZERO))),
        'open_customers': len(outstanding),
    }


def low_stock_overview():
    if not get_store_settings()['enable_low_stock_alerts']:
        return {'count': 0, 'items': []}
    rows = inventory_queryset(low_only=True)
    return {
        'count': rows.count(),
        'items': [
            {
                'variant_id': inv.variant_id,
                'name': inv.variant.display_name,
                'variant_type': inv.variant.variant_type,
                'quantity': inv.quantity,
                'reorder_level': inv.reorder_level,
                'quantity_display': inv.quantity_display,
            }
            for inv in rows[:LOW_STOCK_PREVIEW]
        ],
    }


def inventory_value():
    """Sum of on-hand quantity times average cost across all variants"""
    total = ZERO
    for inv in Inventory.objects.select_related('variant'):
        total += inv.stock_value
    return money(total)


@cached_report(cache_ttl=DASHBOARD_KPI_CACHE_TTL, key_prefix="dashboard")
def dashboard(day):
    """Dashboard KPIs for one local day"""
    sales = daily_sales(day)['summary']
    status_counts = {key: 0 for key, _ in Order.STATUS_CHOICES}
    for row in Order.objects.filter(created_at__date=day).values('status').annotate(count=Count('id')):
        status_counts[row['status']] = row['count']

    expenses = Expense.objects.filter(incurred_at=day).aggregate(total=Sum('amount'))['total'] or ZERO
    profit = Decimal(sales['profit'])

    return {
        'date': day.isoformat(),
        'currency': get_store_settings()['currency_code'],
        'sales': sales,
        'orders_by_status': status_counts,
        'pending_orders': Order.objects.filter(status='pending').count(),
        'unpaid_orders': Order.objects.filter(status__in=SALE_STATUSES).filter(~Q(payment_status='paid')).count(),
        'expenses_total': str(money(expenses)),
        'net': str(money(profit - expenses)),
        'credits': credit_overview(),
        'low_stock': low_stock_overview(),
        'most_sold': most_sold_item(day),
        'inventory_value': str(inventory_value()),
        'generated_at': timezone.now().isoformat(),
    }


def expense_summary(date_from, date_to):
    total, by_category = expense_totals(expenses_between(date_from, date_to))
    return {
        'period': {'from': date_from.isoformat(), 'to': date_to.isoformat()},
        'total': str(total),
        'by_category': by_category,
    }
