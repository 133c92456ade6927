import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from django.shortcuts import get_object_or_404
from decimal import Decimal
from .models import Customer, Supplier, Credit
from .serializers import (
    CustomerSerializer, SupplierSerializer, SupplierProductSerializer, SupplierLinkSerializer,
    CreditSerializer, CreditCreateSerializer, CreditPaymentSerializer, serialize_credit_group
)
from .services import (
    CreditError, normalize_phone, build_credit_groups, create_credit, pay_credit_group,
    credit_balance, is_outstanding, is_paid_like, link_supplier_product, unlink_supplier_product, supplier_summary
)
from backend.catalog.models import ProductVariant
from backend.core.utils import create_audit_log, money

logger = logging.getLogger('backend.parties')


# Customer views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def customer_list_create(request):
    """
    List customers (search by name/phone) or create one.
    Creating with a phone that already exists updates that customer instead.
    """
    if request.method == 'GET':
        customers = Customer.objects.all()
        search = request.query_params.get('search', '').strip()
        if search:
            customers = customers.filter(Q(name__icontains=search) | Q(phone__icontains=search))
        serializer = CustomerSerializer(customers.order_by('name', 'phone')[:500], many=True)
        return Response(serializer.data)

    existing = None
    phone = normalize_phone(request.data.get('phone'))
    if phone:
        existing = Customer.objects.filter(phone=phone).first()

    if existing is not None:
        serializer = CustomerSerializer(existing, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_200_OK)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    serializer = CustomerSerializer(data=request.data)
    if serializer.is_valid():
        customer = serializer.save()
        create_audit_log(
            request=request,
            action='create',
            model_name='Customer',
            object_id=str(customer.id),
            object_name=customer.name,
            object_reference=customer.phone,
        )
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def customer_detail(request, pk):
    """Retrieve, update or delete a customer"""
    customer = get_object_or_404(Customer, pk=pk)

    if request.method == 'GET':
        serializer = CustomerSerializer(customer)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = CustomerSerializer(customer, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if customer.orders.exists():
            return Response({'error': 'Customer has orders and cannot be deleted'}, status=status.HTTP_400_BAD_REQUEST)
        customer.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def customer_history(request, pk):
    """Orders, credits and outstanding balance of a customer"""
    from backend.pos.models import Order
    from backend.pos.serializers import OrderSerializer

    customer = get_object_or_404(Customer, pk=pk)
    orders = Order.objects.filter(
        Q(customer=customer) | Q(customer__isnull=True, customer_phone=customer.phone)
    ).prefetch_related('items__variant__product').order_by('-created_at')
    credits = Credit.objects.filter(
        Q(customer=customer) | Q(customer__isnull=True, customer_phone=customer.phone)
    ).select_related('order').order_by('created_at', 'id')

    outstanding = sum((credit_balance(c) for c in credits if is_outstanding(c)), Decimal('0.00'))
    active_orders = [o for o in orders if o.status != 'cancelled']
    total_spent = sum((o.total for o in active_orders), Decimal('0.00'))

    return Response({
        'customer': CustomerSerializer(customer).data,
        'orders': OrderSerializer(orders, many=True).data,
        'credits': CreditSerializer(credits, many=True).data,
        'orders_count': len(active_orders),
        'total_spent': str(total_spent),
        'outstanding_balance': str(outstanding),
    })


# Supplier views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def supplier_list_create(request):
    """List all suppliers or create a new supplier"""
    if request.method == 'GET':
        suppliers = Supplier.objects.prefetch_related('supplier_products').all()
        search = request.query_params.get('search', '').strip()
        if search:
            suppliers = suppliers.filter(Q(name__icontains=search) | Q(phone__icontains=search))
        serializer = SupplierSerializer(suppliers, many=True)
        return Response(serializer.data)
    else:
        serializer = SupplierSerializer(data=request.data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def supplier_detail(request, pk):
    """Retrieve, update or delete a supplier"""
    supplier = get_object_or_404(Supplier, pk=pk)

    if request.method == 'GET':
        serializer = SupplierSerializer(supplier)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = SupplierSerializer(supplier, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        supplier.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def supplier_products(request, pk):
    """List a supplier's variant links or link a variant"""
    supplier = get_object_or_404(Supplier, pk=pk)

    if request.method == 'GET':
        links = supplier.supplier_products.select_related('variant', 'variant__product')
        if request.query_params.get('include_inactive', '').lower() not in ('1', 'true', 'yes'):
            links = links.filter(active=True)
        serializer = SupplierProductSerializer(links.order_by('variant__product__name', 'variant__name'), many=True)
        return Response(serializer.data)

    serializer = SupplierLinkSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    variant = get_object_or_404(ProductVariant, pk=data['variant'])
    link = link_supplier_product(
        supplier,
        variant,
        is_primary=data.get('is_primary', False),
        supplier_sku=data.get('supplier_sku'),
        default_buy_price=data.get('default_buy_price'),
    )
    return Response(SupplierProductSerializer(link).data, status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def supplier_product_unlink(request, pk, variant_id):
    """Unlink a variant from a supplier (the link row is deactivated)"""
    supplier = get_object_or_404(Supplier, pk=pk)
    variant = get_object_or_404(ProductVariant, pk=variant_id)
    if not unlink_supplier_product(supplier, variant):
        return Response({'error': 'Variant is not linked to this supplier'}, status=status.HTTP_404_NOT_FOUND)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def supplier_history(request, pk):
    """Stock movements recorded against a supplier"""
    from backend.inventory.models import InventoryMovement
    from backend.inventory.serializers import InventoryMovementSerializer

    supplier = get_object_or_404(Supplier, pk=pk)
    movements = InventoryMovement.objects.select_related(
        'variant', 'variant__product', 'order', 'created_by'
    ).filter(supplier_name__iexact=supplier.name).order_by('-created_at', '-id')[:500]
    return Response({
        'supplier': SupplierSerializer(supplier).data,
        'movements': InventoryMovementSerializer(movements, many=True).data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def supplier_summary_view(request):
    """Restock count, total cost and last restock per supplier"""
    rows = supplier_summary()
    search = request.query_params.get('search', '').strip().lower()
    if search:
        rows = [r for r in rows if search in r['name'].lower() or search in (r['phone'] or '')]
    for row in rows:
        row['total_cost'] = str(row['total_cost'])
    return Response(rows)


# Credit views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def credit_list_create(request):
    """List credit rows or record a new credit"""
    if request.method == 'GET':
        credits = Credit.objects.select_related('customer', 'order').all()
        status_filter = request.query_params.get('status')
        if status_filter:
            credits = credits.filter(status=status_filter)
        customer_id = request.query_params.get('customer')
        if customer_id:
            credits = credits.filter(customer_id=customer_id)
        serializer = CreditSerializer(credits.order_by('-created_at')[:500], many=True)
        return Response(serializer.data)

    serializer = CreditCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        credit = create_credit(
            data['amount'],
            customer=data.get('customer'),
            customer_name=data.get('customer_name'),
            customer_phone=data.get('customer_phone'),
            note=data.get('note', ''),
            user=request.user,
        )
    except CreditError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action='credit_create',
        model_name='Credit',
        object_id=str(credit.id),
        object_name=credit.customer_name or credit.customer_phone,
        changes={'amount': str(credit.amount)}
    )
    return Response(CreditSerializer(credit).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def credit_detail(request, pk):
    credit = get_object_or_404(Credit.objects.select_related('order'), pk=pk)
    return Response(CreditSerializer(credit).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def credit_groups(request):
    """
    Credits grouped per customer.

    tab=outstanding (default) groups the open credit rows, tab=paid groups the
    paid rows, tab=all groups every row. A customer with both kinds of rows
    appears under both tabs. search keeps whole groups whose name, phone, key
    or any row note matches.
    """
    tab = request.query_params.get('tab', 'outstanding')
    credits = list(Credit.objects.select_related('customer', 'order').all())
    if tab == 'paid':
        credits = [c for c in credits if is_paid_like(c)]
    elif tab != 'all':
        credits = [c for c in credits if is_outstanding(c)]

    groups = build_credit_groups(credits)

    search = request.query_params.get('search', '').strip().lower()
    if search:
        groups = [g for g in groups if _group_matches(g, search)]

    total_outstanding = sum((g['balance'] for g in groups), Decimal('0.00'))
    total_paid = sum((g['total_paid'] for g in groups), Decimal('0.00'))
    return Response({
        'count': len(groups),
        'total': str(money(total_paid if tab == 'paid' else total_outstanding)),
        'total_outstanding': str(money(total_outstanding)),
        'total_paid': str(money(total_paid)),
        'results': [serialize_credit_group(g) for g in groups],
    })


def _group_matches(group, search):
    fields = [group['customer_name'] or '', group['customer_phone'] or '', group['key']]
    fields.extend(row.note or '' for row in group['rows'])
    return any(search in value.lower() for value in fields)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def credit_group_pay(request):
    """Pay down a customer's credits, oldest first"""
    serializer = CreditPaymentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        applied, touched = pay_credit_group(data['group_key'], data['amount'], note=data.get('note', ''), user=request.user)
    except CreditError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        logger.error(f"Error paying credit group {data['group_key']}: {str(e)}", exc_info=True)
        return Response({'error': 'Failed to record credit payment'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    create_audit_log(
        request=request,
        action='credit_payment',
        model_name='Credit',
        object_id=str(touched[-1].id),
        object_name=touched[-1].customer_name or touched[-1].customer_phone,
        object_reference=data['group_key'],
        changes={
            'requested': str(data['amount']),
            'applied': str(applied),
            'credits': [c.id for c in touched],
        }
    )
    return Response({
        'applied': str(applied),
        'requested': str(data['amount']),
        'credits': CreditSerializer(touched, many=True).data,
    })
