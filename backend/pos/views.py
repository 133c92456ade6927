import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.paginator import Paginator
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.shortcuts import get_object_or_404
from decimal import Decimal
from .models import Cart, CartItem, Order
from .filters import OrderFilter
from .serializers import (
    CartSerializer, CartCreateSerializer, CartItemInputSerializer,
    CartItemUpdateSerializer, CheckoutSerializer, OrderSerializer, OrderListSerializer,
    OrderUpdateSerializer, OnlineOrderSerializer, PaymentSerializer, PaymentCreateSerializer
)
from .services import (
    OrderError, create_cart, add_cart_item, update_cart_item, checkout_cart,
    create_online_order, confirm_order, cancel_order, change_status, record_payment, settle_order
)
from backend.core.utils import create_audit_log
from backend.inventory.services import InventoryError
from backend.parties.services import CreditError, normalize_phone

logger = logging.getLogger('backend.pos')

CART_QUERYSET = Cart.objects.select_related('customer').prefetch_related('items__variant__product')
ORDER_QUERYSET = Order.objects.select_related('customer').prefetch_related(
    'items__variant__product', 'payments__order'
)


def _error(e):
    return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)


# Cart views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def cart_list_create(request):
    """List open carts (active and held) or start a new cart"""
    if request.method == 'GET':
        carts = CART_QUERYSET.all()
        status_filter = request.query_params.get('status')
        if status_filter:
            carts = carts.filter(status=status_filter)
        else:
            carts = carts.filter(status__in=['active', 'held'])
        serializer = CartSerializer(carts.order_by('-updated_at'), many=True)
        return Response(serializer.data)

    serializer = CartCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    cart = create_cart(user=request.user, **serializer.validated_data)
    return Response(CartSerializer(cart).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def cart_detail(request, pk):
    """Retrieve a cart, update its customer/payment details, or cancel it"""
    cart = get_object_or_404(CART_QUERYSET, pk=pk)

    if request.method == 'GET':
        return Response(CartSerializer(cart).data)
    elif request.method == 'PATCH':
        if cart.status not in ('active', 'held'):
            return Response({'error': f'Cart is {cart.status}'}, status=status.HTTP_400_BAD_REQUEST)
        serializer = CartSerializer(cart, data=request.data, partial=True)
        if serializer.is_valid():
            phone = serializer.validated_data.get('customer_phone')
            if phone is not None:
                serializer.validated_data['customer_phone'] = normalize_phone(phone)
            serializer.save()
            return Response(CartSerializer(cart).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if cart.status == 'completed':
            return Response({'error': 'Completed carts cannot be cancelled'}, status=status.HTTP_400_BAD_REQUEST)
        cart.status = 'cancelled'
        cart.save(update_fields=['status', 'updated_at'])
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cart_add_item(request, pk):
    """Add a variant to the cart (quantities merge with an existing line)"""
    cart = get_object_or_404(Cart, pk=pk)
    serializer = CartItemInputSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        item = add_cart_item(cart, data['variant'], qty_g=data.get('qty_g', 0), qty_units=data.get('qty_units', 0))
    except OrderError as e:
        return _error(e)

    create_audit_log(
        request=request,
        action='cart_add',
        model_name='Cart',
        object_id=str(cart.id),
        object_name=item.variant.display_name,
        object_reference=cart.cart_number,
        changes={'variant': item.variant_id, 'qty_g': item.qty_g, 'qty_units': item.qty_units}
    )
    cart = get_object_or_404(CART_QUERYSET, pk=pk)
    return Response(CartSerializer(cart).data, status=status.HTTP_201_CREATED)


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def cart_item_detail(request, pk, item_id):
    """Change quantity/price of a cart line or remove it"""
    item = get_object_or_404(CartItem.objects.select_related('cart', 'variant', 'variant__product'), pk=item_id, cart_id=pk)

    if request.method == 'PATCH':
        serializer = CartItemUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            update_cart_item(item, **serializer.validated_data)
        except OrderError as e:
            return _error(e)
        create_audit_log(
            request=request,
            action='cart_update',
            model_name='Cart',
            object_id=str(item.cart_id),
            object_name=item.variant.display_name,
            object_reference=item.cart.cart_number,
            changes={k: str(v) for k, v in serializer.validated_data.items()}
        )
    else:
        if item.cart.status != 'active':
            return Response({'error': f'Cart is {item.cart.status}'}, status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(
            request=request,
            action='cart_remove',
            model_name='Cart',
            object_id=str(item.cart_id),
            object_name=item.variant.display_name,
            object_reference=item.cart.cart_number,
        )
        item.delete()

    cart = get_object_or_404(CART_QUERYSET, pk=pk)
    return Response(CartSerializer(cart).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cart_hold(request, pk):
    """Park an active cart"""
    cart = get_object_or_404(CART_QUERYSET, pk=pk)
    if cart.status != 'active':
        return Response({'error': 'Only active carts can be held'}, status=status.HTTP_400_BAD_REQUEST)
    if not cart.items.exists():
        return Response({'error': 'Cannot hold an empty cart'}, status=status.HTTP_400_BAD_REQUEST)
    cart.status = 'held'
    cart.save(update_fields=['status', 'updated_at'])
    return Response(CartSerializer(cart).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cart_unhold(request, pk):
    """Resume a held cart"""
    cart = get_object_or_404(CART_QUERYSET, pk=pk)
    if cart.status != 'held':
        return Response({'error': 'Only held carts can be resumed'}, status=status.HTTP_400_BAD_REQUEST)
    cart.status = 'active'
    cart.save(update_fields=['status', 'updated_at'])
    return Response(CartSerializer(cart).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cart_checkout(request, pk):
    """Fast POS checkout: order + payment or credit + stock deduction"""
    cart = get_object_or_404(Cart, pk=pk)
    serializer = CheckoutSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order, credit = checkout_cart(
            cart,
            user=request.user,
            payment_method=serializer.validated_data.get('payment_method'),
            note=serializer.validated_data.get('note', ''),
        )
    except (OrderError, InventoryError, CreditError) as e:
        return _error(e)
    except Exception as e:
        logger.error(f"Checkout failed for cart {cart.cart_number}: {str(e)}", exc_info=True)
        return Response({'error': 'Checkout failed'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    create_audit_log(
        request=request,
        action='cart_checkout',
        model_name='Order',
        object_id=str(order.id),
        object_name=order.order_number,
        object_reference=cart.cart_number,
        changes={
            'total': str(order.total),
            'payment_method': order.payment_method,
            'credit_id': credit.id if credit else None,
        }
    )
    order = ORDER_QUERYSET.get(pk=order.pk)
    return Response({
        'order': OrderSerializer(order).data,
        'credit_id': credit.id if credit else None,
    }, status=status.HTTP_201_CREATED)


# Order views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_list(request):
    """
    List orders with filters, search and pagination.
    Also returns the total value and unpaid count of the filtered set.
    """
    queryset = Order.objects.select_related('customer').all()
    filterset = OrderFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    queryset = filterset.qs.order_by('-created_at', '-id')

    totals = queryset.aggregate(
        total_amount=Sum('total'),
        unpaid_count=Count('id', filter=~Q(payment_status='paid')),
    )

    try:
        page = max(int(request.query_params.get('page', 1)), 1)
        limit = min(max(int(request.query_params.get('limit', 50)), 1), 200)
    except ValueError:
        page, limit = 1, 50
    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)
    serializer = OrderListSerializer(page_obj, many=True)

    return Response({
        'results': serializer.data,
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
        'total_amount': str(totals['total_amount'] or Decimal('0.00')),
        'unpaid_count': totals['unpaid_count'] or 0,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def order_create_online(request):
    """Create a WhatsApp/website order for a customer identified by phone"""
    serializer = OnlineOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        order = create_online_order(
            data['customer_phone'],
            [dict(item) for item in data['items']],
            customer_name=data.get('customer_name'),
            channel=data['channel'],
            payment_method=data['payment_method'],
            address=data.get('address', ''),
            note=data.get('note', ''),
            delivery_fee=data.get('delivery_fee', Decimal('0.00')),
            discount=data.get('discount', Decimal('0.00')),
            user=request.user,
        )
    except OrderError as e:
        return _error(e)

    create_audit_log(
        request=request,
        action='order_create',
        model_name='Order',
        object_id=str(order.id),
        object_name=order.order_number,
        object_reference=order.customer_phone,
        changes={'channel': order.channel, 'total': str(order.total)}
    )
    order = ORDER_QUERYSET.get(pk=order.pk)
    return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def order_detail(request, pk):
    """Retrieve an order or edit status, payment details, address and note"""
    order = get_object_or_404(ORDER_QUERYSET, pk=pk)

    if request.method == 'GET':
        return Response(OrderSerializer(order).data)

    serializer = OrderUpdateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    old_data = {
        'status': order.status,
        'payment_method': order.payment_method,
        'payment_status': order.payment_status,
        'address': order.address,
        'note': order.note,
    }
    try:
        with transaction.atomic():
            simple_fields = [f for f in ('payment_method', 'address', 'note') if f in data]
            for field in simple_fields:
                setattr(order, field, data[field])
            if simple_fields:
                order.save(update_fields=simple_fields + ['updated_at'])

            if 'status' in data:
                order = change_status(order, data['status'], user=request.user)

            requested = data.get('payment_status')
            if requested and requested != order.payment_status:
                if requested != 'paid':
                    raise OrderError('Payment status follows recorded payments; record a payment instead')
                order = settle_order(order, user=request.user)
    except (OrderError, InventoryError) as e:
        return _error(e)

    order = ORDER_QUERYSET.get(pk=order.pk)
    new_data = {key: getattr(order, key) for key in old_data}
    changes = {k: {'old': old_data[k], 'new': new_data[k]} for k in old_data if old_data[k] != new_data[k]}
    if changes:
        create_audit_log(
            request=request,
            action='order_update',
            model_name='Order',
            object_id=str(order.id),
            object_name=order.order_number,
            object_reference=order.customer_phone,
            changes=changes
        )
    return Response(OrderSerializer(order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def order_confirm(request, pk):
    """Confirm a pending order and deduct its stock"""
    order = get_object_or_404(Order, pk=pk)
    try:
        order = confirm_order(order, user=request.user)
    except (OrderError, InventoryError) as e:
        return _error(e)
    except Exception as e:
        logger.error(f"Error confirming order {order.order_number}: {str(e)}", exc_info=True)
        return Response({'error': 'Failed to confirm order'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    create_audit_log(
        request=request,
        action='order_confirm',
        model_name='Order',
        object_id=str(order.id),
        object_name=order.order_number,
        object_reference=order.customer_phone,
    )
    return Response(OrderSerializer(ORDER_QUERYSET.get(pk=order.pk)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def order_cancel(request, pk):
    """Cancel an order, returning any stock it took"""
    order = get_object_or_404(Order, pk=pk)
    reason = (request.data.get('reason') or '').strip()
    try:
        order = cancel_order(order, user=request.user, reason=reason)
    except (OrderError, InventoryError) as e:
        return _error(e)

    create_audit_log(
        request=request,
        action='order_cancel',
        model_name='Order',
        object_id=str(order.id),
        object_name=order.order_number,
        object_reference=order.customer_phone,
        changes={'reason': reason} if reason else {}
    )
    return Response(OrderSerializer(ORDER_QUERYSET.get(pk=order.pk)).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def order_payments(request, pk):
    """List payments of an order or record a new one"""
    order = get_object_or_404(Order, pk=pk)

    if request.method == 'GET':
        serializer = PaymentSerializer(order.payments.select_related('order', 'created_by'), many=True)
        return Response(serializer.data)

    serializer = PaymentCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        payment, order = record_payment(order, data['amount'], method=data['method'], note=data.get('note', ''), user=request.user)
    except OrderError as e:
        return _error(e)

    create_audit_log(
        request=request,
        action='payment_add',
        model_name='Payment',
        object_id=str(payment.id),
        object_name=order.order_number,
        object_reference=order.order_number,
        changes={'amount': str(payment.amount), 'method': payment.method, 'payment_status': order.payment_status}
    )
    return Response({
        'payment': PaymentSerializer(payment).data,
        'order': OrderSerializer(ORDER_QUERYSET.get(pk=order.pk)).data,
    }, status=status.HTTP_201_CREATED)
