import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.paginator import Paginator
from django.db.models import Q
from django.shortcuts import get_object_or_404
from .models import InventoryMovement
from .serializers import (
    InventorySerializer, InventoryUpsertSerializer,
    InventoryMovementSerializer, MovementCreateSerializer
)
from .filters import MovementFilter
from .services import (
    InventoryError, apply_inventory_movement, ensure_inventory, set_stock_level,
    sync_missing_inventory, inventory_queryset
)
from backend.catalog.models import ProductVariant
from backend.core.utils import create_audit_log

logger = logging.getLogger('backend.inventory')


def _page_params(request, default_limit=50):
    try:
        page = max(int(request.query_params.get('page', 1)), 1)
    except ValueError:
        page = 1
    try:
        limit = min(max(int(request.query_params.get('limit', default_limit)), 1), 500)
    except ValueError:
        limit = default_limit
    return page, limit


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def inventory_list(request):
    """Inventory for every variant, low-stock rows first"""
    sync_missing_inventory()

    low_only = request.query_params.get('low_only', '').lower() in ('1', 'true', 'yes')
    queryset = inventory_queryset(low_only=low_only)

    search = request.query_params.get('search', '').strip()
    if search:
        queryset = queryset.filter(
            Q(variant__name__icontains=search) |
            Q(variant__sku__icontains=search) |
            Q(variant__product__name__icontains=search)
        )

    serializer = InventorySerializer(queryset, many=True)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def inventory_low_stock(request):
    """Variants at or below their reorder level"""
    sync_missing_inventory()
    queryset = inventory_queryset(low_only=True)
    serializer = InventorySerializer(queryset, many=True)
    return Response({
        'count': len(serializer.data),
        'results': serializer.data,
    })


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def inventory_detail(request, variant_id):
    """
    Get or upsert the inventory row of a variant.

    Counted quantities are applied as an adjustment movement so the ledger
    stays consistent with on-hand stock.
    """
    variant = get_object_or_404(ProductVariant.objects.select_related('product'), pk=variant_id)
    inventory = ensure_inventory(variant)

    if request.method == 'GET':
        return Response(InventorySerializer(inventory).data)

    serializer = InventoryUpsertSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    old_data = {
        'qty_g': inventory.qty_g,
        'qty_units': inventory.qty_units,
        'reorder_level_g': inventory.reorder_level_g,
        'reorder_level_units': inventory.reorder_level_units,
    }
    try:
        set_stock_level(
            variant,
            qty_g=data.get('qty_g'),
            qty_units=data.get('qty_units'),
            note=data.get('note') or 'Stock count',
            user=request.user,
        )
    except InventoryError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    inventory.refresh_from_db()
    if 'reorder_level_g' in data:
        inventory.reorder_level_g = data['reorder_level_g']
    if 'reorder_level_units' in data:
        inventory.reorder_level_units = data['reorder_level_units']
    inventory.save()

    new_data = {key: getattr(inventory, key) for key in old_data}
    changes = {k: {'old': old_data[k], 'new': new_data[k]} for k in old_data if old_data[k] != new_data[k]}
    if changes:
        create_audit_log(
            request=request,
            action='stock_update',
            model_name='Inventory',
            object_id=str(inventory.id),
            object_name=variant.display_name,
            object_reference=variant.sku,
            changes=changes
        )
    return Response(InventorySerializer(inventory).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def movement_list_create(request):
    """List the movement ledger (paginated) or record a manual movement"""
    if request.method == 'GET':
        queryset = InventoryMovement.objects.select_related(
            'variant', 'variant__product', 'order', 'created_by'
        ).all()
        filterset = MovementFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        queryset = filterset.qs.order_by('-created_at', '-id')

        page, limit = _page_params(request)
        paginator = Paginator(queryset, limit)
        page_obj = paginator.get_page(page)
        serializer = InventoryMovementSerializer(page_obj, many=True)
        return Response({
            'results': serializer.data,
            'count': paginator.count,
            'next': page_obj.next_page_number() if page_obj.has_next() else None,
            'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
            'page': page_obj.number,
            'page_size': limit,
            'total_pages': paginator.num_pages,
        })

    serializer = MovementCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    variant = data['variant']

    try:
        movement, inventory = apply_inventory_movement(
            variant,
            data['type'],
            qty_g=data.get('qty_g', 0),
            qty_units=data.get('qty_units', 0),
            cost_total=data.get('cost_total'),
            supplier_name=data.get('supplier_name'),
            note=data.get('note', ''),
            user=request.user,
        )
    except InventoryError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        logger.error(f"Error applying movement for variant {variant.id}: {str(e)}", exc_info=True)
        return Response({'error': 'Failed to apply stock movement'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    create_audit_log(
        request=request,
        action='stock_movement',
        model_name='InventoryMovement',
        object_id=str(movement.id),
        object_name=variant.display_name,
        object_reference=variant.sku,
        changes={
            'type': movement.type,
            'qty_g': movement.qty_g,
            'qty_units': movement.qty_units,
            'cost_total': str(movement.cost_total) if movement.cost_total is not None else None,
            'supplier_name': movement.supplier_name,
        }
    )
    return Response({
        'movement': InventoryMovementSerializer(movement).data,
        'inventory': InventorySerializer(inventory).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def movement_detail(request, pk):
    movement = get_object_or_404(
        InventoryMovement.objects.select_related('variant', 'variant__product', 'order', 'created_by'), pk=pk
    )
    return Response(InventoryMovementSerializer(movement).data)
