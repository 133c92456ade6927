import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, IsAdminUser
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError, AuthenticationFailed
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.shortcuts import get_object_or_404
from django.db.models import Q
from .models import Setting, AuditLog
from .serializers import (
    UserSerializer, UserCreateSerializer,
    SettingSerializer, StoreSettingsSerializer, AuditLogSerializer
)
from .utils import get_store_settings, save_store_settings, create_audit_log

User = get_user_model()
logger = logging.getLogger('backend.core')


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['is_staff'] = user.is_staff
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh serializer that handles deleted users gracefully"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except (ObjectDoesNotExist, User.DoesNotExist):
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get current user with admin flags"""
    user = request.user
    user_data = UserSerializer(user).data
    user_data['groups'] = list(user.groups.values_list('name', flat=True))
    is_admin = user.is_superuser or user.is_staff
    user_data['is_admin'] = is_admin
    user_data['can_access_reports'] = is_admin
    user_data['can_manage_settings'] = is_admin
    return Response(user_data)


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminUser])
def user_list_create(request):
    """List all users or create a new user"""
    if request.method == 'GET':
        users = User.objects.all().order_by('username')
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminUser])
def user_detail(request, pk):
    """Retrieve, update or delete a user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        serializer = UserSerializer(user)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = UserSerializer(user, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user.pk == request.user.pk:
            return Response({'error': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Setting views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminUser])
def setting_list_create(request):
    """List all raw settings or create a new one"""
    if request.method == 'GET':
        settings = Setting.objects.all().order_by('key')
        serializer = SettingSerializer(settings, many=True)
        return Response(serializer.data)
    else:
        serializer = SettingSerializer(data=request.data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminUser])
def setting_detail(request, pk):
    """Retrieve, update or delete a raw setting"""
    setting = get_object_or_404(Setting, pk=pk)

    if request.method == 'GET':
        serializer = SettingSerializer(setting)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = SettingSerializer(setting, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        setting.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def store_settings(request):
    """Get the merged store settings, or update them (admins only)"""
    current = get_store_settings()
    if request.method == 'GET':
        return Response(current)

    if not request.user.is_staff:
        return Response({'error': 'Only administrators can change store settings'}, status=status.HTTP_403_FORBIDDEN)

    data = dict(current)
    if request.method == 'PATCH':
        data.update(request.data)
        serializer = StoreSettingsSerializer(data=data)
    else:
        serializer = StoreSettingsSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    changed = {k: v for k, v in serializer.validated_data.items() if current.get(k) != v}
    updated = save_store_settings(serializer.validated_data)
    create_audit_log(
        request=request,
        action='settings_update',
        model_name='Setting',
        object_id='store',
        object_name='Store settings',
        changes={k: {'old': current.get(k), 'new': v} for k, v in changed.items()}
    )
    logger.info(f"Store settings updated by {request.user.username}: {sorted(changed.keys())}")
    return Response(updated)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user').all()

    if not request.user.is_staff:
        queryset = queryset.filter(user=request.user)

    action_filter = request.query_params.get('action', None)
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model', None)
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    reference = request.query_params.get('reference', None)
    if reference:
        queryset = queryset.filter(object_reference=reference)

    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    queryset = queryset.order_by('-created_at')[:500]
    serializer = AuditLogSerializer(queryset, many=True)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)

    if not request.user.is_staff and audit_log.user != request.user:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    serializer = AuditLogSerializer(audit_log)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def global_search(request):
    """Search variants, customers, orders and suppliers at once"""
    query = request.query_params.get('q', '').strip()

    if not query:
        return Response({
            'variants': [],
            'customers': [],
            'orders': [],
            'suppliers': [],
        })

    from backend.catalog.models import ProductVariant
    from backend.catalog.serializers import ProductVariantSerializer
    from backend.parties.models import Customer, Supplier
    from backend.parties.serializers import CustomerSerializer, SupplierSerializer
    from backend.pos.models import Order
    from backend.pos.serializers import OrderListSerializer

    results = {}

    variants = ProductVariant.objects.select_related('product', 'inventory').filter(
        Q(name__icontains=query) |
        Q(sku__icontains=query) |
        Q(product__name__icontains=query) |
        Q(product__brand__icontains=query)
    ).order_by('product__name', 'name')[:20]
    results['variants'] = ProductVariantSerializer(variants, many=True).data

    customers = Customer.objects.filter(
        Q(name__icontains=query) |
        Q(phone__icontains=query)
    ).order_by('name')[:20]
    results['customers'] = CustomerSerializer(customers, many=True).data

    orders = Order.objects.select_related('customer').filter(
        Q(order_number__icontains=query) |
        Q(customer_phone__icontains=query) |
        Q(note__icontains=query)
    ).order_by('-created_at')[:20]
    results['orders'] = OrderListSerializer(orders, many=True).data

    suppliers = Supplier.objects.filter(
        Q(name__icontains=query) |
        Q(phone__icontains=query)
    ).order_by('name')[:20]
    results['suppliers'] = SupplierSerializer(suppliers, many=True).data

    return Response(results)
