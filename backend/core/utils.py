"""Shared helpers: audit logging, money rounding, document numbers, store settings"""
import json
import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from django.conf import settings as django_settings
from django.utils import timezone

from .models import AuditLog, Setting

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')

STORE_SETTING_DEFAULTS = {
    'store_name': 'Mato Online',
    'whatsapp_number': '',
    'city': '',
    'currency_code': 'USD',
    'show_currency_symbol': True,
    'enable_low_stock_alerts': True,
    'default_reorder_level_g': 5000,
    'default_reorder_level_units': 10,
    'tiktok_pixel_id': '',
    'google_ads_conversion_id': '',
}


def money(value):
    """Quantize a value to cents (ROUND_HALF_UP)"""
    if value is None:
        return Decimal('0.00')
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValueError(f"Invalid amount: {value!r}")
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def generate_number(prefix, model=None, field=None):
    """
    Generate a document number like ORD-20240131-1A2B3C4D.

    When model and field are given, loop until the number is unused.
    """
    number = f"{prefix}-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    if model is not None and field:
        while model.objects.filter(**{field: number}).exists():
            number = f"{prefix}-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    return number


def get_store_settings():
    """Return store settings merged over their defaults"""
    merged = dict(STORE_SETTING_DEFAULTS)
    merged['currency_code'] = getattr(django_settings, 'STORE_CURRENCY', merged['currency_code'])
    for row in Setting.objects.filter(key__in=STORE_SETTING_DEFAULTS.keys()):
        try:
            merged[row.key] = json.loads(row.value)
        except (TypeError, ValueError):
            logger.warning(f"Setting {row.key} holds invalid JSON, using default")
    return merged


def get_store_setting(key):
    return get_store_settings()[key]


def save_store_settings(values):
    """Persist the given store settings (already validated)"""
    for key, value in values.items():
        if key not in STORE_SETTING_DEFAULTS:
            continue
        Setting.objects.update_or_create(
            key=key,
            defaults={'value': json.dumps(value)},
        )
    return get_store_settings()


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None, object_reference=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user and IP) - optional if user is provided
        action: Action type (create, update, order_confirm, etc.)
        model_name: Name of the model being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        object_name: Human-readable name of the object
        object_reference: Reference identifier (e.g., order number, cart number)
    """
    try:
        audit_user = None
        if user:
            audit_user = user
        elif request and hasattr(request, 'user'):
            audit_user = request.user

        ip_address = get_client_ip(request) if request else None

        if not action or not model_name or not object_id:
            logger.warning(f"Audit log creation skipped: missing required fields (action={action}, model_name={model_name}, object_id={object_id})")
            return None

        return AuditLog.objects.create(
            user=audit_user if audit_user and audit_user.is_authenticated else None,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            object_name=object_name,
            object_reference=object_reference,
            changes=changes or {},
            ip_address=ip_address
        )
    except Exception as e:
        # Audit failures never abort the main operation
        logger.error(f"Failed to create audit log: {str(e)}")
        return None
