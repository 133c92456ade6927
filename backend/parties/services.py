"""
Customer lookup, supplier links and credit accounting.
"""
import logging
import re
from decimal import Decimal

from django.db import transaction
from django.db.models import Count, Max, Q, Sum
from django.utils import timezone

from backend.core.utils import money
from .models import Customer, Supplier, SupplierProduct, Credit

logger = logging.getLogger(__name__)

BALANCE_EPSILON = Decimal('0.000001')
PAID_LIKE_STATUSES = ('paid', 'settled', 'closed')
MIN_PHONE_DIGITS = 6
MIN_CREDIT_NAME_LENGTH = 3


class CreditError(Exception):
    """Invalid credit or credit payment"""


def normalize_phone(phone):
    """Keep digits and a leading plus sign"""
    phone = (phone or '').strip()
    if not phone:
        return ''
    digits = re.sub(r'\D', '', phone)
    return f"+{digits}" if phone.startswith('+') else digits


def phone_digit_count(phone):
    return len(re.sub(r'\D', '', phone or ''))


def find_or_create_customer(phone, name=None, address=None):
    """
    Look a customer up by phone, creating them when missing.
    An existing customer only gets the name (or address) filled in when blank.
    """
    phone = normalize_phone(phone)
    name = (name or '').strip() or None
    customer, created = Customer.objects.get_or_create(
        phone=phone,
        defaults={'name': name, 'address': (address or '').strip()},
    )
    if not created:
        update_fields = []
        if name and not customer.name:
            customer.name = name
            update_fields.append('name')
        if address and not customer.address:
            customer.address = address.strip()
            update_fields.append('address')
        if update_fields:
            update_fields.append('updated_at')
            customer.save(update_fields=update_fields)
    return customer, created


# Credits

def credit_balance(credit):
    return max(credit.amount - credit.amount_paid, Decimal('0.00'))


def is_paid_like(credit):
    return credit.status in PAID_LIKE_STATUSES or credit_balance(credit) <= BALANCE_EPSILON


def is_outstanding(credit):
    return not is_paid_like(credit) and credit_balance(credit) > BALANCE_EPSILON


def credit_group_key(credit):
    """customer id, else phone:, else name:, else id:"""
    if credit.customer_id:
        return str(credit.customer_id)
    phone = (credit.customer_phone or '').strip()
    if phone:
        return f"phone:{phone}"
    name = (credit.customer_name or '').strip().lower()
    if name:
        return f"name:{name}"
    return f"id:{credit.pk}"


def build_credit_groups(credits):
    """
    Group credit rows by customer key.

    Each group has customer name/phone, totals (amount, paid, balance),
    last_activity and its rows oldest first. Groups are sorted by
    balance (highest first), then by most recent activity.
    """
    groups = {}
    for credit in credits:
        key = credit_group_key(credit)
        group = groups.get(key)
        if group is None:
            group = groups[key] = {
                'key': key,
                'customer_id': credit.customer_id,
                'customer_name': None,
                'customer_phone': None,
                'total_amount': Decimal('0.00'),
                'total_paid': Decimal('0.00'),
                'balance': Decimal('0.00'),
                'open_count': 0,
                'last_activity': None,
                'rows': [],
            }
        customer = credit.customer if credit.customer_id else None
        group['customer_name'] = group['customer_name'] or credit.customer_name or (customer.name if customer else None)
        group['customer_phone'] = group['customer_phone'] or credit.customer_phone or (customer.phone if customer else None)
        group['total_amount'] += credit.amount
        group['total_paid'] += credit.amount_paid
        if is_outstanding(credit):
            group['balance'] += credit_balance(credit)
            group['open_count'] += 1
        activity = max(d for d in (credit.created_at, credit.updated_at, credit.paid_at) if d is not None)
        if group['last_activity'] is None or activity > group['last_activity']:
            group['last_activity'] = activity
        group['rows'].append(credit)

    result = list(groups.values())
    for group in result:
        group['rows'].sort(key=lambda c: (c.created_at, c.pk))
    result.sort(key=lambda g: g['last_activity'].timestamp() if g['last_activity'] else 0, reverse=True)
    result.sort(key=lambda g: g['balance'], reverse=True)
    return result


def create_credit(amount, customer=None, customer_name=None, customer_phone=None,
                  note='', order=None, user=None):
    """Record a new credit; needs a customer or a name of at least 3 characters"""
    amount = money(amount)
    if amount <= 0:
        raise CreditError('Credit amount must be greater than 0')

    customer_name = (customer_name or '').strip() or None
    customer_phone = normalize_phone(customer_phone) or None
    if customer is not None:
        customer_name = customer_name or customer.name
        customer_phone = customer_phone or customer.phone
    elif not customer_name or len(customer_name) < MIN_CREDIT_NAME_LENGTH:
        raise CreditError(f'Select a customer or enter a name of at least {MIN_CREDIT_NAME_LENGTH} characters')

    credit = Credit.objects.create(
        customer=customer,
        customer_name=customer_name,
        customer_phone=customer_phone,
        amount=amount,
        amount_paid=Decimal('0.00'),
        status='open',
        note=note or '',
        order=order,
        created_by=user if user is not None and user.is_authenticated else None,
    )
    logger.info(f"Credit {credit.id} created for {customer_name or customer_phone}: {amount}")
    return credit


def pay_credit_group(key, amount, note='', user=None):
    """
    Pay down a customer's outstanding credits, oldest first.

    The amount applied is capped at the group's balance. Rows that reach a
    zero balance are marked paid. Returns (applied_amount, touched_rows).
    """
    amount = money(amount)
    if amount <= 0:
        raise CreditError('Payment amount must be greater than 0')

    with transaction.atomic():
        candidates = Credit.objects.select_for_update().exclude(
            status__in=PAID_LIKE_STATUSES
        ).order_by('created_at', 'id')
        rows = [c for c in candidates if credit_group_key(c) == key and is_outstanding(c)]
        if not rows:
            raise CreditError('No outstanding credit for this customer')

        balance = sum((credit_balance(c) for c in rows), Decimal('0.00'))
        applied = min(amount, balance)
        remaining = applied
        now = timezone.now()
        touched = []

        for credit in rows:
            if remaining <= 0:
                break
            part = min(remaining, credit_balance(credit))
            credit.amount_paid = credit.amount_paid + part
            remaining -= part
            if credit_balance(credit) <= BALANCE_EPSILON:
                credit.status = 'paid'
                credit.paid_at = now
            touched.append(credit)

        note = (note or '').strip()
        if note and touched:
            newest = touched[-1]
            line = f"Payment: ${applied:.2f} • {note}"
            newest.note = f"{newest.note}\n{line}" if newest.note else line

        for credit in touched:
            credit.save()

    logger.info(f"Credit payment {applied} allocated across {len(touched)} rows for group {key}")
    return applied, touched


# Suppliers

def link_supplier_product(supplier, variant, is_primary=False, supplier_sku=None, default_buy_price=None):
    """Create or reactivate a supplier/variant link"""
    with transaction.atomic():
        link, _ = SupplierProduct.objects.update_or_create(
            supplier=supplier,
            variant=variant,
            defaults={
                'active': True,
                'is_primary': is_primary,
                'supplier_sku': (supplier_sku or '').strip() or None,
                'default_buy_price': default_buy_price,
            },
        )
        if is_primary:
            SupplierProduct.objects.filter(variant=variant, is_primary=True).exclude(pk=link.pk).update(is_primary=False)
    return link


def unlink_supplier_product(supplier, variant):
    """Deactivate a supplier/variant link; returns False when no link exists"""
    updated = SupplierProduct.objects.filter(supplier=supplier, variant=variant).update(active=False, is_primary=False)
    return bool(updated)


def supplier_summary():
    """
    Restock totals per supplier from the movement ledger, including
    suppliers that never restocked. Newest restock first, never-restocked last.
    """
    from backend.inventory.models import InventoryMovement
    from backend.inventory.services import COSTED_TYPES

    inbound = Q(type__in=COSTED_TYPES)
    rows = InventoryMovement.objects.exclude(supplier_name__isnull=True).exclude(supplier_name='').values(
        'supplier_name'
    ).annotate(
        movements_count=Count('id'),
        restocks_count=Count('id', filter=inbound),
        total_cost=Sum('cost_total', filter=inbound),
        last_restock_at=Max('created_at', filter=inbound),
    )

    summary = {}
    for row in rows:
        key = row['supplier_name'].strip().lower()
        entry = summary.setdefault(key, {
            'supplier_id': None,
            'name': row['supplier_name'].strip(),
            'phone': '',
            'movements_count': 0,
            'restocks_count': 0,
            'total_cost': Decimal('0.00'),
            'last_restock_at': None,
        })
        entry['movements_count'] += row['movements_count']
        entry['restocks_count'] += row['restocks_count']
        entry['total_cost'] += row['total_cost'] or Decimal('0.00')
        if row['last_restock_at'] and (entry['last_restock_at'] is None or row['last_restock_at'] > entry['last_restock_at']):
            entry['last_restock_at'] = row['last_restock_at']

    for supplier in Supplier.objects.all():
        key = supplier.name.strip().lower()
        entry = summary.setdefault(key, {
            'supplier_id': None,
            'name': supplier.name,
            'phone': '',
            'movements_count': 0,
            'restocks_count': 0,
            'total_cost': Decimal('0.00'),
            'last_restock_at': None,
        })
        entry['supplier_id'] = supplier.id
        entry['name'] = supplier.name
        entry['phone'] = supplier.phone

    result = list(summary.values())
    result.sort(key=lambda e: e['name'].lower())
    result.sort(key=lambda e: e['last_restock_at'].timestamp() if e['last_restock_at'] else float('-inf'), reverse=True)
    return result
