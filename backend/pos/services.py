"""
Order lifecycle and POS checkout.

Stock only changes when an order is confirmed (sale movements) or a
confirmed order is cancelled (compensating return movements).
"""
import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from backend.core.cache_signals import suspend_cache_signals
from backend.core.utils import generate_number, get_store_settings, money
from backend.inventory.services import apply_inventory_movement
from backend.parties.services import (
    create_credit, find_or_create_customer, normalize_phone, phone_digit_count, MIN_PHONE_DIGITS
)
from .models import Cart, CartItem, Order, OrderItem, Payment

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
GRAMS_PER_KG = Decimal('1000')

# Transitions allowed through a plain status update; confirm/cancel have their own paths
STATUS_TRANSITIONS = {
    'confirmed': ('out_for_delivery', 'delivered'),
    'out_for_delivery': ('delivered',),
}
CANCELLABLE_STATUSES = ('pending', 'confirmed', 'out_for_delivery')
SALE_STATUSES = ('confirmed', 'out_for_delivery', 'delivered')


class OrderError(Exception):
    """Invalid order, cart or state transition"""


def line_total(variant_type, unit_price, qty_g=0, qty_units=0):
    """Weight lines are priced per kg, unit lines per unit; rounded to cents"""
    unit_price = Decimal(unit_price)
    if variant_type == 'weight':
        return money(unit_price * Decimal(qty_g) / GRAMS_PER_KG)
    return money(unit_price * Decimal(qty_units))


def order_total(subtotal, delivery_fee=ZERO, discount=ZERO):
    return max(money(subtotal) + money(delivery_fee) - money(discount), ZERO)


def quantity_label(variant, qty_g, qty_units):
    if variant.variant_type == 'weight':
        return f"{Decimal(qty_g) / GRAMS_PER_KG:.3f} kg"
    return f"x{qty_units}"


def prepare_lines(items):
    """
    Validate item specs and price them.

    Each spec is a dict with variant, qty_g / qty_units and an optional
    unit_price (defaults to the variant sell price).
    """
    if not items:
        raise OrderError('Cart is empty')

    lines = []
    for spec in items:
        variant = spec['variant']
        qty_g = int(spec.get('qty_g') or 0)
        qty_units = int(spec.get('qty_units') or 0)
        if not variant.is_active or not variant.product.is_active:
            raise OrderError(f"{variant.display_name} is not available")
        if variant.variant_type == 'weight':
            if qty_g <= 0 or qty_units:
                raise OrderError(f"{variant.display_name} is sold by weight; enter a quantity in grams")
        elif qty_units <= 0 or qty_g:
            raise OrderError(f"{variant.display_name} is sold by unit; enter a number of units")

        unit_price = spec.get('unit_price')
        unit_price = money(variant.sell_price if unit_price is None else unit_price)
        if unit_price < 0:
            raise OrderError('Unit price cannot be negative')
        lines.append({
            'variant': variant,
            'qty_g': qty_g,
            'qty_units': qty_units,
            'unit_price': unit_price,
            'line_total': line_total(variant.variant_type, unit_price, qty_g, qty_units),
        })
    return lines


def create_order(items, channel='pos', customer=None, customer_phone='', payment_method='cod',
                 delivery_fee=ZERO, discount=ZERO, address='', note='', cart=None, user=None):
    """Create a pending order with its lines and totals"""
    lines = prepare_lines(items)
    delivery_fee = money(delivery_fee)
    discount = money(discount)
    if delivery_fee < 0 or discount < 0:
        raise OrderError('Delivery fee and discount cannot be negative')

    subtotal = sum((line['line_total'] for line in lines), ZERO)
    with transaction.atomic():
        order = Order.objects.create(
            order_number=generate_number('ORD', Order, 'order_number'),
            customer=customer,
            customer_phone=customer_phone or (customer.phone if customer else ''),
            channel=channel,
            status='pending',
            payment_method=payment_method,
            payment_status='unpaid',
            currency=get_store_settings()['currency_code'],
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            discount=discount,
            total=order_total(subtotal, delivery_fee, discount),
            address=address or '',
            note=note or '',
            cart=cart,
            created_by=user if user is not None and user.is_authenticated else None,
        )
        OrderItem.objects.bulk_create([
            OrderItem(order=order, **line) for line in lines
        ])
    logger.info(f"Order {order.order_number} created ({channel}, total {order.total})")
    return order


def create_online_order(customer_phone, items, customer_name=None, channel='whatsapp',
                        payment_method='cod', address='', note='', delivery_fee=ZERO,
                        discount=ZERO, user=None):
    """Create a pending WhatsApp/website order, finding or creating the customer by phone"""
    phone = normalize_phone(customer_phone)
    if phone_digit_count(phone) < MIN_PHONE_DIGITS:
        raise OrderError('Enter a valid phone number')
    if not items:
        raise OrderError('Cart is empty')

    with transaction.atomic():
        customer, _ = find_or_create_customer(phone, name=customer_name, address=address)
        order = create_order(
            items,
            channel=channel,
            customer=customer,
            customer_phone=phone,
            payment_method=payment_method,
            delivery_fee=delivery_fee,
            discount=discount,
            address=address or customer.address,
            note=note,
            user=user,
        )
    return order


def confirm_order(order, user=None):
    """
    Confirm a pending order: deduct stock for every line (sale movements
    costed at the current average) and mark it confirmed. All or nothing.
    """
    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        if order.status != 'pending':
            raise OrderError(f"Only pending orders can be confirmed (order is {order.get_status_display().lower()})")

        for item in order.items.select_related('variant', 'variant__product'):
            apply_inventory_movement(
                item.variant,
                'sale',
                qty_g=item.qty_g,
                qty_units=item.qty_units,
                note=f"Order {order.order_number}",
                order=order,
                user=user,
            )

        order.status = 'confirmed'
        order.confirmed_at = timezone.now()
        order.save(update_fields=['status', 'confirmed_at', 'updated_at'])

    logger.info(f"Order {order.order_number} confirmed")
    return order


def cancel_order(order, user=None, reason=''):
    """
    Cancel an order. Stock taken by a confirmed order is put back with
    return movements carrying the original sale unit cost; an unpaid credit
    raised for the order is closed.
    """
    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        if order.status not in CANCELLABLE_STATUSES:
            raise OrderError(f"Order is {order.get_status_display().lower()} and cannot be cancelled")

        for sale in order.movements.filter(type='sale').select_related('variant', 'variant__product'):
            apply_inventory_movement(
                sale.variant,
                'return',
                qty_g=abs(sale.qty_g),
                qty_units=abs(sale.qty_units),
                cost_total=sale.cost_total,
                unit_cost=sale.unit_cost,
                note=f"Cancelled order {order.order_number}",
                order=order,
                user=user,
            )

        for credit in order.credits.exclude(status='paid'):
            credit.amount = credit.amount_paid
            credit.status = 'paid'
            credit.paid_at = timezone.now()
            credit.note = f"{credit.note}\nClosed: order {order.order_number} cancelled".strip()
            credit.save()

        order.status = 'cancelled'
        order.cancelled_at = timezone.now()
        if reason:
            order.note = f"{order.note}\nCancelled: {reason}".strip()
        order.save(update_fields=['status', 'cancelled_at', 'note', 'updated_at'])

    logger.info(f"Order {order.order_number} cancelled")
    return order


def change_status(order, new_status, user=None):
    """Move an order to new_status, routing confirm/cancel through their services"""
    if new_status == order.status:
        return order
    if new_status == 'confirmed':
        return confirm_order(order, user=user)
    if new_status == 'cancelled':
        return cancel_order(order, user=user)
    if new_status not in STATUS_TRANSITIONS.get(order.status, ()):
        raise OrderError(f"Cannot change order status from {order.status} to {new_status}")
    order.status = new_status
    order.save(update_fields=['status', 'updated_at'])
    return order


def _payment_status(order):
    if order.amount_paid >= order.total:
        return 'paid'
    if order.amount_paid > 0:
        return 'partial'
    return 'unpaid'


def record_payment(order, amount, method='cash', note='', user=None):
    """Add a payment to an order and refresh its payment status"""
    amount = money(amount)
    if amount <= 0:
        raise OrderError('Payment amount must be greater than 0')

    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        if order.status == 'cancelled':
            raise OrderError('Cannot take payment for a cancelled order')
        if order.amount_paid + amount > order.total:
            raise OrderError(f"Payment exceeds the balance due ({order.balance_due})")

        payment = Payment.objects.create(
            order=order,
            customer=order.customer,
            amount=amount,
            method=method,
            note=note or '',
            created_by=user if user is not None and user.is_authenticated else None,
        )
        order.amount_paid = order.amount_paid + amount
        order.payment_status = _payment_status(order)
        order.save(update_fields=['amount_paid', 'payment_status', 'updated_at'])

    logger.info(f"Payment {payment.id} of {amount} recorded for order {order.order_number}")
    return payment, order


def settle_order(order, user=None):
    """Record a payment for whatever is still due, using the order's payment method"""
    if order.balance_due <= 0:
        order.payment_status = 'paid'
        order.save(update_fields=['payment_status', 'updated_at'])
        return order
    method = 'transfer' if order.payment_method == 'transfer' else 'cash'
    _, order = record_payment(order, order.balance_due, method=method, note='Marked as paid', user=user)
    return order


# Carts

def get_active_cart(cart):
    if cart.status != 'active':
        raise OrderError(f"Cart {cart.cart_number} is {cart.status}")
    return cart


def create_cart(user=None, customer=None, customer_name='', customer_phone='', payment_method='cash', note=''):
    return Cart.objects.create(
        cart_number=generate_number('CART', Cart, 'cart_number'),
        customer=customer,
        customer_name=customer_name or (customer.name or '' if customer else ''),
        customer_phone=normalize_phone(customer_phone) or (customer.phone if customer else ''),
        payment_method=payment_method,
        note=note or '',
        created_by=user if user is not None and user.is_authenticated else None,
    )


def add_cart_item(cart, variant, qty_g=0, qty_units=0):
    """Add a variant to the cart, merging with an existing line"""
    get_active_cart(cart)
    prepare_lines([{'variant': variant, 'qty_g': qty_g, 'qty_units': qty_units}])
    item = cart.items.filter(variant=variant).first()
    if item is not None:
        item.qty_g += int(qty_g or 0)
        item.qty_units += int(qty_units or 0)
        item.save(update_fields=['qty_g', 'qty_units'])
    else:
        item = CartItem.objects.create(
            cart=cart,
            variant=variant,
            qty_g=int(qty_g or 0),
            qty_units=int(qty_units or 0),
            unit_price=variant.sell_price,
        )
    cart.save(update_fields=['updated_at'])
    return item


def update_cart_item(item, qty_g=None, qty_units=None, unit_price=None):
    get_active_cart(item.cart)
    new_g = item.qty_g if qty_g is None else int(qty_g)
    new_units = item.qty_units if qty_units is None else int(qty_units)
    price = item.unit_price if unit_price is None else money(unit_price)
    prepare_lines([{'variant': item.variant, 'qty_g': new_g, 'qty_units': new_units, 'unit_price': price}])
    item.qty_g = new_g
    item.qty_units = new_units
    item.unit_price = price
    item.save(update_fields=['qty_g', 'qty_units', 'unit_price'])
    return item


def cart_totals(cart):
    subtotal = sum(
        (line_total(i.variant.variant_type, i.unit_price, i.qty_g, i.qty_units) for i in cart.items.select_related('variant')),
        ZERO,
    )
    return {'subtotal': subtotal, 'total': subtotal, 'items_count': cart.items.count()}


def _receipt_note(receipt, cart, payment_method, extra_note=''):
    customer = cart.customer_name or (cart.customer.name if cart.customer and cart.customer.name else '')
    phone = cart.customer_phone or (cart.customer.phone if cart.customer else '')
    lines = [f"Receipt: {receipt}"]
    if customer or phone:
        lines.append(f"Customer: {customer or '-'}{f' ({phone})' if phone else ''}")
    lines.append(f"Payment: {payment_method}")
    lines.append("Source: Fast POS")
    if extra_note:
        lines.append(extra_note)
    return '\n'.join(lines)


def checkout_cart(cart, user=None, payment_method=None, note=''):
    """
    Fast POS checkout in one transaction: create the order, take payment
    (or raise a credit), confirm it (deducting stock) and close the cart.
    Returns (order, credit or None).
    """
    with suspend_cache_signals(), transaction.atomic():
        cart = Cart.objects.select_for_update().select_related('customer').get(pk=cart.pk)
        get_active_cart(cart)
        payment_method = payment_method or cart.payment_method
        items = [
            {'variant': item.variant, 'qty_g': item.qty_g, 'qty_units': item.qty_units, 'unit_price': item.unit_price}
            for item in cart.items.select_related('variant', 'variant__product')
        ]
        if not items:
            raise OrderError('Cart is empty')

        customer = cart.customer
        if customer is None and phone_digit_count(cart.customer_phone) >= MIN_PHONE_DIGITS:
            customer, _ = find_or_create_customer(cart.customer_phone, name=cart.customer_name)
            cart.customer = customer

        if payment_method == 'credit' and customer is None and len((cart.customer_name or '').strip()) < 3:
            raise OrderError('Credit sales need a customer (phone or name)')

        receipt = f"POS-{int(timezone.now().timestamp() * 1000)}"
        order = create_order(
            items,
            channel='pos',
            customer=customer,
            customer_phone=cart.customer_phone,
            payment_method=payment_method,
            note=_receipt_note(receipt, cart, payment_method, note or cart.note),
            cart=cart,
            user=user,
        )

        if payment_method != 'credit':
            if order.total > 0:
                _, order = record_payment(order, order.total, method=payment_method, note=receipt, user=user)
            else:
                order.payment_status = 'paid'
                order.save(update_fields=['payment_status', 'updated_at'])

        order = confirm_order(order, user=user)

        credit = None
        if payment_method == 'credit' and order.total > 0:
            summary = ', '.join(
                f"{line.variant.display_name} {quantity_label(line.variant, line.qty_g, line.qty_units)}"
                for line in order.items.select_related('variant', 'variant__product')
            )
            credit = create_credit(
                order.total,
                customer=customer,
                customer_name=cart.customer_name,
                customer_phone=cart.customer_phone,
                note=f"{receipt}\nItems: {summary}",
                order=order,
                user=user,
            )

        cart.status = 'completed'
        cart.payment_method = payment_method
        cart.save(update_fields=['status', 'payment_method', 'customer', 'updated_at'])

    logger.info(f"Cart {cart.cart_number} checked out as order {order.order_number} ({payment_method}, total {order.total})")
    return order, credit
