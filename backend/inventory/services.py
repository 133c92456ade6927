"""
Stock accounting: every change to on-hand quantity goes through
apply_inventory_movement, which keeps the weighted-average cost current
and writes the ledger row in the same transaction.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.db.models import Case, F, IntegerField, Q, Value, When

from backend.core.utils import get_store_settings, money
from .models import Inventory, InventoryMovement

logger = logging.getLogger(__name__)

MOVEMENT_TYPES = [choice[0] for choice in InventoryMovement.TYPE_CHOICES]
INBOUND_TYPES = ('restock', 'return')
OUTBOUND_TYPES = ('manual_out', 'sale')
# Types whose cost_total is taken into the weighted average when stock goes up
COSTED_TYPES = ('restock', 'return', 'adjustment')

AVG_COST_PLACES = Decimal('0.000001')


class InventoryError(Exception):
    """Invalid movement or insufficient stock"""


def kg_to_grams(kg):
    """Convert a kilogram amount to whole grams, rounding half up"""
    return int((Decimal(str(kg)) * 1000).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def ensure_inventory(variant):
    """Return the variant's inventory row, creating it with default reorder levels"""
    inventory = Inventory.objects.filter(variant=variant).first()
    if inventory is not None:
        return inventory
    store = get_store_settings()
    if variant.variant_type == 'weight':
        defaults = {'reorder_level_g': store['default_reorder_level_g']}
    else:
        defaults = {'reorder_level_units': store['default_reorder_level_units']}
    inventory, _ = Inventory.objects.get_or_create(variant=variant, defaults=defaults)
    return inventory


def sync_missing_inventory():
    """Create inventory rows for variants that have none"""
    from backend.catalog.models import ProductVariant

    missing = ProductVariant.objects.filter(inventory__isnull=True)
    created = 0
    for variant in missing:
        ensure_inventory(variant)
        created += 1
    if created:
        logger.info(f"Created {created} missing inventory rows")
    return created


def signed_delta(movement_type, qty):
    """Signed change in stock for a movement of the given type"""
    if movement_type in INBOUND_TYPES:
        return abs(qty)
    if movement_type in OUTBOUND_TYPES:
        return -abs(qty)
    if movement_type == 'adjustment':
        return qty
    raise InventoryError(f"Unknown movement type: {movement_type}")


def weighted_average(old_qty, old_avg, added_qty, added_cost):
    """
    Average unit cost after receiving added_qty costing added_cost in total.
    Negative on-hand counts as zero so a backlog does not distort the average.
    """
    base_qty = Decimal(max(old_qty, 0))
    new_qty = base_qty + Decimal(added_qty)
    if new_qty <= 0:
        return old_avg
    value = base_qty * Decimal(old_avg) + Decimal(added_cost)
    return (value / new_qty).quantize(AVG_COST_PLACES, rounding=ROUND_HALF_UP)


def apply_inventory_movement(variant, movement_type, qty_g=0, qty_units=0, cost_total=None,
                             supplier_name=None, note='', order=None, user=None, unit_cost=None):
    """
    Apply a stock movement to a variant and record it.

    Inbound costed movements take either cost_total or an exact unit_cost
    (unit_cost wins when both are given). Costed movements record unit_cost
    to six places so stock can be put back at the average it left at.

    Returns (movement, inventory). Raises InventoryError for a zero or
    wrong-dimension quantity, or when an outbound movement would take stock
    below zero (unless ALLOW_NEGATIVE_STOCK is set).
    """
    if movement_type not in MOVEMENT_TYPES:
        raise InventoryError(f"Unknown movement type: {movement_type}")

    qty_g = int(qty_g or 0)
    qty_units = int(qty_units or 0)
    is_weight = variant.variant_type == 'weight'

    if is_weight and qty_units:
        raise InventoryError(f"{variant.display_name} is sold by weight; use grams, not units")
    if not is_weight and qty_g:
        raise InventoryError(f"{variant.display_name} is sold by unit; use units, not grams")

    delta = signed_delta(movement_type, qty_g if is_weight else qty_units)
    if delta == 0:
        raise InventoryError('Quantity must not be zero')

    with transaction.atomic():
        ensure_inventory(variant)
        inventory = Inventory.objects.select_for_update().get(variant=variant)

        old_qty = inventory.qty_g if is_weight else inventory.qty_units
        old_avg = inventory.avg_cost_per_g if is_weight else inventory.avg_cost_per_unit
        new_qty = old_qty + delta

        recorded_cost = None
        recorded_unit = None
        if delta > 0:
            if movement_type in COSTED_TYPES and (unit_cost is not None or cost_total is not None):
                if unit_cost is not None:
                    recorded_unit = Decimal(unit_cost).quantize(AVG_COST_PLACES, rounding=ROUND_HALF_UP)
                    added_cost = recorded_unit * delta
                    recorded_cost = money(added_cost)
                else:
                    recorded_cost = money(cost_total)
                    added_cost = recorded_cost
                    recorded_unit = (recorded_cost / delta).quantize(AVG_COST_PLACES, rounding=ROUND_HALF_UP)
                if recorded_cost < 0:
                    raise InventoryError('Cost cannot be negative')
                new_avg = weighted_average(old_qty, old_avg, delta, added_cost)
                if is_weight:
                    inventory.avg_cost_per_g = new_avg
                else:
                    inventory.avg_cost_per_unit = new_avg
        else:
            if new_qty < 0 and not getattr(settings, 'ALLOW_NEGATIVE_STOCK', False):
                unit = 'g' if is_weight else 'units'
                raise InventoryError(
                    f"Insufficient stock for {variant.display_name}: "
                    f"{old_qty} {unit} available, {abs(delta)} {unit} requested"
                )
            recorded_unit = Decimal(old_avg)
            recorded_cost = money(Decimal(abs(delta)) * recorded_unit)

        if is_weight:
            inventory.qty_g = new_qty
        else:
            inventory.qty_units = new_qty
        inventory.save()

        movement = InventoryMovement.objects.create(
            variant=variant,
            type=movement_type,
            qty_g=delta if is_weight else 0,
            qty_units=0 if is_weight else delta,
            cost_total=recorded_cost,
            unit_cost=recorded_unit,
            supplier_name=(supplier_name or '').strip() or None,
            note=note or '',
            order=order,
            created_by=user if user is not None and user.is_authenticated else None,
        )

    logger.info(
        f"Movement {movement.id} {movement_type} on variant {variant.id}: "
        f"{old_qty} -> {new_qty} ({'g' if is_weight else 'units'}), cost={recorded_cost}"
    )
    return movement, inventory


def set_stock_level(variant, qty_g=None, qty_units=None, note='', user=None):
    """
    Set on-hand quantity to a counted value by writing an adjustment
    movement for the difference. Returns the movement or None when unchanged.
    """
    inventory = ensure_inventory(variant)
    if variant.variant_type == 'weight':
        if qty_g is None:
            return None
        difference = int(qty_g) - inventory.qty_g
        if difference == 0:
            return None
        movement, _ = apply_inventory_movement(
            variant, 'adjustment', qty_g=difference, note=note or 'Stock count', user=user
        )
    else:
        if qty_units is None:
            return None
        difference = int(qty_units) - inventory.qty_units
        if difference == 0:
            return None
        movement, _ = apply_inventory_movement(
            variant, 'adjustment', qty_units=difference, note=note or 'Stock count', user=user
        )
    return movement


def low_stock_q(prefix=''):
    """Q object selecting low-stock inventory rows (prefix for related lookups)"""
    return (
        Q(**{
            f'{prefix}variant__variant_type': 'weight',
            f'{prefix}reorder_level_g__gt': 0,
            f'{prefix}qty_g__lte': F(f'{prefix}reorder_level_g'),
        }) |
        Q(**{
            f'{prefix}variant__variant_type': 'unit',
            f'{prefix}reorder_level_units__gt': 0,
            f'{prefix}qty_units__lte': F(f'{prefix}reorder_level_units'),
        })
    )


def inventory_queryset(low_only=False):
    """Inventory rows ordered low-stock first, then by product and variant name"""
    queryset = Inventory.objects.select_related('variant', 'variant__product').annotate(
        low_rank=Case(
            When(low_stock_q(), then=Value(0)),
            default=Value(1),
            output_field=IntegerField(),
        )
    )
    if low_only:
        queryset = queryset.filter(low_stock_q())
    return queryset.order_by('low_rank', 'variant__product__name', 'variant__name')
