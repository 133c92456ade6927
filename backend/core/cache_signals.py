"""
Cache invalidation signals
Invalidate cached reports when the rows they aggregate change
"""
from django.db.models.signals import post_save, post_delete
from django.db import transaction
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from .cache_utils import invalidate_reports_cache

logger = logging.getLogger(__name__)

# Models whose writes change report or dashboard figures
REPORT_SOURCE_MODELS = {
    'Order', 'OrderItem', 'Payment',
    'Inventory', 'InventoryMovement',
    'Expense', 'Credit', 'Supplier',
    'Setting',
}
REPORT_SOURCE_APPS = ('pos', 'inventory', 'expenses', 'parties', 'core')

_thread_locals = threading.local()


@contextmanager
def suspend_cache_signals():
    """
    Temporarily suspend cache invalidation signals for bulk writes.
    The reports cache is invalidated once, after commit, when the block exits.
    """
    previous = getattr(_thread_locals, 'suspended', False)
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = previous
        if not previous:
            transaction.on_commit(invalidate_reports_cache)


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


@receiver([post_save, post_delete])
def invalidate_reports_on_change(sender, instance, **kwargs):
    """Invalidate reports cache when orders, stock, expenses, credits or settings change"""
    if is_suspended():
        return
    if sender.__name__ not in REPORT_SOURCE_MODELS:
        return
    if sender._meta.app_label not in REPORT_SOURCE_APPS:
        return
    try:
        # The generation moves only once the write is visible to readers
        transaction.on_commit(invalidate_reports_cache)
    except Exception as e:
        logger.warning(f"Error in invalidate_reports_on_change signal: {e}")
