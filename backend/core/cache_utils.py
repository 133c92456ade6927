"""
Caching helpers for report and dashboard queries.

Report keys embed a generation number; bumping the generation invalidates every
cached report at once on any cache backend (Redis in production, locmem in tests).
"""
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
DASHBOARD_KPI_CACHE_TTL = 300  # 5 minutes
REPORTS_CACHE_TTL = 600  # 10 minutes

REPORTS_GENERATION_KEY = 'reports:generation'


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def get_reports_generation():
    try:
        generation = cache.get(REPORTS_GENERATION_KEY)
        if generation is None:
            cache.add(REPORTS_GENERATION_KEY, 1, None)
            generation = cache.get(REPORTS_GENERATION_KEY) or 1
        return generation
    except Exception as e:
        logger.warning(f"Cache unavailable, reading reports generation failed: {e}")
        return 0


def make_report_cache_key(prefix, *args, **kwargs):
    """Cache key for a report, tied to the current reports generation"""
    return make_cache_key(prefix, get_reports_generation(), *args, **kwargs)


def cached_report(cache_ttl=REPORTS_CACHE_TTL, key_prefix="report"):
    """
    Decorator caching the return value of a report builder.

    Usage:
        @cached_report(cache_ttl=300, key_prefix="dashboard_kpis")
        def build_dashboard(day):
            ...
    Cache failures fall through to computing the report.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = make_report_cache_key(key_prefix, *args, **kwargs)
            try:
                cached_data = cache.get(cache_key)
            except Exception as e:
                logger.warning(f"Cache unavailable, proceeding without cache: {e}")
                cached_data = None
            if cached_data is not None:
                logger.debug(f"Cache HIT for {key_prefix}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {key_prefix}: {cache_key}")
            result = func(*args, **kwargs)
            try:
                cache.set(cache_key, result, cache_ttl)
            except Exception as e:
                logger.warning(f"Unable to cache {key_prefix}: {e}")
            return result
        wrapper.uncached = func
        return wrapper
    return decorator


def invalidate_reports_cache():
    """Invalidate all cached reports and dashboard KPIs"""
    try:
        try:
            cache.incr(REPORTS_GENERATION_KEY)
        except ValueError:
            # Key missing or evicted
            cache.set(REPORTS_GENERATION_KEY, 2, None)
        logger.debug("Invalidated reports cache")
    except Exception as e:
        logger.warning(f"Could not invalidate reports cache: {e}")
