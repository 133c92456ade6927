"""
Utility functions for catalog operations
"""
import re


def slugify(text):
    """
    Build a URL slug: lowercase, quotes dropped, every run of other
    non-alphanumeric characters collapsed to a single dash.

    >>> slugify("Kid's  Rice (5kg)")
    'kids-rice-5kg'
    """
    if not text:
        return ''
    value = str(text).strip().lower()
    value = re.sub(r"['\"`]", '', value)
    value = re.sub(r'[^a-z0-9]+', '-', value)
    return value.strip('-')


def unique_slug(model, text, instance=None, **scope):
    """
    Return a slug for text that is unused within scope, adding -2, -3, ...
    until it is free. The instance being edited is excluded.
    """
    base = slugify(text) or 'item'
    base = base[:200]
    candidate = base
    counter = 2
    queryset = model.objects.filter(**scope)
    if instance is not None and instance.pk:
        queryset = queryset.exclude(pk=instance.pk)
    while queryset.filter(slug=candidate).exists():
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate


def parse_tags(value):
    """
    Normalise tags from a comma-separated string or a list.
    Entries are trimmed, empties dropped and duplicates removed
    case-insensitively, keeping first-seen order.
    """
    if value is None:
        return []
    if isinstance(value, str):
        parts = value.split(',')
    else:
        parts = list(value)

    seen = set()
    tags = []
    for part in parts:
        tag = str(part).strip()
        if not tag:
            continue
        key = tag.lower()
        if key in seen:
            continue
        seen.add(key)
        tags.append(tag)
    return tags
