"""Category vocabulary helpers.

A user's vocabulary is the system categories plus that user's custom ones.
It is loaded once per batch and treated as immutable for that batch. Slugs
are matched case-insensitively; an unknown slug is not an error, it simply
resolves to no category.
"""

from __future__ import annotations

from collections.abc import Sequence

from .models import Category


def category_id_for_slug(slug: str | None, categories: Sequence[Category]) -> str | None:
    """Return the id of the category whose slug matches ``slug``.

    ``None``/blank slugs and unmatched slugs return ``None``.
    """

    if not slug or not slug.strip():
        return None
    wanted = slug.strip().casefold()
    for c in categories:
        if c.slug.casefold() == wanted:
            return c.id
    return None


def allowed_slugs(categories: Sequence[Category]) -> list[str]:
    """Return the distinct slugs in vocabulary order (first spelling wins)."""

    seen: dict[str, str] = {}
    for c in categories:
        key = c.slug.strip().casefold()
        if key and key not in seen:
            seen[key] = c.slug.strip()
    return list(seen.values())


__all__ = ["allowed_slugs", "category_id_for_slug"]
