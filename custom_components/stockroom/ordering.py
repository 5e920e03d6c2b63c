"""Deterministic display ordering for inventory and catalog rows.

Rows are grouped by location, then category (explicit rank, then name), then
subcategory, then item name. Sort keys are plain tuples, so the resulting
order is total even when lookups are incomplete.

A row is any object with an ``item_id`` attribute and optional
``location_id``/``variant_id`` attributes; ``InventoryRecord`` and ``Item``
both qualify.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .models import Category, Item, Location, normalize_text_for_sort

Documents = Iterable[tuple[str, dict[str, Any]]]


def _text_key(text: str | None) -> tuple[str, str]:
    # Accent/case-insensitive first, raw text breaks ties deterministically
    raw = text or ""
    return normalize_text_for_sort(raw), raw


@dataclass
class DisplayContext:
    """Id lookups for resolving a row's location, item and category."""

    locations_by_id: dict[str, Location] = field(default_factory=dict)
    categories_by_id: dict[str, Category] = field(default_factory=dict)
    items_by_id: dict[str, Item] = field(default_factory=dict)

    @classmethod
    def from_documents(
        cls,
        *,
        locations: Documents = (),
        categories: Documents = (),
        items: Documents = (),
    ) -> DisplayContext:
        """Build a context from ``DocumentStore.async_list`` output."""

        return cls(
            locations_by_id={k: Location.from_document(k, v) for k, v in locations},
            categories_by_id={k: Category.from_document(k, v) for k, v in categories},
            items_by_id={k: Item.from_document(k, v) for k, v in items},
        )

    def location_for(self, location_id: str | None) -> Location | None:
        if not location_id:
            return None
        return self.locations_by_id.get(location_id)

    def item_for(self, item_id: str | None) -> Item | None:
        if not item_id:
            return None
        return self.items_by_id.get(item_id)

    def category_for(self, item: Item | None) -> Category | None:
        """Resolve an item's category by id, falling back to an exact name match."""

        if item is None or not item.category:
            return None
        found = self.categories_by_id.get(item.category)
        if found is not None:
            return found
        for category in self.categories_by_id.values():
            if category.name == item.category:
                return category
        return None


def display_sort_key(row: Any, context: DisplayContext) -> tuple:
    """Return the tuple ``sorted`` uses to place ``row`` for display."""

    location = context.location_for(getattr(row, "location_id", None))
    item_id = getattr(row, "item_id", None) or ""
    item = context.item_for(item_id)
    variant_id = getattr(row, "variant_id", None) or ""

    if item is None:
        # Unresolvable items trail every resolvable one in the same location
        return (
            _text_key(location.name if location else None),
            1,
            0,
            _text_key(None),
            _text_key(None),
            _text_key(None),
            item_id,
            variant_id,
        )

    category = context.category_for(item)
    return (
        _text_key(location.name if location else None),
        0,
        category.sort_order if category else 0,
        _text_key(category.name if category else None),
        _text_key(item.subcategory),
        _text_key(item.name),
        item_id,
        variant_id,
    )


def compare_for_display(a: Any, b: Any, context: DisplayContext) -> int:
    """Three-way comparison: negative if ``a`` displays first, 0 if tied."""

    key_a = display_sort_key(a, context)
    key_b = display_sort_key(b, context)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def sort_for_display(rows: Iterable[Any], context: DisplayContext) -> list[Any]:
    return sorted(rows, key=lambda row: display_sort_key(row, context))


def sort_categories(categories: Iterable[Category]) -> list[Category]:
    """Sort categories by rank, then name, then id."""

    return sorted(categories, key=lambda c: (c.sort_order, _text_key(c.name), c.id))
