"""Offline tests for Stockroom record schemas and typed records.

Scenarios:
- known collections validate their bodies; unknown ones accept any mapping
- ledger record shapes are closed and strict about integers
- typed records tolerate missing optional fields
- reorder level fallback and low-stock threshold
- sort normalization folds case and accents
"""

from __future__ import annotations

import re
import uuid

import pytest
from custom_components.stockroom.const import (
    COLLECTION_CATEGORIES,
    COLLECTION_INVENTORY,
    COLLECTION_ITEMS,
    COLLECTION_LOCATIONS,
    COLLECTION_UOM_CONVERSIONS,
)
from custom_components.stockroom.exceptions import ValidationError
from custom_components.stockroom.models import (
    Category,
    InventoryRecord,
    Item,
    MovementRecord,
    Variant,
    is_low_stock,
    iso_utc_now,
    new_document_id,
    normalize_text_for_sort,
    reorder_level_for,
    validate_document,
)

ITEM_BODY = {
    "name": "Laptop",
    "category": "cat-1",
    "subcategory": "Laptops",
    "base_uom": "uom-1",
    "has_variants": True,
    "variants": [
        {"variant_id": "var-1", "sku": "LAP-13", "reorder_level": 3},
        {"variant_id": "var-2", "sku": "LAP-15"},
    ],
    "status": "active",
}


def test_item_body_validates_and_parses() -> None:
    validated = validate_document(COLLECTION_ITEMS, ITEM_BODY)
    item = Item.from_document("item-1", validated)

    assert item.item_id == "item-1"
    assert item.name == "Laptop"
    assert [v.variant_id for v in item.variants] == ["var-1", "var-2"]
    assert item.get_variant("var-1").reorder_level == 3
    assert item.get_variant("missing") is None


@pytest.mark.parametrize(
    ("collection", "body"),
    [
        (COLLECTION_LOCATIONS, {"address": "no name"}),
        (COLLECTION_LOCATIONS, {"name": "X", "type": "Spaceport"}),
        (COLLECTION_ITEMS, {"name": "X", "variants": [{"sku": "no id"}]}),
        (COLLECTION_ITEMS, {"name": "X", "status": "archived"}),
        (COLLECTION_CATEGORIES, {"name": "X", "sort_order": "first"}),
        (COLLECTION_UOM_CONVERSIONS, {"from_uom": "a", "to_uom": "b", "multiplier": 0}),
    ],
)
def test_invalid_bodies_raise_validation_error(collection, body) -> None:
    with pytest.raises(ValidationError):
        validate_document(collection, body)


def test_extra_fields_are_kept_on_catalog_records() -> None:
    body = {"name": "Yard", "manager": "Pat"}

    assert validate_document(COLLECTION_LOCATIONS, body) == body


def test_unknown_collection_accepts_any_mapping() -> None:
    assert validate_document("suppliers", {"x": 1}) == {"x": 1}

    with pytest.raises(ValidationError):
        validate_document("suppliers", {1: "non-string key"})
    with pytest.raises(ValidationError):
        validate_document("suppliers", "not a mapping")


@pytest.mark.parametrize(
    "body",
    [
        {"location_id": "l", "item_id": "i", "variant_id": "v", "quantity": True},
        {"location_id": "l", "item_id": "i", "variant_id": "v", "quantity": 1.5},
        {"location_id": "l", "item_id": "i", "variant_id": "v"},
        {"location_id": "l", "item_id": "i", "variant_id": "v", "quantity": 1, "extra": 1},
    ],
)
def test_inventory_shape_is_closed_and_strict(body) -> None:
    with pytest.raises(ValidationError):
        validate_document(COLLECTION_INVENTORY, body)


def test_inventory_record_document_roundtrip() -> None:
    record = InventoryRecord(id="loc-1:var-1", location_id="loc-1", item_id="i", variant_id="var-1")
    record.quantity = 7

    assert InventoryRecord.from_document(record.id, record.to_document()) == record


def test_movement_record_defaults() -> None:
    movement = MovementRecord.from_document("m-1", {"quantity_change": -2, "new_quantity": 4})

    assert movement.type == "adjustment"
    assert movement.quantity_change == -2
    assert movement.reference is None


def test_category_non_numeric_rank_defaults_to_zero() -> None:
    assert Category.from_document("c", {"name": "Misc", "sort_order": None}).sort_order == 0
    assert Category.from_document("c", {"name": "Misc", "sort_order": True}).sort_order == 0
    assert Category.from_document("c", {"name": "Misc", "sort_order": 2}).sort_order == 2


def test_reorder_level_fallback_and_low_stock() -> None:
    explicit = Variant(variant_id="v", reorder_level=10)
    unset = Variant(variant_id="v")

    assert reorder_level_for(explicit) == 10
    assert reorder_level_for(unset) == 5
    assert reorder_level_for(None, default=2) == 2

    assert is_low_stock(4, unset) is True
    assert is_low_stock(5, unset) is False
    assert is_low_stock(9, explicit) is True
    assert is_low_stock(-1, None) is True


def test_normalize_text_for_sort() -> None:
    assert normalize_text_for_sort("Électronique") == "electronique"
    assert normalize_text_for_sort("  Main   Warehouse ") == "main warehouse"
    assert normalize_text_for_sort(None) == ""


def test_id_and_time_helpers() -> None:
    assert uuid.UUID(new_document_id()).version == 4
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z", iso_utc_now())
