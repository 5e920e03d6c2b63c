"""Typed records and boundary validation for Stockroom.

This module defines the persisted shapes for every recognized collection as
voluptuous schemas (enforced by the document store on each write) and as
dataclasses for typed reads by the ledger and the ordering engine. It also
provides small id/time/text helpers.

The intent is to keep these models framework-agnostic and free of I/O. Higher
layers (document store, ledger, WebSocket/API) are expected to compose these
helpers.
"""

from __future__ import annotations

import unicodedata
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Final

import voluptuous as vol

from .const import (
    COLLECTION_CATEGORIES,
    COLLECTION_INVENTORY,
    COLLECTION_ITEMS,
    COLLECTION_LOCATIONS,
    COLLECTION_MOVEMENTS,
    COLLECTION_UOM_CONVERSIONS,
    COLLECTION_UOMS,
    COLLECTION_USERS,
    DEFAULT_REORDER_LEVEL,
    MOVEMENT_TYPE_ADJUSTMENT,
    MOVEMENT_TYPES,
)
from .exceptions import ValidationError

LOCATION_TYPES: Final[tuple[str, ...]] = ("Warehouse", "Jobsite", "Office", "Other")
STATUSES: Final[tuple[str, ...]] = ("active", "inactive")
USER_ROLES: Final[tuple[str, ...]] = ("admin", "user")


# -----------------------------
# Utility helpers
# -----------------------------


def iso_utc_now() -> str:
    """Return ISO-8601 UTC timestamp string with 'Z'."""

    now = datetime.now(tz=UTC)
    # No microseconds to keep it compact and stable
    return now.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def new_document_id() -> str:
    """Generate a hyphenated UUID v4 string for a new document."""

    return str(uuid.uuid4())


def normalize_text_for_sort(text: str | None) -> str:
    """Return a case-insensitive, accent-folded string for lexicographic sorting."""

    if not text:
        return ""
    nfkd = unicodedata.normalize("NFKD", text)
    ascii_text = nfkd.encode("ascii", "ignore").decode("ascii")
    collapsed = " ".join(ascii_text.split())
    return collapsed.casefold()


def strict_int(value: Any) -> int:
    """Voluptuous validator accepting ints but not bools."""

    if isinstance(value, bool) or not isinstance(value, int):
        raise vol.Invalid("expected an integer")
    return value


def number(value: Any) -> int | float:
    """Voluptuous validator accepting ints and floats but not bools."""

    if isinstance(value, bool) or not isinstance(value, int | float):
        raise vol.Invalid("expected a number")
    return value


# -----------------------------
# Record schemas (store boundary)
# -----------------------------

_OPTIONAL_STR = vol.Any(str, None)

LOCATION_SCHEMA = vol.Schema(
    {
        vol.Required("name"): str,
        vol.Optional("address"): _OPTIONAL_STR,
        vol.Optional("type"): vol.In(LOCATION_TYPES),
        vol.Optional("status"): vol.In(STATUSES),
    },
    extra=vol.ALLOW_EXTRA,
)

CATEGORY_SCHEMA = vol.Schema(
    {
        vol.Required("name"): str,
        vol.Optional("subcategories"): [str],
        vol.Optional("sort_order"): number,
    },
    extra=vol.ALLOW_EXTRA,
)

UOM_SCHEMA = vol.Schema(
    {vol.Required("name"): str, vol.Optional("abbreviation"): _OPTIONAL_STR},
    extra=vol.ALLOW_EXTRA,
)

UOM_CONVERSION_SCHEMA = vol.Schema(
    {
        vol.Required("from_uom"): str,
        vol.Required("to_uom"): str,
        vol.Required("multiplier"): vol.All(number, vol.Range(min=0, min_included=False)),
    },
    extra=vol.ALLOW_EXTRA,
)

VARIANT_SCHEMA = vol.Schema(
    {
        vol.Required("variant_id"): str,
        vol.Optional("sku"): _OPTIONAL_STR,
        vol.Optional("size"): _OPTIONAL_STR,
        vol.Optional("color"): _OPTIONAL_STR,
        vol.Optional("type"): _OPTIONAL_STR,
        vol.Optional("brand"): _OPTIONAL_STR,
        vol.Optional("average_cost"): number,
        vol.Optional("reorder_level"): strict_int,
        vol.Optional("serial_required"): bool,
        vol.Optional("attributes"): [{vol.Required("key"): str, vol.Required("value"): str}],
        vol.Optional("applicable_uoms"): [str],
    },
    extra=vol.ALLOW_EXTRA,
)

ITEM_SCHEMA = vol.Schema(
    {
        vol.Required("name"): str,
        vol.Optional("category"): _OPTIONAL_STR,
        vol.Optional("subcategory"): _OPTIONAL_STR,
        vol.Optional("description"): _OPTIONAL_STR,
        vol.Optional("base_uom"): _OPTIONAL_STR,
        vol.Optional("has_variants"): bool,
        vol.Optional("variants"): [VARIANT_SCHEMA],
        vol.Optional("status"): vol.In(STATUSES),
    },
    extra=vol.ALLOW_EXTRA,
)

USER_SCHEMA = vol.Schema(
    {
        vol.Required("email"): str,
        vol.Optional("full_name"): str,
        vol.Optional("role"): vol.In(USER_ROLES),
        vol.Optional("assigned_location"): _OPTIONAL_STR,
        vol.Optional("phone"): _OPTIONAL_STR,
        vol.Optional("status"): vol.In(STATUSES),
        vol.Optional("created_at"): _OPTIONAL_STR,
    },
    extra=vol.ALLOW_EXTRA,
)

# Ledger records are written only by the ledger; their shape is closed.
INVENTORY_SCHEMA = vol.Schema(
    {
        vol.Required("location_id"): str,
        vol.Required("item_id"): str,
        vol.Required("variant_id"): str,
        vol.Required("quantity"): strict_int,
    }
)

MOVEMENT_SCHEMA = vol.Schema(
    {
        vol.Required("item_id"): str,
        vol.Required("variant_id"): str,
        vol.Required("location_id"): str,
        vol.Required("quantity_change"): strict_int,
        vol.Required("new_quantity"): strict_int,
        vol.Required("reference"): _OPTIONAL_STR,
        vol.Required("timestamp"): str,
        vol.Required("user_id"): _OPTIONAL_STR,
        vol.Required("type"): vol.In(MOVEMENT_TYPES),
    }
)

DOCUMENT_SCHEMAS: Final[dict[str, vol.Schema]] = {
    COLLECTION_LOCATIONS: LOCATION_SCHEMA,
    COLLECTION_CATEGORIES: CATEGORY_SCHEMA,
    COLLECTION_UOMS: UOM_SCHEMA,
    COLLECTION_UOM_CONVERSIONS: UOM_CONVERSION_SCHEMA,
    COLLECTION_ITEMS: ITEM_SCHEMA,
    COLLECTION_USERS: USER_SCHEMA,
    COLLECTION_INVENTORY: INVENTORY_SCHEMA,
    COLLECTION_MOVEMENTS: MOVEMENT_SCHEMA,
}


def validate_document(collection: str, body: Any) -> dict[str, Any]:
    """Validate ``body`` against the schema registered for ``collection``.

    Collections without a registered schema accept any mapping with string
    keys. Raises ValidationError on mismatch and returns the validated body.
    """

    if not isinstance(body, dict):
        raise ValidationError(f"{collection} document must be a mapping")
    if any(not isinstance(key, str) for key in body):
        raise ValidationError(f"{collection} document field names must be strings")
    schema = DOCUMENT_SCHEMAS.get(collection)
    if schema is None:
        return body
    try:
        return schema(body)
    except vol.Invalid as exc:
        raise ValidationError(f"invalid {collection} document: {exc}") from exc


# -----------------------------
# Typed records
# -----------------------------


@dataclass
class Location:
    """Persisted shape for a stock location."""

    id: str
    name: str
    address: str | None = None
    type: str | None = None
    status: str = "active"

    @classmethod
    def from_document(cls, doc_id: str, body: dict[str, Any]) -> Location:
        return cls(
            id=doc_id,
            name=str(body.get("name") or ""),
            address=body.get("address"),
            type=body.get("type"),
            status=str(body.get("status") or "active"),
        )


@dataclass
class Category:
    """Persisted shape for a catalog category."""

    id: str
    name: str
    subcategories: list[str] = field(default_factory=list)
    sort_order: int | float = 0

    @classmethod
    def from_document(cls, doc_id: str, body: dict[str, Any]) -> Category:
        rank = body.get("sort_order")
        if isinstance(rank, bool) or not isinstance(rank, int | float):
            rank = 0
        return cls(
            id=doc_id,
            name=str(body.get("name") or ""),
            subcategories=list(body.get("subcategories") or []),
            sort_order=rank,
        )


@dataclass
class Variant:
    """A stock-keeping variant owned by an Item."""

    variant_id: str
    sku: str | None = None
    size: str | None = None
    color: str | None = None
    type: str | None = None
    brand: str | None = None
    average_cost: float = 0.0
    reorder_level: int = 0
    serial_required: bool = False
    applicable_uoms: list[str] = field(default_factory=list)

    @classmethod
    def from_document(cls, body: dict[str, Any]) -> Variant:
        return cls(
            variant_id=str(body.get("variant_id") or ""),
            sku=body.get("sku"),
            size=body.get("size"),
            color=body.get("color"),
            type=body.get("type"),
            brand=body.get("brand"),
            average_cost=float(body.get("average_cost") or 0),
            reorder_level=int(body.get("reorder_level") or 0),
            serial_required=bool(body.get("serial_required", False)),
            applicable_uoms=list(body.get("applicable_uoms") or []),
        )


@dataclass
class Item:
    """Persisted shape for a catalog item and its variants.

    ``category`` holds a category id (or, for older data, a category name).
    """

    id: str
    name: str
    category: str | None = None
    subcategory: str | None = None
    description: str | None = None
    base_uom: str | None = None
    has_variants: bool = False
    variants: list[Variant] = field(default_factory=list)
    status: str = "active"

    @property
    def item_id(self) -> str:
        # Lets catalog rows flow through the same ordering as inventory rows
        return self.id

    def get_variant(self, variant_id: str) -> Variant | None:
        for variant in self.variants:
            if variant.variant_id == variant_id:
                return variant
        return None

    @classmethod
    def from_document(cls, doc_id: str, body: dict[str, Any]) -> Item:
        return cls(
            id=doc_id,
            name=str(body.get("name") or ""),
            category=body.get("category"),
            subcategory=body.get("subcategory"),
            description=body.get("description"),
            base_uom=body.get("base_uom"),
            has_variants=bool(body.get("has_variants", False)),
            variants=[
                Variant.from_document(v) for v in body.get("variants") or [] if isinstance(v, dict)
            ],
            status=str(body.get("status") or "active"),
        )


@dataclass
class UomConversion:
    """One ``from_uom`` equals ``multiplier`` of ``to_uom``."""

    id: str
    from_uom: str
    to_uom: str
    multiplier: float

    @classmethod
    def from_document(cls, doc_id: str, body: dict[str, Any]) -> UomConversion:
        return cls(
            id=doc_id,
            from_uom=str(body.get("from_uom") or ""),
            to_uom=str(body.get("to_uom") or ""),
            multiplier=float(body.get("multiplier") or 0),
        )


@dataclass
class InventoryRecord:
    """Current quantity for one (location, variant) pair, in base units."""

    id: str
    location_id: str
    item_id: str
    variant_id: str
    quantity: int = 0

    def to_document(self) -> dict[str, Any]:
        return {
            "location_id": self.location_id,
            "item_id": self.item_id,
            "variant_id": self.variant_id,
            "quantity": int(self.quantity),
        }

    @classmethod
    def from_document(cls, doc_id: str, body: dict[str, Any]) -> InventoryRecord:
        return cls(
            id=doc_id,
            location_id=str(body.get("location_id") or ""),
            item_id=str(body.get("item_id") or ""),
            variant_id=str(body.get("variant_id") or ""),
            quantity=int(body.get("quantity") or 0),
        )


@dataclass
class MovementRecord:
    """Immutable audit-trail entry for one stock adjustment."""

    id: str
    item_id: str
    variant_id: str
    location_id: str
    quantity_change: int
    new_quantity: int
    reference: str | None = None
    timestamp: str = field(default_factory=iso_utc_now)
    user_id: str | None = None
    type: str = MOVEMENT_TYPE_ADJUSTMENT

    def to_document(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "variant_id": self.variant_id,
            "location_id": self.location_id,
            "quantity_change": int(self.quantity_change),
            "new_quantity": int(self.new_quantity),
            "reference": self.reference,
            "timestamp": self.timestamp,
            "user_id": self.user_id,
            "type": self.type,
        }

    @classmethod
    def from_document(cls, doc_id: str, body: dict[str, Any]) -> MovementRecord:
        return cls(
            id=doc_id,
            item_id=str(body.get("item_id") or ""),
            variant_id=str(body.get("variant_id") or ""),
            location_id=str(body.get("location_id") or ""),
            quantity_change=int(body.get("quantity_change") or 0),
            new_quantity=int(body.get("new_quantity") or 0),
            reference=body.get("reference"),
            timestamp=str(body.get("timestamp") or ""),
            user_id=body.get("user_id"),
            type=str(body.get("type") or MOVEMENT_TYPE_ADJUSTMENT),
        )


def reorder_level_for(variant: Variant | None, default: int = DEFAULT_REORDER_LEVEL) -> int:
    """Return the effective reorder level; a missing or zero level uses ``default``."""

    if variant is None or not variant.reorder_level:
        return default
    return variant.reorder_level


def is_low_stock(
    quantity: int, variant: Variant | None, default: int = DEFAULT_REORDER_LEVEL
) -> bool:
    return quantity < reorder_level_for(variant, default)
