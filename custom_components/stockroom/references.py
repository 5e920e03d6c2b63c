"""Document references and deterministic composite ids.

A ``DocumentRef`` addresses a document without fetching it. Inventory
snapshot records are keyed by a composite id derived from the location and
variant ids, so "current quantity for this location and variant" is a single
addressable document.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final
from urllib.parse import quote, unquote

from .const import COLLECTION_INVENTORY
from .exceptions import ValidationError

# Percent-encoding of each part guarantees the separator never appears inside one
COMPOSITE_SEPARATOR: Final[str] = ":"


@dataclass(frozen=True)
class DocumentRef:
    """A (collection, id) pair used purely as a lookup key."""

    collection: str
    id: str

    def __str__(self) -> str:
        return f"{self.collection}/{self.id}"


def doc_ref(collection: str, doc_id: str) -> DocumentRef:
    """Build a reference after checking both parts are non-empty strings."""

    if not isinstance(collection, str) or not collection:
        raise ValidationError("collection must be a non-empty string")
    if not isinstance(doc_id, str) or not doc_id:
        raise ValidationError("document id must be a non-empty string")
    return DocumentRef(collection=collection, id=doc_id)


def _encode_part(value: str, *, field_name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field_name} must be a non-empty string")
    return quote(value, safe="")


def composite_inventory_id(location_id: str, variant_id: str) -> str:
    """Return the inventory record id for a (location, variant) pair.

    Pure and deterministic; distinct pairs never map to the same id.
    """

    return COMPOSITE_SEPARATOR.join(
        (
            _encode_part(location_id, field_name="location_id"),
            _encode_part(variant_id, field_name="variant_id"),
        )
    )


def split_composite_inventory_id(record_id: str) -> tuple[str, str]:
    """Invert ``composite_inventory_id`` into ``(location_id, variant_id)``."""

    parts = record_id.split(COMPOSITE_SEPARATOR) if isinstance(record_id, str) else []
    if len(parts) != 2 or not all(parts):  # noqa: PLR2004
        raise ValidationError(f"not a composite inventory id: {record_id!r}")
    return unquote(parts[0]), unquote(parts[1])


def inventory_ref(location_id: str, variant_id: str) -> DocumentRef:
    return DocumentRef(
        collection=COLLECTION_INVENTORY, id=composite_inventory_id(location_id, variant_id)
    )
