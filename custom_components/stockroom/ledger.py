"""Inventory ledger for Stockroom.

Every stock adjustment produces two writes: the current-quantity snapshot
record for the (location, variant) pair is fully replaced, and an immutable
movement record is appended. Both writes happen inside one document batch,
so they land in the same blob save.

The movement log is the audit trail. ``async_verify`` replays it and reports
snapshot records that disagree; ``async_repair`` rewrites them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Final

from .const import (
    COLLECTION_INVENTORY,
    COLLECTION_ITEMS,
    COLLECTION_LOCATIONS,
    COLLECTION_MOVEMENTS,
    COLLECTION_UOM_CONVERSIONS,
    COLLECTION_USERS,
    DEFAULT_REORDER_LEVEL,
    DOMAIN,
    MOVEMENT_TYPE_ADJUSTMENT,
    MOVEMENT_TYPES,
)
from .documents import DocumentBatch, DocumentStore
from .exceptions import InsufficientStockError, ValidationError
from .models import (
    InventoryRecord,
    Item,
    MovementRecord,
    UomConversion,
    is_low_stock,
    iso_utc_now,
    reorder_level_for,
)
from .references import composite_inventory_id

LOGGER = logging.getLogger(__name__)

DISCREPANCY_MISMATCH: Final[str] = "mismatch"
DISCREPANCY_MISSING_SNAPSHOT: Final[str] = "missing_snapshot"
DISCREPANCY_ORPHAN_SNAPSHOT: Final[str] = "orphan_snapshot"

# Tolerance when deciding whether a converted quantity is a whole number
_INTEGRAL_TOLERANCE: Final[float] = 1e-9


@dataclass(frozen=True)
class LedgerDiscrepancy:
    """A snapshot record whose quantity disagrees with the movement log."""

    record_id: str
    location_id: str
    item_id: str
    variant_id: str
    snapshot_quantity: int | None
    replayed_quantity: int
    kind: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "location_id": self.location_id,
            "item_id": self.item_id,
            "variant_id": self.variant_id,
            "snapshot_quantity": self.snapshot_quantity,
            "replayed_quantity": self.replayed_quantity,
            "kind": self.kind,
        }


@dataclass(frozen=True)
class LowStockRow:
    record: InventoryRecord
    reorder_level: int


def convert_to_base_quantity(
    quantity: int | float,
    *,
    uom_id: str | None,
    base_uom_id: str | None,
    conversions: list[UomConversion],
) -> int:
    """Convert ``quantity`` expressed in ``uom_id`` into base units.

    A conversion may be declared in either direction. The result must be a
    whole number of base units.
    """

    if isinstance(quantity, bool) or not isinstance(quantity, int | float):
        raise ValidationError("quantity must be a number")
    if not uom_id or not base_uom_id or uom_id == base_uom_id:
        converted = float(quantity)
    else:
        converted = None
        for conv in conversions:
            if conv.multiplier <= 0:
                continue
            if conv.from_uom == uom_id and conv.to_uom == base_uom_id:
                converted = quantity * conv.multiplier
                break
            if conv.from_uom == base_uom_id and conv.to_uom == uom_id:
                converted = quantity / conv.multiplier
                break
        if converted is None:
            raise ValidationError(f"no conversion from {uom_id} to base unit {base_uom_id}")

    rounded = round(converted)
    if abs(converted - rounded) > _INTEGRAL_TOLERANCE:
        raise ValidationError(f"{quantity} {uom_id} is not a whole number of base units")
    return int(rounded)


def _validate_delta(quantity_delta: Any) -> int:
    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int):
        raise ValidationError("quantity_delta must be an integer")
    if quantity_delta == 0:
        raise ValidationError("quantity_delta must be nonzero")
    return quantity_delta


class InventoryLedger:
    """Stock adjustments and their audit trail on top of a DocumentStore.

    Foreign keys (location, item, variant) are not validated here; unknown
    references are simply treated as absent records.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        allow_negative_stock: bool = True,
        clock: Callable[[], str] = iso_utc_now,
    ) -> None:
        self._store = store
        self._allow_negative_stock = allow_negative_stock
        self._clock = clock

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def allow_negative_stock(self) -> bool:
        return self._allow_negative_stock

    # -----------------------------
    # Adjustments
    # -----------------------------

    def _apply_adjustment(
        self,
        batch: DocumentBatch,
        *,
        location_id: str,
        item_id: str,
        variant_id: str,
        quantity_delta: int,
        reference: str | None,
        acting_user_id: str | None,
        movement_type: str,
    ) -> tuple[int, str]:
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"movement_type must be one of: {', '.join(MOVEMENT_TYPES)}")
        record_id = composite_inventory_id(location_id, variant_id)

        current = batch.get(COLLECTION_INVENTORY, record_id)
        prior = InventoryRecord.from_document(record_id, current).quantity if current else 0
        new_quantity = prior + quantity_delta
        if new_quantity < 0 and not self._allow_negative_stock:
            raise InsufficientStockError(
                f"adjustment of {quantity_delta} would leave {new_quantity} at {record_id}"
            )

        snapshot = InventoryRecord(
            id=record_id,
            location_id=location_id,
            item_id=item_id,
            variant_id=variant_id,
            quantity=new_quantity,
        )
        batch.set(COLLECTION_INVENTORY, record_id, snapshot.to_document())

        movement = MovementRecord(
            id="",
            item_id=item_id,
            variant_id=variant_id,
            location_id=location_id,
            quantity_change=quantity_delta,
            new_quantity=new_quantity,
            reference=reference,
            timestamp=self._clock(),
            user_id=acting_user_id,
            type=movement_type,
        )
        movement_id = batch.create(COLLECTION_MOVEMENTS, movement.to_document())
        return new_quantity, movement_id

    async def async_adjust_stock(
        self,
        location_id: str,
        item_id: str,
        variant_id: str,
        quantity_delta: int,
        reference: str | None,
        acting_user_id: str | None,
        *,
        movement_type: str = MOVEMENT_TYPE_ADJUSTMENT,
    ) -> int:
        """Apply a base-unit delta and return the new quantity.

        The snapshot replace and the movement append are persisted together.
        Identical repeated calls are independent stock events.
        """

        delta = _validate_delta(quantity_delta)
        async with self._store.async_batch() as batch:
            new_quantity, movement_id = self._apply_adjustment(
                batch,
                location_id=location_id,
                item_id=item_id,
                variant_id=variant_id,
                quantity_delta=delta,
                reference=reference,
                acting_user_id=acting_user_id,
                movement_type=movement_type,
            )
        LOGGER.debug(
            "Stock adjusted",
            extra={
                "domain": DOMAIN,
                "op": "adjust_stock",
                "location_id": location_id,
                "item_id": item_id,
                "variant_id": variant_id,
                "quantity_delta": delta,
                "new_quantity": new_quantity,
                "movement_id": movement_id,
            },
        )
        return new_quantity

    async def async_adjust_stock_in_uom(
        self,
        location_id: str,
        item_id: str,
        variant_id: str,
        quantity: int | float,
        uom_id: str | None,
        reference: str | None,
        acting_user_id: str | None,
        *,
        movement_type: str = MOVEMENT_TYPE_ADJUSTMENT,
    ) -> int:
        """Convert ``quantity`` from ``uom_id`` into the item's base unit, then adjust.

        When the item or its base unit is unknown the quantity is taken as
        already being in base units.
        """

        async with self._store.async_batch() as batch:
            item_body = batch.get(COLLECTION_ITEMS, item_id) if item_id else None
            base_uom = Item.from_document(item_id, item_body).base_uom if item_body else None
            conversions = [
                UomConversion.from_document(doc_id, body)
                for doc_id, body in batch.list(COLLECTION_UOM_CONVERSIONS)
            ]
            delta = _validate_delta(
                convert_to_base_quantity(
                    quantity, uom_id=uom_id, base_uom_id=base_uom, conversions=conversions
                )
            )
            new_quantity, movement_id = self._apply_adjustment(
                batch,
                location_id=location_id,
                item_id=item_id,
                variant_id=variant_id,
                quantity_delta=delta,
                reference=reference,
                acting_user_id=acting_user_id,
                movement_type=movement_type,
            )
        LOGGER.debug(
            "Stock adjusted from unit of measure",
            extra={
                "domain": DOMAIN,
                "op": "adjust_stock_in_uom",
                "location_id": location_id,
                "variant_id": variant_id,
                "quantity": quantity,
                "uom_id": uom_id,
                "quantity_delta": delta,
                "new_quantity": new_quantity,
                "movement_id": movement_id,
            },
        )
        return new_quantity

    # -----------------------------
    # Queries
    # -----------------------------

    async def async_get_quantity(self, location_id: str, variant_id: str) -> int:
        record_id = composite_inventory_id(location_id, variant_id)
        body = await self._store.async_get(COLLECTION_INVENTORY, record_id)
        if body is None:
            return 0
        return InventoryRecord.from_document(record_id, body).quantity

    async def async_list_inventory(self, location_id: str | None = None) -> list[InventoryRecord]:
        records = [
            InventoryRecord.from_document(doc_id, body)
            for doc_id, body in await self._store.async_list(COLLECTION_INVENTORY)
        ]
        if location_id is not None:
            records = [r for r in records if r.location_id == location_id]
        return records

    async def async_list_movements(
        self, *, location_id: str | None = None, variant_id: str | None = None
    ) -> list[MovementRecord]:
        """Return movements in append order, optionally filtered."""

        movements = [
            MovementRecord.from_document(doc_id, body)
            for doc_id, body in await self._store.async_list(COLLECTION_MOVEMENTS)
        ]
        if location_id is not None:
            movements = [m for m in movements if m.location_id == location_id]
        if variant_id is not None:
            movements = [m for m in movements if m.variant_id == variant_id]
        return movements

    async def async_low_stock(
        self, default_reorder_level: int = DEFAULT_REORDER_LEVEL
    ) -> list[LowStockRow]:
        async with self._store.async_batch() as batch:
            return self._low_stock_rows(batch, default_reorder_level)

    def _low_stock_rows(
        self, batch: DocumentBatch, default_reorder_level: int
    ) -> list[LowStockRow]:
        items = {
            doc_id: Item.from_document(doc_id, body)
            for doc_id, body in batch.list(COLLECTION_ITEMS)
        }
        rows: list[LowStockRow] = []
        for doc_id, body in batch.list(COLLECTION_INVENTORY):
            record = InventoryRecord.from_document(doc_id, body)
            item = items.get(record.item_id)
            variant = item.get_variant(record.variant_id) if item else None
            if is_low_stock(record.quantity, variant, default_reorder_level):
                rows.append(
                    LowStockRow(
                        record=record,
                        reorder_level=reorder_level_for(variant, default_reorder_level),
                    )
                )
        return rows

    async def async_get_counts(self) -> dict[str, int]:
        async with self._store.async_batch() as batch:
            return {
                "items_total": len(batch.list(COLLECTION_ITEMS)),
                "locations_total": len(batch.list(COLLECTION_LOCATIONS)),
                "users_total": len(batch.list(COLLECTION_USERS)),
                "inventory_records_total": len(batch.list(COLLECTION_INVENTORY)),
                "movements_total": len(batch.list(COLLECTION_MOVEMENTS)),
                "low_stock_count": len(self._low_stock_rows(batch, DEFAULT_REORDER_LEVEL)),
            }

    # -----------------------------
    # Verification and repair
    # -----------------------------

    def _find_discrepancies(self, batch: DocumentBatch) -> list[LedgerDiscrepancy]:
        replayed: dict[str, int] = {}
        last_movement: dict[str, MovementRecord] = {}
        for doc_id, body in batch.list(COLLECTION_MOVEMENTS):
            movement = MovementRecord.from_document(doc_id, body)
            try:
                key = composite_inventory_id(movement.location_id, movement.variant_id)
            except ValidationError:
                LOGGER.warning(
                    "Skipping movement without location or variant",
                    extra={"domain": DOMAIN, "op": "ledger_verify", "movement_id": doc_id},
                )
                continue
            replayed[key] = replayed.get(key, 0) + movement.quantity_change
            last_movement[key] = movement

        snapshots = {
            doc_id: InventoryRecord.from_document(doc_id, body)
            for doc_id, body in batch.list(COLLECTION_INVENTORY)
        }

        found: list[LedgerDiscrepancy] = []
        for record_id in sorted(set(replayed) | set(snapshots)):
            record = snapshots.get(record_id)
            expected = replayed.get(record_id, 0)
            if record is None:
                movement = last_movement[record_id]
                found.append(
                    LedgerDiscrepancy(
                        record_id=record_id,
                        location_id=movement.location_id,
                        item_id=movement.item_id,
                        variant_id=movement.variant_id,
                        snapshot_quantity=None,
                        replayed_quantity=expected,
                        kind=DISCREPANCY_MISSING_SNAPSHOT,
                    )
                )
            elif record.quantity != expected:
                found.append(
                    LedgerDiscrepancy(
                        record_id=record_id,
                        location_id=record.location_id,
                        item_id=record.item_id,
                        variant_id=record.variant_id,
                        snapshot_quantity=record.quantity,
                        replayed_quantity=expected,
                        kind=(
                            DISCREPANCY_MISMATCH
                            if record_id in replayed
                            else DISCREPANCY_ORPHAN_SNAPSHOT
                        ),
                    )
                )
        return found

    async def async_verify(self) -> list[LedgerDiscrepancy]:
        """Replay the movement log and report disagreeing snapshot records."""

        async with self._store.async_batch() as batch:
            found = self._find_discrepancies(batch)
        for entry in found:
            LOGGER.warning(
                "Ledger discrepancy: %s snapshot=%s replayed=%s",
                entry.record_id,
                entry.snapshot_quantity,
                entry.replayed_quantity,
                extra={"domain": DOMAIN, "op": "ledger_verify", "kind": entry.kind},
            )
        return found

    async def async_repair(self) -> list[LedgerDiscrepancy]:
        """Rewrite every discrepant snapshot to its replayed quantity.

        All fixes are persisted in one write. Returns what was repaired.
        """

        async with self._store.async_batch() as batch:
            found = self._find_discrepancies(batch)
            for entry in found:
                batch.set(
                    COLLECTION_INVENTORY,
                    entry.record_id,
                    InventoryRecord(
                        id=entry.record_id,
                        location_id=entry.location_id,
                        item_id=entry.item_id,
                        variant_id=entry.variant_id,
                        quantity=entry.replayed_quantity,
                    ).to_document(),
                )
        if found:
            LOGGER.warning(
                "Repaired %s ledger snapshot record(s)",
                len(found),
                extra={"domain": DOMAIN, "op": "ledger_repair", "repaired": len(found)},
            )
        return found
