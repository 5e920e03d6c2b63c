"""WebSocket command handlers for Stockroom.

Implements read commands for documents, display-ordered inventory and
catalog listings, movements and counters, plus stock adjustment and ledger
verification. Adheres to the envelope: input {id, type, ...payload}, output
result_message/error_message.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import voluptuous as vol
from homeassistant.components import websocket_api
from homeassistant.core import HomeAssistant

from .const import (
    COLLECTION_CATEGORIES,
    COLLECTION_ITEMS,
    COLLECTION_LOCATIONS,
    DEFAULT_REORDER_LEVEL,
    DOMAIN,
    INTEGRATION_VERSION,
    MOVEMENT_TYPE_ADJUSTMENT,
    MOVEMENT_TYPES,
    STORAGE_VERSION,
)
from .documents import DocumentStore
from .exceptions import NotFoundError, StorageError, ValidationError
from .ledger import InventoryLedger
from .models import Category, InventoryRecord, Item, MovementRecord, is_low_stock, reorder_level_for
from .ordering import DisplayContext, sort_categories, sort_for_display

LOGGER = logging.getLogger(__name__)


def _bucket_get(hass: HomeAssistant, key: str) -> Any:
    bucket = hass.data.get(DOMAIN) or {}
    value = bucket.get(key)
    if value is None:
        raise StorageError(f"{key} not initialized; run integration setup")
    return value


def _documents(hass: HomeAssistant) -> DocumentStore:
    return _bucket_get(hass, "documents")


def _ledger(hass: HomeAssistant) -> InventoryLedger:
    return _bucket_get(hass, "ledger")


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, StorageError):
        return "storage_error"
    return "unknown_error"


def _error_message(_id: int, exc: Exception, *, context: dict[str, Any]):
    level = logging.ERROR if isinstance(exc, StorageError) else logging.WARNING
    LOGGER.log(
        level,
        str(exc),
        extra={"domain": DOMAIN, **context},
        exc_info=isinstance(exc, StorageError),
    )
    return websocket_api.error_message(_id, _error_code(exc), str(exc))


# -----------------------------
# Unified exception handling for WS handlers
# -----------------------------

_WSHandler = Callable[[HomeAssistant, Any, dict], Awaitable[Any]]


def _context_from_msg(op: str, msg: dict, fields: tuple[str, ...]) -> dict[str, Any]:
    payload: dict[str, Any] = {"op": op}
    for field_name in fields:
        if field_name in msg:
            payload[field_name] = msg.get(field_name)
    return payload


def ws_guard(
    op: str, context_fields: tuple[str, ...] = ()
) -> Callable[[_WSHandler], _WSHandler]:
    """Decorator to map known domain exceptions to unified WS errors.

    Builds a structured context from selected fields in the incoming message and
    sends a Home Assistant websocket error envelope with {code, message}.
    """

    def decorator(func: _WSHandler) -> _WSHandler:
        async def wrapper(hass: HomeAssistant, conn, msg):
            try:
                return await func(hass, conn, msg)
            except (ValidationError, NotFoundError, StorageError) as exc:
                ctx = _context_from_msg(op, msg, context_fields)
                conn.send_message(_error_message(msg.get("id", 0), exc, context=ctx))
                return None

        return wrapper

    return decorator


# -----------------------------
# Serialization helpers
# -----------------------------


def _serialize_inventory_row(
    record: InventoryRecord, context: DisplayContext, default_reorder_level: int
) -> dict[str, Any]:
    location = context.location_for(record.location_id)
    item = context.item_for(record.item_id)
    variant = item.get_variant(record.variant_id) if item else None
    return {
        "id": record.id,
        "location_id": record.location_id,
        "location_name": location.name if location else None,
        "item_id": record.item_id,
        "item_name": item.name if item else None,
        "variant_id": record.variant_id,
        "sku": variant.sku if variant else None,
        "quantity": record.quantity,
        "reorder_level": reorder_level_for(variant, default_reorder_level),
        "low_stock": is_low_stock(record.quantity, variant, default_reorder_level),
    }


def _serialize_catalog_row(item: Item, context: DisplayContext) -> dict[str, Any]:
    category = context.category_for(item)
    return {
        "id": item.id,
        "name": item.name,
        "category_id": category.id if category else None,
        "category_name": category.name if category else item.category,
        "subcategory": item.subcategory,
        "base_uom": item.base_uom,
        "status": item.status,
        "variant_ids": [v.variant_id for v in item.variants],
    }


def _serialize_category(category: Category) -> dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "subcategories": list(category.subcategories),
        "sort_order": category.sort_order,
    }


def _serialize_movement(movement: MovementRecord) -> dict[str, Any]:
    return {"id": movement.id, **movement.to_document()}


async def _display_context(store: DocumentStore) -> DisplayContext:
    return DisplayContext.from_documents(
        locations=await store.async_list(COLLECTION_LOCATIONS),
        categories=await store.async_list(COLLECTION_CATEGORIES),
        items=await store.async_list(COLLECTION_ITEMS),
    )


# -----------------------------
# Utility commands
# -----------------------------


@websocket_api.websocket_command({"type": "stockroom/version"})
@websocket_api.async_response
async def ws_version(hass: HomeAssistant, conn, msg):
    result = {"integration_version": INTEGRATION_VERSION, "storage_version": STORAGE_VERSION}
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


@websocket_api.websocket_command({"type": "stockroom/stats"})
@websocket_api.async_response
@ws_guard("stats")
async def ws_stats(hass: HomeAssistant, conn, msg):
    counts = await _ledger(hass).async_get_counts()
    conn.send_message(websocket_api.result_message(msg.get("id", 0), counts))


# -----------------------------
# Documents
# -----------------------------


@websocket_api.websocket_command(
    {vol.Required("type"): "stockroom/document/list", vol.Required("collection"): str}
)
@websocket_api.async_response
@ws_guard("document_list", ("collection",))
async def ws_document_list(hass: HomeAssistant, conn, msg):
    docs = await _documents(hass).async_list(msg.get("collection"))
    result = [{"id": doc_id, "data": body} for doc_id, body in docs]
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


@websocket_api.websocket_command(
    {
        vol.Required("type"): "stockroom/document/get",
        vol.Required("collection"): str,
        vol.Required("doc_id"): str,
    }
)
@websocket_api.async_response
@ws_guard("document_get", ("collection", "doc_id"))
async def ws_document_get(hass: HomeAssistant, conn, msg):
    collection = msg.get("collection")
    doc_id = msg.get("doc_id")
    body = await _documents(hass).async_get(collection, doc_id)
    if body is None:
        raise NotFoundError(f"document not found: {collection}/{doc_id}")
    result = {"id": doc_id, "data": body}
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


# -----------------------------
# Inventory and catalog
# -----------------------------


@websocket_api.websocket_command(
    {
        vol.Required("type"): "stockroom/inventory/list",
        vol.Optional("location_id"): vol.Any(str, None),
        vol.Optional("low_stock_only", default=False): bool,
        vol.Optional("default_reorder_level", default=DEFAULT_REORDER_LEVEL): vol.All(
            int, vol.Range(min=0)
        ),
    }
)
@websocket_api.async_response
@ws_guard("inventory_list", ("location_id",))
async def ws_inventory_list(hass: HomeAssistant, conn, msg):
    store = _documents(hass)
    default_level = msg.get("default_reorder_level", DEFAULT_REORDER_LEVEL)
    records = await _ledger(hass).async_list_inventory(msg.get("location_id"))
    context = await _display_context(store)
    rows = [
        _serialize_inventory_row(record, context, default_level)
        for record in sort_for_display(records, context)
    ]
    if msg.get("low_stock_only"):
        rows = [row for row in rows if row["low_stock"]]
    conn.send_message(websocket_api.result_message(msg.get("id", 0), rows))


@websocket_api.websocket_command({"type": "stockroom/catalog/list"})
@websocket_api.async_response
@ws_guard("catalog_list")
async def ws_catalog_list(hass: HomeAssistant, conn, msg):
    context = await _display_context(_documents(hass))
    items = sort_for_display(context.items_by_id.values(), context)
    result = [_serialize_catalog_row(item, context) for item in items]
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


@websocket_api.websocket_command({"type": "stockroom/categories/list"})
@websocket_api.async_response
@ws_guard("categories_list")
async def ws_categories_list(hass: HomeAssistant, conn, msg):
    categories = [
        Category.from_document(doc_id, body)
        for doc_id, body in await _documents(hass).async_list(COLLECTION_CATEGORIES)
    ]
    result = [_serialize_category(c) for c in sort_categories(categories)]
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


@websocket_api.websocket_command(
    {
        vol.Required("type"): "stockroom/movements/list",
        vol.Optional("location_id"): vol.Any(str, None),
        vol.Optional("variant_id"): vol.Any(str, None),
    }
)
@websocket_api.async_response
@ws_guard("movements_list", ("location_id", "variant_id"))
async def ws_movements_list(hass: HomeAssistant, conn, msg):
    movements = await _ledger(hass).async_list_movements(
        location_id=msg.get("location_id"), variant_id=msg.get("variant_id")
    )
    result = [_serialize_movement(m) for m in movements]
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


# -----------------------------
# Stock and ledger
# -----------------------------


@websocket_api.websocket_command(
    {
        vol.Required("type"): "stockroom/stock/adjust",
        vol.Required("location_id"): str,
        vol.Required("item_id"): str,
        vol.Required("variant_id"): str,
        vol.Required("quantity_delta"): vol.Any(int, float),
        vol.Optional("uom_id"): vol.Any(str, None),
        vol.Optional("reference"): vol.Any(str, None),
        vol.Optional("movement_type", default=MOVEMENT_TYPE_ADJUSTMENT): vol.In(MOVEMENT_TYPES),
    }
)
@websocket_api.async_response
@ws_guard("stock_adjust", ("location_id", "item_id", "variant_id", "quantity_delta"))
async def ws_stock_adjust(hass: HomeAssistant, conn, msg):
    ledger = _ledger(hass)
    user = getattr(conn, "user", None)
    user_id = getattr(user, "id", None)
    movement_type = msg.get("movement_type", MOVEMENT_TYPE_ADJUSTMENT)
    if msg.get("uom_id"):
        new_quantity = await ledger.async_adjust_stock_in_uom(
            msg.get("location_id"),
            msg.get("item_id"),
            msg.get("variant_id"),
            msg.get("quantity_delta"),
            msg.get("uom_id"),
            msg.get("reference"),
            user_id,
            movement_type=movement_type,
        )
    else:
        new_quantity = await ledger.async_adjust_stock(
            msg.get("location_id"),
            msg.get("item_id"),
            msg.get("variant_id"),
            msg.get("quantity_delta"),
            msg.get("reference"),
            user_id,
            movement_type=movement_type,
        )
    result = {"new_quantity": new_quantity}
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


@websocket_api.websocket_command({"type": "stockroom/ledger/verify"})
@websocket_api.async_response
@ws_guard("ledger_verify")
async def ws_ledger_verify(hass: HomeAssistant, conn, msg):
    found = await _ledger(hass).async_verify()
    result = {"discrepancies": [entry.as_dict() for entry in found]}
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


# -----------------------------
# Registration
# -----------------------------


def setup(hass: HomeAssistant) -> None:
    # Idempotent: avoid duplicate registration across reloads
    bucket = hass.data.setdefault(DOMAIN, {})
    if bucket.get("ws_registered"):
        return

    handlers = [
        ws_version,
        ws_stats,
        ws_document_list,
        ws_document_get,
        ws_inventory_list,
        ws_catalog_list,
        ws_categories_list,
        ws_movements_list,
        ws_stock_adjust,
        ws_ledger_verify,
    ]

    for h in handlers:
        websocket_api.async_register_command(hass, h)

    bucket["ws_handlers"] = handlers
    bucket["ws_registered"] = True
