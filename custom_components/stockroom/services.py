"""Service registration and handlers for Stockroom.

Exposes Home Assistant services under the ``stockroom`` domain for generic
document CRUD, stock adjustments and ledger maintenance. Input is validated
with voluptuous and operations are delegated to the ``DocumentStore`` and
``InventoryLedger`` created at setup.

Failures are logged with contextual fields and re-raised so the caller of
the service sees them.
"""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol
from homeassistant.core import HomeAssistant, ServiceCall, ServiceResponse, SupportsResponse

from .const import DOMAIN, MOVEMENT_TYPE_ADJUSTMENT, MOVEMENT_TYPES
from .documents import DocumentStore
from .exceptions import StockroomError, StorageError, ValidationError
from .ledger import InventoryLedger

LOGGER = logging.getLogger(__name__)


# -----------------------------
# Validation schemas
# -----------------------------

_NON_EMPTY_STR = vol.All(str, vol.Length(min=1))

SCHEMA_DOCUMENT_CREATE = vol.Schema(
    {vol.Required("collection"): _NON_EMPTY_STR, vol.Required("data"): dict}
)

SCHEMA_DOCUMENT_SET = vol.Schema(
    {
        vol.Required("collection"): _NON_EMPTY_STR,
        vol.Required("doc_id"): _NON_EMPTY_STR,
        vol.Required("data"): dict,
    }
)

SCHEMA_DOCUMENT_MERGE = SCHEMA_DOCUMENT_SET

SCHEMA_DOCUMENT_DELETE = vol.Schema(
    {vol.Required("collection"): _NON_EMPTY_STR, vol.Required("doc_id"): _NON_EMPTY_STR}
)

SCHEMA_ADJUST_STOCK = vol.Schema(
    {
        vol.Required("location_id"): _NON_EMPTY_STR,
        vol.Required("item_id"): _NON_EMPTY_STR,
        vol.Required("variant_id"): _NON_EMPTY_STR,
        vol.Required("quantity_delta"): vol.Any(int, float),
        vol.Optional("uom_id"): vol.Any(str, None),
        vol.Optional("reference"): vol.Any(str, None),
        vol.Optional("user_id"): vol.Any(str, None),
        vol.Optional("movement_type", default=MOVEMENT_TYPE_ADJUSTMENT): vol.In(MOVEMENT_TYPES),
    }
)

SCHEMA_LEDGER = vol.Schema({})


# -----------------------------
# Internal helpers
# -----------------------------


def _get_bucket(hass: HomeAssistant) -> dict[str, Any]:
    bucket = hass.data.get(DOMAIN) or {}
    if "documents" not in bucket or "ledger" not in bucket:
        raise StockroomError("Stockroom is not set up")
    return bucket


def _get_documents(hass: HomeAssistant) -> DocumentStore:
    return _get_bucket(hass)["documents"]


def _get_ledger(hass: HomeAssistant) -> InventoryLedger:
    return _get_bucket(hass)["ledger"]


def _validate(schema: vol.Schema, data: dict) -> dict[str, Any]:
    try:
        return schema(data)
    except vol.Invalid as exc:
        raise ValidationError(str(exc)) from exc


def _log_failure(op: str, context: dict[str, Any], exc: Exception) -> None:
    if isinstance(exc, StorageError):
        LOGGER.error(str(exc), exc_info=True, extra={"domain": DOMAIN, "op": op, **context})
    else:
        LOGGER.warning(str(exc), extra={"domain": DOMAIN, "op": op, **context})


# -----------------------------
# Service handlers (exported for tests)
# -----------------------------


async def service_document_create(hass: HomeAssistant, data: dict) -> dict[str, Any]:
    op = "document_create"
    try:
        payload = _validate(SCHEMA_DOCUMENT_CREATE, data)
        doc_id = await _get_documents(hass).async_create(payload["collection"], payload["data"])
    except StockroomError as exc:
        _log_failure(op, {"collection": data.get("collection")}, exc)
        raise
    return {"collection": payload["collection"], "doc_id": doc_id}


async def service_document_set(hass: HomeAssistant, data: dict) -> None:
    op = "document_set"
    try:
        payload = _validate(SCHEMA_DOCUMENT_SET, data)
        await _get_documents(hass).async_set(
            payload["collection"], payload["doc_id"], payload["data"]
        )
    except StockroomError as exc:
        _log_failure(op, {"collection": data.get("collection"), "doc_id": data.get("doc_id")}, exc)
        raise


async def service_document_merge(hass: HomeAssistant, data: dict) -> dict[str, Any]:
    op = "document_merge"
    try:
        payload = _validate(SCHEMA_DOCUMENT_MERGE, data)
        merged = await _get_documents(hass).async_merge(
            payload["collection"], payload["doc_id"], payload["data"]
        )
    except StockroomError as exc:
        _log_failure(op, {"collection": data.get("collection"), "doc_id": data.get("doc_id")}, exc)
        raise
    return {"collection": payload["collection"], "doc_id": payload["doc_id"], "data": merged}


async def service_document_delete(hass: HomeAssistant, data: dict) -> dict[str, Any]:
    op = "document_delete"
    try:
        payload = _validate(SCHEMA_DOCUMENT_DELETE, data)
        removed = await _get_documents(hass).async_delete(payload["collection"], payload["doc_id"])
    except StockroomError as exc:
        _log_failure(op, {"collection": data.get("collection"), "doc_id": data.get("doc_id")}, exc)
        raise
    return {"removed": removed}


async def service_adjust_stock(hass: HomeAssistant, data: dict) -> dict[str, Any]:
    op = "adjust_stock"
    context = {
        "location_id": data.get("location_id"),
        "variant_id": data.get("variant_id"),
        "quantity_delta": data.get("quantity_delta"),
    }
    try:
        payload = _validate(SCHEMA_ADJUST_STOCK, data)
        ledger = _get_ledger(hass)
        if payload.get("uom_id"):
            new_quantity = await ledger.async_adjust_stock_in_uom(
                payload["location_id"],
                payload["item_id"],
                payload["variant_id"],
                payload["quantity_delta"],
                payload["uom_id"],
                payload.get("reference"),
                payload.get("user_id"),
                movement_type=payload["movement_type"],
            )
        else:
            new_quantity = await ledger.async_adjust_stock(
                payload["location_id"],
                payload["item_id"],
                payload["variant_id"],
                payload["quantity_delta"],
                payload.get("reference"),
                payload.get("user_id"),
                movement_type=payload["movement_type"],
            )
    except StockroomError as exc:
        _log_failure(op, context, exc)
        raise
    return {"new_quantity": new_quantity}


async def service_verify_ledger(hass: HomeAssistant, data: dict) -> dict[str, Any]:
    op = "verify_ledger"
    try:
        _validate(SCHEMA_LEDGER, data)
        found = await _get_ledger(hass).async_verify()
    except StockroomError as exc:
        _log_failure(op, {}, exc)
        raise
    return {"discrepancies": [entry.as_dict() for entry in found]}


async def service_repair_ledger(hass: HomeAssistant, data: dict) -> dict[str, Any]:
    op = "repair_ledger"
    try:
        _validate(SCHEMA_LEDGER, data)
        repaired = await _get_ledger(hass).async_repair()
    except StockroomError as exc:
        _log_failure(op, {}, exc)
        raise
    return {"repaired": [entry.as_dict() for entry in repaired]}


# -----------------------------
# Registration
# -----------------------------

# name -> (handler, schema, supports_response)
_SERVICES = {
    "document_create": (service_document_create, SCHEMA_DOCUMENT_CREATE, SupportsResponse.OPTIONAL),
    "document_set": (service_document_set, SCHEMA_DOCUMENT_SET, SupportsResponse.NONE),
    "document_merge": (service_document_merge, SCHEMA_DOCUMENT_MERGE, SupportsResponse.OPTIONAL),
    "document_delete": (service_document_delete, SCHEMA_DOCUMENT_DELETE, SupportsResponse.OPTIONAL),
    "adjust_stock": (service_adjust_stock, SCHEMA_ADJUST_STOCK, SupportsResponse.OPTIONAL),
    "verify_ledger": (service_verify_ledger, SCHEMA_LEDGER, SupportsResponse.OPTIONAL),
    "repair_ledger": (service_repair_ledger, SCHEMA_LEDGER, SupportsResponse.OPTIONAL),
}


# Services whose movements record who made them
_ACTING_USER_SERVICES = {"adjust_stock"}


def _make_service_handler(hass: HomeAssistant, handler, *, with_user: bool = False):
    async def _handle(call: ServiceCall) -> ServiceResponse:
        data = dict(call.data)
        # Fall back to the user who issued the call
        if with_user and data.get("user_id") is None and call.context.user_id:
            data["user_id"] = call.context.user_id
        return await handler(hass, data)

    return _handle


def setup(hass: HomeAssistant) -> None:
    """Register stockroom.* services on Home Assistant."""

    # Idempotent: avoid duplicate registration across reloads
    bucket = hass.data.setdefault(DOMAIN, {})
    if bucket.get("services_registered"):
        return

    # Home Assistant validates inputs against these schemas before invoking
    # the handler. Handlers are exported above for testability.
    for name, (handler, schema, supports_response) in _SERVICES.items():
        hass.services.async_register(
            DOMAIN,
            name,
            _make_service_handler(hass, handler, with_user=name in _ACTING_USER_SERVICES),
            schema,
            supports_response=supports_response,
        )

    bucket["services_registered"] = True
