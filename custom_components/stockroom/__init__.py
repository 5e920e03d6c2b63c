"""Stockroom integration bootstrap.

This module initializes the integration, opens the persistent database blob,
checks the inventory ledger against its movement log, and exposes the core
objects in hass.data.
"""

from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryNotReady
from homeassistant.helpers import config_validation as cv

from . import services as services_mod
from . import ws as ws_mod
from .const import (
    CONF_ALLOW_NEGATIVE_STOCK,
    CONF_REPAIR_LEDGER_ON_STARTUP,
    DEFAULT_ALLOW_NEGATIVE_STOCK,
    DEFAULT_REPAIR_LEDGER_ON_STARTUP,
    DOMAIN,
    STORAGE_VERSION,
)
from .documents import DocumentStore
from .exceptions import StorageError
from .ledger import InventoryLedger
from .storage import BlobStore, Snapshot

LOGGER = logging.getLogger(__name__)


# This integration is config-entry only; no YAML configuration is accepted.
CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)


async def async_setup(hass: HomeAssistant, _config: dict) -> bool:
    """Set up the Stockroom domain at Home Assistant startup.

    Initializes an empty domain bucket in hass.data with no side effects.
    """
    if DOMAIN not in hass.data:
        hass.data[DOMAIN] = {}
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Stockroom from a config entry."""
    bucket = hass.data.setdefault(DOMAIN, {})

    options = entry.options or {}
    blob_store = BlobStore(hass)
    documents = DocumentStore(blob_store)
    ledger = InventoryLedger(
        documents,
        allow_negative_stock=bool(
            options.get(CONF_ALLOW_NEGATIVE_STOCK, DEFAULT_ALLOW_NEGATIVE_STOCK)
        ),
    )

    try:
        snapshot = await blob_store.async_load()
        _log_storage_health(snapshot)
        discrepancies = await ledger.async_verify()
        if discrepancies and options.get(
            CONF_REPAIR_LEDGER_ON_STARTUP, DEFAULT_REPAIR_LEDGER_ON_STARTUP
        ):
            await ledger.async_repair()
    except StorageError as exc:
        LOGGER.error(
            "Storage validation failed during setup",
            extra={"domain": DOMAIN, "op": "setup_storage", "storage_key": blob_store.key},
            exc_info=True,
        )
        raise ConfigEntryNotReady("storage validation failed") from exc

    bucket["blob_store"] = blob_store
    bucket["documents"] = documents
    bucket["ledger"] = ledger

    # Register services
    services_mod.setup(hass)

    # Register WebSocket commands
    ws_mod.setup(hass)

    entry.async_on_unload(entry.add_update_listener(_async_update_listener))

    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry.

    Clears idempotent registration flags and the objects created at setup.
    Every mutation is already persisted, so there is nothing to flush.
    """

    bucket = hass.data.get(DOMAIN) or {}

    bucket.pop("services_registered", None)
    bucket.pop("ws_registered", None)
    bucket.pop("ws_handlers", None)

    for key in ("ledger", "documents", "blob_store"):
        bucket.pop(key, None)

    return True


async def _async_update_listener(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Reload so option changes reach a freshly built ledger."""

    await hass.config_entries.async_reload(entry.entry_id)


def _log_storage_health(snapshot: Snapshot) -> None:
    """Log a storage health summary after load."""

    counts = {name: len(docs) for name, docs in snapshot.items()}
    item_count = counts.get("items", 0)
    location_count = counts.get("locations", 0)

    level = logging.WARNING if item_count == 0 and location_count == 0 else logging.DEBUG
    LOGGER.log(
        level,
        "Storage health: storage_version=%s items=%s locations=%s movements=%s",
        STORAGE_VERSION,
        item_count,
        location_count,
        counts.get("inventory_movements", 0),
        extra={
            "domain": DOMAIN,
            "op": "setup_storage_health",
            "storage_version": STORAGE_VERSION,
            "collection_counts": counts,
        },
    )
