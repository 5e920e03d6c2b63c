"""Blob storage for the Stockroom database snapshot.

Wraps Home Assistant's Store so the whole database lives in one JSON value
under one storage key.

Data shape persisted:
    {
        "<collection>": {"<doc_id>": {...fields}, ...},
        ...
    }

The first load of an empty store returns a fixed seed snapshot. Every save
rewrites the whole snapshot; there are no partial writes.
"""

from __future__ import annotations

import json
import logging
import time
from copy import deepcopy
from typing import Any, Protocol

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from .const import DOMAIN, RECOGNIZED_COLLECTIONS, STORAGE_KEY, STORAGE_VERSION
from .exceptions import StorageError

_LOGGER = logging.getLogger(__name__)

Snapshot = dict[str, dict[str, dict[str, Any]]]


class BlobBackend(Protocol):
    """Minimal key-value slot contract; satisfied by Home Assistant's Store."""

    async def async_load(self) -> Any: ...

    async def async_save(self, data: Any) -> None: ...


def seed_snapshot() -> Snapshot:
    """Create the first-run database.

    Returns a fresh dict each time to avoid shared mutation across callers.
    Holds no wall-clock values, so repeated calls are equal.
    """

    snapshot: Snapshot = {name: {} for name in RECOGNIZED_COLLECTIONS}
    snapshot["users"] = {
        "mock-admin-123": {
            "full_name": "System Admin",
            "email": "admin@example.com",
            "role": "admin",
            "status": "active",
        }
    }
    snapshot["locations"] = {
        "loc-1": {
            "name": "Main Warehouse",
            "address": "123 Logistics Way",
            "type": "Warehouse",
            "status": "active",
        },
        "loc-2": {
            "name": "Downtown Office",
            "address": "456 Business Ave",
            "type": "Office",
            "status": "active",
        },
    }
    snapshot["uoms"] = {
        "uom-1": {"name": "Piece", "abbreviation": "pc"},
        "uom-2": {"name": "Box", "abbreviation": "bx"},
    }
    snapshot["categories"] = {
        "cat-1": {"name": "Electronics", "subcategories": ["Laptops", "Phones"], "sort_order": 1}
    }
    return snapshot


def _check_shape(raw: Any) -> None:
    if not isinstance(raw, dict):
        raise StorageError(f"corrupted storage payload: expected dict, got {type(raw).__name__}")
    for name, collection in raw.items():
        if not isinstance(name, str) or not isinstance(collection, dict):
            raise StorageError(f"corrupted storage payload: collection {name!r} is not a mapping")
        for doc_id, body in collection.items():
            if not isinstance(doc_id, str) or not isinstance(body, dict):
                raise StorageError(
                    f"corrupted storage payload: document {name}/{doc_id!r} is not a mapping"
                )


class StockroomStore(Store):
    """Home Assistant Store whose write faults reach the caller.

    ``Store`` logs write and serialization errors and returns normally;
    ``async_save`` here raises them instead.
    """

    def __init__(self, hass: HomeAssistant, version: int, key: str) -> None:
        super().__init__(hass, version, key)
        self._write_error: Exception | None = None

    async def _async_write_data(self, *args: Any) -> None:
        try:
            await super()._async_write_data(*args)
        except Exception as err:
            self._write_error = err
            raise

    async def async_save(self, data: Any) -> None:
        self._write_error = None
        await super().async_save(data)
        if self._write_error is not None:
            err, self._write_error = self._write_error, None
            raise err


class BlobStore:
    """Load/save the whole database snapshot from one durable slot.

    The default backend is ``StockroomStore``, a Home Assistant ``Store``;
    any object with ``async_load``/``async_save`` may be injected instead.
    """

    def __init__(
        self,
        hass: HomeAssistant | None,
        *,
        key: str = STORAGE_KEY,
        version: int = STORAGE_VERSION,
        backend: BlobBackend | None = None,
    ) -> None:
        self._key = key
        self._backend: BlobBackend = (
            backend if backend is not None else StockroomStore(hass, version, key)
        )

    @property
    def key(self) -> str:
        return self._key

    async def async_load(self) -> Snapshot:
        """Return a copy of the persisted snapshot, or the seed on first run.

        Recognized collections missing from an older payload are added empty.
        """

        try:
            raw = await self._backend.async_load()
        except Exception as exc:
            _LOGGER.error(
                "Failed to read storage",
                extra={"domain": DOMAIN, "op": "blob_load", "storage_key": self._key},
                exc_info=True,
            )
            raise StorageError("failed to read storage") from exc

        if raw is None:
            return seed_snapshot()

        try:
            _check_shape(raw)
        except StorageError:
            _LOGGER.error(
                "Corrupted storage payload",
                extra={"domain": DOMAIN, "op": "blob_load", "storage_key": self._key},
            )
            raise

        data: Snapshot = deepcopy(raw)
        for name in RECOGNIZED_COLLECTIONS:
            data.setdefault(name, {})
        return data

    async def async_save(self, snapshot: Snapshot) -> None:
        """Persist the whole snapshot, replacing the previous value.

        Shape and JSON-compatibility are checked before the backend is
        touched so a bad snapshot never replaces a good one.
        """

        _check_shape(snapshot)
        try:
            json.dumps(snapshot, allow_nan=False)
        except (TypeError, ValueError) as exc:
            _LOGGER.error(
                "Snapshot is not JSON-serializable",
                extra={"domain": DOMAIN, "op": "blob_save", "storage_key": self._key},
                exc_info=True,
            )
            raise StorageError("snapshot is not JSON-serializable") from exc

        payload = deepcopy(snapshot)
        start_time = time.monotonic()
        try:
            await self._backend.async_save(payload)
        except Exception as exc:
            _LOGGER.error(
                "Failed to persist snapshot",
                extra={"domain": DOMAIN, "op": "blob_save", "storage_key": self._key},
                exc_info=True,
            )
            raise StorageError("failed to persist snapshot") from exc
        _LOGGER.debug(
            "Snapshot persisted",
            extra={
                "domain": DOMAIN,
                "op": "blob_save",
                "storage_key": self._key,
                "collections": len(payload),
                "elapsed_ms": int((time.monotonic() - start_time) * 1000),
            },
        )
