"""Shared fixtures for offline tests.

The persistent slot is replaced by an in-memory backend injected into
``BlobStore``; Home Assistant objects are ``MagicMock`` instances carrying a
plain ``data`` dict.
"""

from __future__ import annotations

from copy import deepcopy
from itertools import count
from typing import Any
from unittest.mock import MagicMock

import pytest
from custom_components.stockroom.const import DOMAIN
from custom_components.stockroom.documents import DocumentStore
from custom_components.stockroom.ledger import InventoryLedger
from custom_components.stockroom.storage import BlobStore

FIXED_TIMESTAMP = "2024-05-01T12:00:00Z"


class MemoryBackend:
    """In-memory stand-in for Home Assistant's Store.

    Keeps a deep copy of the last saved value and counts saves. Set
    ``fail_load``/``fail_save`` to simulate I/O faults.
    """

    def __init__(self, data: Any = None) -> None:
        self.data = deepcopy(data)
        self.saves = 0
        self.fail_load = False
        self.fail_save = False

    async def async_load(self) -> Any:
        if self.fail_load:
            raise OSError("slot unavailable")
        return deepcopy(self.data)

    async def async_save(self, data: Any) -> None:
        if self.fail_save:
            raise OSError("disk full")
        self.saves += 1
        self.data = deepcopy(data)


def sequential_ids(prefix: str = "doc"):
    """Deterministic id factory: doc-1, doc-2, ..."""

    counter = count(1)
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def blob_store(backend: MemoryBackend) -> BlobStore:
    return BlobStore(None, key="test_stockroom_db", backend=backend)


@pytest.fixture
def documents(blob_store: BlobStore) -> DocumentStore:
    return DocumentStore(blob_store, id_factory=sequential_ids())


@pytest.fixture
def ledger(documents: DocumentStore) -> InventoryLedger:
    return InventoryLedger(documents, clock=lambda: FIXED_TIMESTAMP)


@pytest.fixture
def hass() -> MagicMock:
    mock = MagicMock()
    mock.data = {}
    return mock


@pytest.fixture
def ready_hass(
    hass: MagicMock, blob_store: BlobStore, documents: DocumentStore, ledger: InventoryLedger
) -> MagicMock:
    """A hass mock whose domain bucket holds the objects created at setup."""

    hass.data[DOMAIN] = {"blob_store": blob_store, "documents": documents, "ledger": ledger}
    return hass


@pytest.fixture
def make_backend():
    """Factory for backends pre-loaded with a raw payload."""

    return MemoryBackend
