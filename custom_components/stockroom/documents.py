"""Collection/document API over the Stockroom blob.

Each collection is a mapping from document id to body inside the single
snapshot owned by ``BlobStore``. Every operation reads the latest persisted
snapshot; every mutation validates the resulting body and rewrites the whole
snapshot.

Mutations run inside a ``DocumentBatch``: the snapshot is loaded once, the
batch applies any number of operations in memory, and the snapshot is saved
exactly once when the batch exits cleanly. If the batch body raises, nothing
is written. Batches are serialized by one ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from copy import deepcopy
from typing import Any

from .const import APPEND_ONLY_COLLECTIONS, DOMAIN
from .exceptions import ValidationError
from .models import new_document_id, validate_document
from .references import DocumentRef, doc_ref
from .storage import BlobStore, Snapshot

LOGGER = logging.getLogger(__name__)

Document = dict[str, Any]

# Bound on regenerating an id that already exists in a collection
ID_GENERATION_ATTEMPTS: int = 8


def _check_collection(collection: str) -> None:
    if not isinstance(collection, str) or not collection:
        raise ValidationError("collection must be a non-empty string")


def _check_doc_id(doc_id: str) -> None:
    if not isinstance(doc_id, str) or not doc_id:
        raise ValidationError("document id must be a non-empty string")


class DocumentBatch:
    """Synchronous document operations over one loaded snapshot.

    Obtain one through ``DocumentStore.async_batch``; do not keep it past the
    ``async with`` block.
    """

    def __init__(self, snapshot: Snapshot, *, id_factory: Callable[[], str]) -> None:
        self._snapshot = snapshot
        self._id_factory = id_factory
        self.dirty = False

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def _collection(self, collection: str) -> dict[str, Document]:
        # Unknown collections are treated as empty until first written
        _check_collection(collection)
        return self._snapshot.setdefault(collection, {})

    def _guard_append_only(self, collection: str, doc_id: str, op: str) -> None:
        if collection in APPEND_ONLY_COLLECTIONS and doc_id in self._snapshot.get(collection, {}):
            raise ValidationError(f"{collection} is append-only; cannot {op} {doc_id}")

    # Reads

    def list(self, collection: str) -> list[tuple[str, Document]]:
        _check_collection(collection)
        docs = self._snapshot.get(collection) or {}
        return [(doc_id, deepcopy(body)) for doc_id, body in docs.items()]

    def get(self, collection: str, doc_id: str) -> Document | None:
        _check_collection(collection)
        _check_doc_id(doc_id)
        body = (self._snapshot.get(collection) or {}).get(doc_id)
        return deepcopy(body) if body is not None else None

    def resolve(self, ref: DocumentRef) -> Document | None:
        return self.get(ref.collection, ref.id)

    # Writes

    def create(self, collection: str, body: Document) -> str:
        _check_collection(collection)
        validated = validate_document(collection, body)
        docs = self._collection(collection)
        for _ in range(ID_GENERATION_ATTEMPTS):
            doc_id = self._id_factory()
            if doc_id not in docs:
                break
        else:  # pragma: no cover - id factory keeps colliding
            raise ValidationError(f"could not allocate a unique id in {collection}")
        docs[doc_id] = deepcopy(validated)
        self.dirty = True
        return doc_id

    def set(self, collection: str, doc_id: str, body: Document) -> None:
        """Create or fully replace a document; no prior field survives."""

        _check_collection(collection)
        _check_doc_id(doc_id)
        validated = validate_document(collection, body)
        self._guard_append_only(collection, doc_id, "replace")
        self._collection(collection)[doc_id] = deepcopy(validated)
        self.dirty = True

    def merge(self, collection: str, doc_id: str, fields: Document) -> Document:
        """Create or shallow-merge ``fields`` on top of the existing body."""

        _check_collection(collection)
        _check_doc_id(doc_id)
        if not isinstance(fields, dict):
            raise ValidationError(f"{collection} document must be a mapping")
        self._guard_append_only(collection, doc_id, "merge")
        docs = self._collection(collection)
        merged = {**docs.get(doc_id, {}), **fields}
        validated = validate_document(collection, merged)
        docs[doc_id] = deepcopy(validated)
        self.dirty = True
        return deepcopy(validated)

    def delete(self, collection: str, doc_id: str) -> bool:
        """Remove a document; returns False when it did not exist."""

        _check_collection(collection)
        _check_doc_id(doc_id)
        docs = self._snapshot.get(collection)
        if not docs or doc_id not in docs:
            return False
        self._guard_append_only(collection, doc_id, "delete")
        del docs[doc_id]
        self.dirty = True
        return True


class DocumentStore:
    """Collection-oriented API over a ``BlobStore``.

    Reads always go to the blob, so results reflect the latest committed
    state rather than a cached view.
    """

    def __init__(
        self, blob_store: BlobStore, *, id_factory: Callable[[], str] = new_document_id
    ) -> None:
        self._blob = blob_store
        self._id_factory = id_factory
        self._lock = asyncio.Lock()

    @property
    def blob_store(self) -> BlobStore:
        return self._blob

    @asynccontextmanager
    async def async_batch(self) -> AsyncIterator[DocumentBatch]:
        """Run several operations against one snapshot and persist once."""

        async with self._lock:
            snapshot = await self._blob.async_load()
            batch = DocumentBatch(snapshot, id_factory=self._id_factory)
            yield batch
            if batch.dirty:
                await self._blob.async_save(batch.snapshot)

    # -----------------------------
    # Reads
    # -----------------------------

    async def async_list(self, collection: str) -> list[tuple[str, Document]]:
        _check_collection(collection)
        snapshot = await self._blob.async_load()
        return DocumentBatch(snapshot, id_factory=self._id_factory).list(collection)

    async def async_get(self, collection: str, doc_id: str) -> Document | None:
        """Return the body, or None when the document does not exist."""

        _check_collection(collection)
        _check_doc_id(doc_id)
        snapshot = await self._blob.async_load()
        return DocumentBatch(snapshot, id_factory=self._id_factory).get(collection, doc_id)

    async def async_resolve(self, ref: DocumentRef) -> Document | None:
        return await self.async_get(ref.collection, ref.id)

    def ref(self, collection: str, doc_id: str) -> DocumentRef:
        return doc_ref(collection, doc_id)

    # -----------------------------
    # Writes
    # -----------------------------

    async def async_create(self, collection: str, body: Document) -> str:
        async with self.async_batch() as batch:
            doc_id = batch.create(collection, body)
        LOGGER.debug(
            "Document created",
            extra={"domain": DOMAIN, "op": "create", "collection": collection, "doc_id": doc_id},
        )
        return doc_id

    async def async_set(self, collection: str, doc_id: str, body: Document) -> None:
        async with self.async_batch() as batch:
            batch.set(collection, doc_id, body)
        LOGGER.debug(
            "Document replaced",
            extra={"domain": DOMAIN, "op": "set", "collection": collection, "doc_id": doc_id},
        )

    async def async_merge(self, collection: str, doc_id: str, fields: Document) -> Document:
        async with self.async_batch() as batch:
            merged = batch.merge(collection, doc_id, fields)
        LOGGER.debug(
            "Document merged",
            extra={
                "domain": DOMAIN,
                "op": "merge",
                "collection": collection,
                "doc_id": doc_id,
                "fields": sorted(fields),
            },
        )
        return merged

    async def async_delete(self, collection: str, doc_id: str) -> bool:
        async with self.async_batch() as batch:
            removed = batch.delete(collection, doc_id)
        LOGGER.debug(
            "Document deleted" if removed else "Delete of missing document ignored",
            extra={"domain": DOMAIN, "op": "delete", "collection": collection, "doc_id": doc_id},
        )
        return removed
