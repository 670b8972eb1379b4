"""
Document Store - In-Process Document Database

Document-oriented storage for listings, users, audit logs, settings,
reports and the email queue. Documents are plain JSON-ready dicts grouped
in named collections.

This is the in-process implementation used for development and tests.
It supports what the pipeline needs from a production store:
- Single-document read/write
- Query by field equality
- All-or-nothing multi-document batch commit
- Conditional writes that fail if a document changed since it was read
- Server-assigned timestamps
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Final, Optional

from core.moderation.errors import DependencyUnavailable, InvalidTransition, NotFound


logger = logging.getLogger(__name__)


class _ServerTimestamp:
    """Sentinel replaced with the commit time when a write is applied."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP: Final = _ServerTimestamp()

# Collection names
LISTINGS: Final[str] = "listings"
USERS: Final[str] = "users"
AUDIT_LOGS: Final[str] = "auditLogs"
ADMIN_CONFIG: Final[str] = "adminConfig"
LISTING_REPORTS: Final[str] = "listingReports"
EMAIL_QUEUE: Final[str] = "emailQueue"

# (op, collection, doc_id, data, expect)
_Write = tuple[str, str, str, Optional[dict[str, Any]], Optional[dict[str, Any]]]


def _resolve_timestamps(data: dict[str, Any], now: str) -> dict[str, Any]:
    resolved = {}
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            resolved[key] = now
        elif isinstance(value, dict):
            resolved[key] = _resolve_timestamps(value, now)
        else:
            resolved[key] = copy.deepcopy(value)
    return resolved


# =============================================================================
# Write Batch
# =============================================================================


class WriteBatch:
    """
    Staged group of writes committed together.

    Nothing is visible to readers until `commit()` succeeds; if any write
    fails, none are applied.
    """

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._writes: list[_Write] = []
        self._committed = False

    def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
        expect: Optional[dict[str, Any]] = None,
    ) -> "WriteBatch":
        self._writes.append(("merge" if merge else "set", collection, doc_id, data, expect))
        return self

    def update(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expect: Optional[dict[str, Any]] = None,
    ) -> "WriteBatch":
        """
        Stage a partial update; the document must exist at commit time.

        `expect` maps field names to the values the stored document must
        still hold when the batch commits.
        """
        self._writes.append(("update", collection, doc_id, data, expect))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._writes.append(("delete", collection, doc_id, None, None))
        return self

    def __len__(self) -> int:
        return len(self._writes)

    def commit(self) -> None:
        """
        Apply every staged write atomically.

        Raises:
            DependencyUnavailable: If any write cannot be applied or the
                store cannot be persisted. The store is left unchanged.
            NotFound: A write with expectations targets a missing document
            InvalidTransition: A document no longer holds an expected value
        """
        if self._committed:
            raise RuntimeError("Batch already committed")
        self._store._commit(self._writes)
        self._committed = True


# =============================================================================
# Store
# =============================================================================


class DocumentStore:
    """
    Collections of JSON documents with atomic batch commits.

    Uses in-memory storage with optional file persistence. Reads return
    deep copies so callers never share mutable state with the store.
    """

    def __init__(self, persist_path: Optional[str] = None):
        """
        Initialise store.

        Args:
            persist_path: Optional path to persist data to JSON file
        """
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._persist_path = Path(persist_path) if persist_path else None
        self._lock = threading.RLock()

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self, collections: dict[str, dict[str, dict[str, Any]]]) -> None:
        """Persist a snapshot of all collections to file."""
        if not self._persist_path:
            return

        data = {
            "collections": collections,
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }

        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._persist_path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(data, indent=2))
        tmp_path.replace(self._persist_path)

    def _load_from_file(self) -> None:
        """Load data from file."""
        try:
            data = json.loads(self._persist_path.read_text())
            self._collections = data.get("collections", {})
        except (json.JSONDecodeError, OSError) as e:
            # Start fresh rather than refuse to boot
            logger.warning("Could not load store data from %s: %s", self._persist_path, e)

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        """Get a document by ID, or None if absent."""
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def get_many(self, collection: str, doc_ids: list[str]) -> dict[str, Optional[dict[str, Any]]]:
        """Read several documents from one consistent snapshot."""
        with self._lock:
            docs = self._collections.get(collection, {})
            return {doc_id: copy.deepcopy(docs.get(doc_id)) for doc_id in doc_ids}

    def list_all(self, collection: str) -> list[dict[str, Any]]:
        """Get every document in a collection."""
        with self._lock:
            return [copy.deepcopy(d) for d in self._collections.get(collection, {}).values()]

    def query(self, collection: str, **field_equals: Any) -> list[dict[str, Any]]:
        """Get documents whose fields equal every given value."""
        return [
            doc
            for doc in self.list_all(collection)
            if all(doc.get(name) == value for name, value in field_equals.items())
        ]

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections.get(collection, {}))

    # =========================================================================
    # Writes
    # =========================================================================

    def batch(self) -> WriteBatch:
        """Start a new atomic batch."""
        return WriteBatch(self)

    def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
        expect: Optional[dict[str, Any]] = None,
    ) -> None:
        self.batch().set(collection, doc_id, data, merge=merge, expect=expect).commit()

    def update(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expect: Optional[dict[str, Any]] = None,
    ) -> None:
        self.batch().update(collection, doc_id, data, expect=expect).commit()

    def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a generated ID and return the ID."""
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def delete(self, collection: str, doc_id: str) -> None:
        self.batch().delete(collection, doc_id).commit()

    def _apply_write(
        self,
        collections: dict[str, dict[str, dict[str, Any]]],
        op: str,
        collection: str,
        doc_id: str,
        data: Optional[dict[str, Any]],
        now: str,
    ) -> None:
        docs = collections.setdefault(collection, {})
        if op == "delete":
            docs.pop(doc_id, None)
            return

        resolved = _resolve_timestamps(data or {}, now)
        if op == "set":
            docs[doc_id] = resolved
        elif op == "merge":
            docs.setdefault(doc_id, {}).update(resolved)
        elif op == "update":
            if doc_id not in docs:
                raise KeyError(f"{collection}/{doc_id} does not exist")
            docs[doc_id].update(resolved)
        else:
            raise ValueError(f"Unknown write operation: {op}")

    def _check_expectations(
        self,
        collections: dict[str, dict[str, dict[str, Any]]],
        collection: str,
        doc_id: str,
        expect: dict[str, Any],
    ) -> None:
        doc = collections.get(collection, {}).get(doc_id)
        if doc is None:
            raise NotFound(f"{collection}/{doc_id} not found")
        for name, value in expect.items():
            if doc.get(name) != value:
                raise InvalidTransition(
                    f"{collection}/{doc_id} changed concurrently: "
                    f"expected {name}={value!r}, found {doc.get(name)!r}"
                )

    def _commit(self, writes: list[_Write]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            # Only the collections this batch touches are copied
            staged = dict(self._collections)
            for collection in {write[1] for write in writes}:
                staged[collection] = copy.deepcopy(self._collections.get(collection, {}))
            try:
                for op, collection, doc_id, data, expect in writes:
                    if expect:
                        self._check_expectations(staged, collection, doc_id, expect)
                    self._apply_write(staged, op, collection, doc_id, data, now)
                self._save_to_file(staged)
            except (KeyError, ValueError, OSError, TypeError) as e:
                logger.error("Batch commit of %d writes failed: %s", len(writes), e, exc_info=True)
                raise DependencyUnavailable(f"Store commit failed: {e}") from e
            self._collections = staged


# =============================================================================
# Singleton Instance
# =============================================================================

_store_instance: Optional[DocumentStore] = None


def get_document_store(persist_path: Optional[str] = None) -> DocumentStore:
    """
    Get the document store singleton.

    Args:
        persist_path: Optional path for persistence (only used on first call)

    Returns:
        DocumentStore instance
    """
    global _store_instance
    if _store_instance is None:
        _store_instance = DocumentStore(persist_path)
    return _store_instance


def reset_document_store() -> None:
    """Reset the singleton instance (for testing)."""
    global _store_instance
    _store_instance = None
