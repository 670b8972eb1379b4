"""
Audit Logger - Append-Only Record of Administrative Changes

One entry per logical change-set, holding field-level {old, new} pairs.
Entries are never updated or deleted. Each entry carries a SHA-256 hash of
its content so later tampering can be detected.

Audit writes run after the primary commit. A failed audit write is logged
for operators and never fails the operation that triggered it.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Final, Iterable, Optional

from core.moderation.errors import DependencyUnavailable
from core.moderation.schema import utc_now
from core.moderation.store import AUDIT_LOGS, DocumentStore


logger = logging.getLogger(__name__)

# Action names
ACTION_UPDATE: Final[str] = "UPDATE"
ACTION_BULK_UPDATE: Final[str] = "BULK_UPDATE"
ACTION_ACCEPT_BADGE: Final[str] = "ACCEPT_BADGE"
ACTION_DELETE: Final[str] = "DELETE"

# Entity types
ENTITY_LISTING: Final[str] = "listing"
ENTITY_SETTINGS: Final[str] = "platform_settings"
ENTITY_REPORT: Final[str] = "listing_report"


# =============================================================================
# Hashing
# =============================================================================


def _serialize_for_hash(data: dict[str, Any]) -> str:
    """Sorted keys and fixed separators so identical content hashes identically."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def compute_entry_hash(
    entry_id: str,
    admin_id: str,
    action: str,
    entity_type: str,
    entity_id: Optional[str],
    changes: dict[str, Any],
    timestamp: datetime,
) -> str:
    """Compute SHA-256 hash covering every field of an audit entry."""
    content = {
        "entry_id": entry_id,
        "admin_id": admin_id,
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "changes": changes,
        "timestamp": timestamp.isoformat(),
    }
    return hashlib.sha256(_serialize_for_hash(content).encode("utf-8")).hexdigest()


def diff_fields(
    before: dict[str, Any],
    after: dict[str, Any],
    fields: Optional[Iterable[str]] = None,
) -> dict[str, dict[str, Any]]:
    """
    Field-level differences between two documents.

    Args:
        before: Prior state
        after: New state
        fields: Fields to compare (defaults to every key of `after`)

    Returns:
        {field: {"old": ..., "new": ...}} for each field that changed
    """
    names = list(fields) if fields is not None else list(after.keys())
    changes: dict[str, dict[str, Any]] = {}
    for name in names:
        old, new = before.get(name), after.get(name)
        if old != new:
            changes[name] = {"old": old, "new": new}
    return changes


# =============================================================================
# Audit Entry
# =============================================================================


@dataclass(frozen=True)
class AuditEntry:
    """Immutable record of one administrative change-set."""

    entry_id: str
    admin_id: str
    action: str
    entity_type: str
    changes: dict[str, Any]
    entity_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)
    entry_hash: str = ""

    @classmethod
    def create(
        cls,
        admin_id: str,
        action: str,
        entity_type: str,
        changes: dict[str, Any],
        entity_id: Optional[str] = None,
    ) -> "AuditEntry":
        """Create a new entry with its content hash."""
        entry_id = f"AUD-{uuid.uuid4().hex[:12].upper()}"
        timestamp = utc_now()
        changes_copy = json.loads(_serialize_for_hash(changes))
        return cls(
            entry_id=entry_id,
            admin_id=admin_id,
            action=action,
            entity_type=entity_type,
            changes=changes_copy,
            entity_id=entity_id,
            timestamp=timestamp,
            entry_hash=compute_entry_hash(
                entry_id, admin_id, action, entity_type, entity_id, changes_copy, timestamp
            ),
        )

    def verify_hash(self) -> bool:
        """Check the stored hash still matches the entry's content."""
        expected = compute_entry_hash(
            self.entry_id,
            self.admin_id,
            self.action,
            self.entity_type,
            self.entity_id,
            self.changes,
            self.timestamp,
        )
        return self.entry_hash == expected

    def to_dict(self) -> dict:
        return {
            "id": self.entry_id,
            "adminId": self.admin_id,
            "action": self.action,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "changes": self.changes,
            "timestamp": self.timestamp.isoformat(),
            "entryHash": self.entry_hash,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuditEntry":
        return cls(
            entry_id=data["id"],
            admin_id=data["adminId"],
            action=data["action"],
            entity_type=data["entityType"],
            changes=data.get("changes") or {},
            entity_id=data.get("entityId"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            entry_hash=data.get("entryHash", ""),
        )


# =============================================================================
# Logger
# =============================================================================


class AuditLogger:
    """Best-effort writer and reader for the audit log collection."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def record(
        self,
        admin_id: str,
        action: str,
        entity_type: str,
        changes: dict[str, Any],
        entity_id: Optional[str] = None,
    ) -> Optional[AuditEntry]:
        """
        Append one audit entry.

        Returns:
            The written AuditEntry, or None if the write failed (logged).
        """
        entry = AuditEntry.create(admin_id, action, entity_type, changes, entity_id)
        written = self.record_many([entry])
        return entry if written else None

    def record_many(self, entries: list[AuditEntry]) -> bool:
        """
        Append several entries in one batch.

        Returns:
            True if written, False if the write failed (logged).
        """
        if not entries:
            return True
        batch = self._store.batch()
        for entry in entries:
            batch.set(AUDIT_LOGS, entry.entry_id, entry.to_dict())
        try:
            batch.commit()
        except Exception as e:
            # Never propagate: the primary change has already been committed
            targets = ", ".join(f"{entry.entity_type}/{entry.entity_id}" for entry in entries)
            logger.warning(
                "Failed to write %d audit entries (%s): %s",
                len(entries),
                targets,
                e,
                exc_info=not isinstance(e, DependencyUnavailable),
            )
            return False
        return True

    def entries(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> list[AuditEntry]:
        """Read entries back, oldest first, optionally filtered."""
        filters: dict[str, Any] = {}
        if entity_type is not None:
            filters["entityType"] = entity_type
        if entity_id is not None:
            filters["entityId"] = entity_id
        docs = self._store.query(AUDIT_LOGS, **filters)
        return sorted((AuditEntry.from_dict(d) for d in docs), key=lambda e: e.timestamp)
