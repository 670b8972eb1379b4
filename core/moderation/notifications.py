"""
Notification Queue

The pipeline only enqueues email records; an external worker delivers
them. Records land in the emailQueue collection with status "queued".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final

from core.moderation.store import EMAIL_QUEUE, SERVER_TIMESTAMP, DocumentStore


TEMPLATE_REPORT_CONFIRMATION: Final[str] = "report-confirmation"


@dataclass(frozen=True)
class Notification:
    """An email to be delivered by the external worker."""

    to: str
    template: str
    subject: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "to": self.to,
            "template": self.template,
            "subject": self.subject,
            "payload": dict(self.payload),
        }


class NotificationQueue:
    """Append-only writer for the email queue."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def enqueue(self, notification: Notification) -> str:
        """
        Queue a notification for delivery.

        Returns:
            ID of the queued record

        Raises:
            DependencyUnavailable: If the queue cannot be written
        """
        record = notification.to_dict()
        record["createdAt"] = SERVER_TIMESTAMP
        record["status"] = "queued"
        return self._store.add(EMAIL_QUEUE, record)

    def pending(self) -> list[dict]:
        """Records not yet picked up by the delivery worker."""
        return self._store.query(EMAIL_QUEUE, status="queued")
