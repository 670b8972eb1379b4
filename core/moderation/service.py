"""
Moderation Service - Admin Review Orchestration

Single entry point for admin changes to listings and for report intake.

Every operation follows the same order:
1. Validate request shape
2. Authorize through the gate
3. Load current persisted state
4. Run the state machine / badge engine (pure)
5. Commit (single document or one atomic batch)
6. Audit and notify (best-effort, after the commit)
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Final, Optional, Union

from core.moderation.audit import (
    ACTION_ACCEPT_BADGE,
    ACTION_BULK_UPDATE,
    ACTION_UPDATE,
    ENTITY_LISTING,
    ENTITY_REPORT,
    AuditEntry,
    AuditLogger,
)
from core.moderation.authorization import ADMIN_ONLY, AuthorizationGate
from core.moderation.badge import check_badge_consistency, compute_badge
from core.moderation.errors import (
    InvalidArgument,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from core.moderation.notifications import (
    TEMPLATE_REPORT_CONFIRMATION,
    Notification,
    NotificationQueue,
)
from core.moderation.schema import (
    BadgeValue,
    Identity,
    Listing,
    ListingReport,
    ListingStatus,
    ReportStatus,
    generate_report_id,
    utc_now,
)
from core.moderation.state_machine import TransitionResult, plan_status_change
from core.moderation.store import LISTING_REPORTS, LISTINGS, USERS, DocumentStore


logger = logging.getLogger(__name__)

# Reports only move forward out of triage
REPORT_TRANSITIONS: Final[dict[ReportStatus, frozenset[ReportStatus]]] = {
    ReportStatus.NEW: frozenset({ReportStatus.REVIEWED, ReportStatus.DISMISSED}),
    ReportStatus.REVIEWED: frozenset({ReportStatus.DISMISSED}),
    ReportStatus.DISMISSED: frozenset(),
}

MAX_REPORT_REASON_LENGTH: Final[int] = 2000


def parse_listing_status(value: Union[str, ListingStatus]) -> ListingStatus:
    """Accept a ListingStatus or its string value."""
    if isinstance(value, ListingStatus):
        return value
    try:
        return ListingStatus(value)
    except ValueError:
        raise InvalidArgument(
            f"Invalid status: {value}",
            field_errors={"status": [f"Must be one of: {', '.join(s.value for s in ListingStatus)}"]},
        ) from None


def _review_fields(listing: Listing) -> dict[str, Any]:
    """Stored fields written by a status transition."""
    data = listing.to_dict()
    return {
        "status": data["status"],
        "badge": data["badge"],
        "updatedAt": data["updatedAt"],
        "adminReviewedAt": data["adminReviewedAt"],
    }


class ModerationService:
    """Orchestrates admin status/badge changes and listing reports."""

    def __init__(
        self,
        store: DocumentStore,
        gate: AuthorizationGate,
        audit: AuditLogger,
        notifications: NotificationQueue,
    ):
        self._store = store
        self._gate = gate
        self._audit = audit
        self._notifications = notifications

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_listing(self, listing_id: str) -> Listing:
        data = self._store.get(LISTINGS, listing_id)
        if data is None:
            raise NotFound(f"Listing {listing_id} not found")
        return Listing.from_dict(data)

    def _seller_verified(self, owner_id: str) -> bool:
        profile = self._store.get(USERS, owner_id) or {}
        return bool(profile.get("verified", False))

    def _computed_badge(self, listing: Listing) -> BadgeValue:
        return compute_badge(
            listing.evidence,
            seller_verified=self._seller_verified(listing.owner_id),
            core_fields_complete=listing.core_fields_complete,
            ai_suggestion=listing.badge_suggestion,
        )

    def _plan(self, listing: Listing, target: ListingStatus, identity: Identity) -> TransitionResult:
        computed = self._computed_badge(listing) if target == ListingStatus.APPROVED else None
        return plan_status_change(listing, target, identity, computed_badge=computed)

    # =========================================================================
    # Status Updates
    # =========================================================================

    def update_status(
        self,
        credential: Optional[str],
        listing_id: str,
        new_status: Union[str, ListingStatus],
    ) -> Listing:
        """
        Move one listing to a new status.

        Returns:
            The updated listing (unchanged if the request was a no-op)

        Raises:
            Unauthenticated, Forbidden, NotFound, InvalidTransition,
            InvalidArgument, DependencyUnavailable
        """
        target = parse_listing_status(new_status)
        identity = self._gate.authorize(credential, ADMIN_ONLY)

        listing = self._load_listing(listing_id)
        result = self._plan(listing, target, identity)
        if result.is_noop:
            return listing

        self._store.update(
            LISTINGS,
            listing_id,
            _review_fields(result.listing),
            expect={"status": listing.status.value},
        )
        logger.info(
            "Listing %s %s by %s (%s)",
            listing_id,
            result.action.value,
            identity.uid,
            result.listing.status.value,
        )

        self._audit.record(identity.uid, ACTION_UPDATE, ENTITY_LISTING, result.changes, listing_id)
        return result.listing

    def bulk_update_status(
        self,
        credential: Optional[str],
        listing_ids: list[str],
        new_status: Union[str, ListingStatus],
    ) -> list[Listing]:
        """
        Move several listings to one status, all or nothing.

        Every transition is validated against the persisted status before
        anything is written; the writes then go out as one atomic batch.
        One audit entry is written per changed listing, all sharing the
        BULK_UPDATE action.

        Raises:
            InvalidArgument: Empty, malformed or duplicated id list (checked
                before authorization)
            Unauthenticated, Forbidden, NotFound, InvalidTransition,
            DependencyUnavailable
        """
        if not isinstance(listing_ids, (list, tuple)) or len(listing_ids) == 0:
            raise InvalidArgument(
                "No listing ids provided.",
                field_errors={"listingIds": ["At least one listing id is required"]},
            )
        if any(not isinstance(i, str) or not i.strip() for i in listing_ids):
            raise InvalidArgument(
                "Listing ids must be non-empty strings.",
                field_errors={"listingIds": ["Every id must be a non-empty string"]},
            )
        if len(set(listing_ids)) != len(listing_ids):
            raise InvalidArgument(
                "Listing ids must be unique.",
                field_errors={"listingIds": ["Duplicate listing ids"]},
            )
        target = parse_listing_status(new_status)

        identity = self._gate.authorize(credential, ADMIN_ONLY)

        docs = self._store.get_many(LISTINGS, list(listing_ids))
        missing = [i for i, doc in docs.items() if doc is None]
        if missing:
            raise NotFound(f"Listings not found: {', '.join(missing)}")

        now = utc_now()
        results: list[TransitionResult] = []
        read_status: dict[str, str] = {}
        for listing_id in listing_ids:
            listing = Listing.from_dict(docs[listing_id])
            read_status[listing_id] = listing.status.value
            computed = self._computed_badge(listing) if target == ListingStatus.APPROVED else None
            results.append(plan_status_change(listing, target, identity, computed, now=now))

        batch = self._store.batch()
        for result in results:
            if not result.is_noop:
                listing_id = result.listing.listing_id
                batch.update(
                    LISTINGS,
                    listing_id,
                    _review_fields(result.listing),
                    expect={"status": read_status[listing_id]},
                )
        if len(batch):
            batch.commit()
            logger.info(
                "Bulk update by %s: %d listings -> %s", identity.uid, len(batch), target.value
            )

        entries = [
            AuditEntry.create(
                identity.uid,
                ACTION_BULK_UPDATE,
                ENTITY_LISTING,
                result.changes,
                result.listing.listing_id,
            )
            for result in results
            if not result.is_noop
        ]
        self._audit.record_many(entries)

        return [result.listing for result in results]

    # =========================================================================
    # Badge and Evidence
    # =========================================================================

    def accept_badge_suggestion(self, credential: Optional[str], listing_id: str) -> Listing:
        """
        Apply the AI-suggested badge to an approved listing.

        The badge engine is re-run; a disagreement is logged but does not
        block the admin's decision.

        Raises:
            InvalidTransition: Listing is not approved, or stopped being
                approved before the badge was written
        """
        identity = self._gate.authorize(credential, ADMIN_ONLY)
        listing = self._load_listing(listing_id)

        if listing.status != ListingStatus.APPROVED:
            raise InvalidTransition(
                f"Cannot set a badge on listing {listing_id}: status is {listing.status.value}"
            )
        if listing.badge_suggestion is None:
            raise InvalidArgument(f"Listing {listing_id} has no badge suggestion")

        accepted = listing.badge_suggestion.badge
        check = check_badge_consistency(accepted, self._computed_badge(listing))
        if check.has_discrepancy:
            logger.warning("Listing %s: %s (accepted by %s)", listing_id, check.describe(), identity.uid)

        if listing.badge == accepted:
            return listing

        updated = replace(listing, badge=accepted, updated_at=utc_now())
        self._store.update(
            LISTINGS,
            listing_id,
            {"badge": accepted.value, "updatedAt": updated.to_dict()["updatedAt"]},
            expect={"status": ListingStatus.APPROVED.value},
        )

        changes = {"badge": {"old": listing.badge.value if listing.badge else None, "new": accepted.value}}
        self._audit.record(identity.uid, ACTION_ACCEPT_BADGE, ENTITY_LISTING, changes, listing_id)
        return updated

    def attach_document_summary(
        self,
        credential: Optional[str],
        listing_id: str,
        document_id: str,
        summary: str,
        resummarize: bool = False,
    ) -> Listing:
        """
        Store the AI collaborator's summary on an evidence document.

        An existing summary is kept unless `resummarize` is set.
        """
        if not isinstance(summary, str) or not summary.strip():
            raise InvalidArgument("Summary is required", field_errors={"summary": ["Summary is required"]})

        identity = self._gate.authorize(credential, ADMIN_ONLY)
        listing = self._load_listing(listing_id)

        document = listing.get_document(document_id)
        if document is None:
            raise NotFound(f"Document {document_id} not found on listing {listing_id}")

        summarized = document.with_summary(summary.strip(), resummarize=resummarize)
        if summarized == document:
            return listing

        evidence = tuple(summarized if d.document_id == document_id else d for d in listing.evidence)
        updated = replace(listing, evidence=evidence, updated_at=utc_now())
        data = updated.to_dict()
        self._store.update(LISTINGS, listing_id, {"evidence": data["evidence"], "updatedAt": data["updatedAt"]})

        changes = {f"evidence.{document_id}.summary": {"old": document.summary, "new": summarized.summary}}
        self._audit.record(identity.uid, ACTION_UPDATE, ENTITY_LISTING, changes, listing_id)
        return updated

    # =========================================================================
    # Reports
    # =========================================================================

    def record_report(
        self,
        listing_id: str,
        reason: str,
        reporter: Optional[Identity] = None,
    ) -> ListingReport:
        """
        Record a user report against a listing. No authorization required.

        A confirmation email is queued when the reporter has an email
        address; queue failures are logged and never reach the caller.

        Raises:
            ValidationError: listingId or reason missing
            DependencyUnavailable: The report could not be stored
        """
        errors: dict[str, list[str]] = {}
        if not isinstance(listing_id, str) or not listing_id.strip():
            errors["listingId"] = ["Listing ID is required"]
        if not isinstance(reason, str) or not reason.strip():
            errors["reason"] = ["Reason is required"]
        elif len(reason) > MAX_REPORT_REASON_LENGTH:
            errors["reason"] = [f"Reason must be at most {MAX_REPORT_REASON_LENGTH} characters"]
        if errors:
            raise ValidationError("Listing ID and reason are required.", field_errors=errors)

        report = ListingReport(
            report_id=generate_report_id(),
            listing_id=listing_id.strip(),
            reason=reason.strip(),
            reporter=reporter.reporter_dict() if reporter else None,
        )
        self._store.set(LISTING_REPORTS, report.report_id, report.to_dict())

        if reporter is not None and reporter.email:
            notification = Notification(
                to=reporter.email,
                template=TEMPLATE_REPORT_CONFIRMATION,
                subject="We received your listing report",
                payload={
                    "listingId": report.listing_id,
                    "reportId": report.report_id,
                    "name": reporter.display_name or "there",
                },
            )
            try:
                self._notifications.enqueue(notification)
            except Exception as e:
                logger.warning("Could not queue report confirmation for %s: %s", report.report_id, e)

        return report

    def list_reports(
        self,
        credential: Optional[str],
        status: Optional[Union[str, ReportStatus]] = None,
    ) -> list[ListingReport]:
        """Reports for admin triage, newest first."""
        self._gate.authorize(credential, ADMIN_ONLY)
        filters = {}
        if status is not None:
            filters["status"] = _parse_report_status(status).value
        reports = [ListingReport.from_dict(d) for d in self._store.query(LISTING_REPORTS, **filters)]
        return sorted(reports, key=lambda r: r.created_at, reverse=True)

    def update_report_status(
        self,
        credential: Optional[str],
        report_id: str,
        status: Union[str, ReportStatus],
    ) -> ListingReport:
        """Move a report out of triage (new -> reviewed/dismissed, reviewed -> dismissed)."""
        target = _parse_report_status(status)
        identity = self._gate.authorize(credential, ADMIN_ONLY)

        data = self._store.get(LISTING_REPORTS, report_id)
        if data is None:
            raise NotFound(f"Report {report_id} not found")
        report = ListingReport.from_dict(data)

        if report.status == target:
            return report
        if target not in REPORT_TRANSITIONS[report.status]:
            raise InvalidTransition(
                f"Cannot move report {report_id} from {report.status.value} to {target.value}"
            )

        self._store.update(LISTING_REPORTS, report_id, {"status": target.value})
        changes = {"status": {"old": report.status.value, "new": target.value}}
        self._audit.record(identity.uid, ACTION_UPDATE, ENTITY_REPORT, changes, report_id)
        return replace(report, status=target)

    # =========================================================================
    # Admin Views
    # =========================================================================

    def list_for_admin(
        self,
        credential: Optional[str],
        status: Optional[Union[str, ListingStatus]] = None,
    ) -> list[Listing]:
        """All listings (optionally one status), newest first."""
        self._gate.authorize(credential, ADMIN_ONLY)
        filters = {}
        if status is not None:
            filters["status"] = parse_listing_status(status).value
        listings = [Listing.from_dict(d) for d in self._store.query(LISTINGS, **filters)]
        return sorted(listings, key=lambda l: l.created_at, reverse=True)

    def audit_history(
        self,
        credential: Optional[str],
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> list[AuditEntry]:
        """Audit entries, oldest first."""
        self._gate.authorize(credential, ADMIN_ONLY)
        return self._audit.entries(entity_type=entity_type, entity_id=entity_id)

    def pending_counts(self, credential: Optional[str]) -> dict[str, int]:
        """Listing counts per status for the admin dashboard."""
        self._gate.authorize(credential, ADMIN_ONLY)
        counts = {s.value: 0 for s in ListingStatus}
        for doc in self._store.list_all(LISTINGS):
            counts[doc.get("status", ListingStatus.PENDING.value)] += 1
        return counts


def _parse_report_status(value: Union[str, ReportStatus]) -> ReportStatus:
    if isinstance(value, ReportStatus):
        return value
    try:
        return ReportStatus(value)
    except ValueError:
        raise InvalidArgument(
            f"Invalid report status: {value}",
            field_errors={"status": [f"Must be one of: {', '.join(s.value for s in ReportStatus)}"]},
        ) from None
