"""
Listing Service - Seller Submissions and Buyer Browsing

Sellers create listings (always pending, never badged) and resubmit them
after edits. Buyers only ever see approved listings. Admin review lives in
ModerationService.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Any, Final, Iterable, Optional

from core.moderation.audit import ACTION_DELETE, ENTITY_LISTING, AuditLogger
from core.moderation.authorization import ANY_AUTHENTICATED, AuthorizationGate
from core.moderation.errors import Forbidden, NotFound, ValidationError
from core.moderation.schema import (
    OWNER_EDITABLE_FIELDS,
    BadgeSuggestion,
    BadgeValue,
    EvidenceDocument,
    Identity,
    ImageAnalysis,
    Listing,
    ListingStatus,
    generate_listing_id,
    utc_now,
)
from core.moderation.settings import SettingsService
from core.moderation.state_machine import ListingAction, check_transition, transition
from core.moderation.store import LISTINGS, DocumentStore


logger = logging.getLogger(__name__)

REQUIRED_LISTING_FIELDS: Final[tuple[str, ...]] = ("title", "location", "price")
NUMERIC_LISTING_FIELDS: Final[tuple[str, ...]] = ("price", "area")
DEFAULT_PAGE_SIZE: Final[int] = 12
MAX_PAGE_SIZE: Final[int] = 100


# =============================================================================
# Validation
# =============================================================================


def validate_listing_fields(fields: dict[str, Any], partial: bool = False) -> dict[str, list[str]]:
    """
    Check listing content fields.

    Args:
        fields: Field values keyed by attribute name
        partial: True for edits (required fields may be omitted)

    Returns:
        Field-level error messages; empty when valid
    """
    errors: dict[str, list[str]] = {}

    for name in fields:
        if name not in OWNER_EDITABLE_FIELDS:
            errors[name] = [f"{name} cannot be set on a listing"]

    if not partial:
        for name in REQUIRED_LISTING_FIELDS:
            if name not in fields:
                errors.setdefault(name, []).append(f"{name} is required")

    for name, value in fields.items():
        if name in errors:
            continue
        if name in NUMERIC_LISTING_FIELDS:
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                errors[name] = [f"{name} must be a number"]
            elif not math.isfinite(value):
                errors[name] = [f"{name} must be a finite number"]
            elif name == "price" and value <= 0:
                errors[name] = ["Price must be positive"]
            elif value < 0:
                errors[name] = [f"{name} cannot be negative"]
        elif not isinstance(value, str):
            errors[name] = [f"{name} must be text"]
        elif name in REQUIRED_LISTING_FIELDS and not value.strip():
            errors[name] = [f"{name} cannot be empty"]

    return errors


# =============================================================================
# Service
# =============================================================================


class ListingService:
    """Listing creation, resubmission, deletion and browsing."""

    def __init__(
        self,
        store: DocumentStore,
        gate: AuthorizationGate,
        settings: SettingsService,
        audit: AuditLogger,
    ):
        self._store = store
        self._gate = gate
        self._settings = settings
        self._audit = audit

    def _load_listing(self, listing_id: str) -> Listing:
        data = self._store.get(LISTINGS, listing_id)
        if data is None:
            raise NotFound(f"Listing {listing_id} not found")
        return Listing.from_dict(data)

    # =========================================================================
    # Seller Operations
    # =========================================================================

    def create_listing(
        self,
        credential: Optional[str],
        fields: dict[str, Any],
        evidence: Iterable[EvidenceDocument] = (),
        badge_suggestion: Optional[BadgeSuggestion] = None,
        image_analysis: Optional[ImageAnalysis] = None,
    ) -> Listing:
        """
        Create a pending, unbadged listing owned by the caller.

        Raises:
            Unauthenticated: No valid session
            Forbidden: Listing creation disabled or platform in maintenance
            ValidationError: Field errors
        """
        identity = self._gate.authorize(credential, ANY_AUTHENTICATED)

        settings = self._settings.get()
        if not settings.accepts_new_listings:
            if settings.maintenance_mode:
                raise Forbidden(settings.maintenance_message or "The platform is under maintenance.")
            raise Forbidden("New listings are not being accepted right now.")

        errors = validate_listing_fields(fields)
        if errors:
            raise ValidationError("Listing is invalid", field_errors=errors)

        now = utc_now()
        listing = Listing(
            listing_id=generate_listing_id(),
            owner_id=identity.uid,
            seller_name=identity.display_name or "Anonymous Seller",
            status=ListingStatus.PENDING,
            badge=None,
            badge_suggestion=badge_suggestion,
            image_analysis=image_analysis,
            evidence=tuple(evidence),
            created_at=now,
            updated_at=now,
            **fields,
        )
        self._store.set(LISTINGS, listing.listing_id, listing.to_dict())
        logger.info("Listing %s created by %s", listing.listing_id, identity.uid)
        return listing

    def resubmit_listing(
        self,
        credential: Optional[str],
        listing_id: str,
        edits: dict[str, Any],
        new_evidence: Iterable[EvidenceDocument] = (),
        badge_suggestion: Optional[BadgeSuggestion] = None,
    ) -> Listing:
        """
        Apply an owner's edits and send the listing back for review.

        Existing evidence is kept; new documents are appended. The result is
        pending with no badge and no review stamp.

        Raises:
            Unauthenticated, NotFound
            Forbidden: Caller is not the owner
            InvalidTransition: Listing is approved
            ValidationError: Field errors
        """
        identity = self._gate.authorize(credential, ANY_AUTHENTICATED)
        listing = self._load_listing(listing_id)
        check_transition(listing, ListingAction.RESUBMIT, identity)

        errors = validate_listing_fields(edits, partial=True)
        if errors:
            raise ValidationError("Listing edits are invalid", field_errors=errors)

        edited = replace(
            listing,
            evidence=listing.evidence + tuple(new_evidence),
            badge_suggestion=badge_suggestion or listing.badge_suggestion,
            **edits,
        )
        result = transition(edited, ListingAction.RESUBMIT, identity)

        self._store.set(
            LISTINGS,
            listing_id,
            result.listing.to_dict(),
            expect={"status": listing.status.value},
        )
        logger.info("Listing %s resubmitted by %s", listing_id, identity.uid)
        return result.listing

    def delete_listing(self, credential: Optional[str], listing_id: str) -> None:
        """
        Delete a listing and its evidence. Owner or admin only.

        Admin deletions are audited.
        """
        identity = self._gate.authorize(credential, ANY_AUTHENTICATED)
        listing = self._load_listing(listing_id)

        if listing.owner_id != identity.uid and not identity.is_admin:
            raise Forbidden("You do not have permission to delete this listing.")

        self._store.delete(LISTINGS, listing_id)
        logger.info("Listing %s deleted by %s", listing_id, identity.uid)

        if identity.is_admin:
            changes = {"status": {"old": listing.status.value, "new": None}}
            self._audit.record(identity.uid, ACTION_DELETE, ENTITY_LISTING, changes, listing_id)

    def listings_for_owner(self, credential: Optional[str]) -> list[Listing]:
        """The caller's own listings in every status, newest first."""
        identity = self._gate.authorize(credential, ANY_AUTHENTICATED)
        listings = [Listing.from_dict(d) for d in self._store.query(LISTINGS, ownerId=identity.uid)]
        return sorted(listings, key=lambda l: l.created_at, reverse=True)

    # =========================================================================
    # Buyer Operations
    # =========================================================================

    def get_listing(self, listing_id: str, credential: Optional[str] = None) -> Listing:
        """
        Fetch one listing.

        Approved listings are public. Pending and rejected listings are only
        visible to their owner and to admins; everyone else gets NotFound.
        """
        listing = self._load_listing(listing_id)
        if listing.status == ListingStatus.APPROVED:
            return listing

        viewer: Optional[Identity] = self._gate.identify(credential)
        if viewer is not None and (viewer.is_admin or viewer.uid == listing.owner_id):
            return listing
        raise NotFound(f"Listing {listing_id} not found")

    def browse(
        self,
        query: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        min_area: Optional[float] = None,
        max_area: Optional[float] = None,
        land_type: Optional[str] = None,
        badges: Optional[Iterable[BadgeValue]] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> list[Listing]:
        """Approved listings matching the filters, newest first."""
        filters: dict[str, Any] = {"status": ListingStatus.APPROVED.value}
        if land_type:
            filters["landType"] = land_type

        listings = [Listing.from_dict(d) for d in self._store.query(LISTINGS, **filters)]

        wanted_badges = set(badges) if badges else None
        needle = query.lower().strip() if query else ""

        def matches(listing: Listing) -> bool:
            if min_price is not None and listing.price < min_price:
                return False
            if max_price is not None and listing.price > max_price:
                return False
            if min_area is not None and listing.area < min_area:
                return False
            if max_area is not None and listing.area > max_area:
                return False
            if wanted_badges is not None and listing.badge not in wanted_badges:
                return False
            if needle:
                haystack = f"{listing.title} {listing.location} {listing.county}".lower()
                if needle not in haystack:
                    return False
            return True

        limit = max(1, min(limit, MAX_PAGE_SIZE))
        result = sorted(filter(matches, listings), key=lambda l: l.created_at, reverse=True)
        return result[:limit]
