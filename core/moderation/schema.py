"""
Listing Schema - Canonical Records for the Land Marketplace

Defines the listing, evidence, report and identity records moderated by the
review pipeline. Records serialise to the camelCase documents kept in the
document store.

Invariants:
- A listing carries a badge only while it is approved
- AI output (badge suggestion, image analysis) is advisory and stored apart
  from the authoritative badge
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Final, Optional


# =============================================================================
# Enums
# =============================================================================


class ListingStatus(Enum):
    """Moderation status of a listing."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BadgeValue(Enum):
    """Trust badge reflecting documentation completeness."""

    GOLD = "Gold"
    SILVER = "Silver"
    BRONZE = "Bronze"
    NONE = "None"


class DocumentType(Enum):
    """Kinds of evidence a seller can attach."""

    TITLE_DEED = "title_deed"
    SURVEY_MAP = "survey_map"
    RATE_CLEARANCE = "rate_clearance"
    PHOTO = "photo"
    OTHER = "other"


class Role(Enum):
    """Closed set of platform roles."""

    BUYER = "BUYER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"


class ReportStatus(Enum):
    """Triage status of a user-submitted listing report."""

    NEW = "new"
    REVIEWED = "reviewed"
    DISMISSED = "dismissed"


# =============================================================================
# Constants
# =============================================================================

# Listing fields that must be non-empty for a Bronze badge
CORE_LISTING_FIELDS: Final[tuple[str, ...]] = (
    "title",
    "location",
    "price",
    "description",
)

# Fields an owner may edit on resubmission
OWNER_EDITABLE_FIELDS: Final[tuple[str, ...]] = (
    "title",
    "location",
    "county",
    "price",
    "area",
    "size",
    "land_type",
    "description",
)


# =============================================================================
# Helpers
# =============================================================================


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_listing_id() -> str:
    """Generate a unique listing ID."""
    return f"LST-{uuid.uuid4().hex[:12].upper()}"


def generate_document_id() -> str:
    """Generate a unique evidence document ID."""
    return f"DOC-{uuid.uuid4().hex[:12].upper()}"


def generate_report_id() -> str:
    """Generate a unique listing report ID."""
    return f"RPT-{uuid.uuid4().hex[:12].upper()}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


# =============================================================================
# Identity
# =============================================================================


@dataclass(frozen=True)
class Identity:
    """
    A verified caller, as produced by the session verifier.

    Never built from request input; only the authorization gate hands
    these out.
    """

    uid: str
    role: Role = Role.BUYER
    email: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def reporter_dict(self) -> dict:
        """Reporter block attached to listing reports."""
        return {
            "uid": self.uid,
            "email": self.email,
            "displayName": self.display_name,
        }


# =============================================================================
# AI Collaborator Output
# =============================================================================


@dataclass(frozen=True)
class BadgeSuggestion:
    """Advisory badge proposed by the AI collaborator."""

    badge: BadgeValue
    reason: str

    def to_dict(self) -> dict:
        return {"badge": self.badge.value, "reason": self.reason}

    @classmethod
    def from_dict(cls, data: dict) -> "BadgeSuggestion":
        return cls(badge=BadgeValue(data["badge"]), reason=data.get("reason", ""))


@dataclass(frozen=True)
class ImageAnalysis:
    """Suspicion check on the main listing image."""

    is_suspicious: bool
    reason: str = ""

    def to_dict(self) -> dict:
        return {"isSuspicious": self.is_suspicious, "reason": self.reason}

    @classmethod
    def from_dict(cls, data: dict) -> "ImageAnalysis":
        return cls(
            is_suspicious=bool(data.get("isSuspicious", False)),
            reason=data.get("reason") or "",
        )


# =============================================================================
# Evidence Document
# =============================================================================


@dataclass(frozen=True)
class EvidenceDocument:
    """
    Supporting document attached to a listing.

    `content` is the raw or OCR-extracted text received from upload.
    `summary` is written once by the AI collaborator and kept unless an
    explicit re-summarize is requested.
    """

    document_id: str
    name: str
    content: str
    document_type: DocumentType = DocumentType.OTHER
    summary: Optional[str] = None
    verified: bool = False
    uploaded_at: datetime = field(default_factory=utc_now)

    @classmethod
    def create(
        cls,
        name: str,
        content: str = "",
        document_type: DocumentType = DocumentType.OTHER,
        summary: Optional[str] = None,
    ) -> "EvidenceDocument":
        """Create a new evidence record."""
        return cls(
            document_id=generate_document_id(),
            name=name,
            content=content or f"(File: {name})",
            document_type=document_type,
            summary=summary,
        )

    def with_summary(self, summary: str, resummarize: bool = False) -> "EvidenceDocument":
        """Return a copy carrying `summary`; an existing summary wins unless resummarize."""
        if self.summary and not resummarize:
            return self
        return replace(self, summary=summary)

    def to_dict(self) -> dict:
        return {
            "id": self.document_id,
            "name": self.name,
            "content": self.content,
            "type": self.document_type.value,
            "summary": self.summary,
            "verified": self.verified,
            "uploadedAt": _iso(self.uploaded_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EvidenceDocument":
        return cls(
            document_id=data["id"],
            name=data.get("name", ""),
            content=data.get("content", ""),
            document_type=DocumentType(data.get("type") or DocumentType.OTHER.value),
            summary=data.get("summary"),
            verified=bool(data.get("verified", False)),
            uploaded_at=_parse_dt(data.get("uploadedAt")) or utc_now(),
        )


# =============================================================================
# Listing
# =============================================================================


@dataclass(frozen=True)
class Listing:
    """
    A land-for-sale record submitted by a seller.

    Listings are immutable values; transitions and edits produce new
    instances via `dataclasses.replace`.
    """

    listing_id: str
    owner_id: str
    title: str
    location: str
    price: float
    description: str = ""
    county: str = ""
    area: float = 0.0
    size: str = ""
    land_type: str = ""
    seller_name: str = ""
    status: ListingStatus = ListingStatus.PENDING
    badge: Optional[BadgeValue] = None
    badge_suggestion: Optional[BadgeSuggestion] = None
    image_analysis: Optional[ImageAnalysis] = None
    evidence: tuple[EvidenceDocument, ...] = ()
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    admin_reviewed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Validate invariants at construction."""
        if not self.listing_id:
            raise ValueError("listing_id is required")
        if not self.owner_id:
            raise ValueError("owner_id is required")
        if self.price is None or not math.isfinite(self.price) or self.price <= 0:
            raise ValueError("price must be a positive finite number")
        if not math.isfinite(self.area) or self.area < 0:
            raise ValueError("area must be a non-negative finite number")
        if self.badge is not None and self.status != ListingStatus.APPROVED:
            raise ValueError("badge can only be set on an approved listing")
        # Accept lists from callers, store as tuple
        if not isinstance(self.evidence, tuple):
            object.__setattr__(self, "evidence", tuple(self.evidence))

    @property
    def core_fields_complete(self) -> bool:
        """Check that title, location, price and description are all present."""
        for name in CORE_LISTING_FIELDS:
            value = getattr(self, name)
            if isinstance(value, str):
                if not value.strip():
                    return False
            elif not value:
                return False
        return True

    def get_document(self, document_id: str) -> Optional[EvidenceDocument]:
        """Get evidence document by ID."""
        for doc in self.evidence:
            if doc.document_id == document_id:
                return doc
        return None

    def to_dict(self) -> dict:
        """Convert listing to its stored document form."""
        return {
            "id": self.listing_id,
            "ownerId": self.owner_id,
            "title": self.title,
            "location": self.location,
            "county": self.county,
            "price": self.price,
            "area": self.area,
            "size": self.size,
            "landType": self.land_type,
            "description": self.description,
            "seller": {"name": self.seller_name},
            "status": self.status.value,
            "badge": self.badge.value if self.badge else None,
            "badgeSuggestion": self.badge_suggestion.to_dict() if self.badge_suggestion else None,
            "imageAnalysis": self.image_analysis.to_dict() if self.image_analysis else None,
            "evidence": [doc.to_dict() for doc in self.evidence],
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "adminReviewedAt": _iso(self.admin_reviewed_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Listing":
        """Create listing from its stored document form."""
        suggestion = data.get("badgeSuggestion")
        analysis = data.get("imageAnalysis")
        badge = data.get("badge")
        return cls(
            listing_id=data["id"],
            owner_id=data["ownerId"],
            title=data.get("title", ""),
            location=data.get("location", ""),
            price=data["price"],
            description=data.get("description", ""),
            county=data.get("county", ""),
            area=data.get("area") or 0.0,
            size=data.get("size", ""),
            land_type=data.get("landType", ""),
            seller_name=(data.get("seller") or {}).get("name", ""),
            status=ListingStatus(data.get("status", ListingStatus.PENDING.value)),
            badge=BadgeValue(badge) if badge else None,
            badge_suggestion=BadgeSuggestion.from_dict(suggestion) if suggestion else None,
            image_analysis=ImageAnalysis.from_dict(analysis) if analysis else None,
            evidence=tuple(EvidenceDocument.from_dict(d) for d in data.get("evidence", [])),
            created_at=_parse_dt(data.get("createdAt")) or utc_now(),
            updated_at=_parse_dt(data.get("updatedAt")) or utc_now(),
            admin_reviewed_at=_parse_dt(data.get("adminReviewedAt")),
        )


# =============================================================================
# Listing Report
# =============================================================================


@dataclass(frozen=True)
class ListingReport:
    """User-submitted report flagging a listing for admin attention."""

    report_id: str
    listing_id: str
    reason: str
    reporter: Optional[dict] = None  # {uid, email, displayName}
    status: ReportStatus = ReportStatus.NEW
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.report_id,
            "listingId": self.listing_id,
            "reason": self.reason,
            "reporter": self.reporter,
            "status": self.status.value,
            "createdAt": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ListingReport":
        return cls(
            report_id=data["id"],
            listing_id=data["listingId"],
            reason=data.get("reason", ""),
            reporter=data.get("reporter"),
            status=ReportStatus(data.get("status", ReportStatus.NEW.value)),
            created_at=_parse_dt(data.get("createdAt")) or utc_now(),
        )
