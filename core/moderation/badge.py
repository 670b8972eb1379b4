"""
Badge Engine - Deterministic Trust Badge Computation

Computes a listing's trust badge from its evidence and the seller's
verification state. Rules are evaluated top-down; the first match wins:

1. Gold   - title deed, survey and rate clearance present, seller verified,
            3+ photos
2. Silver - title deed or survey present, seller verified, 2+ photos
3. Bronze - at least one evidence document, core listing fields complete
4. None   - otherwise

AI badge suggestions are accepted as an argument so callers can pass them
through, but they never change the computed result. Pure functions only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Iterable, Optional

from core.moderation.schema import (
    BadgeSuggestion,
    BadgeValue,
    DocumentType,
    EvidenceDocument,
)


# =============================================================================
# Constants
# =============================================================================

GOLD_MIN_PHOTOS: Final[int] = 3
SILVER_MIN_PHOTOS: Final[int] = 2

# Keyword hints for documents uploaded without an explicit type.
# Checked in order; the first matching type wins.
DOCUMENT_KEYWORDS: Final[tuple[tuple[DocumentType, tuple[str, ...]], ...]] = (
    (DocumentType.TITLE_DEED, ("title deed", "title_deed", "title-deed", "certificate of title", "land title")),
    (DocumentType.SURVEY_MAP, ("survey", "mutation form", "beacon")),
    (DocumentType.RATE_CLEARANCE, ("rate clearance", "rates clearance", "rate_clearance", "rate-clearance")),
)

PHOTO_EXTENSIONS: Final[tuple[str, ...]] = (".jpg", ".jpeg", ".png", ".webp", ".heic")

BADGE_RANK: Final[dict[BadgeValue, int]] = {
    BadgeValue.NONE: 0,
    BadgeValue.BRONZE: 1,
    BadgeValue.SILVER: 2,
    BadgeValue.GOLD: 3,
}


# =============================================================================
# Evidence Classification
# =============================================================================


def classify_document(document: EvidenceDocument) -> DocumentType:
    """
    Determine what kind of evidence a document is.

    An explicit type other than OTHER is trusted. Otherwise the name and
    extracted content are searched for known keywords, and image files
    with no matching keyword count as photos.
    """
    if document.document_type != DocumentType.OTHER:
        return document.document_type

    haystack = f"{document.name} {document.content}".lower()
    for document_type, keywords in DOCUMENT_KEYWORDS:
        if any(keyword in haystack for keyword in keywords):
            return document_type

    if document.name.lower().endswith(PHOTO_EXTENSIONS):
        return DocumentType.PHOTO

    return DocumentType.OTHER


@dataclass(frozen=True)
class EvidenceProfile:
    """What a listing's evidence set contains."""

    document_count: int
    photo_count: int
    has_title_deed: bool
    has_survey: bool
    has_rate_clearance: bool


def profile_evidence(evidence: Iterable[EvidenceDocument]) -> EvidenceProfile:
    """Classify every document and tally the result."""
    types = [classify_document(doc) for doc in evidence]
    return EvidenceProfile(
        document_count=len(types),
        photo_count=sum(1 for t in types if t == DocumentType.PHOTO),
        has_title_deed=DocumentType.TITLE_DEED in types,
        has_survey=DocumentType.SURVEY_MAP in types,
        has_rate_clearance=DocumentType.RATE_CLEARANCE in types,
    )


# =============================================================================
# Badge Computation
# =============================================================================


def compute_badge(
    evidence: Iterable[EvidenceDocument],
    seller_verified: bool,
    core_fields_complete: bool = True,
    ai_suggestion: Optional[BadgeSuggestion] = None,
) -> BadgeValue:
    """
    Compute the trust badge for an evidence set.

    Args:
        evidence: The listing's evidence documents
        seller_verified: Whether the seller's identity has been verified
        core_fields_complete: Whether title, location, price and description are set
        ai_suggestion: Advisory suggestion; never alters the result

    Returns:
        The deterministic BadgeValue
    """
    profile = profile_evidence(evidence)

    if (
        profile.has_title_deed
        and profile.has_survey
        and profile.has_rate_clearance
        and seller_verified
        and profile.photo_count >= GOLD_MIN_PHOTOS
    ):
        return BadgeValue.GOLD

    if (
        (profile.has_title_deed or profile.has_survey)
        and seller_verified
        and profile.photo_count >= SILVER_MIN_PHOTOS
    ):
        return BadgeValue.SILVER

    if profile.document_count >= 1 and core_fields_complete:
        return BadgeValue.BRONZE

    return BadgeValue.NONE


# =============================================================================
# Consistency Check
# =============================================================================


@dataclass(frozen=True)
class BadgeCheck:
    """Outcome of comparing an admin-chosen badge with the computed one."""

    accepted: BadgeValue
    computed: BadgeValue

    @property
    def has_discrepancy(self) -> bool:
        return self.accepted != self.computed

    @property
    def overstates_evidence(self) -> bool:
        """True when the accepted badge ranks above what the evidence supports."""
        return BADGE_RANK[self.accepted] > BADGE_RANK[self.computed]

    def describe(self) -> str:
        if not self.has_discrepancy:
            return f"Accepted badge {self.accepted.value} matches evidence"
        message = (
            f"Accepted badge {self.accepted.value} differs from computed "
            f"badge {self.computed.value}"
        )
        if self.overstates_evidence:
            message += " and overstates the evidence"
        return message


def check_badge_consistency(accepted: BadgeValue, computed: BadgeValue) -> BadgeCheck:
    """Compare an accepted badge with the computed one. Never blocks."""
    return BadgeCheck(accepted=accepted, computed=computed)
