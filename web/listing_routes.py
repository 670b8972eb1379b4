"""
Listing Routes - Seller Submissions, Buyer Browsing and Reports

Routes:
- GET    /listings              - Browse approved listings
- GET    /listings/{id}         - One listing (non-approved: owner/admin only)
- POST   /listings              - Create a listing (always pending)
- PUT    /listings/{id}         - Edit and resubmit for review
- DELETE /listings/{id}         - Delete (owner or admin)
- GET    /me/listings           - The caller's listings in every status
- POST   /reports               - Report a listing (no session required)
- POST   /logout                - Clear the session cookie
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from core.moderation import (
    AuthorizationGate,
    BadgeSuggestion,
    BadgeValue,
    DocumentType,
    EvidenceDocument,
    ImageAnalysis,
    InvalidArgument,
    ListingService,
    ModerationService,
)
from web.session import (
    clear_session_cookie,
    get_credential,
    get_gate,
    get_listing_service,
    get_moderation_service,
)


router = APIRouter(tags=["listings"])


# =============================================================================
# Request Models
# =============================================================================


class EvidenceInput(BaseModel):
    """An uploaded evidence document, as handed over by the upload pipeline."""

    name: str
    content: str = ""
    type: DocumentType = DocumentType.OTHER
    summary: Optional[str] = None

    def to_document(self) -> EvidenceDocument:
        return EvidenceDocument.create(
            name=self.name,
            content=self.content,
            document_type=self.type,
            summary=self.summary,
        )


class BadgeSuggestionInput(BaseModel):
    badge: BadgeValue
    reason: str = ""


class ImageAnalysisInput(BaseModel):
    is_suspicious: bool = Field(alias="isSuspicious")
    reason: str = ""


class ListingFieldsInput(BaseModel):
    """Listing content. Every field optional; required-ness is checked by the service."""

    title: Optional[Any] = None
    location: Optional[Any] = None
    county: Optional[Any] = None
    price: Optional[Any] = None
    area: Optional[Any] = None
    size: Optional[Any] = None
    land_type: Optional[Any] = Field(default=None, alias="landType")
    description: Optional[Any] = None
    evidence: List[EvidenceInput] = Field(default_factory=list)
    badge_suggestion: Optional[BadgeSuggestionInput] = Field(default=None, alias="badgeSuggestion")
    image_analysis: Optional[ImageAnalysisInput] = Field(default=None, alias="imageAnalysis")

    def listing_fields(self) -> Dict[str, Any]:
        """Content fields the caller actually sent, keyed by attribute name."""
        extras = {"evidence", "badge_suggestion", "image_analysis"}
        return {
            name: value
            for name, value in self.model_dump(exclude_unset=True).items()
            if name not in extras
        }

    def documents(self) -> List[EvidenceDocument]:
        return [item.to_document() for item in self.evidence]

    def suggestion(self) -> Optional[BadgeSuggestion]:
        if self.badge_suggestion is None:
            return None
        return BadgeSuggestion(badge=self.badge_suggestion.badge, reason=self.badge_suggestion.reason)

    def analysis(self) -> Optional[ImageAnalysis]:
        if self.image_analysis is None:
            return None
        return ImageAnalysis(
            is_suspicious=self.image_analysis.is_suspicious,
            reason=self.image_analysis.reason,
        )


class ReportRequest(BaseModel):
    listing_id: Optional[Any] = Field(default=None, alias="listingId")
    reason: Optional[Any] = None


# =============================================================================
# Buyer Browsing
# =============================================================================


@router.get("/listings")
async def browse_listings(
    q: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    min_area: Optional[float] = Query(None, alias="minArea"),
    max_area: Optional[float] = Query(None, alias="maxArea"),
    land_type: Optional[str] = Query(None, alias="landType"),
    badge: Optional[List[str]] = Query(None),
    limit: int = 12,
    service: ListingService = Depends(get_listing_service),
):
    """Approved listings matching the filters, newest first."""
    badges = None
    if badge:
        try:
            badges = [BadgeValue(value) for value in badge]
        except ValueError:
            raise InvalidArgument(
                f"Invalid badge filter: {', '.join(badge)}",
                field_errors={"badge": [f"Must be one of: {', '.join(b.value for b in BadgeValue)}"]},
            ) from None

    listings = service.browse(
        query=q,
        min_price=min_price,
        max_price=max_price,
        min_area=min_area,
        max_area=max_area,
        land_type=land_type,
        badges=badges,
        limit=limit,
    )
    return {"status": "success", "listings": [listing.to_dict() for listing in listings]}


@router.get("/listings/{listing_id}")
async def read_listing(
    request: Request,
    listing_id: str,
    service: ListingService = Depends(get_listing_service),
):
    listing = service.get_listing(listing_id, get_credential(request))
    return {"status": "success", "listing": listing.to_dict()}


# =============================================================================
# Seller Operations
# =============================================================================


@router.post("/listings", status_code=201)
async def create_listing(
    request: Request,
    body: ListingFieldsInput,
    service: ListingService = Depends(get_listing_service),
):
    """Create a listing; it starts pending with no badge."""
    listing = service.create_listing(
        get_credential(request),
        body.listing_fields(),
        evidence=body.documents(),
        badge_suggestion=body.suggestion(),
        image_analysis=body.analysis(),
    )
    return {"status": "success", "listing": listing.to_dict()}


@router.put("/listings/{listing_id}")
async def resubmit_listing(
    request: Request,
    listing_id: str,
    body: ListingFieldsInput,
    service: ListingService = Depends(get_listing_service),
):
    """Apply edits and send the listing back to review."""
    listing = service.resubmit_listing(
        get_credential(request),
        listing_id,
        body.listing_fields(),
        new_evidence=body.documents(),
        badge_suggestion=body.suggestion(),
    )
    return {"status": "success", "listing": listing.to_dict()}


@router.delete("/listings/{listing_id}")
async def delete_listing(
    request: Request,
    listing_id: str,
    service: ListingService = Depends(get_listing_service),
):
    service.delete_listing(get_credential(request), listing_id)
    return {"status": "success"}


@router.get("/me/listings")
async def my_listings(
    request: Request,
    service: ListingService = Depends(get_listing_service),
):
    listings = service.listings_for_owner(get_credential(request))
    return {"status": "success", "listings": [listing.to_dict() for listing in listings]}


# =============================================================================
# Reports
# =============================================================================


@router.post("/reports")
async def report_listing(
    request: Request,
    body: ReportRequest,
    gate: AuthorizationGate = Depends(get_gate),
    service: ModerationService = Depends(get_moderation_service),
):
    """
    Report a listing. Anonymous reports are accepted; a signed-in
    reporter is attached and gets a confirmation email.
    """
    reporter = gate.identify(get_credential(request))
    service.record_report(body.listing_id, body.reason, reporter=reporter)
    return {"ok": True}


@router.post("/logout")
async def logout():
    response = JSONResponse({"status": "success"})
    clear_session_cookie(response)
    return response
