"""
Admin Routes - Moderation, Settings and Audit API

Every mutating route here is admin-only; the services enforce it, so a
missing or non-admin session surfaces as 401/403 through the app-level
error handler.

Routes:
- GET   /settings                                  - Effective platform settings (public)
- PATCH /settings                                  - Update settings (admin)
- POST  /listings/bulk-status                      - Move many listings to one status
- POST  /listings/{id}/status                      - Move one listing
- POST  /listings/{id}/badge/accept                - Accept the AI badge suggestion
- POST  /listings/{id}/documents/{doc_id}/summary  - Attach a document summary
- GET   /admin/listings                            - All listings, optional status filter
- GET   /admin/listings/counts                     - Listing counts per status
- DELETE /admin/listings/{id}                      - Remove a listing (audited)
- GET   /admin/reports                             - Listing reports for triage
- POST  /admin/reports/{id}/status                 - Review or dismiss a report
- GET   /admin/audit-logs                          - Audit trail
"""

from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Request
from pydantic import BaseModel, Field

from core.moderation import ListingService, ModerationService, SettingsService
from web.session import (
    get_credential,
    get_listing_service,
    get_moderation_service,
    get_settings_service,
)


router = APIRouter(tags=["admin"])


# =============================================================================
# Request Models
# =============================================================================


class BulkStatusRequest(BaseModel):
    """Bulk status change. Shape is checked by the service, not here."""

    listing_ids: Optional[List[Any]] = Field(default=None, alias="listingIds")
    status: Optional[str] = None


class StatusRequest(BaseModel):
    status: str


class SummaryRequest(BaseModel):
    summary: str
    resummarize: bool = False


# =============================================================================
# Settings
# =============================================================================


@router.get("/settings")
async def read_settings(service: SettingsService = Depends(get_settings_service)):
    """Effective settings; defaults when nothing has been saved."""
    return {"status": "success", "data": service.get().to_dict()}


@router.patch("/settings")
async def update_settings(
    request: Request,
    patch: Any = Body(...),
    service: SettingsService = Depends(get_settings_service),
):
    """Validate, diff, save and audit a settings patch."""
    settings = service.update(get_credential(request), patch)
    return {
        "status": "success",
        "message": "Settings updated successfully",
        "data": settings.to_dict(),
    }


# =============================================================================
# Listing Moderation
# =============================================================================


@router.post("/listings/bulk-status")
async def bulk_update_status(
    request: Request,
    body: BulkStatusRequest,
    service: ModerationService = Depends(get_moderation_service),
):
    """Move several listings to one status, all or nothing."""
    listings = service.bulk_update_status(
        get_credential(request), body.listing_ids, body.status
    )
    return {
        "status": "success",
        "updated": len(listings),
        "listings": [listing.to_dict() for listing in listings],
    }


@router.post("/listings/{listing_id}/status")
async def update_status(
    request: Request,
    listing_id: str,
    body: StatusRequest,
    service: ModerationService = Depends(get_moderation_service),
):
    """Approve, reject or reopen one listing."""
    listing = service.update_status(get_credential(request), listing_id, body.status)
    return {"status": "success", "listing": listing.to_dict()}


@router.post("/listings/{listing_id}/badge/accept")
async def accept_badge(
    request: Request,
    listing_id: str,
    service: ModerationService = Depends(get_moderation_service),
):
    listing = service.accept_badge_suggestion(get_credential(request), listing_id)
    return {"status": "success", "listing": listing.to_dict()}


@router.post("/listings/{listing_id}/documents/{document_id}/summary")
async def attach_summary(
    request: Request,
    listing_id: str,
    document_id: str,
    body: SummaryRequest,
    service: ModerationService = Depends(get_moderation_service),
):
    listing = service.attach_document_summary(
        get_credential(request),
        listing_id,
        document_id,
        body.summary,
        resummarize=body.resummarize,
    )
    return {"status": "success", "listing": listing.to_dict()}


# =============================================================================
# Admin Views
# =============================================================================


@router.get("/admin/listings")
async def admin_listings(
    request: Request,
    status: Optional[str] = None,
    service: ModerationService = Depends(get_moderation_service),
):
    """All listings for review, newest first."""
    listings = service.list_for_admin(get_credential(request), status)
    return {"status": "success", "listings": [listing.to_dict() for listing in listings]}


@router.get("/admin/listings/counts")
async def admin_listing_counts(
    request: Request,
    service: ModerationService = Depends(get_moderation_service),
):
    return {"status": "success", "counts": service.pending_counts(get_credential(request))}


@router.delete("/admin/listings/{listing_id}")
async def admin_delete_listing(
    request: Request,
    listing_id: str,
    service: ListingService = Depends(get_listing_service),
):
    """Remove a listing (audited)."""
    service.delete_listing(get_credential(request), listing_id)
    return {"status": "success"}


@router.get("/admin/reports")
async def admin_reports(
    request: Request,
    status: Optional[str] = None,
    service: ModerationService = Depends(get_moderation_service),
):
    reports = service.list_reports(get_credential(request), status)
    return {"status": "success", "reports": [report.to_dict() for report in reports]}


@router.post("/admin/reports/{report_id}/status")
async def admin_report_status(
    request: Request,
    report_id: str,
    body: StatusRequest,
    service: ModerationService = Depends(get_moderation_service),
):
    report = service.update_report_status(get_credential(request), report_id, body.status)
    return {"status": "success", "report": report.to_dict()}


@router.get("/admin/audit-logs")
async def admin_audit_logs(
    request: Request,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    service: ModerationService = Depends(get_moderation_service),
):
    """Audit trail, oldest first, optionally narrowed to one entity."""
    entries = service.audit_history(get_credential(request), entity_type, entity_id)
    return {"status": "success", "entries": [entry.to_dict() for entry in entries]}
