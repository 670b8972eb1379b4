"""
Session Plumbing - Credentials In, Services Out

Pulls the opaque session credential off a request and builds the
services the routes call. The routes never inspect the credential
themselves; they hand it to a service, which hands it to the gate.

Credential sources (first match wins):
- `__session` cookie
- `Authorization: Bearer <token>` header
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request, Response

from core.moderation import (
    SESSION_COOKIE_NAME,
    AuditLogger,
    AuthorizationGate,
    DocumentStore,
    ListingService,
    ModerationService,
    NotificationQueue,
    SettingsService,
    SignedSessionVerifier,
    get_document_store,
)


# =============================================================================
# Credentials
# =============================================================================


def get_credential(request: Request) -> Optional[str]:
    """Extract the session credential from cookie or bearer header."""
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if token:
        return token

    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()

    return None


def clear_session_cookie(response: Response) -> None:
    """Clear the session cookie on a response."""
    response.delete_cookie(key=SESSION_COOKIE_NAME)


# =============================================================================
# Service Dependencies
# =============================================================================


def get_store(request: Request) -> DocumentStore:
    """Process-wide document store (overridden in tests)."""
    config = getattr(request.app.state, "config", None)
    return get_document_store(config.resolved_store_path if config else None)


def get_gate(request: Request, store: DocumentStore = Depends(get_store)) -> AuthorizationGate:
    config = getattr(request.app.state, "config", None)
    secret = config.session_secret if config else None
    return AuthorizationGate(SignedSessionVerifier(store, secret=secret))


def get_settings_service(
    store: DocumentStore = Depends(get_store),
    gate: AuthorizationGate = Depends(get_gate),
) -> SettingsService:
    return SettingsService(store, gate, AuditLogger(store))


def get_moderation_service(
    store: DocumentStore = Depends(get_store),
    gate: AuthorizationGate = Depends(get_gate),
) -> ModerationService:
    return ModerationService(store, gate, AuditLogger(store), NotificationQueue(store))


def get_listing_service(
    store: DocumentStore = Depends(get_store),
    gate: AuthorizationGate = Depends(get_gate),
    settings: SettingsService = Depends(get_settings_service),
) -> ListingService:
    return ListingService(store, gate, settings, AuditLogger(store))
