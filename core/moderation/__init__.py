"""
Land Trust Marketplace - Listing Moderation Module

Admin review pipeline for seller-submitted land listings.

Principles:
1. Every mutating call is authorized before any state is read or written
2. Status changes go through the state machine, never around it
3. Trust badges are computed from evidence; AI output is advisory only
4. Batch updates are all or nothing
5. Every admin change is audited, and audit failures never undo the change
"""

from core.moderation.schema import (
    ListingStatus,
    BadgeValue,
    DocumentType,
    Role,
    ReportStatus,
    Identity,
    BadgeSuggestion,
    ImageAnalysis,
    EvidenceDocument,
    Listing,
    ListingReport,
    CORE_LISTING_FIELDS,
    OWNER_EDITABLE_FIELDS,
)
from core.moderation.errors import (
    ModerationError,
    Unauthenticated,
    Forbidden,
    ValidationError,
    InvalidArgument,
    InvalidTransition,
    NotFound,
    DependencyUnavailable,
)
from core.moderation.store import (
    DocumentStore,
    WriteBatch,
    SERVER_TIMESTAMP,
    get_document_store,
    reset_document_store,
)
from core.moderation.authorization import (
    AuthorizationGate,
    SessionVerifier,
    SignedSessionVerifier,
    SessionClaims,
    create_session_token,
    decode_session_token,
    get_session_secret,
    SESSION_COOKIE_NAME,
    ADMIN_ONLY,
    ANY_AUTHENTICATED,
)
from core.moderation.badge import (
    compute_badge,
    classify_document,
    profile_evidence,
    check_badge_consistency,
    EvidenceProfile,
    BadgeCheck,
)
from core.moderation.state_machine import (
    ListingAction,
    TransitionResult,
    transition,
    check_transition,
    plan_status_change,
    action_for_status,
    TRANSITIONS,
)
from core.moderation.audit import (
    AuditEntry,
    AuditLogger,
    diff_fields,
    compute_entry_hash,
)
from core.moderation.notifications import (
    Notification,
    NotificationQueue,
)
from core.moderation.settings import (
    PlatformSettings,
    TrustStats,
    SettingsService,
    SettingsValidationResult,
    validate_settings_patch,
    DEFAULT_SETTINGS,
)
from core.moderation.service import ModerationService
from core.moderation.listings import ListingService, validate_listing_fields

__all__ = [
    # Schema
    "ListingStatus",
    "BadgeValue",
    "DocumentType",
    "Role",
    "ReportStatus",
    "Identity",
    "BadgeSuggestion",
    "ImageAnalysis",
    "EvidenceDocument",
    "Listing",
    "ListingReport",
    "CORE_LISTING_FIELDS",
    "OWNER_EDITABLE_FIELDS",
    # Errors
    "ModerationError",
    "Unauthenticated",
    "Forbidden",
    "ValidationError",
    "InvalidArgument",
    "InvalidTransition",
    "NotFound",
    "DependencyUnavailable",
    # Store
    "DocumentStore",
    "WriteBatch",
    "SERVER_TIMESTAMP",
    "get_document_store",
    "reset_document_store",
    # Authorization
    "AuthorizationGate",
    "SessionVerifier",
    "SignedSessionVerifier",
    "SessionClaims",
    "create_session_token",
    "decode_session_token",
    "get_session_secret",
    "SESSION_COOKIE_NAME",
    "ADMIN_ONLY",
    "ANY_AUTHENTICATED",
    # Badge Engine
    "compute_badge",
    "classify_document",
    "profile_evidence",
    "check_badge_consistency",
    "EvidenceProfile",
    "BadgeCheck",
    # State Machine
    "ListingAction",
    "TransitionResult",
    "transition",
    "check_transition",
    "plan_status_change",
    "action_for_status",
    "TRANSITIONS",
    # Audit
    "AuditEntry",
    "AuditLogger",
    "diff_fields",
    "compute_entry_hash",
    # Notifications
    "Notification",
    "NotificationQueue",
    # Settings
    "PlatformSettings",
    "TrustStats",
    "SettingsService",
    "SettingsValidationResult",
    "validate_settings_patch",
    "DEFAULT_SETTINGS",
    # Services
    "ModerationService",
    "ListingService",
    "validate_listing_fields",
]
