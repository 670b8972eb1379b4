"""
Platform Settings - Validated, Audited Singleton Configuration

The platform keeps one settings document (adminConfig/settings). Callers
always go through SettingsService: reads fall back to documented
defaults without writing, and every admin update is validated, diffed
against the current state and audited.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Final, Optional
from urllib.parse import urlparse

from core.moderation.audit import ACTION_UPDATE, ENTITY_SETTINGS, AuditLogger, diff_fields
from core.moderation.authorization import ADMIN_ONLY, AuthorizationGate
from core.moderation.errors import InvalidArgument, ValidationError
from core.moderation.store import ADMIN_CONFIG, SERVER_TIMESTAMP, DocumentStore


logger = logging.getLogger(__name__)

SETTINGS_DOC_ID: Final[str] = "settings"

EMAIL_REGEX: Final = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# =============================================================================
# Settings Record
# =============================================================================


@dataclass(frozen=True)
class TrustStats:
    """Headline numbers shown on the public trust page."""

    total_listings: int = 0
    total_buyers: int = 0
    fraud_cases_resolved: int = 0

    def to_dict(self) -> dict:
        return {
            "totalListings": self.total_listings,
            "totalBuyers": self.total_buyers,
            "fraudCasesResolved": self.fraud_cases_resolved,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrustStats":
        return cls(
            total_listings=data.get("totalListings", 0),
            total_buyers=data.get("totalBuyers", 0),
            fraud_cases_resolved=data.get("fraudCasesResolved", 0),
        )


@dataclass(frozen=True)
class PlatformSettings:
    """Platform-wide configuration aggregate."""

    platform_name: str = "Kenya Land Trust"
    contact_email: str = "contact@kenyalandtrust.com"
    support_email: str = "support@kenyalandtrust.com"
    support_phone: str = ""
    site_description: str = "A trusted platform for buying and selling land in Kenya"
    max_upload_size_mb: float = 50
    moderation_threshold_days: float = 7
    maintenance_mode: bool = False
    maintenance_message: str = ""
    enable_user_signups: bool = True
    enable_listing_creation: bool = True
    social_facebook: str = ""
    social_twitter: str = ""
    social_linkedin: str = ""
    trust_stats: Optional[TrustStats] = None
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None

    @property
    def accepts_new_listings(self) -> bool:
        return self.enable_listing_creation and not self.maintenance_mode

    def to_dict(self) -> dict:
        data = {
            "platformName": self.platform_name,
            "contactEmail": self.contact_email,
            "supportEmail": self.support_email,
            "supportPhone": self.support_phone,
            "siteDescription": self.site_description,
            "maxUploadSizeMB": self.max_upload_size_mb,
            "moderationThresholdDays": self.moderation_threshold_days,
            "maintenanceMode": self.maintenance_mode,
            "maintenanceMessage": self.maintenance_message,
            "enableUserSignups": self.enable_user_signups,
            "enableListingCreation": self.enable_listing_creation,
            "socialFacebook": self.social_facebook,
            "socialTwitter": self.social_twitter,
            "socialLinkedin": self.social_linkedin,
            "updatedAt": self.updated_at,
            "updatedBy": self.updated_by,
        }
        if self.trust_stats is not None:
            data["trustStats"] = self.trust_stats.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PlatformSettings":
        defaults = DEFAULT_SETTINGS
        stats = data.get("trustStats")
        return cls(
            platform_name=data.get("platformName", defaults.platform_name),
            contact_email=data.get("contactEmail", defaults.contact_email),
            support_email=data.get("supportEmail", defaults.support_email),
            support_phone=data.get("supportPhone", defaults.support_phone),
            site_description=data.get("siteDescription", defaults.site_description),
            max_upload_size_mb=data.get("maxUploadSizeMB", defaults.max_upload_size_mb),
            moderation_threshold_days=data.get(
                "moderationThresholdDays", defaults.moderation_threshold_days
            ),
            maintenance_mode=data.get("maintenanceMode", defaults.maintenance_mode),
            maintenance_message=data.get("maintenanceMessage", defaults.maintenance_message),
            enable_user_signups=data.get("enableUserSignups", defaults.enable_user_signups),
            enable_listing_creation=data.get(
                "enableListingCreation", defaults.enable_listing_creation
            ),
            social_facebook=data.get("socialFacebook", defaults.social_facebook),
            social_twitter=data.get("socialTwitter", defaults.social_twitter),
            social_linkedin=data.get("socialLinkedin", defaults.social_linkedin),
            trust_stats=TrustStats.from_dict(stats) if stats else None,
            updated_at=data.get("updatedAt"),
            updated_by=data.get("updatedBy"),
        )


DEFAULT_SETTINGS: Final[PlatformSettings] = PlatformSettings()


# =============================================================================
# Validation
# =============================================================================


def _is_number(value: Any) -> bool:
    """Finite int or float; bools, NaN and infinities are rejected."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    return math.isfinite(value)


def _check_string(min_len: int = 0, max_len: int = 1000, label: str = "Value") -> Callable[[Any], list[str]]:
    def check(value: Any) -> list[str]:
        if not isinstance(value, str):
            return [f"{label} must be text"]
        if len(value.strip()) < min_len:
            if min_len == 1:
                return [f"{label} is required"]
            return [f"{label} must be at least {min_len} characters"]
        if len(value) > max_len:
            return [f"{label} must be at most {max_len} characters"]
        return []
    return check


def _check_email(label: str) -> Callable[[Any], list[str]]:
    def check(value: Any) -> list[str]:
        if not isinstance(value, str) or not EMAIL_REGEX.match(value.strip()):
            return [f"Invalid {label}"]
        return []
    return check


def _check_url_or_empty(label: str) -> Callable[[Any], list[str]]:
    def check(value: Any) -> list[str]:
        if value == "":
            return []
        if not isinstance(value, str):
            return [f"Invalid {label} URL"]
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return [f"Invalid {label} URL"]
        return []
    return check


def _check_range(low: float, high: float, label: str) -> Callable[[Any], list[str]]:
    def check(value: Any) -> list[str]:
        if not _is_number(value):
            return [f"{label} must be a number"]
        if value < low:
            return [f"{label} must be at least {low:g}"]
        if value > high:
            return [f"{label} must be at most {high:g}"]
        return []
    return check


def _check_bool(label: str) -> Callable[[Any], list[str]]:
    def check(value: Any) -> list[str]:
        return [] if isinstance(value, bool) else [f"{label} must be true or false"]
    return check


def _check_trust_stats(value: Any) -> list[str]:
    if not isinstance(value, dict):
        return ["Trust stats must be an object"]
    errors = []
    for key in ("totalListings", "totalBuyers", "fraudCasesResolved"):
        if key not in value:
            errors.append(f"{key} is required")
        elif not _is_number(value[key]) or value[key] < 0 or value[key] != int(value[key]):
            errors.append(f"{key} must be a non-negative whole number")
    unknown = set(value) - {"totalListings", "totalBuyers", "fraudCasesResolved"}
    if unknown:
        errors.append(f"Unknown trust stats: {', '.join(sorted(unknown))}")
    return errors


SETTINGS_SCHEMA: Final[dict[str, Callable[[Any], list[str]]]] = {
    "platformName": _check_string(1, 100, "Platform name"),
    "contactEmail": _check_email("contact email"),
    "supportEmail": _check_email("support email"),
    "supportPhone": _check_string(0, 50, "Support phone"),
    "siteDescription": _check_string(10, 1000, "Description"),
    "maxUploadSizeMB": _check_range(1, 1000, "Max upload size (MB)"),
    "moderationThresholdDays": _check_range(1, 365, "Moderation threshold (days)"),
    "maintenanceMode": _check_bool("Maintenance mode"),
    "maintenanceMessage": _check_string(0, 500, "Maintenance message"),
    "enableUserSignups": _check_bool("Enable user signups"),
    "enableListingCreation": _check_bool("Enable listing creation"),
    "socialFacebook": _check_url_or_empty("Facebook"),
    "socialTwitter": _check_url_or_empty("Twitter"),
    "socialLinkedin": _check_url_or_empty("LinkedIn"),
    "trustStats": _check_trust_stats,
}


@dataclass(frozen=True)
class SettingsValidationResult:
    """Outcome of validating a settings patch."""

    field_errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.field_errors


def validate_settings_patch(patch: dict[str, Any]) -> SettingsValidationResult:
    """
    Check every field in a settings patch.

    Unknown fields and metadata fields (updatedAt, updatedBy) are rejected.
    """
    errors: dict[str, list[str]] = {}
    for key, value in patch.items():
        check = SETTINGS_SCHEMA.get(key)
        if check is None:
            errors[key] = [f"Unknown setting: {key}"]
            continue
        field_errors = check(value)
        if field_errors:
            errors[key] = field_errors
    return SettingsValidationResult(field_errors=errors)


# =============================================================================
# Service
# =============================================================================


class SettingsService:
    """Load, validate and save the platform settings document."""

    def __init__(self, store: DocumentStore, gate: AuthorizationGate, audit: AuditLogger):
        self._store = store
        self._gate = gate
        self._audit = audit

    def get(self) -> PlatformSettings:
        """Persisted settings, or DEFAULT_SETTINGS if none saved yet. Never writes."""
        data = self._store.get(ADMIN_CONFIG, SETTINGS_DOC_ID)
        if data is None:
            return DEFAULT_SETTINGS
        return PlatformSettings.from_dict(data)

    def update(self, credential: Optional[str], patch: dict[str, Any]) -> PlatformSettings:
        """
        Validate and apply a settings patch.

        Raises:
            Unauthenticated, Forbidden: Caller is not an admin
            ValidationError: Patch is invalid (field-level messages)
            DependencyUnavailable: Settings could not be saved
        """
        identity = self._gate.authorize(credential, ADMIN_ONLY)

        if not isinstance(patch, dict):
            raise InvalidArgument("Settings patch must be an object")

        result = validate_settings_patch(patch)
        if not result.valid:
            raise ValidationError("Validation failed", field_errors=result.field_errors)

        current = self.get().to_dict()
        changes = diff_fields(current, patch, fields=patch.keys())

        update = dict(patch)
        update["updatedAt"] = SERVER_TIMESTAMP
        update["updatedBy"] = identity.uid
        self._store.set(ADMIN_CONFIG, SETTINGS_DOC_ID, update, merge=True)

        if changes:
            self._audit.record(identity.uid, ACTION_UPDATE, ENTITY_SETTINGS, changes, SETTINGS_DOC_ID)
            logger.info("Settings updated by %s: %s", identity.uid, ", ".join(sorted(changes)))

        return self.get()
