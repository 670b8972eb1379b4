"""
Tests for Platform Settings

Tests covering:
1. Defaults returned without writing
2. Field-level validation (nothing persisted on failure)
3. Diffed, audited updates
4. Admin-only writes
"""

import pytest

from core.moderation import (
    DEFAULT_SETTINGS,
    AuditLogger,
    AuthorizationGate,
    DependencyUnavailable,
    DocumentStore,
    Forbidden,
    InvalidArgument,
    SettingsService,
    SignedSessionVerifier,
    Unauthenticated,
    ValidationError,
    create_session_token,
    validate_settings_patch,
)
from core.moderation.audit import ACTION_UPDATE, ENTITY_SETTINGS
from core.moderation.store import ADMIN_CONFIG, AUDIT_LOGS, USERS


# =============================================================================
# Fixtures
# =============================================================================


SECRET = "test-session-secret"


@pytest.fixture
def store():
    store = DocumentStore()
    store.set(USERS, "admin-1", {"role": "ADMIN"})
    store.set(USERS, "seller-1", {"role": "SELLER"})
    return store


@pytest.fixture
def service(store):
    gate = AuthorizationGate(SignedSessionVerifier(store, secret=SECRET))
    return SettingsService(store, gate, AuditLogger(store))


@pytest.fixture
def admin_token():
    return create_session_token("admin-1", SECRET)


# =============================================================================
# Validation Tests
# =============================================================================


class TestValidateSettingsPatch:
    """Test field-level settings validation."""

    def test_valid_patch(self):
        result = validate_settings_patch(
            {
                "platformName": "Shamba Trust",
                "contactEmail": "hello@shambatrust.co.ke",
                "maxUploadSizeMB": 25,
                "socialTwitter": "",
                "socialFacebook": "https://facebook.com/shambatrust",
                "trustStats": {"totalListings": 10, "totalBuyers": 4, "fraudCasesResolved": 0},
            }
        )
        assert result.valid

    def test_invalid_email(self):
        result = validate_settings_patch({"contactEmail": "not-an-email"})
        assert list(result.field_errors) == ["contactEmail"]

    def test_out_of_range_numbers(self):
        result = validate_settings_patch({"maxUploadSizeMB": 0, "moderationThresholdDays": 400})
        assert set(result.field_errors) == {"maxUploadSizeMB", "moderationThresholdDays"}

    def test_short_description(self):
        result = validate_settings_patch({"siteDescription": "Too short"})
        assert "siteDescription" in result.field_errors

    def test_bad_social_url(self):
        result = validate_settings_patch({"socialLinkedin": "linkedin"})
        assert "socialLinkedin" in result.field_errors

    def test_unknown_and_metadata_fields_rejected(self):
        result = validate_settings_patch({"theme": "dark", "updatedBy": "someone"})
        assert set(result.field_errors) == {"theme", "updatedBy"}

    def test_boolean_must_be_boolean(self):
        result = validate_settings_patch({"maintenanceMode": "yes"})
        assert "maintenanceMode" in result.field_errors

    def test_negative_trust_stats(self):
        result = validate_settings_patch(
            {"trustStats": {"totalListings": -1, "totalBuyers": 0, "fraudCasesResolved": 0}}
        )
        assert "trustStats" in result.field_errors

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    @pytest.mark.parametrize("field", ["maxUploadSizeMB", "moderationThresholdDays"])
    def test_non_finite_numbers_rejected(self, field, value):
        result = validate_settings_patch({field: value})
        assert list(result.field_errors) == [field]

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    @pytest.mark.parametrize("key", ["totalListings", "totalBuyers", "fraudCasesResolved"])
    def test_non_finite_trust_stats_rejected(self, key, value):
        stats = {"totalListings": 10, "totalBuyers": 4, "fraudCasesResolved": 0}
        stats[key] = value

        result = validate_settings_patch({"trustStats": stats})

        assert result.field_errors["trustStats"] == [f"{key} must be a non-negative whole number"]


# =============================================================================
# Service Tests
# =============================================================================


class TestSettingsService:
    """Test reading and updating settings."""

    def test_defaults_without_write(self, service, store):
        assert service.get() == DEFAULT_SETTINGS
        assert store.get(ADMIN_CONFIG, "settings") is None

    def test_update_persists_and_audits(self, service, store, admin_token):
        settings = service.update(admin_token, {"platformName": "Shamba Trust", "maintenanceMode": True})

        assert settings.platform_name == "Shamba Trust"
        assert settings.maintenance_mode is True
        assert settings.updated_by == "admin-1"
        assert settings.updated_at is not None

        entries = AuditLogger(store).entries(entity_type=ENTITY_SETTINGS)
        assert len(entries) == 1
        assert entries[0].action == ACTION_UPDATE
        assert entries[0].entity_id == "settings"
        assert entries[0].changes == {
            "platformName": {"old": "Kenya Land Trust", "new": "Shamba Trust"},
            "maintenanceMode": {"old": False, "new": True},
        }

    def test_partial_update_keeps_other_fields(self, service, admin_token):
        service.update(admin_token, {"supportPhone": "+254 700 000000"})
        settings = service.update(admin_token, {"maxUploadSizeMB": 20})

        assert settings.support_phone == "+254 700 000000"
        assert settings.max_upload_size_mb == 20
        assert settings.contact_email == DEFAULT_SETTINGS.contact_email

    def test_unchanged_patch_writes_no_audit(self, service, store, admin_token):
        service.update(admin_token, {"platformName": DEFAULT_SETTINGS.platform_name})
        assert store.count(AUDIT_LOGS) == 0

    def test_invalid_email_leaves_state_unchanged(self, service, store, admin_token):
        with pytest.raises(ValidationError) as exc_info:
            service.update(admin_token, {"contactEmail": "nope", "platformName": "Shamba Trust"})

        assert "contactEmail" in exc_info.value.field_errors
        assert exc_info.value.to_dict()["errors"]["contactEmail"]
        assert store.get(ADMIN_CONFIG, "settings") is None
        assert store.count(AUDIT_LOGS) == 0

    def test_non_finite_number_leaves_state_unchanged(self, service, store, admin_token):
        with pytest.raises(ValidationError) as exc_info:
            service.update(admin_token, {"maxUploadSizeMB": float("nan")})

        assert "maxUploadSizeMB" in exc_info.value.field_errors
        assert store.get(ADMIN_CONFIG, "settings") is None
        assert store.count(AUDIT_LOGS) == 0

    def test_store_failure_leaves_settings_unwritten(self, service, store, admin_token, monkeypatch):
        original = DocumentStore._apply_write

        def failing(self, collections, op, collection, doc_id, data, now):
            if collection == ADMIN_CONFIG:
                raise OSError("disk full")
            return original(self, collections, op, collection, doc_id, data, now)

        monkeypatch.setattr(DocumentStore, "_apply_write", failing)

        with pytest.raises(DependencyUnavailable):
            service.update(admin_token, {"platformName": "Shamba Trust"})

        assert store.get(ADMIN_CONFIG, "settings") is None
        assert store.count(AUDIT_LOGS) == 0
        assert service.get() == DEFAULT_SETTINGS

    def test_non_object_patch(self, service, admin_token):
        with pytest.raises(InvalidArgument):
            service.update(admin_token, ["platformName"])

    def test_seller_forbidden(self, service, store):
        with pytest.raises(Forbidden):
            service.update(create_session_token("seller-1", SECRET), {"platformName": "Mine"})
        assert store.get(ADMIN_CONFIG, "settings") is None

    def test_anonymous_unauthenticated(self, service):
        with pytest.raises(Unauthenticated):
            service.update(None, {"platformName": "Mine"})

    def test_accepts_new_listings(self, service, admin_token):
        assert service.get().accepts_new_listings
        service.update(admin_token, {"enableListingCreation": False})
        assert not service.get().accepts_new_listings
