"""
Tests for the HTTP API

Tests covering:
1. Healthchecks
2. Error mapping (401 / 403 / 400 / 404 / 409 with plain-English bodies)
3. Settings, bulk status and report routes end to end
4. Session credential from cookie or bearer header
"""

import pytest
from fastapi.testclient import TestClient

from core.moderation import (
    SESSION_COOKIE_NAME,
    DocumentStore,
    Listing,
    ListingStatus,
    create_session_token,
)
from core.moderation.store import ADMIN_CONFIG, AUDIT_LOGS, EMAIL_QUEUE, LISTING_REPORTS, LISTINGS, USERS
from utils.config import Config
from web.app import create_app
from web.session import get_store


# =============================================================================
# Fixtures
# =============================================================================


SECRET = "test-session-secret"


@pytest.fixture
def store():
    store = DocumentStore()
    store.set(USERS, "admin-1", {"role": "ADMIN"})
    store.set(USERS, "seller-1", {"role": "SELLER", "verified": True})
    store.set(USERS, "buyer-1", {"role": "BUYER", "email": "buyer@example.com", "displayName": "Amina"})
    return store


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.setenv("SESSION_SECRET", SECRET)
    app = create_app(Config(debug=True, allowed_origins=[]))
    app.dependency_overrides[get_store] = lambda: store
    return TestClient(app)


def _auth(uid):
    return {"Authorization": f"Bearer {create_session_token(uid, SECRET)}"}


def _save_listing(store, listing_id, **overrides):
    fields = dict(
        listing_id=listing_id,
        owner_id="seller-1",
        title="Eighth acre in Juja",
        location="Juja",
        price=850_000,
        description="Near the university, ready title",
    )
    fields.update(overrides)
    store.set(LISTINGS, listing_id, Listing(**fields).to_dict())


# =============================================================================
# Health Tests
# =============================================================================


class TestHealth:
    """Test dependency-free probes."""

    def test_root(self, client):
        assert client.get("/").json() == {"status": "ok"}

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


# =============================================================================
# Settings Route Tests
# =============================================================================


class TestSettingsRoutes:
    """Test GET/PATCH /settings."""

    def test_get_defaults(self, client, store):
        response = client.get("/settings")
        assert response.status_code == 200
        assert response.json()["data"]["platformName"] == "Kenya Land Trust"
        assert store.count("adminConfig") == 0

    def test_patch_requires_session(self, client):
        response = client.patch("/settings", json={"platformName": "Mine"})
        assert response.status_code == 401
        assert response.json()["status"] == "error"

    def test_patch_forbidden_for_seller(self, client):
        response = client.patch("/settings", json={"platformName": "Mine"}, headers=_auth("seller-1"))
        assert response.status_code == 403

    def test_patch_invalid_field(self, client):
        response = client.patch("/settings", json={"contactEmail": "nope"}, headers=_auth("admin-1"))
        assert response.status_code == 400
        assert "contactEmail" in response.json()["errors"]

    def test_patch_success(self, client, store):
        response = client.patch(
            "/settings", json={"moderationThresholdDays": 3}, headers=_auth("admin-1")
        )
        assert response.status_code == 200
        assert response.json()["data"]["moderationThresholdDays"] == 3
        assert store.count(AUDIT_LOGS) == 1

    def test_patch_nan_is_400(self, client, store):
        response = client.patch(
            "/settings",
            content='{"maxUploadSizeMB": NaN}',
            headers={**_auth("admin-1"), "content-type": "application/json"},
        )
        assert response.status_code == 400
        assert store.get(ADMIN_CONFIG, "settings") is None


# =============================================================================
# Status Route Tests
# =============================================================================


class TestStatusRoutes:
    """Test single and bulk status routes."""

    def test_bulk_empty_list_is_400(self, client):
        response = client.post("/listings/bulk-status", json={"listingIds": [], "status": "approved"})
        assert response.status_code == 400

    def test_bulk_missing_ids_is_400(self, client):
        response = client.post("/listings/bulk-status", json={"status": "approved"})
        assert response.status_code == 400

    def test_bulk_without_session_is_401(self, client, store):
        _save_listing(store, "LST-1")
        response = client.post("/listings/bulk-status", json={"listingIds": ["LST-1"], "status": "approved"})
        assert response.status_code == 401

    def test_bulk_approve(self, client, store):
        _save_listing(store, "LST-1")
        _save_listing(store, "LST-2")

        response = client.post(
            "/listings/bulk-status",
            json={"listingIds": ["LST-1", "LST-2"], "status": "approved"},
            headers=_auth("admin-1"),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "success"
        assert response.json()["updated"] == 2
        assert store.get(LISTINGS, "LST-2")["status"] == "approved"
        assert store.count(AUDIT_LOGS) == 2

    def test_invalid_transition_is_409(self, client, store):
        _save_listing(store, "LST-1", status=ListingStatus.REJECTED)
        response = client.post(
            "/listings/LST-1/status", json={"status": "approved"}, headers=_auth("admin-1")
        )
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

    def test_unknown_listing_is_404(self, client):
        response = client.post(
            "/listings/LST-NOPE/status", json={"status": "approved"}, headers=_auth("admin-1")
        )
        assert response.status_code == 404

    def test_session_cookie_accepted(self, client, store):
        _save_listing(store, "LST-1")
        client.cookies.set(SESSION_COOKIE_NAME, create_session_token("admin-1", SECRET))

        response = client.post("/listings/LST-1/status", json={"status": "rejected"})

        assert response.status_code == 200
        assert response.json()["listing"]["status"] == "rejected"


# =============================================================================
# Listing and Report Route Tests
# =============================================================================


class TestListingRoutes:
    """Test seller and buyer routes."""

    def test_create_is_pending(self, client):
        response = client.post(
            "/listings",
            json={
                "title": "Plot in Kiambu",
                "location": "Kiambu",
                "price": 1_200_000,
                "landType": "Residential",
                "evidence": [{"name": "deed.pdf", "type": "title_deed"}],
                "badgeSuggestion": {"badge": "Gold", "reason": "Looks complete"},
            },
            headers=_auth("seller-1"),
        )

        assert response.status_code == 201
        listing = response.json()["listing"]
        assert listing["status"] == "pending"
        assert listing["badge"] is None
        assert listing["landType"] == "Residential"
        assert listing["evidence"][0]["type"] == "title_deed"

    def test_create_with_nan_price_is_400(self, client, store):
        response = client.post(
            "/listings",
            content='{"title": "Plot in Kiambu", "location": "Kiambu", "price": NaN}',
            headers={**_auth("seller-1"), "content-type": "application/json"},
        )
        assert response.status_code == 400
        assert store.count(LISTINGS) == 0

    def test_browse_hides_pending(self, client, store):
        _save_listing(store, "LST-1")
        response = client.get("/listings")
        assert response.status_code == 200
        assert response.json()["listings"] == []

    def test_get_pending_is_404_for_public(self, client, store):
        _save_listing(store, "LST-1")
        assert client.get("/listings/LST-1").status_code == 404
        assert client.get("/listings/LST-1", headers=_auth("seller-1")).status_code == 200


class TestReportRoutes:
    """Test POST /reports."""

    def test_anonymous_report(self, client, store):
        response = client.post("/reports", json={"listingId": "LST-1", "reason": "Fake photos"})

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert store.count(LISTING_REPORTS) == 1
        assert store.count(EMAIL_QUEUE) == 0

    def test_signed_in_report_queues_confirmation(self, client, store):
        response = client.post(
            "/reports",
            json={"listingId": "LST-1", "reason": "Seller asked for deposit upfront"},
            headers=_auth("buyer-1"),
        )

        assert response.status_code == 200
        report = store.list_all(LISTING_REPORTS)[0]
        assert report["reporter"]["uid"] == "buyer-1"
        assert store.count(EMAIL_QUEUE) == 1

    def test_missing_reason_is_400(self, client):
        response = client.post("/reports", json={"listingId": "LST-1"})
        assert response.status_code == 400
        assert "reason" in response.json()["errors"]
