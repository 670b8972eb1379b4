"""
Tests for Sessions and the Authorization Gate

Tests covering:
1. Signed session tokens (valid, tampered, expired, wrong secret)
2. Role lookup from the users collection
3. Gate: missing credential -> Unauthenticated, wrong role -> Forbidden
"""

import pytest

from core.moderation import (
    ADMIN_ONLY,
    AuthorizationGate,
    DocumentStore,
    Forbidden,
    Role,
    SignedSessionVerifier,
    Unauthenticated,
    create_session_token,
    decode_session_token,
)
from core.moderation.store import USERS


# =============================================================================
# Fixtures
# =============================================================================


SECRET = "test-session-secret"


@pytest.fixture
def store():
    store = DocumentStore()
    store.set(USERS, "admin-1", {"role": "ADMIN", "email": "admin@example.com", "displayName": "Ada"})
    store.set(USERS, "seller-1", {"role": "SELLER", "email": "seller@example.com"})
    store.set(USERS, "odd-1", {"role": "SUPERUSER"})
    return store


@pytest.fixture
def gate(store):
    return AuthorizationGate(SignedSessionVerifier(store, secret=SECRET))


def _token(uid, **kwargs):
    return create_session_token(uid, SECRET, **kwargs)


# =============================================================================
# Token Tests
# =============================================================================


class TestSessionTokens:
    """Test signing and decoding session tokens."""

    def test_valid_token_decodes(self):
        claims = decode_session_token(_token("seller-1"), SECRET)
        assert claims is not None
        assert claims.uid == "seller-1"
        assert claims.expires_at > claims.issued_at

    def test_wrong_secret_rejected(self):
        assert decode_session_token(_token("seller-1"), "other-secret") is None

    def test_tampered_signature_rejected(self):
        token = _token("seller-1")
        payload, signature = token.rsplit(".", 1)
        tampered = f"{payload}.{'0' * len(signature)}"
        assert decode_session_token(tampered, SECRET) is None

    def test_expired_token_rejected(self):
        token = _token("seller-1", duration_hours=-1)
        assert decode_session_token(token, SECRET) is None

    def test_garbage_rejected(self):
        assert decode_session_token("not-a-token", SECRET) is None


# =============================================================================
# Gate Tests
# =============================================================================


class TestAuthorizationGate:
    """Test the single authorization check."""

    def test_missing_credential_unauthenticated(self, gate):
        with pytest.raises(Unauthenticated):
            gate.authorize(None)
        with pytest.raises(Unauthenticated):
            gate.authorize("")

    def test_invalid_credential_unauthenticated(self, gate):
        with pytest.raises(Unauthenticated):
            gate.authorize("forged.token", ADMIN_ONLY)

    def test_admin_allowed(self, gate):
        identity = gate.authorize(_token("admin-1"), ADMIN_ONLY)
        assert identity.uid == "admin-1"
        assert identity.is_admin
        assert identity.email == "admin@example.com"
        assert identity.display_name == "Ada"

    def test_seller_forbidden_for_admin_action(self, gate):
        with pytest.raises(Forbidden):
            gate.authorize(_token("seller-1"), ADMIN_ONLY)

    def test_single_role_accepted(self, gate):
        identity = gate.authorize(_token("seller-1"), Role.SELLER)
        assert identity.role == Role.SELLER

    def test_unknown_user_is_buyer(self, gate):
        identity = gate.authorize(_token("new-user"))
        assert identity.role == Role.BUYER

    def test_unrecognised_role_is_buyer(self, gate):
        assert gate.authorize(_token("odd-1")).role == Role.BUYER
        with pytest.raises(Forbidden):
            gate.authorize(_token("odd-1"), ADMIN_ONLY)

    def test_identify_never_raises(self, gate):
        assert gate.identify(None) is None
        assert gate.identify("forged.token") is None
        assert gate.identify(_token("seller-1")).uid == "seller-1"
