"""
Authorization Gate - Session Verification and Role Checks

Every mutating entry point resolves its caller through the gate before
touching state. Mutating operations only ever receive the verified
Identity, never the raw credential.

Sessions:
- Tokens are signed with HMAC-SHA256: base64(json_payload).signature
- Payload carries uid, issue and expiry times
- Role and profile are read from the users collection, defaulting to BUYER
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Final, Iterable, Optional, Union

from core.moderation.errors import Forbidden, Unauthenticated
from core.moderation.schema import Identity, Role, utc_now
from core.moderation.store import USERS, DocumentStore


# =============================================================================
# Configuration
# =============================================================================

SESSION_COOKIE_NAME: Final[str] = "__session"
SESSION_DURATION_HOURS: Final[int] = 8

ADMIN_ONLY: Final[frozenset[Role]] = frozenset({Role.ADMIN})
ANY_AUTHENTICATED: Final[frozenset[Role]] = frozenset(Role)


# Generated once per process when SESSION_SECRET is unset
_EPHEMERAL_SECRET: Final[str] = secrets.token_hex(32)


def get_session_secret() -> str:
    """Get session secret key from environment."""
    # Development fallback: sessions won't persist across restarts
    return os.getenv("SESSION_SECRET") or _EPHEMERAL_SECRET


# =============================================================================
# Session Tokens
# =============================================================================


@dataclass(frozen=True)
class SessionClaims:
    """Decoded, signature-checked contents of a session token."""

    uid: str
    issued_at: datetime
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        return utc_now() > self.expires_at

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionClaims":
        return cls(
            uid=data["uid"],
            issued_at=datetime.fromisoformat(data["issued_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )


def _signature(payload_b64: str, secret: str) -> str:
    return hmac.new(secret.encode(), payload_b64.encode(), hashlib.sha256).hexdigest()


def create_session_token(
    uid: str,
    secret: str,
    duration_hours: int = SESSION_DURATION_HOURS,
) -> str:
    """Issue a signed session token for `uid`."""
    now = utc_now()
    claims = SessionClaims(uid=uid, issued_at=now, expires_at=now + timedelta(hours=duration_hours))
    payload = json.dumps(claims.to_dict(), separators=(",", ":"))
    payload_b64 = base64.urlsafe_b64encode(payload.encode()).decode()
    return f"{payload_b64}.{_signature(payload_b64, secret)}"


def decode_session_token(token: str, secret: str) -> Optional[SessionClaims]:
    """
    Verify and decode a signed session token.

    Returns SessionClaims if valid and not expired, None otherwise.
    """
    try:
        payload_b64, signature = token.rsplit(".", 1)

        if not hmac.compare_digest(signature, _signature(payload_b64, secret)):
            return None

        payload = base64.urlsafe_b64decode(payload_b64.encode()).decode()
        claims = SessionClaims.from_dict(json.loads(payload))

        if claims.is_expired:
            return None

        return claims

    except (ValueError, KeyError, TypeError, json.JSONDecodeError):
        return None


# =============================================================================
# Session Verifier (collaborator boundary)
# =============================================================================


class SessionVerifier(ABC):
    """Resolves an opaque credential to a verified Identity."""

    @abstractmethod
    def verify(self, credential: str) -> Identity:
        """
        Verify a credential.

        Raises:
            Unauthenticated: If the credential is invalid or expired.
        """


class SignedSessionVerifier(SessionVerifier):
    """Verifies signed session tokens and loads the caller's role from the store."""

    def __init__(self, store: DocumentStore, secret: Optional[str] = None):
        self._store = store
        self._secret = secret or get_session_secret()

    def verify(self, credential: str) -> Identity:
        claims = decode_session_token(credential, self._secret)
        if claims is None:
            raise Unauthenticated("Session is invalid or has expired. Please log in.")

        profile = self._store.get(USERS, claims.uid) or {}
        try:
            role = Role(profile.get("role") or Role.BUYER.value)
        except ValueError:
            role = Role.BUYER

        return Identity(
            uid=claims.uid,
            role=role,
            email=profile.get("email"),
            display_name=profile.get("displayName"),
        )


# =============================================================================
# Gate
# =============================================================================


class AuthorizationGate:
    """Single authorization check used by every mutating entry point."""

    def __init__(self, verifier: SessionVerifier):
        self._verifier = verifier

    def authorize(
        self,
        credential: Optional[str],
        required_roles: Union[Role, Iterable[Role]] = ANY_AUTHENTICATED,
    ) -> Identity:
        """
        Resolve a credential and check the caller's role.

        Args:
            credential: Opaque session credential (cookie or bearer value)
            required_roles: Role or roles allowed to proceed

        Returns:
            Verified Identity

        Raises:
            Unauthenticated: Missing, invalid or expired credential
            Forbidden: Caller's role is not in required_roles
        """
        if not credential:
            raise Unauthenticated()

        identity = self._verifier.verify(credential)

        allowed = {required_roles} if isinstance(required_roles, Role) else set(required_roles)
        if identity.role not in allowed:
            needed = ", ".join(sorted(r.value for r in allowed))
            raise Forbidden(f"Authorization required: only {needed} may perform this action.")

        return identity

    def identify(self, credential: Optional[str]) -> Optional[Identity]:
        """Resolve a credential if one is present, without failing the caller."""
        if not credential:
            return None
        try:
            return self._verifier.verify(credential)
        except Unauthenticated:
            return None
