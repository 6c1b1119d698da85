"""
Credential data model for authcycle.

This module defines the two layered credentials the client works with:
- Credential: the long-lived access token issued by an identity provider
- SessionTicket: the short-lived ticket the remote service embeds after a handshake

It also defines the error taxonomy shared by the rest of the auth package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


# Expiry assigned to force-expired credentials
EXPIRED_AT = datetime.min.replace(tzinfo=UTC)


class CredentialError(Exception):
    """Base class for credential acquisition failures."""

    pass


class ProviderError(CredentialError):
    """Raised by a login provider when it cannot produce a credential."""

    pass


class InteractiveStepRequiredError(ProviderError):
    """Raised when the identity provider demands a manual browser step."""

    pass


class TokenRefreshError(CredentialError):
    """Raised when the refresh loop gives up after its last attempt."""

    pass


class ConfigurationError(CredentialError):
    """Raised when auth settings are invalid or incomplete."""

    pass


class ProviderId(str, Enum):
    """Identity provider kinds."""

    GOOGLE = "google"
    PTC = "ptc"


@dataclass
class SessionTicket:
    """Short-lived proof of an active handshake with the remote service."""

    expire_timestamp_ms: int
    start: bytes = b""
    end: bytes = b""

    @property
    def expires_at(self) -> datetime | None:
        """Expiry as a datetime, or None if the timestamp is out of datetime range."""
        try:
            return datetime.fromtimestamp(self.expire_timestamp_ms / 1000, UTC)
        except (ValueError, OverflowError, OSError):
            return None


@dataclass
class Credential:
    """Access token record with an optional embedded session ticket."""

    identity: str
    provider_id: ProviderId
    token: str = ""
    expires_at: datetime | None = None
    session_ticket: SessionTicket | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        self.provider_id = ProviderId(self.provider_id)

    @property
    def is_expired(self) -> bool:
        """Check if the token is past its expiry. Tokens without one never expire."""
        return self.is_expired_at(utc_now())

    def is_expired_at(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return now > self.expires_at

    def expire(self) -> None:
        """Force the credential into the expired state, dropping its session ticket."""
        self.expires_at = EXPIRED_AT
        self.session_ticket = None

    def to_record(self) -> dict[str, Any]:
        """
        Serialize the persisted subset of the credential.

        The session ticket is never part of the record.
        """
        return {
            "identity": self.identity,
            "provider_id": self.provider_id.value,
            "token": self.token,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Credential:
        """
        Build a credential from a stored record.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If the provider id or expiry cannot be parsed.
        """
        expires_at = None
        if data.get("expires_at"):
            expires_at = datetime.fromisoformat(data["expires_at"].replace("Z", "+00:00"))
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=UTC)

        return cls(
            identity=data["identity"],
            provider_id=ProviderId(data["provider_id"]),
            token=data.get("token") or "",
            expires_at=expires_at,
        )
