"""
Validity rules for held credentials.

A credential is usable when it carries a session ticket that expires
comfortably in the future, or failing that, a non-empty access token that
has not expired yet. Tickets inside the skew window are dropped so the
token check decides instead.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from authcycle.auth.credentials import Credential, utc_now

logger = structlog.get_logger(__name__)

DEFAULT_SKEW = timedelta(minutes=10)


class ValidityPolicy:
    """Pure decision logic over a credential snapshot and the current time."""

    def __init__(
        self,
        skew: timedelta = DEFAULT_SKEW,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize the policy.

        Args:
            skew: Safety margin before real expiry at which a ticket is discarded.
            clock: Returns the current aware UTC time.
        """
        self._skew = skew
        self._clock = clock

    @property
    def skew(self) -> timedelta:
        return self._skew

    def ticket_near_expiry(self, credential: Credential | None) -> bool:
        """
        Check if the held ticket expires within the skew window.

        A ticket is trustworthy only if its expiry is more than the skew
        window in the future. Credentials without a ticket are not near expiry.
        """
        if credential is None or credential.session_ticket is None:
            return False
        # Compared in milliseconds, tickets carry arbitrary 64-bit timestamps
        deadline_ms = int((self._clock() + self._skew).timestamp() * 1000)
        return credential.session_ticket.expire_timestamp_ms <= deadline_ms

    def is_ticket_trustworthy(self, credential: Credential | None) -> bool:
        """Check if the credential holds a ticket that is safe to use on its own."""
        return (
            credential is not None
            and credential.session_ticket is not None
            and not self.ticket_near_expiry(credential)
        )

    def is_usable(self, credential: Credential | None) -> bool:
        """
        Decide whether a credential can be used without refreshing.

        Clears a ticket that is about to expire from the credential so that
        the raw token decides instead.
        """
        if credential is None:
            return False

        if self.ticket_near_expiry(credential):
            logger.debug("session_ticket_discarded", identity=credential.identity)
            credential.session_ticket = None

        if credential.session_ticket is not None:
            return True

        return bool(credential.token) and not credential.is_expired_at(self._clock())

    def needs_refresh(self, credential: Credential | None) -> bool:
        """Check if the provider must be asked for a new credential."""
        return (
            credential is None
            or not credential.token
            or credential.is_expired_at(self._clock())
        )
