"""
Reauthentication coordinator.

Every read, refresh, and ticket install goes through one process-wide
asyncio.Lock, so at most one refresh is ever in flight and no caller sees
a credential while it is being replaced. The gate is held for the whole
request, including backoff sleeps between failed refresh attempts.

Request flow:
1. Forced refresh expires the held credential (and its cache record)
2. A usable held credential is returned as is
3. A non-expired cache record is adopted
4. Otherwise the provider is asked again, with bounded incremental backoff
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from authcycle.auth.credentials import (
    Credential,
    CredentialError,
    InteractiveStepRequiredError,
    ProviderError,
    SessionTicket,
    TokenRefreshError,
)
from authcycle.auth.providers import LoginProvider, create_login_provider
from authcycle.auth.store import CredentialStore
from authcycle.auth.validity import ValidityPolicy

if TYPE_CHECKING:
    from authcycle.config.settings import AuthcycleSettings

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_STEP = 5.0
DEFAULT_BACKOFF_CAP = 60.0


# Shared gate instance
_reauth_gate: asyncio.Lock | None = None


def get_reauth_gate() -> asyncio.Lock:
    """
    Get the process-wide reauthentication gate.

    The lock binds to the event loop that first contends for it. Call
    reset_reauth_gate() before reusing it under another loop, e.g. a second
    asyncio.run().
    """
    global _reauth_gate
    if _reauth_gate is None:
        _reauth_gate = asyncio.Lock()
    return _reauth_gate


def reset_reauth_gate() -> None:
    """Reset the process-wide gate. Only safe while nothing holds it."""
    global _reauth_gate
    _reauth_gate = None


class ReauthCoordinator:
    """
    Owns the held credential and serializes all work on it.

    The held credential and the cache record are independent copies,
    reconciled only when loading from or saving to the store.
    """

    def __init__(
        self,
        provider: LoginProvider,
        store: CredentialStore,
        policy: ValidityPolicy | None = None,
        *,
        gate: asyncio.Lock | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_step: float = DEFAULT_BACKOFF_STEP,
        backoff_cap: float = DEFAULT_BACKOFF_CAP,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            provider: Identity backend used to obtain fresh credentials.
            store: Local credential cache.
            policy: Validity rules. Defaults to a 10 minute ticket skew.
            gate: Lock to serialize on. Defaults to the process-wide gate.
            max_attempts: Refresh attempts before giving up.
            backoff_step: Seconds added to the backoff after each failed attempt.
            backoff_cap: Upper bound for a single backoff sleep.
            sleep: Awaitable used for backoff sleeps.
        """
        self._provider = provider
        self._store = store
        self._policy = policy or ValidityPolicy()
        self._gate = gate if gate is not None else get_reauth_gate()
        self._max_attempts = max_attempts
        self._backoff_step = backoff_step
        self._backoff_cap = backoff_cap
        self._sleep = sleep
        self._credential: Credential | None = None

    @classmethod
    def from_settings(
        cls,
        settings: AuthcycleSettings,
        provider: LoginProvider | None = None,
        **kwargs: Any,
    ) -> ReauthCoordinator:
        """
        Build a coordinator from settings.

        Args:
            settings: Loaded settings.
            provider: Override for the provider selected by settings.auth_type.
            **kwargs: Extra keyword arguments for the constructor (gate, sleep).
        """
        refresh = settings.refresh
        return cls(
            provider or create_login_provider(settings),
            CredentialStore(settings.cache.directory),
            ValidityPolicy(skew=timedelta(minutes=refresh.ticket_skew_minutes)),
            max_attempts=refresh.max_attempts,
            backoff_step=refresh.backoff_step_seconds,
            backoff_cap=refresh.backoff_cap_seconds,
            **kwargs,
        )

    @property
    def credential(self) -> Credential | None:
        """The currently held credential."""
        return self._credential

    @property
    def provider(self) -> LoginProvider:
        return self._provider

    @property
    def policy(self) -> ValidityPolicy:
        return self._policy

    async def get_valid_credential(
        self,
        force_refresh: bool = False,
        use_cache: bool = False,
    ) -> Credential:
        """
        Get a usable credential, refreshing it if needed.

        Args:
            force_refresh: Treat the held credential as expired.
            use_cache: Read from and write to the local credential cache.

        Returns:
            A usable Credential.

        Raises:
            InteractiveStepRequiredError: If the provider needs a manual login step.
            TokenRefreshError: If every refresh attempt failed with a CredentialError.
        """
        async with self._gate:
            if force_refresh:
                logger.info("credential_refresh_forced", use_cache=use_cache)
                if self._credential is not None:
                    self._credential.expire()
                if use_cache:
                    self._delete_cached()

            if self._policy.is_usable(self._credential):
                return self._credential

            if use_cache:
                cached = self._store.load(self._provider.user_id, self._provider.provider_id)
                if cached is not None and not self._policy.needs_refresh(cached):
                    logger.info("credential_loaded_from_cache", provider=self._provider.name)
                    self._credential = cached
                    return cached

            await self._reauthenticate(use_cache)
            return self._credential

    async def install_session_ticket(self, ticket: SessionTicket | None) -> None:
        """Attach a freshly issued session ticket to the held credential, if any."""
        async with self._gate:
            if self._credential is not None:
                self._credential.session_ticket = ticket
                logger.debug("session_ticket_installed", identity=self._credential.identity)

    async def invalidate(self, use_cache: bool = False) -> None:
        """Drop the held credential and, optionally, its cache record."""
        async with self._gate:
            if use_cache:
                self._delete_cached()
            self._credential = None
            logger.info("credential_invalidated", provider=self._provider.name)

    def _delete_cached(self) -> None:
        identity = self._credential.identity if self._credential else self._provider.user_id
        self._store.delete(identity, self._provider.provider_id)

    async def _reauthenticate(self, use_cache: bool) -> None:
        if not self._policy.needs_refresh(self._credential):
            return

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_incrementing(
                start=self._backoff_step,
                increment=self._backoff_step,
                max=self._backoff_cap,
            ),
            retry=(
                retry_if_exception_type(CredentialError)
                & retry_if_not_exception_type(InteractiveStepRequiredError)
            ),
            before_sleep=self._log_retry,
            sleep=self._sleep,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    await self._refresh_once(use_cache)
        except RetryError as e:
            logger.error(
                "credential_refresh_exhausted",
                provider=self._provider.name,
                attempts=self._max_attempts,
            )
            raise TokenRefreshError("Error refreshing access token.") from e.last_attempt.exception()
        except InteractiveStepRequiredError as e:
            logger.error(
                "credential_refresh_needs_interaction",
                provider=self._provider.name,
                error=str(e),
            )
            raise

    async def _refresh_once(self, use_cache: bool) -> None:
        # A refresh always invalidates the on-disk copy first
        if use_cache:
            self._delete_cached()

        try:
            self._credential = await self._provider.obtain_credential()
        except InteractiveStepRequiredError:
            raise
        except CredentialError as e:
            logger.warning(
                "credential_refresh_attempt_failed",
                provider=self._provider.name,
                error=str(e),
            )
            raise

        if self._policy.needs_refresh(self._credential):
            raise ProviderError(f"{self._provider.name} returned an unusable credential")

        logger.info("credential_refreshed", provider=self._provider.name)
        if use_cache:
            try:
                self._store.save(self._credential)
            except OSError as e:
                logger.warning(
                    "credential_cache_save_failed",
                    provider=self._provider.name,
                    error=str(e),
                )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "credential_refresh_retry_scheduled",
            provider=self._provider.name,
            attempt=retry_state.attempt_number,
            sleep_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        )
