"""
Pytest fixtures and configuration for the authcycle test suite.
"""

import asyncio
from datetime import timedelta

import pytest

from authcycle.auth.coordinator import ReauthCoordinator, reset_reauth_gate
from authcycle.auth.credentials import Credential, ProviderId, SessionTicket, utc_now
from authcycle.auth.providers import LoginProvider
from authcycle.auth.store import CredentialStore
from authcycle.auth.validity import ValidityPolicy
from authcycle.config.settings import reset_settings

# ============================================================================
# Core Fixtures
# ============================================================================


class FakeClock:
    """Settable clock, anchored at the real current time."""

    def __init__(self):
        self.now = utc_now()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)

    def ms_from_now(self, **kwargs):
        return int((self.now + timedelta(**kwargs)).timestamp() * 1000)


@pytest.fixture(autouse=True)
def _isolated_globals():
    """Give every test a fresh reauth gate and settings cache."""
    reset_reauth_gate()
    reset_settings()
    yield
    reset_reauth_gate()
    reset_settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_dir(tmp_path):
    """Cache directory that does not exist yet."""
    return tmp_path / "Cache"


@pytest.fixture
def store(cache_dir, clock):
    return CredentialStore(cache_dir, clock=clock)


@pytest.fixture
def policy(clock):
    return ValidityPolicy(clock=clock)


@pytest.fixture
def sleeps():
    """Backoff durations requested by the coordinator."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(seconds):
        sleeps.append(seconds)

    return _sleep


# ============================================================================
# Credential Fixtures
# ============================================================================


@pytest.fixture
def make_credential(clock):
    """Build credentials relative to the fake clock."""

    def _make(
        identity="ash@example.com",
        provider_id=ProviderId.GOOGLE,
        token="ya29.test-token",
        expires_in=timedelta(hours=1),
        ticket_expires_in=None,
    ):
        credential = Credential(
            identity=identity,
            provider_id=provider_id,
            token=token,
            expires_at=clock.now + expires_in if expires_in is not None else None,
        )
        if ticket_expires_in is not None:
            credential.session_ticket = SessionTicket(
                expire_timestamp_ms=int((clock.now + ticket_expires_in).timestamp() * 1000),
                start=b"start",
                end=b"end",
            )
        return credential

    return _make


# ============================================================================
# Provider Fixtures
# ============================================================================


class ScriptedLoginProvider(LoginProvider):
    """
    Login provider replaying a script of outcomes.

    Each call pops the next outcome: a Credential is returned, an exception
    is raised. The last outcome repeats once the script runs out.
    """

    def __init__(self, outcomes, user_id="ash@example.com", provider_id=ProviderId.GOOGLE, delay=0.0):
        self._outcomes = list(outcomes)
        self._user_id = user_id
        self._provider_id = provider_id
        self._delay = delay
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self.on_call = None

    @property
    def provider_id(self):
        return self._provider_id

    @property
    def user_id(self):
        return self._user_id

    async def obtain_credential(self):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.on_call is not None:
                self.on_call(self.calls)
            await asyncio.sleep(self._delay)

            outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
            if isinstance(outcome, BaseException):
                raise outcome
            # Hand out a copy, the coordinator owns what it holds
            return Credential(
                identity=outcome.identity,
                provider_id=outcome.provider_id,
                token=outcome.token,
                expires_at=outcome.expires_at,
            )
        finally:
            self.active -= 1


@pytest.fixture
def scripted_provider():
    return ScriptedLoginProvider


@pytest.fixture
def make_coordinator(store, policy, fake_sleep):
    """Build a coordinator over the test store, policy, and recording sleep."""

    def _make(provider, **kwargs):
        kwargs.setdefault("sleep", fake_sleep)
        return ReauthCoordinator(provider, store, policy, **kwargs)

    return _make
