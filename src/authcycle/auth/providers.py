"""
Login providers.

A login provider is the only thing the coordinator needs from an identity
backend: given the configured account, asynchronously produce a fresh
credential or fail with a ProviderError. Two backends are supported and
one is picked once from settings by create_login_provider().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from authcycle.auth.credentials import (
    ConfigurationError,
    Credential,
    InteractiveStepRequiredError,
    ProviderError,
    ProviderId,
    utc_now,
)

if TYPE_CHECKING:
    from authcycle.config.settings import AuthcycleSettings

logger = structlog.get_logger(__name__)


class LoginProvider(ABC):
    """Capability interface implemented by identity backends."""

    @property
    @abstractmethod
    def provider_id(self) -> ProviderId:
        """Provider kind, part of the cache key."""
        ...

    @property
    @abstractmethod
    def user_id(self) -> str:
        """Account identity the provider logs in as."""
        ...

    @property
    def name(self) -> str:
        """Provider name for logging."""
        return f"{self.provider_id.value}:{self.user_id}"

    @abstractmethod
    async def obtain_credential(self) -> Credential:
        """
        Obtain a fresh credential.

        Returns:
            Newly issued Credential.

        Raises:
            InteractiveStepRequiredError: If the user has to finish a manual step.
            ProviderError: On any other failure.
        """
        ...


class TokenEndpointLoginProvider(LoginProvider):
    """
    Exchanges account credentials for an access token at a token endpoint.

    Expected response body:
    {
        "access_token": "...",
        "expires_in": 3600        // optional, omitted for non-expiring tokens
    }
    """

    PROVIDER_ID: ProviderId

    def __init__(
        self,
        username: str,
        password: str,
        token_url: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the provider.

        Args:
            username: Account username.
            password: Account password.
            token_url: Token endpoint of the identity backend.
            timeout: HTTP timeout in seconds.
            http_client: Optional shared client. A short-lived one is used otherwise.
        """
        self._username = username
        self._password = password
        self._token_url = token_url
        self._timeout = timeout
        self._http_client = http_client

    @property
    def provider_id(self) -> ProviderId:
        return self.PROVIDER_ID

    @property
    def user_id(self) -> str:
        return self._username

    def _form_data(self) -> dict[str, str]:
        return {
            "grant_type": "password",
            "username": self._username,
            "password": self._password,
        }

    def _check_response(self, response: httpx.Response, data: dict[str, Any]) -> None:
        """Hook for backend specific error detection. Runs before the status check."""

    async def _post(self) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(self._token_url, data=self._form_data())

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self._token_url, data=self._form_data())

    async def obtain_credential(self) -> Credential:
        """Log in at the token endpoint."""
        try:
            response = await self._post()
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} login request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        self._check_response(response, data)

        if response.is_error:
            detail = data.get("error_description") or data.get("error") or response.reason_phrase
            raise ProviderError(
                f"{self.name} login failed with status {response.status_code}: {detail}"
            )

        token = data.get("access_token")
        if not token:
            raise ProviderError(f"{self.name} login response did not include a token")

        expires_at = None
        if data.get("expires_in"):
            try:
                expires_at = utc_now() + timedelta(seconds=float(data["expires_in"]))
            except (TypeError, ValueError) as e:
                raise ProviderError(
                    f"{self.name} returned an invalid expires_in: {data['expires_in']!r}"
                ) from e

        logger.debug("provider_credential_obtained", provider=self.name)
        return Credential(
            identity=self._username,
            provider_id=self.provider_id,
            token=token,
            expires_at=expires_at,
        )


class GoogleLoginProvider(TokenEndpointLoginProvider):
    """Google account login."""

    PROVIDER_ID = ProviderId.GOOGLE

    BROWSER_ERRORS = ("NeedsBrowser",)
    BROWSER_MESSAGE = "You have to log into an browser"

    def _check_response(self, response: httpx.Response, data: dict[str, Any]) -> None:
        error = str(data.get("error") or "")
        message = str(data.get("error_description") or data.get("message") or "")

        if error in self.BROWSER_ERRORS or self.BROWSER_MESSAGE in message:
            raise InteractiveStepRequiredError(
                message or f"{self.name} requires signing in through a browser first"
            )


class PtcLoginProvider(TokenEndpointLoginProvider):
    """Pokemon Trainer Club login."""

    PROVIDER_ID = ProviderId.PTC

    CLIENT_ID = "mobile-app_pokemon-go"

    def _form_data(self) -> dict[str, str]:
        return {**super()._form_data(), "client_id": self.CLIENT_ID}


def create_login_provider(
    settings: AuthcycleSettings,
    http_client: httpx.AsyncClient | None = None,
) -> LoginProvider:
    """
    Build the login provider selected by settings.

    Raises:
        ConfigurationError: If the auth type is unknown or its account is not configured.
    """
    timeout = float(settings.refresh.http_timeout)

    if settings.auth_type == ProviderId.GOOGLE:
        username, password = settings.google_username, settings.google_password
        provider_cls, token_url = GoogleLoginProvider, settings.google_token_url
    elif settings.auth_type == ProviderId.PTC:
        username, password = settings.ptc_username, settings.ptc_password
        provider_cls, token_url = PtcLoginProvider, settings.ptc_token_url
    else:
        raise ConfigurationError(f"Unknown auth type: {settings.auth_type!r}")

    if not username or password is None:
        raise ConfigurationError(
            f"Username and password must be set for auth type {settings.auth_type.value}"
        )

    provider = provider_cls(
        username=username,
        password=password.get_secret_value(),
        token_url=token_url,
        timeout=timeout,
        http_client=http_client,
    )
    logger.debug("login_provider_selected", provider=provider.name)
    return provider
