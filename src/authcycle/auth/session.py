"""
Session entry point.

SessionFacade is what the rest of the client talks to: it hands out usable
credentials, accepts session tickets from the protocol layer, and runs the
ordered startup sequence against the remote service.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog

from authcycle.auth.coordinator import ReauthCoordinator
from authcycle.auth.credentials import Credential, SessionTicket, utc_now

if TYPE_CHECKING:
    from authcycle.config.settings import AuthcycleSettings

logger = structlog.get_logger(__name__)


class SessionCollaborators(ABC):
    """Remote operations the startup sequence depends on."""

    @abstractmethod
    async def watch_liveness(self) -> None:
        """Background liveness/kill-switch watcher."""
        ...

    @abstractmethod
    def create_request_builder(self, credential: Credential) -> Any:
        """Build the outbound request builder for the given credential."""
        ...

    @abstractmethod
    async def get_player(self, use_common_requests: bool = True) -> Any:
        ...

    @abstractmethod
    async def get_remote_config_version(self) -> Any:
        ...

    @abstractmethod
    async def get_asset_digest(self) -> Any:
        ...

    @abstractmethod
    async def get_item_templates(self) -> Any:
        ...

    @abstractmethod
    async def get_player_profile(self) -> Any:
        ...


class SessionFacade:
    """Public surface over the reauth coordinator and the startup sequence."""

    def __init__(
        self,
        coordinator: ReauthCoordinator,
        collaborators: SessionCollaborators,
        *,
        use_cache: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._coordinator = coordinator
        self._collaborators = collaborators
        self._use_cache = use_cache
        self._clock = clock
        self._liveness_task: asyncio.Task[None] | None = None

        self.start_time_ms: int | None = None
        self.request_builder: Any = None

    @classmethod
    def from_settings(
        cls,
        settings: AuthcycleSettings,
        collaborators: SessionCollaborators,
        coordinator: ReauthCoordinator | None = None,
    ) -> SessionFacade:
        """Build a facade wired to the provider and cache selected by settings."""
        return cls(
            coordinator or ReauthCoordinator.from_settings(settings),
            collaborators,
            use_cache=settings.cache.enabled,
        )

    @property
    def coordinator(self) -> ReauthCoordinator:
        return self._coordinator

    async def get_valid_credential(self, force_refresh: bool = False) -> Credential:
        """Fetch the current credential, refreshing it if needed."""
        return await self._coordinator.get_valid_credential(
            force_refresh=force_refresh,
            use_cache=self._use_cache,
        )

    async def install_session_ticket(self, ticket: SessionTicket | None) -> None:
        """Push a ticket issued by a completed handshake onto the held credential."""
        await self._coordinator.install_session_ticket(ticket)

    async def bootstrap(self) -> Any:
        """
        Run the first-use sequence against the remote service.

        The liveness watcher is started in the background and not awaited.
        Every other step runs in order and failures propagate without retry.

        Returns:
            Result of the initial player fetch.
        """
        self._start_liveness_watcher()

        self.start_time_ms = int(self._clock().timestamp() * 1000)

        credential = await self.get_valid_credential()
        self.request_builder = self._collaborators.create_request_builder(credential)

        # Initial player fetch does not use common requests
        player = await self._collaborators.get_player(use_common_requests=False)

        await self._collaborators.get_remote_config_version()
        await self._collaborators.get_asset_digest()
        await self._collaborators.get_item_templates()

        await self._collaborators.get_player_profile()

        logger.info(
            "session_bootstrapped",
            identity=credential.identity,
            provider=credential.provider_id.value,
        )
        return player

    async def close(self) -> None:
        """Stop the liveness watcher if it is still running."""
        task, self._liveness_task = self._liveness_task, None
        if task is None or task.done():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _start_liveness_watcher(self) -> None:
        if self._liveness_task is not None and not self._liveness_task.done():
            return

        self._liveness_task = asyncio.create_task(self._collaborators.watch_liveness())
        self._liveness_task.add_done_callback(self._on_liveness_done)

    @staticmethod
    def _on_liveness_done(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("liveness_watcher_failed", error=str(error))
