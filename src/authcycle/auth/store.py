"""
Local credential cache.

One JSON record per (identity, provider) pair under a single cache
directory. Records are rewritten wholesale on every save:

{
    "identity": "ash@example.com",
    "provider_id": "google",
    "token": "ya29....",
    "expires_at": "2025-12-31T23:59:59+00:00"
}
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import structlog

from authcycle.auth.credentials import Credential, ProviderId, utc_now

logger = structlog.get_logger(__name__)


class CredentialStore:
    """Persists credential snapshots to a directory of JSON files."""

    DEFAULT_DIR_NAME = "Cache"

    def __init__(
        self,
        cache_dir: Path | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize the store.

        Args:
            cache_dir: Directory holding the records. Defaults to ./Cache.
            clock: Returns the current aware UTC time.
        """
        self._cache_dir = cache_dir or Path.cwd() / self.DEFAULT_DIR_NAME
        self._clock = clock

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def _ensure_dir(self) -> None:
        self._cache_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, identity: str, provider_id: ProviderId | str) -> Path:
        """Get the record path for an identity."""
        return self._cache_dir / f"{identity}-{ProviderId(provider_id).value}.json"

    def load(self, identity: str, provider_id: ProviderId | str) -> Credential | None:
        """
        Load a cached credential.

        Returns:
            The credential, or None if the record is absent, unreadable,
            malformed, or holds an expired token.
        """
        path = self.path_for(identity, provider_id)
        if not path.is_file():
            logger.debug("credential_cache_miss", path=str(path))
            return None

        try:
            with open(path) as f:
                credential = Credential.from_record(json.load(f))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("credential_cache_unreadable", path=str(path), error=str(e))
            return None

        if credential.is_expired_at(self._clock()):
            logger.debug("credential_cache_expired", path=str(path))
            return None

        logger.debug("credential_cache_hit", path=str(path))
        return credential

    def save(self, credential: Credential | None) -> Path | None:
        """
        Save a credential, replacing any previous record.

        Credentials without an identity or token, or with an expired token,
        are skipped.

        Returns:
            Path to the saved record, or None if nothing was written.
        """
        if (
            credential is None
            or not credential.identity
            or not credential.token
            or credential.is_expired_at(self._clock())
        ):
            logger.debug("credential_save_skipped")
            return None

        path = self.path_for(credential.identity, credential.provider_id)
        self._ensure_dir()

        # Write to a sibling temp file and swap it in
        fd, tmp_name = tempfile.mkstemp(
            dir=self._cache_dir, prefix=f".{path.stem}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(credential.to_record(), f, indent=2)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info("credential_saved", path=str(path))
        return path

    def delete(self, identity: str, provider_id: ProviderId | str) -> bool:
        """
        Remove a cached record.

        Returns:
            True if a record was removed.
        """
        path = self.path_for(identity, provider_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False

        logger.info("credential_deleted", path=str(path))
        return True
