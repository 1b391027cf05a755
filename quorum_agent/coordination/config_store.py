"""
Configuration Store

Versioned load/store of the shared cluster configuration blob.

The blob store has no compare-and-swap, so ``store_config`` approximates one:
it reads the current version, refuses to write when it differs from the
version the caller loaded, and otherwise uploads. S3 versions are whole
seconds, so two writes within one second can share a version; when the caller
also holds the entity tag it loaded, a changed tag is a conflict too. A writer
that slips in between the check and the upload goes undetected. Callers that
need a real read-modify-write take the pseudo-lock around the whole sequence,
which is what ``update_config`` does.
"""

import logging
from typing import Any, Mapping, Optional

from ..config.settings import LockSettings
from ..storage.base import BlobStore
from ..utils.error_handling import ConfigConflictError
from .instance_config import ConfigKey, InstanceConfig, LoadedInstanceConfig
from .properties import dump_properties, load_properties
from .pseudo_lock import PseudoLock

logger = logging.getLogger(__name__)

EPOCH_VERSION = 0


class ConfigStore:
    """Loads and stores the cluster configuration blob."""

    def __init__(
        self,
        store: BlobStore,
        bucket: str,
        key: str,
        hostname: str,
        defaults: Optional[Mapping[ConfigKey, Any]] = None,
        lock_settings: Optional[LockSettings] = None,
    ):
        self.store = store
        self.bucket = bucket
        self.key = key
        self.hostname = hostname
        self.defaults = dict(defaults or {})
        self.lock_settings = lock_settings or LockSettings()

    def _defaults_only(self) -> LoadedInstanceConfig:
        return LoadedInstanceConfig(InstanceConfig(defaults=self.defaults), EPOCH_VERSION)

    async def load_config(self) -> LoadedInstanceConfig:
        """Load the current config; a missing, forbidden or empty blob yields defaults at version 0."""
        blob = await self.store.get_object(self.bucket, self.key)
        if blob is None or not blob.data:
            logger.debug(f"No config stored at {self.bucket}/{self.key}; using defaults")
            return self._defaults_only()

        properties = load_properties(blob.data.decode("utf-8"))
        config = InstanceConfig.from_properties(properties, self.defaults)
        return LoadedInstanceConfig(config, blob.last_modified_ms, blob.etag)

    async def current_version(self) -> int:
        metadata = await self.store.get_metadata(self.bucket, self.key)
        if metadata is None or metadata.content_length <= 0:
            return EPOCH_VERSION
        return metadata.last_modified_ms

    async def store_config(
        self, config: InstanceConfig, expected_version: int, expected_etag: Optional[str] = None
    ) -> Optional[LoadedInstanceConfig]:
        """Write ``config`` unless the blob changed since ``expected_version`` (and ``expected_etag``).

        Returns None on a version conflict; the caller must reload and retry.
        """
        metadata = await self.store.get_metadata(self.bucket, self.key)
        if metadata is not None and metadata.content_length > 0:
            if metadata.last_modified_ms != expected_version:
                logger.info(
                    f"Config version conflict: expected {expected_version}, found {metadata.last_modified_ms}"
                )
                return None
            if expected_etag and metadata.etag and metadata.etag != expected_etag:
                logger.info(
                    f"Config content changed within version {expected_version}: "
                    f"expected ETag {expected_etag}, found {metadata.etag}"
                )
                return None

        text = dump_properties(config.to_properties(), comments=[f"Auto-generated by quorum-agent {self.hostname}"])
        stored = await self.store.put_object(self.bucket, self.key, text.encode("utf-8"))

        logger.info(f"Stored config at {self.bucket}/{self.key} version {stored.last_modified_ms}")
        return LoadedInstanceConfig(
            InstanceConfig(config.resolved(), self.defaults), stored.last_modified_ms, stored.etag
        )

    def new_pseudo_lock(self) -> PseudoLock:
        settings = self.lock_settings
        return PseudoLock(
            self.store,
            self.bucket,
            settings.prefix,
            self.hostname,
            timeout_ms=settings.timeout_ms,
            polling_ms=settings.polling_ms,
            settling_ms=settings.settling_ms,
            separator=settings.separator,
            stale_warning_ms=settings.stale_warning_ms,
        )

    async def update_config(
        self,
        changes: Mapping[ConfigKey, Any],
        lock_timeout: Optional[float] = None,
        max_attempts: int = 3,
    ) -> LoadedInstanceConfig:
        """Read-modify-write under the pseudo-lock.

        Raises LockTimeoutError when the lock is not acquired, and
        ConfigConflictError when every attempt lost the version check.
        """
        lock = self.new_pseudo_lock()
        async with lock.hold(lock_timeout):
            for attempt in range(1, max_attempts + 1):
                loaded = await self.load_config()
                stored = await self.store_config(loaded.config.with_values(changes), loaded.version, loaded.etag)
                if stored is not None:
                    return stored
                logger.warning(f"Config changed underneath update (attempt {attempt}/{max_attempts}); reloading")

        raise ConfigConflictError(f"Config update lost {max_attempts} version checks in a row", attempts=max_attempts)

    async def close(self):
        await self.store.close()
