"""
Pseudo-Lock

Mutual exclusion built from ordinary blob writes and listings, for stores that
offer neither native locks, atomic compare-and-swap nor strongly consistent
listings.

Each acquisition round:

1. writes a marker object under the shared prefix whose name encodes the
   creation time, this host and a random suffix;
2. sleeps for the settling interval so that markers written concurrently by
   other contenders become visible to listings;
3. lists the markers and sorts them by (creation time, suffix). If ours is
   first the lock is held; otherwise our marker is deleted and the round is
   lost.

Rounds repeat every polling interval until the timeout elapses.

The protocol is only correct when the settling interval exceeds the store's
list-after-write propagation delay. That is a deployment setting and cannot be
checked here. Markers have no expiry and no heartbeat: a holder that crashes
leaves its marker behind and blocks every other contender until the marker is
removed out of band. Old markers are reported, never deleted.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional

from ..storage.base import BlobStore
from ..utils.error_handling import LockTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockMarker:
    """One contender's bid for the lock."""

    key: str
    created_ms: int
    host: str
    suffix: str

    @property
    def sort_key(self):
        return (self.created_ms, self.suffix)

    @classmethod
    def build(cls, prefix: str, separator: str, host: str, created_ms: int, suffix: str) -> 'LockMarker':
        # "/" would nest the marker under a pseudo-directory
        host = host.replace("/", "-")
        key = f"{prefix}{separator}{created_ms:015d}{separator}{host}{separator}{suffix}"
        return cls(key=key, created_ms=created_ms, host=host, suffix=suffix)

    @classmethod
    def parse(cls, key: str, prefix: str, separator: str) -> Optional['LockMarker']:
        head = f"{prefix}{separator}"
        if not key.startswith(head):
            return None

        created, _, remainder = key[len(head) :].partition(separator)
        # Hosts may contain the separator; suffixes never do
        host, _, suffix = remainder.rpartition(separator)
        if not created.isdigit() or not host or not suffix:
            return None

        return cls(key=key, created_ms=int(created), host=host, suffix=suffix)


class LockStatus(str, Enum):
    """Outcome of an acquisition attempt."""

    HELD = "held"
    CONFLICT = "conflict"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class LockHandle:
    """Proof of ownership, bound to the winning marker."""

    marker: LockMarker
    acquired_at: float


@dataclass(frozen=True)
class LockResult:
    status: LockStatus
    handle: Optional[LockHandle] = None
    attempts: int = 0
    elapsed: float = 0.0
    holder: Optional[LockMarker] = None

    @property
    def held(self) -> bool:
        return self.status == LockStatus.HELD


class PseudoLock:
    """Lock over a blob store prefix. Times are configured in milliseconds."""

    def __init__(
        self,
        store: BlobStore,
        bucket: str,
        prefix: str,
        host: str,
        timeout_ms: int = 15 * 60 * 1000,
        polling_ms: int = 1000,
        settling_ms: int = 5000,
        separator: str = "_",
        stale_warning_ms: Optional[int] = None,
    ):
        if not separator or len(separator) != 1:
            raise ValueError(f"Lock key separator must be a single character: {separator!r}")
        if polling_ms <= 0:
            raise ValueError("polling_ms must be positive")

        self.store = store
        self.bucket = bucket
        self.prefix = prefix
        self.host = host
        self.timeout_ms = timeout_ms
        self.polling_ms = polling_ms
        self.settling_ms = settling_ms
        self.separator = separator
        self.stale_warning_ms = stale_warning_ms

        self._held: Dict[str, LockHandle] = {}

    @property
    def marker_prefix(self) -> str:
        return f"{self.prefix}{self.separator}"

    def _new_marker(self) -> LockMarker:
        return LockMarker.build(
            self.prefix,
            self.separator,
            self.host,
            int(time.time() * 1000),
            uuid.uuid4().hex,
        )

    async def list_markers(self) -> List[LockMarker]:
        """Markers currently visible under the prefix, in election order."""
        markers = []
        for key in await self.store.list_keys(self.bucket, self.marker_prefix):
            marker = LockMarker.parse(key, self.prefix, self.separator)
            if marker is None:
                logger.debug(f"Ignoring unrecognized key under lock prefix: {key}")
                continue
            markers.append(marker)
        markers.sort(key=lambda marker: marker.sort_key)
        return markers

    def _report_stale(self, markers: List[LockMarker]):
        if not self.stale_warning_ms:
            return
        now_ms = int(time.time() * 1000)
        for marker in markers:
            age_ms = now_ms - marker.created_ms
            if age_ms > self.stale_warning_ms and marker.key not in self._held:
                logger.warning(
                    f"Lock marker {marker.key} from host '{marker.host}' is {age_ms} ms old; "
                    f"its holder may have crashed and the marker must be removed manually"
                )

    async def _discard(self, marker: LockMarker):
        try:
            await self.store.delete_object(self.bucket, marker.key)
        except Exception as e:
            logger.error(f"Could not delete lock marker {marker.key}: {e}")

    async def try_acquire_once(self) -> LockResult:
        """Run a single election round."""
        marker = self._new_marker()
        await self.store.put_object(self.bucket, marker.key, self.host.encode("utf-8"))

        try:
            if self.settling_ms > 0:
                await asyncio.sleep(self.settling_ms / 1000)
            markers = await self.list_markers()
        except BaseException:
            await self._discard(marker)
            raise

        self._report_stale(markers)

        if not any(candidate.key == marker.key for candidate in markers):
            # Our own write is not listed yet, so the listing cannot be trusted
            logger.warning(f"Lock marker {marker.key} not visible after settling; consider a longer settling interval")
            await self._discard(marker)
            return LockResult(LockStatus.CONFLICT, attempts=1, holder=markers[0] if markers else None)

        first = markers[0]
        if first.key == marker.key:
            handle = LockHandle(marker=marker, acquired_at=time.time())
            self._held[marker.key] = handle
            logger.debug(f"Lock acquired with marker {marker.key}")
            return LockResult(LockStatus.HELD, handle=handle, attempts=1)

        await self._discard(marker)
        logger.debug(f"Lock round lost to {first.key}")
        return LockResult(LockStatus.CONFLICT, attempts=1, holder=first)

    async def try_acquire(self, timeout: Optional[float] = None) -> LockResult:
        """Repeat election rounds until one is won or ``timeout`` seconds elapse.

        The first round always runs. Later rounds start only while they can
        still settle before the deadline, so a timed-out call returns within
        one polling interval of ``timeout``.
        """
        timeout = self.timeout_ms / 1000 if timeout is None else timeout
        polling = self.polling_ms / 1000
        settling = max(self.settling_ms, 0) / 1000

        loop = asyncio.get_running_loop()
        start = loop.time()
        attempts = 0
        holder = None

        while True:
            attempts += 1
            result = await self.try_acquire_once()
            if result.held:
                elapsed = loop.time() - start
                logger.info(f"Acquired lock '{self.prefix}' after {attempts} attempt(s) in {elapsed:.3f}s")
                return LockResult(LockStatus.HELD, handle=result.handle, attempts=attempts, elapsed=elapsed)

            holder = result.holder or holder
            remaining = timeout - (loop.time() - start)
            if remaining <= 0:
                break

            await asyncio.sleep(min(polling, remaining))
            remaining = timeout - (loop.time() - start)
            if remaining <= 0:
                break
            if remaining < settling:
                # A round started now would settle past the deadline
                await asyncio.sleep(remaining)
                break

        elapsed = loop.time() - start
        logger.warning(
            f"Timed out after {elapsed:.3f}s waiting for lock '{self.prefix}'"
            + (f" held by '{holder.host}'" if holder else "")
        )
        return LockResult(LockStatus.TIMED_OUT, attempts=attempts, elapsed=elapsed, holder=holder)

    async def acquire(self, timeout: Optional[float] = None) -> LockHandle:
        """Acquire the lock or raise LockTimeoutError."""
        result = await self.try_acquire(timeout)
        if not result.held:
            timeout_ms = self.timeout_ms if timeout is None else int(round(timeout * 1000))
            raise LockTimeoutError(
                f"Could not acquire lock '{self.prefix}' within {timeout_ms} ms",
                timeout_ms=timeout_ms,
                attempts=result.attempts,
            )
        return result.handle

    async def release(self, handle: LockHandle):
        """Delete the held marker."""
        if self._held.pop(handle.marker.key, None) is None:
            logger.warning(f"Release of a lock that is not held: {handle.marker.key}")
            return

        await self.store.delete_object(self.bucket, handle.marker.key)
        logger.info(f"Released lock '{self.prefix}' held for {time.time() - handle.acquired_at:.3f}s")

    def is_held(self, handle: LockHandle) -> bool:
        return handle.marker.key in self._held

    @asynccontextmanager
    async def hold(self, timeout: Optional[float] = None) -> AsyncIterator[LockHandle]:
        """``async with lock.hold(): ...`` acquires, then always releases."""
        handle = await self.acquire(timeout)
        try:
            yield handle
        finally:
            await self.release(handle)
