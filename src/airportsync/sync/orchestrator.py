"""
Airport sync pipeline.

Fetches the airports endpoint once per invocation, decodes the whole body,
replaces the store contents in a single transaction and publishes exactly
one :class:`SyncCompleted` event on the completion channel, whether the
attempt succeeded or not.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional, Set

import aiohttp

from airportsync.config import SyncConfig
from airportsync.core.models import NO_STATUS, Airport, SyncCompleted
from airportsync.data.decoder import decode_airports
from airportsync.data.store import AirportStore
from airportsync.errors import SyncError, TransportError
from airportsync.sync.notify import CompletionChannel

__all__ = ["AirportSync"]

logger = logging.getLogger(__name__)

# Airports, meta entries and HTTP status of a decoded response
_Prepared = tuple[list[Airport], dict[str, Any], int]


class AirportSync:
    """Runs fetch, decode, replace and notify for the airports dataset.

    Attempts are serialized: an ``execute()`` issued while another attempt is
    in flight waits for it and then performs its own request, so at most one
    request and one store write are outstanding and the later call's data
    wins. Every call still produces its own completion event.

    Cancelling an attempt before its store write starts publishes a
    ``cancelled`` failure. Once the write has started it runs to completion
    under the guard and the event reports its real outcome before the
    cancellation propagates.

    If the completion channel has already been closed the event is logged
    and dropped; that is the one case where a call produces no event.
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        store: AirportStore,
        channel: CompletionChannel,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._channel = channel
        # Caller owns an external session; we never close it.
        self._ext_session = session
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task[SyncCompleted]] = set()

    @property
    def in_flight(self) -> bool:
        """True while an attempt holds the single-flight guard."""
        return self._lock.locked()

    @property
    def pending(self) -> int:
        """Number of scheduled attempts that have not completed yet."""
        return len(self._tasks)

    def execute(self) -> asyncio.Task[SyncCompleted]:
        """Schedule one sync attempt on the running loop and return at once."""
        loop = asyncio.get_running_loop()
        task = loop.create_task(self.sync_once(), name="airport_sync")
        # Keep a reference so the task is not garbage collected mid-flight.
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def sync_once(self) -> SyncCompleted:
        """Run one attempt under the guard and publish its completion event."""
        try:
            await self._lock.acquire()
        except asyncio.CancelledError:
            logger.info("airport sync cancelled while queued")
            await self._publish(_cancelled())
            raise
        try:
            event = await self._attempt()
        finally:
            self._lock.release()
        await self._publish(event)
        return event

    async def _attempt(self) -> SyncCompleted:
        """Fetch, decode and write; called with the guard held."""
        start = time.monotonic()
        try:
            prepared = await self._prepare()
        except asyncio.CancelledError:
            logger.info("airport sync cancelled")
            await self._publish(_cancelled())
            raise
        if isinstance(prepared, SyncCompleted):
            return prepared

        write = asyncio.ensure_future(self._write(prepared, start))
        try:
            return await asyncio.shield(write)
        except asyncio.CancelledError:
            logger.info("airport sync cancelled during store write; finishing it")
            event = await _settle(write)
            await self._publish(event)
            raise

    async def _prepare(self) -> _Prepared | SyncCompleted:
        """Fetch and fully decode the payload, or return the failure event."""
        cfg = self._config
        status = NO_STATUS
        logger.info("airport sync start (url=%s, state=%s)", cfg.base_url, cfg.state)
        try:
            status, body = await self._fetch()
            # Decode everything before the store is touched.
            airports = decode_airports(body, icao_from_url=cfg.icao_from_url)
        except SyncError as e:
            return _failed(e, status)
        except Exception:  # noqa: BLE001
            logger.exception("airport sync error (url=%s)", cfg.base_url)
            return SyncCompleted(success=False, status_code=status)
        meta = {
            "last_sync_at": datetime.now(timezone.utc).isoformat(),
            "last_status": status,
            "source_url": cfg.base_url,
            "source_state": cfg.state,
            "payload_sha256": hashlib.sha256(body).hexdigest(),
        }
        return airports, meta, status

    async def _write(self, prepared: _Prepared, start: float) -> SyncCompleted:
        airports, meta, status = prepared
        try:
            count = await asyncio.to_thread(
                self._store.replace_all, airports, meta=meta
            )
        except SyncError as e:
            return _failed(e, status)
        except Exception:  # noqa: BLE001
            logger.exception("airport store write error (%s)", self._store.path)
            return SyncCompleted(success=False, status_code=status, error="store")

        logger.info(
            "airport sync done: %d airports (status=%d, %.3fs)",
            count,
            status,
            time.monotonic() - start,
        )
        return SyncCompleted(success=True, status_code=status, count=count)

    async def _fetch(self) -> tuple[int, bytes]:
        cfg = self._config
        kwargs: dict[str, Any] = {
            "params": cfg.params,
            "timeout": aiohttp.ClientTimeout(total=cfg.timeout_s),
        }
        if not cfg.verify_tls:
            kwargs["ssl"] = False

        try:
            if self._ext_session is not None:
                return await self._get(self._ext_session, kwargs)
            async with aiohttp.ClientSession() as session:
                return await self._get(session, kwargs)
        except TransportError:
            raise
        except asyncio.TimeoutError as e:
            raise TransportError(f"timed out after {cfg.timeout_s:.1f}s") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"{e.__class__.__name__}: {e}") from e

    async def _get(
        self, session: aiohttp.ClientSession, kwargs: dict[str, Any]
    ) -> tuple[int, bytes]:
        url = self._config.base_url
        async with session.get(url, **kwargs) as resp:
            if not 200 <= resp.status < 300:
                raise TransportError(f"HTTP {resp.status}", status_code=resp.status)
            try:
                body = await resp.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise TransportError(
                    f"body read failed: {e.__class__.__name__}",
                    status_code=resp.status,
                ) from e
            logger.debug("airport fetch %s -> %d (%d bytes)", url, resp.status, len(body))
            return resp.status, body

    async def _publish(self, event: SyncCompleted) -> None:
        try:
            await self._channel.publish(event)
        except RuntimeError:
            logger.error("completion channel closed; dropped %s", event)


def _cancelled() -> SyncCompleted:
    return SyncCompleted(success=False, status_code=NO_STATUS, error="cancelled")


def _failed(e: SyncError, status: int) -> SyncCompleted:
    code = e.status_code if e.status_code != NO_STATUS else status
    logger.warning("airport sync failed (%s, status=%d): %s", e.kind, code, e)
    return SyncCompleted(success=False, status_code=code, error=e.kind)


async def _settle(write: asyncio.Future[SyncCompleted]) -> SyncCompleted:
    """Wait for an in-progress write, absorbing further cancel requests."""
    while not write.done():
        try:
            await asyncio.shield(write)
        except asyncio.CancelledError:
            continue
    return write.result()
