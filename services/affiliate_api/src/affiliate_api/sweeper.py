"""Background removal of expired tokens.

Lookups re-check expiry on every read, so this task only reclaims space;
how often it runs never changes whether a token is accepted.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime

from affiliate_api.issuer import utcnow
from affiliate_api.token_store import TokenStore

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 15 * 60


class ExpiredTokenSweeper:
    """Periodically deletes tokens whose expiry has passed.

    Lifecycle:
    - start() creates an asyncio task that runs the sweep loop.
    - stop() cancels the task and waits for it to finish.
    - run_once() executes a single sweep (for testing).

    Args:
        store: Token store to sweep.
        interval_seconds: Seconds between sweeps.
        clock: Source of the current time.
    """

    def __init__(
        self,
        store: TokenStore,
        *,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._last_run_at: datetime | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    @property
    def last_run_at(self) -> datetime | None:
        return self._last_run_at

    def start(self) -> None:
        """Start the sweep loop. No-op if already running.

        Must be called with a running event loop.
        """
        if self.is_running:
            logger.warning("token sweeper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("token sweeper started (interval=%ds)", self._interval_seconds)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("token sweeper stopped")

    async def run_once(self) -> int:
        now = self._clock()
        removed = await self._store.sweep_expired(now)
        self._last_run_at = now
        return removed

    async def _run_loop(self) -> None:
        try:
            while self._running:
                try:
                    removed = await self.run_once()
                    if removed:
                        logger.info("token sweep removed %d expired tokens", removed)
                except Exception:  # noqa: BLE001
                    logger.exception("token sweep failed")
                await asyncio.sleep(self._interval_seconds)
        except asyncio.CancelledError:
            logger.debug("token sweep loop cancelled")
            raise
