"""
CredVend Refresh Scheduler

Keeps the credential cache warm by re-arming a single timer on the running
event loop to fire shortly before the stored credential expires.

State machine:
    IDLE   -> ARMED   start() / arm()
    ARMED  -> ARMED   start() again (previous timer cancelled)
    ARMED  -> FIRING  timer elapsed, refresh running
    FIRING -> ARMED   refresh finished (success or failure), timer re-armed
    any    -> IDLE    cancel()
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple

from .storage import CredentialStore
from .validity import DEFAULT_BUFFER_SECONDS, as_utc, is_valid, utc_now


logger = logging.getLogger("credvend")

# Delay before the first fetch attempt when nothing is stored yet
DEFAULT_FALLBACK_DELAY = 2.0


class SchedulerState(str, Enum):
    """Refresh scheduler states."""
    IDLE = "idle"
    ARMED = "armed"
    FIRING = "firing"


class RefreshScheduler:
    """
    Single self-rearming refresh timer.

    Args:
        refresh: Coroutine function that fetches (and stores) a valid credential
        store: Credential store the next fire time is computed from
        buffer_seconds: How long before expiration to refresh
        fallback_delay: Delay used when no usable expiration is stored
        clock: Returns the current aware datetime
        on_error: Called with every error raised by a scheduled refresh
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[Any]],
        store: CredentialStore,
        buffer_seconds: float = DEFAULT_BUFFER_SECONDS,
        fallback_delay: float = DEFAULT_FALLBACK_DELAY,
        clock: Optional[Callable[[], Any]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self._refresh = refresh
        self._store = store
        self._buffer_seconds = buffer_seconds
        self._fallback_delay = fallback_delay
        self._clock = clock or utc_now
        self._on_error = on_error

        self._state = SchedulerState.IDLE
        self._timer: Optional[asyncio.TimerHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._firing: Optional["asyncio.Task[None]"] = None
        # Bumped on every arm/cancel; a fire only re-arms if still current
        self._generation = 0
        self.last_error: Optional[Exception] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_armed(self) -> bool:
        return self._timer is not None

    @property
    def next_fire_in(self) -> Optional[float]:
        """Seconds until the pending timer fires, or None when not armed."""
        if self._timer is None or self._loop is None:
            return None
        return max(0.0, self._timer.when() - self._loop.time())

    def next_delay(self, after_fire: bool = False) -> Tuple[float, bool]:
        """
        Compute the next fire delay from the stored credential.

        Returns:
            (delay in seconds, whether the fire is a forced refresh)
        """
        record = self._store.get()
        if record is None:
            return self._fallback_delay, False

        now = as_utc(self._clock())
        if after_fire and not is_valid(record, self._buffer_seconds, now=now):
            # The refresh just ran and still left nothing usable
            return self._fallback_delay, True

        delay = (as_utc(record.expiration) - now).total_seconds() - self._buffer_seconds
        return max(0.0, delay), True

    def start(self) -> float:
        """Arm (or re-arm) the timer from the stored credential. Returns the delay."""
        delay, force_refresh = self.next_delay()
        self.arm(delay, force_refresh)
        return delay

    def arm(self, delay: float, force_refresh: bool = True) -> None:
        """Cancel any pending timer and schedule a single new one."""
        self._cancel_timer()
        self._generation += 1
        self._loop = asyncio.get_running_loop()
        self._timer = self._loop.call_later(delay, self._on_timer, self._generation, force_refresh)
        self._state = SchedulerState.ARMED

        if force_refresh:
            logger.info(f"[CredVend] refresh_scheduler - Refresh scheduled in {int(delay)}s")
        else:
            logger.debug(f"[CredVend] refresh_scheduler - Initial fetch scheduled in {delay}s")

    def cancel(self) -> None:
        """Cancel the pending timer. An in-flight refresh finishes but does not re-arm."""
        self._cancel_timer()
        self._generation += 1
        self._state = SchedulerState.IDLE

    async def stop(self) -> None:
        """Cancel the pending timer and any in-flight refresh, waiting for it to unwind."""
        self.cancel()
        task = self._firing
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, generation: int, force_refresh: bool) -> None:
        if generation != self._generation:
            return
        self._timer = None
        self._state = SchedulerState.FIRING
        loop = asyncio.get_running_loop()
        # Held so the running task is not garbage collected
        self._firing = loop.create_task(self._fire(generation, force_refresh))

    async def _fire(self, generation: int, force_refresh: bool) -> None:
        try:
            if force_refresh:
                # Drop the cached record so the refresh goes to the network
                self._store.delete()
            await self._refresh()
        except asyncio.CancelledError:
            self.cancel()
            raise
        except Exception as error:
            self._report(error, force_refresh)
        finally:
            self._firing = None
            if generation == self._generation:
                try:
                    delay, next_force = self.next_delay(after_fire=True)
                except Exception as error:
                    self._report(error, force_refresh)
                    delay, next_force = self._fallback_delay, False
                self.arm(delay, next_force)

    def _report(self, error: Exception, force_refresh: bool) -> None:
        self.last_error = error
        action = "refreshing" if force_refresh else "pre-fetching"
        logger.error(
            f"[CredVend] refresh_scheduler - Error {action} credentials: {error}",
            extra={"operation": "refresh_scheduler", "error": repr(error)},
        )
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                logger.exception("[CredVend] refresh_scheduler - on_error callback failed")
