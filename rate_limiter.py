"""Outbound call dispatch gated behind a persisted cooldown."""

from __future__ import annotations

import asyncio
import re
import time
from typing import Callable, Coroutine, Optional

import structlog

from errors import ERROR_MESSAGES, INVALID_PHONE, TransportError
from interfaces import CallDispatcher, KeyValueStore
from models import CallOutcome, CallStatus, CooldownRecord

logger = structlog.get_logger(__name__)

COOLDOWN_KEY = "callCooldownEnd"
COOLDOWN_SECONDS = 300
STATUS_RESET_SECONDS = 3.0
COUNTRY_CODES = ("+91", "+1", "+44")

DIALING_MESSAGE = "Dialing..."
SUCCESS_MESSAGE = "Call Initiated Successfully!"
FAILURE_MESSAGE = "Failed to connect call. Please try again."

_PHONE_RE = re.compile(r"[0-9]{10}")

StatusCallback = Callable[[CallStatus, str], None]
TickCallback = Callable[[int], None]


def format_countdown(seconds: int) -> str:
    mins, secs = divmod(max(0, int(seconds)), 60)
    return f"{mins}:{secs:02d}"


class CallRateLimiter:
    """
    Gates ``request_call`` behind a cooldown that survives restarts.

    The cooldown end time is written to ``store`` under ``COOLDOWN_KEY`` as
    integer epoch milliseconds. A single countdown task ticks once per
    ``tick_seconds`` while the cooldown is active and deletes the record when
    it expires. Call ``start()`` once inside the event loop to pick up a
    cooldown persisted by an earlier run, and ``close()`` to stop the timers.
    """

    def __init__(
        self,
        dispatcher: CallDispatcher,
        store: KeyValueStore,
        cooldown_seconds: int = COOLDOWN_SECONDS,
        status_reset_seconds: float = STATUS_RESET_SECONDS,
        tick_seconds: float = 1.0,
        clock: Callable[[], float] = time.time,
        on_status_change: Optional[StatusCallback] = None,
        on_tick: Optional[TickCallback] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._store = store
        self._cooldown_seconds = cooldown_seconds
        self._status_reset_seconds = status_reset_seconds
        self._tick_seconds = tick_seconds
        self._clock = clock
        self._on_status_change = on_status_change
        self._on_tick = on_tick

        self._status = CallStatus.IDLE
        self._status_message = ""
        self._cooldown: Optional[CooldownRecord] = None
        self._countdown_task: Optional[asyncio.Task] = None
        self._status_reset_task: Optional[asyncio.Task] = None

    @property
    def status(self) -> CallStatus:
        return self._status

    @property
    def status_message(self) -> str:
        return self._status_message

    @property
    def remaining_seconds(self) -> int:
        if self._cooldown is None:
            return 0
        remaining = self._cooldown.remaining_seconds(self._now_ms())
        if remaining <= 0:
            self._expire()
        return remaining

    @property
    def can_dispatch(self) -> bool:
        return self._status != CallStatus.CALLING and self.remaining_seconds == 0

    async def start(self) -> int:
        """Restore a persisted cooldown. Returns the seconds still to wait."""
        raw = self._store.get(COOLDOWN_KEY)
        if raw is None:
            return 0
        try:
            end_ms = int(raw)
        except ValueError:
            logger.warning("Ignoring malformed cooldown record", value=raw)
            self._store.delete(COOLDOWN_KEY)
            return 0

        self._cooldown = CooldownRecord(end_timestamp_ms=end_ms)
        remaining = self.remaining_seconds
        if remaining > 0:
            logger.info("Cooldown restored", remaining_seconds=remaining)
            self._countdown_task = self._replace_task(self._countdown_task, self._run_countdown())
        return remaining

    async def close(self) -> None:
        for task in (self._countdown_task, self._status_reset_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._countdown_task = None
        self._status_reset_task = None

    async def request_call(self, phone_number: str, country_code: str = "+91") -> CallOutcome:
        if self._status == CallStatus.CALLING:
            logger.debug("Call rejected, dispatch already in flight")
            return CallOutcome.BUSY

        number = phone_number.strip()
        if country_code not in COUNTRY_CODES or not _PHONE_RE.fullmatch(number):
            self._set_status(CallStatus.ERROR, ERROR_MESSAGES[INVALID_PHONE])
            return CallOutcome.INVALID_NUMBER

        remaining = self.remaining_seconds
        if remaining > 0:
            logger.info("Call rejected, cooldown active", remaining_seconds=remaining)
            return CallOutcome.COOLDOWN_ACTIVE

        self._cancel_status_reset()
        self._set_status(CallStatus.CALLING, DIALING_MESSAGE)
        try:
            await self._dispatcher.dispatch(f"{country_code}{number}")
        except TransportError as exc:
            logger.warning("Outbound call failed", error=exc.message)
            self._set_status(CallStatus.ERROR, FAILURE_MESSAGE)
            return CallOutcome.FAILED

        self._start_cooldown()
        self._set_status(CallStatus.SUCCESS, SUCCESS_MESSAGE)
        self._status_reset_task = self._replace_task(self._status_reset_task, self._reset_status_later())
        return CallOutcome.DISPATCHED

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _start_cooldown(self) -> None:
        end_ms = self._now_ms() + self._cooldown_seconds * 1000
        self._cooldown = CooldownRecord(end_timestamp_ms=end_ms)
        self._store.set(COOLDOWN_KEY, str(end_ms))
        self._countdown_task = self._replace_task(self._countdown_task, self._run_countdown())

    async def _run_countdown(self) -> None:
        while True:
            await asyncio.sleep(self._tick_seconds)
            remaining = self.remaining_seconds
            if self._on_tick:
                self._on_tick(remaining)
            if remaining <= 0:
                return

    async def _reset_status_later(self) -> None:
        await asyncio.sleep(self._status_reset_seconds)
        self._set_status(CallStatus.IDLE, "")

    def _cancel_status_reset(self) -> None:
        task = self._status_reset_task
        if task is not None and not task.done():
            task.cancel()
        self._status_reset_task = None

    @staticmethod
    def _replace_task(current: Optional[asyncio.Task], coro: Coroutine) -> asyncio.Task:
        if current is not None and not current.done():
            current.cancel()
        return asyncio.get_running_loop().create_task(coro)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _expire(self) -> None:
        self._cooldown = None
        self._store.delete(COOLDOWN_KEY)
        logger.info("Cooldown expired")

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _set_status(self, status: CallStatus, message: str) -> None:
        self._status = status
        self._status_message = message
        if self._on_status_change:
            self._on_status_change(status, message)
