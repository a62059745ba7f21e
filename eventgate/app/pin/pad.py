"""Generic PIN pad engine: capture plus busy pacing, error timer and close."""
from __future__ import annotations

import abc
import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Callable
from typing import Any, Deque, Optional

from ..state import PIN_LENGTH, PadPhase, PadSnapshot, VerificationOutcome, dot_states
from .capture import DIGITS, PinCapture

logger = logging.getLogger(__name__)

HostCallback = Callable[..., Any]
ChangeListener = Callable[[PadSnapshot], None]
HapticCue = Callable[[], Any]


class OutcomePolicy(abc.ABC):
    """Decides what a completed entry means and who hears about it."""

    busy_phase: PadPhase = PadPhase.VERIFYING
    hold_on_accept: bool = False

    def __init__(self, *, settle_delay: float) -> None:
        self.settle_delay = max(float(settle_delay), 0.0)

    @abc.abstractmethod
    def evaluate(self, pin: str) -> VerificationOutcome:
        """Return MATCHED or MISMATCHED for a completed entry."""

    @abc.abstractmethod
    def accept(self, pin: str) -> Any:
        """Hand an accepted entry to the host. May return an awaitable."""


class PinPad:
    """One mounted PIN modal.

    Input methods are synchronous and must be called from the event loop that
    owns the pad; a digit press with no running loop raises RuntimeError
    before the pad changes. Completed entries are settled by a single worker
    task in arrival order; the mismatch error is cleared by a ``call_later``
    handle tagged with the attempt generation, so a stale timer never clears a
    newer error.
    """

    def __init__(
        self,
        policy: OutcomePolicy,
        *,
        on_close: Optional[HostCallback] = None,
        on_change: Optional[ChangeListener] = None,
        haptic: Optional[HapticCue] = None,
        error_display: float = 2.0,
        length: int = PIN_LENGTH,
        name: str = "pin-pad",
    ) -> None:
        self.policy = policy
        self.name = name
        self.error_display = max(float(error_display), 0.0)
        self._on_close = on_close
        self._on_change = on_change
        self._haptic = haptic

        self._capture = PinCapture(self._handle_complete, length=length)
        self._phase: PadPhase = PadPhase.IDLE
        self._outcome: VerificationOutcome = VerificationOutcome.PENDING
        self._busy = False
        self._error = False
        self._closed = False
        self._generation = 0
        self._error_handle: Optional[asyncio.TimerHandle] = None
        self._pending: Deque[str] = deque()
        self._worker: Optional[asyncio.Task[None]] = None

    # ------------------------------------------------------------------
    # Observed state
    # ------------------------------------------------------------------

    @property
    def phase(self) -> PadPhase:
        return self._phase

    @property
    def outcome(self) -> VerificationOutcome:
        return self._outcome

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def error(self) -> bool:
        return self._error

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def current_length(self) -> int:
        return self._capture.current_length

    def snapshot(self) -> PadSnapshot:
        entered = self._capture.current_length
        return PadSnapshot(
            phase=self._phase,
            entered=entered,
            error=self._error,
            busy=self._busy,
            outcome=self._outcome,
            dots=dot_states(entered, self._error, self._capture.length),
        )

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def press_digit(self, digit: str) -> bool:
        digit = str(digit)
        if digit not in DIGITS:
            raise ValueError(f"not a digit: {digit!r}")
        if self._closed or self._phase is PadPhase.UNLOCKED:
            return False
        if self._capture.is_full:
            return False
        # RuntimeError here leaves the pad untouched when no loop is running
        asyncio.get_running_loop()
        if self._error:
            self._dismiss_error()
        if self._outcome is VerificationOutcome.MISMATCHED:
            self._outcome = VerificationOutcome.PENDING
        if not self._busy:
            self._phase = PadPhase.COLLECTING
        # may settle synchronously into the busy phase via _handle_complete
        accepted = self._capture.press_digit(digit)
        self._notify()
        return accepted

    def press_delete(self) -> bool:
        if self._closed or self._phase is PadPhase.UNLOCKED:
            return False
        removed = self._capture.press_delete()
        if not removed:
            return False
        if self._capture.current_length == 0 and self._phase is PadPhase.COLLECTING:
            self._phase = PadPhase.IDLE
        self._notify()
        return True

    def close(self) -> None:
        """User dismissal: tear down, then tell the host."""
        if self._closed:
            return
        self.dispose()
        if self._on_close is not None:
            try:
                result = self._on_close()
                if inspect.isawaitable(result):
                    asyncio.ensure_future(result)
            except Exception:
                logger.exception("%s: close callback failed", self.name)

    def dispose(self) -> None:
        """Host teardown: cancel timers and the settle worker, fire nothing."""
        if self._closed:
            return
        self._closed = True
        self._cancel_error_timer()
        self._pending.clear()
        worker = self._worker
        self._worker = None
        if worker is not None and not worker.done():
            current = None
            try:
                current = asyncio.current_task()
            except RuntimeError:
                pass
            if worker is not current:
                worker.cancel()
        self._capture.clear()
        self._busy = False
        self._error = False
        self._phase = PadPhase.CLOSED
        logger.debug("%s: closed", self.name)
        self._notify()

    async def wait_settled(self) -> None:
        """Wait until every queued entry has been settled."""
        while self._worker is not None and not self._worker.done():
            try:
                await asyncio.shield(self._worker)
            except asyncio.CancelledError:
                if self._closed:
                    return
                raise

    # ------------------------------------------------------------------
    # Settling
    # ------------------------------------------------------------------

    def _handle_complete(self, pin: str) -> None:
        self._pending.append(pin)
        self._busy = True
        self._phase = self.policy.busy_phase
        self._outcome = VerificationOutcome.PENDING
        if self._worker is None or self._worker.done():
            loop = asyncio.get_running_loop()
            self._worker = loop.create_task(self._drain(), name=f"{self.name}-settle")
        else:
            logger.debug("%s: entry queued behind in-flight settle (%d pending)", self.name, len(self._pending))

    async def _drain(self) -> None:
        try:
            while self._pending and not self._closed:
                pin = self._pending.popleft()
                self._busy = True
                self._phase = self.policy.busy_phase
                self._notify()
                await asyncio.sleep(self.policy.settle_delay)
                if self._closed:
                    return
                await self._resolve(pin)
                if self._phase is PadPhase.UNLOCKED:
                    self._pending.clear()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s: settle worker crashed", self.name)
        finally:
            if not self._closed and self._busy and not self._pending:
                self._busy = False
                if self._phase is self.policy.busy_phase:
                    self._phase = PadPhase.IDLE
                self._notify()

    async def _resolve(self, pin: str) -> None:
        outcome = self.policy.evaluate(pin)
        self._outcome = outcome
        if outcome is VerificationOutcome.MISMATCHED:
            self._reject()
            return

        if self.policy.hold_on_accept:
            if self._error:
                self._dismiss_error()
            self._busy = False
            self._phase = PadPhase.UNLOCKED
            self._notify()
            logger.info("%s: entry accepted", self.name)
            await self._call_host(self.policy.accept, pin)
            return

        await self._call_host(self.policy.accept, pin)
        if self._closed:
            return
        self._capture.clear()
        self._outcome = VerificationOutcome.PENDING
        self._busy = bool(self._pending)
        self._phase = self.policy.busy_phase if self._pending else PadPhase.IDLE
        self._notify()

    def _reject(self) -> None:
        self._capture.clear()
        self._error = True
        self._generation += 1
        self._cancel_error_timer()
        loop = asyncio.get_running_loop()
        self._error_handle = loop.call_later(self.error_display, self._expire_error, self._generation)
        self._busy = bool(self._pending)
        self._phase = PadPhase.REJECTED
        logger.info("%s: entry rejected (attempt %d)", self.name, self._generation)
        self._cue_haptic()
        self._notify()

    # ------------------------------------------------------------------
    # Error timer
    # ------------------------------------------------------------------

    def _expire_error(self, generation: int) -> None:
        if self._closed or generation != self._generation:
            return
        self._error_handle = None
        if not self._error:
            return
        self._error = False
        self._notify()

    def _dismiss_error(self) -> None:
        self._generation += 1
        self._cancel_error_timer()
        self._error = False

    def _cancel_error_timer(self) -> None:
        if self._error_handle is not None:
            self._error_handle.cancel()
            self._error_handle = None

    # ------------------------------------------------------------------
    # Host plumbing
    # ------------------------------------------------------------------

    async def _call_host(self, callback: HostCallback, *args: Any) -> None:
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s: host callback failed", self.name)

    def _cue_haptic(self) -> None:
        if self._haptic is None:
            logger.debug("%s: no haptic output attached", self.name)
            return
        try:
            result = self._haptic()
            if inspect.isawaitable(result):
                asyncio.ensure_future(result)
        except Exception:
            logger.exception("%s: haptic cue failed", self.name)

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self.snapshot())
        except Exception:
            logger.exception("%s: change listener failed", self.name)


__all__ = ["OutcomePolicy", "PinPad", "HostCallback", "ChangeListener", "HapticCue"]
