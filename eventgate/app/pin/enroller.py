"""Organizer-side pad: choose a new PIN for an event."""
from __future__ import annotations

from collections.abc import Callable
from typing import Any, Optional

from ..config import PinTimings
from ..state import PadPhase, VerificationOutcome
from .pad import ChangeListener, HostCallback, OutcomePolicy, PinPad


class EnrollPolicy(OutcomePolicy):
    """Every complete entry is accepted, ``000000`` included."""

    busy_phase = PadPhase.COMMITTING

    def __init__(self, on_success: Callable[[str], Any], *, settle_delay: float) -> None:
        super().__init__(settle_delay=settle_delay)
        self._on_success = on_success

    def evaluate(self, pin: str) -> VerificationOutcome:
        return VerificationOutcome.MATCHED

    def accept(self, pin: str) -> Any:
        return self._on_success(pin)


class PinEnroller(PinPad):
    """Idle -> Collecting -> Committing -> Idle. Has no error state."""

    def __init__(
        self,
        on_success: Callable[[str], Any],
        *,
        on_close: Optional[HostCallback] = None,
        on_change: Optional[ChangeListener] = None,
        timings: Optional[PinTimings] = None,
        name: str = "pin-enroller",
    ) -> None:
        timings = timings or PinTimings()
        super().__init__(
            EnrollPolicy(on_success, settle_delay=timings.enroll_delay),
            on_close=on_close,
            on_change=on_change,
            error_display=timings.error_display,
            name=name,
        )


__all__ = ["EnrollPolicy", "PinEnroller"]
