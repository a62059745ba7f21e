"""Viewer-side pad: unlock a private event with its PIN."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Optional

from ..config import PinTimings
from ..state import PIN_LENGTH, PadPhase, VerificationOutcome
from .pad import ChangeListener, HapticCue, HostCallback, OutcomePolicy, PinPad

logger = logging.getLogger(__name__)


class VerifyPolicy(OutcomePolicy):
    """Exact string comparison against the stored PIN.

    Plain-text and not constant-time; mirrors how the PIN is stored.
    """

    busy_phase = PadPhase.VERIFYING
    hold_on_accept = True

    def __init__(self, correct_pin: str, on_success: Callable[[], Any], *, settle_delay: float) -> None:
        super().__init__(settle_delay=settle_delay)
        self._correct_pin = correct_pin
        self._on_success = on_success

    def evaluate(self, pin: str) -> VerificationOutcome:
        if pin == self._correct_pin:
            return VerificationOutcome.MATCHED
        return VerificationOutcome.MISMATCHED

    def accept(self, pin: str) -> Any:
        return self._on_success()


class PinVerifier(PinPad):
    """Idle -> Collecting -> Verifying -> Unlocked | Rejected.

    Mismatches are unlimited: each one clears the entry, shows the error for
    ``timings.error_display_ms`` and fires one haptic pulse.
    """

    def __init__(
        self,
        correct_pin: str,
        on_success: Callable[[], Any],
        *,
        on_close: Optional[HostCallback] = None,
        on_change: Optional[ChangeListener] = None,
        haptic: Optional[HapticCue] = None,
        timings: Optional[PinTimings] = None,
        name: str = "pin-verifier",
    ) -> None:
        timings = timings or PinTimings()
        if len(correct_pin) != PIN_LENGTH:
            logger.warning("%s: stored PIN is %d characters; no entry can match", name, len(correct_pin))
        super().__init__(
            VerifyPolicy(correct_pin, on_success, settle_delay=timings.verify_delay),
            on_close=on_close,
            on_change=on_change,
            haptic=haptic,
            error_display=timings.error_display,
            name=name,
        )


__all__ = ["VerifyPolicy", "PinVerifier"]
