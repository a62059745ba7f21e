"""Shared state definitions for the PIN pad and gate sessions."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

PIN_LENGTH = 6


class PadPhase(str, enum.Enum):
    """
    Pad phases:

    IDLE        - Nothing entered yet (or enroller reset after commit)
    COLLECTING  - Digits being entered
    VERIFYING   - Verifier comparing a completed entry (busy)
    COMMITTING  - Enroller handing a completed entry to the host (busy)
    UNLOCKED    - Verifier matched; no further input accepted
    REJECTED    - Verifier mismatched; cleared and showing the error
    CLOSED      - Dismissed by the host or user
    """
    IDLE = "idle"
    COLLECTING = "collecting"
    VERIFYING = "verifying"
    COMMITTING = "committing"
    UNLOCKED = "unlocked"
    REJECTED = "rejected"
    CLOSED = "closed"


class VerificationOutcome(str, enum.Enum):
    PENDING = "pending"
    MATCHED = "matched"
    MISMATCHED = "mismatched"


class DotState(str, enum.Enum):
    EMPTY = "empty"
    FILLED = "filled"
    ERROR = "error"


def dot_states(entered: int, error: bool, slots: int = PIN_LENGTH) -> List[DotState]:
    """Per-dot render state. The error style overrides every dot."""
    if error:
        return [DotState.ERROR] * slots
    return [DotState.FILLED if index < entered else DotState.EMPTY for index in range(slots)]


@dataclass(frozen=True)
class PadSnapshot:
    """What a client needs to draw the pad. Never carries the digits."""

    phase: PadPhase
    entered: int
    error: bool
    busy: bool
    outcome: VerificationOutcome = VerificationOutcome.PENDING
    dots: List[DotState] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "phase": self.phase.value,
            "entered": self.entered,
            "error": self.error,
            "busy": self.busy,
            "outcome": self.outcome.value,
            "dots": [dot.value for dot in self.dots],
        }
        if self.error:
            payload["message_key"] = "pin_error"
        return payload


@dataclass
class GateEvent:
    """Event payload distributed to UI clients over the session WebSocket."""

    type: str
    session_id: str
    data: Dict[str, Any]
    phase: PadPhase
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.type,
            "session_id": self.session_id,
            "phase": self.phase.value,
            "data": self.data,
        }
        if self.error:
            payload["error"] = self.error
        return payload


__all__ = [
    "PIN_LENGTH",
    "PadPhase",
    "VerificationOutcome",
    "DotState",
    "dot_states",
    "PadSnapshot",
    "GateEvent",
]
