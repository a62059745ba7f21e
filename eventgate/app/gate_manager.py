"""Session orchestration for private-event PIN gates."""
from __future__ import annotations

import asyncio
import logging
import secrets
from asyncio import QueueEmpty
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .config import Settings, get_settings
from .events.repository import EventRecord, EventRepository, RepositoryError, build_repository
from .pin.enroller import PinEnroller
from .pin.pad import PinPad
from .pin.verifier import PinVerifier
from .state import GateEvent, PadPhase, PadSnapshot

logger = logging.getLogger(__name__)


class GateFlowError(RuntimeError):
    """Raised when a gate request cannot be honoured."""

    status_code: int = 400

    def __init__(self, user_message: str, *, log_message: Optional[str] = None) -> None:
        super().__init__(log_message or user_message)
        self.user_message = user_message


class SessionNotFound(GateFlowError):
    status_code = 404


class EventNotFound(GateFlowError):
    status_code = 404


class NotOrganizer(GateFlowError):
    status_code = 403


class AlreadyPrivate(GateFlowError):
    status_code = 409


class StoreUnavailable(GateFlowError):
    status_code = 502


@dataclass
class GateSession:
    session_id: str
    kind: str  # "verify" or "enroll"
    event_id: str
    user_id: str
    pad: Optional[PinPad] = None
    subscribers: List[asyncio.Queue[GateEvent]] = field(default_factory=list)

    @property
    def phase(self) -> PadPhase:
        return self.pad.phase if self.pad else PadPhase.IDLE


class GateManager:
    """Host for verifier and enroller pads; owns unlock grants."""

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        repository: Optional[EventRepository] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.repository = repository or build_repository(self.settings)
        self._sessions: Dict[str, GateSession] = {}
        self._grants: Set[Tuple[str, str]] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        logger.info(
            "Gate manager started (verify=%dms, enroll=%dms, error=%dms)",
            self.settings.timings.verify_delay_ms,
            self.settings.timings.enroll_delay_ms,
            self.settings.timings.error_display_ms,
        )

    async def stop(self) -> None:
        logger.info("Stopping gate manager")
        for session_id in list(self._sessions):
            self._end_session(session_id, reason="shutdown")
        try:
            await self.repository.aclose()
        except Exception as e:
            logger.warning("Error closing event repository: %s", e)
        logger.info("Gate manager stopped")

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def is_unlocked(self, event_id: str, viewer_id: str) -> bool:
        return (event_id, viewer_id) in self._grants

    async def access(self, event_id: str, viewer_id: str) -> Dict[str, bool]:
        event = await self._load_event(event_id)
        return {
            "private": event.is_private,
            "unlocked": not event.is_private or self.is_unlocked(event_id, viewer_id),
        }

    async def open_verifier(self, event_id: str, viewer_id: str) -> Optional[GateSession]:
        """Mount a verifier, or return None when the viewer already has access."""
        event = await self._load_event(event_id)
        if not event.is_private:
            return None
        if self.is_unlocked(event_id, viewer_id):
            return None

        session = self._new_session("verify", event_id, viewer_id)
        session.pad = PinVerifier(
            event.pin,
            lambda: self._handle_unlocked(session.session_id),
            on_close=lambda: self._handle_user_close(session.session_id),
            on_change=lambda snapshot: self._publish_state(session.session_id, snapshot),
            haptic=lambda: self._publish_haptic(session.session_id),
            timings=self.settings.timings,
            name=f"verifier-{session.session_id[:8]}",
        )
        logger.info("Verifier mounted for event %s", event_id)
        return session

    async def open_enroller(self, event_id: str, organizer_id: str) -> GateSession:
        event = await self._load_event(event_id)
        if event.organizer_id != organizer_id:
            raise NotOrganizer("Only the organizer can make this event private")
        if event.is_private:
            raise AlreadyPrivate("Event is already private")

        session = self._new_session("enroll", event_id, organizer_id)
        session.pad = PinEnroller(
            lambda pin: self._handle_pin_chosen(session.session_id, pin),
            on_close=lambda: self._handle_user_close(session.session_id),
            on_change=lambda snapshot: self._publish_state(session.session_id, snapshot),
            timings=self.settings.timings,
            name=f"enroller-{session.session_id[:8]}",
        )
        logger.info("Enroller mounted for event %s", event_id)
        return session

    async def remove_pin(self, event_id: str, organizer_id: str) -> None:
        event = await self._load_event(event_id)
        if event.organizer_id != organizer_id:
            raise NotOrganizer("Only the organizer can make this event public")
        try:
            await self.repository.update_event_pin(event_id, None)
        except RepositoryError as exc:
            raise StoreUnavailable("Could not update the event", log_message=str(exc)) from exc
        self._grants = {grant for grant in self._grants if grant[0] != event_id}
        for session in list(self._sessions.values()):
            if session.event_id == event_id and session.kind == "verify":
                self._end_session(session.session_id, reason="event_public")
        logger.info("PIN removed from event %s", event_id)

    # ------------------------------------------------------------------
    # Pad input
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> GateSession:
        session = self._sessions.get(session_id)
        if session is None or session.pad is None:
            raise SessionNotFound("PIN session not found")
        return session

    def snapshot(self, session_id: str) -> PadSnapshot:
        return self.get_session(session_id).pad.snapshot()

    def press_digit(self, session_id: str, digit: str) -> PadSnapshot:
        pad = self.get_session(session_id).pad
        pad.press_digit(digit)
        return pad.snapshot()

    def press_delete(self, session_id: str) -> PadSnapshot:
        pad = self.get_session(session_id).pad
        pad.press_delete()
        return pad.snapshot()

    def close_session(self, session_id: str) -> None:
        """User pressed close."""
        self.get_session(session_id).pad.close()

    # ------------------------------------------------------------------
    # UI subscribers
    # ------------------------------------------------------------------

    def register_ui(self, session_id: str) -> asyncio.Queue[GateEvent]:
        session = self.get_session(session_id)
        queue: asyncio.Queue[GateEvent] = asyncio.Queue(maxsize=self.settings.performance.ui_event_queue_size)
        session.subscribers.append(queue)
        self._offer(queue, GateEvent(
            type="state",
            session_id=session_id,
            data=session.pad.snapshot().to_payload(),
            phase=session.phase,
        ))
        return queue

    def unregister_ui(self, session_id: str, queue: asyncio.Queue[GateEvent]) -> None:
        session = self._sessions.get(session_id)
        if session and queue in session.subscribers:
            session.subscribers.remove(queue)

    # ------------------------------------------------------------------
    # Pad callbacks
    # ------------------------------------------------------------------

    def _handle_unlocked(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        self._grants.add((session.event_id, session.user_id))
        logger.info("Event %s unlocked for viewer %s", session.event_id, session.user_id)
        self._broadcast(session, "unlocked", {"event_id": session.event_id})
        self._end_session(session_id, reason="unlocked")

    async def _handle_pin_chosen(self, session_id: str, pin: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        try:
            await self.repository.update_event_pin(session.event_id, pin)
        except RepositoryError as exc:
            logger.error("Failed to store PIN for event %s: %s", session.event_id, exc)
            self._broadcast(session, "pin_save_failed", {"event_id": session.event_id}, error="pin_save_failed")
            return
        self._grants.add((session.event_id, session.user_id))
        logger.info("Event %s made private by organizer %s", session.event_id, session.user_id)
        self._broadcast(session, "pin_set", {"event_id": session.event_id})
        self._end_session(session_id, reason="pin_set")

    def _handle_user_close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        logger.info("%s session for event %s closed by user", session.kind, session.event_id)
        self._broadcast(session, "closed", {"reason": "user"})

    def _publish_state(self, session_id: str, snapshot: PadSnapshot) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        self._broadcast(session, "state", snapshot.to_payload())

    def _publish_haptic(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        self._broadcast(session, "haptic", {"pattern": "failure"})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_event(self, event_id: str) -> EventRecord:
        try:
            event = await self.repository.get_event(event_id)
        except RepositoryError as exc:
            raise StoreUnavailable("Could not load the event", log_message=str(exc)) from exc
        if event is None:
            raise EventNotFound("Event not found")
        return event

    def _new_session(self, kind: str, event_id: str, user_id: str) -> GateSession:
        session_id = secrets.token_urlsafe(16)
        session = GateSession(session_id=session_id, kind=kind, event_id=event_id, user_id=user_id)
        self._sessions[session_id] = session
        return session

    def _end_session(self, session_id: str, *, reason: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        if session.pad is not None:
            session.pad.dispose()
        self._broadcast(session, "closed", {"reason": reason})
        logger.debug("%s session %s ended (%s)", session.kind, session_id[:8], reason)

    def _broadcast(self, session: GateSession, type_: str, data: Dict[str, object], *, error: Optional[str] = None) -> None:
        event = GateEvent(type=type_, session_id=session.session_id, data=dict(data), phase=session.phase, error=error)
        for queue in list(session.subscribers):
            self._offer(queue, event)

    @staticmethod
    def _offer(queue: asyncio.Queue[GateEvent], event: GateEvent) -> None:
        try:
            if queue.full():
                try:
                    queue.get_nowait()
                except QueueEmpty:
                    pass
            queue.put_nowait(event)
        except Exception as e:
            logger.warning("Failed to broadcast event to subscriber: %s", e)


__all__ = [
    "GateFlowError",
    "SessionNotFound",
    "EventNotFound",
    "NotOrganizer",
    "AlreadyPrivate",
    "StoreUnavailable",
    "GateSession",
    "GateManager",
]
