"""Event document access used by the gate to read and store PINs."""
from __future__ import annotations

import abc
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import Settings

logger = logging.getLogger(__name__)


class EventRecord(BaseModel):
    """The slice of an event document the gate cares about."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    name: str = ""
    organizer_id: str = Field("", alias="organizerId")
    pin: str = ""

    @property
    def is_private(self) -> bool:
        return bool(self.pin and self.pin.strip())


class RepositoryError(RuntimeError):
    """Raised when the document store cannot be read or written."""


class EventRepository(abc.ABC):
    @abc.abstractmethod
    async def get_event(self, event_id: str) -> Optional[EventRecord]:
        """Return the event or None when it does not exist."""

    @abc.abstractmethod
    async def update_event_pin(self, event_id: str, pin: Optional[str]) -> None:
        """Store ``pin``; None stores an empty PIN, making the event public."""

    async def aclose(self) -> None:
        return None


class InMemoryEventRepository(EventRepository):
    """Dict-backed store for local runs and tests."""

    def __init__(self) -> None:
        self._events: Dict[str, EventRecord] = {}

    def add(self, record: EventRecord) -> EventRecord:
        self._events[record.id] = record
        return record

    async def get_event(self, event_id: str) -> Optional[EventRecord]:
        record = self._events.get(event_id)
        return record.model_copy() if record else None

    async def update_event_pin(self, event_id: str, pin: Optional[str]) -> None:
        record = self._events.get(event_id)
        if record is None:
            raise RepositoryError(f"event {event_id} not found")
        self._events[event_id] = record.model_copy(update={"pin": pin or ""})


class HttpEventRepository(EventRepository):
    """Thin wrapper around the event document REST API."""

    def __init__(self, settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        if not settings.events_api_url:
            raise ValueError("events_api_url is not configured")
        self.settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.events_api_url,
            timeout=settings.events_api_timeout,
            transport=transport,
        )

    async def get_event(self, event_id: str) -> Optional[EventRecord]:
        try:
            response = await self._client.get(f"/events/{event_id}")
            if response.status_code == httpx.codes.NOT_FOUND:
                return None
            response.raise_for_status()
            data: Dict[str, Any] = response.json()
        except httpx.TimeoutException as e:
            logger.error("events.get_event: request timeout for %s", event_id)
            raise RepositoryError("event store timed out") from e
        except httpx.NetworkError as e:
            logger.error("events.get_event: network error - %s", e)
            raise RepositoryError("event store unreachable") from e
        except httpx.HTTPStatusError as e:
            logger.error("events.get_event: HTTP %d - %s", e.response.status_code, e.response.text)
            raise RepositoryError(f"event store returned {e.response.status_code}") from e
        except ValueError as e:
            logger.error("events.get_event: invalid JSON for %s", event_id)
            raise RepositoryError("event store returned invalid JSON") from e

        if not isinstance(data, dict):
            logger.error("events.get_event: document for %s is not an object", event_id)
            raise RepositoryError("event document is malformed")
        data.setdefault("id", event_id)
        try:
            return EventRecord.model_validate(data)
        except ValidationError as e:
            logger.error("events.get_event: unexpected document shape for %s - %s", event_id, e)
            raise RepositoryError("event document is malformed") from e

    async def update_event_pin(self, event_id: str, pin: Optional[str]) -> None:
        try:
            response = await self._client.patch(f"/events/{event_id}", json={"pin": pin or ""})
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error("events.update_event_pin: request timeout for %s", event_id)
            raise RepositoryError("event store timed out") from e
        except httpx.NetworkError as e:
            logger.error("events.update_event_pin: network error - %s", e)
            raise RepositoryError("event store unreachable") from e
        except httpx.HTTPStatusError as e:
            logger.error("events.update_event_pin: HTTP %d - %s", e.response.status_code, e.response.text)
            raise RepositoryError(f"event store returned {e.response.status_code}") from e

    async def aclose(self) -> None:
        try:
            await self._client.aclose()
        except Exception as e:
            logger.warning("Error closing event store client: %s", e)


def build_repository(settings: Settings) -> EventRepository:
    if settings.events_api_url:
        logger.info("Using event document API at %s", settings.events_api_url)
        return HttpEventRepository(settings)
    logger.info("No events_api_url configured; using in-memory event store")
    return InMemoryEventRepository()


__all__ = [
    "EventRecord",
    "RepositoryError",
    "EventRepository",
    "InMemoryEventRepository",
    "HttpEventRepository",
    "build_repository",
]
