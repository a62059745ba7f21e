import asyncio
from typing import Iterable, List

import pytest

from eventgate.app.config import PerformanceSettings, PinTimings, Settings
from eventgate.app.events.repository import EventRecord, InMemoryEventRepository
from eventgate.app.gate_manager import GateManager

PRIVATE_PIN = "135790"


@pytest.fixture
def fast_timings():
    """Short delays so pads settle within a test's patience."""
    return PinTimings(verify_delay_ms=10, enroll_delay_ms=10, error_display_ms=80)


@pytest.fixture
def settings(tmp_path, fast_timings):
    return Settings(
        log_directory=tmp_path / "logs",
        timings=fast_timings,
        performance=PerformanceSettings(ui_event_queue_size=32),
    )


@pytest.fixture
def repository():
    repo = InMemoryEventRepository()
    repo.add(EventRecord(id="evt-private", name="Wedding", organizer_id="org-1", pin=PRIVATE_PIN))
    repo.add(EventRecord(id="evt-public", name="Picnic", organizer_id="org-1", pin=""))
    repo.add(EventRecord(id="evt-blank", name="Party", organizer_id="org-2", pin="   "))
    return repo


@pytest.fixture
def manager(settings, repository):
    return GateManager(settings=settings, repository=repository)


class Recorder:
    """Collects host callback invocations."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []

    def __call__(self, *args):
        self.calls.append(args)

    @property
    def count(self) -> int:
        return len(self.calls)


def press_all(pad, digits: Iterable[str]) -> None:
    for digit in digits:
        pad.press_digit(digit)


async def drain_queue(queue: asyncio.Queue) -> list:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events
