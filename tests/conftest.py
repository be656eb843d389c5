"""
Pytest fixtures for phase tracker tests
"""

import pytest
from datetime import datetime, timedelta, timezone

from phasetrack.engine import WorkflowEngine
from phasetrack.events import EventBus
from phasetrack.persistence import StatePersistence


class FakeClock:
    """Controllable replacement for the engine's UTC clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def state_file(tmp_path):
    """Path to a not-yet-existing state file"""
    return tmp_path / "ccjk" / "workflow-state.json"


@pytest.fixture
def persistence(state_file):
    return StatePersistence(state_file)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def engine(persistence, event_bus):
    """
    WorkflowEngine backed by a temporary state file

    Returns:
        WorkflowEngine with auto_save enabled
    """
    return WorkflowEngine(persistence=persistence, event_bus=event_bus)


@pytest.fixture
def clock(monkeypatch):
    """
    Freeze the engine clock at a fixed instant

    Returns:
        FakeClock; call advance(minutes=...) to move time forward
    """
    fake = FakeClock(datetime(2026, 1, 15, 9, 0, 0, tzinfo=timezone.utc))
    monkeypatch.setattr("phasetrack.engine._utc_now", fake)
    return fake


@pytest.fixture
def recorder(event_bus):
    """
    Record every published event as (event_type, args)

    Returns:
        List that fills up as the engine publishes
    """
    from phasetrack.events import EventTypes

    events = []
    for name, value in vars(EventTypes).items():
        if name.isupper():
            event_bus.subscribe(value, lambda *args, _type=value: events.append((_type, args)))
    return events
