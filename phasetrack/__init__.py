"""
Phase Tracker - Development Workflow Session Tracking

Tracks workflow sessions as they move through the brainstorming, planning,
implementation, review and finishing phases, with per-phase tasks, an
append-only transition history and a JSON state file.
"""

__version__ = "1.0.0"

from .schema import (
    WorkflowPhase,
    SessionStatus,
    TaskStatus,
    TaskPriority,
    TriggeredBy,
    PhaseTransition,
    WorkflowTask,
    WorkflowSession,
    PersistedState,
)

from .phases import (
    PhaseConfig,
    PHASE_CONFIGS,
    get_phase_config,
    transitions_from,
    requires_confirmation,
)

from .errors import (
    WorkflowError,
    NotFoundError,
    SessionNotFoundError,
    TaskNotFoundError,
    InvalidTransitionError,
    InvalidStateTransitionError,
    PersistenceError,
)

from .events import EventBus, EventTypes
from .persistence import StatePersistence, STATE_VERSION
from .config import TrackerConfig
from .engine import WorkflowEngine

__all__ = [
    # Schema
    "WorkflowPhase",
    "SessionStatus",
    "TaskStatus",
    "TaskPriority",
    "TriggeredBy",
    "PhaseTransition",
    "WorkflowTask",
    "WorkflowSession",
    "PersistedState",

    # Phases
    "PhaseConfig",
    "PHASE_CONFIGS",
    "get_phase_config",
    "transitions_from",
    "requires_confirmation",

    # Errors
    "WorkflowError",
    "NotFoundError",
    "SessionNotFoundError",
    "TaskNotFoundError",
    "InvalidTransitionError",
    "InvalidStateTransitionError",
    "PersistenceError",

    # Engine
    "EventBus",
    "EventTypes",
    "StatePersistence",
    "STATE_VERSION",
    "TrackerConfig",
    "WorkflowEngine",
]
