"""
Workflow Schema Definitions using Pydantic

This module defines the runtime entities tracked by the phase engine:
sessions, their tasks, and the append-only phase transition history.

Python attributes are snake_case. The persisted state file uses the
camelCase field names (``currentPhase``, ``phaseHistory``, ``createdAt``)
through field aliases, so always dump with ``by_alias=True``.
"""

from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator
from pydantic.alias_generators import to_camel
from typing import Any, Optional
from datetime import datetime, timezone
from enum import Enum


class WorkflowPhase(str, Enum):
    """Phases of a development workflow, in progression order."""
    BRAINSTORMING = "brainstorming"
    PLANNING = "planning"
    IMPLEMENTATION = "implementation"
    REVIEW = "review"
    FINISHING = "finishing"


class SessionStatus(str, Enum):
    """Status of a workflow session."""
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_SESSION_STATUSES


class TaskStatus(str, Enum):
    """Status of a task within a session."""
    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_TASK_STATUSES


class TaskPriority(str, Enum):
    """Priority levels for tasks."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TriggeredBy(str, Enum):
    """Who caused a phase transition."""
    SYSTEM = "system"
    USER = "user"


TERMINAL_SESSION_STATUSES = frozenset({
    SessionStatus.COMPLETED,
    SessionStatus.FAILED,
    SessionStatus.CANCELLED,
})

TERMINAL_TASK_STATUSES = frozenset({
    TaskStatus.COMPLETED,
    TaskStatus.FAILED,
    TaskStatus.CANCELLED,
})


def _utc_now():
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class _WireModel(BaseModel):
    """Base model mapping snake_case attributes to camelCase wire names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Runtime State Schema
# ============================================================================

class PhaseTransition(_WireModel):
    """Immutable audit record of a phase change."""
    model_config = ConfigDict(frozen=True)

    from_phase: Optional[WorkflowPhase] = Field(default=None, alias="from")
    to_phase: WorkflowPhase = Field(alias="to")
    timestamp: datetime = Field(default_factory=_utc_now)
    reason: Optional[str] = None
    triggered_by: TriggeredBy = TriggeredBy.SYSTEM


class WorkflowTask(_WireModel):
    """A unit of work belonging to a session."""
    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    phase: Optional[WorkflowPhase] = None  # Phase the task belongs to
    parent_id: Optional[str] = None
    estimated_minutes: int = 0
    actual_minutes: Optional[int] = None  # Derived on first terminal status
    dependencies: list[str] = Field(default_factory=list)
    skill_id: Optional[str] = None
    output: Optional[str] = None
    modified_files: Optional[list[str]] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def lift_legacy_phase_tag(cls, data: Any) -> Any:
        # Older state files tagged the phase inside the free-form metadata.
        if isinstance(data, dict) and data.get("phase") is None:
            metadata = data.get("metadata")
            if isinstance(metadata, dict) and metadata.get("phase"):
                data = dict(data)
                data["phase"] = metadata["phase"]
        return data

    @model_serializer(mode="wrap")
    def mirror_phase_tag(self, handler):
        # Other ccjk tools read the phase from metadata.phase
        data = handler(self)
        if self.phase is not None and "metadata" in data:
            data["metadata"] = {**data["metadata"], "phase": self.phase.value}
        return data


class WorkflowSession(_WireModel):
    """Complete runtime state of a workflow session."""
    id: str
    name: str
    description: str = ""
    current_phase: WorkflowPhase = WorkflowPhase.BRAINSTORMING
    status: SessionStatus = SessionStatus.ACTIVE
    tasks: list[WorkflowTask] = Field(default_factory=list)
    phase_history: list[PhaseTransition] = Field(default_factory=list)
    branch: Optional[str] = None
    worktree_path: Optional[str] = None
    skills: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def get_task(self, task_id: str) -> Optional[WorkflowTask]:
        """Get a task by ID."""
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def tasks_for_phase(self, phase: WorkflowPhase) -> list[WorkflowTask]:
        """Tasks tagged to the given phase, in insertion order."""
        return [t for t in self.tasks if t.phase == phase]


# ============================================================================
# Persisted State Envelope
# ============================================================================

class PersistedState(_WireModel):
    """Versioned envelope written to the state file."""
    version: int
    sessions: list[WorkflowSession] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=_utc_now)
