"""
Workflow Engine - Core Logic

This module implements the phase state machine for workflow sessions:
validated phase transitions, session status changes, task tracking and
auto-advance. Every mutation publishes an event and rewrites the state file.

Operations validate before they mutate, so a rejected call leaves the
session untouched. The engine is not thread-safe; wrap it in a
lock if it must be shared between threads.
"""

import logging
import math
import uuid
from typing import Any, Dict, Optional, Union

from .errors import (
    InvalidStateTransitionError,
    InvalidTransitionError,
    PersistenceError,
    SessionNotFoundError,
    TaskNotFoundError,
)
from .events import EventBus, EventTypes
from .phases import get_phase_config, transitions_from
from .persistence import StatePersistence
from .schema import (
    PhaseTransition,
    SessionStatus,
    TaskPriority,
    TaskStatus,
    TriggeredBy,
    WorkflowPhase,
    WorkflowSession,
    WorkflowTask,
    _utc_now,
)

# Configure logging
logger = logging.getLogger(__name__)

AUTO_ADVANCE_REASON = "Auto-advanced after task completion"
UNKNOWN_TASK_ERROR = "Unknown error"


def _generate_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _round_minutes(seconds: float) -> int:
    """Round a duration to whole minutes, halves rounding up."""
    return int(math.floor(seconds / 60 + 0.5))


def _round_tenths(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


class WorkflowEngine:
    """
    Owns the workflow sessions for the lifetime of the process.

    Construct one engine at the entry point and pass it to callers.
    Subscribe to lifecycle events through ``engine.events``.
    """

    def __init__(
        self,
        persistence: Optional[StatePersistence] = None,
        event_bus: Optional[EventBus] = None,
        auto_save: bool = True,
        verbose: bool = False,
    ):
        self.persistence = persistence or StatePersistence()
        self.events = event_bus or EventBus()
        self.auto_save = auto_save
        self.verbose = verbose
        self._sessions: Dict[str, WorkflowSession] = {}
        self.load_state()

    @classmethod
    def from_config(cls, config, event_bus: Optional[EventBus] = None) -> "WorkflowEngine":
        """Create an engine from a TrackerConfig."""
        return cls(
            persistence=StatePersistence(config.state_file),
            event_bus=event_bus,
            auto_save=config.auto_save,
            verbose=config.verbose,
        )

    # ========================================================================
    # Session Management
    # ========================================================================

    def create_session(
        self,
        name: str,
        description: Optional[str] = None,
        initial_phase: Union[WorkflowPhase, str, None] = None,
        branch: Optional[str] = None,
        skills: Optional[list[str]] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> WorkflowSession:
        """
        Create a new active workflow session.

        Args:
            name: Session name (required)
            description: Optional session description
            initial_phase: Starting phase (default: brainstorming)
            branch: Optional git branch for the work
            skills: Skill IDs associated with the session
            metadata: Additional free-form metadata

        Returns:
            The created session
        """
        if not name or not name.strip():
            raise ValueError("Session name is required")

        phase = WorkflowPhase(initial_phase) if initial_phase else WorkflowPhase.BRAINSTORMING
        now = _utc_now()
        session = WorkflowSession(
            id=_generate_id("wf"),
            name=name,
            description=description or "",
            current_phase=phase,
            status=SessionStatus.ACTIVE,
            phase_history=[
                PhaseTransition(
                    from_phase=None,
                    to_phase=phase,
                    timestamp=now,
                    reason="Session created",
                    triggered_by=TriggeredBy.SYSTEM,
                )
            ],
            branch=branch,
            skills=list(skills or []),
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )

        self._sessions[session.id] = session
        self.events.publish(EventTypes.SESSION_CREATED, session)
        self._log("Created session: %s - %s", session.id, session.name)
        self._persist()

        return session

    def get_session(self, session_id: str) -> Optional[WorkflowSession]:
        """Get a session by ID, or None if unknown."""
        return self._sessions.get(session_id)

    def list_sessions(self) -> list[WorkflowSession]:
        """All sessions in insertion order."""
        return list(self._sessions.values())

    def list_active_sessions(self) -> list[WorkflowSession]:
        """Sessions that are active or paused."""
        return [
            s for s in self._sessions.values()
            if s.status in (SessionStatus.ACTIVE, SessionStatus.PAUSED)
        ]

    def update_session(
        self,
        session_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        branch: Optional[str] = None,
        worktree_path: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> WorkflowSession:
        """Update user-editable session fields. Fields left as None are unchanged."""
        session = self._get_session_or_raise(session_id)
        if name is not None and not name.strip():
            raise ValueError("Session name cannot be empty")

        if name is not None:
            session.name = name
        if description is not None:
            session.description = description
        if branch is not None:
            session.branch = branch
        if worktree_path is not None:
            session.worktree_path = worktree_path
        if metadata is not None:
            session.metadata = dict(metadata)
        session.updated_at = _utc_now()

        self._persist()
        return session

    def delete_session(self, session_id: str) -> bool:
        """
        Delete a session and its tasks.

        Returns:
            True if deleted, False if not found (nothing is written)
        """
        if session_id not in self._sessions:
            return False

        del self._sessions[session_id]
        self._log("Deleted session: %s", session_id)
        self._persist()
        return True

    # ========================================================================
    # Phase Transitions
    # ========================================================================

    def transition_to(
        self,
        session_id: str,
        target_phase: Union[WorkflowPhase, str],
        reason: Optional[str] = None,
    ) -> WorkflowSession:
        """
        Move a session to another phase.

        Raises:
            InvalidTransitionError: If the session is unknown, not active,
                or target_phase is not reachable from the current phase.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise InvalidTransitionError(f"Session not found: {session_id}")
        return self._apply_transition(session, target_phase, reason, TriggeredBy.USER)

    def can_transition_to(self, session_id: str, target_phase: Union[WorkflowPhase, str]) -> bool:
        """Check whether transition_to would succeed, without raising."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        try:
            self._validate_transition(session, target_phase)
        except InvalidTransitionError:
            return False
        return True

    def get_allowed_transitions(self, session_id: str) -> list[WorkflowPhase]:
        """Phases reachable from the session's current phase ([] if unknown)."""
        session = self._sessions.get(session_id)
        if session is None:
            return []
        return list(transitions_from(session.current_phase))

    def auto_advance(self, session_id: str) -> Optional[WorkflowSession]:
        """
        Advance to the first allowed phase if the current phase is done.

        Returns None without changing anything when the current phase needs
        confirmation, has no tasks tagged to it, or has any tagged task that
        is not completed.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise InvalidTransitionError(f"Session not found: {session_id}")

        config = get_phase_config(session.current_phase)
        if config.requires_confirmation:
            return None

        phase_tasks = session.tasks_for_phase(session.current_phase)
        if not phase_tasks:
            return None
        if any(t.status != TaskStatus.COMPLETED for t in phase_tasks):
            return None

        if not config.allowed_transitions:
            return None
        next_phase = config.allowed_transitions[0]

        return self._apply_transition(session, next_phase, AUTO_ADVANCE_REASON, TriggeredBy.SYSTEM)

    def _validate_transition(self, session: WorkflowSession, target_phase) -> WorkflowPhase:
        if session.status != SessionStatus.ACTIVE:
            raise InvalidTransitionError(
                f"Cannot transition session with status: {session.status.value}"
            )

        try:
            target = WorkflowPhase(target_phase)
        except ValueError:
            raise InvalidTransitionError(f"Unknown phase: {target_phase}")

        allowed = transitions_from(session.current_phase)
        if target not in allowed:
            raise InvalidTransitionError(
                f"Invalid transition: {session.current_phase.value} -> {target.value}. "
                f"Allowed: {', '.join(p.value for p in allowed) or 'none'}"
            )
        return target

    def _apply_transition(
        self,
        session: WorkflowSession,
        target_phase,
        reason: Optional[str],
        triggered_by: TriggeredBy,
    ) -> WorkflowSession:
        target = self._validate_transition(session, target_phase)

        old_phase = session.current_phase
        now = _utc_now()
        transition = PhaseTransition(
            from_phase=old_phase,
            to_phase=target,
            timestamp=now,
            reason=reason or f"Transition from {old_phase.value} to {target.value}",
            triggered_by=triggered_by,
        )

        session.current_phase = target
        session.phase_history.append(transition)
        session.updated_at = now

        self.events.publish(EventTypes.PHASE_CHANGED, session, transition)
        self._log("Phase transition: %s -> %s (%s)", old_phase.value, target.value, session.name)
        self._persist()

        return session

    # ========================================================================
    # Session Status Management
    # ========================================================================

    def pause_session(self, session_id: str) -> WorkflowSession:
        session = self._get_session_or_raise(session_id)
        self._require_status(session, "pause", SessionStatus.ACTIVE)
        return self._change_status(session, SessionStatus.PAUSED)

    def resume_session(self, session_id: str) -> WorkflowSession:
        session = self._get_session_or_raise(session_id)
        self._require_status(session, "resume", SessionStatus.PAUSED)
        return self._change_status(session, SessionStatus.ACTIVE)

    def complete_session(self, session_id: str) -> WorkflowSession:
        """Mark an active session as completed."""
        session = self._get_session_or_raise(session_id)
        self._require_status(session, "complete", SessionStatus.ACTIVE)

        session.completed_at = _utc_now()
        self._change_status(session, SessionStatus.COMPLETED)
        self.events.publish(EventTypes.WORKFLOW_COMPLETED, session)
        return session

    def fail_session(self, session_id: str, error: str) -> WorkflowSession:
        """Mark a non-terminal session as failed, recording the error."""
        session = self._get_session_or_raise(session_id)
        self._require_not_terminal(session, "fail")

        session.error = error
        self._change_status(session, SessionStatus.FAILED)
        self.events.publish(EventTypes.WORKFLOW_FAILED, session, error)
        return session

    def cancel_session(self, session_id: str) -> WorkflowSession:
        session = self._get_session_or_raise(session_id)
        self._require_not_terminal(session, "cancel")
        return self._change_status(session, SessionStatus.CANCELLED)

    def _require_status(self, session: WorkflowSession, action: str, expected: SessionStatus):
        if session.status != expected:
            raise InvalidStateTransitionError(
                f"Cannot {action} session with status: {session.status.value}"
            )

    def _require_not_terminal(self, session: WorkflowSession, action: str):
        if session.status.is_terminal:
            raise InvalidStateTransitionError(
                f"Cannot {action} session with status: {session.status.value}"
            )

    def _change_status(self, session: WorkflowSession, new_status: SessionStatus) -> WorkflowSession:
        old_status = session.status
        session.status = new_status
        session.updated_at = _utc_now()

        self.events.publish(EventTypes.SESSION_STATUS, session, old_status, new_status)
        self._log("Session status: %s -> %s (%s)", old_status.value, new_status.value, session.name)
        self._persist()

        return session

    # ========================================================================
    # Task Management
    # ========================================================================

    def add_task(
        self,
        session_id: str,
        title: str,
        description: str = "",
        phase: Union[WorkflowPhase, str, None] = None,
        priority: Union[TaskPriority, str] = TaskPriority.MEDIUM,
        estimated_minutes: int = 0,
        dependencies: Optional[list[str]] = None,
        skill_id: Optional[str] = None,
        parent_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> WorkflowTask:
        """
        Append a pending task to a session.

        Args:
            session_id: Owning session
            title: Task title
            description: Detailed description
            phase: Phase the task belongs to (untagged if None)
            priority: Task priority
            estimated_minutes: Estimated duration
            dependencies: IDs of tasks that must complete first
            skill_id: Associated skill
            parent_id: Parent task for subtasks
            metadata: Additional free-form metadata

        Returns:
            The created task
        """
        session = self._get_session_or_raise(session_id)

        task = WorkflowTask(
            id=_generate_id("task"),
            title=title,
            description=description,
            status=TaskStatus.PENDING,
            priority=TaskPriority(priority),
            phase=WorkflowPhase(phase) if phase else None,
            parent_id=parent_id,
            estimated_minutes=estimated_minutes,
            dependencies=list(dependencies or []),
            skill_id=skill_id,
            metadata=dict(metadata or {}),
            created_at=_utc_now(),
        )

        session.tasks.append(task)
        session.updated_at = task.created_at

        self.events.publish(EventTypes.TASK_CREATED, session, task)
        self._log("Added task %s to session %s", task.id, session.id)
        self._persist()

        return task

    def update_task_status(
        self,
        session_id: str,
        task_id: str,
        status: Union[TaskStatus, str],
        error: Optional[str] = None,
    ) -> WorkflowTask:
        """
        Record a new status for a task.

        The first move to running stamps started_at. The first move to a
        terminal status stamps completed_at and, when started_at is known,
        derives actual_minutes. Later moves never overwrite these.

        Raises:
            SessionNotFoundError: If the session is unknown.
            TaskNotFoundError: If the task is not in the session.
        """
        session = self._get_session_or_raise(session_id)
        task = session.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(session_id, task_id)
        new_status = TaskStatus(status)

        now = _utc_now()
        old_status = task.status
        task.status = new_status
        if error is not None:
            task.error = error

        if new_status == TaskStatus.RUNNING and task.started_at is None:
            task.started_at = now

        if new_status.is_terminal and task.completed_at is None:
            task.completed_at = now
            if task.started_at is not None:
                elapsed = (task.completed_at - task.started_at).total_seconds()
                task.actual_minutes = _round_minutes(elapsed)

        session.updated_at = now

        self.events.publish(EventTypes.TASK_STATUS, session, task, old_status, new_status)
        if new_status == TaskStatus.COMPLETED:
            self.events.publish(EventTypes.TASK_COMPLETED, session, task)
        elif new_status == TaskStatus.FAILED:
            self.events.publish(EventTypes.TASK_FAILED, session, task, task.error or UNKNOWN_TASK_ERROR)

        self._persist()

        return task

    def get_tasks_for_phase(self, session_id: str, phase: Union[WorkflowPhase, str]) -> list[WorkflowTask]:
        session = self._get_session_or_raise(session_id)
        return session.tasks_for_phase(WorkflowPhase(phase))

    def get_pending_tasks(self, session_id: str) -> list[WorkflowTask]:
        """Tasks not yet started (pending or queued)."""
        session = self._get_session_or_raise(session_id)
        return [t for t in session.tasks if t.status in (TaskStatus.PENDING, TaskStatus.QUEUED)]

    def get_running_tasks(self, session_id: str) -> list[WorkflowTask]:
        session = self._get_session_or_raise(session_id)
        return [t for t in session.tasks if t.status == TaskStatus.RUNNING]

    # ========================================================================
    # Loading and Saving
    # ========================================================================

    def load_state(self):
        """Replace in-memory sessions with the contents of the state file."""
        try:
            sessions = self.persistence.load()
        except PersistenceError as e:
            logger.error(f"Failed to load workflow state, starting empty: {e}")
            sessions = []

        self._sessions = {s.id: s for s in sessions}
        self._log("Loaded %d sessions from state file", len(self._sessions))

    def save_state(self) -> bool:
        """
        Write all sessions to the state file.

        Returns:
            True if written; False if the write failed (state stays in memory)
        """
        try:
            self.persistence.save(self._sessions.values())
        except PersistenceError as e:
            logger.error(f"Failed to save workflow state: {e}")
            return False
        return True

    def clear_state(self):
        """Drop every session."""
        self._sessions.clear()
        self._persist()
        self._log("State cleared")

    def _persist(self):
        if self.auto_save:
            self.save_state()

    # ========================================================================
    # Statistics
    # ========================================================================

    def get_stats(self) -> dict:
        """Session and task totals across the engine."""
        sessions = self.list_sessions()
        all_tasks = [t for s in sessions for t in s.tasks]
        timed_tasks = [
            t for t in all_tasks
            if t.status == TaskStatus.COMPLETED and t.actual_minutes
        ]

        avg_duration = 0.0
        if timed_tasks:
            avg_duration = sum(t.actual_minutes for t in timed_tasks) / len(timed_tasks)

        return {
            "total_sessions": len(sessions),
            "active_sessions": sum(1 for s in sessions if s.status == SessionStatus.ACTIVE),
            "completed_sessions": sum(1 for s in sessions if s.status == SessionStatus.COMPLETED),
            "failed_sessions": sum(1 for s in sessions if s.status == SessionStatus.FAILED),
            "total_tasks": len(all_tasks),
            "completed_tasks": len(timed_tasks),
            "average_task_duration": _round_tenths(avg_duration),
        }

    # ========================================================================
    # Private Helpers
    # ========================================================================

    def _get_session_or_raise(self, session_id: str) -> WorkflowSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _log(self, message: str, *args):
        logger.log(logging.INFO if self.verbose else logging.DEBUG, message, *args)
