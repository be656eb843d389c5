"""
Workflow Exceptions

Errors raised by the phase engine. Lookup, transition and status errors
abort the requested operation before any state is touched.
"""


class WorkflowError(Exception):
    """Base exception for workflow tracker errors"""
    pass


class NotFoundError(WorkflowError):
    """A session or task id is unknown"""
    pass


class SessionNotFoundError(NotFoundError):
    """Session id is unknown"""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class TaskNotFoundError(NotFoundError):
    """Task id is unknown within its session"""

    def __init__(self, session_id: str, task_id: str):
        self.session_id = session_id
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id} (session {session_id})")


class InvalidTransitionError(WorkflowError):
    """Phase transition not permitted"""
    pass


class InvalidStateTransitionError(WorkflowError):
    """Session status operation attempted from an incompatible status"""
    pass


class PersistenceError(WorkflowError):
    """State file could not be written or read"""
    pass
