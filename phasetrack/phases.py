"""
Phase Registry

Static definition of the five development phases: which phases each can
move to, whether leaving it needs explicit user confirmation, and the
advisory duration and skills associated with it.
"""

from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, ConfigDict

from .schema import WorkflowPhase


class PhaseConfig(BaseModel):
    """Definition of a single workflow phase."""
    model_config = ConfigDict(frozen=True)

    phase: WorkflowPhase
    name: str
    description: str
    auto_activate_skills: tuple[str, ...] = ()
    allowed_transitions: tuple[WorkflowPhase, ...] = ()
    requires_confirmation: bool = True
    max_duration_minutes: int = 0  # 0 = unlimited, advisory only


PHASE_CONFIGS: Mapping[WorkflowPhase, PhaseConfig] = MappingProxyType({
    WorkflowPhase.BRAINSTORMING: PhaseConfig(
        phase=WorkflowPhase.BRAINSTORMING,
        name="Brainstorming",
        description="Explore ideas and gather requirements",
        auto_activate_skills=("brainstorming", "requirements"),
        allowed_transitions=(WorkflowPhase.PLANNING,),
        requires_confirmation=True,
        max_duration_minutes=30,
    ),
    WorkflowPhase.PLANNING: PhaseConfig(
        phase=WorkflowPhase.PLANNING,
        name="Planning",
        description="Create detailed implementation plan with bite-sized tasks",
        auto_activate_skills=("planning", "task-breakdown"),
        allowed_transitions=(WorkflowPhase.IMPLEMENTATION, WorkflowPhase.BRAINSTORMING),
        requires_confirmation=True,
        max_duration_minutes=60,
    ),
    WorkflowPhase.IMPLEMENTATION: PhaseConfig(
        phase=WorkflowPhase.IMPLEMENTATION,
        name="Implementation",
        description="Execute tasks via subagents with TDD approach",
        auto_activate_skills=("implementation", "tdd", "coding"),
        allowed_transitions=(WorkflowPhase.REVIEW, WorkflowPhase.PLANNING),
        requires_confirmation=False,
        max_duration_minutes=0,
    ),
    WorkflowPhase.REVIEW: PhaseConfig(
        phase=WorkflowPhase.REVIEW,
        name="Code Review",
        description="Two-stage review: requirements compliance + code quality",
        auto_activate_skills=("code-review", "quality-check"),
        allowed_transitions=(WorkflowPhase.FINISHING, WorkflowPhase.IMPLEMENTATION),
        requires_confirmation=True,
        max_duration_minutes=30,
    ),
    WorkflowPhase.FINISHING: PhaseConfig(
        phase=WorkflowPhase.FINISHING,
        name="Finishing",
        description="Final cleanup, documentation, and merge",
        auto_activate_skills=("finishing", "documentation"),
        allowed_transitions=(),
        requires_confirmation=True,
        max_duration_minutes=15,
    ),
})


def get_phase_config(phase: WorkflowPhase) -> PhaseConfig:
    """Get the definition of a phase."""
    return PHASE_CONFIGS[WorkflowPhase(phase)]


def transitions_from(phase: WorkflowPhase) -> tuple[WorkflowPhase, ...]:
    """Phases reachable directly from ``phase``, in preference order."""
    return get_phase_config(phase).allowed_transitions


def requires_confirmation(phase: WorkflowPhase) -> bool:
    return get_phase_config(phase).requires_confirmation


def is_terminal_phase(phase: WorkflowPhase) -> bool:
    return not transitions_from(phase)


def all_phases() -> list[PhaseConfig]:
    """All phase definitions in progression order."""
    return [PHASE_CONFIGS[phase] for phase in WorkflowPhase]
