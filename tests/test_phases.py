"""Tests for the phase registry."""

import pytest
from pydantic import ValidationError

from phasetrack.phases import (
    PHASE_CONFIGS,
    all_phases,
    get_phase_config,
    is_terminal_phase,
    requires_confirmation,
    transitions_from,
)
from phasetrack.schema import WorkflowPhase


class TestPhaseTable:
    """Tests for the static phase definitions"""

    def test_every_phase_has_a_config(self):
        assert set(PHASE_CONFIGS) == set(WorkflowPhase)

    def test_transitions_are_fixed(self):
        assert transitions_from(WorkflowPhase.BRAINSTORMING) == (WorkflowPhase.PLANNING,)
        assert transitions_from(WorkflowPhase.PLANNING) == (
            WorkflowPhase.IMPLEMENTATION, WorkflowPhase.BRAINSTORMING,
        )
        assert transitions_from(WorkflowPhase.IMPLEMENTATION) == (
            WorkflowPhase.REVIEW, WorkflowPhase.PLANNING,
        )
        assert transitions_from(WorkflowPhase.REVIEW) == (
            WorkflowPhase.FINISHING, WorkflowPhase.IMPLEMENTATION,
        )

    def test_finishing_is_terminal(self):
        assert transitions_from(WorkflowPhase.FINISHING) == ()
        assert is_terminal_phase(WorkflowPhase.FINISHING)
        assert not is_terminal_phase(WorkflowPhase.REVIEW)

    def test_only_implementation_skips_confirmation(self):
        unconfirmed = [p for p in WorkflowPhase if not requires_confirmation(p)]
        assert unconfirmed == [WorkflowPhase.IMPLEMENTATION]

    def test_implementation_duration_is_unlimited(self):
        assert get_phase_config(WorkflowPhase.IMPLEMENTATION).max_duration_minutes == 0
        assert get_phase_config(WorkflowPhase.PLANNING).max_duration_minutes == 60

    def test_accepts_string_phase(self):
        assert get_phase_config("review").name == "Code Review"

    def test_all_phases_in_progression_order(self):
        assert [c.phase for c in all_phases()] == list(WorkflowPhase)

    def test_transitions_only_reference_known_phases(self):
        for config in all_phases():
            for target in config.allowed_transitions:
                assert target in PHASE_CONFIGS
                assert target != config.phase


class TestPhaseImmutability:
    """The registry cannot be changed at runtime"""

    def test_config_is_frozen(self):
        config = get_phase_config(WorkflowPhase.IMPLEMENTATION)
        with pytest.raises(ValidationError):
            config.requires_confirmation = True

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            PHASE_CONFIGS[WorkflowPhase.FINISHING] = PHASE_CONFIGS[WorkflowPhase.REVIEW]
