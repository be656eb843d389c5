"""Tests for the JSON state file layer."""

import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from phasetrack.errors import PersistenceError
from phasetrack.persistence import STATE_VERSION, StatePersistence
from phasetrack.schema import (
    PhaseTransition,
    SessionStatus,
    TaskStatus,
    TriggeredBy,
    WorkflowPhase,
    WorkflowSession,
    WorkflowTask,
)


def _sample_session(session_id: str = "wf-abc") -> WorkflowSession:
    created = datetime(2026, 1, 15, 9, 0, 0, 123456, tzinfo=timezone.utc)
    return WorkflowSession(
        id=session_id,
        name="Add OAuth login",
        description="Implement OAuth2 login flow",
        current_phase=WorkflowPhase.IMPLEMENTATION,
        status=SessionStatus.PAUSED,
        tasks=[
            WorkflowTask(
                id="task-1",
                title="Write callback handler",
                status=TaskStatus.COMPLETED,
                phase=WorkflowPhase.IMPLEMENTATION,
                created_at=created,
                started_at=created + timedelta(minutes=1),
                completed_at=created + timedelta(minutes=6, seconds=3, microseconds=7),
                actual_minutes=5,
                modified_files=["auth/callback.py"],
            ),
            WorkflowTask(id="task-2", title="Docs", created_at=created, error="not started"),
        ],
        phase_history=[
            PhaseTransition(
                from_phase=None,
                to_phase=WorkflowPhase.PLANNING,
                timestamp=created,
                reason="Session created",
            ),
            PhaseTransition(
                from_phase=WorkflowPhase.PLANNING,
                to_phase=WorkflowPhase.IMPLEMENTATION,
                timestamp=created + timedelta(seconds=30),
                reason="Plan approved",
                triggered_by=TriggeredBy.USER,
            ),
        ],
        branch="feature/oauth",
        skills=["tdd"],
        metadata={"ticket": "AUTH-12"},
        created_at=created,
        updated_at=created + timedelta(minutes=7),
    )


class TestSave:

    def test_creates_parent_directories(self, tmp_path):
        state_file = tmp_path / "nested" / "dir" / "state.json"
        StatePersistence(state_file).save([])

        assert state_file.exists()

    def test_writes_versioned_envelope(self, tmp_path):
        state_file = tmp_path / "state.json"
        StatePersistence(state_file).save([_sample_session()])

        data = json.loads(state_file.read_text())
        assert data["version"] == STATE_VERSION
        assert isinstance(data["lastUpdated"], str)
        assert len(data["sessions"]) == 1

        session = data["sessions"][0]
        assert session["currentPhase"] == "implementation"
        assert session["phaseHistory"][0]["from"] is None
        assert session["phaseHistory"][1]["triggeredBy"] == "user"
        assert session["tasks"][0]["actualMinutes"] == 5
        assert session["createdAt"].startswith("2026-01-15T09:00:00.123456")

    def test_overwrites_existing_file(self, tmp_path):
        state_file = tmp_path / "state.json"
        persistence = StatePersistence(state_file)

        persistence.save([_sample_session("wf-1"), _sample_session("wf-2")])
        persistence.save([_sample_session("wf-3")])

        ids = [s["id"] for s in json.loads(state_file.read_text())["sessions"]]
        assert ids == ["wf-3"]

    def test_leaves_no_temp_files(self, tmp_path):
        state_file = tmp_path / "state.json"
        StatePersistence(state_file).save([_sample_session()])

        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_unwritable_location_raises_persistence_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(PersistenceError):
            StatePersistence(blocker / "state.json").save([])

    def test_unserializable_metadata_raises_persistence_error(self, tmp_path):
        state_file = tmp_path / "state.json"
        session = _sample_session()
        session.metadata["handle"] = object()

        with pytest.raises(PersistenceError, match="not JSON-serializable"):
            StatePersistence(state_file).save([session])
        assert not state_file.exists()

    def test_task_phase_mirrored_in_metadata(self, tmp_path):
        state_file = tmp_path / "state.json"
        StatePersistence(state_file).save([_sample_session()])

        task = json.loads(state_file.read_text())["sessions"][0]["tasks"][0]
        assert task["phase"] == "implementation"
        assert task["metadata"]["phase"] == "implementation"


class TestLoad:

    def test_missing_file_returns_empty(self, tmp_path):
        persistence = StatePersistence(tmp_path / "absent.json")

        assert persistence.exists() is False
        assert persistence.load() == []

    def test_round_trip_is_exact(self, tmp_path):
        persistence = StatePersistence(tmp_path / "state.json")
        sessions = [_sample_session("wf-1"), _sample_session("wf-2")]

        persistence.save(sessions)
        loaded = persistence.load()

        assert [s.model_dump() for s in loaded] == [s.model_dump() for s in sessions]

    def test_round_trip_preserves_instants(self, tmp_path):
        persistence = StatePersistence(tmp_path / "state.json")
        original = _sample_session()

        persistence.save([original])
        loaded = persistence.load()[0]

        assert loaded.tasks[0].completed_at == original.tasks[0].completed_at
        assert loaded.phase_history[1].timestamp == original.phase_history[1].timestamp
        assert loaded.tasks[0].completed_at.utcoffset() == timedelta(0)

    def test_malformed_json_raises(self, tmp_path):
        state_file = tmp_path / "state.json"
        state_file.write_text("{not json")

        with pytest.raises(PersistenceError, match="Malformed JSON"):
            StatePersistence(state_file).load()

    def test_non_utf8_raises(self, tmp_path):
        state_file = tmp_path / "state.json"
        state_file.write_bytes(b'{"version": 1, "sessions": [], "x": "\xff\xfe"}')

        with pytest.raises(PersistenceError, match="not valid UTF-8"):
            StatePersistence(state_file).load()

    def test_non_object_raises(self, tmp_path):
        state_file = tmp_path / "state.json"
        state_file.write_text("[]")

        with pytest.raises(PersistenceError):
            StatePersistence(state_file).load()

    def test_invalid_session_raises(self, tmp_path):
        state_file = tmp_path / "state.json"
        state_file.write_text(json.dumps({
            "version": STATE_VERSION,
            "sessions": [{"id": "wf-1", "name": "x", "currentPhase": "deploy"}],
            "lastUpdated": "2026-01-15T09:00:00Z",
        }))

        with pytest.raises(PersistenceError, match="Invalid state file"):
            StatePersistence(state_file).load()

    def test_version_mismatch_loads_without_migration(self, tmp_path, caplog):
        state_file = tmp_path / "state.json"
        persistence = StatePersistence(state_file)
        persistence.save([_sample_session()])

        data = json.loads(state_file.read_text())
        data["version"] = STATE_VERSION + 1
        state_file.write_text(json.dumps(data))

        with caplog.at_level(logging.WARNING, logger="phasetrack.persistence"):
            loaded = persistence.load()

        assert [s.id for s in loaded] == ["wf-abc"]
        assert "without migration" in caplog.text

    def test_legacy_metadata_phase_tags(self, tmp_path):
        state_file = tmp_path / "state.json"
        state_file.write_text(json.dumps({
            "version": STATE_VERSION,
            "sessions": [{
                "id": "wf-1",
                "name": "Legacy",
                "currentPhase": "implementation",
                "status": "active",
                "tasks": [{
                    "id": "task-1",
                    "title": "Old task",
                    "status": "completed",
                    "createdAt": "2026-01-15T09:00:00.000Z",
                    "metadata": {"phase": "implementation"},
                }],
                "phaseHistory": [{
                    "from": None,
                    "to": "implementation",
                    "timestamp": "2026-01-15T09:00:00.000Z",
                    "reason": "Session created",
                    "triggeredBy": "system",
                }],
                "createdAt": "2026-01-15T09:00:00.000Z",
                "updatedAt": "2026-01-15T09:00:00.000Z",
            }],
            "lastUpdated": "2026-01-15T09:00:00.000Z",
        }))

        session = StatePersistence(state_file).load()[0]

        assert session.tasks[0].phase == WorkflowPhase.IMPLEMENTATION
        assert session.phase_history[0].from_phase is None
