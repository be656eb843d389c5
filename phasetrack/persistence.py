"""
State file persistence.

The whole session set is written as one versioned JSON envelope:

    {"version": 1, "sessions": [...], "lastUpdated": "<ISO-8601>"}

Every save rewrites the file wholesale (temp file + rename). There is no
locking: sharing one state file between processes is unsupported.
"""

import json
import logging
import random
from pathlib import Path
from typing import Iterable, Union

from pydantic import ValidationError

from .errors import PersistenceError
from .schema import PersistedState, WorkflowSession, _utc_now

logger = logging.getLogger(__name__)


STATE_VERSION = 1
DEFAULT_STATE_FILE = Path.home() / ".ccjk" / "workflow-state.json"


class StatePersistence:
    """Serialize sessions to and from a single JSON state file."""

    def __init__(self, state_file: Union[str, Path] = DEFAULT_STATE_FILE):
        self.state_file = Path(state_file).expanduser()

    def exists(self) -> bool:
        return self.state_file.exists()

    def save(self, sessions: Iterable[WorkflowSession]) -> None:
        """
        Write all sessions to the state file.

        Creates parent directories as needed.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        state = PersistedState(
            version=STATE_VERSION,
            sessions=list(sessions),
            last_updated=_utc_now(),
        )
        try:
            payload = state.model_dump(mode="json", by_alias=True)
        except ValueError as e:
            # PydanticSerializationError, e.g. a non-JSON value in metadata
            raise PersistenceError(f"Workflow state is not JSON-serializable: {e}") from e

        # Unique temp file next to the target so the rename stays on one filesystem
        temp_path = self.state_file.with_suffix(f".tmp.{random.randint(0, 999999)}")
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
            temp_path.replace(self.state_file)
        except OSError as e:
            try:
                temp_path.unlink()
            except OSError:
                pass
            raise PersistenceError(f"Failed to save workflow state to {self.state_file}: {e}") from e

        logger.debug("State saved to %s (%d sessions)", self.state_file, len(state.sessions))

    def load(self) -> list[WorkflowSession]:
        """
        Read sessions from the state file.

        Returns:
            Sessions in stored order, or an empty list if the file is absent.

        Raises:
            PersistenceError: If the file is unreadable, not JSON, or does
                not match the session schema.
        """
        if not self.state_file.exists():
            logger.debug("No existing state file found at %s", self.state_file)
            return []

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Malformed JSON in state file {self.state_file}: {e}") from e
        except UnicodeDecodeError as e:
            raise PersistenceError(f"State file {self.state_file} is not valid UTF-8: {e}") from e
        except OSError as e:
            raise PersistenceError(f"Failed to read state file {self.state_file}: {e}") from e

        if not isinstance(data, dict):
            raise PersistenceError(f"State file {self.state_file} does not contain a JSON object")

        version = data.get("version")
        if version != STATE_VERSION:
            # No migrations are defined yet; the sessions are loaded as stored.
            logger.warning(
                "State file version %s differs from current version %s; loading without migration",
                version, STATE_VERSION,
            )
            data = {**data, "version": STATE_VERSION}

        try:
            state = PersistedState.model_validate(data)
        except ValidationError as e:
            raise PersistenceError(f"Invalid state file {self.state_file}: {e}") from e

        logger.debug("Loaded %d sessions from %s", len(state.sessions), self.state_file)
        return state.sessions
