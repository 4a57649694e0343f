#!/usr/bin/env python3
"""
Carthage Cache State Store
SQLite-backed record of the last fingerprint that produced a good build

Implements:
- load(project_key) → PersistedState | None
- save(state)
- clear(project_key=None)

One row per project. The record column holds a JSON document that is
schema-checked on the way in and on the way out; a record that fails the
check is reported and treated as missing.
"""

import json
import logging
import os
import sqlite3
import time
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, Dict, Any

from jsonschema import Draft7Validator

from step.errors import CacheStoreError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = os.path.expanduser("~/.cache/carthage-step")
DEFAULT_DB_PATH = os.path.join(DEFAULT_CACHE_DIR, "state.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_state (
    project_key TEXT PRIMARY KEY,
    record TEXT NOT NULL,          -- JSON, see STATE_SCHEMA
    updated_at REAL NOT NULL
);
"""

STATE_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["project_key", "fingerprint", "toolchain", "updated_at"],
    "properties": {
        "project_key": {"type": "string", "minLength": 1},
        "fingerprint": {"type": "string", "pattern": "^[0-9a-f]{64}$"},
        "toolchain": {"type": "string"},
        "components": {
            "type": "object",
            "additionalProperties": {"type": "string"},
        },
        "updated_at": {"type": "number", "minimum": 0},
    },
}

_validator = Draft7Validator(STATE_SCHEMA)


def validate_state(payload: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(payload), key=lambda e: list(e.path))
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"cache state validation failed: {messages}")


@dataclass
class PersistedState:
    """Last fingerprint that produced a successful, cached build."""
    project_key: str
    fingerprint: str
    toolchain: str = ""
    components: Dict[str, str] = field(default_factory=dict)
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        validate_state(payload)
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersistedState":
        validate_state(data)
        return cls(
            project_key=data["project_key"],
            fingerprint=data["fingerprint"],
            toolchain=data.get("toolchain", ""),
            components=dict(data.get("components", {})),
            updated_at=float(data["updated_at"]),
        )


class StateStore:
    """
    Persisted "last known state" per project.

    Read once at the start of a run, written only after a successful build.
    """

    def __init__(self, db_path: str = None):
        self.db_path = str(db_path or os.environ.get("CARTHAGE_STATE_DB", DEFAULT_DB_PATH))

        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, timeout=10.0)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except (OSError, sqlite3.Error) as e:
            raise CacheStoreError(f"cannot open state store {self.db_path}: {e}") from e

        logger.debug(f"StateStore initialized (db={self.db_path})")

    def load(self, project_key: str) -> Optional[PersistedState]:
        try:
            row = self._conn.execute(
                "SELECT record FROM cache_state WHERE project_key = ?",
                (project_key,),
            ).fetchone()
        except sqlite3.Error as e:
            raise CacheStoreError(f"cannot read cache state for {project_key}: {e}") from e

        if row is None:
            logger.debug(f"No cache state for {project_key}")
            return None

        try:
            return PersistedState.from_dict(json.loads(row["record"]))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable cache state for {project_key}: {e}")
            return None

    def save(self, state: PersistedState) -> None:
        record = json.dumps(state.to_dict(), sort_keys=True)
        try:
            self._conn.execute(
                """INSERT INTO cache_state (project_key, record, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(project_key) DO UPDATE SET
                       record = excluded.record,
                       updated_at = excluded.updated_at""",
                (state.project_key, record, state.updated_at),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise CacheStoreError(f"cannot write cache state for {state.project_key}: {e}") from e

        logger.debug(f"Saved cache state for {state.project_key} ({state.fingerprint[:12]})")

    def clear(self, project_key: str = None) -> int:
        """Drop the state of one project, or of all projects."""
        if project_key:
            cursor = self._conn.execute("DELETE FROM cache_state WHERE project_key = ?", (project_key,))
        else:
            cursor = self._conn.execute("DELETE FROM cache_state")
        self._conn.commit()
        return cursor.rowcount

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None
