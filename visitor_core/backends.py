"""Storage collaborators: interfaces plus DuckDB implementations.

The core only talks to these through the protocol methods. Failures of the
database are raised as ``StorageBackendError`` and are not caught by the
core.
"""
from __future__ import annotations
import json
import logging
from typing import Any, Dict, Optional, Protocol, Union

import duckdb

from .config import DEFAULT_OPTIONS, SETTINGS_OPTION_NAME
from .exceptions import StorageBackendError

logger = logging.getLogger(__name__)


class SettingsBackend(Protocol):
    def load_global(self) -> Any: ...
    def save_global(self, options: Dict[str, Any]) -> None: ...
    def load_actor(self, actor_id: int) -> Any: ...
    def save_actor(self, actor_id: int, options: Dict[str, Any]) -> None: ...


class CounterBackend(Protocol):
    def count_visitors(self) -> Optional[int]: ...
    def count_visits(self) -> Optional[int]: ...
    def count_for_uri(self, uri: str) -> Optional[int]: ...
    def count_for_page(self, page_id: int) -> Optional[int]: ...


def _connect(conn: Union[str, duckdb.DuckDBPyConnection]) -> duckdb.DuckDBPyConnection:
    if isinstance(conn, str):
        return duckdb.connect(conn)
    return conn


class DuckDBSettingsBackend:
    """Settings maps stored as JSON documents, one row per namespace."""

    GLOBAL_SCOPE = 'global'
    ACTOR_SCOPE = 'actor'

    def __init__(self, conn: Union[str, duckdb.DuckDBPyConnection] = ':memory:',
                 option_name: str = SETTINGS_OPTION_NAME):
        self.conn = _connect(conn)
        self.option_name = option_name
        self.ensure_tables()

    def ensure_tables(self):
        self._execute(
            "CREATE TABLE IF NOT EXISTS settings ("
            "scope TEXT, actor_id BIGINT, name TEXT, value TEXT, "
            "PRIMARY KEY (scope, actor_id, name))"
        )

    def _execute(self, sql: str, params=None):
        try:
            return self.conn.execute(sql, params or [])
        except duckdb.Error as e:
            raise StorageBackendError(f"Settings query failed: {e}") from e

    def _load(self, scope: str, actor_id: int) -> Any:
        row = self._execute(
            "SELECT value FROM settings WHERE scope = ? AND actor_id = ? AND name = ?",
            [scope, actor_id, self.option_name],
        ).fetchone()
        if not row:
            return None
        try:
            return json.loads(row[0])
        except (TypeError, ValueError):
            logger.warning("Ignoring unreadable %s settings for actor %s", scope, actor_id)
            return None

    def _save(self, scope: str, actor_id: int, options: Dict[str, Any]) -> None:
        payload = json.dumps(options, default=str)
        self._execute(
            "DELETE FROM settings WHERE scope = ? AND actor_id = ? AND name = ?",
            [scope, actor_id, self.option_name],
        )
        self._execute(
            "INSERT INTO settings VALUES (?, ?, ?, ?)",
            [scope, actor_id, self.option_name, payload],
        )

    def load_global(self) -> Any:
        return self._load(self.GLOBAL_SCOPE, 0)

    def save_global(self, options: Dict[str, Any]) -> None:
        self._save(self.GLOBAL_SCOPE, 0, options)

    def load_actor(self, actor_id: int) -> Any:
        return self._load(self.ACTOR_SCOPE, int(actor_id))

    def save_actor(self, actor_id: int, options: Dict[str, Any]) -> None:
        self._save(self.ACTOR_SCOPE, int(actor_id), options)

    def install_defaults(self) -> bool:
        """Write ``DEFAULT_OPTIONS`` when no global settings exist yet."""
        if self.load_global() is not None:
            return False
        self.save_global(dict(DEFAULT_OPTIONS))
        return True


class DuckDBCounterBackend:
    """Aggregate lookups against the ``historical`` table."""

    def __init__(self, conn: Union[str, duckdb.DuckDBPyConnection] = ':memory:'):
        self.conn = _connect(conn)
        self.ensure_tables()

    def ensure_tables(self):
        try:
            self.conn.execute(
                "CREATE TABLE IF NOT EXISTS historical ("
                "category TEXT, page_id BIGINT, uri TEXT, value BIGINT)"
            )
        except duckdb.Error as e:
            raise StorageBackendError(f"Could not create historical table: {e}") from e

    def _scalar(self, sql: str, params=None):
        try:
            row = self.conn.execute(sql, params or []).fetchone()
        except duckdb.Error as e:
            raise StorageBackendError(f"Counter query failed: {e}") from e
        return row[0] if row and len(row) else None

    def count_visitors(self) -> Optional[int]:
        return self._scalar("SELECT value FROM historical WHERE category = 'visitors'")

    def count_visits(self) -> Optional[int]:
        return self._scalar("SELECT value FROM historical WHERE category = 'visits'")

    def count_for_uri(self, uri: str) -> Optional[int]:
        return self._scalar(
            "SELECT value FROM historical WHERE category = 'uri' AND uri = ?", [uri]
        )

    def count_for_page(self, page_id: int) -> Optional[int]:
        return self._scalar(
            "SELECT value FROM historical WHERE category = 'uri' AND page_id = ?", [int(page_id)]
        )
