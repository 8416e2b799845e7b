"""Cached key/value settings over a global and a per-actor namespace.

Reads are served from in-memory maps. Writes are either staged (``set``)
or staged and flushed to the backend (``update``). ``commit`` writes the
whole namespace map in one call, replacing what the backend holds.
"""
from __future__ import annotations
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .config import CoreConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Option:
    """Result of a settings lookup that keeps "absent" apart from falsy values."""
    present: bool
    value: Any = None

    def get(self, default: Any = None) -> Any:
        return self.value if self.present else default


ABSENT = Option(present=False)


def _lookup(options: Any, key: str) -> Option:
    if not isinstance(options, Mapping) or key not in options:
        return ABSENT
    return Option(present=True, value=options[key])


def _get(options: Any, key: str, default: Any) -> Any:
    # Missing map or key yields the default, or False when none was given
    if not isinstance(options, Mapping):
        return False
    found = _lookup(options, key)
    if found.present:
        return found.value
    return default if default is not None else False


class SettingsStore:
    """Settings for one request context.

    The global namespace is the map owned by ``CoreConfig`` and is shared
    with every other context in the process. The actor namespace belongs
    to this store and is only usable once an actor id other than 0 is known;
    until then actor reads return False and actor writes do nothing.
    """

    def __init__(self, config: CoreConfig, actor_resolver: Optional[Callable[[], int]] = None,
                 actor_id: int = 0):
        self.config = config
        self.backend = config.settings_backend
        self.actor_resolver = actor_resolver
        self.actor_id = actor_id
        self.actor_options: Dict[str, Any] = {}
        self._actor_loaded = False

    # ------------------------------------------------------------------
    # Global namespace
    # ------------------------------------------------------------------
    @property
    def options(self) -> Any:
        return self.config.global_settings()

    def get(self, key: str, default: Any = None) -> Any:
        return _get(self.options, key, default)

    def lookup(self, key: str) -> Option:
        return _lookup(self.options, key)

    def has(self, key: str) -> bool:
        return self.lookup(key).present

    def set(self, key: str, value: Any) -> None:
        """Stage a value in memory only."""
        if not isinstance(self.options, dict):
            self.config.settings = {}
        self.config.settings[key] = value

    def commit(self) -> None:
        """Write the whole global map to the backend."""
        logger.debug("Committing %d global settings", len(self.options or {}))
        self.backend.save_global(dict(self.options or {}))

    def update(self, key: str, value: Any) -> None:
        self.set(key, value)
        self.commit()

    # ------------------------------------------------------------------
    # Actor namespace
    # ------------------------------------------------------------------
    def load_actor(self, force: bool = False) -> None:
        """Resolve the actor id and load its settings. Not called on construction."""
        if self._actor_loaded and not force:
            return

        if self.actor_id == 0 and self.actor_resolver is not None:
            self.actor_id = int(self.actor_resolver() or 0)

        options = self.backend.load_actor(self.actor_id) if self.actor_id else {}
        self.actor_options = options if isinstance(options, dict) else {}
        self._actor_loaded = True

    def _has_actor(self) -> bool:
        self.load_actor()
        return self.actor_id != 0

    def get_actor(self, key: str, default: Any = None) -> Any:
        if not self._has_actor():
            return False
        return _get(self.actor_options, key, default)

    def lookup_actor(self, key: str) -> Option:
        if not self._has_actor():
            return ABSENT
        return _lookup(self.actor_options, key)

    def has_actor(self, key: str) -> bool:
        return self.lookup_actor(key).present

    def set_actor(self, key: str, value: Any) -> bool:
        if not self._has_actor():
            return False
        self.actor_options[key] = value
        return True

    def commit_actor(self) -> bool:
        if not self._has_actor():
            return False
        self.backend.save_actor(self.actor_id, dict(self.actor_options))
        return True

    def update_actor(self, key: str, value: Any) -> bool:
        if not self.set_actor(key, value):
            return False
        return self.commit_actor()
