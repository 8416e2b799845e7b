"""Visitor classification core: client address, user agent and referrer for one request."""

from .config import CoreConfig
from .context import VisitorContext
from .historical import HistoricalCounterCache
from .referrer import ReferrerClassifier, load_search_engine_catalog
from .request_meta import RequestMeta
from .settings_store import SettingsStore
from .user_agent import UserAgentNormalizer

__all__ = [
    "CoreConfig",
    "VisitorContext",
    "HistoricalCounterCache",
    "ReferrerClassifier",
    "load_search_engine_catalog",
    "RequestMeta",
    "SettingsStore",
    "UserAgentNormalizer",
]
