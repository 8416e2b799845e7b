"""Configuration constants and the process-wide configuration object."""
from __future__ import annotations
import yaml
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


def load_yaml_config(cfg_path: Path) -> Dict:
    with cfg_path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


PACKAGE_DIR = Path(__file__).resolve().parent
SEARCH_ENGINES_PATH = PACKAGE_DIR / 'data' / 'search_engines.yaml'

LOOPBACK_ADDRESS = '127.0.0.1'

UNKNOWN_LABEL = 'Unknown'

NO_SEARCH_QUERY = 'No search query found!'

# Removed from every user agent field, in this order
UA_NOISE_STRINGS = ['"', "'", '(', ')', ';', ':', '/', '[', ']', '{', '}', 'http']

# Option name the whole settings map is stored under
SETTINGS_OPTION_NAME = 'wp_statistics'


class ForwardedHeader(Enum):
    """Proxy forwarding headers, in the order they are trusted."""
    CLIENT_IP = "Client-IP"
    X_FORWARDED_FOR = "X-Forwarded-For"
    X_FORWARDED = "X-Forwarded"
    FORWARDED_FOR = "Forwarded-For"
    FORWARDED = "Forwarded"

    @classmethod
    def all_values(cls) -> list[str]:
        return [header.value for header in cls]


class HistoricalCategory(Enum):
    """Partitions of the historical counter cache."""
    VISITORS = "visitors"
    VISITS = "visits"
    URI = "uri"
    PAGE = "page"

    @classmethod
    def all_values(cls) -> list[str]:
        return [category.value for category in cls]


# Install-time defaults for the global settings namespace
DEFAULT_OPTIONS: Dict[str, Any] = {
    'search_converted': 1,
    'geoip': False,
    'browscap': False,
    'useronline': True,
    'visits': True,
    'visitors': True,
    'pages': True,
    'check_online': '30',
    'menu_bar': False,
    'coefficient': '1',
    'stats_report': False,
    'time_report': 'daily',
    'send_report': 'mail',
    'content_report': '',
    'update_geoip': True,
    'store_ua': False,
    'exclude_administrator': True,
    'disable_se_clearch': True,
    'disable_se_ask': True,
    'map_type': 'jqvmap',
    'force_robot_update': True,
}


@dataclass
class CoreConfig:
    """Process-wide configuration, built once at startup and handed to each request context.

    ``settings`` holds the global settings namespace shared by every context.
    It is loaded from ``settings_backend`` on first access.
    """
    settings_backend: Any
    catalog: Any = None
    site_url: str = 'http://localhost'
    timezone_string: Optional[str] = None
    gmt_offset: float = 0
    ipv6_enabled: bool = True
    locale: str = 'en'
    ua_parser: Any = None
    settings: Optional[Dict[str, Any]] = field(default=None, repr=False)
    _settings_loaded: bool = field(default=False, init=False, repr=False)

    def __post_init__(self):
        self._settings_loaded = self.settings is not None
        if self.catalog is None:
            from .referrer import load_search_engine_catalog
            self.catalog = load_search_engine_catalog()
        if self.ua_parser is None:
            from .user_agent import HttpAgentParser
            self.ua_parser = HttpAgentParser()

    def global_settings(self, force: bool = False):
        """Return the shared global settings map, loading it from the backend once."""
        if not self._settings_loaded or force:
            self.settings = self.settings_backend.load_global()
            self._settings_loaded = True
        return self.settings

    @classmethod
    def from_yaml(cls, cfg_path: Path, settings_backend, **overrides) -> "CoreConfig":
        """Build a configuration from a site YAML file.

        Recognised keys: site_url, timezone_string, gmt_offset, ipv6_enabled,
        locale and search_engines (path to an alternative catalog file).
        """
        raw = load_yaml_config(cfg_path)
        kwargs: Dict[str, Any] = {
            key: raw[key]
            for key in ('site_url', 'timezone_string', 'gmt_offset', 'ipv6_enabled', 'locale')
            if key in raw
        }
        if raw.get('search_engines'):
            from .referrer import load_search_engine_catalog
            catalog_path = Path(raw['search_engines'])
            if not catalog_path.is_absolute():
                catalog_path = cfg_path.parent / catalog_path
            kwargs['catalog'] = load_search_engine_catalog(catalog_path)
        kwargs.update(overrides)
        return cls(settings_backend=settings_backend, **kwargs)
