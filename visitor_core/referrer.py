"""Referrer classification against the search engine catalog."""
from __future__ import annotations
import html
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import yaml

from .config import NO_SEARCH_QUERY, SEARCH_ENGINES_PATH, UNKNOWN_LABEL, load_yaml_config
from .exceptions import CatalogLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchEngineEntry:
    key: str
    name: str
    tag: str
    query_key: str
    host_pattern: Optional[re.Pattern]
    image: str
    sql_patterns: Tuple[str, ...] = ()

    def matches_host(self, host: str) -> bool:
        if self.host_pattern is None or not host:
            return False
        return self.host_pattern.search(host) is not None


UNKNOWN_ENGINE = SearchEngineEntry(
    key='unknown',
    name=UNKNOWN_LABEL,
    tag='',
    query_key='q',
    host_pattern=None,
    image='unknown.png',
)


class SearchEngineCatalog:
    """Ordered, read-only collection of search engine entries."""

    def __init__(self, entries: Iterable[SearchEngineEntry]):
        self._entries: Dict[str, SearchEngineEntry] = {}
        for entry in entries:
            if entry.key in self._entries:
                raise CatalogLoadError(f"Duplicate search engine key: {entry.key}")
            self._entries[entry.key] = entry

    def __iter__(self) -> Iterator[SearchEngineEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> List[str]:
        return list(self._entries)

    def get(self, key: str) -> Optional[SearchEngineEntry]:
        return self._entries.get(key)

    def without(self, keys: Iterable[str]) -> "SearchEngineCatalog":
        excluded = set(keys)
        return SearchEngineCatalog(e for e in self if e.key not in excluded)


def _as_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def entry_from_dict(raw: Dict) -> SearchEngineEntry:
    try:
        key = str(raw['key'])
        patterns = _as_list(raw.get('regex_patterns'))
        host_pattern = re.compile('|'.join(patterns)) if patterns else None
        return SearchEngineEntry(
            key=key,
            name=str(raw.get('name') or key),
            tag=str(raw.get('tag') or ''),
            query_key=str(raw.get('query_key') or 'q'),
            host_pattern=host_pattern,
            image=str(raw.get('image') or f'{key}.png'),
            sql_patterns=tuple(_as_list(raw.get('sql_patterns'))),
        )
    except (KeyError, TypeError, re.error) as e:
        raise CatalogLoadError(f"Invalid search engine entry {raw!r}: {e}") from e


def load_search_engine_catalog(path: Optional[Path] = None) -> SearchEngineCatalog:
    """Load the catalog from YAML. Called once at process start."""
    path = path or SEARCH_ENGINES_PATH
    try:
        raw = load_yaml_config(path)
    except (OSError, yaml.YAMLError) as e:
        raise CatalogLoadError(f"Could not read search engine catalog {path}: {e}") from e

    if not isinstance(raw, list):
        raise CatalogLoadError(f"Search engine catalog {path} must be a list of entries")

    catalog = SearchEngineCatalog(entry_from_dict(item) for item in raw)
    logger.debug("Loaded %d search engines from %s", len(catalog), path)
    return catalog


def disabled_engine_keys(catalog: SearchEngineCatalog, settings) -> List[str]:
    """Engines switched off through ``disable_se_<key>`` settings."""
    return [key for key in catalog.keys() if settings.get(f'disable_se_{key}', False)]
# Only complete tags are removed; a '<' that does not open one is kept

# Only real tags; a bare '<' followed by text or whitespace is kept
_TAG_RE = re.compile(r'<[A-Za-z/!?][^>]*>', re.S)


def strip_tags(value: str) -> str:
    if not value:
        return ''
    return _TAG_RE.sub('', value)


def sanitize_referrer(referrer: str, length: int = -1) -> str:
    """Make a referrer safe to embed in HTML.

    ``data:`` and ``javascript:`` URLs are replaced with the loopback URL.
    """
    referrer = (referrer or '').strip()

    if referrer[:5].lower() == 'data:':
        referrer = 'http://127.0.0.1'

    if referrer[:11].lower() == 'javascript:':
        referrer = 'http://127.0.0.1'

    if length > 0:
        referrer = referrer[:length]

    return html.escape(referrer, quote=True).replace('&#x27;', '&#039;')


def _host(url: str) -> str:
    try:
        return urlparse(url).hostname or ''
    except (ValueError, AttributeError):
        return ''


class ReferrerClassifier:
    """Match referrer URLs to catalog entries; first matching entry wins."""

    def __init__(self, catalog: SearchEngineCatalog, disabled: Iterable[str] = ()):
        disabled = list(disabled)
        self.catalog = catalog.without(disabled) if disabled else catalog

    def _match(self, url: str) -> Optional[SearchEngineEntry]:
        host = _host(url)
        if not host:
            return None
        for entry in self.catalog:
            if entry.matches_host(host):
                return entry
        return None

    def classify(self, url: str) -> SearchEngineEntry:
        return self._match(url) or UNKNOWN_ENGINE

    def lookup_by_key(self, engine_key: str) -> SearchEngineEntry:
        return self.catalog.get(engine_key) or UNKNOWN_ENGINE

    def extract_query(self, url: str) -> str:
        """Search words from a search engine referrer, or ``NO_SEARCH_QUERY``."""
        entry = self._match(url)
        if entry is None:
            return NO_SEARCH_QUERY

        try:
            query = parse_qs(urlparse(url).query, keep_blank_values=True)
        except ValueError:
            query = {}

        values = query.get(entry.query_key)
        words = strip_tags(values[-1]) if values else ''
        return words if words != '' else NO_SEARCH_QUERY

    def is_search_engine(self, url: str) -> bool:
        return self.classify(url).tag != ''
