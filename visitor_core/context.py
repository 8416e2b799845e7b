"""Per-request visitor context.

One ``VisitorContext`` is built for every incoming request. It resolves the
client address on construction and the user agent, referrer and actor on
first use, then keeps those values for the rest of the request. Contexts
must not be shared between requests.
"""
from __future__ import annotations
import hashlib
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import pytz
from babel.dates import format_datetime
from dateutil import parser as date_parser

from .client_address import ClientAddressResolver
from .config import NO_SEARCH_QUERY, CoreConfig
from .historical import HistoricalCounterCache
from .referrer import ReferrerClassifier, SearchEngineEntry, disabled_engine_keys, strip_tags
from .request_meta import RequestMeta
from .settings_store import SettingsStore
from .user_agent import UserAgent, UserAgentNormalizer

logger = logging.getLogger(__name__)

DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
DEFAULT_LOCALIZED_FORMAT = 'yyyy-MM-dd HH:mm:ss'
SECONDS_PER_DAY = 86400


def resolve_timezone_offset(timezone_string: Optional[str], gmt_offset: float = 0,
                            now: Optional[datetime] = None) -> int:
    """Site offset from UTC in seconds; a named zone takes precedence over a fixed offset."""
    if timezone_string:
        try:
            tz = pytz.timezone(timezone_string)
        except pytz.UnknownTimeZoneError:
            logger.warning("Unknown timezone %r, falling back to gmt_offset", timezone_string)
        else:
            now = now or datetime.now(timezone.utc)
            return int(now.astimezone(tz).utcoffset().total_seconds())
    if gmt_offset:
        return int(float(gmt_offset) * 60 * 60)
    return 0


def resolve_coefficient(value: Any) -> int:
    try:
        coefficient = int(value)
    except (TypeError, ValueError):
        return 1
    return coefficient if coefficient > 0 else 1


def add_query_arg(url: str, key: str, value: str) -> str:
    parts = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != key]
    query.append((key, value))
    return urlunparse(parts._replace(query=urlencode(query)))


def _format(timestamp: float, fmt: str) -> Union[str, int]:
    if fmt == 'U':
        return int(timestamp)
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime(fmt)


class VisitorContext:
    """Fingerprint and classification of the visitor behind one request."""

    def __init__(self, config: CoreConfig, request: RequestMeta, counter_backend=None,
                 actor_resolver: Optional[Callable[[], int]] = None,
                 page_title: Union[str, Callable[[], str], None] = None,
                 clock: Callable[[], float] = time.time):
        self.config = config
        self.request = request
        self.clock = clock
        self._page_title = page_title

        self.settings = SettingsStore(config, actor_resolver=actor_resolver)

        self.timezone_offset = resolve_timezone_offset(config.timezone_string, config.gmt_offset)

        self.coefficient = resolve_coefficient(self.settings.get('coefficient', 1))

        self.address_resolver = ClientAddressResolver(request, ipv6_enabled=config.ipv6_enabled)
        self.ip = self.address_resolver.resolve()

        self.ip_hash: Optional[str] = None
        if self.settings.get('hash_ips'):
            digest = hashlib.sha1((self.ip + request.user_agent).encode('utf-8')).hexdigest()
            self.ip_hash = '#hash#' + digest

        self.normalizer = UserAgentNormalizer(config.ua_parser)
        self.classifier = ReferrerClassifier(
            config.catalog, disabled=disabled_engine_keys(config.catalog, self.settings)
        )
        self.historical = HistoricalCounterCache(counter_backend) if counter_backend is not None else None

        self._user_agent: Optional[UserAgent] = None
        self._referrer: Optional[str] = None

    @property
    def actor_id(self) -> int:
        self.settings.load_actor()
        return self.settings.actor_id

    @property
    def user_agent(self) -> UserAgent:
        if self._user_agent is None:
            self._user_agent = self.normalizer.normalize(self.request.user_agent)
        return self._user_agent

    @property
    def referrer(self) -> str:
        return self.get_referrer()

    def page_title(self) -> str:
        if callable(self._page_title):
            return self._page_title() or ''
        return self._page_title or ''

    def get_referrer(self, default_referrer: Optional[str] = None) -> str:
        """Referrer for this request, falling back to the site URL.

        With ``addsearchwords`` enabled, a search engine referrer that carries
        no search words gets the page title appended as ``~"<title>"``.
        """
        if self._referrer is not None:
            return self._referrer

        referrer = self.request.referer or ''
        if default_referrer:
            referrer = default_referrer

        referrer = strip_tags(referrer)

        if not referrer:
            referrer = self.config.site_url

        if self.settings.get('addsearchwords', False):
            entry = self.classifier.classify(referrer)
            if entry.tag != '':
                words = self.classifier.extract_query(referrer)
                if words in ('', NO_SEARCH_QUERY):
                    title = self.page_title()
                    if title != '':
                        referrer = add_query_arg(referrer, entry.query_key, '~"' + title + '"')

        self._referrer = referrer
        return self._referrer

    @property
    def search_engine(self) -> SearchEngineEntry:
        return self.classifier.classify(self.referrer)

    @property
    def search_query(self) -> str:
        return self.classifier.extract_query(self.referrer)

    def fingerprint(self) -> Dict[str, Any]:
        return {
            'ip': self.ip,
            'ip_hash': self.ip_hash,
            **self.user_agent.as_dict(),
            'referrer': self.referrer,
            'coefficient': self.coefficient,
        }

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------
    def _shifted(self, days=None, relative: Optional[float] = None) -> float:
        base = relative if relative else self.clock()
        if days:
            base += int(days) * SECONDS_PER_DAY
        return base

    def local_date(self, fmt: str, timestamp: float):
        return _format(timestamp + self.timezone_offset, fmt)

    def current_date(self, fmt: str = DEFAULT_DATE_FORMAT, days=None, relative: Optional[float] = None):
        """Site-local date, optionally ``days`` away from now (or from ``relative``)."""
        return _format(self._shifted(days, relative) + self.timezone_offset, fmt)

    def real_current_date(self, fmt: str = DEFAULT_DATE_FORMAT, days=None, relative: Optional[float] = None):
        """Like ``current_date`` but in UTC, for stored timestamps."""
        return _format(self._shifted(days, relative), fmt)

    def current_date_localized(self, fmt: str = DEFAULT_LOCALIZED_FORMAT, days=None) -> str:
        """Site-local date rendered with a Babel pattern in the configured locale."""
        timestamp = self._shifted(days) + self.timezone_offset
        moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
        return format_datetime(moment, format=fmt, tzinfo=pytz.utc, locale=self.config.locale)

    def timestamp_tz(self, text: str) -> int:
        moment = date_parser.parse(text)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return int(moment.timestamp()) + self.timezone_offset

    def time_tz(self) -> int:
        return int(self.clock()) + self.timezone_offset
