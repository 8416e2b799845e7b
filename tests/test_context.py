"""Tests for the per-request visitor context."""
import hashlib
from urllib.parse import parse_qs, urlparse

import pytest
from visitor_core.config import DEFAULT_OPTIONS, CoreConfig
from visitor_core.context import (
    VisitorContext,
    add_query_arg,
    resolve_coefficient,
    resolve_timezone_offset,
)
from visitor_core.request_meta import RequestMeta
from visitor_core.user_agent import UNKNOWN_USER_AGENT

CHROME_UA = ('Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
             '(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36')

# 2023-11-14 22:13:20 UTC
FIXED_NOW = 1700000000


class CountingParser:
    def __init__(self):
        self.calls = 0

    def parse(self, raw):
        self.calls += 1
        raise ValueError('unparseable')


def make_context(config, remote_addr='10.0.0.5', headers=None, **kwargs):
    request = RequestMeta(remote_addr=remote_addr, headers=headers or {})
    return VisitorContext(config, request, **kwargs)


class TestConstruction:
    """Test values resolved when the context is built."""

    @pytest.mark.parametrize('configured, expected', [(0, 1), (-5, 1), (3, 3), ('3', 3), ('abc', 1), (None, 1)])
    def test_coefficient(self, config, configured, expected):
        config.global_settings()['coefficient'] = configured
        assert make_context(config).coefficient == expected

    def test_coefficient_default(self, config):
        assert make_context(config).coefficient == 1

    def test_resolve_coefficient(self):
        assert resolve_coefficient(0) == 1
        assert resolve_coefficient(7) == 7

    def test_ip_from_forwarded_header(self, config):
        context = make_context(config, headers={'X-Forwarded-For': '203.0.113.9'})
        assert context.ip == '203.0.113.9'

    def test_ip_hash_enabled(self, config):
        config.global_settings()['hash_ips'] = True
        context = make_context(config, headers={'User-Agent': CHROME_UA})
        expected = '#hash#' + hashlib.sha1(('10.0.0.5' + CHROME_UA).encode('utf-8')).hexdigest()
        assert context.ip_hash == expected

    def test_ip_hash_disabled(self, config):
        assert make_context(config).ip_hash is None

    def test_historical_requires_backend(self, config, counter_backend):
        assert make_context(config).historical is None
        context = make_context(config, counter_backend=counter_backend)
        assert context.historical.get('visits') == 25


class TestTimezone:
    """Test timezone offset resolution."""

    def test_named_zone(self):
        assert resolve_timezone_offset('Asia/Tokyo') == 9 * 3600

    def test_utc(self):
        assert resolve_timezone_offset('UTC', gmt_offset=5) == 0

    def test_gmt_offset(self):
        assert resolve_timezone_offset(None, gmt_offset=2) == 7200
        assert resolve_timezone_offset('', gmt_offset=-5.5) == -19800

    def test_unknown_zone_falls_back(self):
        assert resolve_timezone_offset('Mars/Olympus', gmt_offset=1) == 3600

    def test_no_configuration(self):
        assert resolve_timezone_offset(None, 0) == 0

    def test_context_uses_config(self, settings_backend, catalog):
        config = CoreConfig(settings_backend=settings_backend, catalog=catalog, gmt_offset=2)
        assert make_context(config).timezone_offset == 7200


class TestUserAgentAndActor:
    """Test lazily resolved fields."""

    def test_user_agent_memoized(self, settings_backend, catalog):
        parser = CountingParser()
        config = CoreConfig(settings_backend=settings_backend, catalog=catalog, ua_parser=parser)
        context = make_context(config, headers={'User-Agent': 'x'})
        assert parser.calls == 0
        assert context.user_agent == UNKNOWN_USER_AGENT
        assert context.user_agent == UNKNOWN_USER_AGENT
        assert parser.calls == 1

    def test_real_user_agent(self, config):
        context = make_context(config, headers={'User-Agent': CHROME_UA})
        assert context.user_agent.browser == 'Chrome'

    def test_actor_id(self, config):
        assert make_context(config).actor_id == 0
        assert make_context(config, actor_resolver=lambda: 12).actor_id == 12


class TestReferrer:
    """Test referrer resolution and classification."""

    def test_missing_referrer_uses_site_url(self, config):
        assert make_context(config).referrer == 'http://example.org'

    def test_referrer_tags_stripped(self, config):
        context = make_context(config, headers={'Referer': 'http://a.com/<script>x</script>'})
        assert context.referrer == 'http://a.com/x'

    def test_explicit_default(self, config):
        context = make_context(config, headers={'Referer': 'http://a.com/'})
        assert context.get_referrer('http://b.com/') == 'http://b.com/'

    def test_referrer_memoized(self, config):
        request = RequestMeta(remote_addr='10.0.0.5', headers={'Referer': 'http://a.com/'})
        context = VisitorContext(config, request)
        assert context.referrer == 'http://a.com/'
        request.headers['referer'] = 'http://changed.com/'
        assert context.referrer == 'http://a.com/'

    def test_search_classification(self, config):
        context = make_context(config, headers={'Referer': 'https://www.google.com/search?q=duckdb'})
        assert context.search_engine.key == 'google'
        assert context.search_query == 'duckdb'

    def test_default_options_disable_ask(self, config):
        config.global_settings().update(DEFAULT_OPTIONS)
        context = make_context(config, headers={'Referer': 'https://www.ask.com/web?q=duckdb'})
        assert context.search_engine.name == 'Unknown'

    def test_search_words_from_page_title(self, config):
        config.global_settings()['addsearchwords'] = True
        context = make_context(
            config,
            headers={'Referer': 'https://www.google.com/url?sa=t'},
            page_title=lambda: 'My Page',
        )
        query = parse_qs(urlparse(context.referrer).query)
        assert query['q'] == ['~"My Page"']
        assert query['sa'] == ['t']
        assert context.search_query == '~"My Page"'

    def test_search_words_kept_when_present(self, config):
        config.global_settings()['addsearchwords'] = True
        url = 'https://www.google.com/search?q=real+words'
        context = make_context(config, headers={'Referer': url}, page_title='Title')
        assert context.referrer == url

    def test_search_words_need_title(self, config):
        config.global_settings()['addsearchwords'] = True
        url = 'https://www.google.com/url?sa=t'
        assert make_context(config, headers={'Referer': url}).referrer == url

    def test_add_query_arg_replaces(self):
        assert add_query_arg('http://a.com/?q=1&x=2', 'q', '3') == 'http://a.com/?x=2&q=3'

    def test_fingerprint(self, config):
        context = make_context(config, headers={'User-Agent': CHROME_UA, 'Referer': 'http://a.com/'})
        fp = context.fingerprint()
        assert fp['ip'] == '10.0.0.5'
        assert fp['ip_hash'] is None
        assert fp['browser'] == 'Chrome'
        assert fp['referrer'] == 'http://a.com/'
        assert fp['coefficient'] == 1


class TestDates:
    """Test timezone-aware date helpers."""

    @pytest.fixture
    def context(self, settings_backend, catalog):
        config = CoreConfig(settings_backend=settings_backend, catalog=catalog, gmt_offset=2)
        return make_context(config, clock=lambda: FIXED_NOW)

    def test_current_date(self, context):
        assert context.current_date() == '2023-11-15 00:13:20'

    def test_real_current_date(self, context):
        assert context.real_current_date() == '2023-11-14 22:13:20'

    def test_relative_days(self, context):
        assert context.current_date('%Y-%m-%d', days=-1) == '2023-11-14'
        assert context.current_date('%Y-%m-%d', days='-1') == '2023-11-14'
        assert context.real_current_date('%Y-%m-%d', days=1) == '2023-11-15'

    def test_relative_base(self, context):
        assert context.real_current_date('%Y-%m-%d', days=1, relative=86400) == '1970-01-03'
        assert context.current_date('%Y-%m-%d %H:%M', days=1, relative=86400) == '1970-01-03 02:00'

    def test_epoch_format(self, context):
        assert context.current_date('U') == FIXED_NOW + 7200
        assert context.real_current_date('U') == FIXED_NOW

    def test_local_date(self, context):
        assert context.local_date('%H:%M', 0) == '02:00'

    def test_localized(self, context):
        assert context.current_date_localized('yyyy-MM-dd') == '2023-11-15'
        assert context.current_date_localized('MMMM', days=30) == 'December'

    def test_time_tz(self, context):
        assert context.time_tz() == FIXED_NOW + 7200

    def test_timestamp_tz(self, context):
        assert context.timestamp_tz('1970-01-01 00:00:00') == 7200
