import sys
from pathlib import Path

import pytest

# Add project root to sys.path for local package imports
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from visitor_core.backends import DuckDBSettingsBackend  # noqa: E402
from visitor_core.config import CoreConfig  # noqa: E402
from visitor_core.referrer import load_search_engine_catalog  # noqa: E402


class FakeCounterBackend:
    """Counter backend that records every query it receives."""

    def __init__(self, visitors=0, visits=0, uris=None, pages=None):
        self.visitors = visitors
        self.visits = visits
        self.uris = uris or {}
        self.pages = pages or {}
        self.calls = []

    def count_visitors(self):
        self.calls.append(('visitors', None))
        return self.visitors

    def count_visits(self):
        self.calls.append(('visits', None))
        return self.visits

    def count_for_uri(self, uri):
        self.calls.append(('uri', uri))
        return self.uris.get(uri)

    def count_for_page(self, page_id):
        self.calls.append(('page', page_id))
        return self.pages.get(page_id)


@pytest.fixture(scope='session')
def catalog():
    return load_search_engine_catalog()


@pytest.fixture
def settings_backend():
    """DuckDB settings backend seeded with an empty global map."""
    backend = DuckDBSettingsBackend(':memory:')
    backend.save_global({})
    return backend


@pytest.fixture
def config(settings_backend, catalog):
    return CoreConfig(settings_backend=settings_backend, catalog=catalog, site_url='http://example.org')


@pytest.fixture
def counter_backend():
    return FakeCounterBackend(visitors=10, visits=25, uris={'/about': 4}, pages={42: 7})
