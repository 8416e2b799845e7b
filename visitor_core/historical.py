"""Request-scoped memoization of historical counter lookups."""
from __future__ import annotations
import logging
from typing import Callable, Dict, Tuple, Union

from .config import HistoricalCategory

logger = logging.getLogger(__name__)


class HistoricalCounterCache:
    """Counts from the ``historical`` store, each fetched at most once per context.

    Each category is its own partition: ``uri`` entries are keyed by URI and
    ``page`` entries by page id, so the same id never collides across them.
    """

    def __init__(self, backend):
        self.backend = backend
        self._cache: Dict[Tuple[str, str], int] = {}
        self._loaders: Dict[str, Callable[[Union[str, int]], object]] = {
            HistoricalCategory.VISITORS.value: lambda _id: backend.count_visitors(),
            HistoricalCategory.VISITS.value: lambda _id: backend.count_visits(),
            HistoricalCategory.URI.value: lambda uri: backend.count_for_uri(str(uri)),
            HistoricalCategory.PAGE.value: self._count_for_page,
        }

    def _count_for_page(self, page_id):
        try:
            page_id = int(page_id)
        except (TypeError, ValueError):
            page_id = 0
        return self.backend.count_for_page(page_id)

    def get(self, category: str, id: Union[str, int] = '') -> int:
        if isinstance(category, HistoricalCategory):
            category = category.value

        loader = self._loaders.get(category)
        if loader is None:
            return 0

        cache_key = (category, str(id))
        if cache_key in self._cache:
            return self._cache[cache_key]

        result = loader(id)
        try:
            count = max(int(result or 0), 0)
        except (TypeError, ValueError):
            count = 0

        logger.debug("Historical %s[%s] = %d", category, id, count)
        self._cache[cache_key] = count
        return count
