"""Batch classification of stored hits.

Applies the same referrer and user agent rules used per request to a
dataframe of already recorded rows, e.g. when rebuilding search word
reports.
"""
from __future__ import annotations
import pandas as pd

from .config import NO_SEARCH_QUERY
from .referrer import ReferrerClassifier
from .user_agent import UA_FIELDS, UserAgentNormalizer

REFERRER_COLUMNS = ['search_engine', 'search_words']


def classify_referrers(df: pd.DataFrame, classifier: ReferrerClassifier,
                       referrer_column: str = 'referred') -> pd.DataFrame:
    """Add ``search_engine`` (catalog key) and ``search_words`` columns.

    Rows without a referrer are left as nulls; non search engine rows get
    ``unknown`` and a null search_words value.
    """
    if referrer_column not in df.columns or df.empty:
        return add_empty_columns(df, REFERRER_COLUMNS)

    referrers = df[referrer_column].fillna('').astype(str)
    engines = referrers.map(lambda url: classifier.classify(url) if url else None)

    df['search_engine'] = engines.map(lambda e: e.key if e is not None else None)
    words = referrers.map(lambda url: classifier.extract_query(url) if url else None)
    df['search_words'] = words.where(words != NO_SEARCH_QUERY, None)

    return df


def normalize_user_agents(df: pd.DataFrame, normalizer: UserAgentNormalizer,
                          user_agent_column: str = 'user_agent') -> pd.DataFrame:
    """Add ``browser``, ``platform`` and ``version`` columns."""
    if user_agent_column not in df.columns or df.empty:
        return add_empty_columns(df, list(UA_FIELDS))

    parsed = df[user_agent_column].fillna('').map(normalizer.normalize)
    for name in UA_FIELDS:
        df[name] = parsed.map(lambda agent: getattr(agent, name))

    return df


def add_empty_columns(df: pd.DataFrame, columns) -> pd.DataFrame:
    """Add null columns so downstream schemas stay stable."""
    for col in columns:
        df[col] = None
    return df
