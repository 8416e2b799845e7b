"""User agent normalization to a browser/platform/version triple.

Parsing is delegated to a parser object with a ``parse(raw) -> dict``
method. The default parser combines ``httpagentparser`` with the
``user-agents`` library for fields the first one leaves empty.
"""
from __future__ import annotations
import logging
from dataclasses import asdict, dataclass
from typing import Dict, Optional

import httpagentparser
from user_agents import parse as ua_parse

from .config import UA_NOISE_STRINGS, UNKNOWN_LABEL
from .exceptions import UserAgentParseError

logger = logging.getLogger(__name__)

UA_FIELDS = ('browser', 'platform', 'version')


@dataclass(frozen=True)
class UserAgent:
    browser: str
    platform: str
    version: str

    def as_dict(self) -> Dict[str, str]:
        return asdict(self)


UNKNOWN_USER_AGENT = UserAgent(UNKNOWN_LABEL, UNKNOWN_LABEL, UNKNOWN_LABEL)


class HttpAgentParser:
    """Parse a raw user agent into browser, platform and version."""

    def parse(self, raw: str) -> Dict[str, Optional[str]]:
        if not isinstance(raw, str) or raw.strip() == '':
            raise UserAgentParseError("empty user agent")

        try:
            hap = httpagentparser.detect(raw)
        except Exception as e:
            raise UserAgentParseError(str(e)) from e

        browser = hap.get('browser', {}).get('name')
        version = hap.get('browser', {}).get('version')
        platform = hap.get('platform', {}).get('name') or hap.get('os', {}).get('name')

        if not (browser and platform and version):
            ua = ua_parse(raw)
            if not browser and ua.browser.family != 'Other':
                browser = ua.browser.family
            if not version:
                version = ua.browser.version_string or None
            if not platform and ua.os.family != 'Other':
                platform = ua.os.family

        return {'browser': browser, 'platform': platform, 'version': version}


def strip_noise(value: str) -> str:
    """Remove bracket, quote, separator and 'http' fragments from a field."""
    for token in UA_NOISE_STRINGS:
        value = value.replace(token, '')
    return value


class UserAgentNormalizer:
    """Turn a raw user agent into a ``UserAgent``; never raises on bad input."""

    def __init__(self, parser=None):
        self.parser = parser or HttpAgentParser()

    def normalize(self, raw: Optional[str]) -> UserAgent:
        try:
            agent = self.parser.parse(raw)
        except Exception as e:
            logger.debug("User agent parse failed (%s): %r", e, raw)
            agent = UNKNOWN_USER_AGENT.as_dict()

        fields = {}
        for name in UA_FIELDS:
            value = agent.get(name)
            if value is None or value == '':
                value = UNKNOWN_LABEL
            fields[name] = strip_noise(str(value))

        return UserAgent(**fields)
