"""Best-guess client address from the peer address and proxy headers."""
from __future__ import annotations
import ipaddress
import logging
from typing import Optional

from .config import LOOPBACK_ADDRESS, ForwardedHeader
from .request_meta import RequestMeta

logger = logging.getLogger(__name__)


def is_valid_ipv6(value: str) -> bool:
    # Scoped addresses (fe80::1%eth0) are not client addresses
    if '%' in value:
        return False
    try:
        ipaddress.IPv6Address(value)
    except ValueError:
        return False
    return True


def validate_ip_candidate(value, ipv6_enabled: bool = True) -> Optional[str]:
    """Return a cleaned IP address, or None if ``value`` is not one.

    IPv4 candidates may carry a ``:port`` suffix, which is dropped.
    """
    if not isinstance(value, str):
        return None

    value = value.strip()

    if is_valid_ipv6(value):
        if not ipv6_enabled:
            return None
    else:
        if ':' in value:
            value = value.split(':')[0]
        try:
            ipaddress.IPv4Address(value)
        except ValueError:
            return None

    if value == '':
        return None

    return value


class ClientAddressResolver:
    """Resolve and memoize the client address for one request.

    The peer address is taken first. Forwarding headers are then checked
    in ``ForwardedHeader`` order and the first valid one replaces it, so a
    proxy header always wins over the transport address.
    """

    def __init__(self, request: RequestMeta, ipv6_enabled: bool = True):
        self.request = request
        self.ipv6_enabled = ipv6_enabled
        self._ip: Optional[str] = None

    def _validate(self, value) -> Optional[str]:
        return validate_ip_candidate(value, self.ipv6_enabled)

    def resolve(self) -> str:
        if self._ip is not None:
            return self._ip

        ip = None
        if self.request.remote_addr is not None:
            ip = self._validate(self.request.remote_addr)
        else:
            ip = LOOPBACK_ADDRESS

        for header in ForwardedHeader.all_values():
            candidate = self._validate(self.request.header(header))
            if candidate is not None:
                logger.debug("Client address %s taken from %s header", candidate, header)
                ip = candidate
                break

        self._ip = ip or LOOPBACK_ADDRESS
        return self._ip

    @property
    def ip(self) -> str:
        return self.resolve()
