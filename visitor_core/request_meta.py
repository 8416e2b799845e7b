"""Request metadata handed to a visitor context by the hosting framework."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional


def _header_key(name: str) -> str:
    """Canonical header key: 'HTTP_X_FORWARDED_FOR' and 'x-forwarded-for' both become 'x-forwarded-for'."""
    name = name.strip()
    if name.upper().startswith('HTTP_'):
        name = name[5:]
    return name.replace('_', '-').lower()


@dataclass
class RequestMeta:
    """Peer address plus raw headers for one request.

    Header names are matched case-insensitively and WSGI style
    ``HTTP_*`` names are accepted.
    """
    remote_addr: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.headers = {_header_key(k): v for k, v in (self.headers or {}).items()}

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(_header_key(name))

    @property
    def user_agent(self) -> str:
        return self.header('User-Agent') or ''

    @property
    def referer(self) -> Optional[str]:
        return self.header('Referer')

    @classmethod
    def from_environ(cls, environ: Mapping[str, str]) -> "RequestMeta":
        """Build from a WSGI environ (or a CGI style server map)."""
        headers = {k: v for k, v in environ.items() if k.startswith('HTTP_')}
        return cls(remote_addr=environ.get('REMOTE_ADDR'), headers=headers)
