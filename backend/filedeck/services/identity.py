"""Who is calling and from where."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

ANONYMOUS = "anonymous"
AUTHENTICATED = "authenticated_user"
UNKNOWN = "unknown"


@dataclass(frozen=True)
class Identity:
    """The ``(user, ip, user_agent)`` triple threaded through core operations."""

    user: str = ANONYMOUS
    ip: str = UNKNOWN
    user_agent: str = UNKNOWN

    def to_fields(self) -> dict[str, str]:
        return {"user": self.user, "ip": self.ip, "userAgent": self.user_agent}


# Background jobs (scheduled refresh etc.) act as this identity
SYSTEM_IDENTITY = Identity(user="system", ip="local", user_agent="filedeck")


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        # Plain dicts are case-sensitive; Starlette headers are not
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
    return value


def extract_identity(
    headers: Mapping[str, str],
    peer: str | None = None,
    principal: str | None = None,
) -> Identity:
    """Build an Identity from request headers, peer address and principal.

    ``principal`` is a username attached by an upstream authenticator. With
    no principal, a credential header still marks the caller as
    authenticated. The IP is the first hop of X-Forwarded-For when present.
    """
    if principal:
        user = principal
    elif _header(headers, "authorization"):
        user = AUTHENTICATED
    else:
        user = ANONYMOUS

    ip = None
    forwarded = _header(headers, "x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip() or None
    ip = ip or peer or UNKNOWN

    user_agent = _header(headers, "user-agent") or UNKNOWN
    return Identity(user=user, ip=ip, user_agent=user_agent)
