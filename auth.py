"""Identity resolution.

A resolver turns an inbound request into the external principal that made it
(or ``None``). The principal is mapped to a local user id by
``services.UserService.sign_in``, which also enforces the allow-list.
"""

import logging
from typing import Optional, Protocol, runtime_checkable

from fastapi import Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import Settings, get_settings

logger = logging.getLogger(__name__)


def _serializer(settings: Optional[Settings] = None) -> URLSafeTimedSerializer:
    settings = settings or get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt="daybook-auth")


def issue_token(principal: str) -> str:
    return _serializer().dumps({"p": principal})


def read_token(token: str, max_age_hours: Optional[int] = None) -> Optional[str]:
    settings = get_settings()
    hours = max_age_hours if max_age_hours is not None else settings.token_max_age_hours
    try:
        data = _serializer(settings).loads(token, max_age=hours * 3600)
    except SignatureExpired:
        logger.info("auth: expired bearer token")
        return None
    except BadSignature:
        return None
    principal = data.get("p") if isinstance(data, dict) else None
    if not isinstance(principal, str) or not principal:
        return None
    return principal


@runtime_checkable
class IdentityResolver(Protocol):
    """Anything with a ``resolve`` method can be installed as the app resolver."""

    def resolve(self, request: Request) -> Optional[str]:
        ...


class BearerTokenResolver:
    def resolve(self, request: Request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return read_token(token.strip())


class ProxyHeaderResolver:
    """Trusts a header injected by an authenticating reverse proxy."""

    def __init__(self, header: str) -> None:
        self.header = header

    def resolve(self, request: Request) -> Optional[str]:
        value = request.headers.get(self.header, "").strip()
        return value or None


def build_resolver(settings: Optional[Settings] = None) -> IdentityResolver:
    settings = settings or get_settings()
    if settings.identity_header:
        return ProxyHeaderResolver(settings.identity_header)
    return BearerTokenResolver()
