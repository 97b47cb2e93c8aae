"""
Per-request session key resolution and access checks.

The key comes from the ``SessionKey`` cookie; a ``key`` query parameter that
differs from it takes over for this request and is sent back as a persistent
cookie. The checks return an ``Unauthorized`` value instead of raising, so the
dispatcher decides what to do with it.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import Unauthorized
from .keys import KeyStore

SESSION_COOKIE = "SessionKey"
KEY_PARAMETER = "key"
# Cookie max-age used for "no expiry".
SESSION_COOKIE_MAX_AGE = 2**31 - 1


@dataclass(frozen=True)
class Session:
    key: Optional[str]
    refresh_cookie: bool = False


def resolve_session(cookies: Mapping[str, str], query: Mapping[str, str]) -> Session:
    cookie_key = cookies.get(SESSION_COOKIE)
    query_key = query.get(KEY_PARAMETER)
    if query_key and query_key != cookie_key:
        return Session(query_key, refresh_cookie=True)
    return Session(cookie_key)


def check_user_access(keys: KeyStore, session: Session) -> Optional[Unauthorized]:
    """Global gate: the user key, or the configured administrator key, gets in."""
    if keys.is_user(session.key):
        return None
    if keys.administrator_key is not None and session.key == keys.administrator_key:
        return None
    return Unauthorized()


def check_admin_access(keys: KeyStore, session: Session) -> Optional[Unauthorized]:
    if keys.is_administrator(session.key):
        return None
    return Unauthorized()
