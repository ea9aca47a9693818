# ledger/auth.py
# Role: Authentication boundary.
#       Every mutating route depends on `require_session`. How a request maps to
#       a user is decided by a pluggable session resolver; the default one looks
#       the bearer token up in LEDGER_SESSION_TOKENS.

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ledger.errors import UnauthenticatedError
from ledger.settings import SESSION_TOKENS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthSession:
    user_id: str


# token -> session (None when the token is unknown)
SessionResolver = Callable[[str], Optional[AuthSession]]

# auto_error=False: a missing header is reported as UnauthenticatedError below
bearer_scheme = HTTPBearer(auto_error=False)


def token_resolver(token: str) -> Optional[AuthSession]:
    user_id = SESSION_TOKENS.get(token)
    if not user_id:
        return None
    return AuthSession(user_id=user_id)


def get_session_resolver() -> SessionResolver:
    """Dependency returning the active resolver (override in app.dependency_overrides)."""
    return token_resolver


def require_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    resolver: SessionResolver = Depends(get_session_resolver),
) -> AuthSession:
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError()

    session = resolver(credentials.credentials)
    if session is None:
        logger.info("Rejected request with unknown session token")
        raise UnauthenticatedError("Invalid or expired session")
    return session
