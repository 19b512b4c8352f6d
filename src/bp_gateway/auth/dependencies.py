"""FastAPI dependencies for caller identity.

    @router.post("/bull-pens/{bull_pen_id}/orders")
    async def place(user_id: Annotated[str, Depends(get_current_user_id)]): ...

    @router.post("/settlement/rooms/{bull_pen_id}",
                 dependencies=[Depends(require_internal_service)])
"""

import hmac

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer, OAuth2PasswordBearer

from config.settings import settings
from src.bp_common.errors import (
    IdempotencyKeyRequiredError,
    InternalServiceAuthError,
    InvalidCredentialsError,
)
from src.bp_gateway.auth.jwt_handler import decode_access_token

# tokenUrl is owned by the identity collaborator; Swagger only needs the scheme
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")
_internal_bearer = HTTPBearer(auto_error=False)

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_user_id(token: str = Depends(oauth2_scheme)) -> str:
    """Return the `sub` of a valid Bearer access token; HTTP 401 otherwise."""
    try:
        return decode_access_token(token)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None


async def require_internal_service(
    credentials: HTTPAuthorizationCredentials | None = Depends(_internal_bearer),
) -> None:
    """Gate /internal/v1/* on `Authorization: Bearer <INTERNAL_SERVICE_TOKEN>` (403 otherwise)."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise InternalServiceAuthError()
    if not hmac.compare_digest(
        credentials.credentials.encode(), settings.INTERNAL_SERVICE_TOKEN.encode()
    ):
        raise InternalServiceAuthError()


async def require_idempotency_key(
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=255),
) -> str:
    if not idempotency_key or not idempotency_key.strip():
        raise IdempotencyKeyRequiredError()
    return idempotency_key.strip()
