"""Shared API dependencies."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from medtrack.config import settings
from medtrack.exceptions import AuthenticationRequired, RecordNotFound, StoreUnavailable
from medtrack.services.collection_store import CollectionStore
from medtrack.services.session import SessionContext, StaticSession

security = HTTPBearer(auto_error=False)


def get_store(request: Request) -> CollectionStore:
    """Collection store created by the application lifespan."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Patient store is not ready",
        )
    return store


async def get_session_context(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> SessionContext:
    """Session for the bearer token's subject.

    A missing token yields a signed-out session so the services raise
    ``AuthenticationRequired`` themselves.
    """
    if credentials is None:
        return StaticSession()

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise credentials_exception

    subject: str | None = payload.get("sub")
    token_type: str | None = payload.get("type")
    if not subject:
        raise credentials_exception
    if token_type and token_type != "access":
        raise credentials_exception
    return StaticSession(identity=str(subject))


@contextmanager
def translate_store_errors() -> Iterator[None]:
    """Map pipeline and store errors onto HTTP errors."""
    try:
        yield
    except AuthenticationRequired as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except RecordNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Patient not found",
        ) from exc
    except StoreUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Patient store unavailable",
        ) from exc
