# roomreport/api/dependencies.py

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from roomreport.core.security import InvalidTokenError, decode_token
from roomreport.models.auth import User
from roomreport.shared.db.database import get_db_session

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _user_from_token(token: str, db: Session) -> User:
    try:
        claims = decode_token(token)
    except InvalidTokenError:
        raise _unauthorized("Invalid token")

    user = db.get(User, claims["user_id"])
    if user is None or not user.is_active:
        raise _unauthorized("Invalid token")
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db_session),
) -> User:
    """
    Resolves the logged-in user from the `Authorization: Bearer <token>` header.
    """
    if credentials is None:
        raise _unauthorized("Authorization header required")
    return _user_from_token(credentials.credentials, db)


def get_media_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    token: str | None = Query(default=None),
    db: Session = Depends(get_db_session),
) -> User:
    """
    Same as get_current_user, but also accepts `?token=` because media
    players cannot attach headers to the requests they make.
    """
    if credentials is not None:
        return _user_from_token(credentials.credentials, db)
    if token:
        return _user_from_token(token, db)
    raise _unauthorized("Authorization header required")


def require_roles(*roles: str):
    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return checker
