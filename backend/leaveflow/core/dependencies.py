from datetime import timedelta
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from leaveflow.config import settings
from leaveflow.database.session import get_db
from leaveflow.core.security import decode_token
from leaveflow.models.user import User
from leaveflow.models.user_session import UserSession
from leaveflow.utils.dates import as_utc, utcnow

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

HR_ROLES = {"admin", "hr"}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def is_hr(user: User) -> bool:
    return user.role in HR_ROLES


def get_current_user(
    db: Session = Depends(get_db),
    token: str | None = Depends(oauth2_scheme)
) -> User:
    if not token:
        raise _unauthorized("Unauthorized")

    payload = decode_token(token)
    if payload is None:
        raise _unauthorized("Invalid or expired token")

    if payload.get("token_type") != "access":
        raise _unauthorized("Invalid token type")

    sub = payload.get("sub")
    if sub is None:
        raise _unauthorized("Invalid token payload")

    try:
        user_id = int(sub)
    except ValueError:
        raise _unauthorized("Invalid token subject")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise _unauthorized("User not found")

    session_id = payload.get("sid")
    if not session_id:
        raise _unauthorized("Session not found")

    now = utcnow()
    session = db.query(UserSession).filter(
        UserSession.session_id == session_id,
        UserSession.user_id == user_id,
        UserSession.revoked_at == None  # noqa: E711
    ).first()

    if not session or as_utc(session.expires_at) < now:
        raise _unauthorized("Session expired")

    idle_timeout = timedelta(minutes=settings.SESSION_IDLE_TIMEOUT_MINUTES)
    last_seen = as_utc(session.last_seen_at)
    if last_seen and (now - last_seen) > idle_timeout:
        raise _unauthorized("Session expired")

    session.last_seen_at = now
    db.commit()

    return user


def get_current_hr(
    current_user: User = Depends(get_current_user)
) -> User:
    if not is_hr(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden"
        )
    return current_user
