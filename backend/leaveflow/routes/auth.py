import secrets
from datetime import datetime, timedelta, timezone
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session
from leaveflow.config import settings
from leaveflow.database.session import get_db
from leaveflow.models.user import User
from leaveflow.models.user_session import UserSession
from leaveflow.core.security import (
    verify_password,
    create_access_token,
    create_refresh_token,
    decode_token,
)
from leaveflow.schemas.user import LoginRequest, TokenResponse, RefreshRequest
from leaveflow.core.dependencies import get_current_user, oauth2_scheme
from leaveflow.utils.dates import as_utc

router = APIRouter(prefix="/auth", tags=["Auth"])


def create_user_session(user_id: int, db: Session, now: datetime) -> UserSession:
    session = UserSession(
        session_id=f"{user_id}_{secrets.token_hex(16)}",
        user_id=user_id,
        last_seen_at=now,
        expires_at=now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def build_auth_response(user: User, session_id: str):
    token_payload = {
        "sub": str(user.id),
        "role": user.role,
        "sid": session_id
    }
    return {
        "access_token": create_access_token(token_payload),
        "refresh_token": create_refresh_token(token_payload),
        "token_type": "bearer",
        "user": {
            "id": user.id,
            "name": user.name,
            "role": user.role
        }
    }


@router.post("/login", response_model=TokenResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    login_id = (data.employee_id or "").strip()

    if "@" in login_id:
        user = db.query(User).filter(func.lower(User.email) == login_id.lower()).first()
    else:
        user = db.query(User).filter(User.employee_id == login_id.upper()).first()

    if not user or not verify_password(data.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is inactive")

    session = create_user_session(user.id, db, datetime.now(timezone.utc))
    return build_auth_response(user, session.session_id)


@router.post("/refresh", response_model=TokenResponse)
def refresh_token(data: RefreshRequest, db: Session = Depends(get_db)):
    payload = decode_token(data.refresh_token)
    if payload is None or payload.get("token_type") != "refresh":
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    sub = payload.get("sub")
    sid = payload.get("sid")
    if not sub or not sid:
        raise HTTPException(status_code=401, detail="Invalid refresh token payload")

    try:
        user_id = int(sub)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid refresh token subject")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not available")

    now = datetime.now(timezone.utc)
    session = db.query(UserSession).filter(
        UserSession.session_id == sid,
        UserSession.user_id == user_id,
        UserSession.revoked_at == None  # noqa: E711
    ).first()

    if not session or as_utc(session.expires_at) < now:
        raise HTTPException(status_code=401, detail="Refresh session expired")

    session.last_seen_at = now
    session.expires_at = now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    db.commit()

    return build_auth_response(user, session.session_id)


@router.post("/logout")
def logout(
    db: Session = Depends(get_db),
    token: str | None = Depends(oauth2_scheme),
    current_user: User = Depends(get_current_user)
):
    payload = decode_token(token) if token else None
    sid = payload.get("sid") if payload else None

    if sid:
        session = db.query(UserSession).filter(
            UserSession.session_id == sid,
            UserSession.user_id == current_user.id,
            UserSession.revoked_at == None  # noqa: E711
        ).first()
        if session:
            session.revoked_at = datetime.now(timezone.utc)
            db.commit()

    return {"message": "Logged out successfully"}
