import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from leaveflow.config import settings
from leaveflow.core.logging import RequestLoggingMiddleware, configure_logging
from leaveflow.core.notification_ws_manager import notification_ws_manager
from leaveflow.core.security import decode_token
from leaveflow.database.base import Base
from leaveflow.database.session import engine, SessionLocal
from leaveflow.models.user import User
from leaveflow.models.user_session import UserSession
from leaveflow.models.notification import Notification  # noqa: F401
from leaveflow.models.holiday import Holiday  # noqa: F401
from leaveflow.models.leave import LeaveRequest  # noqa: F401
from leaveflow.routes import auth, holiday, notifications
from leaveflow.routes import leave_approvals, leave_evidence, leave_lifecycle, leave_policies, leave_reports, leave_requests
from leaveflow.utils.dates import as_utc, utcnow

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger("leaveflow")

app = FastAPI(title="Leave Workflow Engine")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


@app.on_event("startup")
def create_tables():
    Base.metadata.create_all(bind=engine)


def _format_validation_messages(exc: RequestValidationError) -> list[str]:
    messages: list[str] = []
    for err in exc.errors():
        loc = [str(v) for v in err.get("loc", []) if str(v) not in {"body", "query", "path"}]
        field = ".".join(loc) if loc else "field"
        err_type = str(err.get("type", ""))
        message = str(err.get("msg", "Invalid value"))

        if err_type == "missing":
            messages.append(f"{field} is required")
        elif err_type in {"date_from_datetime_parsing", "date_parsing", "date_type"}:
            messages.append(f"{field} must be a valid date (YYYY-MM-DD)")
        elif err_type.startswith("int_"):
            messages.append(f"{field} must be a whole number")
        elif field:
            messages.append(f"{field}: {message}")
        else:
            messages.append(message)

    # Preserve order while de-duplicating.
    return list(dict.fromkeys(messages))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = _format_validation_messages(exc)
    return JSONResponse(
        status_code=400,
        content={
            "error": messages[0] if messages else "Invalid request",
            "errors": messages,
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(
        "database_error",
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"path": request.url.path, "method": request.method},
    )
    return JSONResponse(status_code=500, content={"error": "A database error occurred"})


app.include_router(auth.router)
app.include_router(leave_requests.router)
app.include_router(leave_approvals.router)
app.include_router(leave_policies.router)
app.include_router(leave_reports.router)
app.include_router(leave_evidence.router)
app.include_router(leave_lifecycle.router)
app.include_router(holiday.router)
app.include_router(notifications.router)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.websocket("/ws/notifications/{user_id}")
async def notifications_ws(websocket: WebSocket, user_id: int):
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4401, reason="Missing token")
        return

    payload = decode_token(token)
    if payload is None or payload.get("token_type") != "access":
        await websocket.close(code=4401, reason="Invalid token")
        return

    sub = payload.get("sub")
    sid = payload.get("sid")
    if not sub or not sid:
        await websocket.close(code=4401, reason="Invalid token payload")
        return

    try:
        token_user_id = int(sub)
    except (TypeError, ValueError):
        await websocket.close(code=4401, reason="Invalid token subject")
        return

    if token_user_id != user_id:
        await websocket.close(code=4403, reason="Forbidden")
        return

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.id == user_id).first()
        session = db.query(UserSession).filter(
            UserSession.user_id == user_id,
            UserSession.session_id == sid,
            UserSession.revoked_at == None  # noqa: E711
        ).first()
        session_valid = bool(user and session and as_utc(session.expires_at) >= utcnow())
    finally:
        db.close()

    if not session_valid:
        await websocket.close(code=4401, reason="Session expired")
        return

    await notification_ws_manager.connect(user_id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        notification_ws_manager.disconnect(user_id, websocket)
