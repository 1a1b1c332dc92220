"""
InsightsLM API
==============

FastAPI application: auth, unified chat (HTTP + websocket), file
downloads, account deletion, and the notebook / legal / billing routers.

Endpoints defined here:
- GET    /health
- POST   /auth/register, /auth/login, /auth/refresh
- GET    /auth/me
- PATCH  /users/me
- POST   /api/v1/chat/{chat_type}            - Send a chat message to the workflow engine
- POST   /api/v1/chat/{chat_type}/callback   - Workflow engine writes an answer back
- WS     /ws/chat/{chat_type}/{session_id}   - Live chat inserts (token in query)
- GET    /api/v1/files/{token}               - Download a locally stored file
- DELETE /api/v1/account                     - Delete the account and all its data
"""

import asyncio
import logging
import mimetypes
import os
from datetime import datetime
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .account import delete_account
from .api_billing import router as billing_router
from .api_legal import router as legal_router
from .api_notebooks import router as notebooks_router
from .auth import (
    MAX_PASSWORD_BYTES, AuthContext, get_auth_context, get_auth_service, is_password_too_long,
    issue_token_pair, require_case, require_notebook, user_id_from_token,
)
from .chat_service import LegalChatOptions, get_chat_config, send_chat_message, store_workflow_message
from .config import get_settings
from .db.models import User
from .db.session import get_db, get_db_session, init_db
from .errors import InsightsError, NotFoundError, http_status_for
from .middleware import RateLimitMiddleware, SecurityHeadersMiddleware
from .realtime import channel_name, get_chat_hub
from .schemas import (
    ChatMessageRequest, LoginRequest, ProfileUpdate, RefreshTokenRequest, RegisterRequest,
    TokenResponse, WorkflowCallbackRequest, serialize_user,
)
from .storage import LocalStorage, decode_file_token, get_storage
from .webhook_client import close_webhook_client

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="InsightsLM Backend",
    description="Notebooks with source-grounded chat and a Polish Legal Assistant",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

CORS_ALLOW_ORIGINS = get_settings().cors_origins
logger.info(f"CORS allow origins: {CORS_ALLOW_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

app.add_middleware(SecurityHeadersMiddleware)

RATE_LIMIT_ENABLED = os.environ.get("RATE_LIMIT_ENABLED", "false").lower() == "true"
if RATE_LIMIT_ENABLED:
    app.add_middleware(RateLimitMiddleware)
    logger.info("Rate limiting middleware enabled")

app.include_router(notebooks_router, prefix="/api/v1")
app.include_router(legal_router, prefix="/api/v1")
app.include_router(billing_router, prefix="/api/v1")


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(InsightsError)
async def insights_error_handler(request: Request, exc: InsightsError):
    status_code = http_status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# =============================================================================
# LIFECYCLE & HEALTH
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    settings = get_settings()
    logger.info(f"Starting InsightsLM Backend v{settings.service_version}")
    logger.info(f"Storage backend: {settings.storage_backend}")
    init_db()
    for warning in settings.validate_config():
        logger.warning(f"Config: {warning}")


@app.on_event("shutdown")
async def shutdown_event():
    await close_webhook_client()


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": get_settings().service_version,
        "timestamp": datetime.utcnow().isoformat(),
    }


# =============================================================================
# AUTH & PROFILE
# =============================================================================

def _check_password_length(password: str) -> None:
    if is_password_too_long(password):
        raise HTTPException(status_code=400, detail=f"Password too long (max {MAX_PASSWORD_BYTES} bytes)")


@app.post("/auth/register", tags=["Auth"], response_model=TokenResponse)
async def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new user with email and password.
    A free subscription row is created alongside.
    """
    _check_password_length(request.password)
    try:
        user = get_auth_service(db).register_user(request.email, request.password, request.full_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return TokenResponse(**issue_token_pair(user))


@app.post("/auth/login", tags=["Auth"], response_model=TokenResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    """
    Login with email and password.
    Returns JWT access and refresh tokens.
    """
    _check_password_length(request.password)
    user = get_auth_service(db).authenticate_user(request.email, request.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return TokenResponse(**issue_token_pair(user))


@app.post("/auth/refresh", tags=["Auth"], response_model=TokenResponse)
async def refresh(request: RefreshTokenRequest, db: Session = Depends(get_db)):
    user_id = user_id_from_token(request.refresh_token, expected_type="refresh")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    return TokenResponse(**issue_token_pair(user))


def _load_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


@app.get("/auth/me", tags=["Auth"])
async def auth_me(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    """Current user profile"""
    return serialize_user(_load_user(db, auth.user_id))


@app.patch("/users/me", tags=["Users"])
async def update_profile(
    request: ProfileUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    user = _load_user(db, auth.user_id)
    for key, value in request.model_dump(exclude_unset=True).items():
        setattr(user, key, value)
    db.commit()
    db.refresh(user)
    return serialize_user(user)


@app.delete("/api/v1/account", tags=["Users"])
async def delete_user_account(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    """Delete the caller's account, every owned row and every stored file"""
    return delete_account(db, auth.user_id)


# =============================================================================
# FILES
# =============================================================================

@app.get("/api/v1/files/{token}", tags=["Files"])
async def download_file(token: str):
    """Serve a file addressed by a signed token (local storage backend)"""
    storage = get_storage()
    if not isinstance(storage, LocalStorage):
        raise HTTPException(status_code=404, detail="File not found")

    bucket, path = decode_file_token(token)
    data = storage.get(bucket, path)
    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    filename = os.path.basename(path)
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": f"inline; filename*=UTF-8''{quote(filename)}"},
    )


# =============================================================================
# CHAT
# =============================================================================

@app.post("/api/v1/chat/{chat_type}", tags=["Chat"])
async def chat(
    chat_type: str,
    request: ChatMessageRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """
    Unified chat endpoint for notebook and legal chat.

    The answer arrives asynchronously: the workflow engine posts it to the
    callback endpoint, which publishes it on the websocket channel.
    """
    legal = None
    if chat_type == "legal":
        legal = LegalChatOptions(
            case_id=request.session_id,
            categories=request.categories,
            include_regulations=request.include_regulations,
            include_rulings=request.include_rulings,
            include_templates=request.include_templates,
            include_case_docs=request.case_context,
        )
    try:
        return await send_chat_message(
            db, chat_type, request.session_id, request.message, auth.user_id, legal=legal,
        )
    except (HTTPException, InsightsError):
        raise
    except Exception as e:
        logger.exception("Error in unified-chat")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/v1/chat/{chat_type}/callback", tags=["Chat"])
async def chat_callback(
    chat_type: str,
    request: WorkflowCallbackRequest,
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: Session = Depends(get_db),
):
    """Workflow engine writes an AI message into chat history"""
    expected = get_settings().notebook_generation_auth
    if not expected or authorization != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")

    message = store_workflow_message(
        db, chat_type, request.session_id, request.message,
        user_id=request.user_id, sources_used=request.sources_used,
    )
    return {"success": True, "message": message}


def _authorize_channel(chat_type: str, session_id: str, token: Optional[str]) -> bool:
    user_id = user_id_from_token(token)
    if not user_id:
        return False
    try:
        get_chat_config(chat_type)
        with get_db_session() as db:
            if chat_type == "legal":
                require_case(db, session_id, user_id)
            else:
                require_notebook(db, session_id, user_id)
    except InsightsError as e:
        logger.info(f"Websocket rejected for {chat_type}:{session_id}: {e.message}")
        return False
    return True


@app.websocket("/ws/chat/{chat_type}/{session_id}")
async def chat_websocket(websocket: WebSocket, chat_type: str, session_id: str, token: Optional[str] = Query(None)):
    """Push new chat history rows for one session, already transformed for display"""
    if not _authorize_channel(chat_type, session_id, token):
        await websocket.close(code=4401)
        return

    hub = get_chat_hub()
    # Subscribed before accept so nothing published after the handshake is missed
    subscription = hub.subscribe(channel_name(chat_type, session_id))

    async def forward():
        while True:
            await websocket.send_json(await subscription.get())

    forwarder = None
    try:
        await websocket.accept()
        forwarder = asyncio.create_task(forward())
        # Client frames are ignored; receiving only detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug(f"Websocket closed for {chat_type}:{session_id}")
    finally:
        if forwarder is not None:
            forwarder.cancel()
        hub.unsubscribe(subscription)
