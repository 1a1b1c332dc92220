"""
Authentication & Ownership Module
=================================

JWT authentication for the InsightsLM API.

Every row a user can see is owned either directly (user_id) or through a
parent (notebook -> sources/notes/chat, legal case -> proceedings/parties/
documents/chat). The `require_*` helpers load a row only if the caller owns
it and raise `AccessDeniedError` otherwise.

Authorization Flow:
1. Load user from `Authorization: Bearer <jwt>`
2. Verify the user exists and is active
3. Scope every query to the authenticated user
"""

import logging
from typing import Optional
from dataclasses import dataclass
from datetime import datetime, timedelta

import jwt
from fastapi import Depends, Header, HTTPException
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .config import get_settings
from .db.session import get_db
from .db.models import (
    User, Subscription, Notebook, LegalCase, CaseProceeding, CaseParty,
    CaseDocument, GeneratedLegalDocument,
)
from .errors import AccessDeniedError, NotFoundError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


# =============================================================================
# PASSWORD HASHING
# =============================================================================

# bcrypt truncates passwords at 72 bytes; enforce to avoid 500s.
MAX_PASSWORD_BYTES = 72

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def is_password_too_long(password: str) -> bool:
    """Return True if password exceeds bcrypt 72-byte limit."""
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    if is_password_too_long(plain_password):
        logger.warning("Auth failed: password exceeds bcrypt 72-byte limit")
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.warning(f"Auth failed: invalid password format ({e})")
        return False


def get_password_hash(password: str) -> str:
    """Hash a password"""
    if is_password_too_long(password):
        raise ValueError("Password exceeds bcrypt 72-byte limit")
    return pwd_context.hash(password)


# =============================================================================
# JWT TOKEN HANDLING
# =============================================================================

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token"""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=JWT_ALGORITHM)


def create_refresh_token(data: dict) -> str:
    """Create a JWT refresh token"""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + timedelta(days=settings.jwt_refresh_token_expire_days)
    to_encode.update({"exp": expire, "type": "refresh"})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token"""
    try:
        return jwt.decode(token, get_settings().jwt_secret_key, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.warning(f"Invalid JWT token: {e}")
        return None


def issue_token_pair(user: User) -> dict:
    claims = {"sub": user.id, "email": user.email}
    return {
        "access_token": create_access_token(claims),
        "refresh_token": create_refresh_token(claims),
        "token_type": "bearer",
    }


# =============================================================================
# AUTH CONTEXT
# =============================================================================

@dataclass
class AuthContext:
    """Authenticated caller"""
    user_id: str
    email: str
    full_name: Optional[str]


class AuthService:
    """User lookup, registration and login"""

    def __init__(self, db: Session):
        self.db = db

    def get_auth_context(self, user_id: str) -> Optional[AuthContext]:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user or not user.is_active:
            return None
        return AuthContext(user_id=user.id, email=user.email, full_name=user.full_name)

    def register_user(self, email: str, password: str, full_name: Optional[str] = None) -> User:
        """Create a user with a free subscription row"""
        email = email.strip().lower()
        if self.db.query(User).filter(User.email == email).first():
            raise ValueError("Email already registered")

        user = User(email=email, full_name=full_name, password_hash=get_password_hash(password))
        self.db.add(user)
        self.db.flush()
        self.db.add(Subscription(user_id=user.id))
        self.db.commit()
        self.db.refresh(user)
        logger.info("Registered user %s", user.id)
        return user

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        """Authenticate user with email/password"""
        user = self.db.query(User).filter(User.email == email.strip().lower()).first()
        if not user or not user.password_hash or not user.is_active:
            return None
        if not verify_password(password, user.password_hash):
            return None
        user.last_login = datetime.utcnow()
        self.db.commit()
        return user


def get_auth_service(db: Session) -> AuthService:
    """Factory function for AuthService"""
    return AuthService(db)


def user_id_from_token(token: Optional[str], expected_type: str = "access") -> Optional[str]:
    if not token:
        return None
    payload = decode_token(token)
    if not payload or payload.get("type") != expected_type:
        return None
    return payload.get("sub")


async def get_auth_context(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> AuthContext:
    """FastAPI dependency: resolve `Authorization: Bearer <jwt>` into an AuthContext"""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")

    user_id = user_id_from_token(authorization.split(" ", 1)[1].strip())
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")

    auth = get_auth_service(db).get_auth_context(user_id)
    if not auth:
        logger.warning("Auth failed: user_id=%s not found or inactive", user_id)
        raise HTTPException(status_code=401, detail="Unauthorized")
    return auth


# =============================================================================
# OWNERSHIP HELPERS
# =============================================================================

def require_notebook(db: Session, notebook_id: str, user_id: str) -> Notebook:
    notebook = db.query(Notebook).filter(
        Notebook.id == notebook_id,
        Notebook.user_id == user_id,
    ).first()
    if not notebook:
        raise NotFoundError("Notebook not found")
    return notebook


def require_case(db: Session, case_id: str, user_id: str) -> LegalCase:
    legal_case = db.query(LegalCase).filter(
        LegalCase.id == case_id,
        LegalCase.user_id == user_id,
    ).first()
    if not legal_case:
        raise AccessDeniedError()
    return legal_case


def require_proceeding(db: Session, proceeding_id: str, user_id: str) -> CaseProceeding:
    proceeding = db.query(CaseProceeding).join(LegalCase).filter(
        CaseProceeding.id == proceeding_id,
        LegalCase.user_id == user_id,
    ).first()
    if not proceeding:
        raise NotFoundError("Proceeding not found")
    return proceeding


def require_party(db: Session, party_id: str, user_id: str) -> CaseParty:
    party = db.query(CaseParty).join(LegalCase).filter(
        CaseParty.id == party_id,
        LegalCase.user_id == user_id,
    ).first()
    if not party:
        raise NotFoundError("Party not found")
    return party


def require_case_document(db: Session, document_id: str, user_id: str) -> CaseDocument:
    document = db.query(CaseDocument).join(LegalCase).filter(
        CaseDocument.id == document_id,
        LegalCase.user_id == user_id,
    ).first()
    if not document:
        raise NotFoundError("Document not found")
    return document


def require_generated_document(db: Session, document_id: str, user_id: str) -> GeneratedLegalDocument:
    document = db.query(GeneratedLegalDocument).filter(
        GeneratedLegalDocument.id == document_id,
        GeneratedLegalDocument.user_id == user_id,
    ).first()
    if not document:
        raise NotFoundError("Document not found")
    return document
