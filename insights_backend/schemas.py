"""
Pydantic Schemas for InsightsLM API
===================================

Request bodies for the HTTP layer and the row serializers used to build
JSON responses. Responses use the column names of the underlying tables
(snake_case) so the web client can read them without mapping; the legacy
camelCase keys are kept where the client already expects them
(`totalCount`, `downloadUrl`, `deletedFiles`).
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field

from .db.models import (
    LegalCategory, LegalDocumentType, PartyType, ProceedingOutcome, ProceedingStageType,
)


# =============================================================================
# AUTH & PROFILE
# =============================================================================

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    full_name: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None


# =============================================================================
# CHAT
# =============================================================================

class ChatMessageRequest(BaseModel):
    """
    Unified chat request. `user_id` is taken from the token; the legal-only
    fields are ignored for notebook chat.
    """
    session_id: Optional[str] = None
    message: Optional[str] = None
    categories: Optional[List[str]] = None
    include_rulings: Optional[bool] = None
    include_regulations: Optional[bool] = None
    include_templates: Optional[bool] = None
    case_context: Optional[bool] = None


class WorkflowCallbackRequest(BaseModel):
    """Message written by the workflow engine once it has an answer"""
    session_id: str
    message: Dict[str, Any]
    user_id: Optional[str] = None
    sources_used: Optional[Any] = None


# =============================================================================
# NOTEBOOKS
# =============================================================================

class NotebookCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None


class NotebookUpdate(NotebookCreate):
    pass


class TextSourceCreate(BaseModel):
    title: str = "Copied text"
    content: str


class WebsiteSourcesCreate(BaseModel):
    urls: List[str]


class YoutubeSourceCreate(BaseModel):
    url: str
    title: Optional[str] = None


class SourceUpdate(BaseModel):
    title: Optional[str] = None
    summary: Optional[str] = None
    content: Optional[str] = None


class NoteCreate(BaseModel):
    title: str
    content: str = ""
    source_type: Optional[str] = "user"
    extracted_text: Optional[str] = None


class NoteUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    extracted_text: Optional[str] = None


class GenerateContentRequest(BaseModel):
    source_type: str = Field(..., alias="sourceType")
    file_path: Optional[str] = Field(None, alias="filePath")
    language: str = "pl"

    model_config = {"populate_by_name": True}


# =============================================================================
# LEGAL CASES
# =============================================================================

class CaseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    category: LegalCategory
    description: Optional[str] = None
    case_number: Optional[str] = None
    current_stage: Optional[ProceedingStageType] = None
    user_role: Optional[PartyType] = None
    opponent_name: Optional[str] = None
    opponent_type: Optional[str] = None
    parent_case_id: Optional[str] = None
    deadline_date: Optional[date] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class CaseUpdate(BaseModel):
    title: Optional[str] = None
    category: Optional[LegalCategory] = None
    status: Optional[str] = None
    description: Optional[str] = None
    case_number: Optional[str] = None
    current_stage: Optional[ProceedingStageType] = None
    user_role: Optional[PartyType] = None
    opponent_name: Optional[str] = None
    opponent_type: Optional[str] = None
    parent_case_id: Optional[str] = None
    deadline_date: Optional[date] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ProceedingCreate(BaseModel):
    stage_type: ProceedingStageType
    institution_name: str
    case_number: Optional[str] = None
    started_at: Optional[date] = None
    ended_at: Optional[date] = None
    outcome: Optional[ProceedingOutcome] = None
    notes: Optional[str] = None
    previous_proceeding_id: Optional[str] = None
    merged_from_case_ids: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None


class ProceedingUpdate(BaseModel):
    stage_type: Optional[ProceedingStageType] = None
    institution_name: Optional[str] = None
    case_number: Optional[str] = None
    started_at: Optional[date] = None
    ended_at: Optional[date] = None
    outcome: Optional[ProceedingOutcome] = None
    notes: Optional[str] = None
    previous_proceeding_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class NextStage(BaseModel):
    stage_type: ProceedingStageType
    institution_name: str
    case_number: Optional[str] = None
    started_at: Optional[date] = None
    notes: Optional[str] = None


class CloseAndTransferRequest(BaseModel):
    outcome: ProceedingOutcome
    next_stage: Optional[NextStage] = None


class PartyCreate(BaseModel):
    party_type: PartyType
    name: str
    address: Optional[str] = None
    pesel_or_nip: Optional[str] = None
    contact_info: Optional[str] = None
    is_user: bool = False
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class PartyUpdate(BaseModel):
    party_type: Optional[PartyType] = None
    name: Optional[str] = None
    address: Optional[str] = None
    pesel_or_nip: Optional[str] = None
    contact_info: Optional[str] = None
    is_user: Optional[bool] = None
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class CaseDocumentUpdate(BaseModel):
    title: Optional[str] = None
    document_type: Optional[str] = None
    content: Optional[str] = None
    summary: Optional[str] = None
    document_date: Optional[date] = None


# =============================================================================
# DOCUMENT GENERATOR
# =============================================================================

class PreviewRequest(BaseModel):
    form_data: Dict[str, Any] = Field(default_factory=dict)


class GeneratedDocumentCreate(BaseModel):
    template_id: str
    form_data: Dict[str, Any] = Field(default_factory=dict)
    content: Optional[str] = None
    case_id: Optional[str] = None


class GeneratedDocumentUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    form_data: Optional[Dict[str, Any]] = None
    is_draft: Optional[bool] = None
    case_id: Optional[str] = None


class ExportDocumentRequest(BaseModel):
    content: Optional[str] = None
    title: Optional[str] = None
    document_type: Optional[LegalDocumentType] = None
    document_id: Optional[str] = None
    template_id: Optional[str] = None
    form_data: Optional[Dict[str, Any]] = None


# =============================================================================
# BILLING
# =============================================================================

class CheckoutRequest(BaseModel):
    price_id: Optional[str] = Field(None, alias="priceId")
    success_url: Optional[str] = Field(None, alias="successUrl")
    cancel_url: Optional[str] = Field(None, alias="cancelUrl")

    model_config = {"populate_by_name": True}


class PortalRequest(BaseModel):
    return_url: Optional[str] = Field(None, alias="returnUrl")

    model_config = {"populate_by_name": True}


# =============================================================================
# SERIALIZERS
# =============================================================================

def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def serialize_row(row: Any, exclude: tuple = ()) -> Optional[Dict[str, Any]]:
    """Column values of an ORM row as JSON-ready dict (`extra_data` -> `metadata`)"""
    if row is None:
        return None
    data = {}
    for column in row.__table__.columns:
        attr = "extra_data" if column.name == "metadata" else column.key
        if column.name in exclude:
            continue
        data[column.name] = _json_value(getattr(row, attr))
    return data


def serialize_user(user: Any) -> Dict[str, Any]:
    return serialize_row(user, exclude=("password_hash",))


def serialize_with_counts(item: Dict[str, Any], key: str) -> Dict[str, Any]:
    data = serialize_row(item[key])
    data.update({k: v for k, v in item.items() if k != key})
    return data


def serialize_proceedings_summary(summary: Dict[str, Any]) -> Dict[str, Any]:
    def many(rows):
        return [serialize_row(r) for r in rows]

    return {
        "proceedings": many(summary["proceedings"]),
        "timeline": many(summary["timeline"]),
        "current": serialize_row(summary["current"]),
        "completed": many(summary["completed"]),
        "latest": serialize_row(summary["latest"]),
    }


def serialize_page(page: Dict[str, Any]) -> Dict[str, Any]:
    return {**page, "data": [serialize_row(r) for r in page["data"]]}
