"""
Unified Chat Service
====================

One code path for both chat products:

    chat_type   webhook env var          history table            ownership check
    ---------   ---------------          -------------            ---------------
    notebook    NOTEBOOK_CHAT_URL        n8n_chat_histories       notebook owner
    legal       LEGAL_CHAT_WEBHOOK_URL   legal_chat_histories     case owner

Flow for a user message:
1. Validate fields, resolve webhook URL + shared auth header
2. (legal) verify case ownership, default categories to the case category,
   save the human message (non-fatal on failure)
3. POST the payload to the workflow engine
4. The workflow writes the AI answer back via `store_workflow_message`
   (callback endpoint), which publishes it on the realtime channel
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .auth import require_case, require_notebook
from .chat_transformers import (
    build_source_map, row_to_dict, transform_legal_message, transform_notebook_message,
)
from .config import Settings, get_settings
from .db.models import (
    LegalCase, LegalChatHistory, NotebookChatHistory, Source, GenerationStatus,
)
from .errors import ConfigurationError, ValidationError, WebhookError
from .realtime import channel_name, get_chat_hub
from .webhook_client import WorkflowWebhookClient, get_webhook_client

logger = logging.getLogger(__name__)


# =============================================================================
# PER-TYPE CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class ChatTypeConfig:
    webhook_env_var: str
    webhook_setting: str
    history_table: str
    requires_ownership_check: bool


CHAT_CONFIG: Dict[str, ChatTypeConfig] = {
    "notebook": ChatTypeConfig(
        webhook_env_var="NOTEBOOK_CHAT_URL",
        webhook_setting="notebook_chat_url",
        history_table=NotebookChatHistory.__tablename__,
        requires_ownership_check=False,
    ),
    "legal": ChatTypeConfig(
        webhook_env_var="LEGAL_CHAT_WEBHOOK_URL",
        webhook_setting="legal_chat_webhook_url",
        history_table=LegalChatHistory.__tablename__,
        requires_ownership_check=True,
    ),
}


def get_chat_config(chat_type: str) -> ChatTypeConfig:
    config = CHAT_CONFIG.get(chat_type)
    if not config:
        raise ValidationError(f"Invalid chat_type: {chat_type}")
    return config


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _resolve_webhook(config: ChatTypeConfig, settings: Settings) -> tuple:
    webhook_url = getattr(settings, config.webhook_setting)
    if not webhook_url:
        raise ConfigurationError(f"{config.webhook_env_var} environment variable not set")
    if not settings.notebook_generation_auth:
        raise ConfigurationError("NOTEBOOK_GENERATION_AUTH environment variable not set")
    return webhook_url, settings.notebook_generation_auth


# =============================================================================
# SEND
# =============================================================================

@dataclass
class LegalChatOptions:
    """Legal-only request fields (None means "use default")"""
    case_id: Optional[str] = None
    categories: Optional[List[str]] = None
    include_regulations: Optional[bool] = None
    include_rulings: Optional[bool] = None
    include_templates: Optional[bool] = None
    include_case_docs: Optional[bool] = None


def build_notebook_payload(session_id: str, message: str, user_id: str) -> Dict[str, Any]:
    return {
        "session_id": session_id,
        "message": message,
        "user_id": user_id,
        "timestamp": _utc_timestamp(),
    }


def build_legal_payload(
    session_id: str,
    message: str,
    user_id: str,
    options: LegalChatOptions,
    categories: List[str],
    settings: Settings,
) -> Dict[str, Any]:
    def _default(value, fallback):
        return fallback if value is None else value

    return {
        "session_id": session_id,
        "message": message,
        "user_id": user_id,
        "case_id": options.case_id,
        "categories": categories,
        "include_regulations": _default(options.include_regulations, True),
        "include_rulings": _default(options.include_rulings, True),
        "include_templates": _default(options.include_templates, False),
        "include_case_docs": _default(options.include_case_docs, True),
        "timestamp": _utc_timestamp(),
        "context": {
            "language": settings.legal_language,
            "jurisdiction": settings.legal_jurisdiction,
            "assistant_type": "legal",
        },
    }


def _save_human_legal_message(db: Session, case_id: str, user_id: str, message: str) -> None:
    try:
        row = LegalChatHistory(
            session_id=case_id,
            user_id=user_id,
            message={"type": "human", "content": message},
            sources_used=None,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        get_chat_hub().publish(channel_name("legal", case_id), transform_legal_message(row_to_dict(row)))
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to save user message: {e}")


async def send_chat_message(
    db: Session,
    chat_type: str,
    session_id: str,
    message: str,
    user_id: str,
    legal: Optional[LegalChatOptions] = None,
    client: Optional[WorkflowWebhookClient] = None,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """
    Forward a user message to the workflow engine.

    Returns {"success": True, "data": <webhook response>}.
    """
    if not chat_type or not session_id or not message or not user_id:
        raise ValidationError("Missing required fields: chat_type, session_id, message, user_id")

    config = get_chat_config(chat_type)
    settings = settings or get_settings()
    webhook_url, auth_header = _resolve_webhook(config, settings)

    logger.info(
        "Unified chat request: chat_type=%s session_id=%s user_id=%s message=%s",
        chat_type, session_id, user_id, message[:100],
    )

    if chat_type == "legal":
        legal = legal or LegalChatOptions(case_id=session_id)
        case_id = legal.case_id or session_id
        legal.case_id = case_id

        legal_case = require_case(db, case_id, user_id)
        if not legal.categories and legal_case.category:
            categories = [getattr(legal_case.category, "value", legal_case.category)]
        else:
            categories = list(legal.categories or [])

        _save_human_legal_message(db, case_id, user_id, message)
        payload = build_legal_payload(session_id, message, user_id, legal, categories, settings)
    else:
        require_notebook(db, session_id, user_id)
        payload = build_notebook_payload(session_id, message, user_id)

    logger.info("Sending to webhook: %s", config.webhook_env_var)
    client = client or get_webhook_client()
    result = await client.post(webhook_url, payload, auth_header)
    if not result.success:
        raise WebhookError(
            f"Webhook responded with status: {result.status_code}",
            upstream_status=result.status_code,
        )

    logger.info("Webhook response received for %s", chat_type)
    return {"success": True, "data": result.data}


# =============================================================================
# HISTORY
# =============================================================================

def notebook_source_map(db: Session, notebook_id: str) -> Dict[str, Dict[str, Any]]:
    sources = db.query(Source).filter(Source.notebook_id == notebook_id).all()
    return build_source_map(sources)


def list_notebook_messages(db: Session, notebook_id: str, user_id: str) -> List[Dict[str, Any]]:
    """Chat history of a notebook, oldest first, with citations resolved"""
    require_notebook(db, notebook_id, user_id)
    rows = (
        db.query(NotebookChatHistory)
        .filter(NotebookChatHistory.session_id == notebook_id)
        .order_by(NotebookChatHistory.id.asc())
        .all()
    )
    source_map = notebook_source_map(db, notebook_id)
    return [transform_notebook_message(row_to_dict(row), source_map) for row in rows]


def list_legal_messages(db: Session, case_id: str, user_id: str) -> List[Dict[str, Any]]:
    """Legal chat history of a case, oldest first"""
    require_case(db, case_id, user_id)
    rows = (
        db.query(LegalChatHistory)
        .filter(LegalChatHistory.session_id == case_id, LegalChatHistory.user_id == user_id)
        .order_by(LegalChatHistory.id.asc())
        .all()
    )
    return [transform_legal_message(row_to_dict(row)) for row in rows]


def clear_history(db: Session, chat_type: str, session_id: str, user_id: str) -> int:
    """Delete a session's chat history; returns number of deleted rows"""
    get_chat_config(chat_type)
    if chat_type == "legal":
        require_case(db, session_id, user_id)
        deleted = db.query(LegalChatHistory).filter(
            LegalChatHistory.session_id == session_id,
            LegalChatHistory.user_id == user_id,
        ).delete(synchronize_session=False)
    else:
        require_notebook(db, session_id, user_id)
        deleted = db.query(NotebookChatHistory).filter(
            NotebookChatHistory.session_id == session_id,
        ).delete(synchronize_session=False)
    db.commit()
    logger.info("Cleared %d %s chat messages for session %s", deleted, chat_type, session_id)
    return deleted


def store_workflow_message(
    db: Session,
    chat_type: str,
    session_id: str,
    message: Dict[str, Any],
    user_id: Optional[str] = None,
    sources_used: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """
    Persist a message written by the workflow engine and publish it.

    Returns the transformed message as delivered to realtime subscribers.
    """
    get_chat_config(chat_type)
    if not isinstance(message, dict) or "type" not in message:
        raise ValidationError("message must be an object with a 'type' field")

    if chat_type == "legal":
        if not user_id:
            legal_case = db.query(LegalCase).filter(LegalCase.id == session_id).first()
            if not legal_case:
                raise ValidationError(f"Unknown legal session: {session_id}")
            user_id = legal_case.user_id
        row = LegalChatHistory(session_id=session_id, user_id=user_id, message=message, sources_used=sources_used)
        db.add(row)
        db.commit()
        db.refresh(row)
        transformed = transform_legal_message(row_to_dict(row))
    else:
        row = NotebookChatHistory(session_id=session_id, message=message)
        db.add(row)
        db.commit()
        db.refresh(row)
        transformed = transform_notebook_message(row_to_dict(row), notebook_source_map(db, session_id))

    get_chat_hub().publish(channel_name(chat_type, session_id), transformed)
    return transformed


# =============================================================================
# NOTEBOOK CONTENT GENERATION
# =============================================================================

def _extract_generated_fields(data: Any) -> Dict[str, Optional[str]]:
    if isinstance(data, list) and data:
        data = data[0]
    if isinstance(data, dict) and isinstance(data.get("output"), dict):
        data = data["output"]
    if not isinstance(data, dict):
        return {"title": None, "description": None}
    return {"title": data.get("title"), "description": data.get("description") or data.get("summary")}


async def generate_notebook_content(
    db: Session,
    notebook_id: str,
    user_id: str,
    source_type: str,
    file_path: Optional[str] = None,
    language: str = "pl",
    client: Optional[WorkflowWebhookClient] = None,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """Ask the workflow engine to title/describe a notebook from its first source"""
    settings = settings or get_settings()
    if not settings.notebook_generation_url:
        raise ConfigurationError("NOTEBOOK_GENERATION_URL environment variable not set")
    if not settings.notebook_generation_auth:
        raise ConfigurationError("NOTEBOOK_GENERATION_AUTH environment variable not set")

    notebook = require_notebook(db, notebook_id, user_id)
    notebook.generation_status = GenerationStatus.GENERATING
    db.commit()

    payload = {
        "notebookId": notebook_id,
        "filePath": file_path,
        "sourceType": source_type,
        "language": language,
    }

    client = client or get_webhook_client()
    try:
        result = await client.post(settings.notebook_generation_url, payload, settings.notebook_generation_auth)
    except Exception as e:
        notebook.generation_status = GenerationStatus.FAILED
        db.commit()
        raise WebhookError(f"Notebook generation failed: {e}")

    if not result.success:
        notebook.generation_status = GenerationStatus.FAILED
        db.commit()
        raise WebhookError(
            f"Webhook responded with status: {result.status_code}",
            upstream_status=result.status_code,
        )

    generated = _extract_generated_fields(result.data)
    if generated["title"] or generated["description"]:
        if generated["title"]:
            notebook.title = generated["title"]
        if generated["description"]:
            notebook.description = generated["description"]
        notebook.generation_status = GenerationStatus.COMPLETED
    db.commit()

    logger.info("Notebook generation finished for %s (status=%s)", notebook_id, notebook.generation_status.value)
    return {"success": True, "data": result.data}
