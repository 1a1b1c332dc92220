"""
Legal Document Generator
========================

Fills a `LegalTemplate` with user form data and persists the result as a
`GeneratedLegalDocument`.

Template content contains `{{field_name}}` placeholders and optional layout
markers understood by the DOCX exporter ([PRAWY], [ŚRODEK], [PODPIS]).
"""

import logging
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .auth import require_case, require_generated_document
from .db.models import GeneratedLegalDocument, LegalTemplate, Subscription
from .errors import NotFoundError, ValidationError
from .legal_limits import ensure_can_generate_document
from .storage import GENERATED_DOCUMENTS_BUCKET, get_storage

logger = logging.getLogger(__name__)

# Genitive forms, as in "15 marca 2024"
POLISH_MONTHS = (
    "stycznia", "lutego", "marca", "kwietnia", "maja", "czerwca",
    "lipca", "sierpnia", "września", "października", "listopada", "grudnia",
)

PLACEHOLDER_RE = re.compile(r"\{\{[^}]+\}\}")


def format_polish_date(value: date) -> str:
    return f"{value.day:02d} {POLISH_MONTHS[value.month - 1]} {value.year}"


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


def _parse_number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def initial_form_data(template: Any) -> Dict[str, Any]:
    """Form values pre-populated from each field's defaultValue"""
    data: Dict[str, Any] = {}
    for field in getattr(template, "template_fields", None) or []:
        default = field.get("defaultValue")
        if not default:
            continue
        field_type = field.get("type")
        if field_type == "date":
            data[field["name"]] = _parse_date(default)
        elif field_type == "number":
            data[field["name"]] = _parse_number(default)
        else:
            data[field["name"]] = default
    return data


def coerce_form_data(template: Any, form_data: Dict[str, Any]) -> Dict[str, Any]:
    """Turn JSON form values into dates/numbers according to field types"""
    field_types = {f.get("name"): f.get("type") for f in getattr(template, "template_fields", None) or []}
    coerced = {}
    for key, value in (form_data or {}).items():
        field_type = field_types.get(key)
        if field_type == "date" and value:
            coerced[key] = _parse_date(value) or value
        elif field_type == "number" and value not in (None, ""):
            coerced[key] = _parse_number(value)
        else:
            coerced[key] = value
    return coerced


def _format_value(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return format_polish_date(value)
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return ", ".join(_format_value(item) for item in value if item is not None)
    return str(value) if value else ""


def fill_template(template_content: str, form_data: Dict[str, Any], today: Optional[date] = None) -> str:
    """
    Substitute `{{key}}` placeholders with formatted form values.

    Unfilled placeholders are dropped. When the template carries no [PRAWY]
    block and a place (`miejscowosc`) is given, a right-aligned
    "<place>, <today>" header is prepended.
    """
    content = template_content
    for key, value in form_data.items():
        content = content.replace("{{" + key + "}}", _format_value(value))

    content = PLACEHOLDER_RE.sub("", content)

    today_text = format_polish_date(today or date.today())
    if "[PRAWY]" not in content and form_data.get("miejscowosc"):
        content = f"[PRAWY]{form_data['miejscowosc']}, {today_text}\n\n{content}"
    return content


def _serializable(form_data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, (date, datetime)) else value
        for key, value in form_data.items()
    }


# =============================================================================
# TEMPLATES
# =============================================================================

def get_template(db: Session, template_id: str) -> LegalTemplate:
    template = db.query(LegalTemplate).filter(
        LegalTemplate.id == template_id,
        LegalTemplate.is_active.is_(True),
    ).first()
    if template is None:
        raise NotFoundError("Template not found")
    return template


def select_template(db: Session, template_id: str) -> Dict[str, Any]:
    """Pick a template for filling; bumps its popularity"""
    template = get_template(db, template_id)
    template.popularity_score = (template.popularity_score or 0) + 1
    db.commit()
    db.refresh(template)
    return {"template": template, "form_data": _serializable(initial_form_data(template))}


def preview_document(db: Session, template_id: str, form_data: Dict[str, Any],
                     today: Optional[date] = None) -> str:
    template = get_template(db, template_id)
    content = fill_template(template.template_content, coerce_form_data(template, form_data), today)
    if not content:
        raise ValidationError("Nie udało się wygenerować treści dokumentu")
    return content


# =============================================================================
# GENERATED DOCUMENTS
# =============================================================================

def save_generated_document(
    db: Session,
    user_id: str,
    template_id: str,
    form_data: Dict[str, Any],
    content: Optional[str] = None,
    case_id: Optional[str] = None,
    today: Optional[date] = None,
) -> GeneratedLegalDocument:
    """Persist a filled template (counts against the monthly document quota)"""
    ensure_can_generate_document(db, user_id)
    template = get_template(db, template_id)
    if case_id:
        require_case(db, case_id, user_id)

    coerced = coerce_form_data(template, form_data)
    document = GeneratedLegalDocument(
        user_id=user_id,
        case_id=case_id or None,
        template_id=template.id,
        title=template.title,
        document_type=template.document_type,
        content=content or fill_template(template.template_content, coerced, today),
        form_data=_serializable(coerced),
        version=1,
        is_draft=False,
    )
    db.add(document)

    subscription = db.query(Subscription).filter(Subscription.user_id == user_id).first()
    if subscription is not None:
        subscription.legal_documents_generated = (subscription.legal_documents_generated or 0) + 1

    db.commit()
    db.refresh(document)
    logger.info(f"Saved generated document {document.id} from template {template.id}")
    return document


def list_generated_documents(db: Session, user_id: str, case_id: Optional[str] = None) -> List[GeneratedLegalDocument]:
    query = db.query(GeneratedLegalDocument).filter(GeneratedLegalDocument.user_id == user_id)
    if case_id:
        query = query.filter(GeneratedLegalDocument.case_id == case_id)
    return query.order_by(GeneratedLegalDocument.created_at.desc()).all()


def update_generated_document(db: Session, document_id: str, user_id: str,
                              data: Dict[str, Any]) -> GeneratedLegalDocument:
    document = require_generated_document(db, document_id, user_id)
    if data.get("case_id"):
        require_case(db, data["case_id"], user_id)
    for key in ("title", "content", "form_data", "is_draft", "case_id", "version"):
        if key in data:
            setattr(document, key, data[key])
    db.commit()
    db.refresh(document)
    return document


def delete_generated_document(db: Session, document_id: str, user_id: str) -> None:
    document = require_generated_document(db, document_id, user_id)
    if document.docx_file_path:
        try:
            get_storage().remove(GENERATED_DOCUMENTS_BUCKET, [document.docx_file_path])
        except Exception as e:
            logger.warning(f"Failed to remove DOCX for document {document.id}: {e}")
    db.delete(document)
    db.commit()
