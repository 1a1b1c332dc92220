"""
Legal Cases
===========

Case CRUD plus the two kinds of rows hanging off a case that are not
proceedings: parties (`CaseParty`) and attached documents (`CaseDocument`).

Case document files live in the `sources` bucket at
`legal/<case_id>/<document_id>.<ext>`.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .auth import require_case, require_case_document, require_party
from .db.models import (
    CaseDocument, CaseParty, CaseProceeding, CaseStatus, LegalCase, ProcessingStatus,
)
from .errors import StorageError
from .legal_limits import ensure_can_create_case
from .storage import SOURCES_BUCKET, get_storage

logger = logging.getLogger(__name__)

CASE_FIELDS = (
    "title", "description", "category", "status", "case_number", "current_stage",
    "user_role", "opponent_name", "opponent_type", "parent_case_id", "deadline_date",
    "icon", "color", "notes",
)
PARTY_FIELDS = ("party_type", "name", "address", "pesel_or_nip", "contact_info", "is_user", "notes")
CASE_DOCUMENT_FIELDS = ("title", "document_type", "content", "summary", "document_date")


def _apply(row: Any, data: Dict[str, Any], fields) -> None:
    for key, value in data.items():
        if key in fields:
            setattr(row, key, value)
    if "metadata" in data:
        row.extra_data = data["metadata"] or {}


# =============================================================================
# CASES
# =============================================================================

def _counts(db: Session, model, case_ids: List[str]) -> Dict[str, int]:
    if not case_ids:
        return {}
    rows = db.query(model.case_id, func.count(model.id)).filter(
        model.case_id.in_(case_ids)
    ).group_by(model.case_id).all()
    return dict(rows)


def with_counts(db: Session, cases: List[LegalCase]) -> List[Dict[str, Any]]:
    """Attach documents_count / proceedings_count to each case"""
    ids = [c.id for c in cases]
    documents = _counts(db, CaseDocument, ids)
    proceedings = _counts(db, CaseProceeding, ids)
    return [
        {
            "case": c,
            "documents_count": documents.get(c.id, 0),
            "proceedings_count": proceedings.get(c.id, 0),
        }
        for c in cases
    ]


def list_cases(db: Session, user_id: str, status: Optional[str] = None,
               category: Optional[str] = None) -> List[Dict[str, Any]]:
    query = db.query(LegalCase).filter(LegalCase.user_id == user_id)
    if status:
        query = query.filter(LegalCase.status == status)
    if category:
        query = query.filter(LegalCase.category == category)
    return with_counts(db, query.order_by(LegalCase.updated_at.desc()).all())


def get_case(db: Session, case_id: str, user_id: str) -> Dict[str, Any]:
    return with_counts(db, [require_case(db, case_id, user_id)])[0]


def create_case(db: Session, user_id: str, data: Dict[str, Any]) -> LegalCase:
    ensure_can_create_case(db, user_id)
    if data.get("parent_case_id"):
        require_case(db, data["parent_case_id"], user_id)
    values = {k: v for k, v in data.items() if k in CASE_FIELDS and v is not None}
    values.pop("status", None)
    legal_case = LegalCase(
        user_id=user_id,
        status=CaseStatus.ACTIVE,
        extra_data=data.get("metadata") or {},
        **values,
    )
    legal_case.icon = legal_case.icon or "⚖️"
    legal_case.color = legal_case.color or "blue"
    db.add(legal_case)
    db.commit()
    db.refresh(legal_case)
    logger.info(f"Created legal case {legal_case.id} for user {user_id}")
    return legal_case


def update_case(db: Session, case_id: str, user_id: str, data: Dict[str, Any]) -> LegalCase:
    legal_case = require_case(db, case_id, user_id)
    if data.get("parent_case_id"):
        require_case(db, data["parent_case_id"], user_id)
    _apply(legal_case, data, CASE_FIELDS)
    db.commit()
    db.refresh(legal_case)
    return legal_case


def archive_case(db: Session, case_id: str, user_id: str) -> LegalCase:
    return update_case(db, case_id, user_id, {"status": CaseStatus.ARCHIVED})


def delete_case(db: Session, case_id: str, user_id: str) -> None:
    legal_case = require_case(db, case_id, user_id)
    paths = [d.file_path for d in legal_case.documents if d.file_path]
    db.delete(legal_case)
    db.commit()
    if paths:
        try:
            get_storage().remove(SOURCES_BUCKET, paths)
        except Exception as e:
            logger.warning(f"Failed to remove files of case {case_id}: {e}")


# =============================================================================
# PARTIES
# =============================================================================

def list_parties(db: Session, case_id: str, user_id: str) -> List[CaseParty]:
    require_case(db, case_id, user_id)
    return db.query(CaseParty).filter(CaseParty.case_id == case_id).order_by(CaseParty.created_at.asc()).all()


def create_party(db: Session, case_id: str, user_id: str, data: Dict[str, Any]) -> CaseParty:
    require_case(db, case_id, user_id)
    values = {k: v for k, v in data.items() if k in PARTY_FIELDS and v is not None}
    party = CaseParty(case_id=case_id, extra_data=data.get("metadata") or {}, **values)
    db.add(party)
    db.commit()
    db.refresh(party)
    return party


def update_party(db: Session, party_id: str, user_id: str, data: Dict[str, Any]) -> CaseParty:
    party = require_party(db, party_id, user_id)
    _apply(party, data, PARTY_FIELDS)
    db.commit()
    db.refresh(party)
    return party


def delete_party(db: Session, party_id: str, user_id: str) -> None:
    party = require_party(db, party_id, user_id)
    db.delete(party)
    db.commit()


# =============================================================================
# CASE DOCUMENTS
# =============================================================================

def list_case_documents(db: Session, case_id: str, user_id: str) -> List[CaseDocument]:
    require_case(db, case_id, user_id)
    return db.query(CaseDocument).filter(
        CaseDocument.case_id == case_id
    ).order_by(CaseDocument.created_at.desc()).all()


def _extension(filename: Optional[str]) -> str:
    if filename and "." in filename:
        return filename.rsplit(".", 1)[1] or "bin"
    return "bin"


def add_case_document(
    db: Session,
    case_id: str,
    user_id: str,
    data: Dict[str, Any],
    file_bytes: Optional[bytes] = None,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
) -> CaseDocument:
    """
    Create the document row, then upload the file if one was given.

    The row starts as `uploading` when a file is attached and becomes
    `completed` or `failed` depending on the upload.
    """
    require_case(db, case_id, user_id)
    has_file = file_bytes is not None
    values = {k: v for k, v in data.items() if k in CASE_DOCUMENT_FIELDS and v is not None}
    document = CaseDocument(
        case_id=case_id,
        file_size=len(file_bytes) if has_file else None,
        processing_status=(ProcessingStatus.UPLOADING if has_file else ProcessingStatus.COMPLETED).value,
        extra_data={"fileName": filename, "fileType": content_type} if has_file else {},
        **values,
    )
    db.add(document)
    db.commit()
    db.refresh(document)

    if not has_file:
        return document

    file_path = f"legal/{case_id}/{document.id}.{_extension(filename)}"
    try:
        get_storage().put(SOURCES_BUCKET, file_path, file_bytes,
                          content_type=content_type or "application/octet-stream")
    except StorageError as e:
        logger.error(f"File upload failed for case document {document.id}: {e.message}")
        document.processing_status = ProcessingStatus.FAILED.value
        db.commit()
        raise StorageError("File upload failed", details=e.details)

    document.file_path = file_path
    document.processing_status = ProcessingStatus.COMPLETED.value
    db.commit()
    db.refresh(document)
    return document


def update_case_document(db: Session, document_id: str, user_id: str, data: Dict[str, Any]) -> CaseDocument:
    document = require_case_document(db, document_id, user_id)
    _apply(document, data, CASE_DOCUMENT_FIELDS)
    db.commit()
    db.refresh(document)
    return document


def delete_case_document(db: Session, document_id: str, user_id: str) -> None:
    document = require_case_document(db, document_id, user_id)
    if document.file_path:
        get_storage().remove(SOURCES_BUCKET, [document.file_path])
    db.delete(document)
    db.commit()
