"""
Legal Assistant API Endpoints
=============================

FastAPI router for the Legal Assistant: cases and everything attached to
them, the legal library, the document generator and plan limits.

Cases:
- GET/POST          /api/v1/legal/cases
- GET/PATCH/DELETE  /api/v1/legal/cases/{case_id}
- POST              /api/v1/legal/cases/{case_id}/archive
- GET/DELETE        /api/v1/legal/cases/{case_id}/messages

Proceedings, parties, documents:
- GET/POST          /api/v1/legal/cases/{case_id}/proceedings
- GET               /api/v1/legal/cases/{case_id}/proceedings/summary
- PATCH/DELETE      /api/v1/legal/proceedings/{proceeding_id}
- POST              /api/v1/legal/proceedings/{proceeding_id}/close
- GET/POST          /api/v1/legal/cases/{case_id}/parties
- PATCH/DELETE      /api/v1/legal/parties/{party_id}
- GET/POST          /api/v1/legal/cases/{case_id}/documents
- PATCH/DELETE      /api/v1/legal/documents/{document_id}

Library & generator:
- GET   /api/v1/legal/regulations[/{id}], /rulings[/{id}], /templates[/{id}]
- POST  /api/v1/legal/templates/{id}/select
- POST  /api/v1/legal/templates/{id}/preview
- GET/POST          /api/v1/legal/generated-documents
- GET/PATCH/DELETE  /api/v1/legal/generated-documents/{id}
- POST  /api/v1/legal/documents/export

Misc:
- GET   /api/v1/legal/limits
- GET   /api/v1/legal/labels
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from . import chat_service, document_generator, legal_cases, library, proceedings
from .auth import AuthContext, get_auth_context, require_generated_document
from .db.session import get_db
from .docx_export import export_document
from .errors import InsightsError, ValidationError
from .labels import all_labels
from .legal_limits import check_legal_limits, limits_display
from .schemas import (
    CaseCreate, CaseDocumentUpdate, CaseUpdate, CloseAndTransferRequest, ExportDocumentRequest,
    GeneratedDocumentCreate, GeneratedDocumentUpdate, PartyCreate, PartyUpdate, PreviewRequest,
    ProceedingCreate, ProceedingUpdate, serialize_page, serialize_proceedings_summary, serialize_row,
    serialize_with_counts,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/legal", tags=["legal"])


# =============================================================================
# CASES
# =============================================================================

@router.get("/cases")
def list_cases(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    cases = legal_cases.list_cases(db, auth.user_id, status=status, category=category)
    return [serialize_with_counts(item, "case") for item in cases]


@router.post("/cases", status_code=201)
def create_case(body: CaseCreate, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    """
    Create a case (checks the plan's case limit).
    """
    try:
        legal_case = legal_cases.create_case(db, auth.user_id, body.model_dump(exclude_unset=True))
        return serialize_row(legal_case)
    except (HTTPException, InsightsError):
        raise
    except Exception as e:
        logger.exception("Failed to create case")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/cases/{case_id}")
def get_case(case_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return serialize_with_counts(legal_cases.get_case(db, case_id, auth.user_id), "case")


@router.patch("/cases/{case_id}")
def update_case(
    case_id: str,
    body: CaseUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return serialize_row(legal_cases.update_case(db, case_id, auth.user_id, body.model_dump(exclude_unset=True)))


@router.post("/cases/{case_id}/archive")
def archive_case(case_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return serialize_row(legal_cases.archive_case(db, case_id, auth.user_id))


@router.delete("/cases/{case_id}")
def delete_case(case_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    legal_cases.delete_case(db, case_id, auth.user_id)
    return {"message": "Case deleted successfully", "id": case_id}


@router.get("/cases/{case_id}/messages")
def list_case_messages(case_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return chat_service.list_legal_messages(db, case_id, auth.user_id)


@router.delete("/cases/{case_id}/messages")
def clear_case_messages(case_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    deleted = chat_service.clear_history(db, "legal", case_id, auth.user_id)
    return {"success": True, "deleted": deleted}


# =============================================================================
# PROCEEDINGS
# =============================================================================

@router.get("/cases/{case_id}/proceedings")
def list_proceedings(case_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return [serialize_row(p) for p in proceedings.list_proceedings(db, case_id, auth.user_id)]


@router.get("/cases/{case_id}/proceedings/summary")
def proceedings_summary(case_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return serialize_proceedings_summary(proceedings.proceedings_summary(db, case_id, auth.user_id))


@router.post("/cases/{case_id}/proceedings", status_code=201)
def create_proceeding(
    case_id: str,
    body: ProceedingCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return serialize_row(
        proceedings.create_proceeding(db, case_id, auth.user_id, body.model_dump(exclude_unset=True))
    )


@router.patch("/proceedings/{proceeding_id}")
def update_proceeding(
    proceeding_id: str,
    body: ProceedingUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return serialize_row(
        proceedings.update_proceeding(db, proceeding_id, auth.user_id, body.model_dump(exclude_unset=True))
    )


@router.delete("/proceedings/{proceeding_id}")
def delete_proceeding(proceeding_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    proceedings.delete_proceeding(db, proceeding_id, auth.user_id)
    return {"message": "Proceeding deleted successfully", "id": proceeding_id}


@router.post("/proceedings/{proceeding_id}/close")
def close_and_transfer(
    proceeding_id: str,
    body: CloseAndTransferRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Close a stage with an outcome; optionally open the next stage"""
    next_stage = body.next_stage.model_dump(exclude_none=True) if body.next_stage else None
    result = proceedings.close_and_transfer(db, proceeding_id, auth.user_id, body.outcome, next_stage)
    return {"closed": serialize_row(result["closed"]), "created": serialize_row(result["created"])}


# =============================================================================
# PARTIES
# =============================================================================

@router.get("/cases/{case_id}/parties")
def list_parties(case_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return [serialize_row(p) for p in legal_cases.list_parties(db, case_id, auth.user_id)]


@router.post("/cases/{case_id}/parties", status_code=201)
def create_party(
    case_id: str,
    body: PartyCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return serialize_row(legal_cases.create_party(db, case_id, auth.user_id, body.model_dump(exclude_unset=True)))


@router.patch("/parties/{party_id}")
def update_party(
    party_id: str,
    body: PartyUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return serialize_row(legal_cases.update_party(db, party_id, auth.user_id, body.model_dump(exclude_unset=True)))


@router.delete("/parties/{party_id}")
def delete_party(party_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    legal_cases.delete_party(db, party_id, auth.user_id)
    return {"message": "Party deleted successfully", "id": party_id}


# =============================================================================
# CASE DOCUMENTS
# =============================================================================

@router.get("/cases/{case_id}/documents")
def list_case_documents(case_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return [serialize_row(d) for d in legal_cases.list_case_documents(db, case_id, auth.user_id)]


@router.post("/cases/{case_id}/documents", status_code=201)
async def add_case_document(
    case_id: str,
    title: str = Form(...),
    document_type: str = Form("inne"),
    content: Optional[str] = Form(None),
    document_date: Optional[date] = Form(None),
    file: Optional[UploadFile] = File(None),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """
    Attach a document to a case (multipart form, file optional).
    """
    data = {"title": title, "document_type": document_type, "content": content, "document_date": document_date}
    file_bytes = await file.read() if file is not None else None
    document = legal_cases.add_case_document(
        db, case_id, auth.user_id, data,
        file_bytes=file_bytes,
        filename=file.filename if file is not None else None,
        content_type=file.content_type if file is not None else None,
    )
    return serialize_row(document)


@router.patch("/documents/{document_id}")
def update_case_document(
    document_id: str,
    body: CaseDocumentUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return serialize_row(
        legal_cases.update_case_document(db, document_id, auth.user_id, body.model_dump(exclude_unset=True))
    )


@router.delete("/documents/{document_id}")
def delete_case_document(document_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    legal_cases.delete_case_document(db, document_id, auth.user_id)
    return {"message": "Document deleted successfully", "id": document_id}


# =============================================================================
# LIBRARY
# =============================================================================

def _filters(
    query: Optional[str] = None,
    categories: Optional[List[str]] = None,
    document_type: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    is_active: bool = True,
    is_premium: Optional[bool] = None,
) -> library.LibrarySearchFilters:
    return library.LibrarySearchFilters(
        query=query,
        categories=categories or [],
        document_type=document_type,
        date_from=date_from,
        date_to=date_to,
        is_active=is_active,
        is_premium=is_premium,
    )


@router.get("/regulations")
def search_regulations(
    query: Optional[str] = None,
    categories: Optional[List[str]] = Query(None),
    document_type: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    is_active: bool = True,
    page: int = Query(1, ge=1),
    page_size: int = Query(library.DEFAULT_PAGE_SIZE, ge=1, le=library.MAX_PAGE_SIZE),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    filters = _filters(query, categories, document_type, date_from, date_to, is_active)
    return serialize_page(library.search_regulations(db, filters, page, page_size))


@router.get("/regulations/{regulation_id}")
def get_regulation(regulation_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return serialize_row(library.get_regulation(db, regulation_id))


@router.get("/rulings")
def search_rulings(
    query: Optional[str] = None,
    categories: Optional[List[str]] = Query(None),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    is_active: bool = True,
    page: int = Query(1, ge=1),
    page_size: int = Query(library.DEFAULT_PAGE_SIZE, ge=1, le=library.MAX_PAGE_SIZE),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    filters = _filters(query, categories, None, date_from, date_to, is_active)
    return serialize_page(library.search_rulings(db, filters, page, page_size))


@router.get("/rulings/{ruling_id}")
def get_ruling(ruling_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return serialize_row(library.get_ruling(db, ruling_id))


@router.get("/templates")
def search_templates(
    query: Optional[str] = None,
    categories: Optional[List[str]] = Query(None),
    document_type: Optional[str] = None,
    is_premium: Optional[bool] = None,
    is_active: bool = True,
    page: int = Query(1, ge=1),
    page_size: int = Query(library.DEFAULT_PAGE_SIZE, ge=1, le=library.MAX_PAGE_SIZE),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    filters = _filters(query, categories, document_type, None, None, is_active, is_premium)
    return serialize_page(library.search_templates(db, filters, page, page_size))


@router.get("/templates/{template_id}")
def get_template(template_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return serialize_row(library.get_library_template(db, template_id))


# =============================================================================
# DOCUMENT GENERATOR
# =============================================================================

@router.post("/templates/{template_id}/select")
def select_template(template_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    selected = document_generator.select_template(db, template_id)
    return {"template": serialize_row(selected["template"]), "form_data": selected["form_data"]}


@router.post("/templates/{template_id}/preview")
def preview_template(
    template_id: str,
    body: PreviewRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return {"content": document_generator.preview_document(db, template_id, body.form_data)}


@router.get("/generated-documents")
def list_generated_documents(
    case_id: Optional[str] = None,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    documents = document_generator.list_generated_documents(db, auth.user_id, case_id)
    return [serialize_row(d) for d in documents]


@router.post("/generated-documents", status_code=201)
def save_generated_document(
    body: GeneratedDocumentCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    document = document_generator.save_generated_document(
        db, auth.user_id, body.template_id, body.form_data, content=body.content, case_id=body.case_id,
    )
    return serialize_row(document)


@router.get("/generated-documents/{document_id}")
def get_generated_document(document_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return serialize_row(require_generated_document(db, document_id, auth.user_id))


@router.patch("/generated-documents/{document_id}")
def update_generated_document(
    document_id: str,
    body: GeneratedDocumentUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    document = document_generator.update_generated_document(
        db, document_id, auth.user_id, body.model_dump(exclude_unset=True),
    )
    return serialize_row(document)


@router.delete("/generated-documents/{document_id}")
def delete_generated_document(document_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    document_generator.delete_generated_document(db, document_id, auth.user_id)
    return {"message": "Document deleted successfully", "id": document_id}


@router.post("/documents/export")
def export_docx(body: ExportDocumentRequest, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    """
    Render content to DOCX, upload it and return a download URL.
    """
    if not body.content:
        raise ValidationError("Missing content")
    try:
        document_type = body.document_type.value if body.document_type else None
        return export_document(db, auth.user_id, body.content, body.title, document_type, body.document_id)
    except (HTTPException, InsightsError):
        raise
    except Exception as e:
        logger.exception("Error in generate-legal-document")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to generate document")


# =============================================================================
# LIMITS & LABELS
# =============================================================================

@router.get("/limits")
def get_limits(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    limits = check_legal_limits(db, auth.user_id)
    return {**limits.to_dict(), **limits_display(limits)}


@router.get("/labels")
def get_labels():
    return all_labels()
