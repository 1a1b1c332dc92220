"""
Notebook API Endpoints
======================

FastAPI router for notebooks, their sources and notes, chat history,
content generation and the audio overview URL.

    GET    /api/v1/notebooks                          - List notebooks
    POST   /api/v1/notebooks                          - Create notebook
    GET    /api/v1/notebooks/{id}                     - Get notebook
    PATCH  /api/v1/notebooks/{id}                     - Update notebook
    DELETE /api/v1/notebooks/{id}                     - Delete notebook
    GET    /api/v1/notebooks/{id}/sources             - List sources
    POST   /api/v1/notebooks/{id}/sources/text        - Add pasted text
    POST   /api/v1/notebooks/{id}/sources/websites    - Add website URLs
    POST   /api/v1/notebooks/{id}/sources/youtube     - Add YouTube URL
    POST   /api/v1/notebooks/{id}/sources/upload      - Upload a file
    GET    /api/v1/sources/{id}                       - Get source
    PATCH  /api/v1/sources/{id}                       - Rename/update source
    DELETE /api/v1/sources/{id}                       - Delete source
    GET    /api/v1/notebooks/{id}/notes               - List notes
    POST   /api/v1/notebooks/{id}/notes               - Create note
    PATCH  /api/v1/notes/{id}                         - Update note
    DELETE /api/v1/notes/{id}                         - Delete note
    GET    /api/v1/notebooks/{id}/messages            - Chat history
    DELETE /api/v1/notebooks/{id}/messages            - Clear chat history
    POST   /api/v1/notebooks/{id}/generate            - Generate title/description
    GET    /api/v1/notebooks/{id}/audio/refresh       - Current audio URL
    POST   /api/v1/notebooks/{id}/audio/refresh       - Re-sign audio URL
"""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from . import chat_service, notebooks
from .auth import AuthContext, get_auth_context, require_notebook
from .db.session import get_db
from .errors import InsightsError
from .schemas import (
    GenerateContentRequest, NoteCreate, NoteUpdate, NotebookCreate, NotebookUpdate,
    SourceUpdate, TextSourceCreate, WebsiteSourcesCreate, YoutubeSourceCreate,
    serialize_row, serialize_with_counts,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notebooks"])


def _audio_payload(notebook) -> dict:
    return {
        "audio_overview_url": notebook.audio_overview_url,
        "audio_url_expires_at": notebook.audio_url_expires_at.isoformat() if notebook.audio_url_expires_at else None,
    }


# =============================================================================
# NOTEBOOKS
# =============================================================================

@router.get("/notebooks")
def list_notebooks(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return [serialize_with_counts(item, "notebook") for item in notebooks.list_notebooks(db, auth.user_id)]


@router.post("/notebooks", status_code=201)
def create_notebook(
    body: NotebookCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return serialize_row(notebooks.create_notebook(db, auth.user_id, body.model_dump(exclude_unset=True)))


@router.get("/notebooks/{notebook_id}")
def get_notebook(notebook_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return serialize_row(require_notebook(db, notebook_id, auth.user_id))


@router.patch("/notebooks/{notebook_id}")
def update_notebook(
    notebook_id: str,
    body: NotebookUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return serialize_row(notebooks.update_notebook(db, notebook_id, auth.user_id, body.model_dump(exclude_unset=True)))


@router.delete("/notebooks/{notebook_id}")
def delete_notebook(notebook_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    notebooks.delete_notebook(db, notebook_id, auth.user_id)
    return {"message": "Notebook deleted successfully", "id": notebook_id}


# =============================================================================
# SOURCES
# =============================================================================

@router.get("/notebooks/{notebook_id}/sources")
def list_sources(notebook_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return [serialize_row(s) for s in notebooks.list_sources(db, notebook_id, auth.user_id)]


@router.post("/notebooks/{notebook_id}/sources/text", status_code=201)
def add_text_source(
    notebook_id: str,
    body: TextSourceCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return serialize_row(notebooks.add_text_source(db, notebook_id, auth.user_id, body.title, body.content))


@router.post("/notebooks/{notebook_id}/sources/websites", status_code=201)
def add_website_sources(
    notebook_id: str,
    body: WebsiteSourcesCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    sources = notebooks.add_website_sources(db, notebook_id, auth.user_id, body.urls)
    return [serialize_row(s) for s in sources]


@router.post("/notebooks/{notebook_id}/sources/youtube", status_code=201)
def add_youtube_source(
    notebook_id: str,
    body: YoutubeSourceCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return serialize_row(notebooks.add_youtube_source(db, notebook_id, auth.user_id, body.url, body.title))


@router.post("/notebooks/{notebook_id}/sources/upload", status_code=201)
async def upload_source(
    notebook_id: str,
    file: UploadFile = File(...),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """
    Upload a source file into the `sources` bucket.
    """
    try:
        data = await file.read()
        source = notebooks.upload_source_file(
            db, notebook_id, auth.user_id, file.filename or "upload", data, file.content_type,
        )
        return serialize_row(source)
    except (HTTPException, InsightsError):
        raise
    except Exception as e:
        logger.exception("Failed to upload source")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/sources/{source_id}")
def get_source(source_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return serialize_row(notebooks.require_source(db, source_id, auth.user_id))


@router.patch("/sources/{source_id}")
def update_source(
    source_id: str,
    body: SourceUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return serialize_row(notebooks.update_source(db, source_id, auth.user_id, body.model_dump(exclude_unset=True)))


@router.delete("/sources/{source_id}")
def delete_source(source_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    notebooks.delete_source(db, source_id, auth.user_id)
    return {"message": "Source deleted successfully", "id": source_id}


# =============================================================================
# NOTES
# =============================================================================

@router.get("/notebooks/{notebook_id}/notes")
def list_notes(notebook_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return [serialize_row(n) for n in notebooks.list_notes(db, notebook_id, auth.user_id)]


@router.post("/notebooks/{notebook_id}/notes", status_code=201)
def create_note(
    notebook_id: str,
    body: NoteCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return serialize_row(notebooks.create_note(db, notebook_id, auth.user_id, body.model_dump(exclude_unset=True)))


@router.patch("/notes/{note_id}")
def update_note(
    note_id: str,
    body: NoteUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return serialize_row(notebooks.update_note(db, note_id, auth.user_id, body.model_dump(exclude_unset=True)))


@router.delete("/notes/{note_id}")
def delete_note(note_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    notebooks.delete_note(db, note_id, auth.user_id)
    return {"message": "Note deleted successfully", "id": note_id}


# =============================================================================
# CHAT HISTORY & GENERATION
# =============================================================================

@router.get("/notebooks/{notebook_id}/messages")
def list_messages(notebook_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return chat_service.list_notebook_messages(db, notebook_id, auth.user_id)


@router.delete("/notebooks/{notebook_id}/messages")
def clear_messages(notebook_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    deleted = chat_service.clear_history(db, "notebook", notebook_id, auth.user_id)
    return {"success": True, "deleted": deleted}


@router.post("/notebooks/{notebook_id}/generate")
async def generate_content(
    notebook_id: str,
    body: GenerateContentRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Ask the workflow engine for a title and description"""
    return await chat_service.generate_notebook_content(
        db, notebook_id, auth.user_id, body.source_type, body.file_path, body.language,
    )


# =============================================================================
# AUDIO OVERVIEW
# =============================================================================

@router.get("/notebooks/{notebook_id}/audio/refresh")
def get_audio_url(notebook_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return _audio_payload(notebooks.get_audio_url(db, notebook_id, auth.user_id))


@router.post("/notebooks/{notebook_id}/audio/refresh")
def refresh_audio_url(notebook_id: str, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    notebook = notebooks.refresh_audio_url(db, notebook_id, auth.user_id)
    return {"success": True, **_audio_payload(notebook)}
