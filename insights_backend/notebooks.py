"""
Notebooks
=========

Notebook CRUD with its sources and notes, plus audio overview URL signing.

Source files live in the `sources` bucket at `<notebook_id>/<source_id>.<ext>`;
the audio overview lives in the `audio` bucket and is served through a
signed URL that is re-signed whenever it is close to expiry.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .auth import require_notebook
from .config import get_settings
from .db.models import Note, Notebook, ProcessingStatus, Source, SourceType
from .errors import NotFoundError, StorageError, ValidationError
from .storage import AUDIO_BUCKET, SOURCES_BUCKET, get_storage

logger = logging.getLogger(__name__)

NOTEBOOK_FIELDS = ("title", "description", "icon", "color")
SOURCE_FIELDS = ("title", "summary", "content", "url", "processing_status")
NOTE_FIELDS = ("title", "content", "source_type", "extracted_text")

AUDIO_REFRESH_MARGIN = timedelta(minutes=5)

_AUDIO_EXTENSIONS = {"mp3", "wav", "m4a", "ogg", "flac", "aac"}
_TEXT_EXTENSIONS = {"txt", "md"}


def _apply(row: Any, data: Dict[str, Any], fields) -> None:
    for key, value in data.items():
        if key in fields:
            setattr(row, key, value)


# =============================================================================
# NOTEBOOKS
# =============================================================================

def list_notebooks(db: Session, user_id: str) -> List[Dict[str, Any]]:
    """Notebooks, most recently updated first, with their source counts"""
    notebooks = db.query(Notebook).filter(
        Notebook.user_id == user_id
    ).order_by(Notebook.updated_at.desc()).all()
    ids = [n.id for n in notebooks]
    counts = {}
    if ids:
        counts = dict(
            db.query(Source.notebook_id, func.count(Source.id))
            .filter(Source.notebook_id.in_(ids))
            .group_by(Source.notebook_id)
            .all()
        )
    return [{"notebook": n, "sources_count": counts.get(n.id, 0)} for n in notebooks]


def create_notebook(db: Session, user_id: str, data: Dict[str, Any]) -> Notebook:
    values = {k: v for k, v in data.items() if k in NOTEBOOK_FIELDS and v is not None}
    notebook = Notebook(user_id=user_id, **values)
    db.add(notebook)
    db.commit()
    db.refresh(notebook)
    logger.info(f"Created notebook {notebook.id}")
    return notebook


def update_notebook(db: Session, notebook_id: str, user_id: str, data: Dict[str, Any]) -> Notebook:
    notebook = require_notebook(db, notebook_id, user_id)
    _apply(notebook, data, NOTEBOOK_FIELDS)
    db.commit()
    db.refresh(notebook)
    return notebook


def delete_notebook(db: Session, notebook_id: str, user_id: str) -> None:
    notebook = require_notebook(db, notebook_id, user_id)
    source_paths = [s.file_path for s in notebook.sources if s.file_path]
    audio_path = notebook.audio_file_path
    db.delete(notebook)
    db.commit()

    storage = get_storage()
    for bucket, paths in ((SOURCES_BUCKET, source_paths), (AUDIO_BUCKET, [audio_path] if audio_path else [])):
        if not paths:
            continue
        try:
            storage.remove(bucket, paths)
        except StorageError as e:
            logger.warning(f"Failed to remove {bucket} files of notebook {notebook_id}: {e.message}")


# =============================================================================
# SOURCES
# =============================================================================

def list_sources(db: Session, notebook_id: str, user_id: str) -> List[Source]:
    require_notebook(db, notebook_id, user_id)
    return db.query(Source).filter(Source.notebook_id == notebook_id).order_by(Source.created_at.desc()).all()


def require_source(db: Session, source_id: str, user_id: str) -> Source:
    source = db.query(Source).join(Notebook).filter(
        Source.id == source_id,
        Notebook.user_id == user_id,
    ).first()
    if source is None:
        raise NotFoundError("Source not found")
    return source


def _add_source(db: Session, notebook_id: str, user_id: str, **values) -> Source:
    require_notebook(db, notebook_id, user_id)
    source = Source(notebook_id=notebook_id, extra_data=values.pop("extra_data", None) or {}, **values)
    db.add(source)
    db.commit()
    db.refresh(source)
    return source


def add_text_source(db: Session, notebook_id: str, user_id: str, title: str, content: str) -> Source:
    if not content:
        raise ValidationError("Missing required fields: content")
    return _add_source(
        db, notebook_id, user_id,
        title=title or "Copied text",
        type=SourceType.TEXT,
        content=content,
        processing_status=ProcessingStatus.COMPLETED,
    )


def add_website_sources(db: Session, notebook_id: str, user_id: str, urls: List[str]) -> List[Source]:
    urls = [u.strip() for u in urls if u and u.strip()]
    if not urls:
        raise ValidationError("Missing required fields: urls")
    require_notebook(db, notebook_id, user_id)
    sources = [
        Source(
            notebook_id=notebook_id,
            title=url,
            type=SourceType.WEBSITE,
            url=url,
            processing_status=ProcessingStatus.PENDING,
            extra_data={"originalUrl": url},
        )
        for url in urls
    ]
    db.add_all(sources)
    db.commit()
    for source in sources:
        db.refresh(source)
    logger.info(f"Added {len(sources)} website sources to notebook {notebook_id}")
    return sources


def add_youtube_source(db: Session, notebook_id: str, user_id: str, url: str,
                       title: Optional[str] = None) -> Source:
    if not url:
        raise ValidationError("Missing required fields: url")
    return _add_source(
        db, notebook_id, user_id,
        title=title or url,
        type=SourceType.YOUTUBE,
        url=url,
        processing_status=ProcessingStatus.PENDING,
        extra_data={"originalUrl": url},
    )


def source_type_for_filename(filename: str) -> SourceType:
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if extension in _AUDIO_EXTENSIONS:
        return SourceType.AUDIO
    if extension in _TEXT_EXTENSIONS:
        return SourceType.TEXT
    return SourceType.PDF


def upload_source_file(db: Session, notebook_id: str, user_id: str, filename: str, data: bytes,
                       content_type: Optional[str] = None) -> Source:
    source = _add_source(
        db, notebook_id, user_id,
        title=filename,
        type=source_type_for_filename(filename),
        file_size=len(data),
        processing_status=ProcessingStatus.UPLOADING,
        extra_data={"fileName": filename, "fileType": content_type},
    )
    extension = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
    file_path = f"{notebook_id}/{source.id}.{extension}"
    try:
        get_storage().put(SOURCES_BUCKET, file_path, data, content_type=content_type or "application/octet-stream")
    except StorageError as e:
        logger.error(f"Source upload failed for {source.id}: {e.message}")
        source.processing_status = ProcessingStatus.FAILED
        db.commit()
        raise StorageError("File upload failed", details=e.details)

    source.file_path = file_path
    source.processing_status = ProcessingStatus.PENDING
    db.commit()
    db.refresh(source)
    return source


def update_source(db: Session, source_id: str, user_id: str, data: Dict[str, Any]) -> Source:
    source = require_source(db, source_id, user_id)
    _apply(source, data, SOURCE_FIELDS)
    db.commit()
    db.refresh(source)
    return source


def delete_source(db: Session, source_id: str, user_id: str) -> None:
    source = require_source(db, source_id, user_id)
    if source.file_path:
        get_storage().remove(SOURCES_BUCKET, [source.file_path])
    db.delete(source)
    db.commit()


# =============================================================================
# NOTES
# =============================================================================

def list_notes(db: Session, notebook_id: str, user_id: str) -> List[Note]:
    require_notebook(db, notebook_id, user_id)
    return db.query(Note).filter(Note.notebook_id == notebook_id).order_by(Note.updated_at.desc()).all()


def require_note(db: Session, note_id: str, user_id: str) -> Note:
    note = db.query(Note).join(Notebook).filter(Note.id == note_id, Notebook.user_id == user_id).first()
    if note is None:
        raise NotFoundError("Note not found")
    return note


def create_note(db: Session, notebook_id: str, user_id: str, data: Dict[str, Any]) -> Note:
    require_notebook(db, notebook_id, user_id)
    values = {k: v for k, v in data.items() if k in NOTE_FIELDS and v is not None}
    note = Note(notebook_id=notebook_id, **values)
    db.add(note)
    db.commit()
    db.refresh(note)
    return note


def update_note(db: Session, note_id: str, user_id: str, data: Dict[str, Any]) -> Note:
    note = require_note(db, note_id, user_id)
    _apply(note, data, NOTE_FIELDS)
    db.commit()
    db.refresh(note)
    return note


def delete_note(db: Session, note_id: str, user_id: str) -> None:
    note = require_note(db, note_id, user_id)
    db.delete(note)
    db.commit()


# =============================================================================
# AUDIO OVERVIEW
# =============================================================================

def audio_url_expiring(notebook: Notebook, now: Optional[datetime] = None) -> bool:
    if not notebook.audio_overview_url or notebook.audio_url_expires_at is None:
        return True
    now = now or datetime.utcnow()
    return notebook.audio_url_expires_at - now <= AUDIO_REFRESH_MARGIN


def refresh_audio_url(db: Session, notebook_id: str, user_id: str) -> Notebook:
    """Re-sign the stored audio file and persist the new URL and expiry"""
    notebook = require_notebook(db, notebook_id, user_id)
    if not notebook.audio_file_path:
        raise NotFoundError("No audio overview for this notebook")

    url, expires_at = get_storage().signed_url(
        AUDIO_BUCKET, notebook.audio_file_path, expires_in=get_settings().signed_url_ttl
    )
    notebook.audio_overview_url = url
    notebook.audio_url_expires_at = expires_at
    db.commit()
    db.refresh(notebook)
    logger.info(f"Refreshed audio URL for notebook {notebook_id} (expires {expires_at.isoformat()})")
    return notebook


def get_audio_url(db: Session, notebook_id: str, user_id: str, now: Optional[datetime] = None) -> Notebook:
    """Current audio URL, re-signed first when it expires within five minutes"""
    notebook = require_notebook(db, notebook_id, user_id)
    if notebook.audio_file_path and audio_url_expiring(notebook, now):
        return refresh_audio_url(db, notebook_id, user_id)
    return notebook
