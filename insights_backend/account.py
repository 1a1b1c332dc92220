"""
Account Deletion
================

1. Collect every stored file the user owns (before rows disappear)
2. Remove them bucket by bucket; a failing bucket is logged and skipped
3. Delete the user; relationship cascades remove all owned rows
"""

import logging
from typing import Any, Dict, List, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .db.models import (
    CaseDocument, GeneratedLegalDocument, LegalCase, Notebook, Source, User,
)
from .errors import InsightsError, NotFoundError
from .storage import (
    AUDIO_BUCKET, GENERATED_DOCUMENTS_BUCKET, SOURCES_BUCKET, Storage, get_storage, group_by_bucket,
)

logger = logging.getLogger(__name__)

ACCOUNT_DELETED_MESSAGE = "Account and all associated data deleted successfully"


class AccountDeletionError(InsightsError):
    status_code = 500


def collect_user_files(db: Session, user_id: str) -> List[Tuple[str, str]]:
    """(bucket, path) for every stored file owned by the user"""
    files: List[Tuple[str, str]] = []

    source_paths = db.query(Source.file_path).join(Notebook).filter(
        Notebook.user_id == user_id,
        Source.file_path.isnot(None),
    ).all()
    files.extend((SOURCES_BUCKET, path) for (path,) in source_paths)

    audio_paths = db.query(Notebook.audio_file_path).filter(
        Notebook.user_id == user_id,
        Notebook.audio_file_path.isnot(None),
    ).all()
    files.extend((AUDIO_BUCKET, path) for (path,) in audio_paths)

    case_paths = db.query(CaseDocument.file_path).join(LegalCase).filter(
        LegalCase.user_id == user_id,
        CaseDocument.file_path.isnot(None),
    ).all()
    files.extend((SOURCES_BUCKET, path) for (path,) in case_paths)

    generated = db.query(GeneratedLegalDocument.docx_file_path, GeneratedLegalDocument.pdf_file_path).filter(
        GeneratedLegalDocument.user_id == user_id,
    ).all()
    for docx_path, pdf_path in generated:
        for path in (docx_path, pdf_path):
            if path:
                files.append((GENERATED_DOCUMENTS_BUCKET, path))

    return [(bucket, path) for bucket, path in files if path]


def _remove_files(storage: Storage, files: List[Tuple[str, str]]) -> None:
    for bucket, paths in group_by_bucket(files).items():
        logger.info(f"Deleting {len(paths)} files from bucket: {bucket}")
        try:
            storage.remove(bucket, paths)
        except Exception as e:
            logger.error(f"Error deleting files from {bucket}: {e}")


def delete_account(db: Session, user_id: str, storage: Storage = None) -> Dict[str, Any]:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User not found")

    logger.info(f"Starting account deletion for user: {user_id}")
    files = collect_user_files(db, user_id)
    logger.info(f"Found {len(files)} files to delete")
    _remove_files(storage or get_storage(), files)

    try:
        db.delete(user)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Error deleting user")
        raise AccountDeletionError("Failed to delete user account", details=str(e))

    logger.info("Successfully deleted user account and all associated data")
    return {
        "success": True,
        "message": ACCOUNT_DELETED_MESSAGE,
        "deletedFiles": len(files),
    }
