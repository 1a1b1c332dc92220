"""
Legal Library Import
====================

Bulk-load regulations, rulings and templates from JSON records into the
shared library. Every run writes a `legal_import_logs` row with counts
and per-record errors; a bad record is logged and skipped, never fatal.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from .db.models import LegalImportLog, LegalRegulation, LegalRuling, LegalTemplate

logger = logging.getLogger(__name__)

IMPORT_MODELS = {
    "regulations": LegalRegulation,
    "rulings": LegalRuling,
    "templates": LegalTemplate,
}

DATE_FIELDS = ("publication_date", "effective_date", "ruling_date")


def _coerce_record(model, record: Dict[str, Any]) -> Dict[str, Any]:
    columns = {c.key for c in model.__table__.columns} | {"extra_data"}
    data = {}
    for key, value in record.items():
        if key == "metadata":
            key = "extra_data"
        if key not in columns or key in ("created_at", "updated_at"):
            continue
        if key in DATE_FIELDS and isinstance(value, str):
            value = date.fromisoformat(value[:10])
        data[key] = value
    return data


def import_records(
    db: Session,
    import_type: str,
    records: Iterable[Dict[str, Any]],
    source_url: Optional[str] = None,
    imported_by: Optional[str] = None,
) -> LegalImportLog:
    """Insert library records one by one and return the import log row"""
    model = IMPORT_MODELS.get(import_type)
    if model is None:
        raise ValueError(f"Unknown import type: {import_type}")

    log = LegalImportLog(import_type=import_type, source_url=source_url, imported_by=imported_by)
    db.add(log)
    db.commit()

    imported = 0
    errors: List[Dict[str, Any]] = []
    for index, record in enumerate(records):
        try:
            db.add(model(**_coerce_record(model, record)))
            db.commit()
            imported += 1
        except Exception as e:
            db.rollback()
            logger.warning(f"Record {index} of {import_type} failed: {e}")
            errors.append({"index": index, "error": str(e)})

    log.records_imported = imported
    log.records_failed = len(errors)
    log.error_details = errors or None
    log.completed_at = datetime.utcnow()
    db.commit()

    logger.info(f"Imported {imported} {import_type} ({len(errors)} failed)")
    return log
