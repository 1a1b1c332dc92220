"""
Legal Library
=============

Read-only search over regulations (`LegalRegulation`), court rulings
(`LegalRuling`) and document templates (`LegalTemplate`).

All searches return a page envelope:

    {"data": [...], "totalCount": N, "page": P, "pageSize": S}
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import String, cast, or_
from sqlalchemy.orm import Query, Session

from .db.models import LegalRegulation, LegalRuling, LegalTemplate
from .errors import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass
class LibrarySearchFilters:
    query: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    document_type: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    is_active: bool = True
    is_premium: Optional[bool] = None


def _text_search(query: Query, text: Optional[str], columns) -> Query:
    if not text:
        return query
    pattern = f"%{text}%"
    return query.filter(or_(*[column.ilike(pattern) for column in columns]))


def _category_overlap(query: Query, column, categories: List[str]) -> Query:
    """Rows whose JSON category list shares at least one value with `categories`"""
    if not categories:
        return query
    as_text = cast(column, String)
    return query.filter(or_(*[as_text.like(f'%"{category}"%') for category in categories]))


def _date_range(query: Query, column, date_from: Optional[date], date_to: Optional[date]) -> Query:
    if date_from:
        query = query.filter(column >= date_from)
    if date_to:
        query = query.filter(column <= date_to)
    return query


def paginate(query: Query, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
    page = max(1, page)
    page_size = max(1, min(page_size, MAX_PAGE_SIZE))
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * page_size).limit(page_size).all()
    return {"data": rows, "totalCount": total, "page": page, "pageSize": page_size}


# =============================================================================
# SEARCH
# =============================================================================

def search_regulations(db: Session, filters: LibrarySearchFilters, page: int = 1,
                       page_size: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
    query = db.query(LegalRegulation).filter(LegalRegulation.is_active.is_(filters.is_active))
    query = _text_search(query, filters.query, (
        LegalRegulation.title, LegalRegulation.content, LegalRegulation.short_name,
    ))
    query = _category_overlap(query, LegalRegulation.category, filters.categories)
    if filters.document_type:
        query = query.filter(LegalRegulation.document_type == filters.document_type)
    query = _date_range(query, LegalRegulation.publication_date, filters.date_from, filters.date_to)
    query = query.order_by(LegalRegulation.publication_date.desc())
    return paginate(query, page, page_size)


def search_rulings(db: Session, filters: LibrarySearchFilters, page: int = 1,
                   page_size: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
    query = db.query(LegalRuling).filter(LegalRuling.is_active.is_(filters.is_active))
    query = _text_search(query, filters.query, (
        LegalRuling.court_name, LegalRuling.case_number, LegalRuling.summary, LegalRuling.content,
    ))
    query = _category_overlap(query, LegalRuling.category, filters.categories)
    query = _date_range(query, LegalRuling.ruling_date, filters.date_from, filters.date_to)
    query = query.order_by(LegalRuling.ruling_date.desc())
    return paginate(query, page, page_size)


def search_templates(db: Session, filters: LibrarySearchFilters, page: int = 1,
                     page_size: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
    query = db.query(LegalTemplate).filter(LegalTemplate.is_active.is_(filters.is_active))
    query = _text_search(query, filters.query, (LegalTemplate.title, LegalTemplate.description))
    query = _category_overlap(query, LegalTemplate.category, filters.categories)
    if filters.document_type:
        query = query.filter(LegalTemplate.document_type == filters.document_type)
    if filters.is_premium is not None:
        query = query.filter(LegalTemplate.is_premium.is_(filters.is_premium))
    query = query.order_by(LegalTemplate.popularity_score.desc())
    return paginate(query, page, page_size)


def _get(db: Session, model, item_id: str, label: str):
    item = db.query(model).filter(model.id == item_id).first()
    if item is None:
        raise NotFoundError(f"{label} not found")
    return item


def get_regulation(db: Session, regulation_id: str) -> LegalRegulation:
    return _get(db, LegalRegulation, regulation_id, "Regulation")


def get_ruling(db: Session, ruling_id: str) -> LegalRuling:
    return _get(db, LegalRuling, ruling_id, "Ruling")


def get_library_template(db: Session, template_id: str) -> LegalTemplate:
    return _get(db, LegalTemplate, template_id, "Template")
