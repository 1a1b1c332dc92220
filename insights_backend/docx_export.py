"""
DOCX Export
===========

Renders generated legal document text to Word and stores it in the
`generated-documents` bucket.

Content markup (blocks separated by blank lines):

    # Title              centred Heading 1
    ## Section           Heading 2
    ### Sub-section      bold line
    [PRAWY]...           right-aligned lines (place/date, addressee)
    [ŚRODEK]...          centred text
    [PODPIS]...          signature line + signer, right-aligned
    1. item / - item     indented lists
    **bold** *italic*    inline emphasis in ordinary paragraphs
"""

import logging
import re
import uuid
from datetime import date, datetime
from io import BytesIO
from typing import Any, Dict, Optional

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Inches, Pt
from sqlalchemy.orm import Session

from .db.models import GeneratedLegalDocument
from .legal_limits import ensure_can_export_docx
from .storage import GENERATED_DOCUMENTS_BUCKET, get_storage

logger = logging.getLogger(__name__)

DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DEFAULT_TITLE = "Dokument prawny"
FONT_NAME = "Times New Roman"

RIGHT_MARKER = "[PRAWY]"
CENTER_MARKER = "[ŚRODEK]"
SIGNATURE_MARKER = "[PODPIS]"

NUMBERED_ITEM_RE = re.compile(r"^\d+\.\s")
NUMBERED_SPLIT_RE = re.compile(r"\n(?=\d+\.\s)")
NUMBERED_MATCH_RE = re.compile(r"^(\d+)\.\s(.+)", re.DOTALL)
BULLET_SPLIT_RE = re.compile(r"\n(?=[-*]\s)")
BULLET_PREFIX_RE = re.compile(r"^[-*]\s")
EMPHASIS_RE = re.compile(r"(\*\*[^*]+\*\*|\*[^*]+\*)")
FILENAME_UNSAFE_RE = re.compile(r"[^a-z0-9ąćęłńóśźż]", re.IGNORECASE)


def sanitize_filename(title: Optional[str], today: Optional[date] = None) -> str:
    """'Pozew o zapłatę' -> 'pozew_o_zapłatę_2024-03-15.docx'"""
    base = FILENAME_UNSAFE_RE.sub("_", (title or "dokument").lower())[:50]
    return f"{base}_{(today or date.today()).isoformat()}.docx"


def _setup_document(doc, title: str, document_type: Optional[str]) -> None:
    normal = doc.styles["Normal"]
    normal.font.name = FONT_NAME
    normal.font.size = Pt(12)
    normal.paragraph_format.space_after = Pt(10)
    normal.paragraph_format.line_spacing = 1.15

    for style_name, size in (("Heading 1", 14), ("Heading 2", 13)):
        heading = doc.styles[style_name]
        heading.font.name = FONT_NAME
        heading.font.size = Pt(size)
        heading.font.bold = True

    for section in doc.sections:
        section.top_margin = Inches(1)
        section.bottom_margin = Inches(1)
        section.left_margin = Inches(1)
        section.right_margin = Inches(1)

    doc.core_properties.author = "InsightsLM Legal Assistant"
    doc.core_properties.title = title
    doc.core_properties.comments = f"Wygenerowany dokument typu: {document_type or 'pismo'}"


def _add_aligned(doc, text: str, alignment):
    paragraph = doc.add_paragraph()
    paragraph.add_run(text)
    paragraph.alignment = alignment
    return paragraph


def _add_indented(doc, text: str):
    paragraph = doc.add_paragraph()
    paragraph.add_run(text)
    paragraph.paragraph_format.left_indent = Inches(0.5)
    return paragraph


def _add_rich_paragraph(doc, text: str) -> None:
    parts = [part for part in EMPHASIS_RE.split(text) if part]
    if not parts:
        return
    paragraph = doc.add_paragraph()
    paragraph.alignment = WD_ALIGN_PARAGRAPH.JUSTIFY
    for part in parts:
        if part.startswith("**") and part.endswith("**") and len(part) > 4:
            paragraph.add_run(part[2:-2]).bold = True
        elif part.startswith("*") and part.endswith("*") and not part.startswith("**") and len(part) > 2:
            paragraph.add_run(part[1:-1]).italic = True
        else:
            paragraph.add_run(part)


def _add_block(doc, block: str) -> None:
    if block.startswith("# "):
        heading = doc.add_heading(block[2:], level=1)
        heading.alignment = WD_ALIGN_PARAGRAPH.CENTER
    elif block.startswith("## "):
        doc.add_heading(block[3:], level=2)
    elif block.startswith("### "):
        doc.add_paragraph().add_run(block[4:]).bold = True
    elif block.startswith(RIGHT_MARKER):
        for line in block[len(RIGHT_MARKER):].strip().split("\n"):
            _add_aligned(doc, line, WD_ALIGN_PARAGRAPH.RIGHT)
    elif block.startswith(CENTER_MARKER):
        _add_aligned(doc, block[len(CENTER_MARKER):].strip(), WD_ALIGN_PARAGRAPH.CENTER)
    elif block.startswith(SIGNATURE_MARKER):
        spacer = doc.add_paragraph()
        spacer.paragraph_format.space_before = Pt(30)
        _add_aligned(doc, "_" * 30, WD_ALIGN_PARAGRAPH.RIGHT)
        _add_aligned(doc, block[len(SIGNATURE_MARKER):].strip(), WD_ALIGN_PARAGRAPH.RIGHT)
    elif NUMBERED_ITEM_RE.match(block):
        for item in NUMBERED_SPLIT_RE.split(block):
            match = NUMBERED_MATCH_RE.match(item)
            if match:
                _add_indented(doc, f"{match.group(1)}. {match.group(2).strip()}")
    elif block.startswith("- ") or block.startswith("* "):
        for item in BULLET_SPLIT_RE.split(block):
            _add_indented(doc, f"• {BULLET_PREFIX_RE.sub('', item, count=1).strip()}")
    else:
        _add_rich_paragraph(doc, block)


def build_legal_docx(content: str, title: Optional[str] = None, document_type: Optional[str] = None) -> bytes:
    """Render marked-up document text to DOCX bytes"""
    doc = Document()
    _setup_document(doc, title or DEFAULT_TITLE, document_type)

    for block in content.split("\n\n"):
        block = block.strip()
        if block:
            _add_block(doc, block)

    buf = BytesIO()
    doc.save(buf)
    buf.seek(0)
    return buf.read()


def export_document(
    db: Session,
    user_id: str,
    content: str,
    title: Optional[str] = None,
    document_type: Optional[str] = None,
    document_id: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Build the DOCX, upload it and (when `document_id` is given) record its
    path on the generated document row.
    """
    ensure_can_export_docx(db, user_id)

    data = build_legal_docx(content, title, document_type)
    filename = sanitize_filename(title, today)
    file_path = f"{user_id}/{document_id or uuid.uuid4()}/{filename}"

    storage = get_storage()
    storage.put(GENERATED_DOCUMENTS_BUCKET, file_path, data, content_type=DOCX_CONTENT_TYPE, upsert=True)
    download_url = storage.public_url(GENERATED_DOCUMENTS_BUCKET, file_path)

    if document_id:
        updated = db.query(GeneratedLegalDocument).filter(
            GeneratedLegalDocument.id == document_id,
            GeneratedLegalDocument.user_id == user_id,
        ).update(
            {GeneratedLegalDocument.docx_file_path: file_path, GeneratedLegalDocument.updated_at: datetime.utcnow()},
            synchronize_session=False,
        )
        db.commit()
        if not updated:
            logger.error(f"Update error: generated document {document_id} not found for user {user_id}")

    logger.info(f"Document generated successfully: {file_path}")
    return {
        "success": True,
        "downloadUrl": download_url,
        "filePath": file_path,
        "filename": filename,
    }
