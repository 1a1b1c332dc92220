"""
DOCX Export Tests
=================
"""

from datetime import date
from io import BytesIO
from pathlib import Path
import sys

import pytest
from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from insights_backend import document_generator
from insights_backend.db.models import GeneratedLegalDocument, LegalTemplate
from insights_backend.docx_export import build_legal_docx, export_document, sanitize_filename
from insights_backend.errors import LimitExceededError
from insights_backend.storage import GENERATED_DOCUMENTS_BUCKET, get_storage
from insights_backend.tests.helpers import set_legal_plan

CONTENT = (
    "# POZEW O ZAPŁATĘ\n\n"
    "[PRAWY]Kraków, 01 maja 2025\nSąd Rejonowy dla Krakowa\n\n"
    "Wnoszę o zasądzenie kwoty **5000 zł** wraz z *odsetkami*.\n\n"
    "1. Umowa najmu\n2. Wezwanie do zapłaty\n\n"
    "- dowód przelewu\n- korespondencja e-mail\n\n"
    "[PODPIS]Jan Kowalski"
)


def _paragraphs(data: bytes):
    return [p for p in Document(BytesIO(data)).paragraphs if p.text]


class TestBuildDocx:

    def test_returns_docx_bytes(self):
        data = build_legal_docx(CONTENT, "Pozew o zapłatę", "pozew")
        assert data[:2] == b"PK"

    def test_block_layout(self):
        paragraphs = _paragraphs(build_legal_docx(CONTENT, "Pozew o zapłatę", "pozew"))
        assert [p.text for p in paragraphs] == [
            "POZEW O ZAPŁATĘ",
            "Kraków, 01 maja 2025",
            "Sąd Rejonowy dla Krakowa",
            "Wnoszę o zasądzenie kwoty 5000 zł wraz z odsetkami.",
            "1. Umowa najmu",
            "2. Wezwanie do zapłaty",
            "• dowód przelewu",
            "• korespondencja e-mail",
            "_" * 30,
            "Jan Kowalski",
        ]
        assert paragraphs[0].style.name == "Heading 1"
        assert paragraphs[0].alignment == WD_ALIGN_PARAGRAPH.CENTER
        assert paragraphs[1].alignment == WD_ALIGN_PARAGRAPH.RIGHT
        assert paragraphs[-1].alignment == WD_ALIGN_PARAGRAPH.RIGHT

    def test_inline_emphasis(self):
        paragraph = _paragraphs(build_legal_docx(CONTENT))[3]
        bold = [r.text for r in paragraph.runs if r.bold]
        italic = [r.text for r in paragraph.runs if r.italic]
        assert bold == ["5000 zł"]
        assert italic == ["odsetkami"]

    def test_core_properties(self):
        doc = Document(BytesIO(build_legal_docx("Treść", None, "wniosek")))
        assert doc.core_properties.title == "Dokument prawny"
        assert doc.core_properties.comments == "Wygenerowany dokument typu: wniosek"


class TestSanitizeFilename:

    def test_keeps_polish_letters(self):
        assert sanitize_filename("Pozew o zapłatę", date(2024, 3, 15)) == "pozew_o_zapłatę_2024-03-15.docx"

    def test_default_name(self):
        assert sanitize_filename(None, date(2024, 3, 15)) == "dokument_2024-03-15.docx"

    def test_truncates_long_titles(self):
        name = sanitize_filename("a" * 80, date(2024, 3, 15))
        assert name == "a" * 50 + "_2024-03-15.docx"


class TestExportDocument:

    def test_free_plan_cannot_export(self, db, user):
        with pytest.raises(LimitExceededError):
            export_document(db, user.id, CONTENT, "Pozew")

    def test_export_uploads_and_records_path(self, db, user):
        set_legal_plan(db, user.id, "pro_legal")
        template = LegalTemplate(
            title="Pozew", document_type="pozew", template_content="Treść {{x}}", template_fields=[],
        )
        db.add(template)
        db.commit()
        document = document_generator.save_generated_document(db, user.id, template.id, {"x": "1"})

        result = export_document(
            db, user.id, CONTENT, "Pozew o zapłatę", "pozew", document.id, today=date(2025, 5, 1),
        )

        assert result["success"] is True
        assert result["filename"] == "pozew_o_zapłatę_2025-05-01.docx"
        assert result["filePath"] == f"{user.id}/{document.id}/pozew_o_zapłatę_2025-05-01.docx"
        assert result["downloadUrl"].startswith("http://testserver/api/v1/files/")
        assert get_storage().get(GENERATED_DOCUMENTS_BUCKET, result["filePath"])[:2] == b"PK"

        db.expire_all()
        row = db.query(GeneratedLegalDocument).filter(GeneratedLegalDocument.id == document.id).first()
        assert row.docx_file_path == result["filePath"]

    def test_export_without_document_id(self, db, user):
        set_legal_plan(db, user.id, "business_legal")
        result = export_document(db, user.id, "Treść", "Pismo")
        assert result["filePath"].startswith(f"{user.id}/")
        assert get_storage().exists(GENERATED_DOCUMENTS_BUCKET, result["filePath"])

    def test_export_overwrites_existing_file(self, db, user):
        set_legal_plan(db, user.id, "pro_legal")
        first = export_document(db, user.id, "Wersja 1", "Pismo", document_id="doc-1", today=date(2025, 5, 1))
        second = export_document(db, user.id, "Wersja 2", "Pismo", document_id="doc-1", today=date(2025, 5, 1))
        assert first["filePath"] == second["filePath"]
        data = get_storage().get(GENERATED_DOCUMENTS_BUCKET, second["filePath"])
        assert [p.text for p in _paragraphs(data)] == ["Wersja 2"]
