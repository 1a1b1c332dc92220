"""
Notebook API Tests
==================

Notebooks, sources, notes, title/description generation and the audio
overview URL.
"""

from datetime import datetime, timedelta
from pathlib import Path
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from insights_backend.db.models import Notebook
from insights_backend.notebooks import audio_url_expiring, source_type_for_filename
from insights_backend.storage import AUDIO_BUCKET, SOURCES_BUCKET, get_storage
from insights_backend.tests.helpers import auth_headers_for
from insights_backend.webhook_client import WebhookCallResult

API = "/api/v1"


@pytest.fixture
def notebook(client, auth_headers):
    response = client.post(f"{API}/notebooks", json={"title": "Umowa najmu"}, headers=auth_headers)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def workflow():
    webhook = MagicMock()
    webhook.post = AsyncMock(return_value=WebhookCallResult(
        status_code=200, data=[{"output": {"title": "Najem lokalu", "summary": "Analiza umowy najmu"}}],
    ))
    with patch("insights_backend.chat_service.get_webhook_client", return_value=webhook):
        yield webhook


class TestNotebooks:

    def test_create_defaults(self, notebook):
        assert notebook["title"] == "Umowa najmu"
        assert notebook["icon"] == "📝"
        assert notebook["generation_status"] == "pending"

    def test_list_with_source_counts(self, client, auth_headers, notebook):
        client.post(f"{API}/notebooks/{notebook['id']}/sources/text", json={"content": "abc"}, headers=auth_headers)

        listed = client.get(f"{API}/notebooks", headers=auth_headers).json()
        assert [(n["id"], n["sources_count"]) for n in listed] == [(notebook["id"], 1)]

    def test_update(self, client, auth_headers, notebook):
        response = client.patch(f"{API}/notebooks/{notebook['id']}", json={"color": "green"}, headers=auth_headers)
        assert response.json()["color"] == "green"
        assert response.json()["title"] == "Umowa najmu"

    def test_foreign_notebook(self, client, notebook):
        other = auth_headers_for(client, email="obcy@example.pl")
        response = client.get(f"{API}/notebooks/{notebook['id']}", headers=other)
        assert response.status_code == 404
        assert response.json() == {"error": "Notebook not found"}

    def test_delete_removes_source_files(self, client, auth_headers, notebook):
        source = client.post(
            f"{API}/notebooks/{notebook['id']}/sources/upload",
            files={"file": ("umowa.pdf", b"%PDF", "application/pdf")},
            headers=auth_headers,
        ).json()

        response = client.delete(f"{API}/notebooks/{notebook['id']}", headers=auth_headers)
        assert response.json() == {"message": "Notebook deleted successfully", "id": notebook["id"]}
        assert not get_storage().exists(SOURCES_BUCKET, source["file_path"])
        assert client.get(f"{API}/notebooks", headers=auth_headers).json() == []


class TestSources:

    def test_text_source_is_ready(self, client, auth_headers, notebook):
        source = client.post(f"{API}/notebooks/{notebook['id']}/sources/text", json={
            "title": "Notatki", "content": "Czynsz 2000 zł",
        }, headers=auth_headers).json()
        assert source["type"] == "text"
        assert source["processing_status"] == "completed"

    def test_websites_and_youtube_are_pending(self, client, auth_headers, notebook):
        websites = client.post(f"{API}/notebooks/{notebook['id']}/sources/websites", json={
            "urls": ["https://isap.sejm.gov.pl", "  ", "https://orzeczenia.ms.gov.pl"],
        }, headers=auth_headers).json()
        assert [s["url"] for s in websites] == ["https://isap.sejm.gov.pl", "https://orzeczenia.ms.gov.pl"]
        assert {s["processing_status"] for s in websites} == {"pending"}

        video = client.post(f"{API}/notebooks/{notebook['id']}/sources/youtube", json={
            "url": "https://youtu.be/abc",
        }, headers=auth_headers).json()
        assert video["type"] == "youtube"
        assert video["title"] == "https://youtu.be/abc"
        assert video["metadata"] == {"originalUrl": "https://youtu.be/abc"}

    def test_empty_urls(self, client, auth_headers, notebook):
        response = client.post(f"{API}/notebooks/{notebook['id']}/sources/websites", json={"urls": [" "]},
                               headers=auth_headers)
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields: urls"}

    def test_upload(self, client, auth_headers, notebook):
        response = client.post(
            f"{API}/notebooks/{notebook['id']}/sources/upload",
            files={"file": ("nagranie.mp3", b"ID3audio", "audio/mpeg")},
            headers=auth_headers,
        )
        assert response.status_code == 201
        source = response.json()
        assert source["type"] == "audio"
        assert source["processing_status"] == "pending"
        assert source["file_path"] == f"{notebook['id']}/{source['id']}.mp3"
        assert source["file_size"] == len(b"ID3audio")
        assert get_storage().get(SOURCES_BUCKET, source["file_path"]) == b"ID3audio"

    def test_rename_and_delete(self, client, auth_headers, notebook):
        source = client.post(f"{API}/notebooks/{notebook['id']}/sources/text", json={"content": "abc"},
                             headers=auth_headers).json()
        assert source["title"] == "Copied text"

        renamed = client.patch(f"{API}/sources/{source['id']}", json={"title": "Regulamin"}, headers=auth_headers)
        assert renamed.json()["title"] == "Regulamin"
        assert client.get(f"{API}/sources/{source['id']}", headers=auth_headers).json()["title"] == "Regulamin"

        client.delete(f"{API}/sources/{source['id']}", headers=auth_headers)
        assert client.get(f"{API}/notebooks/{notebook['id']}/sources", headers=auth_headers).json() == []
        assert client.get(f"{API}/sources/{source['id']}", headers=auth_headers).status_code == 404

    def test_source_type_for_filename(self):
        assert source_type_for_filename("a.PDF").value == "pdf"
        assert source_type_for_filename("notatki.md").value == "text"
        assert source_type_for_filename("wywiad.m4a").value == "audio"
        assert source_type_for_filename("bez_rozszerzenia").value == "pdf"


class TestNotes:

    def test_crud(self, client, auth_headers, notebook):
        note = client.post(f"{API}/notebooks/{notebook['id']}/notes", json={
            "title": "Kaucja", "content": "Zwrot w ciągu miesiąca",
        }, headers=auth_headers)
        assert note.status_code == 201
        note = note.json()
        assert note["source_type"] == "user"

        updated = client.patch(f"{API}/notes/{note['id']}", json={"content": "Zwrot w 30 dni"},
                               headers=auth_headers).json()
        assert updated["content"] == "Zwrot w 30 dni"

        client.delete(f"{API}/notes/{note['id']}", headers=auth_headers)
        assert client.get(f"{API}/notebooks/{notebook['id']}/notes", headers=auth_headers).json() == []

    def test_foreign_note(self, client, auth_headers, notebook):
        note = client.post(f"{API}/notebooks/{notebook['id']}/notes", json={"title": "X"}, headers=auth_headers).json()
        other = auth_headers_for(client, email="obcy@example.pl")
        assert client.delete(f"{API}/notes/{note['id']}", headers=other).status_code == 404


class TestGenerateContent:

    def test_generation_updates_notebook(self, client, auth_headers, notebook, workflow):
        response = client.post(f"{API}/notebooks/{notebook['id']}/generate", json={
            "sourceType": "pdf", "filePath": "nb/file.pdf",
        }, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["success"] is True

        url, payload, auth = workflow.post.call_args.args
        assert url == "http://workflow.local/webhook/generate"
        assert payload == {"notebookId": notebook["id"], "filePath": "nb/file.pdf",
                           "sourceType": "pdf", "language": "pl"}

        updated = client.get(f"{API}/notebooks/{notebook['id']}", headers=auth_headers).json()
        assert updated["title"] == "Najem lokalu"
        assert updated["description"] == "Analiza umowy najmu"
        assert updated["generation_status"] == "completed"

    def test_generation_failure(self, client, auth_headers, notebook, workflow):
        workflow.post.return_value = WebhookCallResult(status_code=500, success=False, error="boom")

        response = client.post(f"{API}/notebooks/{notebook['id']}/generate", json={"sourceType": "text"},
                               headers=auth_headers)
        assert response.status_code == 500
        assert response.json()["error"] == "Webhook responded with status: 500"

        failed = client.get(f"{API}/notebooks/{notebook['id']}", headers=auth_headers).json()
        assert failed["generation_status"] == "failed"


class TestAudioOverview:

    @pytest.fixture
    def audio_notebook(self, db, notebook):
        row = db.query(Notebook).filter(Notebook.id == notebook["id"]).one()
        row.audio_file_path = f"{notebook['id']}/overview.mp3"
        db.commit()
        get_storage().put(AUDIO_BUCKET, row.audio_file_path, b"mp3-bytes")
        return notebook

    def test_expiry_margin(self):
        now = datetime(2025, 5, 1, 12, 0)
        notebook = Notebook(audio_overview_url="http://x", audio_url_expires_at=now + timedelta(minutes=4))
        assert audio_url_expiring(notebook, now) is True
        notebook.audio_url_expires_at = now + timedelta(minutes=30)
        assert audio_url_expiring(notebook, now) is False
        assert audio_url_expiring(Notebook(), now) is True

    def test_get_signs_missing_url_and_serves_file(self, client, auth_headers, audio_notebook):
        first = client.get(f"{API}/notebooks/{audio_notebook['id']}/audio/refresh", headers=auth_headers).json()
        assert first["audio_overview_url"].startswith("http://testserver/api/v1/files/")
        assert first["audio_url_expires_at"] is not None

        again = client.get(f"{API}/notebooks/{audio_notebook['id']}/audio/refresh", headers=auth_headers).json()
        assert again["audio_overview_url"] == first["audio_overview_url"]

        download = client.get(first["audio_overview_url"].replace("http://testserver", ""))
        assert download.content == b"mp3-bytes"

    def test_refresh_requires_audio(self, client, auth_headers, notebook):
        response = client.post(f"{API}/notebooks/{notebook['id']}/audio/refresh", headers=auth_headers)
        assert response.status_code == 404
        assert response.json() == {"error": "No audio overview for this notebook"}

    def test_refresh(self, client, auth_headers, audio_notebook):
        response = client.post(f"{API}/notebooks/{audio_notebook['id']}/audio/refresh", headers=auth_headers)
        assert response.json()["success"] is True
        assert "/api/v1/files/" in response.json()["audio_overview_url"]
