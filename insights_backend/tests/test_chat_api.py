"""
Unified Chat API Tests
======================

The workflow engine is replaced by a mocked webhook client; answers are
written back through the callback endpoint the way the workflow does it.
"""

import json
from pathlib import Path
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from insights_backend.config import get_settings
from insights_backend.tests.helpers import TEST_WORKFLOW_AUTH, auth_headers_for
from insights_backend.webhook_client import WebhookCallResult

NOTEBOOK_CHAT_URL = "http://workflow.local/webhook/notebook-chat"
LEGAL_CHAT_URL = "http://workflow.local/webhook/legal-chat"


@pytest.fixture
def workflow():
    """Mocked workflow webhook client"""
    client = MagicMock()
    client.post = AsyncMock(return_value=WebhookCallResult(status_code=200, data={"ok": True}))
    with patch("insights_backend.chat_service.get_webhook_client", return_value=client):
        yield client


@pytest.fixture
def notebook_id(client, auth_headers):
    response = client.post("/api/v1/notebooks", json={"title": "Umowy"}, headers=auth_headers)
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def case_id(client, auth_headers):
    response = client.post(
        "/api/v1/legal/cases", json={"title": "Zwrot kaucji", "category": "nieruchomosci"}, headers=auth_headers,
    )
    assert response.status_code == 201
    return response.json()["id"]


def _callback(client, chat_type, body, auth=TEST_WORKFLOW_AUTH):
    headers = {"Authorization": auth} if auth else {}
    return client.post(f"/api/v1/chat/{chat_type}/callback", json=body, headers=headers)


# =============================================================================
# Sending messages
# =============================================================================

class TestSendNotebookMessage:

    def test_forwards_to_notebook_webhook(self, client, auth_headers, notebook_id, workflow):
        response = client.post(
            "/api/v1/chat/notebook",
            json={"session_id": notebook_id, "message": "Co mówi umowa o karach?"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "data": {"ok": True}}

        url, payload, auth = workflow.post.await_args.args
        assert url == NOTEBOOK_CHAT_URL
        assert auth == TEST_WORKFLOW_AUTH
        assert payload["session_id"] == notebook_id
        assert payload["message"] == "Co mówi umowa o karach?"
        assert payload["timestamp"].endswith("Z")

    def test_missing_message(self, client, auth_headers, notebook_id, workflow):
        response = client.post("/api/v1/chat/notebook", json={"session_id": notebook_id}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"].startswith("Missing required fields")
        workflow.post.assert_not_awaited()

    def test_invalid_chat_type(self, client, auth_headers, notebook_id, workflow):
        response = client.post(
            "/api/v1/chat/support", json={"session_id": notebook_id, "message": "hej"}, headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid chat_type: support"}

    def test_foreign_notebook(self, client, notebook_id, workflow):
        other = auth_headers_for(client, email="obcy@example.pl")
        response = client.post(
            "/api/v1/chat/notebook", json={"session_id": notebook_id, "message": "hej"}, headers=other,
        )
        assert response.status_code == 404
        workflow.post.assert_not_awaited()

    def test_requires_authentication(self, client, notebook_id):
        response = client.post("/api/v1/chat/notebook", json={"session_id": notebook_id, "message": "hej"})
        assert response.status_code == 401

    def test_webhook_failure(self, client, auth_headers, notebook_id, workflow):
        workflow.post.return_value = WebhookCallResult(status_code=502, success=False, error="Bad gateway")
        response = client.post(
            "/api/v1/chat/notebook", json={"session_id": notebook_id, "message": "hej"}, headers=auth_headers,
        )
        assert response.status_code == 500
        assert response.json() == {"error": "Webhook responded with status: 502"}

    def test_missing_webhook_url(self, client, auth_headers, notebook_id, workflow, monkeypatch):
        monkeypatch.delenv("NOTEBOOK_CHAT_URL")
        get_settings.cache_clear()
        response = client.post(
            "/api/v1/chat/notebook", json={"session_id": notebook_id, "message": "hej"}, headers=auth_headers,
        )
        assert response.status_code == 500
        assert response.json() == {"error": "NOTEBOOK_CHAT_URL environment variable not set"}


class TestSendLegalMessage:

    def test_payload_defaults_and_case_category(self, client, auth_headers, case_id, workflow):
        response = client.post(
            "/api/v1/chat/legal",
            json={"session_id": case_id, "message": "Czy wynajmujący może zatrzymać kaucję?"},
            headers=auth_headers,
        )
        assert response.status_code == 200

        url, payload, _ = workflow.post.await_args.args
        assert url == LEGAL_CHAT_URL
        assert payload["case_id"] == case_id
        assert payload["categories"] == ["nieruchomosci"]
        assert payload["include_regulations"] is True
        assert payload["include_rulings"] is True
        assert payload["include_templates"] is False
        assert payload["include_case_docs"] is True
        assert payload["context"] == {"language": "pl", "jurisdiction": "PL", "assistant_type": "legal"}

    def test_explicit_options(self, client, auth_headers, case_id, workflow):
        client.post(
            "/api/v1/chat/legal",
            json={
                "session_id": case_id,
                "message": "Wzór wezwania?",
                "categories": ["umowy", "cywilne"],
                "include_rulings": False,
                "include_templates": True,
                "case_context": False,
            },
            headers=auth_headers,
        )
        payload = workflow.post.await_args.args[1]
        assert payload["categories"] == ["umowy", "cywilne"]
        assert payload["include_rulings"] is False
        assert payload["include_templates"] is True
        assert payload["include_case_docs"] is False

    def test_human_message_is_saved(self, client, auth_headers, case_id, workflow):
        client.post("/api/v1/chat/legal", json={"session_id": case_id, "message": "Pytanie"}, headers=auth_headers)

        messages = client.get(f"/api/v1/legal/cases/{case_id}/messages", headers=auth_headers).json()
        assert len(messages) == 1
        assert messages[0]["message"] == {"type": "human", "content": "Pytanie"}
        assert messages[0]["session_id"] == case_id

    def test_foreign_case_is_rejected(self, client, case_id, workflow):
        other = auth_headers_for(client, email="obcy@example.pl")
        response = client.post("/api/v1/chat/legal", json={"session_id": case_id, "message": "hej"}, headers=other)
        assert response.status_code == 404
        assert response.json() == {"error": "Case not found or access denied"}
        workflow.post.assert_not_awaited()


# =============================================================================
# Workflow callback
# =============================================================================

class TestWorkflowCallback:

    def test_rejects_wrong_secret(self, client, notebook_id):
        body = {"session_id": notebook_id, "message": {"type": "ai", "content": "x"}}
        assert _callback(client, "notebook", body, auth="wrong").status_code == 401
        assert _callback(client, "notebook", body, auth=None).status_code == 401

    def test_message_needs_type(self, client, notebook_id):
        response = _callback(client, "notebook", {"session_id": notebook_id, "message": {"content": "x"}})
        assert response.status_code == 400

    def test_notebook_answer_with_citations(self, client, auth_headers, notebook_id):
        source = client.post(
            f"/api/v1/notebooks/{notebook_id}/sources/text",
            json={"title": "Umowa najmu", "content": "§1 Strony\n§2 Kaucja wynosi 3000 zł"},
            headers=auth_headers,
        ).json()
        answer = json.dumps({"output": [
            {"text": "Kaucja wynosi 3000 zł.", "citations": [
                {"chunk_index": 0, "chunk_source_id": source["id"], "chunk_lines_from": 2, "chunk_lines_to": 2},
            ]},
        ]})

        response = _callback(client, "notebook", {
            "session_id": notebook_id, "message": {"type": "ai", "content": answer},
        })
        assert response.status_code == 200
        assert response.json()["success"] is True

        messages = client.get(f"/api/v1/notebooks/{notebook_id}/messages", headers=auth_headers).json()
        content = messages[0]["message"]["content"]
        assert content["segments"] == [{"text": "Kaucja wynosi 3000 zł.", "citation_id": 1}]
        citation = content["citations"][0]
        assert citation["source_id"] == source["id"]
        assert citation["source_title"] == "Umowa najmu"
        assert citation["excerpt"] == "§2 Kaucja wynosi 3000 zł"

    def test_legal_answer_resolves_case_owner(self, client, auth_headers, case_id):
        answer = json.dumps({"output": [
            {"text": "Zgodnie z art. 6 ustawy...", "citations": [
                {"source_type": "regulation", "source_id": "r1", "source_title": "Ustawa o ochronie praw lokatorów",
                 "article": "6"},
            ]},
        ]})
        response = _callback(client, "legal", {
            "session_id": case_id, "message": {"type": "ai", "content": answer}, "sources_used": [{"id": "r1"}],
        })
        assert response.status_code == 200

        messages = client.get(f"/api/v1/legal/cases/{case_id}/messages", headers=auth_headers).json()
        assert messages[0]["user_id"] == client.get("/auth/me", headers=auth_headers).json()["id"]
        assert messages[0]["sources_used"] == [{"id": "r1"}]
        assert messages[0]["message"]["content"]["citations"][0]["article"] == "6"

    def test_legal_callback_for_unknown_case(self, client):
        response = _callback(client, "legal", {"session_id": "missing", "message": {"type": "ai", "content": "x"}})
        assert response.status_code == 400


class TestClearHistory:

    def test_clear_notebook_history(self, client, auth_headers, notebook_id):
        for text in ("a", "b"):
            _callback(client, "notebook", {"session_id": notebook_id, "message": {"type": "human", "content": text}})

        response = client.delete(f"/api/v1/notebooks/{notebook_id}/messages", headers=auth_headers)
        assert response.json() == {"success": True, "deleted": 2}
        assert client.get(f"/api/v1/notebooks/{notebook_id}/messages", headers=auth_headers).json() == []

    def test_clear_legal_history(self, client, auth_headers, case_id, workflow):
        client.post("/api/v1/chat/legal", json={"session_id": case_id, "message": "Pytanie"}, headers=auth_headers)
        response = client.delete(f"/api/v1/legal/cases/{case_id}/messages", headers=auth_headers)
        assert response.json() == {"success": True, "deleted": 1}
