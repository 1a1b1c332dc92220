"""
Realtime Chat Channel Tests
===========================

Hub fan-out, dedup by message id, and the websocket endpoint end to end.
"""

import asyncio
import threading
from pathlib import Path
import sys

import pytest
from starlette.websockets import WebSocketDisconnect

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from insights_backend import realtime
from insights_backend.realtime import ChatHub, channel_name
from insights_backend.tests.helpers import TEST_WORKFLOW_AUTH, register


class TestChatHub:

    def test_channel_name(self):
        assert channel_name("legal", "case-1") == "legal:case-1"

    @pytest.mark.asyncio
    async def test_publish_reaches_every_subscriber_of_channel(self):
        hub = ChatHub()
        first = hub.subscribe("notebook:a")
        second = hub.subscribe("notebook:a")
        other = hub.subscribe("notebook:b")

        assert hub.publish("notebook:a", {"id": 1, "message": "x"}) == 2

        assert await asyncio.wait_for(first.get(), 1) == {"id": 1, "message": "x"}
        assert await asyncio.wait_for(second.get(), 1) == {"id": 1, "message": "x"}
        assert other.queue.empty()

    @pytest.mark.asyncio
    async def test_duplicate_ids_are_delivered_once(self):
        hub = ChatHub()
        subscription = hub.subscribe("legal:c")
        hub.publish("legal:c", {"id": 7, "message": "first"})
        hub.publish("legal:c", {"id": 7, "message": "again"})
        hub.publish("legal:c", {"id": 8, "message": "next"})

        assert (await asyncio.wait_for(subscription.get(), 1))["message"] == "first"
        assert (await asyncio.wait_for(subscription.get(), 1))["id"] == 8

    @pytest.mark.asyncio
    async def test_remembered_ids_are_bounded(self, monkeypatch):
        monkeypatch.setattr(realtime, "SEEN_IDS_LIMIT", 2)
        hub = ChatHub()
        subscription = hub.subscribe("notebook:s")
        for message_id in (1, 2, 3):
            hub.publish("notebook:s", {"id": message_id})
            await asyncio.wait_for(subscription.get(), 1)

        assert subscription.seen_ids == {2, 3}
        assert list(subscription.seen_order) == [2, 3]

        hub.publish("notebook:s", {"id": 3})
        hub.publish("notebook:s", {"id": 1})
        assert await asyncio.wait_for(subscription.get(), 1) == {"id": 1}

    @pytest.mark.asyncio
    async def test_publish_from_another_thread(self):
        hub = ChatHub()
        subscription = hub.subscribe("notebook:t")

        thread = threading.Thread(target=hub.publish, args=("notebook:t", {"id": 1}))
        thread.start()
        thread.join()

        assert await asyncio.wait_for(subscription.get(), 1) == {"id": 1}

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        hub = ChatHub()
        subscription = hub.subscribe("notebook:u")
        assert hub.subscriber_count("notebook:u") == 1

        hub.unsubscribe(subscription)
        assert hub.subscriber_count() == 0
        assert hub.publish("notebook:u", {"id": 1}) == 0


class TestChatWebsocket:

    @pytest.fixture
    def session(self, client):
        tokens = register(client)
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}
        notebook = client.post("/api/v1/notebooks", json={"title": "Live"}, headers=headers).json()
        return {"token": tokens["access_token"], "headers": headers, "notebook_id": notebook["id"]}

    def test_receives_workflow_answer(self, client, session):
        notebook_id = session["notebook_id"]
        with client.websocket_connect(f"/ws/chat/notebook/{notebook_id}?token={session['token']}") as ws:
            response = client.post(
                "/api/v1/chat/notebook/callback",
                json={"session_id": notebook_id, "message": {"type": "ai", "content": "Odpowiedź"}},
                headers={"Authorization": TEST_WORKFLOW_AUTH},
            )
            assert response.status_code == 200

            pushed = ws.receive_json()
            assert pushed["session_id"] == notebook_id
            assert pushed["message"] == {"type": "ai", "content": "Odpowiedź"}

    def test_rejects_missing_token(self, client, session):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"/ws/chat/notebook/{session['notebook_id']}"):
                pass
        assert exc.value.code == 4401

    def test_rejects_foreign_session(self, client, session):
        other = register(client, email="obcy@example.pl")
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(
                f"/ws/chat/notebook/{session['notebook_id']}?token={other['access_token']}"
            ):
                pass
        assert exc.value.code == 4401
