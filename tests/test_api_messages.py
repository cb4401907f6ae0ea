"""
Tests for whatsrelay/api/messages.py - text and media sends and the message log.
"""
import asyncio
from pathlib import Path
from unittest.mock import patch

from whatsrelay.config import Settings
from whatsrelay.errors import MessagingClientError
from whatsrelay.models.message_log import DIRECTION_SENT, MessageLog
from whatsrelay.services import event_log


def _log_echo_first(session_factory, message_id: str) -> None:
    """Store the row the session bridge writes for the client's own echo of a send."""
    async def _insert():
        async with session_factory() as db:
            await event_log.append_message_log(
                db,
                MessageLog(id=message_id, direction=DIRECTION_SENT, phone_number="15551234567@c.us", content=""),
            )

    asyncio.run(_insert())


# ---------------------------------------------------------------------------
# POST /api/send-message
# ---------------------------------------------------------------------------


class TestSendMessage:
    def test_not_connected_returns_400(self, client, messaging_client):
        response = client.post("/api/send-message", json={"phoneNumber": "15551234567", "message": "hi"})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "WhatsApp client not connected"}
        assert messaging_client.sent == []

    def test_sends_and_logs(self, connected_client, messaging_client):
        response = connected_client.post(
            "/api/send-message", json={"phoneNumber": "15551234567", "message": "hi there"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        message_id = body["data"]["messageId"]
        assert messaging_client.sent == [("15551234567@c.us", "hi there")]

        logs = connected_client.get("/api/messages/logs").json()["data"]
        assert len(logs) == 1
        assert logs[0]["id"] == message_id
        assert logs[0]["type"] == "sent"
        assert logs[0]["phoneNumber"] == "15551234567"
        assert logs[0]["content"] == "hi there"
        assert logs[0]["status"] == "delivered"
        assert logs[0]["mediaType"] is None
        assert logs[0]["mediaPath"] is None

    def test_missing_fields_return_400(self, connected_client):
        response = connected_client.post("/api/send-message", json={"message": "hi"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert "phoneNumber" in body["error"]

    def test_empty_message_is_rejected(self, connected_client, messaging_client):
        response = connected_client.post("/api/send-message", json={"phoneNumber": "15551234567", "message": ""})
        assert response.status_code == 400
        assert messaging_client.sent == []

    def test_echo_logged_first_does_not_fail_the_send(self, connected_client, session_factory):
        _log_echo_first(session_factory, "true_15551234567@c.us_MSG1")

        response = connected_client.post(
            "/api/send-message", json={"phoneNumber": "15551234567", "message": "hi there"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "data": {"messageId": "true_15551234567@c.us_MSG1"}}
        logs = connected_client.get("/api/messages/logs").json()["data"]
        assert len(logs) == 1
        assert logs[0]["id"] == "true_15551234567@c.us_MSG1"

    def test_client_failure_is_not_logged(self, connected_client, messaging_client):
        async def _fail(chat_id, body):
            raise MessagingClientError("Evolution API POST failed: 500")

        messaging_client.send_message = _fail

        response = connected_client.post("/api/send-message", json={"phoneNumber": "15551234567", "message": "hi"})

        assert response.status_code == 502
        assert response.json()["success"] is False
        assert connected_client.get("/api/messages/logs").json()["data"] == []


# ---------------------------------------------------------------------------
# POST /api/send-media
# ---------------------------------------------------------------------------


class TestSendMedia:
    def test_not_connected_returns_400(self, client):
        response = client.post(
            "/api/send-media",
            data={"phoneNumber": "15551234567"},
            files={"media": ("photo.jpg", b"jpeg", "image/jpeg")},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "WhatsApp client not connected"

    def test_sends_stores_and_logs(self, connected_client, messaging_client, media_storage):
        response = connected_client.post(
            "/api/send-media",
            data={"phoneNumber": "15551234567", "caption": "look at this"},
            files={"media": ("photo.jpg", b"\xff\xd8jpeg", "image/jpeg")},
        )

        assert response.status_code == 200
        chat_id, media, caption = messaging_client.sent_media[0]
        assert chat_id == "15551234567@c.us"
        assert media.mimetype == "image/jpeg"
        assert media.data == b"\xff\xd8jpeg"
        assert media.filename == "photo.jpg"
        assert caption == "look at this"

        log = connected_client.get("/api/messages/logs").json()["data"][0]
        assert log["type"] == "sent"
        assert log["content"] == "look at this"
        assert log["mediaType"] == "image"
        stored = Path(log["mediaPath"])
        assert stored.parent == media_storage.media_dir
        assert stored.name.endswith("-photo.jpg")
        assert stored.read_bytes() == b"\xff\xd8jpeg"

    def test_without_caption_logs_file_name(self, connected_client, messaging_client):
        connected_client.post(
            "/api/send-media",
            data={"phoneNumber": "15551234567"},
            files={"media": ("report.pdf", b"%PDF", "application/pdf")},
        )

        log = connected_client.get("/api/messages/logs").json()["data"][0]
        assert log["content"] == "Media file: report.pdf"
        assert log["mediaType"] == "application"
        assert messaging_client.sent_media[0][2] is None

    def test_missing_file_returns_400(self, connected_client):
        response = connected_client.post("/api/send-media", data={"phoneNumber": "15551234567"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "No media file provided"}

    def test_oversized_file_is_rejected(self, connected_client, messaging_client):
        with patch("whatsrelay.api.messages.get_settings", return_value=Settings(max_upload_bytes=4)):
            response = connected_client.post(
                "/api/send-media",
                data={"phoneNumber": "15551234567"},
                files={"media": ("big.bin", b"0123456789", "application/octet-stream")},
            )

        assert response.status_code == 400
        assert "exceeds" in response.json()["error"]
        assert messaging_client.sent_media == []

    def test_echo_logged_first_does_not_fail_the_send(self, connected_client, session_factory):
        _log_echo_first(session_factory, "true_15551234567@c.us_MSG1")

        response = connected_client.post(
            "/api/send-media",
            data={"phoneNumber": "15551234567"},
            files={"media": ("cat.jpg", b"\xff\xd8jpeg", "image/jpeg")},
        )

        assert response.status_code == 200
        assert response.json()["data"]["messageId"] == "true_15551234567@c.us_MSG1"
        logs = connected_client.get("/api/messages/logs").json()["data"]
        assert len(logs) == 1


# ---------------------------------------------------------------------------
# /api/messages/logs
# ---------------------------------------------------------------------------


class TestMessageLogs:
    def test_empty(self, client):
        assert client.get("/api/messages/logs").json() == {"success": True, "data": []}

    def test_newest_first_with_limit(self, connected_client):
        for text in ("first", "second", "third"):
            connected_client.post("/api/send-message", json={"phoneNumber": "15551234567", "message": text})

        logs = connected_client.get("/api/messages/logs", params={"limit": 2}).json()["data"]

        assert len(logs) == 2
        assert logs[0]["content"] == "third"
        assert logs[1]["content"] == "second"

    def test_limit_out_of_range(self, client):
        response = client.get("/api/messages/logs", params={"limit": 0})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_clear(self, connected_client):
        connected_client.post("/api/send-message", json={"phoneNumber": "15551234567", "message": "hi"})

        response = connected_client.delete("/api/messages/logs")

        assert response.json() == {"success": True, "message": "Message logs cleared"}
        assert connected_client.get("/api/messages/logs").json()["data"] == []
