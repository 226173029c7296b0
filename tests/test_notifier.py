# tests/test_notifier.py
import pytest
import requests

from service import notifier
from service.notifier import DeliveryFailure, send_text, split_message


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text
        self.reason = "Bad Request" if status_code >= 400 else "OK"

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, responses=None, exc=None):
        self.calls = []
        self.responses = list(responses or [])
        self.exc = exc
        self.closed = False

    def post(self, url, json=None, timeout=None):
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        if self.exc:
            raise self.exc
        if self.responses:
            return self.responses.pop(0)
        return FakeResponse(body={"ok": True, "result": {"message_id": len(self.calls)}})

    def close(self):
        self.closed = True


@pytest.fixture
def live_env(monkeypatch):
    monkeypatch.delenv("JOB_DIGEST_DRY_RUN", raising=False)
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "-100200300")


def test_send_text_posts_to_bot_api(live_env):
    session = FakeSession()
    ids = send_text("💼 Backend Engineer\n🔗 https://x/1", session=session)

    assert ids == [1]
    (call,) = session.calls
    assert call["url"] == "https://api.telegram.org/bot123:abc/sendMessage"
    assert call["json"] == {
        "chat_id": "-100200300",
        "text": "💼 Backend Engineer\n🔗 https://x/1",
        "disable_web_page_preview": True,
    }
    assert session.closed is False  # caller-owned session stays open


def test_api_base_and_chat_override(live_env, monkeypatch):
    monkeypatch.setenv("TELEGRAM_API_BASE", "http://localhost:8081/")
    session = FakeSession()
    send_text("hello", chat_id="42", session=session)

    assert session.calls[0]["url"] == "http://localhost:8081/bot123:abc/sendMessage"
    assert session.calls[0]["json"]["chat_id"] == "42"


def test_rejection_raises_delivery_failure(live_env):
    session = FakeSession(responses=[FakeResponse(400, {"ok": False, "description": "Bad Request: chat not found"})])

    with pytest.raises(DeliveryFailure) as exc_info:
        send_text("hello", session=session)

    assert exc_info.value.status == 400
    assert exc_info.value.description == "Bad Request: chat not found"
    assert "chat not found" in str(exc_info.value)


def test_rate_limit_carries_retry_after(live_env):
    body = {"ok": False, "description": "Too Many Requests: retry after 7", "parameters": {"retry_after": 7}}
    session = FakeSession(responses=[FakeResponse(429, body)])

    with pytest.raises(DeliveryFailure) as exc_info:
        send_text("hello", session=session)

    assert exc_info.value.status == 429
    assert exc_info.value.retry_after == 7
    assert len(session.calls) == 1  # never retried


def test_transport_error_raises_delivery_failure(live_env):
    session = FakeSession(exc=requests.ConnectionError("connection refused"))
    with pytest.raises(DeliveryFailure, match="request failed"):
        send_text("hello", session=session)


def test_missing_credentials(monkeypatch):
    monkeypatch.delenv("JOB_DIGEST_DRY_RUN", raising=False)
    with pytest.raises(DeliveryFailure, match="TELEGRAM_BOT_TOKEN"):
        send_text("hello", session=FakeSession())

    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    with pytest.raises(DeliveryFailure, match="TELEGRAM_CHAT_ID"):
        send_text("hello", session=FakeSession())


def test_empty_text_is_rejected(live_env):
    with pytest.raises(DeliveryFailure):
        send_text("   ", session=FakeSession())


def test_dry_run_sends_nothing():
    session = FakeSession()
    assert send_text("hello", session=session) == []
    assert session.calls == []


def test_long_message_is_split_between_blocks(live_env):
    blocks = [f"💼 Job {i}\n🔗 https://x/{i}" + "." * 900 for i in range(6)]
    text = "\n\n".join(blocks)
    session = FakeSession()

    ids = send_text(text, session=session)

    assert len(ids) == len(session.calls) > 1
    sent_texts = [c["json"]["text"] for c in session.calls]
    assert all(len(t) <= notifier.TELEGRAM_MAX_CHARS for t in sent_texts)
    assert "\n\n".join(sent_texts) == text


def test_split_message_hard_splits_oversize_block():
    chunks = split_message("x" * 10, limit=4)
    assert chunks == ["xxxx", "xxxx", "xx"]
