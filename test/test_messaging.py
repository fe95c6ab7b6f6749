import pytest
import requests

from petdash.domain.errors import DeliveryError
from petdash.services import messaging
from petdash.services.messaging import ResendEmailClient, WhatsAppClient


class FakeResponse:
    def __init__(self, status: int = 200, payload: dict | None = None):
        self.status_code = status
        self._payload = payload or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


def test_email_batch_posts_with_bearer_token(monkeypatch):
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append((url, json, headers, timeout))
        return FakeResponse(payload={"data": [{"id": "m1"}, {"id": "m2"}]})

    monkeypatch.setattr(messaging.requests, "post", fake_post)
    msgs = [{"from": "a@b.com", "to": [f"c{i}@d.com"], "subject": "s", "text": "t"} for i in range(2)]

    assert ResendEmailClient("key-123").send_batch(msgs) == 2
    url, payload, headers, timeout = calls[0]
    assert url == "https://api.resend.com/emails/batch"
    assert payload == msgs
    assert headers == {"Authorization": "Bearer key-123"}
    assert timeout == 15


def test_email_batch_is_chunked(monkeypatch):
    sizes = []

    def fake_post(url, json=None, headers=None, timeout=None):
        sizes.append(len(json))
        return FakeResponse(payload={"data": [{} for _ in json]})

    monkeypatch.setattr(messaging.requests, "post", fake_post)
    msgs = [{"from": "a", "to": ["b"], "subject": "s", "text": "t"}] * 150

    assert ResendEmailClient("k").send_batch(msgs) == 150
    assert sizes == [100, 50]


def test_email_http_error_becomes_delivery_error(monkeypatch):
    monkeypatch.setattr(messaging.requests, "post", lambda *a, **k: FakeResponse(status=422))

    with pytest.raises(DeliveryError):
        ResendEmailClient("k").send_batch([{"from": "a", "to": ["b"], "subject": "s", "text": "t"}])


def test_email_without_api_key_is_rejected():
    with pytest.raises(DeliveryError):
        ResendEmailClient(None).send_batch([])


def test_whatsapp_counts_partial_success(monkeypatch):
    def fake_post(url, json=None, headers=None, timeout=None):
        if json["to"] == "bad":
            raise requests.ConnectionError("boom")
        assert url == "https://graph.facebook.com/v19.0/PHONE/messages"
        assert json["text"] == {"body": "hola"}
        return FakeResponse(payload={"messages": [{"id": "w1"}]})

    monkeypatch.setattr(messaging.requests, "post", fake_post)
    client = WhatsAppClient("tok", "PHONE")

    assert client.send_batch([{"to": "111", "body": "hola"}, {"to": "bad", "body": "hola"}]) == 1
    with pytest.raises(DeliveryError):
        client.send_batch([{"to": "bad", "body": "hola"}])
