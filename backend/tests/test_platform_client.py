from __future__ import annotations

import requests

from app.core.http.platform_client import API_KEY_HEADER, PlatformClient
from app.services.notifications import PostCommitEffect, run_post_commit_effects


class _DummyResponse:
    status_code = 200

    def raise_for_status(self) -> None:
        return None


def test_post_sends_api_key_and_json(monkeypatch):
    captured: dict = {}

    def _fake_post(url, *, json, headers, timeout):
        captured.update(url=url, json=json, headers=headers, timeout=timeout)
        return _DummyResponse()

    monkeypatch.setattr("app.core.http.platform_client.requests.post", _fake_post)

    client = PlatformClient(base_url="https://platform.example/api/", api_key="k-123", timeout=2.5)
    client.notify_role("admin", "new_booking_pending", {"booking_reference": "GH25000002"})

    assert captured["url"] == "https://platform.example/api/notifications/role"
    assert captured["headers"][API_KEY_HEADER] == "k-123"
    assert captured["json"]["event_type"] == "new_booking_pending"
    assert captured["timeout"] == 2.5


def test_post_is_skipped_without_base_url(monkeypatch):
    def _fail(*args, **kwargs):
        raise AssertionError("no HTTP call expected")

    monkeypatch.setattr("app.core.http.platform_client.requests.post", _fail)

    client = PlatformClient(base_url="", api_key=None)

    assert client.enabled is False
    assert client.post("/notifications/role", {}) is None


def test_failed_effect_does_not_stop_the_rest(monkeypatch):
    sent: list[str] = []

    def _flaky_post(url, *, json, headers, timeout):
        if url.endswith("/notifications/customer"):
            raise requests.ConnectionError("platform down")
        sent.append(url)
        return _DummyResponse()

    monkeypatch.setattr("app.core.http.platform_client.requests.post", _flaky_post)

    effects = [
        PostCommitEffect.customer("c-1", "payment_received", {}),
        PostCommitEffect.role("admin", "new_booking_pending", {}),
        PostCommitEffect.commission("b-1"),
    ]
    delivered = run_post_commit_effects(effects, PlatformClient(base_url="http://platform.test"))

    assert delivered == 2
    assert sent == [
        "http://platform.test/notifications/role",
        "http://platform.test/bookings/b-1/commission/recalculate",
    ]


def test_unexpected_effect_error_is_contained(monkeypatch):
    sent: list[str] = []

    def _post(url, *, json, headers, timeout):
        sent.append(url)
        return _DummyResponse()

    monkeypatch.setattr("app.core.http.platform_client.requests.post", _post)

    class _BrokenCustomerClient(PlatformClient):
        def notify_customer(self, customer_id, event_type, data):
            raise ValueError("bad payload")

    effects = [
        PostCommitEffect.customer("c-1", "payment_received", {}),
        PostCommitEffect.role("admin", "new_booking_pending", {}),
    ]
    delivered = run_post_commit_effects(effects, _BrokenCustomerClient(base_url="http://platform.test"))

    assert delivered == 1
    assert sent == ["http://platform.test/notifications/role"]
