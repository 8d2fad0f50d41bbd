# Copyright (c) 2025 sprowii
"""Tests for the webhook endpoint."""

import pytest

from groupwarden import config
from groupwarden.web import server

SECRET = "s3cret-token"


@pytest.fixture
def client(monkeypatch):
    processed = []

    async def fake_process(payload):
        processed.append(payload)

    monkeypatch.setattr(config, "WEBHOOK_SECRET", SECRET)
    monkeypatch.setattr(server, "_process", fake_process)
    server.flask_app.config["TESTING"] = True
    with server.flask_app.test_client() as test_client:
        test_client.processed = processed
        yield test_client


class TestWebhook:
    def test_missing_secret_rejected(self, client):
        response = client.post("/webhook", json={"update_id": 1})
        assert response.status_code == 401
        assert client.processed == []

    def test_wrong_secret_rejected(self, client):
        response = client.post(
            "/webhook",
            json={"update_id": 1},
            headers={server.SECRET_HEADER: "nope"},
        )
        assert response.status_code == 401
        assert client.processed == []

    def test_unset_secret_rejects_everything(self, client, monkeypatch):
        monkeypatch.setattr(config, "WEBHOOK_SECRET", None)
        response = client.post("/webhook", json={"update_id": 1}, headers={server.SECRET_HEADER: ""})
        assert response.status_code == 401

    def test_valid_update_processed(self, client):
        response = client.post(
            "/webhook",
            json={"update_id": 7},
            headers={server.SECRET_HEADER: SECRET},
        )
        assert response.status_code == 200
        assert client.processed == [{"update_id": 7}]

    def test_invalid_body(self, client):
        response = client.post("/webhook", data="garbage", headers={server.SECRET_HEADER: SECRET})
        assert response.status_code == 400

    def test_processing_error_returns_500(self, client, monkeypatch):
        async def failing(payload):
            raise RuntimeError("boom")

        monkeypatch.setattr(server, "_process", failing)
        response = client.post("/webhook", json={"update_id": 1}, headers={server.SECRET_HEADER: SECRET})
        assert response.status_code == 500


class TestHealth:
    def test_home(self, client):
        assert client.get("/").status_code == 200
