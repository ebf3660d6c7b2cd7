"""Tests for the courier HTTP API."""
import asyncio
import random
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from courier.config import CourierConfig
from courier.engine import CourierEngine, build_engine
from courier.models.result import SendResult
from courier.resilience.cache import InMemoryCache
from courier.server.app import create_app
from courier.state.database import DatabaseManager
from courier.state.models.message import MessageStatus


def _build(config: CourierConfig, tmp_path: Path, clock, events, scheduler, sms_sender, email_sender):
    db = DatabaseManager(tmp_path / "api.db")
    engine = build_engine(
        config, db, {"sms": sms_sender, "whatsapp": sms_sender, "email": email_sender},
        cache=InMemoryCache(clock), events=events, clock=clock, scheduler=scheduler, rng=random.Random(3),
    )
    return db, engine


@pytest.fixture
def api(courier_config, tmp_path, clock, events, scheduler, sms_sender, email_sender) -> Iterator[tuple]:
    db, engine = _build(courier_config, tmp_path, clock, events, scheduler, sms_sender, email_sender)
    app = create_app(courier_config, engine=engine, db=db)
    with TestClient(app) as client:
        yield client, engine


@pytest.fixture
def client(api) -> TestClient:
    return api[0]


@pytest.fixture
def engine(api) -> CourierEngine:
    return api[1]


SMS = {"channel": "sms", "to": "+15551234567", "text": "Your code is 1234"}


class TestPostMessages:
    def test_accepts_message(self, client: TestClient, engine: CourierEngine, scheduler) -> None:
        response = client.post("/messages", json=SMS)
        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "queued"
        assert len(data["message_id"]) == 26
        assert scheduler.scheduled == [(data["message_id"], 0.0)]

    def test_same_key_returns_same_id(self, client: TestClient, scheduler) -> None:
        body = {**SMS, "idempotency_key": "otp-42"}
        first = client.post("/messages", json=body).json()["message_id"]
        second = client.post("/messages", json=body).json()["message_id"]
        assert first == second
        assert len(scheduler.scheduled) == 1

    def test_invalid_recipient_is_rejected(self, client: TestClient, scheduler) -> None:
        response = client.post("/messages", json={**SMS, "to": "call me"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_INTENT"
        assert scheduler.scheduled == []

    def test_unknown_channel_is_format_error(self, client: TestClient) -> None:
        response = client.post("/messages", json={**SMS, "channel": "fax"})
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "INVALID_FORMAT"
        assert error["details"]["validation_errors"]

    def test_missing_recipient_is_format_error(self, client: TestClient) -> None:
        response = client.post("/messages", json={"channel": "sms"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_FORMAT"

    def test_oversized_payload(
        self, courier_config, tmp_path, clock, events, scheduler, sms_sender, email_sender
    ) -> None:
        config = CourierConfig(
            retry=courier_config.retry, circuit_breaker=courier_config.circuit_breaker, max_payload_size=400,
        )
        db, engine = _build(config, tmp_path, clock, events, scheduler, sms_sender, email_sender)
        with TestClient(create_app(config, engine=engine, db=db)) as client:
            response = client.post("/messages", json={**SMS, "text": "x" * 1000})
        assert response.status_code == 413
        error = response.json()["error"]
        assert error["code"] == "PAYLOAD_TOO_LARGE"
        assert error["details"]["max_size"] == 400


class TestHealthAndCircuits:
    def test_healthy(self, client: TestClient) -> None:
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["circuits"] == {"sendgrid": "closed", "twilio": "closed"}
        assert data["messages"]["total"] == 0
        assert data["timestamp"].endswith("Z")

    def test_degraded_when_circuit_open(self, client: TestClient, engine: CourierEngine) -> None:
        async def trip() -> None:
            for _ in range(5):
                await engine.breakers.get("twilio").record_failure()
        asyncio.run(trip())

        data = client.get("/health").json()
        assert data["status"] == "degraded"
        assert data["circuits"]["twilio"] == "open"
        assert "twilio" in data["message"]

    def test_message_counts(self, client: TestClient, scheduler) -> None:
        client.post("/messages", json=SMS)
        asyncio.run(scheduler.run_next())
        counts = client.get("/health").json()["messages"]
        assert counts["sent"] == 1
        assert counts["total"] == 1

    def test_list_and_reset_circuit(self, client: TestClient, engine: CourierEngine) -> None:
        async def trip() -> None:
            for _ in range(5):
                await engine.breakers.get("twilio").record_failure()
        asyncio.run(trip())

        circuits = {c["service"]: c for c in client.get("/circuits").json()["circuits"]}
        assert circuits["twilio"]["state"] == "open"
        assert circuits["twilio"]["failure_count"] == 5
        assert circuits["twilio"]["recovery_in_seconds"] == 60.0

        reset = client.post("/circuits/twilio/reset").json()
        assert reset["state"] == "closed"
        assert reset["failure_count"] == 0
        assert client.get("/health").json()["status"] == "healthy"

    def test_reset_unknown_service(self, client: TestClient) -> None:
        response = client.post("/circuits/no-such-provider/reset")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "UNKNOWN_SERVICE"
        services = [c["service"] for c in client.get("/circuits").json()["circuits"]]
        assert services == ["sendgrid", "twilio"]
        assert "no-such-provider" not in client.get("/health").json()["circuits"]


class TestDeadLetterEndpoints:
    def _dead_letter(self, client: TestClient, scheduler, sms_sender, key: str) -> str:
        sms_sender.script(SendResult.failed("INVALID_RECIPIENT", "Unknown number"))
        message_id = client.post("/messages", json={**SMS, "idempotency_key": key}).json()["message_id"]
        asyncio.run(scheduler.run_next())
        return message_id

    def test_list_and_stats(self, client: TestClient, scheduler, sms_sender) -> None:
        message_id = self._dead_letter(client, scheduler, sms_sender, "a")

        listing = client.get("/dead-letters").json()
        assert listing["count"] == 1
        entry = listing["entries"][0]
        assert entry["message_id"] == message_id
        assert entry["error_code"] == "INVALID_RECIPIENT"
        assert entry["attempts"] == 1
        assert client.get("/dead-letters", params={"channel": "email"}).json()["count"] == 0

        stats = client.get("/dead-letters/stats", params={"days": 1}).json()
        assert stats["total"] == 1
        assert stats["by_channel"] == {"sms": 1}
        assert stats["top_error_codes"] == [{"error_code": "INVALID_RECIPIENT", "count": 1}]
        assert stats["attempts_distribution"] == {"1": 1}

    def test_limit_is_bounded(self, client: TestClient) -> None:
        response = client.get("/dead-letters", params={"limit": 0})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_FORMAT"

    def test_replay(self, client: TestClient, engine: CourierEngine, scheduler, sms_sender) -> None:
        message_id = self._dead_letter(client, scheduler, sms_sender, "a")
        entry_id = client.get("/dead-letters").json()["entries"][0]["entry_id"]

        response = client.post(f"/dead-letters/{entry_id}/replay")

        assert response.status_code == 202
        assert response.json()["message_id"] == message_id
        assert client.get("/dead-letters").json()["count"] == 0
        asyncio.run(scheduler.run_next())
        stored = asyncio.run(engine.messages.get(message_id))
        assert stored.status is MessageStatus.SENT

    def test_replay_unknown(self, client: TestClient) -> None:
        response = client.post("/dead-letters/01HUNKNOWN/replay")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "DEAD_LETTER_NOT_FOUND"

    def test_delete(self, client: TestClient, scheduler, sms_sender) -> None:
        self._dead_letter(client, scheduler, sms_sender, "a")
        entry_id = client.get("/dead-letters").json()["entries"][0]["entry_id"]

        assert client.delete(f"/dead-letters/{entry_id}").json() == {"deleted": 1}
        assert client.delete(f"/dead-letters/{entry_id}").status_code == 404
