"""
Tests for the internal challenge endpoints.
"""
import pytest
from fastapi.testclient import TestClient

from challenge_engine import config
from challenge_engine.errors import MalformedDraft
from challenge_engine.main import app

from conftest import FakeGenerator


HEADERS = {"X-Internal-Key": config.INTERNAL_API_KEY}


@pytest.fixture
def client():
    # No context manager: the lifespan (real database and SDK wiring) is skipped
    yield TestClient(app)
    if hasattr(app.state, "orchestrator"):
        del app.state.orchestrator


@pytest.fixture
def orchestrator(make_orchestrator):
    instance = make_orchestrator()
    app.state.orchestrator = instance
    return instance


# =============================================================================
# TEST: AUTHENTICATION
# =============================================================================

class TestInternalKey:

    def test_wrong_key_rejected(self, client, orchestrator):
        response = client.post("/internal/tickets/ticket-1/challenge", headers={"X-Internal-Key": "nope"})
        assert response.status_code == 403

    def test_missing_key_rejected(self, client, orchestrator):
        response = client.post("/internal/tickets/ticket-1/challenge")
        assert response.status_code == 422

    def test_health_is_open(self, client):
        assert client.get("/health").json()["status"] == "healthy"


# =============================================================================
# TEST: SINGLE TICKET
# =============================================================================

class TestChallengeEndpoint:

    def test_challenge_without_body(self, client, orchestrator, storage):
        response = client.post("/internal/tickets/ticket-1/challenge", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["ticket_id"] == "ticket-1"
        assert data["grounds"] == ["generic_challenge"]
        assert data["reused"] is False
        assert data["document_ref"] in storage.objects

    def test_context_in_body(self, client, orchestrator):
        response = client.post(
            "/internal/tickets/ticket-1/challenge",
            headers=HEADERS,
            json={"user_context": "I was delivering a parcel"},
        )
        assert response.json()["grounds"] == ["loading_exemption"]

    def test_reason_in_body(self, client, orchestrator):
        response = client.post(
            "/internal/tickets/ticket-1/challenge",
            headers=HEADERS,
            json={"reason": "ALREADY_PAID"},
        )
        assert response.status_code == 200
        assert response.json()["grounds"] == ["payment_already_made"]

    def test_unknown_reason_is_422(self, client, orchestrator):
        response = client.post(
            "/internal/tickets/ticket-1/challenge",
            headers=HEADERS,
            json={"reason": "PARKED_NICELY"},
        )
        assert response.status_code == 422

    def test_regenerate_flag(self, client, orchestrator):
        first = client.post("/internal/tickets/ticket-1/challenge", headers=HEADERS).json()
        reused = client.post("/internal/tickets/ticket-1/challenge", headers=HEADERS).json()
        fresh = client.post(
            "/internal/tickets/ticket-1/challenge", headers=HEADERS, json={"regenerate": True}
        ).json()

        assert reused["reused"] is True
        assert reused["letter_id"] == first["letter_id"]
        assert fresh["reused"] is False
        assert fresh["letter_id"] != first["letter_id"]

    def test_unknown_ticket_is_404(self, client, orchestrator):
        response = client.post("/internal/tickets/missing/challenge", headers=HEADERS)
        assert response.status_code == 404
        assert response.json()["detail"]["kind"] == "ticket_not_found"

    def test_job_in_progress_is_409(self, client, orchestrator):
        orchestrator.guard.try_acquire("ticket-1")
        response = client.post("/internal/tickets/ticket-1/challenge", headers=HEADERS)
        assert response.status_code == 409
        assert response.json()["detail"]["kind"] == "already_in_progress"

    def test_exhausted_retries_is_502(self, client, make_orchestrator):
        app.state.orchestrator = make_orchestrator(FakeGenerator([MalformedDraft("bad")] * 3))
        response = client.post("/internal/tickets/ticket-1/challenge", headers=HEADERS)
        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["kind"] == "challenge_generation_failed"
        assert detail["attempts"] == 3


# =============================================================================
# TEST: SWEEP AND HISTORY
# =============================================================================

class TestSweepAndHistory:

    def test_sweep_reports_each_outcome(self, client, orchestrator):
        response = client.post(
            "/internal/challenge-sweep",
            headers=HEADERS,
            json={"ticket_ids": ["ticket-1", "missing"]},
        )

        data = response.json()
        assert data["total"] == 2
        assert data["completed"] == 1
        assert data["failed"] == 1
        assert data["results"]["ticket-1"]["status"] == "completed"
        assert data["results"]["missing"]["error"]["kind"] == "ticket_not_found"

    def test_letter_history(self, client, orchestrator):
        client.post("/internal/tickets/ticket-1/challenge", headers=HEADERS)
        client.post("/internal/tickets/ticket-1/challenge", headers=HEADERS, json={"regenerate": True})

        response = client.get("/internal/tickets/ticket-1/letters", headers=HEADERS)

        letters = response.json()["letters"]
        assert len(letters) == 2
        assert [l["is_active"] for l in letters] == [True, False]

    def test_history_for_unknown_ticket(self, client, orchestrator):
        response = client.get("/internal/tickets/missing/letters", headers=HEADERS)
        assert response.status_code == 404
