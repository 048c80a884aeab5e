"""
HTTP Route Tests

Drives the FastAPI app in-process over httpx's ASGI transport with the
FakeBackend installed as the application backend.
"""
import httpx
import pytest
import pytest_asyncio

from unexplained_archive.main import app
from unexplained_archive.rate_limit import limiter
from unexplained_archive.session import get_session

from conftest import INVESTIGATOR_ID, case_row


@pytest_asyncio.fixture
async def client(backend):
    app.state.backend = backend
    limiter.reset()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()
    app.state.backend = None


def _login(session):
    app.dependency_overrides[get_session] = lambda: session


# ==========================================
# Health
# ==========================================

@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert "FEATURE_TEAMS" in body["features"]


# ==========================================
# Errors
# ==========================================

@pytest.mark.asyncio
async def test_guest_mutation_gets_401_envelope(client, backend):
    backend.seed("cases", case_row())

    response = await client.post("/api/cases/case-1/assign")

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": "Unauthorized",
        "message": "Please log in to continue",
        "code": "AUTH_REQUIRED",
    }
    assert backend.writes() == []


@pytest.mark.asyncio
async def test_missing_case_is_404(client):
    response = await client.get("/api/cases/nope")
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_invalid_body_is_422(client, submitter):
    _login(submitter)
    response = await client.post("/api/wallet/withdraw", json={"amount": -5})
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


# ==========================================
# Case lifecycle
# ==========================================

@pytest.mark.asyncio
async def test_list_cases(client, backend):
    backend.seed("cases", case_row(), case_row(id="case-2", status="resolved"))

    response = await client.get("/api/cases", params={"status": "OPEN"})

    assert response.status_code == 200
    assert [c["id"] for c in response.json()] == ["case-1"]


@pytest.mark.asyncio
async def test_assign_route(client, backend, investigator):
    backend.seed("cases", case_row())
    _login(investigator)

    response = await client.post("/api/cases/case-1/assign")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Case assigned to you!"
    assert body["case"]["status"] == "INVESTIGATING"
    assert backend.row("cases", "case-1")["assigned_investigator_id"] == INVESTIGATOR_ID


@pytest.mark.asyncio
async def test_unapproved_assign_is_403(client, backend, pending_investigator):
    backend.seed("cases", case_row())
    _login(pending_investigator)

    response = await client.post("/api/cases/case-1/assign")

    assert response.status_code == 403
    assert "approved by administrators" in response.json()["message"]
    assert backend.writes() == []


@pytest.mark.asyncio
async def test_vote_on_open_case_is_409(client, backend, submitter):
    backend.seed("cases", case_row())
    _login(submitter)

    response = await client.post("/api/cases/case-1/vote", json={"agree": True})

    assert response.status_code == 409
    assert response.json()["code"] == "STATE_TRANSITION_INVALID"


# ==========================================
# Export
# ==========================================

@pytest.mark.asyncio
async def test_pdf_export(client, backend):
    backend.seed("cases", case_row(status="resolved"))

    response = await client.get("/api/cases/case-1/export")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"] == 'attachment; filename="case-case-1.pdf"'
    assert response.content.startswith(b"%PDF")


@pytest.mark.asyncio
async def test_text_export(client, backend):
    backend.seed("cases", case_row())

    response = await client.get("/api/cases/case-1/export", params={"format": "text"})

    assert response.status_code == 200
    assert "=== CASE REPORT ===" in response.text
    assert "Lights over the marsh" in response.text


# ==========================================
# Payments
# ==========================================

@pytest.mark.asyncio
async def test_payment_return_reloads_wallet(client, backend, submitter):
    backend.seed("wallets", {"id": "wallet-1", "user_id": submitter.user_id, "balance": "42.00"})
    _login(submitter)

    response = await client.get("/api/payments/return", params={"type": "deposit", "amount": "1000"})

    assert response.status_code == 200
    body = response.json()
    assert body["wallet"]["balance"] == "42.00"
    assert body["wallet"]["message"] == "Deposit received! Your wallet will update shortly."


# ==========================================
# Translation
# ==========================================

@pytest.mark.asyncio
async def test_detect_language_served_by_translation_router(client, submitter):
    _login(submitter)

    response = await client.post("/api/translation/detect-language", json={"text": "   "})

    assert response.status_code == 200
    assert response.json() == {"language": "en"}


@pytest.mark.asyncio
async def test_translation_not_under_ai_prefix(client, submitter):
    _login(submitter)

    response = await client.post("/api/ai/detect-language", json={"text": "hello"})

    assert response.status_code == 404
