"""
Backend Client Tests

Request encoding and error mapping, exercised against httpx.MockTransport.
"""
import json

import httpx
import pytest

from unexplained_archive.exceptions import (
    ConflictError,
    PermissionDeniedError,
    RemoteServiceError,
)
from unexplained_archive.services.backend_client import (
    BackendClient,
    BackendError,
    encode_filter,
    unwrap_result,
)


def _client(handler) -> BackendClient:
    return BackendClient(
        base_url="https://backend.test",
        api_key="anon-key",
        transport=httpx.MockTransport(handler),
    )


# ==========================================
# Encoding
# ==========================================

@pytest.mark.parametrize("value, expected", [
    ("open", "eq.open"),
    (True, "eq.true"),
    (("in", ["open", "investigating"]), "in.(open,investigating)"),
    (("is", None), "is.null"),
    (("not.is", None), "not.is.null"),
    (("gt", "2026-01-01"), "gt.2026-01-01"),
])
def test_encode_filter(value, expected):
    assert encode_filter(value) == expected


def test_unwrap_result():
    assert unwrap_result({"success": True, "id": 1}) == {"success": True, "id": 1}
    assert unwrap_result([1, 2]) == [1, 2]
    with pytest.raises(ConflictError) as exc:
        unwrap_result({"success": False, "error": "Case already resolved"})
    assert exc.value.message == "Case already resolved"
    with pytest.raises(ConflictError) as exc:
        unwrap_result({"success": False}, "Fallback text")
    assert exc.value.message == "Fallback text"


# ==========================================
# Requests
# ==========================================

@pytest.mark.asyncio
async def test_select_sends_filters_and_user_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["auth"] = request.headers["Authorization"]
        seen["apikey"] = request.headers["apikey"]
        return httpx.Response(200, json=[{"id": "case-1"}])

    backend = _client(handler).as_user("user-token")
    rows = await backend.select("cases", {"status": "open"}, order="created_at.desc", limit=5)

    assert rows == [{"id": "case-1"}]
    assert seen["url"].path == "/rest/v1/cases"
    assert seen["url"].params["status"] == "eq.open"
    assert seen["url"].params["order"] == "created_at.desc"
    assert seen["url"].params["limit"] == "5"
    assert seen["auth"] == "Bearer user-token"
    assert seen["apikey"] == "anon-key"


@pytest.mark.asyncio
async def test_rpc_posts_params():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/rest/v1/rpc/process_case_resolution"
        assert json.loads(request.content) == {"p_case_id": "case-1"}
        return httpx.Response(200, json={"success": True})

    assert await _client(handler).rpc("process_case_resolution", {"p_case_id": "case-1"}) == {"success": True}


@pytest.mark.asyncio
async def test_count_reads_content_range():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "HEAD"
        assert request.headers["Prefer"] == "count=exact"
        return httpx.Response(200, headers={"content-range": "0-9/42"})

    assert await _client(handler).count("case_followers", {"case_id": "case-1"}) == 42


@pytest.mark.asyncio
async def test_invoke_with_token_omits_project_key():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.headers)
        return httpx.Response(200, json={"url": "https://checkout.test/session"})

    data = await _client(handler).invoke("create-checkout", {"amount": 10}, access_token="user-token")

    assert data == {"url": "https://checkout.test/session"}
    assert seen["authorization"] == "Bearer user-token"
    assert "apikey" not in seen


# ==========================================
# Error mapping
# ==========================================

@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_auth_failures_map_to_permission_denied(status):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"message": "JWT expired"})

    with pytest.raises(PermissionDeniedError):
        await _client(handler).select("cases")


@pytest.mark.asyncio
async def test_unique_violation_keeps_pg_code():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"code": "23505", "message": "duplicate key value"})

    with pytest.raises(BackendError) as exc:
        await _client(handler).insert("team_invitations", {"case_id": "case-1"})

    assert exc.value.is_unique_violation
    assert exc.value.backend_message == "duplicate key value"


@pytest.mark.asyncio
async def test_network_failure_is_remote_service_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteServiceError) as exc:
        await _client(handler).rpc("get_case_team")
    assert exc.value.message == "Request failed, please try again."


@pytest.mark.asyncio
async def test_edge_function_error_body_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "Stripe account not connected"})

    with pytest.raises(ConflictError) as exc:
        await _client(handler).invoke("request-withdrawal", {"amount": 20})
    assert exc.value.message == "Stripe account not connected"


@pytest.mark.asyncio
async def test_upload_returns_public_url():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["x-upsert"] == "false"
        assert request.content == b"jpeg-bytes"
        return httpx.Response(200, json={"Key": "evidence/case-1/photo.jpg"})

    url = await _client(handler).upload("evidence", "case-1/photo.jpg", b"jpeg-bytes", "image/jpeg")
    assert url == "https://backend.test/storage/v1/object/public/evidence/case-1/photo.jpg"
