"""
unexplained_archive/services/backend_client.py
Async client for the managed backend.

Wraps the hosted Postgres REST interface (tables and RPC functions), the
serverless edge functions and the storage buckets behind one httpx client.
The backend is the authority for every piece of state: this client never
caches, never retries and never patches results locally.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import quote

import httpx

from unexplained_archive.config.settings import settings
from unexplained_archive.exceptions import (
    ConflictError,
    PermissionDeniedError,
    RemoteServiceError,
)

logger = logging.getLogger(__name__)

# Postgres / PostgREST error codes the services branch on
UNIQUE_VIOLATION = "23505"
INSUFFICIENT_PRIVILEGE = "42501"
NO_ROWS = "PGRST116"

FilterValue = Union[Any, Tuple[str, Any]]


class BackendError(RemoteServiceError):
    """
    Non-2xx response from the backend.

    `pg_code` holds the Postgres/PostgREST error code when the body has one,
    so callers can detect e.g. unique-constraint violations.
    """

    def __init__(self, http_status: int, pg_code: Optional[str], backend_message: str):
        self.http_status = http_status
        self.pg_code = pg_code
        self.backend_message = backend_message
        super().__init__(details={"http_status": http_status, "pg_code": pg_code})

    @property
    def is_unique_violation(self) -> bool:
        return self.pg_code == UNIQUE_VIOLATION


def unwrap_result(data: Any, default_error: str = "Request failed") -> Any:
    """
    Apply the `{success, error}` convention of backend procedures.

    A `success: false` payload raises ConflictError with the backend's error
    text verbatim. Anything else is returned unchanged.
    """
    if isinstance(data, dict) and "success" in data and not data.get("success"):
        raise ConflictError(data.get("error") or default_error)
    return data


def encode_filter(value: FilterValue) -> str:
    """
    Encode a filter as a PostgREST operator expression.

    Plain values mean equality; tuples are (operator, operand):
    ("in", [..]), ("gt", v), ("gte", v), ("lt", v), ("lte", v), ("neq", v),
    ("is", None), ("not.is", None), ("ilike", pattern).
    """
    if isinstance(value, tuple):
        op, operand = value
        if op == "in":
            return "in.(" + ",".join(str(v) for v in operand) + ")"
        if op in ("is", "not.is"):
            return f"{op}.{'null' if operand is None else str(operand).lower()}"
        return f"{op}.{operand}"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


class BackendClient:
    """
    Thin async wrapper over the managed backend's HTTP interfaces.

    One instance owns one httpx.AsyncClient. `as_user()` returns a view that
    shares the connection pool but authenticates as a specific user, so the
    backend's row-level security applies to that user.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        http: Optional[httpx.AsyncClient] = None,
        access_token: Optional[str] = None,
    ):
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.SUPABASE_ANON_KEY
        self.access_token = access_token
        self._http = http or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    def as_user(self, access_token: Optional[str]) -> "BackendClient":
        return BackendClient(
            base_url=self.base_url,
            api_key=self.api_key,
            http=self._http,
            access_token=access_token,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ================= LOW LEVEL =================

    def _headers(self, access_token: Optional[str] = None, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        token = access_token or self.access_token or self.api_key
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        context: str = "",
    ) -> httpx.Response:
        try:
            response = await self._http.request(method, path, params=params, json=json, content=content, headers=headers)
        except httpx.RequestError as e:
            logger.error(f"Backend request failed ({context or path}): {type(e).__name__}: {str(e)}")
            raise RemoteServiceError() from e

        if response.is_success:
            return response

        pg_code, message = self._parse_error(response)
        logger.error(f"Backend error ({context or path}): status={response.status_code} code={pg_code} message={message}")

        if response.status_code in (401, 403) or pg_code == INSUFFICIENT_PRIVILEGE:
            raise PermissionDeniedError("You do not have permission to perform this action")
        raise BackendError(response.status_code, pg_code, message)

    @staticmethod
    def _parse_error(response: httpx.Response) -> Tuple[Optional[str], str]:
        try:
            body = response.json()
        except ValueError:
            return None, response.text
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("message") or body.get("error") or body.get("msg") or response.text
            return (str(code) if code is not None else None), str(message)
        return None, response.text

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # ================= RPC =================

    async def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Call a database procedure."""
        response = await self._request(
            "POST",
            f"/rest/v1/rpc/{function}",
            json=params or {},
            headers=self._headers(),
            context=f"rpc:{function}",
        )
        return self._decode(response)

    # ================= TABLES =================

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, FilterValue]] = None,
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        or_filter: Optional[str] = None,
        and_filter: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Read rows. `order` uses PostgREST syntax, e.g. "created_at.desc".
        `or_filter` and `and_filter` are raw `or=(...)` / `and=(...)` expressions.
        """
        params: Dict[str, str] = {"select": columns}
        for column, value in (filters or {}).items():
            params[column] = encode_filter(value)
        if or_filter:
            params["or"] = f"({or_filter})"
        if and_filter:
            params["and"] = f"({and_filter})"
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        if offset is not None:
            params["offset"] = str(offset)

        response = await self._request(
            "GET", f"/rest/v1/{table}", params=params, headers=self._headers(), context=f"select:{table}"
        )
        return self._decode(response) or []

    async def select_one(
        self,
        table: str,
        filters: Dict[str, FilterValue],
        columns: str = "*",
        order: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, filters, columns=columns, order=order, limit=1)
        return rows[0] if rows else None

    async def count(self, table: str, filters: Optional[Dict[str, FilterValue]] = None) -> int:
        params: Dict[str, str] = {"select": "id"}
        for column, value in (filters or {}).items():
            params[column] = encode_filter(value)
        response = await self._request(
            "HEAD",
            f"/rest/v1/{table}",
            params=params,
            headers=self._headers(extra={"Prefer": "count=exact"}),
            context=f"count:{table}",
        )
        content_range = response.headers.get("content-range", "")
        total = content_range.rsplit("/", 1)[-1] if "/" in content_range else ""
        return int(total) if total.isdigit() else 0

    async def insert(self, table: str, row: Union[Dict[str, Any], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        response = await self._request(
            "POST",
            f"/rest/v1/{table}",
            json=row,
            headers=self._headers(extra={"Prefer": "return=representation"}),
            context=f"insert:{table}",
        )
        return self._decode(response) or []

    async def update(
        self,
        table: str,
        values: Dict[str, Any],
        filters: Dict[str, FilterValue],
    ) -> List[Dict[str, Any]]:
        params = {column: encode_filter(value) for column, value in filters.items()}
        response = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=params,
            json=values,
            headers=self._headers(extra={"Prefer": "return=representation"}),
            context=f"update:{table}",
        )
        return self._decode(response) or []

    async def delete(self, table: str, filters: Dict[str, FilterValue]) -> None:
        params = {column: encode_filter(value) for column, value in filters.items()}
        await self._request(
            "DELETE", f"/rest/v1/{table}", params=params, headers=self._headers(), context=f"delete:{table}"
        )

    # ================= EDGE FUNCTIONS =================

    async def invoke(self, function: str, body: Dict[str, Any], access_token: Optional[str] = None) -> Any:
        """
        Invoke an edge function.

        When `access_token` is given the call authenticates with the bearer
        token only, without the project key header.
        """
        if access_token:
            headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}
        else:
            headers = self._headers()
        response = await self._request(
            "POST", f"/functions/v1/{function}", json=body, headers=headers, context=f"function:{function}"
        )
        data = self._decode(response)
        if isinstance(data, dict) and data.get("error") and "success" not in data:
            logger.error(f"Edge function {function} returned error: {data['error']}")
            raise ConflictError(str(data["error"]))
        return data

    # ================= STORAGE =================

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        """Upload an object (no overwrite) and return its public URL."""
        await self._request(
            "POST",
            f"/storage/v1/object/{bucket}/{quote(path)}",
            content=content,
            headers=self._headers(extra={
                "Content-Type": content_type or "application/octet-stream",
                "Cache-Control": "3600",
                "x-upsert": "false",
            }),
            context=f"upload:{bucket}",
        )
        return self.public_url(bucket, path)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{quote(path)}"

    # ================= AUTH =================

    async def get_auth_user(self, access_token: str) -> Dict[str, Any]:
        response = await self._request(
            "GET", "/auth/v1/user", headers=self._headers(access_token=access_token), context="auth:user"
        )
        return self._decode(response) or {}
