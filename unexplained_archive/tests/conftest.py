"""
Shared fixtures: an in-memory stand-in for the managed backend and the
sessions of the usual actors (submitter, investigators, admin).

FakeBackend records every call so tests can assert that a refused action
never reached the backend.
"""
import itertools
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from unexplained_archive.services.case_lifecycle_service import CaseLifecycleService
from unexplained_archive.session import Session

SUBMITTER_ID = "user-submitter"
INVESTIGATOR_ID = "user-investigator"
SECOND_INVESTIGATOR_ID = "user-investigator-2"
THIRD_INVESTIGATOR_ID = "user-investigator-3"
ADMIN_ID = "user-admin"

# Calls that change backend state
WRITE_KINDS = ("rpc", "insert", "update", "delete", "invoke", "upload")


def _matches(row: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    for column, cond in (filters or {}).items():
        value = row.get(column)
        if isinstance(cond, tuple):
            op, operand = cond
            if op == "in":
                ok = value in operand
            elif op == "not.in":
                ok = str(value) not in operand.strip("()").split(",")
            elif op == "is":
                ok = value is None if operand is None else value == operand
            elif op == "not.is":
                ok = value is not None if operand is None else value != operand
            elif op == "neq":
                ok = value != operand
            elif op == "gt":
                ok = value is not None and value > operand
            elif op == "gte":
                ok = value is not None and value >= operand
            elif op == "lt":
                ok = value is not None and value < operand
            elif op == "lte":
                ok = value is not None and value <= operand
            else:
                raise AssertionError(f"FakeBackend does not support operator {op!r}")
        else:
            ok = value == cond
        if not ok:
            return False
    return True


class FakeBackend:
    """
    Tables are lists of dict rows. RPC and edge-function results come from
    handlers: either a value or a callable taking the params. A handler that
    raises makes the call raise.
    """

    base_url = "https://backend.test"

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.rpc_handlers: Dict[str, Any] = {}
        self.function_handlers: Dict[str, Any] = {}
        self.calls: List[Tuple[str, str, Any]] = []
        self._ids = itertools.count(1)

    # ---- helpers for tests ----

    def seed(self, table: str, *rows: Dict[str, Any]) -> None:
        for row in rows:
            self.tables[table].append(dict(row))

    def row(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self.tables[table] if r.get("id") == row_id), None)

    def calls_to(self, kind: str, name: Optional[str] = None) -> List[Tuple[str, str, Any]]:
        return [c for c in self.calls if c[0] == kind and (name is None or c[1] == name)]

    def writes(self) -> List[Tuple[str, str, Any]]:
        return [c for c in self.calls if c[0] in WRITE_KINDS]

    @staticmethod
    def _dispatch(handlers: Dict[str, Any], name: str, params: Dict[str, Any]) -> Any:
        handler = handlers.get(name)
        if callable(handler):
            return handler(params)
        return handler

    # ---- BackendClient interface ----

    def as_user(self, access_token: Optional[str]) -> "FakeBackend":
        return self

    async def aclose(self) -> None:
        pass

    async def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        params = params or {}
        self.calls.append(("rpc", function, params))
        return self._dispatch(self.rpc_handlers, function, params)

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        or_filter: Optional[str] = None,
        and_filter: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        self.calls.append(("select", table, filters or {}))
        rows = [dict(r) for r in self.tables[table] if _matches(r, filters)]
        if order:
            column, _, direction = order.partition(".")
            present = [r for r in rows if r.get(column) is not None]
            missing = [r for r in rows if r.get(column) is None]
            present.sort(key=lambda r: r[column], reverse=direction == "desc")
            rows = present + missing
        start = offset or 0
        rows = rows[start:]
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def select_one(
        self,
        table: str,
        filters: Dict[str, Any],
        columns: str = "*",
        order: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, filters, columns=columns, order=order, limit=1)
        return rows[0] if rows else None

    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        self.calls.append(("count", table, filters or {}))
        return sum(1 for r in self.tables[table] if _matches(r, filters))

    async def insert(self, table: str, row: Any) -> List[Dict[str, Any]]:
        self.calls.append(("insert", table, row))
        rows = row if isinstance(row, list) else [row]
        created = []
        for r in rows:
            stored = dict(r)
            stored.setdefault("id", f"{table}-{next(self._ids)}")
            self.tables[table].append(stored)
            created.append(dict(stored))
        return created

    async def update(self, table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        self.calls.append(("update", table, {"values": values, "filters": filters}))
        updated = []
        for r in self.tables[table]:
            if _matches(r, filters):
                r.update(values)
                updated.append(dict(r))
        return updated

    async def delete(self, table: str, filters: Dict[str, Any]) -> None:
        self.calls.append(("delete", table, filters))
        self.tables[table] = [r for r in self.tables[table] if not _matches(r, filters)]

    async def invoke(self, function: str, body: Dict[str, Any], access_token: Optional[str] = None) -> Any:
        self.calls.append(("invoke", function, {"body": body, "access_token": access_token}))
        return self._dispatch(self.function_handlers, function, body)

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        self.calls.append(("upload", bucket, {"path": path, "size": len(content), "content_type": content_type}))
        return self.public_url(bucket, path)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{path}"


def case_row(**overrides) -> Dict[str, Any]:
    row = {
        "id": "case-1",
        "title": "Lights over the marsh",
        "description": "Three amber lights hovering for ten minutes.",
        "category": "UFO",
        "location": "Tartu, Estonia",
        "user_id": SUBMITTER_ID,
        "assigned_investigator_id": None,
        "status": "open",
        "reward_amount": "100.00",
        "evidence_files": [],
        "created_at": "2026-03-01T12:00:00+00:00",
    }
    row.update(overrides)
    return row


def set_case_status(backend: FakeBackend, case_id: str, status: str) -> Callable[[Dict[str, Any]], Dict[str, Any]]:
    """RPC handler that moves the case to `status` and reports success."""
    def handler(params: Dict[str, Any]) -> Dict[str, Any]:
        backend.row("cases", case_id)["status"] = status
        return {"success": True}
    return handler


# ==========================================
# Fixtures
# ==========================================

@pytest.fixture(autouse=True)
def clear_in_flight():
    CaseLifecycleService._in_flight.clear()
    yield
    CaseLifecycleService._in_flight.clear()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def submitter() -> Session:
    return Session(user_id=SUBMITTER_ID, role="user", access_token="token-submitter", username="witness")


@pytest.fixture
def investigator() -> Session:
    return Session(
        user_id=INVESTIGATOR_ID,
        role="investigator",
        investigator_status="approved",
        access_token="token-investigator",
        username="mulder",
    )


@pytest.fixture
def second_investigator() -> Session:
    return Session(
        user_id=SECOND_INVESTIGATOR_ID,
        role="investigator",
        investigator_status="approved",
        access_token="token-investigator-2",
        username="scully",
    )


@pytest.fixture
def pending_investigator() -> Session:
    return Session(
        user_id="user-pending",
        role="investigator",
        investigator_status="pending",
        access_token="token-pending",
    )


@pytest.fixture
def admin() -> Session:
    return Session(user_id=ADMIN_ID, role="admin", access_token="token-admin", username="archivist")
