"""
Shared fixtures for the InflowHub tests.

MockSupabase mimics the async supabase client closely enough for the
TenantStore: chained filters, embedded organizations on membership
selects, guarded updates, RPC calls, and per-table failure injection.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import pytest

from inflow.config.schema import ReconcilerConfig, RetryPolicy, TenancyConfig
from inflow.integrations.supabase_client import TenantStore
from inflow.tenancy.preferences import MemoryPreferenceStore


# ── Mock Supabase ────────────────────────────────────────────


class MockResult:
    def __init__(self, data: Any):
        self.data = data


class MockQuery:
    """Mock for a PostgREST query builder on one table."""

    def __init__(self, db: "MockSupabase", table: str):
        self._db = db
        self._table = table
        self._op = "select"
        self._columns = "*"
        self._payload: dict = {}
        self._filters: list[Callable[[dict], bool]] = []
        self._limit: Optional[int] = None

    def select(self, columns: str = "*"):
        self._op = "select"
        self._columns = columns
        return self

    def update(self, data: dict):
        self._op = "update"
        self._payload = data
        return self

    def eq(self, col: str, val: Any):
        self._filters.append(lambda r: r.get(col) == val)
        return self

    def is_(self, col: str, val: Any):
        assert val == "null"
        self._filters.append(lambda r: r.get(col) is None)
        return self

    def in_(self, col: str, values: list):
        allowed = set(values)
        self._filters.append(lambda r: r.get(col) in allowed)
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    def _project(self, row: dict) -> dict:
        if self._columns == "id":
            return {"id": row["id"]}
        out = dict(row)
        if "organization:organizations" in self._columns:
            out["organization"] = next(
                (
                    dict(o)
                    for o in self._db.tables["organizations"]
                    if o["id"] == row.get("organization_id")
                ),
                None,
            )
        return out

    async def execute(self):
        self._db.calls.append((self._table, self._op))
        if self._table in self._db.failing:
            raise RuntimeError(f"connection reset on {self._table}")

        rows = [
            r for r in self._db.tables[self._table]
            if all(f(r) for f in self._filters)
        ]

        if self._op == "update":
            for row in rows:
                row.update(self._payload)
            self._db.writes.append((self._table, [r["id"] for r in rows]))
            return MockResult([dict(r) for r in rows])

        if self._limit is not None:
            rows = rows[: self._limit]
        return MockResult([self._project(r) for r in rows])


class MockRPC:
    def __init__(self, db: "MockSupabase", name: str, params: dict):
        self._db = db
        self._name = name
        self._params = params

    async def execute(self):
        self._db.rpc_calls.append((self._name, self._params))
        if self._name in self._db.failing:
            raise RuntimeError(f"rpc {self._name} failed")
        handler = self._db.rpc_handlers.get(self._name)
        data = handler(self._params) if handler else None
        return MockResult(data)


class MockSupabase:
    """Mock supabase AsyncClient backed by in-memory tables."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self.failing: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.writes: list[tuple[str, list[str]]] = []
        self.rpc_calls: list[tuple[str, dict]] = []
        self.rpc_handlers: dict[str, Callable[[dict], Any]] = {}

    def table(self, name: str) -> MockQuery:
        return MockQuery(self, name)

    def rpc(self, name: str, params: dict) -> MockRPC:
        return MockRPC(self, name, params)

    def calls_to(self, table: str, op: str = "select") -> int:
        return sum(1 for t, o in self.calls if t == table and o == op)


# ── Seeding helper ───────────────────────────────────────────


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TenantSeed:
    """Writes realistic rows into a MockSupabase."""

    def __init__(self, db: MockSupabase):
        self.db = db
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    def organization(
        self,
        org_id: str,
        name: str,
        owner_id: str,
        created_days: int = 0,
    ) -> dict:
        row = {
            "id": org_id,
            "name": name,
            "slug": name.lower().replace(" ", "-"),
            "description": None,
            "logo_url": None,
            "owner_id": owner_id,
            "created_at": (BASE_TIME + timedelta(days=created_days)).isoformat(),
            "updated_at": (BASE_TIME + timedelta(days=created_days)).isoformat(),
        }
        self.db.tables["organizations"].append(row)
        return row

    def membership(
        self,
        org_id: str,
        user_id: str,
        role: str = "user",
        status: str = "active",
    ) -> dict:
        row = {
            "id": self._next_id("member"),
            "organization_id": org_id,
            "user_id": user_id,
            "role": role,
            "status": status,
        }
        self.db.tables["organization_members"].append(row)
        return row

    def subscription(self, org_id: str, **fields: Any) -> dict:
        row = {
            "id": self._next_id("sub"),
            "organization_id": org_id,
            "plan_type": "trial",
            "status": "active",
            **fields,
        }
        self.db.tables["organization_subscriptions"].append(row)
        return row

    def record(
        self,
        table: str,
        created_by: str,
        organization_id: Optional[str] = None,
    ) -> dict:
        row = {
            "id": self._next_id(table),
            "organization_id": organization_id,
            "created_by": created_by,
        }
        self.db.tables[table].append(row)
        return row


# ── Fixtures ─────────────────────────────────────────────────


@pytest.fixture
def supabase():
    return MockSupabase()


@pytest.fixture
def store(supabase):
    return TenantStore(supabase)


@pytest.fixture
def seed(supabase):
    return TenantSeed(supabase)


@pytest.fixture
def preferences():
    return MemoryPreferenceStore()


@pytest.fixture
def config():
    return TenancyConfig(
        provisioning_retry=RetryPolicy(max_retries=1, delay_seconds=0),
        reconciler=ReconcilerConfig(delay_seconds=0),
    )
