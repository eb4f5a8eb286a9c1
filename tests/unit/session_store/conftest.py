from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import pytest

from src.session_store import expiry
from src.session_store.store import PGSessionStore


class FakeSessionDatabase:
    """In-memory stand-in for a query client exposing ``any(sql, params)``.

    Understands the statements the session store issues against one table.
    """

    def __init__(self, *, table_exists: bool = True, delay: float = 0.0) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.table_exists = table_exists
        self.delay = delay
        self.statements: list[tuple[str, list[Any]]] = []
        self._failures: list[tuple[str, Exception]] = []

    def fail_next(self, prefix: str, error: Exception) -> None:
        self._failures.append((prefix, error))

    def count(self, prefix: str) -> int:
        return sum(1 for sql, _ in self.statements if _normalise(sql).startswith(prefix))

    async def any(self, sql: str, params: list[Any]) -> list[dict[str, Any]]:
        self.statements.append((sql, list(params)))
        if self.delay:
            await asyncio.sleep(self.delay)
        text = _normalise(sql)
        for index, (prefix, error) in enumerate(self._failures):
            if text.startswith(prefix):
                del self._failures[index]
                raise error

        if text.startswith("SELECT to_regclass"):
            return [{"to_regclass": params[0] if self.table_exists else None}]
        if text.startswith("CREATE TABLE"):
            self.table_exists = True
            return []
        if not self.table_exists:
            raise RuntimeError('relation "session" does not exist')

        if text.startswith("SELECT COUNT"):
            return [{"count": len(self.rows)}]
        if text.startswith("SELECT sess"):
            sid, now = params
            row = self.rows.get(sid)
            if row is None or row["expire"] < now:
                return []
            return [{"sess": row["sess"]}]
        if text.startswith("INSERT INTO") and "ON CONFLICT" in text:
            sess, expire, sid = params
            self.rows[sid] = {"sess": sess, "expire": expire}
            return [{"sid": sid}]
        if text.startswith("INSERT INTO"):
            sess, expire, sid, _ = params
            if sid not in self.rows:
                self.rows[sid] = {"sess": sess, "expire": expire}
            return []
        if text.startswith("UPDATE") and "SET sess" in text:
            sess, expire, sid = params
            if sid not in self.rows:
                return []
            self.rows[sid] = {"sess": sess, "expire": expire}
            return [{"sid": sid}]
        if text.startswith("UPDATE"):
            expire, sid = params
            if sid not in self.rows:
                return []
            self.rows[sid]["expire"] = expire
            return [{"sid": sid}]
        if text.startswith("DELETE") and "WHERE sid" in text:
            self.rows.pop(params[0], None)
            return []
        if text.startswith("DELETE") and "WHERE expire" in text:
            (now,) = params
            for sid in [sid for sid, row in self.rows.items() if row["expire"] < now]:
                del self.rows[sid]
            return []
        raise AssertionError(f"Unexpected statement: {sql}")


@dataclass
class FakeClock:
    now: float = 1_700_000_000.0

    def time(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _normalise(sql: str) -> str:
    return " ".join(sql.split())


@pytest.fixture
def database() -> FakeSessionDatabase:
    return FakeSessionDatabase()


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(expiry, "time", fake)
    return fake


@pytest.fixture
def make_store(database):
    def _make_store(client: Optional[Any] = None, **options: Any) -> PGSessionStore:
        options.setdefault("prune_session_interval", False)
        return PGSessionStore(query_client=client or database, **options)

    return _make_store


@pytest.fixture
def make_database():
    return FakeSessionDatabase
