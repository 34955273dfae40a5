"""
Pytest configuration and shared fixtures for the library server tests

APPROACH: Entities run against FakeDatabase, a stand-in for DatabaseConnection
that records every statement and answers from canned results
- No PostgreSQL needed; the SQL each operation issues is asserted directly
- Canned results are matched by a SQL fragment, so concurrently issued
  queries get their own answers regardless of scheduling order
"""

import sys
from pathlib import Path
from typing import Any, Optional

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config import ServerConfig
from container import EntityContainer


class FakeDatabase:
    """Records (method, sql, params) for each call and returns canned results."""

    def __init__(self):
        self.calls: list[tuple[str, str, list]] = []
        self._responses: list[tuple[str, Optional[str], Any]] = []

    def on(self, fragment: str, result: Any, method: Optional[str] = None) -> "FakeDatabase":
        """
        Answer statements containing `fragment` (first registration wins).
        `result` may be a callable taking the statement's parameters.
        """
        self._responses.append((fragment, method, result))
        return self

    def _answer(self, method: str, sql: str, params: tuple, default: Any) -> Any:
        self.calls.append((method, sql, list(params)))
        for fragment, only_method, result in self._responses:
            if fragment in sql and (only_method is None or only_method == method):
                return result(list(params)) if callable(result) else result
        return default

    async def execute(self, sql, *params, timeout=None):
        return self._answer("execute", sql, params, "OK")

    async def fetch(self, sql, *params, timeout=None):
        return self._answer("fetch", sql, params, [])

    async def fetchrow(self, sql, *params, timeout=None):
        return self._answer("fetchrow", sql, params, None)

    async def fetchval(self, sql, *params, column=0, timeout=None):
        return self._answer("fetchval", sql, params, None)

    async def check_connection(self) -> bool:
        return True

    def statements(self, fragment: str = "") -> list[str]:
        return [sql for _, sql, _ in self.calls if fragment in sql]


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def server_config():
    return ServerConfig(api_prefix="/api", default_limit=100, max_limit=1000, loan_days=21)


@pytest.fixture
def entities(fake_db, server_config):
    return EntityContainer(fake_db, server_config)
