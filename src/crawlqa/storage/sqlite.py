"""
SQLite discovery store.

Each record is kept as a dataclasses-json document next to the handful of
columns needed for lookups and uniqueness. The unique indexes are what make
enqueue and scenario persistence idempotent across processes that share the
database file.
"""

import logging
import sqlite3
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

from ..core.errors import PersistenceError
from ..core.models import (
    DiscoveredPage,
    InteractionScenario,
    PageEdge,
    QueueItem,
    QueueStatus,
    Run,
    TestCase,
    TestCaseExecution,
)
from .base import DiscoveryStore

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        data TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS queue_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        run_id INTEGER NOT NULL,
        url TEXT NOT NULL,
        depth INTEGER NOT NULL,
        status TEXT NOT NULL,
        data TEXT NOT NULL,
        UNIQUE (run_id, url)
    );

    CREATE TABLE IF NOT EXISTS pages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        run_id INTEGER NOT NULL,
        parent_page_id INTEGER,
        state_identifier TEXT,
        data TEXT NOT NULL,
        UNIQUE (parent_page_id, state_identifier)
    );

    CREATE TABLE IF NOT EXISTS edges (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        run_id INTEGER NOT NULL,
        data TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS scenarios (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        page_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        data TEXT NOT NULL,
        UNIQUE (page_id, name)
    );

    CREATE TABLE IF NOT EXISTS test_cases (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        run_id INTEGER NOT NULL,
        data TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS executions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        test_case_id INTEGER,
        data TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_queue_run_depth ON queue_items(run_id, depth, status);
    CREATE INDEX IF NOT EXISTS idx_pages_run ON pages(run_id);
    CREATE INDEX IF NOT EXISTS idx_test_cases_run ON test_cases(run_id);
"""

# table -> (record class, indexed columns mirrored from the record)
TABLES: Dict[str, Tuple[Type, Sequence[str]]] = {
    "runs": (Run, ()),
    "queue_items": (QueueItem, ("run_id", "url", "depth", "status")),
    "pages": (DiscoveredPage, ("run_id", "parent_page_id", "state_identifier")),
    "edges": (PageEdge, ("run_id",)),
    "scenarios": (InteractionScenario, ("page_id", "name")),
    "test_cases": (TestCase, ("run_id",)),
    "executions": (TestCaseExecution, ("test_case_id",)),
}


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class SqliteStore(DiscoveryStore):
    """SQLite-backed store; pass ":memory:" for a throwaway database."""

    def __init__(self, db_path: str = "crawlqa.db"):
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self._conn.commit()
        logger.debug(f"[SqliteStore] opened {self._db_path}")

    def close(self) -> None:
        self._conn.close()

    # Generic helpers

    def _insert(self, table: str, record, unique: bool = False):
        record_cls, columns = TABLES[table]
        names = list(columns) + ["data"]
        values = [_column_value(getattr(record, c)) for c in columns] + [record.to_json()]
        placeholders = ", ".join("?" for _ in names)

        try:
            with self._lock:
                cursor = self._conn.execute(
                    f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})",
                    values,
                )
                self._conn.commit()
        except sqlite3.IntegrityError:
            if unique:
                return None
            raise PersistenceError(f"Integrity error inserting into {table}")
        except sqlite3.Error as e:
            raise PersistenceError(f"Insert into {table} failed: {e}") from e

        stored = record_cls.from_json(record.to_json())
        stored.id = cursor.lastrowid
        return stored

    def _update(self, table: str, record) -> None:
        _, columns = TABLES[table]
        assignments = ", ".join(f"{c} = ?" for c in list(columns) + ["data"])
        values = [_column_value(getattr(record, c)) for c in columns] + [record.to_json()]

        try:
            with self._lock:
                cursor = self._conn.execute(
                    f"UPDATE {table} SET {assignments} WHERE id = ?", values + [record.id]
                )
                self._conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Update of {table} #{record.id} failed: {e}") from e

        if cursor.rowcount == 0:
            raise PersistenceError(f"Unknown {table} id {record.id}")

    def _select(self, table: str, where: str = "", params: Sequence[Any] = ()) -> List[Any]:
        record_cls, _ = TABLES[table]
        sql = f"SELECT id, data FROM {table}"
        if where:
            sql += f" WHERE {where}"
        sql += " ORDER BY id"

        try:
            with self._lock:
                rows = self._conn.execute(sql, list(params)).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Query on {table} failed: {e}") from e

        records = []
        for row in rows:
            record = record_cls.from_json(row["data"])
            record.id = row["id"]
            records.append(record)
        return records

    def _select_one(self, table: str, record_id: int):
        found = self._select(table, "id = ?", (record_id,))
        return found[0] if found else None

    # Runs

    def create_run(self, run: Run) -> Run:
        return self._insert("runs", run)

    def get_run(self, run_id: int) -> Optional[Run]:
        return self._select_one("runs", run_id)

    def update_run(self, run: Run) -> None:
        self._update("runs", run)

    # Queue

    def add_queue_item(self, item: QueueItem) -> Optional[QueueItem]:
        return self._insert("queue_items", item, unique=True)

    def update_queue_item(self, item: QueueItem) -> None:
        self._update("queue_items", item)

    def list_queue_items(self, run_id: int, status: Optional[QueueStatus] = None,
                         depth: Optional[int] = None) -> List[QueueItem]:
        clauses, params = ["run_id = ?"], [run_id]
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if depth is not None:
            clauses.append("depth = ?")
            params.append(depth)
        return self._select("queue_items", " AND ".join(clauses), params)

    def has_queue_item(self, run_id: int, url: str) -> bool:
        return bool(self._select("queue_items", "run_id = ? AND url = ?", (run_id, url)))

    # Pages and edges

    def add_page(self, page: DiscoveredPage) -> Optional[DiscoveredPage]:
        return self._insert("pages", page, unique=page.is_virtual)

    def update_page(self, page: DiscoveredPage) -> None:
        self._update("pages", page)

    def get_page(self, page_id: int) -> Optional[DiscoveredPage]:
        return self._select_one("pages", page_id)

    def list_pages(self, run_id: int) -> List[DiscoveredPage]:
        return self._select("pages", "run_id = ?", (run_id,))

    def find_virtual_page(self, parent_page_id: int,
                          state_identifier: str) -> Optional[DiscoveredPage]:
        found = self._select(
            "pages", "parent_page_id = ? AND state_identifier = ?",
            (parent_page_id, state_identifier),
        )
        return found[0] if found else None

    def add_edge(self, edge: PageEdge) -> PageEdge:
        return self._insert("edges", edge)

    def list_edges(self, run_id: int) -> List[PageEdge]:
        return self._select("edges", "run_id = ?", (run_id,))

    # Scenarios

    def add_scenario(self, scenario: InteractionScenario) -> Optional[InteractionScenario]:
        return self._insert("scenarios", scenario, unique=True)

    def update_scenario(self, scenario: InteractionScenario) -> None:
        self._update("scenarios", scenario)

    def get_scenario(self, scenario_id: int) -> Optional[InteractionScenario]:
        return self._select_one("scenarios", scenario_id)

    def list_scenarios(self, page_id: int) -> List[InteractionScenario]:
        return self._select("scenarios", "page_id = ?", (page_id,))

    # Test cases and executions

    def add_test_case(self, test_case: TestCase) -> TestCase:
        return self._insert("test_cases", test_case)

    def update_test_case(self, test_case: TestCase) -> None:
        self._update("test_cases", test_case)

    def get_test_case(self, test_case_id: int) -> Optional[TestCase]:
        return self._select_one("test_cases", test_case_id)

    def list_test_cases(self, run_id: int) -> List[TestCase]:
        return self._select("test_cases", "run_id = ?", (run_id,))

    def add_execution(self, execution: TestCaseExecution) -> TestCaseExecution:
        return self._insert("executions", execution)

    def list_executions(self, test_case_id: int) -> List[TestCaseExecution]:
        return self._select("executions", "test_case_id = ?", (test_case_id,))
