"""
Configuración de fixtures para pytest.

- FakeEngine: imita el AsyncEngine lo justo para ejecutar el SQL dinámico
  de SchemaManager / RecordRepository y guardar las sentencias emitidas.
- FakeSyncStore: ISyncStore en memoria para los casos de uso.
- FakeFlexibee: origen en memoria con la misma interfaz que FlexibeeClient.
- db_session_factory: SQLite en memoria (aiosqlite) para los modelos ORM.
"""
import asyncio
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from flexisync.domain.entities.evidence import CleanupRecord, FieldDescriptor, SyncCheckpoint
from flexisync.domain.repositories.sync_store import ISyncStore
from flexisync.infrastructure.database import models  # noqa: F401  (registra tablas en Base)
from flexisync.infrastructure.database.session import Base
from flexisync.infrastructure.flexibee.pagination import PageIterator
from flexisync.infrastructure.flexibee.types import FetchOptions, Page
from flexisync.shared.exceptions.sync import StoreError


# URL de base de datos de prueba
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_CREATE_RE = re.compile(r'CREATE TABLE IF NOT EXISTS "([^"]+)"')
_ALTER_RE = re.compile(r'ALTER TABLE "([^"]+)" ADD COLUMN IF NOT EXISTS "([^"]+)" (\w+)')
_INSERT_RE = re.compile(r'INSERT INTO "([^"]+)"')
_DELETE_RE = re.compile(r'DELETE FROM "([^"]+)"')


def _db_error(message: str) -> OperationalError:
    return OperationalError(message, {}, Exception(message))


class FakeResult:
    def __init__(self, rows: Optional[List[tuple]] = None, rowcount: int = 0) -> None:
        self._rows = rows or []
        self.rowcount = rowcount

    def all(self) -> List[tuple]:
        return list(self._rows)


class FakeConnection:
    def __init__(self, engine: "FakeEngine") -> None:
        self._engine = engine

    @asynccontextmanager
    async def begin(self):
        yield self

    async def execute(self, statement: Any, params: Optional[Dict[str, Any]] = None) -> FakeResult:
        return self._engine.handle(str(statement), dict(params or {}))


class FakeEngine:
    """Motor PostgreSQL simulado: tablas como dicts, SQL interpretado por regex."""

    def __init__(self) -> None:
        self.columns: Dict[str, Dict[str, str]] = {}
        self.rows: Dict[str, Dict[Any, Dict[str, Any]]] = {}
        self.statements: List[str] = []
        self.fail_columns: set = set()
        self.fail_ids: set = set()
        self.fail_all = False
        self.now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    @asynccontextmanager
    async def begin(self):
        yield FakeConnection(self)

    @asynccontextmanager
    async def connect(self):
        yield FakeConnection(self)

    def statements_like(self, prefix: str) -> List[str]:
        return [s for s in self.statements if s.strip().startswith(prefix)]

    def add_row(self, table: str, pk: Any, synced_at: datetime) -> None:
        self.rows.setdefault(table, {})[pk] = {"pk": pk, "synced_at": synced_at}

    def handle(self, sql: str, params: Dict[str, Any]) -> FakeResult:
        self.statements.append(sql.strip())
        if self.fail_all:
            raise _db_error("connection refused")

        if "information_schema.columns" in sql:
            table = params["table"]
            return FakeResult(rows=list(self.columns.get(table, {}).items()))

        match = _CREATE_RE.search(sql)
        if match:
            table = match.group(1)
            if table not in self.columns:
                self.columns[table] = {
                    "id": "bigint",
                    "raw_data": "jsonb",
                    "synced_at": "timestamp with time zone",
                }
                self.rows[table] = {}
            return FakeResult()

        match = _ALTER_RE.search(sql)
        if match:
            table, column, pg_type = match.groups()
            if column in self.fail_columns:
                raise _db_error(f"cannot add column {column}")
            self.columns[table].setdefault(column, pg_type.lower())
            return FakeResult()

        match = _INSERT_RE.search(sql)
        if match:
            table = match.group(1)
            if params["pk"] in self.fail_ids:
                raise _db_error(f"bad record {params['pk']}")
            self.rows.setdefault(table, {})[params["pk"]] = dict(params, synced_at=self.now)
            return FakeResult(rowcount=1)

        match = _DELETE_RE.search(sql)
        if match and "ctid" in sql:
            table = match.group(1)
            old = [pk for pk, row in self.rows.get(table, {}).items() if row["synced_at"] < params["cutoff"]]
            victims = old[: params["limit"]]
            for pk in victims:
                del self.rows[table][pk]
            return FakeResult(rowcount=len(victims))
        if match:
            table = match.group(1)
            victims = [pk for pk in params["ids"] if pk in self.rows.get(table, {})]
            for pk in victims:
                del self.rows[table][pk]
            return FakeResult(rowcount=len(victims))

        raise AssertionError(f"SQL no soportado por FakeEngine: {sql}")


class FakeSyncStore(ISyncStore):
    """ISyncStore en memoria."""

    def __init__(self) -> None:
        self.checkpoints: Dict[str, SyncCheckpoint] = {}
        self.tables: Dict[str, Dict[Any, dict]] = {}
        self.upsert_calls: List[tuple] = []
        self.cleanup_calls: List[tuple] = []
        self.cleanup_log: List[CleanupRecord] = []
        self.cleanup_results: Dict[str, int] = {}
        self.fail_upsert_on_call: Optional[int] = None
        self.fail_cleanup_for: set = set()
        self.fail_log_cleanup = False
        self.fail_set_checkpoint = False

    async def get_checkpoint(self, evidence: str) -> Optional[SyncCheckpoint]:
        return self.checkpoints.get(evidence)

    async def set_checkpoint(self, checkpoint: SyncCheckpoint) -> None:
        if self.fail_set_checkpoint:
            raise StoreError("sync_state no disponible")
        self.checkpoints[checkpoint.evidence] = checkpoint

    async def upsert_records(self, table: str, records, primary_key: str) -> int:
        self.upsert_calls.append((table, len(records)))
        if self.fail_upsert_on_call == len(self.upsert_calls):
            raise StoreError("upsert falló", table=table)
        target = self.tables.setdefault(table, {})
        for record in records:
            target[record[primary_key]] = record
        return len(records)

    async def cleanup_older_than(self, table: str, cutoff: datetime, batch_size: int) -> int:
        self.cleanup_calls.append((table, cutoff, batch_size))
        if table in self.fail_cleanup_for:
            raise StoreError("delete falló", table=table)
        return self.cleanup_results.get(table, 0)

    async def log_cleanup(self, record: CleanupRecord) -> None:
        if self.fail_log_cleanup:
            raise StoreError("cleanup_log no disponible")
        self.cleanup_log.append(record)


class FakeFlexibee:
    """
    Origen en memoria con la interfaz de FlexibeeClient usada por el motor.

    Registra cada fetch y la concurrencia máxima observada entre evidencias.
    """

    def __init__(self, data: Optional[Dict[str, List[dict]]] = None, delay_s: float = 0.0) -> None:
        self.data = data or {}
        self.delay_s = delay_s
        self.errors: Dict[str, Exception] = {}
        self.schema_errors: Dict[str, Exception] = {}
        self.fields: Dict[str, List[FieldDescriptor]] = {}
        self.fetches: List[tuple] = []
        self.schema_fetches: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_page(self, evidence: str, options: FetchOptions) -> Page:
        self.fetches.append((evidence, options))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            if evidence in self.errors:
                raise self.errors[evidence]
            records = self.data.get(evidence, [])
            chunk = records[options.start: options.start + options.limit]
            return Page(records=chunk, total=len(records))
        finally:
            self.in_flight -= 1

    async def fetch_field_schema(self, evidence: str) -> List[FieldDescriptor]:
        self.schema_fetches.append(evidence)
        if evidence in self.schema_errors:
            raise self.schema_errors[evidence]
        return self.fields.get(evidence, [])

    def iterate_evidence(self, evidence: str, options: Optional[FetchOptions] = None) -> PageIterator:
        return PageIterator(self, evidence, options or FetchOptions())


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def fake_store() -> FakeSyncStore:
    return FakeSyncStore()


@pytest.fixture
def fake_flexibee() -> FakeFlexibee:
    return FakeFlexibee()


@pytest.fixture(scope="function")
async def db_session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """
    Session factory sobre una base SQLite en memoria con las tablas del sync.
    """
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()
