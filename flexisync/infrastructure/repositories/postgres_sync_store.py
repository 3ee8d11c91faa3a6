"""
Implementación PostgreSQL de ISyncStore.

Compone el repositorio de checkpoints (ORM) con el de tablas espejo
(SQL dinámico) sobre un mismo engine con pool.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from flexisync.domain.entities.evidence import CleanupRecord, Record, SyncCheckpoint
from flexisync.domain.repositories.sync_store import ISyncStore
from flexisync.infrastructure.database.schema import ColumnRegistry, SchemaManager
from flexisync.infrastructure.database.session import create_session_factory
from flexisync.infrastructure.repositories.checkpoint_repository import CheckpointRepository
from flexisync.infrastructure.repositories.record_repository import RecordRepository


class PostgresSyncStore(ISyncStore):
    """Punto único de acceso a PostgreSQL para el motor de sync."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        columns = ColumnRegistry()
        self.schema = SchemaManager(engine, columns)
        self.records = RecordRepository(engine, columns)
        self.checkpoints = CheckpointRepository(create_session_factory(engine))

    async def get_checkpoint(self, evidence: str) -> Optional[SyncCheckpoint]:
        return await self.checkpoints.get(evidence)

    async def set_checkpoint(self, checkpoint: SyncCheckpoint) -> None:
        await self.checkpoints.set(checkpoint)

    async def upsert_records(self, table: str, records: List[Record], primary_key: str) -> int:
        return await self.records.upsert(table, records, primary_key)

    async def cleanup_older_than(self, table: str, cutoff: datetime, batch_size: int) -> int:
        return await self.records.cleanup_older_than(table, cutoff, batch_size)

    async def log_cleanup(self, record: CleanupRecord) -> None:
        await self.checkpoints.log_cleanup(record)
