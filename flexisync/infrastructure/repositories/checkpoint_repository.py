"""
Repositorio del estado del sync:
- sync_state: checkpoint por evidencia (lectura / escritura puntual)
- cleanup_log: log append-only de limpiezas
"""
from typing import Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from flexisync.domain.entities.evidence import CleanupRecord, SyncCheckpoint
from flexisync.infrastructure.database.models import CleanupLogModel, SyncStateModel
from flexisync.shared.constants.sync_constants import SyncStatus
from flexisync.shared.exceptions.sync import StoreError
from flexisync.shared.utils.datetime_utils import ensure_utc


class CheckpointRepository:
    """
    Gestiona las tablas sync_state y cleanup_log.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get(self, evidence: str) -> Optional[SyncCheckpoint]:
        """
        Obtiene el checkpoint de una evidencia.

        Returns:
            Optional[SyncCheckpoint]: None si la evidencia nunca se sincronizó
        """
        try:
            async with self._session_factory() as session:
                row = await session.get(SyncStateModel, evidence)
        except SQLAlchemyError as e:
            raise StoreError(f"no se pudo leer sync_state de {evidence}: {e}") from e

        if row is None:
            return None
        return self._to_entity(row)

    async def set(self, checkpoint: SyncCheckpoint) -> None:
        """
        Crea o reemplaza el checkpoint de la evidencia.
        """
        try:
            async with self._session_factory() as session:
                row = await session.get(SyncStateModel, checkpoint.evidence)
                if row is None:
                    row = SyncStateModel(evidence=checkpoint.evidence)
                    session.add(row)

                row.last_update = checkpoint.watermark
                row.last_sync = checkpoint.last_attempt
                row.row_count = checkpoint.cumulative_row_count
                row.status = checkpoint.status.value
                row.error_msg = checkpoint.error_message

                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"no se pudo guardar sync_state de {checkpoint.evidence}: {e}") from e

        logger.debug(
            f"Checkpoint guardado. evidence={checkpoint.evidence} status={checkpoint.status.value} "
            f"row_count={checkpoint.cumulative_row_count}"
        )

    async def log_cleanup(self, record: CleanupRecord) -> None:
        """Registra una acción de limpieza."""
        try:
            async with self._session_factory() as session:
                session.add(
                    CleanupLogModel(
                        evidence=record.evidence,
                        rows_deleted=record.rows_deleted,
                        oldest_kept=record.oldest_kept,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"no se pudo registrar la limpieza de {record.evidence}: {e}") from e

    @staticmethod
    def _to_entity(row: SyncStateModel) -> SyncCheckpoint:
        return SyncCheckpoint(
            evidence=row.evidence,
            watermark=ensure_utc(row.last_update) if row.last_update else None,
            last_attempt=ensure_utc(row.last_sync),
            cumulative_row_count=int(row.row_count or 0),
            status=SyncStatus(row.status),
            error_message=row.error_msg or None,
        )
