"""
Caso de uso: limpieza por retención de las tablas espejo.

Borra filas cuyo synced_at es anterior a (ahora - retention_days). Las
evidencias de datos maestros nunca se limpian.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from loguru import logger

from flexisync.domain.catalog import EvidenceCatalog
from flexisync.domain.entities.evidence import CleanupRecord
from flexisync.domain.repositories.sync_store import ISyncStore
from flexisync.shared.exceptions.sync import PartialCleanupError, StoreError
from flexisync.shared.utils.datetime_utils import utc_now


class RetentionCleaner:
    """
    Pasada de limpieza sobre todas las evidencias del catálogo.

    Un fallo en una evidencia se loguea y la pasada continúa; al final se
    informa el conjunto de fallos con PartialCleanupError.
    """

    def __init__(
        self,
        store: ISyncStore,
        catalog: EvidenceCatalog,
        *,
        retention_days: int,
        batch_size: int,
        clock: Callable[[], datetime] = utc_now,
        shutdown_event: Optional[asyncio.Event] = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._retention_days = retention_days
        self._batch_size = batch_size
        self._clock = clock
        self._shutdown = shutdown_event

    @property
    def enabled(self) -> bool:
        return self._retention_days > 0

    async def run(self) -> List[CleanupRecord]:
        """
        Returns:
            List[CleanupRecord]: una entrada por evidencia con filas borradas

        Raises:
            PartialCleanupError: si alguna evidencia falló
        """
        if not self.enabled:
            logger.info("Limpieza deshabilitada (RETENTION_DAYS=0)")
            return []

        cutoff = self._clock() - timedelta(days=self._retention_days)
        logger.info(f"Iniciando limpieza. retention_days={self._retention_days} cutoff={cutoff.isoformat()}")

        records: List[CleanupRecord] = []
        failures: Dict[str, Exception] = {}

        for evidence in self._catalog.all():
            if self._shutdown is not None and self._shutdown.is_set():
                logger.info("Limpieza interrumpida por apagado")
                break
            if evidence.is_reference_data:
                continue

            log = logger.bind(evidence=evidence.slug, table=evidence.table)
            try:
                deleted = await self._store.cleanup_older_than(evidence.table, cutoff, self._batch_size)
            except Exception as e:
                log.error(f"Fallo la limpieza: {e}")
                failures[evidence.slug] = e
                continue

            if deleted <= 0:
                continue

            record = CleanupRecord(evidence=evidence.slug, rows_deleted=deleted, oldest_kept=cutoff)
            records.append(record)
            log.info(f"Filas antiguas borradas. filas={deleted}")

            try:
                await self._store.log_cleanup(record)
            except StoreError as e:
                log.warning(f"No se pudo registrar la limpieza: {e}")

        total = sum(r.rows_deleted for r in records)
        logger.info(f"Limpieza completa. evidencias={len(records)} filas={total} fallos={len(failures)}")

        if failures:
            raise PartialCleanupError(failures)
        return records
