"""
Motor de sincronización: arranque, pasadas periódicas y limpieza.

Estados: INITIALIZING -> SYNCING -> RUNNING -> SHUTTING_DOWN -> STOPPED

- Arranque: migraciones, una tabla por evidencia, primera pasada completa.
- Régimen: dos temporizadores independientes (sync y limpieza) hasta que se
  activa el evento de apagado.
- Cada pasada lanza todas las evidencias con concurrencia acotada y espera
  a que terminen todas.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from loguru import logger

from flexisync.application.use_cases.cleanup_use_cases import RetentionCleaner
from flexisync.application.use_cases.evidence_sync_use_cases import EvidenceSyncResult, sync_evidence
from flexisync.domain.catalog import EvidenceCatalog
from flexisync.domain.entities.evidence import EvidenceDescriptor
from flexisync.domain.repositories.sync_store import ISyncStore
from flexisync.infrastructure.database.schema import SchemaManager
from flexisync.infrastructure.flexibee.client import FlexibeeClient
from flexisync.shared.constants.sync_constants import EngineState, SyncStatus
from flexisync.shared.exceptions.sync import PartialCleanupError


@dataclass(frozen=True)
class EngineConfig:
    sync_interval_s: float = 300.0
    cleanup_interval_s: float = 86400.0
    batch_size: int = 100
    concurrency: int = 4
    lookback_s: float = 0.0


@dataclass
class SyncPassReport:
    results: List[EvidenceSyncResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    @property
    def upserted(self) -> int:
        return sum(r.upserted for r in self.results)


def next_deadline(previous: float, interval: float, now: float) -> float:
    """
    Próximo vencimiento de un temporizador periódico.

    Si una pasada tardó más que el intervalo, los ticks perdidos se
    descartan (no se encolan pasadas atrasadas).
    """
    deadline = previous + interval
    if deadline > now:
        return deadline
    missed = int((now - previous) // interval)
    return previous + (missed + 1) * interval


class SyncEngine:
    """
    Orquestador del proceso de sincronización.
    """

    def __init__(
        self,
        *,
        client: FlexibeeClient,
        store: ISyncStore,
        schema: SchemaManager,
        catalog: EvidenceCatalog,
        cleaner: RetentionCleaner,
        config: EngineConfig,
        shutdown_event: asyncio.Event,
        migrate: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self._client = client
        self._store = store
        self._schema = schema
        self._catalog = catalog
        self._cleaner = cleaner
        self._config = config
        self._shutdown = shutdown_event
        self._migrate = migrate
        self.state = EngineState.INITIALIZING

    async def start(self) -> None:
        """
        Arranca el motor y bloquea hasta el apagado.

        Raises:
            Exception: fallos de migración o de creación de tablas (fatales)
        """
        try:
            self.state = EngineState.INITIALIZING
            if self._migrate is not None:
                logger.info("Aplicando migraciones")
                await self._migrate()

            await self.ensure_tables()
            if self._shutdown.is_set():
                self.state = EngineState.SHUTTING_DOWN
                logger.info("Apagando motor de sync antes del sync inicial")
                return

            self.state = EngineState.SYNCING
            logger.info(f"Sync inicial. evidencias={len(self._catalog)}")
            await self.run_once()

            self.state = EngineState.RUNNING
            await self._run_forever()
        finally:
            self.state = EngineState.STOPPED
            logger.info("Motor de sync detenido")

    async def ensure_tables(self) -> None:
        """Crea/evoluciona la tabla de cada evidencia del catálogo."""
        for evidence in self._catalog.all():
            if self._shutdown.is_set():
                logger.info("Apagado solicitado durante el arranque")
                return
            fields = await self._fetch_fields(evidence)
            await self._schema.ensure_table(evidence.table, fields, evidence.primary_key)

    async def _fetch_fields(self, evidence: EvidenceDescriptor):
        try:
            return await self._client.fetch_field_schema(evidence.slug)
        except Exception as e:
            # Sin propiedades se crea la tabla solo con columnas base
            logger.bind(evidence=evidence.slug).warning(f"No se pudo leer properties.json: {e}")
            return []

    async def run_once(self) -> SyncPassReport:
        """Una pasada de sync sobre todas las evidencias."""
        semaphore = asyncio.Semaphore(self._config.concurrency)
        evidences = self._catalog.all()

        async def _bounded(evidence: EvidenceDescriptor) -> EvidenceSyncResult:
            async with semaphore:
                return await sync_evidence(
                    self._client,
                    self._store,
                    evidence,
                    batch_size=self._config.batch_size,
                    lookback_s=self._config.lookback_s,
                    shutdown_event=self._shutdown,
                )

        outcomes = await asyncio.gather(*(_bounded(ev) for ev in evidences), return_exceptions=True)

        report = SyncPassReport()
        for evidence, outcome in zip(evidences, outcomes):
            if isinstance(outcome, BaseException):
                logger.opt(exception=outcome).error(f"Error inesperado en sync. evidence={evidence.slug}")
                outcome = EvidenceSyncResult(evidence.slug, 0, SyncStatus.ERROR, str(outcome))
            report.results.append(outcome)

        logger.info(
            f"Pasada de sync completa. ok={report.succeeded} error={report.failed} "
            f"registros={report.upserted}"
        )
        return report

    async def run_cleanup(self) -> None:
        try:
            await self._cleaner.run()
        except PartialCleanupError as e:
            logger.error(f"Limpieza con errores: {e.message}")

    async def _run_forever(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        next_sync = started + self._config.sync_interval_s
        next_cleanup = started + self._config.cleanup_interval_s

        while True:
            timeout = max(0.0, min(next_sync, next_cleanup) - loop.time())
            if await self._wait_for_shutdown(timeout):
                break

            if loop.time() >= next_sync:
                logger.info("Sync periódico")
                await self.run_once()
                next_sync = next_deadline(next_sync, self._config.sync_interval_s, loop.time())

            if self._shutdown.is_set():
                break

            if loop.time() >= next_cleanup:
                await self.run_cleanup()
                next_cleanup = next_deadline(next_cleanup, self._config.cleanup_interval_s, loop.time())

        self.state = EngineState.SHUTTING_DOWN
        logger.info("Apagando motor de sync")

    async def _wait_for_shutdown(self, timeout: float) -> bool:
        if self._shutdown.is_set():
            return True
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True
