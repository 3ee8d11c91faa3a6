"""
Caso de uso: sincronizar una evidencia Flexibee hacia su tabla espejo.

Flujo (resumen):
- Lee el checkpoint de la evidencia (sync_state)
- Sin watermark: fetch completo. Con watermark: filtro lastUpdate > watermark
- Recorre las páginas en orden y hace UPSERT de cada una
- Éxito: watermark = hora de fin, row_count acumulado += registros escritos
- Error: se guarda status=error conservando watermark y row_count previos

Las páginas ya escritas antes de un error quedan persistidas; como el
watermark no avanza, la próxima corrida vuelve a leerlas (UPSERT idempotente).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional

from loguru import logger

from flexisync.domain.entities.evidence import EvidenceDescriptor, SyncCheckpoint
from flexisync.domain.repositories.sync_store import ISyncStore
from flexisync.infrastructure.flexibee.client import FlexibeeClient
from flexisync.infrastructure.flexibee.types import FetchOptions
from flexisync.shared.constants.sync_constants import DEFAULT_DETAIL, LAST_UPDATE_FIELD, SyncStatus
from flexisync.shared.exceptions.sync import StoreError
from flexisync.shared.utils.datetime_utils import ensure_utc, isoformat_z, utc_now

if TYPE_CHECKING:
    from loguru import Logger

SKIPPED_BY_SHUTDOWN = "omitida por apagado"


@dataclass(frozen=True)
class EvidenceSyncResult:
    evidence: str
    upserted: int
    status: SyncStatus
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == SyncStatus.OK


def build_incremental_filter(watermark: datetime, lookback_s: float = 0.0) -> str:
    """
    Filtro Flexibee para traer solo lo modificado después del watermark.

    lookback_s corre el límite hacia atrás para tolerar desfasajes de reloj
    entre este proceso y Flexibee; re-leer el borde es seguro.
    """
    since = ensure_utc(watermark)
    if lookback_s > 0:
        since = since - timedelta(seconds=lookback_s)
    return f"{LAST_UPDATE_FIELD} > '{isoformat_z(since)}'"


async def sync_evidence(
    client: FlexibeeClient,
    store: ISyncStore,
    evidence: EvidenceDescriptor,
    *,
    batch_size: int,
    lookback_s: float = 0.0,
    clock: Callable[[], datetime] = utc_now,
    shutdown_event: Optional[asyncio.Event] = None,
) -> EvidenceSyncResult:
    """
    Ejecuta una corrida (incremental o completa) para una evidencia.

    Nunca propaga errores de fetch/persistencia: quedan registrados en el
    checkpoint y en el resultado, para que una evidencia no aborte la pasada.

    Si el apagado ya fue solicitado antes de empezar, no se toca el
    checkpoint: la evidencia no llegó a correr.
    """
    log = logger.bind(evidence=evidence.slug, table=evidence.table)

    if shutdown_event is not None and shutdown_event.is_set():
        log.info("Apagado solicitado, se omite la evidencia")
        return EvidenceSyncResult(evidence.slug, 0, SyncStatus.ERROR, SKIPPED_BY_SHUTDOWN)

    try:
        previous = await store.get_checkpoint(evidence.slug)
    except StoreError as e:
        log.error(f"No se pudo leer el checkpoint: {e}")
        return EvidenceSyncResult(evidence.slug, 0, SyncStatus.ERROR, f"checkpoint: {e}")

    options = FetchOptions(limit=batch_size, detail=DEFAULT_DETAIL)
    if previous is not None and previous.watermark is not None:
        options = replace(options, filter=build_incremental_filter(previous.watermark, lookback_s))
        log.info(f"Sync incremental. filtro={options.filter}")
    else:
        log.info("Sync completo (sin watermark previo)")

    upserted = 0
    phase = "fetch"
    try:
        pages = client.iterate_evidence(evidence.slug, options)
        async for records in pages:
            phase = "upsert"
            written = await store.upsert_records(evidence.table, records, evidence.primary_key)
            upserted += written
            log.debug(f"Página escrita. registros={len(records)} escritos={written} offset={pages.fetched}")
            phase = "fetch"
    except Exception as e:
        message = f"{phase}: {e}"
        log.error(f"Sync fallido tras escribir {upserted} registros. error={message}")
        await _save_failure(store, evidence, previous, message, clock(), log)
        return EvidenceSyncResult(evidence.slug, upserted, SyncStatus.ERROR, message)

    checkpoint = SyncCheckpoint.success(evidence.slug, previous=previous, upserted=upserted, now=clock())
    try:
        await store.set_checkpoint(checkpoint)
    except StoreError as e:
        log.error(f"No se pudo guardar el checkpoint: {e}")
        return EvidenceSyncResult(evidence.slug, upserted, SyncStatus.ERROR, f"checkpoint: {e}")

    log.info(f"Sync OK. registros={upserted} total_acumulado={checkpoint.cumulative_row_count}")
    return EvidenceSyncResult(evidence.slug, upserted, SyncStatus.OK)


async def _save_failure(
    store: ISyncStore,
    evidence: EvidenceDescriptor,
    previous: Optional[SyncCheckpoint],
    message: str,
    now: datetime,
    log: Logger,
) -> None:
    checkpoint = SyncCheckpoint.failure(evidence.slug, previous=previous, error=message, now=now)
    try:
        await store.set_checkpoint(checkpoint)
    except StoreError as e:
        log.error(f"No se pudo guardar el estado de error: {e}")
