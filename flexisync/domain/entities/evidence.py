"""
Entidades del dominio de sincronizacion.

Una "evidencia" es una coleccion de Flexibee (p.ej. facturas emitidas) que se
replica en una tabla PostgreSQL.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Union

from flexisync.shared.constants.sync_constants import (
    FLEXIBEE_TYPE_ALIASES,
    LogicalType,
    SyncStatus,
)

# Registro tal como lo devuelve Flexibee (orden de campos preservado)
Record = Dict[str, Any]


@dataclass(frozen=True)
class EvidenceDescriptor:
    """
    Mapeo de una evidencia Flexibee a su tabla destino.

    - slug: identificador de la evidencia en Flexibee (p.ej. "faktura-vydana")
    - table: tabla PostgreSQL destino (p.ej. "flexibee_faktura_vydana")
    - primary_key: campo presente en todo registro (siempre "id" en Flexibee)
    - is_reference_data: datos maestros, nunca se limpian por retencion
    """

    slug: str
    table: str
    primary_key: str = "id"
    is_reference_data: bool = False


@dataclass(frozen=True)
class FieldDescriptor:
    """Definicion de un campo de la evidencia segun properties.json."""

    name: str
    logical_type: LogicalType = LogicalType.UNKNOWN
    max_length: int = 0
    mandatory: bool = False
    read_only: bool = False

    @staticmethod
    def parse_logical_type(raw: Any) -> LogicalType:
        """
        Decodifica el tipo reportado por Flexibee.

        El conjunto de tipos es abierto: cualquier valor desconocido
        termina como UNKNOWN (columna TEXT), nunca como error.
        """
        value = str(raw or "").strip().lower()
        if value in FLEXIBEE_TYPE_ALIASES:
            return FLEXIBEE_TYPE_ALIASES[value]
        try:
            return LogicalType(value)
        except ValueError:
            return LogicalType.UNKNOWN


@dataclass(frozen=True)
class SyncCheckpoint:
    """
    Estado persistido por evidencia.

    watermark:
        ultima marca de cambio persistida con exito. Solo avanza en una
        corrida exitosa; una corrida fallida conserva la anterior.
    """

    evidence: str
    watermark: Optional[datetime]
    last_attempt: datetime
    cumulative_row_count: int = 0
    status: SyncStatus = SyncStatus.OK
    error_message: Optional[str] = None

    @classmethod
    def success(
        cls,
        evidence: str,
        *,
        previous: Optional["SyncCheckpoint"],
        upserted: int,
        now: datetime,
    ) -> "SyncCheckpoint":
        prior_count = previous.cumulative_row_count if previous else 0
        return cls(
            evidence=evidence,
            watermark=now,
            last_attempt=now,
            cumulative_row_count=prior_count + upserted,
            status=SyncStatus.OK,
            error_message=None,
        )

    @classmethod
    def failure(
        cls,
        evidence: str,
        *,
        previous: Optional["SyncCheckpoint"],
        error: Union[Exception, str],
        now: datetime,
    ) -> "SyncCheckpoint":
        message = str(error)
        if not message and isinstance(error, Exception):
            message = error.__class__.__name__
        return cls(
            evidence=evidence,
            watermark=previous.watermark if previous else None,
            last_attempt=now,
            cumulative_row_count=previous.cumulative_row_count if previous else 0,
            status=SyncStatus.ERROR,
            error_message=message or "error desconocido",
        )


@dataclass(frozen=True)
class CleanupRecord:
    """Entrada del log de limpieza (append-only)."""

    evidence: str
    rows_deleted: int
    oldest_kept: datetime
