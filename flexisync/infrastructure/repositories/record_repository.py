"""
Repositorio de las tablas espejo (SQL dinámico):
- UPSERT por PK con reemplazo completo de la fila
- borrado por PK
- limpieza por retención en lotes

Los identificadores vienen de Flexibee, por eso todos pasan por
sanitize_identifier antes de interpolarse.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from loguru import logger
from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from flexisync.domain.entities.evidence import Record
from flexisync.infrastructure.database.schema import (
    ColumnRegistry,
    normalize_identifier,
    sanitize_identifier,
)
from flexisync.shared.constants.sync_constants import RAW_DATA_COLUMN, SYNCED_AT_COLUMN
from flexisync.shared.exceptions.sync import StoreError
from flexisync.shared.utils.datetime_utils import ensure_utc

_TEXT_TYPES = {"text", "character varying", "character", "jsonb", "json"}

# Flexibee serializa fechas como "2024-01-31+01:00"
_DATE_WITH_OFFSET_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})(?:[+-]\d{2}:\d{2}|Z)$")


def adapt_value(value: Any, data_type: Optional[str]) -> Any:
    """
    Adapta un valor del registro a su columna tipada.

    - dict/list -> JSON (las relaciones llegan anidadas)
    - "" en columnas no texto -> NULL
    - fechas con offset -> solo la fecha, para columnas DATE
    """
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    if isinstance(value, str):
        if value == "" and data_type not in _TEXT_TYPES:
            return None
        if data_type == "date":
            match = _DATE_WITH_OFFSET_RE.match(value)
            if match:
                return match.group(1)
    return value


class RecordRepository:
    """
    Escritura sobre las tablas de evidencias.

    Solo se proyectan a columna propia los campos que ya existen como
    columna (ColumnRegistry); el registro completo siempre queda en raw_data.
    """

    def __init__(self, engine: AsyncEngine, columns: Optional[ColumnRegistry] = None) -> None:
        self._engine = engine
        self._columns = columns or ColumnRegistry()

    @staticmethod
    def build_upsert_sql(table: str, primary_key: str, columns: Sequence[str]) -> str:
        """
        INSERT ... ON CONFLICT (pk) DO UPDATE SET <todas las columnas>.

        Es un reemplazo completo, no un merge por campo: las columnas que el
        registro no trae quedan en NULL.
        """
        safe_table = sanitize_identifier(table)
        safe_pk = sanitize_identifier(primary_key)
        raw_col = sanitize_identifier(RAW_DATA_COLUMN)
        synced_col = sanitize_identifier(SYNCED_AT_COLUMN)

        insert_cols = [safe_pk, raw_col, synced_col] + [sanitize_identifier(c) for c in columns]
        placeholders = [":pk", "CAST(:raw AS JSONB)", "NOW()"] + [f":p{i}" for i in range(len(columns))]
        updates = [f"{c} = EXCLUDED.{c}" for c in insert_cols[1:]]

        return (
            f"INSERT INTO {safe_table} ({', '.join(insert_cols)}) "
            f"VALUES ({', '.join(placeholders)}) "
            f"ON CONFLICT ({safe_pk}) DO UPDATE SET {', '.join(updates)}"
        )

    def _projected_columns(self, known: Dict[str, str], primary_key: str) -> List[str]:
        skip = {normalize_identifier(primary_key), RAW_DATA_COLUMN, SYNCED_AT_COLUMN}
        return [c for c in known if c not in skip]

    async def upsert(self, table: str, records: Iterable[Record], primary_key: str = "id") -> int:
        """
        Inserta o reemplaza registros por PK.

        - Un registro sin PK se omite (se loguea).
        - Un fallo al escribir un registro se loguea y se omite.

        Returns:
            int: Cantidad de registros escritos

        Raises:
            StoreError: si la página completa no se pudo procesar
                        (tabla inexistente, sin conexión, ningún registro
                        con PK escrito)
        """
        records_list = list(records)
        if not records_list:
            return 0

        try:
            known = await self._columns.load(self._engine, table)
        except SQLAlchemyError as e:
            raise StoreError(f"no se pudieron leer columnas de {table}: {e}", table=table) from e
        if not known:
            raise StoreError(f"la tabla {table} no existe", table=table)

        columns = self._projected_columns(known, primary_key)
        sql = text(self.build_upsert_sql(table, primary_key, columns))

        count = 0
        with_pk = 0
        try:
            async with self._engine.connect() as conn:
                for record in records_list:
                    if primary_key not in record:
                        logger.warning(f"Registro sin PK, se omite. table={table} pk={primary_key}")
                        continue

                    with_pk += 1
                    record_id = record[primary_key]
                    try:
                        params = self._build_params(record, primary_key, columns, known)
                    except (TypeError, ValueError) as e:
                        logger.warning(f"No se pudo serializar registro. table={table} id={record_id} error={e}")
                        continue

                    try:
                        async with conn.begin():
                            await conn.execute(sql, params)
                    except SQLAlchemyError as e:
                        logger.warning(f"Fallo upsert de registro. table={table} id={record_id} error={e}")
                        continue
                    count += 1
        except SQLAlchemyError as e:
            raise StoreError(f"upsert en {table} falló: {e}", table=table) from e

        # Todos fallaron: causa a nivel tabla, el watermark no debe avanzar
        if with_pk and count == 0:
            raise StoreError(f"ningún registro de la página se pudo escribir en {table}", table=table)

        return count

    @staticmethod
    def _build_params(
        record: Record,
        primary_key: str,
        columns: Sequence[str],
        known: Dict[str, str],
    ) -> Dict[str, Any]:
        by_column = {normalize_identifier(k): v for k, v in record.items()}
        params: Dict[str, Any] = {
            "pk": record[primary_key],
            "raw": json.dumps(record, ensure_ascii=False, default=str),
        }
        for i, column in enumerate(columns):
            params[f"p{i}"] = adapt_value(by_column.get(column), known.get(column))
        return params

    async def delete(self, table: str, ids: Sequence[Any], primary_key: str = "id") -> int:
        """
        Borra registros por PK.

        Returns:
            int: Cantidad de filas borradas
        """
        if not ids:
            return 0

        sql = text(
            f"DELETE FROM {sanitize_identifier(table)} "
            f"WHERE {sanitize_identifier(primary_key)} IN :ids"
        ).bindparams(bindparam("ids", expanding=True))
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(sql, {"ids": list(ids)})
                return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            raise StoreError(f"borrado en {table} falló: {e}", table=table) from e

    async def cleanup_older_than(self, table: str, cutoff: datetime, batch_size: int) -> int:
        """
        Borra filas con synced_at estrictamente anterior a cutoff.

        Cada ronda borra como mucho batch_size filas; se repite hasta que una
        ronda borra menos que batch_size.

        Returns:
            int: Total de filas borradas
        """
        if batch_size <= 0:
            raise ValueError("batch_size debe ser positivo")

        safe_table = sanitize_identifier(table)
        sql = text(
            f"DELETE FROM {safe_table} WHERE ctid IN ("
            f"SELECT ctid FROM {safe_table} WHERE \"{SYNCED_AT_COLUMN}\" < :cutoff LIMIT :limit"
            f")"
        )
        params = {"cutoff": ensure_utc(cutoff), "limit": batch_size}

        total = 0
        while True:
            try:
                async with self._engine.begin() as conn:
                    result = await conn.execute(sql, params)
                    deleted = int(result.rowcount or 0)
            except SQLAlchemyError as e:
                raise StoreError(
                    f"limpieza de {table} falló tras borrar {total} filas: {e}", table=table
                ) from e

            total += deleted
            if deleted < batch_size:
                break

        return total
