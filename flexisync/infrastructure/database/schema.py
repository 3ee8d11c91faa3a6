"""
Evolución dinámica del esquema de las tablas espejo.

Cada evidencia vive en una tabla con tres columnas base:
- id (BIGINT PRIMARY KEY)
- raw_data (JSONB con el registro completo)
- synced_at (TIMESTAMPTZ, usado por la retención)

y una columna tipada por cada propiedad que informa Flexibee. Las columnas
solo se agregan: nunca se borran ni se cambia su tipo.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from flexisync.domain.entities.evidence import FieldDescriptor
from flexisync.shared.constants.sync_constants import (
    PG_TYPE_BY_LOGICAL_TYPE,
    RAW_DATA_COLUMN,
    SYNCED_AT_COLUMN,
)
from flexisync.shared.exceptions.sync import StoreError


def normalize_identifier(name: str) -> str:
    """
    Nombre de columna/tabla compatible con PostgreSQL.

    Se eliminan comillas dobles (evita inyección) y los guiones de Flexibee
    pasan a '_'.
    """
    return name.replace('"', "").replace("-", "_")


def sanitize_identifier(name: str) -> str:
    """
    Identificador normalizado y entre comillas, listo para interpolar en SQL.

    Los ':' se escapan porque las sentencias pasan por sqlalchemy.text(),
    que los interpretaría como bind params.
    """
    return '"' + normalize_identifier(name).replace(":", "\\:") + '"'


def pg_type_for(field: FieldDescriptor) -> str:
    """Tipo físico PostgreSQL para una propiedad Flexibee."""
    return PG_TYPE_BY_LOGICAL_TYPE.get(field.logical_type, "TEXT")


class ColumnRegistry:
    """
    Cache de columnas conocidas por tabla (nombre -> data_type de
    information_schema).

    La comparten SchemaManager (que la refresca al evolucionar) y
    RecordRepository (que solo proyecta columnas conocidas).
    """

    _COLUMNS_SQL = text(
        """
        SELECT column_name, data_type
        FROM information_schema.columns
        WHERE table_schema = current_schema()
          AND table_name = :table
        """
    )

    def __init__(self) -> None:
        self._columns: Dict[str, Dict[str, str]] = {}

    def get(self, table: str) -> Optional[Dict[str, str]]:
        return self._columns.get(normalize_identifier(table))

    def invalidate(self, table: str) -> None:
        self._columns.pop(normalize_identifier(table), None)

    async def refresh(self, engine: AsyncEngine, table: str) -> Dict[str, str]:
        """Relee las columnas de la tabla desde information_schema."""
        name = normalize_identifier(table)
        async with engine.begin() as conn:
            result = await conn.execute(self._COLUMNS_SQL, {"table": name})
            rows = result.all()
        columns = {str(row[0]): str(row[1]).lower() for row in rows}
        self._columns[name] = columns
        return columns

    async def load(self, engine: AsyncEngine, table: str) -> Dict[str, str]:
        """Columnas desde cache; consulta la base solo la primera vez."""
        cached = self.get(table)
        if cached:
            return cached
        return await self.refresh(engine, table)


class SchemaManager:
    """
    Asegura que la tabla de una evidencia exista y tenga una columna por
    cada propiedad conocida.
    """

    def __init__(self, engine: AsyncEngine, columns: Optional[ColumnRegistry] = None) -> None:
        self._engine = engine
        self._columns = columns or ColumnRegistry()

    @property
    def columns(self) -> ColumnRegistry:
        return self._columns

    async def ensure_table(
        self,
        table: str,
        fields: Optional[Iterable[FieldDescriptor]] = None,
        primary_key: str = "id",
    ) -> int:
        """
        Crea la tabla si no existe y agrega las columnas faltantes.

        Es idempotente: repetirlo con los mismos campos no genera DDL nuevo.
        Un fallo al agregar una columna se loguea y se continúa (raw_data
        sigue guardando ese valor).

        Returns:
            int: Cantidad de columnas agregadas

        Raises:
            StoreError: si no se pudo crear la tabla o leer sus columnas
        """
        safe_table = sanitize_identifier(table)
        safe_pk = sanitize_identifier(primary_key)

        create_sql = f"""
            CREATE TABLE IF NOT EXISTS {safe_table} (
                {safe_pk} BIGINT PRIMARY KEY,
                "{RAW_DATA_COLUMN}" JSONB,
                "{SYNCED_AT_COLUMN}" TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """
        try:
            async with self._engine.begin() as conn:
                await conn.execute(text(create_sql))
            existing = await self._columns.refresh(self._engine, table)
        except SQLAlchemyError as e:
            raise StoreError(f"no se pudo crear la tabla {table}: {e}", table=table) from e

        pk_column = normalize_identifier(primary_key)
        added = 0
        for field in fields or []:
            column = normalize_identifier(field.name)
            if not column or column == pk_column or column in existing:
                continue

            pg_type = pg_type_for(field)
            alter_sql = (
                f"ALTER TABLE {safe_table} ADD COLUMN IF NOT EXISTS "
                f"{sanitize_identifier(field.name)} {pg_type}"
            )
            try:
                async with self._engine.begin() as conn:
                    await conn.execute(text(alter_sql))
            except SQLAlchemyError as e:
                logger.warning(f"No se pudo agregar columna. table={table} column={field.name} error={e}")
                continue

            logger.debug(f"Columna agregada. table={table} column={column} type={pg_type}")
            existing[column] = pg_type.lower()
            added += 1

        if added:
            # Releer para guardar los data_type tal como los reporta Postgres
            try:
                await self._columns.refresh(self._engine, table)
            except SQLAlchemyError as e:
                logger.warning(f"No se pudo releer columnas. table={table} error={e}")

        logger.info(f"Tabla asegurada. table={table} columnas_nuevas={added}")
        return added
