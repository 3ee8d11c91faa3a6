"""
Constantes relacionadas con el pipeline de sincronizacion Flexibee -> PostgreSQL.
"""
from enum import Enum


class SyncStatus(str, Enum):
    """Resultado de la ultima corrida de una evidencia."""
    OK = "ok"
    ERROR = "error"


class EngineState(str, Enum):
    """Estados del motor de sincronizacion."""
    INITIALIZING = "initializing"
    SYNCING = "syncing"          # Sync inicial en curso
    RUNNING = "running"          # Estado estable (timers activos)
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class LogicalType(str, Enum):
    """Tipos logicos de un campo Flexibee."""
    INTEGER = "integer"
    NUMERIC = "numeric"
    DATE = "date"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    STRING = "string"
    RELATION = "relation"
    UNKNOWN = "unknown"


# Flexibee llama "logic" a los booleanos
FLEXIBEE_TYPE_ALIASES = {
    "logic": LogicalType.BOOLEAN,
}

# Mapeo tipo logico -> tipo fisico en PostgreSQL
PG_TYPE_BY_LOGICAL_TYPE = {
    LogicalType.INTEGER: "BIGINT",
    LogicalType.NUMERIC: "NUMERIC",
    LogicalType.DATE: "DATE",
    LogicalType.DATETIME: "TIMESTAMPTZ",
    LogicalType.BOOLEAN: "BOOLEAN",
    LogicalType.STRING: "TEXT",
    LogicalType.RELATION: "TEXT",
    LogicalType.UNKNOWN: "TEXT",
}

# Columnas tecnicas presentes en toda tabla espejo
RAW_DATA_COLUMN = "raw_data"
SYNCED_AT_COLUMN = "synced_at"

# Campo de Flexibee con la fecha de ultima modificacion (filtro incremental)
LAST_UPDATE_FIELD = "lastUpdate"

# Nivel de detalle solicitado a Flexibee en cada pagina
DEFAULT_DETAIL = "full"

# Politica de reintentos del cliente HTTP
MAX_ATTEMPTS = 3
INITIAL_BACKOFF_S = 0.5

DEFAULT_PAGE_SIZE = 100
