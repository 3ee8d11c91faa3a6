"""
Utilidades para manejo de fechas y horas.

Se mantienen libres de I/O para poder testearlas fácilmente.
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Retorna la hora actual en UTC, como datetime aware."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normaliza datetime a UTC (aware).

    SQLite (tests) devuelve datetimes naive aunque la columna sea
    timezone=True; se asume que ya estaban en UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_z(dt: datetime) -> str:
    """
    Serializa datetime a ISO8601 con 'Z' (UTC), sin microsegundos.

    Es el formato que acepta Flexibee dentro de sus expresiones de filtro.
    """
    dt_utc = ensure_utc(dt)
    return dt_utc.replace(microsecond=0).isoformat().replace("+00:00", "Z")
