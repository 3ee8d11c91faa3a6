"""
Gestión del engine de base de datos.

El engine async mantiene un pool de conexiones compartido por todas las
tareas de sync: cada evidencia escribe solo en su tabla y en su fila de
sync_state, por lo que no hacen falta locks en proceso.
"""
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base


# Base para modelos de SQLAlchemy
Base = declarative_base()


def _create_engine_args(database_url: str, pool_size: int, max_overflow: int, echo: bool) -> dict:
    """
    Construye los argumentos del engine segun el tipo de base de datos.
    PostgreSQL usa pool de conexiones, SQLite (tests) no lo soporta.
    """
    args = {
        "echo": echo,
        "future": True,
    }

    # Configuracion de pool solo para PostgreSQL
    if "postgresql" in database_url:
        args.update({
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_pre_ping": True,  # Verifica conexion antes de usar
        })

    return args


def create_engine(
    database_url: str,
    *,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
) -> AsyncEngine:
    """Crea el engine async con pool."""
    return create_async_engine(
        database_url,
        **_create_engine_args(database_url, pool_size, max_overflow, echo),
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory para los repositorios ORM."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )


async def close_engine(engine: AsyncEngine) -> None:
    """Cierra las conexiones del pool."""
    await engine.dispose()
