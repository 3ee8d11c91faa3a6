"""
Aplicación de migraciones Alembic desde el proceso.

Los scripts viajan dentro del paquete (migrations/), por lo que no hace
falta un alembic.ini: la Config se arma por código.
"""
import asyncio
from pathlib import Path

from alembic import command
from alembic.config import Config
from loguru import logger

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def build_alembic_config(database_url: str) -> Config:
    """
    Config de Alembic apuntando a los scripts empaquetados.

    ConfigParser interpola '%', por eso se escapa en la URL (passwords).
    """
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    return config


def upgrade_head(database_url: str) -> None:
    """Aplica todas las migraciones pendientes (bloqueante)."""
    command.upgrade(build_alembic_config(database_url), "head")


async def run_migrations(database_url: str) -> None:
    """
    Aplica migraciones sin bloquear el event loop.

    Alembic es sincrono; se ejecuta en un thread aparte.
    """
    await asyncio.to_thread(upgrade_head, database_url)
    logger.info("Migraciones aplicadas correctamente")
