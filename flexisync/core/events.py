"""
Manejadores de inicio y cierre del proceso, y configuracion de logging.
"""
import asyncio
import sys
from dataclasses import dataclass
from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine

from flexisync.application.services.sync_engine import EngineConfig, SyncEngine
from flexisync.application.use_cases.cleanup_use_cases import RetentionCleaner
from flexisync.core.config import Settings
from flexisync.domain.catalog import EvidenceCatalog, build_default_catalog
from flexisync.infrastructure.database.migrator import run_migrations
from flexisync.infrastructure.database.session import close_engine, create_engine
from flexisync.infrastructure.flexibee.client import FlexibeeClient, FlexibeeCredentials
from flexisync.infrastructure.repositories.postgres_sync_store import PostgresSyncStore

_TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level> {extra}"
)


def configure_logging(settings: Settings) -> None:
    """
    Reemplaza el sink por defecto de loguru.

    - stdout al nivel configurado (JSON si LOG_FORMAT=json)
    - archivo rotativo opcional (LOG_FILE)
    """
    logger.remove()
    if settings.LOG_FORMAT == "json":
        logger.add(sys.stdout, level=settings.LOG_LEVEL, serialize=True)
    else:
        logger.add(sys.stdout, level=settings.LOG_LEVEL, format=_TEXT_FORMAT, colorize=True)

    if settings.LOG_FILE:
        logger.add(
            settings.LOG_FILE,
            rotation="500 MB",
            retention="10 days",
            level=settings.LOG_LEVEL,
            serialize=settings.LOG_FORMAT == "json",
        )


@dataclass
class AppComponents:
    """Componentes construidos al arrancar; se liberan en shutdown_handler."""

    db_engine: AsyncEngine
    client: FlexibeeClient
    store: PostgresSyncStore
    engine: SyncEngine


def startup_handler(
    settings: Settings,
    shutdown_event: asyncio.Event,
    catalog: Optional[EvidenceCatalog] = None,
) -> AppComponents:
    """
    Construye el grafo de componentes a partir de la configuracion.

    No abre conexiones: el pool y el cliente HTTP conectan en el primer uso.
    """
    logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
    if catalog is None:
        catalog = build_default_catalog()
    database_url = settings.effective_database_url

    db_engine = create_engine(
        database_url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
    )
    store = PostgresSyncStore(db_engine)

    client = FlexibeeClient(
        settings.FLEXIBEE_URL,
        settings.FLEXIBEE_COMPANY,
        FlexibeeCredentials(
            username=settings.FLEXIBEE_USERNAME,
            password=settings.FLEXIBEE_PASSWORD.get_secret_value(),
        ),
        shutdown_event=shutdown_event,
        timeout_s=settings.FLEXIBEE_TIMEOUT_S,
    )

    cleaner = RetentionCleaner(
        store,
        catalog,
        retention_days=settings.RETENTION_DAYS,
        batch_size=settings.CLEANUP_BATCH_SIZE,
        shutdown_event=shutdown_event,
    )

    async def migrate() -> None:
        await run_migrations(database_url)

    engine = SyncEngine(
        client=client,
        store=store,
        schema=store.schema,
        catalog=catalog,
        cleaner=cleaner,
        config=EngineConfig(
            sync_interval_s=settings.SYNC_INTERVAL,
            cleanup_interval_s=settings.CLEANUP_INTERVAL,
            batch_size=settings.SYNC_BATCH_SIZE,
            concurrency=settings.SYNC_CONCURRENCY,
            lookback_s=settings.SYNC_LOOKBACK_SECONDS,
        ),
        shutdown_event=shutdown_event,
        migrate=migrate,
    )

    logger.info(
        f"Configuracion: empresa={settings.FLEXIBEE_COMPANY} evidencias={len(catalog)} "
        f"intervalo={settings.SYNC_INTERVAL}s concurrencia={settings.SYNC_CONCURRENCY} "
        f"retencion={settings.RETENTION_DAYS}d"
    )
    return AppComponents(db_engine=db_engine, client=client, store=store, engine=engine)


async def shutdown_handler(components: AppComponents) -> None:
    """Libera el cliente HTTP y el pool de conexiones."""
    logger.info("Cerrando aplicacion...")

    await components.client.aclose()
    logger.info("Cliente Flexibee cerrado")

    await close_engine(components.db_engine)
    logger.info("Conexiones de base de datos cerradas")

    logger.success("Aplicacion cerrada correctamente")
