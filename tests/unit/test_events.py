import asyncio

import pytest
from loguru import logger

from flexisync.core.config import Settings
from flexisync.core.events import configure_logging, shutdown_handler, startup_handler
from flexisync.domain.catalog import EvidenceCatalog
from flexisync.domain.entities.evidence import EvidenceDescriptor
from flexisync.shared.constants.sync_constants import EngineState


def _settings(**overrides):
    values = dict(
        FLEXIBEE_URL="https://flexibee.example.com",
        FLEXIBEE_COMPANY="demo",
        FLEXIBEE_USERNAME="user",
        FLEXIBEE_PASSWORD="secret",
        DATABASE_URL="postgres://u:p@localhost:5432/metabase",
        LOG_FORMAT="text",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.mark.asyncio
async def test_startup_builds_components_without_connecting():
    catalog = EvidenceCatalog([EvidenceDescriptor(slug="banka", table="flexibee_banka")])

    components = startup_handler(_settings(), asyncio.Event(), catalog)

    assert components.engine.state == EngineState.INITIALIZING
    assert components.db_engine.url.drivername == "postgresql+psycopg"
    assert components.client.evidence_url("banka") == "https://flexibee.example.com/c/demo/banka.json"

    await shutdown_handler(components)


def test_configure_logging_writes_json_file(tmp_path):
    log_file = tmp_path / "sync.log"
    configure_logging(_settings(LOG_FORMAT="json", LOG_FILE=str(log_file)))

    logger.bind(evidence="banka").info("hola")
    logger.remove()

    content = log_file.read_text()
    assert '"evidence": "banka"' in content
    assert "hola" in content
