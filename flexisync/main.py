"""
Punto de entrada del proceso de sincronizacion Flexibee -> PostgreSQL.

Uso:
    python -m flexisync
    flexisync
"""
import asyncio
import signal

from loguru import logger

from flexisync.core.config import load_settings
from flexisync.core.events import configure_logging, shutdown_handler, startup_handler
from flexisync.shared.exceptions.sync import ValidationException


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """SIGINT/SIGTERM activan el evento de apagado (una sola vez)."""
    loop = asyncio.get_running_loop()

    def _request_shutdown(sig: signal.Signals) -> None:
        if not shutdown_event.is_set():
            logger.info(f"Señal {sig.name} recibida, iniciando apagado")
            shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_shutdown, sig)
        except NotImplementedError:
            # Windows: se depende de KeyboardInterrupt
            pass


async def run(settings) -> None:
    shutdown_event = asyncio.Event()
    _install_signal_handlers(shutdown_event)

    components = startup_handler(settings, shutdown_event)
    try:
        await components.engine.start()
    finally:
        await shutdown_handler(components)


def main() -> int:
    try:
        settings = load_settings()
    except ValidationException as e:
        logger.error(e.message)
        return 1

    configure_logging(settings)

    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        logger.info("Interrumpido")
    except Exception as e:
        logger.exception(f"Error fatal: {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
