"""
Cliente mínimo de la API REST de Flexibee (sin SDKs externos).

Requisitos cubiertos:
- httpx (async)
- autenticación HTTP Basic
- reintentos acotados con backoff exponencial (red / 5xx)
- espera de backoff cancelable por la señal de apagado
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from loguru import logger

from flexisync.domain.entities.evidence import FieldDescriptor
from flexisync.shared.constants.sync_constants import INITIAL_BACKOFF_S, MAX_ATTEMPTS
from flexisync.shared.exceptions.sync import (
    CancellationError,
    PermanentRemoteError,
    RetriesExhaustedError,
    TransientRemoteError,
)

from .pagination import PageIterator
from .types import FetchOptions, Page, parse_page, parse_properties


@dataclass(frozen=True)
class FlexibeeCredentials:
    username: str
    password: str


def backoff_delay(attempt: int, initial_backoff_s: float = INITIAL_BACKOFF_S) -> float:
    """
    Espera previa al intento `attempt` (1-based).

    Intento 1 sale sin espera; el intento n>1 espera base * 2^(n-2):
    0, 0.5s, 1s con la configuración por defecto.
    """
    if attempt <= 1:
        return 0.0
    return initial_backoff_s * (2 ** (attempt - 2))


class FlexibeeClient:
    """
    Cliente HTTP de Flexibee para una empresa ("company").

    Importante:
    - No hace cast de tipos de los registros: eso se decide al persistir.
    - Un mismo cliente se comparte entre todas las tareas de sync.
    """

    def __init__(
        self,
        base_url: str,
        company: str,
        credentials: FlexibeeCredentials,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        shutdown_event: Optional[asyncio.Event] = None,
        timeout_s: float = 30.0,
        max_attempts: int = MAX_ATTEMPTS,
        initial_backoff_s: float = INITIAL_BACKOFF_S,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._company = company
        self._auth = httpx.BasicAuth(credentials.username, credentials.password)
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout_s)
        self._shutdown = shutdown_event
        self._max_attempts = max_attempts
        self._initial_backoff_s = initial_backoff_s

    async def __aenter__(self) -> "FlexibeeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Cierra el cliente HTTP si fue creado aquí."""
        if self._owns_http:
            await self._http.aclose()

    def evidence_url(self, evidence: str) -> str:
        return f"{self._base_url}/c/{self._company}/{evidence}.json"

    def properties_url(self, evidence: str) -> str:
        return f"{self._base_url}/c/{self._company}/{evidence}/properties.json"

    async def fetch_page(self, evidence: str, options: FetchOptions) -> Page:
        """Obtiene una página de registros de una evidencia."""
        payload = await self._request_json(self.evidence_url(evidence), options.to_query())
        try:
            return parse_page(payload, evidence)
        except ValueError as e:
            raise PermanentRemoteError(f"respuesta inválida para {evidence}: {e}") from e

    async def fetch_field_schema(self, evidence: str) -> list[FieldDescriptor]:
        """Obtiene la definición de campos (properties.json) de una evidencia."""
        payload = await self._request_json(self.properties_url(evidence), {})
        try:
            return parse_properties(payload)
        except (ValueError, AttributeError) as e:
            raise PermanentRemoteError(f"properties inválidas para {evidence}: {e}") from e

    def iterate_evidence(self, evidence: str, options: Optional[FetchOptions] = None) -> PageIterator:
        """Iterador paginado (perezoso) sobre todos los registros de la evidencia."""
        return PageIterator(self, evidence, options or FetchOptions())

    async def _wait_before_attempt(self, attempt: int) -> None:
        """
        Espera de backoff observando la señal de apagado.

        Si la señal se dispara (o ya estaba disparada) se aborta con
        CancellationError en lugar de seguir reintentando.
        """
        delay = backoff_delay(attempt, self._initial_backoff_s)
        if self._shutdown is None:
            if delay > 0:
                await asyncio.sleep(delay)
            return

        if self._shutdown.is_set():
            raise CancellationError()
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise CancellationError()

    def _log_attempt_failure(self, attempt: int, message: str) -> None:
        if attempt < self._max_attempts:
            logger.warning(f"{message} Reintentando. intento={attempt}/{self._max_attempts}")
        else:
            logger.error(f"{message} Sin más reintentos. intento={attempt}/{self._max_attempts}")

    async def _request_json(self, url: str, params: dict[str, str]) -> Any:
        """
        GET con reintentos acotados.

        Estrategia:
        - error de transporte / 5xx: se reintenta hasta max_attempts.
        - otro status no 2xx: error inmediato (config/auth/filtro mal).
        """
        headers = {"Accept": "application/json"}
        last_error: Optional[Exception] = None

        for attempt in range(1, self._max_attempts + 1):
            await self._wait_before_attempt(attempt)

            try:
                resp = await self._http.get(url, params=params, headers=headers, auth=self._auth)
            except httpx.TransportError as e:
                last_error = TransientRemoteError(f"error de red (intento {attempt}): {e!r}")
                self._log_attempt_failure(attempt, f"Request a Flexibee falló. url={url} error={e!r}")
                continue

            if resp.status_code >= 500:
                last_error = TransientRemoteError(
                    f"error de servidor {resp.status_code} (intento {attempt})",
                    status_code=resp.status_code,
                )
                self._log_attempt_failure(attempt, f"Flexibee respondió {resp.status_code}. url={url}")
                continue

            if not 200 <= resp.status_code < 300:
                raise PermanentRemoteError(
                    f"status inesperado {resp.status_code}: {resp.text}",
                    status_code=resp.status_code,
                    body=resp.text,
                )

            try:
                return resp.json()
            except ValueError as e:
                raise PermanentRemoteError(
                    f"respuesta JSON inválida: {e}",
                    status_code=resp.status_code,
                    body=resp.text[:500],
                ) from e

        raise RetriesExhaustedError(self._max_attempts, last_error)
