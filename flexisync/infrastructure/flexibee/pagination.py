"""
Paginación por offset sobre una evidencia Flexibee.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Optional

from loguru import logger

from flexisync.domain.entities.evidence import Record
from flexisync.shared.constants.sync_constants import DEFAULT_PAGE_SIZE

from .types import FetchOptions

if TYPE_CHECKING:
    from .client import FlexibeeClient


class PageIterator:
    """
    Recorre una evidencia página a página.

    Termina (next() -> None) cuando:
    - la página viene vacía
    - la página trae menos registros que el tamaño pedido
    - lo traído alcanza el total informado por Flexibee (@rowCount)

    Una vez terminado no vuelve a contactar a Flexibee. Un error de fetch
    se propaga sin avanzar el offset.
    """

    def __init__(self, client: "FlexibeeClient", evidence: str, options: FetchOptions) -> None:
        limit = options.limit if options.limit > 0 else DEFAULT_PAGE_SIZE
        self._client = client
        self._evidence = evidence
        self._options = replace(options, limit=limit, start=0, add_row_count=True)
        self._fetched = 0
        self._total: Optional[int] = None
        self._done = False

    @property
    def fetched(self) -> int:
        return self._fetched

    @property
    def total(self) -> Optional[int]:
        return self._total

    @property
    def done(self) -> bool:
        return self._done

    async def next(self) -> Optional[list[Record]]:
        """Siguiente página de registros, o None si ya no quedan."""
        if self._done:
            return None

        options = self._options.with_start(self._fetched)
        page = await self._client.fetch_page(self._evidence, options)

        if self._total is None and page.total is not None:
            self._total = page.total

        records = page.records
        received = page.received
        if not received:
            self._done = True
            return None

        if page.dropped:
            logger.warning(
                f"Entradas no-objeto descartadas. evidence={self._evidence} "
                f"descartadas={page.dropped} offset={self._fetched}"
            )
        self._fetched += received

        if received < options.limit:
            self._done = True
        if self._total is not None and self._fetched >= self._total:
            self._done = True

        return records

    def __aiter__(self) -> "PageIterator":
        return self

    async def __anext__(self) -> list[Record]:
        records = await self.next()
        if records is None:
            raise StopAsyncIteration
        return records
