"""
Cliente de la API REST de Flexibee (origen del espejo).
"""
from flexisync.infrastructure.flexibee.client import FlexibeeClient, FlexibeeCredentials
from flexisync.infrastructure.flexibee.pagination import PageIterator
from flexisync.infrastructure.flexibee.types import FetchOptions, Page

__all__ = [
    "FetchOptions",
    "FlexibeeClient",
    "FlexibeeCredentials",
    "Page",
    "PageIterator",
]
