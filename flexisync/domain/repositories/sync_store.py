"""
Interfaz del almacenamiento usado por el motor de sincronizacion.
Define el contrato que debe cumplir cualquier implementación.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from flexisync.domain.entities.evidence import CleanupRecord, Record, SyncCheckpoint


class ISyncStore(ABC):
    """
    Operaciones de persistencia que necesitan el sync y la limpieza.
    """

    @abstractmethod
    async def get_checkpoint(self, evidence: str) -> Optional[SyncCheckpoint]:
        """
        Obtiene el checkpoint de una evidencia.

        Args:
            evidence: Slug de la evidencia

        Returns:
            Optional[SyncCheckpoint]: Checkpoint o None si nunca se sincronizo
        """
        pass

    @abstractmethod
    async def set_checkpoint(self, checkpoint: SyncCheckpoint) -> None:
        """Crea o reemplaza el checkpoint de la evidencia."""
        pass

    @abstractmethod
    async def upsert_records(self, table: str, records: List[Record], primary_key: str) -> int:
        """
        Inserta o reemplaza registros por PK.

        Returns:
            int: Cantidad de registros escritos
        """
        pass

    @abstractmethod
    async def cleanup_older_than(self, table: str, cutoff: datetime, batch_size: int) -> int:
        """
        Borra filas con synced_at estrictamente anterior a cutoff, por lotes.

        Returns:
            int: Total de filas borradas
        """
        pass

    @abstractmethod
    async def log_cleanup(self, record: CleanupRecord) -> None:
        """Registra una accion de limpieza."""
        pass
