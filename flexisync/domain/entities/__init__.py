"""
Entidades del dominio.
"""
from flexisync.domain.entities.evidence import (
    CleanupRecord,
    EvidenceDescriptor,
    FieldDescriptor,
    Record,
    SyncCheckpoint,
)

__all__ = [
    "CleanupRecord",
    "EvidenceDescriptor",
    "FieldDescriptor",
    "Record",
    "SyncCheckpoint",
]
