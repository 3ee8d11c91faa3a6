"""
Modelos de base de datos (ORM) para el estado del sync.

Las tablas espejo de cada evidencia NO son modelos ORM: su esquema es
dinamico y lo gestiona SchemaManager.
"""
from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from flexisync.infrastructure.database.session import Base


class SyncStateModel(Base):
    """Checkpoint por evidencia (una fila por slug)."""

    __tablename__ = "sync_state"

    evidence = Column(String(255), primary_key=True)
    last_update = Column(DateTime(timezone=True), nullable=True)  # watermark
    last_sync = Column(DateTime(timezone=True), nullable=False)
    row_count = Column(BigInteger, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="ok")
    error_msg = Column(Text, nullable=True)

    def __repr__(self):
        return f"<SyncState(evidence={self.evidence}, status={self.status}, row_count={self.row_count})>"


class CleanupLogModel(Base):
    """Log append-only de acciones de limpieza por retencion."""

    __tablename__ = "cleanup_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    evidence = Column(String(255), nullable=False, index=True)
    rows_deleted = Column(BigInteger, nullable=False)
    oldest_kept = Column(DateTime(timezone=True), nullable=True)
    cleaned_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<CleanupLog(evidence={self.evidence}, rows_deleted={self.rows_deleted})>"
