"""
Excepciones del pipeline de sincronización.

Jerarquía:
- RemoteError: fallos al hablar con Flexibee
    - TransientRemoteError: red / 5xx (se reintenta)
        - RetriesExhaustedError: se agotaron los intentos
    - PermanentRemoteError: cualquier otro status no 2xx (no se reintenta)
- CancellationError: operación abortada por señal de apagado
- StoreError: fallos de DDL / upsert / delete en PostgreSQL
- PartialCleanupError: una o más evidencias fallaron durante la limpieza
- ValidationException: configuración inválida (fatal al arrancar)
"""
from typing import Any, Optional

from flexisync.shared.exceptions.base import AppException


class RemoteError(AppException):
    """Error base de integración con Flexibee."""

    def __init__(self, message: str, error_code: str = "REMOTE_ERROR", details=None):
        super().__init__(message=message, error_code=error_code, details=details)


class TransientRemoteError(RemoteError):
    """Error de red o respuesta 5xx. Recuperable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(
            message=message,
            error_code="TRANSIENT_REMOTE_ERROR",
            details={"status_code": status_code} if status_code else None,
        )
        self.status_code = status_code


class RetriesExhaustedError(TransientRemoteError):
    """Se agotaron todos los intentos; conserva la última causa."""

    def __init__(self, attempts: int, last_error: Exception):
        super().__init__(f"fallaron los {attempts} intentos: {last_error}")
        self.error_code = "RETRIES_EXHAUSTED"
        self.attempts = attempts
        self.last_error = last_error
        self.details = {"attempts": attempts, "last_error": str(last_error)}


class PermanentRemoteError(RemoteError):
    """Respuesta no 2xx y no 5xx (auth, URL, filtro inválido...). No se reintenta."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(
            message=message,
            error_code="PERMANENT_REMOTE_ERROR",
            details={"status_code": status_code, "body": body},
        )
        self.status_code = status_code
        self.body = body


class CancellationError(AppException):
    """La operación se abortó porque se recibió la señal de apagado."""

    def __init__(self, message: str = "operación cancelada por apagado"):
        super().__init__(message=message, error_code="CANCELLED")


class StoreError(AppException):
    """Error de persistencia en PostgreSQL."""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="STORE_ERROR",
            details={"table": table} if table else None,
        )
        self.table = table


class PartialCleanupError(AppException):
    """Una o más evidencias fallaron en la pasada de limpieza."""

    def __init__(self, failures: dict[str, Exception]):
        slugs = ", ".join(sorted(failures))
        super().__init__(
            message=f"limpieza fallida para: {slugs}",
            error_code="PARTIAL_CLEANUP",
            details={slug: str(err) for slug, err in failures.items()},
        )
        self.failures = failures


class ValidationException(AppException):
    """Excepción para errores de validación de configuración."""

    def __init__(self, message: str, field: Any = None):
        details = {"field": field} if field else None
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=details
        )
