"""
Tipos y utilidades puras para el cliente Flexibee.

Se mantienen libres de I/O para poder testearlos fácilmente.

Flexibee no es consistente con los tipos en JSON: devuelve booleanos como
"true"/"false" y enteros como "20" segun el endpoint. Todo se decodifica aqui,
en el borde, aceptando ambas representaciones.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Optional

from flexisync.domain.entities.evidence import FieldDescriptor, Record


def parse_loose_bool(value: Any) -> bool:
    """Acepta bool nativo o su forma string ("true"/"false")."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def parse_loose_int(value: Any) -> int:
    """Acepta int nativo o string numerico. Valores no parseables -> 0."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return 0
    return 0


def parse_optional_int(value: Any) -> Optional[int]:
    """Como parse_loose_int pero distingue 'ausente/ilegible' (None)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class FetchOptions:
    """
    Controla como se piden los registros de una evidencia.

    - limit: tamaño de pagina (0 = default del servidor)
    - start: offset del primer registro
    - detail: "full", "summary", "id", "custom:..."
    - filter: expresion de filtro Flexibee (p.ej. "lastUpdate > '...'")
    - add_row_count: pedir a Flexibee el total (@rowCount)
    """

    limit: int = 0
    start: int = 0
    detail: str = ""
    filter: str = ""
    add_row_count: bool = False

    def with_start(self, start: int) -> "FetchOptions":
        return replace(self, start=start)

    def to_query(self) -> dict[str, str]:
        """Parametros de query; solo se envian los que estan definidos."""
        params: dict[str, str] = {}
        if self.limit > 0:
            params["limit"] = str(self.limit)
        if self.start > 0:
            params["start"] = str(self.start)
        if self.detail:
            params["detail"] = self.detail
        if self.filter:
            params["filter"] = self.filter
        if self.add_row_count:
            params["add-row-count"] = "true"
        return params


@dataclass(frozen=True)
class Page:
    """Una pagina de registros devuelta por un fetch."""

    records: list[Record] = field(default_factory=list)
    total: Optional[int] = None
    version: str = ""
    # Entradas que no eran objeto JSON; cuentan para el offset
    dropped: int = 0

    @property
    def received(self) -> int:
        return len(self.records) + self.dropped


def parse_page(payload: Any, evidence: str) -> Page:
    """
    Extrae los registros de la clave especifica de la evidencia dentro del
    sobre "winstrom". @rowCount puede venir como string o numero.
    """
    if not isinstance(payload, dict):
        raise ValueError("respuesta sin objeto JSON raiz")
    envelope = payload.get("winstrom")
    if not isinstance(envelope, dict):
        raise ValueError("respuesta sin sobre 'winstrom'")

    version = envelope.get("@version")
    records = envelope.get(evidence) or []
    if not isinstance(records, list):
        raise ValueError(f"'{evidence}' no es una lista de registros")

    valid = [dict(r) for r in records if isinstance(r, dict)]
    return Page(
        records=valid,
        total=parse_optional_int(envelope.get("@rowCount")),
        version=version if isinstance(version, str) else "",
        dropped=len(records) - len(valid),
    )


def parse_properties(payload: Any) -> list[FieldDescriptor]:
    """Parsea la respuesta de <evidencia>/properties.json."""
    if not isinstance(payload, dict):
        raise ValueError("respuesta sin objeto JSON raiz")
    properties = (payload.get("properties") or {}).get("property") or []
    # Flexibee devuelve un objeto suelto cuando hay una sola propiedad
    if isinstance(properties, dict):
        properties = [properties]

    fields: list[FieldDescriptor] = []
    for prop in properties:
        name = prop.get("propertyName") if isinstance(prop, dict) else None
        if not name:
            continue
        fields.append(
            FieldDescriptor(
                name=str(name),
                logical_type=FieldDescriptor.parse_logical_type(prop.get("type")),
                max_length=parse_loose_int(prop.get("maxLength")),
                mandatory=parse_loose_bool(prop.get("mandatory")),
                read_only=parse_loose_bool(prop.get("isReadOnly")),
            )
        )
    return fields
