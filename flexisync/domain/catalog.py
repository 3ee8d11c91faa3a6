"""
Catalogo de evidencias Flexibee a sincronizar.

Se construye una vez al arrancar y se pasa explicitamente a cada componente
que lo necesita. Tras la construccion solo se lee, por lo que es seguro
compartirlo entre tareas concurrentes.
"""
from __future__ import annotations

from typing import Dict, Iterator, List, Optional

from flexisync.domain.entities.evidence import EvidenceDescriptor


class EvidenceCatalog:
    """Registro ordenado de evidencias, indexado por slug."""

    def __init__(self, evidences: Optional[List[EvidenceDescriptor]] = None) -> None:
        self._evidences: Dict[str, EvidenceDescriptor] = {}
        for evidence in evidences or []:
            self.register(evidence)

    def register(self, evidence: EvidenceDescriptor) -> None:
        """
        Agrega una evidencia. Si el slug ya existe se reemplaza
        conservando su posicion original.
        """
        self._evidences[evidence.slug] = evidence

    def get(self, slug: str) -> Optional[EvidenceDescriptor]:
        return self._evidences.get(slug)

    def all(self) -> List[EvidenceDescriptor]:
        """Todas las evidencias en orden de registro."""
        return list(self._evidences.values())

    def __len__(self) -> int:
        return len(self._evidences)

    def __iter__(self) -> Iterator[EvidenceDescriptor]:
        return iter(self.all())


def table_name_for(slug: str) -> str:
    """Nombre de tabla destino por convencion: flexibee_<slug con '_'>."""
    return "flexibee_" + slug.replace("-", "_")


# (slug, es dato maestro)
_DEFAULT_EVIDENCES = [
    # Ventas y facturacion
    ("prodejka", False),
    ("faktura-vydana", False),
    ("faktura-prijata", False),
    ("pohledavka", False),
    ("zavazek", False),
    # Pedidos
    ("objednavka-prijata", False),
    ("objednavka-vydana", False),
    ("nabidka-vydana", False),
    ("nabidka-prijata", False),
    ("poptavka-vydana", False),
    ("poptavka-prijata", False),
    # Inventario
    ("sklad", True),
    ("skladovy-pohyb", False),
    ("skladova-karta", True),
    # Contactos
    ("adresar", True),
    ("kontakt", True),
    # Caja y bancos
    ("banka", False),
    ("pokladni-pohyb", False),
    ("bankovni-ucet", True),
    ("pokladna", True),
    # Productos
    ("cenik", True),
    ("skupina-zbozi", True),
    ("merna-jednotka", True),
    # Contabilidad
    ("stredisko", True),
    ("zakazka", True),
    ("cinnost", True),
    ("ucet", True),
    ("sazba-dph", True),
    ("kurz", False),
    # Contratos
    ("smlouva", False),
    ("dodavatelska-smlouva", False),
    # Activos
    ("majetek", True),
]


def build_default_catalog() -> EvidenceCatalog:
    """Catalogo con todas las evidencias Flexibee conocidas."""
    return EvidenceCatalog(
        [
            EvidenceDescriptor(
                slug=slug,
                table=table_name_for(slug),
                primary_key="id",
                is_reference_data=is_reference,
            )
            for slug, is_reference in _DEFAULT_EVIDENCES
        ]
    )
