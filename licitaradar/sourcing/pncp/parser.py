"""PNCP JSON -> ProcurementRecord column values."""

from datetime import datetime
from typing import Any, Dict, Optional

from licitaradar.core.logging import get_logger

logger = get_logger("sourcing.pncp.parser")

PORTAL_BASE_URL = "https://pncp.gov.br/app/editais"


def build_portal_link(cnpj: Optional[str], year: Optional[int], sequence: Optional[int]) -> Optional[str]:
    """Public page of a notice on the PNCP portal."""
    if not cnpj or not year or not sequence:
        return None
    return f"{PORTAL_BASE_URL}/{cnpj}/{year}/{sequence}"


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse PNCP timestamps ("2024-05-02T10:15:00", optional fraction/zone)."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.strptime(text[:10], "%Y-%m-%d")
        except ValueError:
            logger.debug("Data inválida ignorada: %s", value)
            return None
    # Stored naive (UTC offsets are not used by the portal consistently)
    return parsed.replace(tzinfo=None)


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_record(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Map one item of ``/v1/contratacoes/publicacao`` to column values.

    Args:
        raw: Item as returned by the API

    Returns:
        Column dict, or None if the item has no control number
    """
    control_number = raw.get("numeroControlePNCP")
    if not control_number:
        logger.debug("Item sem numeroControlePNCP ignorado")
        return None

    entity = raw.get("orgaoEntidade") or {}
    unit = raw.get("unidadeOrgao") or {}
    cnpj = entity.get("cnpj")
    year = _to_int(raw.get("anoCompra"))
    sequence = _to_int(raw.get("sequencialCompra"))
    state = unit.get("ufSigla")

    return {
        "control_number": str(control_number),
        "entity_cnpj": cnpj,
        "entity_name": entity.get("razaoSocial"),
        "unit_name": unit.get("nomeUnidade"),
        "municipality": unit.get("municipioNome"),
        "state": state.upper() if isinstance(state, str) else None,
        "purchase_year": year,
        "purchase_sequence": sequence,
        "process_number": raw.get("processo"),
        "modality": raw.get("modalidadeNome"),
        "dispute_mode": raw.get("modoDisputaNome"),
        "status": raw.get("situacaoCompraNome"),
        "description": (raw.get("objetoCompra") or "").strip(),
        "complementary_info": raw.get("informacaoComplementar"),
        "estimated_value": _to_float(raw.get("valorTotalEstimado")),
        "published_at": parse_datetime(raw.get("dataPublicacaoPncp")),
        "updated_at": parse_datetime(raw.get("dataAtualizacao")),
        "source_link": raw.get("linkSistemaOrigem"),
        "portal_link": build_portal_link(cnpj, year, sequence),
    }
