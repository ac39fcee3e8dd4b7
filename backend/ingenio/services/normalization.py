"""
normalization.py — Boundary pass between upstream budget payloads and the APU engine.

The AI generation service (and, less often, the frontend) sends partidas with
optional, null or string-typed numeric fields. Everything is defaulted here so
the engine always receives a field-complete LineItem:

  - absent / null / unparsable numerics   → 0 (or the configured default)
  - desperdicio on equipment or labor     → dropped
  - absent rendimientoUnidad              → "<unidad>/día"
  - absent codigo                         → zero-padded position ("001")
  - upstream line totals                  → discarded (recomputed by the engine)

Upstream precioUnitario / precioTotal are preserved verbatim so the budget
layer can report where the model's arithmetic disagrees with the engine.
"""

import logging
import math
from typing import Any, Dict, List, Mapping, Optional

from ingenio import config
from ingenio.errors import BudgetPayloadError
from ingenio.models.budget_schema import (
    Budget,
    BudgetConfig,
    LineItem,
    ResourceAnalysis,
    ResourceLine,
)

logger = logging.getLogger("ingenio-api.normalization")

# wire key → engine category
_CATEGORY_KEYS: Dict[str, str] = {
    "materiales": "materials",
    "equipos": "equipment",
    "manoDeObra": "labor",
}


def coerce_number(value: Any, default: float = 0.0) -> float:
    """
    Best-effort float conversion for model-produced values.

    Accepts ints, floats and numeric strings ("12", " 12.5 ", "16%", "12,5").
    None, booleans, blank or unparsable strings, NaN and ±inf yield ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().rstrip("%").strip()
        if "," in text and "." not in text:
            text = text.replace(",", ".")
        try:
            number = float(text)
        except ValueError:
            return default
    else:
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _number_field(raw: Mapping[str, Any], key: str, code: str, default: float = 0.0) -> float:
    value = raw.get(key)
    if value is None:
        return default
    number = coerce_number(value, math.nan)
    if math.isnan(number):
        logger.warning(
            "non-numeric %s=%r defaulted to %s", key, value, default,
            extra={"partida_code": code},
        )
        return default
    return number


def _as_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise BudgetPayloadError(f"{what} must be an object, got {type(value).__name__}")
    return value


# ---------------------------------------------------------------------------
# Resource lines and APU
# ---------------------------------------------------------------------------

def normalize_resource_line(raw: Any, category: str, code: str = "") -> ResourceLine:
    """Default one APU row. ``category`` is materials | equipment | labor."""
    row = _as_mapping(raw, f"APU {category} row")
    waste = _number_field(row, "desperdicio", code) if category == "materials" else 0.0
    return ResourceLine(
        description=_coerce_text(row.get("descripcion")),
        unit=_coerce_text(row.get("unidad")),
        quantity=_number_field(row, "cantidad", code),
        unit_cost=_number_field(row, "costoUnitario", code),
        waste_pct=waste,
        total=0.0,
    )


def normalize_analysis(raw: Any, unit: str = "", code: str = "") -> ResourceAnalysis:
    """Default one APU. A missing APU (None) is an empty analysis, not an error."""
    apu = _as_mapping(raw if raw is not None else {}, "apu")

    categories: Dict[str, List[ResourceLine]] = {}
    for key, category in _CATEGORY_KEYS.items():
        rows = apu.get(key)
        if rows is None:
            rows = []
        elif not isinstance(rows, list):
            logger.warning(
                "apu.%s is %s, treated as empty", key, type(rows).__name__,
                extra={"partida_code": code},
            )
            rows = []
        categories[category] = [normalize_resource_line(r, category, code) for r in rows]

    rate_unit = _coerce_text(apu.get("rendimientoUnidad"))
    if not rate_unit and unit:
        rate_unit = f"{unit}/día"

    return ResourceAnalysis(
        materials=categories["materials"],
        equipment=categories["equipment"],
        labor=categories["labor"],
        production_rate=_number_field(apu, "rendimiento", code),
        production_rate_unit=rate_unit,
        labor_burden_pct=_number_field(apu, "laborCASPorcentaje", code),
        labor_meal_allowance=_number_field(apu, "laborCestaTicket", code),
        overhead_pct=_number_field(apu, "administracionPorcentaje", code),
        profit_pct=_number_field(apu, "utilidadPorcentaje", code),
    )


# ---------------------------------------------------------------------------
# Partidas and the whole presupuesto
# ---------------------------------------------------------------------------

def normalize_line_item(raw: Any, position: int = 1) -> LineItem:
    """Default one partida. ``position`` is 1-based and only used for a missing codigo."""
    row = _as_mapping(raw, f"partida #{position}")
    code = _coerce_text(row.get("codigo")) or f"{position:03d}"
    unit = _coerce_text(row.get("unidad"))
    return LineItem(
        code=code,
        description=_coerce_text(row.get("descripcion")),
        unit=unit,
        quantity=_number_field(row, "metrado", code),
        adjustment_pct=_number_field(row, "factorAjuste", code),
        unit_price=_number_field(row, "precioUnitario", code),
        total_price=_number_field(row, "precioTotal", code),
        analysis=normalize_analysis(row.get("apu"), unit, code),
    )


def has_code(raw: Any) -> bool:
    """True when the upstream partida carries its own non-blank codigo."""
    return isinstance(raw, Mapping) and bool(_coerce_text(raw.get("codigo")))


def normalize_line_items(raw: Any) -> List[LineItem]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise BudgetPayloadError(f"presupuesto must be a list, got {type(raw).__name__}")
    return [normalize_line_item(r, i) for i, r in enumerate(raw, start=1)]


def normalize_budget_config(raw: Optional[Any]) -> BudgetConfig:
    """Offer conditions; anything missing falls back to the configured defaults."""
    cfg = _as_mapping(raw if raw is not None else {}, "presupuestoConfig")
    return BudgetConfig(
        advance_pct=coerce_number(cfg.get("porcentajeAnticipo"), config.DEFAULT_ADVANCE_PCT),
        validity_days=int(coerce_number(cfg.get("diasValidez"), float(config.DEFAULT_VALIDITY_DAYS))),
        vat_pct=coerce_number(cfg.get("porcentajeIVA"), config.DEFAULT_VAT_PCT),
    )


def normalize_budget(raw: Any) -> Budget:
    """Normalize a full project payload (ProjectResponse shape) into a Budget."""
    project = _as_mapping(raw, "project payload")
    budget = Budget(
        project_title=_coerce_text(project.get("projectTitle")),
        discipline=_coerce_text(project.get("discipline")),
        line_items=normalize_line_items(project.get("presupuesto")),
        offer_config=normalize_budget_config(project.get("presupuestoConfig")),
    )
    logger.info(
        "budget normalized",
        extra={"line_item_count": len(budget.line_items)},
    )
    return budget
