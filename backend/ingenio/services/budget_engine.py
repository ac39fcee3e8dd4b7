"""
budget_engine.py — Presupuesto-level operations built on the APU engine.

Covers:
  - Whole-budget recalculation (each partida independently, order preserved)
  - Verification of AI-asserted prices against the recomputed ones
  - AI modification flow: normalize + recalculate incoming partidas, merge by codigo
  - UI edits to one partida (resource rows, APU parameters, top-level fields)
  - Estimate summary: subtotal, IVA, total general, anticipo, validez, cost distribution

Every operation returns new values; inputs are never mutated. An edit to one
partida never recalculates its siblings.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from ingenio import config
from ingenio.errors import LineItemEditError
from ingenio.models.budget_schema import (
    CATEGORY_ALIASES,
    Budget,
    LineItem,
    LineItemEdit,
    ResourceLine,
)
from ingenio.services.apu_engine import MATERIALS, calculate_breakdown, recalculate
from ingenio.services.normalization import coerce_number, has_code, normalize_line_items
from ingenio.services.perf_monitor import timed, tracker

logger = logging.getLogger("ingenio-api.budget")


# ---------------------------------------------------------------------------
# Editable fields: wire alias → (attribute, kind)
# ---------------------------------------------------------------------------

_RESOURCE_FIELDS: Dict[str, tuple] = {
    "description": ("description", "text"),
    "descripcion": ("description", "text"),
    "unit": ("unit", "text"),
    "unidad": ("unit", "text"),
    "quantity": ("quantity", "number"),
    "cantidad": ("quantity", "number"),
    "unit_cost": ("unit_cost", "number"),
    "costoUnitario": ("unit_cost", "number"),
    "waste_pct": ("waste_pct", "number"),
    "desperdicio": ("waste_pct", "number"),
}

_ANALYSIS_FIELDS: Dict[str, tuple] = {
    "labor_burden_pct": ("labor_burden_pct", "number"),
    "laborCASPorcentaje": ("labor_burden_pct", "number"),
    "labor_meal_allowance": ("labor_meal_allowance", "number"),
    "laborCestaTicket": ("labor_meal_allowance", "number"),
    "overhead_pct": ("overhead_pct", "number"),
    "administracionPorcentaje": ("overhead_pct", "number"),
    "profit_pct": ("profit_pct", "number"),
    "utilidadPorcentaje": ("profit_pct", "number"),
    "production_rate": ("production_rate", "number"),
    "rendimiento": ("production_rate", "number"),
    "production_rate_unit": ("production_rate_unit", "text"),
    "rendimientoUnidad": ("production_rate_unit", "text"),
}

# unit_price / total_price are derived, not editable.
_LINE_ITEM_FIELDS: Dict[str, tuple] = {
    "description": ("description", "text"),
    "descripcion": ("description", "text"),
    "unit": ("unit", "text"),
    "unidad": ("unit", "text"),
    "quantity": ("quantity", "number"),
    "metrado": ("quantity", "number"),
    "adjustment_pct": ("adjustment_pct", "number"),
    "factorAjuste": ("adjustment_pct", "number"),
}


@dataclass(frozen=True)
class PriceDiscrepancy:
    """An upstream-asserted price that disagrees with the recomputed one."""
    code: str
    field: str          # "precioUnitario" | "precioTotal"
    asserted: float
    computed: float


@dataclass
class BudgetRecalculation:
    budget: Budget
    discrepancies: List[PriceDiscrepancy] = field(default_factory=list)


@dataclass(frozen=True)
class BudgetSummary:
    subtotal: float
    vat_pct: float
    vat_amount: float
    grand_total: float
    advance_pct: float
    advance_amount: float
    validity_days: int
    line_item_count: int
    cost_distribution: Dict[str, float]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _resolve(name: Optional[str], table: Dict[str, tuple], what: str) -> tuple:
    if name not in table:
        raise LineItemEditError(f"{what} '{name}' is not editable")
    return table[name]


def _convert(value: Any, kind: str, name: str, code: str) -> Any:
    if kind != "number":
        return "" if value is None else str(value)
    if value is None:
        return 0.0
    number = coerce_number(value, math.nan)
    if math.isnan(number):
        logger.warning(
            "edit %s=%r is not a number, set to 0", name, value,
            extra={"partida_code": code},
        )
        return 0.0
    return number


def _free_code(taken: Set[str], position: int) -> str:
    while f"{position:03d}" in taken:
        position += 1
    return f"{position:03d}"


def resolve_category(category: Optional[str]) -> str:
    """Map materials/equipment/labor (or materiales/equipos/manoDeObra) to the attribute name."""
    if category not in CATEGORY_ALIASES:
        raise LineItemEditError(f"Unknown APU category '{category}'")
    return CATEGORY_ALIASES[category]


def _with_lines(item: LineItem, category: str, lines: List[ResourceLine]) -> LineItem:
    analysis = item.analysis.model_copy(update={category: lines})
    return item.model_copy(update={"analysis": analysis})


def _check_prices(asserted: LineItem, computed: LineItem, tolerance: float) -> List[PriceDiscrepancy]:
    """Asserted values of exactly 0 count as "not asserted" and are skipped."""
    found: List[PriceDiscrepancy] = []
    for wire_name, attr in (("precioUnitario", "unit_price"), ("precioTotal", "total_price")):
        claimed = getattr(asserted, attr)
        actual = getattr(computed, attr)
        if claimed != 0.0 and abs(claimed - actual) > tolerance:
            found.append(PriceDiscrepancy(computed.code, wire_name, claimed, actual))
    return found


def _recalculate_items(
    items: List[LineItem], tolerance: float
) -> Tuple[List[LineItem], List[PriceDiscrepancy]]:
    recalculated: List[LineItem] = []
    discrepancies: List[PriceDiscrepancy] = []
    for item in items:
        new_item = recalculate(item)
        recalculated.append(new_item)
        discrepancies.extend(_check_prices(item, new_item, tolerance))

    for d in discrepancies:
        logger.warning(
            "upstream %s %.4f differs from computed %.4f",
            d.field, d.asserted, d.computed,
            extra={"partida_code": d.code},
        )
    return recalculated, discrepancies


# ---------------------------------------------------------------------------
# 1. Whole-budget recalculation
# ---------------------------------------------------------------------------

def recalculate_budget(budget: Budget, tolerance: Optional[float] = None) -> BudgetRecalculation:
    """
    Recalculate every partida independently, keeping order.

    The prices carried by the incoming partidas are compared with the
    recomputed ones; differences above ``tolerance`` (default
    config.PRICE_TOLERANCE) are returned and logged, never corrected upstream.
    """
    tol = config.PRICE_TOLERANCE if tolerance is None else tolerance
    start = time.perf_counter()

    items, discrepancies = _recalculate_items(budget.line_items, tol)

    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    tracker.record_budget_recalculated(
        duration_ms,
        line_items=len(items),
        discrepancies=len(discrepancies),
    )
    logger.info(
        "budget recalculated",
        extra={
            "line_item_count": len(items),
            "discrepancy_count": len(discrepancies),
            "duration_ms": duration_ms,
        },
    )
    return BudgetRecalculation(
        budget=budget.model_copy(update={"line_items": items}),
        discrepancies=discrepancies,
    )


# ---------------------------------------------------------------------------
# 2. AI modification flow
# ---------------------------------------------------------------------------

@timed
def replace_line_items(
    budget: Budget, incoming: Any, tolerance: Optional[float] = None
) -> BudgetRecalculation:
    """
    Accept partidas produced by the AI modification flow.

    Incoming raw partidas are normalized and recalculated before being trusted.
    A partida whose codigo already exists replaces it in place; new codigos
    are appended in incoming order; untouched partidas are kept as they are.

    Only a codigo sent by upstream is a merge key. Partidas without one are
    always appended, numbered after the existing partidas with the first
    position code not already taken.
    """
    tol = config.PRICE_TOLERANCE if tolerance is None else tolerance
    normalized = normalize_line_items(incoming)
    keyed = [has_code(raw) for raw in (incoming or [])]

    # existing codes and every upstream codigo in the batch are reserved
    taken = {item.code for item in budget.line_items}
    taken.update(item.code for item, is_keyed in zip(normalized, keyed) if is_keyed)
    prepared: List[LineItem] = []
    for item, is_keyed in zip(normalized, keyed):
        if not is_keyed:
            item = item.model_copy(update={"code": _free_code(taken, len(budget.line_items) + 1)})
            taken.add(item.code)
        prepared.append(item)

    accepted, discrepancies = _recalculate_items(prepared, tol)

    items = list(budget.line_items)
    positions = {item.code: i for i, item in enumerate(items)}
    replaced = appended = 0
    for new_item, is_keyed in zip(accepted, keyed):
        if is_keyed and new_item.code in positions:
            items[positions[new_item.code]] = new_item
            replaced += 1
        else:
            positions[new_item.code] = len(items)
            items.append(new_item)
            appended += 1

    tracker.record_line_items_recalculated(len(accepted), discrepancies=len(discrepancies))
    logger.info(
        "partidas replaced",
        extra={"replaced_count": replaced, "appended_count": appended},
    )
    return BudgetRecalculation(
        budget=budget.model_copy(update={"line_items": items}),
        discrepancies=discrepancies,
    )


# ---------------------------------------------------------------------------
# 3. UI edits to a single partida
# ---------------------------------------------------------------------------

def update_resource_line(
    item: LineItem, category: str, index: int, field_name: str, value: Any
) -> LineItem:
    """Set one field of one APU row, then recalculate the partida."""
    cat = resolve_category(category)
    attr, kind = _resolve(field_name, _RESOURCE_FIELDS, "Resource field")
    if attr == "waste_pct" and cat != MATERIALS:
        raise LineItemEditError("desperdicio applies to materials only")

    lines = list(getattr(item.analysis, cat))
    if not 0 <= index < len(lines):
        raise LineItemEditError(f"{cat} row {index} out of range (0..{len(lines) - 1})")
    lines[index] = lines[index].model_copy(update={attr: _convert(value, kind, field_name, item.code)})
    return recalculate(_with_lines(item, cat, lines))


def add_resource_line(item: LineItem, category: str, line: ResourceLine) -> LineItem:
    cat = resolve_category(category)
    if cat != MATERIALS:
        line = line.model_copy(update={"waste_pct": 0.0})
    lines = list(getattr(item.analysis, cat)) + [line]
    return recalculate(_with_lines(item, cat, lines))


def remove_resource_line(item: LineItem, category: str, index: int) -> LineItem:
    cat = resolve_category(category)
    lines = list(getattr(item.analysis, cat))
    if not 0 <= index < len(lines):
        raise LineItemEditError(f"{cat} row {index} out of range (0..{len(lines) - 1})")
    del lines[index]
    return recalculate(_with_lines(item, cat, lines))


def update_analysis_parameter(item: LineItem, field_name: str, value: Any) -> LineItem:
    """Set a CAS / cesta ticket / administración / utilidad / rendimiento value."""
    attr, kind = _resolve(field_name, _ANALYSIS_FIELDS, "APU parameter")
    analysis = item.analysis.model_copy(update={attr: _convert(value, kind, field_name, item.code)})
    return recalculate(item.model_copy(update={"analysis": analysis}))


def update_line_item_field(item: LineItem, field_name: str, value: Any) -> LineItem:
    """Set metrado, factorAjuste or a text field. Prices are derived, not editable."""
    attr, kind = _resolve(field_name, _LINE_ITEM_FIELDS, "Partida field")
    return recalculate(item.model_copy(update={attr: _convert(value, kind, field_name, item.code)}))


def apply_edit(budget: Budget, index: int, edit: LineItemEdit) -> Budget:
    """Apply one edit to partida ``index``; every other partida is left untouched."""
    items = list(budget.line_items)
    if not 0 <= index < len(items):
        raise LineItemEditError(f"Partida {index} out of range (0..{len(items) - 1})")
    item = items[index]

    if edit.action == "set_resource_field":
        if edit.resource_index is None:
            raise LineItemEditError("resourceIndex is required")
        new_item = update_resource_line(
            item, edit.category, edit.resource_index, edit.field_name, edit.value
        )
    elif edit.action == "add_resource":
        if edit.resource is None:
            raise LineItemEditError("resource is required")
        new_item = add_resource_line(item, edit.category, edit.resource)
    elif edit.action == "remove_resource":
        if edit.resource_index is None:
            raise LineItemEditError("resourceIndex is required")
        new_item = remove_resource_line(item, edit.category, edit.resource_index)
    elif edit.action == "set_analysis_parameter":
        new_item = update_analysis_parameter(item, edit.field_name, edit.value)
    else:
        new_item = update_line_item_field(item, edit.field_name, edit.value)

    items[index] = new_item
    tracker.record_line_items_recalculated(1)
    logger.debug("edit applied", extra={"partida_code": new_item.code})
    return budget.model_copy(update={"line_items": items})


# ---------------------------------------------------------------------------
# 4. Estimate summary
# ---------------------------------------------------------------------------

def summarize_budget(budget: Budget) -> BudgetSummary:
    """
    Totals printed under the bill of quantities.

        subtotal    = Σ precioTotal
        IVA         = subtotal × porcentajeIVA / 100
        total       = subtotal + IVA
        anticipo    = total × porcentajeAnticipo / 100

    cost_distribution is the direct cost per category (labor fully burdened)
    scaled by each partida's metrado. Reads the stored prices: pass a
    recalculated budget.
    """
    cfg = budget.offer_config
    subtotal = sum((item.total_price for item in budget.line_items), 0.0)
    vat_amount = subtotal * (cfg.vat_pct / 100)
    grand_total = subtotal + vat_amount
    advance_amount = grand_total * (cfg.advance_pct / 100)

    distribution = {"materials": 0.0, "labor": 0.0, "equipment": 0.0}
    for item in budget.line_items:
        b = calculate_breakdown(item)
        distribution["materials"] += b.materials_total * item.quantity
        distribution["labor"] += b.labor_total * item.quantity
        distribution["equipment"] += b.equipment_total * item.quantity

    return BudgetSummary(
        subtotal=subtotal,
        vat_pct=cfg.vat_pct,
        vat_amount=vat_amount,
        grand_total=grand_total,
        advance_pct=cfg.advance_pct,
        advance_amount=advance_amount,
        validity_days=cfg.validity_days,
        line_item_count=len(budget.line_items),
        cost_distribution=distribution,
    )
