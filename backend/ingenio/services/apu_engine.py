"""
apu_engine.py — Unit-price cascade for a single partida (APU rollup).

The cascade runs in strict order; every markup applies to the running
subtotal, never to the original direct cost:

  1. Resource totals     materials  q × c × (1 + waste/100)
                         equipment  q × c
                         labor      q × c            (base wage)
  2. Category subtotals  Σ line totals per category
  3. Labor on-costs      burden = base × CAS/100
                         meal   = Σ labor q × cesta ticket
  4. Direct cost         materials + equipment + burdened labor
  5. Overhead            direct × admin/100
  6. Profit              (direct + overhead) × utilidad/100
  7. Adjustment          price before adjustment × factorAjuste/100
  8. Line total          unit price × metrado

Percentages are whole numbers (16 = 16 %). Arithmetic is plain float and
nothing is rounded here; rounding belongs to whoever displays the numbers.
The engine reads nothing but the line item it is handed, performs no
validation and cannot fail: negative or zero results pass straight through.
"""

from dataclasses import dataclass
from typing import List, Tuple

from ingenio.models.budget_schema import LineItem, ResourceLine


MATERIALS = "materials"
EQUIPMENT = "equipment"
LABOR = "labor"


@dataclass(frozen=True)
class CostBreakdown:
    """Every intermediate value of the cascade for one unit of the partida."""
    materials_total: float
    equipment_total: float
    labor_base_total: float
    labor_burden_amount: float
    labor_units: float
    labor_meal_amount: float
    labor_total: float
    direct_cost: float
    overhead_amount: float
    subtotal_after_overhead: float
    profit_amount: float
    price_before_adjustment: float
    adjustment_amount: float
    unit_price: float
    total_price: float


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

def resource_line_total(line: ResourceLine, category: str) -> float:
    """Step 1. Waste applies to materials only; equipment and labor are q × c."""
    if category == MATERIALS:
        return line.quantity * line.unit_cost * (1 + line.waste_pct / 100)
    return line.quantity * line.unit_cost


def labor_units(labor: List[ResourceLine]) -> float:
    """
    Man-days (jornadas) consumed per unit of output, for the meal allowance.

    This is the same ``quantity`` field that multiplies the wage in step 1;
    there is no separate headcount field.
    """
    return sum((line.quantity for line in labor), 0.0)


def _priced(lines: List[ResourceLine], category: str) -> List[ResourceLine]:
    return [
        line.model_copy(update={"total": resource_line_total(line, category)})
        for line in lines
    ]


def _subtotal(lines: List[ResourceLine]) -> float:
    return sum((line.total for line in lines), 0.0)


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------

def _run_cascade(
    item: LineItem,
) -> Tuple[CostBreakdown, List[ResourceLine], List[ResourceLine], List[ResourceLine]]:
    apu = item.analysis

    materials = _priced(apu.materials, MATERIALS)
    equipment = _priced(apu.equipment, EQUIPMENT)
    labor = _priced(apu.labor, LABOR)

    materials_total = _subtotal(materials)
    equipment_total = _subtotal(equipment)
    labor_base_total = _subtotal(labor)

    labor_burden_amount = labor_base_total * (apu.labor_burden_pct / 100)
    units = labor_units(labor)
    labor_meal_amount = units * apu.labor_meal_allowance
    labor_total = labor_base_total + labor_burden_amount + labor_meal_amount

    direct_cost = materials_total + equipment_total + labor_total

    overhead_amount = direct_cost * (apu.overhead_pct / 100)
    subtotal_after_overhead = direct_cost + overhead_amount

    profit_amount = subtotal_after_overhead * (apu.profit_pct / 100)
    price_before_adjustment = subtotal_after_overhead + profit_amount

    adjustment_amount = price_before_adjustment * (item.adjustment_pct / 100)
    unit_price = price_before_adjustment + adjustment_amount

    total_price = unit_price * item.quantity

    breakdown = CostBreakdown(
        materials_total=materials_total,
        equipment_total=equipment_total,
        labor_base_total=labor_base_total,
        labor_burden_amount=labor_burden_amount,
        labor_units=units,
        labor_meal_amount=labor_meal_amount,
        labor_total=labor_total,
        direct_cost=direct_cost,
        overhead_amount=overhead_amount,
        subtotal_after_overhead=subtotal_after_overhead,
        profit_amount=profit_amount,
        price_before_adjustment=price_before_adjustment,
        adjustment_amount=adjustment_amount,
        unit_price=unit_price,
        total_price=total_price,
    )
    return breakdown, materials, equipment, labor


def calculate_breakdown(item: LineItem) -> CostBreakdown:
    """Return the cascade's intermediate values without building a new partida."""
    breakdown, _, _, _ = _run_cascade(item)
    return breakdown


def recalculate(item: LineItem) -> LineItem:
    """
    Return a new partida with every derived field recomputed.

    Derived fields: each resource line's ``total``, the partida's
    ``unit_price`` and ``total_price``. Nothing else is touched and the
    input is not mutated. Idempotent: recalculate(recalculate(x)) == recalculate(x).
    """
    breakdown, materials, equipment, labor = _run_cascade(item)
    analysis = item.analysis.model_copy(
        update={"materials": materials, "equipment": equipment, "labor": labor}
    )
    return item.model_copy(
        update={
            "analysis": analysis,
            "unit_price": breakdown.unit_price,
            "total_price": breakdown.total_price,
        }
    )
