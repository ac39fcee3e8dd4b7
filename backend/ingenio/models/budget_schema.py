"""
Budget (presupuesto) wire models.

Attribute names are English; every field carries the Spanish camelCase alias
used by the AI generation service and the frontend, so payloads round-trip
unchanged. Responses are serialized by alias.

Derived fields (ResourceLine.total, LineItem.unit_price, LineItem.total_price)
are never authoritative: the APU engine overwrites them on every recalculation.
"""
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

from ingenio import config

ResourceCategory = Literal["materials", "equipment", "labor"]

# Spanish wire names accepted wherever a category is addressed.
CATEGORY_ALIASES = {
    "materials": "materials",
    "materiales": "materials",
    "equipment": "equipment",
    "equipos": "equipment",
    "labor": "labor",
    "manoDeObra": "labor",
}


class ResourceLine(BaseModel):
    """One material, piece of equipment or labor role inside an APU."""
    description: str = Field(..., alias="descripcion")
    unit: str = Field(..., alias="unidad")
    quantity: float = Field(..., alias="cantidad", description="Consumption per unit of the parent partida")
    unit_cost: float = Field(..., alias="costoUnitario")
    waste_pct: float = Field(0.0, alias="desperdicio", description="Materials only, whole percent (10 = 10%)")
    total: float = Field(0.0, alias="total", description="Derived")

    model_config = {"populate_by_name": True}


class ResourceAnalysis(BaseModel):
    """Análisis de Precio Unitario (APU) owned by exactly one partida."""
    materials: List[ResourceLine] = Field(..., alias="materiales")
    equipment: List[ResourceLine] = Field(..., alias="equipos")
    labor: List[ResourceLine] = Field(..., alias="manoDeObra")
    production_rate: float = Field(0.0, alias="rendimiento", description="Informational only")
    production_rate_unit: str = Field("", alias="rendimientoUnidad", description='e.g. "m3/día"')
    labor_burden_pct: float = Field(0.0, alias="laborCASPorcentaje", description="Costos Asociados al Salario")
    labor_meal_allowance: float = Field(0.0, alias="laborCestaTicket", description="Flat amount per labor unit (jornada)")
    overhead_pct: float = Field(..., alias="administracionPorcentaje")
    profit_pct: float = Field(..., alias="utilidadPorcentaje")

    model_config = {"populate_by_name": True}


class LineItem(BaseModel):
    """Partida — one priced row of the bill of quantities."""
    code: str = Field(..., alias="codigo")
    description: str = Field(..., alias="descripcion")
    unit: str = Field(..., alias="unidad")
    quantity: float = Field(..., alias="metrado")
    adjustment_pct: float = Field(0.0, alias="factorAjuste", description="Signed contingency %, applied last")
    unit_price: float = Field(0.0, alias="precioUnitario", description="Derived")
    total_price: float = Field(0.0, alias="precioTotal", description="Derived")
    analysis: ResourceAnalysis = Field(..., alias="apu")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "codigo": "E-331.120.120",
                "descripcion": "Concreto f'c 250 kg/cm2 para losas",
                "unidad": "m3",
                "metrado": 10,
                "factorAjuste": 0,
                "precioUnitario": 0,
                "precioTotal": 0,
                "apu": {
                    "materiales": [
                        {"descripcion": "Cemento", "unidad": "saco", "cantidad": 8, "costoUnitario": 12, "desperdicio": 5},
                    ],
                    "equipos": [
                        {"descripcion": "Mezcladora 1 saco", "unidad": "dia", "cantidad": 0.1, "costoUnitario": 60},
                    ],
                    "manoDeObra": [
                        {"descripcion": "Obrero", "unidad": "jornada", "cantidad": 1.5, "costoUnitario": 20},
                    ],
                    "rendimiento": 8,
                    "rendimientoUnidad": "m3/día",
                    "laborCASPorcentaje": 250,
                    "laborCestaTicket": 4,
                    "administracionPorcentaje": 15,
                    "utilidadPorcentaje": 10,
                },
            }
        },
    }


class BudgetConfig(BaseModel):
    """Offer conditions printed below the bill of quantities."""
    advance_pct: float = Field(config.DEFAULT_ADVANCE_PCT, alias="porcentajeAnticipo")
    validity_days: int = Field(config.DEFAULT_VALIDITY_DAYS, alias="diasValidez")
    vat_pct: float = Field(config.DEFAULT_VAT_PCT, alias="porcentajeIVA")

    model_config = {"populate_by_name": True}


class Budget(BaseModel):
    """The estimate: ordered partidas plus offer conditions."""
    project_title: str = Field("", alias="projectTitle")
    discipline: str = Field("", alias="discipline")
    line_items: List[LineItem] = Field(default_factory=list, alias="presupuesto")
    offer_config: BudgetConfig = Field(default_factory=BudgetConfig, alias="presupuestoConfig")

    model_config = {"populate_by_name": True}


# ─── Edit requests (UI edit handler) ────────────────────────────────────────

EditAction = Literal[
    "set_resource_field",
    "add_resource",
    "remove_resource",
    "set_analysis_parameter",
    "set_line_item_field",
]


class LineItemEdit(BaseModel):
    """A single user edit to one partida."""
    action: EditAction
    category: Optional[str] = Field(None, description="materials | equipment | labor (Spanish names accepted)")
    resource_index: Optional[int] = Field(None, alias="resourceIndex")
    field_name: Optional[str] = Field(None, alias="field")
    value: Any = None
    resource: Optional[ResourceLine] = None

    model_config = {"populate_by_name": True}


class BudgetEditRequest(BaseModel):
    budget: Budget
    index: int = Field(..., ge=0, description="Position of the partida in budget.presupuesto")
    edit: LineItemEdit


class LineItemReplaceRequest(BaseModel):
    budget: Budget
    line_items: List[Any] = Field(..., alias="partidas", description="Raw partidas from the AI modification flow")

    model_config = {"populate_by_name": True}
