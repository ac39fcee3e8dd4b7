"""
conftest.py — Shared pytest fixtures for the Ingenio Estimator backend test suite.

No database or network fixtures are defined here. Engine and service tests are
pure unit tests; route tests go through FastAPI's in-process TestClient.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``ingenio.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any ingenio imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_line():
    """Factory for ResourceLine: make_line(quantity, unit_cost, waste_pct=0)."""
    from ingenio.models.budget_schema import ResourceLine

    def _make(quantity, unit_cost, waste_pct=0.0, description="recurso", unit="und", total=0.0):
        return ResourceLine(
            description=description,
            unit=unit,
            quantity=quantity,
            unit_cost=unit_cost,
            waste_pct=waste_pct,
            total=total,
        )
    return _make


@pytest.fixture
def make_item():
    """
    Factory for LineItem with all percentages defaulting to 0 and empty
    categories, so each test states only what it exercises.
    """
    from ingenio.models.budget_schema import LineItem, ResourceAnalysis

    def _make(
        materials=(),
        equipment=(),
        labor=(),
        quantity=1.0,
        overhead_pct=0.0,
        profit_pct=0.0,
        adjustment_pct=0.0,
        labor_burden_pct=0.0,
        labor_meal_allowance=0.0,
        code="01",
        unit_price=0.0,
        total_price=0.0,
    ):
        return LineItem(
            code=code,
            description=f"Partida {code}",
            unit="m3",
            quantity=quantity,
            adjustment_pct=adjustment_pct,
            unit_price=unit_price,
            total_price=total_price,
            analysis=ResourceAnalysis(
                materials=list(materials),
                equipment=list(equipment),
                labor=list(labor),
                production_rate=20.0,
                production_rate_unit="m3/día",
                labor_burden_pct=labor_burden_pct,
                labor_meal_allowance=labor_meal_allowance,
                overhead_pct=overhead_pct,
                profit_pct=profit_pct,
            ),
        )
    return _make


@pytest.fixture
def reference_item(make_item, make_line):
    """
    The worked example used throughout the suite:

      material  qty=5  cost=10 waste=0   → 50
      equipment qty=2  cost=50           → 100
      labor     qty=3  cost=20           → 60 base
      CAS 100 %, cesta ticket 5, metrado 10,
      administración 15 %, utilidad 10 %, factor de ajuste 0 %

      labor_total = 60 + 60 + 3×5 = 135; direct = 285
      overhead = 42.75; profit = 32.775; unit price = 360.525
      total price = 3605.25
    """
    return make_item(
        materials=[make_line(5, 10, 0, description="Cemento", unit="saco")],
        equipment=[make_line(2, 50, description="Mezcladora", unit="dia")],
        labor=[make_line(3, 20, description="Obrero", unit="jornada")],
        quantity=10,
        overhead_pct=15,
        profit_pct=10,
        labor_burden_pct=100,
        labor_meal_allowance=5,
        code="E-331.120",
    )


@pytest.fixture
def budget(make_item, make_line, reference_item):
    """Three-partida budget; the middle one is the reference item."""
    from ingenio.models.budget_schema import Budget, BudgetConfig

    first = make_item(
        materials=[make_line(10, 2, 10)],
        quantity=4,
        overhead_pct=12,
        profit_pct=10,
        code="E-100",
    )
    last = make_item(
        labor=[make_line(2, 30), make_line(2, 20)],
        quantity=2,
        labor_burden_pct=200,
        labor_meal_allowance=5,
        code="E-500",
    )
    return Budget(
        project_title="Losa de concreto",
        discipline="CIVIL",
        line_items=[first, reference_item, last],
        offer_config=BudgetConfig(advance_pct=30, validity_days=45, vat_pct=16),
    )


# ---------------------------------------------------------------------------
# Raw upstream payloads (AI generation service shape)
# ---------------------------------------------------------------------------

@pytest.fixture
def raw_partida():
    """One partida as the AI service emits it: Spanish keys, asserted totals."""
    return {
        "codigo": "E-331.120",
        "descripcion": "Concreto f'c 250 kg/cm2",
        "unidad": "m3",
        "metrado": 10,
        "precioUnitario": 360.525,
        "precioTotal": 3605.25,
        "apu": {
            "materiales": [
                {"descripcion": "Cemento", "unidad": "saco", "cantidad": 5, "costoUnitario": 10, "total": 50},
            ],
            "equipos": [
                {"descripcion": "Mezcladora", "unidad": "dia", "cantidad": 2, "costoUnitario": 50, "total": 100},
            ],
            "manoDeObra": [
                {"descripcion": "Obrero", "unidad": "jornada", "cantidad": 3, "costoUnitario": 20, "total": 60},
            ],
            "rendimiento": 20,
            "laborCASPorcentaje": 100,
            "laborCestaTicket": 5,
            "administracionPorcentaje": 15,
            "utilidadPorcentaje": 10,
        },
    }


@pytest.fixture
def raw_project(raw_partida):
    """
    A ProjectResponse-shaped payload. The second partida has a wrong asserted
    unit price (the model's arithmetic is off) and several missing fields.
    """
    sloppy = {
        "codigo": "E-410",
        "descripcion": "Encofrado de madera",
        "unidad": "m2",
        "metrado": "20",
        "precioUnitario": 99.0,
        "apu": {
            "materiales": [
                {"descripcion": "Tabla", "unidad": "pza", "cantidad": 2, "costoUnitario": "4.5", "desperdicio": "10%"},
            ],
            "manoDeObra": [
                {"descripcion": "Carpintero", "unidad": "jornada", "cantidad": 0.5, "costoUnitario": 30},
            ],
            "administracionPorcentaje": 12,
            "utilidadPorcentaje": None,
        },
    }
    return {
        "projectTitle": "Vivienda unifamiliar",
        "discipline": "CIVIL",
        "presupuesto": [raw_partida, sloppy],
        "presupuestoConfig": {"porcentajeAnticipo": 40, "diasValidez": 60, "porcentajeIVA": 16},
    }


# ---------------------------------------------------------------------------
# Metrics and HTTP client
# ---------------------------------------------------------------------------

@pytest.fixture
def fresh_tracker():
    """The module-level PerformanceTracker, reset before and after the test."""
    from ingenio.services.perf_monitor import tracker
    tracker.reset()
    yield tracker
    tracker.reset()


@pytest.fixture(scope="session")
def client():
    """In-process HTTP client for the FastAPI app."""
    from fastapi.testclient import TestClient
    from ingenio.main import app
    with TestClient(app) as c:
        yield c
