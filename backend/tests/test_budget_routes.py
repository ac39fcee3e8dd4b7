"""
test_budget_routes.py — HTTP-level tests for the budget API.

Runs the FastAPI app in-process through TestClient; payloads use the Spanish
wire keys emitted by the AI generation service and the frontend.
"""

import pytest


def _budget_payload(raw_partida, **extra):
    payload = {
        "projectTitle": "Losa de concreto",
        "discipline": "CIVIL",
        "presupuesto": [raw_partida],
        "presupuestoConfig": {"porcentajeAnticipo": 30, "diasValidez": 45, "porcentajeIVA": 16},
    }
    payload.update(extra)
    return payload


@pytest.fixture
def full_partida(raw_partida):
    """raw_partida with every field present, as the frontend sends it back."""
    partida = dict(raw_partida, factorAjuste=0)
    apu = dict(partida["apu"], rendimientoUnidad="m3/día")
    for key in ("materiales", "equipos", "manoDeObra"):
        apu[key] = [dict(row, desperdicio=0) for row in apu[key]]
    partida["apu"] = apu
    return partida


class TestServiceEndpoints:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "active"

    def test_metrics_snapshot(self, client):
        body = client.get("/metrics").json()
        assert "uptime_seconds" in body
        assert "budgets_recalculated" in body
        assert "error_count_by_reason" in body

    def test_tracing_and_security_headers(self, client, full_partida):
        resp = client.post("/api/budget/line-items/recalculate", json=full_partida)
        assert resp.headers.get("X-Request-ID")
        assert float(resp.headers["X-Process-Time"]) >= 0.0
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"

    def test_line_item_count_header_on_budget_routes(self, client, raw_project, full_partida):
        resp = client.post("/api/budget/recalculate", json=raw_project)
        assert resp.headers["X-Line-Item-Count"] == "2"
        resp = client.post("/api/budget/summary", json=_budget_payload(full_partida))
        assert resp.headers["X-Line-Item-Count"] == "1"

    def test_no_line_item_count_outside_budget_routes(self, client, full_partida):
        resp = client.post("/api/budget/line-items/breakdown", json=full_partida)
        assert "X-Line-Item-Count" not in resp.headers
        assert "X-Line-Item-Count" not in client.get("/health").headers


class TestLineItemEndpoints:

    def test_recalculate_returns_spanish_keys(self, client, full_partida):
        full_partida["precioUnitario"] = 0
        resp = client.post("/api/budget/line-items/recalculate", json=full_partida)
        assert resp.status_code == 200
        body = resp.json()
        assert abs(body["precioUnitario"] - 360.525) < 1e-9
        assert abs(body["precioTotal"] - 3605.25) < 1e-7
        assert body["apu"]["manoDeObra"][0]["total"] == 60.0

    def test_breakdown(self, client, full_partida):
        body = client.post("/api/budget/line-items/breakdown", json=full_partida).json()
        assert body["labor_total"] == 135.0
        assert body["direct_cost"] == 285.0
        assert abs(body["profit_amount"] - 32.775) < 1e-9

    def test_missing_required_field_is_422(self, client, full_partida):
        del full_partida["apu"]
        assert client.post("/api/budget/line-items/recalculate", json=full_partida).status_code == 422


class TestBudgetEndpoints:

    def test_recalculate_raw_project(self, client, raw_project):
        resp = client.post("/api/budget/recalculate", json=raw_project)
        assert resp.status_code == 200
        body = resp.json()
        partidas = body["budget"]["presupuesto"]
        assert [p["codigo"] for p in partidas] == ["E-331.120", "E-410"]
        assert partidas[1]["apu"]["rendimientoUnidad"] == "m2/día"
        assert abs(partidas[1]["precioUnitario"] - 27.888) < 1e-9
        assert len(body["discrepancies"]) == 1
        assert body["discrepancies"][0]["code"] == "E-410"
        assert body["discrepancies"][0]["asserted"] == 99.0
        summary = body["summary"]
        assert summary["line_item_count"] == 2
        assert abs(summary["subtotal"] - (3605.25 + 557.76)) < 1e-7
        assert summary["advance_pct"] == 40.0
        assert summary["validity_days"] == 60

    def test_recalculate_rejects_non_list_presupuesto(self, client, fresh_tracker):
        resp = client.post("/api/budget/recalculate", json={"presupuesto": "ver anexo"})
        assert resp.status_code == 422
        assert "presupuesto" in resp.json()["detail"]
        assert fresh_tracker.get_metrics()["error_count_by_reason"] == {"invalid_payload": 1}

    def test_summary(self, client, full_partida):
        resp = client.post("/api/budget/summary", json=_budget_payload(full_partida))
        assert resp.status_code == 200
        s = resp.json()
        assert abs(s["vat_amount"] - 576.84) < 1e-7
        assert abs(s["grand_total"] - 4182.09) < 1e-7
        assert abs(s["advance_amount"] - 1254.627) < 1e-7
        assert abs(s["cost_distribution"]["labor"] - 1350.0) < 1e-7

    def test_summary_is_not_counted_as_recalculation(self, client, full_partida, fresh_tracker):
        """Asserted prices are stale on purpose; a summary read must not touch the metrics."""
        full_partida["precioUnitario"] = 1.0
        resp = client.post("/api/budget/summary", json=_budget_payload(full_partida))
        assert abs(resp.json()["subtotal"] - 3605.25) < 1e-7
        m = fresh_tracker.get_metrics()
        assert m["budgets_recalculated"] == 0
        assert m["line_items_recalculated"] == 0
        assert m["price_discrepancies_found"] == 0

    def test_edit(self, client, full_partida):
        req = {
            "budget": _budget_payload(full_partida),
            "index": 0,
            "edit": {"action": "set_line_item_field", "field": "metrado", "value": "20"},
        }
        resp = client.post("/api/budget/line-items/edit", json=req)
        assert resp.status_code == 200
        partida = resp.json()["presupuesto"][0]
        assert partida["metrado"] == 20.0
        assert abs(partida["precioTotal"] - 7210.5) < 1e-7

    def test_edit_unknown_category_is_422(self, client, full_partida, fresh_tracker):
        req = {
            "budget": _budget_payload(full_partida),
            "index": 0,
            "edit": {"action": "remove_resource", "category": "subcontratos", "resourceIndex": 0},
        }
        resp = client.post("/api/budget/line-items/edit", json=req)
        assert resp.status_code == 422
        assert fresh_tracker.get_metrics()["error_count_by_reason"] == {"invalid_edit": 1}

    def test_edit_unknown_action_is_422(self, client, full_partida):
        req = {
            "budget": _budget_payload(full_partida),
            "index": 0,
            "edit": {"action": "reprice_everything"},
        }
        assert client.post("/api/budget/line-items/edit", json=req).status_code == 422

    def test_replace(self, client, full_partida):
        incoming = {
            "codigo": "E-900",
            "descripcion": "Limpieza final",
            "unidad": "m2",
            "metrado": 100,
            "apu": {"manoDeObra": [{"descripcion": "Obrero", "cantidad": 0.1, "costoUnitario": 20}]},
        }
        req = {"budget": _budget_payload(full_partida), "partidas": [incoming]}
        resp = client.post("/api/budget/line-items/replace", json=req)
        assert resp.status_code == 200
        body = resp.json()
        assert [p["codigo"] for p in body["budget"]["presupuesto"]] == ["E-331.120", "E-900"]
        assert body["budget"]["presupuesto"][1]["precioTotal"] == 200.0
        assert body["discrepancies"] == []
        assert body["summary"]["line_item_count"] == 2

    def test_replace_rejects_non_object_partida(self, client, full_partida):
        req = {"budget": _budget_payload(full_partida), "partidas": ["E-900 Limpieza"]}
        assert client.post("/api/budget/line-items/replace", json=req).status_code == 422
