"""
Budget routes — APU recalculation, edits, AI replacements and estimate summary.

POST /api/budget/recalculate               — raw project payload → recalculated budget + summary
POST /api/budget/summary                   — budget → subtotal / IVA / total / anticipo
POST /api/budget/line-items/recalculate    — one partida → recalculated partida
POST /api/budget/line-items/breakdown      — one partida → cascade intermediate values
POST /api/budget/line-items/edit           — budget + index + edit → budget
POST /api/budget/line-items/replace        — budget + AI partidas → merged, recalculated budget
"""
import logging
from dataclasses import asdict
from typing import Any, Dict

from fastapi import APIRouter, Body, HTTPException, Request

from ingenio.errors import BudgetError
from ingenio.models.budget_schema import (
    Budget,
    BudgetEditRequest,
    LineItem,
    LineItemReplaceRequest,
)
from ingenio.services import budget_engine
from ingenio.services.apu_engine import calculate_breakdown, recalculate
from ingenio.services.normalization import normalize_budget
from ingenio.services.perf_monitor import tracker

router = APIRouter(prefix="/api/budget", tags=["Budget"])
logger = logging.getLogger("ingenio-api.budget-routes")


def _reject(request: Request, exc: BudgetError, reason: str) -> HTTPException:
    tracker.record_error(reason)
    logger.warning(
        f"{reason}: {exc}",
        extra={"request_id": getattr(request.state, "request_id", None)},
    )
    return HTTPException(status_code=422, detail=str(exc))


def _count(request: Request, budget: Budget) -> None:
    """Expose the partida count to RequestTimingMiddleware."""
    request.state.line_item_count = len(budget.line_items)


def _recalculation_body(request: Request, result: budget_engine.BudgetRecalculation) -> Dict[str, Any]:
    _count(request, result.budget)
    return {
        "budget": result.budget,
        "discrepancies": [asdict(d) for d in result.discrepancies],
        "summary": asdict(budget_engine.summarize_budget(result.budget)),
    }


# ── Whole budget ────────────────────────────────────────────────────────────

@router.post("/recalculate")
async def recalculate_project_budget(request: Request, payload: Dict[str, Any] = Body(...)):
    """
    Entry point for the AI generation consumer: normalize the raw project
    payload, recalculate every partida and report upstream price mismatches.
    """
    try:
        budget = normalize_budget(payload)
    except BudgetError as e:
        raise _reject(request, e, "invalid_payload")
    return _recalculation_body(request, budget_engine.recalculate_budget(budget))


@router.post("/summary")
async def budget_summary(request: Request, budget: Budget):
    """
    Estimate totals. Partidas are repriced first so stale prices never leak
    in; this is a read, so it is not counted as a budget recalculation.
    """
    repriced = budget.model_copy(
        update={"line_items": [recalculate(item) for item in budget.line_items]}
    )
    _count(request, repriced)
    return asdict(budget_engine.summarize_budget(repriced))


# ── Single partida ──────────────────────────────────────────────────────────

@router.post("/line-items/recalculate", response_model=LineItem)
async def recalculate_line_item(item: LineItem):
    tracker.record_line_items_recalculated(1)
    return recalculate(item)


@router.post("/line-items/breakdown")
async def line_item_breakdown(item: LineItem):
    return asdict(calculate_breakdown(item))


@router.post("/line-items/edit", response_model=Budget)
async def edit_line_item(request: Request, req: BudgetEditRequest):
    """UI edit handler: apply one edit to one partida and recalculate only that partida."""
    try:
        budget = budget_engine.apply_edit(req.budget, req.index, req.edit)
    except BudgetError as e:
        raise _reject(request, e, "invalid_edit")
    _count(request, budget)
    return budget


@router.post("/line-items/replace")
async def replace_line_items(request: Request, req: LineItemReplaceRequest):
    """AI modification flow: incoming partidas are normalized and recalculated before merge."""
    try:
        result = budget_engine.replace_line_items(req.budget, req.line_items)
    except BudgetError as e:
        raise _reject(request, e, "invalid_payload")
    return _recalculation_body(request, result)
