"""
Scenario Router — what-if bundles of proposed changes

Endpoints:
    GET    /api/contracts/{id}/scenarios                 — List scenarios (newest first)
    POST   /api/contracts/{id}/scenarios                 — Create an empty scenario
    DELETE /api/scenarios/{sid}                           — Delete a scenario
    GET    /api/scenarios/{sid}/changes                   — Proposed changes with link flags
    POST   /api/scenarios/{sid}/changes/{change_id}       — Bundle a change
    DELETE /api/scenarios/{sid}/changes/{change_id}       — Unbundle a change
    GET    /api/scenarios/{sid}/forecast                  — Baseline vs scenario series
    POST   /api/scenarios/{sid}/promote                   — Approve, bake and dissolve
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..cache import ForecastCache, get_cache
from ..database import get_db
from .. import crud
from ..engines.overlay import load_scenario_forecast, summarize_series
from ..engines.promotion import promote_scenario
from ..errors import NotFoundError, PromotionError, StoreError
from ..schemas import ScenarioCreate, ScenarioResponse

router = APIRouter(prefix="/api", tags=["Scenarios"])


def _get_scenario_or_404(db: Session, scenario_id: int):
    scenario = crud.get_scenario(db, scenario_id)
    if not scenario:
        raise HTTPException(status_code=404, detail=f"Scenario {scenario_id} not found")
    return scenario


@router.get("/contracts/{contract_id}/scenarios", response_model=list[ScenarioResponse])
def list_scenarios(contract_id: int, db: Session = Depends(get_db)):
    if not crud.get_contract(db, contract_id):
        raise HTTPException(status_code=404, detail=f"Contract {contract_id} not found")
    return crud.list_scenarios(db, contract_id)


@router.post("/contracts/{contract_id}/scenarios", response_model=ScenarioResponse, status_code=201)
def create_scenario(contract_id: int, data: ScenarioCreate, db: Session = Depends(get_db)):
    if not crud.get_contract(db, contract_id):
        raise HTTPException(status_code=404, detail=f"Contract {contract_id} not found")
    return crud.create_scenario(db, contract_id, data)


@router.delete("/scenarios/{scenario_id}", status_code=200)
def delete_scenario(
    scenario_id: int,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    scenario = _get_scenario_or_404(db, scenario_id)
    contract_id = scenario.contract_id
    crud.delete_scenario(db, scenario_id)
    cache.invalidate_scenario(contract_id, scenario_id)
    return {"detail": f"Scenario {scenario_id} deleted successfully"}


# ---------------------------------------------------------------------------
# BUNDLE
# ---------------------------------------------------------------------------

@router.get("/scenarios/{scenario_id}/changes")
def list_bundle(scenario_id: int, db: Session = Depends(get_db)):
    """
    Proposed changes of the scenario's contract, each flagged with whether it
    is bundled, plus any bundled change that is no longer proposed.
    """
    scenario = _get_scenario_or_404(db, scenario_id)
    linked = set(crud.select_scenario_links(db, scenario_id))
    proposed = crud.list_changes(db, scenario.contract_id, status="proposed")
    rows = [
        {
            "change_id": c.id,
            "change_code": c.change_code,
            "title": c.title,
            "status": c.status,
            "revenue_delta": c.revenue_delta,
            "cost_delta": c.cost_delta,
            "linked": c.id in linked,
        }
        for c in proposed
    ]
    stale = linked - {c.id for c in proposed}
    return {
        "scenario_id": scenario_id,
        "available": len(proposed),
        "changes": rows,
        "linked_not_proposed": sorted(stale),
    }


@router.post("/scenarios/{scenario_id}/changes/{change_id}", status_code=201)
def link_change(
    scenario_id: int,
    change_id: int,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    """Bundle a proposed change of the same contract into the scenario."""
    scenario = _get_scenario_or_404(db, scenario_id)
    change = crud.get_change(db, change_id)
    if not change or change.contract_id != scenario.contract_id:
        raise HTTPException(
            status_code=404,
            detail=f"Change {change_id} not found for contract {scenario.contract_id}",
        )
    if change.status != "proposed":
        raise HTTPException(
            status_code=409,
            detail=f"Only proposed changes can be bundled; {change.change_code} is {change.status}",
        )
    try:
        crud.insert_link(db, scenario_id, change_id)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=f"Change {change_id} is already in scenario {scenario_id}")
    cache.invalidate_scenario(scenario.contract_id, scenario_id)
    return {"scenario_id": scenario_id, "change_id": change_id, "linked": True}


@router.delete("/scenarios/{scenario_id}/changes/{change_id}", status_code=200)
def unlink_change(
    scenario_id: int,
    change_id: int,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    scenario = _get_scenario_or_404(db, scenario_id)
    if not crud.delete_link(db, scenario_id, change_id):
        raise HTTPException(status_code=404, detail=f"Change {change_id} is not in scenario {scenario_id}")
    cache.invalidate_scenario(scenario.contract_id, scenario_id)
    return {"scenario_id": scenario_id, "change_id": change_id, "linked": False}


# ---------------------------------------------------------------------------
# FORECAST & PROMOTION
# ---------------------------------------------------------------------------

@router.get("/scenarios/{scenario_id}/forecast")
def get_scenario_forecast(
    scenario_id: int,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    """Gap-filled monthly series with baseline, scenario and delta figures."""
    scenario = _get_scenario_or_404(db, scenario_id)
    try:
        rows = load_scenario_forecast(db, scenario.contract_id, scenario_id, cache=cache)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "scenario_id": scenario_id,
        "contract_id": scenario.contract_id,
        "series": [row.to_dict() for row in rows],
        "summary": summarize_series(rows),
    }


@router.post("/scenarios/{scenario_id}/promote")
def promote(
    scenario_id: int,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    """
    Approve every bundled change, post its impacts into the forecast and
    dissolve the bundle. 409 if the bundle is empty or already promoted.
    """
    try:
        result = promote_scenario(db, scenario_id, cache=cache)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PromotionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return result.to_dict()
