"""
Change Router — proposed contract changes and their impact rows

Endpoints:
    GET    /api/contracts/{id}/changes          — List changes (?status=proposed)
    POST   /api/contracts/{id}/changes          — Create a change with impact rows
    GET    /api/changes/{change_id}             — Get a change
    PUT    /api/changes/{change_id}             — Update a change (impacts replaced as a unit)
    DELETE /api/changes/{change_id}             — Delete a change
    GET    /api/changes/{change_id}/impacts     — Resolved period -> delta map
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..cache import ForecastCache, get_cache
from ..database import get_db
from .. import crud
from ..engines.impacts import resolve_change_impacts, summarize_impact_rows
from ..schemas import ChangeCreate, ChangeUpdate, ChangeResponse

router = APIRouter(prefix="/api", tags=["Changes"])


def _check_impact_categories(db: Session, impacts) -> None:
    for row in impacts:
        if row.cost_category_id is not None and not crud.get_cost_category(db, row.cost_category_id):
            raise HTTPException(status_code=400, detail=f"Cost category {row.cost_category_id} not found")


def _change_payload(change) -> dict:
    body = ChangeResponse.model_validate(change).model_dump(mode="json")
    body["impact_check"] = summarize_impact_rows(change)
    return body


@router.get("/contracts/{contract_id}/changes", response_model=list[ChangeResponse])
def list_changes(
    contract_id: int,
    status: Optional[str] = Query(None, description="Filter by change status"),
    db: Session = Depends(get_db),
):
    if not crud.get_contract(db, contract_id):
        raise HTTPException(status_code=404, detail=f"Contract {contract_id} not found")
    return crud.list_changes(db, contract_id, status=status)


@router.post("/contracts/{contract_id}/changes", status_code=201)
def create_change(
    contract_id: int,
    data: ChangeCreate,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    """
    Create a change. The response carries `impact_check.warnings` when the
    time-phased totals disagree with the headline deltas by more than 1.
    """
    if not crud.get_contract(db, contract_id):
        raise HTTPException(status_code=404, detail=f"Contract {contract_id} not found")
    _check_impact_categories(db, data.impacts)

    change = crud.create_change(db, contract_id, data)
    cache.invalidate_contract(contract_id)
    return _change_payload(crud.get_change(db, change.id))


@router.get("/changes/{change_id}")
def get_change(change_id: int, db: Session = Depends(get_db)):
    change = crud.get_change(db, change_id)
    if not change:
        raise HTTPException(status_code=404, detail=f"Change {change_id} not found")
    return _change_payload(change)


@router.put("/changes/{change_id}")
def update_change(
    change_id: int,
    data: ChangeUpdate,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    if not crud.get_change(db, change_id):
        raise HTTPException(status_code=404, detail=f"Change {change_id} not found")
    if data.impacts is not None:
        _check_impact_categories(db, data.impacts)

    change = crud.update_change(db, change_id, data)
    if not change:
        raise HTTPException(status_code=404, detail=f"Change {change_id} not found")
    cache.invalidate_contract(change.contract_id)
    return _change_payload(change)


@router.delete("/changes/{change_id}", status_code=200)
def delete_change(
    change_id: int,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    change = crud.get_change(db, change_id)
    if not change:
        raise HTTPException(status_code=404, detail=f"Change {change_id} not found")
    contract_id = change.contract_id
    crud.delete_change(db, change_id)
    cache.invalidate_contract(contract_id)
    return {"detail": f"Change {change_id} deleted successfully"}


@router.get("/changes/{change_id}/impacts")
def get_change_impacts(change_id: int, db: Session = Depends(get_db)):
    """Resolved impacts of one change, keyed by period, ascending."""
    change = crud.get_change(db, change_id)
    if not change:
        raise HTTPException(status_code=404, detail=f"Change {change_id} not found")
    issues = []
    impact_map = resolve_change_impacts(change, issues=issues)
    return {
        "change_id": change_id,
        "mode": "phased" if change.impacts else "headline",
        "impacts": {key: impact_map[key].to_dict() for key in sorted(impact_map)},
        "issues": [issue.to_dict() for issue in issues],
    }
