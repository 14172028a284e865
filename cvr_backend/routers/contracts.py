"""
Contract Router — /api/contracts

Contract CRUD plus the contract's period ledger and baseline series.

Endpoints:
    GET    /api/contracts                     — List contracts
    POST   /api/contracts                     — Create a contract
    GET    /api/contracts/{id}                — Get a contract
    PUT    /api/contracts/{id}                — Update a contract
    DELETE /api/contracts/{id}                — Delete a contract (cascades)
    GET    /api/contracts/{id}/periods        — Periods with revenue/cost records
    POST   /api/contracts/{id}/periods        — Create a period
    GET    /api/contracts/{id}/baseline       — Baseline monthly series
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..cache import ForecastCache, get_cache
from ..database import get_db
from .. import crud
from ..engines.baseline import load_baseline
from ..schemas import (
    ContractCreate, ContractUpdate, ContractResponse, PeriodCreate, PeriodResponse,
)

router = APIRouter(prefix="/api/contracts", tags=["Contracts"])


@router.get("", response_model=list[ContractResponse])
def list_contracts(
    status: Optional[str] = Query(None, description="Filter by contract status"),
    db: Session = Depends(get_db),
):
    return crud.list_contracts(db, status=status)


@router.post("", response_model=ContractResponse, status_code=201)
def create_contract(data: ContractCreate, db: Session = Depends(get_db)):
    """Create a contract. Returns 409 if the contract code already exists."""
    try:
        return crud.create_contract(db, data)
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=409,
            detail={
                "detail": f"Contract already exists: {data.contract_code}",
                "error_code": "DUPLICATE_CONTRACT",
                "context": {"contract_code": data.contract_code},
            },
        )


@router.get("/{contract_id}", response_model=ContractResponse)
def get_contract(contract_id: int, db: Session = Depends(get_db)):
    contract = crud.get_contract(db, contract_id)
    if not contract:
        raise HTTPException(status_code=404, detail=f"Contract {contract_id} not found")
    return contract


@router.put("/{contract_id}", response_model=ContractResponse)
def update_contract(contract_id: int, data: ContractUpdate, db: Session = Depends(get_db)):
    """Update a contract. Only provided fields are updated."""
    contract = crud.update_contract(db, contract_id, data)
    if not contract:
        raise HTTPException(status_code=404, detail=f"Contract {contract_id} not found")
    return contract


@router.delete("/{contract_id}", status_code=200)
def delete_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    if not crud.delete_contract(db, contract_id):
        raise HTTPException(status_code=404, detail=f"Contract {contract_id} not found")
    cache.invalidate_contract(contract_id)
    return {"detail": f"Contract {contract_id} deleted successfully"}


# ---------------------------------------------------------------------------
# PERIODS & BASELINE
# ---------------------------------------------------------------------------

@router.get("/{contract_id}/periods", response_model=list[PeriodResponse])
def list_periods(contract_id: int, db: Session = Depends(get_db)):
    if not crud.get_contract(db, contract_id):
        raise HTTPException(status_code=404, detail=f"Contract {contract_id} not found")
    return crud.select_periods(db, contract_id)


@router.post("/{contract_id}/periods", response_model=PeriodResponse, status_code=201)
def create_period(
    contract_id: int,
    data: PeriodCreate,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    """Create a contract month. Returns 409 if the month already exists."""
    if not crud.get_contract(db, contract_id):
        raise HTTPException(status_code=404, detail=f"Contract {contract_id} not found")
    try:
        period = crud.create_period(db, contract_id, data)
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=409,
            detail=f"Period {data.period_month.isoformat()} already exists for contract {contract_id}",
        )
    cache.invalidate_contract(contract_id)
    return period


@router.get("/{contract_id}/baseline")
def get_baseline(
    contract_id: int,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    """Baseline monthly series: period_key, revenue, cost, margin_pct."""
    if not crud.get_contract(db, contract_id):
        raise HTTPException(status_code=404, detail=f"Contract {contract_id} not found")
    return [row.to_dict() for row in load_baseline(db, contract_id, cache=cache)]
