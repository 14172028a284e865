"""
Cost Category Router — /api/cost-categories

    GET  /api/cost-categories   — Active categories in display order (?all=true for every one)
    POST /api/cost-categories   — Create a category
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import get_db
from .. import crud
from ..schemas import CostCategoryCreate, CostCategoryResponse

router = APIRouter(prefix="/api/cost-categories", tags=["Cost Categories"])


@router.get("", response_model=list[CostCategoryResponse])
def list_cost_categories(
    all: bool = Query(False, description="Include inactive categories"),
    db: Session = Depends(get_db),
):
    return crud.list_cost_categories(db, active_only=not all)


@router.post("", response_model=CostCategoryResponse, status_code=201)
def create_cost_category(data: CostCategoryCreate, db: Session = Depends(get_db)):
    try:
        return crud.create_cost_category(db, data)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=f"Cost category '{data.code}' already exists")
