"""
Forecasting Router — /api/contracts/{id}/forecast

Calculation logic is in cvr_backend/engines/ — these endpoints just
orchestrate the call and translate domain errors.

Endpoints:
    GET  /api/contracts/{id}/forecast/grid      — Periods with authoritative amounts per line
    PUT  /api/contracts/{id}/forecast/grid      — Save manual forecast edits
    POST /api/contracts/{id}/forecast/generate  — Flat-spread or run-rate generation
    POST /api/contracts/{id}/forecast/split     — Reclassify actual/forecast at a cutoff
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..cache import ForecastCache, get_cache
from ..database import get_db
from .. import crud
from ..engines.forecast import describe_forecast_grid, generate_forecast, save_forecast_grid
from ..engines.ledger import TargetLine
from ..engines.splitter import split_actuals_forecast
from ..errors import ForecastValidationError, NotFoundError, StoreError
from ..schemas import ForecastGenerateRequest, ForecastGridSave, SplitRequest

router = APIRouter(prefix="/api/contracts", tags=["Forecasting"])


@router.get("/{contract_id}/forecast/grid")
def get_forecast_grid(contract_id: int, db: Session = Depends(get_db)):
    if not crud.get_contract(db, contract_id):
        raise HTTPException(status_code=404, detail=f"Contract {contract_id} not found")
    categories = crud.list_cost_categories(db)
    return {
        "categories": [{"id": c.id, "code": c.code, "name": c.name} for c in categories],
        "rows": describe_forecast_grid(
            crud.select_periods(db, contract_id), [c.id for c in categories]
        ),
    }


@router.put("/{contract_id}/forecast/grid")
def put_forecast_grid(
    contract_id: int,
    data: ForecastGridSave,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    try:
        saved = save_forecast_grid(
            db, contract_id, [e.model_dump() for e in data.edits], cache=cache
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ForecastValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"saved": saved}


@router.post("/{contract_id}/forecast/generate")
def post_generate_forecast(
    contract_id: int,
    data: ForecastGenerateRequest,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    """
    Generate forecast amounts for every future period of one line.

    Body:
        line: "revenue" | "cost"
        category_id: required when line == "cost"
        method: "flat_spread" (needs total_amount) | "run_rate"
    """
    try:
        result = generate_forecast(
            db,
            contract_id,
            TargetLine(data.line, data.category_id),
            data.method,
            total=data.total_amount,
            cache=cache,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ForecastValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return result.to_dict()


@router.post("/{contract_id}/forecast/split")
def post_split(
    contract_id: int,
    data: SplitRequest,
    db: Session = Depends(get_db),
    cache: ForecastCache = Depends(get_cache),
):
    """
    Mark every period on or before the cutoff month as actual and every later
    period as forecast. Requires "confirm": true.
    """
    try:
        return split_actuals_forecast(
            db, contract_id, data.cutoff_date, confirm=data.confirm, cache=cache
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ForecastValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
