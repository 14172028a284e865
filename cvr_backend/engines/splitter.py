"""
CVR Forecast — Actuals/Forecast Splitter

Reclassifies every period of a contract around a cutoff month:
periods on or before the cutoff become actual, later periods forecast.

Destructive and one-shot: it can only be undone by running again with a
different cutoff. Callers must pass confirm=True, which the API only sends
after the user acknowledged the warning.
"""

import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud
from ..cache import ForecastCache, invalidate
from ..errors import ForecastValidationError, NotFoundError, StoreError
from .periods import is_period_key, normalize_period_key, period_key_to_date

logger = logging.getLogger("cvr.engines.splitter")


def split_actuals_forecast(
    db: Session,
    contract_id: int,
    cutoff: Any,
    confirm: bool = False,
    cache: Optional[ForecastCache] = None,
) -> dict:
    """
    Run the store-side split for a contract.

    Returns:
        {"cutoff": "YYYY-MM-01", "actual_periods": n, "forecast_periods": m,
         "zero_actuals_created": k}

    k counts periods on or before the cutoff that had no revenue record and
    were given an actual revenue record of 0.
    """
    if not confirm:
        raise ForecastValidationError(
            "Splitting actuals and forecast cannot be easily undone; confirmation is required"
        )
    key = normalize_period_key(cutoff)
    if not is_period_key(key):
        raise ForecastValidationError(f"Invalid cutoff date: {cutoff!r}")
    if not crud.get_contract(db, contract_id):
        raise NotFoundError(f"Contract {contract_id} not found")

    cutoff_month: date = period_key_to_date(key)
    try:
        counts = crud.split_actuals_forecast(db, contract_id, cutoff_month)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Split failed for contract {contract_id}: {e}")
        raise StoreError(f"Split failed: {e}") from e

    invalidate(cache, contract_id)
    if counts["zero_actuals_created"]:
        logger.warning(
            f"Contract {contract_id} split at {key}: {counts['zero_actuals_created']} "
            f"periods had no revenue record and were recorded as actual 0"
        )
    logger.info(
        f"Contract {contract_id} split at {key}: "
        f"{counts['actual_periods']} actual, {counts['forecast_periods']} forecast"
    )
    return {"cutoff": key, **counts}
