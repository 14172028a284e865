"""
CVR Forecast — Forecast Generator

Synthesizes forecast amounts for every future (non-actual) period of a
contract, for one target line: revenue or a single cost category.

Methods:
    flat_spread  total / number of future periods ("cost to complete")
    run_rate     average of the target line over the most recent actual
                 periods (window defaults to 3; fewer if fewer exist; 0 if none)

Either method is rejected when the contract has no future period.

Write discipline: for each future period, delete every forecast record of the
target line, then insert one new forecast record. The store has no uniqueness
constraint, so a plain insert would accumulate duplicates. Promotion postings
on the line are kept.

All validation runs before the first delete. The delete/insert sequence runs
in one session transaction and is rolled back as a whole on failure.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud
from ..cache import ForecastCache, invalidate
from ..database import RUN_RATE_WINDOW
from ..errors import ForecastValidationError, NotFoundError, StoreError
from ..models import ContractPeriod
from .ledger import FORECAST, TargetLine, is_actual_period, line_amount, line_record

logger = logging.getLogger("cvr.engines.forecast")

FLAT_SPREAD = "flat_spread"
RUN_RATE = "run_rate"
METHODS = (FLAT_SPREAD, RUN_RATE)


@dataclass
class ForecastResult:
    method: str
    target: str
    monthly_amount: float
    periods_written: int
    period_keys: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "target": self.target,
            "monthly_amount": self.monthly_amount,
            "periods_written": self.periods_written,
            "period_keys": self.period_keys,
        }


# ---------------------------------------------------------------------------
# PURE HELPERS
# ---------------------------------------------------------------------------

def future_periods(periods: list[ContractPeriod]) -> list[ContractPeriod]:
    """Periods whose best revenue record is not actual (forecast or absent)."""
    ordered = sorted(periods, key=lambda p: p.period_month)
    return [p for p in ordered if not is_actual_period(p)]


def actual_periods(periods: list[ContractPeriod]) -> list[ContractPeriod]:
    ordered = sorted(periods, key=lambda p: p.period_month)
    return [p for p in ordered if is_actual_period(p)]


def parse_total(total: Any) -> float:
    """Coerce a user-entered total to float or raise ForecastValidationError."""
    if total is None or isinstance(total, bool):
        raise ForecastValidationError("A numeric total amount is required for flat spread")
    try:
        value = float(str(total).replace(",", "").strip()) if isinstance(total, str) else float(total)
    except (TypeError, ValueError):
        raise ForecastValidationError(f"Invalid amount: {total!r}")
    if math.isnan(value) or math.isinf(value):
        raise ForecastValidationError(f"Invalid amount: {total!r}")
    return value


def flat_spread_amount(total: Any, period_count: int) -> float:
    """Spread a lump sum evenly over period_count periods."""
    amount = parse_total(total)
    if period_count <= 0:
        raise ForecastValidationError("No future forecast periods found to spread over")
    return amount / period_count


def run_rate_amount(
    periods: list[ContractPeriod],
    target: TargetLine,
    window: int = RUN_RATE_WINDOW,
) -> float:
    """
    Average of the target line over the last `window` actual periods.
    Returns 0.0 when the contract has no actual periods.
    """
    recent = actual_periods(periods)[-window:] if window > 0 else []
    if not recent:
        return 0.0
    return sum(line_amount(p, target) for p in recent) / len(recent)


# ---------------------------------------------------------------------------
# GENERATION
# ---------------------------------------------------------------------------

def _validate_target(db: Session, target: TargetLine) -> None:
    if target.line not in ("revenue", "cost"):
        raise ForecastValidationError(f"Invalid target line: {target.line!r}")
    if target.line == "cost":
        if target.category_id is None:
            raise ForecastValidationError("A cost category is required for a cost target")
        if not crud.get_cost_category(db, target.category_id):
            raise ForecastValidationError(f"Cost category {target.category_id} not found")


def generate_forecast(
    db: Session,
    contract_id: int,
    target: TargetLine,
    method: str,
    total: Any = None,
    cache: Optional[ForecastCache] = None,
    window: int = RUN_RATE_WINDOW,
) -> ForecastResult:
    """
    Compute a monthly amount and write it as the forecast for every future
    period of the contract.

    Raises:
        NotFoundError: unknown contract
        ForecastValidationError: bad method/target/total, no future periods
        StoreError: a delete/insert failed (sequence rolled back)
    """
    if not crud.get_contract(db, contract_id):
        raise NotFoundError(f"Contract {contract_id} not found")
    if method not in METHODS:
        raise ForecastValidationError(f"Invalid method: {method!r}. Must be one of {list(METHODS)}")
    _validate_target(db, target)

    periods = crud.select_periods(db, contract_id)
    future = future_periods(periods)
    if not future:
        raise ForecastValidationError("No future forecast periods found")

    if method == FLAT_SPREAD:
        monthly_amount = flat_spread_amount(total, len(future))
    else:
        monthly_amount = run_rate_amount(periods, target, window=window)

    try:
        for period in future:
            if target.is_revenue:
                crud.delete_revenue_records(db, period.id, FORECAST)
                crud.insert_revenue_record(db, period.id, FORECAST, monthly_amount)
            else:
                crud.delete_cost_records(db, period.id, FORECAST, target.category_id)
                crud.insert_cost_record(db, period.id, FORECAST, monthly_amount, target.category_id)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Forecast generation failed for contract {contract_id}: {e}")
        raise StoreError(f"Forecast generation failed: {e}") from e

    invalidate(cache, contract_id)
    logger.info(
        f"Contract {contract_id}: {method} forecast of {monthly_amount:.2f}/month "
        f"written to {len(future)} periods ({target.describe()})"
    )
    return ForecastResult(
        method=method,
        target=target.describe(),
        monthly_amount=monthly_amount,
        periods_written=len(future),
        period_keys=[p.period_month.isoformat() for p in future],
    )


def save_forecast_grid(
    db: Session,
    contract_id: int,
    edits: list[dict],
    cache: Optional[ForecastCache] = None,
) -> int:
    """
    Save manual forecast edits from the forecasting grid.

    Each edit is {"period_id", "line": "revenue"|"cost", "category_id", "amount"}.
    Edits to actual periods are rejected; every edit replaces the forecast
    record of its line (delete-then-insert). Returns the number of edits saved.
    """
    if not crud.get_contract(db, contract_id):
        raise NotFoundError(f"Contract {contract_id} not found")

    periods = {p.id: p for p in crud.select_periods(db, contract_id)}
    planned = []
    for edit in edits:
        period = periods.get(edit.get("period_id"))
        if period is None:
            raise ForecastValidationError(
                f"Period {edit.get('period_id')} does not belong to contract {contract_id}"
            )
        if is_actual_period(period):
            raise ForecastValidationError(
                f"Period {period.period_month.isoformat()} is actual and cannot be edited"
            )
        target = TargetLine(edit.get("line", "revenue"), edit.get("category_id"))
        _validate_target(db, target)
        planned.append((period, target, parse_total(edit.get("amount"))))

    try:
        for period, target, amount in planned:
            if target.is_revenue:
                crud.delete_revenue_records(db, period.id, FORECAST)
                crud.insert_revenue_record(db, period.id, FORECAST, amount)
            else:
                crud.delete_cost_records(db, period.id, FORECAST, target.category_id)
                crud.insert_cost_record(db, period.id, FORECAST, amount, target.category_id)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Saving forecast grid failed: {e}") from e

    invalidate(cache, contract_id)
    return len(planned)


def describe_forecast_grid(periods: list[ContractPeriod], category_ids: list[int]) -> list[dict]:
    """Grid rows: per period, its kind and the authoritative amount per line."""
    def _amount(period, target):
        record = line_record(period, target)
        return float(record.amount) if record else None

    rows = []
    for period in sorted(periods, key=lambda p: p.period_month):
        rows.append({
            "period_id": period.id,
            "period_key": period.period_month.isoformat(),
            "is_actual": is_actual_period(period),
            "revenue": _amount(period, TargetLine("revenue")),
            "costs": {cid: _amount(period, TargetLine("cost", cid)) for cid in category_ids},
        })
    return rows
