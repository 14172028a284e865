"""
CVR Forecast — Baseline Series Loader

Produces the canonical monthly baseline for a contract:
    [{period_key, revenue, cost, margin_pct}] ascending by period.

Rows come from the store's baseline summary (one row per period, already
aggregated with the actual-over-forecast rule). margin_pct is derived here
when the source row does not carry it.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from .. import crud
from ..cache import ForecastCache
from .ledger import margin_pct
from .periods import normalize_period_key, is_period_key, period_sort_key

logger = logging.getLogger("cvr.engines.baseline")


@dataclass(frozen=True)
class BaselineRow:
    period_key: str
    revenue: float
    cost: float
    margin_pct: float

    def to_dict(self) -> dict:
        return asdict(self)


def build_baseline_series(rows: Iterable[dict]) -> list[BaselineRow]:
    """
    Normalize store summary rows into an ordered baseline series.

    Rows whose period key cannot be normalized are logged and skipped.
    """
    by_key: dict[str, BaselineRow] = {}
    for row in rows:
        raw_key = row.get("period_key", row.get("period_month"))
        key = normalize_period_key(raw_key)
        if not is_period_key(key):
            logger.warning(f"Baseline row with unparseable period {raw_key!r} skipped")
            continue

        revenue = float(row.get("revenue") or 0.0)
        cost = float(row.get("cost") or 0.0)
        pct = row.get("margin_pct")
        if pct is None:
            pct = margin_pct(revenue, cost)

        if key in by_key:
            logger.warning(f"Duplicate baseline row for {key}; keeping the later row")
        by_key[key] = BaselineRow(key, revenue, cost, float(pct))

    return [by_key[k] for k in sorted(by_key, key=period_sort_key)]


def load_baseline(
    db: Session,
    contract_id: int,
    cache: Optional[ForecastCache] = None,
) -> list[BaselineRow]:
    """Load (or fetch from cache) the baseline series for a contract."""
    def _load():
        return build_baseline_series(crud.select_baseline_summary(db, contract_id))

    if cache is None:
        return _load()
    return cache.get_or_load(ForecastCache.baseline_key(contract_id), _load)
