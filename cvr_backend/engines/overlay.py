"""
CVR Forecast — Scenario Overlay Merger

Merges a baseline series with a scenario's combined impact map.

Process:
    1. Union the baseline period keys with the impact map keys. A change may
       land outside the baseline horizon (e.g. an extension); those months
       appear with zero baseline values.
    2. Sort the union chronologically by parsed date.
    3. Per key: scenario = baseline + delta, margin recomputed with the
       zero-revenue rule.
    4. Emit baseline, scenario and delta figures on every row.

Merging with an empty impact map reproduces the baseline exactly.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Optional

from sqlalchemy.orm import Session

from .. import crud
from ..cache import ForecastCache
from ..errors import NotFoundError
from .baseline import BaselineRow, load_baseline
from .impacts import ImpactMap, PeriodDelta, resolve_bundle_impacts
from .ledger import margin_pct
from .periods import is_period_key, period_label, period_sort_key

logger = logging.getLogger("cvr.engines.overlay")


@dataclass(frozen=True)
class ScenarioRow:
    period_key: str
    period: str
    revenue: float
    cost: float
    margin_pct: float
    scenario_revenue: float
    scenario_cost: float
    scenario_margin_pct: float
    delta_revenue: float
    delta_cost: float

    def to_dict(self) -> dict:
        return asdict(self)


def merge_scenario(
    baseline: list[BaselineRow],
    impact_map: Optional[ImpactMap] = None,
) -> list[ScenarioRow]:
    """Overlay an impact map on a baseline series. Pure function."""
    impact_map = impact_map or {}
    base_by_key = {row.period_key: row for row in baseline}

    for key in impact_map:
        if not is_period_key(key):
            logger.warning(f"Impact key {key!r} is not a normalized period; it will not join")

    keys = sorted(set(base_by_key) | set(impact_map), key=period_sort_key)

    rows = []
    for key in keys:
        base = base_by_key.get(key)
        delta = impact_map.get(key) or PeriodDelta()

        base_revenue = base.revenue if base else 0.0
        base_cost = base.cost if base else 0.0
        base_margin = base.margin_pct if base else margin_pct(base_revenue, base_cost)

        scenario_revenue = base_revenue + delta.revenue
        scenario_cost = base_cost + delta.cost

        rows.append(ScenarioRow(
            period_key=key,
            period=period_label(key),
            revenue=base_revenue,
            cost=base_cost,
            margin_pct=base_margin,
            scenario_revenue=scenario_revenue,
            scenario_cost=scenario_cost,
            scenario_margin_pct=margin_pct(scenario_revenue, scenario_cost),
            delta_revenue=delta.revenue,
            delta_cost=delta.cost,
        ))
    return rows


def summarize_series(rows: list[ScenarioRow]) -> dict:
    """Totals for a baseline-vs-scenario comparison."""
    revenue = sum(r.revenue for r in rows)
    cost = sum(r.cost for r in rows)
    scenario_revenue = sum(r.scenario_revenue for r in rows)
    scenario_cost = sum(r.scenario_cost for r in rows)
    return {
        "periods": len(rows),
        "baseline": {
            "revenue": revenue,
            "cost": cost,
            "margin_pct": margin_pct(revenue, cost),
        },
        "scenario": {
            "revenue": scenario_revenue,
            "cost": scenario_cost,
            "margin_pct": margin_pct(scenario_revenue, scenario_cost),
        },
        "delta": {
            "revenue": scenario_revenue - revenue,
            "cost": scenario_cost - cost,
        },
    }


def load_scenario_forecast(
    db: Session,
    contract_id: int,
    scenario_id: Optional[int] = None,
    cache: Optional[ForecastCache] = None,
) -> list[ScenarioRow]:
    """
    Read path used by the comparison view: baseline for the contract plus,
    when a scenario is given, the combined impacts of its bundled changes.
    """
    def _load():
        baseline = load_baseline(db, contract_id, cache=cache)
        if scenario_id is None:
            return merge_scenario(baseline)

        scenario = crud.get_scenario(db, scenario_id)
        if not scenario or scenario.contract_id != contract_id:
            raise NotFoundError(f"Scenario {scenario_id} not found for contract {contract_id}")

        changes = crud.list_scenario_changes(db, scenario_id)
        return merge_scenario(baseline, resolve_bundle_impacts(changes))

    if cache is None or scenario_id is None:
        return _load()
    return cache.get_or_load(ForecastCache.scenario_key(contract_id, scenario_id), _load)
