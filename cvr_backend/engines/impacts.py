"""
CVR Forecast — Change Impact Resolver

Turns one proposed change into a map of period key -> revenue/cost delta.

A change's effect comes in one of two shapes, modelled as explicit variants:
    - PhasedImpact:   the change owns impact rows. Rows are authoritative and
                      are summed per period (several rows may share a month,
                      e.g. one per cost category).
    - HeadlineImpact: no impact rows. The headline revenue/cost delta posts in
                      full to the month containing the effective date.

Resolution never applies deltas sequentially: every contribution is summed,
so the combined map for a set of changes does not depend on their order.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

from ..errors import DataQualityIssue
from ..models import ContractChange
from .periods import normalize_period_key, is_period_key

logger = logging.getLogger("cvr.engines.impacts")


# ---------------------------------------------------------------------------
# DOMAIN TYPES
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImpactRowData:
    """One month-specific contribution of a change."""
    period_key: Any
    revenue_delta: float = 0.0
    cost_delta: float = 0.0
    cost_category_id: Optional[int] = None
    is_scenario_only: bool = False


@dataclass(frozen=True)
class PhasedImpact:
    rows: tuple[ImpactRowData, ...]


@dataclass(frozen=True)
class HeadlineImpact:
    effective_date: Any
    revenue_delta: float = 0.0
    cost_delta: float = 0.0


ChangeImpactSpec = Union[PhasedImpact, HeadlineImpact]


@dataclass(frozen=True)
class ChangeSpec:
    """Engine-side view of a change: identity, status and its impact variant."""
    change_id: Optional[int]
    status: str
    impact: ChangeImpactSpec
    change_code: Optional[str] = None


@dataclass
class PeriodDelta:
    revenue: float = 0.0
    cost: float = 0.0

    def add(self, revenue: float, cost: float) -> None:
        self.revenue += revenue
        self.cost += cost

    def to_dict(self) -> dict:
        return {"revenue": self.revenue, "cost": self.cost}


ImpactMap = dict[str, PeriodDelta]


def _num(value) -> float:
    return float(value) if value is not None else 0.0


# ---------------------------------------------------------------------------
# BUILDERS
# ---------------------------------------------------------------------------

def change_spec_from_model(change: ContractChange) -> ChangeSpec:
    """Build the engine view of an ORM change (impact rows must be loaded)."""
    if change.impacts:
        impact: ChangeImpactSpec = PhasedImpact(rows=tuple(
            ImpactRowData(
                period_key=row.period_month,
                revenue_delta=_num(row.revenue_delta),
                cost_delta=_num(row.cost_delta),
                cost_category_id=row.cost_category_id,
                is_scenario_only=bool(row.is_scenario_only),
            )
            for row in change.impacts
        ))
    else:
        impact = HeadlineImpact(
            effective_date=change.effective_date,
            revenue_delta=_num(change.revenue_delta),
            cost_delta=_num(change.cost_delta),
        )
    return ChangeSpec(
        change_id=change.id,
        status=change.status,
        impact=impact,
        change_code=change.change_code,
    )


def change_spec_from_dict(data: dict) -> ChangeSpec:
    """
    Build a ChangeSpec from a plain mapping, e.g. a store row:
        {"id", "status", "revenue_delta", "cost_delta", "effective_date",
         "impacts": [{"period_month", "revenue_delta", "cost_delta", ...}]}
    """
    rows = data.get("impacts") or []
    if rows:
        impact: ChangeImpactSpec = PhasedImpact(rows=tuple(
            ImpactRowData(
                period_key=row.get("period_month"),
                revenue_delta=_num(row.get("revenue_delta")),
                cost_delta=_num(row.get("cost_delta")),
                cost_category_id=row.get("cost_category_id"),
                is_scenario_only=bool(row.get("is_scenario_only", False)),
            )
            for row in rows
        ))
    else:
        impact = HeadlineImpact(
            effective_date=data.get("effective_date"),
            revenue_delta=_num(data.get("revenue_delta")),
            cost_delta=_num(data.get("cost_delta")),
        )
    return ChangeSpec(
        change_id=data.get("id"),
        status=data.get("status", "proposed"),
        impact=impact,
        change_code=data.get("change_code"),
    )


# ---------------------------------------------------------------------------
# RESOLUTION
# ---------------------------------------------------------------------------

def _post(
    impact_map: ImpactMap,
    raw_key: Any,
    revenue: float,
    cost: float,
    change_id: Optional[int],
    issues: Optional[list],
) -> None:
    key = normalize_period_key(raw_key)
    if not is_period_key(key):
        logger.warning(f"Change {change_id}: unparseable period key {raw_key!r}, impact skipped")
        if issues is not None:
            issues.append(DataQualityIssue(
                code="unparseable_period_key",
                message=f"Unparseable period key {raw_key!r}",
                change_id=change_id,
                period_key=raw_key,
            ))
        return
    impact_map.setdefault(key, PeriodDelta()).add(revenue, cost)


def resolve_change_impacts(
    change: Union[ChangeSpec, ContractChange, dict],
    include_scenario_only: bool = True,
    issues: Optional[list] = None,
) -> ImpactMap:
    """
    Resolve one change to {period_key: PeriodDelta}.

    Args:
        change: ChangeSpec, ORM change or plain mapping.
        include_scenario_only: False drops impact rows flagged scenario-only
            (promotion bakes only the committed rows).
        issues: optional list collecting DataQualityIssue records.
    """
    if isinstance(change, ContractChange):
        change = change_spec_from_model(change)
    elif isinstance(change, dict):
        change = change_spec_from_dict(change)

    impact_map: ImpactMap = {}
    impact = change.impact

    if isinstance(impact, PhasedImpact):
        for row in impact.rows:
            if row.is_scenario_only and not include_scenario_only:
                continue
            _post(impact_map, row.period_key, row.revenue_delta, row.cost_delta,
                  change.change_id, issues)
        return impact_map

    # Headline fallback: whole delta at the effective month
    if impact.effective_date is None or not is_period_key(normalize_period_key(impact.effective_date)):
        logger.warning(
            f"Change {change.change_id}: no impact rows and no valid effective date, "
            f"contributes nothing"
        )
        if issues is not None:
            issues.append(DataQualityIssue(
                code="change_without_timing",
                message="Change has neither impact rows nor a valid effective date",
                change_id=change.change_id,
                period_key=impact.effective_date,
            ))
        return impact_map

    _post(impact_map, impact.effective_date, impact.revenue_delta, impact.cost_delta,
          change.change_id, issues)
    return impact_map


def combine_impact_maps(maps: Iterable[ImpactMap]) -> ImpactMap:
    """Sum several impact maps key-wise. Order of maps does not matter."""
    combined: ImpactMap = {}
    for impact_map in maps:
        for key, delta in impact_map.items():
            combined.setdefault(key, PeriodDelta()).add(delta.revenue, delta.cost)
    return combined


def resolve_bundle_impacts(
    changes: Iterable[Union[ChangeSpec, ContractChange, dict]],
    include_scenario_only: bool = True,
    issues: Optional[list] = None,
) -> ImpactMap:
    """Resolve and sum the impacts of every change in a scenario bundle."""
    return combine_impact_maps(
        resolve_change_impacts(c, include_scenario_only=include_scenario_only, issues=issues)
        for c in changes
    )


def summarize_impact_rows(change: ContractChange) -> dict:
    """
    Compare time-phased totals with the headline deltas.

    Impact rows win when present, so a mismatch is only a soft warning
    surfaced to the user on save.
    """
    rows = change.impacts or []
    phased_revenue = sum(_num(r.revenue_delta) for r in rows)
    phased_cost = sum(_num(r.cost_delta) for r in rows)
    warnings = []
    if rows and abs(phased_revenue - _num(change.revenue_delta)) > 1:
        warnings.append(
            f"Time-phased revenue ({phased_revenue:.2f}) does not match "
            f"headline revenue ({_num(change.revenue_delta):.2f})"
        )
    if rows and abs(phased_cost - _num(change.cost_delta)) > 1:
        warnings.append(
            f"Time-phased cost ({phased_cost:.2f}) does not match "
            f"headline cost ({_num(change.cost_delta):.2f})"
        )
    return {
        "mode": "phased" if rows else "headline",
        "phased_revenue": phased_revenue,
        "phased_cost": phased_cost,
        "warnings": warnings,
    }
