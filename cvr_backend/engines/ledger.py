"""
Period ledger reading rules.

A period may hold several revenue/cost records per line because the store
has no uniqueness constraint. Readers pick one authoritative record per line:
the first actual if any exists, otherwise the first forecast. Baseline-kind
records and every other duplicate are ignored, never summed.

A "line" is revenue, or the cost of one category (category None included).

Records posted by scenario promotion carry a source_change_id. They sit
outside the duplicate rule: their actual/forecast amounts are added on top of
the line's authoritative record.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from ..models import ContractPeriod, CostRecord, RevenueRecord

ACTUAL = "actual"
FORECAST = "forecast"


@dataclass(frozen=True)
class TargetLine:
    """A forecastable ledger line: revenue, or one cost category."""
    line: str  # "revenue" | "cost"
    category_id: Optional[int] = None

    @property
    def is_revenue(self) -> bool:
        return self.line == "revenue"

    def describe(self) -> str:
        return "revenue" if self.is_revenue else f"cost category {self.category_id}"


REVENUE_LINE = TargetLine("revenue")


def margin_pct(revenue: float, cost: float) -> float:
    """(revenue - cost) / revenue * 100, or 0 for a zero-revenue period."""
    if revenue == 0:
        return 0.0
    return (revenue - cost) / revenue * 100


def _ordered(records: Iterable) -> list:
    return sorted(records, key=lambda r: (r.id is None, r.id or 0))


def is_posted(record) -> bool:
    return getattr(record, "source_change_id", None) is not None


def best_record(records: Iterable, kind_attr: str):
    """
    Return the authoritative record (actual over forecast) or None.
    Promotion postings never qualify.
    """
    ordered = _ordered(r for r in records if not is_posted(r))
    for kind in (ACTUAL, FORECAST):
        for record in ordered:
            if getattr(record, kind_attr) == kind:
                return record
    return None


def best_revenue_record(period: ContractPeriod) -> Optional[RevenueRecord]:
    return best_record(period.revenue_records, "revenue_type")


def best_cost_record(period: ContractPeriod, category_id: Optional[int]) -> Optional[CostRecord]:
    return best_record(
        (c for c in period.cost_records if c.category_id == category_id), "cost_type"
    )


def posted_amount(records: Iterable, kind_attr: str) -> float:
    """Sum of promotion postings (actual or forecast) among records."""
    return sum(
        float(r.amount or 0.0)
        for r in records
        if is_posted(r) and getattr(r, kind_attr) in (ACTUAL, FORECAST)
    )


def _amount(record) -> float:
    return float(record.amount or 0.0) if record else 0.0


def period_revenue(period: ContractPeriod) -> float:
    return (
        _amount(best_revenue_record(period))
        + posted_amount(period.revenue_records, "revenue_type")
    )


def period_cost(period: ContractPeriod) -> float:
    """Authoritative record of every cost category plus all cost postings."""
    total = posted_amount(period.cost_records, "cost_type")
    for category_id in {c.category_id for c in period.cost_records if not is_posted(c)}:
        total += _amount(best_cost_record(period, category_id))
    return total


def line_record(period: ContractPeriod, target: TargetLine):
    if target.is_revenue:
        return best_revenue_record(period)
    return best_cost_record(period, target.category_id)


def line_amount(period: ContractPeriod, target: TargetLine) -> float:
    """Authoritative amount of one line plus the postings on that line."""
    if target.is_revenue:
        posted = posted_amount(period.revenue_records, "revenue_type")
    else:
        posted = posted_amount(
            (c for c in period.cost_records if c.category_id == target.category_id), "cost_type"
        )
    return _amount(line_record(period, target)) + posted


def is_actual_period(period: ContractPeriod) -> bool:
    """A period is actual when its best-known revenue record is actual."""
    record = best_revenue_record(period)
    return record is not None and record.revenue_type == ACTUAL
