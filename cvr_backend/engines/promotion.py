"""
CVR Forecast — Scenario Promotion Engine

Commits a scenario's bundled changes into the contract's baseline forecast.

Process:
    1. Load the scenario and every change linked to it
    2. Validate: bundle not empty, every change still "proposed"
       (a promoted bundle cannot be promoted twice and double-post)
    3. Resolve each change's impacts (scenario-only rows excluded) and
       match them against the contract's existing periods
    4. Approve every change (status + approval timestamp)
    5. Insert one forecast revenue and/or cost record per non-zero delta per
       matched period, tagged with the source change so readers add it on top
       of the line's existing forecast; impacts with no matching period are
       skipped and reported
    6. Delete all scenario links; the scenario row itself survives, empty

Steps 4-6 run in one session transaction. Approval (governance) and baking
(financial posting) stay separate steps inside that transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud
from ..cache import ForecastCache, invalidate
from ..errors import DataQualityIssue, NotFoundError, PromotionError, StoreError
from .impacts import resolve_change_impacts
from .ledger import FORECAST

logger = logging.getLogger("cvr.engines.promotion")


@dataclass
class PromotionResult:
    scenario_id: int
    contract_id: int
    approved_change_ids: list[int] = field(default_factory=list)
    revenue_records_written: int = 0
    cost_records_written: int = 0
    links_removed: int = 0
    skipped: list[DataQualityIssue] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "scenario_id": self.scenario_id,
            "contract_id": self.contract_id,
            "approved_change_ids": self.approved_change_ids,
            "revenue_records_written": self.revenue_records_written,
            "cost_records_written": self.cost_records_written,
            "links_removed": self.links_removed,
            "skipped": [issue.to_dict() for issue in self.skipped],
        }


def promote_scenario(
    db: Session,
    scenario_id: int,
    cache: Optional[ForecastCache] = None,
    now: Optional[datetime] = None,
) -> PromotionResult:
    """
    Approve and bake every change bundled into a scenario, then dissolve it.

    Raises:
        NotFoundError: unknown scenario
        PromotionError: empty bundle, or a bundled change is not "proposed"
        StoreError: a write failed (the whole promotion is rolled back)
    """
    scenario = crud.get_scenario(db, scenario_id)
    if not scenario:
        raise NotFoundError(f"Scenario {scenario_id} not found")

    changes = crud.list_scenario_changes(db, scenario_id)
    if not changes:
        raise PromotionError(f"Scenario '{scenario.name}' has no changes to promote")

    not_proposed = [c for c in changes if c.status != "proposed"]
    if not_proposed:
        codes = ", ".join(f"{c.change_code} ({c.status})" for c in not_proposed)
        raise PromotionError(
            f"Scenario '{scenario.name}' contains changes that are no longer proposed: {codes}"
        )

    # Resolve and match before any write
    period_ids = crud.get_period_id_map(db, scenario.contract_id)
    result = PromotionResult(scenario_id=scenario_id, contract_id=scenario.contract_id)
    postings: list[tuple[int, int, float, float]] = []

    for change in changes:
        impact_map = resolve_change_impacts(
            change, include_scenario_only=False, issues=result.skipped
        )
        for key, delta in sorted(impact_map.items()):
            period_id = period_ids.get(key)
            if period_id is None:
                logger.warning(
                    f"Promotion of scenario {scenario_id}: change {change.change_code} "
                    f"impact at {key} has no matching period, skipped"
                )
                result.skipped.append(DataQualityIssue(
                    code="period_not_found",
                    message=f"No contract period for {key}; impact not posted",
                    change_id=change.id,
                    period_key=key,
                ))
                continue
            postings.append((change.id, period_id, delta.revenue, delta.cost))

    approved_at = now or datetime.utcnow()
    try:
        for change in changes:
            crud.update_change_status(db, change.id, "approved", approved_at)
            result.approved_change_ids.append(change.id)

        for change_id, period_id, revenue, cost in postings:
            if revenue != 0:
                crud.insert_revenue_record(
                    db, period_id, FORECAST, revenue, source_change_id=change_id
                )
                result.revenue_records_written += 1
            if cost != 0:
                crud.insert_cost_record(
                    db, period_id, FORECAST, cost, source_change_id=change_id
                )
                result.cost_records_written += 1

        result.links_removed = crud.delete_scenario_links(db, scenario_id)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Promotion of scenario {scenario_id} failed and was rolled back: {e}")
        raise StoreError(f"Promotion failed: {e}") from e

    invalidate(cache, scenario.contract_id)
    logger.info(
        f"Promoted scenario {scenario_id}: {len(result.approved_change_ids)} changes approved, "
        f"{result.revenue_records_written} revenue / {result.cost_records_written} cost records, "
        f"{len(result.skipped)} skipped"
    )
    return result
