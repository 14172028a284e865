"""
CVR Forecast CRUD Operations

Database access functions for all tables: the store the forecasting engines
read from and write through.

Architecture:
    - Each function takes a db: Session parameter (injected by FastAPI)
    - Functions return ORM model instances (routers convert to Pydantic)
    - Get functions return None if not found (routers raise 404)
    - List functions return lists (empty list if none found)

Commit policy:
    - Plain CRUD (create_/update_/delete_ for contracts, changes, scenarios)
      commits, like any request-scoped write.
    - Record-level writes used inside engine workflows
      (delete_revenue_records, insert_cost_record, update_change_status,
      delete_scenario_links, ...) only flush. The calling workflow commits
      once, or rolls back the whole sequence.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from .engines.ledger import (
    ACTUAL, FORECAST, best_record, is_posted, margin_pct, period_cost, period_revenue,
)
from .models import (
    Contract, CostCategory, ContractPeriod, RevenueRecord, CostRecord,
    ContractChange, ChangeImpact, Scenario, ScenarioChange,
)
from .schemas import (
    ContractCreate, ContractUpdate, CostCategoryCreate, PeriodCreate,
    ChangeCreate, ChangeUpdate, ScenarioCreate,
)


# ---------------------------------------------------------------------------
# CONTRACT CRUD
# ---------------------------------------------------------------------------

def create_contract(db: Session, data: ContractCreate) -> Contract:
    """
    Create a new contract.

    Raises:
        IntegrityError: If contract_code already exists
    """
    contract = Contract(**data.model_dump())
    db.add(contract)
    db.commit()
    db.refresh(contract)
    return contract


def get_contract(db: Session, contract_id: int) -> Optional[Contract]:
    """Get a single contract by ID. Returns None if not found."""
    return db.query(Contract).filter(Contract.id == contract_id).first()


def list_contracts(db: Session, status: Optional[str] = None) -> list[Contract]:
    query = db.query(Contract)
    if status:
        query = query.filter(Contract.status == status)
    return query.order_by(Contract.id).all()


def update_contract(db: Session, contract_id: int, data: ContractUpdate) -> Optional[Contract]:
    """Update an existing contract. Only non-None fields are updated."""
    contract = get_contract(db, contract_id)
    if not contract:
        return None

    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(contract, field, value)

    contract.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(contract)
    return contract


def delete_contract(db: Session, contract_id: int) -> bool:
    """Delete a contract with its periods, changes and scenarios (CASCADE)."""
    contract = get_contract(db, contract_id)
    if not contract:
        return False
    db.delete(contract)
    db.commit()
    return True


# ---------------------------------------------------------------------------
# COST CATEGORIES
# ---------------------------------------------------------------------------

def create_cost_category(db: Session, data: CostCategoryCreate) -> CostCategory:
    category = CostCategory(**data.model_dump())
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def get_cost_category(db: Session, category_id: int) -> Optional[CostCategory]:
    return db.query(CostCategory).filter(CostCategory.id == category_id).first()


def list_cost_categories(db: Session, active_only: bool = True) -> list[CostCategory]:
    """List categories in display order."""
    query = db.query(CostCategory)
    if active_only:
        query = query.filter(CostCategory.is_active.is_(True))
    return query.order_by(CostCategory.sort_order, CostCategory.id).all()


# ---------------------------------------------------------------------------
# PERIODS & LEDGER RECORDS
# ---------------------------------------------------------------------------

def create_period(db: Session, contract_id: int, data: PeriodCreate) -> ContractPeriod:
    """
    Create a contract month with optional opening revenue/cost records.

    Raises:
        IntegrityError: If the contract already has this month
    """
    period = ContractPeriod(contract_id=contract_id, period_month=data.period_month)
    db.add(period)
    db.flush()

    if data.revenue is not None:
        db.add(RevenueRecord(
            contract_period_id=period.id,
            revenue_type=data.revenue_type,
            amount=data.revenue,
        ))
    for category_id, amount in data.costs.items():
        db.add(CostRecord(
            contract_period_id=period.id,
            category_id=category_id,
            cost_type=data.cost_type,
            amount=amount,
        ))

    db.commit()
    db.refresh(period)
    return period


def select_periods(db: Session, contract_id: int) -> list[ContractPeriod]:
    """All periods of a contract, ascending, with revenue and cost records loaded."""
    return (
        db.query(ContractPeriod)
        .options(
            selectinload(ContractPeriod.revenue_records),
            selectinload(ContractPeriod.cost_records),
        )
        .filter(ContractPeriod.contract_id == contract_id)
        .order_by(ContractPeriod.period_month)
        .all()
    )


def get_period_id_map(db: Session, contract_id: int) -> dict[str, int]:
    """{'YYYY-MM-01': period_id} for every period of a contract."""
    rows = (
        db.query(ContractPeriod.id, ContractPeriod.period_month)
        .filter(ContractPeriod.contract_id == contract_id)
        .all()
    )
    return {month.replace(day=1).isoformat(): pid for pid, month in rows}


def select_baseline_summary(db: Session, contract_id: int) -> list[dict]:
    """
    Pre-aggregated baseline view: one row per period with revenue and cost
    summed under the actual-over-forecast rule.

    Returns:
        [{"period_key", "revenue", "cost", "margin_pct"}] ascending
    """
    summary = []
    for period in select_periods(db, contract_id):
        revenue = period_revenue(period)
        cost = period_cost(period)
        summary.append({
            "period_key": period.period_month.isoformat(),
            "revenue": revenue,
            "cost": cost,
            "margin_pct": margin_pct(revenue, cost),
        })
    return summary


def delete_revenue_records(db: Session, period_id: int, kind: str) -> int:
    """
    Delete every revenue record of a kind in a period. Promotion postings
    are kept. Flushes only.
    """
    deleted = (
        db.query(RevenueRecord)
        .filter(
            RevenueRecord.contract_period_id == period_id,
            RevenueRecord.revenue_type == kind,
            RevenueRecord.source_change_id.is_(None),
        )
        .delete(synchronize_session="fetch")
    )
    db.flush()
    return deleted


def delete_cost_records(
    db: Session, period_id: int, kind: str, category_id: Optional[int] = None
) -> int:
    """
    Delete every cost record of a kind (and category) in a period. Promotion
    postings are kept. Flushes only.
    """
    query = db.query(CostRecord).filter(
        CostRecord.contract_period_id == period_id,
        CostRecord.cost_type == kind,
        CostRecord.source_change_id.is_(None),
    )
    if category_id is None:
        query = query.filter(CostRecord.category_id.is_(None))
    else:
        query = query.filter(CostRecord.category_id == category_id)
    deleted = query.delete(synchronize_session="fetch")
    db.flush()
    return deleted


def insert_revenue_record(
    db: Session, period_id: int, kind: str, amount: float,
    source_change_id: Optional[int] = None,
) -> RevenueRecord:
    record = RevenueRecord(
        contract_period_id=period_id, revenue_type=kind, amount=amount,
        source_change_id=source_change_id,
    )
    db.add(record)
    db.flush()
    return record


def insert_cost_record(
    db: Session, period_id: int, kind: str, amount: float, category_id: Optional[int] = None,
    source_change_id: Optional[int] = None,
) -> CostRecord:
    record = CostRecord(
        contract_period_id=period_id, cost_type=kind, amount=amount, category_id=category_id,
        source_change_id=source_change_id,
    )
    db.add(record)
    db.flush()
    return record


def split_actuals_forecast(db: Session, contract_id: int, cutoff_month: date) -> dict:
    """
    Reclassify every actual/forecast record of a contract around a cutoff:
    periods on or before cutoff_month become actual, later ones forecast.

    Each line keeps only the record that was authoritative before the split
    (actual over forecast), so reclassification never leaves two records of
    the same kind on one line. Promotion postings are reclassified, never
    deleted. Baseline-kind records are untouched.

    A period on or before the cutoff with no revenue record gets an actual
    revenue record of 0, so every period counted as actual reads as actual.

    Runs as a single transaction and commits.
    """
    actual_count = forecast_count = zero_filled = 0
    for period in select_periods(db, contract_id):
        kind = ACTUAL if period.period_month <= cutoff_month else FORECAST
        if kind == ACTUAL:
            actual_count += 1
        else:
            forecast_count += 1

        kept = _reclassify_line(db, period.revenue_records, "revenue_type", kind)
        if kept is None and kind == ACTUAL:
            db.add(RevenueRecord(contract_period_id=period.id, revenue_type=ACTUAL, amount=0.0))
            zero_filled += 1
        for category_id in {c.category_id for c in period.cost_records}:
            _reclassify_line(
                db,
                [c for c in period.cost_records if c.category_id == category_id],
                "cost_type",
                kind,
            )

    db.commit()
    return {
        "actual_periods": actual_count,
        "forecast_periods": forecast_count,
        "zero_actuals_created": zero_filled,
    }


def _reclassify_line(db: Session, records: list, kind_attr: str, kind: str):
    """Reclassify one line; returns the kept authoritative record or None."""
    live = [r for r in records if getattr(r, kind_attr) in (ACTUAL, FORECAST)]
    for record in live:
        if is_posted(record):
            setattr(record, kind_attr, kind)
    keep = best_record(live, kind_attr)
    if keep is None:
        return None
    for record in live:
        if record is not keep and not is_posted(record):
            db.delete(record)
    setattr(keep, kind_attr, kind)
    return keep


# ---------------------------------------------------------------------------
# CHANGE CRUD
# ---------------------------------------------------------------------------

def _impact_rows(change_id: int, impacts) -> list[ChangeImpact]:
    return [
        ChangeImpact(contract_change_id=change_id, **row.model_dump())
        for row in impacts
    ]


def create_change(db: Session, contract_id: int, data: ChangeCreate) -> ContractChange:
    """Create a change and its impact rows in one commit."""
    payload = data.model_dump(exclude={"impacts"})
    change = ContractChange(contract_id=contract_id, **payload)
    if change.status == "approved":
        change.approved_at = datetime.utcnow()
    db.add(change)
    db.flush()

    for row in _impact_rows(change.id, data.impacts):
        db.add(row)

    db.commit()
    db.refresh(change)
    return change


def get_change(db: Session, change_id: int) -> Optional[ContractChange]:
    """Get a change with its impact rows loaded."""
    return (
        db.query(ContractChange)
        .options(selectinload(ContractChange.impacts))
        .filter(ContractChange.id == change_id)
        .first()
    )


def list_changes(
    db: Session, contract_id: int, status: Optional[str] = None
) -> list[ContractChange]:
    """Changes of a contract, newest first, optionally filtered by status."""
    query = (
        db.query(ContractChange)
        .options(selectinload(ContractChange.impacts))
        .filter(ContractChange.contract_id == contract_id)
    )
    if status:
        query = query.filter(ContractChange.status == status)
    return query.order_by(ContractChange.created_at.desc(), ContractChange.id.desc()).all()


def update_change(db: Session, change_id: int, data: ChangeUpdate) -> Optional[ContractChange]:
    """
    Update a change header. If impacts are supplied they replace the existing
    rows as a unit (delete all, insert all), never partially.
    """
    change = get_change(db, change_id)
    if not change:
        return None

    for field, value in data.model_dump(exclude_unset=True, exclude={"impacts"}).items():
        if value is not None:
            setattr(change, field, value)
    if data.status == "approved" and change.approved_at is None:
        change.approved_at = datetime.utcnow()

    if data.impacts is not None:
        db.query(ChangeImpact).filter(
            ChangeImpact.contract_change_id == change_id
        ).delete(synchronize_session="fetch")
        db.flush()
        for row in _impact_rows(change_id, data.impacts):
            db.add(row)

    change.updated_at = datetime.utcnow()
    db.commit()
    db.expire(change)
    return get_change(db, change_id)


def delete_change(db: Session, change_id: int) -> bool:
    """Delete a change, its impact rows and any scenario links."""
    change = get_change(db, change_id)
    if not change:
        return False
    db.query(ScenarioChange).filter(
        ScenarioChange.contract_change_id == change_id
    ).delete(synchronize_session="fetch")
    db.delete(change)
    db.commit()
    return True


def update_change_status(
    db: Session, change_id: int, status: str, approval_timestamp: Optional[datetime] = None
) -> None:
    """Set a change's status (and approval timestamp). Flushes only."""
    change = db.query(ContractChange).filter(ContractChange.id == change_id).first()
    if change is None:
        return
    change.status = status
    if approval_timestamp is not None:
        change.approved_at = approval_timestamp
    change.updated_at = datetime.utcnow()
    db.flush()


# ---------------------------------------------------------------------------
# SCENARIO CRUD & BUNDLE LINKS
# ---------------------------------------------------------------------------

def create_scenario(db: Session, contract_id: int, data: ScenarioCreate) -> Scenario:
    scenario = Scenario(contract_id=contract_id, **data.model_dump())
    db.add(scenario)
    db.commit()
    db.refresh(scenario)
    return scenario


def get_scenario(db: Session, scenario_id: int) -> Optional[Scenario]:
    return db.query(Scenario).filter(Scenario.id == scenario_id).first()


def list_scenarios(db: Session, contract_id: int) -> list[Scenario]:
    """Scenarios of a contract, newest first."""
    return (
        db.query(Scenario)
        .filter(Scenario.contract_id == contract_id)
        .order_by(Scenario.created_at.desc(), Scenario.id.desc())
        .all()
    )


def delete_scenario(db: Session, scenario_id: int) -> bool:
    """Delete a scenario and its links. Linked changes are untouched."""
    scenario = get_scenario(db, scenario_id)
    if not scenario:
        return False
    db.delete(scenario)
    db.commit()
    return True


def select_scenario_links(db: Session, scenario_id: int) -> list[int]:
    """IDs of the changes bundled into a scenario."""
    rows = (
        db.query(ScenarioChange.contract_change_id)
        .filter(ScenarioChange.scenario_id == scenario_id)
        .order_by(ScenarioChange.contract_change_id)
        .all()
    )
    return [r[0] for r in rows]


def list_scenario_changes(db: Session, scenario_id: int) -> list[ContractChange]:
    """Changes bundled into a scenario, with impact rows loaded."""
    return (
        db.query(ContractChange)
        .options(selectinload(ContractChange.impacts))
        .join(ScenarioChange, ScenarioChange.contract_change_id == ContractChange.id)
        .filter(ScenarioChange.scenario_id == scenario_id)
        .order_by(ContractChange.id)
        .all()
    )


def insert_link(db: Session, scenario_id: int, change_id: int) -> ScenarioChange:
    """
    Bundle a change into a scenario. Commits.

    Raises:
        IntegrityError: If the link already exists
    """
    link = ScenarioChange(scenario_id=scenario_id, contract_change_id=change_id)
    db.add(link)
    db.commit()
    return link


def delete_link(db: Session, scenario_id: int, change_id: int) -> bool:
    """Remove a change from a scenario bundle. Commits."""
    deleted = (
        db.query(ScenarioChange)
        .filter(
            ScenarioChange.scenario_id == scenario_id,
            ScenarioChange.contract_change_id == change_id,
        )
        .delete(synchronize_session="fetch")
    )
    db.commit()
    return deleted > 0


def delete_scenario_links(db: Session, scenario_id: int) -> int:
    """Dissolve a scenario bundle. Flushes only; returns links removed."""
    deleted = (
        db.query(ScenarioChange)
        .filter(ScenarioChange.scenario_id == scenario_id)
        .delete(synchronize_session="fetch")
    )
    db.flush()
    return deleted
