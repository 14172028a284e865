"""Seed the database with a sample contract, four actual months and one change."""

import logging
import random

from cvr_backend.database import init_db, SessionLocal
from cvr_backend import crud, schemas

logger = logging.getLogger("cvr.seed")

CATEGORIES = [
    {"code": "LAB", "name": "Labour", "sort_order": 1},
    {"code": "MAT", "name": "Materials", "sort_order": 2},
    {"code": "SUB", "name": "Subcontract", "sort_order": 3},
    {"code": "PRE", "name": "Preliminaries", "sort_order": 4},
]

CONTRACT = {
    "contract_code": "BS-2024-001",
    "name": "Alpha Tower Construction",
    "customer_name": "Metro Corp",
    "start_date": "2024-01-01",
    "end_date": "2024-12-31",
    "original_value": 5000000,
    "target_margin_pct": 12.5,
    "status": "active",
}

ACTUAL_MONTHS = ["2024-01-01", "2024-02-01", "2024-03-01", "2024-04-01"]
FORECAST_MONTHS = [f"2024-{m:02d}-01" for m in range(5, 13)]


def seed(seed_value: int = 42):
    rng = random.Random(seed_value)
    init_db()
    db = SessionLocal()
    try:
        categories = [
            crud.create_cost_category(db, schemas.CostCategoryCreate(**cat)) for cat in CATEGORIES
        ]
        labour_id = categories[0].id

        contract = crud.create_contract(db, schemas.ContractCreate(**CONTRACT))

        for month in ACTUAL_MONTHS:
            crud.create_period(db, contract.id, schemas.PeriodCreate(
                period_month=month,
                revenue=400000 + rng.random() * 50000,
                revenue_type="actual",
                costs={labour_id: 350000 + rng.random() * 20000},
                cost_type="actual",
            ))
        for month in FORECAST_MONTHS:
            crud.create_period(db, contract.id, schemas.PeriodCreate(period_month=month))

        crud.create_change(db, contract.id, schemas.ChangeCreate(
            change_code="VO-001",
            title="Additional Groundworks",
            change_type="scope_addition",
            revenue_delta=50000,
            cost_delta=42000,
            effective_date="2024-06-15",
        ))
        crud.create_scenario(db, contract.id, schemas.ScenarioCreate(name="Upside case"))
        logger.info(f"Seeded contract {contract.contract_code} (id={contract.id})")
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed()
    print("Seeding complete.")
