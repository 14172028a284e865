"""
CVR Forecast API Routers

Each module in this package defines a FastAPI APIRouter for a specific
domain of the application (contracts, changes, scenarios, forecasting).
Routers are included in the main FastAPI app in main.py.
"""
