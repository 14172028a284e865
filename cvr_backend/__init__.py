"""
CVR Forecast Backend Package

FastAPI-based backend for contract value reconciliation (CVR) forecasting.
Provides REST API endpoints for contract periods, proposed changes,
what-if scenarios, forecast generation, and scenario promotion.
"""
