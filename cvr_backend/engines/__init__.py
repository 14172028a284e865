"""Forecast aggregation, scenario overlay and promotion engines."""
