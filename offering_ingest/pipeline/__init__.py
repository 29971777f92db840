"""Extraction pipeline: aggregation, store filtering and orchestration."""
