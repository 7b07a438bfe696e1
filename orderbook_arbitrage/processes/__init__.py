"""Opportunity search, pair processing and batch orchestration."""
