"""Utility package exports for EcoMeasure."""
