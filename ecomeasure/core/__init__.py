# EcoMeasure Core Module
"""
Core analysis module for EcoMeasure.

Contains:
- Image, option and result data model
- Error taxonomy surfaced to callers
- Ground cover coverage engine
- Canopy cover analysis
- Horizontal vegetation obstruction analysis
"""
