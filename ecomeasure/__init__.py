# EcoMeasure - Source Package
"""
EcoMeasure: land-cover statistics from single field photographs.

This package provides the pixel classification engine behind:
- Ground cover (Daubenmire quadrat) coverage and diversity statistics
- Canopy cover from upward photographs
- Horizontal vegetation obstruction from pole photographs
"""

__version__ = "0.1.0"
