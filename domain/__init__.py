"""Lineament Zones Domain Layer.

This package contains the core analysis logic organized by bounded contexts:
- terrain: Elevation grids, Sobel gradients, zone masks, distance transforms
- association: Deposit sampling, enrichment, fault overlap statistics
"""

# Imports alphabetized per project style (isort)
from domain import association, terrain

__all__ = ["association", "terrain"]
