"""
Catalog Pricing Package

Landed-cost pricing engine for retail, marketplace and partner channels,
plus a batch repricing orchestrator that re-runs it across a whole catalog.
"""

__version__ = "3.0.0"
