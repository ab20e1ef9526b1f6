"""
Store Health Index Engine.

Turns periodic raw store metrics into normalized, weighted 0-100 health
indices, tracks their change over time, classifies products into tiers and
raises threshold alerts.
"""

__version__ = "1.0.0"
