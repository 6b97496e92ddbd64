"""
Invest Core

Portfolio validation, target allocation and manual rebalancing engine.
"""

__version__ = "0.1.0"
