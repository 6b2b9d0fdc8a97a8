"""
FinMate - Source Package

The reconciliation core of a personal-finance dashboard: budget progress,
account balances, net worth, goal progress and transaction views, all in a
single reporting currency.

DESIGN PRINCIPLES:
1. Rows are loosely typed; read them through the normalizer, never directly
2. Degrade, don't crash: one broken table empties one section
3. No silent failures: every degraded section is logged and warned about
4. One reporting currency for every aggregate
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "FinMate Team"
