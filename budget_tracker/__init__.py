"""
Budget Tracker - Source Package

The ledger and derivation engine behind a personal finance tracker:
dated income/spending/transfer entries, derived account balances,
recurring transaction projection, budget and savings-goal tracking,
and linked debt accounting.

DESIGN PRINCIPLES:
1. The ledger is the single source of truth; balances are views
2. One mutation pipeline for manual and recurring entries
3. Cross-entity updates are explicit synchronization calls
4. Persistence never blocks interaction
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Budget Tracker Team"
