"""
Finance Tracker - Source Package

A personal-finance ledger backend: accounts, categorized expenses and
incomes, transfers, budgets, saving goals and debts, reported in one base
currency over custom monthly periods.

DESIGN PRINCIPLES:
1. The accounting engine is pure: ledger snapshot in, report out
2. Fail early at the store boundary, never during reporting
3. No silent corrections; dangling references are reported, not hidden
4. Every change must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
