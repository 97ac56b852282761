"""Household Ledger - budgets, recurring charges, installments and CSV exchange for a shared household."""

__version__ = "0.1.0"
