"""Expense validation package."""

from housesplit.validation.validator import ExpenseValidator

__all__ = ["ExpenseValidator"]
