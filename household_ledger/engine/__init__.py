"""
Ledger Engine Package

Pure calculations (income, budget resolution, recurring projection,
installment split/reflow) and the async services that persist their results.
"""

from household_ledger.engine.budgets import BudgetService, resolve_budget_amount
from household_ledger.engine.closures import CreditCardInvoiceService, MonthClosureService
from household_ledger.engine.income import total_income
from household_ledger.engine.installments import (
    InstallmentService,
    create_installments,
    installment_date,
    reflow_installments,
)
from household_ledger.engine.persons import PersonService
from household_ledger.engine.recurring import (
    RecurringService,
    generate_for_month,
    project_definition,
)
from household_ledger.engine.savings import SavingsService

__all__ = [
    # Pure calculations
    "create_installments",
    "generate_for_month",
    "installment_date",
    "project_definition",
    "reflow_installments",
    "resolve_budget_amount",
    "total_income",
    # Services
    "BudgetService",
    "CreditCardInvoiceService",
    "InstallmentService",
    "MonthClosureService",
    "PersonService",
    "RecurringService",
    "SavingsService",
]
