"""Shared fixtures: a small two-currency ledger with a fixed 'today'."""

from datetime import date
from decimal import Decimal

import pytest

from src.models.ledger import (
    Account,
    AccountType,
    Budget,
    Category,
    CategoryKind,
    Currency,
    FinanceSettings,
    Ledger,
)


# Period for this date with month_start_day=25 is 2024-02-25 .. 2024-03-24
TODAY = date(2024, 3, 10)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def settings() -> FinanceSettings:
    return FinanceSettings()


@pytest.fixture
def usd_account() -> Account:
    return Account(
        id="acc-usd",
        name="Main Checking",
        type=AccountType.CHECKING,
        currency=Currency.USD,
        initial_amount=Decimal("100"),
    )


@pytest.fixture
def eur_account() -> Account:
    return Account(
        id="acc-eur",
        name="Euro Savings",
        type=AccountType.SAVINGS,
        currency=Currency.EUR,
    )


@pytest.fixture
def categories() -> list[Category]:
    return [
        Category(id="cat-food", name="Food", kind=CategoryKind.EXPENSE),
        Category(id="cat-salary", name="Salary", kind=CategoryKind.INCOME),
        Category(id="cat-misc", name="Misc", kind=CategoryKind.BOTH),
    ]


@pytest.fixture
def food_budget() -> Budget:
    return Budget(
        id="bud-food",
        name="Groceries",
        category_id="cat-food",
        amount=Decimal("400"),
        start_date=date(2024, 1, 1),
    )


@pytest.fixture
def base_ledger(usd_account, eur_account, categories, food_budget, settings) -> Ledger:
    """Accounts, categories and a budget; no transactions yet."""
    return Ledger(
        accounts=(usd_account, eur_account),
        categories=tuple(categories),
        budgets=(food_budget,),
        settings=settings,
    )
