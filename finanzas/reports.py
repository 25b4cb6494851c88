"""Dashboard aggregations backed by pandas.

The dashboard charts need grouped views of the transaction history (spending
per category, cash flow per month). Building a DataFrame once and grouping it
keeps those views short and consistent with each other.
"""
from __future__ import annotations

from datetime import date
from typing import Iterable, Optional

import pandas as pd

from .models import Transaction, TransactionType

COLUMNS = ["date", "type", "amount", "category"]


def transactions_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """Return a DataFrame with one row per transaction and an ``is_income`` flag."""

    rows = [
        {
            "date": pd.Timestamp(tx.date),
            "type": tx.type.value,
            "amount": float(tx.amount),
            "category": tx.category or "Otros",
        }
        for tx in transactions
    ]
    dataframe = pd.DataFrame(rows, columns=COLUMNS)
    dataframe["date"] = pd.to_datetime(dataframe["date"])
    dataframe["amount"] = dataframe["amount"].astype(float)
    dataframe["is_income"] = dataframe["type"] == TransactionType.INCOME.value
    return dataframe


def category_breakdown(
    transactions: Iterable[Transaction],
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> list[dict[str, object]]:
    """Spending (expenses and credit installments) per category, largest first.

    When ``year`` and ``month`` are given only that calendar month is included.
    """

    dataframe = transactions_frame(transactions)
    outflows = dataframe[~dataframe["is_income"]]
    if year is not None and month is not None:
        outflows = outflows[(outflows["date"].dt.year == year) & (outflows["date"].dt.month == month)]
    if outflows.empty:
        return []

    grouped = outflows.groupby("category")["amount"].sum().sort_values(ascending=False)
    total = grouped.sum()
    return [
        {
            "category": str(category),
            "amount": round(float(amount), 2),
            "percentage": round(float(amount / total * 100), 2) if total else 0.0,
        }
        for category, amount in grouped.items()
    ]


def top_category(transactions: Iterable[Transaction], year: Optional[int] = None, month: Optional[int] = None) -> Optional[str]:
    breakdown = category_breakdown(transactions, year, month)
    if not breakdown:
        return None
    return str(breakdown[0]["category"])


def monthly_cashflow(transactions: Iterable[Transaction], months: int = 6, today: Optional[date] = None) -> list[dict[str, object]]:
    """Income, expenses and net flow for the last ``months`` calendar months.

    Months without activity are reported with zeros so charts get a continuous
    axis.
    """

    today = today or date.today()
    end = pd.Period(today, freq="M")
    periods = pd.period_range(end=end, periods=months, freq="M")

    dataframe = transactions_frame(transactions)
    dataframe["period"] = dataframe["date"].dt.to_period("M")
    dataframe["income"] = dataframe["amount"].where(dataframe["is_income"], 0.0)
    dataframe["expenses"] = dataframe["amount"].where(~dataframe["is_income"], 0.0)

    grouped = dataframe.groupby("period")[["income", "expenses"]].sum().reindex(periods, fill_value=0.0)
    return [
        {
            "month": str(period),
            "income": round(float(row["income"]), 2),
            "expenses": round(float(row["expenses"]), 2),
            "net": round(float(row["income"] - row["expenses"]), 2),
        }
        for period, row in grouped.iterrows()
    ]
