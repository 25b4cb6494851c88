"""SQLite persistence layer for the finanzas backend.

The repository provides a small, well-typed API that hides SQL details from the
rest of the code. Every query on user data is scoped by ``user_id`` so one
user can never read or mutate another user's records.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from .models import (
    CreditInstallment,
    CreditPurchase,
    ExpensePlan,
    Investment,
    InvestmentType,
    MarketQuote,
    SavingsGoal,
    Transaction,
    TransactionType,
    utcnow,
)

logger = logging.getLogger(__name__)

TRANSACTION_COLUMNS = (
    "id", "user_id", "type", "amount", "category", "description", "date",
    "is_recurring", "installments", "current_installment", "created_at", "updated_at",
)
SAVINGS_GOAL_COLUMNS = (
    "id", "user_id", "name", "target_amount", "current_amount", "deadline", "created_at", "updated_at",
)
EXPENSE_PLAN_COLUMNS = SAVINGS_GOAL_COLUMNS + ("category",)
CREDIT_PURCHASE_COLUMNS = (
    "id", "user_id", "description", "category", "total_amount", "installments",
    "monthly_amount", "start_date", "created_at", "updated_at",
)
CREDIT_INSTALLMENT_COLUMNS = (
    "id", "credit_purchase_id", "installment_number", "due_date", "amount", "paid",
    "paid_date", "transaction_id", "created_at", "updated_at",
)
INVESTMENT_COLUMNS = (
    "id", "user_id", "description", "investment_type", "amount", "start_date",
    "maturity_date", "annual_rate", "estimated_return", "is_liquidated",
    "liquidation_date", "actual_return", "transaction_id", "currency",
    "exchange_rate", "created_at", "updated_at",
)

# Columns a caller may change through the generic update helper.
_IMMUTABLE_COLUMNS = frozenset({"id", "user_id", "created_at", "updated_at"})


class SQLiteRepository:
    """Encapsulates all SQLite access for the application.

    FastAPI runs synchronous routes in a thread pool, so the single connection
    is opened with ``check_same_thread=False`` and every statement runs under
    :attr:`_lock`.
    """

    def __init__(self, database_path: Path | str) -> None:
        self._database_path = database_path
        self._connection = sqlite3.connect(str(database_path), check_same_thread=False)
        self._connection.execute("PRAGMA foreign_keys = ON;")
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()

    def close(self) -> None:
        """Close the underlying SQLite connection."""

        with self._lock:
            self._connection.close()

    # ------------------------------------------------------------------
    # Schema management
    # ------------------------------------------------------------------
    def initialise_schema(self) -> None:
        """Create all tables required by the application if they do not exist."""

        with self._lock:
            self._connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS transactions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    type TEXT NOT NULL CHECK (type IN ('income', 'expense', 'credit')),
                    amount REAL NOT NULL,
                    category TEXT NOT NULL,
                    description TEXT NOT NULL,
                    date TEXT NOT NULL,
                    is_recurring INTEGER,
                    installments INTEGER,
                    current_installment INTEGER,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_transactions_user_date ON transactions (user_id, date);

                CREATE TABLE IF NOT EXISTS savings_goals (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    target_amount REAL NOT NULL,
                    current_amount REAL NOT NULL DEFAULT 0,
                    deadline TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS expense_plans (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    target_amount REAL NOT NULL,
                    current_amount REAL NOT NULL DEFAULT 0,
                    deadline TEXT NOT NULL,
                    category TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS credit_purchases (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    description TEXT NOT NULL,
                    category TEXT NOT NULL,
                    total_amount REAL NOT NULL,
                    installments INTEGER NOT NULL,
                    monthly_amount REAL NOT NULL,
                    start_date TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS credit_installments (
                    id TEXT PRIMARY KEY,
                    credit_purchase_id TEXT NOT NULL REFERENCES credit_purchases (id) ON DELETE CASCADE,
                    installment_number INTEGER NOT NULL,
                    due_date TEXT NOT NULL,
                    amount REAL NOT NULL,
                    paid INTEGER NOT NULL DEFAULT 0,
                    paid_date TEXT,
                    transaction_id TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (credit_purchase_id, installment_number)
                );

                CREATE TABLE IF NOT EXISTS investments (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    description TEXT NOT NULL,
                    investment_type TEXT NOT NULL,
                    amount REAL NOT NULL,
                    start_date TEXT NOT NULL,
                    maturity_date TEXT,
                    annual_rate REAL,
                    estimated_return REAL NOT NULL DEFAULT 0,
                    is_liquidated INTEGER NOT NULL DEFAULT 0,
                    liquidation_date TEXT,
                    actual_return REAL,
                    transaction_id TEXT,
                    currency TEXT,
                    exchange_rate REAL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS market_quotes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    kind TEXT NOT NULL,
                    ticker TEXT NOT NULL,
                    valuation_date TEXT NOT NULL,
                    price_ars REAL,
                    price_usd REAL,
                    pct_change REAL,
                    UNIQUE (kind, ticker, valuation_date)
                );
                """
            )
            self._connection.commit()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def insert_transaction(self, transaction: Transaction) -> Transaction:
        self._insert("transactions", TRANSACTION_COLUMNS, _transaction_params(transaction))
        return transaction

    def get_transaction(self, user_id: str, transaction_id: str) -> Optional[Transaction]:
        row = self._fetch_one("SELECT * FROM transactions WHERE id = ? AND user_id = ?", (transaction_id, user_id))
        return _row_to_transaction(row) if row else None

    def list_transactions(
        self,
        user_id: str,
        transaction_type: Optional[TransactionType] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[Transaction]:
        """Return the user's transactions, newest first.

        ``start_date`` and ``end_date`` are inclusive bounds.
        """

        clauses = ["user_id = ?"]
        params: list[Any] = [user_id]
        if transaction_type is not None:
            clauses.append("type = ?")
            params.append(TransactionType(transaction_type).value)
        if start_date is not None:
            clauses.append("date >= ?")
            params.append(start_date.isoformat())
        if end_date is not None:
            clauses.append("date <= ?")
            params.append(end_date.isoformat())
        rows = self._fetch_all(
            f"SELECT * FROM transactions WHERE {' AND '.join(clauses)} ORDER BY date DESC, created_at DESC, rowid DESC",
            params,
        )
        return [_row_to_transaction(row) for row in rows]

    def update_transaction(self, user_id: str, transaction_id: str, updates: Mapping[str, Any]) -> Optional[Transaction]:
        self._update("transactions", TRANSACTION_COLUMNS, user_id, transaction_id, updates)
        return self.get_transaction(user_id, transaction_id)

    def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        """Delete a transaction; an installment it paid goes back to unpaid in the same commit."""

        with self._lock:
            try:
                self._connection.execute(
                    "UPDATE credit_installments SET paid = 0, paid_date = NULL, transaction_id = NULL, updated_at = ? "
                    "WHERE transaction_id = ? "
                    "AND credit_purchase_id IN (SELECT id FROM credit_purchases WHERE user_id = ?)",
                    (_timestamp(utcnow()), transaction_id, user_id),
                )
                cursor = self._connection.execute(
                    "DELETE FROM transactions WHERE id = ? AND user_id = ?",
                    (transaction_id, user_id),
                )
            except sqlite3.DatabaseError:
                self._connection.rollback()
                raise
            self._connection.commit()
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Savings goals and expense plans
    # ------------------------------------------------------------------
    def insert_savings_goal(self, goal: SavingsGoal) -> SavingsGoal:
        self._insert("savings_goals", SAVINGS_GOAL_COLUMNS, _goal_params(goal))
        return goal

    def get_savings_goal(self, user_id: str, goal_id: str) -> Optional[SavingsGoal]:
        row = self._fetch_one("SELECT * FROM savings_goals WHERE id = ? AND user_id = ?", (goal_id, user_id))
        return _row_to_savings_goal(row) if row else None

    def list_savings_goals(self, user_id: str) -> list[SavingsGoal]:
        rows = self._fetch_all(
            "SELECT * FROM savings_goals WHERE user_id = ? ORDER BY deadline ASC, created_at ASC",
            (user_id,),
        )
        return [_row_to_savings_goal(row) for row in rows]

    def update_savings_goal(self, user_id: str, goal_id: str, updates: Mapping[str, Any]) -> Optional[SavingsGoal]:
        self._update("savings_goals", SAVINGS_GOAL_COLUMNS, user_id, goal_id, updates)
        return self.get_savings_goal(user_id, goal_id)

    def delete_savings_goal(self, user_id: str, goal_id: str) -> bool:
        return self._delete("savings_goals", user_id, goal_id)

    def insert_expense_plan(self, plan: ExpensePlan) -> ExpensePlan:
        params = _goal_params(plan)
        params["category"] = plan.category
        self._insert("expense_plans", EXPENSE_PLAN_COLUMNS, params)
        return plan

    def get_expense_plan(self, user_id: str, plan_id: str) -> Optional[ExpensePlan]:
        row = self._fetch_one("SELECT * FROM expense_plans WHERE id = ? AND user_id = ?", (plan_id, user_id))
        return _row_to_expense_plan(row) if row else None

    def list_expense_plans(self, user_id: str) -> list[ExpensePlan]:
        rows = self._fetch_all(
            "SELECT * FROM expense_plans WHERE user_id = ? ORDER BY deadline ASC, created_at ASC",
            (user_id,),
        )
        return [_row_to_expense_plan(row) for row in rows]

    def update_expense_plan(self, user_id: str, plan_id: str, updates: Mapping[str, Any]) -> Optional[ExpensePlan]:
        self._update("expense_plans", EXPENSE_PLAN_COLUMNS, user_id, plan_id, updates)
        return self.get_expense_plan(user_id, plan_id)

    def delete_expense_plan(self, user_id: str, plan_id: str) -> bool:
        return self._delete("expense_plans", user_id, plan_id)

    # ------------------------------------------------------------------
    # Credit purchases and their installments
    # ------------------------------------------------------------------
    def insert_credit_purchase(self, purchase: CreditPurchase, installments: Iterable[CreditInstallment]) -> CreditPurchase:
        """Persist a purchase together with its whole installment schedule atomically."""

        with self._lock:
            try:
                self._connection.execute(
                    _insert_sql("credit_purchases", CREDIT_PURCHASE_COLUMNS),
                    _purchase_params(purchase),
                )
                self._connection.executemany(
                    _insert_sql("credit_installments", CREDIT_INSTALLMENT_COLUMNS),
                    [_installment_params(inst) for inst in installments],
                )
            except sqlite3.DatabaseError:
                self._connection.rollback()
                raise
            self._connection.commit()
        return purchase

    def get_credit_purchase(self, user_id: str, purchase_id: str) -> Optional[CreditPurchase]:
        row = self._fetch_one("SELECT * FROM credit_purchases WHERE id = ? AND user_id = ?", (purchase_id, user_id))
        return _row_to_credit_purchase(row) if row else None

    def list_credit_purchases(self, user_id: str) -> list[CreditPurchase]:
        rows = self._fetch_all(
            "SELECT * FROM credit_purchases WHERE user_id = ? ORDER BY start_date DESC, created_at DESC",
            (user_id,),
        )
        return [_row_to_credit_purchase(row) for row in rows]

    def delete_credit_purchase(self, user_id: str, purchase_id: str) -> bool:
        return self._delete("credit_purchases", user_id, purchase_id)

    def list_installments(self, user_id: str, purchase_id: Optional[str] = None) -> list[CreditInstallment]:
        sql = (
            "SELECT ci.* FROM credit_installments ci "
            "JOIN credit_purchases cp ON cp.id = ci.credit_purchase_id "
            "WHERE cp.user_id = ?"
        )
        params: list[Any] = [user_id]
        if purchase_id is not None:
            sql += " AND ci.credit_purchase_id = ?"
            params.append(purchase_id)
        sql += " ORDER BY ci.due_date ASC, ci.installment_number ASC"
        return [_row_to_installment(row) for row in self._fetch_all(sql, params)]

    def get_installment(self, user_id: str, installment_id: str) -> Optional[CreditInstallment]:
        row = self._fetch_one(
            "SELECT ci.* FROM credit_installments ci "
            "JOIN credit_purchases cp ON cp.id = ci.credit_purchase_id "
            "WHERE ci.id = ? AND cp.user_id = ?",
            (installment_id, user_id),
        )
        return _row_to_installment(row) if row else None

    def pay_installment(self, installment_id: str, transaction: Transaction, paid_date: date) -> None:
        """Record the payment transaction and flag the installment as paid in one commit."""

        with self._lock:
            try:
                self._connection.execute(
                    _insert_sql("transactions", TRANSACTION_COLUMNS),
                    _transaction_params(transaction),
                )
                self._connection.execute(
                    "UPDATE credit_installments SET paid = 1, paid_date = ?, transaction_id = ?, updated_at = ? "
                    "WHERE id = ?",
                    (paid_date.isoformat(), transaction.id, _timestamp(utcnow()), installment_id),
                )
            except sqlite3.DatabaseError:
                self._connection.rollback()
                raise
            self._connection.commit()

    # ------------------------------------------------------------------
    # Investments
    # ------------------------------------------------------------------
    def insert_investment(self, investment: Investment) -> Investment:
        self._insert("investments", INVESTMENT_COLUMNS, _investment_params(investment))
        return investment

    def get_investment(self, user_id: str, investment_id: str) -> Optional[Investment]:
        row = self._fetch_one("SELECT * FROM investments WHERE id = ? AND user_id = ?", (investment_id, user_id))
        return _row_to_investment(row) if row else None

    def list_investments(self, user_id: str) -> list[Investment]:
        rows = self._fetch_all(
            "SELECT * FROM investments WHERE user_id = ? ORDER BY is_liquidated ASC, start_date DESC, created_at DESC",
            (user_id,),
        )
        return [_row_to_investment(row) for row in rows]

    def update_investment(self, user_id: str, investment_id: str, updates: Mapping[str, Any]) -> Optional[Investment]:
        self._update("investments", INVESTMENT_COLUMNS, user_id, investment_id, updates)
        return self.get_investment(user_id, investment_id)

    def settle_investment(
        self,
        user_id: str,
        investment_id: str,
        updates: Mapping[str, Any],
        transaction: Optional[Transaction],
    ) -> Optional[Investment]:
        """Apply a liquidation or sale and its resulting transaction in one commit."""

        with self._lock:
            try:
                if transaction is not None:
                    self._connection.execute(
                        _insert_sql("transactions", TRANSACTION_COLUMNS),
                        _transaction_params(transaction),
                    )
                self._execute_update("investments", INVESTMENT_COLUMNS, user_id, investment_id, updates)
            except sqlite3.DatabaseError:
                self._connection.rollback()
                raise
            self._connection.commit()
        return self.get_investment(user_id, investment_id)

    def delete_investment(self, user_id: str, investment_id: str) -> bool:
        return self._delete("investments", user_id, investment_id)

    # ------------------------------------------------------------------
    # Market quotes
    # ------------------------------------------------------------------
    def log_quotes(self, quotes: Iterable[MarketQuote]) -> int:
        params = [
            {
                "kind": quote.kind.value,
                "ticker": quote.ticker.upper(),
                "valuation_date": quote.valuation_date.isoformat(),
                "price_ars": quote.price_ars,
                "price_usd": quote.price_usd,
                "pct_change": quote.pct_change,
            }
            for quote in quotes
        ]
        with self._lock:
            self._connection.executemany(
                """
                INSERT OR REPLACE INTO market_quotes (kind, ticker, valuation_date, price_ars, price_usd, pct_change)
                VALUES (:kind, :ticker, :valuation_date, :price_ars, :price_usd, :pct_change)
                """,
                params,
            )
            self._connection.commit()
        return len(params)

    def latest_quote(self, kind: str, ticker: str) -> Optional[dict[str, Any]]:
        row = self._fetch_one(
            "SELECT * FROM market_quotes WHERE kind = ? AND ticker = ? ORDER BY date(valuation_date) DESC LIMIT 1",
            (kind, ticker.upper()),
        )
        return dict(row) if row else None

    # ------------------------------------------------------------------
    # Low level helpers
    # ------------------------------------------------------------------
    def _insert(self, table: str, columns: tuple[str, ...], params: Mapping[str, Any]) -> None:
        with self._lock:
            self._connection.execute(_insert_sql(table, columns), params)
            self._connection.commit()
        logger.debug("Inserted %s %s", table, params.get("id"))

    def _update(
        self,
        table: str,
        columns: tuple[str, ...],
        user_id: str,
        record_id: str,
        updates: Mapping[str, Any],
    ) -> None:
        with self._lock:
            self._execute_update(table, columns, user_id, record_id, updates)
            self._connection.commit()

    def _execute_update(
        self,
        table: str,
        columns: tuple[str, ...],
        user_id: str,
        record_id: str,
        updates: Mapping[str, Any],
    ) -> None:
        unknown = set(updates) - set(columns)
        if unknown:
            raise KeyError(f"unknown columns for {table}: {sorted(unknown)}")
        fields = {key: _to_db(value) for key, value in updates.items() if key not in _IMMUTABLE_COLUMNS}
        fields["updated_at"] = _timestamp(utcnow())
        assignments = ", ".join(f"{key} = :{key}" for key in fields)
        self._connection.execute(
            f"UPDATE {table} SET {assignments} WHERE id = :_id AND user_id = :_user_id",
            {**fields, "_id": record_id, "_user_id": user_id},
        )

    def _delete(self, table: str, user_id: str, record_id: str) -> bool:
        with self._lock:
            cursor = self._connection.execute(f"DELETE FROM {table} WHERE id = ? AND user_id = ?", (record_id, user_id))
            self._connection.commit()
            return cursor.rowcount > 0

    def _fetch_one(self, sql: str, params: Iterable[Any]) -> Optional[sqlite3.Row]:
        with self._lock:
            return self._connection.execute(sql, tuple(params)).fetchone()

    def _fetch_all(self, sql: str, params: Iterable[Any]) -> list[sqlite3.Row]:
        with self._lock:
            return self._connection.execute(sql, tuple(params)).fetchall()


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

def _insert_sql(table: str, columns: tuple[str, ...]) -> str:
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(':' + c for c in columns)})"


def _timestamp(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return _timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    if hasattr(value, "value"):
        return value.value
    return value


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value[:10])


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _optional_bool(value: Optional[int]) -> Optional[bool]:
    if value is None:
        return None
    return bool(value)


def _transaction_params(tx: Transaction) -> dict[str, Any]:
    return {
        "id": tx.id,
        "user_id": tx.user_id,
        "type": TransactionType(tx.type).value,
        "amount": tx.amount,
        "category": tx.category,
        "description": tx.description,
        "date": tx.date.isoformat(),
        "is_recurring": _to_db(tx.is_recurring),
        "installments": tx.installments,
        "current_installment": tx.current_installment,
        "created_at": _timestamp(tx.created_at),
        "updated_at": _timestamp(tx.updated_at),
    }


def _row_to_transaction(row: sqlite3.Row) -> Transaction:
    return Transaction(
        id=row["id"],
        user_id=row["user_id"],
        type=TransactionType(row["type"]),
        amount=float(row["amount"]),
        category=row["category"],
        description=row["description"],
        date=_parse_date(row["date"]),
        is_recurring=_optional_bool(row["is_recurring"]),
        installments=row["installments"],
        current_installment=row["current_installment"],
        created_at=_parse_datetime(row["created_at"]),
        updated_at=_parse_datetime(row["updated_at"]),
    )


def _goal_params(goal: SavingsGoal | ExpensePlan) -> dict[str, Any]:
    return {
        "id": goal.id,
        "user_id": goal.user_id,
        "name": goal.name,
        "target_amount": goal.target_amount,
        "current_amount": goal.current_amount,
        "deadline": goal.deadline.isoformat(),
        "created_at": _timestamp(goal.created_at),
        "updated_at": _timestamp(goal.updated_at),
    }


def _row_to_savings_goal(row: sqlite3.Row) -> SavingsGoal:
    return SavingsGoal(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        target_amount=float(row["target_amount"]),
        current_amount=float(row["current_amount"]),
        deadline=_parse_date(row["deadline"]),
        created_at=_parse_datetime(row["created_at"]),
        updated_at=_parse_datetime(row["updated_at"]),
    )


def _row_to_expense_plan(row: sqlite3.Row) -> ExpensePlan:
    return ExpensePlan(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        target_amount=float(row["target_amount"]),
        current_amount=float(row["current_amount"]),
        deadline=_parse_date(row["deadline"]),
        category=row["category"],
        created_at=_parse_datetime(row["created_at"]),
        updated_at=_parse_datetime(row["updated_at"]),
    )


def _purchase_params(purchase: CreditPurchase) -> dict[str, Any]:
    return {
        "id": purchase.id,
        "user_id": purchase.user_id,
        "description": purchase.description,
        "category": purchase.category,
        "total_amount": purchase.total_amount,
        "installments": purchase.installments,
        "monthly_amount": purchase.monthly_amount,
        "start_date": purchase.start_date.isoformat(),
        "created_at": _timestamp(purchase.created_at),
        "updated_at": _timestamp(purchase.updated_at),
    }


def _row_to_credit_purchase(row: sqlite3.Row) -> CreditPurchase:
    return CreditPurchase(
        id=row["id"],
        user_id=row["user_id"],
        description=row["description"],
        category=row["category"],
        total_amount=float(row["total_amount"]),
        installments=int(row["installments"]),
        monthly_amount=float(row["monthly_amount"]),
        start_date=_parse_date(row["start_date"]),
        created_at=_parse_datetime(row["created_at"]),
        updated_at=_parse_datetime(row["updated_at"]),
    )


def _installment_params(installment: CreditInstallment) -> dict[str, Any]:
    return {
        "id": installment.id,
        "credit_purchase_id": installment.credit_purchase_id,
        "installment_number": installment.installment_number,
        "due_date": installment.due_date.isoformat(),
        "amount": installment.amount,
        "paid": int(installment.paid),
        "paid_date": _to_db(installment.paid_date),
        "transaction_id": installment.transaction_id,
        "created_at": _timestamp(installment.created_at),
        "updated_at": _timestamp(installment.updated_at),
    }


def _row_to_installment(row: sqlite3.Row) -> CreditInstallment:
    return CreditInstallment(
        id=row["id"],
        credit_purchase_id=row["credit_purchase_id"],
        installment_number=int(row["installment_number"]),
        due_date=_parse_date(row["due_date"]),
        amount=float(row["amount"]),
        paid=bool(row["paid"]),
        paid_date=_parse_date(row["paid_date"]),
        transaction_id=row["transaction_id"],
        created_at=_parse_datetime(row["created_at"]),
        updated_at=_parse_datetime(row["updated_at"]),
    )


def _investment_params(investment: Investment) -> dict[str, Any]:
    return {
        "id": investment.id,
        "user_id": investment.user_id,
        "description": investment.description,
        "investment_type": InvestmentType(investment.investment_type).value,
        "amount": investment.amount,
        "start_date": investment.start_date.isoformat(),
        "maturity_date": _to_db(investment.maturity_date),
        "annual_rate": investment.annual_rate,
        "estimated_return": investment.estimated_return,
        "is_liquidated": int(investment.is_liquidated),
        "liquidation_date": _to_db(investment.liquidation_date),
        "actual_return": investment.actual_return,
        "transaction_id": investment.transaction_id,
        "currency": investment.currency,
        "exchange_rate": investment.exchange_rate,
        "created_at": _timestamp(investment.created_at),
        "updated_at": _timestamp(investment.updated_at),
    }


def _row_to_investment(row: sqlite3.Row) -> Investment:
    return Investment(
        id=row["id"],
        user_id=row["user_id"],
        description=row["description"],
        investment_type=InvestmentType(row["investment_type"]),
        amount=float(row["amount"]),
        start_date=_parse_date(row["start_date"]),
        maturity_date=_parse_date(row["maturity_date"]),
        annual_rate=row["annual_rate"],
        estimated_return=float(row["estimated_return"]),
        is_liquidated=bool(row["is_liquidated"]),
        liquidation_date=_parse_date(row["liquidation_date"]),
        actual_return=row["actual_return"],
        transaction_id=row["transaction_id"],
        currency=row["currency"],
        exchange_rate=row["exchange_rate"],
        created_at=_parse_datetime(row["created_at"]),
        updated_at=_parse_datetime(row["updated_at"]),
    )
