"""High-level application services orchestrating the finanzas backend.

:class:`FinanceService` is the only place that mutates records. After every
mutation the derived numbers (balances, installment progress, portfolio
totals) are recomputed from the stored facts by :mod:`finanzas.calculations`.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Optional

from . import calculations, reports
from .database import SQLiteRepository
from .errors import ConflictError, NotFoundError, ValidationError
from .models import (
    INVESTMENT_INCOME_CATEGORY,
    CreditPurchase,
    ExpensePlan,
    Investment,
    InvestmentType,
    SavingsGoal,
    Transaction,
    TransactionType,
)

logger = logging.getLogger(__name__)


class FinanceService:
    """Coordinates persistence and the balance / amortization arithmetic."""

    def __init__(self, repository: SQLiteRepository, clock: Callable[[], date] = date.today) -> None:
        self._repository = repository
        self._clock = clock

    def today(self) -> date:
        return self._clock()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def list_transactions(
        self,
        user_id: str,
        transaction_type: Optional[TransactionType] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[Transaction]:
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date")
        return self._repository.list_transactions(user_id, transaction_type, start_date, end_date)

    def create_transaction(
        self,
        user_id: str,
        type: TransactionType,
        amount: float,
        category: str,
        description: str,
        date: Optional[date] = None,
        is_recurring: Optional[bool] = None,
        installments: Optional[int] = None,
        current_installment: Optional[int] = None,
    ) -> Transaction:
        if amount <= 0:
            raise ValidationError("amount must be positive")
        if not category or not description:
            raise ValidationError("category and description are required")
        transaction = Transaction(
            user_id=user_id,
            type=TransactionType(type),
            amount=calculations.round_money(amount),
            category=category,
            description=description,
            date=date or self.today(),
            is_recurring=is_recurring,
            installments=installments,
            current_installment=current_installment,
        )
        self._repository.insert_transaction(transaction)
        logger.info("Created %s transaction %s for user %s", transaction.type.value, transaction.id, user_id)
        return transaction

    def update_transaction(self, user_id: str, transaction_id: str, updates: dict[str, Any]) -> Transaction:
        self._require_transaction(user_id, transaction_id)
        if "amount" in updates:
            if updates["amount"] is None or updates["amount"] <= 0:
                raise ValidationError("amount must be positive")
            updates = {**updates, "amount": calculations.round_money(updates["amount"])}
        _reject_nulls(updates, ("type", "category", "description", "date"))
        updated = self._repository.update_transaction(user_id, transaction_id, updates)
        logger.info("Updated transaction %s for user %s", transaction_id, user_id)
        return updated

    def delete_transaction(self, user_id: str, transaction_id: str) -> None:
        """Delete a transaction; an installment it paid goes back to unpaid."""

        self._require_transaction(user_id, transaction_id)
        self._repository.delete_transaction(user_id, transaction_id)
        logger.info("Deleted transaction %s for user %s", transaction_id, user_id)

    def history(self, user_id: str) -> list[dict[str, Any]]:
        """Transactions newest first, each with the running balance right after it."""

        # Oldest recorded first, so ties in running_balances keep recording order.
        recorded = reversed(self._repository.list_transactions(user_id))
        pairs = calculations.running_balances(recorded)
        return [{"transaction": tx, "balance": balance} for tx, balance in reversed(pairs)]

    def balance(self, user_id: str) -> calculations.BalanceSummary:
        return calculations.balance_summary(
            self._repository.list_transactions(user_id),
            self._repository.list_investments(user_id),
        )

    def _require_transaction(self, user_id: str, transaction_id: str) -> Transaction:
        transaction = self._repository.get_transaction(user_id, transaction_id)
        if transaction is None:
            raise NotFoundError("transaction", transaction_id)
        return transaction

    # ------------------------------------------------------------------
    # Credit-card purchases
    # ------------------------------------------------------------------
    def create_credit_purchase(
        self,
        user_id: str,
        description: str,
        category: str,
        total_amount: float,
        installments: int,
        start_date: Optional[date] = None,
    ) -> calculations.PurchaseProgress:
        monthly = calculations.monthly_installment(total_amount, installments)
        purchase = CreditPurchase(
            user_id=user_id,
            description=description,
            category=category,
            total_amount=calculations.round_money(total_amount),
            installments=installments,
            monthly_amount=monthly,
            start_date=start_date or self.today(),
        )
        schedule = calculations.installment_schedule(
            purchase.total_amount,
            installments,
            purchase.start_date,
            credit_purchase_id=purchase.id,
        )
        self._repository.insert_credit_purchase(purchase, schedule)
        logger.info(
            "Created credit purchase %s for user %s: %s in %d installments",
            purchase.id,
            user_id,
            purchase.total_amount,
            installments,
        )
        return calculations.purchase_progress(purchase, schedule, self.today())

    def preview_credit_purchase(self, total_amount: float, installments: int, start_date: Optional[date] = None) -> dict[str, Any]:
        """Return the monthly amount and schedule without persisting anything."""

        schedule = calculations.installment_schedule(total_amount, installments, start_date or self.today())
        return {
            "monthly_amount": calculations.monthly_installment(total_amount, installments),
            "installments": [
                {"installment_number": inst.installment_number, "due_date": inst.due_date, "amount": inst.amount}
                for inst in schedule
            ],
        }

    def list_credit_purchases(self, user_id: str) -> list[calculations.PurchaseProgress]:
        installments = self._repository.list_installments(user_id)
        today = self.today()
        progress = [
            calculations.purchase_progress(purchase, installments, today)
            for purchase in self._repository.list_credit_purchases(user_id)
        ]
        return calculations.sort_purchase_progress(progress)

    def upcoming_installments(self, user_id: str, limit: Optional[int] = None) -> list[dict[str, Any]]:
        """Unpaid installments across all purchases, soonest due first."""

        purchases = {purchase.id: purchase for purchase in self._repository.list_credit_purchases(user_id)}
        today = self.today()
        upcoming = []
        for installment in self._repository.list_installments(user_id):
            if installment.paid:
                continue
            purchase = purchases[installment.credit_purchase_id]
            upcoming.append(
                {
                    "installment": installment,
                    "purchase_id": purchase.id,
                    "description": purchase.description,
                    "category": purchase.category,
                    "total_installments": purchase.installments,
                    "is_overdue": installment.due_date < today,
                }
            )
        return upcoming[:limit] if limit else upcoming

    def pay_installment(self, user_id: str, installment_id: str, paid_date: Optional[date] = None) -> Transaction:
        """Mark an installment as paid and record the matching credit transaction."""

        installment = self._repository.get_installment(user_id, installment_id)
        if installment is None:
            raise NotFoundError("installment", installment_id)
        if installment.paid:
            raise ConflictError(f"installment {installment_id} is already paid")
        purchase = self._repository.get_credit_purchase(user_id, installment.credit_purchase_id)
        if purchase is None:
            raise NotFoundError("credit purchase", installment.credit_purchase_id)

        paid_date = paid_date or self.today()
        transaction = Transaction(
            user_id=user_id,
            type=TransactionType.CREDIT,
            amount=installment.amount,
            category=purchase.category,
            description=calculations.installment_label(
                purchase.description, installment.installment_number, purchase.installments
            ),
            date=paid_date,
            is_recurring=True,
            installments=purchase.installments,
            current_installment=installment.installment_number,
        )
        self._repository.pay_installment(installment.id, transaction, paid_date)
        logger.info(
            "Paid installment %d/%d of purchase %s for user %s",
            installment.installment_number,
            purchase.installments,
            purchase.id,
            user_id,
        )
        return transaction

    def delete_credit_purchase(self, user_id: str, purchase_id: str) -> None:
        """Delete a purchase and its schedule; transactions already paid stay in the history."""

        if not self._repository.delete_credit_purchase(user_id, purchase_id):
            raise NotFoundError("credit purchase", purchase_id)
        logger.info("Deleted credit purchase %s for user %s", purchase_id, user_id)

    # ------------------------------------------------------------------
    # Investments
    # ------------------------------------------------------------------
    def list_investments(self, user_id: str) -> list[calculations.InvestmentStatus]:
        today = self.today()
        return [
            calculations.investment_status(investment, today)
            for investment in calculations.sort_investments(self._repository.list_investments(user_id))
        ]

    def create_investment(
        self,
        user_id: str,
        description: str,
        investment_type: InvestmentType,
        amount: float,
        start_date: Optional[date] = None,
        maturity_date: Optional[date] = None,
        annual_rate: Optional[float] = None,
        currency: Optional[str] = None,
        exchange_rate: Optional[float] = None,
    ) -> Investment:
        investment_type = InvestmentType(investment_type)
        if amount <= 0:
            raise ValidationError("amount must be positive")
        if investment_type == InvestmentType.COMPRA_DIVISAS and (not currency or not exchange_rate):
            raise ValidationError("currency purchases need a currency and an exchange rate")
        if exchange_rate is not None and exchange_rate <= 0:
            raise ValidationError("exchange_rate must be positive")
        start_date = start_date or self.today()
        if maturity_date is not None and maturity_date < start_date:
            raise ValidationError("maturity_date must not be before start_date")

        unit_based = investment_type in (InvestmentType.COMPRA_DIVISAS, InvestmentType.CRYPTO)
        investment = Investment(
            user_id=user_id,
            description=description,
            investment_type=investment_type,
            amount=calculations.round_money(amount),
            start_date=start_date,
            maturity_date=maturity_date,
            annual_rate=annual_rate,
            estimated_return=calculations.simple_interest(amount, annual_rate, start_date, maturity_date),
            currency=currency if unit_based else None,
            exchange_rate=exchange_rate if unit_based else None,
        )
        self._repository.insert_investment(investment)
        logger.info("Created %s investment %s for user %s", investment_type.value, investment.id, user_id)
        return investment

    def update_investment(self, user_id: str, investment_id: str, updates: dict[str, Any]) -> Investment:
        investment = self._require_investment(user_id, investment_id)
        if investment.is_liquidated:
            raise ConflictError(f"investment {investment_id} is already liquidated")
        _reject_nulls(updates, ("description", "amount"))
        if "amount" in updates and updates["amount"] <= 0:
            raise ValidationError("amount must be positive")

        merged = replace(investment, **updates)
        if merged.maturity_date is not None and merged.maturity_date < merged.start_date:
            raise ValidationError("maturity_date must not be before start_date")
        changes = dict(updates)
        if "amount" in changes:
            changes["amount"] = calculations.round_money(changes["amount"])
        changes["estimated_return"] = calculations.simple_interest(
            merged.amount, merged.annual_rate, merged.start_date, merged.maturity_date
        )
        updated = self._repository.update_investment(user_id, investment_id, changes)
        logger.info("Updated investment %s for user %s", investment_id, user_id)
        return updated

    def delete_investment(self, user_id: str, investment_id: str) -> None:
        if not self._repository.delete_investment(user_id, investment_id):
            raise NotFoundError("investment", investment_id)
        logger.info("Deleted investment %s for user %s", investment_id, user_id)

    def liquidate_investment(
        self,
        user_id: str,
        investment_id: str,
        total_received: float,
        liquidation_date: Optional[date] = None,
    ) -> Investment:
        """Close an investment, realizing ``total_received - amount`` as income or loss.

        The principal was never subtracted from the balance (it only moved out of
        the liquid part), so only the realized return becomes a transaction.
        """

        investment = self._require_investment(user_id, investment_id)
        if investment.is_liquidated:
            raise ConflictError(f"investment {investment_id} is already liquidated")
        if total_received < 0:
            raise ValidationError("total_received must not be negative")

        liquidation_date = liquidation_date or self.today()
        realized = calculations.round_money(total_received - investment.amount)
        transaction = self._return_transaction(user_id, investment, realized, liquidation_date)
        updates: dict[str, Any] = {
            "is_liquidated": True,
            "liquidation_date": liquidation_date,
            "actual_return": calculations.round_money((investment.actual_return or 0.0) + realized),
        }
        if transaction is not None:
            updates["transaction_id"] = transaction.id
        settled = self._repository.settle_investment(user_id, investment_id, updates, transaction)
        logger.info("Liquidated investment %s for user %s with return %s", investment_id, user_id, realized)
        return settled

    def sell_units(
        self,
        user_id: str,
        investment_id: str,
        units: float,
        sell_rate: float,
        sale_date: Optional[date] = None,
    ) -> dict[str, Any]:
        """Sell part or all of a currency / crypto position at ``sell_rate``."""

        investment = self._require_investment(user_id, investment_id)
        if investment.is_liquidated:
            raise ConflictError(f"investment {investment_id} is already liquidated")
        if not investment.is_unit_position:
            raise ValidationError("only currency or crypto positions with an exchange rate can be sold by units")

        sale = calculations.currency_sale(investment, units, sell_rate)
        sale_date = sale_date or self.today()
        transaction = self._return_transaction(user_id, investment, sale.realized_return, sale_date)
        updates: dict[str, Any] = {
            "actual_return": calculations.round_money((investment.actual_return or 0.0) + sale.realized_return),
        }
        if sale.closes_position:
            updates.update(is_liquidated=True, liquidation_date=sale_date)
        else:
            updates["amount"] = sale.remaining_principal
            # The estimate only applies to what is still invested.
            updates["estimated_return"] = calculations.simple_interest(
                sale.remaining_principal, investment.annual_rate, investment.start_date, investment.maturity_date
            )
        if transaction is not None:
            updates["transaction_id"] = transaction.id
        settled = self._repository.settle_investment(user_id, investment_id, updates, transaction)
        logger.info(
            "Sold %.4f units of investment %s for user %s (return %s, closed=%s)",
            sale.units_sold,
            investment_id,
            user_id,
            sale.realized_return,
            sale.closes_position,
        )
        return {"investment": settled, "sale": sale, "transaction": transaction}

    def portfolio_summary(self, user_id: str) -> calculations.PortfolioSummary:
        return calculations.portfolio_summary(self._repository.list_investments(user_id))

    def _return_transaction(
        self,
        user_id: str,
        investment: Investment,
        realized: float,
        on: date,
    ) -> Optional[Transaction]:
        if realized == 0:
            return None
        return Transaction(
            user_id=user_id,
            type=TransactionType.INCOME if realized > 0 else TransactionType.EXPENSE,
            amount=abs(realized),
            category=INVESTMENT_INCOME_CATEGORY,
            description=f"{'Ganancia' if realized > 0 else 'Pérdida'} - {investment.description}",
            date=on,
        )

    def _require_investment(self, user_id: str, investment_id: str) -> Investment:
        investment = self._repository.get_investment(user_id, investment_id)
        if investment is None:
            raise NotFoundError("investment", investment_id)
        return investment

    # ------------------------------------------------------------------
    # Savings goals
    # ------------------------------------------------------------------
    def list_savings_goals(self, user_id: str) -> list[dict[str, Any]]:
        today = self.today()
        return [
            {"goal": goal, "progress": calculations.goal_progress(goal.current_amount, goal.target_amount, goal.deadline, today)}
            for goal in self._repository.list_savings_goals(user_id)
        ]

    def create_savings_goal(
        self,
        user_id: str,
        name: str,
        target_amount: float,
        deadline: date,
        current_amount: float = 0.0,
    ) -> SavingsGoal:
        _check_goal_amounts(target_amount, current_amount)
        goal = SavingsGoal(
            user_id=user_id,
            name=name,
            target_amount=calculations.round_money(target_amount),
            current_amount=calculations.round_money(current_amount),
            deadline=deadline,
        )
        self._repository.insert_savings_goal(goal)
        logger.info("Created savings goal %s for user %s", goal.id, user_id)
        return goal

    def update_savings_goal(self, user_id: str, goal_id: str, updates: dict[str, Any]) -> SavingsGoal:
        goal = self._require_goal(user_id, goal_id)
        _reject_nulls(updates, ("name", "deadline"))
        merged = replace(goal, **updates)
        _check_goal_amounts(merged.target_amount, merged.current_amount)
        updated = self._repository.update_savings_goal(user_id, goal_id, _rounded_amounts(updates))
        logger.info("Updated savings goal %s for user %s", goal_id, user_id)
        return updated

    def delete_savings_goal(self, user_id: str, goal_id: str) -> None:
        if not self._repository.delete_savings_goal(user_id, goal_id):
            raise NotFoundError("savings goal", goal_id)
        logger.info("Deleted savings goal %s for user %s", goal_id, user_id)

    def deposit_to_goal(self, user_id: str, goal_id: str, amount: float) -> SavingsGoal:
        goal = self._require_goal(user_id, goal_id)
        new_amount = calculations.add_to_goal(goal.current_amount, amount, goal.target_amount)
        logger.info("Deposited %s into savings goal %s for user %s", amount, goal_id, user_id)
        return self._repository.update_savings_goal(user_id, goal_id, {"current_amount": new_amount})

    def savings_totals(self, user_id: str) -> dict[str, float]:
        return _totals(self._repository.list_savings_goals(user_id))

    def _require_goal(self, user_id: str, goal_id: str) -> SavingsGoal:
        goal = self._repository.get_savings_goal(user_id, goal_id)
        if goal is None:
            raise NotFoundError("savings goal", goal_id)
        return goal

    # ------------------------------------------------------------------
    # Expense plans
    # ------------------------------------------------------------------
    def list_expense_plans(self, user_id: str) -> list[dict[str, Any]]:
        today = self.today()
        return [
            {"plan": plan, "progress": calculations.goal_progress(plan.current_amount, plan.target_amount, plan.deadline, today)}
            for plan in self._repository.list_expense_plans(user_id)
        ]

    def create_expense_plan(
        self,
        user_id: str,
        name: str,
        target_amount: float,
        deadline: date,
        category: str,
        current_amount: float = 0.0,
    ) -> ExpensePlan:
        _check_goal_amounts(target_amount, current_amount)
        plan = ExpensePlan(
            user_id=user_id,
            name=name,
            target_amount=calculations.round_money(target_amount),
            current_amount=calculations.round_money(current_amount),
            deadline=deadline,
            category=category,
        )
        self._repository.insert_expense_plan(plan)
        logger.info("Created expense plan %s for user %s", plan.id, user_id)
        return plan

    def update_expense_plan(self, user_id: str, plan_id: str, updates: dict[str, Any]) -> ExpensePlan:
        plan = self._require_plan(user_id, plan_id)
        _reject_nulls(updates, ("name", "deadline", "category"))
        merged = replace(plan, **updates)
        _check_goal_amounts(merged.target_amount, merged.current_amount)
        updated = self._repository.update_expense_plan(user_id, plan_id, _rounded_amounts(updates))
        logger.info("Updated expense plan %s for user %s", plan_id, user_id)
        return updated

    def delete_expense_plan(self, user_id: str, plan_id: str) -> None:
        if not self._repository.delete_expense_plan(user_id, plan_id):
            raise NotFoundError("expense plan", plan_id)
        logger.info("Deleted expense plan %s for user %s", plan_id, user_id)

    def deposit_to_plan(self, user_id: str, plan_id: str, amount: float) -> ExpensePlan:
        plan = self._require_plan(user_id, plan_id)
        new_amount = calculations.add_to_goal(plan.current_amount, amount, plan.target_amount)
        logger.info("Deposited %s into expense plan %s for user %s", amount, plan_id, user_id)
        return self._repository.update_expense_plan(user_id, plan_id, {"current_amount": new_amount})

    def _require_plan(self, user_id: str, plan_id: str) -> ExpensePlan:
        plan = self._repository.get_expense_plan(user_id, plan_id)
        if plan is None:
            raise NotFoundError("expense plan", plan_id)
        return plan

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------
    def dashboard(self, user_id: str, year: Optional[int] = None, month: Optional[int] = None, months: int = 6) -> dict[str, Any]:
        """Everything the dashboard page shows, computed from the stored facts."""

        today = self.today()
        year = year or today.year
        month = month or today.month
        transactions = self._repository.list_transactions(user_id)
        investments = self._repository.list_investments(user_id)
        return {
            "month": calculations.month_summary(transactions, year, month),
            "balance": calculations.balance_summary(transactions, investments),
            "categories": reports.category_breakdown(transactions, year, month),
            "top_category": reports.top_category(transactions, year, month),
            "cashflow": reports.monthly_cashflow(transactions, months, today),
            "savings": self.savings_totals(user_id),
            "upcoming_installments": self.upcoming_installments(user_id, limit=5),
            "portfolio": calculations.portfolio_summary(investments),
        }


def _reject_nulls(updates: dict[str, Any], required: tuple[str, ...]) -> None:
    for key in required:
        if key in updates and updates[key] is None:
            raise ValidationError(f"{key} cannot be empty")


def _rounded_amounts(updates: dict[str, Any]) -> dict[str, Any]:
    return {
        key: calculations.round_money(value) if key in ("target_amount", "current_amount") else value
        for key, value in updates.items()
    }


def _check_goal_amounts(target_amount: Optional[float], current_amount: Optional[float]) -> None:
    if target_amount is None or target_amount <= 0:
        raise ValidationError("target_amount must be positive")
    if current_amount is None or current_amount < 0:
        raise ValidationError("current_amount must not be negative")
    if current_amount > target_amount:
        raise ValidationError("current_amount cannot exceed target_amount")


def _totals(goals: list[SavingsGoal]) -> dict[str, float]:
    saved = calculations.round_money(sum(goal.current_amount for goal in goals))
    target = calculations.round_money(sum(goal.target_amount for goal in goals))
    return {
        "total_saved": saved,
        "total_target": target,
        "overall_progress": round(saved / target * 100, 2) if target > 0 else 0.0,
    }
