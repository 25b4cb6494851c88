"""Derived balances, installment amortization and liquidation accounting.

Every function in this module is pure: it receives records already fetched
from the repository and returns plain values or small result containers.  The
service layer re-runs them after each mutation instead of storing derived
numbers, so the database only ever holds facts.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

from dateutil.relativedelta import relativedelta

from .errors import ValidationError
from .models import CreditInstallment, CreditPurchase, Investment, Transaction, TransactionType

CENT = Decimal("0.01")
DAYS_PER_YEAR = 365
# Largest surplus of units accepted (and clamped) when selling a whole position.
UNIT_TOLERANCE = 0.01


def to_cents(value: float | Decimal) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def round_money(value: float | Decimal) -> float:
    return float(to_cents(value))


# ---------------------------------------------------------------------------
# Transactions and balances
# ---------------------------------------------------------------------------

def is_outflow(transaction: Transaction) -> bool:
    return transaction.type in (TransactionType.EXPENSE, TransactionType.CREDIT)


def signed_amount(transaction: Transaction) -> float:
    """Return the cash impact of a transaction: incomes add, everything else subtracts."""

    if transaction.type == TransactionType.INCOME:
        return transaction.amount
    return -transaction.amount


def running_balances(transactions: Iterable[Transaction]) -> list[tuple[Transaction, float]]:
    """Pair every transaction with the balance right after it, in date order.

    Ties on the same day are broken by creation time so the running balance
    follows the order in which the user recorded the movements.
    """

    ordered = sorted(transactions, key=lambda tx: (tx.date, tx.created_at))
    balance = Decimal("0")
    result: list[tuple[Transaction, float]] = []
    for tx in ordered:
        balance += Decimal(str(signed_amount(tx)))
        result.append((tx, round_money(balance)))
    return result


@dataclass(slots=True)
class BalanceSummary:
    total_income: float
    total_expenses: float
    balance: float
    invested: float
    liquid: float


def active_principal(investments: Iterable[Investment]) -> float:
    return round_money(sum((to_cents(inv.amount) for inv in investments if not inv.is_liquidated), Decimal("0")))


def balance_summary(transactions: Iterable[Transaction], investments: Iterable[Investment] = ()) -> BalanceSummary:
    """Split the overall balance into the part frozen in investments and the liquid rest."""

    income = Decimal("0")
    expenses = Decimal("0")
    for tx in transactions:
        if tx.type == TransactionType.INCOME:
            income += to_cents(tx.amount)
        else:
            expenses += to_cents(tx.amount)
    balance = income - expenses
    invested = to_cents(active_principal(investments))
    return BalanceSummary(
        total_income=float(income),
        total_expenses=float(expenses),
        balance=float(balance),
        invested=float(invested),
        liquid=float(balance - invested),
    )


@dataclass(slots=True)
class MonthSummary:
    year: int
    month: int
    income: float
    expenses: float
    balance: float
    expenses_by_category: dict[str, float] = field(default_factory=dict)
    transaction_count: int = 0


def month_summary(transactions: Iterable[Transaction], year: int, month: int) -> MonthSummary:
    income = Decimal("0")
    expenses = Decimal("0")
    by_category: dict[str, Decimal] = defaultdict(Decimal)
    count = 0
    for tx in transactions:
        if tx.date.year != year or tx.date.month != month:
            continue
        count += 1
        if is_outflow(tx):
            expenses += to_cents(tx.amount)
            by_category[tx.category] += to_cents(tx.amount)
        else:
            income += to_cents(tx.amount)
    return MonthSummary(
        year=year,
        month=month,
        income=float(income),
        expenses=float(expenses),
        balance=float(income - expenses),
        expenses_by_category={category: float(amount) for category, amount in by_category.items()},
        transaction_count=count,
    )


# ---------------------------------------------------------------------------
# Credit-card installments
# ---------------------------------------------------------------------------

def monthly_installment(total_amount: float, installments: int) -> float:
    if installments < 1:
        raise ValidationError("installments must be at least 1")
    if total_amount <= 0:
        raise ValidationError("total_amount must be positive")
    return float((to_cents(total_amount) / installments).quantize(CENT, rounding=ROUND_HALF_UP))


def installment_schedule(
    total_amount: float,
    installments: int,
    start_date: date,
    credit_purchase_id: str = "",
) -> list[CreditInstallment]:
    """Divide a purchase into ``installments`` monthly payments.

    Installment ``k`` is due ``k - 1`` months after ``start_date``; days that do
    not exist in the target month are clamped to its last day. The last
    installment absorbs the rounding remainder so the schedule adds up to the
    purchase total to the cent.
    """

    monthly = to_cents(monthly_installment(total_amount, installments))
    total = to_cents(total_amount)
    schedule: list[CreditInstallment] = []
    for number in range(1, installments + 1):
        if number == installments:
            amount = total - monthly * (installments - 1)
        else:
            amount = monthly
        schedule.append(
            CreditInstallment(
                credit_purchase_id=credit_purchase_id,
                installment_number=number,
                due_date=start_date + relativedelta(months=number - 1),
                amount=float(amount),
            )
        )
    return schedule


@dataclass(slots=True)
class PurchaseProgress:
    purchase: CreditPurchase
    installments: list[CreditInstallment]
    paid_count: int
    total_paid: float
    total_pending: float
    next_due_date: Optional[date]
    has_overdue: bool
    is_completed: bool
    progress_percentage: float

    @property
    def status(self) -> str:
        if self.is_completed:
            return "completed"
        if self.has_overdue:
            return "overdue"
        return "in_progress"


def purchase_progress(
    purchase: CreditPurchase,
    installments: Iterable[CreditInstallment],
    today: Optional[date] = None,
) -> PurchaseProgress:
    today = today or date.today()
    own = sorted(
        (inst for inst in installments if inst.credit_purchase_id == purchase.id),
        key=lambda inst: inst.installment_number,
    )
    paid = [inst for inst in own if inst.paid]
    unpaid = [inst for inst in own if not inst.paid]
    next_unpaid = unpaid[0] if unpaid else None
    paid_count = len(paid)
    return PurchaseProgress(
        purchase=purchase,
        installments=own,
        paid_count=paid_count,
        total_paid=round_money(sum((to_cents(inst.amount) for inst in paid), Decimal("0"))),
        total_pending=round_money(sum((to_cents(inst.amount) for inst in unpaid), Decimal("0"))),
        next_due_date=next_unpaid.due_date if next_unpaid else None,
        has_overdue=any(inst.due_date < today for inst in unpaid),
        is_completed=paid_count == purchase.installments,
        progress_percentage=round(paid_count / purchase.installments * 100, 2) if purchase.installments else 0.0,
    )


def sort_purchase_progress(items: Iterable[PurchaseProgress]) -> list[PurchaseProgress]:
    """Order purchases for display: pending ones first, soonest due date first."""

    def key(item: PurchaseProgress) -> tuple[bool, bool, date]:
        return (item.is_completed, item.next_due_date is None, item.next_due_date or date.max)

    return sorted(items, key=key)


def installment_label(description: str, number: int, total: int) -> str:
    return f"{description} - Cuota {number}/{total}"


# ---------------------------------------------------------------------------
# Investments
# ---------------------------------------------------------------------------

def simple_interest(
    principal: float,
    annual_rate: Optional[float],
    start_date: Optional[date],
    maturity_date: Optional[date],
) -> float:
    """Estimated return ``P * r * days / 365`` with ``annual_rate`` given in percent."""

    if not principal or annual_rate is None or start_date is None or maturity_date is None:
        return 0.0
    days = (maturity_date - start_date).days
    if days <= 0:
        return 0.0
    return round_money(principal * (annual_rate / 100) * days / DAYS_PER_YEAR)


@dataclass(slots=True)
class InvestmentStatus:
    investment: Investment
    status: str
    days_elapsed: int
    days_until_maturity: Optional[int]
    progress_percentage: float


def investment_status(investment: Investment, today: Optional[date] = None) -> InvestmentStatus:
    today = today or date.today()
    days_elapsed = (today - investment.start_date).days
    days_until_maturity = None
    progress = 0.0
    if investment.maturity_date is not None:
        days_until_maturity = (investment.maturity_date - today).days
        total_days = (investment.maturity_date - investment.start_date).days
        if total_days > 0:
            progress = round(min(days_elapsed / total_days * 100, 100.0), 2)

    if investment.is_liquidated:
        status = "liquidated"
    elif investment.maturity_date is not None and investment.maturity_date < today:
        status = "matured"
    else:
        status = "active"
    return InvestmentStatus(
        investment=investment,
        status=status,
        days_elapsed=days_elapsed,
        days_until_maturity=days_until_maturity,
        progress_percentage=max(progress, 0.0),
    )


def sort_investments(investments: Iterable[Investment]) -> list[Investment]:
    """Active investments first, most recent start date first within each group."""

    return sorted(investments, key=lambda inv: (inv.is_liquidated, -inv.start_date.toordinal()))


def available_units(investment: Investment) -> float:
    if not investment.exchange_rate:
        return 0.0
    return investment.amount / investment.exchange_rate


@dataclass(slots=True)
class SaleResult:
    units_sold: float
    sell_rate: float
    proceeds: float
    proportional_cost: float
    realized_return: float
    remaining_units: float
    remaining_principal: float
    rate_variation_pct: float
    closes_position: bool


def currency_sale(investment: Investment, units: float, sell_rate: float) -> SaleResult:
    """Account for selling ``units`` of a currency or crypto position at ``sell_rate``.

    The cost of the units sold is prorated from the purchase rate, so a partial
    sale realizes only its share of the gain or loss and leaves the rest of the
    principal invested.
    """

    if not investment.exchange_rate:
        raise ValidationError("investment has no purchase exchange rate")
    if units <= 0:
        raise ValidationError("units to sell must be positive")
    if sell_rate <= 0:
        raise ValidationError("sell rate must be positive")

    available = available_units(investment)
    if units > available + UNIT_TOLERANCE:
        raise ValidationError(f"cannot sell {units:.2f} units, only {available:.2f} available")
    units = min(units, available)

    buy_rate = investment.exchange_rate
    proceeds = to_cents(units * sell_rate)
    principal = to_cents(investment.amount)
    prorated = to_cents(units * buy_rate)
    # A closing sale releases the whole principal so no rounding crumbs stay invested.
    closes = available - units <= 1e-9 or prorated >= principal
    cost = principal if closes else prorated
    remaining_principal = principal - cost
    return SaleResult(
        units_sold=units,
        sell_rate=sell_rate,
        proceeds=float(proceeds),
        proportional_cost=float(cost),
        realized_return=float(proceeds - cost),
        remaining_units=0.0 if closes else available - units,
        remaining_principal=float(remaining_principal),
        rate_variation_pct=round((sell_rate - buy_rate) / buy_rate * 100, 2),
        closes_position=closes,
    )


@dataclass(slots=True)
class PortfolioSummary:
    active_count: int
    total_invested: float
    total_estimated_returns: float
    total_realized_returns: float


def portfolio_summary(investments: Sequence[Investment]) -> PortfolioSummary:
    active = [inv for inv in investments if not inv.is_liquidated]
    return PortfolioSummary(
        active_count=len(active),
        total_invested=active_principal(active),
        total_estimated_returns=round_money(sum((to_cents(inv.estimated_return) for inv in active), Decimal("0"))),
        total_realized_returns=round_money(
            sum((to_cents(inv.actual_return) for inv in investments if inv.actual_return), Decimal("0"))
        ),
    )


# ---------------------------------------------------------------------------
# Savings goals and expense plans
# ---------------------------------------------------------------------------

def add_to_goal(current_amount: float, amount: float, target_amount: float) -> float:
    """Add money to a goal without ever exceeding its target."""

    if amount <= 0:
        raise ValidationError("amount must be positive")
    return round_money(min(to_cents(current_amount) + to_cents(amount), to_cents(target_amount)))


@dataclass(slots=True)
class GoalProgress:
    progress_percentage: float
    remaining: float
    days_left: int
    is_reached: bool
    is_overdue: bool


def goal_progress(current_amount: float, target_amount: float, deadline: date, today: Optional[date] = None) -> GoalProgress:
    today = today or date.today()
    progress = current_amount / target_amount * 100 if target_amount > 0 else 0.0
    days_left = (deadline - today).days
    reached = current_amount >= target_amount > 0
    return GoalProgress(
        progress_percentage=round(progress, 2),
        remaining=round_money(max(target_amount - current_amount, 0)),
        days_left=days_left,
        is_reached=reached,
        is_overdue=days_left <= 0 and not reached,
    )
