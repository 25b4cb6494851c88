from __future__ import annotations

import logging
from datetime import date, datetime

import pytest

from finanzas.errors import ConflictError, NotFoundError, ValidationError
from finanzas.models import InvestmentType, Transaction, TransactionType

from .conftest import OTHER_USER, TODAY, USER


def _income(service, amount=1000.0, on=date(2024, 5, 1), user=USER):
    return service.create_transaction(user, TransactionType.INCOME, amount, "Salario", "Sueldo", on)


# Transactions ---------------------------------------------------------------

def test_create_transaction_defaults_to_today_and_rounds(service):
    tx = service.create_transaction(USER, TransactionType.EXPENSE, 10.005, "Alimentación", "Almuerzo")

    assert tx.date == TODAY
    assert tx.amount == 10.01


def test_create_transaction_rejects_non_positive_amount(service):
    with pytest.raises(ValidationError):
        service.create_transaction(USER, TransactionType.EXPENSE, 0, "Otros", "nada")


def test_update_transaction_of_another_user_is_not_found(service):
    tx = _income(service)

    with pytest.raises(NotFoundError):
        service.update_transaction(OTHER_USER, tx.id, {"amount": 5})


def test_update_transaction_rejects_clearing_required_fields(service):
    tx = _income(service)

    with pytest.raises(ValidationError):
        service.update_transaction(USER, tx.id, {"category": None})


def test_list_transactions_rejects_inverted_range(service):
    with pytest.raises(ValidationError):
        service.list_transactions(USER, start_date=date(2024, 5, 2), end_date=date(2024, 5, 1))


def test_history_is_newest_first_with_running_balance(service):
    _income(service, 1000, date(2024, 5, 1))
    service.create_transaction(USER, TransactionType.EXPENSE, 250, "Servicios", "Luz", date(2024, 5, 5))

    history = service.history(USER)

    assert [entry["balance"] for entry in history] == [750.0, 1000.0]
    assert history[0]["transaction"].description == "Luz"


def test_history_keeps_recording_order_for_identical_timestamps(service, repository):
    stamp = datetime(2024, 5, 1, 9, 30, 0)
    for kind, amount, name in (
        (TransactionType.EXPENSE, 40, "first"),
        (TransactionType.INCOME, 100, "second"),
        (TransactionType.EXPENSE, 10, "third"),
    ):
        tx = Transaction(user_id=USER, type=kind, amount=amount, category="Otros", description=name, date=date(2024, 5, 1))
        tx.created_at = tx.updated_at = stamp
        repository.insert_transaction(tx)

    history = service.history(USER)

    assert [(entry["transaction"].description, entry["balance"]) for entry in history] == [
        ("third", 50.0),
        ("second", 60.0),
        ("first", -40.0),
    ]


# Credit purchases -----------------------------------------------------------

def test_credit_purchase_does_not_touch_balance_until_paid(service):
    _income(service, 1000)
    progress = service.create_credit_purchase(USER, "Notebook", "Tecnología", 900, 3, date(2024, 5, 10))

    assert progress.purchase.monthly_amount == 300
    assert progress.total_pending == 900
    assert service.balance(USER).balance == 1000


def test_pay_installment_creates_credit_transaction(service):
    _income(service, 1000)
    progress = service.create_credit_purchase(USER, "Notebook", "Tecnología", 1000, 3, date(2024, 5, 10))
    first = progress.installments[0]

    payment = service.pay_installment(USER, first.id)

    assert payment.type is TransactionType.CREDIT
    assert payment.amount == 333.33
    assert payment.description == "Notebook - Cuota 1/3"
    assert payment.category == "Tecnología"
    assert payment.current_installment == 1
    assert payment.installments == 3
    assert payment.date == TODAY
    assert service.balance(USER).balance == 666.67
    with pytest.raises(ConflictError):
        service.pay_installment(USER, first.id)


def test_paying_every_installment_completes_the_purchase(service):
    progress = service.create_credit_purchase(USER, "Silla", "Muebles", 200, 2, date(2024, 5, 1))
    for installment in progress.installments:
        service.pay_installment(USER, installment.id)

    (listed,) = service.list_credit_purchases(USER)

    assert listed.is_completed
    assert listed.total_paid == 200
    assert service.upcoming_installments(USER) == []


def test_deleting_payment_transaction_reverts_installment(service):
    progress = service.create_credit_purchase(USER, "Silla", "Muebles", 200, 2, date(2024, 5, 1))
    payment = service.pay_installment(USER, progress.installments[0].id)

    service.delete_transaction(USER, payment.id)

    (listed,) = service.list_credit_purchases(USER)
    assert listed.paid_count == 0
    assert len(service.upcoming_installments(USER)) == 2


def test_deleting_purchase_keeps_paid_transactions(service):
    progress = service.create_credit_purchase(USER, "Silla", "Muebles", 200, 2, date(2024, 5, 1))
    payment = service.pay_installment(USER, progress.installments[0].id)

    service.delete_credit_purchase(USER, progress.purchase.id)

    assert service.list_credit_purchases(USER) == []
    assert [tx.id for tx in service.list_transactions(USER)] == [payment.id]
    with pytest.raises(NotFoundError):
        service.delete_credit_purchase(USER, progress.purchase.id)


def test_upcoming_installments_flags_overdue_and_respects_limit(service):
    service.create_credit_purchase(USER, "TV", "Tecnología", 1200, 12, date(2024, 3, 1))

    upcoming = service.upcoming_installments(USER, limit=4)

    assert len(upcoming) == 4
    assert [entry["is_overdue"] for entry in upcoming] == [True, True, True, False]
    assert upcoming[0]["description"] == "TV"


def test_preview_does_not_persist(service):
    preview = service.preview_credit_purchase(100, 3, date(2024, 5, 1))

    assert preview["monthly_amount"] == 33.33
    assert [row["amount"] for row in preview["installments"]] == [33.33, 33.33, 33.34]
    assert service.list_credit_purchases(USER) == []


# Investments ----------------------------------------------------------------

def test_investment_moves_money_out_of_liquid_balance(service):
    _income(service, 5000)
    service.create_investment(USER, "Plazo fijo", InvestmentType.PLAZO_FIJO, 2000, date(2024, 5, 1), date(2024, 5, 31), 36.5)

    summary = service.balance(USER)

    assert summary.balance == 5000
    assert summary.invested == 2000
    assert summary.liquid == 3000


def test_create_investment_computes_estimated_return(service):
    investment = service.create_investment(
        USER, "Plazo fijo", InvestmentType.PLAZO_FIJO, 100000, date(2024, 1, 1), date(2024, 1, 31), 36.5
    )

    assert investment.estimated_return == 3000.0
    assert investment.currency is None


def test_currency_purchase_requires_rate(service):
    with pytest.raises(ValidationError):
        service.create_investment(USER, "Dólares", InvestmentType.COMPRA_DIVISAS, 1000, currency="USD")


def test_liquidation_books_only_the_realized_return(service):
    _income(service, 5000)
    investment = service.create_investment(USER, "Plazo fijo", InvestmentType.PLAZO_FIJO, 2000, date(2024, 4, 1))

    settled = service.liquidate_investment(USER, investment.id, 2100)

    assert settled.is_liquidated
    assert settled.actual_return == 100
    assert settled.liquidation_date == TODAY
    gain = service._repository.get_transaction(USER, settled.transaction_id)
    assert gain.type is TransactionType.INCOME
    assert gain.amount == 100
    assert gain.category == "Inversiones"
    assert gain.description == "Ganancia - Plazo fijo"
    summary = service.balance(USER)
    assert summary.balance == 5100
    assert summary.liquid == 5100
    with pytest.raises(ConflictError):
        service.liquidate_investment(USER, investment.id, 2100)


def test_liquidation_at_a_loss_records_an_expense(service):
    investment = service.create_investment(USER, "Acciones", InvestmentType.ACCIONES, 1000, date(2024, 4, 1))

    settled = service.liquidate_investment(USER, investment.id, 900)

    loss = service._repository.get_transaction(USER, settled.transaction_id)
    assert loss.type is TransactionType.EXPENSE
    assert loss.amount == 100
    assert loss.description == "Pérdida - Acciones"


def test_liquidation_at_par_creates_no_transaction(service):
    investment = service.create_investment(USER, "FCI", InvestmentType.FCI, 1000, date(2024, 4, 1))

    settled = service.liquidate_investment(USER, investment.id, 1000)

    assert settled.is_liquidated
    assert settled.transaction_id is None
    assert service.list_transactions(USER) == []


def test_partial_unit_sale_keeps_remaining_principal_invested(service):
    _income(service, 20000)
    investment = service.create_investment(
        USER, "Dólares", InvestmentType.COMPRA_DIVISAS, 10000, date(2024, 4, 1), currency="USD", exchange_rate=1000
    )

    result = service.sell_units(USER, investment.id, 4, 1200)

    assert result["sale"].realized_return == 800
    assert result["transaction"].amount == 800
    assert not result["investment"].is_liquidated
    assert result["investment"].amount == 6000
    assert result["investment"].actual_return == 800
    summary = service.balance(USER)
    assert summary.invested == 6000
    assert summary.balance == 20800


def test_selling_all_units_closes_position(service):
    investment = service.create_investment(
        USER, "BTC", InvestmentType.CRYPTO, 5000, date(2024, 4, 1), currency="BTC", exchange_rate=50000
    )

    result = service.sell_units(USER, investment.id, 0.1, 45000)

    assert result["investment"].is_liquidated
    assert result["sale"].realized_return == -500
    assert result["transaction"].type is TransactionType.EXPENSE


def test_sale_whose_cost_rounds_to_the_principal_closes_position(service):
    investment = service.create_investment(
        USER, "Dólares", InvestmentType.COMPRA_DIVISAS, 1000, date(2024, 4, 1), currency="USD", exchange_rate=3
    )

    result = service.sell_units(USER, investment.id, 333.333, 3)

    assert result["investment"].is_liquidated
    assert service.portfolio_summary(USER).active_count == 0
    assert service.balance(USER).invested == 0


def test_sell_units_rejects_non_unit_positions(service):
    investment = service.create_investment(USER, "Plazo fijo", InvestmentType.PLAZO_FIJO, 1000, date(2024, 4, 1))

    with pytest.raises(ValidationError):
        service.sell_units(USER, investment.id, 1, 1000)


def test_update_liquidated_investment_conflicts(service):
    investment = service.create_investment(USER, "FCI", InvestmentType.FCI, 1000, date(2024, 4, 1))
    service.liquidate_investment(USER, investment.id, 1000)

    with pytest.raises(ConflictError):
        service.update_investment(USER, investment.id, {"amount": 10})


def test_update_investment_recomputes_estimate(service):
    investment = service.create_investment(
        USER, "Plazo fijo", InvestmentType.PLAZO_FIJO, 100000, date(2024, 1, 1), date(2024, 1, 31), 36.5
    )

    updated = service.update_investment(USER, investment.id, {"amount": 200000})

    assert updated.estimated_return == 6000.0


def test_clearing_rate_or_maturity_resets_estimate(service):
    investment = service.create_investment(
        USER, "Plazo fijo", InvestmentType.PLAZO_FIJO, 100000, date(2024, 1, 1), date(2024, 1, 31), 36.5
    )
    assert investment.estimated_return == 3000.0

    without_rate = service.update_investment(USER, investment.id, {"annual_rate": None})
    assert without_rate.estimated_return == 0.0

    service.update_investment(USER, investment.id, {"annual_rate": 36.5})
    without_maturity = service.update_investment(USER, investment.id, {"maturity_date": None})
    assert without_maturity.estimated_return == 0.0


def test_list_investments_reports_status(service):
    service.create_investment(USER, "Vencido", InvestmentType.PLAZO_FIJO, 100, date(2024, 1, 1), date(2024, 2, 1), 40)
    service.create_investment(USER, "Activo", InvestmentType.PLAZO_FIJO, 100, date(2024, 5, 1), date(2024, 6, 1), 40)

    statuses = {item.investment.description: item.status for item in service.list_investments(USER)}

    assert statuses == {"Vencido": "matured", "Activo": "active"}


# Savings goals and expense plans --------------------------------------------

def test_deposit_to_goal_never_exceeds_target(service):
    goal = service.create_savings_goal(USER, "Vacaciones", 1000, date(2024, 12, 1), 900)

    updated = service.deposit_to_goal(USER, goal.id, 500)

    assert updated.current_amount == 1000
    (entry,) = service.list_savings_goals(USER)
    assert entry["progress"].is_reached


def test_goal_current_amount_cannot_exceed_target(service):
    with pytest.raises(ValidationError):
        service.create_savings_goal(USER, "Auto", 1000, date(2025, 1, 1), 1500)
    goal = service.create_savings_goal(USER, "Auto", 1000, date(2025, 1, 1))
    with pytest.raises(ValidationError):
        service.update_savings_goal(USER, goal.id, {"target_amount": 10, "current_amount": 20})


def test_savings_totals(service):
    service.create_savings_goal(USER, "A", 1000, date(2025, 1, 1), 250)
    service.create_savings_goal(USER, "B", 3000, date(2025, 1, 1), 750)

    assert service.savings_totals(USER) == {"total_saved": 1000.0, "total_target": 4000.0, "overall_progress": 25.0}


def test_expense_plan_lifecycle(service):
    plan = service.create_expense_plan(USER, "Viaje a Bariloche", 2000, date(2024, 9, 1), "Viajes")

    service.deposit_to_plan(USER, plan.id, 500)
    updated = service.update_expense_plan(USER, plan.id, {"name": "Viaje al sur"})

    assert updated.current_amount == 500
    assert updated.name == "Viaje al sur"
    assert service.list_expense_plans(USER)[0]["progress"].progress_percentage == 25.0
    service.delete_expense_plan(USER, plan.id)
    with pytest.raises(NotFoundError):
        service.deposit_to_plan(USER, plan.id, 10)


def test_goal_and_plan_updates_round_amounts_and_log(service, caplog):
    caplog.set_level(logging.INFO, logger="finanzas.services")
    goal = service.create_savings_goal(USER, "Auto", 1000, date(2025, 1, 1))
    plan = service.create_expense_plan(USER, "Viaje", 2000, date(2024, 9, 1), "Viajes")

    updated_goal = service.update_savings_goal(USER, goal.id, {"target_amount": 1500.005, "current_amount": 100.004})
    updated_plan = service.update_expense_plan(USER, plan.id, {"target_amount": 2500.005})

    assert updated_goal.target_amount == 1500.01
    assert updated_goal.current_amount == 100.0
    assert updated_plan.target_amount == 2500.01
    assert f"Updated savings goal {goal.id}" in caplog.text
    assert f"Updated expense plan {plan.id}" in caplog.text


# Dashboard ------------------------------------------------------------------

def test_dashboard_aggregates_month(service):
    _income(service, 3000, date(2024, 5, 1))
    service.create_transaction(USER, TransactionType.EXPENSE, 400, "Alimentación", "Súper", date(2024, 5, 3))
    service.create_investment(USER, "FCI", InvestmentType.FCI, 1000, date(2024, 5, 2))
    service.create_credit_purchase(USER, "TV", "Tecnología", 600, 6, date(2024, 5, 20))

    dashboard = service.dashboard(USER)

    assert dashboard["month"].income == 3000
    assert dashboard["month"].expenses == 400
    assert dashboard["balance"].liquid == 1600
    assert dashboard["top_category"] == "Alimentación"
    assert len(dashboard["cashflow"]) == 6
    assert dashboard["cashflow"][-1]["month"] == "2024-05"
    assert len(dashboard["upcoming_installments"]) == 5
    assert dashboard["portfolio"].active_count == 1
