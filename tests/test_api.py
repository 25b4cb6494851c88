"""HTTP-level tests: response shapes, status codes and the X-User-Id scoping."""
from __future__ import annotations

from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from finanzas.api import app
from finanzas.assistant import TranscriptionAssistant
from finanzas.services import FinanceService

from .conftest import OTHER_USER, TODAY, USER, make_config

HEADERS = {"X-User-Id": USER}


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("FINANZAS_DB_FILE", str(tmp_path / "api.db"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with TestClient(app) as test_client:
        app.state.finance = FinanceService(app.state.repository, clock=lambda: TODAY)
        yield test_client


def _post_income(client, amount=1000, date="2024-05-01"):
    response = client.post(
        "/transactions",
        json={"type": "income", "amount": amount, "category": "Salario", "description": "Sueldo", "date": date},
        headers=HEADERS,
    )
    assert response.status_code == 201
    return response.json()


def test_health_and_categories(client):
    assert client.get("/health").json() == {"status": "ok", "assistant_enabled": False}

    categories = client.get("/categories").json()
    assert "Salario" in categories["income"]
    assert categories["installment_options"] == [3, 6, 9, 12, 18, 24, 36]
    assert "compra_divisas" in categories["investment_types"]


def test_user_header_is_required(client):
    assert client.get("/transactions").status_code == 401
    assert client.get("/transactions", headers={"X-User-Id": "  "}).status_code == 401


def test_transaction_crud(client):
    created = _post_income(client)
    assert created["type"] == "income"
    assert created["date"] == "2024-05-01"

    listing = client.get("/transactions", params={"type": "income"}, headers=HEADERS).json()
    assert listing["count"] == 1

    patched = client.patch(f"/transactions/{created['id']}", json={"amount": 1200}, headers=HEADERS)
    assert patched.status_code == 200
    assert patched.json()["amount"] == 1200
    assert patched.json()["category"] == "Salario"

    assert client.get("/transactions", headers={"X-User-Id": OTHER_USER}).json()["count"] == 0
    assert client.delete(f"/transactions/{created['id']}", headers={"X-User-Id": OTHER_USER}).status_code == 404
    assert client.delete(f"/transactions/{created['id']}", headers=HEADERS).status_code == 204
    assert client.get("/transactions", headers=HEADERS).json()["count"] == 0


def test_invalid_bodies_are_rejected(client):
    response = client.post(
        "/transactions",
        json={"type": "income", "amount": -5, "category": "Salario", "description": "x"},
        headers=HEADERS,
    )
    assert response.status_code == 422

    response = client.post(
        "/transactions",
        json={"type": "gift", "amount": 5, "category": "Salario", "description": "x"},
        headers=HEADERS,
    )
    assert response.status_code == 422


def test_history_and_balance(client):
    _post_income(client, 1000, "2024-05-01")
    client.post(
        "/transactions",
        json={"type": "expense", "amount": 300, "category": "Servicios", "description": "Luz", "date": "2024-05-02"},
        headers=HEADERS,
    )

    history = client.get("/transactions/history", headers=HEADERS).json()
    balance = client.get("/balance", headers=HEADERS).json()

    assert [entry["balance"] for entry in history["entries"]] == [700.0, 1000.0]
    assert balance == {"total_income": 1000.0, "total_expenses": 300.0, "balance": 700.0, "invested": 0.0, "liquid": 700.0}


def test_credit_purchase_flow(client):
    _post_income(client, 1000)
    created = client.post(
        "/credit/purchases",
        json={"description": "Notebook", "category": "Tecnología", "total_amount": 1000, "installments": 3, "start_date": "2024-05-10"},
        headers=HEADERS,
    )
    assert created.status_code == 201
    purchase = created.json()
    assert purchase["status"] == "in_progress"
    assert [inst["amount"] for inst in purchase["installments"]] == [333.33, 333.33, 333.34]

    upcoming = client.get("/credit/installments", params={"limit": 1}, headers=HEADERS).json()
    installment_id = upcoming["installments"][0]["installment"]["id"]

    paid = client.post(f"/credit/installments/{installment_id}/pay", headers=HEADERS)
    assert paid.status_code == 201
    assert paid.json()["description"] == "Notebook - Cuota 1/3"
    assert paid.json()["type"] == "credit"
    assert client.post(f"/credit/installments/{installment_id}/pay", headers=HEADERS).status_code == 409

    assert client.get("/balance", headers=HEADERS).json()["balance"] == 666.67
    purchases = client.get("/credit/purchases", headers=HEADERS).json()
    assert purchases["purchases"][0]["paid_count"] == 1

    purchase_id = purchase["purchase"]["id"]
    assert client.delete(f"/credit/purchases/{purchase_id}", headers=HEADERS).status_code == 204
    assert client.get("/credit/purchases", headers=HEADERS).json()["count"] == 0


def test_credit_preview(client):
    preview = client.get("/credit/preview", params={"total_amount": 100, "installments": 3, "start_date": "2024-01-31"})

    assert preview.status_code == 200
    assert preview.json()["monthly_amount"] == 33.33
    assert [row["due_date"] for row in preview.json()["installments"]] == ["2024-01-31", "2024-02-29", "2024-03-31"]
    assert client.get("/credit/preview", params={"total_amount": 100, "installments": 0}).status_code == 422


def test_investment_liquidation_and_summary(client):
    _post_income(client, 5000)
    created = client.post(
        "/investments",
        json={
            "description": "Plazo fijo",
            "investment_type": "plazo_fijo",
            "amount": 2000,
            "start_date": "2024-04-15",
            "maturity_date": "2024-05-15",
            "annual_rate": 36.5,
        },
        headers=HEADERS,
    )
    assert created.status_code == 201
    investment = created.json()
    assert investment["estimated_return"] == 60.0
    assert client.get("/balance", headers=HEADERS).json()["liquid"] == 3000.0

    liquidated = client.post(
        f"/investments/{investment['id']}/liquidate",
        json={"total_received": 2060},
        headers=HEADERS,
    )
    assert liquidated.status_code == 200
    assert liquidated.json()["is_liquidated"] is True
    assert liquidated.json()["actual_return"] == 60.0

    balance = client.get("/balance", headers=HEADERS).json()
    assert balance["balance"] == 5060.0
    assert balance["liquid"] == 5060.0

    summary = client.get("/investments/summary", headers=HEADERS).json()
    assert summary["active_count"] == 0
    assert summary["total_realized_returns"] == 60.0

    statuses = client.get("/investments", headers=HEADERS).json()["investments"]
    assert statuses[0]["status"] == "liquidated"
    assert client.patch(f"/investments/{investment['id']}", json={"amount": 10}, headers=HEADERS).status_code == 409


def test_currency_unit_sale(client):
    created = client.post(
        "/investments",
        json={
            "description": "Dólares",
            "investment_type": "compra_divisas",
            "amount": 10000,
            "currency": "usd",
            "exchange_rate": 1000,
        },
        headers=HEADERS,
    ).json()
    assert created["currency"] == "USD"

    sold = client.post(f"/investments/{created['id']}/sell", json={"units": 4, "sell_rate": 1200}, headers=HEADERS)
    assert sold.status_code == 200
    body = sold.json()
    assert body["sale"]["realized_return"] == 800.0
    assert body["investment"]["amount"] == 6000.0
    assert body["transaction"]["amount"] == 800.0

    oversold = client.post(f"/investments/{created['id']}/sell", json={"units": 50, "sell_rate": 1200}, headers=HEADERS)
    assert oversold.status_code == 422


def test_savings_goals_and_plans(client):
    goal = client.post(
        "/savings",
        json={"name": "Vacaciones", "target_amount": 1000, "deadline": "2024-12-01"},
        headers=HEADERS,
    ).json()
    deposited = client.post(f"/savings/{goal['id']}/deposit", json={"amount": 1500}, headers=HEADERS)
    assert deposited.json()["current_amount"] == 1000.0

    savings = client.get("/savings", headers=HEADERS).json()
    assert savings["goals"][0]["progress"]["is_reached"] is True
    assert savings["totals"]["overall_progress"] == 100.0
    assert client.patch(f"/savings/{goal['id']}", json={"name": "Viaje"}, headers=HEADERS).json()["name"] == "Viaje"
    assert client.delete(f"/savings/{goal['id']}", headers=HEADERS).status_code == 204

    plan = client.post(
        "/plans",
        json={"name": "Auto", "target_amount": 2000, "deadline": "2025-01-01", "category": "Vehículo"},
        headers=HEADERS,
    ).json()
    client.post(f"/plans/{plan['id']}/deposit", json={"amount": 500}, headers=HEADERS)
    plans = client.get("/plans", headers=HEADERS).json()
    assert plans["plans"][0]["progress"]["progress_percentage"] == 25.0
    assert client.patch(f"/plans/{plan['id']}", json={"category": None}, headers=HEADERS).status_code == 422
    assert client.delete(f"/plans/{plan['id']}", headers=HEADERS).status_code == 204
    assert client.post(f"/plans/{plan['id']}/deposit", json={"amount": 1}, headers=HEADERS).status_code == 404


def test_dashboard(client):
    _post_income(client, 2000, "2024-05-01")
    client.post(
        "/transactions",
        json={"type": "expense", "amount": 500, "category": "Alimentación", "description": "Súper", "date": "2024-05-03"},
        headers=HEADERS,
    )

    dashboard = client.get("/dashboard", params={"months": 3}, headers=HEADERS).json()

    assert dashboard["month"]["balance"] == 1500.0
    assert dashboard["top_category"] == "Alimentación"
    assert dashboard["categories"] == [{"category": "Alimentación", "amount": 500.0, "percentage": 100.0}]
    assert [row["month"] for row in dashboard["cashflow"]] == ["2024-03", "2024-04", "2024-05"]


def test_market_endpoint(client):
    response = Mock()
    response.json.return_value = [{"casa": "blue", "nombre": "Blue", "compra": 1000, "venta": 1020}]
    response.raise_for_status.return_value = None

    with patch("finanzas.market_service.requests.get", return_value=response):
        body = client.get("/market/dolar").json()

    assert body == {
        "type": "dolar",
        "items": [{"casa": "blue", "nombre": "Blue", "compra": 1000.0, "venta": 1020.0, "fecha_actualizacion": None}],
        "count": 1,
    }
    assert client.get("/market/futuros").status_code == 422


def test_market_upstream_failure_is_bad_gateway(client):
    import requests

    with patch("finanzas.market_service.requests.get", side_effect=requests.ConnectionError("down")):
        assert client.get("/market/bonos").status_code == 502


def test_assistant_requires_configuration(client):
    assert client.post("/assistant/chat", json={"message": "hola"}).status_code == 503


def test_transcription_can_store_the_draft(client):
    app.state.assistant = TranscriptionAssistant(make_config(openai_api_key="sk-test"))
    completion = Mock()
    completion.json.return_value = {
        "choices": [
            {"message": {"content": '{"type": "expense", "amount": 450, "category": "Transporte", "description": "Taxi"}'}}
        ]
    }
    completion.raise_for_status.return_value = None

    with patch("finanzas.assistant.requests.post", return_value=completion):
        preview = client.post("/assistant/transcription", json={"transcription": "gasté 450 en un taxi"}, headers=HEADERS)
        saved = client.post(
            "/assistant/transcription",
            params={"save": "true"},
            json={"transcription": "gasté 450 en un taxi"},
            headers=HEADERS,
        )

    assert preview.json()["transaction"] is None
    assert preview.json()["draft"]["category"] == "Transporte"
    assert saved.json()["transaction"]["amount"] == 450.0
    assert client.get("/transactions", headers=HEADERS).json()["count"] == 1
