"""FastAPI application exposing the finanzas backend."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date
from typing import Annotated, Any, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .assistant import TranscriptionAssistant
from .calculations import PurchaseProgress
from .config import configure_logging, cors_origins, load_config
from .database import SQLiteRepository
from .errors import ConflictError, ExternalServiceError, NotFoundError, ValidationError
from .market_service import MarketDataService
from .models import (
    CREDIT_CATEGORIES,
    CREDIT_INSTALLMENT_OPTIONS,
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    PLAN_CATEGORIES,
    InvestmentType,
    TransactionType,
)
from .schemas import (
    ChatRequest,
    CreditPurchaseCreate,
    DepositRequest,
    ExpensePlanCreate,
    ExpensePlanUpdate,
    InstallmentPayment,
    InvestmentCreate,
    InvestmentUpdate,
    LiquidationRequest,
    SavingsGoalCreate,
    SavingsGoalUpdate,
    TransactionCreate,
    TransactionUpdate,
    TranscriptionRequest,
    UnitSaleRequest,
)
from .services import FinanceService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Initialise shared services once and reuse them across requests."""

    config = load_config()
    configure_logging(config.log_level)
    repository = SQLiteRepository(config.database_file)
    repository.initialise_schema()

    app.state.config = config
    app.state.repository = repository
    app.state.finance = FinanceService(repository)
    app.state.market = MarketDataService(config, repository)
    app.state.assistant = TranscriptionAssistant(config)
    logger.info("finanzas backend ready (database %s)", config.database_file)

    yield

    repository.close()


app = FastAPI(lifespan=lifespan, title="finanzas backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping -------------------------------------------------------------

@app.exception_handler(NotFoundError)
async def not_found_handler(_: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(_: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(_: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ExternalServiceError)
async def external_service_handler(_: Request, exc: ExternalServiceError) -> JSONResponse:
    status_code = 502 if exc.configured else 503
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# Dependency injection ------------------------------------------------------

def get_finance_service() -> FinanceService:
    service: FinanceService = app.state.finance
    return service


def get_market_service() -> MarketDataService:
    service: MarketDataService = app.state.market
    return service


def get_assistant() -> TranscriptionAssistant:
    assistant: TranscriptionAssistant = app.state.assistant
    return assistant


def get_user_id(x_user_id: Annotated[Optional[str], Header()] = None) -> str:
    """Identity of the caller, supplied by the auth layer in front of the API."""

    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


UserId = Annotated[str, Depends(get_user_id)]
Finance = Annotated[FinanceService, Depends(get_finance_service)]


def _purchase_payload(progress: PurchaseProgress) -> dict[str, Any]:
    payload = asdict(progress)
    payload["status"] = progress.status
    return payload


# Routes --------------------------------------------------------------------


@app.get("/health")
def health_check() -> dict[str, object]:
    """Return a basic heartbeat payload for monitoring purposes."""

    return {"status": "ok", "assistant_enabled": app.state.config.assistant_enabled}


@app.get("/categories")
def categories() -> dict[str, object]:
    return {
        "income": list(INCOME_CATEGORIES),
        "expense": list(EXPENSE_CATEGORIES),
        "credit": list(CREDIT_CATEGORIES),
        "plans": list(PLAN_CATEGORIES),
        "installment_options": list(CREDIT_INSTALLMENT_OPTIONS),
        "investment_types": [item.value for item in InvestmentType],
    }


# Transactions -------------------------------------------------------------

@app.get("/transactions")
def list_transactions(
    user_id: UserId,
    finance: Finance,
    type: Annotated[Optional[TransactionType], Query()] = None,
    start_date: Annotated[Optional[date], Query()] = None,
    end_date: Annotated[Optional[date], Query()] = None,
) -> dict[str, object]:
    transactions = finance.list_transactions(user_id, type, start_date, end_date)
    return {"transactions": transactions, "count": len(transactions)}


@app.post("/transactions", status_code=201)
def create_transaction(payload: TransactionCreate, user_id: UserId, finance: Finance):
    return finance.create_transaction(user_id, **payload.model_dump())


@app.get("/transactions/history")
def transaction_history(user_id: UserId, finance: Finance) -> dict[str, object]:
    entries = finance.history(user_id)
    return {"entries": entries, "count": len(entries)}


@app.patch("/transactions/{transaction_id}")
def update_transaction(transaction_id: str, payload: TransactionUpdate, user_id: UserId, finance: Finance):
    return finance.update_transaction(user_id, transaction_id, payload.changes())


@app.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: str, user_id: UserId, finance: Finance) -> None:
    finance.delete_transaction(user_id, transaction_id)


@app.get("/balance")
def balance(user_id: UserId, finance: Finance):
    return finance.balance(user_id)


# Credit-card purchases -----------------------------------------------------

@app.get("/credit/purchases")
def list_credit_purchases(user_id: UserId, finance: Finance) -> dict[str, object]:
    purchases = [_purchase_payload(item) for item in finance.list_credit_purchases(user_id)]
    return {"purchases": purchases, "count": len(purchases)}


@app.post("/credit/purchases", status_code=201)
def create_credit_purchase(payload: CreditPurchaseCreate, user_id: UserId, finance: Finance) -> dict[str, Any]:
    return _purchase_payload(finance.create_credit_purchase(user_id, **payload.model_dump()))


@app.get("/credit/preview")
def preview_credit_purchase(
    finance: Finance,
    total_amount: Annotated[float, Query(gt=0)],
    installments: Annotated[int, Query(ge=1, le=120)],
    start_date: Annotated[Optional[date], Query()] = None,
):
    return finance.preview_credit_purchase(total_amount, installments, start_date)


@app.delete("/credit/purchases/{purchase_id}", status_code=204)
def delete_credit_purchase(purchase_id: str, user_id: UserId, finance: Finance) -> None:
    finance.delete_credit_purchase(user_id, purchase_id)


@app.get("/credit/installments")
def upcoming_installments(
    user_id: UserId,
    finance: Finance,
    limit: Annotated[Optional[int], Query(ge=1, le=500)] = None,
) -> dict[str, object]:
    installments = finance.upcoming_installments(user_id, limit)
    return {"installments": installments, "count": len(installments)}


@app.post("/credit/installments/{installment_id}/pay", status_code=201)
def pay_installment(
    installment_id: str,
    user_id: UserId,
    finance: Finance,
    payload: Optional[InstallmentPayment] = None,
):
    paid_date = payload.paid_date if payload else None
    return finance.pay_installment(user_id, installment_id, paid_date)


# Investments ---------------------------------------------------------------

@app.get("/investments")
def list_investments(user_id: UserId, finance: Finance) -> dict[str, object]:
    investments = finance.list_investments(user_id)
    return {"investments": investments, "count": len(investments)}


@app.get("/investments/summary")
def portfolio_summary(user_id: UserId, finance: Finance):
    return finance.portfolio_summary(user_id)


@app.post("/investments", status_code=201)
def create_investment(payload: InvestmentCreate, user_id: UserId, finance: Finance):
    return finance.create_investment(user_id, **payload.model_dump())


@app.patch("/investments/{investment_id}")
def update_investment(investment_id: str, payload: InvestmentUpdate, user_id: UserId, finance: Finance):
    return finance.update_investment(user_id, investment_id, payload.changes())


@app.delete("/investments/{investment_id}", status_code=204)
def delete_investment(investment_id: str, user_id: UserId, finance: Finance) -> None:
    finance.delete_investment(user_id, investment_id)


@app.post("/investments/{investment_id}/liquidate")
def liquidate_investment(investment_id: str, payload: LiquidationRequest, user_id: UserId, finance: Finance):
    return finance.liquidate_investment(user_id, investment_id, payload.total_received, payload.liquidation_date)


@app.post("/investments/{investment_id}/sell")
def sell_investment_units(investment_id: str, payload: UnitSaleRequest, user_id: UserId, finance: Finance):
    return finance.sell_units(user_id, investment_id, payload.units, payload.sell_rate, payload.sale_date)


# Savings goals -------------------------------------------------------------

@app.get("/savings")
def list_savings_goals(user_id: UserId, finance: Finance) -> dict[str, object]:
    return {"goals": finance.list_savings_goals(user_id), "totals": finance.savings_totals(user_id)}


@app.post("/savings", status_code=201)
def create_savings_goal(payload: SavingsGoalCreate, user_id: UserId, finance: Finance):
    return finance.create_savings_goal(user_id, **payload.model_dump())


@app.patch("/savings/{goal_id}")
def update_savings_goal(goal_id: str, payload: SavingsGoalUpdate, user_id: UserId, finance: Finance):
    return finance.update_savings_goal(user_id, goal_id, payload.changes())


@app.delete("/savings/{goal_id}", status_code=204)
def delete_savings_goal(goal_id: str, user_id: UserId, finance: Finance) -> None:
    finance.delete_savings_goal(user_id, goal_id)


@app.post("/savings/{goal_id}/deposit")
def deposit_to_savings_goal(goal_id: str, payload: DepositRequest, user_id: UserId, finance: Finance):
    return finance.deposit_to_goal(user_id, goal_id, payload.amount)


# Expense plans -------------------------------------------------------------

@app.get("/plans")
def list_expense_plans(user_id: UserId, finance: Finance) -> dict[str, object]:
    plans = finance.list_expense_plans(user_id)
    return {"plans": plans, "count": len(plans)}


@app.post("/plans", status_code=201)
def create_expense_plan(payload: ExpensePlanCreate, user_id: UserId, finance: Finance):
    return finance.create_expense_plan(user_id, **payload.model_dump())


@app.patch("/plans/{plan_id}")
def update_expense_plan(plan_id: str, payload: ExpensePlanUpdate, user_id: UserId, finance: Finance):
    return finance.update_expense_plan(user_id, plan_id, payload.changes())


@app.delete("/plans/{plan_id}", status_code=204)
def delete_expense_plan(plan_id: str, user_id: UserId, finance: Finance) -> None:
    finance.delete_expense_plan(user_id, plan_id)


@app.post("/plans/{plan_id}/deposit")
def deposit_to_expense_plan(plan_id: str, payload: DepositRequest, user_id: UserId, finance: Finance):
    return finance.deposit_to_plan(user_id, plan_id, payload.amount)


# Dashboard -----------------------------------------------------------------

@app.get("/dashboard")
def dashboard(
    user_id: UserId,
    finance: Finance,
    year: Annotated[Optional[int], Query(ge=1900, le=9999)] = None,
    month: Annotated[Optional[int], Query(ge=1, le=12)] = None,
    months: Annotated[int, Query(ge=1, le=36)] = 6,
):
    return finance.dashboard(user_id, year, month, months)


# Market data ---------------------------------------------------------------

@app.get("/market/{kind}")
def market_data(
    kind: str,
    market: Annotated[MarketDataService, Depends(get_market_service)],
    search: Annotated[Optional[str], Query(max_length=50)] = None,
) -> dict[str, object]:
    items = market.fetch(kind, search)
    return {"type": kind.lower(), "items": items, "count": len(items)}


# Assistant -----------------------------------------------------------------

@app.post("/assistant/chat")
def assistant_chat(payload: ChatRequest, assistant: Annotated[TranscriptionAssistant, Depends(get_assistant)]):
    return assistant.chat(payload.message)


@app.post("/assistant/transcription")
def assistant_transcription(
    payload: TranscriptionRequest,
    user_id: UserId,
    finance: Finance,
    assistant: Annotated[TranscriptionAssistant, Depends(get_assistant)],
    save: Annotated[bool, Query(description="Store the draft as a transaction")] = False,
) -> dict[str, object]:
    draft = assistant.interpret(payload.transcription)
    if not save:
        return {"draft": draft, "transaction": None}
    transaction = finance.create_transaction(
        user_id,
        type=draft.type,
        amount=draft.amount,
        category=draft.category,
        description=draft.description,
        date=draft.date,
    )
    return {"draft": draft, "transaction": transaction}
