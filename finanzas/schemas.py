"""Request bodies accepted by the HTTP API.

Pydantic handles shape and range checks so routes receive clean values; the
business rules that span several fields live in the service layer.
"""
import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .models import InvestmentType, TransactionType


class _Body(BaseModel):
    model_config = {"extra": "forbid", "str_strip_whitespace": True}

    def changes(self) -> dict[str, object]:
        """Return only the fields the client actually sent."""

        return self.model_dump(exclude_unset=True)


class TransactionCreate(_Body):
    type: TransactionType
    amount: float = Field(gt=0)
    category: str = Field(min_length=1)
    description: str = Field(min_length=1)
    date: Optional[dt.date] = None
    is_recurring: Optional[bool] = None
    installments: Optional[int] = Field(default=None, ge=1)
    current_installment: Optional[int] = Field(default=None, ge=1)


class TransactionUpdate(_Body):
    type: Optional[TransactionType] = None
    amount: Optional[float] = Field(default=None, gt=0)
    category: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    date: Optional[dt.date] = None
    is_recurring: Optional[bool] = None
    installments: Optional[int] = Field(default=None, ge=1)
    current_installment: Optional[int] = Field(default=None, ge=1)


class CreditPurchaseCreate(_Body):
    description: str = Field(min_length=1)
    category: str = Field(min_length=1)
    total_amount: float = Field(gt=0)
    installments: int = Field(ge=1, le=120)
    start_date: Optional[dt.date] = None


class InstallmentPayment(_Body):
    paid_date: Optional[dt.date] = None


class InvestmentCreate(_Body):
    description: str = Field(min_length=1)
    investment_type: InvestmentType
    amount: float = Field(gt=0)
    start_date: Optional[dt.date] = None
    maturity_date: Optional[dt.date] = None
    annual_rate: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=2, max_length=10)
    exchange_rate: Optional[float] = Field(default=None, gt=0)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class InvestmentUpdate(_Body):
    description: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[float] = Field(default=None, gt=0)
    annual_rate: Optional[float] = Field(default=None, ge=0)
    maturity_date: Optional[dt.date] = None


class LiquidationRequest(_Body):
    total_received: float = Field(ge=0, description="Capital plus gains actually received")
    liquidation_date: Optional[dt.date] = None


class UnitSaleRequest(_Body):
    units: float = Field(gt=0)
    sell_rate: float = Field(gt=0)
    sale_date: Optional[dt.date] = None


class SavingsGoalCreate(_Body):
    name: str = Field(min_length=1)
    target_amount: float = Field(gt=0)
    deadline: dt.date
    current_amount: float = Field(default=0.0, ge=0)


class SavingsGoalUpdate(_Body):
    name: Optional[str] = Field(default=None, min_length=1)
    target_amount: Optional[float] = Field(default=None, gt=0)
    current_amount: Optional[float] = Field(default=None, ge=0)
    deadline: Optional[dt.date] = None


class ExpensePlanCreate(SavingsGoalCreate):
    category: str = Field(min_length=1)


class ExpensePlanUpdate(SavingsGoalUpdate):
    category: Optional[str] = Field(default=None, min_length=1)


class DepositRequest(_Body):
    amount: float = Field(gt=0)


class ChatRequest(_Body):
    message: str = Field(min_length=1)


class TranscriptionRequest(_Body):
    transcription: str = Field(min_length=1)
