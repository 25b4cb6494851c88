"""Domain models used by the finanzas backend.

The classes defined here are lightweight data containers that do not know
anything about persistence or transport concerns.  Keeping the domain model
pure makes the balance and amortization arithmetic easy to test in isolation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    CREDIT = "credit"


class InvestmentType(str, Enum):
    PLAZO_FIJO = "plazo_fijo"
    FCI = "fci"
    BONOS = "bonos"
    ACCIONES = "acciones"
    CRYPTO = "crypto"
    LETRAS = "letras"
    CEDEARS = "cedears"
    CAUCIONES = "cauciones"
    FONDOS_COMUNES_INVERSION = "fondos_comunes_inversion"
    COMPRA_DIVISAS = "compra_divisas"


# Positions measured in units bought at an exchange rate. Selling part of them
# prorates the principal instead of closing the investment.
UNIT_INVESTMENT_TYPES = frozenset({InvestmentType.COMPRA_DIVISAS, InvestmentType.CRYPTO})


class MarketKind(str, Enum):
    DOLAR = "dolar"
    CEDEARS = "cedears"
    LECAPS = "lecaps"
    BONOS = "bonos"
    ACCIONES = "acciones"


INCOME_CATEGORIES = ("Salario", "Freelance", "Inversiones", "Alquiler", "Venta", "Bono", "Regalo", "Otros")
EXPENSE_CATEGORIES = (
    "Alimentación",
    "Transporte",
    "Servicios",
    "Vivienda",
    "Salud",
    "Educación",
    "Entretenimiento",
    "Ropa",
    "Otros",
)
CREDIT_CATEGORIES = ("Tecnología", "Electrodomésticos", "Muebles", "Ropa", "Viajes", "Educación", "Salud", "Otros")
PLAN_CATEGORIES = ("Viajes", "Vehículo", "Hogar", "Educación", "Otros")
CREDIT_INSTALLMENT_OPTIONS = (3, 6, 9, 12, 18, 24, 36)
INVESTMENT_INCOME_CATEGORY = "Inversiones"


@dataclass(slots=True)
class Transaction:
    """A single income, expense or paid credit-card installment.

    ``installments`` and ``current_installment`` are only populated for credit
    transactions created when an installment is paid.
    """

    user_id: str = ""
    type: TransactionType = TransactionType.EXPENSE
    amount: float = 0.0
    category: str = ""
    description: str = ""
    date: date = field(default_factory=date.today)
    is_recurring: Optional[bool] = None
    installments: Optional[int] = None
    current_installment: Optional[int] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class SavingsGoal:
    user_id: str = ""
    name: str = ""
    target_amount: float = 0.0
    current_amount: float = 0.0
    deadline: date = field(default_factory=date.today)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class ExpensePlan:
    """A planned future expense (a trip, a car) funded little by little."""

    user_id: str = ""
    name: str = ""
    target_amount: float = 0.0
    current_amount: float = 0.0
    deadline: date = field(default_factory=date.today)
    category: str = ""
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class CreditPurchase:
    """A credit-card purchase split into monthly installments."""

    user_id: str = ""
    description: str = ""
    category: str = ""
    total_amount: float = 0.0
    installments: int = 1
    monthly_amount: float = 0.0
    start_date: date = field(default_factory=date.today)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class CreditInstallment:
    credit_purchase_id: str = ""
    installment_number: int = 1
    due_date: date = field(default_factory=date.today)
    amount: float = 0.0
    paid: bool = False
    paid_date: Optional[date] = None
    transaction_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class Investment:
    """Money set aside in an instrument until it is liquidated.

    While active, :attr:`amount` is frozen out of the liquid balance. For
    currency and crypto purchases :attr:`currency` holds the unit bought and
    :attr:`exchange_rate` the price paid per unit.
    """

    user_id: str = ""
    description: str = ""
    investment_type: InvestmentType = InvestmentType.PLAZO_FIJO
    amount: float = 0.0
    start_date: date = field(default_factory=date.today)
    maturity_date: Optional[date] = None
    annual_rate: Optional[float] = None
    estimated_return: float = 0.0
    is_liquidated: bool = False
    liquidation_date: Optional[date] = None
    actual_return: Optional[float] = None
    transaction_id: Optional[str] = None
    currency: Optional[str] = None
    exchange_rate: Optional[float] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_unit_position(self) -> bool:
        return self.investment_type in UNIT_INVESTMENT_TYPES and bool(self.exchange_rate)


@dataclass(slots=True)
class DollarRate:
    """One of the Argentine dollar quotes (oficial, blue, MEP, CCL...)."""

    casa: str
    nombre: str
    compra: Optional[float]
    venta: Optional[float]
    fecha_actualizacion: Optional[str] = None


@dataclass(slots=True)
class MarketQuote:
    """Market quote for an instrument listed in pesos."""

    kind: MarketKind
    ticker: str
    price_ars: Optional[float]
    pct_change: Optional[float]
    name: Optional[str] = None
    price_usd: Optional[float] = None
    valuation_date: date = field(default_factory=date.today)


@dataclass(slots=True)
class TransactionDraft:
    """Transaction suggested by the assistant from a spoken transcription."""

    type: TransactionType
    amount: float
    category: str
    description: str
    date: date = field(default_factory=date.today)


__all__ = [
    "TransactionType",
    "InvestmentType",
    "MarketKind",
    "UNIT_INVESTMENT_TYPES",
    "Transaction",
    "SavingsGoal",
    "ExpensePlan",
    "CreditPurchase",
    "CreditInstallment",
    "Investment",
    "DollarRate",
    "MarketQuote",
    "TransactionDraft",
]
