"""Market data helpers for the finanzas backend.

Quotes come from two public feeds: dolarapi.com for the Argentine dollar
rates and data912.com for CEDEARs, bonds, treasury notes (LECAPs) and local
stocks. The service only normalises what those feeds return; it never
computes prices on its own except for the USD equivalent through the CCL rate.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Optional, Union

import requests

from .config import AppConfig
from .database import SQLiteRepository
from .errors import ExternalServiceError, ValidationError
from .models import DollarRate, MarketKind, MarketQuote

logger = logging.getLogger(__name__)

DATA912_PATHS = {
    MarketKind.CEDEARS: "arg_cedears",
    MarketKind.LECAPS: "arg_notes",
    MarketKind.BONOS: "arg_bonds",
    MarketKind.ACCIONES: "arg_stocks",
}
# Instruments whose peso price is usually read in dollars through the CCL rate.
USD_PRICED_KINDS = frozenset({MarketKind.CEDEARS, MarketKind.BONOS})
CCL_HOUSE = "contadoconliqui"

REQUEST_HEADERS = {
    "Accept": "application/json",
    "Accept-Language": "es-US,es;q=0.9,en;q=0.8",
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/142.0.0.0 Safari/537.36"
    ),
}

MarketRow = Union[DollarRate, MarketQuote]


class MarketDataService:
    """Fetch live dollar rates and instrument quotes from external providers."""

    def __init__(self, config: AppConfig, repository: Optional[SQLiteRepository] = None) -> None:
        self._config = config
        self._repository = repository

    @staticmethod
    def parse_kind(kind: str) -> MarketKind:
        try:
            return MarketKind(kind.lower())
        except ValueError:
            raise ValidationError(f"Invalid market type: {kind}") from None

    def url_for(self, kind: MarketKind) -> str:
        if kind == MarketKind.DOLAR:
            return self._config.dolar_api_endpoint
        return f"{self._config.data912_endpoint}/{DATA912_PATHS[kind]}"

    # ------------------------------------------------------------------
    # Dollar rates (dolarapi)
    # ------------------------------------------------------------------
    def fetch_dollar_rates(self) -> list[DollarRate]:
        payload = self._get_json(MarketKind.DOLAR)
        rates = []
        for item in payload:
            if not isinstance(item, dict) or "casa" not in item:
                continue
            rates.append(
                DollarRate(
                    casa=str(item["casa"]),
                    nombre=str(item.get("nombre") or item["casa"]),
                    compra=_parse_float(item.get("compra")),
                    venta=_parse_float(item.get("venta")),
                    fecha_actualizacion=item.get("fechaActualizacion"),
                )
            )
        return rates

    def ccl_rate(self) -> Optional[float]:
        """Return the sell price of the CCL dollar, or ``None`` when unavailable."""

        try:
            rates = self.fetch_dollar_rates()
        except ExternalServiceError:
            logger.warning("Could not fetch dollar rates for the CCL lookup")
            return None
        for rate in rates:
            if rate.casa == CCL_HOUSE:
                return rate.venta
        return None

    # ------------------------------------------------------------------
    # Instruments (data912)
    # ------------------------------------------------------------------
    def fetch_quotes(self, kind: MarketKind, ccl: Optional[float] = None) -> list[MarketQuote]:
        """Return normalised quotes for ``kind``.

        ``ccl`` is looked up on demand for CEDEARs and bonds so their USD price
        can be derived from the peso price.
        """

        if kind == MarketKind.DOLAR:
            raise ValidationError("dollar rates are not instrument quotes")
        payload = self._get_json(kind)
        if ccl is None and kind in USD_PRICED_KINDS:
            ccl = self.ccl_rate()

        today = date.today()
        quotes = []
        for item in payload:
            if not isinstance(item, dict) or not item.get("symbol"):
                continue
            price = _parse_float(item.get("c"))
            quotes.append(
                MarketQuote(
                    kind=kind,
                    ticker=str(item["symbol"]),
                    name=item.get("name"),
                    price_ars=price,
                    pct_change=_parse_float(item.get("pct_change")),
                    price_usd=round(price / ccl, 4) if price is not None and ccl else None,
                    valuation_date=today,
                )
            )
        return quotes

    def fetch(self, kind: str, search: Optional[str] = None) -> list[MarketRow]:
        """Fetch one market feed, filtered by ``search`` and snapshotted when a repository is set."""

        market_kind = self.parse_kind(kind)
        if market_kind == MarketKind.DOLAR:
            rows: list[MarketRow] = list(self.fetch_dollar_rates())
        else:
            quotes = self.fetch_quotes(market_kind)
            if self._repository is not None and quotes:
                self._repository.log_quotes(quotes)
            rows = list(quotes)
        return filter_rows(rows, search)

    def _get_json(self, kind: MarketKind) -> list[dict[str, object]]:
        url = self.url_for(kind)
        logger.info("Fetching %s from %s", kind.value, url)
        try:
            response = requests.get(url, headers=REQUEST_HEADERS, timeout=self._config.http_timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            logger.error("Failed to fetch %s data: %s", kind.value, exc)
            raise ExternalServiceError(f"Failed to fetch {kind.value} data") from exc
        except ValueError as exc:
            logger.error("Invalid JSON received for %s: %s", kind.value, exc)
            raise ExternalServiceError(f"Invalid {kind.value} payload") from exc

        if not isinstance(payload, list):
            logger.warning("Unexpected %s payload shape: %s", kind.value, type(payload).__name__)
            return []
        logger.debug("Received %d %s rows", len(payload), kind.value)
        return payload


def filter_rows(rows: Iterable[MarketRow], search: Optional[str]) -> list[MarketRow]:
    """Case-insensitive match on ticker, dollar house name or instrument name."""

    rows = list(rows)
    if not search:
        return rows
    needle = search.lower()
    matched = []
    for row in rows:
        if isinstance(row, DollarRate):
            haystack = row.nombre
        else:
            haystack = row.ticker or row.name or ""
        if needle in haystack.lower():
            matched.append(row)
    return matched


def _parse_float(value: object) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
