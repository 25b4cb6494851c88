"""Voice assistant proxy: turns a spoken transcription into a transaction draft.

The browser records speech and transcribes it; this module wraps the text in
a prompt, sends it to an OpenAI-compatible chat-completions endpoint and
parses the JSON the model answers with. Nothing is persisted here: the caller
decides whether to store the draft.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

import requests
from dateutil import parser as date_parser

from .config import AppConfig
from .errors import ExternalServiceError, ValidationError
from .models import EXPENSE_CATEGORIES, INCOME_CATEGORIES, TransactionDraft, TransactionType

logger = logging.getLogger(__name__)

TRANSCRIPTION_PLACEHOLDER = "<TRANSCRIPTION/>"
TEMPERATURE = 0.7

TRANSCRIPTION_PROMPT = (
    "Sos un asistente de finanzas personales. A partir de la siguiente transcripción de voz, "
    "identificá un único movimiento de dinero y respondé SOLO con un objeto JSON con las claves "
    '"type" ("income" o "expense"), "amount" (número positivo), "category" y "description". '
    "Categorías de ingreso: " + ", ".join(INCOME_CATEGORIES) + ". "
    "Categorías de gasto: " + ", ".join(EXPENSE_CATEGORIES) + ". "
    'Si se menciona una fecha agregá "date" en formato YYYY-MM-DD.\n\n'
    "Transcripción: " + TRANSCRIPTION_PLACEHOLDER
)

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def build_transcription_prompt(transcription: str) -> str:
    return TRANSCRIPTION_PROMPT.replace(TRANSCRIPTION_PLACEHOLDER, transcription.strip())


def user_message(content: str) -> dict[str, str]:
    return {"role": "user", "content": content}


class TranscriptionAssistant:
    """Thin client for an OpenAI-compatible chat API."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    def chat(self, message: str) -> dict[str, Any]:
        """Send a single user message and return the provider's JSON response untouched."""

        if not self._config.openai_api_key:
            raise ExternalServiceError("The assistant is not configured. Set OPENAI_API_KEY.", configured=False)

        url = f"{self._config.openai_base_url}/chat/completions"
        body = {
            "model": self._config.openai_model,
            "messages": [user_message(message)],
            "temperature": TEMPERATURE,
        }
        try:
            response = requests.post(
                url,
                json=body,
                headers={"Authorization": f"Bearer {self._config.openai_api_key}"},
                timeout=self._config.http_timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            logger.exception("Error generating response from %s", url)
            raise ExternalServiceError("Error generating response") from exc
        except ValueError as exc:
            logger.error("Assistant returned a non-JSON body: %s", exc)
            raise ExternalServiceError("Error generating response") from exc

    def interpret(self, transcription: str) -> TransactionDraft:
        """Ask the model to turn ``transcription`` into a :class:`TransactionDraft`."""

        response = self.chat(build_transcription_prompt(transcription))
        content = message_content(response)
        if content is None:
            raise ExternalServiceError("The assistant returned an empty answer")
        draft = parse_draft(content)
        logger.info("Interpreted transcription as %s of %s (%s)", draft.type.value, draft.amount, draft.category)
        return draft


def message_content(response: dict[str, Any]) -> Optional[str]:
    choices = response.get("choices") or []
    if not choices:
        return None
    message = choices[0].get("message") or {}
    return message.get("content")


def parse_draft(content: str) -> TransactionDraft:
    """Parse the model's answer, ignoring reasoning blocks and markdown fences."""

    text = _THINK_BLOCK.sub("", content).strip()
    fenced = _CODE_FENCE.search(text)
    if fenced:
        text = fenced.group(1)
    match = _JSON_OBJECT.search(text)
    if not match:
        raise ValidationError("The assistant answer does not contain a JSON object")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ValidationError("The assistant answer is not valid JSON") from exc

    try:
        transaction_type = TransactionType(str(data.get("type", "")).lower())
    except ValueError:
        raise ValidationError(f"Unknown transaction type: {data.get('type')!r}") from None
    try:
        amount = abs(float(str(data.get("amount")).replace(",", ".")))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {data.get('amount')!r}") from None
    if amount == 0:
        raise ValidationError("The assistant did not find an amount")

    category = str(data.get("category") or "Otros").strip()
    description = str(data.get("description") or category).strip()
    draft = TransactionDraft(type=transaction_type, amount=round(amount, 2), category=category, description=description)
    if data.get("date"):
        try:
            draft.date = date_parser.parse(str(data["date"])).date()
        except (ValueError, OverflowError):
            logger.warning("Ignoring unparseable date in assistant answer: %r", data["date"])
    return draft
