"""Prompt construction and message serialization for SMS extraction.

This module builds:
- A deterministic JSON serialization of the message batch (``sms_id``,
  ``body``, ``sender`` in that order).
- The system instructions, which embed the caller's category vocabulary.
- The user content with the batch delimited by ``BEGIN_MESSAGES_JSON`` /
  ``END_MESSAGES_JSON`` markers.
- The strict ``response_format`` (JSON Schema) for the OpenAI Responses API.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from .categories import allowed_slugs
from .models import PAYMENT_METHODS, Category, RawMessage

# Prompt field -> RawMessage attribute, in the order the model sees them.
MESSAGE_FIELD_ORDER: tuple[tuple[str, str], ...] = (
    ("sms_id", "id"),
    ("body", "body"),
    ("sender", "sender"),
)

BEGIN_MARKER = "BEGIN_MESSAGES_JSON"
END_MARKER = "END_MESSAGES_JSON"

# Guidance for the system vocabulary. Custom categories only get their name.
CATEGORY_GUIDELINES: tuple[tuple[str, str], ...] = (
    ("food", "restaurants, food delivery (Swiggy, Zomato), cafes, fast food"),
    ("junk", "junk food, fast food snacks, quick bites under ~200"),
    ("groceries", "BigBasket, Blinkit, Zepto, supermarkets"),
    ("transport", "Uber, Ola, Rapido, metro, parking"),
    ("fuel", "petrol, diesel, IOCL, HPCL, BPCL"),
    ("shopping", "Amazon, Flipkart, retail stores, online shopping"),
    ("entertainment", "Netflix, Spotify, movies, games, streaming"),
    ("bills", "phone recharge, electricity, rent"),
    ("subscriptions", "recurring subscriptions (Netflix, Spotify, etc.)"),
    ("emi", "EMI payments, loan installments"),
    ("health", "pharmacy, doctor, hospital, medical"),
    ("travel", "flights, hotels, IRCTC, travel booking"),
    ("trip", "trip-specific expenses"),
    ("education", "courses, books, school fees"),
    ("salary", "salary credited"),
    ("income", "other income, interest"),
    ("credit", "money received from others (not salary)"),
    ("refund", "refunds, cashback, reversals"),
    ("transfer", "self-transfers between own accounts"),
    ("investment", "mutual funds, stocks, FD, RD, SIP"),
    ("bill-payment", "credit card bill payment, loan payment"),
    ("home-spend", "rent, maintenance, home supplies"),
    ("gifting", "gifts given"),
    ("celebration", "birthday, anniversary, party expenses"),
    ("lent", "money lent to someone"),
    ("charity", "donations"),
    ("cat", "pet expenses"),
    ("misc", "miscellaneous"),
    ("other", "anything that doesn't fit above"),
    ("unknown", "can't determine category"),
)


def serialize_messages_to_json(messages: Sequence[RawMessage]) -> str:
    """Serialize the batch to a JSON array with a fixed field order."""

    arr: list[dict[str, Any]] = [
        {field: getattr(m, attr) for field, attr in MESSAGE_FIELD_ORDER} for m in messages
    ]
    return json.dumps(arr, ensure_ascii=False, indent=2)


def render_vocabulary(categories: Sequence[Category]) -> str:
    """Render the vocabulary as ``- slug: name`` lines (vocabulary order)."""

    if not categories:
        return "- (no categories available; leave category_slug null)"
    return "\n".join(f"- {c.slug}: {c.name}" for c in categories)


def _render_guidelines(categories: Sequence[Category]) -> str:
    known = {s.casefold() for s in allowed_slugs(categories)}
    lines = [f"- {slug}: {text}" for slug, text in CATEGORY_GUIDELINES if slug in known]
    return "\n".join(lines) if lines else "- pick the closest category by name"


def build_system_instructions(categories: Sequence[Category]) -> str:
    """Return the system prompt for Indian banking SMS extraction."""

    return f"""You are a financial transaction parser for Indian banking SMS messages.

TASK: Analyze each SMS and determine if it's a financial transaction. If yes, extract all details.

RULES FOR IDENTIFYING TRANSACTIONS:
1. Must involve actual money movement (spent, received, debited, credited)
2. NOT transactions: OTPs, login alerts, balance checks, promotional offers, EMI conversions, failed/declined transactions

RULES FOR PARSING:
1. Amount is the TRANSACTION amount, NOT "Available Balance" or "Avl Limit"
2. For foreign currency transactions (USD, EUR, GBP, etc.):
   - Set "amount" to the exact foreign currency value (e.g., 5.90 for "USD 5.90")
   - Set "currency" to the currency code (e.g., "USD")
3. For INR transactions, set currency to "INR"
4. "debited" or "spent" = debit (money out)
5. "credited" or "received" = credit (money in)
6. Extract UPI ID as merchant when available (e.g., "merchant@upi")
7. Extract last 4 digits from "Card XX1234" or "ending 1234"

AVAILABLE CATEGORIES (use slug):
{render_vocabulary(categories)}

CATEGORY GUIDELINES:
{_render_guidelines(categories)}

IS_EXPENSE / IS_INCOME RULES (IMPORTANT):
- For DEBIT transactions, set is_expense:
  - TRUE: actual spending (food, shopping, bills, transport, etc.)
  - FALSE: self-transfers, investments, credit card bill payments, money lent, loan EMI payments to own account
- For CREDIT transactions, set is_income:
  - TRUE: salary, freelance income, interest earned, actual money received from others
  - FALSE: refunds, cashback, self-transfers, reversals, credit card rewards

For non-transactions set is_transaction to false, explain why in skip_reason, and set every other field to null.

OUTPUT: Return JSON only, per the schema, with one result per input SMS, in the same order as the input, echoing each sms_id."""


def build_user_content(messages_json: str, *, count: int) -> str:
    return (
        f"Parse these {count} SMS messages:\n\n"
        f"{BEGIN_MARKER}\n{messages_json}\n{END_MARKER}"
    )


def _nullable(schema: dict[str, Any]) -> dict[str, Any]:
    out = dict(schema)
    out["type"] = [schema["type"], "null"]
    if "enum" in schema:
        out["enum"] = [*schema["enum"], None]
    return out


def build_response_format(categories: Sequence[Category]) -> dict[str, Any]:
    """Return the strict JSON Schema ``text.format`` object.

    Strict mode requires every property to be listed as required, so the
    optional fields are typed as nullable instead. ``category_slug`` is
    constrained to the vocabulary when one is available.
    """

    slugs = allowed_slugs(categories)
    category_schema: dict[str, Any] = {"type": "string"}
    if slugs:
        category_schema["enum"] = slugs

    properties: dict[str, Any] = {
        "sms_id": {"type": "integer"},
        "is_transaction": {"type": "boolean"},
        "amount": _nullable({"type": "number"}),
        "currency": _nullable({"type": "string"}),
        "direction": _nullable({"type": "string", "enum": ["credit", "debit"]}),
        "merchant": _nullable({"type": "string"}),
        "payment_method": _nullable({"type": "string", "enum": list(PAYMENT_METHODS)}),
        "account_last4": _nullable({"type": "string"}),
        "bank_name": _nullable({"type": "string"}),
        "reference_id": _nullable({"type": "string"}),
        "category_slug": _nullable(category_schema),
        "is_expense": _nullable({"type": "boolean"}),
        "is_income": _nullable({"type": "boolean"}),
        "confidence": _nullable({"type": "string", "enum": ["high", "medium", "low"]}),
        "skip_reason": _nullable({"type": "string"}),
    }

    return {
        "type": "json_schema",
        "name": "sms_transactions",
        "schema": {
            "type": "object",
            "properties": {
                "results": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": properties,
                        "required": list(properties),
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["results"],
            "additionalProperties": False,
        },
        "strict": True,
    }


__all__ = [
    "BEGIN_MARKER",
    "CATEGORY_GUIDELINES",
    "END_MARKER",
    "MESSAGE_FIELD_ORDER",
    "build_response_format",
    "build_system_instructions",
    "build_user_content",
    "render_vocabulary",
    "serialize_messages_to_json",
]
