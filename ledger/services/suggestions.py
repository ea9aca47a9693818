# filename: ledger/services/suggestions.py
"""
AI category suggestions for the review queue.

Design goals:
- Advisory: nothing is written; the user confirms each suggestion
- Safe: never raises to callers; a failed batch just yields no suggestions
- Optional: controlled by env var AUTO_CATEGORIZE_AI=1
- Strict: drops suggestions for unknown categories or transactions that were
  not part of the batch

Public API:
    suggest_categories(transactions, categories, complete=None)
        -> list[CategorySuggestion]
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from ledger.settings import AUTO_CATEGORIZE_AI, AUTO_CATEGORIZE_MODEL, SUGGESTION_BATCH_SIZE

logger = logging.getLogger(__name__)

_JSON_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)

CONFIDENCE_LEVELS = ("high", "medium", "low")

# (system prompt, user message) -> raw model text
Completer = Callable[[str, str], str]


@dataclass(frozen=True)
class CategorySuggestion:
    transaction_id: str
    category_id: Optional[str]
    confidence: str


def _get(item: Any, name: str, default=None):
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def _clean_text(s: Any, max_len: int = 200) -> str:
    t = str(s or "").strip()
    if len(t) > max_len:
        t = t[:max_len].rstrip() + "…"
    return t


def _strip_json_fences(s: str) -> str:
    # Removes leading/trailing ```json fences if the model includes them.
    return _JSON_FENCE_RE.sub("", s).strip()


def _safe_json_loads(s: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(s)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _batches(items: List[Any], size: int) -> Iterable[List[Any]]:
    size = max(size, 1)
    for i in range(0, len(items), size):
        yield items[i : i + size]


# -------------------------------------------------------------------
# Prompt
# -------------------------------------------------------------------

def _build_system_prompt(categories: List[Any]) -> str:
    lines = []
    for c in categories:
        line = f'- "{_get(c, "id")}": {_clean_text(_get(c, "name"), 100)}'
        description = _clean_text(_get(c, "description"), 200)
        if description:
            line += f" - {description}"
        lines.append(line)

    return (
        "You are a financial categorization assistant. Suggest categories for bank transactions.\n\n"
        "Available categories:\n"
        + "\n".join(lines)
        + "\n\n"
        "Respond with ONLY valid JSON, no explanation or markdown. Format:\n"
        '{"suggestions":[{"transaction_id":"...","category_id":"..." or null,'
        '"confidence":"high"|"medium"|"low"}]}\n\n'
        "Rules:\n"
        '- "high": merchant clearly indicates category (e.g. a supermarket chain -> Groceries)\n'
        '- "medium": somewhat confident based on patterns\n'
        '- "low": uncertain guess\n'
        "- null category_id if no category fits\n"
        "- Be conservative - prefer null over a wrong category\n"
    )


def _build_user_message(batch: List[Any]) -> str:
    rows = [
        f'- id="{_get(t, "id")}", merchant="{_clean_text(_get(t, "merchant"), 200)}", amount={float(_get(t, "amount") or 0)}'
        for t in batch
    ]
    return "Categorize:\n" + "\n".join(rows)


# -------------------------------------------------------------------
# OpenAI
# -------------------------------------------------------------------

def _openai_client():
    """
    Lazily import and create an OpenAI client. Returns None when the SDK is
    not installed or the client cannot be created.
    """
    try:
        from openai import OpenAI  # type: ignore
    except ImportError:
        logger.warning("openai package not installed; AI suggestions unavailable")
        return None

    try:
        # The OpenAI SDK reads OPENAI_API_KEY from env by default.
        return OpenAI()
    except Exception as e:
        logger.warning("Could not create OpenAI client: %r", e)
        return None


def _openai_complete(system: str, user: str) -> str:
    client = _openai_client()
    if client is None:
        raise RuntimeError("OpenAI client unavailable")

    resp = client.responses.create(
        model=AUTO_CATEGORIZE_MODEL,
        input=[
            {"role": "developer", "content": system},
            {"role": "user", "content": user},
        ],
    )
    return (getattr(resp, "output_text", "") or "").strip()


# -------------------------------------------------------------------
# Parsing
# -------------------------------------------------------------------

def parse_suggestions(text: str, batch_ids: set, category_ids: set) -> List[CategorySuggestion]:
    """Validate raw model output against the batch; invalid entries are dropped."""
    data = _safe_json_loads(_strip_json_fences(text or ""))
    if data is None:
        return []

    raw = data.get("suggestions")
    if not isinstance(raw, list):
        return []

    out: List[CategorySuggestion] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        tx_id = item.get("transaction_id")
        cat_id = item.get("category_id")
        confidence = str(item.get("confidence") or "").strip().lower()

        if tx_id not in batch_ids:
            continue
        if cat_id is not None and cat_id not in category_ids:
            continue
        if confidence not in CONFIDENCE_LEVELS:
            continue
        out.append(CategorySuggestion(transaction_id=tx_id, category_id=cat_id, confidence=confidence))
    return out


def suggest_categories(
    transactions: Iterable[Any],
    categories: Iterable[Any],
    complete: Optional[Completer] = None,
    batch_size: int = SUGGESTION_BATCH_SIZE,
) -> List[CategorySuggestion]:
    """
    Ask the model for a category per transaction, `batch_size` transactions
    per request.

    Transactions/categories may be ORM objects, dicts or anything with
    id/merchant/amount and id/name/description attributes.

    Without an explicit `complete` callable the OpenAI model is used, and only
    when AUTO_CATEGORIZE_AI is on and OPENAI_API_KEY is set.
    """
    transactions = list(transactions)
    categories = list(categories)
    if not transactions or not categories:
        return []

    if complete is None:
        if not AUTO_CATEGORIZE_AI:
            logger.debug("AI suggestions disabled (AUTO_CATEGORIZE_AI=0)")
            return []
        if not (os.getenv("OPENAI_API_KEY") or "").strip():
            logger.warning("AUTO_CATEGORIZE_AI is on but OPENAI_API_KEY is missing")
            return []
        complete = _openai_complete

    system = _build_system_prompt(categories)
    category_ids = {_get(c, "id") for c in categories}

    suggestions: List[CategorySuggestion] = []
    for batch in _batches(transactions, batch_size):
        batch_ids = {_get(t, "id") for t in batch}
        try:
            text = complete(system, _build_user_message(batch))
        except Exception:
            logger.exception("Category suggestion request failed for a batch of %d", len(batch))
            continue
        parsed = parse_suggestions(text, batch_ids, category_ids)
        if not parsed:
            logger.info("No usable suggestions in model response for a batch of %d", len(batch))
        suggestions.extend(parsed)

    return suggestions
