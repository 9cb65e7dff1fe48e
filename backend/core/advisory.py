"""Extraction of structured advisory fields from free-form text.

Text-generation endpoints echo the prompt and wrap their answer in prose, so
the reply is scanned for the first balanced ``{...}`` block that decodes to a
JSON object carrying the required fields.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

import orjson
from pydantic import ValidationError

from core.errors import MalformedAdvisory
from core.models import AdvisoryResponse

logger = logging.getLogger(__name__)

# Accepted spellings for fields the model tends to rename
_FIELD_ALIASES = {
    "entry_price": "entry",
    "stop_loss": "stoploss",
    "stopLoss": "stoploss",
    "takeprofit": "take_profit",
    "takeProfit": "take_profit",
}


def _candidate_blocks(text: str) -> Iterator[str]:
    """Yield balanced brace blocks in order of their opening brace.

    Braces inside JSON string literals are ignored.
    """
    for start, char in enumerate(text):
        if char != "{":
            continue

        depth = 0
        in_string = False
        escaped = False
        for pos in range(start, len(text)):
            c = text[pos]
            if in_string:
                if escaped:
                    escaped = False
                elif c == "\\":
                    escaped = True
                elif c == '"':
                    in_string = False
                continue

            if c == '"':
                in_string = True
            elif c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    yield text[start : pos + 1]
                    break


def extract_json_objects(text: str) -> Iterator[dict[str, Any]]:
    """Yield every well-formed JSON object embedded in ``text``, in order."""
    for block in _candidate_blocks(text):
        try:
            obj = orjson.loads(block)
        except orjson.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            yield obj


def _normalize(obj: dict[str, Any]) -> dict[str, Any]:
    return {_FIELD_ALIASES.get(k, k): v for k, v in obj.items()}


def parse_advisory(text: str) -> AdvisoryResponse:
    """
    Parse the first structured advisory block from a free-form reply.

    Objects that decode but lack the required fields (for example the echoed
    prompt) are skipped.

    Args:
        text: Raw generated text

    Returns:
        Validated AdvisoryResponse

    Raises:
        MalformedAdvisory: If no block validates against the schema
    """
    if not text:
        raise MalformedAdvisory("Empty advisory reply")

    errors = 0
    for obj in extract_json_objects(text):
        try:
            return AdvisoryResponse.model_validate(_normalize(obj))
        except ValidationError as e:
            errors += 1
            logger.debug(f"Skipping advisory block: {e.error_count()} validation errors")

    raise MalformedAdvisory(
        "No structured advisory block in reply",
        details={"invalid_blocks": errors, "length": len(text)},
    )
