"""Turning free model text into a `Recipe`.

Models are asked for a bare JSON object but routinely wrap it in prose or
Markdown fences anyway. Anything we cannot recover is a `MalformedModelOutput`,
never a bare `json` or `KeyError`.
"""

import json
import re
from typing import Any

from domain.errors import MalformedModelOutput
from domain.models import Recipe


FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


def outermost_object(text: str) -> dict[str, Any]:
    """Parse the span from the first `{` to the last `}`."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or start > end:
        raise MalformedModelOutput("No JSON object in model response.", raw=text)
    return _loads(text[start : end + 1], raw=text)


def fenced_object(text: str) -> dict[str, Any]:
    """Strip Markdown code fences, falling back to `outermost_object`."""
    cleaned = FENCE.sub("", text.strip()).strip()
    if cleaned.startswith("{") and cleaned.endswith("}"):
        try:
            return _loads(cleaned, raw=text)
        except MalformedModelOutput:
            pass
    return outermost_object(text)


def _loads(s: str, *, raw: str) -> dict[str, Any]:
    try:
        data = json.loads(s)
    except json.JSONDecodeError as e:
        raise MalformedModelOutput(f"Invalid JSON in model response. {e}", raw=raw) from e
    if not isinstance(data, dict):
        raise MalformedModelOutput("Model response JSON is not an object.", raw=raw)
    return data


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


def _quantities(value: Any, key: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedModelOutput(f"'{key}' should map names to quantities.")
    return {str(k): _text(v) for k, v in value.items()}


def _steps(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise MalformedModelOutput("'instructions' should be a list of steps.")
    return [_text(step) for step in value]


def recipe_from_dict(data: dict[str, Any]) -> Recipe:
    """Build a `Recipe` from the model's JSON object. Content is not checked."""
    return Recipe(
        title=_text(data.get("title")),
        ingredients=_quantities(data.get("ingredients"), "ingredients"),
        instructions=_steps(data.get("instructions")),
        shopping_cart=_quantities(data.get("shopping_cart"), "shopping_cart"),
        cuisine=_text(data.get("cuisine")),
        dietary_preference=_text(data.get("dietary_preference")),
        cooking_time=_text(data.get("cooking_time")),
        servings=_text(data.get("servings")),
    )
