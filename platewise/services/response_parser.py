"""
Turns free-form model text into an AnalysisResult.

Decoding runs through three paths, each a pure function over the decoded
payload: strict schema validation, a lenient field-by-field extraction that
understands legacy key aliases, and finally a safe default. `parse` never
raises on malformed model output.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional

from pydantic import ValidationError

from platewise.services.analysis_schemas import (
    AnalysisResult,
    AnalyzedIngredient,
    ClarificationOption,
    ClarificationQuestion,
    Micronutrient,
    NutritionInfo,
)


logger = logging.getLogger(__name__)

FALLBACK_MEAL_NAME = "Unknown food item"
FALLBACK_CONFIDENCE = 0.3
FALLBACK_NUTRITION = {"calories": 400, "protein": 20.0, "carbs": 40.0, "fat": 15.0}
LENIENT_MEAL_NAME = "Analyzed Meal"

_FENCE_OPEN = re.compile(r"^\s*```[\w+-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?[ \t]*```\s*$")
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")
_CLOSERS = {"{": "}", "[": "]"}


class ParseMode(str, Enum):
    STRICT = "strict"
    LENIENT = "lenient"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ParseOutcome:
    result: AnalysisResult
    mode: ParseMode

    @property
    def degraded(self) -> bool:
        return self.mode is not ParseMode.STRICT


# =============================================================================
# TEXT CLEANUP + JSON EXTRACTION
# =============================================================================


def strip_code_fences(text: str) -> str:
    """Strip markdown code fence wrappers (``` or ```json) from both ends."""
    text = _FENCE_OPEN.sub("", text, count=1)
    text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def fix_trailing_commas(text: str) -> str:
    """Fix trailing commas in JSON (common LLM error)."""
    text = re.sub(r",\s*}", "}", text)
    text = re.sub(r",\s*]", "]", text)
    return text


def _balanced_end(text: str, start: int) -> Optional[int]:
    """
    Index just past the block opened at `text[start]`, or None if unbalanced.

    String literals and escape sequences are tracked so brackets inside
    quoted values ("size [Large]") do not affect nesting depth.
    """
    expected = []
    in_string = False
    escape_next = False

    for index in range(start, len(text)):
        char = text[index]

        if escape_next:
            escape_next = False
            continue
        if in_string:
            if char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            expected.append(_CLOSERS[char])
        elif char in ("}", "]"):
            if not expected or expected.pop() != char:
                return None
            if not expected:
                return index + 1

    return None


def iter_json_blocks(text: str) -> Iterator[str]:
    """Yield every balanced `{...}` / `[...]` block, by position of its opening bracket."""
    for start, char in enumerate(text):
        if char in _CLOSERS:
            end = _balanced_end(text, start)
            if end is not None:
                yield text[start:end]


def extract_json_block(text: str) -> Optional[str]:
    """Return the first balanced JSON object or array in `text`, or None."""
    return next(iter_json_blocks(text), None)


def decode_payload(text: str) -> Any:
    """
    Locate and json-decode the payload; raises ValueError when impossible.

    Bracketed prose before the payload ("my estimate [see notes]:") is
    skipped: the first block that decodes wins.
    """
    found = False
    for candidate in iter_json_blocks(strip_code_fences(text)):
        found = True
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            pass
        try:
            return json.loads(fix_trailing_commas(candidate))
        except json.JSONDecodeError:
            continue
    if found:
        raise ValueError("No balanced block in model response is valid JSON")
    raise ValueError("No JSON object or array found in model response")


# =============================================================================
# DECODE PATHS
# =============================================================================


def decode_strict(payload: Any) -> AnalysisResult:
    """Validate the payload against the AnalysisResult wire schema."""
    return AnalysisResult.model_validate(payload)


def decode_lenient(payload: Any) -> AnalysisResult:
    """
    Pull fields out of a loosely-typed payload.

    Accepts legacy `nutritionCalculation` / `clarificationNeeds` /
    `mainComponents` keys, flat string ingredient lists and plain-string
    clarification options. Missing numbers default to 0.
    """
    if isinstance(payload, list):
        payload = next((item for item in payload if isinstance(item, dict)), None)
    if not isinstance(payload, dict):
        raise ValueError("Lenient decode needs a JSON object")

    nutrition_data = payload.get("nutrition")
    if not isinstance(nutrition_data, dict):
        nutrition_data = payload.get("nutritionCalculation")

    ingredients = payload.get("ingredients")
    if not isinstance(ingredients, list):
        ingredients = payload.get("mainComponents")

    clarifications = payload.get("clarifications")
    if not isinstance(clarifications, list):
        clarifications = payload.get("clarificationNeeds")

    return AnalysisResult(
        meal_name=_as_str(payload.get("mealName")) or LENIENT_MEAL_NAME,
        confidence=_as_confidence(payload.get("confidence")),
        ingredients=_parse_ingredients(ingredients),
        nutrition=_parse_nutrition(nutrition_data),
        micronutrients=_parse_micronutrients(payload.get("micronutrients")),
        clarifications=_parse_clarifications(clarifications),
        requested_tools=_parse_requested_tools(payload.get("requestedTools")),
        brand_detected=_as_str(payload.get("brandDetected")) or None,
    )


def default_result() -> AnalysisResult:
    """Low-detail placeholder used when nothing could be decoded."""
    return AnalysisResult(
        meal_name=FALLBACK_MEAL_NAME,
        confidence=FALLBACK_CONFIDENCE,
        ingredients=[
            AnalyzedIngredient(
                name=FALLBACK_MEAL_NAME, amount="1", unit="serving", food_group="Mixed"
            )
        ],
        nutrition=NutritionInfo(**FALLBACK_NUTRITION),
    )


class ResponseParser:
    """strict -> lenient -> default decoding of model replies."""

    def parse(self, raw_text: str) -> AnalysisResult:
        return self.parse_with_outcome(raw_text).result

    def parse_with_outcome(self, raw_text: str) -> ParseOutcome:
        try:
            payload = decode_payload(raw_text or "")
        except ValueError as e:
            logger.warning("No decodable JSON in model response: %s", e)
            return ParseOutcome(default_result(), ParseMode.FALLBACK)

        try:
            return ParseOutcome(decode_strict(payload), ParseMode.STRICT)
        except ValidationError as e:
            logger.warning(
                "Strict decode failed (%d errors), trying lenient decode",
                e.error_count(),
            )

        try:
            return ParseOutcome(decode_lenient(payload), ParseMode.LENIENT)
        except (ValueError, TypeError, OverflowError) as e:
            logger.warning("Lenient decode failed, using default result: %s", e)

        return ParseOutcome(default_result(), ParseMode.FALLBACK)


# =============================================================================
# LENIENT FIELD HELPERS
# =============================================================================


def _as_float(value: Any, default: float = 0.0) -> float:
    """Numeric value, or `default` for missing, non-numeric or non-finite input."""
    if isinstance(value, bool):
        return default
    number = None
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        match = _NUMBER.search(value)
        if match:
            number = match.group()
    if number is None:
        return default
    try:
        number = float(number)
    except OverflowError:
        return default
    return number if math.isfinite(number) else default


def _as_int(value: Any, default: int = 0) -> int:
    number = _as_float(value, float(default))
    return int(number + 0.5) if number >= 0 else -int(-number + 0.5)


def _as_optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return _as_float(value)


def _as_str(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (int, float)):
        return f"{value:g}"
    return ""


def _as_confidence(value: Any) -> float:
    confidence = _as_float(value)
    if 1.0 < confidence <= 100.0:
        confidence = confidence / 100.0  # reported as a percentage
    return min(1.0, max(0.0, confidence))


def _parse_ingredients(items: Any) -> list[AnalyzedIngredient]:
    if not isinstance(items, list):
        return []
    ingredients = []
    for item in items:
        if isinstance(item, str) and item.strip():
            ingredients.append(
                AnalyzedIngredient(name=item.strip(), amount="1", unit="serving")
            )
        elif isinstance(item, dict):
            name = _as_str(item.get("name"))
            if not name:
                continue
            nutrition = item.get("nutrition")
            ingredients.append(
                AnalyzedIngredient(
                    name=name,
                    amount=_as_str(item.get("amount")) or "1",
                    unit=_as_str(item.get("unit")) or "serving",
                    food_group=item.get("foodGroup"),
                    nutrition=(
                        _parse_nutrition(nutrition)
                        if isinstance(nutrition, dict)
                        else None
                    ),
                )
            )
    return ingredients


def _parse_nutrition(data: Any) -> NutritionInfo:
    if not isinstance(data, dict):
        data = {}
    return NutritionInfo(
        calories=_as_int(data.get("calories")),
        protein=_as_float(data.get("protein")),
        carbs=_as_float(data.get("carbs")),
        fat=_as_float(data.get("fat")),
    )


def _parse_micronutrients(items: Any) -> list[Micronutrient]:
    if not isinstance(items, list):
        return []
    micronutrients = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = _as_str(item.get("name"))
        if not name:
            continue
        percent = item.get("percentRDA")
        if percent is None:
            percent = item.get("percentOfDailyValue")
        micronutrients.append(
            Micronutrient(
                name=name,
                amount=_as_float(item.get("amount")),
                unit=_as_str(item.get("unit")) or "mg",
                percent_daily_value=_as_float(percent),
            )
        )
    return micronutrients


def _parse_option(option: Any) -> Optional[ClarificationOption]:
    if isinstance(option, str):
        return ClarificationOption(text=option) if option.strip() else None
    if not isinstance(option, dict):
        return None
    text = _as_str(option.get("text"))
    if not text:
        return None
    recommended = option.get("isRecommended")
    return ClarificationOption(
        text=text,
        calorie_impact=_as_int(option.get("calorieImpact")),
        protein_impact=_as_optional_float(option.get("proteinImpact")),
        carb_impact=_as_optional_float(option.get("carbImpact")),
        fat_impact=_as_optional_float(option.get("fatImpact")),
        is_recommended=recommended if isinstance(recommended, bool) else None,
        note=_as_str(option.get("note")) or None,
    )


def _parse_clarifications(items: Any) -> list[ClarificationQuestion]:
    if not isinstance(items, list):
        return []
    questions = []
    for item in items:
        if not isinstance(item, dict):
            continue
        question = _as_str(item.get("question"))
        if not question:
            continue
        raw_options = item.get("options")
        options = []
        if isinstance(raw_options, list):
            options = [
                parsed
                for parsed in (_parse_option(opt) for opt in raw_options)
                if parsed is not None
            ]
        questions.append(
            ClarificationQuestion(
                question=question,
                options=options,
                clarification_type=_as_str(item.get("clarificationType"))
                or "portion",
            )
        )
    return questions


def _parse_requested_tools(value: Any) -> Optional[list[str]]:
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    if isinstance(value, list):
        tools = [item.strip() for item in value if isinstance(item, str) and item.strip()]
        return tools or None
    return None
