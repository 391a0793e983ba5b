"""Apply a user's clarification answers to an analysis result."""

import logging
import re
from typing import Mapping, Optional

from platewise.services.analysis_schemas import (
    AnalysisResult,
    AnalyzedIngredient,
    ClarificationOption,
    ClarificationQuestion,
    NutritionInfo,
)


logger = logging.getLogger(__name__)

# Checked in order; "extra large" must win over "large".
PORTION_SCALES = (
    ("extra large", 1.5),
    ("small", 0.75),
    ("large", 1.25),
    ("half", 0.5),
)

_NUMERIC_AMOUNT = re.compile(r"^\s*\d+(?:\.\d+)?\s*$")


def portion_scale(option_text: str) -> float:
    lowered = option_text.lower()
    for keyword, scale in PORTION_SCALES:
        if keyword in lowered:
            return scale
    return 1.0


def _option_id(text: str) -> str:
    lowered = text.lower().replace(" ", "_").replace("/", "_")
    return re.sub(r"[().,]", "", lowered)


def find_option(
    question: ClarificationQuestion, answer: str
) -> Optional[ClarificationOption]:
    """Match an answer by exact text, then by slug, then by partial slug."""
    selected = answer.strip().lower()
    if not selected:
        return None
    for option in question.options:
        if option.text == answer:
            return option
    for option in question.options:
        if _option_id(option.text) == selected:
            return option
    for option in question.options:
        slug = _option_id(option.text)
        if slug in selected or selected in slug:
            return option
    return None


def resolve_answers(
    result: AnalysisResult, answers: Mapping[str, str]
) -> list[tuple[ClarificationQuestion, ClarificationOption]]:
    """
    Pair answers with the result's questions.

    Answers are keyed by question text or by the question's position ("0",
    "1", ...). Unknown questions and options are skipped.
    """
    resolved = []
    for index, question in enumerate(result.clarifications):
        answer = answers.get(question.question)
        if answer is None:
            answer = answers.get(str(index))
        if answer is None:
            continue
        option = find_option(question, answer)
        if option is None:
            logger.warning(
                "No option matching %r for question %r", answer, question.question
            )
            continue
        resolved.append((question, option))
    return resolved


def _scale_ingredient(ingredient: AnalyzedIngredient, scale: float) -> AnalyzedIngredient:
    if scale == 1.0 or not _NUMERIC_AMOUNT.match(ingredient.amount):
        return ingredient
    return ingredient.model_copy(
        update={"amount": f"{float(ingredient.amount) * scale:g}"}
    )


def apply_clarifications(
    result: AnalysisResult, answers: Mapping[str, str]
) -> AnalysisResult:
    resolved = resolve_answers(result, answers)
    if not resolved:
        return result

    calories = result.nutrition.calories
    protein = result.nutrition.protein
    carbs = result.nutrition.carbs
    fat = result.nutrition.fat
    ingredients = list(result.ingredients)

    for question, option in resolved:
        calories += option.calorie_impact
        protein += option.protein_impact or 0
        carbs += option.carb_impact or 0
        fat += option.fat_impact or 0

        if question.clarification_type == "portion_size":
            scale = portion_scale(option.text)
            ingredients = [_scale_ingredient(i, scale) for i in ingredients]
        elif question.clarification_type == "cooking_method" and "fried" in option.text.lower():
            ingredients.append(
                AnalyzedIngredient(
                    name="Cooking Oil", amount="1", unit="tbsp", food_group="Fat/Oil"
                )
            )

    answered = {question.question for question, _ in resolved}
    logger.info("Applied %d clarifications to %r", len(resolved), result.meal_name)

    return result.model_copy(
        update={
            "ingredients": ingredients,
            "nutrition": NutritionInfo(
                calories=max(0, calories),
                protein=max(0.0, protein),
                carbs=max(0.0, carbs),
                fat=max(0.0, fat),
            ),
            "clarifications": [
                q for q in result.clarifications if q.question not in answered
            ],
        }
    )
