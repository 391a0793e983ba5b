"""Calorie/macro identity check and carb repair."""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from platewise.config import settings
from platewise.services.analysis_schemas import AnalysisResult, NutritionInfo


logger = logging.getLogger(__name__)

PROTEIN_KCAL_PER_GRAM = 4
CARB_KCAL_PER_GRAM = 4
FAT_KCAL_PER_GRAM = 9


def round_half_up(value: float, places: int = 0) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def expected_calories(nutrition: NutritionInfo) -> int:
    """Atwater estimate: 4 kcal/g protein and carbs, 9 kcal/g fat."""
    total = (
        PROTEIN_KCAL_PER_GRAM * nutrition.protein
        + CARB_KCAL_PER_GRAM * nutrition.carbs
        + FAT_KCAL_PER_GRAM * nutrition.fat
    )
    return int(round_half_up(total))


class ConsistencyValidator:
    """
    Keeps reported calories in line with the macros.

    When the relative gap between reported and macro-derived calories exceeds
    the tolerance, carbs are recomputed from calories, protein and fat, which
    are trusted as reported.
    """

    def __init__(self, tolerance: Optional[float] = None):
        self.tolerance = settings.calorie_tolerance if tolerance is None else tolerance

    def is_consistent(self, nutrition: NutritionInfo) -> bool:
        expected = expected_calories(nutrition)
        if expected == 0:
            return nutrition.calories == 0
        return abs(nutrition.calories - expected) / expected <= self.tolerance

    def repaired_carbs(self, nutrition: NutritionInfo) -> float:
        remaining = (
            nutrition.calories
            - PROTEIN_KCAL_PER_GRAM * nutrition.protein
            - FAT_KCAL_PER_GRAM * nutrition.fat
        )
        return round_half_up(max(0.0, remaining / CARB_KCAL_PER_GRAM), 1)

    def validate(self, result: AnalysisResult) -> AnalysisResult:
        nutrition = result.nutrition
        try:
            if self.is_consistent(nutrition):
                return result
            carbs = self.repaired_carbs(nutrition)
        except (ArithmeticError, ValueError) as e:
            # out-of-range values cannot be checked; leave them as reported
            logger.warning(
                "Cannot check calories for %r (%s: %s)",
                result.meal_name,
                type(e).__name__,
                e,
            )
            return result

        logger.warning(
            "Calorie mismatch for %r: reported %d, macros give %d; carbs %.1f -> %.1f",
            result.meal_name,
            nutrition.calories,
            expected_calories(nutrition),
            nutrition.carbs,
            carbs,
        )
        return result.model_copy(
            update={"nutrition": nutrition.model_copy(update={"carbs": carbs})}
        )
