"""
Micronutrient estimation and goal-based prioritization.

UsdaMicronutrientDatabase aggregates per-100 g reference values (USDA
FoodData Central) across a meal's ingredients. MicronutrientEnricher tops up
sparse model output from a database and orders the list by what matters for
the user's goal.
"""

import logging
import re
from typing import Optional, Protocol, Sequence

from platewise.config import settings
from platewise.services.analysis_schemas import (
    AnalysisResult,
    AnalyzedIngredient,
    Micronutrient,
    NutritionGoal,
)


logger = logging.getLogger(__name__)

MIN_PERCENT_DAILY_VALUE = 5.0


class MicronutrientDatabase(Protocol):
    def estimate(self, ingredients: Sequence[AnalyzedIngredient]) -> list[Micronutrient]: ...


# Ordered nutrient-name substrings per goal; earlier entries rank higher.
GOAL_PRIORITIES: dict[NutritionGoal, tuple[str, ...]] = {
    NutritionGoal.WEIGHT_LOSS: ("fiber", "protein", "potassium", "calcium", "sodium"),
    NutritionGoal.MUSCLE_GAIN: (
        "protein",
        "vitamin d",
        "zinc",
        "magnesium",
        "iron",
        "vitamin b12",
    ),
    NutritionGoal.MAINTAIN_WEIGHT: (
        "fiber",
        "vitamin d",
        "calcium",
        "iron",
        "potassium",
    ),
    NutritionGoal.PERFORMANCE_FOCUS: (
        "vitamin b12",
        "iron",
        "magnesium",
        "omega-3",
        "vitamin b6",
    ),
    NutritionGoal.BETTER_SLEEP: (
        "magnesium",
        "calcium",
        "vitamin b6",
        "potassium",
        "vitamin d",
    ),
    NutritionGoal.OVERALL_WELLBEING: (
        "vitamin d",
        "vitamin c",
        "fiber",
        "calcium",
        "iron",
    ),
    NutritionGoal.ATHLETIC_PERFORMANCE: (
        "potassium",
        "sodium",
        "magnesium",
        "iron",
        "vitamin b12",
    ),
}


# =============================================================================
# REFERENCE TABLE (per 100 g): (name, amount, unit, daily value)
# =============================================================================

_EGG = (
    ("Vitamin D", 2.0, "mcg", 20.0),
    ("Vitamin B12", 0.89, "mcg", 2.4),
    ("Selenium", 30.7, "mcg", 55.0),
    ("Choline", 293.8, "mg", 550.0),
    ("Iron", 1.75, "mg", 18.0),
    ("Phosphorus", 198.0, "mg", 1250.0),
    ("Vitamin A", 160.0, "mcg", 900.0),
    ("Folate", 47.0, "mcg", 400.0),
)
_CORN = (
    ("Vitamin C", 6.8, "mg", 90.0),
    ("Thiamin", 0.155, "mg", 1.2),
    ("Folate", 42.0, "mcg", 400.0),
    ("Magnesium", 37.0, "mg", 420.0),
    ("Phosphorus", 89.0, "mg", 1250.0),
    ("Potassium", 270.0, "mg", 3500.0),
)
_TOMATO = (
    ("Vitamin C", 13.7, "mg", 90.0),
    ("Vitamin K", 7.9, "mcg", 120.0),
    ("Potassium", 237.0, "mg", 3500.0),
    ("Lycopene", 2573.0, "mcg", 15000.0),
    ("Vitamin A", 42.0, "mcg", 900.0),
    ("Folate", 15.0, "mcg", 400.0),
)
_CHEESE = (
    ("Calcium", 721.0, "mg", 1300.0),
    ("Vitamin B12", 1.1, "mcg", 2.4),
    ("Phosphorus", 512.0, "mg", 1250.0),
    ("Vitamin A", 330.0, "mcg", 900.0),
    ("Zinc", 3.6, "mg", 11.0),
    ("Selenium", 28.5, "mcg", 55.0),
    ("Riboflavin", 0.43, "mg", 1.3),
    ("Sodium", 653.0, "mg", 2300.0),
)

REFERENCE_TABLE = {
    "egg": _EGG,
    "fried egg": _EGG + (("Sodium", 207.0, "mg", 2300.0),),
    "corn": _CORN,
    "sweet corn": _CORN,
    "broccoli": (
        ("Vitamin C", 89.2, "mg", 90.0),
        ("Vitamin K", 101.6, "mcg", 120.0),
        ("Folate", 63.0, "mcg", 400.0),
        ("Vitamin A", 31.0, "mcg", 900.0),
        ("Potassium", 316.0, "mg", 3500.0),
        ("Fiber", 2.6, "g", 28.0),
        ("Calcium", 47.0, "mg", 1300.0),
        ("Iron", 0.73, "mg", 18.0),
    ),
    "tomato": _TOMATO,
    "cherry tomato": _TOMATO,
    "chicken": (
        ("Niacin", 8.2, "mg", 16.0),
        ("Vitamin B6", 0.53, "mg", 1.7),
        ("Selenium", 27.6, "mcg", 55.0),
        ("Phosphorus", 228.0, "mg", 1250.0),
        ("Vitamin B12", 0.31, "mcg", 2.4),
        ("Zinc", 1.0, "mg", 11.0),
        ("Iron", 0.89, "mg", 18.0),
        ("Potassium", 334.0, "mg", 3500.0),
    ),
    "chicken breast": (
        ("Niacin", 13.7, "mg", 16.0),
        ("Vitamin B6", 0.93, "mg", 1.7),
        ("Selenium", 31.9, "mcg", 55.0),
        ("Phosphorus", 246.0, "mg", 1250.0),
        ("Vitamin B12", 0.21, "mcg", 2.4),
        ("Zinc", 0.8, "mg", 11.0),
        ("Potassium", 391.0, "mg", 3500.0),
    ),
    "beef": (
        ("Vitamin B12", 2.64, "mcg", 2.4),
        ("Zinc", 6.31, "mg", 11.0),
        ("Selenium", 26.4, "mcg", 55.0),
        ("Iron", 2.6, "mg", 18.0),
        ("Niacin", 4.5, "mg", 16.0),
        ("Phosphorus", 201.0, "mg", 1250.0),
        ("Vitamin B6", 0.35, "mg", 1.7),
        ("Potassium", 318.0, "mg", 3500.0),
    ),
    "salmon": (
        ("Vitamin D", 10.9, "mcg", 20.0),
        ("Vitamin B12", 3.18, "mcg", 2.4),
        ("Omega-3", 2260.0, "mg", 1600.0),
        ("Selenium", 36.5, "mcg", 55.0),
        ("Niacin", 8.67, "mg", 16.0),
        ("Vitamin B6", 0.82, "mg", 1.7),
        ("Phosphorus", 252.0, "mg", 1250.0),
        ("Potassium", 490.0, "mg", 3500.0),
    ),
    "rice": (
        ("Manganese", 1.09, "mg", 2.3),
        ("Selenium", 15.1, "mcg", 55.0),
        ("Thiamin", 0.07, "mg", 1.2),
        ("Niacin", 1.62, "mg", 16.0),
        ("Magnesium", 25.0, "mg", 420.0),
        ("Phosphorus", 115.0, "mg", 1250.0),
        ("Iron", 0.8, "mg", 18.0),
        ("Folate", 8.0, "mcg", 400.0),
    ),
    "brown rice": (
        ("Manganese", 1.9, "mg", 2.3),
        ("Selenium", 19.1, "mcg", 55.0),
        ("Magnesium", 43.0, "mg", 420.0),
        ("Phosphorus", 162.0, "mg", 1250.0),
        ("Vitamin B6", 0.29, "mg", 1.7),
        ("Thiamin", 0.19, "mg", 1.2),
        ("Fiber", 1.8, "g", 28.0),
        ("Iron", 0.52, "mg", 18.0),
    ),
    "spinach": (
        ("Vitamin K", 482.9, "mcg", 120.0),
        ("Vitamin A", 469.0, "mcg", 900.0),
        ("Folate", 194.0, "mcg", 400.0),
        ("Iron", 2.71, "mg", 18.0),
        ("Vitamin C", 28.1, "mg", 90.0),
        ("Calcium", 99.0, "mg", 1300.0),
        ("Magnesium", 79.0, "mg", 420.0),
        ("Potassium", 558.0, "mg", 3500.0),
    ),
    "milk": (
        ("Calcium", 113.0, "mg", 1300.0),
        ("Vitamin D", 1.0, "mcg", 20.0),
        ("Vitamin B12", 0.44, "mcg", 2.4),
        ("Riboflavin", 0.17, "mg", 1.3),
        ("Phosphorus", 91.0, "mg", 1250.0),
        ("Potassium", 150.0, "mg", 3500.0),
        ("Vitamin A", 46.0, "mcg", 900.0),
        ("Selenium", 3.3, "mcg", 55.0),
    ),
    "cheese": _CHEESE,
    "cheddar": _CHEESE[:5],
    "bread": (
        ("Selenium", 23.6, "mcg", 55.0),
        ("Thiamin", 0.48, "mg", 1.2),
        ("Iron", 3.6, "mg", 18.0),
        ("Niacin", 4.7, "mg", 16.0),
        ("Folate", 85.0, "mcg", 400.0),
        ("Manganese", 0.65, "mg", 2.3),
        ("Fiber", 2.7, "g", 28.0),
        ("Sodium", 478.0, "mg", 2300.0),
    ),
    "whole wheat bread": (
        ("Fiber", 6.8, "g", 28.0),
        ("Selenium", 30.0, "mcg", 55.0),
        ("Manganese", 2.0, "mg", 2.3),
        ("Magnesium", 82.0, "mg", 420.0),
        ("Phosphorus", 223.0, "mg", 1250.0),
        ("Iron", 2.5, "mg", 18.0),
        ("Zinc", 1.8, "mg", 11.0),
        ("Thiamin", 0.38, "mg", 1.2),
    ),
    "herbs": (
        ("Vitamin K", 1714.0, "mcg", 120.0),
        ("Iron", 37.0, "mg", 18.0),
        ("Calcium", 1652.0, "mg", 1300.0),
        ("Vitamin A", 424.0, "mcg", 900.0),
        ("Vitamin C", 133.0, "mg", 90.0),
    ),
    "parsley": (
        ("Vitamin K", 1640.0, "mcg", 120.0),
        ("Vitamin C", 133.0, "mg", 90.0),
        ("Vitamin A", 421.0, "mcg", 900.0),
        ("Iron", 6.2, "mg", 18.0),
        ("Folate", 152.0, "mcg", 400.0),
    ),
}

# Used when an ingredient name matches nothing in the table.
FOOD_GROUP_PROFILES = {
    "Protein": REFERENCE_TABLE["chicken"],
    "Vegetable": REFERENCE_TABLE["broccoli"],
    "Grain": REFERENCE_TABLE["rice"],
    "Dairy": REFERENCE_TABLE["milk"],
}

_CUP_GRAMS = (
    ("rice", 158.0),
    ("broccoli", 91.0),
    ("corn", 145.0),
    ("tomato", 180.0),
    ("spinach", 30.0),
    ("milk", 240.0),
)
_SLICE_GRAMS = (("bread", 28.0), ("cheese", 20.0), ("tomato", 20.0))
_SERVING_GRAMS = (
    ("egg", 100.0),
    ("chicken", 113.0),
    ("beef", 113.0),
    ("salmon", 113.0),
    ("rice", 158.0),
)
_AMOUNT = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*$")


def _lookup_weight(food: str, table, default: float) -> float:
    for keyword, grams in table:
        if keyword in food:
            return grams
    return default


def grams_for(amount: str, unit: str, food_name: str) -> float:
    """Convert an ingredient amount to grams; unparseable amounts count as 100 g."""
    match = _AMOUNT.match(amount or "")
    if not match:
        return 100.0
    quantity = float(match.group(1))
    food = food_name.lower()
    unit = (unit or "").strip().lower()

    if unit in ("g", "gram", "grams"):
        return quantity
    if unit in ("oz", "ounce", "ounces"):
        return quantity * 28.35
    if unit in ("ml", "milliliter", "milliliters"):
        return quantity  # 1 ml ~ 1 g
    if unit in ("cup", "cups"):
        return quantity * _lookup_weight(food, _CUP_GRAMS, 150.0)
    if unit in ("tbsp", "tablespoon", "tablespoons"):
        return quantity * 15.0
    if unit in ("tsp", "teaspoon", "teaspoons"):
        return quantity * 5.0
    if unit in ("slice", "slices"):
        return quantity * _lookup_weight(food, _SLICE_GRAMS, 30.0)
    if unit in ("piece", "pieces"):
        return quantity * (100.0 if "chicken" in food else 50.0)
    if unit in ("egg", "eggs"):
        return quantity * 50.0
    if unit in ("serving", "servings"):
        return quantity * _lookup_weight(food, _SERVING_GRAMS, 100.0)
    return quantity * 100.0


class UsdaMicronutrientDatabase:
    """Ingredient-based estimate from the per-100 g reference table."""

    def __init__(self, table: Optional[dict] = None, limit: Optional[int] = None):
        self.table = REFERENCE_TABLE if table is None else table
        self.limit = settings.max_micronutrients if limit is None else limit
        # longest keys first so "chicken breast" wins over "chicken"
        self._patterns = [
            (key, re.compile(rf"\b{re.escape(key)}(?:e?s)?\b"))
            for key in sorted(self.table, key=len, reverse=True)
        ]

    def find_profile(self, ingredient: AnalyzedIngredient):
        name = ingredient.name.strip().lower()
        if not name:
            return FOOD_GROUP_PROFILES.get(ingredient.food_group)
        if name in self.table:
            return self.table[name]
        # whole-word matches only: "ice" must not hit "rice"
        for key, pattern in self._patterns:
            if pattern.search(name):
                return self.table[key]
        return FOOD_GROUP_PROFILES.get(ingredient.food_group)

    def estimate(self, ingredients: Sequence[AnalyzedIngredient]) -> list[Micronutrient]:
        totals = {}  # name -> [amount, unit, daily value]
        for ingredient in ingredients:
            profile = self.find_profile(ingredient)
            if profile is None:
                continue
            scale = grams_for(ingredient.amount, ingredient.unit, ingredient.name) / 100.0
            for name, amount, unit, daily_value in profile:
                if name in totals:
                    totals[name][0] += amount * scale
                else:
                    totals[name] = [amount * scale, unit, daily_value]

        micronutrients = []
        for name, (amount, unit, daily_value) in totals.items():
            percent = amount / daily_value * 100
            if percent < MIN_PERCENT_DAILY_VALUE:
                continue
            micronutrients.append(
                Micronutrient(
                    name=name,
                    amount=round(amount, 1),
                    unit=unit,
                    percent_daily_value=float(round(percent)),
                )
            )

        micronutrients.sort(key=lambda m: m.percent_daily_value, reverse=True)
        return micronutrients[: self.limit]


# =============================================================================
# ENRICHMENT
# =============================================================================


def priority_rank(name: str, priorities: Sequence[str]) -> int:
    lowered = name.lower()
    for index, keyword in enumerate(priorities):
        if keyword in lowered:
            return index
    return len(priorities)


def prioritize(
    micronutrients: Sequence[Micronutrient], goal: NutritionGoal, limit: int
) -> list[Micronutrient]:
    """Goal-priority order first, then percent of daily value descending."""
    priorities = GOAL_PRIORITIES.get(goal, ())
    ordered = sorted(
        micronutrients,
        key=lambda m: (priority_rank(m.name, priorities), -m.percent_daily_value),
    )
    return ordered[:limit]


class MicronutrientEnricher:
    def __init__(
        self,
        database: MicronutrientDatabase,
        min_count: Optional[int] = None,
        max_count: Optional[int] = None,
    ):
        self.database = database
        self.min_count = settings.min_micronutrients if min_count is None else min_count
        self.max_count = settings.max_micronutrients if max_count is None else max_count

    def enrich(
        self,
        result: AnalysisResult,
        ingredients: Sequence[AnalyzedIngredient],
        goal: NutritionGoal,
    ) -> AnalysisResult:
        """
        Top up and reorder the result's micronutrients.

        Database entries are only consulted when the model returned fewer than
        `min_count` micronutrients, and never replace a name the model already
        reported.
        """
        micronutrients = list(result.micronutrients)

        if len(micronutrients) < self.min_count:
            known = {m.name.strip().lower() for m in micronutrients}
            added = 0
            for estimate in self.database.estimate(ingredients):
                key = estimate.name.strip().lower()
                if key in known:
                    continue
                known.add(key)
                micronutrients.append(estimate)
                added += 1
            logger.info(
                "Added %d estimated micronutrients to %r", added, result.meal_name
            )

        return result.model_copy(
            update={"micronutrients": prioritize(micronutrients, goal, self.max_count)}
        )
