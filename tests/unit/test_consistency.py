"""Unit tests for the calorie/macro consistency validator."""
import pytest
from pydantic import ValidationError

from platewise.services.analysis_schemas import NutritionInfo
from platewise.services.consistency import (
    ConsistencyValidator,
    expected_calories,
    round_half_up,
)
from tests.factories import make_result


@pytest.fixture
def validator():
    return ConsistencyValidator(tolerance=0.08)


class TestExpectedCalories:
    def test_atwater_factors(self):
        nutrition = NutritionInfo(calories=0, protein=20, carbs=10, fat=10)

        assert expected_calories(nutrition) == 210

    def test_rounds_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(82.45, 1) == 82.5


class TestConsistencyValidator:
    """Tests for mismatch detection and carb repair."""

    def test_consistent_result_unchanged(self, validator):
        result = make_result(calories=520, protein=50, carbs=52, fat=12)

        assert validator.validate(result) is result

    def test_within_tolerance_unchanged(self, validator):
        # expected 516, reported 550: 6.6% off
        result = make_result(calories=550, protein=50, carbs=52, fat=12)

        assert validator.validate(result).nutrition.carbs == 52

    def test_repairs_carbs(self, validator):
        result = make_result(calories=500, protein=20, carbs=10, fat=10)

        repaired = validator.validate(result)

        assert repaired.nutrition.carbs == 82.5
        assert repaired.nutrition.calories == 500
        assert repaired.nutrition.protein == 20
        assert repaired.nutrition.fat == 10
        # input untouched
        assert result.nutrition.carbs == 10

    def test_repair_is_deterministic(self, validator):
        result = make_result(calories=500, protein=20, carbs=10, fat=10)

        assert validator.validate(result) == validator.validate(result)

    def test_repaired_result_is_consistent(self, validator):
        result = make_result(calories=733, protein=31.3, carbs=5, fat=21.7)

        repaired = validator.validate(result)

        assert validator.is_consistent(repaired.nutrition)

    def test_carbs_clamped_at_zero(self, validator):
        result = make_result(calories=100, protein=20, carbs=50, fat=10)

        assert validator.validate(result).nutrition.carbs == 0

    def test_zero_macros_with_calories_is_inconsistent(self, validator):
        result = make_result(calories=120, protein=0, carbs=0, fat=0)

        assert validator.validate(result).nutrition.carbs == 30

    def test_all_zero_is_consistent(self, validator):
        result = make_result(calories=0, protein=0, carbs=0, fat=0)

        assert validator.validate(result) is result


class TestUncheckableValues:
    """Values too large to check are passed through untouched."""

    @pytest.mark.parametrize(
        "calories,protein",
        [
            (500, 1e30),
            (10**400, 20),
        ],
    )
    def test_returned_unchanged(self, validator, calories, protein):
        result = make_result(calories=calories, protein=protein, carbs=10, fat=10)

        assert validator.validate(result) is result

    def test_nan_cannot_reach_validator(self):
        with pytest.raises(ValidationError):
            NutritionInfo(calories=0, protein=float("nan"), carbs=0, fat=0)
