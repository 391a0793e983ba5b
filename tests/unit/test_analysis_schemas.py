"""Unit tests for analysis wire models."""
import pytest
from pydantic import ValidationError

from platewise.services.analysis_schemas import (
    AnalysisMetadata,
    AnalysisRequest,
    AnalysisResult,
    AnalysisTool,
    Complexity,
    Micronutrient,
    NutritionGoal,
    NutritionInfo,
    UserNutritionContext,
    normalize_food_group,
)
from tests.factories import make_result
from tests.fixtures.mocks import result_payload


class TestFoodGroups:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Protein", "Protein"),
            ("  dairy ", "Dairy"),
            ("veggies", "Vegetable"),
            ("nuts", "Nut/Seed"),
            ("moon rock", "Mixed"),
            ("", "Mixed"),
            (None, "Mixed"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_food_group(raw) == expected


class TestAnalysisTool:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("brandSearch", AnalysisTool.BRAND_SEARCH),
            ("brand_search", AnalysisTool.BRAND_SEARCH),
            ("DEEP-ANALYSIS", AnalysisTool.DEEP_ANALYSIS),
            ("nutrition lookup", AnalysisTool.NUTRITION_LOOKUP),
            ("webSearch", None),
            (42, None),
        ],
    )
    def test_from_name(self, name, expected):
        assert AnalysisTool.from_name(name) is expected

    def test_requested_tool_set_ignores_unknown(self):
        result = make_result(requested_tools=["deep_analysis", "telepathy", "deepAnalysis"])

        assert result.requested_tool_set == {AnalysisTool.DEEP_ANALYSIS}


class TestWireFormat:
    """camelCase on the wire, snake_case in code."""

    def test_result_round_trip_keys(self):
        result = AnalysisResult.model_validate(result_payload(brandDetected="Subway"))

        wire = result.to_wire()

        assert wire["mealName"] == "Grilled Chicken Rice Bowl"
        assert wire["brandDetected"] == "Subway"
        assert wire["ingredients"][0]["foodGroup"] == "Protein"
        assert wire["micronutrients"][0]["percentRDA"] == 90.0

    def test_micronutrient_aliases(self):
        for key in ("percentRDA", "percentOfDailyValue", "percent_daily_value"):
            micronutrient = Micronutrient.model_validate(
                {"name": "Iron", "amount": 2, "unit": "mg", key: 11}
            )
            assert micronutrient.percent_daily_value == 11

    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            AnalysisResult.model_validate(result_payload(confidence=1.5))

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_nutrition_rejected(self, value):
        with pytest.raises(ValidationError):
            NutritionInfo(calories=100, protein=value, carbs=10, fat=2)

    def test_results_are_frozen(self):
        result = make_result()

        with pytest.raises(ValidationError):
            result.meal_name = "Changed"

    def test_metadata_wire(self):
        metadata = AnalysisMetadata(
            tools_used=[AnalysisTool.NUTRITION_LOOKUP],
            tool_calls=2,
            complexity=Complexity.MODERATE,
            cache_hit=True,
        )

        wire = metadata.model_dump(by_alias=True, mode="json")

        assert wire["toolsUsed"] == ["nutritionLookup"]
        assert wire["toolCalls"] == 2
        assert wire["complexity"] == "moderate"
        assert wire["cacheHit"] is True


class TestRequest:
    def test_blank_transcript_is_absent(self):
        request = AnalysisRequest(transcript="  \n")

        assert not request.has_transcript
        assert not request.has_image

    def test_default_user_context(self):
        context = AnalysisRequest(image=b"\xff\xd8").user_context

        assert context.goal is NutritionGoal.MAINTAIN_WEIGHT
        assert context.daily_macros == "2000 cal, 150g protein, 200g carbs, 67g fat"

    def test_goal_display_name(self):
        assert NutritionGoal.BETTER_SLEEP.display_name == "Better Sleep"

    def test_context_accepts_camel_case(self):
        context = UserNutritionContext.model_validate(
            {"goal": "muscle_gain", "dailyCalorieTarget": 2800}
        )

        assert context.daily_calorie_target == 2800
