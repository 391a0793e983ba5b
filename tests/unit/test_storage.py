"""
Unit tests for SqlAlchemyStorage.

Runs against the in-memory SQLite session from conftest.
"""
from platewise.models import AnalysisRecord, NutritionProfile
from platewise.services.analysis_schemas import (
    AnalysisMetadata,
    AnalysisTool,
    Complexity,
    NutritionGoal,
    UserNutritionContext,
)
from tests.factories import make_portion_question, make_result


def make_metadata(**overrides) -> AnalysisMetadata:
    values = dict(
        tools_used=[AnalysisTool.BRAND_SEARCH],
        tool_calls=2,
        complexity=Complexity.RESTAURANT,
        analysis_time=1.5,
        confidence=0.9,
        ingredient_count=1,
        brand_detected="Subway",
    )
    values.update(overrides)
    return AnalysisMetadata(**values)


class TestAnalysisRecords:
    def test_save_and_get(self, storage, db):
        result = make_result(meal_name="Subway Italian BMT")

        record = storage.save_analysis(
            result, make_metadata(), user_id="user-1", transcript="footlong bmt"
        )

        fetched = storage.get_analysis(record.id)
        assert fetched is not None
        assert fetched.user_id == "user-1"
        assert fetched.meal_name == "Subway Italian BMT"
        assert fetched.transcript == "footlong bmt"
        assert fetched.result["mealName"] == "Subway Italian BMT"
        assert fetched.result["nutrition"]["calories"] == 520
        assert fetched.analysis_metadata["toolsUsed"] == ["brandSearch"]
        assert fetched.analysis_metadata["complexity"] == "restaurant"
        assert fetched.applied_clarifications == {}
        assert db.query(AnalysisRecord).count() == 1

    def test_get_missing(self, storage):
        assert storage.get_analysis(999) is None

    def test_update_merges_applied_clarifications(self, storage):
        result = make_result(clarifications=[make_portion_question()])
        record = storage.save_analysis(result, make_metadata())

        storage.update_analysis(record, result, {"portion_size": "Large"})
        updated = storage.update_analysis(
            record,
            make_result(meal_name="Big Bowl", confidence=0.95),
            {"cooking_method": "Grilled"},
        )

        assert updated.applied_clarifications == {
            "portion_size": "Large",
            "cooking_method": "Grilled",
        }
        assert updated.meal_name == "Big Bowl"
        assert updated.confidence == 0.95
        assert updated.result["clarifications"] == []


class TestNutritionProfiles:
    def test_missing_profile(self, storage):
        assert storage.get_user_context("nobody") is None

    def test_save_and_load(self, storage):
        context = UserNutritionContext(
            goal=NutritionGoal.MUSCLE_GAIN,
            daily_calorie_target=2800,
            daily_protein_target=180,
            daily_carb_target=320,
            daily_fat_target=90,
        )

        storage.save_user_context("user-1", context)

        assert storage.get_user_context("user-1") == context

    def test_save_replaces_existing(self, storage, db):
        storage.save_user_context("user-1", UserNutritionContext())
        storage.save_user_context(
            "user-1", UserNutritionContext(goal=NutritionGoal.WEIGHT_LOSS)
        )

        assert db.query(NutritionProfile).count() == 1
        assert storage.get_user_context("user-1").goal is NutritionGoal.WEIGHT_LOSS
