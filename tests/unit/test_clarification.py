"""Unit tests for applying clarification answers."""
import pytest

from platewise.services.analysis_schemas import ClarificationOption, ClarificationQuestion
from platewise.services.clarification import (
    apply_clarifications,
    find_option,
    portion_scale,
    resolve_answers,
)
from tests.factories import make_ingredient, make_portion_question, make_result


def make_cooking_question() -> ClarificationQuestion:
    return ClarificationQuestion(
        question="How was the chicken cooked?",
        clarification_type="cooking_method",
        options=[
            ClarificationOption(text="Grilled", calorie_impact=0, is_recommended=True),
            ClarificationOption(text="Pan fried", calorie_impact=120, fat_impact=13.5),
        ],
    )


class TestOptionMatching:
    @pytest.mark.parametrize(
        "answer,expected",
        [
            ("Large", "Large"),
            ("large", "Large"),
            ("extra_large", "Extra large"),
            ("extra", "Extra large"),
        ],
    )
    def test_find_option(self, answer, expected):
        assert find_option(make_portion_question(), answer).text == expected

    def test_unknown_answer(self):
        assert find_option(make_portion_question(), "enormous") is None
        assert find_option(make_portion_question(), "  ") is None

    def test_portion_scale_prefers_extra_large(self):
        assert portion_scale("Extra Large (2 cups)") == 1.5
        assert portion_scale("Large") == 1.25
        assert portion_scale("Small") == 0.75
        assert portion_scale("Half portion") == 0.5
        assert portion_scale("Medium") == 1.0

    def test_answers_by_text_or_index(self):
        result = make_result(clarifications=[make_portion_question(), make_cooking_question()])

        resolved = resolve_answers(
            result, {"How big was the portion?": "Small", "1": "Pan fried"}
        )

        assert [(q.clarification_type, o.text) for q, o in resolved] == [
            ("portion_size", "Small"),
            ("cooking_method", "Pan fried"),
        ]


class TestApplyClarifications:
    """Tests for nutrition deltas and ingredient updates."""

    def test_large_portion(self):
        result = make_result(clarifications=[make_portion_question()])

        updated = apply_clarifications(result, {"How big was the portion?": "Large"})

        assert updated.nutrition.calories == 650
        assert updated.nutrition.carbs == 65.0
        assert updated.nutrition.protein == 50.0
        assert updated.ingredients[0].amount == "187.5"
        assert updated.clarifications == []

    def test_extra_large_portion_scales_by_one_and_a_half(self):
        result = make_result(clarifications=[make_portion_question()])

        updated = apply_clarifications(result, {"0": "Extra large"})

        assert updated.nutrition.calories == 780
        assert updated.ingredients[0].amount == "225"

    def test_fried_adds_cooking_oil(self):
        result = make_result(clarifications=[make_cooking_question()])

        updated = apply_clarifications(result, {"0": "Pan fried"})

        assert updated.nutrition.calories == 640
        assert updated.nutrition.fat == 25.5
        oil = updated.ingredients[-1]
        assert (oil.name, oil.amount, oil.unit, oil.food_group) == (
            "Cooking Oil",
            "1",
            "tbsp",
            "Fat/Oil",
        )

    def test_totals_clamped_at_zero(self):
        result = make_result(
            calories=100, protein=5, carbs=10, fat=4, clarifications=[make_portion_question()]
        )

        updated = apply_clarifications(result, {"0": "Small"})

        assert updated.nutrition.calories == 0
        assert updated.nutrition.carbs == 0

    def test_non_numeric_amounts_left_alone(self):
        result = make_result(
            ingredients=[make_ingredient(name="salsa", amount="a spoonful", unit="")],
            clarifications=[make_portion_question()],
        )

        updated = apply_clarifications(result, {"0": "Large"})

        assert updated.ingredients[0].amount == "a spoonful"

    def test_unanswered_questions_kept(self):
        result = make_result(clarifications=[make_portion_question(), make_cooking_question()])

        updated = apply_clarifications(result, {"0": "Medium"})

        assert [q.clarification_type for q in updated.clarifications] == ["cooking_method"]
        assert updated.nutrition == result.nutrition

    def test_no_matching_answers_returns_input(self):
        result = make_result(clarifications=[make_portion_question()])

        assert apply_clarifications(result, {"0": "enormous"}) is result
