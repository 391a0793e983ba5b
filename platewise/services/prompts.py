"""
AI prompt templates for meal nutrition analysis.

Every builder returns prompt variables for the tool invoker:
{"tool", "system", "prompt", "max_tokens"}. All tools ask for the same
camelCase AnalysisResult JSON shape so one parser handles every reply.
"""

from platewise.config import settings
from platewise.services.analysis_schemas import (
    FOOD_GROUPS,
    AnalysisRequest,
    AnalysisResult,
    AnalysisTool,
)


# =============================================================================
# SHARED OUTPUT CONTRACT
# =============================================================================

RESULT_JSON_SHAPE = """{
  "mealName": "Grilled Chicken Rice Bowl",
  "confidence": 0.75,
  "ingredients": [
    {"name": "grilled chicken breast", "amount": "120", "unit": "g", "foodGroup": "Protein"},
    {"name": "white rice", "amount": "1", "unit": "cup", "foodGroup": "Grain"}
  ],
  "nutrition": {"calories": 520, "protein": 42.0, "carbs": 55.0, "fat": 12.0},
  "micronutrients": [
    {"name": "Niacin", "amount": 13.7, "unit": "mg", "percentRDA": 86.0}
  ],
  "clarifications": [
    {
      "question": "How much oil was used in cooking?",
      "clarificationType": "cooking_fat",
      "options": [
        {"text": "None", "calorieImpact": -40, "fatImpact": -4.5, "isRecommended": false},
        {"text": "About a teaspoon", "calorieImpact": 0, "isRecommended": true, "note": "Assumed in base"},
        {"text": "A tablespoon or more", "calorieImpact": 80, "fatImpact": 9.0, "isRecommended": false}
      ]
    }
  ],
  "requestedTools": [],
  "brandDetected": null
}"""

OUTPUT_RULES = f"""OUTPUT RULES:
- Return ONLY one JSON object with exactly this shape (no markdown, no prose):
{RESULT_JSON_SHAPE}
- Use "ingredients" (NOT mainComponents) and "nutrition" (NOT nutritionCalculation)
- "amount" is a string; nutrition values are numbers
- foodGroup is one of: {", ".join(FOOD_GROUPS)}
- At most 3 clarifications; each option carries calorieImpact and optional
  proteinImpact/carbImpact/fatImpact relative to the baseline estimate
- Calories must agree with macros (4 kcal/g protein and carbs, 9 kcal/g fat)"""


# =============================================================================
# INITIAL ANALYSIS
# =============================================================================

INITIAL_ANALYSIS_SYSTEM_PROMPT = f"""You are an expert nutritionist estimating the nutrition of a single meal for a tracking application.

TASK: Identify the meal, estimate portions and compute totals from standard (USDA) values.

CONFIDENCE - BE CONSERVATIVE:
- 0.9-1.0: every component clearly identified and portioned
- 0.7-0.85: beverages, smoothies, mixed dishes, sauces
- 0.5-0.7: major ingredients uncertain

CLARIFICATIONS:
- Restaurant or packaged food: only ask about sizes, sauces and customizations
- Home-cooked food: ask about cooking fats, dressings, milk/base type or portion size

TOOL REQUESTS (set "requestedTools"):
- "brandSearch" when you see restaurant branding or packaging (also set "brandDetected")
- "deepAnalysis" when the meal is complex or has hidden ingredients
- "nutritionLookup" when database values would improve accuracy

{OUTPUT_RULES}"""


def _window_line(request: AnalysisRequest) -> str:
    window = request.meal_window
    if window is None:
        return "No active meal window"
    return (
        f"Current window: {window.purpose.value} "
        f"({window.minutes_remaining} minutes remaining); targets "
        f"{window.target_calories} cal, {window.target_protein:g}g protein, "
        f"{window.target_carbs:g}g carbs, {window.target_fat:g}g fat"
    )


def _user_context_block(request: AnalysisRequest) -> str:
    context = request.user_context
    return (
        "USER CONTEXT:\n"
        f"- Goal: {context.goal.display_name}\n"
        f"- Daily targets: {context.daily_macros}\n"
        f"- {_window_line(request)}"
    )


def build_initial_prompt(request: AnalysisRequest) -> dict:
    """Build the first-pass prompt for a photo, a description, or both."""
    parts = [_user_context_block(request)]
    if request.has_transcript:
        parts.append(f"USER DESCRIPTION: {request.transcript.strip()}")
    if request.has_image:
        parts.append("Analyze the meal in the attached photo.")
    else:
        parts.append(
            "No photo is available. Analyze the described meal, assume standard "
            "portions where none are given and note any brand or restaurant mentioned."
        )
    return {
        "tool": AnalysisTool.INITIAL,
        "system": INITIAL_ANALYSIS_SYSTEM_PROMPT,
        "prompt": "\n\n".join(parts),
        "max_tokens": settings.initial_max_tokens,
    }


# =============================================================================
# BRAND SEARCH
# =============================================================================

DETECT_FROM_IMAGE = "detect_from_image"

BRAND_SEARCH_SYSTEM_PROMPT = f"""You are a restaurant nutrition specialist.

TASK: Match the meal to a specific menu item from a restaurant or brand and report its OFFICIAL published nutrition.

DETECTION PRIORITY:
1. Visual indicators: logos, packaging, cups, wrappers
2. Signature items (e.g. waffle fries = Chick-fil-A)
3. If no brand is identifiable but the food looks restaurant-made, estimate as "Generic Restaurant"

RULES:
- Prepend the brand to the meal name ("McDonald's Big Mac", not "Big Mac")
- Set "brandDetected" to the brand
- Official values already include preparation; do not add oil or butter

{OUTPUT_RULES}"""


def build_brand_search_prompt(
    request: AnalysisRequest, result: AnalysisResult, brand: str
) -> dict:
    if brand == DETECT_FROM_IMAGE:
        brand_line = "Brand: unknown. Identify the brand or restaurant from the image."
    else:
        brand_line = f"Brand: {brand}"
    parts = [
        f"Initial detection: {result.meal_name}",
        brand_line,
        f"Initial estimate: {_nutrition_line(result)}",
    ]
    if request.has_transcript:
        parts.append(f"User description: {request.transcript.strip()}")
    return {
        "tool": AnalysisTool.BRAND_SEARCH,
        "system": BRAND_SEARCH_SYSTEM_PROMPT,
        "prompt": "\n".join(parts),
        "max_tokens": settings.tool_max_tokens,
    }


# =============================================================================
# DEEP ANALYSIS
# =============================================================================

DEEP_ANALYSIS_SYSTEM_PROMPT = f"""You are a meticulous nutritionist performing a component-by-component meal analysis.

STEPS:
1. List EVERY component, including garnishes, sauces, dressings, oils and butter
2. Estimate portions from visual references (plate, utensils, hand size)
3. Account for cooking method (frying adds oil; grilling and baking add little)
4. Account for hidden calories (restaurant portions, sugar in sauces)
5. Use USDA values as the baseline

Confidence should reflect the finer analysis; ask only clarifications that remain open.

{OUTPUT_RULES}"""


def _nutrition_line(result: AnalysisResult) -> str:
    n = result.nutrition
    return f"{n.calories} cal, {n.protein:g}g protein, {n.carbs:g}g carbs, {n.fat:g}g fat"


def _ingredient_lines(result: AnalysisResult) -> str:
    if not result.ingredients:
        return "- (none identified)"
    return "\n".join(
        f"- {i.name}: {i.amount} {i.unit} ({i.food_group})" for i in result.ingredients
    )


def build_deep_analysis_prompt(request: AnalysisRequest, result: AnalysisResult) -> dict:
    hints = []
    if result.confidence < 0.7:
        hints.append("- Low initial confidence suggests complex or hidden ingredients")
    if len(result.ingredients) > 5:
        hints.append("- Multiple components need individual analysis")
    if result.nutrition.calories > 600:
        hints.append("- High calories suggest restaurant preparation or hidden fats")

    parts = [
        f"Initial detection: {result.meal_name}",
        f"Current confidence: {result.confidence:.2f}",
        f"Current estimate: {_nutrition_line(result)}",
        "Ingredients so far:",
        _ingredient_lines(result),
    ]
    if hints:
        parts.append("Pay attention to:")
        parts.extend(hints)
    if request.has_transcript:
        parts.append(f"User description: {request.transcript.strip()}")
    return {
        "tool": AnalysisTool.DEEP_ANALYSIS,
        "system": DEEP_ANALYSIS_SYSTEM_PROMPT,
        "prompt": "\n".join(parts),
        "max_tokens": settings.deep_analysis_max_tokens,
    }


# =============================================================================
# NUTRITION LOOKUP (text only)
# =============================================================================

NUTRITION_LOOKUP_SYSTEM_PROMPT = f"""You are a nutrition database specialist.

TASK: Refine nutrition totals for the listed ingredients using reference database values (USDA FoodData Central, package labels).

Account for raw vs cooked weights, standard cooking additions and typical serving sizes.

{OUTPUT_RULES}"""


def build_nutrition_lookup_prompt(request: AnalysisRequest, result: AnalysisResult) -> dict:
    parts = [
        f"Meal: {result.meal_name}",
        "Items to verify:",
        _ingredient_lines(result),
        f"Current estimate: {_nutrition_line(result)}",
        f"Prioritize micronutrients relevant to: {request.user_context.goal.display_name}",
    ]
    return {
        "tool": AnalysisTool.NUTRITION_LOOKUP,
        "system": NUTRITION_LOOKUP_SYSTEM_PROMPT,
        "prompt": "\n".join(parts),
        "max_tokens": settings.tool_max_tokens,
    }
