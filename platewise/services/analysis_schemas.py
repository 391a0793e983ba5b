"""
Pydantic models for meal analysis requests, results and metadata.

AnalysisResult doubles as the strict wire schema the model is asked to
return. Wire keys are camelCase (mealName, foodGroup, percentRDA, ...);
attributes are snake_case and both spellings are accepted on input.
Results are frozen: every pipeline stage returns a new value.
"""

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


MAX_CLARIFICATIONS = 3
DEFAULT_FOOD_GROUP = "Mixed"

FOOD_GROUPS = (
    "Protein",
    "Vegetable",
    "Fruit",
    "Grain",
    "Dairy",
    "Fat/Oil",
    "Legume",
    "Nut/Seed",
    "Beverage",
    "Condiment/Sauce",
    "Sweet",
    "Mixed",
)

_FOOD_GROUP_ALIASES = {
    "proteins": "Protein",
    "meat": "Protein",
    "vegetables": "Vegetable",
    "veggies": "Vegetable",
    "fruits": "Fruit",
    "grains": "Grain",
    "carbs": "Grain",
    "fat": "Fat/Oil",
    "fats": "Fat/Oil",
    "oil": "Fat/Oil",
    "oils": "Fat/Oil",
    "legumes": "Legume",
    "nuts": "Nut/Seed",
    "seeds": "Nut/Seed",
    "beverages": "Beverage",
    "drink": "Beverage",
    "sauce": "Condiment/Sauce",
    "sauces": "Condiment/Sauce",
    "condiment": "Condiment/Sauce",
    "sweets": "Sweet",
    "dessert": "Sweet",
}


def normalize_food_group(value) -> str:
    """Map a model-supplied food group onto the closed set, else Mixed."""
    if not isinstance(value, str) or not value.strip():
        return DEFAULT_FOOD_GROUP
    cleaned = value.strip().lower()
    for group in FOOD_GROUPS:
        if group.lower() == cleaned:
            return group
    return _FOOD_GROUP_ALIASES.get(cleaned, DEFAULT_FOOD_GROUP)


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        allow_inf_nan=False,
    )


# --- Enumerations ---


class NutritionGoal(str, Enum):
    WEIGHT_LOSS = "weight_loss"
    MUSCLE_GAIN = "muscle_gain"
    MAINTAIN_WEIGHT = "maintain_weight"
    PERFORMANCE_FOCUS = "performance_focus"
    BETTER_SLEEP = "better_sleep"
    OVERALL_WELLBEING = "overall_wellbeing"
    ATHLETIC_PERFORMANCE = "athletic_performance"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class WindowPurpose(str, Enum):
    PRE_WORKOUT = "pre-workout"
    POST_WORKOUT = "post-workout"
    SUSTAINED_ENERGY = "sustained-energy"
    RECOVERY = "recovery"
    METABOLIC_BOOST = "metabolic-boost"
    SLEEP_OPTIMIZATION = "sleep-optimization"
    FOCUS_BOOST = "focus-boost"


class AnalysisTool(str, Enum):
    INITIAL = "initial"
    BRAND_SEARCH = "brandSearch"
    DEEP_ANALYSIS = "deepAnalysis"
    NUTRITION_LOOKUP = "nutritionLookup"

    @classmethod
    def from_name(cls, name: str) -> Optional["AnalysisTool"]:
        """Resolve brandSearch / brand_search / BRAND-SEARCH style names."""
        if not isinstance(name, str):
            return None
        key = name.replace("_", "").replace("-", "").replace(" ", "").lower()
        for tool in cls:
            if tool.value.lower() == key:
                return tool
        return None


class Complexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    RESTAURANT = "restaurant"


# --- Request ---


class UserNutritionContext(WireModel):
    goal: NutritionGoal = NutritionGoal.MAINTAIN_WEIGHT
    daily_calorie_target: int = 2000
    daily_protein_target: int = 150
    daily_carb_target: int = 200
    daily_fat_target: int = 67

    @property
    def daily_macros(self) -> str:
        return (
            f"{self.daily_calorie_target} cal, {self.daily_protein_target}g protein, "
            f"{self.daily_carb_target}g carbs, {self.daily_fat_target}g fat"
        )


class MealWindowContext(WireModel):
    purpose: WindowPurpose
    minutes_remaining: int = 0
    target_calories: int = 0
    target_protein: float = 0
    target_carbs: float = 0
    target_fat: float = 0


class AnalysisRequest(WireModel):
    """One user action: a photo, a transcript, or both."""

    image: Optional[bytes] = None
    transcript: Optional[str] = None
    user_context: UserNutritionContext = Field(default_factory=UserNutritionContext)
    meal_window: Optional[MealWindowContext] = None

    @property
    def has_image(self) -> bool:
        return bool(self.image)

    @property
    def has_transcript(self) -> bool:
        return bool(self.transcript and self.transcript.strip())


# --- Result ---


class NutritionInfo(WireModel):
    calories: int
    protein: float
    carbs: float
    fat: float


class AnalyzedIngredient(WireModel):
    name: str
    amount: str
    unit: str
    food_group: str = DEFAULT_FOOD_GROUP
    nutrition: Optional[NutritionInfo] = None

    @field_validator("food_group", mode="before")
    @classmethod
    def _normalize_food_group(cls, value):
        return normalize_food_group(value)


class Micronutrient(WireModel):
    name: str
    amount: float
    unit: str
    percent_daily_value: float = Field(
        validation_alias=AliasChoices(
            "percentRDA", "percentOfDailyValue", "percent_daily_value"
        ),
        serialization_alias="percentRDA",
    )


class ClarificationOption(WireModel):
    text: str
    calorie_impact: int = 0
    protein_impact: Optional[float] = None
    carb_impact: Optional[float] = None
    fat_impact: Optional[float] = None
    is_recommended: Optional[bool] = None  # marks the option assumed in the baseline
    note: Optional[str] = None


class ClarificationQuestion(WireModel):
    question: str
    options: list[ClarificationOption]
    clarification_type: str = "portion"


class AnalysisResult(WireModel):
    meal_name: str
    confidence: float = Field(ge=0, le=1)
    ingredients: list[AnalyzedIngredient]
    nutrition: NutritionInfo
    micronutrients: list[Micronutrient] = []
    clarifications: list[ClarificationQuestion] = []
    requested_tools: Optional[list[str]] = None
    brand_detected: Optional[str] = None

    @field_validator("clarifications")
    @classmethod
    def _cap_clarifications(cls, value):
        return value[:MAX_CLARIFICATIONS]

    @property
    def requested_tool_set(self) -> set[AnalysisTool]:
        tools = set()
        for name in self.requested_tools or []:
            tool = AnalysisTool.from_name(name)
            if tool is not None:
                tools.add(tool)
        return tools

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# --- Metadata ---


class AnalysisMetadata(WireModel):
    tools_used: list[AnalysisTool] = []
    tool_calls: int = 0
    complexity: Complexity = Complexity.SIMPLE
    analysis_time: float = 0.0
    confidence: float = 0.0
    ingredient_count: int = 0
    brand_detected: Optional[str] = None
    cache_hit: bool = False
    parse_degraded: bool = False
