"""API endpoints for meal analysis and clarification answers."""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import Field
from sqlalchemy.orm import Session

from platewise.database import get_db
from platewise.services.analysis_schemas import (
    AnalysisRequest,
    AnalysisResult,
    MealWindowContext,
    NutritionGoal,
    UserNutritionContext,
    WindowPurpose,
    WireModel,
)
from platewise.services.clarification import apply_clarifications, resolve_answers
from platewise.services.orchestrator import AnalysisOrchestrator
from platewise.services.storage import SqlAlchemyStorage, Storage


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analysis", tags=["analysis"])


@lru_cache
def get_orchestrator() -> AnalysisOrchestrator:
    """Process-wide orchestrator so the brand cache is shared between requests."""
    return AnalysisOrchestrator.with_claude()


def get_storage(db: Session = Depends(get_db)) -> Storage:
    return SqlAlchemyStorage(db)


class ClarificationAnswers(WireModel):
    answers: dict[str, str] = Field(default_factory=dict)


def resolve_user_context(
    storage: Storage,
    user_id: Optional[str],
    goal: Optional[NutritionGoal],
    targets: dict,
) -> UserNutritionContext:
    """Explicit form values win over the stored profile, which wins over defaults."""
    context = None
    if user_id:
        context = storage.get_user_context(user_id)
    if context is None:
        context = UserNutritionContext()

    overrides = {key: value for key, value in targets.items() if value is not None}
    if goal is not None:
        overrides["goal"] = goal
    if overrides:
        context = context.model_copy(update=overrides)
    return context


def serialize_record(record) -> dict:
    return {
        "id": record.id,
        "userId": record.user_id,
        "result": record.result,
        "metadata": record.analysis_metadata,
        "appliedClarifications": record.applied_clarifications or {},
        "createdAt": record.created_at.isoformat() if record.created_at else None,
    }


@router.post("")
async def create_analysis(
    image: Optional[UploadFile] = File(None),
    transcript: Optional[str] = Form(None),
    user_id: Optional[str] = Form(None),
    goal: Optional[NutritionGoal] = Form(None),
    daily_calorie_target: Optional[int] = Form(None),
    daily_protein_target: Optional[int] = Form(None),
    daily_carb_target: Optional[int] = Form(None),
    daily_fat_target: Optional[int] = Form(None),
    window_purpose: Optional[WindowPurpose] = Form(None),
    window_minutes_remaining: int = Form(0),
    window_target_calories: int = Form(0),
    window_target_protein: float = Form(0),
    window_target_carbs: float = Form(0),
    window_target_fat: float = Form(0),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
    storage: Storage = Depends(get_storage),
):
    """
    Analyze a meal photo and/or description.

    Returns: {id, result, metadata}
    """
    image_bytes = None
    if image and image.filename:
        image_bytes = await image.read() or None

    user_context = resolve_user_context(
        storage,
        user_id,
        goal,
        {
            "daily_calorie_target": daily_calorie_target,
            "daily_protein_target": daily_protein_target,
            "daily_carb_target": daily_carb_target,
            "daily_fat_target": daily_fat_target,
        },
    )
    meal_window = None
    if window_purpose is not None:
        meal_window = MealWindowContext(
            purpose=window_purpose,
            minutes_remaining=window_minutes_remaining,
            target_calories=window_target_calories,
            target_protein=window_target_protein,
            target_carbs=window_target_carbs,
            target_fat=window_target_fat,
        )
    request = AnalysisRequest(
        image=image_bytes,
        transcript=transcript,
        user_context=user_context,
        meal_window=meal_window,
    )

    # AnalysisError subclasses are mapped to status codes in platewise.main
    result, metadata = await orchestrator.analyze(request)

    record = storage.save_analysis(
        result, metadata, user_id=user_id, transcript=transcript
    )
    return {
        "id": record.id,
        "result": record.result,
        "metadata": record.analysis_metadata,
    }


@router.get("/{analysis_id}")
async def get_analysis(analysis_id: int, storage: Storage = Depends(get_storage)):
    record = storage.get_analysis(analysis_id)
    if not record:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return serialize_record(record)


@router.post("/{analysis_id}/clarifications")
async def answer_clarifications(
    analysis_id: int,
    body: ClarificationAnswers,
    storage: Storage = Depends(get_storage),
):
    """
    Apply the chosen clarification options to a stored analysis.

    Body: {"answers": {"<question text or index>": "<option text>"}}
    """
    record = storage.get_analysis(analysis_id)
    if not record:
        raise HTTPException(status_code=404, detail="Analysis not found")

    result = AnalysisResult.model_validate(record.result)
    applied = {
        question.clarification_type: option.text
        for question, option in resolve_answers(result, body.answers)
    }
    adjusted = apply_clarifications(result, body.answers)

    record = storage.update_analysis(record, adjusted, applied)
    return {
        "id": record.id,
        "result": record.result,
        "appliedClarifications": record.applied_clarifications,
    }
