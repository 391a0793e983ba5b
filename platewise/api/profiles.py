"""API endpoints for user nutrition profiles."""

from fastapi import APIRouter, Depends, HTTPException

from platewise.api.analysis import get_storage
from platewise.services.analysis_schemas import UserNutritionContext
from platewise.services.storage import Storage

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.put("/{user_id}")
async def put_profile(
    user_id: str,
    context: UserNutritionContext,
    storage: Storage = Depends(get_storage),
):
    storage.save_user_context(user_id, context)
    return {"userId": user_id, **context.model_dump(by_alias=True, mode="json")}


@router.get("/{user_id}")
async def get_profile(user_id: str, storage: Storage = Depends(get_storage)):
    context = storage.get_user_context(user_id)
    if context is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"userId": user_id, **context.model_dump(by_alias=True, mode="json")}
