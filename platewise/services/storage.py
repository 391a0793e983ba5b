"""Persistence of analysis records and user nutrition profiles."""

import logging
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from platewise.models.analysis_record import AnalysisRecord
from platewise.models.nutrition_profile import NutritionProfile
from platewise.services.analysis_schemas import (
    AnalysisMetadata,
    AnalysisResult,
    NutritionGoal,
    UserNutritionContext,
)


logger = logging.getLogger(__name__)


class Storage(Protocol):
    def save_analysis(
        self,
        result: AnalysisResult,
        metadata: AnalysisMetadata,
        user_id: Optional[str] = None,
        transcript: Optional[str] = None,
    ) -> AnalysisRecord: ...

    def get_analysis(self, analysis_id: int) -> Optional[AnalysisRecord]: ...

    def update_analysis(
        self,
        record: AnalysisRecord,
        result: AnalysisResult,
        applied_clarifications: dict,
    ) -> AnalysisRecord: ...

    def get_user_context(self, user_id: str) -> Optional[UserNutritionContext]: ...

    def save_user_context(
        self, user_id: str, context: UserNutritionContext
    ) -> NutritionProfile: ...


class SqlAlchemyStorage:
    """Storage backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def save_analysis(
        self,
        result: AnalysisResult,
        metadata: AnalysisMetadata,
        user_id: Optional[str] = None,
        transcript: Optional[str] = None,
    ) -> AnalysisRecord:
        record = AnalysisRecord(
            user_id=user_id,
            meal_name=result.meal_name,
            confidence=result.confidence,
            transcript=transcript,
            result=result.to_wire(),
            analysis_metadata=metadata.model_dump(by_alias=True, mode="json"),
            applied_clarifications={},
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info("Saved analysis %d (%s)", record.id, record.meal_name)
        return record

    def get_analysis(self, analysis_id: int) -> Optional[AnalysisRecord]:
        return self.db.query(AnalysisRecord).filter(AnalysisRecord.id == analysis_id).first()

    def update_analysis(
        self,
        record: AnalysisRecord,
        result: AnalysisResult,
        applied_clarifications: dict,
    ) -> AnalysisRecord:
        record.result = result.to_wire()
        record.meal_name = result.meal_name
        record.confidence = result.confidence
        # reassign so the JSON column is marked dirty
        record.applied_clarifications = {
            **(record.applied_clarifications or {}),
            **applied_clarifications,
        }
        self.db.commit()
        self.db.refresh(record)
        return record

    def get_user_context(self, user_id: str) -> Optional[UserNutritionContext]:
        profile = (
            self.db.query(NutritionProfile)
            .filter(NutritionProfile.user_id == user_id)
            .first()
        )
        if profile is None:
            return None
        return UserNutritionContext(
            goal=NutritionGoal(profile.goal),
            daily_calorie_target=profile.daily_calorie_target,
            daily_protein_target=profile.daily_protein_target,
            daily_carb_target=profile.daily_carb_target,
            daily_fat_target=profile.daily_fat_target,
        )

    def save_user_context(
        self, user_id: str, context: UserNutritionContext
    ) -> NutritionProfile:
        """Create or replace the user's nutrition profile."""
        profile = (
            self.db.query(NutritionProfile)
            .filter(NutritionProfile.user_id == user_id)
            .first()
        )
        if profile is None:
            profile = NutritionProfile(user_id=user_id)
            self.db.add(profile)

        profile.goal = context.goal.value
        profile.daily_calorie_target = context.daily_calorie_target
        profile.daily_protein_target = context.daily_protein_target
        profile.daily_carb_target = context.daily_carb_target
        profile.daily_fat_target = context.daily_fat_target

        self.db.commit()
        self.db.refresh(profile)
        return profile
