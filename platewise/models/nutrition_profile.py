from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from platewise.database import Base


class NutritionProfile(Base):
    """Per-user goal and daily targets used when a request omits them."""

    __tablename__ = "nutrition_profiles"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), unique=True, nullable=False)
    goal = Column(String(50), nullable=False, default="maintain_weight")
    daily_calorie_target = Column(Integer, nullable=False, default=2000)
    daily_protein_target = Column(Integer, nullable=False, default=150)
    daily_carb_target = Column(Integer, nullable=False, default=200)
    daily_fat_target = Column(Integer, nullable=False, default=67)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
