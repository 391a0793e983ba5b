"""
Database models for Platewise.

Import all models here so Base.metadata knows every table.
"""

from platewise.database import Base
from platewise.models.analysis_record import AnalysisRecord
from platewise.models.nutrition_profile import NutritionProfile

__all__ = [
    "Base",
    "AnalysisRecord",
    "NutritionProfile",
]
