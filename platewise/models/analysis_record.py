from sqlalchemy import JSON, Column, DateTime, Float, Integer, String
from sqlalchemy.sql import func

from platewise.database import Base


class AnalysisRecord(Base):
    """One completed meal analysis with its result and run metadata."""

    __tablename__ = "analysis_records"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), index=True)  # None for anonymous analyses
    meal_name = Column(String(255), nullable=False)
    confidence = Column(Float)
    transcript = Column(String(2000))
    result = Column(JSON, nullable=False)  # AnalysisResult wire JSON
    analysis_metadata = Column(JSON, nullable=False)  # AnalysisMetadata wire JSON
    applied_clarifications = Column(
        JSON, default=dict
    )  # clarificationType -> chosen option text
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
