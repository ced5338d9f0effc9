# schemas/progression.py
# SkillTrack — Pydantic models for layer progression status.
# Used by: api/routes_learner.py
# Imports from: pydantic only.

from typing import Optional

from pydantic import BaseModel, Field


class CriterionSchema(BaseModel):
    """One unlock criterion. `current` is None only for recency with no review yet."""
    current:  Optional[float] = None
    required: float
    met:      bool


class LayerProgressSchema(BaseModel):
    layer:            str
    is_unlocked:      bool
    unlocked_at:      Optional[str] = None   # ISO 8601 datetime string
    coverage:         CriterionSchema
    avg_rating:       CriterionSchema
    avg_rd:           CriterionSchema
    submissions:      CriterionSchema
    recency:          CriterionSchema
    overall_progress: int = Field(..., ge=0, le=100,
                                  description="Informational weighted progress, never gates an unlock")
    all_criteria_met: bool


class LayerStatsSchema(BaseModel):
    layer:            str
    total_topics:     int
    attempted_topics: int
    mastered_topics:  int
    stuck_topics:     int
    average_rating:   int
    average_rd:       int


class ProgressionResponse(BaseModel):
    """GET /learner/{learner_id}/progression response body."""
    learner_id:            str
    current_layer:         str
    next_unlock:           Optional[str] = None
    fundamentals_unlocked: bool = True
    intermediate:          LayerProgressSchema
    patterns:              LayerProgressSchema
    layers:                list[LayerStatsSchema]
    total_reviews:         int
