# schemas/submission.py
# SkillTrack — Pydantic request/response models for POST /submit and history.
# Single source of truth for all submission API contracts.
# Imports from: pydantic only.

from typing import Optional

from pydantic import BaseModel, Field, field_validator


# ─────────────────────────────────────────────
# Request sub-models
# ─────────────────────────────────────────────

class DetectionSchema(BaseModel):
    """One topic-level finding from the external code analyser."""
    topic_slug:   str = Field(..., min_length=1, max_length=100)
    is_positive:  bool = False
    is_negative:  bool = False
    is_idiomatic: bool = False
    is_trivial:   bool = False


class ExternalScoreSchema(BaseModel):
    """Optional per-topic score from an external evaluator. Overrides the detection score."""
    slug:   str = Field(..., min_length=1, max_length=100)
    score:  float = Field(..., ge=0.0, le=1.0)
    reason: str = Field(default="", max_length=2000)


# ─────────────────────────────────────────────
# Request model
# ─────────────────────────────────────────────

class SubmitRequest(BaseModel):
    """
    POST /submit request body.
    All fields are validated before the pipeline runs.
    """
    learner_id:      str = Field(..., min_length=1, max_length=64,
                                 description="Learner identifier")
    detections:      list[DetectionSchema] = Field(..., max_length=500,
                                                   description="Per-topic findings for this submission")
    external_scores: list[ExternalScoreSchema] = Field(default_factory=list, max_length=500)

    @field_validator("learner_id")
    @classmethod
    def no_whitespace_ids(cls, v: str) -> str:
        """IDs must not contain leading/trailing whitespace."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("ID must be non-empty after stripping whitespace.")
        return stripped


# ─────────────────────────────────────────────
# Response sub-models
# ─────────────────────────────────────────────

class SkillChangeSchema(BaseModel):
    """Rating movement for one processed topic."""
    topic_slug:    str
    topic_name:    str
    rating_before: int
    rating_after:  int
    change:        int
    error_type:    Optional[str] = None   # SLIP | MISTAKE | MISCONCEPTION | None
    error_description: Optional[str] = None


class TopicRefSchema(BaseModel):
    slug: str
    name: str


class WeakPrerequisiteSchema(BaseModel):
    """Root-cause topic to aim coaching at."""
    slug:             str
    name:             str
    severity:         str     # critical | moderate | mild
    reason:           str
    suggested_action: str
    rating:           Optional[int] = None   # None → never practiced


# ─────────────────────────────────────────────
# Response model
# ─────────────────────────────────────────────

class SubmitResponse(BaseModel):
    """
    POST /submit response body.

    {
        "submission_id":        "uuid",
        "skill_changes":        [{topic_slug, topic_name, rating_before, rating_after, change, error_type}],
        "stuck_topics":         [{slug, name}],
        "weak_prerequisite":    null | {slug, name, severity, reason, suggested_action, rating},
        "new_unlocks":          ["INTERMEDIATE"],
        "scaffolding_level":    "HIGH" | "MEDIUM" | "LOW",
        "skipped_topics":       ["unknown-slug"]
    }
    """
    submission_id:     str
    skill_changes:     list[SkillChangeSchema]
    stuck_topics:      list[TopicRefSchema]
    weak_prerequisite: Optional[WeakPrerequisiteSchema] = None
    new_unlocks:       list[str]
    scaffolding_level: str
    skipped_topics:    list[str] = Field(default_factory=list)


# ─────────────────────────────────────────────
# History endpoint models (used by routes_learner.py)
# ─────────────────────────────────────────────

class PerformanceHistoryItem(BaseModel):
    """Single row in a learner's performance history."""
    topic_slug:    str
    score:         float
    error_type:    Optional[str] = None
    rating_before: float
    rating_after:  float
    rd_before:     float
    rd_after:      float
    submission_id: Optional[str] = None
    created_at:    str     # ISO 8601 datetime string


class PerformanceHistoryResponse(BaseModel):
    """GET /learner/{learner_id}/history response."""
    learner_id: str
    total:      int
    entries:    list[PerformanceHistoryItem]
