# schemas/skill.py
# SkillTrack — Pydantic models for learners, skill matrices and stuck summaries.
# Used by: api/routes_learner.py, api/routes_topics.py
# Imports from: pydantic only.

from typing import Optional

from pydantic import BaseModel, Field, field_validator


# ─────────────────────────────────────────────
# Registration
# ─────────────────────────────────────────────

class LearnerRegisterRequest(BaseModel):
    learner_id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    name:       str = Field(..., min_length=1, max_length=200)
    email:      str = Field(..., min_length=3, max_length=200)

    @field_validator("email")
    @classmethod
    def email_has_at(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError("Email must contain '@'.")
        return v.strip().lower()


class LearnerRegisterResponse(BaseModel):
    learner_id: str
    name:       str
    registered: bool = True


# ─────────────────────────────────────────────
# Skill matrix
# ─────────────────────────────────────────────

class SkillSchema(BaseModel):
    """
    One topic in a learner's skill matrix with display bands.
    rating / rd are rounded; the *_display strings are ready to render.
    """
    topic_slug:         str
    topic_name:         str
    layer:              str
    category:           str
    rating:             int = Field(..., ge=1200, le=1800)
    rd:                 int = Field(..., ge=50, le=350)
    volatility:         float
    times_encountered:  int
    stars:              int
    stars_display:      str
    confidence:         int
    confidence_display: str
    level:              str
    is_stuck:           bool
    is_mastered:        bool
    last_practiced_at:  Optional[str] = None   # ISO 8601 datetime string


class SkillMatrixResponse(BaseModel):
    """GET /learner/{learner_id}/skills response body."""
    learner_id:     str
    overall_rating: int
    overall_rd:     int
    overall_level:  str
    skills:         list[SkillSchema]


# ─────────────────────────────────────────────
# Stuck summary
# ─────────────────────────────────────────────

class InterventionSchema(BaseModel):
    strategy:         str   # prerequisite_focus | simpler_examples | alternative_explanation | practice_basics
    description:      str
    suggested_action: str


class StuckTopicSchema(BaseModel):
    slug:                     str
    name:                     str
    layer:                    str
    rating:                   int
    times_encountered:        int
    days_since_last_practice: int
    stuck_since:              Optional[str] = None
    intervention:             InterventionSchema


class StuckSummaryResponse(BaseModel):
    """GET /learner/{learner_id}/stuck response body."""
    learner_id:    str
    stuck_count:   int
    at_risk_count: int
    stuck:         list[StuckTopicSchema]
    at_risk:       list[StuckTopicSchema]
    most_urgent:   Optional[StuckTopicSchema] = None


# ─────────────────────────────────────────────
# Topic catalog
# ─────────────────────────────────────────────

class TopicSchema(BaseModel):
    slug:          str
    name:          str
    layer:         str
    category:      str
    prerequisites: list[str]


class TopicListResponse(BaseModel):
    total:  int
    topics: list[TopicSchema]


class PrerequisiteNodeSchema(BaseModel):
    slug:     str
    name:     str
    depth:    int
    children: list["PrerequisiteNodeSchema"] = Field(default_factory=list)


class PrerequisiteTreeResponse(BaseModel):
    """GET /topics/{slug}/prerequisites response body."""
    slug: str
    tree: PrerequisiteNodeSchema
