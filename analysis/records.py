# analysis/records.py
# SkillTrack — Immutable records passed into and returned from the engine.
# The engine never holds learner state; callers load these, the engine
# returns new ones, and the store persists them.
# Imports from: utils/constants.py

from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional

from utils.constants import (
    INITIAL_RATING,
    INITIAL_RD,
    INITIAL_VOLATILITY,
)


@dataclass(frozen=True)
class Topic:
    topic_id:      int
    slug:          str
    name:          str
    layer:         str
    category:      str
    prerequisites: frozenset[int] = frozenset()


@dataclass(frozen=True)
class SkillRecord:
    """One learner's state for one topic."""
    topic_id:          int
    rating:            float = INITIAL_RATING
    rd:                float = INITIAL_RD
    volatility:        float = INITIAL_VOLATILITY
    times_encountered: int = 0
    last_practiced_at: Optional[datetime] = None
    is_stuck:          bool = False
    stuck_since:       Optional[datetime] = None
    # Stored row version at load time; None until first persisted
    version:           Optional[int] = None

    @classmethod
    def initial(cls, topic_id: int) -> "SkillRecord":
        return cls(topic_id=topic_id)

    def evolve(self, **changes) -> "SkillRecord":
        return replace(self, **changes)


@dataclass(frozen=True)
class PerformanceEntry:
    """Append-only history row for one topic in one submission."""
    topic_id:      int
    score:         float
    error_type:    Optional[str]
    rating_before: float
    rating_after:  float
    rd_before:     float
    rd_after:      float
    created_at:    datetime
    submission_id: Optional[str] = None


@dataclass(frozen=True)
class ProgressRecord:
    """Per-learner unlock state and cached layer aggregates."""
    intermediate_unlocked:    bool = False
    intermediate_unlocked_at: Optional[datetime] = None
    patterns_unlocked:        bool = False
    patterns_unlocked_at:     Optional[datetime] = None
    last_review_at:           Optional[datetime] = None
    total_reviews:            int = 0
    layer_ratings:            Mapping[str, tuple[float, float]] = field(default_factory=dict)
    version:                  Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "layer_ratings", MappingProxyType(dict(self.layer_ratings)))

    def evolve(self, **changes) -> "ProgressRecord":
        return replace(self, **changes)


@dataclass(frozen=True)
class Detection:
    """One topic-level finding from the external code-analysis collaborator."""
    topic_slug:   str
    is_positive:  bool = False
    is_negative:  bool = False
    is_idiomatic: bool = False
    is_trivial:   bool = False


@dataclass(frozen=True)
class ExternalScore:
    """Per-topic score supplied by an external evaluator, with its rationale."""
    topic_slug: str
    score:      float
    reason:     str = ""


@dataclass(frozen=True)
class LearnerSnapshot:
    """Everything the engine reads for one learner in one submission."""
    learner_id:       str
    skills:           Mapping[int, SkillRecord]
    history:          Mapping[int, tuple[PerformanceEntry, ...]]
    progress:         ProgressRecord
    submission_count: int

    def __post_init__(self):
        object.__setattr__(self, "skills", MappingProxyType(dict(self.skills)))
        object.__setattr__(
            self, "history", MappingProxyType({tid: tuple(h) for tid, h in self.history.items()})
        )
