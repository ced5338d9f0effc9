# database/models.py
# SkillTrack — SQLAlchemy ORM models for all 6 tables.
# Imports from: sqlalchemy, utils/constants.py (bounds check only).

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.orm import declarative_base, relationship

from utils.constants import (
    INITIAL_RATING,
    INITIAL_RD,
    INITIAL_VOLATILITY,
    MAX_RATING,
    MAX_RD,
    MAX_VOLATILITY,
    MIN_RATING,
    MIN_RD,
    MIN_VOLATILITY,
)

Base = declarative_base()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


# ─────────────────────────────────────────────
# TABLE 1: Learner
# ─────────────────────────────────────────────

class Learner(Base):
    __tablename__ = "learners"

    learner_id  = Column(String, primary_key=True, default=_uuid)
    name        = Column(String, nullable=False)
    email       = Column(String, nullable=False, unique=True)
    created_at  = Column(DateTime, nullable=False, default=_now)

    # Relationships
    skills      = relationship("SkillRecordRow",     back_populates="learner", cascade="all, delete-orphan")
    history     = relationship("PerformanceHistory", back_populates="learner", cascade="all, delete-orphan")
    submissions = relationship("Submission",         back_populates="learner", cascade="all, delete-orphan")
    progress    = relationship("LearnerProgress",    back_populates="learner", uselist=False, cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Learner id={self.learner_id} name={self.name}>"


# ─────────────────────────────────────────────
# TABLE 2: Topic — immutable seed data
# ─────────────────────────────────────────────

class Topic(Base):
    __tablename__ = "topics"

    topic_id      = Column(Integer, primary_key=True, autoincrement=True)
    slug          = Column(String, nullable=False, unique=True)
    name          = Column(String, nullable=False)
    layer         = Column(String, nullable=False)          # 'FUNDAMENTALS' | 'INTERMEDIATE' | 'PATTERNS'
    category      = Column(String, nullable=False)
    description   = Column(Text, nullable=True)

    # Stored as a JSON string of prerequisite slugs, e.g. '["array-map"]'
    prerequisites = Column(Text, nullable=False, default="[]")

    def __repr__(self) -> str:
        return f"<Topic id={self.topic_id} slug={self.slug} layer={self.layer}>"


# ─────────────────────────────────────────────
# TABLE 3: SkillRecordRow
# Composite PK: (learner_id, topic_id). Optimistic lock on `version`.
# ─────────────────────────────────────────────

class SkillRecordRow(Base):
    __tablename__ = "skill_records"

    learner_id          = Column(String, ForeignKey("learners.learner_id"), primary_key=True, nullable=False)
    topic_id            = Column(Integer, ForeignKey("topics.topic_id"), primary_key=True, nullable=False)

    rating              = Column(Float, nullable=False, default=INITIAL_RATING)       # [1200, 1800]
    rd                  = Column(Float, nullable=False, default=INITIAL_RD)           # [50, 350]
    volatility          = Column(Float, nullable=False, default=INITIAL_VOLATILITY)   # [0.01, 0.2]
    times_encountered   = Column(Integer, nullable=False, default=0)
    last_practiced_at   = Column(DateTime, nullable=True)

    is_stuck            = Column(Boolean, nullable=False, default=False)
    stuck_since         = Column(DateTime, nullable=True)

    version             = Column(Integer, nullable=False)
    updated_at          = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    learner = relationship("Learner", back_populates="skills")
    topic   = relationship("Topic")

    def __repr__(self) -> str:
        return (
            f"<SkillRecordRow learner={self.learner_id} topic={self.topic_id} "
            f"rating={self.rating:.1f} rd={self.rd:.1f}>"
        )


# ─────────────────────────────────────────────
# TABLE 4: PerformanceHistory — append-only
# ─────────────────────────────────────────────

class PerformanceHistory(Base):
    __tablename__ = "performance_history"
    __table_args__ = (
        Index("ix_history_learner_topic_created", "learner_id", "topic_id", "created_at"),
    )

    history_id          = Column(String, primary_key=True, default=_uuid)
    learner_id          = Column(String, ForeignKey("learners.learner_id"), nullable=False)
    topic_id            = Column(Integer, ForeignKey("topics.topic_id"), nullable=False)
    submission_id       = Column(String, ForeignKey("submissions.submission_id"), nullable=True)

    performance_score   = Column(Float, nullable=False)       # 0.0 – 1.0
    error_type          = Column(String, nullable=True)       # 'SLIP' | 'MISTAKE' | 'MISCONCEPTION' | NULL

    rating_before       = Column(Float, nullable=False)
    rating_after        = Column(Float, nullable=False)
    rd_before           = Column(Float, nullable=False)
    rd_after            = Column(Float, nullable=False)

    created_at          = Column(DateTime, nullable=False, default=_now)

    # Relationships
    learner    = relationship("Learner", back_populates="history")
    topic      = relationship("Topic")
    submission = relationship("Submission", back_populates="history")

    def __repr__(self) -> str:
        return (
            f"<PerformanceHistory learner={self.learner_id} topic={self.topic_id} "
            f"score={self.performance_score} error={self.error_type}>"
        )


# ─────────────────────────────────────────────
# TABLE 5: Submission
# ─────────────────────────────────────────────

class Submission(Base):
    __tablename__ = "submissions"

    submission_id   = Column(String, primary_key=True, default=_uuid)
    learner_id      = Column(String, ForeignKey("learners.learner_id"), nullable=False)

    # Detector findings and external scores as received, JSON strings
    detections      = Column(Text, nullable=False)
    external_scores = Column(Text, nullable=True)

    topics_updated  = Column(Integer, nullable=False, default=0)
    new_unlocks     = Column(Text, nullable=True)               # JSON list of layer names

    submitted_at    = Column(DateTime, nullable=False, default=_now)

    # Relationships
    learner = relationship("Learner", back_populates="submissions")
    history = relationship("PerformanceHistory", back_populates="submission")

    def __repr__(self) -> str:
        return f"<Submission id={self.submission_id} learner={self.learner_id} topics={self.topics_updated}>"


# ─────────────────────────────────────────────
# TABLE 6: LearnerProgress
# One row per learner. Optimistic lock on `version`.
# ─────────────────────────────────────────────

class LearnerProgress(Base):
    __tablename__ = "learner_progress"

    learner_id                  = Column(String, ForeignKey("learners.learner_id"), primary_key=True)

    intermediate_unlocked       = Column(Boolean, nullable=False, default=False)
    intermediate_unlocked_at    = Column(DateTime, nullable=True)
    patterns_unlocked           = Column(Boolean, nullable=False, default=False)
    patterns_unlocked_at        = Column(DateTime, nullable=True)

    last_review_at              = Column(DateTime, nullable=True)
    total_reviews               = Column(Integer, nullable=False, default=0)

    # Cached confidence-weighted aggregates, refreshed after each submission
    fundamentals_rating         = Column(Float, nullable=False, default=INITIAL_RATING)
    fundamentals_rd             = Column(Float, nullable=False, default=INITIAL_RD)
    intermediate_rating         = Column(Float, nullable=False, default=INITIAL_RATING)
    intermediate_rd             = Column(Float, nullable=False, default=INITIAL_RD)
    patterns_rating             = Column(Float, nullable=False, default=INITIAL_RATING)
    patterns_rd                 = Column(Float, nullable=False, default=INITIAL_RD)

    version                     = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationship
    learner = relationship("Learner", back_populates="progress")

    def __repr__(self) -> str:
        return (
            f"<LearnerProgress learner={self.learner_id} "
            f"intermediate={self.intermediate_unlocked} patterns={self.patterns_unlocked}>"
        )


# ─────────────────────────────────────────────
# DB-level enforcement: rating, rd and volatility stay within bounds.
# Fires on INSERT and UPDATE of SkillRecordRow rows.
# ─────────────────────────────────────────────

@event.listens_for(SkillRecordRow, "before_insert")
@event.listens_for(SkillRecordRow, "before_update")
def enforce_skill_bounds(mapper, connection, target: SkillRecordRow) -> None:
    checks = (
        ("rating", target.rating, MIN_RATING, MAX_RATING),
        ("rd", target.rd, MIN_RD, MAX_RD),
        ("volatility", target.volatility, MIN_VOLATILITY, MAX_VOLATILITY),
    )
    for field_name, value, low, high in checks:
        if value is not None and not low <= value <= high:
            raise ValueError(
                f"Skill record ({target.learner_id}, {target.topic_id}) has {field_name}={value}, "
                f"allowed range is [{low}, {high}]. Rejecting insert/update."
            )
