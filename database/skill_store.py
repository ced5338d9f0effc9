# database/skill_store.py
# SkillTrack — Loads learner snapshots for the engine and persists the
# resulting state in one transaction with optimistic locking.
# Imports from: analysis/errors.py, analysis/records.py, analysis/skill_pipeline.py,
#               database/models.py, utils/constants.py, utils/logger.py

import json
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from analysis.errors import ConcurrentUpdateError
from analysis.records import (
    Detection,
    ExternalScore,
    LearnerSnapshot,
    PerformanceEntry,
    ProgressRecord,
    SkillRecord,
    Topic,
)
from analysis.skill_pipeline import SubmissionOutcome
from database import models
from utils.constants import (
    HISTORY_WINDOW,
    INITIAL_RATING,
    INITIAL_RD,
    LAYER_FUNDAMENTALS,
    LAYER_INTERMEDIATE,
    LAYER_PATTERNS,
)
from utils.logger import get_logger

log = get_logger("database.skill_store")

# layer → (rating column, rd column) on LearnerProgress
_LAYER_COLUMNS: dict[str, tuple[str, str]] = {
    LAYER_FUNDAMENTALS: ("fundamentals_rating", "fundamentals_rd"),
    LAYER_INTERMEDIATE: ("intermediate_rating", "intermediate_rd"),
    LAYER_PATTERNS:     ("patterns_rating", "patterns_rd"),
}


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# ─────────────────────────────────────────────
# Catalog
# ─────────────────────────────────────────────

def load_topics(db: Session) -> dict[int, Topic]:
    """
    topic_id → Topic with prerequisite slugs resolved to ids.
    Prerequisite slugs missing from the catalog are dropped.
    """
    rows: list[models.Topic] = db.execute(select(models.Topic)).scalars().all()
    id_by_slug = {row.slug: row.topic_id for row in rows}

    topics: dict[int, Topic] = {}
    for row in rows:
        prereq_slugs: list[str] = json.loads(row.prerequisites or "[]")
        missing = [s for s in prereq_slugs if s not in id_by_slug]
        if missing:
            log.debug("dangling_prerequisites_dropped", topic_slug=row.slug, missing=missing)
        topics[row.topic_id] = Topic(
            topic_id=row.topic_id,
            slug=row.slug,
            name=row.name,
            layer=row.layer,
            category=row.category,
            prerequisites=frozenset(id_by_slug[s] for s in prereq_slugs if s in id_by_slug),
        )
    return topics


# ─────────────────────────────────────────────
# Row ↔ record conversion
# ─────────────────────────────────────────────

def _to_skill(row: models.SkillRecordRow) -> SkillRecord:
    return SkillRecord(
        topic_id=row.topic_id,
        rating=row.rating,
        rd=row.rd,
        volatility=row.volatility,
        times_encountered=row.times_encountered,
        last_practiced_at=_aware(row.last_practiced_at),
        is_stuck=row.is_stuck,
        stuck_since=_aware(row.stuck_since),
        version=row.version,
    )


def _to_entry(row: models.PerformanceHistory) -> PerformanceEntry:
    return PerformanceEntry(
        topic_id=row.topic_id,
        score=row.performance_score,
        error_type=row.error_type,
        rating_before=row.rating_before,
        rating_after=row.rating_after,
        rd_before=row.rd_before,
        rd_after=row.rd_after,
        created_at=_aware(row.created_at),
        submission_id=row.submission_id,
    )


def _to_progress(row: Optional[models.LearnerProgress]) -> ProgressRecord:
    if row is None:
        return ProgressRecord()
    return ProgressRecord(
        intermediate_unlocked=row.intermediate_unlocked,
        intermediate_unlocked_at=_aware(row.intermediate_unlocked_at),
        patterns_unlocked=row.patterns_unlocked,
        patterns_unlocked_at=_aware(row.patterns_unlocked_at),
        last_review_at=_aware(row.last_review_at),
        total_reviews=row.total_reviews,
        layer_ratings={
            layer: (getattr(row, rating_col), getattr(row, rd_col))
            for layer, (rating_col, rd_col) in _LAYER_COLUMNS.items()
        },
        version=row.version,
    )


# ─────────────────────────────────────────────
# Reads
# ─────────────────────────────────────────────

def get_learner(db: Session, learner_id: str) -> Optional[models.Learner]:
    return db.get(models.Learner, learner_id)


def load_skills(db: Session, learner_id: str) -> dict[int, SkillRecord]:
    rows = db.execute(
        select(models.SkillRecordRow).where(models.SkillRecordRow.learner_id == learner_id)
    ).scalars().all()
    return {row.topic_id: _to_skill(row) for row in rows}


def load_recent_history(
    db: Session,
    learner_id: str,
    window: int = HISTORY_WINDOW,
) -> dict[int, list[PerformanceEntry]]:
    """topic_id → up to `window` most recent entries, oldest first."""
    rows = db.execute(
        select(models.PerformanceHistory)
        .where(models.PerformanceHistory.learner_id == learner_id)
        .order_by(models.PerformanceHistory.created_at.desc())
    ).scalars().all()

    history: dict[int, list[PerformanceEntry]] = {}
    for row in rows:
        bucket = history.setdefault(row.topic_id, [])
        if len(bucket) < window:
            bucket.append(_to_entry(row))
    return {tid: list(reversed(entries)) for tid, entries in history.items()}


def load_progress(db: Session, learner_id: str) -> ProgressRecord:
    return _to_progress(db.get(models.LearnerProgress, learner_id))


def count_submissions(db: Session, learner_id: str) -> int:
    return db.execute(
        select(func.count()).select_from(models.Submission)
        .where(models.Submission.learner_id == learner_id)
    ).scalar_one()


def load_snapshot(db: Session, learner_id: str) -> LearnerSnapshot:
    """
    Everything the engine reads for one submission. Skill and progress
    records carry the row version read here; save_outcome() refuses to
    write over a row whose stored version has moved on since.
    """
    return LearnerSnapshot(
        learner_id=learner_id,
        skills=load_skills(db, learner_id),
        history=load_recent_history(db, learner_id),
        progress=load_progress(db, learner_id),
        submission_count=count_submissions(db, learner_id),
    )


# ─────────────────────────────────────────────
# Writes
# ─────────────────────────────────────────────

def _check_version(row, expected: Optional[int], table: str, key) -> None:
    """
    Compares the stored version against the one the snapshot was built from.
    A row that appeared or vanished since the load counts as a mismatch.
    """
    stored = row.version if row is not None else None
    if stored != expected:
        raise StaleDataError(
            f"{table} {key!r} is at version {stored}, snapshot was taken at {expected}"
        )


def _write_skill(db: Session, learner_id: str, skill: SkillRecord) -> None:
    key = (learner_id, skill.topic_id)
    # Re-read from the database, not the identity map
    row: Optional[models.SkillRecordRow] = db.get(models.SkillRecordRow, key, populate_existing=True)
    _check_version(row, skill.version, "skill_records", key)
    if row is None:
        row = models.SkillRecordRow(learner_id=learner_id, topic_id=skill.topic_id)
        db.add(row)
    row.rating            = skill.rating
    row.rd                = skill.rd
    row.volatility        = skill.volatility
    row.times_encountered = skill.times_encountered
    row.last_practiced_at = skill.last_practiced_at
    row.is_stuck          = skill.is_stuck
    row.stuck_since       = skill.stuck_since


def _write_progress(db: Session, learner_id: str, progress: ProgressRecord) -> None:
    row: Optional[models.LearnerProgress] = db.get(models.LearnerProgress, learner_id, populate_existing=True)
    _check_version(row, progress.version, "learner_progress", learner_id)
    if row is None:
        row = models.LearnerProgress(learner_id=learner_id)
        db.add(row)

    # Unlock flags only ever move from False to True
    row.intermediate_unlocked    = row.intermediate_unlocked or progress.intermediate_unlocked
    row.intermediate_unlocked_at = row.intermediate_unlocked_at or progress.intermediate_unlocked_at
    row.patterns_unlocked        = row.patterns_unlocked or progress.patterns_unlocked
    row.patterns_unlocked_at     = row.patterns_unlocked_at or progress.patterns_unlocked_at
    row.last_review_at           = progress.last_review_at
    row.total_reviews            = progress.total_reviews

    for layer, (rating_col, rd_col) in _LAYER_COLUMNS.items():
        rating, rd = progress.layer_ratings.get(layer, (INITIAL_RATING, INITIAL_RD))
        setattr(row, rating_col, rating)
        setattr(row, rd_col, rd)


def save_outcome(
    db: Session,
    outcome: SubmissionOutcome,
    submission_id: str,
    detections: Sequence[Detection],
    external_scores: Sequence[ExternalScore] = (),
    submitted_at: Optional[datetime] = None,
) -> None:
    """
    Persists one processed submission: the submission row, every changed
    skill record, the new history rows and the progress record.

    Raises ConcurrentUpdateError when another writer committed any of the
    same rows after load_snapshot(); the session is rolled back.
    """
    learner_id = outcome.learner_id
    try:
        db.add(models.Submission(
            submission_id=submission_id,
            learner_id=learner_id,
            detections=json.dumps([asdict(d) for d in detections]),
            external_scores=json.dumps([asdict(s) for s in external_scores]) if external_scores else None,
            topics_updated=len(outcome.changes),
            new_unlocks=json.dumps(outcome.new_unlocks),
            submitted_at=submitted_at or datetime.now(timezone.utc),
        ))
        db.flush()

        for change in outcome.changes:
            _write_skill(db, learner_id, outcome.snapshot.skills[change.topic_id])

        for entry in outcome.new_history:
            db.add(models.PerformanceHistory(
                learner_id=learner_id,
                topic_id=entry.topic_id,
                submission_id=entry.submission_id,
                performance_score=entry.score,
                error_type=entry.error_type,
                rating_before=entry.rating_before,
                rating_after=entry.rating_after,
                rd_before=entry.rd_before,
                rd_after=entry.rd_after,
                created_at=entry.created_at,
            ))

        _write_progress(db, learner_id, outcome.snapshot.progress)
        db.flush()
    except (StaleDataError, IntegrityError) as exc:
        db.rollback()
        log.warning("concurrent_update_detected", learner_id=learner_id, error=str(exc))
        raise ConcurrentUpdateError(learner_id) from exc

    log.info(
        "submission_persisted",
        learner_id=learner_id,
        submission_id=submission_id,
        skills_written=len(outcome.changes),
        history_rows=len(outcome.new_history),
    )
