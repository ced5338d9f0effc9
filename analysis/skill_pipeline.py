# analysis/skill_pipeline.py
# SkillTrack — Runs one submission through the engine: classify, rate,
# re-check stuck status, find the root-cause prerequisite and gate unlocks.
# Snapshot in, snapshot out. Persistence belongs to database/skill_store.py.
# Imports from: analysis/*, utils/constants.py, utils/logger.py

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional, Sequence

from analysis.error_classifier import (
    OUTCOME_NEUTRAL,
    aggregate_detections,
    classify_error,
    process_detection,
)
from analysis.errors import InvalidPerformanceError, MalformedSnapshotError
from analysis.prerequisite_analyzer import (
    WeakPrerequisite,
    find_weakest_prerequisite,
    scaffolding_level,
)
from analysis.progression_gate import GateInputs, check_and_unlock_layers, refresh_layer_ratings
from analysis.rating_engine import PerformanceResult, apply_decay, update_rating, weighted_average_rating
from analysis.records import (
    Detection,
    ExternalScore,
    LearnerSnapshot,
    PerformanceEntry,
    SkillRecord,
    Topic,
)
from analysis.stuck_detector import StuckTopic, apply_stuck_transition, stuck_topics
from utils.constants import (
    EXTERNAL_ERROR_SCORE_CEILING,
    EXTERNAL_TRIVIAL_SCORE_FLOOR,
)
from utils.logger import get_logger

log = get_logger("analysis.skill_pipeline")


# ─────────────────────────────────────────────
# Output contract
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class SkillChange:
    topic_id:      int
    topic_slug:    str
    topic_name:    str
    rating_before: float
    rating_after:  float
    change:        float
    rd_before:     float
    rd_after:      float
    score:         float
    error_type:    Optional[str]
    converged:     bool = True


@dataclass
class SubmissionOutcome:
    learner_id:           str
    snapshot:             LearnerSnapshot          # state to persist
    changes:              list[SkillChange]
    new_history:          list[PerformanceEntry]
    stuck:                list[StuckTopic]
    weakest_prerequisite: Optional[WeakPrerequisite]
    root_cause_topic:     Optional[Topic]
    new_unlocks:          list[str]
    scaffolding_level:    str
    skipped:              list[str] = field(default_factory=list)   # unknown or neutral slugs


# ─────────────────────────────────────────────
# Input grouping
# ─────────────────────────────────────────────

def _group_detections(detections: Sequence[Detection]) -> dict[str, list[Detection]]:
    """slug → findings, in order of first appearance."""
    grouped: dict[str, list[Detection]] = {}
    for d in detections:
        grouped.setdefault(d.topic_slug, []).append(d)
    return grouped


def _index_external_scores(scores: Sequence[ExternalScore]) -> dict[str, ExternalScore]:
    indexed: dict[str, ExternalScore] = {}
    for s in scores:
        if not isinstance(s.score, (int, float)) or not math.isfinite(s.score) or not 0.0 <= s.score <= 1.0:
            raise InvalidPerformanceError(
                f"External score for '{s.topic_slug}' must be within [0, 1], got {s.score!r}"
            )
        indexed[s.topic_slug] = s
    return indexed


def _check_snapshot(snapshot: LearnerSnapshot) -> None:
    for topic_id, skill in snapshot.skills.items():
        if skill is None or skill.topic_id != topic_id:
            raise MalformedSnapshotError(
                f"Skill map for learner '{snapshot.learner_id}' is inconsistent at topic {topic_id}."
            )
    if snapshot.submission_count < 0:
        raise MalformedSnapshotError("Submission count cannot be negative.")


# ─────────────────────────────────────────────
# Per-topic scoring
# ─────────────────────────────────────────────

def _score_topic(
    detection: Detection,
    external: Optional[ExternalScore],
    skill: SkillRecord,
    history: Sequence[PerformanceEntry],
) -> Optional[tuple[float, Optional[str]]]:
    """
    (score, error_type) for one topic, or None when nothing should change.

    An external score replaces the detection score. Below 0.5 it is still
    classified, with trivial meaning score >= 0.3.
    """
    if external is not None:
        if external.score < EXTERNAL_ERROR_SCORE_CEILING:
            classification = classify_error(
                skill,
                external.score >= EXTERNAL_TRIVIAL_SCORE_FLOOR,
                history,
            )
            return classification.performance_score, classification.error_type
        return external.score, None

    result = process_detection(detection, skill, history)
    if result.outcome == OUTCOME_NEUTRAL:
        return None
    return result.performance_score, result.error_type


def _root_cause_slug(grouped: Mapping[str, Detection]) -> Optional[str]:
    """First non-trivial negative topic, else the first negative one."""
    negatives = [slug for slug, d in grouped.items() if d.is_negative]
    for slug in negatives:
        if not grouped[slug].is_trivial:
            return slug
    return negatives[0] if negatives else None


# ─────────────────────────────────────────────
# Public interface
# ─────────────────────────────────────────────

def process_submission(
    snapshot: LearnerSnapshot,
    topics: Mapping[int, Topic],
    detections: Sequence[Detection],
    now: datetime,
    external_scores: Sequence[ExternalScore] = (),
    submission_id: Optional[str] = None,
) -> SubmissionOutcome:
    """
    Per detected topic:
        1. Create the skill record with defaults on first encounter
        2. Decay rd for the idle days since last practice
        3. Score via external score, positive path or error classifier
        4. Glicko-2 update, encounters + 1, last_practiced_at = now
        5. Re-evaluate stuck status, append a history entry

    Then, once per submission: stuck list, weakest prerequisite of the
    root-cause topic, unlock gate, layer aggregates and review stamp.

    `snapshot.submission_count` counts earlier submissions; this one is added.
    """
    _check_snapshot(snapshot)

    by_slug = {t.slug: t for t in topics.values()}
    grouped = {slug: aggregate_detections(ds) for slug, ds in _group_detections(detections).items()}
    external = _index_external_scores(external_scores)

    skills: dict[int, SkillRecord] = dict(snapshot.skills)
    history: dict[int, list[PerformanceEntry]] = {tid: list(h) for tid, h in snapshot.history.items()}

    changes: list[SkillChange] = []
    new_history: list[PerformanceEntry] = []
    skipped: list[str] = []

    for slug, detection in grouped.items():
        topic = by_slug.get(slug)
        if topic is None:
            log.warning("unknown_topic_skipped", learner_id=snapshot.learner_id, topic_slug=slug)
            skipped.append(slug)
            continue

        skill = skills.get(topic.topic_id)
        if skill is None:
            skill = SkillRecord.initial(topic.topic_id)

        if skill.last_practiced_at is not None:
            idle_days = max(0, (now - skill.last_practiced_at).days)
            skill = skill.evolve(rd=apply_decay(skill.rd, idle_days))

        topic_history = history.get(topic.topic_id, [])
        scored = _score_topic(detection, external.get(slug), skill, topic_history)
        if scored is None:
            log.debug("neutral_detection_skipped", learner_id=snapshot.learner_id, topic_slug=slug)
            skipped.append(slug)
            continue
        score, error_type = scored

        update = update_rating(skill, PerformanceResult(score=score))

        updated = skill.evolve(
            rating=update.new_rating,
            rd=update.new_rd,
            volatility=update.new_volatility,
            times_encountered=skill.times_encountered + 1,
            last_practiced_at=now,
        )
        updated = apply_stuck_transition(updated, now)
        skills[topic.topic_id] = updated

        entry = PerformanceEntry(
            topic_id=topic.topic_id,
            score=score,
            error_type=error_type,
            rating_before=skill.rating,
            rating_after=update.new_rating,
            rd_before=skill.rd,
            rd_after=update.new_rd,
            created_at=now,
            submission_id=submission_id,
        )
        history.setdefault(topic.topic_id, []).append(entry)
        new_history.append(entry)

        changes.append(SkillChange(
            topic_id=topic.topic_id,
            topic_slug=topic.slug,
            topic_name=topic.name,
            rating_before=skill.rating,
            rating_after=update.new_rating,
            change=update.rating_change,
            rd_before=skill.rd,
            rd_after=update.new_rd,
            score=score,
            error_type=error_type,
            converged=update.converged,
        ))

        log.info(
            "skill_rating_updated",
            learner_id=snapshot.learner_id,
            topic_slug=slug,
            score=score,
            error_type=error_type,
            rating_before=round(skill.rating, 2),
            rating_after=round(update.new_rating, 2),
            rd_after=round(update.new_rd, 2),
            volatility=round(update.new_volatility, 4),
        )

    # ── Once per submission ────────────────────

    stuck = stuck_topics(skills.values(), topics, now)

    root_slug = _root_cause_slug({s: d for s, d in grouped.items() if s in by_slug})
    root_topic = by_slug[root_slug] if root_slug is not None else None
    weakest = (
        find_weakest_prerequisite(skills, topics, root_topic.topic_id)
        if root_topic is not None
        else None
    )

    submission_count = snapshot.submission_count + 1
    unlock = check_and_unlock_layers(
        GateInputs(
            skills=skills,
            topics=topics,
            progress=snapshot.progress,
            submission_count=submission_count,
        ),
        now,
    )
    progress = refresh_layer_ratings(unlock.progress, skills, topics).evolve(
        last_review_at=now,
        total_reviews=unlock.progress.total_reviews + 1,
    )

    overall_rating, _ = weighted_average_rating(skills.values())
    level = scaffolding_level(overall_rating)

    log.info(
        "submission_processed",
        learner_id=snapshot.learner_id,
        submission_id=submission_id,
        topics_updated=len(changes),
        topics_skipped=len(skipped),
        stuck_count=len(stuck),
        weak_prerequisite=weakest.topic.slug if weakest else None,
        new_unlocks=unlock.new_unlocks,
        scaffolding_level=level,
    )

    return SubmissionOutcome(
        learner_id=snapshot.learner_id,
        snapshot=LearnerSnapshot(
            learner_id=snapshot.learner_id,
            skills=skills,
            history=history,
            progress=progress,
            submission_count=submission_count,
        ),
        changes=changes,
        new_history=new_history,
        stuck=stuck,
        weakest_prerequisite=weakest,
        root_cause_topic=root_topic,
        new_unlocks=unlock.new_unlocks,
        scaffolding_level=level,
        skipped=skipped,
    )
