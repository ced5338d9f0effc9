# analysis/error_classifier.py
# SkillTrack — Labels a failed topic encounter as SLIP, MISTAKE or MISCONCEPTION
# and maps detection outcomes to a Glicko performance score.
# Pure functions. Never raises during normal classification.
# Imports from: analysis/records.py, analysis/rating_engine.py, utils/constants.py

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol, Sequence

from analysis.records import Detection, PerformanceEntry
from analysis.rating_engine import RatedSkill
from utils.constants import (
    ERROR_MISCONCEPTION,
    ERROR_MISTAKE,
    ERROR_SLIP,
    ERROR_TYPE_SCORES,
    HISTORY_WINDOW,
    MISCONCEPTION_MAX_RATING,
    MISCONCEPTION_MIN_ENCOUNTERS,
    MISCONCEPTION_MIN_VOLATILITY,
    SCORE_CLEAN,
    SCORE_MISTAKE,
    SCORE_PERFECT,
    SLIP_CLEAN_HISTORY_REQUIRED,
    SLIP_CLEAN_SCORE,
    SLIP_MIN_RATING,
)

OUTCOME_PERFECT: str = "perfect"
OUTCOME_CLEAN: str   = "clean"
OUTCOME_ERROR: str   = "error"
OUTCOME_NEUTRAL: str = "neutral"   # neither positive nor negative, no rating update

ERROR_DESCRIPTIONS: dict[str, str] = {
    ERROR_SLIP: (
        "This looks like a careless slip. You know this material well, "
        "it was just a momentary lapse."
    ),
    ERROR_MISTAKE: (
        "This is a normal learning error and a good chance to deepen your understanding."
    ),
    ERROR_MISCONCEPTION: (
        "This points to a misunderstanding of the concept that is worth addressing directly."
    ),
}


# ─────────────────────────────────────────────
# Output contracts
# ─────────────────────────────────────────────

class SkillSnapshot(RatedSkill, Protocol):
    times_encountered: int


@dataclass(frozen=True)
class Classification:
    error_type:        str
    performance_score: float
    reasoning:         str


@dataclass(frozen=True)
class DetectionResult:
    outcome:           str
    performance_score: Optional[float]            # None for a neutral outcome
    error_type:        Optional[str]
    classification:    Optional[Classification]


# ─────────────────────────────────────────────
# History window
# ─────────────────────────────────────────────

def _sort_key(entry: PerformanceEntry) -> datetime:
    created = entry.created_at
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created


def recent_window(history: Iterable[PerformanceEntry], size: int = HISTORY_WINDOW) -> list[PerformanceEntry]:
    """Most recent `size` entries, oldest first, whatever order they arrive in."""
    ordered = sorted(history, key=_sort_key)
    return ordered[-size:] if size > 0 else []


# ─────────────────────────────────────────────
# Classification rules, first match wins
# ─────────────────────────────────────────────

def _is_slip(skill: SkillSnapshot, is_trivial_error: bool, window: Sequence[PerformanceEntry]) -> bool:
    if skill.rating < SLIP_MIN_RATING or not is_trivial_error:
        return False

    last = window[-SLIP_CLEAN_HISTORY_REQUIRED:]
    if len(last) < SLIP_CLEAN_HISTORY_REQUIRED:
        return False
    return all(entry.score >= SLIP_CLEAN_SCORE for entry in last)


def _is_misconception(skill: SkillSnapshot) -> bool:
    return (
        skill.rating <= MISCONCEPTION_MAX_RATING
        and skill.times_encountered >= MISCONCEPTION_MIN_ENCOUNTERS
        and skill.volatility >= MISCONCEPTION_MIN_VOLATILITY
    )


def classify_error(
    skill: SkillSnapshot,
    is_trivial_error: bool,
    recent_history: Iterable[PerformanceEntry],
) -> Classification:
    """
    Decides the likely cause of an error on one topic.

    Priority (first match wins):
        SLIP          → rating >= 1650, trivial error, last two entries scored >= 0.8
        MISCONCEPTION → rating <= 1450, encounters >= 3, volatility >= 0.12
        MISTAKE       → everything else

    Fewer than two history entries never qualifies as a SLIP.
    """
    window = recent_window(recent_history)

    if _is_slip(skill, is_trivial_error, window):
        return Classification(
            error_type=ERROR_SLIP,
            performance_score=ERROR_TYPE_SCORES[ERROR_SLIP],
            reasoning=(
                f"SLIP: strong skill (rating {round(skill.rating)}) with a clean recent "
                f"history made a trivial error"
            ),
        )

    if _is_misconception(skill):
        return Classification(
            error_type=ERROR_MISCONCEPTION,
            performance_score=ERROR_TYPE_SCORES[ERROR_MISCONCEPTION],
            reasoning=(
                f"MISCONCEPTION: rating {round(skill.rating)} after "
                f"{skill.times_encountered} encounters with volatility {skill.volatility:.2f}"
            ),
        )

    return Classification(
        error_type=ERROR_MISTAKE,
        performance_score=ERROR_TYPE_SCORES[ERROR_MISTAKE],
        reasoning="MISTAKE: standard learning error",
    )


# ─────────────────────────────────────────────
# Detection → outcome → score
# ─────────────────────────────────────────────

def determine_outcome(detection: Detection) -> str:
    if detection.is_negative:
        return OUTCOME_ERROR
    if detection.is_positive and detection.is_idiomatic:
        return OUTCOME_PERFECT
    if detection.is_positive:
        return OUTCOME_CLEAN
    return OUTCOME_NEUTRAL


def calculate_performance_score(
    outcome: str,
    is_idiomatic: bool = False,
    error_type: Optional[str] = None,
) -> float:
    """
    perfect (or clean + idiomatic) → 1.0
    clean                          → 0.8
    error                          → score of the error type, MISTAKE when unlabelled
    """
    if outcome == OUTCOME_PERFECT or (outcome == OUTCOME_CLEAN and is_idiomatic):
        return SCORE_PERFECT
    if outcome == OUTCOME_CLEAN:
        return SCORE_CLEAN
    if outcome == OUTCOME_ERROR and error_type in ERROR_TYPE_SCORES:
        return ERROR_TYPE_SCORES[error_type]
    return SCORE_MISTAKE


def process_detection(
    detection: Detection,
    skill: SkillSnapshot,
    recent_history: Iterable[PerformanceEntry],
) -> DetectionResult:
    """Positive detections bypass the classifier; negative ones are classified."""
    outcome = determine_outcome(detection)

    if outcome == OUTCOME_NEUTRAL:
        return DetectionResult(outcome=outcome, performance_score=None, error_type=None, classification=None)

    if outcome != OUTCOME_ERROR:
        return DetectionResult(
            outcome=outcome,
            performance_score=calculate_performance_score(outcome, detection.is_idiomatic),
            error_type=None,
            classification=None,
        )

    classification = classify_error(skill, detection.is_trivial, recent_history)
    return DetectionResult(
        outcome=outcome,
        performance_score=classification.performance_score,
        error_type=classification.error_type,
        classification=classification,
    )


def aggregate_detections(detections: Sequence[Detection]) -> Detection:
    """
    Folds several findings for one topic into a single detection.

    Any negative finding makes the topic negative; the error is trivial only
    when every negative finding is trivial. Without negatives, the topic is
    idiomatic if any positive finding was.
    """
    if not detections:
        raise ValueError("aggregate_detections needs at least one detection")

    slugs = {d.topic_slug for d in detections}
    if len(slugs) != 1:
        raise ValueError(f"Detections span several topics: {sorted(slugs)}")

    negatives = [d for d in detections if d.is_negative]
    positives = [d for d in detections if d.is_positive and not d.is_negative]

    if negatives:
        return Detection(
            topic_slug=detections[0].topic_slug,
            is_negative=True,
            is_trivial=all(d.is_trivial for d in negatives),
        )

    return Detection(
        topic_slug=detections[0].topic_slug,
        is_positive=bool(positives),
        is_idiomatic=any(d.is_idiomatic for d in positives),
    )


def describe_error_type(error_type: str) -> str:
    return ERROR_DESCRIPTIONS.get(error_type, ERROR_DESCRIPTIONS[ERROR_MISTAKE])
