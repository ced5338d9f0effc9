# analysis/progression_gate.py
# SkillTrack — Decides when INTERMEDIATE and PATTERNS content unlocks.
# Pure functions: the caller supplies skills, catalog, progress and clock,
# and persists the returned ProgressRecord.
# Imports from: analysis/records.py, analysis/rating_engine.py, utils/constants.py, utils/logger.py

from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional

from analysis.rating_engine import weighted_average_rating
from analysis.records import ProgressRecord, SkillRecord, Topic
from utils.constants import (
    INITIAL_RD,
    LAYER_FUNDAMENTALS,
    LAYER_INTERMEDIATE,
    LAYER_PATTERNS,
    LAYERS,
    MASTERED_MAX_RD,
    MASTERED_MIN_RATING,
    MIN_RATING,
    PRIOR_LAYER,
    PROGRESS_WEIGHTS,
    PROGRESSION_GATES,
)
from utils.logger import get_logger

log = get_logger("analysis.progression_gate")


# ─────────────────────────────────────────────
# Input / output contracts
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class GateInputs:
    skills:           Mapping[int, SkillRecord]
    topics:           Mapping[int, Topic]
    progress:         ProgressRecord
    submission_count: int


@dataclass(frozen=True)
class Criterion:
    current:  Optional[float]   # None only for recency with no review yet
    required: float
    met:      bool


@dataclass(frozen=True)
class LayerProgress:
    layer:            str
    is_unlocked:      bool
    unlocked_at:      Optional[datetime]
    coverage:         Criterion
    avg_rating:       Criterion
    avg_rd:           Criterion
    submissions:      Criterion
    recency:          Criterion
    overall_progress: int        # 0 – 100, informational only
    all_criteria_met: bool

    @property
    def days_since_review(self) -> Optional[int]:
        return None if self.recency.current is None else int(self.recency.current)


@dataclass(frozen=True)
class UnlockResult:
    progress:              ProgressRecord
    intermediate_unlocked: bool
    patterns_unlocked:     bool
    new_unlocks:           list[str]


@dataclass(frozen=True)
class ProgressionStatus:
    fundamentals_unlocked: bool
    intermediate:          LayerProgress
    patterns:              LayerProgress
    current_layer:         str
    next_unlock:           Optional[str]


@dataclass(frozen=True)
class LayerStats:
    layer:            str
    total_topics:     int
    attempted_topics: int
    mastered_topics:  int
    stuck_topics:     int
    average_rating:   float
    average_rd:       float


# ─────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────

def _layer_topic_ids(topics: Mapping[int, Topic], layer: str) -> list[int]:
    return [tid for tid, t in topics.items() if t.layer == layer]


def _unlock_state(progress: ProgressRecord, layer: str) -> tuple[bool, Optional[datetime]]:
    if layer == LAYER_INTERMEDIATE:
        return progress.intermediate_unlocked, progress.intermediate_unlocked_at
    if layer == LAYER_PATTERNS:
        return progress.patterns_unlocked, progress.patterns_unlocked_at
    return True, None


def _days_since(earlier: Optional[datetime], now: datetime) -> Optional[int]:
    if earlier is None:
        return None
    return max(0, (now - earlier).days)


def _pct(value: float) -> float:
    return max(0.0, min(100.0, value))


def _overall_progress(
    coverage: float,
    avg_rating: float,
    avg_rd: float,
    submissions: int,
    recency_met: bool,
    gate: Mapping[str, float],
) -> int:
    """
    Weighted 0–100 score, each component clamped to [0, 100]:
        coverage     current / required
        avg_rating   (current − 1200) / (required − 1200)
        avg_rd       (350 − current) / (350 − required)
        submissions  current / required
        recency      100 when met, else 0
    """
    w = PROGRESS_WEIGHTS
    total = (
        w["coverage"] * _pct(coverage / gate["coverage_percent"] * 100.0)
        + w["avg_rating"] * _pct((avg_rating - MIN_RATING) / (gate["min_avg_rating"] - MIN_RATING) * 100.0)
        + w["avg_rd"] * _pct((INITIAL_RD - avg_rd) / (INITIAL_RD - gate["max_avg_rd"]) * 100.0)
        + w["submissions"] * _pct(submissions / gate["min_submissions"] * 100.0)
        + (w["recency"] * 100.0 if recency_met else 0.0)
    )
    return round(total)


# ─────────────────────────────────────────────
# Public interface
# ─────────────────────────────────────────────

def check_unlock(inputs: GateInputs, target_layer: str, now: datetime) -> LayerProgress:
    """
    Evaluates the five unlock criteria for `target_layer` over the prior
    layer's skills. For PATTERNS, all_criteria_met additionally requires
    INTERMEDIATE to be unlocked already.
    """
    if target_layer not in PROGRESSION_GATES:
        raise ValueError(f"Layer '{target_layer}' has no unlock gate.")

    gate = PROGRESSION_GATES[target_layer]
    prior_ids = _layer_topic_ids(inputs.topics, PRIOR_LAYER[target_layer])
    prior_skills = [inputs.skills[tid] for tid in prior_ids if tid in inputs.skills]

    covered = sum(1 for s in prior_skills if s.times_encountered > 0)
    coverage = covered / len(prior_ids) * 100.0 if prior_ids else 0.0
    avg_rating, avg_rd = weighted_average_rating(prior_skills)
    days = _days_since(inputs.progress.last_review_at, now)

    coverage_c = Criterion(coverage, gate["coverage_percent"], coverage >= gate["coverage_percent"])
    rating_c = Criterion(avg_rating, gate["min_avg_rating"], avg_rating >= gate["min_avg_rating"])
    rd_c = Criterion(avg_rd, gate["max_avg_rd"], avg_rd <= gate["max_avg_rd"])
    submissions_c = Criterion(
        inputs.submission_count,
        gate["min_submissions"],
        inputs.submission_count >= gate["min_submissions"],
    )
    recency_c = Criterion(
        days,
        gate["max_days_since_review"],
        days is not None and days <= gate["max_days_since_review"],
    )

    all_met = all(c.met for c in (coverage_c, rating_c, rd_c, submissions_c, recency_c))
    if target_layer == LAYER_PATTERNS and not inputs.progress.intermediate_unlocked:
        all_met = False

    is_unlocked, unlocked_at = _unlock_state(inputs.progress, target_layer)

    return LayerProgress(
        layer=target_layer,
        is_unlocked=is_unlocked,
        unlocked_at=unlocked_at,
        coverage=coverage_c,
        avg_rating=rating_c,
        avg_rd=rd_c,
        submissions=submissions_c,
        recency=recency_c,
        overall_progress=_overall_progress(
            coverage, avg_rating, avg_rd, inputs.submission_count, recency_c.met, gate,
        ),
        all_criteria_met=all_met,
    )


def check_and_unlock_layers(inputs: GateInputs, now: datetime) -> UnlockResult:
    """
    INTERMEDIATE first, then PATTERNS once INTERMEDIATE is unlocked (possibly
    in this same call). Unlocks are monotonic; nothing here ever re-locks.
    """
    progress = inputs.progress
    new_unlocks: list[str] = []

    intermediate = check_unlock(inputs, LAYER_INTERMEDIATE, now)
    if not intermediate.is_unlocked and intermediate.all_criteria_met:
        progress = progress.evolve(intermediate_unlocked=True, intermediate_unlocked_at=now)
        new_unlocks.append(LAYER_INTERMEDIATE)

    if progress.intermediate_unlocked:
        patterns_inputs = GateInputs(
            skills=inputs.skills,
            topics=inputs.topics,
            progress=progress,
            submission_count=inputs.submission_count,
        )
        patterns = check_unlock(patterns_inputs, LAYER_PATTERNS, now)
        if not patterns.is_unlocked and patterns.all_criteria_met:
            progress = progress.evolve(patterns_unlocked=True, patterns_unlocked_at=now)
            new_unlocks.append(LAYER_PATTERNS)

    for layer in new_unlocks:
        log.info("layer_unlocked", layer=layer, submissions=inputs.submission_count)

    return UnlockResult(
        progress=progress,
        intermediate_unlocked=progress.intermediate_unlocked,
        patterns_unlocked=progress.patterns_unlocked,
        new_unlocks=new_unlocks,
    )


def progression_status(inputs: GateInputs, now: datetime) -> ProgressionStatus:
    """FUNDAMENTALS is always open; the current layer is the deepest unlocked one."""
    intermediate = check_unlock(inputs, LAYER_INTERMEDIATE, now)
    patterns = check_unlock(inputs, LAYER_PATTERNS, now)

    if patterns.is_unlocked:
        current_layer = LAYER_PATTERNS
    elif intermediate.is_unlocked:
        current_layer = LAYER_INTERMEDIATE
    else:
        current_layer = LAYER_FUNDAMENTALS

    if not intermediate.is_unlocked:
        next_unlock: Optional[str] = LAYER_INTERMEDIATE
    elif not patterns.is_unlocked:
        next_unlock = LAYER_PATTERNS
    else:
        next_unlock = None

    return ProgressionStatus(
        fundamentals_unlocked=True,
        intermediate=intermediate,
        patterns=patterns,
        current_layer=current_layer,
        next_unlock=next_unlock,
    )


# ─────────────────────────────────────────────
# Layer statistics
# ─────────────────────────────────────────────

def layer_stats(
    skills: Mapping[int, SkillRecord],
    topics: Mapping[int, Topic],
    layer: str,
) -> LayerStats:
    """Averages are confidence-weighted over attempted topics only."""
    topic_ids = _layer_topic_ids(topics, layer)
    layer_skills = [skills[tid] for tid in topic_ids if tid in skills]
    attempted = [s for s in layer_skills if s.times_encountered > 0]

    avg_rating, avg_rd = weighted_average_rating(attempted)

    return LayerStats(
        layer=layer,
        total_topics=len(topic_ids),
        attempted_topics=len(attempted),
        mastered_topics=sum(
            1 for s in layer_skills if s.rating >= MASTERED_MIN_RATING and s.rd < MASTERED_MAX_RD
        ),
        stuck_topics=sum(1 for s in layer_skills if s.is_stuck),
        average_rating=avg_rating,
        average_rd=avg_rd,
    )


def refresh_layer_ratings(
    progress: ProgressRecord,
    skills: Mapping[int, SkillRecord],
    topics: Mapping[int, Topic],
) -> ProgressRecord:
    """Caches (average_rating, average_rd) per layer on the progress record."""
    ratings: dict[str, tuple[float, float]] = {}
    for layer in LAYERS:
        stats = layer_stats(skills, topics, layer)
        ratings[layer] = (round(stats.average_rating, 2), round(stats.average_rd, 2))
    return progress.evolve(layer_ratings=ratings)
