# analysis/stuck_detector.py
# SkillTrack — Four-criterion stagnation check and intervention hints.
# Pure functions over SkillRecord; transitions return new records.
# Imports from: analysis/records.py, utils/constants.py, utils/logger.py

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping, Optional

from analysis.records import SkillRecord, Topic
from utils.constants import (
    AT_RISK_MIN_CRITERIA,
    AT_RISK_MIN_ENCOUNTERS,
    INTERVENTION_ALTERNATIVE_ENCOUNTERS,
    INTERVENTION_PREREQ_VOLATILITY,
    INTERVENTION_SIMPLER_RATING,
    STUCK_CRITERIA_TOTAL,
    STUCK_MAX_RATING,
    STUCK_MIN_ENCOUNTERS,
    STUCK_MIN_RD,
    STUCK_MIN_VOLATILITY,
)
from utils.logger import get_logger

log = get_logger("analysis.stuck_detector")


# ─────────────────────────────────────────────
# Output contracts
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class StuckCriteria:
    low_rating:      bool
    many_encounters: bool
    high_rd:         bool
    high_volatility: bool


@dataclass(frozen=True)
class StuckStatus:
    is_stuck: bool
    criteria: StuckCriteria
    met:      int
    total:    int
    at_risk:  bool


@dataclass(frozen=True)
class StuckTopic:
    topic_id:                 int
    slug:                     str
    name:                     str
    layer:                    str
    rating:                   float
    times_encountered:        int
    stuck_since:              Optional[datetime]
    days_since_last_practice: int


@dataclass(frozen=True)
class StuckSummary:
    stuck:       list[StuckTopic]
    at_risk:     list[StuckTopic]
    most_urgent: Optional[StuckTopic]

    @property
    def stuck_count(self) -> int:
        return len(self.stuck)

    @property
    def at_risk_count(self) -> int:
        return len(self.at_risk)


@dataclass(frozen=True)
class Intervention:
    strategy:         str
    description:      str
    suggested_action: str


# ─────────────────────────────────────────────
# Predicates
# ─────────────────────────────────────────────

def _criteria(skill: SkillRecord) -> StuckCriteria:
    return StuckCriteria(
        low_rating=skill.rating < STUCK_MAX_RATING,
        many_encounters=skill.times_encountered >= STUCK_MIN_ENCOUNTERS,
        high_rd=skill.rd > STUCK_MIN_RD,
        high_volatility=skill.volatility > STUCK_MIN_VOLATILITY,
    )


def is_stuck(skill: SkillRecord) -> bool:
    """
    All four must hold:
        rating < 1450, times_encountered >= 4, rd > 180, volatility > 0.12
    """
    c = _criteria(skill)
    return c.low_rating and c.many_encounters and c.high_rd and c.high_volatility


def stuck_status(skill: SkillRecord) -> StuckStatus:
    c = _criteria(skill)
    met = sum((c.low_rating, c.many_encounters, c.high_rd, c.high_volatility))
    stuck = met == STUCK_CRITERIA_TOTAL
    return StuckStatus(
        is_stuck=stuck,
        criteria=c,
        met=met,
        total=STUCK_CRITERIA_TOTAL,
        at_risk=not stuck and met >= AT_RISK_MIN_CRITERIA,
    )


def apply_stuck_transition(skill: SkillRecord, now: datetime) -> SkillRecord:
    """
    Re-evaluates is_stuck and returns a record with consistent stuck fields.

        false → true   stuck_since = now
        true  → true   stuck_since preserved
        true  → false  stuck_since cleared
    """
    now_stuck = is_stuck(skill)

    if now_stuck == skill.is_stuck:
        if now_stuck and skill.stuck_since is None:
            return skill.evolve(stuck_since=now)
        if not now_stuck and skill.stuck_since is not None:
            return skill.evolve(stuck_since=None)
        return skill

    log.info(
        "stuck_status_changed",
        topic_id=skill.topic_id,
        is_stuck=now_stuck,
        rating=round(skill.rating, 2),
        rd=round(skill.rd, 2),
        volatility=round(skill.volatility, 4),
        times_encountered=skill.times_encountered,
    )
    return skill.evolve(is_stuck=now_stuck, stuck_since=now if now_stuck else None)


# ─────────────────────────────────────────────
# Summaries
# ─────────────────────────────────────────────

def _days_between(earlier: Optional[datetime], now: datetime) -> int:
    if earlier is None:
        return 0
    return max(0, (now - earlier).days)


def _to_stuck_topic(skill: SkillRecord, topic: Topic, now: datetime) -> StuckTopic:
    return StuckTopic(
        topic_id=skill.topic_id,
        slug=topic.slug,
        name=topic.name,
        layer=topic.layer,
        rating=skill.rating,
        times_encountered=skill.times_encountered,
        stuck_since=skill.stuck_since,
        days_since_last_practice=_days_between(skill.last_practiced_at, now),
    )


def stuck_topics(
    skills: Iterable[SkillRecord],
    topics: Mapping[int, Topic],
    now: datetime,
) -> list[StuckTopic]:
    return [
        _to_stuck_topic(s, topics[s.topic_id], now)
        for s in skills
        if s.is_stuck and s.topic_id in topics
    ]


def at_risk_topics(
    skills: Iterable[SkillRecord],
    topics: Mapping[int, Topic],
    now: datetime,
) -> list[StuckTopic]:
    """Topics meeting 3 of 4 criteria, not yet stuck, with at least 2 encounters."""
    return [
        _to_stuck_topic(s, topics[s.topic_id], now)
        for s in skills
        if s.topic_id in topics
        and not s.is_stuck
        and s.times_encountered >= AT_RISK_MIN_ENCOUNTERS
        and stuck_status(s).at_risk
    ]


def stuck_summary(
    skills: Iterable[SkillRecord],
    topics: Mapping[int, Topic],
    now: datetime,
) -> StuckSummary:
    """Most urgent = stuck longest, then most encounters."""
    skill_list = list(skills)
    stuck = stuck_topics(skill_list, topics, now)
    at_risk = at_risk_topics(skill_list, topics, now)

    ranked = sorted(
        stuck,
        key=lambda t: (-_days_between(t.stuck_since, now), -t.times_encountered),
    )
    return StuckSummary(stuck=stuck, at_risk=at_risk, most_urgent=ranked[0] if ranked else None)


# ─────────────────────────────────────────────
# Intervention
# ─────────────────────────────────────────────

def intervention_strategy(skill: SkillRecord) -> Intervention:
    """
    Checked in order:
        volatility > 0.15     → prerequisite_focus
        rating < 1350         → simpler_examples
        encounters > 6        → alternative_explanation
        otherwise             → practice_basics
    """
    if skill.volatility > INTERVENTION_PREREQ_VOLATILITY:
        return Intervention(
            strategy="prerequisite_focus",
            description="Performance is highly inconsistent, which points to gaps in foundational topics.",
            suggested_action="Review the prerequisite topics before continuing with this one.",
        )

    if skill.rating < INTERVENTION_SIMPLER_RATING:
        return Intervention(
            strategy="simpler_examples",
            description="The current skill level calls for more basic explanations.",
            suggested_action="Start with simpler examples and build up gradually.",
        )

    if skill.times_encountered > INTERVENTION_ALTERNATIVE_ENCOUNTERS:
        return Intervention(
            strategy="alternative_explanation",
            description="Repeated attempts without improvement suggest the current approach is not landing.",
            suggested_action="Try a different explanation or analogy for this topic.",
        )

    return Intervention(
        strategy="practice_basics",
        description="More focused practice on the fundamentals of this topic is needed.",
        suggested_action="Practice with targeted exercises on this specific topic.",
    )
