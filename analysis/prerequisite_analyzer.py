# analysis/prerequisite_analyzer.py
# SkillTrack — Walks the prerequisite graph to find the real knowledge gap
# behind a failure on a topic.
# Bounded, iterative traversal: explicit stack, visited set, depth cap.
# Imports from: analysis/errors.py, analysis/records.py, utils/constants.py

import math
from dataclasses import dataclass, field
from typing import Iterator, Mapping, Optional

from analysis.errors import MalformedSnapshotError, UnknownTopicError
from analysis.records import SkillRecord, Topic
from utils.constants import (
    INITIAL_RATING,
    LIMITED_PRACTICE_MAX_ENCOUNTERS,
    LIMITED_PRACTICE_MIN_RD,
    PREREQ_MAX_DEPTH,
    PREREQ_MET_MIN_RATING,
    READINESS_CEILING_RATING,
    READINESS_FLOOR_RATING,
    SCAFFOLDING_BANDS,
    SEVERITY_CRITICAL,
    SEVERITY_MILD,
    SEVERITY_MODERATE,
    SEVERITY_RANK,
    STRUGGLING_MAX_RATING,
    STRUGGLING_MIN_ENCOUNTERS,
    WEAK_FOUNDATION_MAX_RATING,
)

TopicGraph = Mapping[int, Topic]
SkillsByTopic = Mapping[int, SkillRecord]


# ─────────────────────────────────────────────
# Output contracts
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class WeakPrerequisite:
    topic:            Topic
    skill:            Optional[SkillRecord]   # None → never practiced
    reason:           str
    severity:         str
    suggested_action: str
    depth:            int


@dataclass
class PrerequisiteNode:
    topic:    Topic
    depth:    int
    children: list["PrerequisiteNode"] = field(default_factory=list)


@dataclass(frozen=True)
class PrerequisiteCheck:
    all_met:     bool
    met_count:   int
    total_count: int
    unmet:       list[Topic]


@dataclass(frozen=True)
class ReadinessDetail:
    topic:        Topic
    rating:       float
    contribution: float


@dataclass(frozen=True)
class Readiness:
    readiness: int   # 0 – 100
    details:   list[ReadinessDetail]


# ─────────────────────────────────────────────
# Graph helpers
# ─────────────────────────────────────────────

def _require_topic(topic_graph: TopicGraph, topic_id: int) -> Topic:
    topic = topic_graph.get(topic_id)
    if topic is None:
        raise UnknownTopicError(topic_id)
    return topic


def _direct_prerequisites(topic_graph: TopicGraph, topic: Topic) -> list[Topic]:
    # Dangling ids are skipped; siblings are visited in ascending id order.
    return [topic_graph[pid] for pid in sorted(topic.prerequisites) if pid in topic_graph]


def _walk(topic_graph: TopicGraph, target_id: int, max_depth: int) -> Iterator[tuple[Topic, int]]:
    """
    Depth-first pre-order over prerequisite edges, target excluded.
    A node reached a second time is not expanded or yielded again.
    """
    target = _require_topic(topic_graph, target_id)
    visited: set[int] = {target.topic_id}
    stack: list[tuple[Topic, int]] = []

    if max_depth > 0:
        for child in reversed(_direct_prerequisites(topic_graph, target)):
            stack.append((child, 1))

    while stack:
        topic, depth = stack.pop()
        if topic.topic_id in visited:
            continue
        visited.add(topic.topic_id)
        yield topic, depth

        if depth < max_depth:
            for child in reversed(_direct_prerequisites(topic_graph, topic)):
                if child.topic_id not in visited:
                    stack.append((child, depth + 1))


def build_prerequisite_tree(
    topic_graph: TopicGraph,
    topic_id: int,
    max_depth: int = PREREQ_MAX_DEPTH,
) -> PrerequisiteNode:
    """
    Prerequisite tree rooted at `topic_id`, at most `max_depth` levels deep.
    A topic already placed in the tree appears again only as a leaf.
    """
    root = PrerequisiteNode(topic=_require_topic(topic_graph, topic_id), depth=0)
    visited: set[int] = {topic_id}
    stack: list[PrerequisiteNode] = [root]

    while stack:
        node = stack.pop()
        if node.depth >= max_depth:
            continue
        for prereq in _direct_prerequisites(topic_graph, node.topic):
            child = PrerequisiteNode(topic=prereq, depth=node.depth + 1)
            node.children.append(child)
            if prereq.topic_id not in visited:
                visited.add(prereq.topic_id)
                stack.append(child)

    return root


# ─────────────────────────────────────────────
# Weakness assessment
# ─────────────────────────────────────────────

def _check_skill(skill: SkillRecord) -> None:
    if not (math.isfinite(skill.rating) and math.isfinite(skill.rd)):
        raise MalformedSnapshotError(f"Skill record for topic {skill.topic_id} has non-finite values.")


def assess_weakness(topic: Topic, skill: Optional[SkillRecord], depth: int = 1) -> Optional[WeakPrerequisite]:
    """
    no record                             → moderate  (never practiced)
    rating < 1400 and encounters >= 2     → critical  (struggling)
    rating < 1500                         → moderate  (weak foundation)
    rd > 200 and encounters < 3           → mild      (limited practice)
    otherwise                             → not weak
    """
    if skill is None:
        return WeakPrerequisite(
            topic=topic,
            skill=None,
            reason="Never practiced this prerequisite topic",
            severity=SEVERITY_MODERATE,
            suggested_action=f"Start with the basics of {topic.name} before continuing",
            depth=depth,
        )

    _check_skill(skill)

    if skill.rating < STRUGGLING_MAX_RATING and skill.times_encountered >= STRUGGLING_MIN_ENCOUNTERS:
        return WeakPrerequisite(
            topic=topic,
            skill=skill,
            reason=f"Struggling with {topic.name} (rating: {round(skill.rating)})",
            severity=SEVERITY_CRITICAL,
            suggested_action=f"Focus on mastering {topic.name}, it is blocking your progress",
            depth=depth,
        )

    if skill.rating < WEAK_FOUNDATION_MAX_RATING:
        return WeakPrerequisite(
            topic=topic,
            skill=skill,
            reason=f"Weak foundation in {topic.name} (rating: {round(skill.rating)})",
            severity=SEVERITY_MODERATE,
            suggested_action=f"Strengthen your understanding of {topic.name}",
            depth=depth,
        )

    if skill.rd > LIMITED_PRACTICE_MIN_RD and skill.times_encountered < LIMITED_PRACTICE_MAX_ENCOUNTERS:
        return WeakPrerequisite(
            topic=topic,
            skill=skill,
            reason=f"Limited practice with {topic.name} (only {skill.times_encountered} encounters)",
            severity=SEVERITY_MILD,
            suggested_action=f"Get more practice with {topic.name} to build confidence",
            depth=depth,
        )

    return None


# ─────────────────────────────────────────────
# Public interface
# ─────────────────────────────────────────────

def find_weakest_prerequisite(
    skills_by_topic: SkillsByTopic,
    topic_graph: TopicGraph,
    target_topic_id: int,
    max_depth: int = PREREQ_MAX_DEPTH,
) -> Optional[WeakPrerequisite]:
    """
    Weakest ancestor of the target, or None when coaching should stay on
    the target itself.

    Ordering: severity (critical > moderate > mild), then lowest rating
    (missing record counts as 1500), then traversal order.
    """
    candidates: list[WeakPrerequisite] = []
    for topic, depth in _walk(topic_graph, target_topic_id, max_depth):
        weakness = assess_weakness(topic, skills_by_topic.get(topic.topic_id), depth)
        if weakness is not None:
            candidates.append(weakness)

    if not candidates:
        return None

    # sorted() is stable, so equal keys keep traversal order
    ranked = sorted(
        candidates,
        key=lambda w: (
            SEVERITY_RANK[w.severity],
            w.skill.rating if w.skill is not None else INITIAL_RATING,
        ),
    )
    return ranked[0]


def check_prerequisites_met(
    skills_by_topic: SkillsByTopic,
    topic_graph: TopicGraph,
    topic_id: int,
) -> PrerequisiteCheck:
    """A direct prerequisite is met once its rating reaches 1400."""
    topic = _require_topic(topic_graph, topic_id)
    prereqs = _direct_prerequisites(topic_graph, topic)

    unmet = [
        p for p in prereqs
        if p.topic_id not in skills_by_topic
        or skills_by_topic[p.topic_id].rating < PREREQ_MET_MIN_RATING
    ]
    return PrerequisiteCheck(
        all_met=not unmet,
        met_count=len(prereqs) - len(unmet),
        total_count=len(prereqs),
        unmet=unmet,
    )


def prerequisite_readiness(
    skills_by_topic: SkillsByTopic,
    topic_graph: TopicGraph,
    topic_id: int,
) -> Readiness:
    """Mean of direct prerequisites mapped 1200 → 0 % … 1650 → 100 %."""
    topic = _require_topic(topic_graph, topic_id)
    prereqs = _direct_prerequisites(topic_graph, topic)
    if not prereqs:
        return Readiness(readiness=100, details=[])

    span = READINESS_CEILING_RATING - READINESS_FLOOR_RATING
    details: list[ReadinessDetail] = []
    for prereq in prereqs:
        skill = skills_by_topic.get(prereq.topic_id)
        rating = skill.rating if skill is not None else INITIAL_RATING
        normalized = max(0.0, min(100.0, (rating - READINESS_FLOOR_RATING) / span * 100.0))
        details.append(ReadinessDetail(topic=prereq, rating=rating, contribution=normalized))

    mean = sum(d.contribution for d in details) / len(details)
    return Readiness(readiness=round(mean), details=details)


def suggested_learning_path(
    skills_by_topic: SkillsByTopic,
    topic_graph: TopicGraph,
    target_topic_id: int,
) -> list[Topic]:
    """Weakest prerequisite first (if any), then the target."""
    target = _require_topic(topic_graph, target_topic_id)
    weakest = find_weakest_prerequisite(skills_by_topic, topic_graph, target_topic_id)
    if weakest is None:
        return [target]
    return [weakest.topic, target]


def scaffolding_level(rating: float) -> str:
    """HIGH below 1400, MEDIUM below 1600, LOW from 1600 up."""
    for ceiling, level in SCAFFOLDING_BANDS:
        if rating < ceiling:
            return level
    raise AssertionError("SCAFFOLDING_BANDS must end with an unbounded band")
