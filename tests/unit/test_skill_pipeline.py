"""
Tests for the end-to-end submission pipeline over in-memory snapshots.
"""
import math
from datetime import timedelta

import pytest

from analysis.errors import InvalidPerformanceError, MalformedSnapshotError
from analysis.records import (
    Detection,
    ExternalScore,
    LearnerSnapshot,
    ProgressRecord,
    SkillRecord,
    Topic,
)
from analysis.skill_pipeline import process_submission

ARRAY_MAP, ARRAY_REDUCE, USE_EFFECT = 1, 2, 3

TOPICS = {
    ARRAY_MAP: Topic(ARRAY_MAP, "array-map", "Array.map", "FUNDAMENTALS", "Array Methods"),
    ARRAY_REDUCE: Topic(
        ARRAY_REDUCE, "array-reduce", "Array.reduce", "FUNDAMENTALS", "Array Methods",
        prerequisites=frozenset({ARRAY_MAP}),
    ),
    USE_EFFECT: Topic(USE_EFFECT, "useeffect-basics", "useEffect Basics", "INTERMEDIATE", "useEffect Mastery"),
}


def snapshot(skills=None, progress=None, submissions=0, history=None) -> LearnerSnapshot:
    return LearnerSnapshot(
        learner_id="learner-1",
        skills=skills or {},
        history=history or {},
        progress=progress or ProgressRecord(),
        submission_count=submissions,
    )


# =============================================================================
# Single-topic updates
# =============================================================================


class TestFirstEncounter:
    def test_positive_detection_creates_and_raises_skill(self, now):
        outcome = process_submission(
            snapshot(), TOPICS, [Detection("array-map", is_positive=True, is_idiomatic=True)], now,
            submission_id="sub-1",
        )

        assert len(outcome.changes) == 1
        change = outcome.changes[0]
        assert change.topic_slug == "array-map"
        assert change.rating_before == 1500.0
        assert change.change > 0
        assert change.score == 1.0
        assert change.error_type is None

        skill = outcome.snapshot.skills[ARRAY_MAP]
        assert skill.times_encountered == 1
        assert skill.last_practiced_at == now
        assert skill.rating == change.rating_after

        [entry] = outcome.new_history
        assert entry.submission_id == "sub-1"
        assert entry.score == 1.0
        assert entry.created_at == now

    def test_submission_bookkeeping(self, now):
        outcome = process_submission(snapshot(submissions=4), TOPICS, [Detection("array-map", is_positive=True)], now)
        assert outcome.snapshot.submission_count == 5
        assert outcome.snapshot.progress.total_reviews == 1
        assert outcome.snapshot.progress.last_review_at == now
        assert set(outcome.snapshot.progress.layer_ratings) == {"FUNDAMENTALS", "INTERMEDIATE", "PATTERNS"}

    def test_scaffolding_follows_overall_rating(self, now):
        outcome = process_submission(
            snapshot(), TOPICS, [Detection("array-map", is_positive=True, is_idiomatic=True)], now,
        )
        assert outcome.scaffolding_level == "LOW"

    def test_failure_is_classified(self, now):
        outcome = process_submission(snapshot(), TOPICS, [Detection("array-reduce", is_negative=True)], now)
        change = outcome.changes[0]
        assert change.error_type == "MISTAKE"
        assert change.score == 0.3
        assert change.change < 0


class TestDecayBeforeUpdate:
    def test_idle_days_widen_rd_first(self, now):
        idle = SkillRecord(
            topic_id=ARRAY_MAP, rating=1650.0, rd=60.0, volatility=0.06, times_encountered=8,
            last_practiced_at=now - timedelta(days=100),
        )
        outcome = process_submission(
            snapshot({ARRAY_MAP: idle}), TOPICS, [Detection("array-map", is_positive=True)], now,
        )
        assert outcome.changes[0].rd_before == pytest.approx(math.sqrt(60.0 ** 2 + 50.0 ** 2))


# =============================================================================
# Skipped input
# =============================================================================


class TestSkipped:
    def test_unknown_slug_is_skipped(self, now):
        outcome = process_submission(snapshot(), TOPICS, [Detection("no-such-topic", is_negative=True)], now)
        assert outcome.changes == []
        assert outcome.skipped == ["no-such-topic"]
        assert outcome.root_cause_topic is None
        assert outcome.snapshot.progress.total_reviews == 1

    def test_neutral_detection_changes_nothing(self, now):
        outcome = process_submission(snapshot(), TOPICS, [Detection("array-map")], now)
        assert outcome.changes == []
        assert ARRAY_MAP not in outcome.snapshot.skills
        assert outcome.skipped == ["array-map"]


# =============================================================================
# External scores
# =============================================================================


class TestExternalScores:
    def test_high_score_replaces_detection_score(self, now):
        outcome = process_submission(
            snapshot(), TOPICS,
            [Detection("array-map", is_positive=True, is_idiomatic=True)],
            now,
            external_scores=[ExternalScore("array-map", 0.9, "mostly idiomatic")],
        )
        assert outcome.changes[0].score == 0.9
        assert outcome.changes[0].error_type is None

    def test_low_score_is_still_classified(self, now):
        outcome = process_submission(
            snapshot(), TOPICS,
            [Detection("array-map", is_positive=True)],
            now,
            external_scores=[ExternalScore("array-map", 0.2, "wrong callback shape")],
        )
        assert outcome.changes[0].error_type == "MISTAKE"
        assert outcome.changes[0].score == 0.3

    def test_out_of_range_score_rejected(self, now):
        with pytest.raises(InvalidPerformanceError):
            process_submission(
                snapshot(), TOPICS, [Detection("array-map", is_positive=True)], now,
                external_scores=[ExternalScore("array-map", 1.5)],
            )


# =============================================================================
# Once-per-submission analysis
# =============================================================================


class TestSubmissionAnalysis:
    def test_weakest_prerequisite_of_failed_topic(self, now):
        outcome = process_submission(snapshot(), TOPICS, [Detection("array-reduce", is_negative=True)], now)
        assert outcome.root_cause_topic.slug == "array-reduce"
        assert outcome.weakest_prerequisite.topic.slug == "array-map"
        assert outcome.weakest_prerequisite.severity == "moderate"

    def test_non_trivial_failure_is_root_cause(self, now):
        outcome = process_submission(
            snapshot(), TOPICS,
            [
                Detection("array-map", is_negative=True, is_trivial=True),
                Detection("array-reduce", is_negative=True),
            ],
            now,
        )
        assert outcome.root_cause_topic.slug == "array-reduce"

    def test_repeated_findings_are_folded(self, now):
        outcome = process_submission(
            snapshot(), TOPICS,
            [
                Detection("array-map", is_positive=True),
                Detection("array-map", is_negative=True),
            ],
            now,
        )
        assert len(outcome.changes) == 1
        assert outcome.changes[0].error_type is not None

    def test_skill_becomes_stuck(self, now):
        shaky = SkillRecord(
            topic_id=ARRAY_MAP, rating=1300.0, rd=300.0, volatility=0.2, times_encountered=6,
            last_practiced_at=now - timedelta(days=1),
        )
        outcome = process_submission(
            snapshot({ARRAY_MAP: shaky}), TOPICS, [Detection("array-map", is_negative=True)], now,
        )
        skill = outcome.snapshot.skills[ARRAY_MAP]
        assert outcome.changes[0].error_type == "MISCONCEPTION"
        assert skill.is_stuck
        assert skill.stuck_since == now
        assert [s.slug for s in outcome.stuck] == ["array-map"]

    def test_gate_counts_this_submission(self, now):
        strong = {
            tid: SkillRecord(
                topic_id=tid, rating=1760.0, rd=60.0, volatility=0.05, times_encountered=3,
                last_practiced_at=now - timedelta(days=1),
            )
            for tid in (ARRAY_MAP, ARRAY_REDUCE)
        }
        progress = ProgressRecord(last_review_at=now - timedelta(days=2), total_reviews=9)
        outcome = process_submission(
            snapshot(strong, progress, submissions=9), TOPICS,
            [Detection("array-map", is_positive=True, is_idiomatic=True)], now,
        )
        assert outcome.new_unlocks == ["INTERMEDIATE"]
        assert outcome.snapshot.progress.intermediate_unlocked_at == now
        assert outcome.snapshot.progress.total_reviews == 10


class TestInputHandling:
    def test_input_snapshot_is_not_mutated(self, now):
        existing = SkillRecord(topic_id=ARRAY_MAP, rating=1550.0, rd=120.0, times_encountered=2)
        before = snapshot({ARRAY_MAP: existing})
        process_submission(before, TOPICS, [Detection("array-map", is_positive=True)], now)
        assert before.skills == {ARRAY_MAP: existing}
        assert before.history == {}

    def test_snapshot_maps_are_read_only(self, now):
        skills = {ARRAY_MAP: SkillRecord(topic_id=ARRAY_MAP)}
        frozen = snapshot(skills)
        skills[ARRAY_REDUCE] = SkillRecord(topic_id=ARRAY_REDUCE)

        assert list(frozen.skills) == [ARRAY_MAP]
        with pytest.raises(TypeError):
            frozen.skills[ARRAY_REDUCE] = SkillRecord(topic_id=ARRAY_REDUCE)

        outcome = process_submission(frozen, TOPICS, [Detection("array-map", is_positive=True)], now)
        assert isinstance(outcome.snapshot.history[ARRAY_MAP], tuple)
        with pytest.raises(TypeError):
            outcome.snapshot.progress.layer_ratings["FUNDAMENTALS"] = (1500.0, 350.0)

    def test_versions_survive_processing(self, now):
        existing = SkillRecord(topic_id=ARRAY_MAP, times_encountered=2, version=4)
        before = snapshot({ARRAY_MAP: existing}, progress=ProgressRecord(version=7))
        outcome = process_submission(before, TOPICS, [Detection("array-map", is_positive=True)], now)
        assert outcome.snapshot.skills[ARRAY_MAP].version == 4
        assert outcome.snapshot.progress.version == 7

    def test_inconsistent_skill_map_rejected(self, now):
        broken = snapshot({ARRAY_MAP: SkillRecord(topic_id=ARRAY_REDUCE)})
        with pytest.raises(MalformedSnapshotError):
            process_submission(broken, TOPICS, [Detection("array-map", is_positive=True)], now)
