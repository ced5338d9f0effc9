"""
Tests for stuck detection, stuck transitions and intervention hints.
"""
from datetime import timedelta

import pytest

from analysis.records import SkillRecord, Topic
from analysis.stuck_detector import (
    apply_stuck_transition,
    at_risk_topics,
    intervention_strategy,
    is_stuck,
    stuck_status,
    stuck_summary,
    stuck_topics,
)


def stuck_candidate(**overrides) -> SkillRecord:
    base = SkillRecord(topic_id=1, rating=1400.0, rd=200.0, volatility=0.15, times_encountered=5)
    return base.evolve(**overrides)


def catalog(*ids: int) -> dict[int, Topic]:
    return {
        i: Topic(topic_id=i, slug=f"topic-{i}", name=f"Topic {i}", layer="FUNDAMENTALS", category="General")
        for i in ids
    }


# =============================================================================
# Predicate
# =============================================================================


class TestIsStuck:
    def test_all_four_criteria(self):
        assert is_stuck(stuck_candidate())

    def test_settled_volatility_is_not_stuck(self):
        assert not is_stuck(stuck_candidate(volatility=0.10))

    @pytest.mark.parametrize(
        "override",
        [
            {"rating": 1450.0},
            {"times_encountered": 3},
            {"rd": 180.0},
            {"volatility": 0.12},
        ],
    )
    def test_each_boundary_is_strict(self, override):
        assert not is_stuck(stuck_candidate(**override))

    def test_minimum_encounters_is_inclusive(self):
        assert is_stuck(stuck_candidate(times_encountered=4))

    def test_repeated_evaluation_is_stable(self, now):
        since = now - timedelta(days=3)
        record = stuck_candidate(is_stuck=True, stuck_since=since)
        assert [is_stuck(record) for _ in range(5)] == [True] * 5
        assert record.stuck_since == since


class TestStuckStatus:
    def test_counts_criteria(self):
        status = stuck_status(stuck_candidate())
        assert status.is_stuck
        assert status.met == 4
        assert status.total == 4
        assert not status.at_risk

    def test_three_of_four_is_at_risk(self):
        status = stuck_status(stuck_candidate(volatility=0.10))
        assert status.met == 3
        assert status.at_risk
        assert not status.criteria.high_volatility


# =============================================================================
# Transitions
# =============================================================================


class TestStuckTransition:
    def test_becoming_stuck_stamps_now(self, now):
        updated = apply_stuck_transition(stuck_candidate(), now)
        assert updated.is_stuck
        assert updated.stuck_since == now

    def test_staying_stuck_keeps_original_timestamp(self, now):
        since = now - timedelta(days=10)
        updated = apply_stuck_transition(stuck_candidate(is_stuck=True, stuck_since=since), now)
        assert updated.is_stuck
        assert updated.stuck_since == since

    def test_recovering_clears_timestamp(self, now):
        since = now - timedelta(days=10)
        recovered = stuck_candidate(rating=1600.0, is_stuck=True, stuck_since=since)
        updated = apply_stuck_transition(recovered, now)
        assert not updated.is_stuck
        assert updated.stuck_since is None

    def test_stuck_flag_without_timestamp_is_repaired(self, now):
        updated = apply_stuck_transition(stuck_candidate(is_stuck=True, stuck_since=None), now)
        assert updated.stuck_since == now

    def test_input_record_is_untouched(self, now):
        record = stuck_candidate()
        apply_stuck_transition(record, now)
        assert not record.is_stuck


# =============================================================================
# Summaries
# =============================================================================


class TestSummaries:
    def test_stuck_topics_reads_stored_flag(self, now):
        skills = [
            stuck_candidate(topic_id=1, is_stuck=True, stuck_since=now),
            stuck_candidate(topic_id=2),
        ]
        assert [t.topic_id for t in stuck_topics(skills, catalog(1, 2), now)] == [1]

    def test_at_risk_needs_two_encounters(self, now):
        # 3 of 4 criteria, but only one encounter
        single = stuck_candidate(topic_id=1, times_encountered=1)
        assert stuck_status(single).at_risk
        assert at_risk_topics([single], catalog(1), now) == []

    def test_at_risk_topic_reported(self, now):
        risky = stuck_candidate(topic_id=1, volatility=0.10, last_practiced_at=now - timedelta(days=4))
        found = at_risk_topics([risky], catalog(1), now)
        assert len(found) == 1
        assert found[0].days_since_last_practice == 4

    def test_most_urgent_is_stuck_longest(self, now):
        skills = [
            stuck_candidate(topic_id=1, times_encountered=9, is_stuck=True, stuck_since=now - timedelta(days=3)),
            stuck_candidate(topic_id=2, times_encountered=4, is_stuck=True, stuck_since=now - timedelta(days=10)),
        ]
        summary = stuck_summary(skills, catalog(1, 2), now)
        assert summary.stuck_count == 2
        assert summary.most_urgent.topic_id == 2

    def test_ties_broken_by_encounters(self, now):
        since = now - timedelta(days=5)
        skills = [
            stuck_candidate(topic_id=1, times_encountered=5, is_stuck=True, stuck_since=since),
            stuck_candidate(topic_id=2, times_encountered=8, is_stuck=True, stuck_since=since),
        ]
        assert stuck_summary(skills, catalog(1, 2), now).most_urgent.topic_id == 2

    def test_empty_summary(self, now):
        summary = stuck_summary([], catalog(), now)
        assert summary.most_urgent is None
        assert summary.stuck_count == 0
        assert summary.at_risk_count == 0


# =============================================================================
# Interventions
# =============================================================================


class TestInterventionStrategy:
    @pytest.mark.parametrize(
        "overrides,strategy",
        [
            ({"volatility": 0.16}, "prerequisite_focus"),
            ({"volatility": 0.10, "rating": 1300.0}, "simpler_examples"),
            ({"volatility": 0.10, "rating": 1400.0, "times_encountered": 7}, "alternative_explanation"),
            ({"volatility": 0.10, "rating": 1400.0, "times_encountered": 6}, "practice_basics"),
        ],
    )
    def test_strategy_order(self, overrides, strategy):
        assert intervention_strategy(stuck_candidate(**overrides)).strategy == strategy
