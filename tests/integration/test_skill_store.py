"""
Tests for loading snapshots from SQLite and persisting submission outcomes.
"""
from datetime import datetime, timedelta

import pytest

from analysis.errors import ConcurrentUpdateError
from analysis.records import Detection
from analysis.skill_pipeline import process_submission
from database.models import Learner, LearnerProgress, SkillRecordRow
from database.skill_store import (
    count_submissions,
    load_progress,
    load_recent_history,
    load_skills,
    load_snapshot,
    load_topics,
    save_outcome,
)

LEARNER = "learner-1"


@pytest.fixture
def db_factory(session_factory):
    with session_factory() as db:
        db.add(Learner(learner_id=LEARNER, name="Ada", email="ada@example.com"))
        db.commit()
    return session_factory


def submit(db, submission_id: str, detections, now: datetime):
    topics = load_topics(db)
    outcome = process_submission(load_snapshot(db, LEARNER), topics, detections, now, submission_id=submission_id)
    save_outcome(db, outcome, submission_id, detections, submitted_at=now)
    return outcome


class TestLoadTopics:
    def test_prerequisite_slugs_resolve_to_ids(self, db_factory):
        with db_factory() as db:
            topics = load_topics(db)
        by_slug = {t.slug: t for t in topics.values()}
        assert by_slug["array-reduce"].prerequisites == frozenset({by_slug["array-map"].topic_id})
        assert by_slug["array-map"].prerequisites == frozenset()

    def test_catalog_layers(self, db_factory):
        with db_factory() as db:
            topics = load_topics(db)
        layers = [t.layer for t in topics.values()]
        assert layers.count("FUNDAMENTALS") == 23
        assert layers.count("INTERMEDIATE") == 12
        assert layers.count("PATTERNS") == 9


class TestRoundTrip:
    def test_saved_outcome_reloads(self, db_factory, now):
        with db_factory() as db:
            outcome = submit(db, "sub-1", [Detection("array-map", is_positive=True, is_idiomatic=True)], now)
            db.commit()

        with db_factory() as db:
            topics = load_topics(db)
            array_map = next(tid for tid, t in topics.items() if t.slug == "array-map")
            skills = load_skills(db, LEARNER)
            history = load_recent_history(db, LEARNER)
            progress = load_progress(db, LEARNER)

            assert count_submissions(db, LEARNER) == 1
            assert skills[array_map].rating == pytest.approx(outcome.changes[0].rating_after)
            assert skills[array_map].times_encountered == 1
            assert skills[array_map].last_practiced_at == now
            assert skills[array_map].last_practiced_at.tzinfo is not None
            assert [e.score for e in history[array_map]] == [1.0]
            assert progress.total_reviews == 1
            assert progress.last_review_at == now

    def test_history_window_keeps_five_oldest_first(self, db_factory, now):
        with db_factory() as db:
            for i in range(7):
                submit(db, f"sub-{i}", [Detection("array-map", is_positive=True)], now + timedelta(days=i))
                db.commit()

        with db_factory() as db:
            history = load_recent_history(db, LEARNER)
        [entries] = history.values()
        assert len(entries) == 5
        assert [e.created_at for e in entries] == [now + timedelta(days=i) for i in range(2, 7)]

    def test_optimistic_lock_rejects_stale_write(self, db_factory, now):
        detections = [Detection("array-map", is_positive=True)]
        with db_factory() as db:
            submit(db, "sub-0", detections, now)
            db.commit()

        first = db_factory()
        second = db_factory()
        try:
            topics = load_topics(first)
            stale = process_submission(
                load_snapshot(first, LEARNER), topics, detections, now + timedelta(hours=1),
                submission_id="sub-a",
            )

            submit(second, "sub-b", detections, now + timedelta(hours=1))
            second.commit()

            with pytest.raises(ConcurrentUpdateError):
                save_outcome(first, stale, "sub-a", detections)
        finally:
            first.close()
            second.close()

        with db_factory() as db:
            assert count_submissions(db, LEARNER) == 2
            [row] = db.query(SkillRecordRow).filter_by(learner_id=LEARNER).all()
            assert row.times_encountered == 2

    def test_snapshot_carries_row_versions(self, db_factory, now):
        with db_factory() as db:
            submit(db, "sub-0", [Detection("array-map", is_positive=True)], now)
            db.commit()

        with db_factory() as db:
            snapshot = load_snapshot(db, LEARNER)
        [skill] = snapshot.skills.values()
        assert skill.version == 1
        assert snapshot.progress.version == 1

    def test_stale_progress_rejected_across_topics(self, db_factory, now):
        with db_factory() as db:
            submit(db, "sub-0", [Detection("array-map", is_positive=True)], now)
            db.commit()

        later = now + timedelta(hours=1)
        mine = [Detection("array-map", is_positive=True)]
        theirs = [Detection("array-filter", is_positive=True)]

        first = db_factory()
        second = db_factory()
        try:
            stale = process_submission(
                load_snapshot(first, LEARNER), load_topics(first), mine, later, submission_id="sub-a",
            )

            submit(second, "sub-b", theirs, later)
            second.commit()

            # Only the progress row is shared between the two submissions
            with pytest.raises(ConcurrentUpdateError):
                save_outcome(first, stale, "sub-a", mine)
        finally:
            first.close()
            second.close()

        with db_factory() as db:
            assert count_submissions(db, LEARNER) == 2
            assert load_progress(db, LEARNER).total_reviews == 2
            encounters = {
                row.topic_id: row.times_encountered
                for row in db.query(SkillRecordRow).filter_by(learner_id=LEARNER)
            }
        assert sorted(encounters.values()) == [1, 1]

    def test_first_encounter_race_rejected(self, db_factory, now):
        detections = [Detection("array-map", is_positive=True)]

        first = db_factory()
        second = db_factory()
        try:
            stale = process_submission(
                load_snapshot(first, LEARNER), load_topics(first), detections, now, submission_id="sub-a",
            )

            submit(second, "sub-b", detections, now)
            second.commit()

            with pytest.raises(ConcurrentUpdateError):
                save_outcome(first, stale, "sub-a", detections)
        finally:
            first.close()
            second.close()

        with db_factory() as db:
            assert count_submissions(db, LEARNER) == 1
            [row] = db.query(SkillRecordRow).filter_by(learner_id=LEARNER).all()
            assert row.times_encountered == 1

    def test_retry_after_conflict_succeeds(self, db_factory, now):
        detections = [Detection("array-map", is_positive=True)]
        with db_factory() as db:
            submit(db, "sub-0", detections, now)
            db.commit()

        later = now + timedelta(hours=1)
        first = db_factory()
        second = db_factory()
        try:
            stale = process_submission(
                load_snapshot(first, LEARNER), load_topics(first), detections, later, submission_id="sub-a",
            )
            submit(second, "sub-b", detections, later)
            second.commit()

            with pytest.raises(ConcurrentUpdateError):
                save_outcome(first, stale, "sub-a", detections)

            submit(first, "sub-a", detections, later)
            first.commit()
        finally:
            first.close()
            second.close()

        with db_factory() as db:
            assert count_submissions(db, LEARNER) == 3
            assert load_progress(db, LEARNER).total_reviews == 3
            [row] = db.query(SkillRecordRow).filter_by(learner_id=LEARNER).all()
            assert row.times_encountered == 3

    def test_unlock_flags_are_monotonic(self, db_factory, now):
        with db_factory() as db:
            submit(db, "sub-0", [Detection("array-map", is_positive=True)], now)
            db.commit()

        with db_factory() as db:
            row = db.get(LearnerProgress, LEARNER)
            row.intermediate_unlocked = True
            row.intermediate_unlocked_at = now
            db.commit()

        with db_factory() as db:
            submit(db, "sub-1", [Detection("array-map", is_negative=True)], now + timedelta(days=1))
            db.commit()

        with db_factory() as db:
            progress = load_progress(db, LEARNER)
        assert progress.intermediate_unlocked
        assert progress.intermediate_unlocked_at == now
