# api/routes_submit.py
# SkillTrack — POST /submit. Runs the skill pipeline for one submission.
# Imports from: analysis/*, database/*, schemas/submission.py, utils/logger.py

import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from analysis.error_classifier import describe_error_type
from analysis.errors import ConcurrentUpdateError, SkillEngineError, UnknownTopicError
from analysis.records import Detection, ExternalScore
from analysis.skill_pipeline import SubmissionOutcome, process_submission
from database.db import get_db
from database.models import Learner
from database.skill_store import get_learner, load_snapshot, load_topics, save_outcome
from schemas.submission import (
    SkillChangeSchema,
    SubmitRequest,
    SubmitResponse,
    TopicRefSchema,
    WeakPrerequisiteSchema,
)
from utils.logger import get_logger

router = APIRouter(tags=["submit"])
log    = get_logger("api.routes_submit")


# ─────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────

def _get_learner_or_404(learner_id: str, db: Session) -> Learner:
    learner = get_learner(db, learner_id)
    if not learner:
        raise HTTPException(status_code=404, detail=f"Learner '{learner_id}' not found.")
    return learner


def _build_response(submission_id: str, outcome: SubmissionOutcome) -> SubmitResponse:
    weak = outcome.weakest_prerequisite
    weak_schema = None
    if weak is not None:
        weak_schema = WeakPrerequisiteSchema(
            slug=weak.topic.slug,
            name=weak.topic.name,
            severity=weak.severity,
            reason=weak.reason,
            suggested_action=weak.suggested_action,
            rating=round(weak.skill.rating) if weak.skill is not None else None,
        )

    return SubmitResponse(
        submission_id=submission_id,
        skill_changes=[
            SkillChangeSchema(
                topic_slug=c.topic_slug,
                topic_name=c.topic_name,
                rating_before=round(c.rating_before),
                rating_after=round(c.rating_after),
                change=round(c.change),
                error_type=c.error_type,
                error_description=describe_error_type(c.error_type) if c.error_type else None,
            )
            for c in outcome.changes
        ],
        stuck_topics=[TopicRefSchema(slug=s.slug, name=s.name) for s in outcome.stuck],
        weak_prerequisite=weak_schema,
        new_unlocks=outcome.new_unlocks,
        scaffolding_level=outcome.scaffolding_level,
        skipped_topics=outcome.skipped,
    )


# ─────────────────────────────────────────────
# POST /submit
# ─────────────────────────────────────────────

@router.post(
    "/submit",
    response_model=SubmitResponse,
    summary="Submit detector findings and run the rating and progression pipeline",
    responses={
        409: {"description": "Skill records changed concurrently; retry with a fresh snapshot"},
    },
)
def submit(
    body: SubmitRequest,
    db:   Session = Depends(get_db),
) -> SubmitResponse:
    """
    Submission pipeline:

        1. Validate the learner exists
        2. Load the topic catalog and the learner snapshot
        3. Classify, rate and re-check stuck status per detected topic
        4. Find the weakest prerequisite and check layer unlocks
        5. Persist the new state atomically (409 on a concurrent write)
    """
    submission_id = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    log.info(
        "submit_start",
        submission_id=submission_id,
        learner_id=body.learner_id,
        detections=len(body.detections),
        external_scores=len(body.external_scores),
    )

    _get_learner_or_404(body.learner_id, db)

    detections = [Detection(**d.model_dump()) for d in body.detections]
    external = [
        ExternalScore(topic_slug=s.slug, score=s.score, reason=s.reason)
        for s in body.external_scores
    ]

    topics = load_topics(db)
    snapshot = load_snapshot(db, body.learner_id)

    try:
        outcome = process_submission(
            snapshot=snapshot,
            topics=topics,
            detections=detections,
            now=now,
            external_scores=external,
            submission_id=submission_id,
        )
    except UnknownTopicError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SkillEngineError as exc:
        log.warning("submit_rejected", learner_id=body.learner_id, error=str(exc))
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    try:
        save_outcome(
            db,
            outcome,
            submission_id=submission_id,
            detections=detections,
            external_scores=external,
            submitted_at=now,
        )
    except ConcurrentUpdateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    db.commit()

    log.info(
        "submit_complete",
        submission_id=submission_id,
        learner_id=body.learner_id,
        topics_updated=len(outcome.changes),
        new_unlocks=outcome.new_unlocks,
    )
    return _build_response(submission_id, outcome)
