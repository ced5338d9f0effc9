# api/routes_learner.py
# SkillTrack — Learner registration plus read-only skill, stuck,
# progression and history views.
# Imports from: analysis/*, database/*, schemas/skill.py,
#               schemas/progression.py, schemas/submission.py, utils/logger.py

import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from analysis.progression_gate import GateInputs, LayerProgress, layer_stats, progression_status
from analysis.rating_engine import (
    format_rating_display,
    is_mastered,
    rating_level,
    weighted_average_rating,
)
from analysis.stuck_detector import StuckTopic, intervention_strategy, stuck_summary
from database.db import get_db
from database.models import Learner, PerformanceHistory, Topic
from database.skill_store import count_submissions, load_progress, load_skills, load_topics
from schemas.progression import (
    CriterionSchema,
    LayerProgressSchema,
    LayerStatsSchema,
    ProgressionResponse,
)
from schemas.skill import (
    InterventionSchema,
    LearnerRegisterRequest,
    LearnerRegisterResponse,
    SkillMatrixResponse,
    SkillSchema,
    StuckSummaryResponse,
    StuckTopicSchema,
)
from schemas.submission import PerformanceHistoryItem, PerformanceHistoryResponse
from utils.constants import LAYERS
from utils.logger import get_logger

router = APIRouter(tags=["learner"])
log    = get_logger("api.routes_learner")


def _get_learner_or_404(learner_id: str, db: Session) -> Learner:
    learner = db.get(Learner, learner_id)
    if not learner:
        raise HTTPException(
            status_code=404,
            detail=f"Learner '{learner_id}' not found.",
        )
    return learner


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ─────────────────────────────────────────────
# POST /learner/register
# ─────────────────────────────────────────────

@router.post(
    "/learner/register",
    response_model=LearnerRegisterResponse,
    summary="Register a new learner",
)
def register_learner(
    body: LearnerRegisterRequest,
    db:   Session = Depends(get_db),
) -> LearnerRegisterResponse:
    """Create a new learner. Returns 409 if the id or email already exists."""
    learner_id = body.learner_id or str(uuid.uuid4())

    if db.get(Learner, learner_id):
        raise HTTPException(status_code=409, detail=f"Learner '{learner_id}' already exists.")
    if db.execute(select(Learner).where(Learner.email == body.email)).scalars().first():
        raise HTTPException(status_code=409, detail=f"Email '{body.email}' is already registered.")

    db.add(Learner(learner_id=learner_id, name=body.name, email=body.email))
    db.commit()

    log.info("learner_registered", learner_id=learner_id)
    return LearnerRegisterResponse(learner_id=learner_id, name=body.name)


# ─────────────────────────────────────────────
# GET /learner/{learner_id}/skills
# ─────────────────────────────────────────────

@router.get(
    "/learner/{learner_id}/skills",
    response_model=SkillMatrixResponse,
    summary="Skill matrix with display bands",
)
def get_skills(
    learner_id: str,
    layer:      Optional[str] = Query(default=None, description="Filter by layer"),
    db:         Session = Depends(get_db),
) -> SkillMatrixResponse:
    _get_learner_or_404(learner_id, db)

    topics = load_topics(db)
    skills = load_skills(db, learner_id)

    rows: list[SkillSchema] = []
    for topic_id, skill in sorted(skills.items(), key=lambda kv: topics[kv[0]].slug):
        topic = topics[topic_id]
        if layer and topic.layer != layer:
            continue
        display = format_rating_display(skill.rating, skill.rd)
        rows.append(SkillSchema(
            topic_slug=topic.slug,
            topic_name=topic.name,
            layer=topic.layer,
            category=topic.category,
            rating=display.rating,
            rd=display.rd,
            volatility=round(skill.volatility, 4),
            times_encountered=skill.times_encountered,
            stars=display.stars,
            stars_display=display.stars_display,
            confidence=display.confidence,
            confidence_display=display.confidence_display,
            level=display.level,
            is_stuck=skill.is_stuck,
            is_mastered=is_mastered(skill.rating, skill.rd),
            last_practiced_at=_iso(skill.last_practiced_at),
        ))

    overall_rating, overall_rd = weighted_average_rating(skills.values())
    log.info("get_skills", learner_id=learner_id, topics=len(rows))

    return SkillMatrixResponse(
        learner_id=learner_id,
        overall_rating=round(overall_rating),
        overall_rd=round(overall_rd),
        overall_level=rating_level(overall_rating).label,
        skills=rows,
    )


# ─────────────────────────────────────────────
# GET /learner/{learner_id}/stuck
# ─────────────────────────────────────────────

@router.get(
    "/learner/{learner_id}/stuck",
    response_model=StuckSummaryResponse,
    summary="Stuck and at-risk topics with intervention strategies",
)
def get_stuck(
    learner_id: str,
    db:         Session = Depends(get_db),
) -> StuckSummaryResponse:
    _get_learner_or_404(learner_id, db)

    topics = load_topics(db)
    skills = load_skills(db, learner_id)
    summary = stuck_summary(skills.values(), topics, datetime.now(timezone.utc))

    def to_schema(item: StuckTopic) -> StuckTopicSchema:
        strategy = intervention_strategy(skills[item.topic_id])
        return StuckTopicSchema(
            slug=item.slug,
            name=item.name,
            layer=item.layer,
            rating=round(item.rating),
            times_encountered=item.times_encountered,
            days_since_last_practice=item.days_since_last_practice,
            stuck_since=_iso(item.stuck_since),
            intervention=InterventionSchema(
                strategy=strategy.strategy,
                description=strategy.description,
                suggested_action=strategy.suggested_action,
            ),
        )

    return StuckSummaryResponse(
        learner_id=learner_id,
        stuck_count=summary.stuck_count,
        at_risk_count=summary.at_risk_count,
        stuck=[to_schema(s) for s in summary.stuck],
        at_risk=[to_schema(s) for s in summary.at_risk],
        most_urgent=to_schema(summary.most_urgent) if summary.most_urgent else None,
    )


# ─────────────────────────────────────────────
# GET /learner/{learner_id}/progression
# ─────────────────────────────────────────────

def _layer_progress_schema(p: LayerProgress) -> LayerProgressSchema:
    def crit(c) -> CriterionSchema:
        return CriterionSchema(current=c.current, required=c.required, met=c.met)

    return LayerProgressSchema(
        layer=p.layer,
        is_unlocked=p.is_unlocked,
        unlocked_at=_iso(p.unlocked_at),
        coverage=crit(p.coverage),
        avg_rating=crit(p.avg_rating),
        avg_rd=crit(p.avg_rd),
        submissions=crit(p.submissions),
        recency=crit(p.recency),
        overall_progress=p.overall_progress,
        all_criteria_met=p.all_criteria_met,
    )


@router.get(
    "/learner/{learner_id}/progression",
    response_model=ProgressionResponse,
    summary="Layer unlock status and per-layer statistics",
)
def get_progression(
    learner_id: str,
    db:         Session = Depends(get_db),
) -> ProgressionResponse:
    _get_learner_or_404(learner_id, db)

    topics = load_topics(db)
    skills = load_skills(db, learner_id)
    progress = load_progress(db, learner_id)

    status = progression_status(
        GateInputs(
            skills=skills,
            topics=topics,
            progress=progress,
            submission_count=count_submissions(db, learner_id),
        ),
        datetime.now(timezone.utc),
    )

    stats = [layer_stats(skills, topics, layer) for layer in LAYERS]

    return ProgressionResponse(
        learner_id=learner_id,
        current_layer=status.current_layer,
        next_unlock=status.next_unlock,
        fundamentals_unlocked=status.fundamentals_unlocked,
        intermediate=_layer_progress_schema(status.intermediate),
        patterns=_layer_progress_schema(status.patterns),
        layers=[
            LayerStatsSchema(
                layer=s.layer,
                total_topics=s.total_topics,
                attempted_topics=s.attempted_topics,
                mastered_topics=s.mastered_topics,
                stuck_topics=s.stuck_topics,
                average_rating=round(s.average_rating),
                average_rd=round(s.average_rd),
            )
            for s in stats
        ],
        total_reviews=progress.total_reviews,
    )


# ─────────────────────────────────────────────
# GET /learner/{learner_id}/history
# ─────────────────────────────────────────────

@router.get(
    "/learner/{learner_id}/history",
    response_model=PerformanceHistoryResponse,
    summary="Recent performance history, newest first",
)
def get_history(
    learner_id: str,
    limit:      int = Query(default=50, ge=1, le=500),
    topic:      Optional[str] = Query(default=None, description="Filter by topic slug"),
    db:         Session = Depends(get_db),
) -> PerformanceHistoryResponse:
    _get_learner_or_404(learner_id, db)

    stmt = (
        select(PerformanceHistory, Topic.slug)
        .join(Topic, Topic.topic_id == PerformanceHistory.topic_id)
        .where(PerformanceHistory.learner_id == learner_id)
    )
    if topic:
        stmt = stmt.where(Topic.slug == topic)
    stmt = stmt.order_by(PerformanceHistory.created_at.desc()).limit(limit)

    entries = [
        PerformanceHistoryItem(
            topic_slug=slug,
            score=row.performance_score,
            error_type=row.error_type,
            rating_before=round(row.rating_before, 2),
            rating_after=round(row.rating_after, 2),
            rd_before=round(row.rd_before, 2),
            rd_after=round(row.rd_after, 2),
            submission_id=row.submission_id,
            created_at=row.created_at.isoformat(),
        )
        for row, slug in db.execute(stmt).all()
    ]

    return PerformanceHistoryResponse(learner_id=learner_id, total=len(entries), entries=entries)
