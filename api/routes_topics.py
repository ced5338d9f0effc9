# api/routes_topics.py
# SkillTrack — GET /topics and GET /topics/{slug}/prerequisites
# Imports from: analysis/prerequisite_analyzer.py, database/*, schemas/skill.py, utils/logger.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from analysis.prerequisite_analyzer import PrerequisiteNode, build_prerequisite_tree
from database.db import get_db
from database.skill_store import load_topics
from schemas.skill import (
    PrerequisiteNodeSchema,
    PrerequisiteTreeResponse,
    TopicListResponse,
    TopicSchema,
)
from utils.constants import LAYERS, PREREQ_MAX_DEPTH
from utils.logger import get_logger

router = APIRouter(tags=["topics"])
log    = get_logger("api.routes_topics")


def _node_schema(root: PrerequisiteNode) -> PrerequisiteNodeSchema:
    """PrerequisiteNode tree → response schema, without recursion."""
    out_root = PrerequisiteNodeSchema(slug=root.topic.slug, name=root.topic.name, depth=root.depth)
    stack: list[tuple[PrerequisiteNode, PrerequisiteNodeSchema]] = [(root, out_root)]
    while stack:
        node, out = stack.pop()
        for child in node.children:
            out_child = PrerequisiteNodeSchema(slug=child.topic.slug, name=child.topic.name, depth=child.depth)
            out.children.append(out_child)
            stack.append((child, out_child))
    return out_root


@router.get(
    "/topics",
    response_model=TopicListResponse,
    summary="List the topic catalog",
)
def list_topics(
    layer: Optional[str] = Query(default=None, description="Filter by layer"),
    db:    Session = Depends(get_db),
) -> TopicListResponse:
    if layer and layer not in LAYERS:
        raise HTTPException(status_code=422, detail=f"Unknown layer '{layer}'. Expected one of {list(LAYERS)}.")

    topics = load_topics(db)
    slug_by_id = {tid: t.slug for tid, t in topics.items()}

    items = [
        TopicSchema(
            slug=t.slug,
            name=t.name,
            layer=t.layer,
            category=t.category,
            prerequisites=sorted(slug_by_id[p] for p in t.prerequisites),
        )
        for t in sorted(topics.values(), key=lambda t: (LAYERS.index(t.layer), t.topic_id))
        if not layer or t.layer == layer
    ]
    return TopicListResponse(total=len(items), topics=items)


@router.get(
    "/topics/{slug}/prerequisites",
    response_model=PrerequisiteTreeResponse,
    summary="Prerequisite tree for one topic",
)
def get_prerequisite_tree(
    slug:      str,
    max_depth: int = Query(default=PREREQ_MAX_DEPTH, ge=0, le=10),
    db:        Session = Depends(get_db),
) -> PrerequisiteTreeResponse:
    topics = load_topics(db)
    topic = next((t for t in topics.values() if t.slug == slug), None)
    if topic is None:
        raise HTTPException(status_code=404, detail=f"Topic '{slug}' not found.")

    tree = build_prerequisite_tree(topics, topic.topic_id, max_depth=max_depth)
    log.info("get_prerequisite_tree", slug=slug, max_depth=max_depth)
    return PrerequisiteTreeResponse(slug=slug, tree=_node_schema(tree))
