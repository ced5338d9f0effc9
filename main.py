# main.py
# SkillTrack — FastAPI application entry point.
# Registers all routers. Runs DB init + topic seed on startup.
# Imports from: api/routes_*.py, database/db.py, utils/logger.py

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from api.routes_learner import router as learner_router
from api.routes_submit import router as submit_router
from api.routes_topics import router as topics_router
from database.db import check_db_health, get_db, init_db
from utils.logger import get_logger

log = get_logger("main")

SERVICE_NAME: str    = "SkillTrack"
SERVICE_VERSION: str = "1.0.0"


# ─────────────────────────────────────────────
# Lifespan — startup + shutdown
# ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
        Create all DB tables (idempotent) and seed the topic catalog if empty.
    Shutdown:
        Nothing to clean up for SQLite.
    """
    log.info("skilltrack_startup_begin")
    init_db()
    log.info("skilltrack_startup_complete")
    yield
    log.info("skilltrack_shutdown")


# ─────────────────────────────────────────────
# App factory
# ─────────────────────────────────────────────

app = FastAPI(
    title=SERVICE_NAME,
    description=(
        "Adaptive skill-rating and progression engine. "
        "Glicko-2 ratings per topic, error-cause classification, stuck detection, "
        "prerequisite root-cause analysis and layer unlock gating."
    ),
    version=SERVICE_VERSION,
    lifespan=lifespan,
)


# ─────────────────────────────────────────────
# CORS — allow browser access from any origin (dev)
# ─────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],       # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────
# Routers
# ─────────────────────────────────────────────

app.include_router(submit_router)       # POST /submit
app.include_router(learner_router)      # POST /learner/register
                                        # GET  /learner/{id}/skills, /stuck, /progression, /history
app.include_router(topics_router)       # GET  /topics, /topics/{slug}/prerequisites


# ─────────────────────────────────────────────
# Health check
# ─────────────────────────────────────────────

@app.get("/health", tags=["system"], summary="Health check")
def health_check(db: Session = Depends(get_db)) -> dict:
    """Returns service status and DB reachability."""
    db_ok = check_db_health(db)
    return {
        "status":   "ok" if db_ok else "degraded",
        "database": "ok" if db_ok else "unreachable",
        "service":  SERVICE_NAME,
        "version":  SERVICE_VERSION,
    }


@app.get("/", tags=["system"], include_in_schema=False)
def root() -> dict:
    return {
        "service": SERVICE_NAME,
        "docs":    "/docs",
        "health":  "/health",
    }


# ─────────────────────────────────────────────
# Dev server entry point
# ─────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    from utils.constants import SERVER_HOST, SERVER_PORT

    log.info("starting_dev_server", host=SERVER_HOST, port=SERVER_PORT)
    uvicorn.run(
        "main:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
        log_level="info",
    )
