# utils/constants.py
# SkillTrack — Single source of truth for every threshold and tuning value.
# Tables are immutable and ordered so each boundary can be tested on its own.

import os
from types import MappingProxyType
from typing import Mapping

# ─────────────────────────────────────────────
# LAYERS
# ─────────────────────────────────────────────

LAYER_FUNDAMENTALS: str = "FUNDAMENTALS"
LAYER_INTERMEDIATE: str = "INTERMEDIATE"
LAYER_PATTERNS: str     = "PATTERNS"

LAYERS: tuple[str, ...] = (LAYER_FUNDAMENTALS, LAYER_INTERMEDIATE, LAYER_PATTERNS)

# target layer → the layer whose mastery gates it
PRIOR_LAYER: Mapping[str, str] = MappingProxyType({
    LAYER_INTERMEDIATE: LAYER_FUNDAMENTALS,
    LAYER_PATTERNS:     LAYER_INTERMEDIATE,
})

# ─────────────────────────────────────────────
# GLICKO-2 PARAMETERS
# ─────────────────────────────────────────────

INITIAL_RATING: float     = 1500.0
INITIAL_RD: float         = 350.0
INITIAL_VOLATILITY: float = 0.06

MIN_RATING: float     = 1200.0
MAX_RATING: float     = 1800.0
MIN_RD: float         = 50.0
MAX_RD: float         = 350.0
MIN_VOLATILITY: float = 0.01
MAX_VOLATILITY: float = 0.2

GLICKO2_SCALE: float          = 173.7178   # Glicko-1 ↔ Glicko-2 scale factor
TAU: float                    = 0.5        # system constant, constrains volatility change
CONVERGENCE_TOLERANCE: float  = 1e-6
MAX_SOLVER_ITERATIONS: int    = 100
EXPECTED_SCORE_EPSILON: float = 1e-9       # keeps E inside (0, 1) so v stays finite

DECAY_CONSTANT: float         = 0.5        # rd growth per idle day
DAYS_PER_RATING_PERIOD: float = 30.0

# Reference opponent for a topic encounter
REFERENCE_OPPONENT_RATING: float = INITIAL_RATING
REFERENCE_OPPONENT_RD: float     = INITIAL_RD

# ─────────────────────────────────────────────
# DISPLAY BANDS: (exclusive ceiling, stars, label), ascending
# ─────────────────────────────────────────────

RATING_BANDS: tuple[tuple[float, int, str], ...] = (
    (1400.0, 1, "Novice"),
    (1500.0, 2, "Basic"),
    (1650.0, 3, "Competent"),
    (1750.0, 4, "Proficient"),
    (float("inf"), 5, "Expert"),
)
MAX_STARS: int = 5

NOVICE_CEILING: float     = RATING_BANDS[0][0]
BASIC_CEILING: float      = RATING_BANDS[1][0]
COMPETENT_CEILING: float  = RATING_BANDS[2][0]
PROFICIENT_CEILING: float = RATING_BANDS[3][0]

# (exclusive rd ceiling, dots, label), ascending
CONFIDENCE_BANDS: tuple[tuple[float, int, str], ...] = (
    (80.0, 3, "High confidence"),
    (150.0, 2, "Medium confidence"),
    (float("inf"), 1, "Low confidence"),
)
MAX_CONFIDENCE_DOTS: int = 3

HIGH_CONFIDENCE_RD: float = CONFIDENCE_BANDS[0][0]

# ─────────────────────────────────────────────
# PERFORMANCE SCORES
# ─────────────────────────────────────────────

ERROR_SLIP: str          = "SLIP"
ERROR_MISTAKE: str       = "MISTAKE"
ERROR_MISCONCEPTION: str = "MISCONCEPTION"

ERROR_TYPES: tuple[str, ...] = (ERROR_SLIP, ERROR_MISTAKE, ERROR_MISCONCEPTION)

SCORE_PERFECT: float       = 1.0   # clean + idiomatic
SCORE_CLEAN: float         = 0.8   # clean, not idiomatic
SCORE_SLIP: float          = 0.6
SCORE_MISTAKE: float       = 0.3
SCORE_MISCONCEPTION: float = 0.0

ERROR_TYPE_SCORES: Mapping[str, float] = MappingProxyType({
    ERROR_SLIP:          SCORE_SLIP,
    ERROR_MISTAKE:       SCORE_MISTAKE,
    ERROR_MISCONCEPTION: SCORE_MISCONCEPTION,
})

# ─────────────────────────────────────────────
# ERROR CLASSIFICATION
# ─────────────────────────────────────────────

SLIP_MIN_RATING: float          = 1650.0   # inclusive
SLIP_CLEAN_HISTORY_REQUIRED: int = 2
SLIP_CLEAN_SCORE: float         = SCORE_CLEAN

MISCONCEPTION_MAX_RATING: float     = 1450.0   # inclusive
MISCONCEPTION_MIN_ENCOUNTERS: int   = 3
MISCONCEPTION_MIN_VOLATILITY: float = 0.12     # inclusive

HISTORY_WINDOW: int = 5

# External scores below this route through the classifier
EXTERNAL_ERROR_SCORE_CEILING: float = 0.5
# ...and count as trivial at or above this
EXTERNAL_TRIVIAL_SCORE_FLOOR: float = 0.3

# ─────────────────────────────────────────────
# STUCK DETECTION: all four must hold (strict comparisons)
# ─────────────────────────────────────────────

STUCK_MAX_RATING: float     = 1450.0   # rating <  this
STUCK_MIN_ENCOUNTERS: int   = 4        # encounters >= this
STUCK_MIN_RD: float         = 180.0    # rd >  this
STUCK_MIN_VOLATILITY: float = 0.12     # volatility >  this

STUCK_CRITERIA_TOTAL: int    = 4
AT_RISK_MIN_CRITERIA: int    = 3
AT_RISK_MIN_ENCOUNTERS: int  = 2

# Intervention strategy triggers, checked in order
INTERVENTION_PREREQ_VOLATILITY: float = 0.15
INTERVENTION_SIMPLER_RATING: float    = 1350.0
INTERVENTION_ALTERNATIVE_ENCOUNTERS: int = 6

# ─────────────────────────────────────────────
# PREREQUISITE ANALYSIS
# ─────────────────────────────────────────────

PREREQ_MAX_DEPTH: int = 5

SEVERITY_CRITICAL: str = "critical"
SEVERITY_MODERATE: str = "moderate"
SEVERITY_MILD: str     = "mild"

# lower rank sorts first
SEVERITY_RANK: Mapping[str, int] = MappingProxyType({
    SEVERITY_CRITICAL: 0,
    SEVERITY_MODERATE: 1,
    SEVERITY_MILD:     2,
})

STRUGGLING_MAX_RATING: float    = NOVICE_CEILING   # rating <  this ...
STRUGGLING_MIN_ENCOUNTERS: int  = 2                # ... with encounters >= this
WEAK_FOUNDATION_MAX_RATING: float = BASIC_CEILING  # rating <  this
LIMITED_PRACTICE_MIN_RD: float  = 200.0            # rd >  this ...
LIMITED_PRACTICE_MAX_ENCOUNTERS: int = 3           # ... with encounters <  this

PREREQ_MET_MIN_RATING: float = NOVICE_CEILING
READINESS_FLOOR_RATING: float   = 1200.0   # 0 %
READINESS_CEILING_RATING: float = 1650.0   # 100 %

# (exclusive rating ceiling, level), ascending
SCAFFOLDING_BANDS: tuple[tuple[float, str], ...] = (
    (1400.0, "HIGH"),
    (1600.0, "MEDIUM"),
    (float("inf"), "LOW"),
)

# ─────────────────────────────────────────────
# PROGRESSION GATES
# ─────────────────────────────────────────────

PROGRESSION_GATES: Mapping[str, Mapping[str, float]] = MappingProxyType({
    LAYER_INTERMEDIATE: MappingProxyType({
        "coverage_percent":      90.0,
        "min_avg_rating":        1650.0,
        "max_avg_rd":            100.0,
        "min_submissions":       10,
        "max_days_since_review": 30,
    }),
    LAYER_PATTERNS: MappingProxyType({
        "coverage_percent":      90.0,
        "min_avg_rating":        1700.0,
        "max_avg_rd":            80.0,
        "min_submissions":       20,
        "max_days_since_review": 30,
    }),
})

# Informational only, never gates an unlock
PROGRESS_WEIGHTS: Mapping[str, float] = MappingProxyType({
    "coverage":    0.25,
    "avg_rating":  0.30,
    "avg_rd":      0.20,
    "submissions": 0.15,
    "recency":     0.10,
})

MASTERED_MIN_RATING: float = COMPETENT_CEILING   # layer stats: rating >= 1650 ...
MASTERED_MAX_RD: float     = 100.0               # ... and rd < 100

# ─────────────────────────────────────────────
# SERVER CONFIGURATION
# ─────────────────────────────────────────────

SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
