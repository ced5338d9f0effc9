# analysis/rating_engine.py
# SkillTrack — Glicko-2 rating update for one topic encounter.
# Pure deterministic math. No I/O; the caller persists the result.
# Imports from: analysis/errors.py, utils/constants.py, utils/logger.py

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from analysis.errors import InvalidPerformanceError, MalformedSnapshotError
from utils.constants import (
    CONFIDENCE_BANDS,
    CONVERGENCE_TOLERANCE,
    DAYS_PER_RATING_PERIOD,
    DECAY_CONSTANT,
    EXPECTED_SCORE_EPSILON,
    GLICKO2_SCALE,
    HIGH_CONFIDENCE_RD,
    INITIAL_RATING,
    INITIAL_RD,
    INITIAL_VOLATILITY,
    MAX_CONFIDENCE_DOTS,
    MAX_RATING,
    MAX_RD,
    MAX_SOLVER_ITERATIONS,
    MAX_STARS,
    MAX_VOLATILITY,
    MIN_RATING,
    MIN_RD,
    MIN_VOLATILITY,
    NOVICE_CEILING,
    PROFICIENT_CEILING,
    RATING_BANDS,
    REFERENCE_OPPONENT_RATING,
    REFERENCE_OPPONENT_RD,
    TAU,
)
from utils.logger import get_logger

log = get_logger("analysis.rating_engine")

PI_SQUARED: float = math.pi * math.pi


# ─────────────────────────────────────────────
# Input / output contracts
# ─────────────────────────────────────────────

class RatedSkill(Protocol):
    rating:     float
    rd:         float
    volatility: float


@dataclass(frozen=True)
class GlickoRating:
    rating:     float = INITIAL_RATING
    rd:         float = INITIAL_RD
    volatility: float = INITIAL_VOLATILITY


@dataclass(frozen=True)
class PerformanceResult:
    score:           float                  # 0.0 – 1.0
    opponent_rating: Optional[float] = None  # topic difficulty; None → reference opponent


@dataclass(frozen=True)
class RatingUpdate:
    new_rating:     float
    new_rd:         float
    new_volatility: float
    rating_change:  float
    rd_change:      float
    converged:      bool = True   # False when the volatility solver hit its iteration cap
    iterations:     int = 0


@dataclass(frozen=True)
class VolatilitySolution:
    volatility: float
    converged:  bool
    iterations: int


# ─────────────────────────────────────────────
# Scale conversion and Glicko-2 primitives
# ─────────────────────────────────────────────

def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def to_glicko2_scale(rating: float, rd: float) -> tuple[float, float]:
    """(rating, rd) → (μ, φ)"""
    return (rating - INITIAL_RATING) / GLICKO2_SCALE, rd / GLICKO2_SCALE


def from_glicko2_scale(mu: float, phi: float) -> tuple[float, float]:
    """(μ, φ) → (rating, rd)"""
    return mu * GLICKO2_SCALE + INITIAL_RATING, phi * GLICKO2_SCALE


def g(phi: float) -> float:
    """Dampens the impact of an opponent whose own rating is uncertain."""
    return 1.0 / math.sqrt(1.0 + 3.0 * phi * phi / PI_SQUARED)


def _expected(mu: float, mu_opp: float, phi_opp: float) -> float:
    raw = 1.0 / (1.0 + math.exp(-g(phi_opp) * (mu - mu_opp)))
    return _clamp(raw, EXPECTED_SCORE_EPSILON, 1.0 - EXPECTED_SCORE_EPSILON)


def expected_score(
    rating: float,
    opponent_rating: float = REFERENCE_OPPONENT_RATING,
    opponent_rd: float = REFERENCE_OPPONENT_RD,
) -> float:
    """Probability of a clean outcome against the given opponent."""
    mu, _ = to_glicko2_scale(rating, INITIAL_RD)
    mu_opp, phi_opp = to_glicko2_scale(opponent_rating, opponent_rd)
    return _expected(mu, mu_opp, phi_opp)


# ─────────────────────────────────────────────
# Volatility: Illinois root-finding (Glickman 2012, step 5)
# ─────────────────────────────────────────────

def solve_volatility(sigma: float, phi: float, v: float, delta: float) -> VolatilitySolution:
    """
    Finds σ' as exp(A/2) where A is the root of

        f(x) = eˣ(Δ² − φ² − v − eˣ) / (2(φ² + v + eˣ)²) − (x − a) / τ²,   a = ln σ²

    Both the bracket search and the bisection loop stop at
    MAX_SOLVER_ITERATIONS; hitting the cap yields the best endpoint so far
    with converged=False.
    """
    a = math.log(sigma * sigma)
    delta_sq = delta * delta
    phi_sq = phi * phi
    tau_sq = TAU * TAU

    def f(x: float) -> float:
        ex = math.exp(x)
        denom = phi_sq + v + ex
        return ex * (delta_sq - phi_sq - v - ex) / (2.0 * denom * denom) - (x - a) / tau_sq

    A = a
    if delta_sq > phi_sq + v:
        B = math.log(delta_sq - phi_sq - v)
    else:
        k = 1
        while f(a - k * TAU) < 0 and k < MAX_SOLVER_ITERATIONS:
            k += 1
        B = a - k * TAU

    f_a = f(A)
    f_b = f(B)
    iterations = 0

    while abs(B - A) > CONVERGENCE_TOLERANCE:
        if iterations >= MAX_SOLVER_ITERATIONS or f_b == f_a:
            return VolatilitySolution(math.exp(A / 2.0), converged=False, iterations=iterations)

        C = A + (A - B) * f_a / (f_b - f_a)
        f_c = f(C)

        if f_c * f_b <= 0:
            A, f_a = B, f_b
        else:
            f_a /= 2.0

        B, f_b = C, f_c
        iterations += 1

    return VolatilitySolution(math.exp(A / 2.0), converged=True, iterations=iterations)


# ─────────────────────────────────────────────
# Input validation
# ─────────────────────────────────────────────

def _validate_skill(current: RatedSkill) -> None:
    values = (current.rating, current.rd, current.volatility)
    if not all(isinstance(x, (int, float)) and math.isfinite(x) for x in values):
        raise MalformedSnapshotError(f"Skill snapshot has non-finite values: {values}")
    if current.rd <= 0 or current.volatility <= 0:
        raise MalformedSnapshotError(
            f"Skill snapshot needs positive rd and volatility, got rd={current.rd}, "
            f"volatility={current.volatility}"
        )


def _validate_performance(performance: PerformanceResult, opponent_rd: float) -> None:
    score = performance.score
    if not isinstance(score, (int, float)) or not math.isfinite(score) or not 0.0 <= score <= 1.0:
        raise InvalidPerformanceError(f"Performance score must be within [0, 1], got {score!r}")
    if performance.opponent_rating is not None and not math.isfinite(performance.opponent_rating):
        raise InvalidPerformanceError("Opponent rating must be finite.")
    if not math.isfinite(opponent_rd) or opponent_rd <= 0:
        raise InvalidPerformanceError(f"Opponent rd must be positive, got {opponent_rd!r}")


# ─────────────────────────────────────────────
# Public interface
# ─────────────────────────────────────────────

def update_rating(
    current: RatedSkill,
    performance: PerformanceResult,
    opponent_rd: float = REFERENCE_OPPONENT_RD,
) -> RatingUpdate:
    """
    One Glicko-2 rating period with a single match against the topic's
    reference opponent (rating 1500, rd 350 unless overridden).

    Steps:
        1. Map (rating, rd) to (μ, φ)
        2. v = 1 / (g² E (1 − E)),  Δ = v g (score − E)
        3. σ' from solve_volatility
        4. φ* = √(φ² + σ'²),  φ' = 1 / √(1/φ*² + 1/v),  μ' = μ + φ'² g (score − E)
        5. Map back and clamp rating, rd and volatility to their bounds
    """
    _validate_skill(current)
    _validate_performance(performance, opponent_rd)

    mu, phi = to_glicko2_scale(current.rating, current.rd)
    sigma = current.volatility

    opponent_rating = (
        performance.opponent_rating
        if performance.opponent_rating is not None
        else REFERENCE_OPPONENT_RATING
    )
    mu_opp, phi_opp = to_glicko2_scale(opponent_rating, opponent_rd)

    g_opp = g(phi_opp)
    e = _expected(mu, mu_opp, phi_opp)
    surprise = performance.score - e

    v = 1.0 / (g_opp * g_opp * e * (1.0 - e))
    delta = v * g_opp * surprise

    solution = solve_volatility(sigma, phi, v, delta)
    if not solution.converged:
        log.warning(
            "volatility_solver_not_converged",
            rating=current.rating,
            rd=current.rd,
            volatility=sigma,
            score=performance.score,
            iterations=solution.iterations,
        )

    phi_star = math.sqrt(phi * phi + solution.volatility * solution.volatility)
    phi_new = 1.0 / math.sqrt(1.0 / (phi_star * phi_star) + 1.0 / v)
    mu_new = mu + phi_new * phi_new * g_opp * surprise

    rating, rd = from_glicko2_scale(mu_new, phi_new)

    new_rating = _clamp(rating, MIN_RATING, MAX_RATING)
    new_rd = _clamp(rd, MIN_RD, MAX_RD)
    new_volatility = _clamp(solution.volatility, MIN_VOLATILITY, MAX_VOLATILITY)

    return RatingUpdate(
        new_rating=new_rating,
        new_rd=new_rd,
        new_volatility=new_volatility,
        rating_change=new_rating - current.rating,
        rd_change=new_rd - current.rd,
        converged=solution.converged,
        iterations=solution.iterations,
    )


def apply_decay(rd: float, days_since_last_practice: float) -> float:
    """
    rd' = √(rd² + (0.5 · days)²), capped at MAX_RD.
    Applied lazily when a skill is read for an update.
    """
    if days_since_last_practice <= 0:
        return min(MAX_RD, rd)
    growth = DECAY_CONSTANT * days_since_last_practice
    return min(MAX_RD, math.sqrt(rd * rd + growth * growth))


def calculate_rd_decay(current_rd: float, volatility: float, days_passed: float) -> float:
    """Volatility-driven decay: one rating period per 30 days, capped at MAX_RD."""
    periods = max(0.0, days_passed) / DAYS_PER_RATING_PERIOD
    growth = volatility * periods * GLICKO2_SCALE
    return min(MAX_RD, math.sqrt(current_rd * current_rd + growth * growth))


def initial_rating() -> GlickoRating:
    return GlickoRating()


# ─────────────────────────────────────────────
# Aggregation
# ─────────────────────────────────────────────

def weighted_average_rating(skills: Iterable[RatedSkill]) -> tuple[float, float]:
    """
    Confidence-weighted means with weight 1/rd per skill.
    Returns (avg_rating, avg_rd); (1500, 350) when there is nothing to average.
    """
    weights: list[float] = []
    weighted_ratings: list[float] = []
    weighted_rds: list[float] = []
    for skill in skills:
        weight = 1.0 / skill.rd
        weights.append(weight)
        weighted_ratings.append(skill.rating * weight)
        weighted_rds.append(skill.rd * weight)

    if not weights:
        return INITIAL_RATING, INITIAL_RD

    # fsum keeps gate boundaries exact (ten skills at rd 100 average to 100.0)
    total_weight = math.fsum(weights)
    return math.fsum(weighted_ratings) / total_weight, math.fsum(weighted_rds) / total_weight


# ─────────────────────────────────────────────
# Display bands
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class RatingLevel:
    stars: int
    label: str
    min:   float
    max:   float


@dataclass(frozen=True)
class RatingDisplay:
    stars:              int
    stars_display:      str
    confidence:         int
    confidence_display: str
    level:              str
    rating:             int
    rd:                 int


def rating_level(rating: float) -> RatingLevel:
    floor = MIN_RATING
    for ceiling, stars, label in RATING_BANDS:
        if rating < ceiling:
            return RatingLevel(stars=stars, label=label, min=floor, max=min(ceiling, MAX_RATING))
        floor = ceiling
    raise AssertionError("RATING_BANDS must end with an unbounded band")


def rating_to_stars(rating: float) -> int:
    return rating_level(rating).stars


def confidence_level(rd: float) -> tuple[int, str]:
    """(dots, label) for an rd value."""
    for ceiling, dots, label in CONFIDENCE_BANDS:
        if rd < ceiling:
            return dots, label
    raise AssertionError("CONFIDENCE_BANDS must end with an unbounded band")


def rd_to_confidence(rd: float) -> int:
    return confidence_level(rd)[0]


def format_rating_display(rating: float, rd: float) -> RatingDisplay:
    level = rating_level(rating)
    dots, _ = confidence_level(rd)
    return RatingDisplay(
        stars=level.stars,
        stars_display="★" * level.stars + "☆" * (MAX_STARS - level.stars),
        confidence=dots,
        confidence_display="●" * dots + "○" * (MAX_CONFIDENCE_DOTS - dots),
        level=level.label,
        rating=round(rating),
        rd=round(rd),
    )


def is_mastered(rating: float, rd: float) -> bool:
    return rating >= PROFICIENT_CEILING and rd < HIGH_CONFIDENCE_RD


def is_struggling(rating: float) -> bool:
    return rating < NOVICE_CEILING
