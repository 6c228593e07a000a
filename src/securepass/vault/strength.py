# Vault - Password Strength Scorer
#
# Coarse additive heuristic, not an entropy estimate. Scores are persisted
# with each credential and aggregated in stats, so thresholds must not drift.

import re
from typing import NamedTuple

STRENGTH_LABELS = ("Very Weak", "Weak", "Fair", "Good", "Strong")
STRENGTH_COLORS = ("#ef4444", "#f97316", "#eab308", "#22c55e", "#16a34a")

MAX_SCORE = 4

_CHECKS = (
    re.compile(r"[a-z]"),
    re.compile(r"[A-Z]"),
    re.compile(r"[0-9]"),
    re.compile(r"[^A-Za-z0-9]"),
)


class StrengthResult(NamedTuple):
    score: int
    label: str
    color: str


def calculate_strength(password: str) -> int:
    """Return the clamped 0-4 strength score for a password."""
    score = 0
    if len(password) >= 8:
        score += 1
    if len(password) >= 12:
        score += 1
    for pattern in _CHECKS:
        if pattern.search(password):
            score += 1
    return min(score, MAX_SCORE)


def score_password(password: str) -> StrengthResult:
    """
    Score a password.

    +1 for length >= 8, +1 for length >= 12, +1 each for a lowercase
    letter, an uppercase letter, a digit and any other character, clamped
    to 4. Label and color come from fixed tables indexed by the score.
    """
    score = calculate_strength(password)
    return StrengthResult(score, STRENGTH_LABELS[score], STRENGTH_COLORS[score])
