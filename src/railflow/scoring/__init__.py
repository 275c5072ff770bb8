"""Rail scoring: five weighted factors."""

from railflow.scoring.factors import FACTOR_WEIGHTS, HISTORY_PRIORS, FACTORS
from railflow.scoring.scorer import ScoredRail, score, score_label

__all__ = [
    "FACTOR_WEIGHTS",
    "HISTORY_PRIORS",
    "FACTORS",
    "ScoredRail",
    "score",
    "score_label",
]
