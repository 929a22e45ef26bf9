# Scoring module for Tafawoq
from tafawoq.domain.scoring.interfaces import ScoreSummary, Tally
from tafawoq.domain.scoring.session_scorer import (
    SessionScorer,
    build_improvement_advice,
    mean_score,
    percentage,
)

__all__ = [
    "ScoreSummary",
    "Tally",
    "SessionScorer",
    "build_improvement_advice",
    "mean_score",
    "percentage",
]
