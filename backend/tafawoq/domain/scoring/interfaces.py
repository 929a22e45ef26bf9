"""
Scoring Interfaces for Tafawoq

Data models produced by the scoring engine.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from tafawoq.domain.content import CategoryPerformance


@dataclass
class Tally:
    """Correct/total counter for one section or category."""
    correct: int = 0
    total: int = 0
    answered: int = 0

    def add(self, is_correct: bool, was_answered: bool) -> None:
        self.total += 1
        if was_answered:
            self.answered += 1
        if is_correct:
            self.correct += 1


@dataclass
class ScoreSummary:
    """
    Deterministic scoring of one submission.

    All scores are percentages in [0, 100] rounded to two decimals.
    """
    section_scores: Dict[str, float] = field(default_factory=dict)
    overall_score: float = 0.0
    category_breakdown: Dict[str, float] = field(default_factory=dict)
    strengths: List[CategoryPerformance] = field(default_factory=list)
    weaknesses: List[CategoryPerformance] = field(default_factory=list)
    improvement_advice: str = ""
    answered_count: int = 0
