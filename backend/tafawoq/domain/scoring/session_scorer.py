"""
Session Scorer

Deterministic scoring engine for exam and practice submissions.
Same session + same answers always yields the same summary.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from tafawoq.domain.content import (
    CATEGORY_ORDER,
    CategoryPerformance,
    ContentKind,
    Question,
    QuestionAnswer,
    QuestionCategory,
    Section,
    get_category_label,
)
from tafawoq.domain.scoring.interfaces import ScoreSummary, Tally


_TWO_PLACES = Decimal("0.01")


def round_score(value: Decimal) -> float:
    """Round half-up to two decimals."""
    return float(value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def percentage(correct: int, total: int) -> float:
    """correct / total * 100, rounded half-up to two decimals (0 for empty)."""
    if total <= 0:
        return 0.0
    return round_score(Decimal(correct) * 100 / Decimal(total))


def mean_score(scores: Iterable[float]) -> float:
    values = [Decimal(str(score)) for score in scores]
    if not values:
        return 0.0
    return round_score(sum(values) / len(values))


class SessionScorer:
    """
    Scores a set of answers against a session's questions.

    Exam overall = mean of the verbal and quantitative percentages (sections
    without items are left out). Practice overall = single aggregate.
    """

    # Key of the single aggregate section score for practice sessions
    PRACTICE_SECTION_KEY = "aggregate"

    MAX_HIGHLIGHTS = 3

    def score(
        self,
        kind: ContentKind,
        questions: List[Question],
        answers: List[QuestionAnswer],
    ) -> ScoreSummary:
        """
        Score a submission.

        Args:
            kind: Exam or practice
            questions: The session's questions
            answers: Submitted answers (unknown ids are ignored)

        Returns:
            ScoreSummary with section, overall and category scores
        """
        given: Dict[str, Optional[str]] = {a.question_id: a.answer for a in answers}

        overall_tally = Tally()
        sections: Dict[Section, Tally] = {}
        categories: Dict[QuestionCategory, Tally] = {}

        for question in questions:
            answer = given.get(question.id)
            was_answered = bool(answer)
            is_correct = was_answered and answer == question.correct_answer
            overall_tally.add(is_correct, was_answered)
            sections.setdefault(question.section, Tally()).add(is_correct, was_answered)
            categories.setdefault(question.category, Tally()).add(is_correct, was_answered)

        if kind == ContentKind.EXAM:
            section_scores = {}
            for section in (Section.VERBAL, Section.QUANTITATIVE):
                tally = sections.get(section)
                if tally and tally.total:
                    section_scores[section.value] = percentage(tally.correct, tally.total)
            overall = mean_score(section_scores.values())
        else:
            overall = percentage(overall_tally.correct, overall_tally.total)
            section_scores = {self.PRACTICE_SECTION_KEY: overall}

        performances = self._category_performances(categories)
        strengths, weaknesses = self._highlights(performances, overall)

        return ScoreSummary(
            section_scores=section_scores,
            overall_score=overall,
            category_breakdown={p.category.value: p.score for p in performances},
            strengths=strengths,
            weaknesses=weaknesses,
            improvement_advice=build_improvement_advice(weaknesses, bool(performances)),
            answered_count=overall_tally.answered,
        )

    def _category_performances(
        self, categories: Dict[QuestionCategory, Tally]
    ) -> List[CategoryPerformance]:
        # Categories where nothing was attempted say nothing about the user
        performances = [
            CategoryPerformance(
                category=category,
                label=get_category_label(category),
                score=percentage(tally.correct, tally.total),
                questions_count=tally.total,
                correct_count=tally.correct,
            )
            for category, tally in categories.items()
            if tally.answered > 0
        ]
        performances.sort(key=lambda p: CATEGORY_ORDER[p.category])
        return performances

    def _highlights(
        self, performances: List[CategoryPerformance], overall: float
    ) -> tuple[List[CategoryPerformance], List[CategoryPerformance]]:
        strengths = sorted(
            (p for p in performances if p.score >= overall),
            key=lambda p: (-p.score, CATEGORY_ORDER[p.category]),
        )
        weaknesses = sorted(
            (p for p in performances if p.score < overall),
            key=lambda p: (p.score, CATEGORY_ORDER[p.category]),
        )
        return strengths[: self.MAX_HIGHLIGHTS], weaknesses[: self.MAX_HIGHLIGHTS]


def build_improvement_advice(
    weaknesses: List[CategoryPerformance], attempted_any: bool = True
) -> str:
    """Fixed-template advice text built from the weaknesses."""
    if not attempted_any:
        return "لم تتم الإجابة على أي سؤال. ابدأ بجلسة تدريب قصيرة لتحديد مستواك."
    if not weaknesses:
        return "أداء ممتاز! استمر في التدريب المنتظم للحفاظ على مستواك."

    lines = ["ننصحك بالتركيز على المهارات التالية:"]
    for performance in weaknesses:
        lines.append(
            f"- {performance.label}: {performance.correct_count} من "
            f"{performance.questions_count} إجابات صحيحة ({performance.score:g}%)"
        )
    lines.append("خصص جلسات تدريب قصيرة لكل مهارة ثم أعد الاختبار لقياس تقدمك.")
    return "\n".join(lines)
