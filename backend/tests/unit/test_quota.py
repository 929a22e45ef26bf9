"""
Unit tests for quota rules.

Covers the UTC week window, exam eligibility per tier and practice
criteria validation.
"""

from datetime import datetime, timedelta, timezone

import pytest

from tafawoq.domain.content import (
    ContentKind,
    Difficulty,
    PracticeCriteria,
    QuestionCategory,
    Section,
)
from tafawoq.domain.quota import (
    current_week_window,
    evaluate_eligibility,
    next_week_start,
    validate_practice_criteria,
)
from tafawoq.domain.subscription import SubscriptionTier
from tafawoq.infrastructure.exceptions import CriteriaExceedsLimitError, ValidationError


# 2026-03-04 is a Wednesday
WEDNESDAY = datetime(2026, 3, 4, 15, 30, tzinfo=timezone.utc)
SUNDAY_START = datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc)


class TestWeekWindow:
    """Weeks run Sunday 00:00 UTC to the next Sunday (exclusive)."""

    def test_midweek(self):
        start, end = current_week_window(WEDNESDAY)
        assert start == SUNDAY_START
        assert end == SUNDAY_START + timedelta(days=7)

    def test_sunday_midnight_starts_new_week(self):
        start, _ = current_week_window(SUNDAY_START)
        assert start == SUNDAY_START

    def test_saturday_last_microsecond_is_previous_week(self):
        moment = SUNDAY_START - timedelta(microseconds=1)
        start, end = current_week_window(moment)
        assert end == SUNDAY_START
        assert start == SUNDAY_START - timedelta(days=7)

    def test_non_utc_input_is_converted(self):
        # Sunday 01:00 in UTC+3 is still Saturday 22:00 UTC
        riyadh = timezone(timedelta(hours=3))
        moment = datetime(2026, 3, 1, 1, 0, tzinfo=riyadh)
        start, _ = current_week_window(moment)
        assert start == SUNDAY_START - timedelta(days=7)

    def test_naive_input_is_treated_as_utc(self):
        start, _ = current_week_window(WEDNESDAY.replace(tzinfo=None))
        assert start == SUNDAY_START

    def test_next_week_start(self):
        assert next_week_start(WEDNESDAY) == datetime(2026, 3, 8, tzinfo=timezone.utc)


class TestEligibility:
    """Exam and practice eligibility per tier."""

    def test_free_first_exam_allowed(self):
        result = evaluate_eligibility(SubscriptionTier.FREE, ContentKind.EXAM, 0, WEDNESDAY)

        assert result.eligible is True
        assert result.max_exams_per_week == 1
        assert result.next_available_at is None

    def test_free_second_exam_blocked_until_next_sunday(self):
        result = evaluate_eligibility(SubscriptionTier.FREE, ContentKind.EXAM, 1, WEDNESDAY)

        assert result.eligible is False
        assert result.exams_taken_this_week == 1
        assert result.next_available_at == datetime(2026, 3, 8, tzinfo=timezone.utc)
        assert "limit" in result.reason.lower()

    def test_premium_exams_unlimited(self):
        result = evaluate_eligibility(SubscriptionTier.PREMIUM, ContentKind.EXAM, 25, WEDNESDAY)

        assert result.eligible is True
        assert result.max_exams_per_week is None

    def test_practice_always_eligible(self):
        result = evaluate_eligibility(SubscriptionTier.FREE, ContentKind.PRACTICE, 5, WEDNESDAY)

        assert result.eligible is True
        assert result.practice_question_limit == 5


class TestPracticeCriteria:
    """Structure and tier-cap validation."""

    def _criteria(self, **overrides) -> PracticeCriteria:
        data = {
            "section": Section.QUANTITATIVE,
            "categories": [QuestionCategory.GEOMETRY],
            "difficulty": Difficulty.EASY,
            "question_count": 5,
        }
        data.update(overrides)
        return PracticeCriteria(**data)

    def test_valid_criteria_returns_categories(self):
        categories = validate_practice_criteria(self._criteria(), SubscriptionTier.FREE)
        assert categories == [QuestionCategory.GEOMETRY]

    def test_duplicate_categories_collapsed_in_order(self):
        criteria = self._criteria(categories=[
            QuestionCategory.GEOMETRY,
            QuestionCategory.BASIC_OPERATIONS,
            QuestionCategory.GEOMETRY,
        ])
        categories = validate_practice_criteria(criteria, SubscriptionTier.FREE)
        assert categories == [QuestionCategory.GEOMETRY, QuestionCategory.BASIC_OPERATIONS]

    def test_empty_categories_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_practice_criteria(self._criteria(categories=[]), SubscriptionTier.FREE)
        assert exc_info.value.details["field"] == "categories"

    def test_category_outside_section_rejected(self):
        criteria = self._criteria(categories=[QuestionCategory.ANALOGIES])
        with pytest.raises(ValidationError) as exc_info:
            validate_practice_criteria(criteria, SubscriptionTier.FREE)
        assert exc_info.value.details["invalid_categories"] == ["analogies"]

    def test_mixed_section_accepts_any_category(self):
        criteria = self._criteria(
            section=Section.MIXED,
            categories=[QuestionCategory.ANALOGIES, QuestionCategory.GEOMETRY],
        )
        assert len(validate_practice_criteria(criteria, SubscriptionTier.FREE)) == 2

    def test_zero_questions_rejected(self):
        with pytest.raises(ValidationError):
            validate_practice_criteria(self._criteria(question_count=0), SubscriptionTier.FREE)

    def test_free_tier_cap(self):
        with pytest.raises(CriteriaExceedsLimitError) as exc_info:
            validate_practice_criteria(self._criteria(question_count=6), SubscriptionTier.FREE)

        error = exc_info.value
        assert error.allowed == 5
        assert error.requested == 6
        assert error.status_code == 400

    def test_premium_cap_is_one_hundred(self):
        validate_practice_criteria(self._criteria(question_count=100), SubscriptionTier.PREMIUM)
        with pytest.raises(CriteriaExceedsLimitError):
            validate_practice_criteria(self._criteria(question_count=101), SubscriptionTier.PREMIUM)
