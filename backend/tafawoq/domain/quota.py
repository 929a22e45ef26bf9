"""
Quota Rules

Pure eligibility and criteria checks. Quota state is never stored; it is
derived from completed session history and the user's effective tier.

Weeks are UTC calendar weeks running Sunday 00:00:00 through Saturday
23:59:59.999999.
"""

from datetime import datetime, timedelta, timezone

from tafawoq.domain.content import (
    ContentKind,
    Eligibility,
    PracticeCriteria,
    QuestionCategory,
    get_categories_by_section,
)
from tafawoq.domain.subscription import SubscriptionTier, get_tier_limits
from tafawoq.infrastructure.exceptions import CriteriaExceedsLimitError, ValidationError


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def current_week_window(now: datetime) -> tuple[datetime, datetime]:
    """
    UTC week containing ``now``.

    Returns:
        (start, end) where start is Sunday 00:00 UTC and end is the next
        Sunday 00:00 UTC (exclusive)
    """
    now = as_utc(now)
    # Monday=0 ... Sunday=6, so days since Sunday is (weekday + 1) % 7
    days_since_sunday = (now.weekday() + 1) % 7
    start = (now - timedelta(days=days_since_sunday)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    return start, start + timedelta(days=7)


def next_week_start(now: datetime) -> datetime:
    return current_week_window(now)[1]


def evaluate_eligibility(
    tier: SubscriptionTier,
    kind: ContentKind,
    completed_exams_this_week: int,
    now: datetime,
) -> Eligibility:
    """
    Decide whether a session of ``kind`` may start.

    Args:
        tier: Effective tier (premium only with premium access)
        kind: Requested content kind
        completed_exams_this_week: Completed exams started in the current UTC week
        now: Evaluation time

    Returns:
        Eligibility with next_available_at set when ineligible
    """
    limits = get_tier_limits(tier)
    base = {
        "kind": kind,
        "tier": tier,
        "exams_taken_this_week": completed_exams_this_week,
        "max_exams_per_week": limits.exams_per_week,
        "practice_question_limit": limits.practice_question_limit,
    }

    if kind == ContentKind.PRACTICE or limits.exams_per_week is None:
        return Eligibility(eligible=True, **base)

    if completed_exams_this_week < limits.exams_per_week:
        return Eligibility(eligible=True, **base)

    return Eligibility(
        eligible=False,
        reason=(
            f"Weekly exam limit reached ({limits.exams_per_week} per week on the "
            f"{tier.value} tier)"
        ),
        next_available_at=next_week_start(now),
        **base,
    )


def validate_practice_criteria(
    criteria: PracticeCriteria,
    tier: SubscriptionTier,
) -> list[QuestionCategory]:
    """
    Validate practice criteria against structure and tier caps.

    Returns:
        The requested categories, de-duplicated in request order

    Raises:
        ValidationError: malformed criteria
        CriteriaExceedsLimitError: question count above the tier cap
    """
    categories: list[QuestionCategory] = []
    for category in criteria.categories:
        if category not in categories:
            categories.append(category)

    if not categories:
        raise ValidationError("At least one category is required", {"field": "categories"})

    allowed = set(get_categories_by_section(criteria.section))
    outside = [c.value for c in categories if c not in allowed]
    if outside:
        raise ValidationError(
            f"Categories do not belong to section {criteria.section.value}",
            {"field": "categories", "invalid_categories": outside},
        )

    if criteria.question_count < 1:
        raise ValidationError(
            "question_count must be at least 1",
            {"field": "question_count", "requested": criteria.question_count},
        )

    limit = get_tier_limits(tier).practice_question_limit
    if criteria.question_count > limit:
        raise CriteriaExceedsLimitError(
            allowed=limit,
            requested=criteria.question_count,
            tier=tier.value,
        )

    return categories
