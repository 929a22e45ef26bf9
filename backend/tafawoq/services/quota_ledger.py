"""
Quota Ledger

Answers "may this user start a session of this kind right now". Quota is
derived on every call from the subscription record and completed session
history; nothing is counted or stored separately.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from tafawoq.domain.content import ContentKind, Eligibility
from tafawoq.domain.interfaces import SessionStore, SubscriptionStore
from tafawoq.domain.quota import current_week_window, evaluate_eligibility
from tafawoq.domain.subscription import SubscriptionTier, effective_tier


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuotaLedger:
    """Eligibility checks backed by the subscription and session stores."""

    def __init__(
        self,
        subscriptions: SubscriptionStore,
        sessions: SessionStore,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._subscriptions = subscriptions
        self._sessions = sessions
        self._clock = clock

    async def effective_tier(self, user_id: str) -> SubscriptionTier:
        subscription = await self._subscriptions.get_or_create_free(user_id)
        return effective_tier(subscription)

    async def check_eligibility(
        self,
        user_id: str,
        kind: ContentKind,
        now: Optional[datetime] = None,
    ) -> Eligibility:
        """
        Check whether the user may start a session.

        Args:
            user_id: Authenticated user
            kind: Exam or practice
            now: Evaluation time (defaults to the ledger clock)

        Returns:
            Eligibility; next_available_at is set when ineligible
        """
        now = now or self._clock()
        tier = await self.effective_tier(user_id)

        completed = 0
        if kind == ContentKind.EXAM:
            window_start, window_end = current_week_window(now)
            completed = await self._sessions.count_completed(
                user_id, ContentKind.EXAM, window_start, window_end
            )

        eligibility = evaluate_eligibility(tier, kind, completed, now)
        if not eligibility.eligible:
            logger.info(
                f"User {user_id} not eligible for {kind.value}: {eligibility.reason}"
            )
        return eligibility
