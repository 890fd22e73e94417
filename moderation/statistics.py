"""
Proposal Statistics Service.

Read side of the per-user proposal aggregates. All three views
are cached; the proposal evaluation subscribers and the submit
path invalidate them.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from cache.service import CacheExpiry, CacheKeys, CacheService
from core.clock import ClockProtocol
from core.constants import TOP_USERS_LIMIT
from core.exceptions import BadRequestError, NotFoundError, UnauthorizedError
from core.result import Result
from database.engine import transaction_scope
from database.persistence import count_proposals_by_status, find_statistic, top_statistics
from integrations.interfaces import AccountDirectory

from .base import LifecycleService
from .schemas import ProposalCountsResponse, ProposalStatisticResponse, TopUserResponse


logger = logging.getLogger(__name__)


class ProposalStatisticService(LifecycleService):
    """Per-user and global proposal statistics."""

    def __init__(
        self,
        session_factory: sessionmaker,
        accounts: AccountDirectory,
        cache: CacheService,
        clock: Optional[ClockProtocol] = None,
    ):
        super().__init__(accounts, clock=clock)
        self._session_factory = session_factory
        self._cache = cache

    def get_user_statistic(self, email: str) -> Result[ProposalStatisticResponse]:
        """Statistic of one user; all-zero when none of their proposals was evaluated yet."""
        return self._execute("get user statistics", self._get_user_statistic, email)

    def _get_user_statistic(self, email: str) -> Result[ProposalStatisticResponse]:
        if not email or not email.strip():
            raise UnauthorizedError("Caller is not authenticated")

        user = self._call("accounts", "find_user_by_email", self._accounts.find_user_by_email, email.strip())
        if user is None:
            raise NotFoundError("User not found", resource="user", identifier=email)

        def load():
            with transaction_scope(self._session_factory) as session:
                statistic = find_statistic(session, user.id)
                if statistic is not None:
                    return ProposalStatisticResponse.model_validate(statistic).model_dump(mode="json")
            return ProposalStatisticResponse(
                user_id=user.id,
                user_name=user.user_name,
                total_proposals=0,
                approved_proposals=0,
                rejected_proposals=0,
                accepted_rate=0,
                points=0,
                updated_at=self._clock.utcnow(),
            ).model_dump(mode="json")

        data = self._cache.get_or_set(f"{CacheKeys.USER_STATS_PREFIX}{user.email}", load)
        return Result.good("User statistics retrieved", data=ProposalStatisticResponse.model_validate(data))

    def get_top_users(self, limit: int = TOP_USERS_LIMIT) -> Result[List[TopUserResponse]]:
        """Users ranked by points, then acceptance rate."""
        return self._execute("get top users", self._get_top_users, limit)

    def _get_top_users(self, limit: int) -> Result[List[TopUserResponse]]:
        if limit < 1:
            raise BadRequestError("Limit must be at least 1", field="limit")

        def load():
            with transaction_scope(self._session_factory) as session:
                return [
                    TopUserResponse(
                        rank=rank,
                        user_name=s.user_name,
                        points=s.points,
                        accepted_rate=s.accepted_rate,
                        total_proposals=s.total_proposals,
                    ).model_dump(mode="json")
                    for rank, s in enumerate(top_statistics(session, limit), start=1)
                ]

        data = self._cache.get_or_set(f"{CacheKeys.TOP_USERS}:{limit}", load, CacheExpiry.LONG)
        return Result.good("Top users retrieved", data=[TopUserResponse.model_validate(d) for d in data])

    def get_global_counts(self) -> Result[ProposalCountsResponse]:
        """Number of proposals per status."""
        return self._execute("get proposal counts", self._get_global_counts)

    def _get_global_counts(self) -> Result[ProposalCountsResponse]:
        def load():
            with transaction_scope(self._session_factory) as session:
                counts = count_proposals_by_status(session)
            return ProposalCountsResponse(**counts).model_dump(mode="json")

        data = self._cache.get_or_set(CacheKeys.PROPOSAL_COUNTS, load, CacheExpiry.SHORT)
        return Result.good("Proposal counts retrieved", data=ProposalCountsResponse.model_validate(data))


__all__ = ["ProposalStatisticService"]
