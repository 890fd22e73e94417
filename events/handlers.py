"""
Default Event Subscribers.

Side effects that follow a committed transition:

- UserRegistered: create the user's empty proposal statistic
- UserBanned / UserUnlocked: notify the user, drop cached user views
- PriceProposalEvaluated: drop cached statistics and proposal lists,
  plus station views when a new price was applied

Every subscriber runs after the publishing transaction committed.
A failing subscriber is isolated by the dispatcher.
"""

import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from cache.service import CacheService
from core.clock import ClockFactory, ClockProtocol
from database.engine import transaction_scope
from database.persistence import get_or_create_statistic
from integrations.interfaces import NotificationSender

from .dispatcher import EventDispatcher
from .types import PriceProposalEvaluated, UserBanned, UserRegistered, UserUnlocked


logger = logging.getLogger(__name__)


def _sent(result: bool, kind: str, email: str) -> None:
    if result is False:
        logger.warning(f"{kind} notification was not delivered to {email}")


class DefaultEventHandlers:
    """Subscribers wired by register_default_handlers."""

    def __init__(
        self,
        cache: CacheService,
        notifier: NotificationSender,
        session_factory: sessionmaker,
        clock: Optional[ClockProtocol] = None,
    ):
        self._cache = cache
        self._notifier = notifier
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()

    # ---------------------------------------------------------
    # ACCOUNT EVENTS
    # ---------------------------------------------------------

    def on_user_registered(self, event: UserRegistered) -> None:
        with transaction_scope(self._session_factory) as session:
            get_or_create_statistic(
                session, event.user.id, event.user.user_name, self._clock.utcnow()
            )
        self._cache.invalidate_user_info()

    def on_user_banned(self, event: UserBanned) -> None:
        self._cache.invalidate_user_info(event.subject_user.email)
        _sent(
            self._notifier.send_ban_notification(
                event.subject_user, event.reason, event.until, event.admin.user_name
            ),
            "Ban",
            event.subject_user.email,
        )

    def on_user_unlocked(self, event: UserUnlocked) -> None:
        self._cache.invalidate_user_info(event.subject_user.email)
        _sent(
            self._notifier.send_unlock_notification(event.subject_user, event.admin.user_name),
            "Unlock",
            event.subject_user.email,
        )

    # ---------------------------------------------------------
    # PROPOSAL EVENTS
    # ---------------------------------------------------------

    def on_proposal_evaluated(self, event: PriceProposalEvaluated) -> None:
        self._cache.invalidate_user_stats(event.proposal.user_email)
        self._cache.invalidate_proposal_lists()
        if event.accepted:
            self._cache.invalidate_station_views()


def register_default_handlers(
    dispatcher: EventDispatcher,
    cache: CacheService,
    notifier: NotificationSender,
    session_factory: sessionmaker,
    clock: Optional[ClockProtocol] = None,
) -> DefaultEventHandlers:
    """Subscribe the default side effects to dispatcher."""
    handlers = DefaultEventHandlers(cache, notifier, session_factory, clock)

    dispatcher.subscribe(UserRegistered, handlers.on_user_registered)
    dispatcher.subscribe(UserBanned, handlers.on_user_banned)
    dispatcher.subscribe(UserUnlocked, handlers.on_user_unlocked)
    dispatcher.subscribe(PriceProposalEvaluated, handlers.on_proposal_evaluated)

    logger.info("Default event handlers registered")
    return handlers


__all__ = ["DefaultEventHandlers", "register_default_handlers"]
