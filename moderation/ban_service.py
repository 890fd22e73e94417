"""
Ban Lifecycle Service.

============================================================
PURPOSE
============================================================
Admin-triggered bans and unlocks, plus the expiration sweep
that lifts temporary bans once they are due.

STATE MODEL:
- BanRecord.is_active is the authoritative "user is banned" flag
- The account lockout is a projection of the active record,
  written in the same unit of work and recomputable through
  refresh_lockout()

ORDERING:
- Deactivate prior ban -> insert new ban -> apply lockout -> commit
- Commit -> invalidate caches -> publish event / notify
- Deactivation is a conditional update; the path that loses a
  race (admin unlock vs. sweep) applies no side effects
- A unit of work that fails after the account was written
  re-projects the lockout from the store

============================================================
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy.orm import sessionmaker

from cache.service import CacheExpiry, CacheKeys, CacheService
from core.clock import ClockProtocol, naive_utc
from core.constants import ADMIN_ROLE, PERMANENT_BAN_UNTIL
from core.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
)
from core.result import Result
from database.engine import transaction_scope
from database.models import BanRecord
from database.persistence import (
    deactivate_active_bans,
    deactivate_ban,
    find_active_ban,
    insert_ban_record,
    select_expired_ban_ids,
)
from events.dispatcher import EventDispatcher
from events.types import UserBanned, UserUnlocked
from integrations.interfaces import Account, AccountDirectory, NotificationSender
from scheduler.sweeper import SweepReport

from .base import LifecycleService, parse_request
from .schemas import BanInfoResponse, BanRecordResponse, LockoutRequest


logger = logging.getLogger(__name__)


class BanService(LifecycleService):
    """Ban state machine: issue, unlock, expire."""

    def __init__(
        self,
        session_factory: sessionmaker,
        accounts: AccountDirectory,
        notifier: NotificationSender,
        dispatcher: EventDispatcher,
        cache: CacheService,
        clock: Optional[ClockProtocol] = None,
        admin_role: str = ADMIN_ROLE,
    ):
        super().__init__(accounts, clock=clock, admin_role=admin_role)
        self._session_factory = session_factory
        self._notifier = notifier
        self._dispatcher = dispatcher
        self._cache = cache

    # =========================================================
    # LOCKOUT
    # =========================================================

    def lockout(
        self,
        admin_email: str,
        request: Union[LockoutRequest, dict],
    ) -> Result[BanRecordResponse]:
        """Ban a user for request.days days, or permanently when days is None."""
        return self._execute("ban user", self._lockout, admin_email, request)

    def _lockout(self, admin_email: str, request) -> Result[BanRecordResponse]:
        admin = self._resolve_admin(admin_email)
        request = parse_request(LockoutRequest, request)

        user = self._call("accounts", "find_user_by_email", self._accounts.find_user_by_email, request.target_email)
        if user is None:
            raise NotFoundError("User not found", resource="user", identifier=request.target_email)
        if self._is_admin(user):
            raise ForbiddenError("Administrators cannot be banned", context={"email": user.email})

        now = self._clock.utcnow()
        until = PERMANENT_BAN_UNTIL if request.days is None else now + timedelta(days=request.days)

        lockout_applied = False
        try:
            with transaction_scope(self._session_factory) as session:
                deactivate_active_bans(session, user.id, now, admin.id)
                record = insert_ban_record(
                    session,
                    user_id=user.id,
                    user_email=user.email,
                    reason=request.reason,
                    admin_id=admin.id,
                    banned_at=now,
                    banned_until=until,
                )
                self._apply("accounts", "set_lockout_until", self._accounts.set_lockout_until, user, until)
                lockout_applied = True
                response = BanRecordResponse.model_validate(record)
        except Exception:
            if lockout_applied:
                self._compensate_lockout(user)
            raise

        logger.info(
            f"User banned: user={user.email} admin={admin.email} "
            f"until={'permanent' if request.days is None else until.isoformat()}"
        )

        self._dispatcher.publish(
            UserBanned(
                subject_user=user,
                admin=admin,
                reason=request.reason,
                until=until,
                days=request.days,
            )
        )
        return Result.good("User banned successfully", data=response)

    # =========================================================
    # UNLOCK
    # =========================================================

    def unlock(self, admin_email: str, target_email: str) -> Result[None]:
        """Lift a user's ban before it expires."""
        return self._execute("unlock user", self._unlock, admin_email, target_email)

    def _unlock(self, admin_email: str, target_email: str) -> Result[None]:
        admin = self._resolve_admin(admin_email)

        if not target_email or not target_email.strip():
            raise BadRequestError("Target email is required", field="target_email")

        user = self._call("accounts", "find_user_by_email", self._accounts.find_user_by_email, target_email.strip())
        if user is None:
            raise NotFoundError("User not found", resource="user", identifier=target_email)
        if self._is_admin(user):
            raise ForbiddenError("Administrators cannot be unlocked", context={"email": user.email})

        now = self._clock.utcnow()

        lockout_cleared = False
        try:
            with transaction_scope(self._session_factory) as session:
                active = find_active_ban(session, user.id)
                locked_out = self._call("accounts", "is_locked_out", self._accounts.is_locked_out, user)

                if active is None and not locked_out:
                    raise BadRequestError("User is not locked out", field="target_email")

                if active is not None and not deactivate_ban(session, active.id, now, admin.id):
                    raise ConflictError("Ban was lifted concurrently", current_state="inactive")

                self._apply("accounts", "set_lockout_until", self._accounts.set_lockout_until, user, None)
                lockout_cleared = True
        except Exception:
            if lockout_cleared:
                self._compensate_lockout(user)
            raise

        logger.info(f"User unlocked: user={user.email} admin={admin.email}")

        self._dispatcher.publish(UserUnlocked(subject_user=user, admin=admin))
        return Result.good("User unlocked successfully")

    # =========================================================
    # BAN INFO
    # =========================================================

    def get_user_ban_info(self, email: str) -> Result[BanInfoResponse]:
        """Active ban of a user, as shown to that user."""
        return self._execute("get ban info", self._get_user_ban_info, email)

    def _get_user_ban_info(self, email: str) -> Result[BanInfoResponse]:
        if not email or not email.strip():
            raise UnauthorizedError("Caller is not authenticated")

        email = email.strip()
        user = self._call("accounts", "find_user_by_email", self._accounts.find_user_by_email, email)
        if user is None:
            raise NotFoundError("User not found", resource="user", identifier=email)

        def load():
            with transaction_scope(self._session_factory) as session:
                active = find_active_ban(session, user.id)
                if active is None:
                    return None
                admin = self._accounts.find_user_by_id(active.admin_id)
                return BanInfoResponse(
                    user_name=user.user_name,
                    reason=active.reason,
                    banned_at=active.banned_at,
                    banned_until=active.banned_until,
                    is_permanent=active.banned_until >= PERMANENT_BAN_UNTIL,
                    admin_name=admin.user_name if admin else None,
                ).model_dump(mode="json")

        data = self._cache.get_or_set(f"{CacheKeys.USER_BAN_PREFIX}{user.email}", load, CacheExpiry.SHORT)
        if data is None:
            raise NotFoundError("User has no active ban", resource="ban", identifier=email)

        return Result.good("Ban info retrieved", data=BanInfoResponse.model_validate(data))

    # =========================================================
    # LOCKOUT PROJECTION
    # =========================================================

    def refresh_lockout(self, user: Account) -> Optional[datetime]:
        """
        Recompute the account lockout from the active ban record.

        Returns:
            The lockout end written to the account, or None when cleared
        """
        with transaction_scope(self._session_factory) as session:
            active = find_active_ban(session, user.id)
            until = active.banned_until if active is not None else None

        self._apply("accounts", "set_lockout_until", self._accounts.set_lockout_until, user, until)
        logger.debug(f"Lockout refreshed: user={user.email} until={until}")
        return until

    def _compensate_lockout(self, user: Account) -> None:
        """The unit of work failed after the account was written; project it back from the store."""
        self._best_effort(f"Lockout compensation for {user.email}", self.refresh_lockout, user)

    # =========================================================
    # EXPIRATION SWEEP
    # =========================================================

    def expire_bans(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Lift every active ban whose banned_until is at or before now.

        Each record is its own unit of work. A record whose account
        calls fail stays active and is retried on the next tick.
        """
        now = naive_utc(now) if now is not None else self._clock.utcnow()
        report = SweepReport(name="ban-expiration", started_at=now)

        with transaction_scope(self._session_factory) as session:
            ban_ids = select_expired_ban_ids(session, now)

        report.selected = len(ban_ids)
        if not ban_ids:
            logger.debug("No expired bans to process")
            report.finished_at = self._clock.utcnow()
            return report

        for ban_id in ban_ids:
            try:
                if self._expire_ban(ban_id, now):
                    report.processed += 1
            except Exception as e:
                report.failed += 1
                logger.error(f"Failed to expire ban {ban_id}: {e}", exc_info=True)

        report.finished_at = self._clock.utcnow()
        logger.info(f"Ban expiration complete: {report.summary()}")
        return report

    def _expire_ban(self, ban_id: str, now: datetime) -> bool:
        user = None
        lockout_cleared = False
        try:
            with transaction_scope(self._session_factory) as session:
                record = session.get(BanRecord, ban_id)
                if record is None or not deactivate_ban(session, ban_id, now):
                    logger.debug(f"Ban {ban_id} already lifted, skipping")
                    return False

                user = self._accounts.find_user_by_id(record.user_id)
                if user is not None:
                    self._apply("accounts", "set_lockout_until", self._accounts.set_lockout_until, user, None)
                    lockout_cleared = True
                    self._apply(
                        "accounts",
                        "reset_failed_login_count",
                        self._accounts.reset_failed_login_count,
                        user,
                    )
                reason, banned_at, banned_until = record.reason, record.banned_at, record.banned_until
                email = record.user_email
        except Exception:
            if lockout_cleared:
                self._compensate_lockout(user)
            raise

        if user is None:
            logger.warning(f"Expired ban {ban_id} belongs to a missing account: {email}")
            self._cache.invalidate_user_info(email)
            return True

        logger.info(f"Ban expired: user={user.email} banned_until={banned_until}")
        self._cache.invalidate_user_info(user.email)
        self._best_effort(
            f"Auto-unlock notification for {user.email}",
            self._notifier.send_auto_unlock_notification,
            user,
            reason,
            banned_at,
            banned_until,
        )
        return True


__all__ = ["BanService"]
