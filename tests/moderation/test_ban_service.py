"""
Tests for the ban lifecycle.

Tests cover:
- Lockout / unlock authorization and validation
- Ban record and account lockout kept in step
- Expiration sweep selectivity and idempotence
- End-to-end ban, sweep, expiry scenario
"""

from datetime import timedelta
from http import HTTPStatus
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from core.constants import PERMANENT_BAN_UNTIL
from database import BanRecord, persistence, transaction_scope
from events import UserBanned, UserUnlocked
from moderation import BanService, LockoutRequest

from tests.conftest import ADMIN_EMAIL, USER_EMAIL


def _bans(session_factory, user_id=None):
    with transaction_scope(session_factory) as session:
        stmt = select(BanRecord).order_by(BanRecord.banned_at)
        if user_id:
            stmt = stmt.where(BanRecord.user_id == user_id)
        return list(session.execute(stmt).scalars())


def _insert_ban(session_factory, user, admin, banned_at, banned_until, reason="spam"):
    with transaction_scope(session_factory) as session:
        record = BanRecord(
            user_id=user.id,
            user_email=user.email,
            reason=reason,
            admin_id=admin.id,
            banned_at=banned_at,
            banned_until=banned_until,
            is_active=True,
        )
        session.add(record)
        session.flush()
        return record.id


def _failing_commit(session_factory, on_session=1):
    """Session factory whose on_session-th session fails to commit."""
    opened = []

    def factory():
        session = session_factory()
        opened.append(session)
        if len(opened) == on_session:
            session.commit = MagicMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error")))
        return session

    return factory


@pytest.fixture
def ban_lifted_first(monkeypatch):
    """Another path deactivates the ban just before our conditional update."""
    real_deactivate = persistence.deactivate_ban

    def deactivate(session, ban_id, at, admin_id=None):
        real_deactivate(session, ban_id, at)
        return real_deactivate(session, ban_id, at, admin_id)

    monkeypatch.setattr("moderation.ban_service.deactivate_ban", deactivate)


# =============================================================
# TEST: Lockout
# =============================================================

class TestLockout:
    """Admin-issued bans."""

    def test_temporary_ban(self, ban_service, session_factory, accounts, clock, admin, user):
        """A 7-day ban persists one active record and locks the account."""
        result = ban_service.lockout(ADMIN_EMAIL, LockoutRequest(target_email=USER_EMAIL, reason="spam", days=7))

        assert result.is_success
        assert result.status_code == HTTPStatus.OK
        assert result.data.is_active is True
        assert result.data.banned_until == clock.utcnow() + timedelta(days=7)

        bans = _bans(session_factory, user.id)
        assert len(bans) == 1
        assert bans[0].admin_id == admin.id
        assert accounts.lockout_of(user) == clock.utcnow() + timedelta(days=7)
        assert accounts.is_locked_out(user)

    def test_permanent_ban_uses_sentinel(self, ban_service, accounts, user, admin):
        result = ban_service.lockout(ADMIN_EMAIL, {"target_email": USER_EMAIL, "reason": "fraud"})

        assert result.is_success
        assert result.data.banned_until == PERMANENT_BAN_UNTIL
        assert accounts.lockout_of(user) == PERMANENT_BAN_UNTIL

    def test_new_ban_replaces_active_one(self, ban_service, session_factory, clock, user, admin):
        ban_service.lockout(ADMIN_EMAIL, {"target_email": USER_EMAIL, "reason": "spam", "days": 1})
        clock.advance(hours=1)
        ban_service.lockout(ADMIN_EMAIL, {"target_email": USER_EMAIL, "reason": "again", "days": 3})

        bans = _bans(session_factory, user.id)
        assert [b.is_active for b in bans] == [False, True]
        assert bans[0].unbanned_at == clock.utcnow()
        assert bans[1].reason == "again"

    def test_publishes_user_banned_once(self, session_factory, accounts, notifier, cache, clock, admin, user):
        dispatcher = MagicMock()
        service = BanService(session_factory, accounts, notifier, dispatcher, cache, clock=clock)

        service.lockout(ADMIN_EMAIL, {"target_email": USER_EMAIL, "reason": "spam", "days": 7})

        dispatcher.publish.assert_called_once()
        event = dispatcher.publish.call_args.args[0]
        assert isinstance(event, UserBanned)
        assert event.subject_user == user
        assert event.admin == admin
        assert event.days == 7

    def test_non_admin_is_rejected_without_mutation(self, ban_service, session_factory, accounts, user):
        other = accounts.add_user("other@fuelwatch.test")

        result = ban_service.lockout(other.email, {"target_email": USER_EMAIL, "reason": "spam", "days": 1})

        assert not result.is_success
        assert result.status_code == HTTPStatus.FORBIDDEN
        assert _bans(session_factory) == []
        assert accounts.lockout_calls == []

    def test_unknown_caller_is_unauthorized(self, ban_service, user):
        result = ban_service.lockout("nobody@fuelwatch.test", {"target_email": USER_EMAIL, "reason": "x", "days": 1})

        assert result.status_code == HTTPStatus.UNAUTHORIZED

    def test_caller_is_checked_before_payload(self, ban_service, accounts, user):
        other = accounts.add_user("other@fuelwatch.test")
        malformed = {"target_email": "", "reason": " ", "days": 0}

        assert ban_service.lockout(other.email, malformed).status_code == HTTPStatus.FORBIDDEN
        assert ban_service.lockout("nobody@fuelwatch.test", malformed).status_code == HTTPStatus.UNAUTHORIZED

    def test_unknown_target_is_not_found(self, ban_service, admin):
        result = ban_service.lockout(ADMIN_EMAIL, {"target_email": "ghost@fuelwatch.test", "reason": "x", "days": 1})

        assert result.status_code == HTTPStatus.NOT_FOUND

    @pytest.mark.parametrize(
        "payload",
        [
            {"target_email": USER_EMAIL, "reason": "   ", "days": 1},
            {"target_email": "", "reason": "spam", "days": 1},
            {"target_email": USER_EMAIL, "reason": "spam", "days": 0},
        ],
    )
    def test_invalid_request_is_bad_request(self, ban_service, session_factory, admin, user, payload):
        result = ban_service.lockout(ADMIN_EMAIL, payload)

        assert result.status_code == HTTPStatus.BAD_REQUEST
        assert result.errors
        assert _bans(session_factory) == []

    def test_admins_cannot_be_banned(self, ban_service, accounts, admin):
        accounts.add_user("second-admin@fuelwatch.test", roles={"Admin"})

        result = ban_service.lockout(ADMIN_EMAIL, {"target_email": "second-admin@fuelwatch.test", "reason": "x"})

        assert result.status_code == HTTPStatus.FORBIDDEN

    def test_account_failure_rolls_back_record(self, ban_service, session_factory, accounts, admin, user):
        accounts.set_lockout_until = MagicMock(side_effect=RuntimeError("identity store down"))

        result = ban_service.lockout(ADMIN_EMAIL, {"target_email": USER_EMAIL, "reason": "spam", "days": 1})

        assert result.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
        assert _bans(session_factory) == []


# =============================================================
# TEST: Unlock
# =============================================================

class TestUnlock:
    """Admin-lifted bans."""

    def test_unlock_clears_record_and_lockout(self, ban_service, session_factory, accounts, notifier, clock, admin, user):
        ban_service.lockout(ADMIN_EMAIL, {"target_email": USER_EMAIL, "reason": "spam", "days": 7})
        clock.advance(hours=2)

        result = ban_service.unlock(ADMIN_EMAIL, USER_EMAIL)

        assert result.is_success
        ban = _bans(session_factory, user.id)[0]
        assert ban.is_active is False
        assert ban.unbanned_at == clock.utcnow()
        assert ban.unbanned_by_admin_id == admin.id
        assert accounts.lockout_of(user) is None
        assert len(notifier.of_kind("unlock")) == 1

    def test_unlock_publishes_event(self, session_factory, accounts, notifier, cache, clock, admin, user):
        dispatcher = MagicMock()
        service = BanService(session_factory, accounts, notifier, dispatcher, cache, clock=clock)
        service.lockout(ADMIN_EMAIL, {"target_email": USER_EMAIL, "reason": "spam", "days": 7})
        dispatcher.reset_mock()

        service.unlock(ADMIN_EMAIL, USER_EMAIL)

        event = dispatcher.publish.call_args.args[0]
        assert isinstance(event, UserUnlocked)
        assert event.subject_user == user

    def test_not_locked_out_is_bad_request(self, ban_service, admin, user):
        result = ban_service.unlock(ADMIN_EMAIL, USER_EMAIL)

        assert result.status_code == HTTPStatus.BAD_REQUEST
        assert result.message == "User is not locked out"

    def test_lockout_without_record_is_cleared(self, ban_service, accounts, clock, admin, user):
        accounts.set_lockout_until(user, clock.utcnow() + timedelta(days=1))

        result = ban_service.unlock(ADMIN_EMAIL, USER_EMAIL)

        assert result.is_success
        assert accounts.lockout_of(user) is None

    def test_non_admin_cannot_unlock(self, ban_service, accounts, session_factory, admin, user):
        ban_service.lockout(ADMIN_EMAIL, {"target_email": USER_EMAIL, "reason": "spam", "days": 7})
        other = accounts.add_user("other@fuelwatch.test")

        result = ban_service.unlock(other.email, USER_EMAIL)

        assert result.status_code == HTTPStatus.FORBIDDEN
        assert _bans(session_factory, user.id)[0].is_active is True

    def test_unknown_target(self, ban_service, admin):
        assert ban_service.unlock(ADMIN_EMAIL, "ghost@fuelwatch.test").status_code == HTTPStatus.NOT_FOUND

    @pytest.mark.parametrize("days", [7, None])
    def test_commit_failure_keeps_account_locked(self, ban_service, session_factory, accounts, notifier, cache,
                                                 clock, admin, user, days):
        ban_service.lockout(ADMIN_EMAIL, {"target_email": USER_EMAIL, "reason": "spam", "days": days})
        until = accounts.lockout_of(user)
        dispatcher = MagicMock()
        service = BanService(_failing_commit(session_factory), accounts, notifier, dispatcher, cache, clock=clock)

        result = service.unlock(ADMIN_EMAIL, USER_EMAIL)

        assert result.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
        assert [ban.is_active for ban in _bans(session_factory, user.id)] == [True]
        assert accounts.is_locked_out(user)
        assert accounts.lockout_of(user) == until
        dispatcher.publish.assert_not_called()

    def test_losing_race_to_sweep_is_conflict(self, session_factory, accounts, notifier, cache, clock, admin, user,
                                              ban_lifted_first):
        dispatcher = MagicMock()
        service = BanService(session_factory, accounts, notifier, dispatcher, cache, clock=clock)
        service.lockout(ADMIN_EMAIL, {"target_email": USER_EMAIL, "reason": "spam", "days": 7})
        accounts.lockout_calls.clear()
        dispatcher.reset_mock()

        result = service.unlock(ADMIN_EMAIL, USER_EMAIL)

        assert result.status_code == HTTPStatus.CONFLICT
        assert accounts.lockout_calls == []
        assert accounts.is_locked_out(user)
        dispatcher.publish.assert_not_called()
        assert notifier.of_kind("unlock") == []


# =============================================================
# TEST: Ban Info
# =============================================================

class TestBanInfo:

    def test_active_ban_info(self, ban_service, admin, user):
        ban_service.lockout(ADMIN_EMAIL, {"target_email": USER_EMAIL, "reason": "spam", "days": 7})

        result = ban_service.get_user_ban_info(USER_EMAIL)

        assert result.is_success
        assert result.data.reason == "spam"
        assert result.data.admin_name == "Admin"
        assert result.data.is_permanent is False

    def test_no_active_ban_is_not_found(self, ban_service, user):
        assert ban_service.get_user_ban_info(USER_EMAIL).status_code == HTTPStatus.NOT_FOUND

    def test_empty_email_is_unauthorized(self, ban_service):
        assert ban_service.get_user_ban_info("").status_code == HTTPStatus.UNAUTHORIZED

    def test_cached_info_is_dropped_after_unlock(self, ban_service, admin, user):
        ban_service.lockout(ADMIN_EMAIL, {"target_email": USER_EMAIL, "reason": "spam", "days": 7})
        assert ban_service.get_user_ban_info(USER_EMAIL).is_success

        ban_service.unlock(ADMIN_EMAIL, USER_EMAIL)

        assert ban_service.get_user_ban_info(USER_EMAIL).status_code == HTTPStatus.NOT_FOUND


# =============================================================
# TEST: Expiration Sweep
# =============================================================

class TestExpireBans:
    """Sweep-driven expiry."""

    def test_future_ban_is_untouched(self, ban_service, session_factory, accounts, clock, admin, user):
        now = clock.utcnow()
        _insert_ban(session_factory, user, admin, now - timedelta(days=1), now + timedelta(days=1))

        report = ban_service.expire_bans()

        assert report.selected == 0
        ban = _bans(session_factory, user.id)[0]
        assert ban.is_active is True
        assert ban.unbanned_at is None
        assert accounts.lockout_calls == []

    def test_due_ban_is_lifted_once(self, ban_service, session_factory, accounts, notifier, clock, admin, user):
        now = clock.utcnow()
        _insert_ban(session_factory, user, admin, now - timedelta(days=8), now - timedelta(days=1))
        accounts.set_lockout_until(user, now - timedelta(days=1))
        accounts.record_failed_login(user)
        accounts.lockout_calls.clear()

        report = ban_service.expire_bans()

        assert (report.selected, report.processed, report.failed) == (1, 1, 0)
        ban = _bans(session_factory, user.id)[0]
        assert ban.is_active is False
        assert ban.unbanned_at <= now
        assert ban.unbanned_by_admin_id is None
        assert accounts.lockout_calls == [(user.id, None)]
        assert accounts.reset_calls == [user.id]
        assert accounts.failed_login_count(user) == 0
        assert len(notifier.of_kind("auto_unlock")) == 1

    def test_second_sweep_has_no_effect(self, ban_service, session_factory, accounts, notifier, clock, admin, user):
        now = clock.utcnow()
        _insert_ban(session_factory, user, admin, now - timedelta(days=8), now - timedelta(days=1))

        ban_service.expire_bans()
        report = ban_service.expire_bans()

        assert report.selected == 0
        assert len(accounts.reset_calls) == 1
        assert len(notifier.of_kind("auto_unlock")) == 1

    def test_permanent_ban_never_expires(self, ban_service, session_factory, clock, admin, user):
        _insert_ban(session_factory, user, admin, clock.utcnow(), PERMANENT_BAN_UNTIL)

        assert ban_service.expire_bans(clock.utcnow() + timedelta(days=3650)).selected == 0

    def test_account_failure_keeps_record_for_retry(self, ban_service, session_factory, accounts, clock, admin, user):
        now = clock.utcnow()
        _insert_ban(session_factory, user, admin, now - timedelta(days=8), now - timedelta(days=1))
        accounts.reset_failed_login_count = MagicMock(side_effect=RuntimeError("identity store down"))

        report = ban_service.expire_bans()

        assert report.failed == 1
        assert _bans(session_factory, user.id)[0].is_active is True

    def test_one_failing_record_does_not_stop_the_sweep(self, ban_service, session_factory, accounts, clock, admin, user):
        other = accounts.add_user("other@fuelwatch.test")
        now = clock.utcnow()
        _insert_ban(session_factory, user, admin, now - timedelta(days=9), now - timedelta(days=2))
        _insert_ban(session_factory, other, admin, now - timedelta(days=8), now - timedelta(days=1))

        real_reset = accounts.reset_failed_login_count

        def flaky_reset(account):
            if account.id == user.id:
                raise RuntimeError("identity store down")
            return real_reset(account)

        accounts.reset_failed_login_count = flaky_reset

        report = ban_service.expire_bans()

        assert (report.selected, report.processed, report.failed) == (2, 1, 1)
        assert _bans(session_factory, other.id)[0].is_active is False

    def test_notification_failure_does_not_fail_expiry(self, ban_service, session_factory, notifier, clock, admin, user):
        now = clock.utcnow()
        _insert_ban(session_factory, user, admin, now - timedelta(days=8), now - timedelta(days=1))
        notifier.send_auto_unlock_notification = MagicMock(side_effect=RuntimeError("smtp down"))

        report = ban_service.expire_bans()

        assert report.processed == 1
        assert _bans(session_factory, user.id)[0].is_active is False

    def test_commit_failure_restores_lockout_for_retry(self, ban_service, session_factory, accounts, notifier, cache,
                                                       clock, admin, user):
        now = clock.utcnow()
        banned_until = now - timedelta(days=1)
        _insert_ban(session_factory, user, admin, now - timedelta(days=8), banned_until)
        accounts.set_lockout_until(user, banned_until)
        service = BanService(
            _failing_commit(session_factory, on_session=2), accounts, notifier, MagicMock(), cache, clock=clock
        )

        report = service.expire_bans()

        assert (report.selected, report.processed, report.failed) == (1, 0, 1)
        assert _bans(session_factory, user.id)[0].is_active is True
        assert accounts.lockout_of(user) == banned_until
        assert notifier.of_kind("auto_unlock") == []

        assert ban_service.expire_bans().processed == 1
        assert accounts.lockout_of(user) is None

    def test_ban_lifted_concurrently_is_skipped(self, ban_service, session_factory, accounts, notifier, clock,
                                                admin, user, ban_lifted_first):
        now = clock.utcnow()
        _insert_ban(session_factory, user, admin, now - timedelta(days=8), now - timedelta(days=1))

        report = ban_service.expire_bans()

        assert (report.selected, report.processed, report.failed) == (1, 0, 0)
        assert report.skipped == 1
        assert accounts.lockout_calls == []
        assert accounts.reset_calls == []
        assert notifier.of_kind("auto_unlock") == []


# =============================================================
# TEST: Lockout Projection
# =============================================================

class TestRefreshLockout:

    def test_projects_active_record(self, ban_service, session_factory, accounts, clock, admin, user):
        until = clock.utcnow() + timedelta(days=2)
        _insert_ban(session_factory, user, admin, clock.utcnow(), until)

        assert ban_service.refresh_lockout(user) == until
        assert accounts.lockout_of(user) == until

    def test_clears_lockout_without_record(self, ban_service, accounts, clock, user):
        accounts.set_lockout_until(user, clock.utcnow() + timedelta(days=2))

        assert ban_service.refresh_lockout(user) is None
        assert accounts.lockout_of(user) is None


# =============================================================
# TEST: End-to-End
# =============================================================

class TestBanScenario:

    def test_seven_day_ban_then_expiry(self, session_factory, accounts, notifier, cache, clock, admin, user):
        dispatcher = MagicMock()
        service = BanService(session_factory, accounts, notifier, dispatcher, cache, clock=clock)
        banned_at = clock.utcnow()

        result = service.lockout(ADMIN_EMAIL, {"target_email": USER_EMAIL, "reason": "spam", "days": 7})

        assert result.is_success
        active = [b for b in _bans(session_factory, user.id) if b.is_active]
        assert len(active) == 1
        assert accounts.lockout_of(user) == banned_at + timedelta(days=7)
        assert dispatcher.publish.call_count == 1

        service.expire_bans()
        assert _bans(session_factory, user.id)[0].is_active is True

        clock.advance(days=7, seconds=1)
        report = service.expire_bans()

        ban = _bans(session_factory, user.id)[0]
        assert report.processed == 1
        assert ban.is_active is False
        assert ban.unbanned_at == clock.utcnow()
        assert accounts.lockout_of(user) is None
        assert not accounts.is_locked_out(user)
