"""
Database Persistence Functions.

============================================================
QUERIES AND CONDITIONAL TRANSITIONS
============================================================

Every function:
- Works inside the caller's session (one unit of work)
- Logs structured output: "Persist table_name: ..."
- Lets SQLAlchemy errors propagate to transaction_scope

State transitions are conditional UPDATEs (WHERE is_active /
WHERE status = 'pending'). The returned row count tells the
caller whether it won the transition; only the winner applies
side effects.

============================================================
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .models import BanRecord, PriceProposal, ProposalStatistic, ProposalStatus

logger = logging.getLogger(__name__)


# =============================================================
# HELPER FUNCTIONS
# =============================================================

def _log_persistence(table_name: str, action: str, count: int, details: str = "") -> None:
    """Log persistence result in structured format."""
    if details:
        logger.info(f"Persist {table_name}: {action}={count} ({details})")
    else:
        logger.info(f"Persist {table_name}: {action}={count}")


# =============================================================
# 1. BAN RECORDS
# =============================================================

def find_active_ban(session: Session, user_id: str) -> Optional[BanRecord]:
    """Return the active ban of a user, if any."""
    stmt = select(BanRecord).where(
        BanRecord.user_id == user_id,
        BanRecord.is_active.is_(True),
    )
    return session.execute(stmt).scalars().first()


def deactivate_active_bans(
    session: Session,
    user_id: str,
    at: datetime,
    admin_id: Optional[str] = None,
) -> int:
    """
    Deactivate every active ban of a user.

    Returns:
        Number of records flipped to inactive
    """
    stmt = (
        update(BanRecord)
        .where(BanRecord.user_id == user_id, BanRecord.is_active.is_(True))
        .values(is_active=False, unbanned_at=at, unbanned_by_admin_id=admin_id)
        .execution_options(synchronize_session=False)
    )
    count = session.execute(stmt).rowcount or 0
    session.flush()
    if count:
        _log_persistence("ban_records", "deactivated", count, f"user={user_id}")
    return count


def deactivate_ban(
    session: Session,
    ban_id: str,
    at: datetime,
    admin_id: Optional[str] = None,
) -> bool:
    """
    Deactivate one ban only if it is still active.

    Returns:
        True when this call performed the transition
    """
    stmt = (
        update(BanRecord)
        .where(BanRecord.id == ban_id, BanRecord.is_active.is_(True))
        .values(is_active=False, unbanned_at=at, unbanned_by_admin_id=admin_id)
        .execution_options(synchronize_session=False)
    )
    won = (session.execute(stmt).rowcount or 0) == 1
    session.flush()
    return won


def insert_ban_record(
    session: Session,
    user_id: str,
    user_email: str,
    reason: str,
    admin_id: str,
    banned_at: datetime,
    banned_until: datetime,
) -> BanRecord:
    """Insert a new active ban record."""
    record = BanRecord(
        user_id=user_id,
        user_email=user_email,
        reason=reason,
        admin_id=admin_id,
        banned_at=banned_at,
        banned_until=banned_until,
        is_active=True,
    )
    session.add(record)
    session.flush()
    _log_persistence("ban_records", "inserted", 1, f"user={user_id} until={banned_until}")
    return record


def select_expired_ban_ids(session: Session, now: datetime) -> List[str]:
    """Ids of active bans whose banned_until is at or before now."""
    stmt = (
        select(BanRecord.id)
        .where(BanRecord.is_active.is_(True), BanRecord.banned_until <= now)
        .order_by(BanRecord.banned_until)
    )
    return list(session.execute(stmt).scalars())


# =============================================================
# 2. PRICE PROPOSALS
# =============================================================

def find_proposal_by_token(session: Session, token: str) -> Optional[PriceProposal]:
    stmt = select(PriceProposal).where(PriceProposal.token == token)
    return session.execute(stmt).scalars().first()


def insert_price_proposal(
    session: Session,
    token: str,
    user_id: str,
    user_email: str,
    user_name: Optional[str],
    station_id: str,
    station_label: Optional[str],
    fuel_type_id: str,
    fuel_type_code: str,
    proposed_price: Decimal,
    photo_url: Optional[str],
    created_at: datetime,
    proposal_id: Optional[str] = None,
) -> PriceProposal:
    """Insert a pending price proposal."""
    proposal = PriceProposal(
        token=token,
        user_id=user_id,
        user_email=user_email,
        user_name=user_name,
        station_id=station_id,
        station_label=station_label,
        fuel_type_id=fuel_type_id,
        fuel_type_code=fuel_type_code,
        proposed_price=proposed_price,
        photo_url=photo_url,
        status=ProposalStatus.PENDING.value,
        created_at=created_at,
    )
    if proposal_id:
        proposal.id = proposal_id
    session.add(proposal)
    session.flush()
    _log_persistence("price_proposals", "inserted", 1, f"station={station_id} fuel={fuel_type_code}")
    return proposal


def claim_proposal_transition(
    session: Session,
    proposal_id: str,
    status: ProposalStatus,
    at: datetime,
    reviewed_by: Optional[str] = None,
) -> bool:
    """
    Move a proposal out of pending only if it is still pending.

    Returns:
        True when this call performed the transition
    """
    stmt = (
        update(PriceProposal)
        .where(
            PriceProposal.id == proposal_id,
            PriceProposal.status == ProposalStatus.PENDING.value,
        )
        .values(status=status.value, reviewed_at=at, reviewed_by=reviewed_by)
        .execution_options(synchronize_session=False)
    )
    won = (session.execute(stmt).rowcount or 0) == 1
    session.flush()
    return won


def select_stale_proposal_ids(session: Session, cutoff: datetime) -> List[str]:
    """Ids of pending proposals created at or before cutoff."""
    stmt = (
        select(PriceProposal.id)
        .where(
            PriceProposal.status == ProposalStatus.PENDING.value,
            PriceProposal.created_at <= cutoff,
        )
        .order_by(PriceProposal.created_at)
    )
    return list(session.execute(stmt).scalars())


def list_pending_proposals(
    session: Session,
    offset: int,
    limit: int,
) -> Tuple[List[PriceProposal], int]:
    """One page of pending proposals, newest first, plus the total count."""
    pending = PriceProposal.status == ProposalStatus.PENDING.value
    total = session.execute(
        select(func.count()).select_from(PriceProposal).where(pending)
    ).scalar_one()
    stmt = (
        select(PriceProposal)
        .where(pending)
        .order_by(PriceProposal.created_at.desc(), PriceProposal.id)
        .offset(offset)
        .limit(limit)
    )
    return list(session.execute(stmt).scalars()), int(total)


def count_proposals_by_status(session: Session) -> Dict[str, int]:
    stmt = select(PriceProposal.status, func.count()).group_by(PriceProposal.status)
    counts = {status.value: 0 for status in ProposalStatus}
    for status, count in session.execute(stmt):
        counts[status] = int(count)
    return counts


# =============================================================
# 3. PROPOSAL STATISTICS
# =============================================================

def find_statistic(session: Session, user_id: str) -> Optional[ProposalStatistic]:
    stmt = select(ProposalStatistic).where(ProposalStatistic.user_id == user_id)
    return session.execute(stmt).scalars().first()


def get_or_create_statistic(
    session: Session,
    user_id: str,
    user_name: Optional[str],
    at: datetime,
) -> ProposalStatistic:
    """Return the statistic row of a user, creating an empty one if absent."""
    statistic = find_statistic(session, user_id)
    if statistic is None:
        statistic = ProposalStatistic(
            user_id=user_id,
            user_name=user_name,
            total_proposals=0,
            approved_proposals=0,
            rejected_proposals=0,
            accepted_rate=0,
            points=0,
            updated_at=at,
        )
        session.add(statistic)
        session.flush()
        _log_persistence("proposal_statistics", "inserted", 1, f"user={user_id}")
    return statistic


def record_evaluation(
    session: Session,
    user_id: str,
    user_name: Optional[str],
    accepted: bool,
    at: datetime,
) -> ProposalStatistic:
    """Count one evaluated proposal on the submitter's statistic."""
    statistic = get_or_create_statistic(session, user_id, user_name, at)
    statistic.record(accepted, at)
    session.flush()
    return statistic


def top_statistics(session: Session, limit: int) -> List[ProposalStatistic]:
    stmt = (
        select(ProposalStatistic)
        .where(ProposalStatistic.total_proposals > 0)
        .order_by(
            ProposalStatistic.points.desc(),
            ProposalStatistic.accepted_rate.desc(),
            ProposalStatistic.user_name,
        )
        .limit(limit)
    )
    return list(session.execute(stmt).scalars())


__all__ = [
    "find_active_ban",
    "deactivate_active_bans",
    "deactivate_ban",
    "insert_ban_record",
    "select_expired_ban_ids",
    "find_proposal_by_token",
    "insert_price_proposal",
    "claim_proposal_transition",
    "select_stale_proposal_ids",
    "list_pending_proposals",
    "count_proposals_by_status",
    "find_statistic",
    "get_or_create_statistic",
    "record_evaluation",
    "top_statistics",
]
