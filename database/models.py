"""
Moderation Database Models.

Tables:
- ban_records: one row per ban episode
- price_proposals: one row per user-submitted price correction
- proposal_statistics: per-user aggregate of evaluated proposals

Users, stations and fuel types live in external subsystems; rows
here reference them by their external identifiers only.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)

from database.engine import Base


def _new_id() -> str:
    return str(uuid.uuid4())


# =============================================================
# ENUMS
# =============================================================

class ProposalStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# =============================================================
# 1. BAN RECORDS TABLE
# =============================================================

class BanRecord(Base):
    """
    One ban episode.

    Never deleted. At most one active row per user (enforced by a
    partial unique index). unbanned_at is set iff is_active is false.
    """
    __tablename__ = "ban_records"

    id = Column(String(36), primary_key=True, default=_new_id)

    # Subject
    user_id = Column(String(36), nullable=False, index=True)
    user_email = Column(String(256), nullable=False)

    # Ban details
    reason = Column(Text, nullable=False)
    admin_id = Column(String(36), nullable=False)
    banned_at = Column(DateTime, nullable=False)
    banned_until = Column(DateTime, nullable=False)  # PERMANENT_BAN_UNTIL for permanent bans

    # Lifecycle
    is_active = Column(Boolean, nullable=False, default=True)
    unbanned_at = Column(DateTime, nullable=True)
    unbanned_by_admin_id = Column(String(36), nullable=True)  # null when expired by the sweep

    __table_args__ = (
        Index("idx_ban_records_active_until", "is_active", "banned_until"),
        Index(
            "uq_ban_records_active_user",
            "user_id",
            unique=True,
            sqlite_where=(is_active == True),  # noqa: E712
            postgresql_where=(is_active == True),  # noqa: E712
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<BanRecord id={self.id} user={self.user_email} "
            f"active={self.is_active} until={self.banned_until}>"
        )


# =============================================================
# 2. PRICE PROPOSALS TABLE
# =============================================================

class PriceProposal(Base):
    """
    A user-submitted price correction.

    Status moves one way: pending -> accepted | rejected.
    reviewed_at is set iff status is not pending.
    """
    __tablename__ = "price_proposals"

    id = Column(String(36), primary_key=True, default=_new_id)
    token = Column(String(64), nullable=False, unique=True, index=True)

    # Submitter
    user_id = Column(String(36), nullable=False, index=True)
    user_email = Column(String(256), nullable=False)
    user_name = Column(String(256), nullable=True)

    # Target
    station_id = Column(String(36), nullable=False, index=True)
    station_label = Column(String(512), nullable=True)  # brand, street and city for views
    fuel_type_id = Column(String(36), nullable=False)
    fuel_type_code = Column(String(32), nullable=False)

    # Proposal
    proposed_price = Column(Numeric(10, 2), nullable=False)
    photo_url = Column(String(1024), nullable=True)

    # Status tracking
    status = Column(String(20), nullable=False, default=ProposalStatus.PENDING.value, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(String(36), nullable=True)  # null when rejected by the sweep

    __table_args__ = (
        Index("idx_price_proposals_status_created", "status", "created_at"),
    )

    @property
    def is_pending(self) -> bool:
        return self.status == ProposalStatus.PENDING.value

    def __repr__(self) -> str:
        return f"<PriceProposal id={self.id} status={self.status} price={self.proposed_price}>"


# =============================================================
# 3. PROPOSAL STATISTICS TABLE
# =============================================================

class ProposalStatistic(Base):
    """
    Per-user aggregate, incremented whenever one of the user's
    proposals leaves pending.
    """
    __tablename__ = "proposal_statistics"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=False, unique=True)
    user_name = Column(String(256), nullable=True)

    total_proposals = Column(Integer, nullable=False, default=0)
    approved_proposals = Column(Integer, nullable=False, default=0)
    rejected_proposals = Column(Integer, nullable=False, default=0)
    accepted_rate = Column(Integer, nullable=False, default=0)  # integer percentage
    points = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def record(self, accepted: bool, at: datetime) -> None:
        """Count one evaluated proposal and recompute the acceptance rate."""
        self.total_proposals = (self.total_proposals or 0) + 1
        if accepted:
            self.approved_proposals = (self.approved_proposals or 0) + 1
            self.points = (self.points or 0) + 1
        else:
            self.rejected_proposals = (self.rejected_proposals or 0) + 1

        self.accepted_rate = (
            (self.approved_proposals or 0) * 100 // self.total_proposals
            if self.total_proposals
            else 0
        )
        self.updated_at = at
