"""
Domain Event Types.

Inert, immutable records of state transitions that already
happened. Events carry data only; every reaction lives in a
subscriber.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from integrations.interfaces import Account


# ============================================================
# SNAPSHOTS
# ============================================================

@dataclass(frozen=True)
class ProposalSnapshot:
    """State of a price proposal right after a transition was committed."""
    id: str
    token: str
    user_id: str
    user_email: str
    user_name: Optional[str]
    station_id: str
    station_label: Optional[str]
    fuel_type_id: str
    fuel_type_code: str
    proposed_price: Decimal
    status: str
    created_at: datetime
    reviewed_at: Optional[datetime]
    reviewed_by: Optional[str]

    @classmethod
    def from_model(cls, proposal) -> "ProposalSnapshot":
        return cls(
            id=proposal.id,
            token=proposal.token,
            user_id=proposal.user_id,
            user_email=proposal.user_email,
            user_name=proposal.user_name,
            station_id=proposal.station_id,
            station_label=proposal.station_label,
            fuel_type_id=proposal.fuel_type_id,
            fuel_type_code=proposal.fuel_type_code,
            proposed_price=Decimal(proposal.proposed_price),
            status=proposal.status,
            created_at=proposal.created_at,
            reviewed_at=proposal.reviewed_at,
            reviewed_by=proposal.reviewed_by,
        )


# ============================================================
# EVENTS
# ============================================================

@dataclass(frozen=True)
class UserBanned:
    subject_user: Account
    admin: Account
    reason: str
    until: datetime
    days: Optional[int] = None  # None for permanent bans


@dataclass(frozen=True)
class UserUnlocked:
    subject_user: Account
    admin: Account


@dataclass(frozen=True)
class PriceProposalEvaluated:
    """A proposal left pending. evaluating_admin is None when the expiration sweep rejected it."""
    proposal: ProposalSnapshot
    accepted: bool
    evaluating_admin: Optional[Account] = None


@dataclass(frozen=True)
class UserRegistered:
    user: Account


__all__ = [
    "ProposalSnapshot",
    "UserBanned",
    "UserUnlocked",
    "PriceProposalEvaluated",
    "UserRegistered",
]
