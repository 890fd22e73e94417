"""
Moderation Lifecycle Package.

Transactional state machines for bans and price proposals, the
two expiration sweeps, and the proposal statistics read side.

Modules:
- schemas: pydantic request/response models
- base: caller resolution and the Result boundary
- ban_service: BanService (lockout, unlock, expire)
- proposal_service: ProposalService (submit, change status, expire)
- statistics: ProposalStatisticService

Usage:
    from moderation import BanService, ProposalService
"""

from moderation.schemas import (
    LockoutRequest,
    BanRecordResponse,
    BanInfoResponse,
    PhotoUpload,
    SubmitProposalRequest,
    ProposalResponse,
    PagedResult,
    ProposalStatisticResponse,
    TopUserResponse,
    ProposalCountsResponse,
)
from moderation.base import LifecycleService, parse_request
from moderation.ban_service import BanService
from moderation.proposal_service import ProposalService, generate_token
from moderation.statistics import ProposalStatisticService


__all__ = [
    "LockoutRequest",
    "BanRecordResponse",
    "BanInfoResponse",
    "PhotoUpload",
    "SubmitProposalRequest",
    "ProposalResponse",
    "PagedResult",
    "ProposalStatisticResponse",
    "TopUserResponse",
    "ProposalCountsResponse",
    "LifecycleService",
    "parse_request",
    "BanService",
    "ProposalService",
    "generate_token",
    "ProposalStatisticService",
]
