"""
Pydantic Schemas for the Moderation Lifecycle Services.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def _required_text(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("must not be empty")
    return value


# =============================================================
# BAN REQUESTS / RESPONSES
# =============================================================

class LockoutRequest(BaseModel):
    """Ban a user. days=None issues a permanent ban."""
    target_email: str
    reason: str
    days: Optional[int] = Field(default=None, ge=1)

    @field_validator("target_email", "reason")
    @classmethod
    def not_blank(cls, v: str) -> str:
        return _required_text(v)


class BanRecordResponse(BaseModel):
    id: str
    user_id: str
    user_email: str
    reason: str
    admin_id: str
    banned_at: datetime
    banned_until: datetime
    is_active: bool
    unbanned_at: Optional[datetime] = None
    unbanned_by_admin_id: Optional[str] = None

    class Config:
        from_attributes = True


class BanInfoResponse(BaseModel):
    """Active ban as shown to the banned user."""
    user_name: str
    reason: str
    banned_at: datetime
    banned_until: datetime
    is_permanent: bool
    admin_name: Optional[str] = None


# =============================================================
# PROPOSAL REQUESTS / RESPONSES
# =============================================================

class PhotoUpload(BaseModel):
    file_name: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


class SubmitProposalRequest(BaseModel):
    brand_name: str
    street: str
    house_number: str
    city: str
    fuel_type_code: str
    proposed_price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    photo: PhotoUpload

    @field_validator("brand_name", "street", "house_number", "city", "fuel_type_code")
    @classmethod
    def not_blank(cls, v: str) -> str:
        return _required_text(v)


class ProposalResponse(BaseModel):
    token: str
    user_name: Optional[str] = None
    user_email: str
    station_id: str
    station_label: Optional[str] = None
    fuel_type_code: str
    proposed_price: Decimal
    photo_url: Optional[str] = None
    status: str
    created_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None

    class Config:
        from_attributes = True


class PagedResult(BaseModel):
    items: List[ProposalResponse]
    page_number: int
    page_size: int
    total_count: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total_count + self.page_size - 1) // self.page_size


# =============================================================
# STATISTICS
# =============================================================

class ProposalStatisticResponse(BaseModel):
    user_id: str
    user_name: Optional[str] = None
    total_proposals: int
    approved_proposals: int
    rejected_proposals: int
    accepted_rate: int
    points: int
    updated_at: datetime

    class Config:
        from_attributes = True


class TopUserResponse(BaseModel):
    rank: int
    user_name: Optional[str] = None
    points: int
    accepted_rate: int
    total_proposals: int


class ProposalCountsResponse(BaseModel):
    pending: int
    accepted: int
    rejected: int

    @property
    def total(self) -> int:
        return self.pending + self.accepted + self.rejected
