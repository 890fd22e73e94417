"""
Collaborator Interfaces.

============================================================
PURPOSE
============================================================
Contracts the moderation core consumes from the rest of the
application. None of these are implemented by the core itself:

- AccountDirectory: identity store (lookup, roles, lockout state)
- NotificationSender: user-facing notifications (best-effort)
- StationDirectory: station lookup and price updates
- FuelTypeCatalog: known fuel-type codes
- PhotoStorage: object storage for proposal photos

============================================================
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional


# ============================================================
# REFERENCE TYPES
# ============================================================

@dataclass(frozen=True)
class Account:
    """An account as seen by the moderation core."""
    id: str
    email: str
    user_name: str


@dataclass(frozen=True)
class StationRef:
    """A resolved station."""
    id: str
    brand_name: str
    street: str
    house_number: str
    city: str

    @property
    def label(self) -> str:
        return f"{self.brand_name}, {self.street} {self.house_number}, {self.city}"


@dataclass(frozen=True)
class FuelTypeRef:
    """A resolved fuel type."""
    id: str
    code: str
    name: str


# ============================================================
# ACCOUNT SUBSYSTEM
# ============================================================

class AccountDirectory(ABC):
    """Identity store."""

    @abstractmethod
    def find_user_by_email(self, email: str) -> Optional[Account]:
        """Resolve an account by email."""

    @abstractmethod
    def find_user_by_id(self, user_id: str) -> Optional[Account]:
        """Resolve an account by id."""

    @abstractmethod
    def is_in_role(self, user: Account, role: str) -> bool:
        """Check role membership."""

    @abstractmethod
    def set_lockout_until(self, user: Account, until: Optional[datetime]) -> bool:
        """Lock the account until a timestamp, or clear the lockout with None."""

    @abstractmethod
    def reset_failed_login_count(self, user: Account) -> bool:
        """Reset the failed-login counter."""

    @abstractmethod
    def is_locked_out(self, user: Account) -> bool:
        """Whether the account is currently locked out."""


# ============================================================
# NOTIFICATIONS
# ============================================================

class NotificationSender(ABC):
    """
    User-facing notifications.

    Every method returns False (or raises) on failure; callers treat
    delivery as best-effort.
    """

    @abstractmethod
    def send_ban_notification(
        self,
        user: Account,
        reason: str,
        until: datetime,
        admin_name: Optional[str] = None,
    ) -> bool:
        """Tell a user they were banned."""

    @abstractmethod
    def send_unlock_notification(self, user: Account, admin_name: Optional[str] = None) -> bool:
        """Tell a user an admin lifted their ban."""

    @abstractmethod
    def send_auto_unlock_notification(
        self,
        user: Account,
        reason: str,
        banned_at: datetime,
        banned_until: datetime,
    ) -> bool:
        """Tell a user their temporary ban expired."""

    @abstractmethod
    def send_proposal_status_notification(
        self,
        user: Account,
        accepted: bool,
        station: str,
        price: Decimal,
    ) -> bool:
        """Tell a user their price proposal was accepted or rejected."""


# ============================================================
# STATIONS, FUEL TYPES, PHOTOS
# ============================================================

class StationDirectory(ABC):
    """Station lookup and price application."""

    @abstractmethod
    def find_station(
        self,
        brand_name: str,
        street: str,
        house_number: str,
        city: str,
    ) -> Optional[StationRef]:
        """Resolve a station by brand and address."""

    @abstractmethod
    def apply_price(
        self,
        station_id: str,
        fuel_type_id: str,
        price: Decimal,
        valid_from: datetime,
    ) -> None:
        """Set the current price of a fuel at a station."""


class FuelTypeCatalog(ABC):
    """Known fuel types."""

    @abstractmethod
    def list_codes(self) -> List[str]:
        """All fuel-type codes, in catalog spelling."""

    @abstractmethod
    def find_by_code(self, code: str) -> Optional[FuelTypeRef]:
        """Resolve a fuel type by its exact code."""


class PhotoStorage(ABC):
    """Object storage for proposal photos."""

    @abstractmethod
    def upload(self, content: bytes, file_name: str, content_type: str, sub_path: str) -> str:
        """Store a photo and return its path/URL."""

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Delete a stored photo."""


__all__ = [
    "Account",
    "StationRef",
    "FuelTypeRef",
    "AccountDirectory",
    "NotificationSender",
    "StationDirectory",
    "FuelTypeCatalog",
    "PhotoStorage",
]
