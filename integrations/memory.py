"""
In-Memory Collaborators.

Process-local implementations of the collaborator interfaces.
Used by the development entry point and by the test suite; they
keep every call observable (lockout history, sent notifications,
applied prices, stored photos).
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from core.clock import ClockFactory, ClockProtocol

from .interfaces import (
    Account,
    AccountDirectory,
    FuelTypeCatalog,
    FuelTypeRef,
    NotificationSender,
    PhotoStorage,
    StationDirectory,
    StationRef,
)


logger = logging.getLogger(__name__)


# ============================================================
# ACCOUNTS
# ============================================================

@dataclass
class _AccountState:
    account: Account
    roles: Set[str] = field(default_factory=set)
    lockout_until: Optional[datetime] = None
    failed_login_count: int = 0


class InMemoryAccountDirectory(AccountDirectory):
    """Account store kept in a dict."""

    def __init__(self, clock: Optional[ClockProtocol] = None):
        self._clock = clock or ClockFactory.get_clock()
        self._by_email: Dict[str, _AccountState] = {}
        self._lock = threading.Lock()
        self.lockout_calls: List[Tuple[str, Optional[datetime]]] = []
        self.reset_calls: List[str] = []

    def add_user(
        self,
        email: str,
        user_name: Optional[str] = None,
        roles: Optional[Set[str]] = None,
        user_id: Optional[str] = None,
    ) -> Account:
        account = Account(
            id=user_id or str(uuid.uuid4()),
            email=email,
            user_name=user_name or email.split("@")[0],
        )
        with self._lock:
            self._by_email[email.lower()] = _AccountState(account=account, roles=set(roles or ()))
        return account

    def record_failed_login(self, user: Account) -> None:
        with self._lock:
            self._state(user).failed_login_count += 1

    def lockout_of(self, user: Account) -> Optional[datetime]:
        with self._lock:
            return self._state(user).lockout_until

    def failed_login_count(self, user: Account) -> int:
        with self._lock:
            return self._state(user).failed_login_count

    def _state(self, user: Account) -> _AccountState:
        return self._by_email[user.email.lower()]

    # ---------------------------------------------------------
    # AccountDirectory
    # ---------------------------------------------------------

    def find_user_by_email(self, email: str) -> Optional[Account]:
        with self._lock:
            state = self._by_email.get((email or "").lower())
            return state.account if state else None

    def find_user_by_id(self, user_id: str) -> Optional[Account]:
        with self._lock:
            for state in self._by_email.values():
                if state.account.id == user_id:
                    return state.account
        return None

    def is_in_role(self, user: Account, role: str) -> bool:
        with self._lock:
            return role in self._state(user).roles

    def set_lockout_until(self, user: Account, until: Optional[datetime]) -> bool:
        with self._lock:
            self._state(user).lockout_until = until
            self.lockout_calls.append((user.id, until))
        return True

    def reset_failed_login_count(self, user: Account) -> bool:
        with self._lock:
            self._state(user).failed_login_count = 0
            self.reset_calls.append(user.id)
        return True

    def is_locked_out(self, user: Account) -> bool:
        with self._lock:
            until = self._state(user).lockout_until
        return until is not None and until > self._clock.utcnow()


# ============================================================
# NOTIFICATIONS
# ============================================================

@dataclass
class SentNotification:
    kind: str
    email: str
    details: Dict[str, object]


class RecordingNotificationSender(NotificationSender):
    """Keeps every notification in a list instead of delivering it."""

    def __init__(self):
        self.sent: List[SentNotification] = []
        self._lock = threading.Lock()

    def _record(self, kind: str, user: Account, **details) -> bool:
        with self._lock:
            self.sent.append(SentNotification(kind=kind, email=user.email, details=details))
        logger.info(f"Notification {kind} queued for {user.email}")
        return True

    def of_kind(self, kind: str) -> List[SentNotification]:
        with self._lock:
            return [n for n in self.sent if n.kind == kind]

    def send_ban_notification(self, user, reason, until, admin_name=None) -> bool:
        return self._record("ban", user, reason=reason, until=until, admin_name=admin_name)

    def send_unlock_notification(self, user, admin_name=None) -> bool:
        return self._record("unlock", user, admin_name=admin_name)

    def send_auto_unlock_notification(self, user, reason, banned_at, banned_until) -> bool:
        return self._record(
            "auto_unlock", user, reason=reason, banned_at=banned_at, banned_until=banned_until
        )

    def send_proposal_status_notification(self, user, accepted, station, price) -> bool:
        return self._record("proposal_status", user, accepted=accepted, station=station, price=price)


# ============================================================
# STATIONS AND FUEL TYPES
# ============================================================

class InMemoryStationDirectory(StationDirectory):
    """Stations keyed by (brand, street, house number, city), case-insensitive."""

    def __init__(self):
        self._stations: Dict[Tuple[str, str, str, str], StationRef] = {}
        self.prices: Dict[Tuple[str, str], Tuple[Decimal, datetime]] = {}

    @staticmethod
    def _key(brand_name, street, house_number, city) -> Tuple[str, str, str, str]:
        return tuple((part or "").strip().lower() for part in (brand_name, street, house_number, city))

    def add_station(self, brand_name: str, street: str, house_number: str, city: str) -> StationRef:
        station = StationRef(
            id=str(uuid.uuid4()),
            brand_name=brand_name,
            street=street,
            house_number=house_number,
            city=city,
        )
        self._stations[self._key(brand_name, street, house_number, city)] = station
        return station

    def find_station(self, brand_name, street, house_number, city) -> Optional[StationRef]:
        return self._stations.get(self._key(brand_name, street, house_number, city))

    def apply_price(self, station_id, fuel_type_id, price, valid_from) -> None:
        self.prices[(station_id, fuel_type_id)] = (price, valid_from)
        logger.info(f"Applied price {price} for fuel {fuel_type_id} at station {station_id}")


class InMemoryFuelTypeCatalog(FuelTypeCatalog):
    """Fuel types kept in a dict keyed by code."""

    def __init__(self, fuel_types: Optional[Dict[str, str]] = None):
        self._by_code: Dict[str, FuelTypeRef] = {}
        for code, name in (fuel_types or {}).items():
            self.add_fuel_type(code, name)

    def add_fuel_type(self, code: str, name: str) -> FuelTypeRef:
        ref = FuelTypeRef(id=str(uuid.uuid4()), code=code, name=name)
        self._by_code[code] = ref
        return ref

    def list_codes(self) -> List[str]:
        return list(self._by_code)

    def find_by_code(self, code: str) -> Optional[FuelTypeRef]:
        return self._by_code.get(code)


# ============================================================
# PHOTOS
# ============================================================

class InMemoryPhotoStorage(PhotoStorage):
    """Photos kept as bytes keyed by path."""

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, str]] = {}

    def upload(self, content: bytes, file_name: str, content_type: str, sub_path: str) -> str:
        path = f"{sub_path}/{file_name}"
        self.objects[path] = (content, content_type)
        return path

    def delete(self, path: str) -> bool:
        return self.objects.pop(path, None) is not None


__all__ = [
    "InMemoryAccountDirectory",
    "RecordingNotificationSender",
    "SentNotification",
    "InMemoryStationDirectory",
    "InMemoryFuelTypeCatalog",
    "InMemoryPhotoStorage",
]
