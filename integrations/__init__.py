"""
Integrations Package.

Collaborator contracts consumed by the moderation core and their
in-memory implementations.
"""

from integrations.interfaces import (
    Account,
    AccountDirectory,
    FuelTypeCatalog,
    FuelTypeRef,
    NotificationSender,
    PhotoStorage,
    StationDirectory,
    StationRef,
)
from integrations.memory import (
    InMemoryAccountDirectory,
    InMemoryFuelTypeCatalog,
    InMemoryPhotoStorage,
    InMemoryStationDirectory,
    RecordingNotificationSender,
    SentNotification,
)


__all__ = [
    "Account",
    "AccountDirectory",
    "FuelTypeCatalog",
    "FuelTypeRef",
    "NotificationSender",
    "PhotoStorage",
    "StationDirectory",
    "StationRef",
    "InMemoryAccountDirectory",
    "InMemoryFuelTypeCatalog",
    "InMemoryPhotoStorage",
    "InMemoryStationDirectory",
    "RecordingNotificationSender",
    "SentNotification",
]
