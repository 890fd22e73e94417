"""
Events Package.

Typed domain events, the in-process dispatcher and the default
subscribers.
"""

from events.types import (
    ProposalSnapshot,
    UserBanned,
    UserUnlocked,
    PriceProposalEvaluated,
    UserRegistered,
)
from events.dispatcher import EventDispatcher, EventHandler
from events.handlers import DefaultEventHandlers, register_default_handlers


__all__ = [
    "ProposalSnapshot",
    "UserBanned",
    "UserUnlocked",
    "PriceProposalEvaluated",
    "UserRegistered",
    "EventDispatcher",
    "EventHandler",
    "DefaultEventHandlers",
    "register_default_handlers",
]
