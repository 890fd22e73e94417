"""
Database Package Initialization.

============================================================
MODERATION PERSISTENCE LAYER
============================================================

SQLAlchemy models for ban records, price proposals and proposal
statistics, plus engine/session management with explicit
transaction boundaries.

============================================================
"""

from .engine import (
    Base,
    create_database_engine,
    create_session_factory,
    configure_database,
    get_engine,
    get_session_factory,
    transaction_scope,
    create_all_tables,
    verify_required_tables,
    initialize_database,
    REQUIRED_TABLES,
)

from .models import (
    BanRecord,
    PriceProposal,
    ProposalStatistic,
    ProposalStatus,
)

from . import persistence


__all__ = [
    "persistence",
    "Base",
    "create_database_engine",
    "create_session_factory",
    "configure_database",
    "get_engine",
    "get_session_factory",
    "transaction_scope",
    "create_all_tables",
    "verify_required_tables",
    "initialize_database",
    "REQUIRED_TABLES",
    "BanRecord",
    "PriceProposal",
    "ProposalStatistic",
    "ProposalStatus",
]
