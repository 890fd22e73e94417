"""
Shared fixtures.

In-memory SQLite (StaticPool) stands in for the relational store,
MockClock drives time, and the in-memory collaborators record
every call.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from cache import CacheService, InMemoryCacheStore
from core.clock import MockClock
from database import create_all_tables, create_database_engine, create_session_factory
from events import EventDispatcher, register_default_handlers
from integrations import (
    InMemoryAccountDirectory,
    InMemoryFuelTypeCatalog,
    InMemoryPhotoStorage,
    InMemoryStationDirectory,
    RecordingNotificationSender,
)
from moderation import (
    BanService,
    PhotoUpload,
    ProposalService,
    ProposalStatisticService,
    SubmitProposalRequest,
)


ADMIN_EMAIL = "admin@fuelwatch.test"
USER_EMAIL = "driver@fuelwatch.test"


# ============================================================
# INFRASTRUCTURE
# ============================================================

@pytest.fixture
def clock():
    """Mock clock frozen at a fixed instant."""
    return MockClock(datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def engine():
    engine = create_database_engine("sqlite://")
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def cache_store():
    return InMemoryCacheStore()


@pytest.fixture
def cache(cache_store):
    return CacheService(cache_store)


# ============================================================
# COLLABORATORS
# ============================================================

@pytest.fixture
def accounts(clock):
    return InMemoryAccountDirectory(clock)


@pytest.fixture
def admin(accounts):
    return accounts.add_user(ADMIN_EMAIL, "Admin", roles={"Admin"})


@pytest.fixture
def user(accounts):
    return accounts.add_user(USER_EMAIL, "driver")


@pytest.fixture
def notifier():
    return RecordingNotificationSender()


@pytest.fixture
def stations():
    directory = InMemoryStationDirectory()
    directory.add_station("Orlen", "Marszalkowska", "10", "Warsaw")
    return directory


@pytest.fixture
def station(stations):
    return stations.find_station("Orlen", "Marszalkowska", "10", "Warsaw")


@pytest.fixture
def fuel_types():
    return InMemoryFuelTypeCatalog({"PB95": "Petrol 95", "ON": "Diesel", "LPG": "Autogas"})


@pytest.fixture
def photos():
    return InMemoryPhotoStorage()


@pytest.fixture
def dispatcher(cache, notifier, session_factory, clock):
    dispatcher = EventDispatcher()
    register_default_handlers(dispatcher, cache, notifier, session_factory, clock)
    return dispatcher


# ============================================================
# SERVICES
# ============================================================

@pytest.fixture
def ban_service(session_factory, accounts, notifier, dispatcher, cache, clock):
    return BanService(session_factory, accounts, notifier, dispatcher, cache, clock=clock)


@pytest.fixture
def proposal_service(
    session_factory, accounts, notifier, dispatcher, cache, stations, fuel_types, photos, clock
):
    return ProposalService(
        session_factory,
        accounts,
        notifier,
        dispatcher,
        cache,
        stations,
        fuel_types,
        photos,
        clock=clock,
    )


@pytest.fixture
def statistics_service(session_factory, accounts, cache, clock):
    return ProposalStatisticService(session_factory, accounts, cache, clock=clock)


# ============================================================
# SAMPLE DATA
# ============================================================

@pytest.fixture
def submit_request():
    """A valid proposal for the fixture station."""
    return SubmitProposalRequest(
        brand_name="Orlen",
        street="Marszalkowska",
        house_number="10",
        city="Warsaw",
        fuel_type_code="pb95",
        proposed_price=Decimal("6.49"),
        photo=PhotoUpload(
            file_name="receipt.JPG",
            content_type="image/jpeg",
            content=b"\xff\xd8\xff\xe0fake-jpeg",
        ),
    )
