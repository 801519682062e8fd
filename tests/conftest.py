import pytest

from homecare_sync.models.database import create_db_engine, init_db
from homecare_sync.services.store import SchedulingStore


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return SchedulingStore(engine)
