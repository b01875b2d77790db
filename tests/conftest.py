import pytest

from wayfinder.models import Location
from wayfinder.store import NetworkStore

from helpers import FakeAdapter


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "wayfinder.db")


@pytest.fixture
def store(db_path):
    s = NetworkStore(db_path)
    yield s
    s.close()


@pytest.fixture
def adapter():
    return FakeAdapter()


@pytest.fixture
def reception():
    return Location(0.0, 0.0)
