import pytest

from src.IOM.store import JobStore
from tests.fakes import FakeSupabaseClient


@pytest.fixture
def client():
    return FakeSupabaseClient()


@pytest.fixture
def store(client):
    return JobStore(client)


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    """Request delays are real sleeps; skip them in tests."""
    monkeypatch.setattr("time.sleep", lambda seconds: None)
