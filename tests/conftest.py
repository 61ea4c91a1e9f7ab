import pytest

from fake_scheduler import FakeScheduler


@pytest.fixture
def fake():
    return FakeScheduler()


@pytest.fixture
def client(fake):
    return fake.client()
