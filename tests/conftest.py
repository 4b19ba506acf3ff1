import os

import pytest
from fastapi.testclient import TestClient

os.environ["STORE_BACKEND"] = "memory"
os.environ["ADMIN_PASSWORD"] = "test-secret"

from scamwatch.main import app
from scamwatch.store.memory import InMemoryReportStore

ADMIN_HEADERS = {"X-Moderator-Secret": "test-secret"}


@pytest.fixture(scope="function")
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def store():
    return InMemoryReportStore()


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)
