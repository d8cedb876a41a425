import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

# Add project root path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from models.client import ReplicateClient  # noqa: E402
from tests.fixtures.payloads import API_KEY, BASE_URL  # noqa: E402


@pytest.fixture
def session():
    """requests.Session double; tests set request/get side effects."""
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session):
    return ReplicateClient(
        api_key=API_KEY,
        base_url=BASE_URL,
        max_poll_attempts=5,
        poll_interval=0.5,
        session=session,
    )


@pytest.fixture
def no_sleep(monkeypatch):
    """Record poll delays instead of sleeping."""
    delays = []
    monkeypatch.setattr("utils.polling.time.sleep", delays.append)
    return delays
