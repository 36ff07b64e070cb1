"""
Shared test fixtures.

HTTP is mocked at the session level: `fake_session.request` returns
objects shaped like requests.Response, so the dispatcher, pagination and
the upload orchestrator run their real code paths without a network.
"""

import json
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import pytest
from loguru import logger

from linkedin_ads.adapters.restli_client import RestliClient
from linkedin_ads.core.config import CLIConfig

TEST_TOKEN = "test-token"
TEST_BASE_URL = "https://api.linkedin.com/rest"

ENV_VARS = (
    "LINKEDIN_ACCESS_TOKEN",
    "LINKEDIN_VERSION",
    "LINKEDIN_BASE_URL",
    "LINKEDIN_RESTLI_PROTOCOL_VERSION",
    "LINKEDIN_AD_ACCOUNT_ID",
    "LINKEDIN_ASSET_ID",
    "LINKEDIN_TIMEOUT",
    "LINKEDIN_TUNNEL_THRESHOLD",
    "LINKEDIN_MAX_RETRIES",
    "LINKEDIN_UPLOAD_WORKERS",
)


def make_response(
    status: int = 200,
    body: Any = None,
    headers: Optional[Dict[str, str]] = None,
) -> MagicMock:
    """Build a requests.Response stand-in.

    Dict and list bodies are serialized to JSON text.
    """
    response = MagicMock()
    response.status_code = status
    if body is None:
        response.text = ""
    elif isinstance(body, str):
        response.text = body
    else:
        response.text = json.dumps(body)
    response.headers = dict(headers or {})
    return response


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Isolate tests from the developer's LINKEDIN_* environment and .env file."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("linkedin_ads.core.config.load_dotenv", lambda *a, **k: False)


@pytest.fixture(autouse=True)
def quiet_logs():
    """Keep loguru output out of test runs."""
    logger.remove()
    yield
    logger.remove()


@pytest.fixture
def config() -> CLIConfig:
    return CLIConfig(access_token=TEST_TOKEN, base_url=TEST_BASE_URL)


@pytest.fixture
def fake_session() -> MagicMock:
    session = MagicMock()
    session.request.return_value = make_response(200, {})
    return session


@pytest.fixture
def sleeps():
    """Recorded sleep calls, injected instead of time.sleep."""
    return []


@pytest.fixture
def client(config, fake_session, sleeps) -> RestliClient:
    return RestliClient(config, session=fake_session, sleep=sleeps.append)


def sent_request(session: MagicMock, index: int = -1) -> Dict[str, Any]:
    """Keyword arguments of one recorded session.request call."""
    return session.request.call_args_list[index].kwargs
