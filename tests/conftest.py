"""Shared fixtures for the WeCom client tests."""

import json
from unittest.mock import MagicMock, patch

import pytest

from wxwork_api_client import WxWorkClient


def make_response(payload, status_code=200):
    """Build a stand-in for ``requests.Response`` carrying a JSON body."""
    response = MagicMock()
    response.status_code = status_code
    if isinstance(payload, bytes):
        response.content = payload
    else:
        response.content = json.dumps(payload).encode()
    return response


TOKEN_RESPONSE = {"errcode": 0, "errmsg": "ok", "access_token": "T1", "expires_in": 7200}


@pytest.fixture
def mock_request():
    """Patch ``requests.request`` as seen by the blocking client."""
    with patch("wxwork_api_client.client.requests.request") as mocked:
        yield mocked


@pytest.fixture
def fake_time():
    """Patch the clock used by the token cache; starts at t=1000."""
    with patch("wxwork_api_client.base.time") as mocked:
        mocked.time.return_value = 1000.0
        yield mocked


@pytest.fixture
def client():
    return WxWorkClient(corp_id="ww-corp", corp_secret="s3cret", agent_id="1000002")
