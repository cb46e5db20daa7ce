# Shared fixtures.
# Created: 2026-02-21

import pytest

from pocketmcp.config import reset_settings
from pocketmcp.mcp.manager import reset_session_manager
from pocketmcp.oauth2.server import reset_oauth_server


@pytest.fixture(autouse=True)
def _reset_singletons():
    reset_settings()
    reset_session_manager()
    reset_oauth_server()
    yield
    reset_settings()
    reset_session_manager()
    reset_oauth_server()
