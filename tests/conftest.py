"""Shared fixtures for jenkins-insights tests."""

import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import httpx
import pytest

from jenkins_insights.jenkins import JenkinsClient
from jenkins_insights.models import ConnectionConfig

JENKINS_URL = "https://jenkins.example.com"


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide a bootstrap Jenkins connection through the environment."""
    env = {
        "JENKINS_URL": JENKINS_URL,
        "JENKINS_USER": "testuser",
        "JENKINS_TOKEN": "testtoken",  # pragma: allowlist secret
    }
    with patch.dict(os.environ, env, clear=True):
        yield env


@pytest.fixture
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database path for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    if db_path.exists():
        db_path.unlink()


@pytest.fixture
def basic_connection() -> ConnectionConfig:
    """A connection using username + API token."""
    return ConnectionConfig(
        id="conn-1",
        name="Test Jenkins",
        url=JENKINS_URL,
        username="testuser",
        token="testtoken",  # pragma: allowlist secret
    )


@pytest.fixture
def make_client(
    basic_connection: ConnectionConfig,
) -> Callable[..., JenkinsClient]:
    """Build a JenkinsClient whose requests are answered by ``handler``."""

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        connection: ConnectionConfig | None = None,
        **kwargs,
    ) -> JenkinsClient:
        kwargs.setdefault("retry_delay", 0)
        return JenkinsClient(
            connection or basic_connection,
            http_transport=httpx.MockTransport(handler),
            **kwargs,
        )

    return _make


def build(number: int, result: str | None = "SUCCESS", **extra) -> dict:
    """A Jenkins build document as returned by the tree queries."""
    return {
        "number": number,
        "url": f"{JENKINS_URL}/job/app/{number}/",
        "result": result,
        "timestamp": extra.pop("timestamp", 1_700_000_000_000),
        "duration": extra.pop("duration", 60_000),
        "building": extra.pop("building", False),
        **extra,
    }
