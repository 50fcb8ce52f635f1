"""Tests for Pydantic models."""

import pytest
from pydantic import ValidationError

from jenkins_insights.auth import AuthType
from jenkins_insights.models import (
    ConnectionConfig,
    Issue,
    Job,
    Node,
    QueueItem,
)


class TestConnectionConfig:
    """Tests for the ConnectionConfig model."""

    def test_auth_type_inferred_when_missing(self) -> None:
        conn = ConnectionConfig(url="https://j", username="u", password="p")
        assert conn.auth_type == AuthType.BASIC_AUTH

    def test_explicit_auth_type_kept(self) -> None:
        conn = ConnectionConfig(
            url="https://j", auth_type="token", username="u", token="t"
        )
        assert conn.auth_type == AuthType.TOKEN

    def test_id_generated_when_missing(self) -> None:
        first = ConnectionConfig(url="https://j", token="t")
        second = ConnectionConfig(url="https://j", token="t")
        assert first.id
        assert first.id != second.id

    def test_missing_credentials_rejected(self) -> None:
        """Validation names the auth type and every missing field."""
        with pytest.raises(ValidationError) as exc_info:
            ConnectionConfig(url="https://j", auth_type="basic_auth")
        message = str(exc_info.value)
        assert "basic_auth" in message
        assert "username" in message
        assert "password" in message

    def test_no_credentials_defaults_to_basic_and_fails(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            ConnectionConfig(url="https://j")
        assert "basic authentication" in str(exc_info.value)

    def test_sso_cookie_only_is_valid(self) -> None:
        conn = ConnectionConfig(url="https://j", auth_type="sso", cookie_auth=True)
        assert conn.sso_token is None

    def test_invalid_auth_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ConnectionConfig(url="https://j", auth_type="kerberos", token="t")

    def test_public_dict_masks_secrets(self) -> None:
        conn = ConnectionConfig(
            url="https://j", username="u", token="secret-token", folder="prod"
        )
        data = conn.public_dict()
        assert data["token"] == "****"
        assert data["password"] is None
        assert data["username"] == "u"
        assert data["folder"] == "prod"
        assert "secret-token" not in str(data)


class TestJenkinsModels:
    """Tests for parsing Jenkins API documents."""

    def test_job_with_last_build(self) -> None:
        job = Job.model_validate(
            {
                "_class": "hudson.model.FreeStyleProject",
                "name": "app",
                "url": "https://j/job/app/",
                "color": "red_anime",
                "lastBuild": {"number": 7, "result": None, "building": True},
            }
        )
        assert job.last_build is not None
        assert job.last_build.number == 7
        assert job.last_build.building is True
        assert job.model_dump(by_alias=True)["_class"] == "hudson.model.FreeStyleProject"

    def test_job_without_last_build(self) -> None:
        job = Job.model_validate({"name": "app", "lastBuild": None})
        assert job.last_build is None

    def test_queue_item_aliases(self) -> None:
        item = QueueItem.model_validate(
            {
                "id": 12,
                "task": {"name": "app", "url": "https://j/job/app/"},
                "stuck": True,
                "why": "Waiting for next available executor",
                "buildableStartMilliseconds": 1_700_000_000_000,
            }
        )
        assert item.task.name == "app"
        assert item.buildable_start_milliseconds == 1_700_000_000_000

    def test_node_aliases(self) -> None:
        node = Node.model_validate(
            {"displayName": "agent-1", "offline": True, "temporarilyOffline": False}
        )
        assert node.display_name == "agent-1"
        assert node.temporarily_offline is False
        assert node.model_dump(by_alias=True)["displayName"] == "agent-1"


class TestIssue:
    def test_issue_defaults(self) -> None:
        issue = Issue(type="Offline Node", time="2024-01-01T00:00:00Z", severity="high")
        assert issue.job == "N/A"
        assert issue.build == "N/A"
        assert issue.console_issues is None

    def test_issue_rejects_unknown_type(self) -> None:
        with pytest.raises(ValidationError):
            Issue(type="Flaky Test", time="2024-01-01T00:00:00Z", severity="high")
