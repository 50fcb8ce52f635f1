"""Pydantic models for connections, Jenkins documents and analysis results."""

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from jenkins_insights.auth import AuthType, infer_auth_type, missing_credentials

Severity = Literal["high", "medium", "low"]
IssueType = Literal["Build Failure", "Stuck Build", "Stuck in Queue", "Offline Node"]

SECRET_FIELDS = ("token", "password", "sso_token")


class ConnectionConfig(BaseModel):
    """A configured Jenkins server and the credentials used to reach it."""

    id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="Stable unique identifier",
    )
    name: str = Field(default="", description="Display name")
    url: str = Field(description="Jenkins base URL")
    auth_type: AuthType = Field(
        description="Authentication scheme (inferred from credentials when omitted)"
    )
    username: str | None = Field(default=None, description="Jenkins username")
    token: str | None = Field(default=None, description="API token")
    password: str | None = Field(default=None, description="Account password")
    sso_token: str | None = Field(default=None, description="SSO bearer token")
    cookie_auth: bool = Field(
        default=False, description="Send and keep cookies for SSO sessions"
    )
    description: str | None = Field(default=None, description="Free-form notes")
    folder: str | None = Field(default=None, description="Grouping folder")
    color: str | None = Field(default=None, description="Display color tag")

    @model_validator(mode="before")
    @classmethod
    def _infer_auth_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("auth_type"):
            data = dict(data)
            data["auth_type"] = infer_auth_type(
                username=data.get("username"),
                token=data.get("token"),
                password=data.get("password"),
                sso_token=data.get("sso_token"),
                cookie_auth=bool(data.get("cookie_auth")),
            )
        return data

    @model_validator(mode="after")
    def _check_credentials(self) -> "ConnectionConfig":
        missing = missing_credentials(self)
        if missing:
            raise ValueError(
                f"Missing required credentials for {self.auth_type.value} "
                f"authentication: {', '.join(missing)}"
            )
        return self

    def public_dict(self) -> dict:
        """Serialize the connection with secret values masked."""
        data = self.model_dump(mode="json")
        for field in SECRET_FIELDS:
            if data.get(field):
                data[field] = "****"
        return data


class JenkinsModel(BaseModel):
    """Base for Jenkins API documents (camelCase on the wire, extra keys kept)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class Build(JenkinsModel):
    """One execution of a job."""

    number: int
    url: str = ""
    result: str | None = None
    timestamp: int = 0
    duration: int = 0
    building: bool = False


class Job(JenkinsModel):
    """A Jenkins job as returned by the tree-filtered job queries."""

    name: str
    url: str = ""
    color: str | None = None
    last_build: Build | None = Field(default=None, alias="lastBuild")


class QueueTask(JenkinsModel):
    name: str = ""
    url: str = ""


class QueueItem(JenkinsModel):
    """A build request waiting for an executor."""

    id: int
    task: QueueTask = Field(default_factory=QueueTask)
    stuck: bool = False
    why: str | None = None
    buildable_start_milliseconds: int | None = Field(
        default=None, alias="buildableStartMilliseconds"
    )


class Node(JenkinsModel):
    """A Jenkins agent or the built-in node."""

    display_name: str = Field(alias="displayName")
    description: str | None = None
    offline: bool = False
    temporarily_offline: bool = Field(default=False, alias="temporarilyOffline")
    monitor_data: dict[str, Any] | None = Field(default=None, alias="monitorData")


class Plugin(JenkinsModel):
    short_name: str = Field(alias="shortName")
    long_name: str | None = Field(default=None, alias="longName")
    version: str | None = None
    active: bool = False
    enabled: bool = False


class ConsoleIssue(BaseModel):
    """A classified line of console output."""

    line: int = Field(description="1-based line number")
    text: str = Field(description="Trimmed line text")
    type: str = Field(description="Category from the pattern catalog")
    severity: Severity = Field(description="Severity of the matching pattern")


class Issue(BaseModel):
    """A diagnostic finding produced by an analysis run."""

    type: IssueType = Field(description="Kind of issue")
    job: str = Field(default="N/A", description="Affected job name")
    build: str = Field(default="N/A", description="Build label, e.g. '#42'")
    time: datetime = Field(description="When the issue started")
    severity: Severity = Field(description="Issue severity")
    url: str | None = Field(default=None, description="Link to the affected item")
    agent: str | None = Field(default=None, description="Affected node name")
    console_issues: list[ConsoleIssue] | None = Field(
        default=None,
        description="Console lines of the failing build (when requested)",
    )


class IssueSummary(BaseModel):
    build_failures: int = 0
    stuck_builds: int = 0
    queue_issues: int = 0
    node_issues: int = 0


class IssueReport(BaseModel):
    """Point-in-time diagnostic snapshot of one Jenkins server."""

    issues: list[Issue] = Field(default_factory=list)
    summary: IssueSummary = Field(default_factory=IssueSummary)
    timestamp: int = Field(description="Analysis time in epoch milliseconds")


class ConnectionTestResult(BaseModel):
    success: bool
    message: str


class TriggerBuildRequest(BaseModel):
    """Request payload for triggering a build."""

    parameters: dict[str, str] = Field(
        default_factory=dict,
        description="Build parameters (used only when the job declares parameters)",
    )


class TroubleshootUrlRequest(BaseModel):
    url: str = Field(description="Jenkins job or build URL")


class JobDetailsResponse(BaseModel):
    job_details: Job
    builds: list[Build]


class ConsoleOutputResponse(BaseModel):
    console_output: str = Field(description="Console text with secrets masked")
    errors: list[ConsoleIssue] = Field(default_factory=list)


class SystemDataResponse(BaseModel):
    system_stats: dict[str, Any]
    nodes: list[Node]
    queue: list[QueueItem]


class TroubleshootResponse(BaseModel):
    """Result of troubleshooting a Jenkins URL."""

    job_name: str
    job_details: Job
    builds: list[Build]
    console_output: str | None = None
    console_errors: list[ConsoleIssue] = Field(default_factory=list)
