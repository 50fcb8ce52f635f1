"""Jenkins REST API client."""

import asyncio
import os
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar
from urllib.parse import quote, unquote, urlparse

import httpx
from simple_logger.logger import get_logger

from jenkins_insights.analyzer import IssueAnalyzer
from jenkins_insights.auth import build_transport, credentials_from_connection
from jenkins_insights.models import (
    Build,
    ConnectionConfig,
    IssueReport,
    Job,
    Node,
    Plugin,
    QueueItem,
)

logger = get_logger(name=__name__, level=os.environ.get("LOG_LEVEL", "INFO"))

T = TypeVar("T")

CACHE_EXPIRY_SECONDS = 30.0
DEFAULT_TIMEOUT = 30.0
MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0  # seconds, doubled per attempt

BUILD_TREE = "number,url,result,timestamp,duration,building"


class JenkinsApiError(Exception):
    """A Jenkins request failed; the message carries the operation context."""


@dataclass
class CacheEntry:
    data: Any
    fetched_at: float


def encode_job_name(job_name: str) -> str:
    """Percent-encode a job name for use as a single path segment."""
    return quote(job_name, safe="!*'()")


def is_client_error(error: BaseException) -> bool:
    """Check whether an error is an HTTP 4xx response."""
    return isinstance(error, httpx.HTTPStatusError) and error.response.is_client_error


def error_detail(error: BaseException | None) -> str:
    """Extract a readable message, preferring Jenkins' JSON ``message`` field."""
    if error is None:
        return "Unknown error"
    if isinstance(error, httpx.HTTPStatusError):
        try:
            body = error.response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
    return str(error) or type(error).__name__


class JenkinsClient:
    """HTTP client for one Jenkins connection.

    Owns its own response cache and retry policy. Authentication is resolved
    once from the connection's auth type when the client is built; switching
    connections means building a new client.
    """

    def __init__(
        self,
        connection: ConnectionConfig,
        ssl_verify: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
        retry_delay: float = RETRY_BASE_DELAY,
        http_transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the client.

        Args:
            connection: Jenkins server and credentials.
            ssl_verify: Whether to verify SSL certificates.
            timeout: Per-request timeout in seconds.
            retry_delay: Base backoff delay in seconds.
            http_transport: Optional httpx transport (used by tests).
            clock: Monotonic clock used for cache expiry.

        Raises:
            MissingCredentialsError: If the connection lacks required credentials.
        """
        self.connection = connection
        self._transport = build_transport(credentials_from_connection(connection))
        self._retry_delay = retry_delay
        self._clock = clock
        self._cache: dict[str, CacheEntry] = {}
        self._cache_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        self._client = httpx.AsyncClient(
            base_url=connection.url.rstrip("/"),
            auth=self._transport.basic_auth,
            headers=self._transport.headers,
            verify=ssl_verify,
            timeout=timeout,
            follow_redirects=True,
            transport=http_transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "JenkinsClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def get_cached_or_fetch(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        use_cache: bool = True,
    ) -> T:
        """Return a cached value younger than the expiry window, or fetch it.

        Args:
            cache_key: Key built from the operation and its parameters.
            fetch_fn: Coroutine function producing fresh data.
            use_cache: When False, always fetch and leave the cache untouched.

        Returns:
            Cached or freshly fetched data.
        """
        if not use_cache:
            return await fetch_fn()

        async with self._cache_locks[cache_key]:
            now = self._clock()
            entry = self._cache.get(cache_key)
            if entry and now - entry.fetched_at < CACHE_EXPIRY_SECONDS:
                logger.debug(f"Cache hit for {cache_key}")
                return entry.data

            data = await fetch_fn()
            self._cache[cache_key] = CacheEntry(data=data, fetched_at=now)
            return data

    def clear_cache(self) -> None:
        self._cache.clear()

    async def request_with_retry(
        self,
        request_fn: Callable[[], Awaitable[T]],
        error_message: str,
        max_retries: int = MAX_RETRIES,
    ) -> T:
        """Run a request, retrying failures with exponential backoff.

        HTTP 4xx errors are never retried.

        Args:
            request_fn: Coroutine function performing the request.
            error_message: Context prefix for the raised error.
            max_retries: Retries after the first attempt.

        Returns:
            The request result.

        Raises:
            JenkinsApiError: When every attempt failed.
        """
        last_error: Exception | None = None
        for attempt in range(max_retries + 1):
            try:
                return await request_fn()
            except Exception as e:
                last_error = e
                if attempt >= max_retries or is_client_error(e):
                    break
                delay = self._retry_delay * 2**attempt
                logger.info(
                    f"Retrying request ({attempt + 1}/{max_retries}) in {delay:g}s: {e}"
                )
                await asyncio.sleep(delay)

        detail = error_detail(last_error)
        logger.error(f"{error_message}: {detail}")
        raise JenkinsApiError(f"{error_message}: {detail}") from last_error

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request; only transport failures and 5xx responses raise."""
        response = await self._client.request(method, path, **kwargs)
        if not self._transport.with_cookies:
            self._client.cookies.clear()
        if response.is_server_error:
            response.raise_for_status()
        return response

    async def _get_json(self, path: str) -> Any:
        response = await self._request("GET", path)
        if response.is_client_error:
            response.raise_for_status()
        return response.json()

    async def _get_text(self, path: str) -> str:
        response = await self._request("GET", path)
        if response.is_client_error:
            response.raise_for_status()
        return response.text

    async def test_connection(self) -> bool:
        """Check that the server answers ``/api/json`` with HTTP 200. Never raises."""
        try:
            response = await self._request("GET", "/api/json")
        except Exception:
            logger.exception(f"Error testing Jenkins connection to {self.connection.url}")
            return False
        return response.status_code == 200

    async def get_server_info(self) -> dict:
        return await self.request_with_retry(
            lambda: self._get_json("/api/json"),
            "Failed to get server info",
            max_retries=0,
        )

    async def get_jobs(self, use_cache: bool = True) -> list[Job]:
        """Get all top-level jobs (name, url and color only)."""

        async def fetch() -> list[Job]:
            data = await self._get_json("/api/json?tree=jobs[name,url,color]")
            return [Job.model_validate(job) for job in data.get("jobs") or []]

        return await self.get_cached_or_fetch(
            "jobs",
            lambda: self.request_with_retry(fetch, "Error getting Jenkins jobs"),
            use_cache,
        )

    async def get_job_details(self, job_name: str, use_cache: bool = True) -> Job:
        """Get a job including its last build."""
        path = (
            f"/job/{encode_job_name(job_name)}/api/json"
            f"?tree=name,url,color,lastBuild[{BUILD_TREE}]"
        )

        async def fetch() -> Job:
            return Job.model_validate(await self._get_json(path))

        return await self.get_cached_or_fetch(
            f"job_details_{job_name}",
            lambda: self.request_with_retry(
                fetch, f"Error getting Jenkins job details for {job_name}"
            ),
            use_cache,
        )

    async def get_builds(
        self, job_name: str, count: int = 10, use_cache: bool = True
    ) -> list[Build]:
        """Get the ``count`` most recent builds of a job."""
        path = (
            f"/job/{encode_job_name(job_name)}/api/json"
            f"?tree=builds[{BUILD_TREE}]{{0,{count}}}"
        )

        async def fetch() -> list[Build]:
            data = await self._get_json(path)
            return [Build.model_validate(build) for build in data.get("builds") or []]

        return await self.get_cached_or_fetch(
            f"builds_{job_name}_{count}",
            lambda: self.request_with_retry(
                fetch, f"Error getting builds for job {job_name}"
            ),
            use_cache,
        )

    async def get_build_details(self, job_name: str, build_number: int) -> dict:
        """Get the full build document. Not cached."""
        return await self.request_with_retry(
            lambda: self._get_json(
                f"/job/{encode_job_name(job_name)}/{build_number}/api/json"
            ),
            "Failed to get build details",
            max_retries=0,
        )

    async def get_build_console_output(self, job_name: str, build_number: int) -> str:
        """Get raw console text. Not cached, logs change while a build runs."""
        return await self.request_with_retry(
            lambda: self._get_text(
                f"/job/{encode_job_name(job_name)}/{build_number}/consoleText"
            ),
            "Failed to get console output",
            max_retries=0,
        )

    async def get_nodes(self) -> list[Node]:
        async def fetch() -> list[Node]:
            data = await self._get_json(
                "/computer/api/json?tree=computer"
                "[displayName,description,offline,temporarilyOffline,monitorData]"
            )
            return [Node.model_validate(node) for node in data.get("computer") or []]

        return await self.request_with_retry(
            fetch, "Failed to get nodes", max_retries=0
        )

    async def get_queue(self) -> list[QueueItem]:
        async def fetch() -> list[QueueItem]:
            data = await self._get_json(
                "/queue/api/json?tree=items"
                "[id,task[name,url],stuck,why,buildableStartMilliseconds]"
            )
            return [QueueItem.model_validate(item) for item in data.get("items") or []]

        return await self.request_with_retry(
            fetch, "Failed to get queue", max_retries=0
        )

    async def get_plugins(self) -> list[Plugin]:
        async def fetch() -> list[Plugin]:
            data = await self._get_json(
                "/pluginManager/api/json?tree=plugins"
                "[shortName,longName,version,active,enabled]"
            )
            return [Plugin.model_validate(p) for p in data.get("plugins") or []]

        return await self.request_with_retry(
            fetch, "Failed to get plugins", max_retries=0
        )

    async def get_system_stats(self) -> dict[str, Any]:
        """Get overall load statistics and per-node executor state."""

        async def fetch() -> dict[str, Any]:
            load_stats = await self._get_json("/overallLoad/api/json")
            executor_info = await self._get_json(
                "/computer/api/json?tree=computer"
                "[displayName,executors[idle,likelyStuck,progress]]"
            )
            return {"load_stats": load_stats, "executor_info": executor_info}

        return await self.request_with_retry(
            fetch, "Failed to get system stats", max_retries=0
        )

    async def trigger_build(
        self, job_name: str, parameters: dict[str, str] | None = None
    ) -> None:
        """Schedule a build.

        Parameters are sent only when the job declares a parameters
        definition; otherwise a plain build is requested.

        Raises:
            JenkinsApiError: If the job lookup or the build request fails.
        """
        parameters = parameters or {}
        encoded = encode_job_name(job_name)
        try:
            job_info = await self._get_json(f"/job/{encoded}/api/json?tree=property[_class]")
            has_parameters = any(
                "ParametersDefinitionProperty" in (prop or {}).get("_class", "")
                for prop in job_info.get("property") or []
            )

            if has_parameters and parameters:
                response = await self._request(
                    "POST", f"/job/{encoded}/buildWithParameters", params=parameters
                )
            else:
                response = await self._request("POST", f"/job/{encoded}/build")
            if response.is_client_error:
                response.raise_for_status()
        except (httpx.HTTPError, ValueError) as e:
            detail = error_detail(e)
            logger.error(f"Error triggering build for job {job_name}: {detail}")
            raise JenkinsApiError(f"Failed to trigger build: {detail}") from e

        logger.info(f"Triggered build for {job_name}")

    async def get_job_info_from_url(self, url: str) -> tuple[str, Job]:
        """Resolve a Jenkins job or build URL to its job and fetch the job details.

        Raises:
            ValueError: If the URL has no ``/job/<name>`` segment.
        """
        job_name, _ = self.parse_jenkins_url(url)
        return job_name, await self.get_job_details(job_name)

    async def analyze_issues(
        self, use_cache: bool = False, include_console: bool = False
    ) -> IssueReport:
        """Build a diagnostic snapshot of jobs, queue and nodes.

        Fresh data is used by default; pass ``use_cache=True`` to reuse a
        report younger than the cache window.
        """
        analyzer = IssueAnalyzer(self, include_console=include_console)
        cache_key = "issues_analysis_console" if include_console else "issues_analysis"
        return await self.get_cached_or_fetch(
            cache_key,
            lambda: self.request_with_retry(
                analyzer.analyze, "Error analyzing Jenkins issues"
            ),
            use_cache,
        )

    @staticmethod
    def parse_jenkins_url(url: str) -> tuple[str, int | None]:
        """Parse a Jenkins job or build URL.

        The job is the first ``/job/<name>`` segment; a trailing number
        directly after a job segment is taken as the build number.

        Args:
            url: Full Jenkins job or build URL.

        Returns:
            Tuple of (job_name, build_number or None).

        Raises:
            ValueError: If no job name can be found.

        Examples:
            >>> JenkinsClient.parse_jenkins_url("https://jenkins.example.com/job/my-job/123/")
            ('my-job', 123)
            >>> JenkinsClient.parse_jenkins_url("https://jenkins.example.com/job/my%20job/")
            ('my job', None)
        """
        parts = [p for p in urlparse(str(url)).path.split("/") if p]

        job_name = None
        for i, part in enumerate(parts[:-1]):
            if part == "job":
                job_name = unquote(parts[i + 1])
                break

        if not job_name:
            raise ValueError(f"Could not determine job name from URL: {url}")

        build_number = None
        if len(parts) >= 3 and parts[-1].isdigit() and parts[-3] == "job":
            build_number = int(parts[-1])

        return job_name, build_number
