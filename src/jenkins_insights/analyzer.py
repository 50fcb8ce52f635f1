"""Issue analysis across jobs, the build queue and nodes."""

import asyncio
import os
import time
from collections.abc import Callable, Coroutine
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from simple_logger.logger import get_logger

from jenkins_insights.console import QUICK_PATTERNS, scan_console
from jenkins_insights.models import Build, Issue, IssueReport, IssueSummary, Job

if TYPE_CHECKING:
    from jenkins_insights.jenkins import JenkinsClient

logger = get_logger(name=__name__, level=os.environ.get("LOG_LEVEL", "INFO"))

MAX_JOBS_TO_ANALYZE = 10
RECENT_BUILDS = 5
STUCK_BUILD_MS = 3_600_000  # one hour
HIGH_SEVERITY_FAILURES = 2  # more failures than this in the recent builds is high


async def run_parallel_with_limit(
    coroutines: list[Coroutine[Any, Any, Any]],
    max_concurrency: int = MAX_JOBS_TO_ANALYZE,
) -> list:
    """Run coroutines in parallel with bounded concurrency.

    Args:
        coroutines: List of coroutines to execute.
        max_concurrency: Maximum concurrent executions.

    Returns:
        List of results (including exceptions if any failed).
    """
    semaphore = asyncio.Semaphore(max_concurrency)

    async def bounded(coro):
        async with semaphore:
            return await coro

    return await asyncio.gather(
        *[bounded(c) for c in coroutines],
        return_exceptions=True,
    )


def _from_millis(milliseconds: int | None) -> datetime:
    return datetime.fromtimestamp((milliseconds or 0) / 1000, tz=timezone.utc)


class IssueAnalyzer:
    """Builds an :class:`IssueReport` from fresh (uncached) Jenkins data.

    Each job, the queue and the nodes are analysed independently; a failure
    in one source is logged and contributes no issues instead of aborting
    the report.
    """

    def __init__(
        self,
        client: "JenkinsClient",
        include_console: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._include_console = include_console
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def analyze(self) -> IssueReport:
        """Run one analysis pass.

        Raises:
            JenkinsApiError: If the job list itself cannot be fetched.
        """
        jobs = await self._client.get_jobs(use_cache=False)
        jobs_to_analyze = jobs[:MAX_JOBS_TO_ANALYZE]
        logger.info(f"Analyzing {len(jobs_to_analyze)} of {len(jobs)} jobs for issues")

        job_results, queue_issues, node_issues = await asyncio.gather(
            run_parallel_with_limit([self._analyze_job(job) for job in jobs_to_analyze]),
            self._analyze_queue(),
            self._analyze_nodes(),
        )

        issues: list[Issue] = []
        for job, result in zip(jobs_to_analyze, job_results):
            if isinstance(result, Exception):
                logger.error(f"Error analyzing job {job.name}: {result}", exc_info=result)
            elif result:
                issues.extend(result)
        issues.extend(queue_issues)
        issues.extend(node_issues)

        return IssueReport(
            issues=issues,
            summary=summarize(issues),
            timestamp=self._now_ms(),
        )

    async def _analyze_job(self, job: Job) -> list[Issue] | None:
        try:
            details = await self._client.get_job_details(job.name, use_cache=False)
            if not details.last_build:
                return None

            builds = await self._client.get_builds(
                job.name, RECENT_BUILDS, use_cache=False
            )
            return await self._build_issues(job, builds)
        except Exception:
            logger.exception(f"Error analyzing job {job.name}")
            return None

    async def _build_issues(self, job: Job, builds: list[Build]) -> list[Issue]:
        issues: list[Issue] = []

        failed = [b for b in builds if b.result == "FAILURE"]
        if failed:
            first = failed[0]
            issue = Issue(
                type="Build Failure",
                job=job.name,
                build=f"#{first.number}",
                time=_from_millis(first.timestamp),
                severity="high" if len(failed) > HIGH_SEVERITY_FAILURES else "medium",
                url=first.url,
            )
            if self._include_console:
                issue.console_issues = await self._console_issues(job.name, first)
            issues.append(issue)

        now_ms = self._now_ms()
        stuck = [
            b for b in builds if b.building and now_ms - b.timestamp > STUCK_BUILD_MS
        ]
        if stuck:
            first = stuck[0]
            issues.append(
                Issue(
                    type="Stuck Build",
                    job=job.name,
                    build=f"#{first.number}",
                    time=_from_millis(first.timestamp),
                    severity="high",
                    url=first.url,
                )
            )

        return issues

    async def _console_issues(self, job_name: str, build: Build):
        try:
            console = await self._client.get_build_console_output(job_name, build.number)
        except Exception:
            logger.exception(f"Error fetching console for {job_name} #{build.number}")
            return None
        return scan_console(console, QUICK_PATTERNS)

    async def _analyze_queue(self) -> list[Issue]:
        try:
            queue = await self._client.get_queue()
        except Exception:
            logger.exception("Error analyzing queue")
            return []

        return [
            Issue(
                type="Stuck in Queue",
                job=item.task.name,
                build="N/A",
                time=_from_millis(item.buildable_start_milliseconds),
                severity="medium",
                url=item.task.url,
            )
            for item in queue
            if item.stuck
        ]

    async def _analyze_nodes(self) -> list[Issue]:
        try:
            nodes = await self._client.get_nodes()
        except Exception:
            logger.exception("Error analyzing nodes")
            return []

        # Offline status carries no timestamp of its own
        now = _from_millis(self._now_ms())
        return [
            Issue(
                type="Offline Node",
                agent=node.display_name,
                time=now,
                severity="high",
            )
            for node in nodes
            if node.offline and not node.temporarily_offline
        ]


def summarize(issues: list[Issue]) -> IssueSummary:
    """Count issues by type."""
    return IssueSummary(
        build_failures=sum(1 for i in issues if i.type == "Build Failure"),
        stuck_builds=sum(1 for i in issues if i.type == "Stuck Build"),
        queue_issues=sum(1 for i in issues if i.type == "Stuck in Queue"),
        node_issues=sum(1 for i in issues if i.type == "Offline Node"),
    )
