"""Console log error scanning.

Lines are classified against an ordered pattern catalog (high severity
first); the first matching pattern wins. Two catalogs are kept: a detailed
one for the console view and a quick three-rule one for URL troubleshooting.
"""

import os
import re
from collections.abc import Sequence
from dataclasses import dataclass

from simple_logger.logger import get_logger

from jenkins_insights.models import ConsoleIssue, Severity

logger = get_logger(name=__name__, level=os.environ.get("LOG_LEVEL", "INFO"))

DEDUP_WINDOW_LINES = 5


@dataclass(frozen=True)
class ErrorPattern:
    regex: re.Pattern[str]
    type: str
    severity: Severity


def _pattern(source: str, type_: str, severity: Severity) -> ErrorPattern:
    return ErrorPattern(re.compile(source, re.IGNORECASE), type_, severity)


DETAILED_PATTERNS: tuple[ErrorPattern, ...] = (
    # High severity
    _pattern(r"exception in thread|java\.lang\.[a-z]+exception", "java", "high"),
    _pattern(r"out of memory|java\.lang\.outofmemoryerror", "memory", "high"),
    _pattern(r"fatal error|build failed|build terminated", "build", "high"),
    _pattern(r"segmentation fault|core dumped", "system", "high"),
    # Medium severity
    _pattern(r"error:|failure:|failed:", "general", "medium"),
    _pattern(r"npm err!|cannot find module|syntax error", "javascript", "medium"),
    _pattern(r"importerror:|modulenotfounderror:|syntaxerror:", "python", "medium"),
    _pattern(r"connection refused|timeout|unreachable", "network", "medium"),
    _pattern(r"permission denied|access denied|unauthorized", "permission", "medium"),
    # Low severity
    _pattern(r"warning:|deprecated:", "warning", "low"),
    _pattern(r"could not find|not found", "missing", "low"),
)

QUICK_PATTERNS: tuple[ErrorPattern, ...] = (
    _pattern(r"exception in thread|java\.lang\.[a-z]+exception", "java", "high"),
    _pattern(r"error:|exception:|failure:|failed:", "general", "medium"),
    _pattern(r"warning:", "warning", "low"),
)

# TODO: decide with product whether the detailed catalog should replace the
# quick one on the troubleshoot-URL path; until then both stay selectable.
CATALOGS: dict[str, tuple[ErrorPattern, ...]] = {
    "detailed": DETAILED_PATTERNS,
    "quick": QUICK_PATTERNS,
}


def _classify(
    line: str, index: int, patterns: Sequence[ErrorPattern]
) -> ConsoleIssue | None:
    for pattern in patterns:
        if pattern.regex.search(line):
            return ConsoleIssue(
                line=index + 1,
                text=line.strip(),
                type=pattern.type,
                severity=pattern.severity,
            )
    return None


def scan_console(
    console_output: str | None,
    patterns: Sequence[ErrorPattern] = DETAILED_PATTERNS,
) -> list[ConsoleIssue]:
    """Classify every line of console output.

    Each line is tested against every pattern in catalog order and yields at
    most one issue. No deduplication is applied.

    Args:
        console_output: Raw console text.
        patterns: Ordered pattern catalog.

    Returns:
        Issues in line order.
    """
    if not console_output:
        return []

    issues: list[ConsoleIssue] = []
    for index, line in enumerate(console_output.split("\n")):
        issue = _classify(line, index, patterns)
        if issue:
            issues.append(issue)
    return issues


def combine_patterns(patterns: Sequence[ErrorPattern]) -> re.Pattern[str]:
    """Build one alternation regex matching any line a catalog would match."""
    return re.compile(
        "|".join(f"(?:{p.regex.pattern})" for p in patterns), re.IGNORECASE
    )


def deduplicate_issues(
    issues: Sequence[ConsoleIssue], window: int = DEDUP_WINDOW_LINES
) -> list[ConsoleIssue]:
    """Collapse bursts of same-category issues (e.g. stack traces).

    An issue is dropped when it has the same type as the last kept issue and
    lies within ``window`` lines of it. Only the last kept issue is compared.
    """
    kept: list[ConsoleIssue] = []
    for issue in issues:
        if kept and issue.type == kept[-1].type and issue.line - kept[-1].line <= window:
            continue
        kept.append(issue)
    return kept


def scan_console_optimized(
    console_output: str | None,
    patterns: Sequence[ErrorPattern] = DETAILED_PATTERNS,
    deduplicate: bool = True,
) -> list[ConsoleIssue]:
    """Scan large console output with a combined-regex prefilter.

    Lines are first filtered with a single alternation of all pattern sources;
    only candidates are matched per pattern. Without deduplication the result
    equals :func:`scan_console`.

    Args:
        console_output: Raw console text.
        patterns: Ordered pattern catalog.
        deduplicate: Collapse nearby same-category issues.

    Returns:
        Issues in line order.
    """
    if not console_output:
        return []

    combined = combine_patterns(patterns)
    lines = console_output.split("\n")
    candidates = [(i, line) for i, line in enumerate(lines) if combined.search(line)]
    logger.debug(f"{len(candidates)} of {len(lines)} console lines matched prefilter")

    issues: list[ConsoleIssue] = []
    for index, line in candidates:
        issue = _classify(line, index, patterns)
        if issue:
            issues.append(issue)

    if deduplicate:
        return deduplicate_issues(issues)
    return issues
