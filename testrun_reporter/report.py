"""
Markdown summary report.

The same text is used as check run summary, pull request comment and job
summary. Rendering is a pure function of the results and the options, results
are rendered in the order they were given.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional
from urllib.parse import quote

from .markdown import Align, Icon, byte_length, format_time, link, slug, table
from .models import RunResult, TestRunResult, TestStatus, TestSuite

logger = logging.getLogger(__name__)

# Check run summaries are limited to 65535 bytes
MAX_REPORT_LENGTH = 65535

# Badge, blank line and totals line at the top of every report
SUMMARY_LINES = 3


class ListSuites(Enum):
    ALL = "all"
    FAILED = "failed"


class ListTests(Enum):
    ALL = "all"
    FAILED = "failed"
    NONE = "none"


@dataclass(frozen=True)
class ReportOptions:
    """Options of the summary report.

    Attributes:
        list_suites: Include all suites or only failed ones
        list_tests: Test level detail: all tests, failed tests or none
        only_summary: Render only the aggregate header
        base_url: Prefix of in-page links (check run URL), may be empty
    """
    list_suites: ListSuites = ListSuites.ALL
    list_tests: ListTests = ListTests.ALL
    only_summary: bool = False
    base_url: str = ""


def get_report(results: list[TestRunResult], options: ReportOptions = ReportOptions(),
               max_length: int = MAX_REPORT_LENGTH) -> str:
    """Render the summary report, shrinking it to max_length UTF-8 bytes if needed."""
    header = _render_header(results, options)
    if options.only_summary:
        return _trim(header, [], max_length)

    sections: list[Optional[list[str]]] = [_render_run(tr, i, options) for i, tr in enumerate(results)]
    report = _join(header, sections)
    if byte_length(report) <= max_length:
        return report

    if options.list_tests == ListTests.ALL:
        logger.info("Test report summary is too big - listing only failed tests")
        options = replace(options, list_tests=ListTests.FAILED)
        sections = [_render_run(tr, i, options) for i, tr in enumerate(results)]
        report = _join(header, sections)
        if byte_length(report) <= max_length:
            return report

    omitted = 0
    length = byte_length("\n".join(header)) + sum(_section_length(s) for s in sections)
    for index in reversed(range(len(results))):
        if results[index].result == RunResult.FAILED:
            continue
        length -= _section_length(sections[index])
        sections[index] = None
        omitted += 1
        if length + _section_length(_omitted_note(omitted)) <= max_length:
            report = _join(header, sections, omitted)
            logger.info(f"Omitted {omitted} passing report sections to fit the size limit")
            return report

    logger.warning(f"Test report summary exceeded limit of {max_length} bytes and will be trimmed")
    return _trim(header, [line for s in sections if s for line in s] + _omitted_note(omitted), max_length)


def _join(header: list[str], sections: list[Optional[list[str]]], omitted: int = 0) -> str:
    lines = list(header)
    for section in sections:
        if section:
            lines.extend(section)
    lines.extend(_omitted_note(omitted))
    return "\n".join(lines)


def _section_length(lines: Optional[list[str]]) -> int:
    """Bytes the lines add to the report, including their line breaks."""
    return sum(byte_length(line) + 1 for line in lines or ())


def _omitted_note(omitted: int) -> list[str]:
    if not omitted:
        return []
    return ["", f"_Details of {omitted} passing report(s) were omitted to stay within the size limit._"]


def _trim(header: list[str], details: list[str], max_length: int) -> str:
    """Cut trailing lines, closing an open code block and <details> element.

    The badge and totals line are always kept. The per-file table and the
    details are cut row by row.
    """
    lines = header + details
    if byte_length("\n".join(lines)) <= max_length:
        return "\n".join(lines)

    notice = f"**Report exceeded GitHub limit of {max_length} bytes and has been trimmed**"
    closing = "\n```\n</details>\n"
    kept = header[:SUMMARY_LINES]
    length = byte_length("\n".join(kept)) + 1
    budget = max_length - byte_length(notice) - byte_length(closing)
    lines = [row for line in header[SUMMARY_LINES:] + details for row in line.split("\n")]

    code_block = False
    open_details = False
    for line in lines:
        size = byte_length(line) + 1
        if length + size > budget:
            break
        kept.append(line)
        length += size
        if line == "```":
            code_block = not code_block
        elif line.startswith("<details"):
            open_details = True
        elif line == "</details>":
            open_details = False

    if code_block:
        kept.append("```")
    if open_details:
        kept.append("</details>")
    kept.append(notice)
    return "\n".join(kept)


def _render_header(results: list[TestRunResult], options: ReportOptions) -> list[str]:
    passed = sum(tr.passed for tr in results)
    failed = sum(tr.failed for tr in results)
    skipped = sum(tr.skipped for tr in results)
    total = passed + failed + skipped
    time = sum(tr.duration_seconds for tr in results)

    lines = [_badge(passed, failed, skipped), ""]
    if total == 0:
        lines.append("No tests found")
        return lines

    icon = Icon.fail if failed > 0 else Icon.success
    lines.append(f"{icon} **{total}** tests were completed in **{format_time(time)}** with "
                 f"**{passed}** passed, **{failed}** failed and **{skipped}** skipped.")

    rows = []
    for i, tr in enumerate(results):
        _, address = _run_slug(i)
        rows.append([
            link(tr.source_file, options.base_url + address),
            _count(tr.passed, Icon.success),
            _count(tr.failed, Icon.fail),
            _count(tr.skipped, Icon.skip),
            format_time(tr.duration_seconds),
        ])
    lines += ["", table(["Report", "Passed", "Failed", "Skipped", "Time"],
                        [Align.LEFT, Align.RIGHT, Align.RIGHT, Align.RIGHT, Align.RIGHT], *rows)]
    return lines


def _badge(passed: int, failed: int, skipped: int) -> str:
    text = []
    if passed > 0:
        text.append(f"{passed} passed")
    if failed > 0:
        text.append(f"{failed} failed")
    if skipped > 0:
        text.append(f"{skipped} skipped")
    message = ", ".join(text) or "none"

    if failed > 0:
        color, hint = "critical", "Tests failed"
    elif passed > 0:
        color, hint = "success", "Tests passed successfully"
    else:
        color, hint = "yellow", "Tests are skipped"

    uri = quote(f"tests-{message}-{color}", safe="")
    return f"![{hint}](https://img.shields.io/badge/{uri})"


def _render_run(tr: TestRunResult, run_index: int, options: ReportOptions) -> list[str]:
    anchor_id, address = _run_slug(run_index)
    icon = _result_icon(tr.result)
    opened = " open" if tr.result == RunResult.FAILED else ""

    lines = [
        "",
        f"<details{opened}><summary>{icon} {tr.source_file}</summary>",
        "",
        f"## {icon}\xa0<a id=\"{anchor_id}\" href=\"{options.base_url + address}\">{tr.source_file}</a>",
    ]
    if tr.tests > 0:
        lines.append(f"**{tr.tests}** tests were completed in **{format_time(tr.duration_seconds)}** with "
                     f"**{tr.passed}** passed, **{tr.failed}** failed and **{tr.skipped}** skipped.")
    else:
        lines.append("No tests found")

    suites = list(enumerate(tr.suites))
    if options.list_suites == ListSuites.FAILED:
        suites = [(i, s) for i, s in suites if s.failed > 0]

    if suites:
        rows = []
        for suite_index, suite in suites:
            name = suite.name
            if _lists_tests(suite, options):
                _, suite_address = _suite_slug(run_index, suite_index)
                name = link(suite.name, options.base_url + suite_address)
            rows.append([
                name,
                _count(suite.passed, Icon.success),
                _count(suite.failed, Icon.fail),
                _count(suite.skipped, Icon.skip),
                format_time(suite.duration_seconds),
            ])
        lines += ["", table(["Test suite", "Passed", "Failed", "Skipped", "Time"],
                            [Align.LEFT, Align.RIGHT, Align.RIGHT, Align.RIGHT, Align.RIGHT], *rows)]

    for suite_index, suite in suites:
        if _lists_tests(suite, options):
            lines += _render_tests(suite, run_index, suite_index, options)

    lines += ["", "</details>"]
    return lines


def _lists_tests(suite: TestSuite, options: ReportOptions) -> bool:
    if options.list_tests == ListTests.NONE or not suite.test_cases:
        return False
    return options.list_tests == ListTests.ALL or suite.failed > 0


def _render_tests(suite: TestSuite, run_index: int, suite_index: int, options: ReportOptions) -> list[str]:
    anchor_id, address = _suite_slug(run_index, suite_index)
    icon = _result_icon(suite.result)
    lines = [
        "",
        f"### {icon}\xa0<a id=\"{anchor_id}\" href=\"{options.base_url + address}\">{suite.name}</a>",
        "```",
    ]
    for tc in suite.test_cases:
        if options.list_tests == ListTests.FAILED and tc.status != TestStatus.FAILED:
            continue
        lines.append(f"{_status_icon(tc.status)} {tc.name}")
        if tc.error and tc.error.message:
            lines += [f"\t{line}" for line in tc.error.message.splitlines() if line.strip()]
    lines.append("```")
    return lines


def _count(value: int, icon: str) -> str:
    return f"{value} {icon}" if value > 0 else ""


def _run_slug(run_index: int) -> tuple[str, str]:
    return slug(f"r{run_index}")


def _suite_slug(run_index: int, suite_index: int) -> tuple[str, str]:
    return slug(f"r{run_index}s{suite_index}")


def _result_icon(result: RunResult) -> str:
    return Icon.fail if result == RunResult.FAILED else Icon.success


def _status_icon(status: TestStatus) -> str:
    return {
        TestStatus.PASSED: Icon.success,
        TestStatus.FAILED: Icon.fail,
        TestStatus.SKIPPED: Icon.skip,
    }[status]
