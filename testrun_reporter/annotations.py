"""Selection of failed tests reported as check run annotations."""

import logging

from .markdown import ellipsis, fix_eol
from .models import (
    UNKNOWN_PATH,
    Annotation,
    AnnotationLevel,
    TestCase,
    TestRunResult,
    TestStatus,
    TestSuite,
)

logger = logging.getLogger(__name__)

# GitHub accepts at most 50 annotations per check run update
MAX_ANNOTATIONS = 50
MAX_TITLE_LENGTH = 255
MAX_MESSAGE_LENGTH = 65535


def get_annotations(results: list[TestRunResult], max_annotations: int) -> list[Annotation]:
    """Create one annotation per failed test, in report order, up to max_annotations.

    Identical failures from different report files are not merged; each one
    uses its own slot of the quota.
    """
    if max_annotations <= 0:
        return []

    annotations = []
    for tr in results:
        for suite in tr.suites:
            for tc in suite.test_cases:
                if tc.status != TestStatus.FAILED:
                    continue
                annotations.append(_create_annotation(tr, suite, tc))
                if len(annotations) >= max_annotations:
                    logger.debug(f"Annotation limit of {max_annotations} reached")
                    return annotations
    return annotations


def _create_annotation(tr: TestRunResult, suite: TestSuite, tc: TestCase) -> Annotation:
    message = tc.error.message if tc.error else "Test failed"
    trace = tc.error.trace if tc.error else ""

    lines = [
        "Failed test found in:",
        f"  {tr.source_file}",
        "Error:",
        "\n".join(f"  {line}" for line in fix_eol(message).split("\n")),
    ]
    if trace:
        lines += ["", fix_eol(trace)]

    return Annotation(
        path=tc.resolved_path or UNKNOWN_PATH,
        line=tc.line if tc.line and tc.line > 0 else 1,
        level=AnnotationLevel.FAILURE,
        title=ellipsis(f"{suite.name} ► {tc.name}", MAX_TITLE_LENGTH),
        message=ellipsis("\n".join(lines), MAX_MESSAGE_LENGTH),
    )
