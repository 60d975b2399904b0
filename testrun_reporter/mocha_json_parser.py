"""Decoder for the mocha `json` reporter."""

import json
import logging
from typing import Optional

from .base_parser import ReportParser, first_non_empty_line
from .errors import DecodeError
from .models import SUITE_SEPARATOR, TestCase, TestError, TestRunResult, TestStatus, TestSuite

logger = logging.getLogger(__name__)


def _key(test: dict) -> tuple:
    return test.get('fullTitle') or test.get('title'), test.get('file')


class MochaJsonParser(ReportParser):
    """Parses mocha JSON results. Suites are per file and describe path."""

    def _decode(self, file_name: str, content: bytes) -> TestRunResult:
        text = self.read_text(file_name, content)
        try:
            doc = json.loads(text)
        except json.JSONDecodeError as e:
            raise DecodeError(file_name, f"invalid JSON ({e})") from e

        if not isinstance(doc, dict) or not any(isinstance(doc.get(k), list) for k in ('tests', 'passes', 'failures', 'pending')):
            raise DecodeError(file_name, "not a mocha JSON report (missing 'tests' list)")

        failures = [t for t in doc.get('failures') or [] if isinstance(t, dict)]
        pending = {_key(t) for t in doc.get('pending') or [] if isinstance(t, dict)}
        failed = {_key(t) for t in failures}

        tests = doc.get('tests')
        if not isinstance(tests, list):
            # Older reporters only emit passes/failures/pending
            tests = (doc.get('passes') or []) + failures + (doc.get('pending') or [])
        tests = [t for t in tests if isinstance(t, dict)]

        seen = {_key(t) for t in tests}
        # Hook failures ("before all" hook) show up only in the failures list
        tests += [t for t in failures if _key(t) not in seen]

        suites: dict[str, list[TestCase]] = {}
        for test in tests:
            key = _key(test)
            if key in failed or test.get('err'):
                status = TestStatus.FAILED
            elif key in pending or test.get('pending'):
                status = TestStatus.SKIPPED
            else:
                status = TestStatus.PASSED
            suite_name, case = self._test_case(test, status)
            suites.setdefault(suite_name, []).append(case)

        return TestRunResult.build(file_name, [TestSuite.build(name, cases) for name, cases in suites.items()])

    def _test_case(self, test: dict, status: TestStatus) -> tuple[str, TestCase]:
        title = test.get('title') or '(unnamed)'
        full_title = test.get('fullTitle') or title
        describe = full_title[:-len(title)].strip() if full_title.endswith(title) else ''
        file = self.resolver.relative_path(test['file']) if test.get('file') else ''
        suite_name = SUITE_SEPARATOR.join(p for p in (file, describe) if p) or '(root)'

        duration = (test.get('duration') or 0) / 1000.0

        if status != TestStatus.FAILED or not self.options.parse_errors:
            return suite_name, TestCase(title, status, duration, source_path=test.get('file'))

        err = test.get('err') or {}
        trace = err.get('stack') or ''
        message = err.get('message') or first_non_empty_line(trace) or 'Test failed'

        path: Optional[str] = None
        line: Optional[int] = None
        location = self.resolver.find_in_trace(trace)
        if location:
            path, line = location
        else:
            path = self.resolver.resolve(test.get('file'), extensions=())

        return suite_name, TestCase(
            title, status, duration,
            error=TestError(message, trace),
            source_path=test.get('file'),
            line=line,
            resolved_path=path,
        )
