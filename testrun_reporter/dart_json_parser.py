"""
Decoder for the Dart / Flutter test runner JSON reporter.

The reporter emits one JSON event per line (suite, group, testStart, error,
print, testDone, done). Event times are milliseconds since the run started.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from .base_parser import ReportParser, first_non_empty_line
from .errors import DecodeError
from .models import SUITE_SEPARATOR, TestCase, TestError, TestRunResult, TestStatus, TestSuite

logger = logging.getLogger(__name__)

# test/calculator_test.dart 13:7  main.<fn>.<fn>
DART_STACK_FRAME_RE = re.compile(r'^(?P<path>[^\s:]+\.dart) (?P<line>\d+):\d+\s')

FLUTTER_USELESS_MESSAGE_RE = re.compile(r'^Test failed\. See exception logs above\.\n\s*The test description was:', re.M)
FLUTTER_EXCEPTION_RE = re.compile(r'^══╡ EXCEPTION CAUGHT BY FLUTTER TEST FRAMEWORK ╞═+\s+(.*?)\s+^═+$', re.M | re.S)


@dataclass
class _DartTest:
    name: str
    suite_id: int
    group_ids: list
    start_time: float = 0.0
    url: Optional[str] = None
    line: Optional[int] = None
    done: bool = False
    done_time: float = 0.0
    result: str = ""
    hidden: bool = False
    skipped: bool = False
    errors: list = field(default_factory=list)
    prints: list = field(default_factory=list)


class DartJsonParser(ReportParser):
    """Parses `dart test --reporter json` and `flutter test --machine` output."""

    def __init__(self, options, sdk: str = "dart"):
        super().__init__(options)
        self.sdk = sdk

    def _decode(self, file_name: str, content: bytes) -> TestRunResult:
        text = self.read_text(file_name, content)
        suites: dict[int, str] = {}
        groups: dict[int, str] = {}
        tests: dict[int, _DartTest] = {}

        for i, raw in enumerate(text.splitlines(), start=1):
            raw = raw.strip()
            if not raw:
                continue
            try:
                event = json.loads(raw)
            except json.JSONDecodeError as e:
                raise DecodeError(file_name, f"invalid JSON at line {i} ({e})") from e
            if not isinstance(event, dict) or 'type' not in event:
                raise DecodeError(file_name, f"line {i} is not a test runner event")
            self._apply(event, suites, groups, tests)

        buckets: dict[tuple, list[TestCase]] = {}
        for test in tests.values():
            if test.hidden:
                continue
            group = groups.get(test.group_ids[-1], '') if test.group_ids else ''
            suite_path = self.resolver.relative_path(suites.get(test.suite_id, '(unknown)'))
            buckets.setdefault((suite_path, group), []).append(self._test_case(test, group))

        result_suites = [
            TestSuite.build(SUITE_SEPARATOR.join(p for p in key if p), cases)
            for key, cases in buckets.items()
        ]
        return TestRunResult.build(file_name, result_suites)

    def _apply(self, event: dict, suites: dict, groups: dict, tests: dict):
        kind = event['type']
        if kind == 'suite':
            suite = event.get('suite') or {}
            suites[suite.get('id')] = suite.get('path') or '(unknown)'
        elif kind == 'group':
            group = event.get('group') or {}
            groups[group.get('id')] = group.get('name') or ''
        elif kind == 'testStart':
            test = event.get('test') or {}
            tests[test.get('id')] = _DartTest(
                name=test.get('name') or '(unnamed)',
                suite_id=test.get('suiteID'),
                group_ids=test.get('groupIDs') or [],
                start_time=event.get('time', 0),
                url=test.get('root_url') or test.get('url'),
                line=test.get('root_line') or test.get('line'),
            )
        elif kind == 'error':
            test = tests.get(event.get('testID'))
            if test:
                test.errors.append((event.get('error') or '', event.get('stackTrace') or ''))
        elif kind == 'print':
            test = tests.get(event.get('testID'))
            if test:
                test.prints.append(event.get('message') or '')
        elif kind == 'testDone':
            test = tests.get(event.get('testID'))
            if test:
                test.done = True
                test.done_time = event.get('time', test.start_time)
                test.result = event.get('result', '')
                test.hidden = bool(event.get('hidden'))
                test.skipped = bool(event.get('skipped'))

    def _test_case(self, test: _DartTest, group: str) -> TestCase:
        name = test.name
        if group and name.startswith(group + ' ') and name[len(group) + 1:].strip():
            name = name[len(group) + 1:]

        if test.skipped:
            status = TestStatus.SKIPPED
        elif test.done and test.result == 'success':
            status = TestStatus.PASSED
        else:
            status = TestStatus.FAILED

        duration = max(test.done_time - test.start_time, 0) / 1000.0 if test.done else 0.0

        if status != TestStatus.FAILED or not self.options.parse_errors:
            return TestCase(name, status, duration, source_path=test.url, line=test.line)

        if test.errors:
            message, trace = test.errors[0]
        else:
            message, trace = ('' if test.done else 'Test did not finish'), ''
        message = self._error_message(message, '\n'.join(test.prints))

        path, line = self.resolver.resolve(test.url, extensions=()), test.line
        if not path:
            location = self.resolver.find_in_trace(trace, DART_STACK_FRAME_RE)
            if location:
                path, line = location

        return TestCase(
            name, status, duration,
            error=TestError(message or 'Test failed', trace),
            source_path=test.url,
            line=line,
            resolved_path=path,
        )

    def _error_message(self, message: str, printed: str) -> str:
        if self.sdk == 'flutter' and FLUTTER_USELESS_MESSAGE_RE.search(message):
            match = FLUTTER_EXCEPTION_RE.search(printed)
            if match:
                return match.group(1)
        return message or first_non_empty_line(printed) or ''
