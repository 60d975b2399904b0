"""Visual Studio TRX (dotnet test --logger trx) decoder."""

import logging
import re
import xml.etree.ElementTree as ET
from typing import Optional

from .base_parser import ReportParser, first_non_empty_line, parse_duration
from .errors import DecodeError
from .models import TestCase, TestError, TestRunResult, TestStatus, TestSuite

logger = logging.getLogger(__name__)

# at Calc.Tests.CalculatorTests.Divide() in /home/runner/work/calc/Calc.Tests/CalculatorTests.cs:line 42
DOTNET_STACK_FRAME_RE = re.compile(r'^\s*at .+ in (?P<path>.+):line (?P<line>\d+)\s*$')

PASSED_OUTCOMES = {"Passed", "PassedButRunAborted", "Completed", "Warning"}
SKIPPED_OUTCOMES = {"NotExecuted", "Inconclusive", "Pending", "NotRunnable", "Disconnected"}
# Anything else (Failed, Error, Timeout, Aborted, ...) counts as a failure


def _strip_namespaces(root: ET.Element):
    for element in root.iter():
        if isinstance(element.tag, str) and '}' in element.tag:
            element.tag = element.tag.split('}', 1)[1]


def _outcome_status(outcome: Optional[str]) -> TestStatus:
    if outcome in PASSED_OUTCOMES:
        return TestStatus.PASSED
    if outcome in SKIPPED_OUTCOMES:
        return TestStatus.SKIPPED
    return TestStatus.FAILED


class DotnetTrxParser(ReportParser):
    """Parses TRX results. One suite per test class."""

    def _decode(self, file_name: str, content: bytes) -> TestRunResult:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise DecodeError(file_name, f"invalid XML ({e})") from e
        _strip_namespaces(root)

        if root.tag != 'TestRun':
            raise DecodeError(file_name, f"unexpected root element <{root.tag}>, expected <TestRun>")

        classes = self._test_classes(root)
        suites: dict[str, list[TestCase]] = {}
        for result in root.findall('./Results/UnitTestResult'):
            class_name = classes.get(result.get('testId', ''), '(unknown)')
            suites.setdefault(class_name, []).append(self._parse_result(result, class_name))

        return TestRunResult.build(file_name, [TestSuite.build(name, cases) for name, cases in suites.items()])

    @staticmethod
    def _test_classes(root: ET.Element) -> dict[str, str]:
        """Map test ids to their class names."""
        classes = {}
        for unit_test in root.findall('./TestDefinitions/UnitTest'):
            method = unit_test.find('TestMethod')
            if method is None:
                continue
            # "Calc.Tests.CalculatorTests, Calc.Tests, Version=1.0.0.0" -> "Calc.Tests.CalculatorTests"
            class_name = (method.get('className') or '').split(',')[0].strip()
            classes[unit_test.get('id', '')] = class_name or '(unknown)'
        return classes

    def _parse_result(self, result: ET.Element, class_name: str) -> TestCase:
        name = result.get('testName') or '(unnamed)'
        if name.startswith(class_name + '.') and len(name) > len(class_name) + 1:
            name = name[len(class_name) + 1:]
        status = _outcome_status(result.get('outcome'))
        duration = parse_duration(result.get('duration')) or 0.0

        if status != TestStatus.FAILED or not self.options.parse_errors:
            return TestCase(name, status, duration, source_path=class_name)

        message = result.findtext('./Output/ErrorInfo/Message') or ''
        trace = result.findtext('./Output/ErrorInfo/StackTrace') or ''
        if not message:
            message = first_non_empty_line(trace) or f"Test outcome: {result.get('outcome', 'unknown')}"

        path, line = None, None
        location = self.resolver.find_in_trace(trace, DOTNET_STACK_FRAME_RE)
        if location:
            path, line = location
        else:
            path = self.resolver.resolve(class_name, extensions=('.cs', '.fs', '.vb'))

        return TestCase(
            name, status, duration,
            error=TestError(message.strip(), trace.strip('\n')),
            source_path=class_name,
            line=line,
            resolved_path=path,
        )
