"""
JUnit XML decoders.

Both JUnit flavours share the document shape; they differ in how a failure is
traced back to a source file. Java stack frames only carry the package and the
file name, jest-junit traces carry absolute paths from the build machine.
"""

import logging
import re
import xml.etree.ElementTree as ET
from typing import Optional

from .base_parser import ReportParser, first_non_empty_line, parse_float
from .errors import DecodeError
from .models import SUITE_SEPARATOR, TestCase, TestError, TestRunResult, TestStatus, TestSuite

logger = logging.getLogger(__name__)

# at com.acme.calc.CalculatorTest.divide(CalculatorTest.java:42)
JAVA_STACK_FRAME_RE = re.compile(r'^\s*at (?P<method>[^\s(]+)\((?P<file>[^():]+):(?P<line>\d+)\)\s*$')


def _parse_int(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value else None
    except ValueError:
        return None


class JUnitParser(ReportParser):
    """Parses JUnit XML test results.

    Nested <testsuite> elements are flattened: every suite that directly holds
    test cases becomes one TestSuite named after its ancestors.
    """

    def _decode(self, file_name: str, content: bytes) -> TestRunResult:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise DecodeError(file_name, f"invalid XML ({e})") from e

        if root.tag == 'testsuites':
            suite_elements = root.findall('testsuite')
        elif root.tag == 'testsuite':
            suite_elements = [root]
        else:
            raise DecodeError(file_name, f"unexpected root element <{root.tag}>, expected <testsuites> or <testsuite>")

        suites: list[TestSuite] = []
        for element in suite_elements:
            self._collect_suites(element, [], suites)

        logger.debug(f"Parsed {len(suites)} suites from {file_name}")
        return TestRunResult.build(file_name, suites)

    def _collect_suites(self, element: ET.Element, parents: list[str], suites: list[TestSuite]):
        name = (element.get('name') or '').strip()
        path = parents + [name] if name else parents
        nested = element.findall('testsuite')
        cases = element.findall('testcase')

        if cases or not nested:
            # A parent suite's time includes its children, so only leaf suites report their own
            time = None if nested else parse_float(element.get('time'))
            suite_name = SUITE_SEPARATOR.join(path) or '(unnamed)'
            suites.append(TestSuite.build(suite_name, [self._parse_case(tc) for tc in cases], time))

        for child in nested:
            self._collect_suites(child, path, suites)

    def _parse_case(self, tc: ET.Element) -> TestCase:
        name = tc.get('name') or tc.get('classname') or '(unnamed)'
        duration = parse_float(tc.get('time')) or 0.0
        hint = tc.get('file') or tc.get('classname')

        failure = tc.find('failure')
        if failure is None:
            failure = tc.find('error')

        if failure is not None:
            status = TestStatus.FAILED
        elif tc.find('skipped') is not None:
            status = TestStatus.SKIPPED
        else:
            status = TestStatus.PASSED

        if status != TestStatus.FAILED or not self.options.parse_errors:
            return TestCase(name, status, duration, source_path=hint, line=_parse_int(tc.get('line')))

        trace = (failure.text or '').strip('\n')
        message = failure.get('message') or first_non_empty_line(trace) or failure.get('type') or 'Test failed'
        path, line = self._locate(tc, trace)
        return TestCase(
            name, status, duration,
            error=TestError(message.strip(), trace),
            source_path=hint,
            line=line,
            resolved_path=path,
        )

    def _locate(self, tc: ET.Element, trace: str) -> tuple[Optional[str], Optional[int]]:
        """Find the source file of a failed test case."""
        line = _parse_int(tc.get('line'))
        path = self.resolver.resolve(tc.get('file'))
        if path:
            return path, line
        location = self._find_in_trace(trace)
        if location:
            return location
        return self.resolver.resolve(tc.get('classname')), line

    def _find_in_trace(self, trace: str) -> Optional[tuple[str, int]]:
        return None


class JavaJunitParser(JUnitParser):
    """JUnit XML produced by Java build tools (Maven Surefire, Gradle)."""

    def _find_in_trace(self, trace: str) -> Optional[tuple[str, int]]:
        for frame in trace.splitlines():
            match = JAVA_STACK_FRAME_RE.match(frame)
            if not match:
                continue
            # Package names are lower case, the class name starts with a capital letter
            parts = match.group('method').split('.')
            package = []
            for part in parts:
                if not part or part[0].isupper():
                    break
                package.append(part)
            hint = '/'.join(package + [match.group('file')])
            path = self.resolver.resolve(hint, extensions=())
            if path:
                return path, int(match.group('line'))
        return None


class JestJunitParser(JUnitParser):
    """JUnit XML produced by jest-junit."""

    def _locate(self, tc: ET.Element, trace: str) -> tuple[Optional[str], Optional[int]]:
        # classname holds the describe/test title, not a module name
        path = self.resolver.resolve(tc.get('file'))
        if path:
            return path, _parse_int(tc.get('line'))
        location = self.resolver.find_in_trace(trace)
        if location:
            return location
        return None, None
