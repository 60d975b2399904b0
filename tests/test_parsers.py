"""Tests for the report format decoders."""

import json
from pathlib import Path

import pytest

from testrun_reporter.base_parser import ParseOptions, parse_duration, parse_float
from testrun_reporter.dart_json_parser import DartJsonParser
from testrun_reporter.errors import ConfigurationError, DecodeError
from testrun_reporter.junit_parser import JavaJunitParser, JestJunitParser
from testrun_reporter.mocha_json_parser import MochaJsonParser
from testrun_reporter.models import SUITE_SEPARATOR, RunResult, TestStatus
from testrun_reporter.parsers import Reporter, get_parser
from testrun_reporter.trx_parser import DotnetTrxParser

FIXTURES = Path(__file__).parent / "fixtures"


def read_fixture(name: str) -> bytes:
    return (FIXTURES / name).read_bytes()


def make_options(tracked=(), work_dir=None, parse_errors=True) -> ParseOptions:
    return ParseOptions(work_dir=work_dir, tracked_files=frozenset(tracked), parse_errors=parse_errors)


class TestDurationHelpers:
    """Tests for numeric helpers shared by decoders."""

    def test_parse_float_tolerates_thousands_separator(self):
        """Large JUnit times are sometimes written with a comma."""
        assert parse_float("1,234.5") == 1234.5
        assert parse_float("abc") is None
        assert parse_float(None) is None

    def test_parse_duration_timespan(self):
        """TRX durations are .NET TimeSpan strings."""
        assert parse_duration("00:00:01.5000000") == pytest.approx(1.5)
        assert parse_duration("1.02:00:00") == pytest.approx(93600)

    def test_parse_duration_iso8601(self):
        """ISO-8601 durations are accepted as well."""
        assert parse_duration("PT1M30S") == pytest.approx(90)
        assert parse_duration("garbage") is None


class TestJavaJunitParser:
    """Tests for Java JUnit XML decoding."""

    @pytest.fixture
    def parser(self):
        return JavaJunitParser(make_options(tracked=[
            "src/main/java/com/acme/calc/Calculator.java",
            "src/test/java/com/acme/calc/CalculatorTest.java",
        ]))

    def test_counts_and_result(self, parser):
        """Counts at suite and run level match the test cases."""
        result = parser.decode("reports/TEST-calc.xml", read_fixture("java-junit.xml"))

        assert result.source_file == "reports/TEST-calc.xml"
        assert (result.passed, result.failed, result.skipped) == (2, 1, 1)
        assert result.result == RunResult.FAILED
        assert len(result.suites) == 1
        suite = result.suites[0]
        assert suite.name == "com.acme.calc.CalculatorTest"
        assert (suite.passed, suite.failed, suite.skipped) == (2, 1, 1)

    def test_durations_in_seconds(self, parser):
        """Run time is the sum of the suite times, suite time comes from the report."""
        result = parser.decode("calc.xml", read_fixture("java-junit.xml"))

        assert result.suites[0].duration_seconds == pytest.approx(1.25)
        assert result.duration_seconds == pytest.approx(1.25)
        assert result.suites[0].test_cases[1].duration_seconds == pytest.approx(0.15)

    def test_failure_located_from_stack_trace(self, parser):
        """Package and file name of the stack frame map to the tracked test source."""
        result = parser.decode("calc.xml", read_fixture("java-junit.xml"))
        failed = [tc for tc in result.suites[0].test_cases if tc.status == TestStatus.FAILED][0]

        assert failed.name == "divides by zero"
        assert failed.error.message == "expected: <0> but was: <1>"
        assert "CalculatorTest.java:42" in failed.error.trace
        assert failed.resolved_path == "src/test/java/com/acme/calc/CalculatorTest.java"
        assert failed.line == 42

    def test_parse_errors_disabled_skips_error_detail(self):
        """Without error parsing, failed cases keep their status but carry no detail."""
        parser = JavaJunitParser(make_options(parse_errors=False))
        result = parser.decode("calc.xml", read_fixture("java-junit.xml"))
        failed = [tc for tc in result.suites[0].test_cases if tc.status == TestStatus.FAILED]

        assert len(failed) == 1
        assert failed[0].error is None
        assert failed[0].resolved_path is None

    def test_nested_suites_are_flattened(self):
        """Nested suites become one suite per leaf, named after their ancestors."""
        content = b"""<testsuites>
          <testsuite name="outer" time="9">
            <testsuite name="inner" time="0.5">
              <testcase name="a" time="0.25"/>
              <testcase name="b" time="0.25"><error message="boom"/></testcase>
            </testsuite>
          </testsuite>
        </testsuites>"""
        result = JavaJunitParser(make_options()).decode("nested.xml", content)

        assert [s.name for s in result.suites] == [f"outer{SUITE_SEPARATOR}inner"]
        assert result.failed == 1
        assert result.duration_seconds == pytest.approx(0.5)

    def test_single_testsuite_root(self):
        """A bare <testsuite> document is accepted."""
        content = b'<testsuite name="s"><testcase name="t" time="0.001"/></testsuite>'
        result = JavaJunitParser(make_options()).decode("s.xml", content)

        assert result.passed == 1
        assert result.result == RunResult.SUCCESS

    def test_invalid_xml_raises_decode_error(self):
        """Malformed XML is reported with the file name."""
        with pytest.raises(DecodeError) as exc:
            JavaJunitParser(make_options()).decode("broken.xml", b"<testsuites><testsuite>")
        assert exc.value.file_name == "broken.xml"
        assert "broken.xml" in str(exc.value)

    def test_unexpected_root_raises_decode_error(self):
        """A well-formed document of another kind is rejected."""
        with pytest.raises(DecodeError):
            JavaJunitParser(make_options()).decode("other.xml", b"<project/>")


class TestJestJunitParser:
    """Tests for jest-junit decoding."""

    def test_failure_located_from_js_stack_frame(self):
        """Absolute paths from the build machine are relativized to the working directory."""
        parser = JestJunitParser(make_options(
            tracked=["src/__tests__/sum.test.js", "src/sum.js"],
            work_dir="/home/runner/work/app/app",
        ))
        result = parser.decode("junit.xml", read_fixture("jest-junit.xml"))

        assert (result.passed, result.failed, result.skipped) == (2, 1, 0)
        failed = result.suites[0].test_cases[2]
        assert failed.error.message == "Error: expect(received).toThrow()"
        assert failed.resolved_path == "src/__tests__/sum.test.js"
        assert failed.line == 14

    def test_unknown_location_stays_unresolved(self):
        """No tracked file matches, so no path is reported."""
        parser = JestJunitParser(make_options(tracked=["lib/other.js"]))
        result = parser.decode("junit.xml", read_fixture("jest-junit.xml"))

        assert result.suites[0].test_cases[2].resolved_path is None


class TestDotnetTrxParser:
    """Tests for TRX decoding."""

    @pytest.fixture
    def result(self):
        parser = DotnetTrxParser(make_options(tracked=["Calc.Tests/CalculatorTests.cs", "Calc/Calculator.cs"]))
        return parser.decode("TestResults/run.trx", read_fixture("dotnet-trx.trx"))

    def test_suites_per_class(self, result):
        """One suite per test class, in order of first appearance."""
        assert [s.name for s in result.suites] == ["Calc.Tests.CalculatorTests", "Calc.Tests.ParserTests"]
        assert [tc.name for tc in result.suites[0].test_cases] == ["Add", "Divide", "Multiply"]

    def test_outcomes_map_to_status(self, result):
        """NotExecuted is skipped, Failed is failed."""
        assert (result.passed, result.failed, result.skipped) == (2, 1, 1)
        statuses = [tc.status for tc in result.suites[0].test_cases]
        assert statuses == [TestStatus.PASSED, TestStatus.FAILED, TestStatus.SKIPPED]

    def test_timespan_durations(self, result):
        """Durations are converted to seconds and summed per suite."""
        assert result.suites[0].duration_seconds == pytest.approx(0.51)
        assert result.suites[1].duration_seconds == pytest.approx(1.25)
        assert result.duration_seconds == pytest.approx(1.76)

    def test_error_and_location(self, result):
        """Message and stack trace come from ErrorInfo, the location from the trace."""
        failed = result.suites[0].test_cases[1]

        assert failed.error.message.startswith("Assert.Equal() Failure")
        assert failed.resolved_path == "Calc.Tests/CalculatorTests.cs"
        assert failed.line == 42

    def test_wrong_root_raises_decode_error(self):
        """A JUnit document is not a TRX file."""
        with pytest.raises(DecodeError):
            DotnetTrxParser(make_options()).decode("x.trx", read_fixture("java-junit.xml"))


class TestDartJsonParser:
    """Tests for the Dart / Flutter JSON event stream decoding."""

    @pytest.fixture
    def result(self):
        parser = DartJsonParser(make_options(
            tracked=["lib/calculator.dart", "test/calculator_test.dart"],
            work_dir="/home/runner/work/app/app",
        ))
        return parser.decode("test-results.json", read_fixture("dart-json.json"))

    def test_hidden_tests_are_dropped(self, result):
        """The 'loading' pseudo test does not count."""
        assert result.tests == 3
        assert (result.passed, result.failed, result.skipped) == (1, 1, 1)

    def test_suite_and_test_names(self, result):
        """Suites are named by file and group, the group prefix is stripped from test names."""
        assert [s.name for s in result.suites] == [f"test/calculator_test.dart{SUITE_SEPARATOR}Calculator"]
        assert [tc.name for tc in result.suites[0].test_cases] == ["adds", "divides", "multiplies"]

    def test_millisecond_durations(self, result):
        """Event times are milliseconds, durations are seconds."""
        cases = result.suites[0].test_cases
        assert cases[0].duration_seconds == pytest.approx(0.030)
        assert cases[1].duration_seconds == pytest.approx(0.120)

    def test_failure_detail(self, result):
        """The error event supplies the message, the test url the location."""
        failed = result.suites[0].test_cases[1]

        assert failed.error.message.startswith("Expected: <0>")
        assert failed.resolved_path == "test/calculator_test.dart"
        assert failed.line == 10

    def test_unfinished_test_counts_as_failed(self):
        """A test without testDone event failed (e.g. the runner crashed)."""
        events = [
            {"suite": {"id": 0, "path": "test/a_test.dart"}, "type": "suite", "time": 0},
            {"test": {"id": 1, "name": "hangs", "suiteID": 0, "groupIDs": []}, "type": "testStart", "time": 5},
        ]
        content = "\n".join(json.dumps(e) for e in events).encode()
        result = DartJsonParser(make_options()).decode("crash.json", content)

        assert result.failed == 1
        assert result.suites[0].test_cases[0].error.message == "Test did not finish"

    def test_flutter_exception_replaces_generic_message(self):
        """Flutter prints the real failure before a generic error event."""
        printed = (
            "══╡ EXCEPTION CAUGHT BY FLUTTER TEST FRAMEWORK ╞════════════════\n"
            "The following TestFailure was thrown running a test:\n"
            "Expected: exactly one matching node\n"
            "\n"
            "════════════════════════════════════════════════════════════════"
        )
        events = [
            {"suite": {"id": 0, "path": "test/widget_test.dart"}, "type": "suite", "time": 0},
            {"test": {"id": 1, "name": "renders", "suiteID": 0, "groupIDs": []}, "type": "testStart", "time": 1},
            {"testID": 1, "messageType": "print", "message": printed, "type": "print", "time": 2},
            {"testID": 1, "error": "Test failed. See exception logs above.\nThe test description was: renders",
             "stackTrace": "", "isFailure": False, "type": "error", "time": 3},
            {"testID": 1, "result": "error", "skipped": False, "hidden": False, "type": "testDone", "time": 4},
        ]
        content = "\n".join(json.dumps(e, ensure_ascii=False) for e in events).encode()
        result = DartJsonParser(make_options(), sdk="flutter").decode("flutter.json", content)

        message = result.suites[0].test_cases[0].error.message
        assert message.startswith("The following TestFailure was thrown running a test:")
        assert "Expected: exactly one matching node" in message

    def test_invalid_line_raises_decode_error(self):
        """Every line must be a JSON event."""
        with pytest.raises(DecodeError):
            DartJsonParser(make_options()).decode("bad.json", b'{"type":"start","time":0}\nnot json\n')

    def test_event_with_wrong_shape_raises_decode_error(self):
        """A well-formed event with unexpected value types is a decode error."""
        with pytest.raises(DecodeError, match="unexpected report structure"):
            DartJsonParser(make_options()).decode("bad.json", b'{"type":"testStart","test":[1]}\n')

    def test_test_named_like_its_group_keeps_full_name(self):
        """A name that is only the group prefix is not stripped to nothing."""
        events = [
            {"suite": {"id": 0, "path": "test/a_test.dart"}, "type": "suite", "time": 0},
            {"group": {"id": 2, "name": "Calculator"}, "type": "group", "time": 0},
            {"test": {"id": 1, "name": "Calculator ", "suiteID": 0, "groupIDs": [2]}, "type": "testStart", "time": 1},
            {"testID": 1, "result": "success", "hidden": False, "type": "testDone", "time": 2},
        ]
        content = "\n".join(json.dumps(e) for e in events).encode()
        result = DartJsonParser(make_options()).decode("group.json", content)

        assert result.passed == 1
        assert result.suites[0].test_cases[0].name == "Calculator "


class TestMochaJsonParser:
    """Tests for mocha JSON decoding."""

    @pytest.fixture
    def result(self):
        parser = MochaJsonParser(make_options(
            tracked=["src/calculator.js", "test/calculator.test.js", "test/parser.test.js"],
            work_dir="/home/runner/work/app/app",
        ))
        return parser.decode("mocha.json", read_fixture("mocha-json.json"))

    def test_counts_include_hook_failures(self, result):
        """Hook failures that are not part of 'tests' are still reported."""
        assert (result.passed, result.failed, result.skipped) == (1, 2, 1)

    def test_suites_by_file_and_describe(self, result):
        """Suite names combine the relative file and the describe path."""
        assert [s.name for s in result.suites] == [
            f"test/calculator.test.js{SUITE_SEPARATOR}Calculator",
            f"test/parser.test.js{SUITE_SEPARATOR}Parser",
        ]

    def test_millisecond_durations(self, result):
        """Durations are reported in milliseconds."""
        assert result.suites[0].duration_seconds == pytest.approx(0.015)

    def test_failure_location_from_stack(self, result):
        """The first stack frame pointing into a tracked file is used."""
        failed = result.suites[0].test_cases[1]

        assert failed.name == "divides"
        assert failed.error.message == "expected 1 to equal 0"
        assert failed.resolved_path == "test/calculator.test.js"
        assert failed.line == 15

    def test_not_a_mocha_report(self):
        """JSON without test lists is rejected."""
        with pytest.raises(DecodeError):
            MochaJsonParser(make_options()).decode("x.json", b'{"foo": 1}')

    @pytest.mark.parametrize("test", [
        {"title": "t", "err": "boom"},
        {"title": "t", "duration": "fast"},
    ])
    def test_wrong_value_types_raise_decode_error(self, test):
        """Unexpected value types are reported as decode errors."""
        content = json.dumps({"tests": [test]}).encode()
        with pytest.raises(DecodeError, match="unexpected report structure"):
            MochaJsonParser(make_options()).decode("x.json", content)


class TestReporterRegistry:
    """Tests for reporter selection."""

    @pytest.mark.parametrize("name, parser_type", [
        ("java-junit", JavaJunitParser),
        ("jest-junit", JestJunitParser),
        ("dotnet-trx", DotnetTrxParser),
        ("dart-json", DartJsonParser),
        ("flutter-json", DartJsonParser),
        ("mocha-json", MochaJsonParser),
    ])
    def test_get_parser(self, name, parser_type):
        """Every supported reporter id maps to its decoder."""
        assert isinstance(get_parser(name, make_options()), parser_type)

    def test_flutter_uses_flutter_sdk(self):
        """flutter-json enables the Flutter message handling."""
        assert get_parser(Reporter.FLUTTER_JSON, make_options()).sdk == "flutter"

    def test_invalid_reporter(self):
        """Unknown reporter ids are configuration errors."""
        with pytest.raises(ConfigurationError, match="invalid value 'nunit'"):
            Reporter.parse("nunit")
