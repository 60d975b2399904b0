"""
Data models for normalized test results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

# Joins nested group names (nested suites, describe blocks, Dart groups) into one suite name
SUITE_SEPARATOR = " › "

# Annotation path used when a failing test cannot be mapped to a tracked file
UNKNOWN_PATH = "file-unknown"


class TestStatus(Enum):
    """Status of a single test case."""
    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunResult(Enum):
    """Overall outcome of a suite or a report file."""
    SUCCESS = "success"
    FAILED = "failed"


class AnnotationLevel(Enum):
    WARNING = "warning"
    FAILURE = "failure"


@dataclass(frozen=True)
class TestError:
    """Failure detail of a test case."""
    __test__ = False

    message: str
    trace: str = ""


@dataclass(frozen=True)
class TestCase:
    """Represents a single test case result."""
    __test__ = False

    name: str
    status: TestStatus
    duration_seconds: float = 0.0
    error: Optional[TestError] = None
    source_path: Optional[str] = None
    line: Optional[int] = None
    resolved_path: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Test case name must not be empty")
        if self.duration_seconds < 0:
            object.__setattr__(self, "duration_seconds", 0.0)


@dataclass(frozen=True)
class TestSuite:
    """Represents a test suite (collection of test cases).

    Counters are computed once by ``build`` and stored, so filtering the
    cases for display never changes the reported totals.
    """
    __test__ = False

    name: str
    test_cases: tuple[TestCase, ...] = ()
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    duration_seconds: float = 0.0

    @classmethod
    def build(cls, name: str, test_cases: list[TestCase],
              duration_seconds: Optional[float] = None) -> "TestSuite":
        cases = tuple(test_cases)
        if duration_seconds is None:
            duration_seconds = sum(tc.duration_seconds for tc in cases)
        return cls(
            name=name,
            test_cases=cases,
            passed=sum(1 for tc in cases if tc.status == TestStatus.PASSED),
            failed=sum(1 for tc in cases if tc.status == TestStatus.FAILED),
            skipped=sum(1 for tc in cases if tc.status == TestStatus.SKIPPED),
            duration_seconds=max(duration_seconds, 0.0),
        )

    @property
    def tests(self) -> int:
        return self.passed + self.failed + self.skipped

    @property
    def result(self) -> RunResult:
        return RunResult.FAILED if self.failed > 0 else RunResult.SUCCESS


@dataclass(frozen=True)
class TestRunResult:
    """All suites decoded from one report file."""
    __test__ = False

    source_file: str
    suites: tuple[TestSuite, ...] = ()
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    duration_seconds: float = 0.0

    @classmethod
    def build(cls, source_file: str, suites: list[TestSuite]) -> "TestRunResult":
        suites = tuple(suites)
        return cls(
            source_file=source_file,
            suites=suites,
            passed=sum(s.passed for s in suites),
            failed=sum(s.failed for s in suites),
            skipped=sum(s.skipped for s in suites),
            duration_seconds=sum(s.duration_seconds for s in suites),
        )

    @property
    def tests(self) -> int:
        return self.passed + self.failed + self.skipped

    @property
    def result(self) -> RunResult:
        return RunResult.FAILED if self.failed > 0 else RunResult.SUCCESS

    @property
    def failed_suites(self) -> list[TestSuite]:
        return [s for s in self.suites if s.failed > 0]

    def to_dict(self) -> dict:
        return {
            "source_file": self.source_file,
            "result": self.result.value,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "time": self.duration_seconds,
            "suites": [
                {
                    "name": s.name,
                    "passed": s.passed,
                    "failed": s.failed,
                    "skipped": s.skipped,
                    "time": s.duration_seconds,
                    "tests": [
                        {
                            "name": tc.name,
                            "status": tc.status.value,
                            "time": tc.duration_seconds,
                            "path": tc.resolved_path,
                            "line": tc.line,
                            "error": tc.error.message if tc.error else None,
                        }
                        for tc in s.test_cases
                    ],
                }
                for s in self.suites
            ],
        }


@dataclass(frozen=True)
class Annotation:
    """Inline pointer from a failing test to a source location."""
    path: str
    line: int
    level: AnnotationLevel
    title: str
    message: str

    def to_dict(self) -> dict:
        """Shape expected by the check runs API."""
        return {
            "path": self.path,
            "start_line": self.line,
            "end_line": self.line,
            "annotation_level": self.level.value,
            "title": self.title,
            "message": self.message,
        }


@dataclass(frozen=True)
class DecodeFailure:
    """A report file that could not be decoded."""
    file_name: str
    cause: str


@dataclass
class ReportRun:
    """Everything produced by one run over a report group."""
    name: str
    results: list[TestRunResult] = field(default_factory=list)
    decode_failures: list[DecodeFailure] = field(default_factory=list)
    annotations: list[Annotation] = field(default_factory=list)
    summary: str = ""
    url: Optional[str] = None
    fail_on_decode_error: bool = False

    @property
    def passed(self) -> int:
        return sum(tr.passed for tr in self.results)

    @property
    def failed(self) -> int:
        return sum(tr.failed for tr in self.results)

    @property
    def skipped(self) -> int:
        return sum(tr.skipped for tr in self.results)

    @property
    def duration_seconds(self) -> float:
        return sum(tr.duration_seconds for tr in self.results)

    @property
    def is_failed(self) -> bool:
        if any(tr.result == RunResult.FAILED for tr in self.results):
            return True
        return self.fail_on_decode_error and bool(self.decode_failures)

    @property
    def conclusion(self) -> str:
        return "failure" if self.is_failed else "success"
