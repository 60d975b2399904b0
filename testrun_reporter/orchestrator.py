"""
Run orchestration: decode -> aggregate -> report -> publish for one report group.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import NamedTuple, Optional, Protocol, Union

from .annotations import get_annotations
from .base_parser import ParseOptions, ReportParser
from .config import ReporterConfig
from .errors import DecodeError
from .models import DecodeFailure, ReportRun, TestRunResult
from .parsers import get_parser
from .report import ReportOptions, get_report

logger = logging.getLogger(__name__)


class FileContent(NamedTuple):
    """Raw content of one report file."""
    file: str
    content: bytes


class RunState(Enum):
    IDLE = "idle"
    DECODING = "decoding"
    AGGREGATING = "aggregating"
    REPORTING = "reporting"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"


class Publisher(Protocol):
    """Sink for the outputs of a run (check run, PR comment, job summary)."""

    def start(self, name: str) -> str:
        """Prepare publishing and return the base URL for report links ("" if none)."""

    def finish(self, run: ReportRun) -> Optional[str]:
        """Publish the run and return the check run URL if there is one."""


class RunOrchestrator:
    """Drives one run of the pipeline over the files of a report group.

    A file that fails to decode is recorded and skipped; anything else that
    goes wrong moves the run to FAILED and is re-raised.
    """

    def __init__(self, config: ReporterConfig, publisher: Optional[Publisher] = None):
        self.config = config
        self.publisher = publisher
        self.state = RunState.IDLE

    def run(self, name: str, files: list[FileContent], tracked_files=(),
            work_dir: Optional[str] = None) -> ReportRun:
        """Process a report group.

        Args:
            name: Report (check run) name
            files: Report files in the order they should be reported
            tracked_files: Repository-relative paths of tracked source files
            work_dir: Absolute working directory the reports were produced in

        Returns:
            ReportRun with results, decode failures, annotations and summary
        """
        if self.state not in (RunState.IDLE, RunState.DONE):
            raise RuntimeError(f"Run already in progress (state: {self.state.value})")

        try:
            return self._run(name, files, tracked_files, work_dir)
        except Exception:
            self.state = RunState.FAILED
            raise

    def _run(self, name: str, files: list[FileContent], tracked_files, work_dir: Optional[str]) -> ReportRun:
        run = ReportRun(name=name, fail_on_decode_error=self.config.fail_on_decode_error)

        if not files:
            logger.warning(f"No test report files were found for {name}")

        options = ParseOptions(
            work_dir=work_dir,
            tracked_files=frozenset(tracked_files),
            parse_errors=self.config.parse_errors,
        )
        logger.info(f"Using test report parser '{self.config.reporter.value}'")
        parser = get_parser(self.config.reporter, options)

        self.state = RunState.DECODING
        decoded = self._decode_all(parser, files)

        self.state = RunState.AGGREGATING
        for item in decoded:
            if isinstance(item, DecodeFailure):
                run.decode_failures.append(item)
            else:
                run.results.append(item)
        if run.decode_failures:
            logger.warning(f"{len(run.decode_failures)} of {len(files)} report files could not be parsed")

        self.state = RunState.REPORTING
        base_url = self.publisher.start(name) if self.publisher else ""
        logger.info("Creating report summary")
        run.summary = get_report(run.results, ReportOptions(
            list_suites=self.config.list_suites,
            list_tests=self.config.list_tests,
            only_summary=self.config.only_summary,
            base_url=base_url or "",
        ))
        logger.info("Creating annotations")
        run.annotations = get_annotations(run.results, self.config.max_annotations)

        if self.publisher:
            self.state = RunState.PUBLISHING
            run.url = self.publisher.finish(run)

        self.state = RunState.DONE
        logger.info(f"Report {name}: {run.passed} passed, {run.failed} failed, {run.skipped} skipped "
                    f"-> {run.conclusion}")
        return run

    def _decode_all(self, parser: ReportParser, files: list[FileContent]) -> list[Union[TestRunResult, DecodeFailure]]:
        """Decode every file. Results keep the input order regardless of completion order."""
        if self.config.decode_workers > 1 and len(files) > 1:
            with ThreadPoolExecutor(max_workers=self.config.decode_workers) as executor:
                return list(executor.map(lambda f: self._decode_one(parser, f), files))
        return [self._decode_one(parser, f) for f in files]

    @staticmethod
    def _decode_one(parser: ReportParser, file: FileContent) -> Union[TestRunResult, DecodeFailure]:
        logger.info(f"Processing test results from {file.file}")
        try:
            return parser.decode(file.file, file.content)
        except DecodeError as e:
            logger.warning(str(e))
            return DecodeFailure(file.file, e.cause)
