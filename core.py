#!/usr/bin/env python3
"""
Core operations shared between MCP server and CLI.
Contains the logic for loading report files, running the reporting pipeline and
publishing its outputs.
"""

import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Mapping, Optional

from testrun_reporter.annotations import MAX_ANNOTATIONS, get_annotations
from testrun_reporter.base_parser import ParseOptions
from testrun_reporter.config import ReporterConfig
from testrun_reporter.errors import ConfigurationError, DecodeError, NoResultsError
from testrun_reporter.github_client import GITHUB_API_URL, GitHubClient, get_check_run_context
from testrun_reporter.input_providers import ArtifactProvider, LocalFileProvider
from testrun_reporter.orchestrator import RunOrchestrator
from testrun_reporter.parsers import Reporter, get_parser
from testrun_reporter.publisher import CheckRunPublisher, write_outputs
from testrun_reporter.report import ListSuites, ListTests, ReportOptions, get_report

logger = logging.getLogger(__name__)


def list_reporters() -> list[str]:
    return [r.value for r in Reporter]


def parse_reports(reporter: str, patterns: list[str], work_dir: str = ".",
                  parse_errors: bool = True) -> dict:
    """
    Decode local report files without publishing anything.

    Args:
        reporter: Reporter id (e.g. "java-junit")
        patterns: Glob patterns relative to work_dir
        work_dir: Directory the reports were produced in
        parse_errors: Extract failure messages and source locations

    Returns:
        dict with "results" (decoded files) and "errors" (files that failed to parse)
    """
    work_dir = str(Path(work_dir).resolve())
    provider = LocalFileProvider("local", patterns, work_dir)
    files = provider.load()["local"]
    parser = get_parser(reporter, ParseOptions(
        work_dir=work_dir,
        tracked_files=frozenset(provider.list_tracked_files()),
        parse_errors=parse_errors,
    ))

    results, errors = [], []
    for f in files:
        try:
            results.append(parser.decode(f.file, f.content))
        except DecodeError as e:
            logger.warning(str(e))
            errors.append({"file": e.file_name, "error": e.cause})
    return {"results": results, "errors": errors}


def render_reports(reporter: str, patterns: list[str], work_dir: str = ".",
                   list_suites: str = "all", list_tests: str = "all",
                   only_summary: bool = False, max_annotations: int = 10) -> dict:
    """Decode local report files and render the markdown summary and annotations."""
    try:
        options = ReportOptions(
            list_suites=ListSuites(list_suites),
            list_tests=ListTests(list_tests),
            only_summary=only_summary,
        )
    except ValueError as e:
        raise ConfigurationError(str(e)) from e
    if not 0 <= max_annotations <= MAX_ANNOTATIONS:
        raise ConfigurationError(f"max_annotations must be between 0 and {MAX_ANNOTATIONS}")

    parsed = parse_reports(reporter, patterns, work_dir, parse_errors=max_annotations > 0)
    results = parsed["results"]
    return {
        "summary": get_report(results, options),
        "annotations": [a.to_dict() for a in get_annotations(results, max_annotations)],
        "errors": parsed["errors"],
        "conclusion": "failure" if any(tr.failed for tr in results) else "success",
    }


def run_reports(config: ReporterConfig, env: Optional[Mapping[str, str]] = None) -> dict:
    """
    Run the whole pipeline: load report files, decode, render, annotate and publish.

    Results are published to GitHub when a token and GITHUB_REPOSITORY are available.

    Returns:
        dict with conclusion, counters, check run url and per-report details
    """
    env = os.environ if env is None else env
    repository = env.get("GITHUB_REPOSITORY", "")
    client = None
    if config.token and repository:
        client = GitHubClient(config.token, repository, env.get("GITHUB_API_URL", GITHUB_API_URL))

    context = get_check_run_context(env)
    run_id = config.run_id or context.run_id

    if config.artifact:
        if client is None:
            raise ConfigurationError("Input 'artifact' requires 'token' and GITHUB_REPOSITORY")
        provider = ArtifactProvider(client, config.artifact, config.name, config.path, context.sha, run_id)
        work_dir = None
    else:
        provider = LocalFileProvider(config.name, config.path, config.working_directory)
        work_dir = config.working_directory

    tracked_files = provider.list_tracked_files()
    logger.info(f"Found {len(tracked_files)} files tracked by GitHub")

    publisher = None
    if client is not None:
        logger.info(f"Check runs will be created with SHA={context.sha}")
        publisher = CheckRunPublisher(
            client, replace(context, run_id=run_id),
            report_check=config.report_check,
            report_comment=config.report_comment,
            report_job_summary=config.report_job_summary,
            run_job_name=config.run_job_name,
            env=env,
        )
    else:
        logger.info("GitHub token or repository not set, results will not be published")

    inputs = provider.load()
    if not any(inputs.values()):
        if config.fail_on_no_results:
            raise NoResultsError("No test report files were found")
        logger.warning("No test report files were found")

    runs = []
    for name, files in inputs.items():
        logger.info(f"Creating test report {name}")
        runs.append(RunOrchestrator(config, publisher).run(name, files, tracked_files, work_dir))

    is_failed = any(r.is_failed for r in runs)
    outputs = {
        "conclusion": "failure" if is_failed else "success",
        "passed": sum(r.passed for r in runs),
        "failed": sum(r.failed for r in runs),
        "skipped": sum(r.skipped for r in runs),
        "time": sum(r.duration_seconds for r in runs),
        "url": next((r.url for r in runs if r.url), None),
    }
    write_outputs(outputs, env)

    outputs["reports"] = [
        {
            "name": r.name,
            "conclusion": r.conclusion,
            "files": [tr.source_file for tr in r.results],
            "decode_errors": [{"file": d.file_name, "error": d.cause} for d in r.decode_failures],
            "annotations": len(r.annotations),
            "summary": r.summary,
        }
        for r in runs
    ]
    return outputs
