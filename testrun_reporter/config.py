"""
Configuration for a reporter run.

Inputs arrive as strings (GitHub Actions `INPUT_*` variables, a .env file or a
YAML file). They are validated and converted once into ReporterConfig.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

import yaml

from .annotations import MAX_ANNOTATIONS
from .errors import ConfigurationError
from .parsers import Reporter
from .path_resolver import normalize_file_path
from .report import ListSuites, ListTests

logger = logging.getLogger(__name__)

REQUIRED_INPUTS = ("name", "path", "reporter")

DEFAULT_INPUTS = {
    "artifact": "",
    "path-replace-backslashes": "false",
    "list-suites": "all",
    "list-tests": "all",
    "max-annotations": "10",
    "fail-on-error": "true",
    "fail-on-no-results": "true",
    "fail-on-decode-error": "false",
    "only-summary": "false",
    "working-directory": "",
    "report-check": "true",
    "report-comment": "false",
    "report-job-summary": "true",
    "token": "",
    "run-id": "",
    "run-job-name": "",
    "decode-workers": "1",
}

INPUT_NAMES = REQUIRED_INPUTS + tuple(DEFAULT_INPUTS)


def _input_key(key: str) -> str:
    """INPUT_LIST_SUITES / input-list-suites / list_suites -> list-suites"""
    key = key.strip().lower().replace("_", "-")
    if key.startswith("input-"):
        key = key[len("input-"):]
    return key


def _read_env_file(path: Path) -> dict[str, str]:
    values = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith('#') and '=' in line:
            key, value = line.split('=', 1)
            values[_input_key(key)] = value.strip().strip('"\'')
    return values


def _read_yaml_file(path: Path) -> dict[str, str]:
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping of input names to values")

    values = {}
    for key, value in data.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, list):
            value = ",".join(str(v) for v in value)
        values[_input_key(str(key))] = "" if value is None else str(value)
    return values


def load_inputs(config_file: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """Load raw string inputs.

    Sources, lowest priority first: .env file, YAML config file, `INPUT_*`
    environment variables (as set by GitHub Actions).
    """
    env = os.environ if env is None else env
    inputs: dict[str, str] = {}

    paths = [
        env.get('TESTRUN_REPORTER_CONFIG'),
        Path.cwd() / '.env',
        Path(__file__).parent.parent / '.env',
    ]
    for p in paths:
        if p and Path(p).is_file():
            try:
                inputs.update(_read_env_file(Path(p)))
            except OSError as e:
                logger.warning(f"Failed to read {p}: {e}")
            break

    if config_file:
        inputs.update(_read_yaml_file(Path(config_file)))

    for name in INPUT_NAMES:
        for env_name in (f"INPUT_{name.upper()}", f"INPUT_{name.upper().replace('-', '_')}"):
            value = env.get(env_name)
            if value is not None:
                inputs[name] = value
                break

    return inputs


def _parse_bool(name: str, value: str) -> bool:
    value = value.strip().lower()
    if value in ("true", "yes", "1"):
        return True
    if value in ("false", "no", "0", ""):
        return False
    raise ConfigurationError(f"Input parameter '{name}' has invalid value '{value}', expected true or false")


def _parse_int(name: str, value: str, minimum: int, maximum: Optional[int] = None) -> int:
    try:
        number = int(value.strip())
    except ValueError:
        raise ConfigurationError(f"Input parameter '{name}' has invalid value '{value}'") from None
    if number < minimum or (maximum is not None and number > maximum):
        bounds = f"{minimum}..{maximum}" if maximum is not None else f">= {minimum}"
        raise ConfigurationError(f"Input parameter '{name}' has invalid value {number}, expected {bounds}")
    return number


def _parse_enum(name: str, value: str, enum_type):
    try:
        return enum_type(value.strip().lower())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_type)
        raise ConfigurationError(f"Input parameter '{name}' has invalid value '{value}' (allowed: {allowed})") from None


@dataclass(frozen=True)
class ReporterConfig:
    """Validated reporter configuration."""
    name: str
    path: tuple[str, ...]
    reporter: Reporter
    artifact: str = ""
    path_replace_backslashes: bool = False
    list_suites: ListSuites = ListSuites.ALL
    list_tests: ListTests = ListTests.ALL
    max_annotations: int = 10
    fail_on_error: bool = True
    fail_on_no_results: bool = True
    fail_on_decode_error: bool = False
    only_summary: bool = False
    working_directory: str = "."
    report_check: bool = True
    report_comment: bool = False
    report_job_summary: bool = True
    token: str = ""
    run_id: Optional[int] = None
    run_job_name: str = ""
    decode_workers: int = 1

    @property
    def parse_errors(self) -> bool:
        """Failure details are only needed when annotations are created."""
        return self.max_annotations > 0

    @classmethod
    def from_inputs(cls, inputs: Mapping[str, str]) -> "ReporterConfig":
        """Validate raw string inputs.

        Raises:
            ConfigurationError: a required input is missing or a value is invalid
        """
        values = dict(DEFAULT_INPUTS)
        values.update({_input_key(k): str(v) for k, v in inputs.items() if v is not None})

        for name in REQUIRED_INPUTS:
            if not values.get(name, "").strip():
                raise ConfigurationError(f"Input required and not supplied: {name}")

        replace_backslashes = _parse_bool("path-replace-backslashes", values["path-replace-backslashes"])
        patterns = [p.strip() for p in values["path"].split(",") if p.strip()]
        if replace_backslashes:
            patterns = [normalize_file_path(p) for p in patterns]
        if not patterns:
            raise ConfigurationError("Input parameter 'path' does not contain any pattern")

        run_id = values["run-id"].strip()

        return cls(
            name=values["name"].strip(),
            path=tuple(patterns),
            reporter=Reporter.parse(values["reporter"]),
            artifact=values["artifact"].strip(),
            path_replace_backslashes=replace_backslashes,
            list_suites=_parse_enum("list-suites", values["list-suites"], ListSuites),
            list_tests=_parse_enum("list-tests", values["list-tests"], ListTests),
            max_annotations=_parse_int("max-annotations", values["max-annotations"], 0, MAX_ANNOTATIONS),
            fail_on_error=_parse_bool("fail-on-error", values["fail-on-error"]),
            fail_on_no_results=_parse_bool("fail-on-no-results", values["fail-on-no-results"]),
            fail_on_decode_error=_parse_bool("fail-on-decode-error", values["fail-on-decode-error"]),
            only_summary=_parse_bool("only-summary", values["only-summary"]),
            working_directory=str(Path(values["working-directory"].strip() or ".").resolve()),
            report_check=_parse_bool("report-check", values["report-check"]),
            report_comment=_parse_bool("report-comment", values["report-comment"]),
            report_job_summary=_parse_bool("report-job-summary", values["report-job-summary"]),
            token=values["token"].strip(),
            run_id=_parse_int("run-id", run_id, 0) if run_id else None,
            run_job_name=values["run-job-name"].strip(),
            decode_workers=_parse_int("decode-workers", values["decode-workers"], 1),
        )
