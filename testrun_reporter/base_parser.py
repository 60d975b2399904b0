"""Common interface of the report format decoders."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .errors import DecodeError
from .models import TestRunResult
from .path_resolver import PathResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParseOptions:
    """Options passed to every decoder.

    Attributes:
        work_dir: Absolute working directory used to relativize reported paths
        tracked_files: Repository-relative paths of files under version control
        parse_errors: Extract failure messages, traces and source locations
    """
    work_dir: Optional[str] = None
    tracked_files: frozenset = frozenset()
    parse_errors: bool = True


class ReportParser(ABC):
    """Decodes the raw content of one report file into a TestRunResult."""

    def __init__(self, options: ParseOptions):
        self.options = options
        self.resolver = PathResolver(options.tracked_files, options.work_dir)

    def decode(self, file_name: str, content: bytes) -> TestRunResult:
        """Decode one report file.

        Well-formed content with an unexpected shape (wrong value types,
        missing fields) is reported the same way as a syntax error.

        Raises:
            DecodeError: content is not well-formed for this format
        """
        try:
            return self._decode(file_name, content)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise DecodeError(file_name, f"unexpected report structure ({type(e).__name__}: {e})") from e

    @abstractmethod
    def _decode(self, file_name: str, content: bytes) -> TestRunResult:
        pass

    @staticmethod
    def read_text(file_name: str, content: bytes) -> str:
        try:
            return content.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise DecodeError(file_name, f"content is not valid UTF-8 ({e})") from e


def first_non_empty_line(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return None


def parse_float(value: Optional[str]) -> Optional[float]:
    """Parse a decimal number, tolerating thousands separators ("1,234.5")."""
    if value is None:
        return None
    try:
        return float(value.replace(',', '').strip())
    except ValueError:
        return None


_ISO_DURATION_RE = re.compile(
    r'^P(?:(?P<days>\d+(?:\.\d+)?)D)?'
    r'(?:T(?:(?P<hours>\d+(?:\.\d+)?)H)?(?:(?P<minutes>\d+(?:\.\d+)?)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$'
)
_TIMESPAN_RE = re.compile(r'^(?:(?P<days>\d+)\.)?(?P<hours>\d+):(?P<minutes>\d+):(?P<seconds>\d+(?:\.\d+)?)$')


def parse_duration(value: Optional[str]) -> Optional[float]:
    """Parse a .NET TimeSpan ("00:00:01.5000000") or ISO-8601 duration ("PT1.5S") to seconds."""
    if not value:
        return None
    value = value.strip()
    match = _TIMESPAN_RE.match(value) or _ISO_DURATION_RE.match(value)
    if not match:
        return None
    parts = {k: float(v) for k, v in match.groupdict().items() if v}
    return (parts.get('days', 0.0) * 86400 + parts.get('hours', 0.0) * 3600
            + parts.get('minutes', 0.0) * 60 + parts.get('seconds', 0.0))
