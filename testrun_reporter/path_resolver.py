"""
Resolves file references found in test reports to files tracked in the repository.

Reports rarely carry usable paths: JUnit has dotted class names, stack traces
carry absolute paths from the build machine, TRX carries Windows paths. The
resolver only answers when exactly one tracked file matches.
"""

import logging
import re
from typing import Iterable, Optional, Pattern

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_EXTENSIONS = (
    ".java", ".kt", ".scala", ".groovy",
    ".py",
    ".cs", ".fs", ".vb",
    ".js", ".jsx", ".mjs", ".ts", ".tsx",
    ".dart",
)

# at Object.<anonymous> (/home/runner/work/app/src/sum.test.js:12:5)
# at /home/runner/work/app/src/sum.test.js:12:5
JS_STACK_FRAME_RE = re.compile(r'^\s*at (?:[^()]*\()?(?P<path>[^()]+?):(?P<line>\d+):\d+\)?\s*$')


def normalize_file_path(path: str) -> str:
    """Use forward slashes and drop a leading './'."""
    path = path.replace('\\', '/')
    while path.startswith('./'):
        path = path[2:]
    return path


def normalize_dir_path(path: str, add_trailing_slash: bool = True) -> str:
    path = normalize_file_path(path)
    if add_trailing_slash and not path.endswith('/'):
        path += '/'
    return path


def _file_name(path: str) -> str:
    return path.rsplit('/', 1)[-1]


class PathResolver:
    """Maps path hints to tracked repository files."""

    def __init__(self, tracked_files: Iterable[str] = (), work_dir: Optional[str] = None):
        self.tracked_files = sorted({normalize_file_path(f) for f in tracked_files})
        self._tracked = set(self.tracked_files)
        self._by_name: dict[str, list[str]] = {}
        for f in self.tracked_files:
            self._by_name.setdefault(_file_name(f), []).append(f)
        self.work_dir = normalize_dir_path(work_dir) if work_dir else None

    def relative_path(self, path: str) -> str:
        """Strip file:// scheme and the working directory from a reported path."""
        path = normalize_file_path(path.strip())
        if path.startswith('file://'):
            path = path[len('file://'):]
        if self.work_dir and path.startswith(self.work_dir):
            path = path[len(self.work_dir):]
        return path

    def resolve(self, hint: Optional[str],
                extensions: tuple[str, ...] = DEFAULT_SOURCE_EXTENSIONS) -> Optional[str]:
        """Resolve a path or dotted-name hint to a tracked file.

        Args:
            hint: Path, file URL or dotted class/module name as reported
            extensions: Source extensions tried for dotted names

        Returns:
            The tracked path, or None when nothing or more than one file matches
        """
        if not hint or not self.tracked_files:
            return None

        path = self.relative_path(hint)
        if path in self._tracked:
            return path

        for candidates in self._candidate_forms(path, extensions):
            matches = sorted({f for c in candidates for f in self._by_name.get(_file_name(c), ())
                              if f == c or f.endswith('/' + c)})
            if matches:
                return self._unique(hint, matches)

        # Absolute path from another machine: the tracked file is a suffix of it
        if path.startswith('/') or re.match(r'^[A-Za-z]:/', path):
            matches = [f for f in self._by_name.get(_file_name(path), ()) if path.endswith('/' + f)]
            if matches:
                return self._unique(hint, matches)
        return None

    @staticmethod
    def _unique(hint: str, matches: list[str]) -> Optional[str]:
        if len(matches) == 1:
            return matches[0]
        logger.info(f"Source path for '{hint}' is ambiguous ({len(matches)} tracked files match), leaving it unresolved")
        return None

    def _candidate_forms(self, path: str, extensions: tuple[str, ...]):
        """Yield groups of relative paths to suffix-match, most specific first."""
        path = path.lstrip('/')
        if not path:
            return
        yield [path]

        if '/' in path:
            return

        # Dotted name: com.acme.FooTest$Inner -> com/acme/FooTest.java, com/acme.java, ...
        name = path.split('$')[0]
        parts = [p for p in name.split('.') if p]
        for i in range(len(parts), 0, -1):
            stem = '/'.join(parts[:i])
            yield [stem + ext for ext in extensions]

    def find_in_trace(self, trace: Optional[str],
                      frame_re: Pattern = JS_STACK_FRAME_RE) -> Optional[tuple[str, int]]:
        """Return (path, line) of the first stack frame that points into a tracked file.

        ``frame_re`` must define ``path`` and ``line`` groups.
        """
        if not trace:
            return None
        for line in trace.splitlines():
            match = frame_re.match(line)
            if not match:
                continue
            path = self.resolve(match.group('path'), extensions=())
            if path:
                return path, int(match.group('line'))
        return None
