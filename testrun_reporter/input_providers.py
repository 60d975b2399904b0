"""
Sources of report files: the local working tree or workflow run artifacts.
"""

import fnmatch
import glob
import io
import logging
import os
import re
import subprocess
import zipfile
from pathlib import Path
from typing import Optional

from .github_client import GitHubClient
from .orchestrator import FileContent
from .path_resolver import normalize_file_path

logger = logging.getLogger(__name__)


def _split_patterns(patterns) -> tuple[list[str], list[str]]:
    include = [p for p in patterns if not p.startswith('!')]
    exclude = [p[1:] for p in patterns if p.startswith('!')]
    return include, exclude


def _glob_match(path: str, pattern: str) -> bool:
    # fnmatch's '*' also matches '/', so '**/' must be allowed to match nothing
    return fnmatch.fnmatchcase(path, pattern) or (
        pattern.startswith('**/') and fnmatch.fnmatchcase(path, pattern[3:])
    )


class LocalFileProvider:
    """Report files matched by glob patterns under the working directory."""

    def __init__(self, name: str, patterns, work_dir: str = "."):
        self.name = name
        self.patterns = list(patterns)
        self.work_dir = Path(work_dir)

    def load(self) -> dict[str, list[FileContent]]:
        include, exclude = _split_patterns(self.patterns)
        seen = set()
        files = []
        for pattern in include:
            for match in sorted(glob.glob(os.path.join(self.work_dir, pattern), recursive=True)):
                path = Path(match)
                if not path.is_file():
                    continue
                rel = normalize_file_path(os.path.relpath(path, self.work_dir))
                if rel in seen or any(_glob_match(rel, p) for p in exclude):
                    continue
                seen.add(rel)
                files.append(FileContent(rel, path.read_bytes()))

        if not files:
            logger.warning(f"No file matches path {','.join(self.patterns)}")
        return {self.name: files}

    def list_tracked_files(self) -> list[str]:
        """List files tracked by git. Returns an empty list outside a git repository."""
        try:
            output = subprocess.run(
                ["git", "ls-files", "-z"],
                cwd=self.work_dir, capture_output=True, check=True,
            ).stdout
        except (OSError, subprocess.CalledProcessError) as e:
            logger.warning(f"Failed to list tracked files: {e}")
            return []
        return [f for f in output.decode('utf-8', errors='replace').split('\0') if f]


class ArtifactProvider:
    """Report files stored in artifacts of a workflow run.

    ``artifact`` is either an exact artifact name or a regular expression
    enclosed in slashes. With a regular expression, ``name`` may use $1, $2, ...
    to build the report name from capture groups.
    """

    def __init__(self, client: GitHubClient, artifact: str, name: str, patterns,
                 sha: str, run_id: Optional[int]):
        self.client = client
        self.name = name
        self.patterns = list(patterns)
        self.sha = sha
        self.run_id = run_id
        if len(artifact) > 1 and artifact.startswith('/') and artifact.endswith('/'):
            self.artifact_re = re.compile(artifact[1:-1])
            self.artifact = None
        else:
            self.artifact_re = None
            self.artifact = artifact

    def _report_name(self, artifact_name: str) -> Optional[str]:
        if self.artifact_re is None:
            return self.name if artifact_name == self.artifact else None
        match = self.artifact_re.match(artifact_name)
        if not match:
            return None
        groups = match.groups()

        def group(m: re.Match) -> str:
            index = int(m.group(1))
            return (groups[index - 1] or "") if 0 < index <= len(groups) else m.group(0)

        return re.sub(r'\$(\d+)', group, self.name)

    def load(self) -> dict[str, list[FileContent]]:
        result: dict[str, list[FileContent]] = {}
        if self.run_id is None:
            logger.warning("Workflow run id is not known, artifacts can't be listed")
            return result

        include, exclude = _split_patterns(self.patterns)
        artifacts = self.client.list_artifacts(self.run_id)
        if not artifacts:
            logger.warning(f"No artifacts found in run {self.run_id}")

        for artifact in artifacts:
            report_name = self._report_name(artifact.get("name", ""))
            if report_name is None:
                continue
            logger.info(f"Downloading artifact {artifact['name']}")
            data = self.client.download_artifact(artifact["id"])
            if data is None:
                continue
            files = result.setdefault(report_name, [])
            try:
                with zipfile.ZipFile(io.BytesIO(data)) as archive:
                    for entry in sorted(archive.namelist()):
                        if entry.endswith('/'):
                            continue
                        if any(_glob_match(entry, p) for p in include) and not any(_glob_match(entry, p) for p in exclude):
                            files.append(FileContent(entry, archive.read(entry)))
            except zipfile.BadZipFile as e:
                logger.error(f"Artifact {artifact['name']} is not a valid zip archive: {e}")
        return result

    def list_tracked_files(self) -> list[str]:
        return self.client.list_tracked_files(self.sha)
