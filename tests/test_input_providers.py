"""Tests for report file providers."""

import io
import subprocess
import zipfile
from unittest.mock import MagicMock, patch

import pytest

from testrun_reporter.input_providers import ArtifactProvider, LocalFileProvider


def make_zip(entries: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()


class TestLocalFileProvider:
    """Tests for LocalFileProvider."""

    @pytest.fixture
    def work_dir(self, tmp_path):
        (tmp_path / "reports" / "unit").mkdir(parents=True)
        (tmp_path / "reports" / "unit" / "b.xml").write_text("<b/>")
        (tmp_path / "reports" / "unit" / "a.xml").write_text("<a/>")
        (tmp_path / "reports" / "skip.xml").write_text("<skip/>")
        (tmp_path / "reports" / "notes.txt").write_text("notes")
        return tmp_path

    def test_recursive_glob_sorted(self, work_dir):
        """Matches are relative to the working directory and sorted."""
        files = LocalFileProvider("Tests", ["reports/**/*.xml"], str(work_dir)).load()["Tests"]

        assert [f.file for f in files] == ["reports/skip.xml", "reports/unit/a.xml", "reports/unit/b.xml"]
        assert files[1].content == b"<a/>"

    def test_exclude_pattern(self, work_dir):
        """Patterns starting with ! remove matches."""
        provider = LocalFileProvider("Tests", ["reports/**/*.xml", "!reports/skip.xml"], str(work_dir))
        files = provider.load()["Tests"]

        assert [f.file for f in files] == ["reports/unit/a.xml", "reports/unit/b.xml"]

    def test_duplicates_removed(self, work_dir):
        """A file matched by two patterns is loaded once."""
        provider = LocalFileProvider("Tests", ["reports/unit/*.xml", "reports/**/a.xml"], str(work_dir))
        files = provider.load()["Tests"]

        assert [f.file for f in files] == ["reports/unit/a.xml", "reports/unit/b.xml"]

    def test_no_match_warns(self, work_dir, caplog):
        """An empty group is returned with a warning."""
        assert LocalFileProvider("Tests", ["*.trx"], str(work_dir)).load() == {"Tests": []}
        assert "No file matches path" in caplog.text

    @patch("testrun_reporter.input_providers.subprocess.run")
    def test_tracked_files_from_git(self, mock_run, work_dir):
        """git ls-files output is split on NUL."""
        mock_run.return_value = MagicMock(stdout=b"src/a.js\x00test/a.test.js\x00")

        tracked = LocalFileProvider("Tests", ["*.xml"], str(work_dir)).list_tracked_files()

        assert tracked == ["src/a.js", "test/a.test.js"]
        assert mock_run.call_args[0][0] == ["git", "ls-files", "-z"]

    @patch("testrun_reporter.input_providers.subprocess.run")
    def test_tracked_files_outside_git(self, mock_run, work_dir):
        """Without a repository no files are tracked."""
        mock_run.side_effect = subprocess.CalledProcessError(128, ["git"])

        assert LocalFileProvider("Tests", ["*.xml"], str(work_dir)).list_tracked_files() == []


class TestArtifactProvider:
    """Tests for ArtifactProvider."""

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.list_artifacts.return_value = [
            {"id": 1, "name": "test-results-linux"},
            {"id": 2, "name": "test-results-windows"},
            {"id": 3, "name": "coverage"},
        ]
        client.download_artifact.side_effect = lambda artifact_id: make_zip({
            "junit/a.xml": f"<a{artifact_id}/>",
            "junit/readme.md": "docs",
        })
        return client

    def test_exact_artifact_name(self, client):
        """Only the named artifact is downloaded."""
        provider = ArtifactProvider(client, "test-results-linux", "Tests", ["junit/*.xml"], "abc", 5)
        result = provider.load()

        assert list(result) == ["Tests"]
        assert [f.file for f in result["Tests"]] == ["junit/a.xml"]
        assert result["Tests"][0].content == b"<a1/>"
        client.download_artifact.assert_called_once_with(1)

    def test_regex_artifact_name(self, client):
        """A /regex/ selects several artifacts, capture groups name the reports."""
        provider = ArtifactProvider(client, "/test-results-(.*)/", "Tests $1", ["**/*.xml"], "abc", 5)
        result = provider.load()

        assert list(result) == ["Tests linux", "Tests windows"]
        assert result["Tests windows"][0].content == b"<a2/>"

    def test_two_digit_group_placeholder(self, client):
        """$10 refers to the tenth capture group, not to $1 followed by 0."""
        client.list_artifacts.return_value = [{"id": 4, "name": "r-0123456789"}]
        provider = ArtifactProvider(client, "/r-(.)(.)(.)(.)(.)(.)(.)(.)(.)(.)/", "run $10 of $1 $11", ["**/*.xml"], "abc", 5)

        assert list(provider.load()) == ["run 9 of 0 $11"]

    def test_unknown_run_id(self, client, caplog):
        """Without a run id nothing can be listed."""
        assert ArtifactProvider(client, "x", "Tests", ["*.xml"], "abc", None).load() == {}
        client.list_artifacts.assert_not_called()

    def test_invalid_zip_is_skipped(self, client, caplog):
        """A broken archive is logged and yields no files."""
        client.download_artifact.side_effect = None
        client.download_artifact.return_value = b"not a zip"
        result = ArtifactProvider(client, "coverage", "Tests", ["*.xml"], "abc", 5).load()

        assert result == {"Tests": []}
        assert "not a valid zip archive" in caplog.text

    def test_tracked_files_from_client(self, client):
        """Tracked files come from the repository tree at the commit."""
        client.list_tracked_files.return_value = ["src/a.js"]
        provider = ArtifactProvider(client, "x", "Tests", ["*.xml"], "abc", 5)

        assert provider.list_tracked_files() == ["src/a.js"]
        client.list_tracked_files.assert_called_once_with("abc")
