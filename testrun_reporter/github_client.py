"""
GitHub REST API client used for artifacts, check runs and pull request comments.
"""

import json
import logging
import os
import random
import time
from dataclasses import dataclass
from typing import Mapping, Optional

import requests

from .errors import PublishingError

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
RETRY_STATUS_CODES = {500, 502, 503, 504}


@dataclass(frozen=True)
class CheckRunContext:
    """Commit and workflow run the check run belongs to."""
    sha: str
    run_id: Optional[int]


def get_check_run_context(env: Optional[Mapping[str, str]] = None) -> CheckRunContext:
    """Determine the commit SHA to report against.

    For pull_request events GITHUB_SHA is the merge commit, the check run has to
    be attached to the PR head instead. For workflow_run events the triggering
    run is used.
    """
    env = os.environ if env is None else env
    event_name = env.get("GITHUB_EVENT_NAME", "")
    payload = {}
    event_path = env.get("GITHUB_EVENT_PATH")
    if event_path and os.path.isfile(event_path):
        try:
            with open(event_path, encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read event payload {event_path}: {e}")

    run_id = env.get("GITHUB_RUN_ID")
    run_id = int(run_id) if run_id and run_id.isdigit() else None

    if event_name.startswith("pull_request"):
        sha = (payload.get("pull_request") or {}).get("head", {}).get("sha")
        if sha:
            return CheckRunContext(sha=sha, run_id=run_id)

    if event_name == "workflow_run":
        workflow_run = payload.get("workflow_run") or {}
        sha = (workflow_run.get("head_commit") or {}).get("id")
        if not sha:
            raise PublishingError("Event payload does not contain workflow_run.head_commit")
        return CheckRunContext(sha=sha, run_id=workflow_run.get("id", run_id))

    return CheckRunContext(sha=env.get("GITHUB_SHA", ""), run_id=run_id)


class GitHubClient:
    """Client for the GitHub REST API.

    Requests failing with a 5xx status or a network error are retried with
    exponential backoff and jitter; PublishingError is raised once retries are
    exhausted.
    """

    def __init__(self, token: str, repository: str, api_url: str = GITHUB_API_URL,
                 max_retries: int = 3, retry_delay: float = 1.0):
        """
        Initialize GitHub client.

        Args:
            token: Token with checks:write / pull-requests:write / actions:read
            repository: "owner/repo"
            api_url: API base URL (GITHUB_API_URL on GitHub Enterprise)
            max_retries: Retries for transient failures
            retry_delay: Base delay for exponential backoff in seconds
        """
        self.repository = repository
        self.api_url = api_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": "testrun-reporter/0.1.0",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        })
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _url(self, path: str) -> str:
        return f"{self.api_url}/repos/{self.repository}/{path.lstrip('/')}"

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Exponential backoff with up to 50% jitter."""
        delay = self.retry_delay * (2 ** attempt)
        return delay + random.uniform(0, delay / 2)

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        """Send a request, retrying transient failures.

        Raises:
            PublishingError: the request failed permanently or retries were exhausted
        """
        url = path if path.startswith("http") else self._url(path)
        kwargs.setdefault("timeout", 30)

        for attempt in range(self.max_retries + 1):
            try:
                response = self.session.request(method, url, **kwargs)
            except requests.RequestException as e:
                if attempt < self.max_retries:
                    delay = self._calculate_retry_delay(attempt)
                    logger.info(f"Retrying {method} {url} in {delay:.1f}s after error: {e}")
                    time.sleep(delay)
                    continue
                raise PublishingError(f"{method} {url} failed: {e}") from e

            if response.status_code in RETRY_STATUS_CODES and attempt < self.max_retries:
                delay = self._calculate_retry_delay(attempt)
                logger.info(f"Retrying {method} {url} in {delay:.1f}s (HTTP {response.status_code})")
                time.sleep(delay)
                continue

            if response.status_code >= 400:
                raise PublishingError(
                    f"{method} {url} failed with HTTP {response.status_code}: {response.text[:500]}",
                    status_code=response.status_code,
                )
            return response

        raise PublishingError(f"{method} {url} failed after {self.max_retries} retries")

    # Check runs

    def create_check_run(self, name: str, sha: str, title: str, summary: str = "") -> dict:
        response = self.request("POST", "check-runs", json={
            "name": name,
            "head_sha": sha,
            "status": "in_progress",
            "output": {"title": title, "summary": summary},
        })
        return response.json()

    def update_check_run(self, check_run_id: int, **fields) -> dict:
        response = self.request("PATCH", f"check-runs/{check_run_id}", json=fields)
        return response.json()

    def list_jobs_for_workflow_run(self, run_id: int) -> list[dict]:
        response = self.request("GET", f"actions/runs/{run_id}/jobs", params={"per_page": 100})
        return response.json().get("jobs", [])

    # Pull requests

    def list_pull_requests_for_commit(self, sha: str) -> list[dict]:
        response = self.request("GET", f"commits/{sha}/pulls")
        return response.json()

    def create_comment(self, issue_number: int, body: str) -> dict:
        response = self.request("POST", f"issues/{issue_number}/comments", json={"body": body})
        return response.json()

    # Artifacts and repository content

    def list_artifacts(self, run_id: int) -> list[dict]:
        """List artifacts of a workflow run. Returns an empty list on failure."""
        artifacts = []
        page = 1
        try:
            while True:
                response = self.request("GET", f"actions/runs/{run_id}/artifacts",
                                        params={"per_page": 100, "page": page})
                batch = response.json().get("artifacts", [])
                artifacts.extend(batch)
                if len(batch) < 100:
                    return artifacts
                page += 1
        except PublishingError as e:
            logger.error(f"Failed to list artifacts: {e}")
            return artifacts

    def download_artifact(self, artifact_id: int) -> Optional[bytes]:
        """Download an artifact zip archive. Returns None on failure."""
        try:
            response = self.request("GET", f"actions/artifacts/{artifact_id}/zip", timeout=120)
            return response.content
        except PublishingError as e:
            logger.error(f"Failed to download artifact {artifact_id}: {e}")
            return None

    def list_tracked_files(self, sha: str) -> list[str]:
        """List files of the repository tree at a commit. Returns an empty list on failure."""
        try:
            response = self.request("GET", f"git/trees/{sha}", params={"recursive": "1"})
        except PublishingError as e:
            logger.error(f"Failed to list repository files: {e}")
            return []
        data = response.json()
        if data.get("truncated"):
            logger.warning("Repository tree listing was truncated, some source paths may not resolve")
        return [item["path"] for item in data.get("tree", []) if item.get("type") == "blob"]
