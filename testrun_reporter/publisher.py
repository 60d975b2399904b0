"""Publishes a report run as GitHub check run, pull request comment and job summary."""

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from .github_client import CheckRunContext, GitHubClient
from .markdown import Icon
from .models import ReportRun

logger = logging.getLogger(__name__)


class CheckRunPublisher:
    """Publishes to the GitHub check run of the current commit."""

    def __init__(self, client: GitHubClient, context: CheckRunContext,
                 report_check: bool = True, report_comment: bool = False,
                 report_job_summary: bool = True, run_job_name: str = "",
                 env: Optional[Mapping[str, str]] = None):
        self.client = client
        self.context = context
        self.report_check = report_check
        self.report_comment = report_comment
        self.report_job_summary = report_job_summary
        self.run_job_name = run_job_name
        self.env = os.environ if env is None else env
        self._check_run_id: Optional[int] = None
        self._new_check = False

    def start(self, name: str) -> str:
        """Create the check run, or find the check run of the current job.

        Returns:
            URL used as prefix of the links in the report ("" when unknown)
        """
        self._check_run_id = None
        self._new_check = False

        if self.report_check:
            logger.info(f"Creating check run {name}")
            check = self.client.create_check_run(name, self.context.sha, title=name)
            self._check_run_id = check["id"]
            self._new_check = True
            return check.get("html_url") or ""

        if self.context.run_id:
            logger.info(f"Getting current workflow job for run {self.context.run_id}")
            wanted = self.run_job_name.lower()
            for job in self.client.list_jobs_for_workflow_run(self.context.run_id):
                if (job.get("name") or "").lower() == wanted:
                    check_run_url = job.get("check_run_url") or ""
                    tail = check_run_url.rsplit("/", 1)[-1]
                    self._check_run_id = int(tail) if tail.isdigit() else None
                    return job.get("html_url") or ""
            logger.warning(f"No job named '{self.run_job_name}' found in run {self.context.run_id}")
            return ""

        logger.warning("Not reporting check, but workflow run-id was not provided. "
                       "Most reporting will be skipped entirely.")
        return ""

    def finish(self, run: ReportRun) -> Optional[str]:
        """Publish summary and annotations. PublishingError propagates to the caller."""
        url = None
        annotations = [a.to_dict() for a in run.annotations]

        if self._check_run_id and self._new_check:
            icon = Icon.fail if run.is_failed else Icon.success
            logger.info(f"Updating check run conclusion ({run.conclusion}) and output")
            resp = self.client.update_check_run(
                self._check_run_id,
                status="completed",
                conclusion=run.conclusion,
                output={"title": f"{run.name} {icon}", "summary": run.summary, "annotations": annotations},
            )
            url = resp.get("html_url")
            logger.info(f"Check run HTML: {url}")
        elif self._check_run_id and annotations:
            logger.info("Adding annotations to the current job check run")
            resp = self.client.update_check_run(
                self._check_run_id,
                output={"title": run.name, "summary": "", "annotations": annotations},
            )
            url = resp.get("html_url")

        if self.report_comment:
            self._comment(run)
        else:
            logger.info("Skipping comment with test results")

        if self.report_job_summary:
            self._write_job_summary(run.summary)
        else:
            logger.info("Skipping job summary")

        return url

    def _comment(self, run: ReportRun):
        logger.info("Updating pull request comment with test results")
        prs = [pr for pr in self.client.list_pull_requests_for_commit(self.context.sha) if pr.get("state") == "open"]
        if not prs:
            logger.info(f"No open pull request found for {self.context.sha}")
            return
        self.client.create_comment(prs[0]["number"], run.summary)

    def _write_job_summary(self, summary: str):
        path = self.env.get("GITHUB_STEP_SUMMARY")
        if not path:
            logger.info("GITHUB_STEP_SUMMARY is not set, skipping job summary")
            return
        logger.info("Publishing job summary")
        with open(path, "a", encoding="utf-8") as f:
            f.write(summary + "\n")


def write_outputs(outputs: Mapping[str, object], env: Optional[Mapping[str, str]] = None):
    """Write step outputs to the GITHUB_OUTPUT file when running in GitHub Actions."""
    env = os.environ if env is None else env
    path = env.get("GITHUB_OUTPUT")
    if not path:
        return
    with Path(path).open("a", encoding="utf-8") as f:
        for key, value in outputs.items():
            f.write(f"{key}={'' if value is None else value}\n")
