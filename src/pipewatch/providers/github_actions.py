"""GitHub Actions provider client."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..config.settings import get_settings
from ..exceptions import ConfigurationError, UpstreamError
from .analytics import average, daily_trend, deployment_totals, success_rate
from .base import ProviderClient, parse_timestamp
from .models import (
    IntegrationConfig,
    ProviderKind,
    RunOutcome,
    RunRecord,
    RunStatus,
    Target,
    WorkflowSummary,
)

MAX_PAGE_SIZE = 100
SUMMARY_RUN_LIMIT = 10
FALLBACK_RUN_LIMIT = 50
TREND_RUN_LIMIT = 100
REDIRECT_STATUSES = (301, 302, 303, 307, 308)

CONCLUSION_OUTCOMES = {
    "success": RunOutcome.SUCCESS,
    "failure": RunOutcome.FAILURE,
    "startup_failure": RunOutcome.FAILURE,
    "cancelled": RunOutcome.CANCELLED,
    "timed_out": RunOutcome.TIMED_OUT,
    "skipped": RunOutcome.SKIPPED,
    "neutral": RunOutcome.SKIPPED,
    "stale": RunOutcome.CANCELLED,
    "action_required": RunOutcome.UNKNOWN,
}


def _run_status(raw_status: Optional[str]) -> RunStatus:
    if raw_status == "completed":
        return RunStatus.COMPLETED
    if raw_status == "in_progress":
        return RunStatus.RUNNING
    return RunStatus.QUEUED


class GitHubActionsClient(ProviderClient):
    """Client for the GitHub Actions REST API scoped to one repository."""

    kind = ProviderKind.GITHUB_ACTIONS

    def __init__(
        self,
        config: IntegrationConfig,
        timeout: Optional[float] = None,
        api_url: Optional[str] = None,
    ):
        missing = [
            name for name in ("owner", "repo", "secret") if not getattr(config, name)
        ]
        if missing:
            raise ConfigurationError(
                f"integration:{config.id}",
                f"GitHub not configured (missing {', '.join(missing)})",
            )
        super().__init__(config, timeout=timeout)
        self.api_url = (api_url or get_settings().github_api_url).rstrip("/")
        self.repository = f"{config.owner}/{config.repo}"

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.api_url}/repos/{self.config.owner}/{self.config.repo}/",
            timeout=self._timeout,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {self.config.secret}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )

    async def _paginate(
        self,
        url: str,
        item_key: str,
        operation: str,
        limit: Optional[int],
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Collect items across pages until ``limit`` items or a short page."""
        page_size = min(limit, MAX_PAGE_SIZE) if limit else MAX_PAGE_SIZE
        items: List[Dict[str, Any]] = []
        page = 1

        while True:
            query = dict(params or {})
            query.update({"per_page": page_size, "page": page})
            data = await self._get_json(url, operation, params=query)
            batch = data.get(item_key) or []
            items.extend(batch)

            total = data.get("total_count")
            if len(batch) < page_size:
                break
            if limit and len(items) >= limit:
                break
            if total is not None and len(items) >= total:
                break
            page += 1

        return items[:limit] if limit else items

    async def list_workflows(self) -> List[Target]:
        raw = await self._paginate(
            "actions/workflows", "workflows", "list workflows", limit=None
        )
        return [
            Target(
                name=workflow.get("name") or workflow.get("path") or str(workflow.get("id")),
                target_id=str(workflow.get("id")),
                url=workflow.get("html_url"),
                status_hint=workflow.get("state"),
                path=workflow.get("path"),
            )
            for workflow in raw
        ]

    async def list_targets(self) -> List[Target]:
        return await self.list_workflows()

    def _normalize_run(self, run: Dict[str, Any]) -> RunRecord:
        status = _run_status(run.get("status"))
        outcome = None
        if status == RunStatus.COMPLETED:
            outcome = CONCLUSION_OUTCOMES.get(
                (run.get("conclusion") or "").lower(), RunOutcome.UNKNOWN
            )

        started_at = parse_timestamp(run.get("run_started_at")) or parse_timestamp(
            run.get("created_at")
        )
        updated_at = parse_timestamp(run.get("updated_at"))

        duration_seconds = None
        if run.get("run_duration_ms"):
            duration_seconds = run["run_duration_ms"] / 1000
        elif started_at and updated_at and updated_at > started_at:
            duration_seconds = (updated_at - started_at).total_seconds()

        return RunRecord(
            provider=self.kind,
            integration_id=self.config.id,
            target=run.get("name") or run.get("display_title") or "workflow",
            run_id=str(run.get("id")),
            number=run.get("run_number"),
            status=status,
            outcome=outcome,
            started_at=started_at,
            updated_at=updated_at,
            duration_seconds=duration_seconds,
            url=run.get("html_url"),
            branch=run.get("head_branch"),
            display_title=run.get("display_title"),
            extra={
                "event": run.get("event"),
                "actor": (run.get("actor") or {}).get("login"),
                "head_sha": run.get("head_sha"),
                "workflow_id": run.get("workflow_id"),
            },
        )

    async def list_runs(
        self,
        limit: int = 25,
        workflow: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[RunRecord]:
        """Runs for the repository or one workflow (id, file name or path), newest first."""
        url = "actions/runs"
        if workflow:
            url = f"actions/workflows/{quote(str(workflow), safe='')}/runs"

        params = {"status": status} if status else None
        raw = await self._paginate(url, "workflow_runs", "list runs", limit, params)
        return [self._normalize_run(run) for run in raw]

    async def resolve_workflow(self, target: str) -> Optional[Target]:
        """Find a workflow by id, path or (case-insensitive) name."""
        wanted = str(target).strip()
        workflows = await self.list_workflows()

        for workflow in workflows:
            if wanted in (workflow.target_id, workflow.path):
                return workflow
        for workflow in workflows:
            if workflow.name.lower() == wanted.lower():
                return workflow
        return None

    async def runs_for_workflow(self, workflow: Target, limit: int = SUMMARY_RUN_LIMIT) -> List[RunRecord]:
        """
        Recent runs for a workflow.

        Lookup by workflow id sometimes comes back empty, so this falls back
        to the workflow path and finally to a repository-wide listing filtered
        by the workflow's display name.
        """
        for key in (workflow.target_id, workflow.path):
            if not key:
                continue
            try:
                runs = await self.list_runs(limit=limit, workflow=key)
            except UpstreamError as e:
                self.logger.debug(
                    "Workflow run lookup failed, trying next strategy",
                    workflow=workflow.name,
                    key=key,
                    error=str(e),
                )
                continue
            if runs:
                return runs

        wanted = workflow.name.lower()
        candidates = await self.list_runs(limit=FALLBACK_RUN_LIMIT)
        matched = [
            run
            for run in candidates
            if run.target.lower() == wanted
            or wanted in run.target.lower()
            or wanted in (run.display_title or "").lower()
        ]
        return matched[:limit]

    async def resolve_target(self, name: str) -> Optional[Target]:
        return await self.resolve_workflow(name)

    async def get_latest_run_for(self, workflow: Target) -> Optional[RunRecord]:
        """Latest run of a listed workflow, keyed by its id rather than its display name."""
        runs = await self.runs_for_workflow(workflow, limit=1)
        if not runs:
            return None

        latest = runs[0]
        latest.target = workflow.name
        return latest

    async def list_recent_runs(
        self, limit: int = 20, target: Optional[str] = None
    ) -> List[RunRecord]:
        if not target:
            return await self.list_runs(limit=limit)

        workflow = await self.resolve_workflow(target)
        if workflow is None:
            return []
        return await self.runs_for_workflow(workflow, limit=limit)

    async def summarize_workflow(self, workflow: Target) -> WorkflowSummary:
        """Last status, success rate and average duration over the latest completed runs."""
        try:
            runs = await self.runs_for_workflow(workflow, limit=SUMMARY_RUN_LIMIT)
        except UpstreamError as e:
            self.logger.warning(
                "Could not fetch runs for workflow summary",
                workflow=workflow.name,
                error=str(e),
            )
            runs = []

        return summarize_runs(workflow, runs[:SUMMARY_RUN_LIMIT])

    async def summarize_workflows(self) -> List[WorkflowSummary]:
        return [
            await self.summarize_workflow(workflow)
            for workflow in await self.list_workflows()
        ]

    async def deployments_summary(self, window_days: int = 7) -> Dict[str, Any]:
        """Deployment-like runs (name, title or branch mentions "deploy") in the window."""
        since = datetime.now(timezone.utc) - timedelta(days=window_days)
        runs = await self.list_runs(limit=100)

        deploys = [
            run
            for run in runs
            if (run.started_at is None or run.started_at >= since) and _is_deploy(run)
        ]

        per_job: Dict[str, List[RunRecord]] = {}
        for run in deploys:
            per_job.setdefault(run.target, []).append(run)

        return {"window_days": window_days, **deployment_totals(per_job)}

    async def workflows_trends(self, days: int = 14) -> Dict[str, Any]:
        """Daily run count, success rate and average duration over the last ``days`` days."""
        try:
            runs = await self.list_runs(limit=TREND_RUN_LIMIT)
        except UpstreamError as e:
            self.logger.warning("Could not fetch runs for trends", error=str(e))
            runs = []
        return {"days": days, "points": daily_trend(runs, days)}

    async def list_run_jobs(self, run_id: str) -> List[Dict[str, Any]]:
        data = await self._get_json(
            f"actions/runs/{quote(str(run_id), safe='')}/jobs",
            "list run jobs",
            params={"per_page": MAX_PAGE_SIZE},
        )
        return [
            {
                "id": job.get("id"),
                "name": job.get("name"),
                "status": job.get("status"),
                "conclusion": job.get("conclusion"),
                "started_at": job.get("started_at"),
                "completed_at": job.get("completed_at"),
            }
            for job in data.get("jobs") or []
        ]

    async def get_job_log_text(self, job_id: str) -> str:
        """
        Plain-text log for one job.

        The API answers with a redirect to a short-lived signed URL; that URL
        is fetched without the repository token.
        """
        operation = "get job logs"
        response = await self._request(
            "GET",
            f"actions/jobs/{quote(str(job_id), safe='')}/logs",
            operation,
            allowed_statuses=REDIRECT_STATUSES,
            follow_redirects=False,
        )
        if response.status_code not in REDIRECT_STATUSES:
            return response.text or ""

        location = response.headers.get("location")
        if not location:
            return ""

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as download:
                log_response = await download.get(location)
        except httpx.HTTPError as e:
            raise UpstreamError(self.label, operation, f"signed log URL failed: {e}")

        if not log_response.is_success:
            raise UpstreamError(
                self.label,
                operation,
                f"HTTP {log_response.status_code} from signed log URL",
                upstream_status=log_response.status_code,
            )
        return log_response.text or ""

    async def get_log_text(self, run: RunRecord) -> str:
        """Concatenated logs of every job in a run."""
        parts: List[str] = []
        for job in await self.list_run_jobs(run.run_id):
            parts.append(f"# Job: {job['name']} (id: {job['id']})")
            try:
                text = await self.get_job_log_text(job["id"])
                parts.append(text or "[no logs]")
            except UpstreamError as e:
                parts.append(f"[failed to fetch logs] {e.message}")
            parts.append("\n")
        return "\n".join(parts)


def _is_deploy(run: RunRecord) -> bool:
    haystacks = (run.target, run.display_title or "", run.branch or "")
    return any("deploy" in value.lower() for value in haystacks)


def summarize_runs(workflow: Target, runs: List[RunRecord]) -> WorkflowSummary:
    """Compute workflow statistics from runs ordered newest first."""
    summary = WorkflowSummary(target=workflow)
    if not runs:
        return summary

    last = runs[0]
    if last.status == RunStatus.COMPLETED:
        summary.last_status = (last.outcome or RunOutcome.UNKNOWN).value
    else:
        summary.last_status = last.status.value
    summary.last_run_at = last.started_at

    completed = [run for run in runs if run.status == RunStatus.COMPLETED]
    summary.completed_runs = len(completed)
    if not completed:
        return summary

    successes = sum(1 for run in completed if run.outcome == RunOutcome.SUCCESS)
    summary.success_rate = success_rate(successes, len(completed))
    summary.avg_duration_seconds = average(
        [run.duration_seconds for run in completed if run.duration_seconds]
    )

    return summary
