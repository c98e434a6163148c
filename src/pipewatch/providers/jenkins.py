"""Jenkins provider client."""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, urlsplit, urlunsplit

import httpx

from ..config.settings import get_settings
from ..exceptions import ConfigurationError, UpstreamError
from .analytics import daily_trend, deployment_totals, run_stats
from .base import ProviderClient
from .models import (
    IntegrationConfig,
    ProviderKind,
    RunOutcome,
    RunRecord,
    RunStatus,
    Target,
)

JOB_TREE = "jobs[name,url,color,_class]"
BUILD_FIELDS = "number,url,result,building,timestamp,duration,fullDisplayName"
JOB_INFO_TREE = (
    "name,url,color,description,displayName,"
    "lastBuild[number,url],lastCompletedBuild[number,url],"
    "lastSuccessfulBuild[number,url],lastFailedBuild[number,url]"
)

# Builds fetched per job: one day of trends, and one deployments summary
TREND_BUILDS_PER_DAY = 20
DEPLOY_BUILD_LIMIT = 100

RESULT_OUTCOMES = {
    "SUCCESS": RunOutcome.SUCCESS,
    "FAILURE": RunOutcome.FAILURE,
    "UNSTABLE": RunOutcome.UNSTABLE,
    "ABORTED": RunOutcome.CANCELLED,
    "NOT_BUILT": RunOutcome.SKIPPED,
}


def encode_job_path(job_name: str) -> str:
    """Map ``Folder/Sub/job`` onto Jenkins' ``job/Folder/job/Sub/job/job`` path."""
    parts = [part for part in (job_name or "").split("/") if part]
    return "/".join(f"job/{quote(part, safe='')}" for part in parts)


def rewrite_url(url: Optional[str], base_url: Optional[str]) -> Optional[str]:
    """
    Re-home an upstream link onto the configured origin and base path.

    Jenkins reports links using its own idea of its root URL, which is wrong
    behind reverse proxies. The upstream path, query and fragment are kept;
    the base path is prefixed unless the upstream path already carries it.
    """
    if not url or not base_url:
        return url

    base = urlsplit(base_url)
    original = urlsplit(url)
    if not base.scheme or not base.netloc:
        return url

    base_path = base.path.rstrip("/")
    path = original.path or "/"
    if base_path and not (path == base_path or path.startswith(base_path + "/")):
        path = base_path + (path if path.startswith("/") else "/" + path)

    return urlunsplit((base.scheme, base.netloc, path, original.query, original.fragment))


def _is_folder(item: Dict[str, Any]) -> bool:
    return "Folder" in (item.get("_class") or "")


class JenkinsClient(ProviderClient):
    """Client for the Jenkins JSON API."""

    kind = ProviderKind.JENKINS

    def __init__(
        self,
        config: IntegrationConfig,
        timeout: Optional[float] = None,
        build_limit: Optional[int] = None,
    ):
        if not config.base_url:
            raise ConfigurationError(f"integration:{config.id}", "Jenkins not configured")
        super().__init__(config, timeout=timeout)
        self.build_limit = build_limit or 20

    def _build_client(self) -> httpx.AsyncClient:
        auth = None
        if self.config.username and self.config.secret:
            auth = httpx.BasicAuth(self.config.username, self.config.secret)

        return httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/") + "/",
            auth=auth,
            timeout=self._timeout,
            headers={"Accept": "application/json"},
        )

    def _rewrite(self, url: Optional[str]) -> Optional[str]:
        return rewrite_url(url, self.config.base_url)

    async def _list_jobs_at(self, path: str) -> List[Dict[str, Any]]:
        url = f"{path}/api/json" if path else "api/json"
        data = await self._get_json(url, "list jobs", params={"tree": JOB_TREE})
        return data.get("jobs") or []

    async def _flatten_jobs(self, path: str, prefix: str) -> List[Target]:
        targets: List[Target] = []
        for item in await self._list_jobs_at(path):
            name = item.get("name")
            if not name:
                continue
            display_name = f"{prefix}/{name}" if prefix else name

            if _is_folder(item):
                folder_path = f"job/{quote(name, safe='')}"
                if path:
                    folder_path = f"{path}/{folder_path}"
                targets.extend(await self._flatten_jobs(folder_path, display_name))
            else:
                targets.append(
                    Target(
                        name=display_name,
                        target_id=display_name,
                        url=self._rewrite(item.get("url")),
                        status_hint=item.get("color"),
                    )
                )
        return targets

    async def list_targets(self) -> List[Target]:
        """Recursively flatten folders into names like ``Folder/Sub/Job``."""
        targets = await self._flatten_jobs("", "")
        self.logger.debug("Listed Jenkins jobs", job_count=len(targets))
        return targets

    def _normalize_build(self, target: str, build: Dict[str, Any]) -> RunRecord:
        building = bool(build.get("building"))
        result = build.get("result")

        if building or not result:
            status, outcome = RunStatus.RUNNING, None
        else:
            status = RunStatus.COMPLETED
            outcome = RESULT_OUTCOMES.get(str(result).upper(), RunOutcome.UNKNOWN)

        started_at = None
        if build.get("timestamp"):
            started_at = datetime.fromtimestamp(build["timestamp"] / 1000, tz=timezone.utc)

        duration_ms = build.get("duration") or 0
        duration_seconds = duration_ms / 1000 if duration_ms > 0 else None
        updated_at = None
        if started_at and duration_seconds and not building:
            updated_at = started_at + timedelta(seconds=duration_seconds)

        number = build.get("number")
        return RunRecord(
            provider=self.kind,
            integration_id=self.config.id,
            target=target,
            run_id=str(build.get("id") or number),
            number=number,
            status=status,
            outcome=outcome,
            started_at=started_at,
            updated_at=updated_at,
            duration_seconds=duration_seconds,
            url=self._rewrite(build.get("url")),
            display_title=build.get("fullDisplayName"),
        )

    async def list_builds(self, target: str, limit: Optional[int] = None) -> List[RunRecord]:
        """Builds for one job, newest first, bounded by ``limit``."""
        limit = limit or self.build_limit
        data = await self._get_json(
            f"{encode_job_path(target)}/api/json",
            "list builds",
            params={"tree": f"builds[{BUILD_FIELDS}]{{,{limit}}}"},
        )
        builds = (data.get("builds") or [])[:limit]
        return [self._normalize_build(target, build) for build in builds]

    async def resolve_target(self, name: str) -> Optional[Target]:
        # Job names address the API directly, so no listing is needed
        name = (name or "").strip("/")
        return Target(name=name, target_id=name) if name else None

    async def get_latest_run_for(self, target: Target) -> Optional[RunRecord]:
        job_name = target.target_id or target.name
        response = await self._request(
            "GET",
            f"{encode_job_path(job_name)}/lastBuild/api/json",
            "get last build",
            allowed_statuses=(404,),
        )
        if response.status_code == 404:
            # Job exists but has never been built
            return None
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(self.label, "get last build", f"invalid JSON payload: {e}")
        return self._normalize_build(target.name, data)

    async def list_recent_runs(
        self, limit: int = 20, target: Optional[str] = None
    ) -> List[RunRecord]:
        if target:
            return await self.list_builds(target, limit)

        runs: List[RunRecord] = []
        for job in await self.list_targets():
            try:
                runs.extend(await self.list_builds(job.name, limit))
            except UpstreamError as e:
                self.logger.warning(
                    "Skipping job while listing recent builds",
                    target=job.name,
                    error=str(e),
                )

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        runs.sort(key=lambda run: run.started_at or epoch, reverse=True)
        return runs[:limit]

    async def get_job_info(self, target: str) -> Dict[str, Any]:
        """Job metadata including references to notable builds."""
        data = await self._get_json(
            f"{encode_job_path(target)}/api/json",
            "get job info",
            params={"tree": JOB_INFO_TREE},
        )

        def build_ref(key: str) -> Optional[Dict[str, Any]]:
            ref = data.get(key)
            if not ref:
                return None
            return {"number": ref.get("number"), "url": self._rewrite(ref.get("url"))}

        return {
            "name": target,
            "display_name": data.get("displayName") or data.get("name"),
            "description": data.get("description"),
            "color": data.get("color"),
            "url": self._rewrite(data.get("url")),
            "last_build": build_ref("lastBuild"),
            "last_completed_build": build_ref("lastCompletedBuild"),
            "last_successful_build": build_ref("lastSuccessfulBuild"),
            "last_failed_build": build_ref("lastFailedBuild"),
        }

    async def overview(self) -> List[Tuple[Target, Optional[RunRecord]]]:
        """Every job with its last build; a job whose build cannot be read gets None."""
        rows: List[Tuple[Target, Optional[RunRecord]]] = []
        for job in await self.list_targets():
            try:
                last = await self.get_latest_run_for(job)
            except UpstreamError as e:
                self.logger.warning(
                    "Could not fetch last build", target=job.name, error=str(e)
                )
                last = None
            rows.append((job, last))
        return rows

    async def metrics_summary(self, window: int = 30, per_job: bool = True) -> Dict[str, Any]:
        """
        Build statistics over the last ``window`` builds of every job.

        Only finished builds count. Durations are in seconds; the median and
        p95 use the nearest-rank method.
        """
        all_builds: List[RunRecord] = []
        jobs: List[Dict[str, Any]] = []

        for job in await self.list_targets():
            builds = await self.list_builds(job.name, limit=window)
            all_builds.extend(builds)
            if per_job:
                stats = run_stats(builds)
                jobs.append(
                    {
                        "job": job.name,
                        "builds": stats["total_runs"],
                        "success_rate": stats["success_rate"],
                        "avg_duration_seconds": stats["avg_duration_seconds"],
                    }
                )

        summary: Dict[str, Any] = {"window": window, "totals": run_stats(all_builds)}
        if per_job:
            summary["per_job"] = jobs
        return summary

    async def metrics_trends(self, days: int = 14) -> Dict[str, Any]:
        """Daily build count, success rate and average duration across all jobs."""
        builds: List[RunRecord] = []
        for job in await self.list_targets():
            builds.extend(
                await self.list_builds(job.name, limit=days * TREND_BUILDS_PER_DAY)
            )
        return {"days": days, "points": daily_trend(builds, days)}

    async def deployments_summary(
        self, window_days: int = 1, pattern: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Builds of deployment jobs started in the last ``window_days`` days.

        Deployment jobs are those whose name matches ``pattern``
        (case-insensitive, default from JENKINS_DEPLOY_JOB_REGEX).

        Raises:
            ConfigurationError: when the pattern is not a valid regular expression
        """
        pattern = pattern or get_settings().jenkins_deploy_job_regex
        try:
            matcher = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise ConfigurationError("regex", f"invalid deploy job pattern: {e}")

        since = datetime.now(timezone.utc) - timedelta(days=window_days)
        per_job: Dict[str, List[RunRecord]] = {}
        for job in await self.list_targets():
            if not matcher.search(job.name):
                continue
            builds = await self.list_builds(job.name, limit=DEPLOY_BUILD_LIMIT)
            per_job[job.name] = [
                build for build in builds if build.started_at and build.started_at >= since
            ]

        return {"window_days": window_days, "pattern": pattern, **deployment_totals(per_job)}

    async def get_log_text(self, run: RunRecord) -> str:
        """Console output for one build."""
        response = await self._request(
            "GET",
            f"{encode_job_path(run.target)}/{quote(run.display_number, safe='')}/consoleText",
            "get console text",
            headers={"Accept": "text/plain"},
        )
        return response.text or ""
