"""Provider integration browsing endpoints: targets, runs, logs, summaries."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from ...config.logging import get_logger
from ...exceptions import ConfigurationError, NotFoundError
from ...ormdb.repositories import ProviderIntegrationRepository
from ...providers import (
    GitHubActionsClient,
    IntegrationConfig,
    JenkinsClient,
    ProviderClient,
    RunRecord,
    RunStatus,
    Target,
    WorkflowSummary,
    create_provider_client,
)
from ..auth import verify_auth_token
from ..models.responses import StatusResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/integrations", dependencies=[Depends(verify_auth_token)])


def target_to_dict(target: Target) -> Dict[str, Any]:
    return {
        "name": target.name,
        "id": target.target_id,
        "url": target.url,
        "status": target.status_hint,
        "path": target.path,
    }


def run_to_dict(run: RunRecord) -> Dict[str, Any]:
    return {
        "target": run.target,
        "run_id": run.run_id,
        "number": run.number,
        "status": run.status.value,
        "outcome": run.outcome.value if run.outcome else None,
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "updated_at": run.updated_at.isoformat() if run.updated_at else None,
        "duration_seconds": run.duration_seconds,
        "url": run.url,
        "branch": run.branch,
        "title": run.display_title,
    }


def summary_to_dict(summary: WorkflowSummary) -> Dict[str, Any]:
    return {
        "workflow": target_to_dict(summary.target),
        "last_status": summary.last_status,
        "last_run_at": summary.last_run_at.isoformat() if summary.last_run_at else None,
        "success_rate": summary.success_rate,
        "avg_duration_seconds": summary.avg_duration_seconds,
        "completed_runs": summary.completed_runs,
    }


def require_provider(client: ProviderClient, client_type: type, capability: str) -> None:
    """Reject a provider-specific route for an integration of another kind."""
    if not isinstance(client, client_type):
        raise ConfigurationError(
            "provider", f"{capability} is only available for {client_type.kind.label}"
        )


def get_integration(integration_id: str) -> IntegrationConfig:
    """Dependency resolving an active integration by id."""
    with ProviderIntegrationRepository() as repo:
        row = repo.get_by_id(integration_id)
    if row is None or not row.is_active:
        raise NotFoundError("Integration", integration_id)
    return IntegrationConfig.from_model(row)


def get_provider_client(
    integration: IntegrationConfig = Depends(get_integration),
) -> ProviderClient:
    return create_provider_client(integration)


@router.get(
    "/{integration_id}/targets",
    response_model=StatusResponse,
    summary="List Targets",
    description="Jobs (Jenkins, flattened across folders) or workflows (GitHub Actions)",
)
async def list_targets(
    request: Request, client: ProviderClient = Depends(get_provider_client)
) -> StatusResponse:
    async with client:
        targets = await client.list_targets()

    return StatusResponse.create(
        data={
            "provider": client.kind.value,
            "targets": [target_to_dict(target) for target in targets],
        },
        request_id=getattr(request.state, "request_id", None),
    )


@router.get(
    "/{integration_id}/runs",
    response_model=StatusResponse,
    summary="List Recent Runs",
)
async def list_runs(
    request: Request,
    limit: int = Query(20, ge=1, le=100, description="Maximum runs to return"),
    target: Optional[str] = Query(None, description="Restrict to one job or workflow"),
    client: ProviderClient = Depends(get_provider_client),
) -> StatusResponse:
    async with client:
        runs = await client.list_recent_runs(limit=limit, target=target)

    return StatusResponse.create(
        data={"runs": [run_to_dict(run) for run in runs], "count": len(runs)},
        request_id=getattr(request.state, "request_id", None),
    )


@router.get(
    "/{integration_id}/runs/logs",
    response_class=PlainTextResponse,
    summary="Get Run Logs",
    description="Jenkins console text or concatenated GitHub Actions job logs",
)
async def get_run_logs(
    target: Optional[str] = Query(None, description="Job name (required for Jenkins)"),
    run_id: Optional[str] = Query(None, description="GitHub Actions run id"),
    number: Optional[int] = Query(None, description="Jenkins build number"),
    client: ProviderClient = Depends(get_provider_client),
) -> PlainTextResponse:
    if isinstance(client, JenkinsClient) and (not target or number is None):
        raise HTTPException(status_code=400, detail="target and number are required")
    if isinstance(client, GitHubActionsClient) and not run_id:
        raise HTTPException(status_code=400, detail="run_id is required")

    run = RunRecord(
        provider=client.kind,
        integration_id=client.config.id,
        target=target or "",
        run_id=str(run_id or number),
        number=number,
        status=RunStatus.COMPLETED,
    )
    async with client:
        text = await client.get_log_text(run)
    return PlainTextResponse(text)


@router.get(
    "/{integration_id}/jobs/info",
    response_model=StatusResponse,
    summary="Get Jenkins Job Info",
)
async def get_job_info(
    request: Request,
    target: str = Query(..., description="Job name, folders joined by '/'"),
    client: ProviderClient = Depends(get_provider_client),
) -> StatusResponse:
    require_provider(client, JenkinsClient, "job info")

    async with client:
        info = await client.get_job_info(target)
    return StatusResponse.create(
        data=info, request_id=getattr(request.state, "request_id", None)
    )


@router.get(
    "/{integration_id}/workflows/summary",
    response_model=StatusResponse,
    summary="Workflow Summary",
    description="Per-workflow last status, success rate and average duration",
)
async def workflows_summary(
    request: Request,
    window_days: int = Query(7, ge=1, le=90, description="Deployment summary window"),
    client: ProviderClient = Depends(get_provider_client),
) -> StatusResponse:
    require_provider(client, GitHubActionsClient, "workflow summaries")

    async with client:
        summaries = await client.summarize_workflows()
        deployments = await client.deployments_summary(window_days=window_days)

    return StatusResponse.create(
        data={
            "workflows": [summary_to_dict(summary) for summary in summaries],
            "deployments": deployments,
        },
        request_id=getattr(request.state, "request_id", None),
    )


@router.get(
    "/{integration_id}/workflows/trends",
    response_model=StatusResponse,
    summary="Workflow Trends",
    description="Daily run count, success rate and average duration",
)
async def workflows_trends(
    request: Request,
    days: int = Query(14, ge=1, le=90, description="Days to cover, today included"),
    client: ProviderClient = Depends(get_provider_client),
) -> StatusResponse:
    require_provider(client, GitHubActionsClient, "workflow trends")

    async with client:
        trends = await client.workflows_trends(days=days)
    return StatusResponse.create(
        data=trends, request_id=getattr(request.state, "request_id", None)
    )


@router.get(
    "/{integration_id}/overview",
    response_model=StatusResponse,
    summary="Jenkins Overview",
    description="Every job with its last build",
)
async def jenkins_overview(
    request: Request, client: ProviderClient = Depends(get_provider_client)
) -> StatusResponse:
    require_provider(client, JenkinsClient, "the job overview")

    async with client:
        rows = await client.overview()

    return StatusResponse.create(
        data={
            "jobs": [
                {
                    **target_to_dict(job),
                    "last_build": run_to_dict(last) if last else None,
                }
                for job, last in rows
            ]
        },
        request_id=getattr(request.state, "request_id", None),
    )


@router.get(
    "/{integration_id}/metrics/summary",
    response_model=StatusResponse,
    summary="Jenkins Build Metrics",
    description="Success rate and mean, median and p95 duration over recent builds",
)
async def metrics_summary(
    request: Request,
    window: int = Query(30, ge=1, le=100, description="Recent builds per job"),
    per_job: bool = Query(True, description="Include per-job breakdown"),
    client: ProviderClient = Depends(get_provider_client),
) -> StatusResponse:
    require_provider(client, JenkinsClient, "build metrics")

    async with client:
        summary = await client.metrics_summary(window=window, per_job=per_job)
    return StatusResponse.create(
        data=summary, request_id=getattr(request.state, "request_id", None)
    )


@router.get(
    "/{integration_id}/metrics/trends",
    response_model=StatusResponse,
    summary="Jenkins Build Trends",
    description="Daily build count, success rate and average duration",
)
async def metrics_trends(
    request: Request,
    days: int = Query(14, ge=1, le=90, description="Days to cover, today included"),
    client: ProviderClient = Depends(get_provider_client),
) -> StatusResponse:
    require_provider(client, JenkinsClient, "build trends")

    async with client:
        trends = await client.metrics_trends(days=days)
    return StatusResponse.create(
        data=trends, request_id=getattr(request.state, "request_id", None)
    )


@router.get(
    "/{integration_id}/deployments/summary",
    response_model=StatusResponse,
    summary="Deployment Summary",
    description=(
        "Deployment runs in a day window: Jenkins jobs matching a pattern, "
        "or GitHub Actions runs that mention deploy"
    ),
)
async def deployments_summary(
    request: Request,
    window_days: Optional[int] = Query(
        None, ge=1, le=90, description="Days to cover (Jenkins 1, GitHub Actions 7)"
    ),
    regex: Optional[str] = Query(None, description="Jenkins deployment job pattern"),
    client: ProviderClient = Depends(get_provider_client),
) -> StatusResponse:
    kwargs: Dict[str, Any] = {}
    if window_days is not None:
        kwargs["window_days"] = window_days
    if isinstance(client, JenkinsClient):
        kwargs["pattern"] = regex

    async with client:
        summary = await client.deployments_summary(**kwargs)
    return StatusResponse.create(
        data=summary, request_id=getattr(request.state, "request_id", None)
    )
