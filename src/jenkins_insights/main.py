import asyncio
import os
from contextlib import asynccontextmanager
from typing import NoReturn

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from simple_logger.logger import get_logger

from jenkins_insights.config import get_settings
from jenkins_insights.connections import ConnectionManager
from jenkins_insights.console import QUICK_PATTERNS, scan_console, scan_console_optimized
from jenkins_insights.jenkins import JenkinsApiError, JenkinsClient
from jenkins_insights.models import (
    Build,
    ConnectionConfig,
    ConnectionTestResult,
    ConsoleOutputResponse,
    IssueReport,
    Job,
    JobDetailsResponse,
    Plugin,
    SystemDataResponse,
    TriggerBuildRequest,
    TroubleshootResponse,
    TroubleshootUrlRequest,
)
from jenkins_insights.storage import init_db
from jenkins_insights.utils import mask_sensitive_data

logger = get_logger(name=__name__, level=os.environ.get("LOG_LEVEL", "INFO"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    manager = ConnectionManager(get_settings())
    await manager.load()
    await manager.seed_from_settings()
    app.state.connections = manager
    yield
    await manager.close()


app = FastAPI(
    title="Jenkins Insights",
    description="Browse Jenkins servers and surface likely failure causes",
    version="0.1.0",
    lifespan=lifespan,
)


def get_manager(request: Request) -> ConnectionManager:
    return request.app.state.connections


def get_client(
    connection_id: str | None = Query(
        None, description="Connection to use (defaults to the active connection)"
    ),
    manager: ConnectionManager = Depends(get_manager),
) -> JenkinsClient:
    """Resolve the Jenkins client for a request."""
    try:
        return manager.get_client(connection_id)
    except KeyError:
        raise HTTPException(
            status_code=404, detail=f"Connection '{connection_id}' not found"
        )
    except LookupError:
        raise HTTPException(
            status_code=400,
            detail="No active Jenkins connection. Add or activate a connection first.",
        )


def handle_jenkins_exception(e: Exception, context: str) -> NoReturn:
    """Convert Jenkins client errors to HTTPExceptions.

    Args:
        e: The exception raised by the Jenkins client.
        context: What was being attempted, used as the detail prefix.

    Raises:
        HTTPException: Always, with status 502.
    """
    logger.error(f"{context}: {e}")
    raise HTTPException(status_code=502, detail=f"{context}: {e!s}")


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/connections")
async def list_connections(
    grouped: bool = Query(False, description="Group connections by folder"),
    manager: ConnectionManager = Depends(get_manager),
) -> dict:
    """List connections with secrets masked."""
    if grouped:
        folders = {
            folder: [c.public_dict() for c in conns]
            for folder, conns in manager.connections_by_folder().items()
        }
        return {"folders": folders, "active_id": manager.active_id}
    return {
        "connections": [c.public_dict() for c in manager.connections],
        "active_id": manager.active_id,
    }


@app.post("/connections", status_code=201)
async def add_connection(
    connection: ConnectionConfig,
    manager: ConnectionManager = Depends(get_manager),
) -> dict:
    """Register a connection (auth type inferred when omitted)."""
    await manager.add(connection)
    return connection.public_dict()


@app.post("/connections/test", response_model=None)
async def test_connection(
    connection: ConnectionConfig,
    manager: ConnectionManager = Depends(get_manager),
) -> ConnectionTestResult | JSONResponse:
    """Check that a connection can reach its Jenkins server."""
    if await manager.test_connection(connection):
        return ConnectionTestResult(success=True, message="Connection successful")
    return JSONResponse(
        status_code=400,
        content=ConnectionTestResult(
            success=False, message="Failed to connect to Jenkins server"
        ).model_dump(),
    )


@app.delete("/connections/{connection_id}", status_code=204)
async def remove_connection(
    connection_id: str,
    manager: ConnectionManager = Depends(get_manager),
) -> None:
    try:
        await manager.remove(connection_id)
    except KeyError:
        raise HTTPException(
            status_code=404, detail=f"Connection '{connection_id}' not found"
        )


@app.post("/connections/{connection_id}/activate")
async def activate_connection(
    connection_id: str,
    manager: ConnectionManager = Depends(get_manager),
) -> dict:
    try:
        await manager.set_active(connection_id)
    except KeyError:
        raise HTTPException(
            status_code=404, detail=f"Connection '{connection_id}' not found"
        )
    return {"active_id": connection_id}


@app.get("/jenkins/jobs", response_model=list[Job])
async def get_jobs(
    use_cache: bool = Query(True),
    client: JenkinsClient = Depends(get_client),
) -> list[Job]:
    try:
        return await client.get_jobs(use_cache=use_cache)
    except JenkinsApiError as e:
        handle_jenkins_exception(e, "Failed to fetch jobs")


@app.get("/jenkins/jobs/{job_name}", response_model=JobDetailsResponse)
async def get_job_details(
    job_name: str,
    client: JenkinsClient = Depends(get_client),
) -> JobDetailsResponse:
    """Get job details with its 10 most recent builds."""
    try:
        job_details = await client.get_job_details(job_name)
        builds = await client.get_builds(job_name, 10)
    except JenkinsApiError as e:
        handle_jenkins_exception(e, "Failed to fetch job details")
    return JobDetailsResponse(job_details=job_details, builds=builds)


@app.get("/jenkins/jobs/{job_name}/builds/{build_number}")
async def get_build_details(
    job_name: str,
    build_number: int,
    client: JenkinsClient = Depends(get_client),
) -> dict:
    try:
        return await client.get_build_details(job_name, build_number)
    except JenkinsApiError as e:
        handle_jenkins_exception(e, "Failed to fetch build details")


@app.get(
    "/jenkins/jobs/{job_name}/builds/{build_number}/console",
    response_model=ConsoleOutputResponse,
)
async def get_console_output(
    job_name: str,
    build_number: int,
    client: JenkinsClient = Depends(get_client),
) -> ConsoleOutputResponse:
    """Get masked console output with classified error lines."""
    try:
        console_output = await client.get_build_console_output(job_name, build_number)
    except JenkinsApiError as e:
        handle_jenkins_exception(e, "Failed to fetch console output")

    masked = mask_sensitive_data(console_output)
    return ConsoleOutputResponse(
        console_output=masked, errors=scan_console_optimized(masked)
    )


@app.post("/jenkins/jobs/{job_name}/build", status_code=202)
async def trigger_build(
    job_name: str,
    body: TriggerBuildRequest | None = Body(None),
    client: JenkinsClient = Depends(get_client),
) -> dict:
    parameters = body.parameters if body else {}
    try:
        await client.trigger_build(job_name, parameters)
    except JenkinsApiError as e:
        handle_jenkins_exception(e, "Failed to trigger build")
    return {"status": "queued", "job": job_name}


@app.get("/jenkins/system", response_model=SystemDataResponse)
async def get_system_data(
    client: JenkinsClient = Depends(get_client),
) -> SystemDataResponse:
    """Get load statistics, nodes and the build queue."""
    try:
        system_stats, nodes, queue = await asyncio.gather(
            client.get_system_stats(), client.get_nodes(), client.get_queue()
        )
    except JenkinsApiError as e:
        handle_jenkins_exception(e, "Failed to fetch system data")
    return SystemDataResponse(system_stats=system_stats, nodes=nodes, queue=queue)


@app.get("/jenkins/plugins", response_model=list[Plugin])
async def get_plugins(client: JenkinsClient = Depends(get_client)) -> list[Plugin]:
    try:
        return await client.get_plugins()
    except JenkinsApiError as e:
        handle_jenkins_exception(e, "Failed to fetch plugins")


@app.get("/jenkins/issues", response_model=IssueReport)
async def analyze_issues(
    include_console: bool = Query(
        False, description="Attach console errors to build failures"
    ),
    use_cache: bool = Query(False, description="Reuse a recent analysis"),
    client: JenkinsClient = Depends(get_client),
) -> IssueReport:
    """Analyze recent builds, the queue and nodes for issues."""
    try:
        return await client.analyze_issues(
            use_cache=use_cache, include_console=include_console
        )
    except JenkinsApiError as e:
        handle_jenkins_exception(e, "Failed to analyze issues")


@app.post("/jenkins/troubleshoot-url", response_model=TroubleshootResponse)
async def troubleshoot_url(
    body: TroubleshootUrlRequest,
    client: JenkinsClient = Depends(get_client),
) -> TroubleshootResponse:
    """Troubleshoot a job from its Jenkins URL with a quick console scan."""
    try:
        job_name, job_details = await client.get_job_info_from_url(body.url)
        builds: list[Build] = await client.get_builds(job_name, 5)
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail=f"Could not extract job information from URL: {e!s}",
        )
    except JenkinsApiError as e:
        handle_jenkins_exception(e, "Failed to troubleshoot URL")

    console_output = None
    console_errors = []
    if job_details.last_build:
        try:
            console_output = mask_sensitive_data(
                await client.get_build_console_output(
                    job_name, job_details.last_build.number
                )
            )
            console_errors = scan_console(console_output, QUICK_PATTERNS)
        except JenkinsApiError:
            logger.exception(f"Error fetching console output for {job_name}")

    return TroubleshootResponse(
        job_name=job_name,
        job_details=job_details,
        builds=builds,
        console_output=console_output,
        console_errors=console_errors,
    )


def run() -> None:
    """Entry point for the CLI."""
    import uvicorn

    reload = os.getenv("DEBUG", "").lower() == "true"
    uvicorn.run("jenkins_insights.main:app", host="0.0.0.0", port=8000, reload=reload)
