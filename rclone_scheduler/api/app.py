"""HTTP control API and dashboard.

Routes:
    GET  /api/jobs                 list jobs
    POST /api/jobs/{index}         trigger a run
    POST /api/jobs/{index}/run     trigger a run
    GET  /, GET /jobs              dashboard page

A trigger is answered with 202 whether the run was started or the job was
already running; the outcome of runs only shows up in the log.
"""

import logging
import time
from functools import lru_cache
from importlib import resources
from typing import Callable, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from rclone_scheduler import __version__
from rclone_scheduler.exceptions import JobNotFoundError
from rclone_scheduler.scheduler.job_executor import TriggerResult
from rclone_scheduler.scheduler.registry import JobDefinition, ShellCommand, SyncCommand
from rclone_scheduler.scheduler.state import SchedulerState

logger = logging.getLogger(__name__)

UNSCHEDULED_LABEL = "(on demand / startup)"


class JobSummary(BaseModel):
    """Display view of a job."""

    index: int
    name: str
    schedule: str
    type: Literal["rclone", "run"]
    command: Optional[str] = None
    run: Optional[str] = None


def summarize(job: JobDefinition) -> JobSummary:
    schedule = job.schedule or UNSCHEDULED_LABEL
    action = job.action
    if isinstance(action, SyncCommand):
        return JobSummary(
            index=job.index,
            name=job.name,
            schedule=schedule,
            type="rclone",
            command=action.command_line,
        )
    if isinstance(action, ShellCommand):
        return JobSummary(
            index=job.index,
            name=job.name,
            schedule=schedule,
            type="run",
            run=action.command,
        )
    raise TypeError(f"Unsupported action for job {job.display_name}: {action!r}")


@lru_cache(maxsize=1)
def jobs_page() -> str:
    return resources.files("rclone_scheduler.api").joinpath("static/jobs.html").read_text(
        encoding="utf-8"
    )


def get_state(request: Request) -> SchedulerState:
    return request.app.state.scheduler_state


def parse_index(raw: str, count: int) -> int:
    """Parse a job index from a path segment.

    Raises:
        HTTPException: 400 if not an integer in ``[0, count)``
    """
    # ASCII digits only: int() would also take "1_0", "+1", " 1" and "١"
    if not (raw.isascii() and raw.isdigit()):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid job index")
    index = int(raw)
    if index >= count:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid job index")
    return index


router = APIRouter()


@router.get(
    "/api/jobs",
    response_model=List[JobSummary],
    response_model_exclude_none=True,
)
async def list_jobs(state: SchedulerState = Depends(get_state)) -> List[JobSummary]:
    return [summarize(job) for job in state.registry.list()]


@router.post("/api/jobs/{index}", status_code=status.HTTP_202_ACCEPTED)
@router.post("/api/jobs/{index}/run", status_code=status.HTTP_202_ACCEPTED)
async def trigger_job(
    index: str,
    state: SchedulerState = Depends(get_state),
) -> Dict[str, str]:
    job_index = parse_index(index, len(state.registry))
    job = state.registry.get(job_index)

    result = state.executor.trigger(job_index)
    if result is TriggerResult.BUSY:
        logger.info(f"Manual trigger of {job.display_name} ignored: already running")
    else:
        logger.info(f"Manual trigger of {job.display_name} accepted")

    return {"status": "accepted"}


@router.get("/", response_class=HTMLResponse)
@router.get("/jobs", response_class=HTMLResponse)
async def dashboard() -> HTMLResponse:
    return HTMLResponse(content=jobs_page())


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        start = time.perf_counter()
        client = request.client.host if request.client else "-"
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000.0
        logger.debug(
            "client=%s method=%s path=%s status=%s duration_ms=%.2f",
            client, request.method, request.url.path, response.status_code, duration_ms,
        )
        return response


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(JobNotFoundError)
    async def job_not_found_handler(request: Request, exc: JobNotFoundError) -> JSONResponse:
        logger.warning(f"path={request.url.path} {exc}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "invalid job index"},
        )


def create_app(state: SchedulerState) -> FastAPI:
    """Build the control API for a scheduler state.

    Args:
        state: Registry and executor the routes operate on

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="rclone-scheduler",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        # "/api/jobs/" is an unknown path, not a redirect
        redirect_slashes=False,
    )
    app.state.scheduler_state = state
    app.add_middleware(RequestLogMiddleware)
    register_error_handlers(app)
    app.include_router(router)
    return app
