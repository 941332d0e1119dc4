"""FastAPI application hosting the Slack bot, health checks and diagnostics.

WHY: In HTTP mode Slack posts commands, events and interactions to one
public URL. The same process must also answer load-balancer health checks,
sweep expired in-memory state, and (in development) let an operator poke
each Google integration without going through Slack.

HOW: build_components() is the composition root: it turns Settings into
Google clients, the Slack gateway, the upload pipeline, the coordinator,
the router and the bolt App. create_server() mounts the bolt App at
POST /slack/events through slack_bolt's FastAPI adapter and adds the
health and diagnostic routes. The lifespan runs a startup connection check
and a periodic sweep task.

RULES:
- GET / is liveness only; GET /health probes Drive and Sheets (200 / 503)
- /diag/* routes exist only when APP_ENV=development
- The sweep runs every SWEEP_INTERVAL_S seconds and never stops the server
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slack_bolt import App
from slack_bolt.adapter.fastapi import SlackRequestHandler
from slack_sdk import WebClient

from slack_print_bot import __version__
from slack_print_bot.config import SWEEP_INTERVAL_S, Settings
from slack_print_bot.core.errors import UpstreamError
from slack_print_bot.core.models import SubmissionStatus
from slack_print_bot.core.pipeline import SubmissionRow, UploadPipeline
from slack_print_bot.core.router import SubmissionRouter
from slack_print_bot.core.state import SubmissionCoordinator
from slack_print_bot.server.models import (
    DiagnosticResponse,
    HealthResponse,
    PrintRequestInfo,
    PrintRequestsResponse,
    ProjectsResponse,
    StatusResponse,
)
from slack_print_bot.services.catalog import PrintCatalog
from slack_print_bot.services.drive import DriveStorage
from slack_print_bot.services.google_auth import load_credentials
from slack_print_bot.services.sheets import SheetsLog
from slack_print_bot.slack.bot import create_app
from slack_print_bot.slack.gateway import SlackGateway

logger = logging.getLogger(__name__)

SERVICE_NAME = "slack-print-bot"


def _iso(timestamp: Optional[float] = None) -> str:
    moment = datetime.now(timezone.utc) if timestamp is None else datetime.fromtimestamp(
        timestamp, timezone.utc
    )
    return moment.isoformat()


# ---------------------------------------------------------------------------
# Composition root
# ---------------------------------------------------------------------------


@dataclass
class Components:
    """Everything the bot needs at runtime, wired together once."""

    settings: Settings
    drive: DriveStorage
    sheets: SheetsLog
    catalog: PrintCatalog
    gateway: SlackGateway
    pipeline: UploadPipeline
    coordinator: SubmissionCoordinator
    router: SubmissionRouter
    app: App

    def check_connections(self) -> bool:
        """Probe Drive and Sheets and prepare the sheet header row.

        Failures are logged, not raised: the bot still starts and /health
        reports the problem.
        """
        drive_ok = self.drive.test_connection()
        sheets_ok = self.sheets.test_connection(self.settings.project_sheet_id)
        if sheets_ok:
            try:
                self.sheets.ensure_headers()
            except UpstreamError:
                logger.exception("Could not set up sheet headers")
        if drive_ok and sheets_ok:
            logger.info("Google services connected")
        else:
            logger.warning("Google services check failed (drive: %s, sheets: %s)", drive_ok, sheets_ok)
        return drive_ok and sheets_ok


def build_components(
    settings: Settings,
    credentials: Any = None,
    slack_client: Optional[WebClient] = None,
    token_verification_enabled: bool = True,
) -> Components:
    if credentials is None:
        credentials = load_credentials(
            settings.google_credentials_json, settings.google_application_credentials
        )
    client = slack_client or WebClient(token=settings.slack_bot_token)

    drive = DriveStorage(credentials, settings.drive_folder_id)
    sheets = SheetsLog(credentials, settings.sheet_id)
    catalog = PrintCatalog(sheets, settings.project_sheet_id)
    gateway = SlackGateway(client, settings.slack_bot_token)
    pipeline = UploadPipeline(gateway, drive, sheets)
    coordinator = SubmissionCoordinator(submission_policy=settings.submission_policy)
    router = SubmissionRouter(
        coordinator, gateway, pipeline, catalog, command_mode=settings.command_mode
    )
    app = create_app(
        router,
        client,
        signing_secret=settings.slack_signing_secret,
        token_verification_enabled=token_verification_enabled,
    )
    return Components(
        settings=settings,
        drive=drive,
        sheets=sheets,
        catalog=catalog,
        gateway=gateway,
        pipeline=pipeline,
        coordinator=coordinator,
        router=router,
        app=app,
    )


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


async def _periodic_sweep(coordinator: SubmissionCoordinator, interval: float) -> None:
    """Sweep expired pending state every ``interval`` seconds."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = coordinator.sweep()
        except Exception:
            logger.exception("State sweep failed")
            continue
        if any(removed.values()):
            logger.info("Swept expired state: %s", removed)


def create_server(
    components: Components,
    sweep_interval: float = SWEEP_INTERVAL_S,
    check_on_startup: bool = True,
) -> FastAPI:
    settings = components.settings
    slack_handler = SlackRequestHandler(components.app)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Check Google access, then sweep until shutdown."""
        if check_on_startup:
            await asyncio.to_thread(components.check_connections)
        task = asyncio.create_task(_periodic_sweep(components.coordinator, sweep_interval))
        logger.info(
            "Print bot listening on port %d (env: %s, command mode: %s)",
            settings.port, settings.app_env, settings.command_mode,
        )
        yield
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    server = FastAPI(
        lifespan=lifespan,
        title="Slack Print Bot",
        description=(
            "Slack bot that collects 3D print requests, stores the model "
            "files in Google Drive and logs each request to Google Sheets."
        ),
        version=__version__,
    )

    # -----------------------------------------------------------------------
    # Slack
    # -----------------------------------------------------------------------

    @server.post(
        "/slack/events",
        tags=["slack"],
        summary="Slack commands, events and interactions",
    )
    async def slack_events(req: Request):
        return await slack_handler.handle(req)

    # -----------------------------------------------------------------------
    # Health
    # -----------------------------------------------------------------------

    @server.get(
        "/",
        response_model=StatusResponse,
        tags=["health"],
        summary="Liveness check",
    )
    async def root() -> StatusResponse:
        return StatusResponse(status="healthy", service=SERVICE_NAME, timestamp=_iso())

    @server.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
        summary="Readiness check",
        description="Probes Google Drive and Google Sheets. Returns 503 if either is unreachable.",
        responses={503: {"model": HealthResponse, "description": "A dependency is unreachable"}},
    )
    async def health_check():
        try:
            drive_ok = await asyncio.to_thread(components.drive.test_connection)
            sheets_ok = await asyncio.to_thread(
                components.sheets.test_connection, settings.project_sheet_id
            )
        except Exception as exc:
            logger.exception("Health check failed")
            payload = HealthResponse(
                status="unhealthy",
                version=__version__,
                services={},
                timestamp=_iso(),
                error=str(exc),
            )
            return JSONResponse(status_code=503, content=payload.model_dump())

        healthy = drive_ok and sheets_ok
        payload = HealthResponse(
            status="healthy" if healthy else "unhealthy",
            version=__version__,
            services={
                "drive": "connected" if drive_ok else "disconnected",
                "sheets": "connected" if sheets_ok else "disconnected",
            },
            timestamp=_iso(),
        )
        return JSONResponse(status_code=200 if healthy else 503, content=payload.model_dump())

    if settings.is_development:
        _add_diagnostics(server, components)

    return server


def _add_diagnostics(server: FastAPI, components: Components) -> None:
    """Development-only routes that expose state and exercise each integration."""

    def _error(message: str) -> JSONResponse:
        return JSONResponse(
            status_code=500,
            content=DiagnosticResponse(status="error", message=message).model_dump(),
        )

    @server.get(
        "/diag/print-requests",
        response_model=PrintRequestsResponse,
        tags=["diagnostics"],
        summary="Tracked print requests",
    )
    async def diag_print_requests() -> PrintRequestsResponse:
        coordinator = components.coordinator
        requests = []
        for submission in coordinator.list_submissions():
            data = submission.to_dict()
            requests.append(PrintRequestInfo(
                id=data["id"],
                requester_id=data["requester_id"],
                selections=data["selections"],
                status=data["status"],
                submitted_at=_iso(data["created_at"]),
                completed_at=_iso(data["completed_at"]) if data["completed_at"] else None,
                file_id=data["file_id"],
                file_name=data["file_name"],
            ))
        pending = sum(1 for r in requests if r.status == SubmissionStatus.AWAITING_FILE.value)
        return PrintRequestsResponse(
            status="success",
            requests=requests,
            count=len(requests),
            pending=pending,
            completed=len(requests) - pending,
            pending_uploads=len(coordinator.uploads),
            waitlist=len(coordinator.waitlist),
        )

    @server.get(
        "/diag/projects",
        response_model=ProjectsResponse,
        tags=["diagnostics"],
        summary="Projects offered in the print request form",
    )
    async def diag_projects() -> ProjectsResponse:
        components.catalog.invalidate()
        projects = await asyncio.to_thread(components.catalog.list_projects)
        return ProjectsResponse(
            status="success",
            projects=projects,
            count=len(projects),
            sheet_id=components.catalog.project_sheet_id,
        )

    @server.get(
        "/diag/sheets",
        response_model=DiagnosticResponse,
        tags=["diagnostics"],
        summary="Append a test row to the submissions sheet",
    )
    async def diag_sheets():
        row = SubmissionRow(
            user="diag-user", file_name="diag-file", project="", drive_link="", notes=""
        )
        try:
            await asyncio.to_thread(components.sheets.append_row, row.to_values())
        except UpstreamError as exc:
            logger.error("Sheets diagnostic failed: %s", exc)
            return _error(str(exc))
        return DiagnosticResponse(status="success", message="Sheets append OK")

    @server.get(
        "/diag/drive",
        response_model=DiagnosticResponse,
        tags=["diagnostics"],
        summary="Upload a small test file to Drive",
    )
    async def diag_drive():
        filename = "diag-{}.txt".format(int(time.time() * 1000))
        try:
            stored = await asyncio.to_thread(
                components.drive.upload_file, b"hello", filename, "text/plain"
            )
        except UpstreamError as exc:
            logger.error("Drive diagnostic failed: %s", exc)
            return _error(str(exc))
        return DiagnosticResponse(status="success", file_id=stored.id)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run() -> None:
    """Entry point for the slack-print-bot console script (HTTP mode)."""
    import uvicorn

    from slack_print_bot.config import configure_logging, load_settings

    settings = load_settings()
    configure_logging(settings.log_level)
    server = create_server(build_components(settings))
    uvicorn.run(server, host="0.0.0.0", port=settings.port)
