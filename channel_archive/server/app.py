"""HTTP trigger for archive jobs.

Endpoints:
    GET  /health  -> 200 {"status": "healthy"}
    POST /export  -> 202 {"message": "Export started", "channelId", "guildId"}

The archive job runs as a background task after the 202 is sent, so a busy
pipeline or a failed stage only shows up in the logs and the ledger.
"""

from __future__ import annotations

import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from channel_archive import __version__
from channel_archive.config.settings import AppSettings
from channel_archive.core.errors import PipelineBusy
from channel_archive.db.engine import dispose_engines
from channel_archive.pipeline.logger import logger
from channel_archive.pipeline.models import PipelineVariant
from channel_archive.pipeline.orchestrator import ArchivePipeline
from channel_archive.pipeline.run import build_discord_client, build_pipeline
from channel_archive.utils.masking import mask_sensitive_info


class APIError(Exception):
    """Rendered as {"error": message} with the given status code."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(message)


class ExportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    channel_id: str | int | None = Field(default=None, alias="channelId")
    guild_id: str | int | None = Field(default=None, alias="guildId")


def _parse_snowflake(value: str | int, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise APIError(400, f"Invalid {field}: expected a numeric id") from None


async def run_export_job(
    pipeline: ArchivePipeline,
    channel_id: int,
    guild_id: int,
    settings: AppSettings,
) -> None:
    """Run one archive job; every failure is logged, none escapes."""
    try:
        await pipeline.run(channel_id=channel_id, guild_id=guild_id)
    except PipelineBusy as e:
        logger.warning(str(e))
    except Exception as e:
        logger.error(
            "Error processing export request: "
            + mask_sensitive_info(str(e), settings.secrets)
        )


def create_app(
    settings: AppSettings,
    variant: PipelineVariant | None = None,
    pipeline: ArchivePipeline | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Application settings
        variant: Pipeline variant started by POST /export; defaults to
            pipeline.variant from settings
        pipeline: Prebuilt pipeline (tests); built in the lifespan if None

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Startup: one Discord client for the life of the process
        discord = None
        if pipeline is None:
            discord = build_discord_client(settings)
            await discord.open()
            app.state.pipeline = build_pipeline(
                settings, variant or settings.pipeline.variant, discord
            )
        else:
            app.state.pipeline = pipeline
        yield
        # Shutdown: cleanup
        if discord is not None:
            await discord.close()
        await dispose_engines()

    app = FastAPI(
        title="Channel Archive",
        description="Archive Discord channels on request",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    async def require_api_key(request: Request) -> None:
        expected = settings.server.api_key
        if not expected:
            return
        provided = request.headers.get("authorization") or ""
        if not secrets.compare_digest(provided.encode(), expected.encode()):
            raise APIError(401, "Unauthorized")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.post("/export", status_code=202, dependencies=[Depends(require_api_key)])
    async def export(
        body: ExportRequest,
        request: Request,
        background_tasks: BackgroundTasks,
    ) -> dict[str, str]:
        if body.channel_id in (None, ""):
            raise APIError(400, "Missing channelId in request body")

        guild_value = body.guild_id or settings.discord.guild_id
        if not guild_value:
            raise APIError(400, "Missing guildId in request or environment")

        channel_id = _parse_snowflake(body.channel_id, "channelId")
        guild_id = _parse_snowflake(guild_value, "guildId")

        background_tasks.add_task(
            run_export_job, request.app.state.pipeline, channel_id, guild_id, settings
        )
        return {
            "message": "Export started",
            "channelId": str(channel_id),
            "guildId": str(guild_id),
        }

    return app
