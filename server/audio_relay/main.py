"""FastAPI application entrypoint for the audio relay."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .config import Settings, get_settings
from .routers import realtime
from .services.instructions import InstructionResolver
from .services.realtime_voice import RealtimeVoiceSession
from .services.relay import UpstreamFactory, build_session_config

logging.basicConfig(level=get_settings().log_level.upper())
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    upstream_factory: Optional[UpstreamFactory] = None,
    instruction_resolver: Optional[InstructionResolver] = None,
) -> FastAPI:
    """Instantiate and configure the FastAPI application.

    ``upstream_factory`` builds one upstream session per browser connection;
    it defaults to :class:`RealtimeVoiceSession`. When no resolver is passed
    and ``INSTRUCTIONS_BASE_URL`` is set, one is built from the settings.
    """

    settings = settings or get_settings()
    if instruction_resolver is None and settings.instructions_base_url:
        instruction_resolver = InstructionResolver(
            settings.instructions_base_url,
            timeout=settings.instructions_fetch_timeout,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings.require_api_key()
        build_session_config(settings, settings.default_instructions)
        mode = "instructed" if settings.requires_meeting_id else "default instructions"
        logger.info(f"Websocket server listening on port {settings.relay_port} ({mode})")
        yield
        logger.info("Relay shutting down")

    application = FastAPI(
        title="Audio Relay",
        description="Bridges browser PCM audio to OpenAI Realtime voice sessions.",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.upstream_factory = upstream_factory or RealtimeVoiceSession
    application.state.instruction_resolver = instruction_resolver

    @application.get("/")
    async def root() -> dict[str, str]:
        """Lightweight health endpoint for service discovery."""
        return {"service": "audio-relay", "status": "ok"}

    application.include_router(realtime.router)
    return application


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    settings.require_api_key()
    uvicorn.run(app, host=settings.relay_host, port=settings.relay_port)


if __name__ == "__main__":
    run()
