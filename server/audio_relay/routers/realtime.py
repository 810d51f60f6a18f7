"""Realtime voice proxy endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, status
from pydantic import ValidationError

from ..errors import RoutingError
from ..models.schemas import RoutingParameters
from ..services.relay import ClientConnectionHandler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

# Close code for paths other than the relay route
INVALID_PATH_CLOSE_CODE = 4404


def parse_routing_parameters(websocket: WebSocket, *, require_meeting_id: bool) -> RoutingParameters:
    """Validate the upgrade request's query before any session work starts."""

    try:
        routing = RoutingParameters(meeting_id=websocket.query_params.get("meeting_id"))
    except ValidationError as e:
        raise RoutingError(f"Invalid routing parameters: {e}") from e
    if require_meeting_id and not routing.meeting_id:
        raise RoutingError("No meeting ID provided")
    return routing


@router.websocket("/")
async def realtime_voice_gateway(websocket: WebSocket) -> None:
    """Relay browser PCM audio to a dedicated OpenAI Realtime session and back.

    Malformed requests are closed before the handshake completes; everything
    else is handed to a fresh :class:`ClientConnectionHandler`.
    """

    state = websocket.app.state
    try:
        routing = parse_routing_parameters(websocket, require_meeting_id=state.settings.requires_meeting_id)
    except RoutingError as e:
        logger.info("%s, closing connection.", e)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    handler = ClientConnectionHandler(
        websocket,
        routing,
        settings=state.settings,
        upstream_factory=state.upstream_factory,
        instruction_resolver=state.instruction_resolver,
    )
    await handler.run()


@router.websocket("/{path:path}")
async def reject_unknown_path(websocket: WebSocket, path: str) -> None:
    logger.info('Invalid pathname: "/%s"', path)
    await websocket.close(code=INVALID_PATH_CLOSE_CODE)
