"""Per-connection bridge between a browser WebSocket and one upstream session."""
from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from enum import Enum
from typing import Callable, Optional

from fastapi import WebSocket, status
from starlette.websockets import WebSocketState
from typing_extensions import assert_never

from ..config import Settings
from ..errors import (
    ClientTransportError,
    ConfigResolutionError,
    RelayError,
    UpstreamConnectError,
    UpstreamDisconnectError,
)
from ..models.schemas import RoutingParameters, SessionConfig, TurnDetectionConfig
from .instructions import InstructionResolver
from .realtime_voice import ConnectionChange, UpstreamAudio, UpstreamSession

logger = logging.getLogger(__name__)

UpstreamFactory = Callable[[str], UpstreamSession]


class RelayState(Enum):
    """States of one browser connection."""
    ACCEPTED = "accepted"
    RESOLVING_CONFIG = "resolving_config"
    CONNECTING_UPSTREAM = "connecting_upstream"
    RELAYING = "relaying"
    CLOSING = "closing"
    CLOSED = "closed"


def build_session_config(settings: Settings, instructions: str) -> SessionConfig:
    """Combine resolved instructions with the configured turn detection."""

    turn_detection = None
    if settings.turn_detection.strip().lower() != "none":
        turn_detection = TurnDetectionConfig(
            type=settings.turn_detection.strip().lower(),
            interrupt_response=settings.turn_detection_interrupt,
            threshold=settings.turn_detection_threshold,
            prefix_padding_ms=settings.turn_detection_prefix_padding_ms,
            silence_duration_ms=settings.turn_detection_silence_ms,
        )
    return SessionConfig(
        agent_name=settings.agent_name,
        instructions=instructions,
        turn_detection=turn_detection,
    )


class ClientConnectionHandler:
    """Owns one browser connection and the upstream session bound to it.

    The handler is the only owner of its upstream session; nothing about a
    connection is kept in module-level state. :meth:`run` returns once both
    legs are closed, whichever side failed first.
    """

    def __init__(
        self,
        websocket: WebSocket,
        routing: RoutingParameters,
        *,
        settings: Settings,
        upstream_factory: UpstreamFactory,
        instruction_resolver: Optional[InstructionResolver] = None,
    ):
        self.websocket = websocket
        self.routing = routing
        self.connection_id = uuid.uuid4().hex[:8]
        self.state = RelayState.ACCEPTED
        self.upstream: Optional[UpstreamSession] = None
        self._settings = settings
        self._upstream_factory = upstream_factory
        self._instruction_resolver = instruction_resolver
        self._close_code = status.WS_1000_NORMAL_CLOSURE

    async def run(self) -> None:
        await self.websocket.accept()
        logger.info(f"[Connection {self.connection_id}] Browser connected (meeting_id={self.routing.meeting_id})")
        try:
            upstream = await self._prepare_upstream()
            if upstream is not None:
                await self._relay(upstream)
        finally:
            await self._teardown()

    async def _prepare_upstream(self) -> Optional[UpstreamSession]:
        """Resolve config and connect upstream while dropping early client frames.

        Returns None when setup failed or the browser left before it finished.
        """

        setup = asyncio.create_task(self._setup())
        discard = asyncio.create_task(self._discard_until_ready())
        done, _ = await asyncio.wait({setup, discard}, return_when=asyncio.FIRST_COMPLETED)

        if discard in done:
            logger.info(f"[Connection {self.connection_id}] Browser disconnected during {self.state.value}")
            setup.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await setup
            return None

        discard.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await discard

        try:
            return setup.result()
        except RelayError as e:
            logger.info(f"[Connection {self.connection_id}] {type(e).__name__}: {e}")
            self._close_code = status.WS_1011_INTERNAL_ERROR
            return None
        except Exception as e:
            logger.exception(f"[Connection {self.connection_id}] Unexpected setup failure: {e}")
            self._close_code = status.WS_1011_INTERNAL_ERROR
            return None

    async def _setup(self) -> UpstreamSession:
        self._set_state(RelayState.RESOLVING_CONFIG)
        config = build_session_config(self._settings, await self._resolve_instructions())

        self._set_state(RelayState.CONNECTING_UPSTREAM)
        upstream = self.upstream = self._upstream_factory(self.connection_id)
        try:
            await asyncio.wait_for(
                upstream.connect(self._settings.require_api_key(), config),
                timeout=self._settings.upstream_connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamConnectError(
                f"OpenAI session not established within {self._settings.upstream_connect_timeout}s"
            ) from e
        return upstream

    async def _resolve_instructions(self) -> str:
        if self._instruction_resolver is None:
            return self._settings.default_instructions
        if not self.routing.meeting_id:
            raise ConfigResolutionError("No meeting ID provided")
        resolved = await self._instruction_resolver.resolve(self.routing.meeting_id)
        logger.info(f"[Connection {self.connection_id}] Instructions: {resolved.instructions[:100]}")
        return resolved.instructions

    async def _discard_until_ready(self) -> None:
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
            logger.debug(f"[Connection {self.connection_id}] Dropping client message received during {self.state.value}")

    async def _relay(self, upstream: UpstreamSession) -> None:
        self._set_state(RelayState.RELAYING)
        client_task = asyncio.create_task(self._pump_client_audio(upstream))
        upstream_task = asyncio.create_task(self._pump_upstream_audio(upstream))

        done, pending = await asyncio.wait({client_task, upstream_task}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            e = task.exception()
            if isinstance(e, RelayError):
                logger.info(f"[Connection {self.connection_id}] {type(e).__name__}: {e}")
            elif e is not None:
                logger.error(f"[Connection {self.connection_id}] Relay failed: {e!r}")
                self._close_code = status.WS_1011_INTERNAL_ERROR

    async def _pump_client_audio(self, upstream: UpstreamSession) -> None:
        """Forward every binary browser message upstream, verbatim and in order."""

        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise ClientTransportError(f"Browser disconnected (code={message.get('code')})")
            frame = message.get("bytes")
            if frame:
                upstream.send_audio(frame)

    async def _pump_upstream_audio(self, upstream: UpstreamSession) -> None:
        """Forward every synthesized frame to the browser until upstream drops."""

        async for event in upstream.events():
            if isinstance(event, UpstreamAudio):
                await self.websocket.send_bytes(event.data)
            elif isinstance(event, ConnectionChange):
                if event.status == "disconnected":
                    raise UpstreamDisconnectError("OpenAI session closed")
            else:
                assert_never(event)
        raise UpstreamDisconnectError("OpenAI event stream ended")

    async def _teardown(self) -> None:
        if self.state in (RelayState.CLOSING, RelayState.CLOSED):
            return
        self._set_state(RelayState.CLOSING)

        upstream, self.upstream = self.upstream, None
        if upstream is not None:
            try:
                await upstream.close()
            except Exception as e:
                logger.exception(f"[Connection {self.connection_id}] Error closing upstream session: {e}")

        if (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        ):
            try:
                await self.websocket.close(code=self._close_code)
            except Exception as e:
                logger.debug(f"[Connection {self.connection_id}] Browser socket already gone: {e}")

        self._set_state(RelayState.CLOSED)

    def _set_state(self, state: RelayState) -> None:
        old_state = self.state
        self.state = state
        logger.info(f"[Connection {self.connection_id}] State: {old_state.value} -> {state.value}")
