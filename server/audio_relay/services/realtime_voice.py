"""Realtime voice session management."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Literal, Optional, Protocol, Union

from agents.realtime import RealtimeAgent, RealtimeRunner, RealtimeSession

from ..errors import UpstreamConnectError
from ..models.schemas import SessionConfig

logger = logging.getLogger(__name__)

ConnectionStatus = Literal["connecting", "connected", "disconnected"]


@dataclass(frozen=True)
class UpstreamAudio:
    """One chunk of synthesized PCM16 audio produced by the backend."""

    data: bytes


@dataclass(frozen=True)
class ConnectionChange:
    """Liveness transition of the upstream session."""

    status: ConnectionStatus


UpstreamEvent = Union[UpstreamAudio, ConnectionChange]


class UpstreamState(Enum):
    """Lifecycle of one upstream session."""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class UpstreamSession(Protocol):
    """What the connection handler needs from an upstream voice session."""

    async def connect(self, api_key: str, config: SessionConfig) -> None: ...

    def send_audio(self, frame: bytes) -> None: ...

    def events(self) -> AsyncIterator[UpstreamEvent]: ...

    async def close(self) -> None: ...


class RealtimeVoiceSession:
    """Handles lifecycle of one OpenAI Realtime voice session.

    Outbound frames are queued by :meth:`send_audio` and written by a
    dedicated task so callers never wait on the backend. Inbound audio and
    connection transitions are published on a single queue consumed through
    :meth:`events`. Any failure after ``connect`` shows up as a
    ``disconnected`` event rather than an exception.
    """

    def __init__(self, connection_id: str) -> None:
        self.connection_id = connection_id
        self.state = UpstreamState.IDLE
        self._session: Optional[RealtimeSession] = None
        self._events: asyncio.Queue[UpstreamEvent] = asyncio.Queue()
        self._outbound: asyncio.Queue[bytes] = asyncio.Queue()
        self._tasks: list[asyncio.Task[None]] = []
        self._closed = False

    async def connect(self, api_key: str, config: SessionConfig) -> None:
        """Open the realtime session; must complete before any audio is sent."""

        if self.state is not UpstreamState.IDLE:
            raise UpstreamConnectError(f"session is {self.state.value}, cannot connect")

        self._set_state(UpstreamState.CONNECTING)
        self._events.put_nowait(ConnectionChange("connecting"))

        agent = RealtimeAgent(name=config.agent_name, instructions=config.instructions)
        runner = RealtimeRunner(agent, config={"model_settings": config.to_model_settings()})

        logger.info(f"[Connection {self.connection_id}] Connecting to OpenAI...")
        try:
            self._session = await runner.run(model_config={"api_key": api_key})
            await self._session.__aenter__()
        except Exception as e:
            self._mark_disconnected()
            raise UpstreamConnectError(f"Error connecting to OpenAI: {e}") from e

        if self._closed:
            # close() ran while the handshake was in flight and could not exit this session
            session, self._session = self._session, None
            if session is not None:
                try:
                    await session.__aexit__(None, None, None)
                except Exception as e:
                    logger.warning(f"[Connection {self.connection_id}] Error closing OpenAI session: {e}")
            raise UpstreamConnectError("session closed while connecting")

        self._set_state(UpstreamState.CONNECTED)
        self._events.put_nowait(ConnectionChange("connected"))
        logger.info(f"[Connection {self.connection_id}] Connected to OpenAI")

        self._tasks.append(asyncio.create_task(self._read_events(self._session)))
        self._tasks.append(asyncio.create_task(self._write_audio(self._session)))

    def send_audio(self, frame: bytes) -> None:
        """Queue one PCM frame for the backend. Frames are dropped unless connected."""

        if self.state is not UpstreamState.CONNECTED:
            logger.debug(
                f"[Connection {self.connection_id}] Dropping {len(frame)} byte frame, "
                f"upstream is {self.state.value}"
            )
            return
        self._outbound.put_nowait(frame)

    async def events(self) -> AsyncIterator[UpstreamEvent]:
        """Yield inbound audio and connection changes until ``disconnected``."""

        while True:
            event = await self._events.get()
            yield event
            if isinstance(event, ConnectionChange) and event.status == "disconnected":
                return

    async def close(self) -> None:
        """Terminate the realtime session. Safe to call any number of times."""

        if self._closed:
            return
        self._closed = True

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        session, self._session = self._session, None
        if session is not None:
            try:
                await session.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"[Connection {self.connection_id}] Error closing OpenAI session: {e}")

        self._mark_disconnected()

    async def _read_events(self, session: RealtimeSession) -> None:
        try:
            async for event in session:
                if event.type == "audio":
                    self._events.put_nowait(UpstreamAudio(event.audio.data))
                elif event.type == "error":
                    logger.warning(f"[Connection {self.connection_id}] OpenAI error event: {event.error}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[Connection {self.connection_id}] OpenAI session failed: {e}")
        finally:
            self._mark_disconnected()

    async def _write_audio(self, session: RealtimeSession) -> None:
        while True:
            frame = await self._outbound.get()
            try:
                await session.send_audio(frame)
            except Exception as e:
                logger.warning(f"[Connection {self.connection_id}] Failed to send audio upstream: {e}")
                self._mark_disconnected()
                return

    def _mark_disconnected(self) -> None:
        if self.state is UpstreamState.CLOSED:
            return
        self._set_state(UpstreamState.CLOSED)
        self._events.put_nowait(ConnectionChange("disconnected"))

    def _set_state(self, state: UpstreamState) -> None:
        old_state = self.state
        self.state = state
        logger.info(f"[Connection {self.connection_id}] Upstream state: {old_state.value} -> {state.value}")
