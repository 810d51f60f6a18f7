from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ..errors import ConfigResolutionError
from ..models.schemas import MeetingInstructions

logger = logging.getLogger(__name__)


class InstructionResolver:
    """Fetches per-meeting persona instructions from the instruction store.

    One GET per connection attempt, no retries: a failed lookup rejects the
    connection and the browser is expected to reconnect.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        raw_base = (base_url or "").strip()
        if not raw_base.startswith(("http://", "https://")):
            raise RuntimeError("INSTRUCTIONS_BASE_URL must include http/https scheme")
        self._base_url = raw_base.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def instructions_url(self, meeting_id: str) -> str:
        return f"{self._base_url}/api/meetings/{quote(meeting_id, safe='')}/instructions"

    async def resolve(self, meeting_id: str) -> MeetingInstructions:
        url = self.instructions_url(meeting_id)
        logger.info("Fetching instructions for meeting %s from %s", meeting_id, url)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise ConfigResolutionError(
                f"Instruction store returned {e.response.status_code} for meeting {meeting_id}"
            ) from e
        except httpx.HTTPError as e:
            raise ConfigResolutionError(f"Error fetching instructions: {e}") from e
        except ValueError as e:
            raise ConfigResolutionError(f"Instruction store returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ConfigResolutionError("Instruction store payload is not an object")
        try:
            return MeetingInstructions.model_validate(data)
        except ValidationError as e:
            raise ConfigResolutionError(f"No instructions provided for meeting {meeting_id}") from e
