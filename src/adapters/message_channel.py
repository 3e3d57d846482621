"""JSON-lines message channel between the browser host and the core.

Each input line is one JSON object. Event messages are routed to the
deletion pipeline and produce no reply; every other message is a command
request and gets exactly one JSON line back, echoing the request ``id``.

    {"type": "visited", "url": "https://example.com/"}
    {"type": "navigationCommitted", "url": "https://example.com/", "frameId": 0}
    {"id": 7, "type": "addRule", "pattern": "example.com", "matchType": "domain"}
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional, TextIO

from core.commands import CommandService
from core.processor import DeletionPipeline

LOGGER = logging.getLogger(__name__)

EVENT_VISITED = "visited"
EVENT_COMMITTED = "navigationCommitted"


class MessageChannel:
    """Route host messages to the pipeline or the command service."""

    def __init__(
        self,
        pipeline: DeletionPipeline,
        commands: CommandService,
        reader: TextIO,
        writer: TextIO,
    ) -> None:
        self._pipeline = pipeline
        self._commands = commands
        self._reader = reader
        self._writer = writer

    async def handle_line(self, line: str) -> Optional[dict[str, Any]]:
        """Process one input line and return the reply, if any."""

        if not line.strip():
            return None
        try:
            message = json.loads(line)
        except ValueError:
            LOGGER.warning("Dropping malformed message: %.200s", line)
            return {"ok": False, "error": "invalid json"}
        if not isinstance(message, dict):
            return {"ok": False, "error": "invalid json"}

        kind = message.get("type")
        if kind == EVENT_VISITED:
            await self._pipeline.on_visited(message.get("url"))
            return None
        if kind == EVENT_COMMITTED:
            # Only the top frame (frameId 0) counts as a page navigation.
            self._pipeline.on_navigation_committed(message.get("url"), message.get("frameId") == 0)
            return None

        reply = await self._commands.dispatch(message)
        if "id" in message:
            reply = {"id": message["id"], **reply}
        return reply

    def _send(self, reply: dict[str, Any]) -> None:
        self._writer.write(json.dumps(reply) + "\n")
        self._writer.flush()

    async def run(self, stop: asyncio.Event) -> None:
        """Read until EOF, then signal the other loops to stop."""

        while not stop.is_set():
            line = await asyncio.to_thread(self._reader.readline)
            if not line:
                LOGGER.info("Message channel closed")
                break
            try:
                reply = await self.handle_line(line)
            except Exception:
                LOGGER.exception("Error while handling message")
                reply = {"ok": False, "error": "internal error"}
            if reply is not None:
                self._send(reply)
        stop.set()
