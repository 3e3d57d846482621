from __future__ import annotations

import asyncio
import io
import json
from typing import Any, Optional

from adapters.message_channel import MessageChannel


class FakePipeline:
    def __init__(self) -> None:
        self.visited: list[Optional[str]] = []
        self.committed: list[tuple[Optional[str], bool]] = []

    async def on_visited(self, url: Optional[str]) -> bool:
        self.visited.append(url)
        return False

    def on_navigation_committed(self, url: Optional[str], is_top_frame: bool) -> None:
        self.committed.append((url, is_top_frame))


class FakeCommands:
    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def dispatch(self, message: dict[str, Any]) -> dict[str, Any]:
        self.messages.append(message)
        return {"ok": True}


def _channel(lines: str = "") -> tuple[MessageChannel, FakePipeline, FakeCommands, io.StringIO]:
    pipeline = FakePipeline()
    commands = FakeCommands()
    writer = io.StringIO()
    channel = MessageChannel(pipeline, commands, io.StringIO(lines), writer)
    return channel, pipeline, commands, writer


def test_events_go_to_pipeline_without_reply() -> None:
    channel, pipeline, commands, _ = _channel()

    async def _run() -> list[Optional[dict[str, Any]]]:
        return [
            await channel.handle_line(json.dumps({"type": "visited", "url": "https://a.com/"})),
            await channel.handle_line(
                json.dumps({"type": "navigationCommitted", "url": "https://b.com/", "frameId": 0})
            ),
            await channel.handle_line(
                json.dumps({"type": "navigationCommitted", "url": "https://c.com/", "frameId": 3})
            ),
        ]

    assert asyncio.run(_run()) == [None, None, None]
    assert pipeline.visited == ["https://a.com/"]
    assert pipeline.committed == [("https://b.com/", True), ("https://c.com/", False)]
    assert commands.messages == []


def test_commands_are_answered_with_request_id() -> None:
    channel, _, commands, _ = _channel()

    reply = asyncio.run(channel.handle_line(json.dumps({"id": 7, "type": "clearLogs"})))

    assert reply == {"id": 7, "ok": True}
    assert commands.messages == [{"id": 7, "type": "clearLogs"}]


def test_malformed_lines() -> None:
    channel, _, _, _ = _channel()

    assert asyncio.run(channel.handle_line("   \n")) is None
    assert asyncio.run(channel.handle_line("{nope")) == {"ok": False, "error": "invalid json"}
    assert asyncio.run(channel.handle_line("[1, 2]")) == {"ok": False, "error": "invalid json"}


def test_run_reads_until_eof_and_sets_stop() -> None:
    lines = "\n".join(
        [
            json.dumps({"type": "visited", "url": "https://a.com/"}),
            json.dumps({"id": 1, "type": "getState"}),
            "",
        ]
    )
    channel, pipeline, _, writer = _channel(lines)

    async def _run() -> bool:
        stop = asyncio.Event()
        await channel.run(stop)
        return stop.is_set()

    assert asyncio.run(_run())
    assert pipeline.visited == ["https://a.com/"]
    assert [json.loads(line) for line in writer.getvalue().splitlines()] == [{"id": 1, "ok": True}]


def test_non_string_url_event_gets_no_reply() -> None:
    channel, pipeline, commands, _ = _channel()

    reply = asyncio.run(channel.handle_line(json.dumps({"type": "visited", "url": 123})))

    assert reply is None
    assert commands.messages == []
