from __future__ import annotations

import asyncio
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any

import pytest

from adapters.sqlite_storage import SQLiteStateStore
from core.clock import FixedClock
from core.commands import CommandService
from core.config import PipelineConfig
from core.processor import SOURCE_VISITED, DeletionPipeline
from core.rules_engine import RuleSet
from core.state import StateRepository

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _store(tmp_path) -> SQLiteStateStore:
    store = SQLiteStateStore(str(tmp_path / "state.db"))
    store.init_db()
    return store


def test_get_returns_defaults_for_missing_keys(tmp_path) -> None:
    store = _store(tmp_path)

    data = store.get({"rules": [], "logs": []})

    assert data == {"rules": [], "logs": []}


def test_set_and_get_roundtrip_json_values(tmp_path) -> None:
    store = _store(tmp_path)
    rules = [{"pattern": "a.com", "type": "domain", "enabled": True}]

    store.set({"rules": rules, "counters": {"deletedCount": 2, "lastReset": "2024-01-01"}})

    data = store.get({"rules": [], "counters": {}, "logs": []})
    assert data["rules"] == rules
    assert data["counters"] == {"deletedCount": 2, "lastReset": "2024-01-01"}
    assert data["logs"] == []


def test_revision_bumps_on_each_write(tmp_path) -> None:
    store = _store(tmp_path)

    assert store.revision("rules") == 0
    store.set({"rules": []})
    assert store.revision("rules") == 1
    store.set({"rules": [{"pattern": "x"}]})
    assert store.revision("rules") == 2
    store.set({"logs": []})
    assert store.revision("rules") == 2


def test_undecodable_value_falls_back_to_default(tmp_path) -> None:
    store = _store(tmp_path)
    conn = sqlite3.connect(str(tmp_path / "state.db"))
    with conn:
        conn.execute("INSERT INTO kv (key, value) VALUES ('logs', 'not json')")
    conn.close()

    assert store.get({"logs": []}) == {"logs": []}


def test_update_blocks_other_writers_until_commit(tmp_path) -> None:
    service_store = _store(tmp_path)
    cli_store = SQLiteStateStore(str(tmp_path / "state.db"), timeout=5)
    service_store.set(
        {
            "counters": {"deletedCount": 5, "lastReset": "2024-01-01"},
            "logs": [{"url": "https://old.com/"}],
        }
    )
    defaults = {"counters": {}, "logs": []}
    cli_done = threading.Event()

    def _cli_reset() -> None:
        cli_store.update(
            defaults,
            lambda current: {"counters": {"deletedCount": 0, "lastReset": "2024-02-01"}, "logs": []},
        )
        cli_done.set()

    cli = threading.Thread(target=_cli_reset)

    def _increment(current: dict[str, Any]) -> dict[str, Any]:
        cli.start()
        # The other process must wait for this transaction to commit.
        assert not cli_done.wait(0.2)
        counters = dict(current["counters"])
        counters["deletedCount"] += 1
        return {"counters": counters, "logs": current["logs"] + [{"url": "https://foo.com/"}]}

    service_store.update(defaults, _increment)
    cli.join(timeout=5)

    assert cli_done.is_set()
    assert service_store.get(defaults) == {
        "counters": {"deletedCount": 0, "lastReset": "2024-02-01"},
        "logs": [],
    }


def test_deletion_after_cli_reset_from_another_process(tmp_path) -> None:
    path = str(tmp_path / "state.db")
    _store(tmp_path).set(
        {
            "rules": [{"pattern": "foo", "type": "keyword", "enabled": True}],
            "counters": {"deletedCount": 5, "lastReset": "2023-12-01"},
            "logs": [{"url": "https://old.com/", "source": SOURCE_VISITED, "ts": 1}],
        }
    )
    clock = FixedClock(NOW)
    cli = CommandService(StateRepository(SQLiteStateStore(path, timeout=5), clock), RuleSet(), clock)

    class History:
        async def delete_url(self, url: str) -> None:
            # The CLI resets while the service is mid-deletion.
            await cli.reset_counter()
            await cli.clear_logs()

    service_repository = StateRepository(SQLiteStateStore(path, timeout=5), clock)
    rule_set = RuleSet(asyncio.run(service_repository.read_rules()))
    pipeline = DeletionPipeline(rule_set, service_repository, History(), clock, PipelineConfig(commit_delay_seconds=0))

    assert asyncio.run(pipeline.on_visited("https://foo.com/"))

    state = asyncio.run(service_repository.read())
    assert state.counters.to_dict() == {"deletedCount": 1, "lastReset": "2024-01-01"}
    assert [entry["url"] for entry in state.logs] == ["https://foo.com/"]


def test_failed_mutation_rolls_back(tmp_path) -> None:
    store = _store(tmp_path)
    store.set({"logs": [{"url": "https://a.com/"}]})

    def _explode(current: dict[str, Any]) -> dict[str, Any]:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.update({"logs": []}, _explode)

    assert store.get({"logs": []}) == {"logs": [{"url": "https://a.com/"}]}
    assert store.revision("logs") == 1
