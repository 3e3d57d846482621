from __future__ import annotations

from datetime import date

from core.models import Counters, Rule, normalize_last_reset, normalize_match_type


def test_full_timestamp_last_reset_is_truncated_to_date() -> None:
    today = date(2024, 5, 1)

    assert normalize_last_reset("2024-01-02T03:04:05.678Z", today) == "2024-01-02"
    assert normalize_last_reset("2024-01-02T23:59:59+00:00", today) == "2024-01-02"
    assert normalize_last_reset("2024-01-02", today) == "2024-01-02"


def test_missing_last_reset_defaults_to_today() -> None:
    assert normalize_last_reset(None, date(2024, 5, 1)) == "2024-05-01"
    assert normalize_last_reset("", date(2024, 5, 1)) == "2024-05-01"


def test_counters_from_dict_clamps_bad_counts() -> None:
    today = date(2024, 5, 1)

    assert Counters.from_dict({"deletedCount": -3}, today).deleted_count == 0
    assert Counters.from_dict({"deletedCount": "x"}, today).deleted_count == 0
    assert Counters.from_dict({"deletedCount": 7, "lastReset": "2024-04-01"}, today).to_dict() == {
        "deletedCount": 7,
        "lastReset": "2024-04-01",
    }


def test_rule_from_dict_treats_only_explicit_false_as_disabled() -> None:
    assert Rule.from_dict({"pattern": "x"}).enabled is True
    assert Rule.from_dict({"pattern": "x", "enabled": None}).enabled is True
    assert Rule.from_dict({"pattern": "x", "enabled": False}).enabled is False


def test_match_type_defaults_to_keyword() -> None:
    assert normalize_match_type("domain") == "domain"
    assert normalize_match_type("keyword") == "keyword"
    assert normalize_match_type("regex") == "keyword"
    assert normalize_match_type(None) == "keyword"
