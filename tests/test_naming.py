import random
from datetime import datetime, timedelta

import pytest

from rsyncinc.naming import (
    format_generation,
    group_by_core_name,
    make_timestamp,
    parse_generation,
    scan_generations,
    timestamp_month_day,
)


def test_format_and_parse():
    assert format_generation("host_etc", "2024-01-02T030405") == "host_etc.2024-01-02T030405"
    assert parse_generation("host_etc.2024-01-02T030405") == ("host_etc", "2024-01-02T030405")
    assert parse_generation("my.app.2024-01-02T030405") == ("my.app", "2024-01-02T030405")


@pytest.mark.parametrize(
    "identifier",
    [
        "host_etc",
        "host_etc.2024-01-02",
        "host_etc.2024-01-02T03:04:05",
        "host_etc.2024-01-02T030405.rsync_log",
        ".2024-01-02T030405",
    ],
)
def test_parse_rejects_non_generations(identifier):
    assert parse_generation(identifier) is None


def test_format_rejects_unpadded_timestamp():
    with pytest.raises(ValueError):
        format_generation("x", "2024-1-2T030405")


def test_lexical_order_is_chronological():
    rnd = random.Random(42)
    start = datetime(2000, 1, 1)
    for _ in range(200):
        a = start + timedelta(seconds=rnd.randrange(10 ** 9))
        b = start + timedelta(seconds=rnd.randrange(10 ** 9))
        name_a = format_generation("app", make_timestamp(a))
        name_b = format_generation("app", make_timestamp(b))
        assert (name_a < name_b) == (a < b)


def test_group_by_core_name_sorts_and_filters():
    groups = group_by_core_name(
        [
            "b.2024-01-03T000000",
            "a.2024-01-02T000000",
            "garbage",
            "a.2024-01-01T000000",
        ]
    )
    assert groups == {"a": ["2024-01-01T000000", "2024-01-02T000000"], "b": ["2024-01-03T000000"]}


def test_month_day():
    assert timestamp_month_day("2024-03-09T101010") == 9


def test_scan_generations_requires_tree_and_log(tmp_path):
    (tmp_path / "app").mkdir()
    (tmp_path / "app.2024-01-01T000000").mkdir()
    (tmp_path / "app.2024-01-01T000000.rsync_log").write_text("")
    (tmp_path / "app.2024-01-02T000000").mkdir()
    (tmp_path / "app.2024-01-03T000000.rsync_log").write_text("")
    (tmp_path / "db.2024-01-05T000000").mkdir()
    (tmp_path / "db.2024-01-05T000000.rsync_log").write_text("")

    assert scan_generations(str(tmp_path)) == {
        "app": ["2024-01-01T000000"],
        "db": ["2024-01-05T000000"],
    }
    assert scan_generations(str(tmp_path), "db") == {"db": ["2024-01-05T000000"]}
    assert scan_generations(str(tmp_path / "missing")) == {}
