# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import datetime

import pytest

from mariadboperator.controller import utils


@pytest.mark.parametrize("s,seconds", [
    ("0", 0),
    ("30s", 30),
    ("5m", 300),
    ("1h30m", 5400),
    ("1.5h", 5400),
    ("250ms", 0.25),
    (" 10s ", 10),
])
def test_parse_duration(s: str, seconds: float) -> None:
    assert utils.parse_duration(s) == seconds


@pytest.mark.parametrize("s", ["", "10", "s", "5x", "5m garbage", "-5s"])
def test_parse_duration_invalid(s: str) -> None:
    with pytest.raises(ValueError):
        utils.parse_duration(s)


def test_format_duration() -> None:
    assert utils.format_duration(0) == "0s"
    assert utils.format_duration(30) == "30s"
    assert utils.format_duration(600) == "10m"
    assert utils.format_duration(3725) == "1h2m5s"


def test_isotime() -> None:
    t = datetime.datetime(2024, 5, 1, 12, 0, 5, 123456, tzinfo=datetime.timezone.utc)
    assert utils.isotime(t) == "2024-05-01T12:00:05Z"

    tz = datetime.timezone(datetime.timedelta(hours=2))
    assert utils.isotime(datetime.datetime(2024, 5, 1, 14, 0, 5, tzinfo=tz)) == "2024-05-01T12:00:05Z"

    assert utils.parse_isotime("2024-05-01T12:00:05Z") == t.replace(microsecond=0)


def test_pod_name() -> None:
    assert utils.pod_name("my-db", 2) == "my-db-2"
    assert utils.pod_index("my-db-12") == 12


def test_replace_fields() -> None:
    base = {"a": {"x": 1, "y": 2}, "b": 1, "c": 3}
    patch = {"a": {"x": 5}, "b": None}
    assert utils.replace_fields(base, patch) == {"a": {"x": 5}, "c": 3}

    # values are copied, later changes to the patch don't leak in
    patch["a"]["x"] = 7
    assert base["a"] == {"x": 5}

    with pytest.raises(ValueError):
        utils.replace_fields(base, [])
