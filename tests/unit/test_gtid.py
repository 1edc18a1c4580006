# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import pytest

from mariadboperator.controller.replication.gtid import Gtid, GtidError, parse_gtid_with_domain


def test_parse() -> None:
    gtid = Gtid.parse("0-10-123")
    assert (gtid.domain_id, gtid.server_id, gtid.sequence_id) == (0, 10, 123)
    assert str(gtid) == "0-10-123"


@pytest.mark.parametrize("raw", ["", "0-10", "0-10-x", "0-10-1-2", "0--1-5"])
def test_parse_invalid(raw: str) -> None:
    with pytest.raises(GtidError):
        Gtid.parse(raw)


def test_compare_same_domain() -> None:
    assert Gtid.parse("0-10-5") < Gtid.parse("0-11-6")
    assert Gtid.parse("0-10-7") > Gtid.parse("0-11-6")
    assert Gtid.parse("0-10-5").diff(Gtid.parse("0-10-9")) == 4


def test_compare_different_domains() -> None:
    with pytest.raises(GtidError):
        Gtid.parse("0-10-5") < Gtid.parse("1-10-6")


def test_parse_with_domain() -> None:
    assert parse_gtid_with_domain("0-10-5,1-20-7", 1) == Gtid(1, 20, 7)
    assert parse_gtid_with_domain("0-10-5", 0) == Gtid(0, 10, 5)
    assert parse_gtid_with_domain("0-10-5", 1) is None
    assert parse_gtid_with_domain("", 0) is None
    # garbage entries in a list are ignored
    assert parse_gtid_with_domain("bogus, 2-1-9", 2) == Gtid(2, 1, 9)
