# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import logging

from mariadboperator.controller.replication.failover import (find_candidates,
                                                             furthest_advanced_replica,
                                                             has_relay_log_events)

from fakes import replica

logger = logging.getLogger("test")


def test_most_advanced_replica_wins() -> None:
    replicas = [replica("mdb-1", 1, "0-10-100"), replica("mdb-2", 2, "0-10-120")]
    assert furthest_advanced_replica(replicas, logger).index == 2


def test_tie_goes_to_lowest_ordinal() -> None:
    replicas = [replica("mdb-3", 3, "0-10-120"), replica("mdb-1", 1, "0-10-120"),
                replica("mdb-2", 2, "0-10-110")]
    assert furthest_advanced_replica(replicas, logger).index == 1


def test_ineligible_replicas_are_skipped() -> None:
    replicas = [
        replica("mdb-1", 1, "0-10-500", ready=False),
        replica("mdb-2", 2, "0-10-400", io_running=False),
        replica("mdb-3", 3, "0-10-300", sql_running=False),
        # received more than it applied
        replica("mdb-4", 4, "0-10-200", io_pos="0-10-250"),
        # nothing in the replication domain
        replica("mdb-5", 5, "1-10-900"),
        replica("mdb-6", 6, "0-10-100"),
    ]
    candidates = find_candidates(replicas, logger)
    assert [c.name for c in candidates] == ["mdb-6"]


def test_errored_replica_is_skipped() -> None:
    broken = replica("mdb-1", 1, "0-10-999")
    broken.error = "connection refused"
    assert furthest_advanced_replica([broken], logger) is None


def test_no_candidates() -> None:
    assert furthest_advanced_replica([], logger) is None


def test_relay_log_events() -> None:
    assert not has_relay_log_events(replica("mdb-1", 1, "0-10-5"))
    assert has_relay_log_events(replica("mdb-1", 1, "0-10-5", io_pos="0-10-6"))
    assert has_relay_log_events(replica("mdb-1", 1, "", io_pos="0-10-6"))
    assert not has_relay_log_events(replica("mdb-1", 1, "0-10-5", io_pos=""))
