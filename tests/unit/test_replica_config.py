# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import Dict, List, Optional

import pytest

from mariadboperator.controller.replication import replica_config
from mariadboperator.controller.replication.replica_config import ChangeMasterOptions


class FakeSession:
    """
    Records statements, answers queries with canned rows picked by the
    statement prefix.
    """

    def __init__(self, results: Optional[Dict[str, List[dict]]] = None) -> None:
        self.statements: List[tuple] = []
        self.results = results or {}

    def run_sql(self, sql: str, args=None) -> List[dict]:
        self.statements.append((sql, args))
        for prefix, rows in self.results.items():
            if sql.startswith(prefix):
                return rows
        return []

    @property
    def sql(self) -> List[str]:
        return [s for s, _ in self.statements]


def test_change_master_sql() -> None:
    opts = ChangeMasterOptions("mdb-0.mdb-internal.default.svc.cluster.local", 3306,
                               "root", "s3cr3t", "slave_pos", 5)
    sql, args = replica_config.change_master_sql(opts)
    assert "MASTER_USE_GTID=slave_pos" in sql
    assert "s3cr3t" not in sql
    assert args == ("mdb-0.mdb-internal.default.svc.cluster.local", 3306, "root", "s3cr3t", 5)


def test_change_master_sql_rejects_bad_gtid_mode() -> None:
    opts = ChangeMasterOptions("mdb-0", 3306, "root", "pw", "current_pos; DROP TABLE x")
    with pytest.raises(ValueError):
        replica_config.change_master_sql(opts)


def test_configure_primary() -> None:
    session = FakeSession()
    replica_config.configure_primary(session, "AFTER_SYNC")
    assert session.sql == [
        "STOP ALL SLAVES",
        "RESET SLAVE ALL",
        "SET GLOBAL gtid_slave_pos=''",
        "SET GLOBAL rpl_semi_sync_master_enabled=ON",
        "SET GLOBAL rpl_semi_sync_slave_enabled=OFF",
        "SET GLOBAL rpl_semi_sync_master_wait_point=AFTER_SYNC",
        "SET GLOBAL read_only=0",
    ]


def test_configure_replica() -> None:
    session = FakeSession()
    opts = ChangeMasterOptions("mdb-1", 3306, "root", "pw")
    replica_config.configure_replica(session, opts, gtid="0-1-42")
    assert session.sql[:4] == [
        "RESET MASTER",
        "STOP ALL SLAVES",
        "SET GLOBAL gtid_slave_pos=%s",
        "SET GLOBAL read_only=1",
    ]
    assert session.statements[2][1] == ("0-1-42",)
    assert session.sql[4].startswith("CHANGE MASTER TO")
    assert session.sql[-1] == "START SLAVE"


def test_wait_for_gtid() -> None:
    session = FakeSession({"SELECT MASTER_GTID_WAIT": [{"result": 0}]})
    assert replica_config.wait_for_gtid(session, "0-1-9", 10)
    assert session.statements[0][1] == ("0-1-9", 10)

    session = FakeSession({"SELECT MASTER_GTID_WAIT": [{"result": -1}]})
    assert not replica_config.wait_for_gtid(session, "0-1-9", 10)


def test_query_replica_status() -> None:
    session = FakeSession({
        "SHOW ALL SLAVES STATUS": [{"Slave_IO_Running": "Yes", "Slave_SQL_Running": "No",
                                    "Gtid_IO_Pos": "0-1-50"}],
        "SELECT @@global.gtid_domain_id": [{"domain_id": 0, "current_pos": "0-1-48"}],
    })
    status = replica_config.query_replica_status(session, "mdb-1", 1)
    assert (status.name, status.index) == ("mdb-1", 1)
    assert status.io_running and not status.sql_running
    assert status.gtid_io_pos == "0-1-50"
    assert status.gtid_domain_id == 0
    assert status.gtid_current_pos == "0-1-48"


def test_query_replica_status_not_replicating() -> None:
    session = FakeSession({
        "SELECT @@global.gtid_domain_id": [{"domain_id": 3, "current_pos": ""}],
    })
    status = replica_config.query_replica_status(session)
    assert not status.io_running
    assert status.gtid_io_pos is None
    assert status.gtid_current_pos is None
    assert status.gtid_domain_id == 3
