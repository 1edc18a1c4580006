# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

"""
SQL used to move a MariaDB server between the primary and replica roles.

All functions take a session object with a run_sql(sql, args) method
returning a list of dict rows (see sqlutils.SessionWrap).
"""

from typing import Optional

from .failover import ReplicaStatus


class ChangeMasterOptions:
    def __init__(self, host: str, port: int, user: str, password: str,
                 gtid_mode: str = "current_pos", connect_retry: int = 10) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.gtid_mode = gtid_mode
        self.connect_retry = connect_retry


def change_master_sql(opts: ChangeMasterOptions) -> tuple:
    """
    Build the CHANGE MASTER statement and its arguments. MASTER_USE_GTID
    takes a keyword, so it is validated instead of bound.
    """
    if opts.gtid_mode not in ("current_pos", "slave_pos"):
        raise ValueError(f"Invalid MASTER_USE_GTID value {opts.gtid_mode}")

    sql = ("CHANGE MASTER TO MASTER_HOST=%s, MASTER_PORT=%s, MASTER_USER=%s, "
           f"MASTER_PASSWORD=%s, MASTER_USE_GTID={opts.gtid_mode}, "
           "MASTER_CONNECT_RETRY=%s")
    return sql, (opts.host, int(opts.port), opts.user, opts.password,
                 int(opts.connect_retry))


def lock_tables(session) -> None:
    session.run_sql("FLUSH TABLES WITH READ LOCK")


def unlock_tables(session) -> None:
    session.run_sql("UNLOCK TABLES")


def set_read_only(session, read_only: bool) -> None:
    session.run_sql(f"SET GLOBAL read_only={1 if read_only else 0}")


def gtid_binlog_pos(session) -> str:
    rows = session.run_sql("SELECT @@global.gtid_binlog_pos AS gtid")
    return rows[0]["gtid"] if rows else ""


def wait_for_gtid(session, gtid: str, timeout: float) -> bool:
    rows = session.run_sql("SELECT MASTER_GTID_WAIT(%s, %s) AS result",
                           (gtid, int(timeout)))
    # 0 means the replica caught up, -1 means the timeout elapsed
    return bool(rows) and int(rows[0]["result"]) == 0


def configure_semi_sync_primary(session, wait_point: Optional[str]) -> None:
    if not wait_point:
        return
    session.run_sql("SET GLOBAL rpl_semi_sync_master_enabled=ON")
    session.run_sql("SET GLOBAL rpl_semi_sync_slave_enabled=OFF")
    session.run_sql(f"SET GLOBAL rpl_semi_sync_master_wait_point={wait_point}")


def configure_semi_sync_replica(session, wait_point: Optional[str]) -> None:
    if not wait_point:
        return
    session.run_sql("SET GLOBAL rpl_semi_sync_master_enabled=OFF")
    session.run_sql("SET GLOBAL rpl_semi_sync_slave_enabled=ON")


def configure_primary(session, wait_point: Optional[str] = None) -> None:
    session.run_sql("STOP ALL SLAVES")
    session.run_sql("RESET SLAVE ALL")
    session.run_sql("SET GLOBAL gtid_slave_pos=''")
    configure_semi_sync_primary(session, wait_point)
    set_read_only(session, False)


def configure_replica(session, opts: ChangeMasterOptions,
                      gtid: Optional[str] = None,
                      wait_point: Optional[str] = None) -> None:
    session.run_sql("RESET MASTER")
    session.run_sql("STOP ALL SLAVES")
    if gtid:
        session.run_sql("SET GLOBAL gtid_slave_pos=%s", (gtid,))
    configure_semi_sync_replica(session, wait_point)
    set_read_only(session, True)
    sql, args = change_master_sql(opts)
    session.run_sql(sql, args)
    session.run_sql("START SLAVE")


def _yes(value) -> bool:
    return str(value or "").lower() == "yes"


def query_replica_status(session, name: str = "", index: int = -1) -> ReplicaStatus:
    status = ReplicaStatus()
    status.name = name
    status.index = index

    rows = session.run_sql("SHOW ALL SLAVES STATUS")
    if rows:
        row = rows[0]
        status.io_running = _yes(row.get("Slave_IO_Running"))
        status.sql_running = _yes(row.get("Slave_SQL_Running"))
        status.gtid_io_pos = row.get("Gtid_IO_Pos") or None

    row = session.run_sql(
        "SELECT @@global.gtid_domain_id AS domain_id, @@global.gtid_current_pos AS current_pos")[0]
    status.gtid_domain_id = int(row["domain_id"])
    status.gtid_current_pos = row["current_pos"] or None
    return status
