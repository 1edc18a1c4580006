# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import os
import time
from logging import Logger
from typing import Dict, Optional

import mysql.connector
import requests
from kubernetes.client.rest import ApiException

from .. import sqlutils
from ..errors import MemberError, MemberTimeout, MemberUnreachable
from ..galera.recovery import GaleraState, GaleraStateError, RecoveredPosition
from ..kubeutils import api_core
from ..member_client import MemberClient
from ..replication import replica_config
from ..replication.failover import ReplicaStatus
from ..utils import pod_index
from .mariadb_api import MariaDB

SERVICE_ACCOUNT_TOKEN = "/var/run/secrets/kubernetes.io/serviceaccount/token"

AGENT_REQUEST_TIMEOUT = 10
RECOVERY_POLL_INTERVAL = 5


class AgentClient:
    """
    HTTP client for the agent sidecar running next to each Galera member.
    The agent owns grastate.dat and the bootstrap/recovery flags that
    decide how mysqld is started.
    """

    def __init__(self, base_url: str, member: str, token: Optional[str] = None) -> None:
        self.base_url = base_url.rstrip("/") + "/api"
        self.member = member
        self.session = requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def request(self, method: str, path: str, ok_404: bool = False,
                **kwargs) -> Optional[requests.Response]:
        kwargs.setdefault("timeout", AGENT_REQUEST_TIMEOUT)
        try:
            r = self.session.request(method, self.base_url + path, **kwargs)
        except requests.Timeout as e:
            raise MemberTimeout(self.member, f"{method} {path}: {e}")
        except requests.ConnectionError as e:
            raise MemberUnreachable(self.member, f"{method} {path}: {e}")
        except requests.RequestException as e:
            raise MemberError(self.member, f"{method} {path}: {e}")

        if r.status_code == 404 and ok_404:
            return None
        if r.status_code >= 400:
            raise MemberError(self.member,
                              f"{method} {path} returned {r.status_code}: {r.text.strip()}",
                              code=r.status_code)
        return r

    def galera_state(self) -> Optional[GaleraState]:
        r = self.request("GET", "/state/galera", ok_404=True)
        if r is None:
            return None
        try:
            return GaleraState.from_dict(r.json())
        except (ValueError, KeyError) as e:
            raise MemberError(self.member, f"invalid galera state: {e}")

    def enable_bootstrap(self, position: Optional[RecoveredPosition]) -> None:
        self.request("PUT", "/bootstrap",
                     json=position.to_dict() if position else None)

    def disable_bootstrap(self) -> None:
        self.request("DELETE", "/bootstrap", ok_404=True)

    def enable_recovery(self) -> None:
        self.request("PUT", "/recovery")

    def poll_recovery(self) -> Optional[RecoveredPosition]:
        r = self.request("POST", "/recovery", ok_404=True)
        if r is None or not r.content:
            return None
        try:
            return RecoveredPosition.from_dict(r.json())
        except (ValueError, KeyError) as e:
            raise MemberError(self.member, f"invalid recovered position: {e}")

    def disable_recovery(self) -> None:
        self.request("DELETE", "/recovery", ok_404=True)


class MariaDBMemberClient(MemberClient):
    """
    Sends instructions to the members of a MariaDB: SQL over the headless
    Service, Galera agent calls over HTTP and restarts through the
    Kubernetes API.
    """

    def __init__(self, cluster: MariaDB, logger: Logger) -> None:
        self.cluster = cluster
        self.spec = cluster.parsed_spec
        self.logger = logger
        self._password: Optional[str] = None
        self._token: Optional[str] = None
        self.sessions: Dict[str, sqlutils.SessionWrap] = {}
        if os.path.exists(SERVICE_ACCOUNT_TOKEN):
            with open(SERVICE_ACCOUNT_TOKEN) as f:
                self._token = f.read().strip()

    @property
    def password(self) -> str:
        if self._password is None:
            self._password = self.cluster.get_root_password()
        return self._password

    def host(self, member: str) -> str:
        return self.cluster.pod_fqdn(member)

    def connect(self, member: str) -> sqlutils.SessionWrap:
        # Sessions live until close() so a table lock taken during a
        # switchover is held for the rest of the pass
        session = self.sessions.get(member)
        if session is not None:
            return session

        timeout = int(self.spec.replication.replica.connection_timeout) or 10
        try:
            session = sqlutils.connect_to_member(self.host(member), self.spec.port,
                                                 "root", self.password, self.logger,
                                                 connect_timeout=timeout,
                                                 tls=self.spec.tls_enabled,
                                                 timeout=timeout, max_tries=3)
        except mysql.connector.Error as e:
            raise MemberUnreachable(member, str(e), code=e.errno)
        self.sessions[member] = session
        return session

    def close(self) -> None:
        for member, session in self.sessions.items():
            try:
                session.close()
            except mysql.connector.Error as e:
                self.logger.debug(f"Error closing session to {member}: {e}")
        self.sessions = {}

    def run(self, member: str, f, *args):
        session = self.connect(member)
        try:
            return f(session, *args)
        except mysql.connector.Error as e:
            sqlutils.check_fatal(e, member, f.__name__, self.logger)
            # a broken session must not be reused
            self.sessions.pop(member, None)
            raise MemberError(member, str(e), code=e.errno)

    def agent(self, member: str) -> AgentClient:
        scheme = "https" if self.spec.tls_enabled else "http"
        return AgentClient(f"{scheme}://{self.host(member)}:{self.spec.galera.agent_port}",
                           member, self._token)

    # ## Lifecycle ##

    def is_ready(self, member: str) -> bool:
        pod = self.cluster.get_pod(member)
        return pod is not None and pod.ready

    def restart_normal(self, member: str) -> None:
        self.logger.info(f"Restarting {member}")
        try:
            api_core.delete_namespaced_pod(member, self.cluster.namespace)
        except ApiException as e:
            if e.status == 404:
                return
            raise MemberError(member, f"deleting pod: {e.reason}", code=e.status)

    def restart_into_recovery(self, member: str, timeout: float) -> RecoveredPosition:
        agent = self.agent(member)
        agent.enable_recovery()
        try:
            self.restart_normal(member)

            deadline = time.monotonic() + timeout
            while True:
                try:
                    position = agent.poll_recovery()
                    if position is not None:
                        self.logger.info(f"Recovered position of {member}: {position}")
                        return position
                except MemberUnreachable:
                    # pod still restarting
                    pass
                if time.monotonic() >= deadline:
                    raise MemberTimeout(member, f"no recovered position after {int(timeout)}s")
                time.sleep(RECOVERY_POLL_INTERVAL)
        finally:
            try:
                agent.disable_recovery()
            except MemberError as e:
                self.logger.warning(f"Could not disable recovery in {member}: {e}")

    # ## Galera ##

    def report_sequence_state(self, member: str) -> Optional[GaleraState]:
        try:
            return self.agent(member).galera_state()
        except GaleraStateError as e:
            raise MemberError(member, str(e))

    def enable_bootstrap(self, member: str, position: Optional[RecoveredPosition]) -> None:
        self.agent(member).enable_bootstrap(position)

    def disable_bootstrap(self, member: str) -> None:
        self.agent(member).disable_bootstrap()

    def is_synced(self, member: str) -> bool:
        def query(session):
            rows = session.run_sql(
                "SELECT VARIABLE_NAME AS name, VARIABLE_VALUE AS value"
                " FROM information_schema.GLOBAL_STATUS"
                " WHERE VARIABLE_NAME IN ('WSREP_CLUSTER_STATUS', 'WSREP_LOCAL_STATE_COMMENT')")
            return {r["name"].upper(): r["value"] for r in rows}

        status = self.run(member, query)
        return status.get("WSREP_CLUSTER_STATUS") == "Primary" and \
            status.get("WSREP_LOCAL_STATE_COMMENT") == "Synced"

    # ## Replication ##

    def switch_read_only(self, member: str, read_only: bool) -> None:
        self.run(member, replica_config.set_read_only, read_only)

    def lock_tables(self, member: str) -> None:
        self.run(member, replica_config.lock_tables)

    def unlock_tables(self, member: str) -> None:
        self.run(member, replica_config.unlock_tables)

    def gtid_binlog_pos(self, member: str) -> str:
        return self.run(member, replica_config.gtid_binlog_pos)

    def wait_for_gtid(self, member: str, gtid: str, timeout: float) -> bool:
        return self.run(member, replica_config.wait_for_gtid, gtid, timeout)

    def configure_primary(self, member: str) -> None:
        wait_point = self.spec.replication.replica.wait_point.mariadb_format()
        self.run(member, replica_config.configure_primary, wait_point)

    def reconfigure_upstream(self, member: str, primary: str,
                             gtid: Optional[str] = None) -> None:
        replica = self.spec.replication.replica
        opts = replica_config.ChangeMasterOptions(
            self.host(primary), self.spec.port, "root", self.password,
            gtid_mode=replica.gtid.mariadb_format(),
            connect_retry=int(replica.connection_timeout))
        self.run(member, replica_config.configure_replica, opts, gtid,
                 replica.wait_point.mariadb_format())

    def replica_status(self, member: str) -> ReplicaStatus:
        return self.run(member, replica_config.query_replica_status,
                        member, pod_index(member))
