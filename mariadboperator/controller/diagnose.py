# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger
import enum
from typing import Optional, List, Dict

from .errors import MemberError
from .member_client import MemberClient
from .replication.failover import ReplicaStatus
from .utils import pod_name

#
# Member Diagnostic Statuses
#


class MemberDiagStatus(enum.Enum):
    # Galera member Synced and part of a Primary component
    SYNCED = "SYNCED"

    # Galera member reachable but Joining, Donor, non-Primary...
    NOT_SYNCED = "NOT_SYNCED"

    # Replication member reachable and ready
    ONLINE = "ONLINE"

    # Pod exists but isn't ready
    NOT_READY = "NOT_READY"

    # Instance is not reachable, maybe networking issue
    UNREACHABLE = "UNREACHABLE"

    # Uncertain because we can't connect or query it
    UNKNOWN = "UNKNOWN"


class MemberStatus:
    name: str = ""
    index: int = -1
    status: MemberDiagStatus = MemberDiagStatus.UNKNOWN
    error: Optional[str] = None

    def __init__(self, name: str, index: int) -> None:
        self.name = name
        self.index = index

    def __repr__(self) -> str:
        return f"MemberStatus: name={self.name} status={self.status} error={self.error}"


class GaleraClusterStatus:
    def __init__(self, members: List[MemberStatus]) -> None:
        self.members = members

    def __repr__(self) -> str:
        return f"GaleraClusterStatus: healthy={self.healthy} members={self.members}"

    @property
    def healthy(self) -> bool:
        return bool(self.members) and \
            all(m.status == MemberDiagStatus.SYNCED for m in self.members)

    @property
    def synced_members(self) -> List[MemberStatus]:
        return [m for m in self.members if m.status == MemberDiagStatus.SYNCED]

    @property
    def unknown_members(self) -> List[MemberStatus]:
        return [m for m in self.members
                if m.status in (MemberDiagStatus.UNKNOWN, MemberDiagStatus.UNREACHABLE)]


def diagnose_galera_member(client: MemberClient, name: str, index: int,
                           logger: Logger) -> MemberStatus:
    status = MemberStatus(name, index)
    try:
        if not client.is_ready(name):
            status.status = MemberDiagStatus.NOT_READY
            return status
        if client.is_synced(name):
            status.status = MemberDiagStatus.SYNCED
        else:
            status.status = MemberDiagStatus.NOT_SYNCED
    except MemberError as e:
        logger.info(f"Could not probe {name}: {e}")
        status.status = MemberDiagStatus.UNREACHABLE
        status.error = str(e)
    return status


def diagnose_galera_cluster(sts_name: str, replicas: int, client: MemberClient,
                            logger: Logger) -> GaleraClusterStatus:
    members = [diagnose_galera_member(client, pod_name(sts_name, i), i, logger)
               for i in range(replicas)]
    diag = GaleraClusterStatus(members)
    logger.debug(f"{diag}")
    return diag


class ReplicationClusterStatus:
    def __init__(self, primary: MemberStatus,
                 replicas: Dict[str, ReplicaStatus]) -> None:
        self.primary = primary
        self.replicas = replicas

    def __repr__(self) -> str:
        return f"ReplicationClusterStatus: primary={self.primary} replicas={list(self.replicas.values())}"

    @property
    def primary_available(self) -> bool:
        return self.primary.status == MemberDiagStatus.ONLINE

    def is_ready(self, name: str) -> bool:
        if name == self.primary.name:
            return self.primary_available
        replica = self.replicas.get(name)
        return replica is not None and replica.ready and not replica.error


def diagnose_replication_cluster(sts_name: str, replicas: int, primary_index: int,
                                 client: MemberClient,
                                 logger: Logger) -> ReplicationClusterStatus:
    primary = MemberStatus(pod_name(sts_name, primary_index), primary_index)
    try:
        primary.status = MemberDiagStatus.ONLINE if client.is_ready(primary.name) \
            else MemberDiagStatus.NOT_READY
    except MemberError as e:
        logger.info(f"Could not probe primary {primary.name}: {e}")
        primary.status = MemberDiagStatus.UNREACHABLE
        primary.error = str(e)

    replica_statuses: Dict[str, ReplicaStatus] = {}
    for i in range(replicas):
        if i == primary_index:
            continue
        name = pod_name(sts_name, i)
        try:
            ready = client.is_ready(name)
            if ready:
                rs = client.replica_status(name)
            else:
                rs = ReplicaStatus()
        except MemberError as e:
            logger.info(f"Could not probe replica {name}: {e}")
            rs = ReplicaStatus()
            rs.error = str(e)
            ready = False
        rs.name = name
        rs.index = i
        rs.ready = ready
        replica_statuses[name] = rs

    diag = ReplicationClusterStatus(primary, replica_statuses)
    logger.debug(f"{diag}")
    return diag
