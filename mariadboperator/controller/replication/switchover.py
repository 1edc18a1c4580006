# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import datetime
import enum
from logging import Logger
from typing import Callable, Optional

import kopf

from .. import consts
from ..diagnose import ReplicationClusterStatus
from ..errors import MemberError
from ..member_client import MemberClient
from ..utils import isotime, parse_isotime, pod_name


class SwitchoverPhase(enum.Enum):
    Stable = "Stable"
    Requested = "Requested"
    DemotingOldPrimary = "DemotingOldPrimary"
    PromotingNewPrimary = "PromotingNewPrimary"
    ReconfiguringReplicas = "ReconfiguringReplicas"


# Order in which the phases are applied
SWITCHOVER_PHASES = [
    SwitchoverPhase.DemotingOldPrimary,
    SwitchoverPhase.PromotingNewPrimary,
    SwitchoverPhase.ReconfiguringReplicas
]


class SwitchoverStatus:
    """
    Wrapper over status.replication.switchover
    """

    def __init__(self, data: Optional[dict] = None) -> None:
        self.data = dict(data) if data else {}

    def to_dict(self) -> Optional[dict]:
        return dict(self.data) if self.data else None

    @property
    def active(self) -> bool:
        return bool(self.data)

    def start(self, from_index: Optional[int], to_index: int,
              now: datetime.datetime) -> None:
        self.data = {
            "from": from_index,
            "to": to_index,
            "phase": SwitchoverPhase.Requested.value,
            "phases": [],
            "startedAt": isotime(now)
        }

    @property
    def from_index(self) -> Optional[int]:
        return self.data.get("from")

    @property
    def to_index(self) -> Optional[int]:
        return self.data.get("to")

    @property
    def started_at(self) -> Optional[datetime.datetime]:
        started = self.data.get("startedAt")
        return parse_isotime(started) if started else None

    def elapsed(self, now: datetime.datetime) -> float:
        started = self.started_at
        return (now - started).total_seconds() if started else 0

    @property
    def phase(self) -> SwitchoverPhase:
        return SwitchoverPhase(self.data.get("phase", SwitchoverPhase.Stable.value))

    def done(self, phase: SwitchoverPhase) -> bool:
        return phase.value in self.data.get("phases", [])

    def set_done(self, phase: SwitchoverPhase) -> None:
        phases = self.data.setdefault("phases", [])
        if phase.value not in phases:
            phases.append(phase.value)
        self.data["phase"] = phase.value

    @property
    def old_primary_skipped(self) -> bool:
        return bool(self.data.get("oldPrimarySkipped"))

    def set_old_primary_skipped(self) -> None:
        self.data["oldPrimarySkipped"] = True


class Switchover:
    """
    Moves the primary role from one member to another.

    Each phase is recorded in the switchover status once applied, so a pass
    interrupted half way resumes at the first phase that isn't recorded.
    Phases that need the old primary are skipped when it isn't reachable.
    """

    def __init__(self, cluster, spec, client: MemberClient,
                 diag: ReplicationClusterStatus, status: SwitchoverStatus,
                 persist: Callable[[], None], logger: Logger) -> None:
        self.cluster = cluster
        self.spec = spec
        self.client = client
        self.diag = diag
        self.status = status
        self.persist = persist
        self.logger = logger

    @property
    def old_primary(self) -> Optional[str]:
        if self.status.from_index is None:
            return None
        return pod_name(self.cluster.name, self.status.from_index)

    @property
    def new_primary(self) -> str:
        return pod_name(self.cluster.name, self.status.to_index)

    def old_primary_ready(self) -> bool:
        return self.old_primary is not None and self.diag.is_ready(self.old_primary)

    def run(self) -> None:
        steps = {
            SwitchoverPhase.DemotingOldPrimary: self.demote_old_primary,
            SwitchoverPhase.PromotingNewPrimary: self.promote_new_primary,
            SwitchoverPhase.ReconfiguringReplicas: self.reconfigure_replicas
        }
        for phase in SWITCHOVER_PHASES:
            if self.status.done(phase):
                continue
            self.logger.info(f"Switchover {self.old_primary} -> {self.new_primary}: {phase.value}")
            try:
                steps[phase]()
            except MemberError as e:
                raise kopf.TemporaryError(
                    f"Switchover phase {phase.value} failed: {e}", delay=5)
            self.status.set_done(phase)
            self.persist()

    def demote_old_primary(self) -> None:
        if not self.old_primary_ready():
            self.logger.warning(
                f"Old primary {self.old_primary} not ready, skipping its demotion")
            self.status.set_old_primary_skipped()
            return

        old = self.old_primary
        self.client.lock_tables(old)
        self.cluster.info(action="Switchover", reason=consts.EVENT_PRIMARY_LOCK,
                          message=f"Locked primary {old} with a read lock")
        self.client.switch_read_only(old, True)
        self.cluster.info(action="Switchover", reason=consts.EVENT_PRIMARY_READONLY,
                          message=f"Enabled read_only in primary {old}")

        gtid = self.client.gtid_binlog_pos(old)
        timeout = self.spec.replication.replica.sync_timeout
        for name, replica in sorted(self.diag.replicas.items(), key=lambda r: r[1].index):
            if not self.diag.is_ready(name):
                continue
            if not self.client.wait_for_gtid(name, gtid, timeout):
                self.cluster.warn(action="Switchover", reason=consts.EVENT_REPLICA_SYNC_ERR,
                                  message=f"Timeout waiting for {name} to reach GTID {gtid}")
                raise kopf.TemporaryError(
                    f"Replica {name} not in sync with {gtid}", delay=5)
        self.cluster.info(action="Switchover", reason=consts.EVENT_REPLICA_SYNC,
                          message=f"Replicas in sync with GTID {gtid}")

    def promote_new_primary(self) -> None:
        self.client.configure_primary(self.new_primary)
        self.cluster.info(action="Switchover", reason=consts.EVENT_PRIMARY_NEW,
                          message=f"Configured {self.new_primary} as new primary")

    def reconfigure_replicas(self) -> None:
        new = self.new_primary
        for name, replica in sorted(self.diag.replicas.items(), key=lambda r: r[1].index):
            if name in (new, self.old_primary):
                continue
            if not self.diag.is_ready(name):
                self.logger.info(f"Replica {name} not ready, skipping")
                continue
            self.client.reconfigure_upstream(name, new)
        self.cluster.info(action="Switchover", reason=consts.EVENT_REPLICA_CONN,
                          message=f"Connected replicas to new primary {new}")

        if self.old_primary and self.old_primary != new and self.old_primary_ready():
            old = self.old_primary
            self.client.unlock_tables(old)
            self.client.reconfigure_upstream(old, new)
            self.cluster.info(action="Switchover", reason=consts.EVENT_PRIMARY_TO_REPLICA,
                              message=f"Configured old primary {old} as replica of {new}")
