# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import copy
import datetime
import math
from logging import Logger
from typing import Callable, Optional

import kopf

from .. import conditions, consts
from ..diagnose import ReplicationClusterStatus
from ..errors import MemberError
from ..member_client import MemberClient
from ..utils import isotime, parse_isotime, pod_name, utcnow
from .failover import furthest_advanced_replica
from .switchover import Switchover, SwitchoverPhase, SwitchoverStatus


class ReplicationFailoverCoordinator:
    """
    Keeps a single writable primary in a replication topology.

    A switchover starts when spec.replication.primary.podIndex differs from
    status.currentPrimaryPodIndex, either because the user changed it or
    because automatic failover did after the primary was unavailable for
    longer than the cluster healthy timeout. The PrimarySwitched condition
    stays False from the first step until the new primary is recorded.

    A switchover that hasn't promoted the new primary within the switchover
    timeout is abandoned: the old primary is made writable again and
    PrimarySwitched goes back to True, so the index can be reverted. The
    same target is retried once another switchover timeout has passed.
    """

    def __init__(self, cluster, spec, client: MemberClient, logger: Logger,
                 cluster_healthy_timeout: float,
                 clock: Callable[[], datetime.datetime] = utcnow) -> None:
        self.cluster = cluster
        self.spec = spec
        self.client = client
        self.logger = logger
        self.cluster_healthy_timeout = cluster_healthy_timeout
        self.clock = clock

        status = cluster.status or {}
        self.current_primary_index: Optional[int] = status.get("currentPrimaryPodIndex")
        self.replication: dict = copy.deepcopy(status.get("replication") or {})
        self.conditions: list = copy.deepcopy(status.get("conditions") or [])
        self.switchover = SwitchoverStatus(self.replication.get("switchover"))

    @property
    def primary_spec(self):
        return self.spec.replication.primary

    def persist(self) -> None:
        replication = dict(self.replication)
        switchover = self.switchover.to_dict()
        if switchover:
            replication["switchover"] = switchover
        else:
            replication.pop("switchover", None)
        self.cluster.update_status({
            "currentPrimaryPodIndex": self.current_primary_index,
            "currentPrimary": pod_name(self.cluster.name, self.current_primary_index)
            if self.current_primary_index is not None else None,
            "replication": replication or None,
            "conditions": self.conditions
        })

    def reconcile(self, diag: ReplicationClusterStatus) -> None:
        now = self.clock()

        if self.current_primary_index is None:
            self.configure_replication(diag, now)
            return

        if conditions.is_primary_switching(self.conditions) and \
                not self.switchover.active and \
                self.primary_spec.pod_index == self.current_primary_index:
            self.reset_stale_switchover(now)
            return

        if self.switchover.active and self.switchover_expired(now):
            self.abandon_switchover(diag, now)
            return

        if not self.switchover.active:
            self.check_failover(diag, now)

        if self.switchover.active or self.primary_spec.pod_index != self.current_primary_index:
            if not self.switchover.active:
                self.check_abandoned_switchover(now)
            self.switch_primary(diag, now)
            return

        if self.replication.pop("abandonedSwitchover", None):
            self.persist()

        self.rejoin_pending(diag)

    # ## Initial configuration ##

    def configure_replication(self, diag: ReplicationClusterStatus,
                              now: datetime.datetime) -> None:
        primary = pod_name(self.cluster.name, self.primary_spec.pod_index)
        if not diag.is_ready(primary):
            raise kopf.TemporaryError(
                f"Waiting for primary {primary} to be ready", delay=10)
        try:
            self.client.configure_primary(primary)
            for name in sorted(diag.replicas, key=lambda n: diag.replicas[n].index):
                if diag.is_ready(name):
                    self.client.reconfigure_upstream(name, primary)
                else:
                    self.add_pending(name)
        except MemberError as e:
            raise kopf.TemporaryError(f"Error configuring replication: {e}", delay=10)

        self.current_primary_index = self.primary_spec.pod_index
        conditions.set_replication_configured(self.conditions, now=now)
        conditions.set_primary_switched(self.conditions, now=now)
        self.persist()

    # ## Failover ##

    def check_failover(self, diag: ReplicationClusterStatus, now: datetime.datetime) -> None:
        if diag.primary_available:
            if self.replication.pop("primaryUnavailableSince", None):
                self.persist()
            return

        since = self.replication.get("primaryUnavailableSince")
        if not since:
            self.replication["primaryUnavailableSince"] = isotime(now)
            self.persist()
            since = self.replication["primaryUnavailableSince"]
            self.logger.warning(f"Primary {diag.primary.name} not available: {diag.primary}")

        if not self.primary_spec.automatic_failover:
            return

        elapsed = (now - parse_isotime(since)).total_seconds()
        if elapsed < self.cluster_healthy_timeout:
            raise kopf.TemporaryError(
                f"Primary {diag.primary.name} unavailable for {int(elapsed)}s",
                delay=max(1, math.ceil(self.cluster_healthy_timeout - elapsed)))

        candidate = furthest_advanced_replica(list(diag.replicas.values()), self.logger)
        if candidate is None:
            raise kopf.TemporaryError(
                "No replica is eligible for promotion, retrying", delay=10)
        if candidate.index == self.primary_spec.pod_index:
            # already requested
            return

        self.logger.info(f"Failing over primary {diag.primary.name} to {candidate.name}")
        self.cluster.patch_spec(
            {"replication": {"primary": {"podIndex": candidate.index}}})
        self.primary_spec.pod_index = candidate.index
        self.cluster.warn(action="Failover", reason=consts.EVENT_PRIMARY_FAILOVER,
                          message=f"Primary {diag.primary.name} unavailable, promoting {candidate.name} (gtid {candidate.gtid})")

    # ## Switchover ##

    def switch_primary(self, diag: ReplicationClusterStatus, now: datetime.datetime) -> None:
        if not self.switchover.active:
            self.switchover.start(self.current_primary_index,
                                  self.primary_spec.pod_index, now)
            conditions.set_primary_switching(
                self.conditions,
                f"Switching primary to index {self.primary_spec.pod_index}", now=now)
            self.persist()

        to_index = self.switchover.to_index
        new_primary = pod_name(self.cluster.name, to_index)
        if not diag.is_ready(new_primary):
            raise kopf.TemporaryError(
                f"Waiting for new primary {new_primary} to be ready", delay=5)

        Switchover(self.cluster, self.spec, self.client, diag, self.switchover,
                   self.persist, self.logger).run()

        from_index = self.switchover.from_index
        if self.switchover.old_primary_skipped and from_index is not None:
            self.add_pending(pod_name(self.cluster.name, from_index))
        self.switchover = SwitchoverStatus()
        self.replication.pop("primaryUnavailableSince", None)
        self.replication.pop("abandonedSwitchover", None)
        self.current_primary_index = to_index
        conditions.set_primary_switched(self.conditions, now=now)
        self.persist()
        self.cluster.info(action="Switchover", reason=consts.EVENT_PRIMARY_SWITCHED,
                          message=f"Primary switched from index {from_index} to index {to_index}")

    def switchover_expired(self, now: datetime.datetime) -> bool:
        if self.switchover.done(SwitchoverPhase.PromotingNewPrimary):
            # the new primary is already writable
            return False
        return self.switchover.elapsed(now) >= self.primary_spec.switchover_timeout

    def abandon_switchover(self, diag: ReplicationClusterStatus,
                           now: datetime.datetime) -> None:
        from_index = self.switchover.from_index
        to_index = self.switchover.to_index
        if from_index is not None:
            old = pod_name(self.cluster.name, from_index)
            if diag.is_ready(old):
                try:
                    self.client.unlock_tables(old)
                    self.client.switch_read_only(old, False)
                except MemberError as e:
                    raise kopf.TemporaryError(
                        f"Error unwinding switchover in {old}: {e}", delay=5)
            else:
                self.logger.warning(f"Old primary {old} not ready, can't unwind its demotion")

        elapsed = self.switchover.elapsed(now)
        message = f"Switchover to index {to_index} abandoned after {int(elapsed)}s"
        self.logger.warning(f"{message}, primary is still index {from_index}")
        self.switchover = SwitchoverStatus()
        self.replication["abandonedSwitchover"] = {"to": to_index, "at": isotime(now)}
        conditions.set_primary_switchover_timeout(self.conditions, message, now=now)
        self.persist()
        self.cluster.warn(action="Switchover", reason=consts.EVENT_SWITCHOVER_TIMEOUT,
                          message=message)

    def check_abandoned_switchover(self, now: datetime.datetime) -> None:
        abandoned = self.replication.get("abandonedSwitchover")
        if not abandoned or abandoned.get("to") != self.primary_spec.pod_index:
            return
        elapsed = (now - parse_isotime(abandoned["at"])).total_seconds()
        timeout = self.primary_spec.switchover_timeout
        if elapsed < timeout:
            raise kopf.TemporaryError(
                f"Switchover to index {self.primary_spec.pod_index} was abandoned {int(elapsed)}s ago, retrying later",
                delay=max(1, math.ceil(timeout - elapsed)))
        self.replication.pop("abandonedSwitchover")

    def reset_stale_switchover(self, now: datetime.datetime) -> None:
        primary = pod_name(self.cluster.name, self.current_primary_index)
        self.logger.info(f"Resetting stale switchover, primary is still {primary}")
        try:
            self.client.unlock_tables(primary)
            self.client.switch_read_only(primary, False)
        except MemberError as e:
            raise kopf.TemporaryError(f"Error resetting stale switchover: {e}", delay=5)
        conditions.set_primary_switched(self.conditions, now=now)
        self.persist()
        self.cluster.info(action="Switchover",
                          reason=consts.EVENT_REPLICATION_RESET_STALE_SWITCHOVER,
                          message=f"Reset stale switchover, {primary} remains primary")

    # ## Members that couldn't be configured when they were down ##

    def add_pending(self, name: str) -> None:
        pending = self.replication.setdefault("pendingReplicas", [])
        if name not in pending:
            pending.append(name)

    def rejoin_pending(self, diag: ReplicationClusterStatus) -> None:
        pending = self.replication.get("pendingReplicas", [])
        if not pending:
            return
        primary = pod_name(self.cluster.name, self.current_primary_index)
        remaining = []
        for name in pending:
            if name == primary:
                continue
            if not diag.is_ready(name):
                remaining.append(name)
                continue
            try:
                self.client.reconfigure_upstream(name, primary)
                self.cluster.info(action="Switchover", reason=consts.EVENT_REPLICA_CONN,
                                  message=f"Connected {name} to primary {primary}")
            except MemberError as e:
                self.logger.warning(f"Error connecting {name} to {primary}: {e}")
                remaining.append(name)
        if remaining:
            self.replication["pendingReplicas"] = remaining
        else:
            self.replication.pop("pendingReplicas", None)
        self.persist()
