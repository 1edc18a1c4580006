# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import copy
import datetime
import math
from logging import Logger
from typing import Callable, List, Optional

import kopf

from .. import conditions, consts
from ..diagnose import GaleraClusterStatus
from ..errors import MemberError
from ..member_client import MemberClient
from ..utils import pod_index, pod_name, utcnow
from .recovery import ClusterMember, elect_bootstrap_member, valid_seqno
from .recovery_status import (BootstrapActive, BootstrapRecord, GaleraPhase,
                              GaleraRecoveryStatus)


class GaleraRecoveryCoordinator:
    """
    Drives a Galera cluster back to health after a full or partial crash.

    Every call to reconcile() performs at most one step of the recovery and
    persists its progress in status.galeraRecovery before any instruction is
    sent to a member, so a pass can be interrupted and repeated at any point.
    Passes that have to wait raise kopf.TemporaryError.

    The cluster object must provide name, status, update_status(patch) and
    the info()/warn() event methods.
    """

    def __init__(self, cluster, spec, client: MemberClient, logger: Logger,
                 clock: Callable[[], datetime.datetime] = utcnow) -> None:
        self.cluster = cluster
        self.spec = spec
        self.client = client
        self.logger = logger
        self.clock = clock

        status = cluster.status or {}
        self.recovery = GaleraRecoveryStatus(status.get("galeraRecovery"))
        self.conditions: list = copy.deepcopy(status.get("conditions") or [])

    @property
    def recovery_spec(self):
        return self.spec.galera.recovery

    @property
    def pods(self) -> List[str]:
        return [pod_name(self.cluster.name, i) for i in range(self.spec.replicas)]

    def persist(self) -> None:
        self.cluster.update_status({
            "galeraRecovery": self.recovery.to_dict(),
            "conditions": self.conditions
        })

    def reconcile(self, diag: GaleraClusterStatus) -> GaleraPhase:
        now = self.clock()

        if self.recovery.phase in (GaleraPhase.Healthy, GaleraPhase.Suspect):
            self.reconcile_health(diag, now)

        if self.recovery.phase == GaleraPhase.Recovering:
            self.reconcile_recovering(diag, now)

        if self.recovery.phase == GaleraPhase.Bootstrapping:
            self.reconcile_bootstrapping(now)

        if self.recovery.phase == GaleraPhase.Joining:
            self.reconcile_joining(now)

        return self.recovery.phase

    # ## Healthy / Suspect ##

    def set_healthy(self, now: datetime.datetime) -> None:
        recorded = bool(self.recovery.data)
        was_recovering = self.recovery.phase not in (GaleraPhase.Healthy, GaleraPhase.Suspect)
        self.recovery.reset()
        changed = conditions.set_galera_ready(self.conditions, now=now)
        changed = conditions.set_galera_configured(self.conditions, now=now) or changed
        if changed or recorded:
            self.persist()
        if was_recovering:
            self.logger.info(f"Galera cluster {self.cluster.name} is healthy")
            self.cluster.info(action="GaleraRecovery",
                              reason=consts.EVENT_GALERA_CLUSTER_HEALTHY,
                              message="Galera cluster is healthy")

    def reconcile_health(self, diag: GaleraClusterStatus, now: datetime.datetime) -> None:
        if diag.healthy:
            self.set_healthy(now)
            return

        if self.recovery.phase == GaleraPhase.Healthy:
            self.recovery.mark_unhealthy(now)
            message = f"Galera cluster not healthy, {len(diag.synced_members)} of {len(diag.members)} member(s) synced"
            if diag.unknown_members:
                # can't tell whether it's the cluster or the network
                conditions.set_galera_unknown(self.conditions, message, now=now)
            else:
                conditions.set_galera_not_ready(
                    self.conditions, consts.REASON_GALERA_SUSPECT, message, now=now)
            self.persist()
            self.logger.info(f"Galera cluster {self.cluster.name} not healthy: {diag}")

        if not self.recovery_spec.enabled:
            self.logger.warning(
                f"Galera cluster {self.cluster.name} not healthy and recovery is disabled")
            return

        timeout = self.recovery_spec.cluster_healthy_timeout
        elapsed = self.recovery.unhealthy_for(now)
        if elapsed < timeout:
            raise kopf.TemporaryError(
                f"Galera cluster not healthy for {int(elapsed)}s, waiting {int(timeout)}s before recovery",
                delay=max(1, math.ceil(timeout - elapsed)))

        self.recovery.start_recovering(now)
        conditions.set_galera_not_ready(
            self.conditions, consts.REASON_GALERA_RECOVERING,
            "Recovering Galera cluster", now=now)
        self.persist()
        self.cluster.warn(action="GaleraRecovery",
                          reason=consts.EVENT_GALERA_CLUSTER_NOT_HEALTHY,
                          message=f"Galera cluster not healthy for {int(elapsed)}s, starting recovery")

    # ## Recovering ##

    def fetch_states(self) -> None:
        for pod in self.pods:
            if self.recovery.state(pod) or self.recovery.no_state(pod):
                continue
            try:
                state = self.client.report_sequence_state(pod)
            except MemberError as e:
                self.logger.info(f"Could not get Galera state of {pod}: {e}")
                self.recovery.set_error(pod, str(e))
                continue
            if state is None:
                self.logger.info(f"Galera state of {pod} not found")
                self.recovery.set_no_state(pod)
            else:
                self.logger.info(f"Galera state of {pod}: {state}")
                self.recovery.set_state(pod, state)
                self.cluster.info(action="GaleraRecovery",
                                  reason=consts.EVENT_GALERA_POD_STATE_FETCHED,
                                  message=f"Galera state of {pod}: {state.uuid}:{state.seqno} safe_to_bootstrap={int(state.safe_to_bootstrap)}")

    def has_safe_to_bootstrap(self) -> bool:
        for pod in self.pods:
            state = self.recovery.state(pod)
            if state and state.safe_to_bootstrap and valid_seqno(state):
                return True
        return False

    def recover_positions(self) -> None:
        for pod in self.pods:
            if valid_seqno(self.recovery.state(pod)) or self.recovery.recovered(pod) \
                    or self.recovery.error(pod):
                continue
            try:
                position = self.client.restart_into_recovery(
                    pod, self.recovery_spec.pod_recovery_timeout)
            except MemberError as e:
                self.logger.info(f"Could not recover Galera position of {pod}: {e}")
                self.recovery.set_error(pod, str(e))
                continue
            self.recovery.set_recovered(pod, position)
            self.persist()
            self.cluster.info(action="GaleraRecovery",
                              reason=consts.EVENT_GALERA_POD_RECOVERED,
                              message=f"Recovered Galera position of {pod}: {position.uuid}:{position.seqno}")

    def members(self) -> List[ClusterMember]:
        return [ClusterMember.from_observations(
                    pod, i, self.recovery.state(pod), self.recovery.recovered(pod),
                    self.recovery.error(pod), self.clock())
                for i, pod in enumerate(self.pods)]

    def select_bootstrap_member(self) -> Optional[ClusterMember]:
        force = self.recovery_spec.force_cluster_bootstrap_in_pod
        if force:
            self.logger.info(f"Forcing Galera cluster bootstrap in {force}")
            return ClusterMember(force, pod_index(force))

        # errors are retried every pass
        self.recovery.clear_errors()
        self.fetch_states()
        self.persist()

        if not self.has_safe_to_bootstrap():
            self.recover_positions()

        members = self.members()
        self.logger.info(f"Galera bootstrap candidates: {members}")
        return elect_bootstrap_member(members)

    def reconcile_recovering(self, diag: GaleraClusterStatus, now: datetime.datetime) -> None:
        if diag.healthy:
            self.set_healthy(now)
            return

        since = self.recovery.recovering_since
        timeout = self.recovery_spec.cluster_bootstrap_timeout
        if since and now > since + datetime.timedelta(seconds=timeout):
            self.abandon_recovery(now, f"Galera recovery timed out after {int(timeout)}s")
            return

        source = self.select_bootstrap_member()
        if source is None:
            self.persist()
            self.cluster.warn(action="GaleraRecovery",
                              reason=consts.EVENT_GALERA_NO_BOOTSTRAP_SOURCE,
                              message="No member with a usable Galera position yet")
            raise kopf.TemporaryError(
                "No Galera bootstrap source found, retrying", delay=10)

        record = BootstrapRecord(source.name, source.index, now,
                                 source.uuid, source.seqno)
        try:
            self.recovery.set_bootstrapping(record, now, timeout)
        except BootstrapActive as e:
            self.logger.warning(f"{e}")
            self.recovery.phase = GaleraPhase.Bootstrapping
            self.persist()
            return

        conditions.set_galera_not_ready(
            self.conditions, consts.REASON_GALERA_BOOTSTRAPPING,
            f"Bootstrapping Galera cluster in {source.name}", now=now)
        self.persist()
        self.cluster.info(action="GaleraRecovery",
                          reason=consts.EVENT_GALERA_CLUSTER_BOOTSTRAP,
                          message=f"Bootstrapping Galera cluster in {source.name}")

    def abandon_recovery(self, now: datetime.datetime, message: str) -> None:
        self.logger.warning(f"{self.cluster.name}: {message}")
        self.recovery.reset()
        self.recovery.mark_unhealthy(now)
        conditions.set_galera_not_ready(self.conditions, consts.REASON_GALERA_SUSPECT,
                                        message, now=now)
        self.persist()
        self.cluster.warn(action="GaleraRecovery",
                          reason=consts.EVENT_GALERA_CLUSTER_BOOTSTRAP_TIMEOUT,
                          message=message)

    # ## Bootstrapping / Joining ##

    def check_bootstrap_timeout(self, now: datetime.datetime) -> bool:
        timeout = self.recovery_spec.cluster_bootstrap_timeout
        if self.recovery.bootstrap_timeout(now, timeout):
            self.abandon_recovery(
                now, f"Galera cluster bootstrap timed out after {int(timeout)}s")
            return True
        return False

    def restart_member(self, pod: str, now: datetime.datetime, bootstrap: bool) -> None:
        self.recovery.set_restarted(pod, now)
        self.persist()
        try:
            if bootstrap:
                self.client.enable_bootstrap(pod, self.recovery.bootstrap.position)
            else:
                self.client.disable_bootstrap(pod)
            self.client.restart_normal(pod)
        except MemberError as e:
            # the sync timeout restarts it again
            self.logger.warning(f"Error restarting {pod}: {e}")

    def wait_synced(self, pod: str, now: datetime.datetime) -> bool:
        try:
            if self.client.is_synced(pod):
                return True
        except MemberError as e:
            self.logger.info(f"{pod} not synced yet: {e}")

        started = self.recovery.sync_started_at(pod)
        timeout = self.recovery_spec.pod_sync_timeout
        if started and now > started + datetime.timedelta(seconds=timeout):
            self.cluster.warn(action="GaleraRecovery",
                              reason=consts.EVENT_GALERA_POD_SYNC_TIMEOUT,
                              message=f"{pod} not synced after {int(timeout)}s, restarting it")
            self.restart_member(pod, now, pod == self.recovery.bootstrap.pod)
        return False

    def reconcile_bootstrapping(self, now: datetime.datetime) -> None:
        if self.check_bootstrap_timeout(now):
            return

        pod = self.recovery.bootstrap.pod
        if pod not in self.recovery.restarted:
            self.logger.info(f"Bootstrapping new Galera cluster in {pod}")
            self.restart_member(pod, now, bootstrap=True)
            raise kopf.TemporaryError(f"Waiting for {pod} to bootstrap", delay=5)

        if not self.wait_synced(pod, now):
            raise kopf.TemporaryError(f"Waiting for {pod} to bootstrap", delay=5)

        self.recovery.phase = GaleraPhase.Joining
        conditions.set_galera_not_ready(
            self.conditions, consts.REASON_GALERA_JOINING,
            "Joining members to the bootstrapped Galera cluster", now=now)
        self.persist()

    def reconcile_joining(self, now: datetime.datetime) -> None:
        if self.check_bootstrap_timeout(now):
            return

        bootstrap_pod = self.recovery.bootstrap.pod
        for pod in self.pods:
            if pod == bootstrap_pod:
                continue
            if pod not in self.recovery.restarted:
                self.logger.info(f"Joining {pod} to the Galera cluster")
                self.restart_member(pod, now, bootstrap=False)
                raise kopf.TemporaryError(f"Waiting for {pod} to join", delay=5)
            if not self.wait_synced(pod, now):
                raise kopf.TemporaryError(f"Waiting for {pod} to join", delay=5)

        self.recovery.set_pods_restarted()
        self.persist()
        try:
            self.client.disable_bootstrap(bootstrap_pod)
        except MemberError as e:
            raise kopf.TemporaryError(
                f"Error disabling bootstrap in {bootstrap_pod}: {e}", delay=5)
        self.set_healthy(now)
