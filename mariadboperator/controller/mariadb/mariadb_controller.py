# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import copy
import datetime
from logging import Logger
from typing import Optional

import kopf
import mysql.connector

from .. import conditions, config, consts, diagnose, utils
from ..api_utils import ApiSpecError
from ..galera.galera_controller import GaleraRecoveryCoordinator
from ..galera.recovery_status import GaleraPhase
from ..member_client import MemberClient
from ..replication.replication_controller import ReplicationFailoverCoordinator
from ..watch_registry import g_watch_registry
from .mariadb_api import MariaDB, MariaDBPod
from .mariadb_backend import connect_to_backend
from .mariadb_member import MariaDBMemberClient


class ClusterMutex:
    """
    Serializes the handlers working on the same MariaDB within this operator
    process. A handler that finds the lock taken is retried later.
    """

    def __init__(self, cluster: MariaDB, pod: Optional[MariaDBPod] = None,
                 context: str = "n/a"):
        self.cluster = cluster
        self.pod = pod
        self.context = context

    def __enter__(self, *args):
        owner_lock_creation_time: datetime.datetime
        (owner, owner_context, owner_lock_creation_time) = utils.g_ephemeral_pod_state.testset(
            self.cluster, "cluster-mutex", self.pod.name if self.pod else self.cluster.name,
            context=self.context)
        if owner:
            raise kopf.TemporaryError(
                f"{self.cluster.name} busy. lock_owner={owner} owner_context={owner_context} lock_created_at={owner_lock_creation_time.isoformat()}", delay=10)

    def __exit__(self, *args):
        utils.g_ephemeral_pod_state.set(self.cluster, "cluster-mutex", None,
                                        context=self.context)


class MariaDBController:
    """
    Reconciles one MariaDB: probes its members, hands the result to the
    coordinator of its HA mode and keeps the Ready condition in line with
    what the coordinator found.
    """

    def __init__(self, cluster: MariaDB, client: Optional[MemberClient] = None):
        self.cluster = cluster
        self.client = client

    def parse_spec(self, logger: Logger):
        try:
            self.cluster.parse_spec()
            self.cluster.parsed_spec.validate()
        except ApiSpecError as e:
            logger.error(f"Invalid spec in MariaDB {self.cluster}: {e}")
            self.cluster.error(action="Reconcile",
                               reason=consts.EVENT_INVALID_ARGUMENT, message=str(e))
            raise kopf.PermanentError(f"Error in MariaDB spec: {e}")
        return self.cluster.parsed_spec

    def register_references(self) -> None:
        spec = self.cluster.parsed_spec
        refs = [("Secret", name) for name in spec.referenced_secrets()]
        refs += [("ConfigMap", name) for name in spec.referenced_config_maps()]
        g_watch_registry.update(self.cluster.namespace, self.cluster.name, refs)

    def reconcile(self, logger: Logger) -> None:
        if self.cluster.deleting:
            logger.info(f"MariaDB {self.cluster} is being deleted, skipping reconcile")
            return

        spec = self.parse_spec(logger)
        self.register_references()

        client = self.client or MariaDBMemberClient(self.cluster, logger)
        try:
            if spec.galera.enabled:
                self.reconcile_galera(spec, client, logger)
            elif spec.replication.enabled:
                self.reconcile_replication(spec, client, logger)
            else:
                self.reconcile_standalone(client, logger)
        finally:
            close = getattr(client, "close", None)
            if close and client is not self.client:
                close()

    def reconcile_galera(self, spec, client: MemberClient, logger: Logger) -> None:
        diag = diagnose.diagnose_galera_cluster(self.cluster.name, spec.replicas,
                                                client, logger)
        coordinator = GaleraRecoveryCoordinator(self.cluster, spec, client, logger)
        try:
            phase = coordinator.reconcile(diag)
        except kopf.TemporaryError:
            self.publish_ready(False, consts.REASON_NOT_HEALTHY,
                               f"{len(diag.synced_members)} of {spec.replicas} member(s) synced")
            raise

        if phase == GaleraPhase.Healthy:
            self.publish_ready(True, consts.REASON_HEALTHY, "Galera cluster is healthy")
        else:
            self.publish_ready(False, consts.REASON_NOT_HEALTHY,
                               f"Galera cluster is {phase.value}")

    def reconcile_replication(self, spec, client: MemberClient, logger: Logger) -> None:
        status = self.cluster.status
        primary_index = status.get("currentPrimaryPodIndex")
        if primary_index is None:
            primary_index = spec.replication.primary.pod_index

        diag = diagnose.diagnose_replication_cluster(self.cluster.name, spec.replicas,
                                                     primary_index, client, logger)
        coordinator = ReplicationFailoverCoordinator(
            self.cluster, spec, client, logger,
            cluster_healthy_timeout=config.ha_defaults.cluster_healthy_timeout)
        try:
            coordinator.reconcile(diag)
        except kopf.TemporaryError:
            self.publish_ready(False, consts.REASON_NOT_HEALTHY,
                               f"Primary {diag.primary.name} is {diag.primary.status.value}")
            raise

        switching = conditions.is_primary_switching(self.cluster.status.get("conditions"))
        if diag.primary_available and not switching:
            self.publish_ready(True, consts.REASON_HEALTHY, "Primary is available")
        elif switching:
            self.publish_ready(False, consts.REASON_SWITCH_PRIMARY, "Switching primary")
        else:
            self.publish_ready(False, consts.REASON_NOT_HEALTHY,
                               f"Primary {diag.primary.name} is {diag.primary.status.value}")

    def reconcile_standalone(self, client: MemberClient, logger: Logger) -> None:
        pod = utils.pod_name(self.cluster.name, 0)
        if not client.is_ready(pod):
            logger.info(f"{pod} not ready")
            self.publish_ready(False, consts.REASON_NOT_HEALTHY, f"{pod} not ready")
            return

        try:
            with connect_to_backend(self.cluster, logger, max_tries=1) as session:
                session.query_one("SELECT 1 AS ok")
        except mysql.connector.Error as e:
            logger.info(f"MariaDB {self.cluster} not answering: {e}")
            self.publish_ready(False, consts.REASON_NOT_HEALTHY, f"{pod} not answering")
            return
        self.publish_ready(True, consts.REASON_HEALTHY, "Running")

    def publish_ready(self, ready: bool, reason: str, message: str) -> None:
        conds = copy.deepcopy(self.cluster.status.get("conditions") or [])
        if conditions.set_ready(conds, ready, reason, message):
            self.cluster.update_status({"conditions": conds})
