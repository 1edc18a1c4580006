# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import Optional

from ..api_utils import (ApiSpecError, GtidMode, WaitPoint, dget_bool, dget_dict,
                         dget_duration, dget_enum, dget_int, dget_str)
from ..config import HADefaults
from .. import config


class GaleraRecoverySpec:
    enabled: bool = True
    cluster_healthy_timeout: float = 30
    cluster_bootstrap_timeout: float = 600
    pod_recovery_timeout: float = 300
    pod_sync_timeout: float = 300
    force_cluster_bootstrap_in_pod: Optional[str] = None

    def parse(self, spec: dict, prefix: str, defaults: HADefaults) -> None:
        self.enabled = dget_bool(spec, "enabled", prefix, default_value=True)
        self.cluster_healthy_timeout = dget_duration(
            spec, "clusterHealthyTimeout", prefix,
            default_value=defaults.cluster_healthy_timeout)
        self.cluster_bootstrap_timeout = dget_duration(
            spec, "clusterBootstrapTimeout", prefix,
            default_value=defaults.cluster_bootstrap_timeout)
        self.pod_recovery_timeout = dget_duration(
            spec, "podRecoveryTimeout", prefix,
            default_value=defaults.pod_recovery_timeout)
        self.pod_sync_timeout = dget_duration(
            spec, "podSyncTimeout", prefix,
            default_value=defaults.pod_sync_timeout)
        self.force_cluster_bootstrap_in_pod = dget_str(
            spec, "forceClusterBootstrapInPod", prefix, default_value="") or None


class GaleraSpec:
    enabled: bool = False
    replica_threads: int = 1
    agent_port: int = config.DEFAULT_AGENT_PORT
    recovery: GaleraRecoverySpec

    def __init__(self) -> None:
        self.recovery = GaleraRecoverySpec()

    def parse(self, spec: dict, prefix: str, defaults: HADefaults) -> None:
        self.enabled = dget_bool(spec, "enabled", prefix, default_value=False)
        self.replica_threads = dget_int(spec, "replicaThreads", prefix,
                                        default_value=defaults.galera_replica_threads)
        agent = dget_dict(spec, "agent", prefix, {})
        self.agent_port = dget_int(agent, "port", prefix+".agent",
                                   default_value=defaults.agent_port)
        self.recovery.parse(dget_dict(spec, "recovery", prefix, {}),
                            prefix+".recovery", defaults)

    def validate(self, prefix: str) -> None:
        if self.replica_threads < 1:
            raise ApiSpecError(f"{prefix}.replicaThreads must be at least 1")
        if self.recovery.cluster_bootstrap_timeout <= 0:
            raise ApiSpecError(f"{prefix}.recovery.clusterBootstrapTimeout must be positive")


class PrimarySpec:
    pod_index: int = 0
    automatic_failover: bool = True
    switchover_timeout: float = 600

    def parse(self, spec: dict, prefix: str, defaults: HADefaults) -> None:
        self.pod_index = dget_int(spec, "podIndex", prefix,
                                  default_value=defaults.primary_pod_index)
        self.automatic_failover = dget_bool(spec, "automaticFailover", prefix,
                                            default_value=defaults.automatic_failover)
        self.switchover_timeout = dget_duration(
            spec, "switchoverTimeout", prefix,
            default_value=defaults.switchover_timeout)


class ReplicaSpec:
    wait_point: WaitPoint = WaitPoint.AfterSync
    gtid: GtidMode = GtidMode.CurrentPos
    connection_timeout: float = 10
    connection_retries: int = 10
    sync_timeout: float = 10

    def parse(self, spec: dict, prefix: str, defaults: HADefaults) -> None:
        self.wait_point = dget_enum(spec, "waitPoint", prefix,
                                    default_value=defaults.wait_point,
                                    enum_type=WaitPoint)
        self.gtid = dget_enum(spec, "gtid", prefix,
                              default_value=defaults.gtid, enum_type=GtidMode)
        self.connection_timeout = dget_duration(
            spec, "connectionTimeout", prefix,
            default_value=defaults.replica_connection_timeout)
        self.connection_retries = dget_int(
            spec, "connectionRetries", prefix,
            default_value=defaults.replica_connection_retries)
        self.sync_timeout = dget_duration(
            spec, "syncTimeout", prefix,
            default_value=defaults.replica_sync_timeout)


class ReplicationSpec:
    enabled: bool = False
    sync_binlog: bool = True
    primary: PrimarySpec
    replica: ReplicaSpec

    def __init__(self) -> None:
        self.primary = PrimarySpec()
        self.replica = ReplicaSpec()

    def parse(self, spec: dict, prefix: str, defaults: HADefaults) -> None:
        self.enabled = dget_bool(spec, "enabled", prefix, default_value=False)
        self.sync_binlog = dget_bool(spec, "syncBinlog", prefix,
                                     default_value=defaults.sync_binlog)
        self.primary.parse(dget_dict(spec, "primary", prefix, {}),
                           prefix+".primary", defaults)
        self.replica.parse(dget_dict(spec, "replica", prefix, {}),
                           prefix+".replica", defaults)


class MariaDBSpec:
    """
    The HA relevant parts of a MariaDB spec. Fields that only matter for
    rendering Kubernetes objects are left alone.
    """

    def __init__(self, namespace: str, name: str, spec: dict,
                 defaults: Optional[HADefaults] = None) -> None:
        self.namespace = namespace
        self.name = name
        self.defaults = defaults or config.ha_defaults
        self.galera = GaleraSpec()
        self.replication = ReplicationSpec()
        self.load(spec)

    def load(self, spec: dict) -> None:
        self.replicas = dget_int(spec, "replicas", "spec", default_value=1)
        self.port = dget_int(spec, "port", "spec",
                             default_value=config.DEFAULT_MARIADB_PORT)
        self.image = dget_str(spec, "image", "spec", default_value="")
        self.root_password_secret_key_ref = dget_dict(
            spec, "rootPasswordSecretKeyRef", "spec", {})
        self.password_secret_key_ref = dget_dict(
            spec, "passwordSecretKeyRef", "spec", {})
        self.my_cnf_config_map_key_ref = dget_dict(
            spec, "myCnfConfigMapKeyRef", "spec", {})
        self.tls = dget_dict(spec, "tls", "spec", {})

        if "galera" in spec:
            self.galera.parse(dget_dict(spec, "galera", "spec"),
                              "spec.galera", self.defaults)
        if "replication" in spec:
            self.replication.parse(dget_dict(spec, "replication", "spec"),
                                   "spec.replication", self.defaults)

    @property
    def ha_enabled(self) -> bool:
        return self.galera.enabled or self.replication.enabled

    @property
    def tls_enabled(self) -> bool:
        return bool(self.tls.get("enabled", False))

    def referenced_secrets(self) -> list[str]:
        names = []
        for ref in (self.root_password_secret_key_ref, self.password_secret_key_ref):
            if ref.get("name") and ref["name"] not in names:
                names.append(ref["name"])
        return names

    def referenced_config_maps(self) -> list[str]:
        name = self.my_cnf_config_map_key_ref.get("name")
        return [name] if name else []

    def validate(self) -> None:
        if self.replicas < 0:
            raise ApiSpecError("spec.replicas must not be negative")
        if self.galera.enabled and self.replication.enabled:
            raise ApiSpecError(
                "Only one HA mode may be enabled, spec.galera and spec.replication are both enabled")
        if self.replicas > 1 and not self.ha_enabled:
            raise ApiSpecError(
                "Multiple replicas require spec.galera or spec.replication to be enabled")
        if self.ha_enabled and self.replicas <= 1:
            raise ApiSpecError(
                "High availability requires spec.replicas to be greater than 1")

        if self.galera.enabled:
            self.galera.validate("spec.galera")
            force = self.galera.recovery.force_cluster_bootstrap_in_pod
            if force and force not in [f"{self.name}-{i}" for i in range(self.replicas)]:
                raise ApiSpecError(
                    f"spec.galera.recovery.forceClusterBootstrapInPod '{force}' is not a Pod of {self.name}")

        if self.replication.enabled:
            index = self.replication.primary.pod_index
            if index < 0 or index >= self.replicas:
                raise ApiSpecError(
                    f"spec.replication.primary.podIndex {index} out of bounds, must be between 0 and {self.replicas - 1}")
            if self.replication.replica.connection_retries < 0:
                raise ApiSpecError(
                    "spec.replication.replica.connectionRetries must not be negative")
            if self.replication.primary.switchover_timeout <= 0:
                raise ApiSpecError(
                    "spec.replication.primary.switchoverTimeout must be positive")
