# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import pytest

from mariadboperator.controller.api_utils import ApiSpecError, GtidMode, WaitPoint
from mariadboperator.controller.config import HADefaults
from mariadboperator.controller.mariadb.mariadb_spec import MariaDBSpec


def parse(spec: dict, defaults: HADefaults = None) -> MariaDBSpec:
    s = MariaDBSpec("default", "mdb", spec, defaults or HADefaults())
    s.validate()
    return s


def test_standalone_defaults() -> None:
    spec = parse({})
    assert spec.replicas == 1
    assert spec.port == 3306
    assert not spec.ha_enabled
    assert not spec.tls_enabled


def test_galera_defaults() -> None:
    spec = parse({"replicas": 3, "galera": {"enabled": True}})
    recovery = spec.galera.recovery
    assert spec.ha_enabled
    assert recovery.enabled
    assert recovery.cluster_healthy_timeout == 30
    assert recovery.cluster_bootstrap_timeout == 600
    assert recovery.pod_recovery_timeout == 300
    assert recovery.pod_sync_timeout == 300
    assert recovery.force_cluster_bootstrap_in_pod is None
    assert spec.galera.agent_port == 5555


def test_galera_durations() -> None:
    spec = parse({"replicas": 3, "galera": {"enabled": True, "recovery": {
        "clusterHealthyTimeout": "1m",
        "clusterBootstrapTimeout": "1h",
        "podRecoveryTimeout": "90s",
        "podSyncTimeout": "2m30s",
        "forceClusterBootstrapInPod": "mdb-1"}}})
    recovery = spec.galera.recovery
    assert recovery.cluster_healthy_timeout == 60
    assert recovery.cluster_bootstrap_timeout == 3600
    assert recovery.pod_recovery_timeout == 90
    assert recovery.pod_sync_timeout == 150
    assert recovery.force_cluster_bootstrap_in_pod == "mdb-1"


def test_defaults_come_from_operator_config() -> None:
    defaults = HADefaults(cluster_healthy_timeout=45, primary_pod_index=1)
    spec = parse({"replicas": 3, "galera": {"enabled": True}}, defaults)
    assert spec.galera.recovery.cluster_healthy_timeout == 45

    spec = parse({"replicas": 3, "replication": {"enabled": True}}, defaults)
    assert spec.replication.primary.pod_index == 1


def test_replication() -> None:
    spec = parse({"replicas": 3, "replication": {
        "enabled": True,
        "primary": {"podIndex": 2, "automaticFailover": False, "switchoverTimeout": "15m"},
        "replica": {"waitPoint": "AfterCommit", "gtid": "SlavePos", "syncTimeout": "30s"}}})
    assert spec.replication.primary.pod_index == 2
    assert not spec.replication.primary.automatic_failover
    assert spec.replication.primary.switchover_timeout == 900
    assert spec.replication.replica.wait_point == WaitPoint.AfterCommit
    assert spec.replication.replica.wait_point.mariadb_format() == "AFTER_COMMIT"
    assert spec.replication.replica.gtid == GtidMode.SlavePos
    assert spec.replication.replica.gtid.mariadb_format() == "slave_pos"
    assert spec.replication.replica.sync_timeout == 30


def test_replication_defaults() -> None:
    spec = parse({"replicas": 2, "replication": {"enabled": True}})
    assert spec.replication.primary.pod_index == 0
    assert spec.replication.primary.automatic_failover
    assert spec.replication.primary.switchover_timeout == 600
    assert spec.replication.replica.wait_point == WaitPoint.AfterSync
    assert spec.replication.replica.gtid == GtidMode.CurrentPos


def test_referenced_objects() -> None:
    spec = parse({
        "rootPasswordSecretKeyRef": {"name": "mariadb", "key": "root-password"},
        "passwordSecretKeyRef": {"name": "mariadb", "key": "password"},
        "myCnfConfigMapKeyRef": {"name": "mariadb-cnf", "key": "my.cnf"}})
    assert spec.referenced_secrets() == ["mariadb"]
    assert spec.referenced_config_maps() == ["mariadb-cnf"]


@pytest.mark.parametrize("spec,message", [
    ({"replicas": -1}, "must not be negative"),
    ({"replicas": 3, "galera": {"enabled": True, "replicaThreads": 0}}, "replicaThreads"),
    ({"replicas": 3, "replication": {"enabled": True, "replica": {"waitPoint": "Never"}}},
     "must be one of AfterSync,AfterCommit"),
    ({"replicas": 3, "replication": {"enabled": True, "primary": {"podIndex": -1}}},
     "out of bounds"),
    ({"replicas": 3, "replication": {"enabled": True, "primary": {"automaticFailover": "yes"}}},
     "expected to be a Boolean"),
    ({"replicas": 3, "replication": {"enabled": True, "primary": {"switchoverTimeout": "0s"}}},
     "switchoverTimeout must be positive"),
    ({"replicas": 3, "galera": "on"}, "spec.galera expected to be a Map"),
])
def test_invalid(spec: dict, message: str) -> None:
    with pytest.raises(ApiSpecError) as e:
        parse(spec)
    assert message in str(e.value)
