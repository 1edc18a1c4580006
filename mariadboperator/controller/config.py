# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import os
from typing import Optional

from .utils import parse_duration, format_duration

debug = 0

# Constants
OPERATOR_VERSION = "0.3.0"

DEFAULT_MARIADB_PORT = 3306
DEFAULT_AGENT_PORT = 5555

# How often every MariaDB is reconciled, even when nothing changed
reconcile_interval: float = 30.0

webhook_host: Optional[str] = None
webhook_port: int = 9443

k8s_cluster_domain = os.getenv("MARIADB_OPERATOR_K8S_CLUSTER_DOMAIN",
                               default="cluster.local")


class HADefaults:
    """
    Default values for the HA related spec fields. Built once at startup and
    handed to every coordinator, which makes them easy to override in tests.
    All durations are in seconds.
    """

    def __init__(self, *,
                 cluster_healthy_timeout: float = 30,
                 cluster_bootstrap_timeout: float = 10 * 60,
                 pod_recovery_timeout: float = 5 * 60,
                 pod_sync_timeout: float = 5 * 60,
                 agent_port: int = DEFAULT_AGENT_PORT,
                 galera_replica_threads: int = 1,
                 primary_pod_index: int = 0,
                 automatic_failover: bool = True,
                 switchover_timeout: float = 10 * 60,
                 wait_point: str = "AfterSync",
                 gtid: str = "CurrentPos",
                 replica_connection_timeout: float = 10,
                 replica_connection_retries: int = 10,
                 replica_sync_timeout: float = 10,
                 sync_binlog: bool = True) -> None:
        self.cluster_healthy_timeout = cluster_healthy_timeout
        self.cluster_bootstrap_timeout = cluster_bootstrap_timeout
        self.pod_recovery_timeout = pod_recovery_timeout
        self.pod_sync_timeout = pod_sync_timeout
        self.agent_port = agent_port
        self.galera_replica_threads = galera_replica_threads
        self.primary_pod_index = primary_pod_index
        self.automatic_failover = automatic_failover
        self.switchover_timeout = switchover_timeout
        self.wait_point = wait_point
        self.gtid = gtid
        self.replica_connection_timeout = replica_connection_timeout
        self.replica_connection_retries = replica_connection_retries
        self.replica_sync_timeout = replica_sync_timeout
        self.sync_binlog = sync_binlog

    def __repr__(self) -> str:
        return (f"HADefaults: cluster_healthy_timeout={self.cluster_healthy_timeout} "
                f"cluster_bootstrap_timeout={self.cluster_bootstrap_timeout} "
                f"pod_recovery_timeout={self.pod_recovery_timeout} "
                f"pod_sync_timeout={self.pod_sync_timeout} "
                f"switchover_timeout={self.switchover_timeout} agent_port={self.agent_port}")


ha_defaults = HADefaults()


def _env_duration(name: str, default_value: float) -> float:
    value = os.getenv(name)
    if not value:
        return default_value
    return parse_duration(value)


def ha_defaults_from_env() -> HADefaults:
    return HADefaults(
        cluster_healthy_timeout=_env_duration(
            "MARIADB_OPERATOR_CLUSTER_HEALTHY_TIMEOUT", 30),
        cluster_bootstrap_timeout=_env_duration(
            "MARIADB_OPERATOR_CLUSTER_BOOTSTRAP_TIMEOUT", 10 * 60),
        pod_recovery_timeout=_env_duration(
            "MARIADB_OPERATOR_POD_RECOVERY_TIMEOUT", 5 * 60),
        pod_sync_timeout=_env_duration(
            "MARIADB_OPERATOR_POD_SYNC_TIMEOUT", 5 * 60),
        switchover_timeout=_env_duration(
            "MARIADB_OPERATOR_SWITCHOVER_TIMEOUT", 10 * 60),
        agent_port=int(os.getenv("MARIADB_OPERATOR_AGENT_PORT",
                                 default=str(DEFAULT_AGENT_PORT))))


def log_config_banner(logger) -> None:
    from importlib.metadata import distributions
    from .kubeutils import k8s_version

    logger.info(f"KUBERNETES_VERSION ={k8s_version()}")
    logger.info(f"OPERATOR_VERSION   ={OPERATOR_VERSION}")
    logger.info(f"RECONCILE_INTERVAL ={format_duration(reconcile_interval)}")
    logger.info(f"CLUSTER_HEALTHY_TIMEOUT   ={format_duration(ha_defaults.cluster_healthy_timeout)}")
    logger.info(f"CLUSTER_BOOTSTRAP_TIMEOUT ={format_duration(ha_defaults.cluster_bootstrap_timeout)}")
    logger.info(f"POD_RECOVERY_TIMEOUT      ={format_duration(ha_defaults.pod_recovery_timeout)}")
    logger.info(f"POD_SYNC_TIMEOUT          ={format_duration(ha_defaults.pod_sync_timeout)}")
    logger.info(f"SWITCHOVER_TIMEOUT        ={format_duration(ha_defaults.switchover_timeout)}")
    logger.info(f"AGENT_PORT         ={ha_defaults.agent_port}")
    logger.info(f"WEBHOOK            ={webhook_host}:{webhook_port}" if webhook_host else "WEBHOOK            =disabled")
    for dist in sorted(distributions(), key=lambda d: d.metadata["Name"] or ""):
        logger.info(f"{dist.metadata['Name']:20} = {dist.version:10}")


def config_from_env() -> None:
    global debug
    global ha_defaults
    global reconcile_interval
    global webhook_host
    global webhook_port

    level = os.getenv("MARIADB_OPERATOR_DEBUG")
    if level:
        level = int(level)
        if level > 0:
            debug = level

    ha_defaults = ha_defaults_from_env()
    reconcile_interval = _env_duration(
        "MARIADB_OPERATOR_RECONCILE_INTERVAL", reconcile_interval)

    webhook_host = os.getenv("MARIADB_OPERATOR_WEBHOOK_HOST") or None
    webhook_port = int(os.getenv("MARIADB_OPERATOR_WEBHOOK_PORT",
                                 default=str(webhook_port)))
