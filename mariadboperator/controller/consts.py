# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

GROUP = "k8s.mariadb.com"
VERSION = "v1alpha1"
API_VERSION = GROUP+"/"+VERSION

MARIADB_KIND = "MariaDB"
MARIADB_PLURAL = "mariadbs"

EXTERNALMARIADB_KIND = "ExternalMariaDB"
EXTERNALMARIADB_PLURAL = "externalmariadbs"

# Label used to find the pods of a MariaDB
INSTANCE_LABEL = "app.kubernetes.io/instance"
NAME_LABEL = "app.kubernetes.io/name"
NAME_LABEL_VALUE = "mariadb"

MARIADB_CONTAINER = "mariadb"
AGENT_CONTAINER = "agent"

# Condition types
CONDITION_READY = "Ready"
CONDITION_GALERA_READY = "GaleraReady"
CONDITION_GALERA_CONFIGURED = "GaleraConfigured"
CONDITION_PRIMARY_SWITCHED = "PrimarySwitched"
CONDITION_REPLICATION_CONFIGURED = "ReplicationConfigured"

# Condition reasons
REASON_HEALTHY = "Healthy"
REASON_NOT_HEALTHY = "NotHealthy"
REASON_FAILED = "Failed"
REASON_SWITCH_PRIMARY = "SwitchPrimary"
REASON_PRIMARY_SWITCHED = "PrimarySwitched"
REASON_SWITCHOVER_TIMEOUT = "SwitchoverTimeout"
REASON_GALERA_RECOVERING = "GaleraRecovering"
REASON_GALERA_BOOTSTRAPPING = "GaleraBootstrapping"
REASON_GALERA_JOINING = "GaleraJoining"
REASON_GALERA_SUSPECT = "GaleraSuspect"
REASON_GALERA_CONFIGURED = "GaleraConfigured"
REASON_REPLICATION_CONFIGURED = "ReplicationConfigured"

# Event reasons
EVENT_GALERA_CLUSTER_BOOTSTRAP = "GaleraClusterBootstrap"
EVENT_GALERA_CLUSTER_BOOTSTRAP_TIMEOUT = "GaleraClusterBootstrapTimeout"
EVENT_GALERA_POD_STATE_FETCHED = "GaleraPodStateFetched"
EVENT_GALERA_POD_RECOVERED = "GaleraPodRecovered"
EVENT_GALERA_POD_SYNC_TIMEOUT = "GaleraPodSyncTimeout"
EVENT_GALERA_CLUSTER_HEALTHY = "GaleraClusterHealthy"
EVENT_GALERA_CLUSTER_NOT_HEALTHY = "GaleraClusterNotHealthy"
EVENT_GALERA_NO_BOOTSTRAP_SOURCE = "GaleraNoBootstrapSource"

EVENT_PRIMARY_SWITCHED = "PrimarySwitched"
EVENT_PRIMARY_LOCK = "PrimaryLock"
EVENT_PRIMARY_READONLY = "PrimaryReadonly"
EVENT_REPLICA_SYNC = "ReplicaSync"
EVENT_REPLICA_SYNC_ERR = "ReplicaSyncErr"
EVENT_PRIMARY_NEW = "PrimaryNew"
EVENT_REPLICA_CONN = "ReplicaConn"
EVENT_PRIMARY_TO_REPLICA = "PrimaryToReplica"
EVENT_PRIMARY_FAILOVER = "PrimaryFailover"
EVENT_REPLICATION_RESET_STALE_SWITCHOVER = "ReplicationResetStaleSwitchover"
EVENT_SWITCHOVER_TIMEOUT = "PrimarySwitchoverTimeout"

EVENT_INVALID_ARGUMENT = "InvalidArgument"

# Annotation for the kopf peering and diff storage of this operator
OPERATOR_ANNOTATION_PREFIX = "operator.k8s.mariadb.com"
