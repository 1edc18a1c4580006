# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger
from typing import List, Optional

import kopf
from kopf._cogs.structs.bodies import Body
from kubernetes.client.rest import ApiException

from .. import config, consts
from ..kubeutils import k8s_version
from ..utils import g_ephemeral_pod_state
from ..watch_registry import g_watch_registry
from .mariadb_api import MariaDB, MariaDBPod
from .mariadb_controller import ClusterMutex, MariaDBController


def reconcile(cluster: MariaDB, logger: Logger, context: str,
              pod: Optional[MariaDBPod] = None) -> None:
    with ClusterMutex(cluster, pod, context=context):
        MariaDBController(cluster).reconcile(logger)


def register_existing_mariadbs(clusters: List[MariaDB], logger: Logger) -> None:
    for cluster in clusters:
        if cluster.deleting:
            continue
        ctl = MariaDBController(cluster)
        try:
            ctl.parse_spec(logger)
        except kopf.PermanentError:
            continue
        ctl.register_references()
        logger.info(f"Watching references of {cluster}")


def reconcile_dependents(kind: str, namespace: str, name: str, logger: Logger) -> None:
    for ns, mariadb_name in g_watch_registry.get_dependents(kind, namespace, name):
        try:
            cluster = MariaDB.read(ns, mariadb_name)
        except ApiException as e:
            if e.status == 404:
                g_watch_registry.remove(ns, mariadb_name)
                continue
            raise
        logger.info(f"{kind} {namespace}/{name} changed, reconciling {cluster}")
        reconcile(cluster, logger, context=f"{kind.lower()}-update")


@kopf.on.create(consts.GROUP, consts.VERSION,
                consts.MARIADB_PLURAL)  # type: ignore
def on_mariadb_create(name: str, namespace: Optional[str], body: Body,
                      logger: Logger, **kwargs) -> None:
    logger.info(
        f"Initializing MariaDB name={name} namespace={namespace} on K8s {k8s_version()}")

    cluster = MariaDB(body)
    cluster.log_mariadb_info(logger)

    reconcile(cluster, logger, context="on_mariadb_create")


@kopf.on.field(consts.GROUP, consts.VERSION, consts.MARIADB_PLURAL,
               field="spec")  # type: ignore
def on_mariadb_spec(old, new, body: Body, logger: Logger, **kwargs) -> None:
    if old is None:
        # creation, handled by on_mariadb_create
        return

    cluster = MariaDB(body)
    logger.info(f"Spec of {cluster} changed")
    reconcile(cluster, logger, context="on_mariadb_spec")


@kopf.timer(consts.GROUP, consts.VERSION, consts.MARIADB_PLURAL,
            interval=config.reconcile_interval,
            initial_delay=config.reconcile_interval)  # type: ignore
def on_mariadb_timer(body: Body, logger: Logger, **kwargs) -> None:
    cluster = MariaDB(body)
    if cluster.deleting:
        return
    reconcile(cluster, logger, context="on_mariadb_timer")


@kopf.on.delete(consts.GROUP, consts.VERSION,
                consts.MARIADB_PLURAL)  # type: ignore
def on_mariadb_delete(name: str, namespace: str, logger: Logger, **kwargs) -> None:
    logger.info(f"Deleting MariaDB {namespace}/{name}")
    g_watch_registry.remove(namespace, name)


@kopf.on.event("", "v1", "pods",
               labels={consts.NAME_LABEL: consts.NAME_LABEL_VALUE})  # type: ignore
def on_pod_event(event, body: Body, logger: Logger, **kwargs) -> None:
    """
    Reconcile the owning MariaDB when one of its pods becomes ready or not
    ready, or when mariadb restarts inside it.
    """
    pod = MariaDBPod.from_json(body)
    if event.get("type") == "DELETED" or not pod.mariadb_name:
        return

    ready = pod.ready
    restarts = pod.get_container_restarts(consts.MARIADB_CONTAINER)
    last = g_ephemeral_pod_state.get(pod, "pod-signals")
    if last == (ready, restarts):
        return
    g_ephemeral_pod_state.set(pod, "pod-signals", (ready, restarts), context="on_pod_event")
    if last is None and not ready:
        # first sighting of a pod that is still starting
        return

    logger.debug(f"POD EVENT: pod={pod.name} ready={ready} restarts={restarts} last={last}")

    cluster = pod.get_mariadb()
    if not cluster:
        logger.info(f"Ignoring event for pod {pod.name} belonging to a deleted MariaDB")
        return

    try:
        reconcile(cluster, logger, context="on_pod_event", pod=pod)
    except kopf.TemporaryError as e:
        # event handlers aren't retried, the timer picks it up
        logger.info(f"Reconcile of {cluster} after pod event deferred: {e}")


@kopf.on.update("", "v1", "secrets",
                when=lambda namespace, name, **_: g_watch_registry.is_watched(
                    "Secret", namespace, name))  # type: ignore
def on_secret_update(name: str, namespace: str, logger: Logger, **kwargs) -> None:
    reconcile_dependents("Secret", namespace, name, logger)


@kopf.on.update("", "v1", "configmaps",
                when=lambda namespace, name, **_: g_watch_registry.is_watched(
                    "ConfigMap", namespace, name))  # type: ignore
def on_configmap_update(name: str, namespace: str, logger: Logger, **kwargs) -> None:
    reconcile_dependents("ConfigMap", namespace, name, logger)
