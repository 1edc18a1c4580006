# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import logging
import threading
from typing import Dict, Optional, Tuple

from kubernetes.client.rest import ApiException

from .kubeutils import api_core
from .utils import isotime, utcnow

logger = logging.getLogger("k8sobject")

g_component = None
g_host = None

# Identical events for the same object are posted at most once per window
EVENT_DEDUP_SECONDS = 60

EVENT_MESSAGE_MAX = 1024


class EventRecorder:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.last_posted: Dict[Tuple[str, str, str, str], float] = {}

    def should_post(self, uid: str, type: str, reason: str, message: str) -> bool:
        key = (uid, type, reason, message)
        now = utcnow().timestamp()
        with self.lock:
            last = self.last_posted.get(key)
            if last is not None and now - last < EVENT_DEDUP_SECONDS:
                return False
            self.last_posted[key] = now
            if len(self.last_posted) > 1000:
                cutoff = now - EVENT_DEDUP_SECONDS
                self.last_posted = {k: t for k, t in self.last_posted.items()
                                    if t >= cutoff}
        return True

    def post(self, namespace: str, object_ref: dict, type: str, action: str,
             reason: str, message: str) -> None:
        message = message[:EVENT_MESSAGE_MAX]
        if not self.should_post(object_ref.get("uid") or object_ref.get("name", ""),
                                type, reason, message):
            return

        body = {
            "action": action,
            "eventTime": isotime(),
            "involvedObject": object_ref,
            "message": message,
            "metadata": {
                "namespace": namespace,
                "generateName": "mariadb-operator-evt-",
            },
            "reason": reason,
            "reportingComponent": f"k8s.mariadb.com/mariadb-operator-{g_component}",
            "reportingInstance": f"{g_host}",
            "source": {
                "component": g_component,
                "host": g_host
            },
            "type": type
        }
        try:
            api_core.create_namespaced_event(namespace, body)
        except ApiException as e:
            # an event that can't be posted must not fail the reconcile
            logger.warning(f"Could not post event {reason} for {object_ref.get('name')}: {e.reason}")


g_event_recorder = EventRecorder()


class K8sInterfaceObject:
    """
    Base class for objects that post Kubernetes events about themselves.

    Events are for what a user of the cluster should see in
    kubectl describe. Everything else goes to the log.
    """

    @property
    def name(self) -> str:
        raise NotImplementedError()

    @property
    def namespace(self) -> str:
        raise NotImplementedError()

    def self_ref(self, field: Optional[str] = None) -> dict:
        raise NotImplementedError()

    def _event(self, type: str, action: str, reason: str, message: str,
               field: Optional[str]) -> None:
        g_event_recorder.post(self.namespace, self.self_ref(field), type=type,
                              action=action, reason=reason, message=message)

    def info(self, *, action: str, reason: str, message: str,
             field: Optional[str] = None) -> None:
        self._event("Normal", action, reason, message, field)

    def warn(self, *, action: str, reason: str, message: str,
             field: Optional[str] = None) -> None:
        self._event("Warning", action, reason, message, field)

    def error(self, *, action: str, reason: str, message: str,
              field: Optional[str] = None) -> None:
        # core/v1 Events only know Normal and Warning
        self._event("Warning", action, reason, message, field)
