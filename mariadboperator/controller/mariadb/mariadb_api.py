# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import copy
import typing
from logging import Logger
from textwrap import indent
from typing import Optional, cast

import yaml
from kubernetes import client
from kubernetes.client.rest import ApiException

from .. import config, consts, utils
from ..api_utils import ApiSpecError
from ..errors import StatusConflict
from ..k8sobject import K8sInterfaceObject
from ..kubeutils import api_client, api_core, api_customobj, catch_404, is_conflict
from .mariadb_backend import CustomObjectMixin, MariaDBBackend
from .mariadb_spec import MariaDBSpec


def get_secret_key(namespace: str, ref: dict) -> str:
    if not ref.get("name") or not ref.get("key"):
        raise ApiSpecError(f"Invalid secret reference {ref}")
    secret = cast(client.V1Secret, api_core.read_namespaced_secret(ref["name"], namespace))
    if not secret.data or ref["key"] not in secret.data:
        raise ApiSpecError(f"Secret {ref['name']} has no key {ref['key']}")
    return utils.b64decode(secret.data[ref["key"]])


class MariaDB(CustomObjectMixin, MariaDBBackend, K8sInterfaceObject):
    plural = consts.MARIADB_PLURAL
    kind = consts.MARIADB_KIND

    def __init__(self, obj: dict) -> None:
        super().__init__()

        # kopf hands in a read-only Body view
        self.obj: dict = dict(obj)
        self._parsed_spec: Optional[MariaDBSpec] = None

    def __str__(self):
        return f"{self.namespace}/{self.name}"

    def __repr__(self):
        return f"<MariaDB {self.name}>"

    @classmethod
    def _get(cls, ns: str, name: str) -> dict:
        return cast(dict, api_customobj.get_namespaced_custom_object(
            consts.GROUP, consts.VERSION, ns, consts.MARIADB_PLURAL, name))

    @classmethod
    def read(cls, ns: str, name: str) -> 'MariaDB':
        return MariaDB(cls._get(ns, name))

    def reload(self) -> None:
        self.obj = self._get(self.namespace, self.name)
        self._parsed_spec = None

    @property
    def parsed_spec(self) -> MariaDBSpec:
        if not self._parsed_spec:
            self.parse_spec()
            assert self._parsed_spec

        return self._parsed_spec

    def parse_spec(self) -> None:
        self._parsed_spec = MariaDBSpec(self.namespace, self.name, self.spec,
                                        config.ha_defaults)

    def log_mariadb_info(self, logger: Logger) -> None:
        ha = {k: self.spec[k] for k in ("replicas", "galera", "replication")
              if k in self.spec}
        logger.info(f"MariaDB {self.namespace}/{self.name} HA settings:\n"
                    f"{indent(yaml.safe_dump(ha, default_flow_style=False), '    ')}")

    # ## Status store ##

    def update_status(self, patch: dict) -> None:
        """
        Replace the status fields in patch (None deletes) on the object as it
        was read and write it back guarded by its resourceVersion. Raises
        StatusConflict if someone else wrote the object in between.
        """
        body = copy.deepcopy(self.obj)
        body["status"] = utils.replace_fields(copy.deepcopy(self.status), patch)
        try:
            self.obj = cast(dict, api_customobj.replace_namespaced_custom_object_status(
                consts.GROUP, consts.VERSION, self.namespace, consts.MARIADB_PLURAL,
                self.name, body=body))
        except ApiException as e:
            if is_conflict(e):
                raise StatusConflict(self.name, self.metadata.get("resourceVersion"))
            raise

    def patch_spec(self, patch: dict) -> None:
        self.obj = cast(dict, api_customobj.patch_namespaced_custom_object(
            consts.GROUP, consts.VERSION, self.namespace, consts.MARIADB_PLURAL,
            self.name, body={"spec": patch}))
        self._parsed_spec = None

    # ## Capabilities ##

    def connection_params(self) -> dict:
        return {
            "host": f"{self.name}.{self.namespace}.svc.{config.k8s_cluster_domain}",
            "port": self.parsed_spec.port,
            "user": "root",
            "password": self.get_root_password()
        }

    @property
    def tls_enabled(self) -> bool:
        return self.parsed_spec.tls_enabled

    @property
    def image(self) -> Optional[str]:
        return self.parsed_spec.image or None

    @property
    def replicas(self) -> int:
        return self.parsed_spec.replicas

    def get_root_password(self) -> str:
        return get_secret_key(self.namespace, self.parsed_spec.root_password_secret_key_ref)

    def pod_fqdn(self, pod: str) -> str:
        return f"{pod}.{self.name}-internal.{self.namespace}.svc.{config.k8s_cluster_domain}"

    def get_pod(self, name: str) -> Optional['MariaDBPod']:
        pod = catch_404(lambda: api_core.read_namespaced_pod(name, self.namespace))
        return MariaDBPod(cast(client.V1Pod, pod)) if pod else None

    def get_pods(self) -> typing.List['MariaDBPod']:
        objects = cast(client.V1PodList, api_core.list_namespaced_pod(
            self.namespace, label_selector=f"{consts.INSTANCE_LABEL}={self.name}"))
        pods = [MariaDBPod(o) for o in objects.items]
        pods.sort(key=lambda pod: pod.index)
        return pods


def get_all_mariadbs(ns: Optional[str] = None) -> typing.List[MariaDB]:
    if ns is None:
        objects = cast(dict, api_customobj.list_cluster_custom_object(
            consts.GROUP, consts.VERSION, consts.MARIADB_PLURAL))
    else:
        objects = cast(dict, api_customobj.list_namespaced_custom_object(
            consts.GROUP, consts.VERSION, ns, consts.MARIADB_PLURAL))
    return [MariaDB(o) for o in objects["items"]]


class MariaDBPod(K8sInterfaceObject):
    def __init__(self, pod: client.V1Pod):
        super().__init__()

        self.pod: client.V1Pod = pod

    @classmethod
    def from_json(cls, pod: dict) -> 'MariaDBPod':
        class Wrapper:
            def __init__(self, data):
                import json
                self.data = json.dumps(data, default=str)

        return MariaDBPod(cast(client.V1Pod, api_client.deserialize(
            Wrapper(dict(pod)), client.V1Pod)))

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"<MariaDBPod {self.name}>"

    @property
    def metadata(self) -> client.V1ObjectMeta:
        return cast(client.V1ObjectMeta, self.pod.metadata)

    @property
    def name(self) -> str:
        return cast(str, self.metadata.name)

    @property
    def namespace(self) -> str:
        return cast(str, self.metadata.namespace)

    @property
    def index(self) -> int:
        return utils.pod_index(self.name)

    @property
    def mariadb_name(self) -> Optional[str]:
        return (self.metadata.labels or {}).get(consts.INSTANCE_LABEL)

    @property
    def deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def self_ref(self, field_path: Optional[str] = None) -> dict:
        ref = {
            "apiVersion": "v1",
            "kind": "Pod",
            "name": self.name,
            "namespace": self.namespace,
            "resourceVersion": self.metadata.resource_version,
            "uid": self.metadata.uid
        }
        if field_path:
            ref["fieldPath"] = field_path
        return ref

    def check_condition(self, cond_type: str) -> Optional[bool]:
        status = self.pod.status
        if status and status.conditions:
            for c in status.conditions:
                if c.type == cond_type:
                    return c.status == "True"
        return None

    @property
    def ready(self) -> bool:
        return bool(self.check_condition("Ready")) and not self.deleting

    def get_container_restarts(self, container_name: str) -> Optional[int]:
        status = self.pod.status
        if status and status.container_statuses:
            for cs in status.container_statuses:
                if cs.name == container_name:
                    return cs.restart_count
        return None

    def get_mariadb(self) -> Optional[MariaDB]:
        if not self.mariadb_name:
            return None
        name = self.mariadb_name
        return catch_404(lambda: MariaDB.read(self.namespace, name))
