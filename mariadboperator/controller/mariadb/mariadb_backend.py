# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import abc
from logging import Logger
from typing import Callable, Optional

from .. import config, consts, sqlutils
from ..api_utils import ApiSpecError, dget_dict, dget_int, dget_str

# (namespace, secret key reference) -> value
SecretReader = Callable[[str, dict], str]


class MariaDBBackend(abc.ABC):
    """
    What the operator needs from anything MariaDB-like, whether it runs
    in the cluster or not.
    """

    @abc.abstractmethod
    def connection_params(self) -> dict:
        ...

    @property
    @abc.abstractmethod
    def tls_enabled(self) -> bool:
        ...

    @property
    @abc.abstractmethod
    def image(self) -> Optional[str]:
        ...

    @property
    @abc.abstractmethod
    def replicas(self) -> int:
        ...

    @abc.abstractmethod
    def is_ready(self) -> bool:
        ...


class CustomObjectMixin:
    plural: str = ""
    kind: str = ""

    obj: dict

    @property
    def metadata(self) -> dict:
        return self.obj["metadata"]

    @property
    def name(self) -> str:
        return self.metadata["name"]

    @property
    def namespace(self) -> str:
        return self.metadata["namespace"]

    @property
    def uid(self) -> str:
        return self.metadata["uid"]

    @property
    def spec(self) -> dict:
        return self.obj.get("spec") or {}

    @property
    def status(self) -> dict:
        return self.obj.get("status") or {}

    @property
    def deleting(self) -> bool:
        return self.metadata.get("deletionTimestamp") is not None

    def self_ref(self, field_path: Optional[str] = None) -> dict:
        ref = {
            "apiVersion": consts.API_VERSION,
            "kind": self.kind,
            "name": self.name,
            "namespace": self.namespace,
            "resourceVersion": self.metadata["resourceVersion"],
            "uid": self.uid
        }
        if field_path:
            ref["fieldPath"] = field_path
        return ref

    def is_ready(self) -> bool:
        for c in self.status.get("conditions") or []:
            if c.get("type") == consts.CONDITION_READY:
                return c.get("status") == "True"
        return False


class ExternalMariaDB(CustomObjectMixin, MariaDBBackend):
    """
    A MariaDB server the operator doesn't run, reached by host and port.
    """
    plural = consts.EXTERNALMARIADB_PLURAL
    kind = consts.EXTERNALMARIADB_KIND

    def __init__(self, obj: dict, secret_reader: Optional[SecretReader] = None) -> None:
        self.obj = obj
        self.secret_reader = secret_reader

    def __repr__(self):
        return f"<ExternalMariaDB {self.name}>"

    def connection_params(self) -> dict:
        params = {
            "host": dget_str(self.spec, "host", "spec"),
            "port": dget_int(self.spec, "port", "spec",
                             default_value=config.DEFAULT_MARIADB_PORT),
            "user": dget_str(self.spec, "username", "spec", default_value="root")
        }
        ref = dget_dict(self.spec, "passwordSecretKeyRef", "spec", {})
        if ref:
            if not self.secret_reader:
                raise ApiSpecError(f"No way to read spec.passwordSecretKeyRef of {self.name}")
            params["password"] = self.secret_reader(self.namespace, ref)
        return params

    @property
    def tls_enabled(self) -> bool:
        return bool((self.spec.get("tls") or {}).get("enabled", False))

    @property
    def image(self) -> Optional[str]:
        return self.spec.get("image") or None

    @property
    def replicas(self) -> int:
        return 1


def connect_to_backend(backend: MariaDBBackend, logger: Logger,
                       **kwargs) -> sqlutils.SessionWrap:
    params = backend.connection_params()
    return sqlutils.connect_to_member(params["host"], params["port"], params["user"],
                                      params.get("password", ""), logger,
                                      tls=backend.tls_enabled, **kwargs)
