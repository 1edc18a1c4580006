# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger
from typing import Optional

import kopf

from .. import config, consts
from ..api_utils import ApiSpecError
from ..mariadb.mariadb_spec import MariaDBSpec
from . import policy


def validate_mariadb(namespace: str, name: str, new: dict, old: Optional[dict],
                     status: Optional[dict]) -> policy.AdmissionResult:
    """
    Full admission check of a MariaDB create (old is None) or update.
    """
    try:
        spec = MariaDBSpec(namespace, name, new.get("spec") or {},
                           config.ha_defaults)
        spec.validate()
    except ApiSpecError as e:
        return policy.AdmissionResult(False, str(e))

    if old is None:
        return policy.AdmissionResult(True)

    return policy.review({"spec": old.get("spec") or {}},
                         {"spec": new.get("spec") or {}}, status)


@kopf.on.validate(consts.GROUP, consts.VERSION, consts.MARIADB_PLURAL,
                  operations=["CREATE", "UPDATE"])  # type: ignore
def on_mariadb_validate(body, old, operation: str, logger: Logger, **kwargs) -> None:
    metadata = body.get("metadata") or {}
    old_obj = dict(old) if old and operation == "UPDATE" else None
    # gated fields look at what the operator persisted, not what the user sent
    status = old_obj.get("status") if old_obj else None

    result = validate_mariadb(metadata.get("namespace", ""), metadata.get("name", ""),
                              dict(body), old_obj, status)
    if not result.allowed:
        logger.info(f"Rejected {operation} of {metadata.get('name')}: {result.reason}")
        raise kopf.AdmissionError(result.reason, code=422)
