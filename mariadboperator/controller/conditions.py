# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

"""
Helpers for the status.conditions list of a MariaDB.

A condition is a dict with type, status ("True", "False" or "Unknown"),
reason, message and lastTransitionTime. Conditions are never removed, only
superseded, and lastTransitionTime only moves when the status value changes.
"""

import datetime
from typing import Optional, Union

from . import consts
from .utils import isotime

TRUE = "True"
FALSE = "False"
UNKNOWN = "Unknown"


def _status_str(status: Union[bool, str, None]) -> str:
    if status is True:
        return TRUE
    if status is False:
        return FALSE
    if status is None:
        return UNKNOWN
    if status not in (TRUE, FALSE, UNKNOWN):
        raise ValueError(f"Invalid condition status {status}")
    return status


def get_condition(conditions: Optional[list], type: str) -> Optional[dict]:
    for c in conditions or []:
        if c.get("type") == type:
            return c
    return None


def set_condition(conditions: list, type: str, status: Union[bool, str, None],
                  reason: str, message: str,
                  now: Optional[datetime.datetime] = None) -> bool:
    """
    Add or supersede a condition in place. Returns True if anything changed.
    """
    status = _status_str(status)
    cond = get_condition(conditions, type)
    if cond is None:
        conditions.append({
            "type": type,
            "status": status,
            "reason": reason,
            "message": message,
            "lastTransitionTime": isotime(now)
        })
        return True

    changed = False
    if cond.get("status") != status:
        cond["status"] = status
        cond["lastTransitionTime"] = isotime(now)
        changed = True
    if cond.get("reason") != reason or cond.get("message") != message:
        cond["reason"] = reason
        cond["message"] = message
        changed = True
    return changed


def is_true(conditions: Optional[list], type: str) -> bool:
    cond = get_condition(conditions, type)
    return cond is not None and cond.get("status") == TRUE


def is_false(conditions: Optional[list], type: str) -> bool:
    cond = get_condition(conditions, type)
    return cond is not None and cond.get("status") == FALSE


def is_primary_switching(conditions: Optional[list]) -> bool:
    return is_false(conditions, consts.CONDITION_PRIMARY_SWITCHED)


def set_primary_switching(conditions: list, message: str,
                          now: Optional[datetime.datetime] = None) -> bool:
    return set_condition(conditions, consts.CONDITION_PRIMARY_SWITCHED, False,
                         consts.REASON_SWITCH_PRIMARY, message, now)


def set_primary_switched(conditions: list, message: str = "Switchover complete",
                         now: Optional[datetime.datetime] = None) -> bool:
    return set_condition(conditions, consts.CONDITION_PRIMARY_SWITCHED, True,
                         consts.REASON_PRIMARY_SWITCHED, message, now)


def set_primary_switchover_timeout(conditions: list, message: str,
                                   now: Optional[datetime.datetime] = None) -> bool:
    return set_condition(conditions, consts.CONDITION_PRIMARY_SWITCHED, True,
                         consts.REASON_SWITCHOVER_TIMEOUT, message, now)


def set_galera_ready(conditions: list, message: str = "Galera ready",
                     now: Optional[datetime.datetime] = None) -> bool:
    return set_condition(conditions, consts.CONDITION_GALERA_READY, True,
                         consts.REASON_HEALTHY, message, now)


def set_galera_not_ready(conditions: list, reason: str, message: str,
                         now: Optional[datetime.datetime] = None) -> bool:
    return set_condition(conditions, consts.CONDITION_GALERA_READY, False,
                         reason, message, now)


def set_galera_unknown(conditions: list, message: str,
                       now: Optional[datetime.datetime] = None) -> bool:
    return set_condition(conditions, consts.CONDITION_GALERA_READY, None,
                         consts.REASON_NOT_HEALTHY, message, now)


def set_galera_configured(conditions: list, message: str = "Galera configured",
                          now: Optional[datetime.datetime] = None) -> bool:
    return set_condition(conditions, consts.CONDITION_GALERA_CONFIGURED, True,
                         consts.REASON_GALERA_CONFIGURED, message, now)


def set_replication_configured(conditions: list, message: str = "Replication configured",
                               now: Optional[datetime.datetime] = None) -> bool:
    return set_condition(conditions, consts.CONDITION_REPLICATION_CONFIGURED, True,
                         consts.REASON_REPLICATION_CONFIGURED, message, now)


def set_ready(conditions: list, ready: Optional[bool], reason: str, message: str,
              now: Optional[datetime.datetime] = None) -> bool:
    return set_condition(conditions, consts.CONDITION_READY, ready, reason,
                         message, now)
