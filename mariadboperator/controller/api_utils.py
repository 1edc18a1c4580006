# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from enum import Enum
import typing
from typing import Optional, Type, cast

from . import utils

T = typing.TypeVar("T")

E = typing.TypeVar("E")


class ApiSpecError(Exception):
    pass


class WaitPoint(Enum):
    AfterSync = "AfterSync"
    AfterCommit = "AfterCommit"

    def mariadb_format(self) -> str:
        # value of rpl_semi_sync_master_wait_point
        if self == WaitPoint.AfterCommit:
            return "AFTER_COMMIT"
        return "AFTER_SYNC"


class GtidMode(Enum):
    CurrentPos = "CurrentPos"
    SlavePos = "SlavePos"

    def mariadb_format(self) -> str:
        # value of MASTER_USE_GTID
        if self == GtidMode.SlavePos:
            return "slave_pos"
        return "current_pos"


def typename(type: type) -> str:
    CONTENT_TYPE_NAMES = {"dict": "Map", "str": "String",
                          "int": "Integer", "bool": "Boolean", "list": "List"}
    if type.__name__ not in CONTENT_TYPE_NAMES:
        return type.__name__
    return CONTENT_TYPE_NAMES[type.__name__]


def _dget(d: dict, key: str, what: str, default_value: Optional[T], expected_type: Type[T]) -> T:
    if default_value is None and key not in d:
        raise ApiSpecError(f"{what}.{key} is mandatory, but is not set")
    value = d.get(key, default_value)
    # bool is a subclass of int, but a bool is never a valid Integer
    if expected_type is int and isinstance(value, bool):
        raise ApiSpecError(
            f"{what}.{key} expected to be a {typename(expected_type)} but is {typename(type(value))}")
    if not isinstance(value, expected_type):
        raise ApiSpecError(
            f"{what}.{key} expected to be a {typename(expected_type)} but is {typename(type(value)) if value is not None else 'not set'}")
    return cast(T, value)


def dget_dict(d: dict, key: str, what: str, default_value: Optional[dict] = None) -> dict:
    return _dget(d, key, what, default_value, dict)


def dget_str(d: dict, key: str, what: str, *, default_value: Optional[str] = None) -> str:
    return _dget(d, key, what, default_value, str)


def dget_enum(d: dict, key: str, what: str, *, default_value: Optional[E], enum_type: Type[Enum]) -> E:
    s = _dget(d, key, what, default_value, str)
    for v in enum_type:
        if v.name == s:
            return cast(E, v)
    raise ApiSpecError(
        f"{what}.{key} has invalid value '{s}' but must be one of {','.join([x.name for x in enum_type])}")


def dget_int(d: dict, key: str, what: str, *, default_value: Optional[int] = None) -> int:
    return _dget(d, key, what, default_value, int)


def dget_bool(d: dict, key: str, what: str, *, default_value: Optional[bool] = None) -> bool:
    return _dget(d, key, what, default_value, bool)


def dget_duration(d: dict, key: str, what: str, *, default_value: Optional[float] = None) -> float:
    """
    Read a Kubernetes style duration ("30s", "5m", "1h30m") and return it in
    seconds.
    """
    if key not in d:
        if default_value is None:
            raise ApiSpecError(f"{what}.{key} is mandatory, but is not set")
        return default_value
    s = _dget(d, key, what, None, str)
    try:
        return utils.parse_duration(s)
    except ValueError as e:
        raise ApiSpecError(f"{what}.{key} has invalid duration '{s}': {e}")
