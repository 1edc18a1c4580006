# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import copy
import datetime
import os
import re
import threading
import base64
from typing import Optional


def b64decode(s: str) -> str:
    return base64.b64decode(s).decode("utf8")


class EphemeralState:
    # State that's not persisted between operator restarts
    # Use only if get() returning None is interpreted as "skip optimization"
    def __init__(self):
        self.data = {}
        self.context = {}
        self.time = {}
        self.lock = threading.Lock()

    def get(self, obj, key: str):
        key = obj.namespace+"/"+obj.name+"/"+key
        with self.lock:
            return self.data.get(key)

    def testset(self, obj, key: str, value, context: str):
        key = obj.namespace+"/"+obj.name+"/"+key
        with self.lock:
            old_data = self.data.get(key)
            old_context = self.context.get(key)
            old_time = self.time.get(key)
            if old_data is None:
                self.data[key] = value
                self.context[key] = context
                self.time[key] = datetime.datetime.now()
        return (old_data, old_context, old_time)

    def set(self, obj, key: str, value, context: str) -> None:
        key = obj.namespace+"/"+obj.name+"/"+key
        with self.lock:
            self.data[key] = value
            self.context[key] = context
            self.time[key] = datetime.datetime.now()


g_ephemeral_pod_state = EphemeralState()


def pod_name(sts_name: str, index: int) -> str:
    return f"{sts_name}-{index}"


def pod_index(name: str) -> int:
    return int(name.rpartition("-")[-1])


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def isotime(t: Optional[datetime.datetime] = None) -> str:
    if t is None:
        t = utcnow()
    if t.tzinfo is not None:
        t = t.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return t.replace(microsecond=0).isoformat()+"Z"


def parse_isotime(s: str) -> datetime.datetime:
    import dateutil.parser as dtp

    t = dtp.isoparse(s)
    if t.tzinfo is None:
        t = t.replace(tzinfo=datetime.timezone.utc)
    return t


_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")


def parse_duration(s: str) -> float:
    """
    Parse a Go/Kubernetes duration string ("30s", "5m", "1h30m", "1.5h")
    into seconds.
    """
    s = s.strip()
    if not s:
        raise ValueError("empty duration")
    if s == "0":
        return 0.0

    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(s):
        if m.start() != pos:
            raise ValueError(f"invalid duration {s}")
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos != len(s):
        raise ValueError(f"invalid duration {s}")
    return total


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    s = ""
    if hours:
        s += f"{hours}h"
    if minutes:
        s += f"{minutes}m"
    if seconds or not s:
        s += f"{seconds}s"
    return s


def replace_fields(base: dict, patch: dict) -> dict:
    """
    Replace the top level fields of base with the ones in patch. A None value
    deletes the field. Values are replaced whole, never merged, so a writer
    always sends the complete subtree it owns.
    """
    if type(base) != dict or type(patch) != dict:
        raise ValueError("Invalid type in patch")

    for k, v in patch.items():
        if v is None:
            base.pop(k, None)
        else:
            base[k] = copy.deepcopy(v)
    return base


def log_banner(path: str, logger) -> None:
    from importlib.metadata import version
    from . import config

    kopf_version = version('kopf')
    ts = datetime.datetime.fromtimestamp(os.stat(path).st_mtime).isoformat()

    path = os.path.basename(path)
    logger.info(
        f"MariaDB Operator/{path}={config.OPERATOR_VERSION} timestamp={ts} kopf={kopf_version} uid={os.getuid()}")
