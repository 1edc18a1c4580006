# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import copy
import datetime
import enum
from typing import Optional, List

from ..utils import isotime, parse_isotime
from .recovery import GaleraState, RecoveredPosition


class GaleraPhase(enum.Enum):
    Healthy = "Healthy"
    Suspect = "Suspect"
    Recovering = "Recovering"
    Bootstrapping = "Bootstrapping"
    Joining = "Joining"


class BootstrapActive(Exception):
    pass


class BootstrapRecord:
    def __init__(self, pod: str, index: int, time: datetime.datetime,
                 uuid: Optional[str] = None, seqno: Optional[int] = None) -> None:
        self.pod = pod
        self.index = index
        self.time = time
        self.uuid = uuid
        self.seqno = seqno

    def __repr__(self) -> str:
        return f"<BootstrapRecord pod={self.pod} time={isotime(self.time)}>"

    @property
    def position(self) -> Optional[RecoveredPosition]:
        if self.uuid is None or self.seqno is None:
            return None
        return RecoveredPosition(self.uuid, self.seqno)

    def expired(self, now: datetime.datetime, timeout: float) -> bool:
        return now > self.time + datetime.timedelta(seconds=timeout)

    @classmethod
    def from_dict(cls, d: dict) -> 'BootstrapRecord':
        return BootstrapRecord(d["pod"], int(d.get("index", -1)),
                               parse_isotime(d["time"]),
                               d.get("uuid"), d.get("seqno"))

    def to_dict(self) -> dict:
        d = {"pod": self.pod, "index": self.index, "time": isotime(self.time)}
        if self.uuid is not None:
            d["uuid"] = self.uuid
            d["seqno"] = self.seqno
        return d


class GaleraRecoveryStatus:
    """
    Wrapper over status.galeraRecovery. An empty dict means the cluster is
    Healthy and no recovery is in progress.
    """

    def __init__(self, data: Optional[dict] = None) -> None:
        self.data = copy.deepcopy(data) if data else {}

    def to_dict(self) -> Optional[dict]:
        # None removes the field when used in a merge patch
        return copy.deepcopy(self.data) if self.data else None

    @property
    def phase(self) -> GaleraPhase:
        return GaleraPhase(self.data.get("phase", GaleraPhase.Healthy.value))

    @phase.setter
    def phase(self, phase: GaleraPhase) -> None:
        self.data["phase"] = phase.value

    def reset(self) -> None:
        self.data = {}

    # ## Unhealthy tracking ##

    @property
    def unhealthy_since(self) -> Optional[datetime.datetime]:
        t = self.data.get("unhealthySince")
        return parse_isotime(t) if t else None

    def mark_unhealthy(self, now: datetime.datetime) -> None:
        self.phase = GaleraPhase.Suspect
        self.data["unhealthySince"] = isotime(now)

    def unhealthy_for(self, now: datetime.datetime) -> float:
        since = self.unhealthy_since
        if since is None:
            return 0.0
        return (now - since).total_seconds()

    @property
    def recovering_since(self) -> Optional[datetime.datetime]:
        t = self.data.get("recoveringSince")
        return parse_isotime(t) if t else None

    def start_recovering(self, now: datetime.datetime) -> None:
        self.phase = GaleraPhase.Recovering
        self.data["recoveringSince"] = isotime(now)

    # ## Per pod observations ##

    def state(self, pod: str) -> Optional[GaleraState]:
        d = self.data.get("state", {}).get(pod)
        return GaleraState.from_dict(d) if d else None

    def set_state(self, pod: str, state: GaleraState) -> None:
        self.data.setdefault("state", {})[pod] = state.to_dict()

    def recovered(self, pod: str) -> Optional[RecoveredPosition]:
        d = self.data.get("recovered", {}).get(pod)
        return RecoveredPosition.from_dict(d) if d else None

    def set_recovered(self, pod: str, position: RecoveredPosition) -> None:
        self.data.setdefault("recovered", {})[pod] = position.to_dict()

    def no_state(self, pod: str) -> bool:
        return pod in self.data.get("noState", [])

    def set_no_state(self, pod: str) -> None:
        pods = self.data.setdefault("noState", [])
        if pod not in pods:
            pods.append(pod)

    def error(self, pod: str) -> Optional[str]:
        return self.data.get("errors", {}).get(pod)

    def set_error(self, pod: str, error: str) -> None:
        self.data.setdefault("errors", {})[pod] = error

    def clear_errors(self) -> None:
        self.data.pop("errors", None)

    # ## Bootstrap ##

    @property
    def bootstrap(self) -> Optional[BootstrapRecord]:
        d = self.data.get("bootstrap")
        return BootstrapRecord.from_dict(d) if d else None

    def is_bootstrapping(self) -> bool:
        return "bootstrap" in self.data

    def set_bootstrapping(self, record: BootstrapRecord, now: datetime.datetime,
                          timeout: float) -> None:
        current = self.bootstrap
        if current and not current.expired(now, timeout):
            raise BootstrapActive(
                f"Bootstrap of {current.pod} in progress since {isotime(current.time)}")
        self.data["bootstrap"] = record.to_dict()
        self.data.pop("restarted", None)
        self.data.pop("syncStartedAt", None)
        self.data["podsRestarted"] = False
        self.phase = GaleraPhase.Bootstrapping

    def bootstrap_timeout(self, now: datetime.datetime, timeout: float) -> bool:
        record = self.bootstrap
        if record is None:
            return False
        return record.expired(now, timeout)

    # ## Restart progress ##

    @property
    def restarted(self) -> List[str]:
        return list(self.data.get("restarted", []))

    def set_restarted(self, pod: str, now: datetime.datetime) -> None:
        pods = self.data.setdefault("restarted", [])
        if pod not in pods:
            pods.append(pod)
        self.data.setdefault("syncStartedAt", {})[pod] = isotime(now)

    def sync_started_at(self, pod: str) -> Optional[datetime.datetime]:
        t = self.data.get("syncStartedAt", {}).get(pod)
        return parse_isotime(t) if t else None

    @property
    def pods_restarted(self) -> bool:
        return bool(self.data.get("podsRestarted"))

    def set_pods_restarted(self) -> None:
        self.data["podsRestarted"] = True
