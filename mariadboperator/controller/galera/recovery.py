# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import datetime
import logging
import uuid as _uuid
from typing import Optional, List

logger = logging.getLogger("galera.recovery")

ZERO_UUID = "00000000-0000-0000-0000-000000000000"

RECOVERED_POSITION_MARKER = "WSREP: Recovered position: "


class GaleraStateError(ValueError):
    pass


def _check_uuid(value: str) -> str:
    try:
        _uuid.UUID(value)
    except ValueError:
        raise GaleraStateError(f"invalid uuid {value}")
    return value


def parse_seqno(raw: str) -> int:
    """
    Parse the seqno of a recovered position. Some MariaDB versions print a
    comma separated list, in which case the first parseable value is used.
    """
    if "," not in raw:
        try:
            return int(raw.strip())
        except ValueError:
            raise GaleraStateError(f"invalid seqno {raw}")

    for part in raw.split(","):
        part = part.strip()
        if not part:
            logger.debug("Ignoring empty seqno")
            continue
        try:
            return int(part)
        except ValueError:
            logger.debug(f"Unable to parse seqno {part}, skipping")
            continue
    raise GaleraStateError(f"unable to parse seqno {raw}")


class GaleraState:
    """
    Contents of grastate.dat
    """

    def __init__(self, version: str, uuid: str, seqno: int,
                 safe_to_bootstrap: bool) -> None:
        self.version = version
        self.uuid = uuid
        self.seqno = seqno
        self.safe_to_bootstrap = safe_to_bootstrap

    def __repr__(self) -> str:
        return f"<GaleraState uuid={self.uuid} seqno={self.seqno} safe_to_bootstrap={self.safe_to_bootstrap}>"

    def __eq__(self, other) -> bool:
        return isinstance(other, GaleraState) and self.to_dict() == other.to_dict()

    @classmethod
    def parse(cls, text: str) -> 'GaleraState':
        values = {}
        for line in text.splitlines():
            parts = line.split(":")
            if len(parts) != 2:
                continue
            values[parts[0].strip()] = parts[1].strip()

        missing = [k for k in ("version", "uuid", "seqno", "safe_to_bootstrap")
                   if k not in values]
        if missing:
            raise GaleraStateError(
                f"invalid galera state file, missing {','.join(missing)}")

        try:
            seqno = int(values["seqno"])
        except ValueError:
            raise GaleraStateError(f"invalid seqno {values['seqno']}")
        if values["safe_to_bootstrap"] not in ("0", "1"):
            raise GaleraStateError(
                f"invalid safe_to_bootstrap {values['safe_to_bootstrap']}")

        return GaleraState(values["version"], _check_uuid(values["uuid"]),
                           seqno, values["safe_to_bootstrap"] == "1")

    def render(self) -> str:
        return (f"version: {self.version}\n"
                f"uuid: {self.uuid}\n"
                f"seqno: {self.seqno}\n"
                f"safe_to_bootstrap: {1 if self.safe_to_bootstrap else 0}")

    @classmethod
    def from_dict(cls, d: dict) -> 'GaleraState':
        return GaleraState(d.get("version", ""), d["uuid"], int(d["seqno"]),
                           bool(d.get("safeToBootstrap", False)))

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "uuid": self.uuid,
            "seqno": self.seqno,
            "safeToBootstrap": self.safe_to_bootstrap
        }


class RecoveredPosition:
    """
    Position reported by mysqld --wsrep-recover
    """

    def __init__(self, uuid: str, seqno: int) -> None:
        self.uuid = uuid
        self.seqno = seqno

    def __repr__(self) -> str:
        return f"<RecoveredPosition {self.uuid}:{self.seqno}>"

    def __eq__(self, other) -> bool:
        return isinstance(other, RecoveredPosition) and \
            (self.uuid, self.seqno) == (other.uuid, other.seqno)

    @classmethod
    def parse_log(cls, text: str) -> 'RecoveredPosition':
        """
        Find the last "WSREP: Recovered position: <uuid>:<seqno>" line in a
        mysqld log.
        """
        found = None
        for line in text.splitlines():
            parts = line.split(RECOVERED_POSITION_MARKER)
            if len(parts) != 2:
                continue
            parts = parts[1].split(":")
            if len(parts) != 2:
                continue
            found = RecoveredPosition(_check_uuid(parts[0].strip()),
                                      parse_seqno(parts[1]))
        if not found:
            raise GaleraStateError("unable to find recovered uuid and seqno")
        return found

    @classmethod
    def from_dict(cls, d: dict) -> 'RecoveredPosition':
        return RecoveredPosition(d["uuid"], int(d["seqno"]))

    def to_dict(self) -> dict:
        return {"uuid": self.uuid, "seqno": self.seqno}


def should_skip(position) -> bool:
    """
    A member that never joined a cluster reports the zero uuid and seqno -1;
    it has nothing to contribute to an election.
    """
    return position is not None and position.uuid == ZERO_UUID and position.seqno == -1


def valid_seqno(position) -> bool:
    return position is not None and position.seqno >= 0


class ClusterMember:
    """
    Election view of one member, rebuilt from the recovery status on every
    pass.
    """

    def __init__(self, name: str, index: int) -> None:
        self.name = name
        self.index = index
        self.uuid: Optional[str] = None
        self.seqno: Optional[int] = None
        self.safe_to_bootstrap = False
        self.skipped = False
        self.error: Optional[str] = None
        self.probed_at: Optional[datetime.datetime] = None

    def __repr__(self) -> str:
        return (f"ClusterMember: name={self.name} index={self.index} uuid={self.uuid} "
                f"seqno={self.seqno} safe_to_bootstrap={self.safe_to_bootstrap} "
                f"skipped={self.skipped} error={self.error} probed_at={self.probed_at}")

    @property
    def known(self) -> bool:
        return self.seqno is not None

    @property
    def electable(self) -> bool:
        return self.known and not self.skipped and self.seqno >= 0

    @classmethod
    def from_observations(cls, name: str, index: int,
                          state: Optional[GaleraState],
                          recovered: Optional[RecoveredPosition],
                          error: Optional[str] = None,
                          probed_at: Optional[datetime.datetime] = None) -> 'ClusterMember':
        member = ClusterMember(name, index)
        member.error = error
        member.probed_at = probed_at
        if state is not None:
            member.safe_to_bootstrap = state.safe_to_bootstrap
        if valid_seqno(state):
            member.uuid = state.uuid
            member.seqno = state.seqno
        elif recovered is not None:
            member.uuid = recovered.uuid
            member.seqno = recovered.seqno
            member.skipped = should_skip(recovered)
        return member


def elect_bootstrap_member(members: List[ClusterMember]) -> Optional[ClusterMember]:
    """
    Pick the member that bootstraps a new cluster.

    Only members with a known seqno >= 0 are candidates. The highest seqno
    wins, a safe_to_bootstrap member wins a tie and the lowest ordinal wins
    any remaining tie.
    """
    candidates = [m for m in members if m.electable]
    if not candidates:
        return None
    return sorted(candidates,
                  key=lambda m: (-m.seqno, not m.safe_to_bootstrap, m.index))[0]
