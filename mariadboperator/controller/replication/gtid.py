# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import logging
from typing import Optional

logger = logging.getLogger("replication.gtid")


class GtidError(ValueError):
    pass


class Gtid:
    """
    MariaDB Global Transaction ID: domain_id-server_id-sequence_id
    """

    def __init__(self, domain_id: int, server_id: int, sequence_id: int) -> None:
        self.domain_id = domain_id
        self.server_id = server_id
        self.sequence_id = sequence_id

    def __str__(self) -> str:
        return f"{self.domain_id}-{self.server_id}-{self.sequence_id}"

    def __repr__(self) -> str:
        return f"<Gtid {self}>"

    def __eq__(self, other) -> bool:
        return isinstance(other, Gtid) and \
            (self.domain_id, self.server_id, self.sequence_id) == \
            (other.domain_id, other.server_id, other.sequence_id)

    def __hash__(self) -> int:
        return hash((self.domain_id, self.server_id, self.sequence_id))

    def _check_comparable(self, other: 'Gtid') -> None:
        if self.domain_id != other.domain_id:
            raise GtidError(
                f"domain IDs are different ({self.domain_id} and {other.domain_id}). Not comparable")

    def __lt__(self, other: 'Gtid') -> bool:
        self._check_comparable(other)
        return self.sequence_id < other.sequence_id

    def __gt__(self, other: 'Gtid') -> bool:
        self._check_comparable(other)
        return self.sequence_id > other.sequence_id

    def diff(self, other: 'Gtid') -> int:
        self._check_comparable(other)
        return abs(self.sequence_id - other.sequence_id)

    @classmethod
    def parse(cls, raw: str) -> 'Gtid':
        parts = raw.strip().split("-")
        if len(parts) != 3:
            raise GtidError(f"invalid GTID {raw}")
        try:
            values = [int(p) for p in parts]
        except ValueError:
            raise GtidError(f"invalid GTID {raw}")
        if any(v < 0 for v in values):
            raise GtidError(f"invalid GTID {raw}")
        return Gtid(*values)


def parse_gtid_with_domain(raw: str, domain_id: int) -> Optional[Gtid]:
    """
    Return the GTID of domain_id from a gtid_current_pos style list
    ("0-10-5,1-20-7"). None if the list has no GTID for that domain.
    """
    if "," not in raw:
        if not raw.strip():
            return None
        gtid = Gtid.parse(raw)
        return gtid if gtid.domain_id == domain_id else None

    for part in raw.split(","):
        part = part.strip()
        if not part:
            logger.debug("Ignoring empty GTID")
            continue
        try:
            gtid = Gtid.parse(part)
        except GtidError as e:
            logger.warning(f"Error parsing GTID {part}: {e}")
            continue
        if gtid.domain_id == domain_id:
            return gtid
    return None
