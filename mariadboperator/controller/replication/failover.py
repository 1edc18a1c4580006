# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from logging import Logger
from typing import Optional, List

from .gtid import Gtid, GtidError, parse_gtid_with_domain


class ReplicaStatus:
    """
    What a replica reports about its replication threads and position.
    """
    name: str = ""
    index: int = -1
    ready: bool = False
    io_running: bool = False
    sql_running: bool = False
    gtid_domain_id: Optional[int] = None
    gtid_current_pos: Optional[str] = None
    gtid_io_pos: Optional[str] = None
    error: Optional[str] = None

    def __repr__(self) -> str:
        return (f"ReplicaStatus: name={self.name} ready={self.ready} io_running={self.io_running} "
                f"sql_running={self.sql_running} gtid_domain_id={self.gtid_domain_id} "
                f"gtid_current_pos={self.gtid_current_pos} gtid_io_pos={self.gtid_io_pos} error={self.error}")


class PromotionCandidate:
    def __init__(self, name: str, index: int, gtid: Gtid) -> None:
        self.name = name
        self.index = index
        self.gtid = gtid

    def __repr__(self) -> str:
        return f"<PromotionCandidate {self.name} gtid={self.gtid}>"


def has_relay_log_events(status: ReplicaStatus) -> bool:
    """
    True when the IO thread received transactions the SQL thread didn't apply
    yet.
    """
    if not status.gtid_io_pos:
        return False
    io_pos = parse_gtid_with_domain(status.gtid_io_pos, status.gtid_domain_id)
    if io_pos is None:
        return False
    current_pos = parse_gtid_with_domain(status.gtid_current_pos or "",
                                         status.gtid_domain_id)
    if current_pos is None:
        return True
    return io_pos > current_pos


def find_candidates(replicas: List[ReplicaStatus], logger: Logger) -> List[PromotionCandidate]:
    candidates = []
    for status in replicas:
        if status.error:
            logger.info(f"{status.name}: {status.error}. Skipping...")
            continue
        if not status.ready:
            logger.info(f"{status.name}: pod not ready. Skipping...")
            continue
        if not status.io_running:
            logger.info(f"{status.name}: IO thread not running. Skipping...")
            continue
        if not status.sql_running:
            logger.info(f"{status.name}: SQL thread not running. Skipping...")
            continue
        if status.gtid_domain_id is None:
            logger.info(f"{status.name}: GTID domain ID unknown. Skipping...")
            continue
        try:
            if has_relay_log_events(status):
                logger.info(f"{status.name}: events in relay log. Skipping...")
                continue
            if not status.gtid_current_pos:
                logger.info(f"{status.name}: GTID current position not set. Skipping...")
                continue
            gtid = parse_gtid_with_domain(status.gtid_current_pos,
                                          status.gtid_domain_id)
        except GtidError as e:
            logger.info(f"{status.name}: error parsing GTID: {e}. Skipping...")
            continue
        if gtid is None:
            logger.info(f"{status.name}: no GTID in domain {status.gtid_domain_id}. Skipping...")
            continue

        candidates.append(PromotionCandidate(status.name, status.index, gtid))
    return candidates


def furthest_advanced_candidate(candidates: List[PromotionCandidate],
                                logger: Logger) -> Optional[PromotionCandidate]:
    """
    Candidate with the highest GTID sequence. Only a strictly greater GTID
    replaces the current best, so ties go to the lowest ordinal.
    """
    best = None
    for c in sorted(candidates, key=lambda c: c.index):
        if best is None:
            best = c
            continue
        try:
            if c.gtid > best.gtid:
                best = c
        except GtidError as e:
            logger.info(f"{c.name}: error comparing GTID values: {e}. Skipping...")
    return best


def furthest_advanced_replica(replicas: List[ReplicaStatus],
                              logger: Logger) -> Optional[PromotionCandidate]:
    candidates = find_candidates(replicas, logger)
    logger.info(f"Promotion candidates: {[c.name for c in candidates]}")
    return furthest_advanced_candidate(candidates, logger)
