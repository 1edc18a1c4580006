# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import abc
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .galera.recovery import GaleraState, RecoveredPosition
    from .replication.failover import ReplicaStatus


class MemberClient(abc.ABC):
    """
    Instructions the coordinators can send to a single cluster member.

    Members are addressed by pod name. Every call is bounded by its own
    timeout and raises errors.MemberError (or a subclass) when the member
    can't be reached or doesn't do what it was asked.
    """

    # ## Lifecycle ##

    @abc.abstractmethod
    def is_ready(self, member: str) -> bool:
        ...

    @abc.abstractmethod
    def restart_normal(self, member: str) -> None:
        """Restart the member so it starts mysqld in its regular mode."""

    @abc.abstractmethod
    def restart_into_recovery(self, member: str, timeout: float) -> 'RecoveredPosition':
        """
        Restart the member with mysqld --wsrep-recover and return the
        position it recovered from its data files.
        """

    # ## Galera ##

    @abc.abstractmethod
    def report_sequence_state(self, member: str) -> Optional['GaleraState']:
        """Return the member's grastate.dat, None if it doesn't have one."""

    @abc.abstractmethod
    def enable_bootstrap(self, member: str, position: Optional['RecoveredPosition']) -> None:
        ...

    @abc.abstractmethod
    def disable_bootstrap(self, member: str) -> None:
        ...

    @abc.abstractmethod
    def is_synced(self, member: str) -> bool:
        """True when the member is Synced and part of a Primary component."""

    # ## Replication ##

    @abc.abstractmethod
    def switch_read_only(self, member: str, read_only: bool) -> None:
        ...

    @abc.abstractmethod
    def lock_tables(self, member: str) -> None:
        ...

    @abc.abstractmethod
    def unlock_tables(self, member: str) -> None:
        ...

    @abc.abstractmethod
    def gtid_binlog_pos(self, member: str) -> str:
        ...

    @abc.abstractmethod
    def wait_for_gtid(self, member: str, gtid: str, timeout: float) -> bool:
        """Wait until the replica applied gtid. False on timeout."""

    @abc.abstractmethod
    def configure_primary(self, member: str) -> None:
        ...

    @abc.abstractmethod
    def reconfigure_upstream(self, member: str, primary: str,
                             gtid: Optional[str] = None) -> None:
        """Make the member a replica of primary."""

    @abc.abstractmethod
    def replica_status(self, member: str) -> 'ReplicaStatus':
        ...
