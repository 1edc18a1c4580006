# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import datetime

import pytest

from mariadboperator.controller.galera.recovery import GaleraState
from mariadboperator.controller.galera.recovery_status import (
    BootstrapActive, BootstrapRecord, GaleraPhase, GaleraRecoveryStatus)

T0 = datetime.datetime(2024, 5, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)
UUID = "05f061bd-02a3-11ef-857d-2b2b2b2b2b2b"


def at(seconds: float) -> datetime.datetime:
    return T0 + datetime.timedelta(seconds=seconds)


def test_empty_status_is_healthy() -> None:
    status = GaleraRecoveryStatus(None)
    assert status.phase == GaleraPhase.Healthy
    assert status.to_dict() is None
    assert status.unhealthy_for(T0) == 0.0


def test_only_one_bootstrap_record() -> None:
    status = GaleraRecoveryStatus()
    status.set_bootstrapping(BootstrapRecord("mdb-1", 1, T0), T0, timeout=600)

    with pytest.raises(BootstrapActive):
        status.set_bootstrapping(BootstrapRecord("mdb-2", 2, at(10)), at(10), timeout=600)
    assert status.bootstrap.pod == "mdb-1"

    # an expired record can be replaced
    status.set_bootstrapping(BootstrapRecord("mdb-2", 2, at(601)), at(601), timeout=600)
    assert status.bootstrap.pod == "mdb-2"
    assert status.phase == GaleraPhase.Bootstrapping
    assert not status.pods_restarted


def test_set_bootstrapping_resets_restart_progress() -> None:
    status = GaleraRecoveryStatus()
    status.set_bootstrapping(BootstrapRecord("mdb-0", 0, T0), T0, timeout=60)
    status.set_restarted("mdb-0", at(1))
    assert status.restarted == ["mdb-0"]
    assert status.sync_started_at("mdb-0") == at(1)

    status.set_bootstrapping(BootstrapRecord("mdb-1", 1, at(61)), at(61), timeout=60)
    assert status.restarted == []
    assert status.sync_started_at("mdb-0") is None


def test_status_survives_serialization() -> None:
    status = GaleraRecoveryStatus()
    status.mark_unhealthy(T0)
    status.start_recovering(at(30))
    status.set_state("mdb-0", GaleraState("2.1", UUID, 12, True))
    status.set_no_state("mdb-1")
    status.set_error("mdb-2", "connection refused")

    copy = GaleraRecoveryStatus(status.to_dict())
    assert copy.phase == GaleraPhase.Recovering
    assert copy.unhealthy_for(at(45)) == 45
    assert copy.recovering_since == at(30)
    assert copy.state("mdb-0") == GaleraState("2.1", UUID, 12, True)
    assert copy.no_state("mdb-1")
    assert copy.error("mdb-2") == "connection refused"

    copy.clear_errors()
    assert copy.error("mdb-2") is None


def test_bootstrap_timeout() -> None:
    status = GaleraRecoveryStatus()
    assert not status.bootstrap_timeout(T0, 60)
    status.set_bootstrapping(BootstrapRecord("mdb-0", 0, T0, UUID, 4), T0, timeout=60)
    assert not status.bootstrap_timeout(at(60), 60)
    assert status.bootstrap_timeout(at(61), 60)
    assert status.bootstrap.position.seqno == 4
