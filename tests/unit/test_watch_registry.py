# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from mariadboperator.controller.watch_registry import WatchRegistry


def test_dependents() -> None:
    registry = WatchRegistry()
    registry.update("default", "mdb", [("Secret", "mariadb"), ("ConfigMap", "mariadb-cnf")])
    registry.update("default", "other", [("Secret", "mariadb")])

    assert registry.get_dependents("Secret", "default", "mariadb") == [
        ("default", "mdb"), ("default", "other")]
    assert registry.get_dependents("ConfigMap", "default", "mariadb-cnf") == [("default", "mdb")]
    # namespaced
    assert not registry.is_watched("Secret", "prod", "mariadb")


def test_update_drops_old_references() -> None:
    registry = WatchRegistry()
    registry.update("default", "mdb", [("Secret", "old")])
    registry.update("default", "mdb", [("Secret", "new")])

    assert not registry.is_watched("Secret", "default", "old")
    assert registry.get_dependents("Secret", "default", "new") == [("default", "mdb")]

    registry.update("default", "mdb", [])
    assert not registry.is_watched("Secret", "default", "new")
    assert registry.references == {}


def test_remove() -> None:
    registry = WatchRegistry()
    registry.update("default", "mdb", [("Secret", "mariadb")])
    registry.update("default", "other", [("Secret", "mariadb")])

    registry.remove("default", "mdb")
    assert registry.get_dependents("Secret", "default", "mariadb") == [("default", "other")]
    registry.remove("default", "other")
    assert registry.dependents == {}

    # removing something unknown is fine
    registry.remove("default", "missing")
