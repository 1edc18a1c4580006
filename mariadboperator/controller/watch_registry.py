# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import threading
from typing import Dict, Iterable, List, Set, Tuple

# (kind, namespace, name)
ObjectKey = Tuple[str, str, str]


class WatchRegistry:
    """
    Maps objects referenced by a MariaDB (Secrets, ConfigMaps) to the
    MariaDBs referencing them, so a change in a referenced object can
    trigger a reconcile of its dependents.
    """

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.dependents: Dict[ObjectKey, Set[Tuple[str, str]]] = {}
        self.references: Dict[Tuple[str, str], Set[ObjectKey]] = {}

    def update(self, namespace: str, name: str,
               references: Iterable[Tuple[str, str]]) -> None:
        """
        Replace what namespace/name references with references, a list of
        (kind, object name) pairs in the same namespace.
        """
        owner = (namespace, name)
        keys = {(kind, namespace, ref) for kind, ref in references}
        with self.lock:
            for key in self.references.get(owner, set()) - keys:
                self._unlink(key, owner)
            for key in keys:
                self.dependents.setdefault(key, set()).add(owner)
            if keys:
                self.references[owner] = keys
            else:
                self.references.pop(owner, None)

    def remove(self, namespace: str, name: str) -> None:
        owner = (namespace, name)
        with self.lock:
            for key in self.references.pop(owner, set()):
                self._unlink(key, owner)

    def _unlink(self, key: ObjectKey, owner: Tuple[str, str]) -> None:
        owners = self.dependents.get(key)
        if owners is None:
            return
        owners.discard(owner)
        if not owners:
            del self.dependents[key]

    def get_dependents(self, kind: str, namespace: str, name: str) -> List[Tuple[str, str]]:
        with self.lock:
            return sorted(self.dependents.get((kind, namespace, name), set()))

    def is_watched(self, kind: str, namespace: str, name: str) -> bool:
        with self.lock:
            return (kind, namespace, name) in self.dependents


g_watch_registry = WatchRegistry()
