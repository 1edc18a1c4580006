# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import enum
from typing import Any, Callable, List, Optional, Tuple

from .. import conditions

_MISSING = object()


class FieldPolicy(enum.Enum):
    # Can't change once set, not even from empty
    IMMUTABLE = "IMMUTABLE"
    # Can be set once, but not changed afterwards
    INIT_ONLY = "INIT_ONLY"
    # Can't change while an operation is in flight
    GATED = "GATED"


class AdmissionResult:
    def __init__(self, allowed: bool, reason: str = "") -> None:
        self.allowed = allowed
        self.reason = reason

    def __repr__(self) -> str:
        return f"<AdmissionResult allowed={self.allowed} reason={self.reason}>"

    def __bool__(self) -> bool:
        return self.allowed


# ## Gates ##
# A gate returns a description of the operation in flight, or None.

Gate = Callable[[dict], Optional[str]]


def primary_switching(status: dict) -> Optional[str]:
    if conditions.is_primary_switching(status.get("conditions")):
        return "a primary switchover is in progress"
    return None


def galera_bootstrapping(status: dict) -> Optional[str]:
    recovery = status.get("galeraRecovery") or {}
    if recovery.get("bootstrap"):
        return f"a Galera cluster bootstrap in {recovery['bootstrap'].get('pod')} is in progress"
    return None


class FieldRule:
    def __init__(self, path: str, policy: FieldPolicy,
                 gate: Optional[Gate] = None) -> None:
        assert (policy == FieldPolicy.GATED) == (gate is not None), path
        self.path = path
        self.policy = policy
        self.gate = gate

    def __repr__(self) -> str:
        return f"<FieldRule {self.path} {self.policy.value}>"


def _rules(policy: FieldPolicy, *paths: str, gate: Optional[Gate] = None) -> List[FieldRule]:
    return [FieldRule(p, policy, gate) for p in paths]


MARIADB_FIELD_RULES: List[FieldRule] = \
    _rules(FieldPolicy.IMMUTABLE,
           "spec.rootPasswordSecretKeyRef",
           "spec.passwordSecretKeyRef",
           "spec.username",
           "spec.database",
           "spec.storage.volumeClaimTemplate",
           "spec.volumeClaimTemplate",
           "spec.galera.volumeClaimTemplate",
           "spec.restartPolicy",
           "spec.myCnf",
           "spec.volumes",
           "spec.imagePullSecrets") + \
    _rules(FieldPolicy.INIT_ONLY,
           "spec.serviceAccountName",
           "spec.myCnfConfigMapKeyRef",
           "spec.bootstrapFrom.backupRef",
           "spec.bootstrapFrom.volume") + \
    _rules(FieldPolicy.GATED,
           "spec.replication.primary.podIndex",
           "spec.replication.primary.automaticFailover",
           gate=primary_switching) + \
    _rules(FieldPolicy.GATED,
           "spec.replicas",
           gate=galera_bootstrapping)


def lookup(obj: Any, path: str) -> Any:
    """
    Value at a dotted path, or _MISSING if any part of the path is absent.
    """
    for part in path.split("."):
        if not isinstance(obj, dict) or part not in obj:
            return _MISSING
        obj = obj[part]
    return obj


def _is_empty(value: Any) -> bool:
    return value is _MISSING or value is None or value == {} or value == [] or value == ""


def _show(value: Any) -> str:
    return "<unset>" if value is _MISSING else repr(value)


def diff_paths(old: Any, new: Any, prefix: str = "") -> List[str]:
    """
    Structural diff: the dotted paths of every leaf that differs.
    """
    if isinstance(old, dict) and isinstance(new, dict):
        paths = []
        for key in sorted(set(old) | set(new)):
            path = f"{prefix}.{key}" if prefix else key
            paths.extend(diff_paths(old.get(key, _MISSING), new.get(key, _MISSING), path))
        return paths
    if old is _MISSING and new is _MISSING:
        return []
    if old != new:
        return [prefix]
    return []


def _touches(rule: FieldRule, changed: List[str]) -> bool:
    return any(p == rule.path or p.startswith(rule.path + ".") or
               rule.path.startswith(p + ".") for p in changed)


def evaluate(old: dict, new: dict, status: Optional[dict],
             rules: List[FieldRule] = MARIADB_FIELD_RULES) -> List[Tuple[FieldRule, str]]:
    """
    Check an update against the rules. Returns (rule, message) for every
    violation, empty if the update is allowed.
    """
    status = status or {}
    changed = diff_paths(old, new)
    if not changed:
        return []

    violations = []
    for rule in rules:
        if not _touches(rule, changed):
            continue
        old_value = lookup(old, rule.path)
        new_value = lookup(new, rule.path)
        if old_value == new_value:
            continue

        if rule.policy == FieldPolicy.IMMUTABLE:
            violations.append(
                (rule, f"{rule.path} is immutable: {_show(old_value)} -> {_show(new_value)}"))
        elif rule.policy == FieldPolicy.INIT_ONLY:
            if not _is_empty(old_value):
                violations.append(
                    (rule, f"{rule.path} can't be changed once set: {_show(old_value)} -> {_show(new_value)}"))
        elif rule.policy == FieldPolicy.GATED:
            in_flight = rule.gate(status)
            if in_flight:
                violations.append(
                    (rule, f"{rule.path} can't be changed while {in_flight}"))
    return violations


def review(old: dict, new: dict, status: Optional[dict],
           rules: List[FieldRule] = MARIADB_FIELD_RULES) -> AdmissionResult:
    violations = evaluate(old, new, status, rules)
    if violations:
        return AdmissionResult(False, "; ".join(msg for _, msg in violations))
    return AdmissionResult(True)
