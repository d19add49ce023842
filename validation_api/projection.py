"""Live, read-only projection of the three validation resource kinds.

Resources are held as plain JSON-shaped dictionaries, keyed by
``<namespace>/<name>``. Watchers feed events through
:meth:`ValidationProjection.apply`. Transports only read.
"""

from __future__ import annotations

import copy
import enum
import threading
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

Resource = dict[str, Any]


class ResourceKind(enum.Enum):
    """The three resource kinds the projection tracks."""

    VALIDATION = "AkeylessImageValidation"
    TENANT = "AkeylessEphemeralTenant"
    SCAN_JOB = "ScanJob"


class EventType(enum.Enum):
    """Watcher event kinds."""

    APPLY = "Apply"
    DELETE = "Delete"
    INIT = "Init"
    INIT_APPLY = "InitApply"
    INIT_DONE = "InitDone"


@dataclass
class Snapshot:
    """Point-in-time copy of every tracked resource, ordered by key."""

    validations: list[Resource] = field(default_factory=list)
    tenants: list[Resource] = field(default_factory=list)
    scan_jobs: list[Resource] = field(default_factory=list)


def key(ns: str, name: str) -> str:
    """Build the ``<namespace>/<name>`` lookup key."""
    return f"{ns}/{name}"


def key_of(obj: Mapping[str, Any]) -> Optional[str]:
    """Lookup key for a resource, or ``None`` when it has no name."""
    meta = obj.get("metadata") or {}
    name = meta.get("name") or meta.get("generateName") or ""
    if not name:
        return None
    return key(meta.get("namespace") or "", name)


def phase_of(obj: Mapping[str, Any]) -> Optional[str]:
    """The resource's ``status.phase``, or ``None`` when unset."""
    status = obj.get("status") or {}
    phase = status.get("phase")
    return None if phase is None else str(phase)


class ValidationProjection:
    """Thread-safe store of the latest observed state of each resource."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._stores: dict[ResourceKind, dict[str, Resource]] = {
            kind: {} for kind in ResourceKind
        }

    def snapshot(self) -> Snapshot:
        with self._lock:
            lists = {
                kind: [copy.deepcopy(v) for _, v in sorted(store.items())]
                for kind, store in self._stores.items()
            }
        return Snapshot(
            validations=lists[ResourceKind.VALIDATION],
            tenants=lists[ResourceKind.TENANT],
            scan_jobs=lists[ResourceKind.SCAN_JOB],
        )

    def _get(self, kind: ResourceKind, ns: str, name: str) -> Optional[Resource]:
        with self._lock:
            found = self._stores[kind].get(key(ns, name))
            return None if found is None else copy.deepcopy(found)

    def get_validation(self, ns: str, name: str) -> Optional[Resource]:
        return self._get(ResourceKind.VALIDATION, ns, name)

    def get_tenant(self, ns: str, name: str) -> Optional[Resource]:
        return self._get(ResourceKind.TENANT, ns, name)

    def get_scan_job(self, ns: str, name: str) -> Optional[Resource]:
        return self._get(ResourceKind.SCAN_JOB, ns, name)

    def apply(
        self,
        kind: ResourceKind | str,
        event: EventType | str,
        obj: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Fold one watcher event into the projection."""
        kind = ResourceKind(kind)
        event = EventType(event)
        with self._lock:
            store = self._stores[kind]
            if event is EventType.INIT:
                store.clear()
                return
            if event is EventType.INIT_DONE:
                return
            if obj is None:
                raise ValueError(f"{event.value} event requires a resource")
            k = key_of(obj)
            if k is None:
                return
            if event is EventType.DELETE:
                store.pop(k, None)
            else:
                store[k] = copy.deepcopy(dict(obj))