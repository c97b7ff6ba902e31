"""Read snapshots and the write surface used by the reconciler."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from threading import Lock
from typing import Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from .errors import AlreadyExistsError, ConflictError, NotFoundError
from .model import (
    Configuration,
    Resource,
    Revision,
    Route,
    Service,
    VirtualService,
    kind_of,
    with_resource_version,
)

LOG = logging.getLogger(__name__)

T = TypeVar("T")

_StoreKey = Tuple[str, str, str]


class Lister(Generic[T]):
    """Read-only ``(namespace, name)`` index over one resource kind."""

    def __init__(self, items: Optional[Dict[Tuple[str, str], T]] = None) -> None:
        self._items: Dict[Tuple[str, str], T] = dict(items or {})

    def get(self, namespace: str, name: str) -> Optional[T]:
        return self._items.get((namespace, name))

    def list(self, namespace: Optional[str] = None) -> List[T]:
        return [
            obj
            for (ns, _), obj in self._items.items()
            if namespace is None or ns == namespace
        ]


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time view over every kind the reconciler reads.

    A snapshot may lag the authoritative store; writes always go through
    :class:`ObjectStore` using the versions observed here.
    """

    routes: Lister[Route]
    configurations: Lister[Configuration]
    revisions: Lister[Revision]
    services: Lister[Service]
    virtual_services: Lister[VirtualService]


class ObjectStore(ABC):
    """Authoritative write surface."""

    @abstractmethod
    def create(self, obj: Resource) -> Resource:
        """Create ``obj``; fail with :class:`AlreadyExistsError` if present."""

    @abstractmethod
    def update(self, obj: Resource) -> Resource:
        """Replace ``obj`` if its ``resource_version`` is current.

        For Routes only metadata and spec are written; status is kept.
        """

    @abstractmethod
    def update_status(self, route: Route) -> Route:
        """Write only the status of ``route``."""


@dataclass(frozen=True)
class Action:
    verb: str
    kind: str
    obj: Resource


class InMemoryStore(ObjectStore):
    """Thread-safe store with resource versions and an action log.

    ``create``/``update``/``update_status`` are controller writes and are
    appended to :attr:`actions`.  ``put``/``delete`` model writes made by
    other actors (users, other controllers) and are not recorded.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._objects: Dict[_StoreKey, Resource] = {}
        self._version = 0
        self.actions: List[Action] = []

    @staticmethod
    def _key(obj: Resource) -> _StoreKey:
        return kind_of(obj), obj.meta.namespace, obj.meta.name

    @property
    def generation(self) -> int:
        """Monotonic counter bumped by every successful write."""

        return self._version

    def _stamp(self, obj: Resource) -> Resource:
        self._version += 1
        return with_resource_version(obj, self._version)

    # ------------------------------------------------------------------
    # Controller writes
    # ------------------------------------------------------------------
    def create(self, obj: Resource) -> Resource:
        key = self._key(obj)
        with self._lock:
            if key in self._objects:
                raise AlreadyExistsError(f"{key[0]} {obj.meta.key} already exists")
            stored = self._stamp(obj)
            self._objects[key] = stored
            self.actions.append(Action("create", key[0], stored))
        return stored

    def update(self, obj: Resource) -> Resource:
        key = self._key(obj)
        with self._lock:
            current = self._check_version(key, obj)
            if isinstance(obj, Route):
                obj = replace(obj, status=current.status)
            stored = self._stamp(obj)
            self._objects[key] = stored
            self.actions.append(Action("update", key[0], stored))
        return stored

    def update_status(self, route: Route) -> Route:
        key = self._key(route)
        with self._lock:
            current = self._check_version(key, route)
            stored = self._stamp(replace(current, status=route.status))
            self._objects[key] = stored
            self.actions.append(Action("update_status", key[0], stored))
        return stored

    def _check_version(self, key: _StoreKey, obj: Resource) -> Resource:
        current = self._objects.get(key)
        if current is None:
            raise NotFoundError(f"{key[0]} {obj.meta.key} not found")
        if current.meta.resource_version != obj.meta.resource_version:
            raise ConflictError(
                f"{key[0]} {obj.meta.key} was modified "
                f"(have {obj.meta.resource_version}, "
                f"current {current.meta.resource_version})"
            )
        return current

    # ------------------------------------------------------------------
    # External writers / readers
    # ------------------------------------------------------------------
    def put(
        self,
        obj: Resource,
        merge: Optional[Callable[[Resource, Resource], Resource]] = None,
    ) -> Resource:
        """Store ``obj`` unconditionally.

        When ``merge`` is given and the object already exists, the stored
        value is ``merge(existing, obj)``, computed under the store lock.
        """

        with self._lock:
            if merge is not None:
                existing = self._objects.get(self._key(obj))
                if existing is not None:
                    obj = merge(existing, obj)
            stored = self._stamp(obj)
            self._objects[self._key(obj)] = stored
        return stored

    def delete(self, kind: str, namespace: str, name: str) -> Optional[Resource]:
        with self._lock:
            removed = self._objects.pop((kind, namespace, name), None)
            if removed is not None:
                self._version += 1
        return removed

    def get(self, kind: str, namespace: str, name: str) -> Optional[Resource]:
        with self._lock:
            return self._objects.get((kind, namespace, name))

    def objects(self, kind: str) -> List[Resource]:
        with self._lock:
            return [obj for (k, _, _), obj in self._objects.items() if k == kind]

    def snapshot(self) -> Snapshot:
        with self._lock:
            by_kind: Dict[str, Dict[Tuple[str, str], Resource]] = {}
            for (kind, namespace, name), obj in self._objects.items():
                by_kind.setdefault(kind, {})[(namespace, name)] = obj

        return Snapshot(
            routes=Lister(by_kind.get(Route.KIND)),
            configurations=Lister(by_kind.get(Configuration.KIND)),
            revisions=Lister(by_kind.get(Revision.KIND)),
            services=Lister(by_kind.get(Service.KIND)),
            virtual_services=Lister(by_kind.get(VirtualService.KIND)),
        )
