"""Event handlers translating object changes into Route keys."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable, List

from route_reconciler.model import (
    Configuration,
    Resource,
    Revision,
    Route,
    ROUTE_LABEL_KEY,
    Service,
    VirtualService,
    object_key,
)
from route_reconciler.store import Snapshot

LOG = logging.getLogger(__name__)


class EventHandler(ABC):
    """Base class for subscribers managed by :class:`HandlerRegistry`."""

    @abstractmethod
    def on_upsert(self, obj: Resource) -> None:
        """React to ``obj`` having been created or changed."""

    @abstractmethod
    def on_delete(self, obj: Resource) -> None:
        """React to ``obj`` having been removed."""


class RouteEnqueuer(EventHandler):
    """Enqueue every Route whose desired state may depend on the object.

    * Route: the Route itself.
    * Configuration: the Route it is bound to and Routes following it.
    * Revision: Routes pinning it by name and Routes following its
      Configuration or any Configuration whose latest ready Revision it is.
    * Service / VirtualService: the Route named by the route label.
    """

    def __init__(self, enqueue: Callable[[str], None], snapshot: Callable[[], Snapshot]) -> None:
        self._enqueue = enqueue
        self._snapshot = snapshot

    def on_upsert(self, obj: Resource) -> None:
        self._enqueue_all(self.keys_for(obj))

    def on_delete(self, obj: Resource) -> None:
        self._enqueue_all(self.keys_for(obj))

    def keys_for(self, obj: Resource) -> List[str]:
        if isinstance(obj, Route):
            return [obj.meta.key]
        if not isinstance(obj, (Configuration, Revision, Service, VirtualService)):
            raise TypeError(f"Unsupported object type: {type(obj)!r}")

        namespace = obj.meta.namespace
        if isinstance(obj, Configuration):
            names = [obj.bound_route_name] if obj.bound_route_name else []
            names.extend(
                route.name
                for route in self._routes(namespace)
                if obj.name in route.configuration_names()
            )
            return self._keys(namespace, names)
        if isinstance(obj, Revision):
            return self._keys(namespace, self._routes_for_revision(obj))
        owner = obj.meta.labels.get(ROUTE_LABEL_KEY)
        return [object_key(namespace, owner)] if owner else []

    def _routes(self, namespace: str) -> List[Route]:
        return self._snapshot().routes.list(namespace)

    def _routes_for_revision(self, revision: Revision) -> List[str]:
        """Routes pinning ``revision`` or following a Configuration it serves."""

        snapshot = self._snapshot()
        namespace = revision.namespace
        followed = {
            config.name
            for config in snapshot.configurations.list(namespace)
            if config.status.latest_ready_revision_name == revision.name
        }
        if revision.configuration_name:
            followed.add(revision.configuration_name)
        return [
            route.name
            for route in snapshot.routes.list(namespace)
            if revision.name in route.revision_names()
            or followed.intersection(route.configuration_names())
        ]

    @staticmethod
    def _keys(namespace: str, names: Iterable[str]) -> List[str]:
        return [object_key(namespace, name) for name in dict.fromkeys(names)]

    def _enqueue_all(self, keys: Iterable[str]) -> None:
        for key in keys:
            LOG.debug("Enqueueing Route %s", key)
            self._enqueue(key)
