"""File-based watcher feeding externally owned objects into the store."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from threading import Event, Thread
from typing import Dict, Tuple

import yaml

from route_reconciler.model import Configuration, Resource, Route, kind_of
from route_reconciler.store import InMemoryStore

from ..codec import decode_state
from ..events import ObjectDelete, ObjectUpsert
from ..registry import HandlerRegistry

LOG = logging.getLogger(__name__)

_ObjectId = Tuple[str, str, str]


def _object_id(obj: Resource) -> _ObjectId:
    return kind_of(obj), obj.meta.namespace, obj.meta.name


def _strip_version(obj: Resource) -> Resource:
    return replace(obj, meta=replace(obj.meta, resource_version=0))


def _keep_controller_fields(existing: Resource, incoming: Resource) -> Resource:
    """Carry fields only the controller writes over from the stored copy."""

    if isinstance(existing, Route) and isinstance(incoming, Route):
        return replace(incoming, status=existing.status)
    if isinstance(existing, Configuration) and isinstance(incoming, Configuration):
        if incoming.bound_route_name is None:
            return replace(incoming, bound_route_name=existing.bound_route_name)
    return incoming


class FileStateWatcher(Thread):
    """Poll a YAML/JSON state file and publish object events.

    The file lists the objects owned by other actors (routes,
    configurations, revisions).  Changed entries are written into the store
    and removed ones are deleted; each change is announced on the registry.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        store: InMemoryStore,
        path: Path,
        interval: float,
        stop_event: Event,
    ) -> None:
        super().__init__(daemon=True)
        self._registry = registry
        self._store = store
        self._path = Path(path)
        self._interval = interval
        self._stop_event = stop_event
        self._state: Dict[_ObjectId, Resource] = {}

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("state file watcher encountered an error")
            self._stop_event.wait(self._interval)

    def poll(self) -> None:
        if not self._path.exists():
            LOG.debug("state file %s does not exist yet", self._path)
            return

        try:
            # JSON is a subset of YAML, so one loader covers both.
            payload = yaml.safe_load(self._path.read_text()) or {}
        except yaml.YAMLError as exc:
            LOG.warning("failed to parse state file %s: %s", self._path, exc)
            return

        try:
            desired = {_object_id(obj): _strip_version(obj) for obj in decode_state(payload)}
        except (KeyError, TypeError, ValueError) as exc:
            LOG.warning("invalid state file %s: %s", self._path, exc)
            return

        for object_id, obj in desired.items():
            if self._state.get(object_id) == obj:
                continue
            stored = self._store.put(obj, merge=_keep_controller_fields)
            LOG.debug("%s %s updated from state file", object_id[0], stored.meta.key)
            self._registry.handle(ObjectUpsert(stored))

        for object_id in set(self._state) - set(desired):
            removed = self._store.delete(*object_id)
            LOG.debug("%s %s/%s removed", *object_id)
            if removed is not None:
                self._registry.handle(ObjectDelete(removed))

        self._state = desired
