"""Event primitives consumed by the handler registry."""

from __future__ import annotations

from dataclasses import dataclass

from route_reconciler.model import Resource


@dataclass(frozen=True)
class ObjectUpsert:
    """An object was created or changed; ``obj`` is its new state."""

    obj: Resource


@dataclass(frozen=True)
class ObjectDelete:
    """An object was removed; ``obj`` is its last known state."""

    obj: Resource
