"""Create/update/no-op convergence shared by every managed child kind."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, Tuple, TypeVar

LOG = logging.getLogger(__name__)

T = TypeVar("T")


class Outcome(Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class ManagedChild(Generic[T]):
    """Capabilities needed to converge one kind of child object.

    ``managed_fields`` projects an object onto the fields the controller
    owns; two objects are equal for convergence purposes iff their
    projections are equal.  ``merge`` builds the update payload from the
    observed object and the desired one, keeping everything outside the
    managed subset as observed.
    """

    kind: str
    compute_desired: Callable[[], T]
    fetch_existing: Callable[[str, str], Optional[T]]
    create: Callable[[T], Any]
    update: Callable[[T], Any]
    managed_fields: Callable[[T], Any]
    merge: Callable[[T, T], T]

    def fields_equal(self, left: T, right: T) -> bool:
        return self.managed_fields(left) == self.managed_fields(right)


def converge(child: ManagedChild[T]) -> Tuple[Outcome, T]:
    """Drive one child object towards its desired state.

    Store errors propagate unchanged; the caller requeues.
    """

    desired = child.compute_desired()
    meta = desired.meta  # type: ignore[attr-defined]
    existing = child.fetch_existing(meta.namespace, meta.name)

    if existing is None:
        LOG.info("Creating %s %s", child.kind, meta.key)
        return Outcome.CREATED, child.create(desired)

    if child.fields_equal(existing, desired):
        LOG.debug("%s %s is up to date", child.kind, meta.key)
        return Outcome.UNCHANGED, existing

    LOG.info("Updating %s %s", child.kind, meta.key)
    return Outcome.UPDATED, child.update(child.merge(existing, desired))
