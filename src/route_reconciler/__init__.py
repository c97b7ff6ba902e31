"""Route reconciler core.

A Route declares how traffic is split across compute Revisions, either by
pinning a Revision directly or by following a Configuration's latest ready
Revision.  This package turns that declaration into converged downstream
objects:

* resolving traffic entries into concrete, weighted revision targets;
* binding each followed Configuration to at most one Route;
* choosing the Route's external domain from its labels;
* synthesising the cluster-internal Service and the weighted VirtualService;
  and
* reporting the outcome on the Route's status conditions.

The package is pure Python with no I/O of its own.  Reads come from an
explicit :class:`~route_reconciler.store.Snapshot` and writes go through an
:class:`~route_reconciler.store.ObjectStore`, so the whole pipeline can be
exercised with in-memory fixtures.
"""

from .domain import DomainConfig, LabelSelector  # noqa: F401
from .reconciler import ReconcileEngine  # noqa: F401
from .store import InMemoryStore, ObjectStore, Snapshot  # noqa: F401

__all__ = [
    "DomainConfig",
    "InMemoryStore",
    "LabelSelector",
    "ObjectStore",
    "ReconcileEngine",
    "Snapshot",
]
