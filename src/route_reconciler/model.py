"""Resource data structures consumed and produced by the route reconciler.

These dataclasses describe the Route, its referenced Configurations and
Revisions, and the two child objects (the cluster-internal Service and the
weighted VirtualService) the reconciler keeps converged.  Every object is
immutable; writers derive new versions with :func:`dataclasses.replace`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, Mapping, Optional, Sequence, Tuple, Union

API_VERSION = "serving.knative.dev/v1alpha1"

# Label placed on child objects (and, in the wire format, on bound
# Configurations) naming the owning Route.
ROUTE_LABEL_KEY = "serving.knative.dev/route"


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class RouteConditionType(str, Enum):
    ALL_TRAFFIC_ASSIGNED = "AllTrafficAssigned"
    READY = "Ready"


@dataclass(frozen=True)
class OwnerReference:
    kind: str
    name: str
    api_version: str = API_VERSION
    controller: bool = True
    block_owner_deletion: bool = True


@dataclass(frozen=True)
class ObjectMeta:
    """Identity and bookkeeping shared by every resource kind.

    ``resource_version`` is assigned by the store on every write and is the
    token used for optimistic concurrency.
    """

    namespace: str
    name: str
    labels: Mapping[str, str] = field(default_factory=dict)
    owner_references: Tuple[OwnerReference, ...] = ()
    resource_version: int = 0

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class Condition:
    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = None


@dataclass(frozen=True)
class ConditionSet:
    """Ordered mapping from condition type to :class:`Condition`.

    New condition types are appended; existing ones keep their position.
    """

    items: Tuple[Condition, ...] = ()

    def __iter__(self) -> Iterator[Condition]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def get(self, condition_type: str) -> Optional[Condition]:
        return next((c for c in self.items if c.type == condition_type), None)

    def set(self, condition: Condition, now: datetime) -> "ConditionSet":
        """Return a set with ``condition`` merged in.

        When the stored condition already carries the same status it is kept
        verbatim, including its reason, message and transition time.
        Otherwise every field is replaced and the transition time is ``now``.
        """

        current = self.get(condition.type)
        if current is not None and current.status == condition.status:
            return self

        updated = replace(condition, last_transition_time=now)
        if current is None:
            return ConditionSet(self.items + (updated,))
        return ConditionSet(
            tuple(updated if c.type == condition.type else c for c in self.items)
        )

    def is_true(self, condition_type: str) -> bool:
        condition = self.get(condition_type)
        return condition is not None and condition.status is ConditionStatus.TRUE


# ----------------------------------------------------------------------
# Route
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Pinned:
    """Traffic entry sending ``percent`` directly to a named Revision."""

    revision_name: str
    percent: int
    name: str = ""


@dataclass(frozen=True)
class RunLatest:
    """Traffic entry following a Configuration's latest ready Revision."""

    configuration_name: str
    percent: int
    name: str = ""


TrafficEntry = Union[Pinned, RunLatest]


@dataclass(frozen=True)
class TrafficTarget:
    """Resolved traffic entry as reported in ``RouteStatus.traffic``."""

    revision_name: str
    percent: int
    configuration_name: Optional[str] = None
    name: str = ""


@dataclass(frozen=True)
class RouteSpec:
    traffic: Tuple[TrafficEntry, ...] = ()

    def validate(self) -> None:
        """Raise ``ValueError`` unless the traffic entries form a valid split."""

        names = [entry.name for entry in self.traffic if entry.name]
        if len(names) != len(set(names)):
            raise ValueError("traffic entry names must be unique")
        for entry in self.traffic:
            if not 0 <= entry.percent <= 100:
                raise ValueError(f"traffic percent {entry.percent} out of range")
        total = sum(entry.percent for entry in self.traffic)
        if self.traffic and total != 100:
            raise ValueError(f"traffic percents must sum to 100, got {total}")


@dataclass(frozen=True)
class RouteStatus:
    domain: str = ""
    conditions: ConditionSet = field(default_factory=ConditionSet)
    traffic: Tuple[TrafficTarget, ...] = ()


@dataclass(frozen=True)
class Route:
    KIND = "Route"

    meta: ObjectMeta
    spec: RouteSpec = field(default_factory=RouteSpec)
    status: RouteStatus = field(default_factory=RouteStatus)

    @property
    def namespace(self) -> str:
        return self.meta.namespace

    @property
    def name(self) -> str:
        return self.meta.name

    @property
    def labels(self) -> Mapping[str, str]:
        return self.meta.labels

    def configuration_names(self) -> Sequence[str]:
        return [e.configuration_name for e in self.spec.traffic if isinstance(e, RunLatest)]

    def revision_names(self) -> Sequence[str]:
        return [e.revision_name for e in self.spec.traffic if isinstance(e, Pinned)]


# ----------------------------------------------------------------------
# Configuration / Revision
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class ConfigurationStatus:
    latest_created_revision_name: Optional[str] = None
    latest_ready_revision_name: Optional[str] = None


@dataclass(frozen=True)
class Configuration:
    KIND = "Configuration"

    meta: ObjectMeta
    status: ConfigurationStatus = field(default_factory=ConfigurationStatus)
    # Name of the Route currently routing this Configuration's latest
    # revision.  Only the binder writes it.
    bound_route_name: Optional[str] = None

    @property
    def namespace(self) -> str:
        return self.meta.namespace

    @property
    def name(self) -> str:
        return self.meta.name


@dataclass(frozen=True)
class Revision:
    KIND = "Revision"

    meta: ObjectMeta
    conditions: ConditionSet = field(default_factory=ConditionSet)

    @property
    def namespace(self) -> str:
        return self.meta.namespace

    @property
    def name(self) -> str:
        return self.meta.name

    @property
    def is_ready(self) -> bool:
        return self.conditions.is_true("Ready")

    @property
    def configuration_name(self) -> Optional[str]:
        """Name of the controlling Configuration, if any."""

        return next(
            (
                ref.name
                for ref in self.meta.owner_references
                if ref.kind == Configuration.KIND and ref.controller
            ),
            None,
        )


# ----------------------------------------------------------------------
# Child objects
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class ServicePort:
    name: str
    port: int


@dataclass(frozen=True)
class ServiceSpec:
    ports: Tuple[ServicePort, ...] = ()
    type: str = "ClusterIP"
    # Assigned by the platform once the Service exists.
    cluster_ip: Optional[str] = None


@dataclass(frozen=True)
class Service:
    KIND = "Service"

    meta: ObjectMeta
    spec: ServiceSpec = field(default_factory=ServiceSpec)


@dataclass(frozen=True)
class WeightedBackend:
    revision_name: str
    percent: int
    host: str
    port: int = 80
    active: bool = True


@dataclass(frozen=True)
class HTTPRoute:
    group: str
    match_hosts: Tuple[str, ...]
    backends: Tuple[WeightedBackend, ...]


@dataclass(frozen=True)
class VirtualServiceSpec:
    gateways: Tuple[str, ...] = ()
    hosts: Tuple[str, ...] = ()
    http: Tuple[HTTPRoute, ...] = ()


@dataclass(frozen=True)
class VirtualService:
    KIND = "VirtualService"

    meta: ObjectMeta
    spec: VirtualServiceSpec = field(default_factory=VirtualServiceSpec)


Resource = Union[Route, Configuration, Revision, Service, VirtualService]

RESOURCE_KINDS: Dict[str, type] = {
    cls.KIND: cls for cls in (Route, Configuration, Revision, Service, VirtualService)
}


def kind_of(obj: Resource) -> str:
    return type(obj).KIND


def object_key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}"


def with_resource_version(obj: Resource, version: int) -> Resource:
    return replace(obj, meta=replace(obj.meta, resource_version=version))
