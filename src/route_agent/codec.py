"""Convert resources to and from the plain-data state file format.

The layout follows the usual ``metadata`` / ``spec`` / ``status`` shape with
camelCase keys.  A Configuration's binding is carried as the route label in
``metadata.labels``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from route_reconciler.model import (
    API_VERSION,
    Condition,
    ConditionSet,
    ConditionStatus,
    Configuration,
    ConfigurationStatus,
    HTTPRoute,
    ObjectMeta,
    OwnerReference,
    Pinned,
    Resource,
    Revision,
    Route,
    ROUTE_LABEL_KEY,
    RouteSpec,
    RouteStatus,
    RunLatest,
    Service,
    ServicePort,
    ServiceSpec,
    TrafficEntry,
    TrafficTarget,
    VirtualService,
    VirtualServiceSpec,
    WeightedBackend,
    kind_of,
)

# Section names used in state files, in dump order.
SECTIONS = {
    "routes": Route.KIND,
    "configurations": Configuration.KIND,
    "revisions": Revision.KIND,
    "services": Service.KIND,
    "virtualServices": VirtualService.KIND,
}


def _require(data: Mapping[str, Any], key: str, what: str) -> Any:
    if key not in data:
        raise ValueError(f"{what} missing '{key}'")
    return data[key]


# ----------------------------------------------------------------------
# Shared pieces
# ----------------------------------------------------------------------
def decode_meta(data: Mapping[str, Any]) -> ObjectMeta:
    if not isinstance(data, Mapping):
        raise ValueError("'metadata' must be a mapping")
    owners = tuple(
        OwnerReference(
            kind=str(_require(ref, "kind", "ownerReference")),
            name=str(_require(ref, "name", "ownerReference")),
            api_version=str(ref.get("apiVersion", API_VERSION)),
            controller=bool(ref.get("controller", True)),
            block_owner_deletion=bool(ref.get("blockOwnerDeletion", True)),
        )
        for ref in data.get("ownerReferences", [])
    )
    return ObjectMeta(
        namespace=str(data.get("namespace", "default")),
        name=str(_require(data, "name", "metadata")),
        labels={str(k): str(v) for k, v in (data.get("labels") or {}).items()},
        owner_references=owners,
        resource_version=int(data.get("resourceVersion", 0)),
    )


def encode_meta(meta: ObjectMeta) -> Dict[str, Any]:
    data: Dict[str, Any] = {"namespace": meta.namespace, "name": meta.name}
    if meta.labels:
        data["labels"] = dict(meta.labels)
    if meta.owner_references:
        data["ownerReferences"] = [
            {
                "apiVersion": ref.api_version,
                "kind": ref.kind,
                "name": ref.name,
                "controller": ref.controller,
                "blockOwnerDeletion": ref.block_owner_deletion,
            }
            for ref in meta.owner_references
        ]
    if meta.resource_version:
        data["resourceVersion"] = meta.resource_version
    return data


def decode_conditions(items: Optional[List[Mapping[str, Any]]]) -> ConditionSet:
    conditions = []
    for item in items or []:
        timestamp = item.get("lastTransitionTime")
        conditions.append(
            Condition(
                type=str(_require(item, "type", "condition")),
                status=ConditionStatus(str(item.get("status", "Unknown"))),
                reason=str(item.get("reason", "")),
                message=str(item.get("message", "")),
                last_transition_time=(
                    datetime.fromisoformat(str(timestamp)) if timestamp else None
                ),
            )
        )
    return ConditionSet(tuple(conditions))


def encode_conditions(conditions: ConditionSet) -> List[Dict[str, Any]]:
    encoded = []
    for condition in conditions:
        item: Dict[str, Any] = {"type": condition.type, "status": condition.status.value}
        if condition.reason:
            item["reason"] = condition.reason
        if condition.message:
            item["message"] = condition.message
        if condition.last_transition_time is not None:
            item["lastTransitionTime"] = condition.last_transition_time.isoformat()
        encoded.append(item)
    return encoded


# ----------------------------------------------------------------------
# Route
# ----------------------------------------------------------------------
def decode_traffic_entry(data: Mapping[str, Any]) -> TrafficEntry:
    percent = int(_require(data, "percent", "traffic entry"))
    name = str(data.get("name", ""))
    revision = data.get("revisionName")
    configuration = data.get("configurationName")
    if bool(revision) == bool(configuration):
        raise ValueError(
            "traffic entry needs exactly one of 'revisionName' or 'configurationName'"
        )
    if revision:
        return Pinned(revision_name=str(revision), percent=percent, name=name)
    return RunLatest(configuration_name=str(configuration), percent=percent, name=name)


def encode_traffic_entry(entry: TrafficEntry) -> Dict[str, Any]:
    if isinstance(entry, Pinned):
        data: Dict[str, Any] = {"revisionName": entry.revision_name}
    else:
        data = {"configurationName": entry.configuration_name}
    data["percent"] = entry.percent
    if entry.name:
        data["name"] = entry.name
    return data


def _encode_traffic_target(target: TrafficTarget) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if target.name:
        data["name"] = target.name
    if target.configuration_name:
        data["configurationName"] = target.configuration_name
    data["revisionName"] = target.revision_name
    data["percent"] = target.percent
    return data


def decode_route(data: Mapping[str, Any]) -> Route:
    spec_data = data.get("spec") or {}
    spec = RouteSpec(
        traffic=tuple(decode_traffic_entry(e) for e in spec_data.get("traffic", []))
    )
    spec.validate()
    status_data = data.get("status") or {}
    status = RouteStatus(
        domain=str(status_data.get("domain", "")),
        conditions=decode_conditions(status_data.get("conditions")),
        traffic=tuple(
            TrafficTarget(
                revision_name=str(_require(t, "revisionName", "status traffic")),
                percent=int(t.get("percent", 0)),
                configuration_name=t.get("configurationName"),
                name=str(t.get("name", "")),
            )
            for t in status_data.get("traffic", [])
        ),
    )
    return Route(meta=decode_meta(_require(data, "metadata", "route")), spec=spec, status=status)


def encode_route(route: Route) -> Dict[str, Any]:
    status: Dict[str, Any] = {}
    if route.status.domain:
        status["domain"] = route.status.domain
    if len(route.status.conditions):
        status["conditions"] = encode_conditions(route.status.conditions)
    if route.status.traffic:
        status["traffic"] = [_encode_traffic_target(t) for t in route.status.traffic]
    return {
        "metadata": encode_meta(route.meta),
        "spec": {"traffic": [encode_traffic_entry(e) for e in route.spec.traffic]},
        "status": status,
    }


# ----------------------------------------------------------------------
# Configuration / Revision
# ----------------------------------------------------------------------
def decode_configuration(data: Mapping[str, Any]) -> Configuration:
    meta = decode_meta(_require(data, "metadata", "configuration"))
    labels = dict(meta.labels)
    bound = labels.pop(ROUTE_LABEL_KEY, None)
    status_data = data.get("status") or {}
    return Configuration(
        meta=ObjectMeta(
            namespace=meta.namespace,
            name=meta.name,
            labels=labels,
            owner_references=meta.owner_references,
            resource_version=meta.resource_version,
        ),
        status=ConfigurationStatus(
            latest_created_revision_name=status_data.get("latestCreatedRevisionName"),
            latest_ready_revision_name=status_data.get("latestReadyRevisionName"),
        ),
        bound_route_name=bound,
    )


def encode_configuration(config: Configuration) -> Dict[str, Any]:
    meta = encode_meta(config.meta)
    if config.bound_route_name:
        meta.setdefault("labels", {})[ROUTE_LABEL_KEY] = config.bound_route_name
    status: Dict[str, Any] = {}
    if config.status.latest_created_revision_name:
        status["latestCreatedRevisionName"] = config.status.latest_created_revision_name
    if config.status.latest_ready_revision_name:
        status["latestReadyRevisionName"] = config.status.latest_ready_revision_name
    return {"metadata": meta, "status": status}


def decode_revision(data: Mapping[str, Any]) -> Revision:
    status_data = data.get("status") or {}
    return Revision(
        meta=decode_meta(_require(data, "metadata", "revision")),
        conditions=decode_conditions(status_data.get("conditions")),
    )


def encode_revision(revision: Revision) -> Dict[str, Any]:
    return {
        "metadata": encode_meta(revision.meta),
        "status": {"conditions": encode_conditions(revision.conditions)},
    }


# ----------------------------------------------------------------------
# Child objects
# ----------------------------------------------------------------------
def decode_service(data: Mapping[str, Any]) -> Service:
    spec_data = data.get("spec") or {}
    return Service(
        meta=decode_meta(_require(data, "metadata", "service")),
        spec=ServiceSpec(
            ports=tuple(
                ServicePort(name=str(p.get("name", "")), port=int(p["port"]))
                for p in spec_data.get("ports", [])
            ),
            type=str(spec_data.get("type", "ClusterIP")),
            cluster_ip=spec_data.get("clusterIP"),
        ),
    )


def encode_service(service: Service) -> Dict[str, Any]:
    spec: Dict[str, Any] = {
        "type": service.spec.type,
        "ports": [{"name": p.name, "port": p.port} for p in service.spec.ports],
    }
    if service.spec.cluster_ip:
        spec["clusterIP"] = service.spec.cluster_ip
    return {"metadata": encode_meta(service.meta), "spec": spec}


def decode_virtual_service(data: Mapping[str, Any]) -> VirtualService:
    spec_data = data.get("spec") or {}
    http = tuple(
        HTTPRoute(
            group=str(route.get("group", "")),
            match_hosts=tuple(str(h) for h in route.get("match", [])),
            backends=tuple(
                WeightedBackend(
                    revision_name=str(b["revisionName"]),
                    percent=int(b["percent"]),
                    host=str(b["host"]),
                    port=int(b.get("port", 80)),
                    active=bool(b.get("active", True)),
                )
                for b in route.get("route", [])
            ),
        )
        for route in spec_data.get("http", [])
    )
    return VirtualService(
        meta=decode_meta(_require(data, "metadata", "virtual service")),
        spec=VirtualServiceSpec(
            gateways=tuple(str(g) for g in spec_data.get("gateways", [])),
            hosts=tuple(str(h) for h in spec_data.get("hosts", [])),
            http=http,
        ),
    )


def encode_virtual_service(virtual_service: VirtualService) -> Dict[str, Any]:
    spec = virtual_service.spec
    return {
        "metadata": encode_meta(virtual_service.meta),
        "spec": {
            "gateways": list(spec.gateways),
            "hosts": list(spec.hosts),
            "http": [
                {
                    "group": route.group,
                    "match": list(route.match_hosts),
                    "route": [
                        {
                            "revisionName": b.revision_name,
                            "percent": b.percent,
                            "host": b.host,
                            "port": b.port,
                            "active": b.active,
                        }
                        for b in route.backends
                    ],
                }
                for route in spec.http
            ],
        },
    }


_DECODERS = {
    Route.KIND: decode_route,
    Configuration.KIND: decode_configuration,
    Revision.KIND: decode_revision,
    Service.KIND: decode_service,
    VirtualService.KIND: decode_virtual_service,
}

_ENCODERS = {
    Route.KIND: encode_route,
    Configuration.KIND: encode_configuration,
    Revision.KIND: encode_revision,
    Service.KIND: encode_service,
    VirtualService.KIND: encode_virtual_service,
}


def decode(kind: str, data: Mapping[str, Any]) -> Resource:
    try:
        decoder = _DECODERS[kind]
    except KeyError:
        raise ValueError(f"Unsupported resource kind '{kind}'") from None
    return decoder(data)


def encode(obj: Resource) -> Dict[str, Any]:
    return _ENCODERS[kind_of(obj)](obj)


def decode_state(payload: Mapping[str, Any]) -> List[Resource]:
    """Decode every object listed under the known sections of ``payload``."""

    if not isinstance(payload, Mapping):
        raise ValueError("state file must be a mapping")
    objects: List[Resource] = []
    for section, kind in SECTIONS.items():
        entries = payload.get(section) or []
        if not isinstance(entries, list):
            raise ValueError(f"'{section}' section must be a list")
        objects.extend(decode(kind, entry) for entry in entries)
    return objects


def encode_state(objects: List[Resource]) -> Dict[str, List[Dict[str, Any]]]:
    by_kind: Dict[str, List[Resource]] = {}
    for obj in objects:
        by_kind.setdefault(kind_of(obj), []).append(obj)
    return {
        section: [
            encode(obj)
            for obj in sorted(by_kind.get(kind, []), key=lambda o: o.meta.key)
        ]
        for section, kind in SECTIONS.items()
    }
