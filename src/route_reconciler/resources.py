"""Desired shapes of the objects a Route owns."""

from __future__ import annotations

from dataclasses import replace
from typing import Tuple

from .model import (
    HTTPRoute,
    ObjectMeta,
    OwnerReference,
    Route,
    ROUTE_LABEL_KEY,
    Service,
    ServicePort,
    ServiceSpec,
    VirtualService,
    VirtualServiceSpec,
    WeightedBackend,
)
from .traffic import DEFAULT_GROUP, RevisionTarget, TrafficConfig

CLUSTER_DOMAIN = "svc.cluster.local"
SHARED_GATEWAY = "knative-shared-gateway.knative-serving.svc.cluster.local"
MESH_GATEWAY = "mesh"
SERVICE_PORT_NAME = "http"
SERVICE_PORT = 80


def service_name(route: Route) -> str:
    return route.name


def virtual_service_name(route: Route) -> str:
    return route.name


def internal_host(route: Route) -> str:
    return f"{service_name(route)}.{route.namespace}.{CLUSTER_DOMAIN}"


def revision_host(namespace: str, revision_name: str) -> str:
    return f"{revision_name}-service.{namespace}.{CLUSTER_DOMAIN}"


def _child_meta(route: Route, name: str) -> ObjectMeta:
    return ObjectMeta(
        namespace=route.namespace,
        name=name,
        labels={ROUTE_LABEL_KEY: route.name},
        owner_references=(OwnerReference(kind=Route.KIND, name=route.name),),
    )


def make_service(route: Route) -> Service:
    return Service(
        meta=_child_meta(route, service_name(route)),
        spec=ServiceSpec(ports=(ServicePort(name=SERVICE_PORT_NAME, port=SERVICE_PORT),)),
    )


def _backend(namespace: str, target: RevisionTarget) -> WeightedBackend:
    return WeightedBackend(
        revision_name=target.revision_name,
        percent=target.percent,
        host=revision_host(namespace, target.revision_name),
        port=SERVICE_PORT,
        active=target.active,
    )


def _match_hosts(route: Route, domain: str, group: str) -> Tuple[str, ...]:
    if group == DEFAULT_GROUP:
        return (domain, internal_host(route))
    return (f"{group}.{domain}",)


def make_virtual_service(route: Route, domain: str, traffic: TrafficConfig) -> VirtualService:
    """Route every traffic group to its revisions with the resolved weights."""

    http = tuple(
        HTTPRoute(
            group=group,
            match_hosts=_match_hosts(route, domain, group),
            backends=tuple(_backend(route.namespace, t) for t in targets),
        )
        for group, targets in traffic.targets.items()
    )
    hosts = (domain, internal_host(route)) + tuple(
        f"{r.group}.{domain}" for r in http if r.group != DEFAULT_GROUP
    )
    return VirtualService(
        meta=_child_meta(route, virtual_service_name(route)),
        spec=VirtualServiceSpec(
            gateways=(SHARED_GATEWAY, MESH_GATEWAY),
            hosts=hosts,
            http=http,
        ),
    )


# ----------------------------------------------------------------------
# Controller-managed field subsets
# ----------------------------------------------------------------------
def service_managed_fields(service: Service) -> ServiceSpec:
    return replace(service.spec, cluster_ip=None)


def merge_service(existing: Service, desired: Service) -> Service:
    """Apply the desired spec to ``existing`` keeping the assigned address."""

    spec = replace(desired.spec, cluster_ip=existing.spec.cluster_ip)
    return replace(existing, spec=spec)


def virtual_service_managed_fields(virtual_service: VirtualService) -> VirtualServiceSpec:
    return virtual_service.spec


def merge_virtual_service(existing: VirtualService, desired: VirtualService) -> VirtualService:
    return replace(existing, spec=desired.spec)
