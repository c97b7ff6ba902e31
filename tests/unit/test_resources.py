from dataclasses import replace

from route_reconciler.converge import ManagedChild, Outcome, converge
from route_reconciler.model import Pinned, ROUTE_LABEL_KEY, RunLatest, Service
from route_reconciler.resources import (
    MESH_GATEWAY,
    SHARED_GATEWAY,
    make_service,
    make_virtual_service,
    merge_service,
    service_managed_fields,
)
from route_reconciler.traffic import RevisionTarget, TrafficConfig

from tests.unit.builders import route_with_traffic, seed, simple_run_latest, verbs


def test_service_is_owned_and_labelled():
    route = simple_run_latest("default", "web", "config")

    service = make_service(route)

    assert service.meta.name == "web"
    assert service.meta.labels == {ROUTE_LABEL_KEY: "web"}
    (owner,) = service.meta.owner_references
    assert (owner.kind, owner.name, owner.controller) == ("Route", "web", True)
    assert [(p.name, p.port) for p in service.spec.ports] == [("http", 80)]


def test_virtual_service_groups_and_hosts():
    route = route_with_traffic(
        "ns", "web", RunLatest("config", 90), Pinned("config-00001", 10, name="old")
    )
    traffic = TrafficConfig(
        (
            RevisionTarget("config-00002", 90, configuration_name="config"),
            RevisionTarget("config-00001", 10, name="old"),
        )
    )

    vs = make_virtual_service(route, "web.ns.example.com", traffic)

    assert vs.spec.gateways == (SHARED_GATEWAY, MESH_GATEWAY)
    assert vs.spec.hosts == (
        "web.ns.example.com",
        "web.ns.svc.cluster.local",
        "old.web.ns.example.com",
    )
    default, old = vs.spec.http
    assert default.match_hosts == ("web.ns.example.com", "web.ns.svc.cluster.local")
    assert [(b.revision_name, b.percent) for b in default.backends] == [("config-00002", 90)]
    assert default.backends[0].host == "config-00002-service.ns.svc.cluster.local"
    assert old.match_hosts == ("old.web.ns.example.com",)
    assert [(b.revision_name, b.percent) for b in old.backends] == [("config-00001", 10)]


def test_service_cluster_ip_is_not_managed():
    route = simple_run_latest("default", "web", "config")
    desired = make_service(route)
    observed = replace(desired, spec=replace(desired.spec, cluster_ip="10.0.0.7"))

    assert service_managed_fields(observed) == service_managed_fields(desired)

    drifted = replace(observed, spec=replace(observed.spec, type="NodePort"))
    merged = merge_service(drifted, desired)
    assert merged.spec.type == "ClusterIP"
    assert merged.spec.cluster_ip == "10.0.0.7"


def _service_child(store, route):
    return ManagedChild(
        kind=Service.KIND,
        compute_desired=lambda: make_service(route),
        fetch_existing=lambda ns, name: store.get(Service.KIND, ns, name),
        create=store.create,
        update=store.update,
        managed_fields=service_managed_fields,
        merge=merge_service,
    )


def test_converge_creates_then_is_idempotent():
    store = seed()
    route = simple_run_latest("default", "web", "config")

    outcome, created = converge(_service_child(store, route))
    assert outcome is Outcome.CREATED
    assert created.meta.resource_version > 0

    outcome, _ = converge(_service_child(store, route))
    assert outcome is Outcome.UNCHANGED
    assert verbs(store) == [("create", "Service", "web")]


def test_converge_updates_drifted_object():
    route = simple_run_latest("default", "web", "config")
    desired = make_service(route)
    store = seed(replace(desired, spec=replace(desired.spec, ports=(), cluster_ip="10.1.2.3")))

    outcome, updated = converge(_service_child(store, route))

    assert outcome is Outcome.UPDATED
    assert updated.spec.ports == desired.spec.ports
    assert updated.spec.cluster_ip == "10.1.2.3"
    assert verbs(store) == [("update", "Service", "web")]
