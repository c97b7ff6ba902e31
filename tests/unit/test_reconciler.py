from dataclasses import replace

import pytest

from route_reconciler.errors import (
    ConfigurationConflict,
    ConfigurationMissing,
    ConflictError,
    InvalidKeyError,
    RevisionMissing,
)
from route_reconciler.model import (
    ConditionStatus,
    Configuration,
    RunLatest,
    Route,
    Service,
    ServiceSpec,
    TrafficTarget,
    VirtualService,
    VirtualServiceSpec,
)
from route_reconciler.resources import make_service, make_virtual_service
from route_reconciler.traffic import RevisionTarget, TrafficConfig

from tests.unit.builders import (
    NOW,
    build_engine,
    failed_conditions,
    ready_status,
    route_with_traffic,
    seed,
    simple_not_ready_config,
    simple_pinned,
    simple_ready_config,
    simple_ready_revision,
    simple_run_latest,
    verbs,
)


def routed(*targets: RevisionTarget) -> TrafficConfig:
    return TrafficConfig(revision_targets=tuple(targets))


def steady_state(name: str, config: str = "config", labels=None, domain_suffix="example.com"):
    """Objects for a Route that is already fully converged."""

    domain = f"{name}.default.{domain_suffix}"
    revision = f"{config}-00001"
    route = simple_run_latest(
        "default",
        name,
        config,
        status=ready_status(domain, TrafficTarget(revision, 100, config)),
        labels=labels,
    )
    return [
        route,
        simple_ready_config("default", config, bound_to=name),
        simple_ready_revision("default", revision),
        make_service(route),
        make_virtual_service(route, domain, routed(RevisionTarget(revision, 100, config))),
    ]


def stored(store, kind, name, namespace="default"):
    return store.get(kind, namespace, name)


def test_bad_key_is_not_retryable():
    store = seed()
    engine = build_engine(store)

    with pytest.raises(InvalidKeyError) as excinfo:
        engine.reconcile("too/many/parts", store.snapshot())

    assert excinfo.value.retryable is False
    assert store.actions == []


def test_missing_route_is_success():
    store = seed()
    engine = build_engine(store)

    engine.reconcile("foo/not-found", store.snapshot())

    assert store.actions == []


def test_simple_route_becomes_ready():
    store = seed(
        simple_run_latest("default", "becomes-ready", "config"),
        simple_ready_config("default", "config"),
        simple_ready_revision("default", "config-00001"),
    )
    engine = build_engine(store)

    engine.reconcile("default/becomes-ready", store.snapshot())

    assert verbs(store) == [
        ("update", "Configuration", "config"),
        ("create", "Service", "becomes-ready"),
        ("create", "VirtualService", "becomes-ready"),
        ("update_status", "Route", "becomes-ready"),
    ]
    assert stored(store, "Configuration", "config").bound_route_name == "becomes-ready"

    virtual_service = stored(store, "VirtualService", "becomes-ready")
    assert len(virtual_service.spec.http) == 1
    http = virtual_service.spec.http[0]
    assert http.group == ""
    assert [(b.revision_name, b.percent, b.active) for b in http.backends] == [
        ("config-00001", 100, True)
    ]
    assert "becomes-ready.default.example.com" in virtual_service.spec.hosts

    route = stored(store, "Route", "becomes-ready")
    assert route.status == ready_status(
        "becomes-ready.default.example.com",
        TrafficTarget("config-00001", 100, "config"),
    )


def test_configuration_not_yet_ready():
    store = seed(
        simple_run_latest("default", "first-reconcile", "not-ready"),
        simple_not_ready_config("default", "not-ready"),
        simple_ready_revision("default", "not-ready-00001"),
    )
    engine = build_engine(store)

    with pytest.raises(ConfigurationMissing):
        engine.reconcile("default/first-reconcile", store.snapshot())

    assert verbs(store) == [
        ("create", "Service", "first-reconcile"),
        ("update_status", "Route", "first-reconcile"),
    ]
    assert stored(store, "VirtualService", "first-reconcile") is None
    assert stored(store, "Configuration", "not-ready").bound_route_name is None

    status = stored(store, "Route", "first-reconcile").status
    assert status.domain == "first-reconcile.default.example.com"
    assert status.conditions == failed_conditions(
        "ConfigurationMissing", 'Referenced Configuration "not-ready" not found'
    )
    assert status.traffic == ()


def test_failed_route_settles_without_writes():
    store = seed(simple_run_latest("default", "config-missing", "not-found"))
    engine = build_engine(store)

    with pytest.raises(ConfigurationMissing):
        engine.reconcile("default/config-missing", store.snapshot())
    store.actions.clear()

    with pytest.raises(ConfigurationMissing):
        engine.reconcile("default/config-missing", store.snapshot())

    assert store.actions == []


def test_steady_state_makes_no_writes():
    store = seed(*steady_state("steady-state"))
    engine = build_engine(store)

    engine.reconcile("default/steady-state", store.snapshot())

    assert store.actions == []


def test_reconcile_is_idempotent():
    store = seed(
        route_with_traffic(
            "default",
            "split",
            RunLatest("blue", 30),
            RunLatest("green", 70, name="candidate"),
        ),
        simple_ready_config("default", "blue"),
        simple_ready_config("default", "green"),
        simple_ready_revision("default", "blue-00001"),
        simple_ready_revision("default", "green-00001"),
    )
    engine = build_engine(store)
    engine.reconcile("default/split", store.snapshot())
    store.actions.clear()

    engine.reconcile("default/split", store.snapshot())

    assert store.actions == []


def test_different_labels_different_domain():
    store = seed(
        *steady_state(
            "different-domain",
            labels={"app": "prod"},
            domain_suffix="another-example.com",
        )
    )
    engine = build_engine(store)

    engine.reconcile("default/different-domain", store.snapshot())

    assert store.actions == []


def test_new_latest_created_revision_changes_nothing():
    objects = steady_state("new-latest-created")
    config = objects[1]
    objects[1] = replace(
        config,
        status=replace(config.status, latest_created_revision_name="config-00002"),
    )
    store = seed(*objects)
    engine = build_engine(store)

    engine.reconcile("default/new-latest-created", store.snapshot())

    assert store.actions == []


def test_new_latest_ready_revision_rolls_out():
    objects = steady_state("new-latest-ready")
    objects[1] = simple_ready_config(
        "default", "config", bound_to="new-latest-ready", ready_revision="config-00002"
    )
    objects.append(simple_ready_revision("default", "config-00002"))
    store = seed(*objects)
    engine = build_engine(store)

    engine.reconcile("default/new-latest-ready", store.snapshot())

    assert verbs(store) == [
        ("update", "VirtualService", "new-latest-ready"),
        ("update_status", "Route", "new-latest-ready"),
    ]
    backends = stored(store, "VirtualService", "new-latest-ready").spec.http[0].backends
    assert [(b.revision_name, b.percent) for b in backends] == [("config-00002", 100)]
    route = stored(store, "Route", "new-latest-ready")
    assert route.status.traffic == (TrafficTarget("config-00002", 100, "config"),)


def test_service_mutation_is_repaired_keeping_cluster_ip():
    objects = steady_state("svc-mutation")
    service = objects[3]
    objects[3] = replace(service, spec=ServiceSpec(ports=(), cluster_ip="10.0.0.7"))
    store = seed(*objects)
    engine = build_engine(store)

    engine.reconcile("default/svc-mutation", store.snapshot())

    assert verbs(store) == [("update", "Service", "svc-mutation")]
    updated = stored(store, "Service", "svc-mutation")
    assert updated.spec.cluster_ip == "10.0.0.7"
    assert updated.spec.ports == service.spec.ports


def test_assigned_cluster_ip_is_not_a_difference():
    objects = steady_state("cluster-ip")
    service = objects[3]
    objects[3] = replace(service, spec=replace(service.spec, cluster_ip="127.0.0.1"))
    store = seed(*objects)
    engine = build_engine(store)

    engine.reconcile("default/cluster-ip", store.snapshot())

    assert store.actions == []


def test_virtual_service_mutation_is_repaired():
    objects = steady_state("virt-svc-mutation")
    desired = objects[4]
    objects[4] = replace(desired, spec=VirtualServiceSpec())
    store = seed(*objects)
    engine = build_engine(store)

    engine.reconcile("default/virt-svc-mutation", store.snapshot())

    assert verbs(store) == [("update", "VirtualService", "virt-svc-mutation")]
    assert stored(store, "VirtualService", "virt-svc-mutation").spec == desired.spec


def test_configuration_labelled_by_another_route():
    store = seed(
        simple_run_latest("default", "licked-cookie", "config"),
        simple_ready_config("default", "config", bound_to="someone-else"),
        simple_ready_revision("default", "config-00001"),
    )
    engine = build_engine(store)

    with pytest.raises(ConfigurationConflict) as excinfo:
        engine.reconcile("default/licked-cookie", store.snapshot())

    assert excinfo.value.owner == "someone-else"
    assert excinfo.value.retryable is True
    assert store.actions == []
    assert stored(store, "Configuration", "config").bound_route_name == "someone-else"


def test_switch_to_a_different_config():
    route = simple_run_latest(
        "default",
        "change-configs",
        "newconfig",
        status=ready_status(
            "change-configs.default.example.com",
            TrafficTarget("oldconfig-00001", 100, "oldconfig"),
        ),
    )
    old_route = simple_run_latest("default", "change-configs", "oldconfig")
    store = seed(
        route,
        simple_ready_config("default", "oldconfig", bound_to="change-configs"),
        simple_ready_config("default", "newconfig"),
        simple_ready_revision("default", "oldconfig-00001"),
        simple_ready_revision("default", "newconfig-00001"),
        make_service(route),
        make_virtual_service(
            old_route,
            "change-configs.default.example.com",
            routed(RevisionTarget("oldconfig-00001", 100, "oldconfig")),
        ),
    )
    engine = build_engine(store)

    engine.reconcile("default/change-configs", store.snapshot())

    assert verbs(store) == [
        ("update", "Configuration", "oldconfig"),
        ("update", "Configuration", "newconfig"),
        ("update", "VirtualService", "change-configs"),
        ("update_status", "Route", "change-configs"),
    ]
    assert stored(store, "Configuration", "oldconfig").bound_route_name is None
    assert stored(store, "Configuration", "newconfig").bound_route_name == "change-configs"
    backends = stored(store, "VirtualService", "change-configs").spec.http[0].backends
    assert [(b.revision_name, b.percent) for b in backends] == [("newconfig-00001", 100)]
    assert stored(store, "Route", "change-configs").status.traffic == (
        TrafficTarget("newconfig-00001", 100, "newconfig"),
    )


def test_revision_missing_direct():
    store = seed(
        simple_pinned("default", "missing-revision-direct", "not-found"),
        simple_ready_config("default", "config"),
    )
    engine = build_engine(store)

    with pytest.raises(RevisionMissing):
        engine.reconcile("default/missing-revision-direct", store.snapshot())

    assert verbs(store) == [
        ("create", "Service", "missing-revision-direct"),
        ("update_status", "Route", "missing-revision-direct"),
    ]
    status = stored(store, "Route", "missing-revision-direct").status
    assert status.conditions == failed_conditions(
        "RevisionMissing", 'Referenced Revision "not-found" not found'
    )


def test_revision_missing_indirect_reports_configuration():
    store = seed(
        simple_run_latest("default", "missing-revision-indirect", "config"),
        simple_ready_config("default", "config"),
    )
    engine = build_engine(store)

    with pytest.raises(ConfigurationMissing):
        engine.reconcile("default/missing-revision-indirect", store.snapshot())

    status = stored(store, "Route", "missing-revision-indirect").status
    assert status.conditions == failed_conditions(
        "ConfigurationMissing", 'Referenced Configuration "config" not found'
    )


def test_pinned_route_becomes_ready():
    store = seed(
        simple_pinned("default", "pinned-becomes-ready", "config-00001"),
        simple_ready_config("default", "config"),
        simple_ready_revision("default", "config-00001", owner="config"),
    )
    engine = build_engine(store)

    engine.reconcile("default/pinned-becomes-ready", store.snapshot())

    assert verbs(store) == [
        ("create", "Service", "pinned-becomes-ready"),
        ("create", "VirtualService", "pinned-becomes-ready"),
        ("update_status", "Route", "pinned-becomes-ready"),
    ]
    assert stored(store, "Configuration", "config").bound_route_name is None
    assert stored(store, "Route", "pinned-becomes-ready").status.traffic == (
        TrafficTarget("config-00001", 100),
    )


def test_traffic_split_becomes_ready():
    store = seed(
        route_with_traffic(
            "default", "named-traffic-split", RunLatest("blue", 50), RunLatest("green", 50)
        ),
        simple_ready_config("default", "blue"),
        simple_ready_config("default", "green"),
        simple_ready_revision("default", "blue-00001", owner="blue"),
        simple_ready_revision("default", "green-00001", owner="green"),
    )
    engine = build_engine(store)

    engine.reconcile("default/named-traffic-split", store.snapshot())

    assert verbs(store) == [
        ("update", "Configuration", "blue"),
        ("update", "Configuration", "green"),
        ("create", "Service", "named-traffic-split"),
        ("create", "VirtualService", "named-traffic-split"),
        ("update_status", "Route", "named-traffic-split"),
    ]
    http = stored(store, "VirtualService", "named-traffic-split").spec.http
    assert [(b.revision_name, b.percent) for b in http[0].backends] == [
        ("blue-00001", 50),
        ("green-00001", 50),
    ]
    status = stored(store, "Route", "named-traffic-split").status
    assert status.traffic == (
        TrafficTarget("blue-00001", 50, "blue"),
        TrafficTarget("green-00001", 50, "green"),
    )


def test_failure_keeps_previous_traffic_and_mesh_rule():
    objects = steady_state("lost-config")
    objects.pop(1)  # the Configuration disappears
    store = seed(*objects)
    engine = build_engine(store)

    with pytest.raises(ConfigurationMissing):
        engine.reconcile("default/lost-config", store.snapshot())

    assert verbs(store) == [("update_status", "Route", "lost-config")]
    status = stored(store, "Route", "lost-config").status
    assert status.traffic == (TrafficTarget("config-00001", 100, "config"),)
    assert status.conditions.get("Ready").status is ConditionStatus.FALSE
    assert status.conditions.get("Ready").last_transition_time == NOW


def test_stale_snapshot_aborts_with_retryable_conflict():
    store = seed(
        simple_run_latest("default", "stale", "config"),
        simple_ready_config("default", "config"),
        simple_ready_revision("default", "config-00001"),
    )
    engine = build_engine(store)
    snapshot = store.snapshot()
    # Someone else touches the Configuration after the snapshot was taken.
    store.put(simple_ready_config("default", "config"))

    with pytest.raises(ConflictError) as excinfo:
        engine.reconcile("default/stale", snapshot)

    assert excinfo.value.retryable is True
    assert store.actions == []
    assert stored(store, "Route", "stale").status.conditions.get("Ready") is None


def test_rerun_after_partial_progress_converges():
    store = seed(
        simple_run_latest("default", "partial", "config"),
        simple_ready_config("default", "config"),
        simple_ready_revision("default", "config-00001"),
    )
    engine = build_engine(store)
    stale = store.snapshot()
    engine.reconcile("default/partial", store.snapshot())
    converged = {
        kind: stored(store, kind, "partial")
        for kind in (Route.KIND, Service.KIND, VirtualService.KIND)
    }

    # Re-running against a stale view fails on the first write only.
    with pytest.raises(ConflictError):
        engine.reconcile("default/partial", stale)
    store.actions.clear()
    engine.reconcile("default/partial", store.snapshot())

    assert store.actions == []
    for kind, obj in converged.items():
        assert stored(store, kind, "partial") == obj
    assert stored(store, Configuration.KIND, "config").bound_route_name == "partial"
