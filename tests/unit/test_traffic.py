import pytest

from route_reconciler.errors import ConfigurationMissing, RevisionMissing, TrafficResolutionError
from route_reconciler.model import Pinned, RunLatest
from route_reconciler.traffic import resolve_traffic

from tests.unit.builders import (
    route_with_traffic,
    seed,
    simple_not_ready_config,
    simple_ready_config,
    simple_ready_revision,
)


def resolve(route, *objects):
    snapshot = seed(*objects).snapshot()
    return resolve_traffic(route, snapshot.configurations, snapshot.revisions)


def test_run_latest_uses_latest_ready_revision():
    route = route_with_traffic("default", "r", RunLatest("config", 100))

    traffic = resolve(
        route,
        simple_ready_config("default", "config"),
        simple_ready_revision("default", "config-00001"),
    )

    (target,) = traffic.revision_targets
    assert target.revision_name == "config-00001"
    assert target.configuration_name == "config"
    assert target.percent == 100
    assert target.active is True


def test_pinned_has_no_configuration_name():
    route = route_with_traffic("default", "r", Pinned("rev-1", 100))

    traffic = resolve(route, simple_ready_revision("default", "rev-1", owner="config"))

    (target,) = traffic.revision_targets
    assert target.revision_name == "rev-1"
    assert target.configuration_name is None
    assert traffic.configuration_names() == []


def test_first_failure_aborts_whole_route():
    route = route_with_traffic(
        "default", "r", RunLatest("config", 50), Pinned("gone", 30), RunLatest("missing", 20)
    )

    with pytest.raises(RevisionMissing) as excinfo:
        resolve(
            route,
            simple_ready_config("default", "config"),
            simple_ready_revision("default", "config-00001"),
        )

    assert excinfo.value.name == "gone"


def test_not_ready_configuration_reported_as_missing():
    route = route_with_traffic("default", "r", RunLatest("config", 100))

    with pytest.raises(ConfigurationMissing) as excinfo:
        resolve(route, simple_not_ready_config("default", "config"))

    assert excinfo.value.reason == "ConfigurationMissing"
    assert excinfo.value.message == 'Referenced Configuration "config" not found'


def test_lookups_are_namespaced():
    route = route_with_traffic("default", "r", RunLatest("config", 100))

    with pytest.raises(ConfigurationMissing):
        resolve(
            route,
            simple_ready_config("other", "config"),
            simple_ready_revision("other", "config-00001"),
        )


def test_grouping_and_percent_conservation():
    route = route_with_traffic(
        "default",
        "r",
        RunLatest("blue", 40),
        Pinned("green-00003", 35, name="candidate"),
        RunLatest("blue", 25, name="current"),
    )

    traffic = resolve(
        route,
        simple_ready_config("default", "blue"),
        simple_ready_revision("default", "blue-00001"),
        simple_ready_revision("default", "green-00003"),
    )

    assert traffic.total_percent() == 100
    assert list(traffic.targets) == ["", "candidate", "current"]
    assert [t.revision_name for t in traffic.targets["candidate"]] == ["green-00003"]
    assert traffic.configuration_names() == ["blue"]
    assert [t.name for t in traffic.status_traffic()] == ["", "candidate", "current"]


def test_base_resolution_error_has_generic_message():
    error = TrafficResolutionError("web")

    assert error.reason == "TrafficResolutionFailed"
    assert error.message == 'Traffic target "web" cannot be resolved'
    assert str(error) == error.message
